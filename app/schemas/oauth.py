from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict


class ProviderName(str, Enum):
    """Supported OAuth providers."""
    GOOGLE = "google"
    GITHUB = "github"
    MICROSOFT = "microsoft"


class OAuthUserInfo(BaseModel):
    """Provider-independent identity produced by the provider adapters."""
    model_config = ConfigDict(frozen=True)

    id: str
    email: str
    name: str
    picture: Optional[str] = None


class ProviderTokens(BaseModel):
    """Token set returned by a provider's token endpoint."""
    access_token: str
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None
