from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel

from app.models.user import UserRole


class CamelModel(BaseModel):
    """Base schema serialized with camelCase keys on the wire."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class UserCreate(CamelModel):
    """Schema for creating a new user."""
    name: str = Field(min_length=1)
    email: EmailStr
    role: Optional[UserRole] = None


class UserUpdate(CamelModel):
    """Schema for updating user information. Only supplied fields change."""
    name: Optional[str] = Field(default=None, min_length=1)
    email: Optional[EmailStr] = None


class RoleUpdate(CamelModel):
    """Schema for an admin role change."""
    role: UserRole


class UserResponse(CamelModel):
    """Schema for user response to client. Provider tokens are never included."""
    id: int
    name: str
    email: str
    role: UserRole
    oauth_provider: Optional[str] = None
    oauth_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class UserSummary(CamelModel):
    """Minimal user payload returned alongside a session token."""
    id: int
    name: str
    email: str


class UserProfile(UserSummary):
    """Current user profile for /auth/me."""
    created_at: datetime
    updated_at: datetime


class MeResponse(CamelModel):
    user: UserProfile


class AuthResponse(CamelModel):
    """Schema for a successful OAuth callback."""
    success: bool = True
    token: str
    user: UserSummary


class DevTokenRequest(CamelModel):
    """Body for the development-only token shortcut."""
    email: Optional[EmailStr] = None
    name: Optional[str] = None


class DevTokenResponse(CamelModel):
    token: str
    user: UserSummary


class ProviderInfo(CamelModel):
    name: str
    display_name: str
    login_url: str


class ProvidersResponse(CamelModel):
    providers: List[ProviderInfo]


class MessageResponse(CamelModel):
    message: str


class LogoutResponse(CamelModel):
    success: bool = True
    message: str
