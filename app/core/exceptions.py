"""
Error taxonomy for the API.

Identity, token and persistence errors are plain exceptions raised by the
core; the HTTP-facing errors carry a fixed status code and are rendered by
the handlers in ``app.main`` as ``{"error": ..., "statusCode": ...}``.
"""

from typing import Dict, Optional

from fastapi import HTTPException, status


# Identity normalization ------------------------------------------------------

class IdentityError(Exception):
    """Base class for failures while resolving a provider identity."""


class UpstreamFetchError(IdentityError):
    """The provider's profile endpoint failed or returned an unusable body."""


class NoEmailFoundError(IdentityError):
    """No email address could be resolved for the provider account."""


class UnsupportedProviderError(IdentityError):
    """The provider name is not one of the supported providers."""


# Tokens and OAuth client -----------------------------------------------------

class InvalidTokenError(Exception):
    """A session token is expired, malformed or carries a bad signature."""


class OAuthExchangeError(Exception):
    """Authorization code exchange with the provider failed."""


# Persistence -----------------------------------------------------------------

class UserStoreError(Exception):
    """A read or write against the user table failed."""


class DuplicateUserError(UserStoreError):
    """A write violated the unique email constraint."""


# HTTP-facing errors ----------------------------------------------------------

class APIError(HTTPException):
    """HTTPException with a per-class status code and default message."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail: str = "Internal server error"

    def __init__(self, detail: Optional[str] = None, headers: Optional[Dict[str, str]] = None):
        super().__init__(
            status_code=type(self).status_code,
            detail=detail or self.default_detail,
            headers=headers,
        )


class BadRequestError(APIError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Bad request"


class UnauthorizedError(APIError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = "Unauthorized"

    def __init__(self, detail: Optional[str] = None):
        super().__init__(detail, headers={"WWW-Authenticate": "Bearer"})


class ForbiddenError(APIError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "Forbidden"


class NotFoundError(APIError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "User not found"


class AuthenticationFailedError(APIError):
    default_detail = "Authentication failed"


class PersistenceError(APIError):
    default_detail = "Internal server error"


class ProviderNotConfiguredError(APIError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    def __init__(self, provider: str):
        super().__init__(f"{provider} OAuth is not configured")
