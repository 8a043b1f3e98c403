import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Union

from fastapi import Response
from jose import JWTError, jwt

from app.core.config import settings
from app.core.exceptions import InvalidTokenError
from app.models.user import UserRole


logger = logging.getLogger(__name__)

TOKEN_TTL = timedelta(days=7)
REFRESH_COOKIE_NAME = "refreshToken"


@dataclass(frozen=True)
class AuthenticatedPrincipal:
    """Decoded session token claims attached to an authenticated request."""

    user_id: int
    email: str
    role: UserRole = UserRole.USER


def issue_token(user_id: int, email: str, role: Optional[Union[UserRole, str]] = None) -> str:
    """
    Create a signed session token.

    Args:
        user_id: Local user ID (``userId`` claim).
        email: User email (``email`` claim).
        role: Optional role claim. Authorization never trusts it; see
            ``app.dependencies.auth.require_role``.

    Returns:
        str: Encoded JWT expiring seven days from now.
    """
    claims: Dict[str, Any] = {
        "userId": user_id,
        "email": email,
        "exp": datetime.now(timezone.utc) + TOKEN_TTL,
    }
    if role is not None:
        claims["role"] = UserRole(role).value
    return jwt.encode(claims, settings.secret_key, algorithm=settings.algorithm)


def verify_token(token: str) -> AuthenticatedPrincipal:
    """
    Verify and decode a session token.

    Args:
        token: JWT from the Authorization header.

    Returns:
        AuthenticatedPrincipal: Decoded claims. Tokens issued without a role
        claim decode with the ``user`` role.

    Raises:
        InvalidTokenError: For every kind of failure (expired, malformed,
            wrong signature, missing claims).
    """
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError as e:
        raise InvalidTokenError(str(e)) from e

    user_id = payload.get("userId")
    email = payload.get("email")
    if not isinstance(user_id, int) or isinstance(user_id, bool) or not isinstance(email, str):
        raise InvalidTokenError("Token is missing required claims")

    try:
        role = UserRole(payload.get("role") or UserRole.USER.value)
    except ValueError as e:
        raise InvalidTokenError("Token carries an unknown role") from e

    return AuthenticatedPrincipal(user_id=user_id, email=email, role=role)


def set_refresh_cookie(response: Response, token: str) -> None:
    """
    Store the session token in the HTTP-only refresh cookie.

    Args:
        response: Outgoing response.
        token: Session token to store.
    """
    response.set_cookie(
        key=REFRESH_COOKIE_NAME,
        value=token,
        max_age=int(TOKEN_TTL.total_seconds()),
        path="/",
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
    )


def clear_refresh_cookie(response: Response) -> None:
    """Expire the refresh cookie immediately."""
    response.delete_cookie(
        key=REFRESH_COOKIE_NAME,
        path="/",
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
    )
