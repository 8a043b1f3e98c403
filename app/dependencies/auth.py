import logging
from typing import Callable, Mapping, Optional

import httpx
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import Settings
from app.core.exceptions import ForbiddenError, InvalidTokenError, UnauthorizedError
from app.core.oauth import OAuthClient
from app.core.security import AuthenticatedPrincipal, verify_token
from app.db.session import get_db
from app.models.user import User, UserRole
from app.schemas.oauth import ProviderName
from app.services.auth_service import OAuthCallbackOrchestrator
from app.services.user_service import UserService
from app.services.user_store import UserStore


logger = logging.getLogger(__name__)

# JWT Bearer token dependency
bearer_scheme = HTTPBearer(auto_error=False)


def get_user_store(db: AsyncSession = Depends(get_db)) -> UserStore:
    return UserStore(db)


def get_user_service(store: UserStore = Depends(get_user_store)) -> UserService:
    return UserService(store)


def get_app_settings(request: Request) -> Settings:
    """Settings the running app was built with."""
    return request.app.state.settings


def get_oauth_clients(request: Request) -> Mapping[ProviderName, OAuthClient]:
    """Provider registry built at startup."""
    return request.app.state.oauth_clients


def get_http_client(request: Request) -> Optional[httpx.AsyncClient]:
    return getattr(request.app.state, "http_client", None)


def get_orchestrator(
    clients: Mapping[ProviderName, OAuthClient] = Depends(get_oauth_clients),
    store: UserStore = Depends(get_user_store),
    http_client: Optional[httpx.AsyncClient] = Depends(get_http_client),
) -> OAuthCallbackOrchestrator:
    return OAuthCallbackOrchestrator(clients, store, http_client)


async def get_current_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> AuthenticatedPrincipal:
    """
    Dependency to authenticate a request from its bearer token.

    Args:
        credentials: JWT token from Authorization header.

    Returns:
        AuthenticatedPrincipal: Decoded token claims.

    Raises:
        UnauthorizedError: If the token is missing or fails verification.
    """
    if not credentials:
        raise UnauthorizedError()

    try:
        return verify_token(credentials.credentials)
    except InvalidTokenError as e:
        logger.info(f"Rejected bearer token: {e}")
        raise UnauthorizedError() from e


async def get_current_user(
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    store: UserStore = Depends(get_user_store),
) -> User:
    """
    Dependency to load the authenticated user's current record.

    Authorization decisions use this record, so a demoted or deleted user
    loses access immediately regardless of what their token says.

    Raises:
        UnauthorizedError: If the user no longer exists.
    """
    user = await store.find_by_id(principal.user_id)
    if user is None:
        logger.warning(f"Token references missing user {principal.user_id}")
        raise UnauthorizedError("User not found")
    return user


def require_role(*roles: UserRole) -> Callable:
    """
    Dependency factory restricting a route to the given roles.

    Example:
        @router.get("/", dependencies=[Depends(require_role(UserRole.ADMIN))])

    Returns:
        Callable: Dependency resolving to the current user.
    """
    allowed = set(roles)

    async def dependency(user: User = Depends(get_current_user)) -> User:
        if user.role not in allowed:
            required = " or ".join(sorted(role.value for role in allowed))
            raise ForbiddenError(f"Access denied. Required role: {required}")
        return user

    return dependency
