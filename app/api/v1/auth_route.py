import logging
from typing import Mapping, Optional

from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.responses import RedirectResponse

from app.core.config import Settings
from app.core.exceptions import BadRequestError, NotFoundError, ProviderNotConfiguredError
from app.core.oauth import OAuthClient, callback_uri
from app.core.security import AuthenticatedPrincipal, clear_refresh_cookie, issue_token
from app.dependencies.auth import (
    get_app_settings,
    get_current_principal,
    get_oauth_clients,
    get_orchestrator,
    get_user_store,
)
from app.schemas.oauth import ProviderName
from app.schemas.user import (
    AuthResponse,
    DevTokenRequest,
    DevTokenResponse,
    LogoutResponse,
    MeResponse,
    ProviderInfo,
    ProvidersResponse,
    UserProfile,
    UserSummary,
)
from app.services.auth_service import OAuthCallbackOrchestrator
from app.services.user_store import UserStore

# Set up logger
logger = logging.getLogger(__name__)

auth_router = APIRouter()

# Dev-only routes, mounted by create_app outside production
dev_router = APIRouter()

STATE_COOKIE_NAME = "oauth2-redirect-state"
STATE_COOKIE_MAX_AGE = 600


@auth_router.get("/providers", response_model=ProvidersResponse)
async def list_providers(
    clients: Mapping[ProviderName, OAuthClient] = Depends(get_oauth_clients),
):
    """
    List the OAuth providers configured on this deployment.

    Returns:
        ProvidersResponse: Name, display name and login URL per enabled provider.
    """
    providers = [
        ProviderInfo(
            name=client.name.value,
            display_name=client.display_name,
            login_url=f"/auth/{client.name.value}",
        )
        for client in clients.values()
    ]
    return ProvidersResponse(providers=providers)


@auth_router.get("/me", response_model=MeResponse)
async def get_me(
    principal: AuthenticatedPrincipal = Depends(get_current_principal),
    store: UserStore = Depends(get_user_store),
):
    """
    Get the current authenticated user.

    Raises:
        NotFoundError: If the token's user has been deleted.
    """
    user = await store.find_by_id(principal.user_id)
    if user is None:
        raise NotFoundError("User not found")
    return MeResponse(user=UserProfile.model_validate(user))


@auth_router.post("/logout", response_model=LogoutResponse)
async def logout(response: Response):
    """Clear the refresh token cookie."""
    clear_refresh_cookie(response)
    return LogoutResponse(success=True, message="Logged out successfully")


@dev_router.post("/dev/token", response_model=DevTokenResponse)
async def issue_dev_token(
    body: DevTokenRequest,
    store: UserStore = Depends(get_user_store),
):
    """
    Generate a session token without OAuth (development only).

    Finds the user by email or creates one; the name is only used on
    creation.

    Raises:
        BadRequestError: If email is missing.
    """
    if not body.email:
        raise BadRequestError("Email is required")

    user = await store.find_by_email(body.email)
    if user is None:
        user = await store.create(name=body.name or "Test User", email=body.email)
        logger.info(f"Created development user: {user.id}")

    token = issue_token(user.id, user.email, user.role)
    return DevTokenResponse(token=token, user=UserSummary.model_validate(user))


@auth_router.get("/{provider}", response_class=RedirectResponse)
async def start_oauth_login(
    provider: str,
    clients: Mapping[ProviderName, OAuthClient] = Depends(get_oauth_clients),
    app_settings: Settings = Depends(get_app_settings),
):
    """
    Initiate the OAuth2 login flow for a provider.

    Generates state token for CSRF protection and redirects to the provider.
    """
    try:
        client = clients.get(ProviderName(provider))
    except ValueError:
        client = None
    if client is None:
        raise ProviderNotConfiguredError(provider)

    redirect_uri = callback_uri(app_settings.app_url, client.name)
    auth_url, state = await client.create_authorization_url(redirect_uri)

    response = RedirectResponse(url=auth_url, status_code=status.HTTP_302_FOUND)
    response.set_cookie(
        key=STATE_COOKIE_NAME,
        value=state,
        max_age=STATE_COOKIE_MAX_AGE,
        path="/auth",
        httponly=True,
        secure=app_settings.is_production,
        samesite="lax",
    )
    return response


@auth_router.get("/{provider}/callback", response_model=AuthResponse)
async def oauth_callback(
    provider: str,
    request: Request,
    response: Response,
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    orchestrator: OAuthCallbackOrchestrator = Depends(get_orchestrator),
    app_settings: Settings = Depends(get_app_settings),
):
    """
    Handle the OAuth2 callback for any configured provider.

    Exchanges the code, links the identity to a local user and issues a
    session token.

    Args:
        provider: Provider name from the path.
        code: Authorization code from the provider.
        state: State parameter for CSRF protection.
        error: Error reported by the provider.

    Returns:
        AuthResponse: Session token and user summary.
    """
    if error:
        logger.warning(f"{provider} OAuth returned error: {error}")

    redirect_uri = callback_uri(app_settings.app_url, orchestrator.get_client(provider).name)
    token, user = await orchestrator.handle_callback(
        provider,
        code or "",
        redirect_uri,
        response,
        state=state,
        expected_state=request.cookies.get(STATE_COOKIE_NAME),
    )
    response.delete_cookie(STATE_COOKIE_NAME, path="/auth")

    return AuthResponse(success=True, token=token, user=UserSummary.model_validate(user))
