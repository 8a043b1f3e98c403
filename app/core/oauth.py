"""
OAuth2 client registry.

The set of enabled providers is built once at startup from settings and
never mutated afterwards; the app keeps it on ``app.state.oauth_clients``.
"""

import logging
import secrets
from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, Mapping, Optional, Tuple

import httpx
from authlib.integrations.base_client import OAuthError
from authlib.integrations.httpx_client import AsyncOAuth2Client

from app.core.config import Settings
from app.core.exceptions import OAuthExchangeError
from app.schemas.oauth import ProviderName, ProviderTokens


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProviderEndpoints:
    display_name: str
    authorization_endpoint: str
    token_endpoint: str
    scope: str


PROVIDER_ENDPOINTS: Dict[ProviderName, ProviderEndpoints] = {
    ProviderName.GOOGLE: ProviderEndpoints(
        display_name="Google",
        authorization_endpoint="https://accounts.google.com/o/oauth2/v2/auth",
        token_endpoint="https://oauth2.googleapis.com/token",
        scope="profile email",
    ),
    ProviderName.GITHUB: ProviderEndpoints(
        display_name="GitHub",
        authorization_endpoint="https://github.com/login/oauth/authorize",
        token_endpoint="https://github.com/login/oauth/access_token",
        scope="user:email read:user",
    ),
    ProviderName.MICROSOFT: ProviderEndpoints(
        display_name="Microsoft",
        authorization_endpoint="https://login.microsoftonline.com/common/oauth2/v2.0/authorize",
        token_endpoint="https://login.microsoftonline.com/common/oauth2/v2.0/token",
        scope="openid profile email",
    ),
}


@dataclass(frozen=True)
class ProviderConfig:
    """Registered OAuth client configuration for one provider."""

    name: ProviderName
    display_name: str
    client_id: str
    client_secret: str
    authorization_endpoint: str
    token_endpoint: str
    scope: str

    def __repr__(self) -> str:
        return f"ProviderConfig(name={self.name.value!r}, client_id={self.client_id!r})"


class OAuthClient:
    """
    Authorization code flow for a single provider, backed by Authlib.

    A fresh ``AsyncOAuth2Client`` is opened per call so no connection state
    is shared between requests.
    """

    def __init__(self, config: ProviderConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self.transport = transport

    @property
    def name(self) -> ProviderName:
        return self.config.name

    @property
    def display_name(self) -> str:
        return self.config.display_name

    def _session(self, redirect_uri: str) -> AsyncOAuth2Client:
        return AsyncOAuth2Client(
            client_id=self.config.client_id,
            client_secret=self.config.client_secret,
            scope=self.config.scope,
            redirect_uri=redirect_uri,
            transport=self.transport,
        )

    async def create_authorization_url(self, redirect_uri: str) -> Tuple[str, str]:
        """
        Build the provider authorization URL.

        Args:
            redirect_uri: Callback URL registered with the provider.

        Returns:
            tuple: (authorization_url, state)
        """
        state = secrets.token_urlsafe(32)
        async with self._session(redirect_uri) as session:
            url, state = session.create_authorization_url(
                self.config.authorization_endpoint, state=state
            )
        return url, state

    async def exchange_code(
        self,
        code: str,
        redirect_uri: str,
        state: Optional[str] = None,
        expected_state: Optional[str] = None,
    ) -> ProviderTokens:
        """
        Exchange an authorization code for provider tokens.

        Args:
            code: Authorization code from the callback query.
            redirect_uri: Callback URL used when the flow started.
            state: State echoed back by the provider.
            expected_state: State stored when the flow started.

        Returns:
            ProviderTokens: Access token plus optional refresh token and lifetime.

        Raises:
            OAuthExchangeError: On state mismatch or token endpoint failure.
        """
        if not code:
            raise OAuthExchangeError("Authorization code missing")
        if not state or not expected_state or not secrets.compare_digest(state, expected_state):
            raise OAuthExchangeError("OAuth state mismatch")

        try:
            async with self._session(redirect_uri) as session:
                token = await session.fetch_token(self.config.token_endpoint, code=code)
        except (OAuthError, httpx.HTTPError, ValueError) as e:
            raise OAuthExchangeError(f"Token exchange failed: {e}") from e

        access_token = token.get("access_token")
        if not access_token:
            raise OAuthExchangeError("Token response has no access token")

        expires_in = token.get("expires_in")
        return ProviderTokens(
            access_token=access_token,
            refresh_token=token.get("refresh_token") or None,
            expires_in=int(expires_in) if expires_in else None,
        )


def build_provider_configs(settings: Settings) -> Tuple[ProviderConfig, ...]:
    """Return configurations for providers with both client id and secret set."""
    configs = []
    for name, endpoints in PROVIDER_ENDPOINTS.items():
        client_id, client_secret = settings.provider_credentials(name.value)
        if not client_id or not client_secret:
            continue
        configs.append(
            ProviderConfig(
                name=name,
                display_name=endpoints.display_name,
                client_id=client_id,
                client_secret=client_secret,
                authorization_endpoint=endpoints.authorization_endpoint,
                token_endpoint=endpoints.token_endpoint,
                scope=endpoints.scope,
            )
        )
    return tuple(configs)


def build_oauth_clients(settings: Settings) -> Mapping[ProviderName, OAuthClient]:
    """
    Build the immutable provider registry.

    Args:
        settings: Application settings carrying provider credentials.

    Returns:
        Mapping: Read-only map of enabled provider name to client.
    """
    clients = {config.name: OAuthClient(config) for config in build_provider_configs(settings)}
    logger.info(f"Enabled OAuth providers: {[name.value for name in clients] or 'none'}")
    return MappingProxyType(clients)


def callback_uri(app_url: str, provider: ProviderName) -> str:
    """Callback URL registered with a provider for this deployment."""
    return f"{app_url.rstrip('/')}/auth/{provider.value}/callback"
