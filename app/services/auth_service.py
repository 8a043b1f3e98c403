import logging
from datetime import datetime
from typing import Mapping, Optional, Tuple, Union

import httpx
from fastapi import Response

from app.core.exceptions import AuthenticationFailedError, ProviderNotConfiguredError
from app.core.oauth import OAuthClient
from app.core.security import issue_token, set_refresh_cookie
from app.models.user import User
from app.schemas.oauth import ProviderName
from app.services.identity_service import upsert_oauth_user
from app.services.oauth_providers import fetch_provider_user_info
from app.services.user_store import UserStore


logger = logging.getLogger(__name__)


class OAuthCallbackOrchestrator:
    """
    Drives a provider callback end to end.

    exchange code -> normalize identity -> upsert user -> issue token ->
    set refresh cookie. The provider registry is injected, never looked up
    globally.
    """

    def __init__(
        self,
        clients: Mapping[ProviderName, OAuthClient],
        store: UserStore,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.clients = clients
        self.store = store
        self.http_client = http_client

    def get_client(self, provider: Union[ProviderName, str]) -> OAuthClient:
        """
        Return the registered client for a provider.

        Raises:
            ProviderNotConfiguredError: If the provider is unknown or disabled.
        """
        try:
            client = self.clients.get(ProviderName(provider))
        except ValueError:
            client = None
        if client is None:
            raise ProviderNotConfiguredError(str(getattr(provider, "value", provider)))
        return client

    async def handle_callback(
        self,
        provider: Union[ProviderName, str],
        code: str,
        redirect_uri: str,
        response: Response,
        state: Optional[str] = None,
        expected_state: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Tuple[str, User]:
        """
        Complete an OAuth login.

        Args:
            provider: Provider named in the callback path.
            code: Authorization code.
            redirect_uri: Callback URL used when the flow started.
            response: Outgoing response that receives the refresh cookie.
            state: State echoed back by the provider.
            expected_state: State stored when the flow started.
            now: Current time, injectable for tests.

        Returns:
            tuple: (session token, user)

        Raises:
            ProviderNotConfiguredError: Provider has no registered client.
            AuthenticationFailedError: Any failure after the provider check.
        """
        client = self.get_client(provider)
        name = client.name

        try:
            tokens = await client.exchange_code(
                code, redirect_uri, state=state, expected_state=expected_state
            )
            identity = await fetch_provider_user_info(name, tokens.access_token, self.http_client)
            user = await upsert_oauth_user(self.store, name, identity, tokens, now=now)

            token = issue_token(user.id, user.email, user.role)
            set_refresh_cookie(response, token)
        except Exception as e:
            logger.exception(f"{name.value} OAuth callback failed: {e}")
            raise AuthenticationFailedError() from e

        logger.info(f"Issued session token for user {user.id} via {name.value}")
        return token, user
