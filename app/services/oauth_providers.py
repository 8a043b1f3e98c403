"""
OAuth provider adapters.

Each adapter takes a provider access token, reads the user's profile and
normalizes it into ``OAuthUserInfo``. Failures surface immediately; nothing
here retries.
"""

import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Union

import httpx

from app.core.exceptions import NoEmailFoundError, UnsupportedProviderError, UpstreamFetchError
from app.schemas.oauth import OAuthUserInfo, ProviderName


logger = logging.getLogger(__name__)

GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"
GITHUB_USER_URL = "https://api.github.com/user"
GITHUB_EMAILS_URL = "https://api.github.com/user/emails"
MICROSOFT_ME_URL = "https://graph.microsoft.com/v1.0/me"

GITHUB_ACCEPT = "application/vnd.github.v3+json"

REQUEST_TIMEOUT = 10.0


async def _get_json(
    client: httpx.AsyncClient,
    url: str,
    access_token: str,
    error_message: str,
    accept: Optional[str] = None,
) -> Any:
    headers = {"Authorization": f"Bearer {access_token}"}
    if accept:
        headers["Accept"] = accept

    try:
        response = await client.get(url, headers=headers)
    except httpx.HTTPError as e:
        raise UpstreamFetchError(f"{error_message}: {e}") from e

    if not response.is_success:
        raise UpstreamFetchError(f"{error_message} (status {response.status_code})")

    try:
        return response.json()
    except ValueError as e:
        raise UpstreamFetchError(f"{error_message}: invalid JSON body") from e


async def _get_profile(
    client: httpx.AsyncClient,
    url: str,
    access_token: str,
    error_message: str,
    accept: Optional[str] = None,
) -> Dict[str, Any]:
    data = await _get_json(client, url, access_token, error_message, accept)
    if not isinstance(data, dict):
        raise UpstreamFetchError(f"{error_message}: unexpected response shape")
    return data


def _build_user_info(
    provider: ProviderName,
    user_id: Any,
    email: Optional[str],
    name: Optional[str],
    picture: Optional[str] = None,
) -> OAuthUserInfo:
    if user_id is None or str(user_id) == "":
        raise UpstreamFetchError(f"{provider.value} profile has no user id")
    if not email:
        raise NoEmailFoundError(f"No email found in {provider.value} account")

    return OAuthUserInfo(id=str(user_id), email=email, name=name or email, picture=picture)


async def fetch_google_user_info(access_token: str, client: httpx.AsyncClient) -> OAuthUserInfo:
    """
    Fetch user info from Google.

    Profile and email come back from a single userinfo call.
    """
    data = await _get_profile(
        client, GOOGLE_USERINFO_URL, access_token, "Failed to fetch Google user info"
    )
    return _build_user_info(
        ProviderName.GOOGLE,
        data.get("id"),
        data.get("email"),
        data.get("name"),
        data.get("picture"),
    )


def _select_github_email(emails: Any) -> Optional[str]:
    """Prefer the primary verified address, falling back to the first listed."""
    if not isinstance(emails, list) or not emails:
        return None

    for entry in emails:
        if isinstance(entry, dict) and entry.get("primary") and entry.get("verified"):
            return entry.get("email")

    first = emails[0]
    return first.get("email") if isinstance(first, dict) else None


async def fetch_github_user_info(access_token: str, client: httpx.AsyncClient) -> OAuthUserInfo:
    """
    Fetch user info from GitHub.

    GitHub omits the email from the profile when the user keeps it private,
    in which case the emails endpoint is consulted.
    """
    profile = await _get_profile(
        client, GITHUB_USER_URL, access_token, "Failed to fetch GitHub user info", GITHUB_ACCEPT
    )

    email = profile.get("email")
    if not email:
        try:
            emails = await _get_json(
                client,
                GITHUB_EMAILS_URL,
                access_token,
                "Failed to fetch GitHub emails",
                GITHUB_ACCEPT,
            )
        except UpstreamFetchError as e:
            logger.warning(f"GitHub emails lookup failed: {e}")
            emails = None
        email = _select_github_email(emails)

    return _build_user_info(
        ProviderName.GITHUB,
        profile.get("id"),
        email,
        profile.get("name") or profile.get("login"),
        profile.get("avatar_url"),
    )


async def fetch_microsoft_user_info(access_token: str, client: httpx.AsyncClient) -> OAuthUserInfo:
    """Fetch user info from Microsoft Graph."""
    data = await _get_profile(
        client, MICROSOFT_ME_URL, access_token, "Failed to fetch Microsoft user info"
    )
    return _build_user_info(
        ProviderName.MICROSOFT,
        data.get("id"),
        data.get("mail") or data.get("userPrincipalName"),
        data.get("displayName"),
    )


ProviderAdapter = Callable[[str, httpx.AsyncClient], Awaitable[OAuthUserInfo]]

PROVIDER_ADAPTERS: Dict[ProviderName, ProviderAdapter] = {
    ProviderName.GOOGLE: fetch_google_user_info,
    ProviderName.GITHUB: fetch_github_user_info,
    ProviderName.MICROSOFT: fetch_microsoft_user_info,
}


def parse_provider(provider: Union[ProviderName, str]) -> ProviderName:
    """
    Resolve a provider name to the closed ``ProviderName`` enumeration.

    Raises:
        UnsupportedProviderError: If the name is not a supported provider.
    """
    try:
        return ProviderName(provider)
    except ValueError as e:
        raise UnsupportedProviderError(f"Unsupported provider: {provider}") from e


async def fetch_provider_user_info(
    provider: Union[ProviderName, str],
    access_token: str,
    client: Optional[httpx.AsyncClient] = None,
) -> OAuthUserInfo:
    """
    Fetch and normalize user info from any supported provider.

    Args:
        provider: Provider name.
        access_token: Provider access token from the code exchange.
        client: Optional shared HTTP client; a short-lived one is used otherwise.

    Returns:
        OAuthUserInfo: Identity with non-empty id and email.

    Raises:
        UnsupportedProviderError: Unknown provider.
        UpstreamFetchError: Provider call failed.
        NoEmailFoundError: No email could be resolved.
    """
    adapter = PROVIDER_ADAPTERS[parse_provider(provider)]

    if client is not None:
        return await adapter(access_token, client)

    async with httpx.AsyncClient(timeout=REQUEST_TIMEOUT) as own_client:
        return await adapter(access_token, own_client)
