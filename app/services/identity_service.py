"""
Linking of OAuth identities to local users.

Email is the identity key: a login from any provider with an email that
already exists updates that user instead of creating a new one.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from app.core.exceptions import AuthenticationFailedError, DuplicateUserError, UserStoreError
from app.models.user import User
from app.schemas.oauth import OAuthUserInfo, ProviderName, ProviderTokens
from app.services.user_store import UserStore


logger = logging.getLogger(__name__)

DEFAULT_TOKEN_EXPIRES_IN = 3600


def compute_token_expiry(expires_in: Optional[int], now: Optional[datetime] = None) -> datetime:
    """Provider token expiry, defaulting to one hour when the provider omits it."""
    now = now or datetime.now(timezone.utc)
    return now + timedelta(seconds=expires_in or DEFAULT_TOKEN_EXPIRES_IN)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # Some backends hand back naive datetimes for timezone-aware columns
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def reconcile_identity(
    user: User,
    provider: ProviderName,
    identity: OAuthUserInfo,
    tokens: ProviderTokens,
    expires_at: datetime,
) -> Dict[str, Any]:
    """
    Decide which OAuth fields of an existing user change on a repeat login.

    The provider is overwritten even when it differs from the one the
    account was first linked with. The refresh token is only replaced by a
    non-empty value.

    Args:
        user: Stored user matched by email.
        provider: Provider that just authenticated the user.
        identity: Normalized identity from that provider.
        tokens: Fresh provider tokens.
        expires_at: Expiry computed for the fresh access token.

    Returns:
        dict: Column name to new value, only for columns that differ.
    """
    changes: Dict[str, Any] = {}

    if user.oauth_provider != provider.value:
        changes["oauth_provider"] = provider.value
    if user.oauth_id != identity.id:
        changes["oauth_id"] = identity.id
    if user.oauth_access_token != tokens.access_token:
        changes["oauth_access_token"] = tokens.access_token
    if tokens.refresh_token and user.oauth_refresh_token != tokens.refresh_token:
        changes["oauth_refresh_token"] = tokens.refresh_token
    if _as_utc(user.oauth_token_expires_at) != _as_utc(expires_at):
        changes["oauth_token_expires_at"] = expires_at

    return changes


async def _apply_reconciliation(
    store: UserStore,
    user: User,
    provider: ProviderName,
    identity: OAuthUserInfo,
    tokens: ProviderTokens,
    expires_at: datetime,
) -> User:
    changes = reconcile_identity(user, provider, identity, tokens, expires_at)
    if not changes:
        return user

    await store.update_fields(user.id, changes)
    if "oauth_provider" in changes:
        logger.info(f"User {user.id} now linked to {provider.value}")

    refreshed = await store.find_by_id(user.id)
    if refreshed is None:
        raise UserStoreError(f"User {user.id} disappeared during login")
    return refreshed


async def upsert_oauth_user(
    store: UserStore,
    provider: ProviderName,
    identity: OAuthUserInfo,
    tokens: ProviderTokens,
    now: Optional[datetime] = None,
) -> User:
    """
    Find or create the local user for an OAuth identity.

    Args:
        store: User store.
        provider: Provider that authenticated the user.
        identity: Normalized provider identity.
        tokens: Provider tokens from the code exchange.
        now: Current time, injectable for tests.

    Returns:
        User: The created or reconciled user.

    Raises:
        AuthenticationFailedError: If the user table cannot be read or written.
    """
    expires_at = compute_token_expiry(tokens.expires_in, now)

    try:
        user = await store.find_by_email(identity.email)
        if user is not None:
            return await _apply_reconciliation(store, user, provider, identity, tokens, expires_at)

        try:
            return await store.create(
                name=identity.name,
                email=identity.email,
                oauth_provider=provider.value,
                oauth_id=identity.id,
                oauth_access_token=tokens.access_token,
                oauth_refresh_token=tokens.refresh_token,
                oauth_token_expires_at=expires_at,
            )
        except DuplicateUserError:
            # A concurrent first login for the same email won the insert
            logger.info(f"Concurrent first login detected for {provider.value} identity {identity.id}")
            user = await store.find_by_email(identity.email)
            if user is None:
                raise
            return await _apply_reconciliation(store, user, provider, identity, tokens, expires_at)

    except UserStoreError as e:
        logger.error(f"Failed to link {provider.value} identity {identity.id}: {e}")
        raise AuthenticationFailedError() from e
