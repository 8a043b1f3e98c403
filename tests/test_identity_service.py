from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pytest

from app.core.exceptions import AuthenticationFailedError, DuplicateUserError, UserStoreError
from app.models.user import User, UserRole
from app.schemas.oauth import OAuthUserInfo, ProviderName, ProviderTokens
from app.services.identity_service import (
    compute_token_expiry,
    reconcile_identity,
    upsert_oauth_user,
)


NOW = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

IDENTITY = OAuthUserInfo(id="gh-1", email="dev@example.com", name="Dev")


class RecordingStore:
    """In-memory store that records every write."""

    def __init__(self, users: Optional[List[User]] = None):
        self.users: Dict[int, User] = {u.id: u for u in users or []}
        self.creates: List[Dict[str, Any]] = []
        self.updates: List[Dict[str, Any]] = []
        self.fail_create_once_with: Optional[Exception] = None
        self.fail_updates = False

    async def find_by_email(self, email):
        return next((u for u in self.users.values() if u.email == email), None)

    async def find_by_id(self, user_id):
        return self.users.get(user_id)

    async def create(self, **attrs):
        if self.fail_create_once_with is not None:
            error, self.fail_create_once_with = self.fail_create_once_with, None
            raise error
        self.creates.append(attrs)
        user = User(id=len(self.users) + 1, role=UserRole.USER, **attrs)
        self.users[user.id] = user
        return user

    async def update_fields(self, user_id, fields):
        if self.fail_updates:
            raise UserStoreError("write failed")
        self.updates.append(fields)
        for key, value in fields.items():
            setattr(self.users[user_id], key, value)
        return 1


def linked_user(**overrides) -> User:
    values = dict(
        id=1,
        name="Dev",
        email="dev@example.com",
        role=UserRole.USER,
        oauth_provider="github",
        oauth_id="gh-1",
        oauth_access_token="access-1",
        oauth_refresh_token="refresh-1",
        oauth_token_expires_at=NOW + timedelta(seconds=3600),
    )
    values.update(overrides)
    return User(**values)


def test_expiry_defaults_to_one_hour():
    assert compute_token_expiry(None, NOW) == NOW + timedelta(seconds=3600)
    assert compute_token_expiry(120, NOW) == NOW + timedelta(seconds=120)


def test_reconcile_with_nothing_changed_is_empty():
    tokens = ProviderTokens(access_token="access-1", refresh_token="refresh-1", expires_in=3600)
    changes = reconcile_identity(
        linked_user(), ProviderName.GITHUB, IDENTITY, tokens, NOW + timedelta(seconds=3600)
    )
    assert changes == {}


def test_reconcile_treats_naive_stored_expiry_as_utc():
    stored = linked_user(oauth_token_expires_at=(NOW + timedelta(seconds=3600)).replace(tzinfo=None))
    tokens = ProviderTokens(access_token="access-1", refresh_token="refresh-1")
    changes = reconcile_identity(
        stored, ProviderName.GITHUB, IDENTITY, tokens, NOW + timedelta(seconds=3600)
    )
    assert changes == {}


def test_reconcile_keeps_refresh_token_when_provider_omits_it():
    tokens = ProviderTokens(access_token="access-2", refresh_token=None)
    changes = reconcile_identity(
        linked_user(), ProviderName.GITHUB, IDENTITY, tokens, NOW + timedelta(seconds=3600)
    )
    assert changes == {"oauth_access_token": "access-2"}


def test_reconcile_switches_provider_for_same_email():
    identity = OAuthUserInfo(id="google-9", email="dev@example.com", name="Dev")
    tokens = ProviderTokens(access_token="g-access", refresh_token="g-refresh")
    expires_at = NOW + timedelta(seconds=3600)

    changes = reconcile_identity(linked_user(), ProviderName.GOOGLE, identity, tokens, expires_at)

    assert changes == {
        "oauth_provider": "google",
        "oauth_id": "google-9",
        "oauth_access_token": "g-access",
        "oauth_refresh_token": "g-refresh",
    }


@pytest.mark.asyncio
async def test_first_login_creates_linked_user():
    store = RecordingStore()
    tokens = ProviderTokens(access_token="access-1", refresh_token="refresh-1", expires_in=600)

    user = await upsert_oauth_user(store, ProviderName.GITHUB, IDENTITY, tokens, now=NOW)

    assert user.email == "dev@example.com"
    assert store.creates == [
        {
            "name": "Dev",
            "email": "dev@example.com",
            "oauth_provider": "github",
            "oauth_id": "gh-1",
            "oauth_access_token": "access-1",
            "oauth_refresh_token": "refresh-1",
            "oauth_token_expires_at": NOW + timedelta(seconds=600),
        }
    ]
    assert store.updates == []


@pytest.mark.asyncio
async def test_relogin_with_unchanged_tokens_performs_no_write():
    store = RecordingStore([linked_user()])
    tokens = ProviderTokens(access_token="access-1", refresh_token="refresh-1", expires_in=3600)

    user = await upsert_oauth_user(store, ProviderName.GITHUB, IDENTITY, tokens, now=NOW)

    assert user.id == 1
    assert store.creates == []
    assert store.updates == []


@pytest.mark.asyncio
async def test_relogin_with_new_access_token_updates_only_changed_fields():
    store = RecordingStore([linked_user(name="Original Name")])
    tokens = ProviderTokens(access_token="access-2", expires_in=3600)

    user = await upsert_oauth_user(store, ProviderName.GITHUB, IDENTITY, tokens, now=NOW)

    assert store.updates == [{"oauth_access_token": "access-2"}]
    assert user.oauth_refresh_token == "refresh-1"
    assert user.name == "Original Name"


@pytest.mark.asyncio
async def test_duplicate_on_create_refetches_and_reconciles():
    store = RecordingStore()
    store.fail_create_once_with = DuplicateUserError("taken")
    store.users[1] = linked_user(oauth_access_token="stale")

    # Simulate the row appearing between lookup and insert
    original_find = store.find_by_email
    calls = {"count": 0}

    async def find_by_email(email):
        calls["count"] += 1
        if calls["count"] == 1:
            return None
        return await original_find(email)

    store.find_by_email = find_by_email
    tokens = ProviderTokens(access_token="fresh", refresh_token="refresh-1", expires_in=3600)

    user = await upsert_oauth_user(store, ProviderName.GITHUB, IDENTITY, tokens, now=NOW)

    assert user.id == 1
    assert store.updates == [{"oauth_access_token": "fresh"}]


@pytest.mark.asyncio
async def test_store_failure_becomes_authentication_failed():
    store = RecordingStore([linked_user()])
    store.fail_updates = True
    tokens = ProviderTokens(access_token="access-2", expires_in=3600)

    with pytest.raises(AuthenticationFailedError):
        await upsert_oauth_user(store, ProviderName.GITHUB, IDENTITY, tokens, now=NOW)


@pytest.mark.asyncio
async def test_upsert_against_database(store):
    tokens = ProviderTokens(access_token="access-1", refresh_token="refresh-1", expires_in=3600)
    created = await upsert_oauth_user(store, ProviderName.GOOGLE, IDENTITY, tokens, now=NOW)

    relogin = ProviderTokens(access_token="access-2", expires_in=3600)
    updated = await upsert_oauth_user(store, ProviderName.GITHUB, IDENTITY, relogin, now=NOW)

    assert updated.id == created.id
    assert updated.oauth_provider == "github"
    assert updated.oauth_access_token == "access-2"
    assert updated.oauth_refresh_token == "refresh-1"
    assert updated.role == UserRole.USER
