import pytest

from app.core.exceptions import ForbiddenError
from app.models.user import User, UserRole
from app.services.user_service import ensure_self_or_admin, resolve_new_user_role


@pytest.mark.parametrize(
    "requested,requester_role,expected",
    [
        (None, UserRole.USER, UserRole.USER),
        (UserRole.USER, UserRole.ADMIN, UserRole.USER),
        (UserRole.ADMIN, UserRole.USER, UserRole.USER),
        (UserRole.ADMIN, UserRole.ADMIN, UserRole.ADMIN),
    ],
)
def test_resolve_new_user_role(requested, requester_role, expected):
    assert resolve_new_user_role(requested, requester_role) == expected


def test_self_or_admin_allows_self_and_admin():
    ensure_self_or_admin(User(id=1, role=UserRole.USER), 1, "update")
    ensure_self_or_admin(User(id=2, role=UserRole.ADMIN), 1, "update")


def test_self_or_admin_rejects_other_user():
    with pytest.raises(ForbiddenError) as exc_info:
        ensure_self_or_admin(User(id=2, role=UserRole.USER), 1, "delete")

    assert exc_info.value.status_code == 403
    assert exc_info.value.detail == "Insufficient permissions to delete this user"
