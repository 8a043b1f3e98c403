import logging
from typing import List, Optional

from app.core.exceptions import (
    BadRequestError,
    ForbiddenError,
    NotFoundError,
    PersistenceError,
    UserStoreError,
)
from app.models.user import User, UserRole
from app.schemas.user import UserCreate, UserUpdate
from app.services.user_store import UserStore


logger = logging.getLogger(__name__)


def ensure_self_or_admin(requester: User, target_id: int, action: str) -> None:
    """
    Allow an action on user ``target_id`` only to that user or an admin.

    Runs before any existence check, so a non-admin probing a missing id
    gets 403, not 404.

    Raises:
        ForbiddenError: If the requester is neither the target nor an admin.
    """
    if requester.id != target_id and not requester.is_admin():
        raise ForbiddenError(f"Insufficient permissions to {action} this user")


def resolve_new_user_role(requested: Optional[UserRole], requester_role: UserRole) -> UserRole:
    """Only admins may create admins; anything else silently becomes ``user``."""
    if requested == UserRole.ADMIN and requester_role == UserRole.ADMIN:
        return UserRole.ADMIN
    return UserRole.USER


class UserService:
    """
    User CRUD with ownership and role rules applied.

    The requester passed in is always the freshly loaded user record, never
    the token claims.
    """

    def __init__(self, store: UserStore):
        self.store = store

    async def create_user(self, requester: User, data: UserCreate) -> User:
        role = resolve_new_user_role(data.role, requester.role)
        if data.role == UserRole.ADMIN and role != UserRole.ADMIN:
            logger.warning(f"User {requester.id} requested admin role on create; downgraded to user")

        try:
            return await self.store.create(name=data.name, email=data.email, role=role)
        except UserStoreError as e:
            logger.error(f"Failed to create user: {e}")
            raise PersistenceError("Failed to create user") from e

    async def list_users(self) -> List[User]:
        try:
            return await self.store.list_users()
        except UserStoreError as e:
            logger.error(f"Failed to fetch users: {e}")
            raise PersistenceError("Failed to fetch users") from e

    async def get_user(self, user_id: int) -> User:
        user = await self.store.find_by_id(user_id)
        if user is None:
            raise NotFoundError()
        return user

    async def update_user(self, requester: User, user_id: int, data: UserUpdate) -> User:
        """
        Apply a partial profile update.

        Raises:
            ForbiddenError: Requester is neither the target nor an admin.
            NotFoundError: Target does not exist.
            PersistenceError: Write failed, e.g. email already taken.
        """
        ensure_self_or_admin(requester, user_id, "update")

        fields = data.model_dump(exclude_unset=True, exclude_none=True)
        try:
            if fields:
                affected = await self.store.update_fields(user_id, fields)
            else:
                affected = 1 if await self.store.find_by_id(user_id) else 0
        except UserStoreError as e:
            logger.error(f"Failed to update user {user_id}: {e}")
            raise PersistenceError("Failed to update user") from e

        if affected == 0:
            raise NotFoundError()
        return await self.get_user(user_id)

    async def delete_user(self, requester: User, user_id: int) -> None:
        ensure_self_or_admin(requester, user_id, "delete")

        try:
            deleted = await self.store.delete(user_id)
        except UserStoreError as e:
            logger.error(f"Failed to delete user {user_id}: {e}")
            raise PersistenceError("Failed to delete user") from e

        if deleted == 0:
            raise NotFoundError()

    async def set_role(self, user_id: int, role: UserRole) -> User:
        """Admin-only role change."""
        user = await self.get_user(user_id)
        if user.role != role:
            try:
                await self.store.update_fields(user_id, {"role": role})
            except UserStoreError as e:
                logger.error(f"Failed to change role of user {user_id}: {e}")
                raise PersistenceError("Failed to update user") from e
            logger.info(f"User {user_id} role changed to {role.value}")
        return await self.get_user(user_id)

    async def admin_delete_user(self, requester: User, user_id: int) -> None:
        """
        Delete a user through the admin surface.

        Raises:
            BadRequestError: Admin tried to delete their own account.
            NotFoundError: Target does not exist.
        """
        if requester.id == user_id:
            raise BadRequestError("Cannot delete your own account")

        await self.get_user(user_id)
        try:
            await self.store.delete(user_id)
        except UserStoreError as e:
            logger.error(f"Failed to delete user {user_id}: {e}")
            raise PersistenceError("Failed to delete user") from e
