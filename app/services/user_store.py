import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from app.core.exceptions import DuplicateUserError, UserStoreError
from app.models.user import User


logger = logging.getLogger(__name__)


class UserStore:
    """
    Persistence operations on the users table.

    Every write commits on success and rolls back on failure. Unique email
    violations surface as ``DuplicateUserError``, any other database error
    as ``UserStoreError``.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def find_by_email(self, email: str) -> Optional[User]:
        result = await self.db.execute(
            select(User).where(User.email == email).execution_options(populate_existing=True)
        )
        return result.scalars().first()

    async def find_by_id(self, user_id: int) -> Optional[User]:
        """
        Load a user by primary key, always reading the current row.

        Args:
            user_id: User ID.

        Returns:
            Optional[User]: The user, or None if the row no longer exists.
        """
        result = await self.db.execute(
            select(User).where(User.id == user_id).execution_options(populate_existing=True)
        )
        return result.scalars().first()

    async def list_users(self) -> List[User]:
        """Return all users, newest first."""
        result = await self.db.execute(
            select(User).order_by(User.created_at.desc(), User.id.desc())
        )
        return list(result.scalars().all())

    async def create(self, **attrs: Any) -> User:
        """
        Insert a new user.

        Args:
            **attrs: Column values for the new row.

        Returns:
            User: The persisted user with server-generated fields loaded.

        Raises:
            DuplicateUserError: If the email is already taken.
            UserStoreError: For any other database failure.
        """
        user = User(**attrs)
        self.db.add(user)
        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            raise DuplicateUserError(f"User with email {attrs.get('email')} already exists") from e
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise UserStoreError("Failed to create user") from e

        await self.db.refresh(user)
        logger.info(f"Created user: {user.id}")
        return user

    async def update_fields(self, user_id: int, fields: Dict[str, Any]) -> int:
        """
        Update only the given columns of one user in a single statement.

        Args:
            user_id: User ID.
            fields: Column name to new value.

        Returns:
            int: Number of affected rows (0 if the user does not exist).
        """
        if not fields:
            return 0

        try:
            result = await self.db.execute(
                update(User).where(User.id == user_id).values(**fields)
            )
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            raise DuplicateUserError("Update violates a unique constraint") from e
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise UserStoreError(f"Failed to update user {user_id}") from e

        logger.info(f"Updated user {user_id}: {sorted(fields)}")
        return result.rowcount

    async def delete(self, user_id: int) -> int:
        """
        Delete one user.

        Returns:
            int: Number of deleted rows (0 if the user does not exist).
        """
        try:
            result = await self.db.execute(delete(User).where(User.id == user_id))
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise UserStoreError(f"Failed to delete user {user_id}") from e

        if result.rowcount:
            logger.info(f"Deleted user {user_id}")
        return result.rowcount
