from enum import Enum

from sqlalchemy import Column, DateTime, Enum as SAEnum, Integer, String, Text
from sqlalchemy.sql import func

from app.db.base import Base


class UserRole(str, Enum):
    """Single role held by a user."""

    USER = "user"
    ADMIN = "admin"


class User(Base):
    """
    User model, created locally or through an OAuth provider login.

    Email is the durable identity key: a returning OAuth user is matched by
    email regardless of which provider authenticated them. Provider tokens
    are stored verbatim and never serialized to clients.
    """

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    role = Column(
        SAEnum(
            UserRole,
            name="user_role",
            native_enum=False,
            values_callable=lambda roles: [role.value for role in roles],
        ),
        default=UserRole.USER,
        server_default=UserRole.USER.value,
        nullable=False,
    )

    # OAuth linkage, all null for local-only accounts
    oauth_provider = Column(String(50), nullable=True)
    oauth_id = Column(String(255), nullable=True)
    oauth_access_token = Column(Text, nullable=True)
    oauth_refresh_token = Column(Text, nullable=True)
    oauth_token_expires_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    def is_admin(self) -> bool:
        """Check if the user currently holds the admin role."""
        return self.role == UserRole.ADMIN
