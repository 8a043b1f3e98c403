"""
Administrative user management. Every route requires the admin role,
checked against the stored user record.
"""

import logging
from typing import List

from fastapi import APIRouter, Depends

from app.dependencies.auth import get_user_service, require_role
from app.models.user import User, UserRole
from app.schemas.user import MessageResponse, RoleUpdate, UserResponse
from app.services.user_service import UserService


logger = logging.getLogger(__name__)

admin_router = APIRouter()

require_admin = require_role(UserRole.ADMIN)


@admin_router.get("", response_model=List[UserResponse])
async def list_all_users(
    admin: User = Depends(require_admin),
    service: UserService = Depends(get_user_service),
):
    """Get all users (admin only)."""
    return await service.list_users()


@admin_router.patch("/{user_id}/role", response_model=UserResponse)
async def update_user_role(
    user_id: int,
    role_data: RoleUpdate,
    admin: User = Depends(require_admin),
    service: UserService = Depends(get_user_service),
):
    """Update a user's role (admin only)."""
    user = await service.set_role(user_id, role_data.role)
    logger.info(f"Admin {admin.id} set role of user {user_id} to {role_data.role.value}")
    return user


@admin_router.delete("/{user_id}", response_model=MessageResponse)
async def delete_user_as_admin(
    user_id: int,
    admin: User = Depends(require_admin),
    service: UserService = Depends(get_user_service),
):
    """Delete a user (admin only). Admins cannot delete themselves here."""
    await service.admin_delete_user(admin, user_id)
    logger.info(f"Admin {admin.id} deleted user {user_id}")
    return MessageResponse(message="User deleted successfully")
