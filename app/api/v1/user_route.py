"""
User CRUD endpoints.

All routes require a bearer token. Updates and deletes are limited to the
user themself or an admin.
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, Response, status

from app.dependencies.auth import get_current_user, get_user_service
from app.models.user import User
from app.schemas.user import UserCreate, UserResponse, UserUpdate
from app.services.user_service import UserService


logger = logging.getLogger(__name__)

users_router = APIRouter()


@users_router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(
    user_data: UserCreate,
    current_user: User = Depends(get_current_user),
    service: UserService = Depends(get_user_service),
):
    """
    Create a new user.

    Only admins can create admin users; a non-admin asking for the admin
    role gets a regular user.
    """
    return await service.create_user(current_user, user_data)


@users_router.get("", response_model=List[UserResponse])
async def list_users(
    current_user: User = Depends(get_current_user),
    service: UserService = Depends(get_user_service),
):
    """Get all users, newest first."""
    return await service.list_users()


@users_router.get("/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: int,
    current_user: User = Depends(get_current_user),
    service: UserService = Depends(get_user_service),
):
    """Get a user by ID."""
    return await service.get_user(user_id)


@users_router.put("/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: int,
    user_data: UserUpdate,
    current_user: User = Depends(get_current_user),
    service: UserService = Depends(get_user_service),
):
    """Update a user (self or admin only)."""
    return await service.update_user(current_user, user_id, user_data)


@users_router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(
    user_id: int,
    current_user: User = Depends(get_current_user),
    service: UserService = Depends(get_user_service),
):
    """Delete a user (self or admin only)."""
    await service.delete_user(current_user, user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
