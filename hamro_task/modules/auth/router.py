"""
Profile router: the caller's own profile and avatar.
"""
from typing import Any

from fastapi import APIRouter, Depends, File, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from hamro_task.core.database import get_db_session
from hamro_task.modules.auth import schemas
from hamro_task.modules.auth.dependencies import get_current_user
from hamro_task.modules.auth.models import User
from hamro_task.modules.auth.service import AuthService
from hamro_task.modules.storage.service import StorageService, get_storage_service

router = APIRouter()


@router.get("/users/me", response_model=schemas.UserResponse)
async def get_me(current_user: User = Depends(get_current_user)) -> Any:
    """
    Get current user information.
    """
    return current_user


@router.patch("/users/me", response_model=schemas.UserResponse)
async def update_me(
    data: schemas.ProfileUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> Any:
    return await AuthService(db).update_profile(current_user, data)


@router.post("/users/me/avatar", response_model=schemas.UserResponse)
async def upload_avatar(
    file: UploadFile = File(...),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    storage: StorageService = Depends(get_storage_service),
) -> Any:
    """
    Replace the avatar. JPEG, PNG, WebP or GIF up to 2MB.
    """
    data = await file.read()
    upload = await storage.upload_avatar(current_user.id, data, file.content_type)
    return await AuthService(db).set_avatar(current_user, upload.url)
