from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from schemas.schemas import ProfileUpdate, PasswordChange, account_view, dump
from crud.user import update_user_profile, change_user_password
from core.security import get_current_user
from models.models import User

router = APIRouter(tags=["users"])


@router.get("/profile")
async def get_profile(current_user: User = Depends(get_current_user)):
    """Role-specific profile of the caller"""
    return {"success": True, "data": dump(account_view(current_user))}


@router.put("/profile")
async def update_profile(
    data: ProfileUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    user = await update_user_profile(db, current_user, data)
    return {"success": True, "data": dump(account_view(user))}


@router.put("/password")
async def update_password(
    data: PasswordChange,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    await change_user_password(db, current_user, data)
    return {"success": True, "data": {}, "message": "Password updated successfully"}
