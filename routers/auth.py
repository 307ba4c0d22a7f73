"""
Authentication Router for Mess Buddy
Handles registration, login, the current session and logout
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from database import get_db
from schemas.schemas import RegisterRequest, LoginRequest, account_view, dump
from crud.user import register_account, login as login_account
from core.security import get_current_user
from models.models import User

router = APIRouter(tags=["authentication"])
logger = logging.getLogger(__name__)


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(data: RegisterRequest, db: AsyncSession = Depends(get_db)):
    """
    Register a student or provider account

    Returns a session token and the role-specific account view
    """
    user, token = await register_account(db, data)
    return {"success": True, "token": token, "data": dump(account_view(user))}


@router.post("/login")
async def login(data: LoginRequest, db: AsyncSession = Depends(get_db)):
    """Exchange email and password for a session token"""
    user, token = await login_account(db, data)
    logger.info(f"User {user.id} logged in")
    return {"success": True, "token": token, "data": dump(account_view(user))}


@router.get("/me")
async def get_me(current_user: User = Depends(get_current_user)):
    return {"success": True, "data": dump(account_view(current_user))}


@router.get("/logout")
async def logout(current_user: User = Depends(get_current_user)):
    """Sessions are stateless tokens; the client discards its copy"""
    logger.info(f"User {current_user.id} logged out")
    return {"success": True, "data": {}, "message": "Logged out successfully"}
