from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from typing import Optional, List, Dict, Any, Union
from datetime import datetime
import json
import logging

from models.models import User, Student, Provider, UserRole, ProviderType
from schemas.schemas import RegisterRequest, LoginRequest, PasswordChange, ProfileUpdate
from core.config import settings
from core.exceptions import ValidationError, ConflictError, AuthError
from core.security import get_password_hash, verify_password, create_access_token

logger = logging.getLogger(__name__)

# ========== FIELD NORMALIZATION ==========

def normalize_list_field(value: Union[List[Any], str, None], field: str) -> List[str]:
    """Accept a list, a JSON array string or a comma-separated string"""
    if value is None:
        return []
    if isinstance(value, str):
        text = value.strip()
        if text.startswith("["):
            try:
                value = json.loads(text)
            except json.JSONDecodeError:
                raise ValidationError(f"Invalid list for {field}")
            if not isinstance(value, list):
                raise ValidationError(f"Invalid list for {field}")
        else:
            value = text.split(",")
    return [str(item).strip() for item in value if str(item).strip()]

def normalize_object_field(value: Union[Dict[str, Any], str, None], field: str) -> Dict[str, Any]:
    """Accept a dict or a JSON object string"""
    if value is None:
        return {}
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError:
            raise ValidationError(f"Invalid object for {field}")
    if not isinstance(value, dict):
        raise ValidationError(f"Invalid object for {field}")
    return value

# ========== LOOKUPS ==========

async def get_user_by_id(db: AsyncSession, user_id: int) -> Optional[User]:
    """Get user by ID with role profile"""
    result = await db.execute(
        select(User).where(User.id == user_id).execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()

async def get_user_by_email(db: AsyncSession, email: str) -> Optional[User]:
    """Get user by email"""
    result = await db.execute(
        select(User).where(User.email == email.strip().lower())
    )
    return result.scalar_one_or_none()

async def get_provider_by_business_name(db: AsyncSession, business_name: str) -> Optional[Provider]:
    result = await db.execute(
        select(Provider).where(Provider.business_name == business_name)
    )
    return result.scalar_one_or_none()

# ========== REGISTRATION / LOGIN ==========

def _issue_token(user: User) -> str:
    return create_access_token(user.id, user.role)

async def register_account(db: AsyncSession, data: RegisterRequest) -> tuple:
    """Create a student or provider account; returns (user, token)"""
    email = data.email.strip().lower()

    if len(data.password or "") < settings.PASSWORD_MIN_LENGTH:
        raise ValidationError(
            f"Password must be at least {settings.PASSWORD_MIN_LENGTH} characters long"
        )

    if data.role not in (UserRole.STUDENT.value, UserRole.PROVIDER.value):
        raise ValidationError("Invalid role specified")

    # Check if user already exists
    if await get_user_by_email(db, email):
        raise ConflictError("Email already registered")

    user = User(
        name=data.name.strip(),
        email=email,
        password_hash=get_password_hash(data.password),
        phone=data.phone,
        address=data.address,
        role=data.role,
    )

    if data.role == UserRole.STUDENT.value:
        if not (data.university and data.department and data.roll_number):
            raise ValidationError("Please provide all required student information")
        user.student = Student(
            university=data.university,
            department=data.department,
            roll_number=data.roll_number,
            subscriptions=[],
        )
    else:
        if not (data.business_name and data.description):
            raise ValidationError("Please provide all required provider information")
        provider_type = data.type or ProviderType.INDIVIDUAL.value
        if provider_type not in [t.value for t in ProviderType]:
            raise ValidationError("Provider type must be individual or company")
        if await get_provider_by_business_name(db, data.business_name):
            raise ConflictError("Business name already registered")
        user.provider = Provider(
            business_name=data.business_name,
            description=data.description,
            type=provider_type,
            cuisine=normalize_list_field(data.cuisine, "cuisine"),
            delivery_areas=[],
            business_hours={},
            bank_details={},
        )

    db.add(user)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError("Email or business name already registered")

    user = await get_user_by_id(db, user.id)
    logger.info(f"Registered {user.role} account {user.id}")
    return user, _issue_token(user)

async def login(db: AsyncSession, data: LoginRequest) -> tuple:
    """Authenticate by email and password; returns (user, token)"""
    if not data.email or not data.password:
        raise ValidationError("Please provide email and password")

    user = await get_user_by_email(db, data.email)
    if not user or not user.is_active or not verify_password(data.password, user.password_hash):
        logger.warning("Failed login attempt")
        raise AuthError("Invalid credentials")

    return user, _issue_token(user)

# ========== PROFILE ==========

async def update_user_profile(db: AsyncSession, user: User, data: ProfileUpdate) -> User:
    """Update base profile fields; providers go through the verification-aware path"""
    if user.role == UserRole.PROVIDER.value:
        from crud.provider import update_provider_profile
        return await update_provider_profile(db, user, data)

    for field in ("name", "phone", "address", "bio"):
        value = getattr(data, field)
        if value:
            setattr(user, field, value)
    user.updated_at = datetime.utcnow()

    await db.commit()
    return await get_user_by_id(db, user.id)

async def change_user_password(db: AsyncSession, user: User, data: PasswordChange) -> None:
    """Change user password"""
    if not data.current_password or not data.new_password:
        raise ValidationError("Please provide current and new password")

    # Verify current password
    if not verify_password(data.current_password, user.password_hash):
        raise AuthError("Current password is incorrect")

    if len(data.new_password) < settings.PASSWORD_MIN_LENGTH:
        raise ValidationError(
            f"Password must be at least {settings.PASSWORD_MIN_LENGTH} characters long"
        )

    user.password_hash = get_password_hash(data.new_password)
    user.updated_at = datetime.utcnow()
    await db.commit()
    logger.info(f"Password changed for user {user.id}")
