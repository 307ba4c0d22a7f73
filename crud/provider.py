from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, and_, func, desc
from sqlalchemy.exc import IntegrityError
from typing import Optional, List, Dict, Any
from datetime import datetime
import logging

from models.models import (
    User, Provider, ProviderReview, MenuItem, MealPlan, Subscription, Order, OrderItem,
    MenuCategory, ProviderType, SubscriptionStatus, OrderStatus
)
from schemas.schemas import (
    ProfileUpdate, MealPlanCreate, MenuItemCreate, ReviewCreate, ProviderStats,
    ProviderSummary, ProviderDetails, ReviewResponse, MenuItemResponse, MealPlanResponse,
    SubscriberResponse, SubscriptionResponse
)
from core.config import settings
from core.exceptions import ValidationError, ConflictError, ForbiddenError, NotFoundError
from crud.user import normalize_list_field, normalize_object_field, get_user_by_id

logger = logging.getLogger(__name__)

# Statuses counted as "pending" on the provider dashboard
PENDING_ORDER_STATUSES = (
    OrderStatus.PENDING.value,
    OrderStatus.PREPARING.value,
    OrderStatus.READY.value,
)

DEFAULT_MEAL_OPTIONS = {
    "breakfast": {"available": False, "items": []},
    "lunch": {"available": True, "items": []},
    "dinner": {"available": True, "items": []},
}

DEFAULT_DIETARY_FLAGS = {
    "vegetarian": False,
    "vegan": False,
    "nonVegetarian": True,
}

DEFAULT_DELIVERY_SCHEDULE = {
    "breakfast": {"time": "08:00 AM"},
    "lunch": {"time": "12:30 PM"},
    "dinner": {"time": "07:30 PM"},
}

# ========== LOOKUPS ==========

async def get_provider(db: AsyncSession, provider_id: int) -> Optional[Provider]:
    """Get provider profile by user ID"""
    result = await db.execute(
        select(Provider)
        .where(Provider.user_id == provider_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()

async def count_menu_items(db: AsyncSession, provider_id: int) -> int:
    result = await db.execute(
        select(func.count(MenuItem.id)).where(MenuItem.provider_id == provider_id)
    )
    return result.scalar() or 0

async def count_meal_plans(db: AsyncSession, provider_id: int) -> int:
    result = await db.execute(
        select(func.count(MealPlan.id)).where(MealPlan.provider_id == provider_id)
    )
    return result.scalar() or 0

# ========== PROFILE & VERIFICATION ==========

def is_profile_complete(provider: Provider) -> bool:
    """Contact, business and payout details are all filled in"""
    user = provider.user
    bank_details = provider.bank_details or {}
    return all([
        user.name,
        user.phone,
        user.address,
        provider.business_name,
        provider.description,
        bank_details.get("accountNumber"),
    ])

async def is_ready_for_verification(db: AsyncSession, provider: Provider) -> bool:
    if provider.verified or not is_profile_complete(provider):
        return False
    menu_count = await count_menu_items(db, provider.user_id)
    plan_count = await count_meal_plans(db, provider.user_id)
    return (
        menu_count >= settings.VERIFICATION_MIN_MENU_ITEMS
        and plan_count >= settings.VERIFICATION_MIN_MEAL_PLANS
    )

async def update_provider_profile(db: AsyncSession, user: User, data: ProfileUpdate) -> User:
    """Apply supplied profile fields, then re-evaluate verification eligibility.

    Empty values count as omitted. ``cuisine`` and ``deliveryAreas`` accept a
    list or its serialized form; ``businessHours`` and ``bankDetails`` accept an
    object or a JSON object string. Every field is checked before any is
    applied, so a rejected update leaves the profile untouched.
    ``readyForVerification`` only ever moves from false to true here.
    """
    provider = user.provider
    if provider is None:
        raise NotFoundError("Provider not found")

    provider_changes: Dict[str, Any] = {}

    if data.business_name and data.business_name != provider.business_name:
        result = await db.execute(
            select(Provider.user_id).where(Provider.business_name == data.business_name)
        )
        if result.scalar_one_or_none() is not None:
            raise ConflictError("Business name already registered")
        provider_changes["business_name"] = data.business_name
    if data.description:
        provider_changes["description"] = data.description
    if data.type:
        if data.type not in [t.value for t in ProviderType]:
            raise ValidationError("Provider type must be individual or company")
        provider_changes["type"] = data.type

    # Array fields
    if data.cuisine:
        provider_changes["cuisine"] = normalize_list_field(data.cuisine, "cuisine")
    if data.delivery_areas:
        provider_changes["delivery_areas"] = normalize_list_field(data.delivery_areas, "deliveryAreas")

    # Object fields
    if data.business_hours:
        provider_changes["business_hours"] = normalize_object_field(data.business_hours, "businessHours")
    if data.bank_details:
        provider_changes["bank_details"] = normalize_object_field(data.bank_details, "bankDetails")

    for field in ("name", "phone", "address", "bio"):
        value = getattr(data, field)
        if value:
            setattr(user, field, value)
    for field, value in provider_changes.items():
        setattr(provider, field, value)

    user.updated_at = datetime.utcnow()
    await db.flush()

    if not provider.ready_for_verification and await is_ready_for_verification(db, provider):
        provider.ready_for_verification = True
        logger.info(f"Provider {provider.user_id} is ready for verification")

    await db.commit()
    return await get_user_by_id(db, user.id)

# ========== MEAL PLANS ==========

async def create_meal_plan(db: AsyncSession, provider_id: int, data: MealPlanCreate) -> MealPlan:
    """Create a meal plan, filling documented defaults for omitted structures"""
    if not data.name or not data.description:
        raise ValidationError("Please provide a plan name and description")
    if data.price is None or data.price < 0:
        raise ValidationError("Price must be a non-negative number")
    if data.duration is None or data.duration < 1:
        raise ValidationError("Duration must be at least 1 day")

    meal_plan = MealPlan(
        provider_id=provider_id,
        name=data.name.strip(),
        description=data.description,
        price=data.price,
        duration=data.duration,
        meal_options=data.meal_options or {k: dict(v) for k, v in DEFAULT_MEAL_OPTIONS.items()},
        dietary_options=data.dietary_options or dict(DEFAULT_DIETARY_FLAGS),
        delivery_schedule=data.delivery_schedule or {k: dict(v) for k, v in DEFAULT_DELIVERY_SCHEDULE.items()},
        weekly_menu=data.weekly_menu or {},
        is_active=True,
    )
    db.add(meal_plan)
    await db.commit()
    await db.refresh(meal_plan)
    logger.info(f"Provider {provider_id} created meal plan {meal_plan.id}")
    return meal_plan

async def get_meal_plans(db: AsyncSession, provider_id: int) -> List[MealPlan]:
    result = await db.execute(
        select(MealPlan).where(MealPlan.provider_id == provider_id).order_by(MealPlan.id)
    )
    return result.scalars().all()

async def get_meal_plan_by_id(db: AsyncSession, meal_plan_id: int) -> Optional[MealPlan]:
    result = await db.execute(select(MealPlan).where(MealPlan.id == meal_plan_id))
    return result.scalar_one_or_none()

# ========== MENU ITEMS ==========

async def create_menu_item(db: AsyncSession, provider_id: int, data: MenuItemCreate) -> MenuItem:
    """Create a menu item"""
    if not data.name or not data.description:
        raise ValidationError("Please provide an item name and description")
    if data.price is None or data.price < 0:
        raise ValidationError("Price must be a non-negative number")
    if data.category not in [c.value for c in MenuCategory]:
        raise ValidationError(
            f"Category must be one of: {', '.join(c.value for c in MenuCategory)}"
        )

    menu_item = MenuItem(
        provider_id=provider_id,
        name=data.name.strip(),
        description=data.description,
        category=data.category,
        price=data.price,
        image=data.image or settings.DEFAULT_MENU_ITEM_IMAGE,
        is_available=True if data.is_available is None else data.is_available,
        ingredients=data.ingredients or [],
        nutritional_info=data.nutritional_info or {},
        dietary_type=data.dietary_type or dict(DEFAULT_DIETARY_FLAGS),
        allergens=data.allergens or [],
        preparation_time=data.preparation_time or settings.DEFAULT_PREPARATION_TIME,
    )
    db.add(menu_item)
    await db.commit()
    await db.refresh(menu_item)
    logger.info(f"Provider {provider_id} created menu item {menu_item.id}")
    return menu_item

async def get_menu_items(db: AsyncSession, provider_id: int, available_only: bool = False) -> List[MenuItem]:
    query = select(MenuItem).where(MenuItem.provider_id == provider_id)
    if available_only:
        query = query.where(MenuItem.is_available == True)
    result = await db.execute(query.order_by(MenuItem.id))
    return result.scalars().all()

async def delete_menu_item(db: AsyncSession, provider_id: int, item_id: int) -> None:
    """Delete a menu item owned by the provider.

    Items already referenced by orders are marked unavailable instead, so order
    lines keep their menu item.
    """
    result = await db.execute(select(MenuItem).where(MenuItem.id == item_id))
    menu_item = result.scalar_one_or_none()
    if not menu_item:
        raise NotFoundError("Menu item not found")
    if menu_item.provider_id != provider_id:
        raise ForbiddenError("Not authorized to delete this menu item")

    referenced = await db.execute(
        select(func.count(OrderItem.id)).where(OrderItem.menu_item_id == item_id)
    )
    if referenced.scalar():
        menu_item.is_available = False
    else:
        await db.delete(menu_item)
    await db.commit()
    logger.info(f"Provider {provider_id} removed menu item {item_id}")

# ========== SUBSCRIBERS ==========

async def get_subscribers(db: AsyncSession, provider_id: int) -> List[SubscriberResponse]:
    """Active subscriptions with the subscribing student's contact details"""
    result = await db.execute(
        select(Subscription)
        .where(and_(
            Subscription.provider_id == provider_id,
            Subscription.status == SubscriptionStatus.ACTIVE.value
        ))
        .order_by(desc(Subscription.created_at))
    )
    subscribers = []
    for subscription in result.scalars().all():
        student_user = subscription.student.user
        subscribers.append(SubscriberResponse.model_validate({
            **SubscriptionResponse.model_validate(subscription).model_dump(),
            "student": {
                "id": student_user.id,
                "name": student_user.name,
                "email": student_user.email,
                "phone": student_user.phone,
                "address": student_user.address,
            },
        }))
    return subscribers

# ========== REVIEWS ==========

async def add_review(db: AsyncSession, provider_id: int, student_id: int, data: ReviewCreate) -> ProviderReview:
    """Add a student's review and recompute the provider's rating.

    The provider row is locked for the duration of the transaction and the
    aggregate is recomputed from the stored reviews, so concurrent reviewers
    are all counted. One review per student per provider.
    """
    if data.rating is None or data.rating < 1 or data.rating > 5 or data.rating != int(data.rating):
        raise ValidationError("Please provide a valid rating between 1 and 5")

    result = await db.execute(
        select(Provider).where(Provider.user_id == provider_id).with_for_update()
    )
    provider = result.scalar_one_or_none()
    if not provider:
        raise NotFoundError("Provider not found")

    # Check if student has an active subscription with this provider
    subscription = await db.execute(
        select(Subscription.id).where(and_(
            Subscription.student_id == student_id,
            Subscription.provider_id == provider_id,
            Subscription.status == SubscriptionStatus.ACTIVE.value
        )).limit(1)
    )
    if subscription.scalar_one_or_none() is None:
        await db.rollback()
        raise ForbiddenError("You need an active subscription to review this provider")

    existing = await db.execute(
        select(ProviderReview.id).where(and_(
            ProviderReview.provider_id == provider_id,
            ProviderReview.student_id == student_id
        ))
    )
    if existing.scalar_one_or_none() is not None:
        await db.rollback()
        raise ConflictError("You have already reviewed this provider")

    review = ProviderReview(
        provider_id=provider_id,
        student_id=student_id,
        rating=int(data.rating),
        comment=data.comment or "",
        date=datetime.utcnow(),
    )
    db.add(review)
    try:
        await db.flush()
    except IntegrityError:
        await db.rollback()
        raise ConflictError("You have already reviewed this provider")

    aggregate = await db.execute(
        select(func.count(ProviderReview.id), func.coalesce(func.sum(ProviderReview.rating), 0))
        .where(ProviderReview.provider_id == provider_id)
    )
    total_reviews, rating_sum = aggregate.one()
    provider.total_reviews = total_reviews
    provider.rating = rating_sum / total_reviews if total_reviews else 0.0

    await db.commit()
    logger.info(f"Student {student_id} reviewed provider {provider_id} ({review.rating}/5)")

    result = await db.execute(
        select(ProviderReview)
        .where(ProviderReview.id == review.id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()

async def get_reviews(db: AsyncSession, provider_id: int, limit: Optional[int] = None) -> List[ProviderReview]:
    query = (
        select(ProviderReview)
        .where(ProviderReview.provider_id == provider_id)
        .order_by(desc(ProviderReview.date), desc(ProviderReview.id))
    )
    if limit:
        query = query.limit(limit)
    result = await db.execute(query)
    return result.scalars().all()

# ========== STATS ==========

async def _subscription_aggregates(db: AsyncSession, provider_id: int) -> Dict[str, Any]:
    total = await db.execute(
        select(func.count(Subscription.id)).where(Subscription.provider_id == provider_id)
    )
    active = await db.execute(
        select(func.count(Subscription.id)).where(and_(
            Subscription.provider_id == provider_id,
            Subscription.status == SubscriptionStatus.ACTIVE.value
        ))
    )
    revenue = await db.execute(
        select(func.coalesce(func.sum(Subscription.total_amount), 0))
        .where(Subscription.provider_id == provider_id)
    )
    return {
        "total_subscribers": total.scalar() or 0,
        "active_subscribers": active.scalar() or 0,
        "subscription_revenue": float(revenue.scalar() or 0),
    }

async def _order_aggregates(db: AsyncSession, provider_id: int) -> Dict[str, Any]:
    total = await db.execute(
        select(func.count(Order.id)).where(Order.provider_id == provider_id)
    )
    pending = await db.execute(
        select(func.count(Order.id)).where(and_(
            Order.provider_id == provider_id,
            Order.status.in_(PENDING_ORDER_STATUSES)
        ))
    )
    revenue = await db.execute(
        select(func.coalesce(func.sum(Order.total_amount), 0))
        .where(Order.provider_id == provider_id)
    )
    return {
        "total_orders": total.scalar() or 0,
        "pending_orders": pending.scalar() or 0,
        "order_revenue": float(revenue.scalar() or 0),
    }

async def _menu_aggregates(db: AsyncSession, provider_id: int) -> Dict[str, Any]:
    return {"total_menu_items": await count_menu_items(db, provider_id)}

async def _meal_plan_aggregates(db: AsyncSession, provider_id: int) -> Dict[str, Any]:
    return {"total_meal_plans": await count_meal_plans(db, provider_id)}

STAT_AGGREGATES = (
    ("subscription", _subscription_aggregates),
    ("order", _order_aggregates),
    ("menu item", _menu_aggregates),
    ("meal plan", _meal_plan_aggregates),
)

async def compute_provider_stats(db: AsyncSession, provider_id: int) -> ProviderStats:
    """Dashboard aggregates; each group fails independently and keeps its zero values"""
    provider = await get_provider(db, provider_id)
    if not provider:
        raise NotFoundError("Provider not found")

    values: Dict[str, Any] = {
        "rating": provider.rating or 0.0,
        "total_reviews": provider.total_reviews or 0,
    }
    revenue = 0.0

    for label, aggregate in STAT_AGGREGATES:
        try:
            result = await aggregate(db, provider_id)
        except Exception as e:
            logger.error(f"Error fetching {label} stats for provider {provider_id}: {e}")
            await db.rollback()
            continue
        revenue += result.pop("subscription_revenue", 0.0) + result.pop("order_revenue", 0.0)
        values.update(result)

    values["revenue"] = revenue
    return ProviderStats(**values)

# ========== BROWSING (STUDENTS) ==========

def _review_responses(reviews: List[ProviderReview]) -> List[ReviewResponse]:
    return [ReviewResponse.model_validate(review) for review in reviews]

async def list_providers(db: AsyncSession) -> List[ProviderSummary]:
    """Active providers with their three most recent reviews"""
    result = await db.execute(
        select(Provider)
        .join(User, User.id == Provider.user_id)
        .where(and_(Provider.is_active == True, User.is_active == True))
        .order_by(desc(Provider.rating), Provider.business_name)
    )
    summaries = []
    for provider in result.scalars().unique().all():
        reviews = await get_reviews(db, provider.user_id, limit=3)
        summaries.append(ProviderSummary(
            id=provider.user_id,
            name=provider.user.name,
            business_name=provider.business_name,
            description=provider.description,
            cuisine=provider.cuisine or [],
            rating=provider.rating or 0.0,
            total_reviews=provider.total_reviews or 0,
            delivery_areas=provider.delivery_areas or [],
            reviews=_review_responses(reviews),
        ))
    return summaries

async def get_provider_details(db: AsyncSession, provider_id: int) -> ProviderDetails:
    """Public provider page; bank details are never included"""
    provider = await get_provider(db, provider_id)
    if not provider:
        raise NotFoundError("Provider not found")

    menu = await get_menu_items(db, provider_id)
    meal_plans = await get_meal_plans(db, provider_id)
    reviews = await get_reviews(db, provider_id)
    user = provider.user

    return ProviderDetails(
        id=provider.user_id,
        name=user.name,
        phone=user.phone,
        address=user.address,
        bio=user.bio,
        business_name=provider.business_name,
        description=provider.description,
        type=provider.type,
        cuisine=provider.cuisine or [],
        rating=provider.rating or 0.0,
        total_reviews=provider.total_reviews or 0,
        delivery_areas=provider.delivery_areas or [],
        business_hours=provider.business_hours or {},
        verified=bool(provider.verified),
        reviews=_review_responses(reviews),
        menu=[MenuItemResponse.model_validate(item) for item in menu],
        meal_plans=[MealPlanResponse.model_validate(plan) for plan in meal_plans],
    )
