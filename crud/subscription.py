from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, insert, and_, desc
from typing import Optional, List
from datetime import datetime, timedelta, timezone
import logging

from models.models import (
    Student, Subscription, SubscriptionStatus, PaymentMethod, PaymentStatus,
    provider_subscribers, meal_plan_subscribers, MEALS
)
from schemas.schemas import SubscribeRequest, SubscriptionStatusUpdate
from core.exceptions import ValidationError, NotFoundError, ForbiddenError
from crud.provider import get_provider, get_meal_plan_by_id

logger = logging.getLogger(__name__)

def to_naive_utc(value: datetime) -> datetime:
    """Stored datetimes are naive UTC"""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value

def calculate_end_date(start_date: datetime, duration_days: int) -> datetime:
    return start_date + timedelta(days=duration_days)

def _summary(subscription: Subscription) -> dict:
    """Subscription summary embedded on the student profile"""
    return {
        "subscription": subscription.id,
        "provider": subscription.provider_id,
        "plan": subscription.meal_plan_id,
        "startDate": subscription.start_date.isoformat(),
        "endDate": subscription.end_date.isoformat(),
        "isActive": subscription.status == SubscriptionStatus.ACTIVE.value,
        "mealPreferences": dict(subscription.meal_preferences or {}),
    }

async def _add_subscriber_links(db: AsyncSession, table, column: str, owner_id: int, student_id: int) -> None:
    """Insert an association row unless it already exists"""
    owner_column = table.c[column]
    existing = await db.execute(
        select(owner_column).where(and_(
            owner_column == owner_id,
            table.c.student_id == student_id
        ))
    )
    if existing.first() is None:
        await db.execute(insert(table).values({column: owner_id, "student_id": student_id}))

# ========== SUBSCRIBE ==========

async def subscribe(db: AsyncSession, student: Student, data: SubscribeRequest) -> Subscription:
    """Subscribe a student to a provider's meal plan.

    The subscription row, the provider and meal plan subscriber links and the
    student's embedded summary are committed together.
    """
    if not (data.provider_id and data.meal_plan_id and data.start_date
            and data.delivery_address and data.payment_method):
        raise ValidationError("Please provide all required fields")

    if data.payment_method not in [m.value for m in PaymentMethod]:
        raise ValidationError(
            f"Payment method must be one of: {', '.join(m.value for m in PaymentMethod)}"
        )

    provider = await get_provider(db, data.provider_id)
    if not provider:
        raise NotFoundError("Provider not found")

    meal_plan = await get_meal_plan_by_id(db, data.meal_plan_id)
    if not meal_plan or meal_plan.provider_id != provider.user_id:
        raise NotFoundError("Meal plan not found")

    start = to_naive_utc(data.start_date)
    end = calculate_end_date(start, meal_plan.duration)

    if data.meal_preferences is not None:
        meal_preferences = {meal: bool(data.meal_preferences.get(meal, False)) for meal in MEALS}
    else:
        meal_preferences = meal_plan.meal_availability()

    subscription = Subscription(
        student_id=student.user_id,
        provider_id=provider.user_id,
        meal_plan_id=meal_plan.id,
        start_date=start,
        end_date=end,
        status=SubscriptionStatus.ACTIVE.value,
        total_amount=meal_plan.price,
        payment_status=PaymentStatus.PENDING.value,
        payment_method=data.payment_method,
        payment_details={},
        delivery_address=data.delivery_address,
        delivery_instructions=data.delivery_instructions or "",
        meal_preferences=meal_preferences,
        preferred_delivery_time={},
        skipped_dates=[],
    )
    db.add(subscription)
    await db.flush()

    await _add_subscriber_links(db, provider_subscribers, "provider_id", provider.user_id, student.user_id)
    await _add_subscriber_links(db, meal_plan_subscribers, "meal_plan_id", meal_plan.id, student.user_id)

    student.subscriptions = [*(student.subscriptions or []), _summary(subscription)]

    await db.commit()
    logger.info(
        f"Student {student.user_id} subscribed to meal plan {meal_plan.id} "
        f"of provider {provider.user_id} until {end.date()}"
    )
    return await get_subscription_by_id(db, subscription.id)

# ========== RETRIEVAL ==========

async def get_subscription_by_id(db: AsyncSession, subscription_id: int) -> Optional[Subscription]:
    result = await db.execute(
        select(Subscription)
        .where(Subscription.id == subscription_id)
        .execution_options(populate_existing=True)
    )
    return result.unique().scalar_one_or_none()

async def get_subscriptions_by_student(db: AsyncSession, student_id: int) -> List[Subscription]:
    """Get all subscriptions for a student"""
    result = await db.execute(
        select(Subscription)
        .where(Subscription.student_id == student_id)
        .order_by(desc(Subscription.created_at), desc(Subscription.id))
    )
    return result.unique().scalars().all()

# ========== STATUS ==========

STUDENT_SETTABLE_STATUSES = (
    SubscriptionStatus.ACTIVE.value,
    SubscriptionStatus.PAUSED.value,
    SubscriptionStatus.CANCELLED.value,
)

async def update_subscription_status(
    db: AsyncSession,
    student: Student,
    subscription_id: int,
    data: SubscriptionStatusUpdate
) -> Subscription:
    """Pause, resume or cancel a subscription owned by the student"""
    if data.status not in STUDENT_SETTABLE_STATUSES:
        raise ValidationError("Invalid status")

    subscription = await get_subscription_by_id(db, subscription_id)
    if not subscription:
        raise NotFoundError("Subscription not found")
    if subscription.student_id != student.user_id:
        raise ForbiddenError("Not authorized to update this subscription")
    if subscription.status in (SubscriptionStatus.CANCELLED.value, SubscriptionStatus.EXPIRED.value):
        raise ValidationError(f"Subscription is already {subscription.status}")

    subscription.status = data.status

    # Keep the student's embedded summary in step
    summaries = []
    for summary in student.subscriptions or []:
        if summary.get("subscription") == subscription.id:
            summary = {**summary, "isActive": data.status == SubscriptionStatus.ACTIVE.value}
        summaries.append(summary)
    student.subscriptions = summaries

    await db.commit()
    logger.info(f"Subscription {subscription.id} set to {data.status}")
    return await get_subscription_by_id(db, subscription.id)
