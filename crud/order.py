from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, and_, desc
from typing import Optional, List
from datetime import datetime
import logging

from models.models import (
    Student, Order, OrderItem, MenuItem, OrderType, OrderStatus, PaymentMethod,
    PaymentStatus, SubscriptionStatus
)
from schemas.schemas import OrderCreate, OrderRating
from core.exceptions import ValidationError, NotFoundError, ForbiddenError
from crud.provider import get_provider
from crud.subscription import get_subscription_by_id, to_naive_utc

logger = logging.getLogger(__name__)

# Orders the student may still withdraw
CANCELLABLE_STATUSES = (OrderStatus.PENDING.value, OrderStatus.CONFIRMED.value)

RATING_FIELDS = ("food", "service", "packaging")

# ========== ORDER CREATION ==========

async def place_order(db: AsyncSession, student: Student, data: OrderCreate) -> Order:
    """Place an order with one provider; line prices are snapshotted"""
    if not data.provider_id or not data.items or not data.delivery_address:
        raise ValidationError("Please provide a provider, items and a delivery address")

    if data.order_type not in [t.value for t in OrderType]:
        raise ValidationError(
            f"Order type must be one of: {', '.join(t.value for t in OrderType)}"
        )

    payment_method = data.payment_method or PaymentMethod.CASH.value
    if payment_method not in [m.value for m in PaymentMethod]:
        raise ValidationError(
            f"Payment method must be one of: {', '.join(m.value for m in PaymentMethod)}"
        )

    provider = await get_provider(db, data.provider_id)
    if not provider:
        raise NotFoundError("Provider not found")

    if data.subscription_id is not None:
        subscription = await get_subscription_by_id(db, data.subscription_id)
        if (not subscription
                or subscription.student_id != student.user_id
                or subscription.provider_id != provider.user_id):
            raise NotFoundError("Subscription not found")
        if subscription.status != SubscriptionStatus.ACTIVE.value:
            raise ValidationError("Subscription is not active")

    # Calculate total amount and validate items
    total_amount = 0.0
    order_items = []
    for item_data in data.items:
        result = await db.execute(
            select(MenuItem).where(and_(
                MenuItem.id == item_data.menu_item_id,
                MenuItem.provider_id == provider.user_id,
                MenuItem.is_available == True
            ))
        )
        menu_item = result.scalar_one_or_none()
        if not menu_item:
            raise NotFoundError(f"Menu item {item_data.menu_item_id} not found or unavailable")

        total_amount += menu_item.price * item_data.quantity
        order_items.append(OrderItem(
            menu_item=menu_item,
            quantity=item_data.quantity,
            price=menu_item.price
        ))

    order = Order(
        student_id=student.user_id,
        provider_id=provider.user_id,
        subscription_order=data.subscription_id is not None,
        subscription_id=data.subscription_id,
        order_type=data.order_type,
        total_amount=round(total_amount, 2),
        payment_status=PaymentStatus.PENDING.value,
        payment_method=payment_method,
        payment_details={},
        delivery_address=data.delivery_address,
        delivery_instructions=data.delivery_instructions,
        requested_delivery_time=(
            to_naive_utc(data.requested_delivery_time) if data.requested_delivery_time else None
        ),
        ratings={},
        items=order_items,
        status_history=[],
    )
    order.set_status(OrderStatus.PENDING.value)

    db.add(order)
    await db.commit()
    logger.info(
        f"Order {order.id} placed by student {student.user_id} "
        f"with provider {provider.user_id} for {order.total_amount}"
    )
    return await get_order_by_id(db, order.id)

# ========== ORDER RETRIEVAL ==========

async def get_order_by_id(db: AsyncSession, order_id: int) -> Optional[Order]:
    """Get order by ID with lines and status history"""
    result = await db.execute(
        select(Order)
        .where(Order.id == order_id)
        .execution_options(populate_existing=True)
    )
    return result.unique().scalar_one_or_none()

async def get_orders_by_student(db: AsyncSession, student_id: int) -> List[Order]:
    result = await db.execute(
        select(Order)
        .where(Order.student_id == student_id)
        .order_by(desc(Order.created_at), desc(Order.id))
    )
    return result.unique().scalars().all()

async def get_orders_by_provider(db: AsyncSession, provider_id: int, status: Optional[str] = None) -> List[Order]:
    """Get a provider's orders, newest first, optionally filtered by status"""
    query = select(Order).where(Order.provider_id == provider_id)
    if status:
        query = query.where(Order.status == status)
    result = await db.execute(query.order_by(desc(Order.created_at), desc(Order.id)))
    return result.unique().scalars().all()

# ========== ORDER UPDATES ==========

async def update_order_status(db: AsyncSession, provider_id: int, order_id: int, status: Optional[str]) -> Order:
    """Move an order to a new status on behalf of its provider.

    Any of the known statuses may follow any other. A history event is only
    recorded when the status actually changes.
    """
    if status not in [s.value for s in OrderStatus]:
        raise ValidationError("Invalid status")

    order = await get_order_by_id(db, order_id)
    if not order:
        raise NotFoundError("Order not found")
    if order.provider_id != provider_id:
        raise ForbiddenError("Not authorized to update this order")

    now = datetime.utcnow()
    if order.set_status(status, now):
        if status == OrderStatus.DELIVERED.value:
            order.actual_delivery_time = now
        logger.info(f"Order {order.id} moved to {status}")

    await db.commit()
    return await get_order_by_id(db, order.id)

async def cancel_order(db: AsyncSession, student: Student, order_id: int) -> Order:
    """Cancel an order the student placed while it is still pending or confirmed"""
    order = await get_order_by_id(db, order_id)
    if not order:
        raise NotFoundError("Order not found")
    if order.student_id != student.user_id:
        raise ForbiddenError("Not authorized to cancel this order")
    if order.status not in CANCELLABLE_STATUSES:
        raise ValidationError(f"Order cannot be cancelled once {order.status}")

    order.set_status(OrderStatus.CANCELLED.value)
    await db.commit()
    logger.info(f"Order {order.id} cancelled by student {student.user_id}")
    return await get_order_by_id(db, order.id)

async def rate_order(db: AsyncSession, student: Student, order_id: int, data: OrderRating) -> Order:
    """Record food, service and packaging ratings on a delivered order"""
    ratings = {}
    for field in RATING_FIELDS:
        value = getattr(data, field)
        if value is None:
            continue
        if value < 1 or value > 5:
            raise ValidationError(f"{field.capitalize()} rating must be between 1 and 5")
        ratings[field] = value
    if not ratings:
        raise ValidationError("Please provide at least one rating")

    order = await get_order_by_id(db, order_id)
    if not order:
        raise NotFoundError("Order not found")
    if order.student_id != student.user_id:
        raise ForbiddenError("Not authorized to rate this order")
    if order.status != OrderStatus.DELIVERED.value:
        raise ValidationError("Only delivered orders can be rated")

    order.ratings = {**(order.ratings or {}), **ratings}
    if data.feedback:
        order.feedback = data.feedback

    await db.commit()
    return await get_order_by_id(db, order.id)
