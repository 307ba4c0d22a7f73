"""
Student Router for Mess Buddy
Provider browsing, subscriptions, reviews and orders
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from schemas.schemas import (
    SubscribeRequest, SubscriptionStatusUpdate, SubscriptionResponse, ReviewCreate,
    ReviewResponse, OrderCreate, OrderRating, OrderResponse, dump
)
from crud.provider import list_providers, get_provider_details, add_review
from crud.subscription import subscribe, get_subscriptions_by_student, update_subscription_status
from crud.order import place_order, get_orders_by_student, cancel_order, rate_order
from core.security import require_role
from models.models import User, UserRole

router = APIRouter(tags=["students"])

student_only = require_role(UserRole.STUDENT.value)

# ========== PROVIDERS ==========

@router.get("/providers")
async def browse_providers(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(student_only)
):
    """Active providers with their latest reviews"""
    providers = await list_providers(db)
    return {
        "success": True,
        "count": len(providers),
        "data": [dump(provider) for provider in providers]
    }


@router.get("/providers/{provider_id}")
async def provider_details(
    provider_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(student_only)
):
    details = await get_provider_details(db, provider_id)
    return {"success": True, "data": dump(details)}

# ========== SUBSCRIPTIONS ==========

@router.post("/subscribe", status_code=status.HTTP_201_CREATED)
async def subscribe_to_plan(
    data: SubscribeRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(student_only)
):
    subscription = await subscribe(db, current_user.student, data)
    return {"success": True, "data": dump(SubscriptionResponse.model_validate(subscription))}


@router.get("/subscriptions")
async def list_subscriptions(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(student_only)
):
    subscriptions = await get_subscriptions_by_student(db, current_user.id)
    return {
        "success": True,
        "count": len(subscriptions),
        "data": [dump(SubscriptionResponse.model_validate(sub)) for sub in subscriptions]
    }


@router.put("/subscriptions/{subscription_id}/status")
async def change_subscription_status(
    subscription_id: int,
    data: SubscriptionStatusUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(student_only)
):
    """Pause, resume or cancel a subscription"""
    subscription = await update_subscription_status(db, current_user.student, subscription_id, data)
    return {"success": True, "data": dump(SubscriptionResponse.model_validate(subscription))}

# ========== REVIEWS ==========

@router.post("/reviews/{provider_id}", status_code=status.HTTP_201_CREATED)
async def review_provider(
    provider_id: int,
    data: ReviewCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(student_only)
):
    review = await add_review(db, provider_id, current_user.id, data)
    return {"success": True, "data": dump(ReviewResponse.model_validate(review))}

# ========== ORDERS ==========

@router.post("/orders", status_code=status.HTTP_201_CREATED)
async def create_order(
    data: OrderCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(student_only)
):
    order = await place_order(db, current_user.student, data)
    return {"success": True, "data": dump(OrderResponse.model_validate(order))}


@router.get("/orders")
async def list_orders(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(student_only)
):
    orders = await get_orders_by_student(db, current_user.id)
    return {
        "success": True,
        "count": len(orders),
        "data": [dump(OrderResponse.model_validate(order)) for order in orders]
    }


@router.put("/orders/{order_id}/cancel")
async def cancel(
    order_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(student_only)
):
    order = await cancel_order(db, current_user.student, order_id)
    return {"success": True, "data": dump(OrderResponse.model_validate(order))}


@router.post("/orders/{order_id}/rating")
async def rate(
    order_id: int,
    data: OrderRating,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(student_only)
):
    order = await rate_order(db, current_user.student, order_id, data)
    return {"success": True, "data": dump(OrderResponse.model_validate(order))}
