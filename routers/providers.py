"""
Provider Router for Mess Buddy
Profile, catalog, subscribers, order handling and dashboard stats
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from database import get_db
from schemas.schemas import (
    ProfileUpdate, MealPlanCreate, MealPlanResponse, MenuItemCreate, MenuItemResponse,
    OrderStatusUpdate, OrderResponse, account_view, dump
)
from crud.provider import (
    update_provider_profile, create_meal_plan, get_meal_plans, create_menu_item,
    get_menu_items, delete_menu_item, get_subscribers, compute_provider_stats
)
from crud.order import get_orders_by_provider, update_order_status
from core.security import require_role
from models.models import User, UserRole

router = APIRouter(tags=["providers"])

provider_only = require_role(UserRole.PROVIDER.value)

# ========== PROFILE ==========

@router.put("/profile")
async def update_profile(
    data: ProfileUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(provider_only)
):
    """Update provider profile and re-check verification eligibility"""
    user = await update_provider_profile(db, current_user, data)
    return {"success": True, "data": dump(account_view(user))}

# ========== MEAL PLANS ==========

@router.post("/meal-plans", status_code=status.HTTP_201_CREATED)
async def add_meal_plan(
    data: MealPlanCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(provider_only)
):
    meal_plan = await create_meal_plan(db, current_user.id, data)
    return {"success": True, "data": dump(MealPlanResponse.model_validate(meal_plan))}


@router.get("/meal-plans")
async def list_meal_plans(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(provider_only)
):
    meal_plans = await get_meal_plans(db, current_user.id)
    return {
        "success": True,
        "count": len(meal_plans),
        "data": [dump(MealPlanResponse.model_validate(plan)) for plan in meal_plans]
    }

# ========== MENU ITEMS ==========

@router.post("/menu-items", status_code=status.HTTP_201_CREATED)
async def add_menu_item(
    data: MenuItemCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(provider_only)
):
    menu_item = await create_menu_item(db, current_user.id, data)
    return {"success": True, "data": dump(MenuItemResponse.model_validate(menu_item))}


@router.get("/menu-items")
async def list_menu_items(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(provider_only)
):
    menu_items = await get_menu_items(db, current_user.id)
    return {
        "success": True,
        "count": len(menu_items),
        "data": [dump(MenuItemResponse.model_validate(item)) for item in menu_items]
    }


@router.delete("/menu-items/{item_id}")
async def remove_menu_item(
    item_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(provider_only)
):
    await delete_menu_item(db, current_user.id, item_id)
    return {"success": True, "data": {}}

# ========== SUBSCRIBERS & ORDERS ==========

@router.get("/subscribers")
async def list_subscribers(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(provider_only)
):
    subscribers = await get_subscribers(db, current_user.id)
    return {
        "success": True,
        "count": len(subscribers),
        "data": [dump(subscriber) for subscriber in subscribers]
    }


@router.get("/orders")
async def list_orders(
    status: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(provider_only)
):
    """Provider's orders, newest first"""
    orders = await get_orders_by_provider(db, current_user.id, status)
    return {
        "success": True,
        "count": len(orders),
        "data": [dump(OrderResponse.model_validate(order)) for order in orders]
    }


@router.put("/orders/{order_id}/status")
async def change_order_status(
    order_id: int,
    data: OrderStatusUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(provider_only)
):
    order = await update_order_status(db, current_user.id, order_id, data.status)
    return {"success": True, "data": dump(OrderResponse.model_validate(order))}

# ========== STATS ==========

@router.get("/stats")
async def get_stats(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(provider_only)
):
    stats = await compute_provider_stats(db, current_user.id)
    return {"success": True, "data": dump(stats)}
