# models/__init__.py
"""
Models package initialization.
Exports all models and enums for easy access.
"""

from database import Base
from .models import *  # noqa: F401,F403

__all__ = [
    'Base',
    # Enums
    'UserRole',
    'ProviderType',
    'MenuCategory',
    'OrderType',
    'OrderStatus',
    'SubscriptionStatus',
    'PaymentMethod',
    'PaymentStatus',
    'MEALS',
    # Tables
    'User',
    'Student',
    'Provider',
    'ProviderReview',
    'MenuItem',
    'MealPlan',
    'Subscription',
    'Order',
    'OrderItem',
    'OrderStatusEvent',
    'provider_subscribers',
    'meal_plan_subscribers',
]
