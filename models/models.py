# File: models.py
from sqlalchemy import (
    Column, Integer, String, DateTime, Float, Boolean, Text, ForeignKey, JSON,
    Table, UniqueConstraint
)
from sqlalchemy.orm import relationship
from datetime import datetime
import enum
import math

from database import Base

class UserRole(str, enum.Enum):
    STUDENT = "student"
    PROVIDER = "provider"
    USER = "user"

class ProviderType(str, enum.Enum):
    INDIVIDUAL = "individual"
    COMPANY = "company"

class MenuCategory(str, enum.Enum):
    BREAKFAST = "breakfast"
    LUNCH = "lunch"
    DINNER = "dinner"
    SNACK = "snack"
    DESSERT = "dessert"
    BEVERAGE = "beverage"

class OrderType(str, enum.Enum):
    BREAKFAST = "breakfast"
    LUNCH = "lunch"
    DINNER = "dinner"
    SNACK = "snack"

class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    READY = "ready"
    OUT_FOR_DELIVERY = "out-for-delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"

class SubscriptionStatus(str, enum.Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    CANCELLED = "cancelled"
    EXPIRED = "expired"

class PaymentMethod(str, enum.Enum):
    CASH = "cash"
    CARD = "card"
    UPI = "upi"
    WALLET = "wallet"

class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"

MEALS = ("breakfast", "lunch", "dinner")

# Association tables; composite primary keys keep the subscriber sets deduplicated
provider_subscribers = Table(
    "provider_subscribers",
    Base.metadata,
    Column("provider_id", Integer, ForeignKey("providers.user_id"), primary_key=True),
    Column("student_id", Integer, ForeignKey("students.user_id"), primary_key=True),
)

meal_plan_subscribers = Table(
    "meal_plan_subscribers",
    Base.metadata,
    Column("meal_plan_id", Integer, ForeignKey("meal_plans.id"), primary_key=True),
    Column("student_id", Integer, ForeignKey("students.user_id"), primary_key=True),
)

class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    email = Column(String(100), unique=True, index=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    phone = Column(String(20))
    address = Column(Text)
    role = Column(String(20), nullable=False, default=UserRole.USER.value)
    bio = Column(String(1000))
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Role profiles (at most one is present, matching role)
    student = relationship("Student", back_populates="user", uselist=False, lazy="selectin")
    provider = relationship("Provider", back_populates="user", uselist=False, lazy="selectin")

class Student(Base):
    __tablename__ = "students"

    user_id = Column(Integer, ForeignKey("users.id"), primary_key=True)
    university = Column(String(200), nullable=False)
    department = Column(String(200), nullable=False)
    roll_number = Column(String(50), nullable=False)
    preferences = Column(JSON, default=lambda: {
        "dietary": {"vegetarian": False, "vegan": False, "nonVegetarian": True},
        "allergies": [],
        "favoriteItems": [],
    })
    # Embedded subscription summaries (provider, plan, dates, isActive, mealPreferences)
    subscriptions = Column(JSON, default=list)

    user = relationship("User", back_populates="student", lazy="joined")

class Provider(Base):
    __tablename__ = "providers"

    user_id = Column(Integer, ForeignKey("users.id"), primary_key=True)
    business_name = Column(String(200), unique=True, nullable=False)
    description = Column(String(500), nullable=False)
    type = Column(String(20), default=ProviderType.INDIVIDUAL.value)
    cuisine = Column(JSON, default=list)
    established_date = Column(DateTime)
    rating = Column(Float, default=0.0)
    total_reviews = Column(Integer, default=0)
    delivery_areas = Column(JSON, default=list)
    business_hours = Column(JSON, default=dict)
    bank_details = Column(JSON, default=dict)
    verified = Column(Boolean, default=False)
    ready_for_verification = Column(Boolean, default=False)
    is_active = Column(Boolean, default=True)

    user = relationship("User", back_populates="provider", lazy="joined")

class ProviderReview(Base):
    __tablename__ = "provider_reviews"
    __table_args__ = (
        UniqueConstraint("provider_id", "student_id", name="uq_provider_review_student"),
    )

    id = Column(Integer, primary_key=True, index=True)
    provider_id = Column(Integer, ForeignKey("providers.user_id"), nullable=False, index=True)
    student_id = Column(Integer, ForeignKey("students.user_id"), nullable=False)
    rating = Column(Integer, nullable=False)  # 1-5
    comment = Column(Text, default="")
    date = Column(DateTime, default=datetime.utcnow)

    student = relationship("Student", lazy="joined")

    @property
    def student_name(self):
        return self.student.user.name if self.student else None

class MenuItem(Base):
    __tablename__ = "menu_items"

    id = Column(Integer, primary_key=True, index=True)
    provider_id = Column(Integer, ForeignKey("providers.user_id"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=False)
    category = Column(String(20), nullable=False)
    price = Column(Float, nullable=False)
    image = Column(String(255))
    is_available = Column(Boolean, default=True)
    ingredients = Column(JSON, default=list)
    nutritional_info = Column(JSON, default=dict)  # calories, protein, carbs, fat
    dietary_type = Column(JSON, default=dict)
    allergens = Column(JSON, default=list)
    rating = Column(Float, default=0.0)
    total_reviews = Column(Integer, default=0)
    preparation_time = Column(Integer, default=30)  # in minutes
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

class MealPlan(Base):
    __tablename__ = "meal_plans"

    id = Column(Integer, primary_key=True, index=True)
    provider_id = Column(Integer, ForeignKey("providers.user_id"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=False)
    price = Column(Float, nullable=False)
    duration = Column(Integer, nullable=False)  # in days
    meal_options = Column(JSON, default=dict)
    dietary_options = Column(JSON, default=dict)
    delivery_schedule = Column(JSON, default=dict)
    weekly_menu = Column(JSON, default=dict)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def meal_availability(self) -> dict:
        """Per-meal availability flags, used as default meal preferences"""
        options = self.meal_options or {}
        return {meal: bool((options.get(meal) or {}).get("available", False)) for meal in MEALS}

class Subscription(Base):
    __tablename__ = "subscriptions"

    id = Column(Integer, primary_key=True, index=True)
    student_id = Column(Integer, ForeignKey("students.user_id"), nullable=False, index=True)
    provider_id = Column(Integer, ForeignKey("providers.user_id"), nullable=False, index=True)
    meal_plan_id = Column(Integer, ForeignKey("meal_plans.id"), nullable=False)
    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=False)
    status = Column(String(20), default=SubscriptionStatus.ACTIVE.value)

    # Snapshot of the plan price at creation
    total_amount = Column(Float, nullable=False)

    # Payment
    payment_status = Column(String(20), default=PaymentStatus.PENDING.value)
    payment_method = Column(String(20))
    payment_details = Column(JSON, default=dict)

    # Delivery
    meal_preferences = Column(JSON, default=dict)
    delivery_address = Column(Text, nullable=False)
    delivery_instructions = Column(Text, default="")
    preferred_delivery_time = Column(JSON, default=dict)
    skipped_dates = Column(JSON, default=list)

    renewal_reminder = Column(Boolean, default=True)
    auto_renew = Column(Boolean, default=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    meal_plan = relationship("MealPlan", lazy="joined")
    provider = relationship("Provider", lazy="joined")
    student = relationship("Student", lazy="joined")
    orders = relationship("Order", back_populates="subscription", lazy="selectin")

    @property
    def order_ids(self) -> list:
        return [order.id for order in self.orders]

    @property
    def days_remaining(self) -> int:
        """Whole days until end_date, rounded half up; recomputed on every read"""
        delta = self.end_date - datetime.utcnow()
        return math.floor(delta.total_seconds() / 86400 + 0.5)

class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    student_id = Column(Integer, ForeignKey("students.user_id"), nullable=False, index=True)
    provider_id = Column(Integer, ForeignKey("providers.user_id"), nullable=False, index=True)
    subscription_order = Column(Boolean, default=False)
    subscription_id = Column(Integer, ForeignKey("subscriptions.id"), nullable=True)
    order_type = Column(String(20), nullable=False)

    # Status
    status = Column(String(20), default=OrderStatus.PENDING.value)

    total_amount = Column(Float, nullable=False)

    # Payment
    payment_status = Column(String(20), default=PaymentStatus.PENDING.value)
    payment_method = Column(String(20))
    payment_details = Column(JSON, default=dict)

    # Delivery details
    delivery_address = Column(Text, nullable=False)
    delivery_instructions = Column(Text)
    requested_delivery_time = Column(DateTime, nullable=True)
    actual_delivery_time = Column(DateTime, nullable=True)

    # Post-delivery feedback
    ratings = Column(JSON, default=dict)  # food / service / packaging
    feedback = Column(Text)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan", lazy="selectin")
    status_history = relationship(
        "OrderStatusEvent",
        back_populates="order",
        order_by="OrderStatusEvent.id",
        cascade="all, delete-orphan",
        lazy="selectin"
    )
    subscription = relationship("Subscription", back_populates="orders")
    student = relationship("Student", lazy="joined")
    provider = relationship("Provider", lazy="joined")

    def set_status(self, new_status: str, timestamp: datetime = None) -> bool:
        """Set status and append one history event when the value changes"""
        if self.status == new_status:
            return False
        self.status = new_status
        self.status_history.append(
            OrderStatusEvent(status=new_status, timestamp=timestamp or datetime.utcnow())
        )
        return True

class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False)
    menu_item_id = Column(Integer, ForeignKey("menu_items.id"), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    price = Column(Float, nullable=False)  # unit price at order time

    order = relationship("Order", back_populates="items")
    menu_item = relationship("MenuItem", lazy="joined")

    @property
    def menu_item_name(self):
        return self.menu_item.name if self.menu_item else None

class OrderStatusEvent(Base):
    __tablename__ = "order_status_events"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    status = Column(String(20), nullable=False)
    timestamp = Column(DateTime, default=datetime.utcnow)

    order = relationship("Order", back_populates="status_history")
