from pydantic import BaseModel, EmailStr, Field, ConfigDict, TypeAdapter
from pydantic.alias_generators import to_camel
from typing import Optional, List, Dict, Any, Union, Literal
from typing_extensions import Annotated
from datetime import datetime


class CamelModel(BaseModel):
    """Models exchanged with the client use camelCase keys"""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True
    )


def dump(model: BaseModel) -> Dict[str, Any]:
    """JSON-ready dict with camelCase keys"""
    return model.model_dump(by_alias=True, mode="json")


# ========== AUTH SCHEMAS ==========

class RegisterRequest(CamelModel):
    name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    password: str
    phone: Optional[str] = None
    address: Optional[str] = None
    role: Optional[str] = None

    # Student fields
    university: Optional[str] = None
    department: Optional[str] = None
    roll_number: Optional[str] = None

    # Provider fields
    business_name: Optional[str] = None
    description: Optional[str] = None
    type: Optional[str] = None
    cuisine: Optional[Union[List[str], str]] = None

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "name": "Asha Kitchen",
                "email": "asha@example.com",
                "password": "secret123",
                "role": "provider",
                "businessName": "Asha's Tiffin",
                "description": "Home-style vegetarian meals",
                "cuisine": "North Indian, South Indian"
            }
        }
    )


class LoginRequest(CamelModel):
    email: Optional[str] = None
    password: Optional[str] = None


class PasswordChange(CamelModel):
    current_password: Optional[str] = None
    new_password: Optional[str] = None


class ProfileUpdate(CamelModel):
    """Partial profile update; omitted or empty fields are left unchanged"""
    name: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    bio: Optional[str] = None

    # Provider-specific
    business_name: Optional[str] = None
    description: Optional[str] = None
    type: Optional[str] = None
    cuisine: Optional[Union[List[str], str]] = None
    delivery_areas: Optional[Union[List[str], str]] = None
    business_hours: Optional[Union[Dict[str, Any], str]] = None
    bank_details: Optional[Union[Dict[str, Any], str]] = None


# ========== ACCOUNT VIEWS ==========

class AccountBase(CamelModel):
    id: int
    name: str
    email: str
    phone: Optional[str] = None
    address: Optional[str] = None
    bio: Optional[str] = None
    created_at: Optional[datetime] = None


class PlainAccount(AccountBase):
    role: Literal["user"]


class StudentAccount(AccountBase):
    role: Literal["student"]
    university: str
    department: str
    roll_number: str
    preferences: Dict[str, Any] = {}
    subscriptions: List[Dict[str, Any]] = []


class ProviderAccount(AccountBase):
    role: Literal["provider"]
    business_name: str
    description: str
    type: str
    cuisine: List[str] = []
    rating: float = 0.0
    total_reviews: int = 0
    delivery_areas: List[str] = []
    business_hours: Dict[str, Any] = {}
    bank_details: Dict[str, Any] = {}
    verified: bool = False
    ready_for_verification: bool = False
    is_active: bool = True


AccountView = Annotated[
    Union[StudentAccount, ProviderAccount, PlainAccount],
    Field(discriminator="role")
]

_account_adapter = TypeAdapter(AccountView)


def account_view(user) -> Union[StudentAccount, ProviderAccount, PlainAccount]:
    """Flatten a user and its role profile into the matching account variant"""
    data = {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "phone": user.phone,
        "address": user.address,
        "bio": user.bio,
        "created_at": user.created_at,
        "role": user.role,
    }
    if user.role == "student":
        student = user.student
        data.update(
            university=student.university,
            department=student.department,
            roll_number=student.roll_number,
            preferences=student.preferences or {},
            subscriptions=student.subscriptions or [],
        )
    elif user.role == "provider":
        provider = user.provider
        data.update(
            business_name=provider.business_name,
            description=provider.description,
            type=provider.type,
            cuisine=provider.cuisine or [],
            rating=provider.rating or 0.0,
            total_reviews=provider.total_reviews or 0,
            delivery_areas=provider.delivery_areas or [],
            business_hours=provider.business_hours or {},
            bank_details=provider.bank_details or {},
            verified=bool(provider.verified),
            ready_for_verification=bool(provider.ready_for_verification),
            is_active=bool(provider.is_active),
        )
    return _account_adapter.validate_python(data)


# ========== MENU / MEAL PLAN SCHEMAS ==========

class MenuItemCreate(CamelModel):
    name: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    price: Optional[float] = None
    image: Optional[str] = None
    is_available: Optional[bool] = None
    ingredients: Optional[List[str]] = None
    nutritional_info: Optional[Dict[str, Any]] = None
    dietary_type: Optional[Dict[str, bool]] = None
    allergens: Optional[List[str]] = None
    preparation_time: Optional[int] = None


class MenuItemResponse(CamelModel):
    id: int
    provider_id: int
    name: str
    description: str
    category: str
    price: float
    image: Optional[str] = None
    is_available: bool = True
    ingredients: List[str] = []
    nutritional_info: Dict[str, Any] = {}
    dietary_type: Dict[str, bool] = {}
    allergens: List[str] = []
    rating: float = 0.0
    total_reviews: int = 0
    preparation_time: int
    created_at: Optional[datetime] = None


class MealPlanCreate(CamelModel):
    name: Optional[str] = None
    description: Optional[str] = None
    price: Optional[float] = None
    duration: Optional[int] = None
    meal_options: Optional[Dict[str, Any]] = None
    dietary_options: Optional[Dict[str, bool]] = None
    delivery_schedule: Optional[Dict[str, Any]] = None
    weekly_menu: Optional[Dict[str, Any]] = None


class MealPlanResponse(CamelModel):
    id: int
    provider_id: int
    name: str
    description: str
    price: float
    duration: int
    meal_options: Dict[str, Any] = {}
    dietary_options: Dict[str, bool] = {}
    delivery_schedule: Dict[str, Any] = {}
    weekly_menu: Dict[str, Any] = {}
    is_active: bool = True
    created_at: Optional[datetime] = None


class MealPlanBrief(CamelModel):
    id: int
    name: str
    description: str
    price: float
    duration: int


# ========== PROVIDER BROWSING ==========

class ReviewCreate(CamelModel):
    rating: Optional[float] = None
    comment: Optional[str] = None


class ReviewResponse(CamelModel):
    id: int
    student_id: int
    student_name: Optional[str] = None
    rating: int
    comment: Optional[str] = ""
    date: datetime


class ProviderSummary(CamelModel):
    id: int
    name: str
    business_name: str
    description: str
    cuisine: List[str] = []
    rating: float = 0.0
    total_reviews: int = 0
    delivery_areas: List[str] = []
    reviews: List[ReviewResponse] = []


class ProviderDetails(ProviderSummary):
    phone: Optional[str] = None
    address: Optional[str] = None
    bio: Optional[str] = None
    type: str
    business_hours: Dict[str, Any] = {}
    verified: bool = False
    menu: List[MenuItemResponse] = []
    meal_plans: List[MealPlanResponse] = []


class ProviderStats(CamelModel):
    revenue: float = 0.0
    total_subscribers: int = 0
    active_subscribers: int = 0
    total_orders: int = 0
    pending_orders: int = 0
    rating: float = 0.0
    total_reviews: int = 0
    total_menu_items: int = 0
    total_meal_plans: int = 0


# ========== SUBSCRIPTION SCHEMAS ==========

class SubscribeRequest(CamelModel):
    provider_id: Optional[int] = None
    meal_plan_id: Optional[int] = None
    start_date: Optional[datetime] = None
    delivery_address: Optional[str] = None
    delivery_instructions: Optional[str] = None
    meal_preferences: Optional[Dict[str, bool]] = None
    payment_method: Optional[str] = None


class SubscriptionStatusUpdate(CamelModel):
    status: Optional[str] = None


class SubscriptionResponse(CamelModel):
    id: int
    student_id: int
    provider_id: int
    meal_plan_id: int
    meal_plan: Optional[MealPlanBrief] = None
    start_date: datetime
    end_date: datetime
    status: str
    total_amount: float
    payment_status: str
    payment_method: Optional[str] = None
    meal_preferences: Dict[str, bool] = {}
    delivery_address: str
    delivery_instructions: Optional[str] = ""
    skipped_dates: List[Any] = []
    order_ids: List[int] = []
    days_remaining: int
    created_at: Optional[datetime] = None


class StudentContact(CamelModel):
    id: int
    name: str
    email: str
    phone: Optional[str] = None
    address: Optional[str] = None


class SubscriberResponse(SubscriptionResponse):
    student: StudentContact


# ========== ORDER SCHEMAS ==========

class OrderItemCreate(CamelModel):
    menu_item_id: int
    quantity: int = Field(1, ge=1)


class OrderCreate(CamelModel):
    provider_id: Optional[int] = None
    items: List[OrderItemCreate] = []
    order_type: Optional[str] = None
    delivery_address: Optional[str] = None
    delivery_instructions: Optional[str] = None
    payment_method: Optional[str] = None
    subscription_id: Optional[int] = None
    requested_delivery_time: Optional[datetime] = None


class OrderStatusUpdate(CamelModel):
    status: Optional[str] = None


class OrderRating(CamelModel):
    food: Optional[int] = None
    service: Optional[int] = None
    packaging: Optional[int] = None
    feedback: Optional[str] = None


class OrderItemResponse(CamelModel):
    menu_item_id: int
    menu_item_name: Optional[str] = None
    quantity: int
    price: float


class StatusEventResponse(CamelModel):
    status: str
    timestamp: datetime


class OrderResponse(CamelModel):
    id: int
    student_id: int
    provider_id: int
    items: List[OrderItemResponse] = []
    subscription_order: bool = False
    subscription_id: Optional[int] = None
    order_type: str
    status: str
    status_history: List[StatusEventResponse] = []
    total_amount: float
    payment_status: str
    payment_method: Optional[str] = None
    delivery_address: str
    delivery_instructions: Optional[str] = None
    requested_delivery_time: Optional[datetime] = None
    actual_delivery_time: Optional[datetime] = None
    ratings: Dict[str, int] = {}
    feedback: Optional[str] = None
    created_at: Optional[datetime] = None
