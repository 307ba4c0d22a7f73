"""Payload factories and setup shortcuts shared by the test modules."""

from schemas.schemas import RegisterRequest, MenuItemCreate, MealPlanCreate
from crud.user import register_account
from crud.provider import create_menu_item, create_meal_plan

# ========== PAYLOAD FACTORIES ==========

def student_payload(**overrides):
    payload = {
        "name": "Ravi Kumar",
        "email": "ravi@example.com",
        "password": "secret123",
        "phone": "9876543210",
        "address": "Hostel 4, Room 12",
        "role": "student",
        "university": "State University",
        "department": "Computer Science",
        "rollNumber": "CS-2021-042",
    }
    payload.update(overrides)
    return payload


def provider_payload(**overrides):
    payload = {
        "name": "Asha Devi",
        "email": "asha@example.com",
        "password": "secret123",
        "role": "provider",
        "businessName": "Asha's Tiffin",
        "description": "Home-style vegetarian meals",
        "cuisine": "North Indian, South Indian",
    }
    payload.update(overrides)
    return payload


def menu_item_payload(**overrides):
    payload = {
        "name": "Veg Thali",
        "description": "Rice, dal, two sabzis and roti",
        "category": "lunch",
        "price": 80,
    }
    payload.update(overrides)
    return payload


def meal_plan_payload(**overrides):
    payload = {
        "name": "Monthly Lunch",
        "description": "Lunch every weekday",
        "price": 2400,
        "duration": 30,
    }
    payload.update(overrides)
    return payload


# ========== CRUD-LEVEL HELPERS ==========

async def make_student(db, **overrides):
    user, _ = await register_account(db, RegisterRequest(**student_payload(**overrides)))
    return user


async def make_provider(db, **overrides):
    user, _ = await register_account(db, RegisterRequest(**provider_payload(**overrides)))
    return user


async def add_menu_items(db, provider_id, count, **overrides):
    items = []
    for i in range(count):
        items.append(await create_menu_item(
            db, provider_id, MenuItemCreate(**menu_item_payload(name=f"Item {i}", **overrides))
        ))
    return items


async def add_meal_plan(db, provider_id, **overrides):
    return await create_meal_plan(db, provider_id, MealPlanCreate(**meal_plan_payload(**overrides)))


def auth_header(token):
    return {"Authorization": f"Bearer {token}"}
