import pytest

from core.exceptions import ForbiddenError, NotFoundError, ValidationError
from crud.order import (
    cancel_order, get_order_by_id, get_orders_by_provider, get_orders_by_student, place_order,
    rate_order, update_order_status
)
from crud.provider import compute_provider_stats, delete_menu_item, get_menu_items
from models.models import OrderStatus
from schemas.schemas import OrderCreate, OrderRating, OrderResponse

from helpers import (
    add_menu_items, auth_header, make_provider, make_student, menu_item_payload, provider_payload,
    student_payload
)


def order_request(provider_id, lines, **overrides):
    data = {
        "provider_id": provider_id,
        "items": [{"menu_item_id": item.id, "quantity": quantity} for item, quantity in lines],
        "order_type": "lunch",
        "delivery_address": "Hostel 4, Room 12",
        "payment_method": "cash",
    }
    data.update(overrides)
    return OrderCreate(**data)


@pytest.fixture
def marketplace(db):
    async def _setup():
        provider = await make_provider(db)
        student = await make_student(db)
        items = await add_menu_items(db, provider.id, 2, price=60)
        return provider, student, items
    return _setup


async def placed_order(db, marketplace):
    provider, student, items = await marketplace()
    order = await place_order(db, student.student, order_request(provider.id, [(items[0], 2), (items[1], 1)]))
    return provider, student, order


# ========== PLACING ORDERS ==========

@pytest.mark.asyncio
async def test_place_order_snapshots_prices_and_starts_pending(db, marketplace):
    provider, student, order = await placed_order(db, marketplace)

    assert order.total_amount == pytest.approx(180)
    assert order.status == "pending"
    assert [event.status for event in order.status_history] == ["pending"]
    assert sorted(item.quantity for item in order.items) == [1, 2]
    assert {item.menu_item_name for item in order.items} == {"Item 0", "Item 1"}
    assert order.subscription_order is False


@pytest.mark.asyncio
async def test_place_order_rejects_item_of_another_provider(db, marketplace):
    provider, student, _ = await marketplace()
    other = await make_provider(db, email="other@example.com", businessName="Other")
    foreign = await add_menu_items(db, other.id, 1)

    with pytest.raises(NotFoundError):
        await place_order(db, student.student, order_request(provider.id, [(foreign[0], 1)]))


@pytest.mark.asyncio
@pytest.mark.parametrize("overrides,message", [
    ({"order_type": "brunch"}, "Order type"),
    ({"payment_method": "barter"}, "Payment method"),
    ({"delivery_address": None}, "delivery address"),
    ({"items": []}, "items"),
])
async def test_place_order_validation(db, marketplace, overrides, message):
    provider, student, items = await marketplace()
    with pytest.raises(ValidationError, match=message):
        await place_order(db, student.student, order_request(provider.id, [(items[0], 1)], **overrides))


@pytest.mark.asyncio
async def test_place_order_with_foreign_subscription(db, marketplace):
    provider, student, items = await marketplace()
    with pytest.raises(NotFoundError, match="Subscription"):
        await place_order(db, student.student, order_request(provider.id, [(items[0], 1)], subscription_id=77))


# ========== STATUS UPDATES ==========

@pytest.mark.asyncio
async def test_status_change_appends_history(db, marketplace):
    provider, _, order = await placed_order(db, marketplace)

    order = await update_order_status(db, provider.id, order.id, "confirmed")
    order = await update_order_status(db, provider.id, order.id, "preparing")

    assert order.status == "preparing"
    assert [event.status for event in order.status_history] == ["pending", "confirmed", "preparing"]


@pytest.mark.asyncio
async def test_same_status_write_adds_no_history(db, marketplace):
    provider, _, order = await placed_order(db, marketplace)

    await update_order_status(db, provider.id, order.id, "confirmed")
    order = await update_order_status(db, provider.id, order.id, "confirmed")

    assert len(order.status_history) == 2


@pytest.mark.asyncio
@pytest.mark.parametrize("status", ["shipped", "ready_for_pickup", "", None, "PENDING"])
async def test_invalid_status_leaves_order_unchanged(db, marketplace, status):
    provider, _, order = await placed_order(db, marketplace)

    with pytest.raises(ValidationError, match="Invalid status"):
        await update_order_status(db, provider.id, order.id, status)

    order = await get_order_by_id(db, order.id)
    assert order.status == "pending"
    assert len(order.status_history) == 1


@pytest.mark.asyncio
async def test_transitions_are_permissive(db, marketplace):
    provider, _, order = await placed_order(db, marketplace)

    order = await update_order_status(db, provider.id, order.id, "delivered")
    assert order.actual_delivery_time is not None

    order = await update_order_status(db, provider.id, order.id, "pending")
    assert order.status == "pending"
    assert [event.status for event in order.status_history] == ["pending", "delivered", "pending"]


@pytest.mark.asyncio
async def test_every_status_value_is_accepted(db, marketplace):
    provider, _, order = await placed_order(db, marketplace)
    for status in OrderStatus:
        order = await update_order_status(db, provider.id, order.id, status.value)
        assert order.status == status.value


@pytest.mark.asyncio
async def test_status_update_by_other_provider_is_forbidden(db, marketplace):
    _, _, order = await placed_order(db, marketplace)
    other = await make_provider(db, email="other@example.com", businessName="Other")

    with pytest.raises(ForbiddenError, match="Not authorized to update this order"):
        await update_order_status(db, other.id, order.id, "confirmed")


@pytest.mark.asyncio
async def test_status_update_for_missing_order(db, marketplace):
    provider, _, _ = await marketplace()
    with pytest.raises(NotFoundError):
        await update_order_status(db, provider.id, 555, "confirmed")


# ========== CANCEL / RATE ==========

@pytest.mark.asyncio
async def test_cancel_pending_order(db, marketplace):
    _, student, order = await placed_order(db, marketplace)

    order = await cancel_order(db, student.student, order.id)

    assert order.status == "cancelled"
    assert order.status_history[-1].status == "cancelled"


@pytest.mark.asyncio
async def test_cannot_cancel_once_preparing(db, marketplace):
    provider, student, order = await placed_order(db, marketplace)
    await update_order_status(db, provider.id, order.id, "preparing")

    with pytest.raises(ValidationError):
        await cancel_order(db, student.student, order.id)


@pytest.mark.asyncio
async def test_rate_delivered_order(db, marketplace):
    provider, student, order = await placed_order(db, marketplace)

    with pytest.raises(ValidationError, match="delivered"):
        await rate_order(db, student.student, order.id, OrderRating(food=5))

    await update_order_status(db, provider.id, order.id, "delivered")
    order = await rate_order(db, student.student, order.id, OrderRating(food=5, service=4, feedback="Hot and fresh"))

    assert order.ratings == {"food": 5, "service": 4}
    assert order.feedback == "Hot and fresh"


@pytest.mark.asyncio
async def test_rating_values_must_be_in_range(db, marketplace):
    _, student, order = await placed_order(db, marketplace)
    with pytest.raises(ValidationError):
        await rate_order(db, student.student, order.id, OrderRating(packaging=6))


# ========== LISTING / DERIVED ==========

@pytest.mark.asyncio
async def test_orders_listed_for_both_sides(db, marketplace):
    provider, student, order = await placed_order(db, marketplace)

    assert [o.id for o in await get_orders_by_student(db, student.id)] == [order.id]
    assert [o.id for o in await get_orders_by_provider(db, provider.id)] == [order.id]
    assert await get_orders_by_provider(db, provider.id, "delivered") == []


@pytest.mark.asyncio
async def test_ordered_menu_item_is_retired_not_deleted(db, marketplace):
    provider, _, order = await placed_order(db, marketplace)
    item_id = order.items[0].menu_item_id

    await delete_menu_item(db, provider.id, item_id)

    remaining = {item.id: item for item in await get_menu_items(db, provider.id)}
    assert remaining[item_id].is_available is False
    assert OrderResponse.model_validate(await get_order_by_id(db, order.id)).items


@pytest.mark.asyncio
async def test_stats_count_pending_like_orders_and_order_revenue(db, marketplace):
    provider, student, items = await marketplace()
    statuses = ["pending", "preparing", "ready", "delivered", "cancelled"]
    for status in statuses:
        order = await place_order(db, student.student, order_request(provider.id, [(items[0], 1)]))
        await update_order_status(db, provider.id, order.id, status)

    stats = await compute_provider_stats(db, provider.id)

    assert stats.total_orders == len(statuses)
    assert stats.pending_orders == 3
    assert stats.revenue == pytest.approx(60 * len(statuses))


# ========== HTTP ==========

@pytest.mark.asyncio
async def test_order_lifecycle_over_http(client, register):
    provider_token, provider = await register(provider_payload())
    student_token, _ = await register(student_payload())

    response = await client.post(
        "/api/providers/menu-items", json=menu_item_payload(price=75), headers=auth_header(provider_token)
    )
    item = response.json()["data"]

    response = await client.post(
        "/api/students/orders",
        json={
            "providerId": provider["id"],
            "items": [{"menuItemId": item["id"], "quantity": 2}],
            "orderType": "dinner",
            "deliveryAddress": "Hostel 4",
            "paymentMethod": "upi",
        },
        headers=auth_header(student_token),
    )
    assert response.status_code == 201, response.text
    order = response.json()["data"]
    assert order["totalAmount"] == pytest.approx(150)
    assert order["items"][0]["menuItemName"] == "Veg Thali"

    status_url = f"/api/providers/orders/{order['id']}/status"
    response = await client.put(status_url, json={"status": "bogus"}, headers=auth_header(provider_token))
    assert response.status_code == 400
    assert response.json()["message"] == "Invalid status"

    response = await client.put(status_url, json={"status": "out-for-delivery"}, headers=auth_header(provider_token))
    assert response.status_code == 200
    history = [event["status"] for event in response.json()["data"]["statusHistory"]]
    assert history == ["pending", "out-for-delivery"]

    response = await client.put(status_url, json={"status": "confirmed"}, headers=auth_header(student_token))
    assert response.status_code == 403

    response = await client.get("/api/students/orders", headers=auth_header(student_token))
    assert response.json()["count"] == 1

    response = await client.put(
        f"/api/students/orders/{order['id']}/cancel", headers=auth_header(student_token)
    )
    assert response.status_code == 400
