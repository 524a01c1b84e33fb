from __future__ import annotations

import uuid

import pytest
from sqlalchemy import select

from factories import actor_for, make_coupon, make_item, make_restaurant, make_user
from orderflow.errors import CouponRejected, Forbidden, NotFoundError, ValidationError
from orderflow.models import Coupon, Notification, UsedCoupon, User
from orderflow.schemas.order import PlaceOrderRequest
from orderflow.services import checkout

ADDRESS = {"street": "1 Main St", "city": "Springfield"}


def test_order_number_format():
    number = checkout.generate_order_number()
    assert number.startswith("FS")
    assert len(number) == 11
    assert number[2:].isdigit()


def test_price_order_delivery():
    assert checkout.price_order(20.0, "delivery", discount=2.0) == {
        "subtotal": 20.0,
        "delivery_fee": 4.99,
        "service_fee": 2.0,
        "tax": 1.6,
        "tip": 0.0,
        "discount": 2.0,
        "total": 26.59,
    }


def test_price_order_pickup_skips_delivery_fee_and_caps_discount():
    pricing = checkout.price_order(5.0, "pickup", tip=1.0, discount=50.0)
    assert pricing["delivery_fee"] == 0.0
    assert pricing["discount"] == 5.0
    assert pricing["total"] == 3.4


def test_delivery_order_requires_address():
    with pytest.raises(ValueError):
        PlaceOrderRequest(
            restaurant_id=uuid.uuid4(),
            order_type="delivery",
            items=[{"menu_item_id": uuid.uuid4(), "quantity": 1}],
        )


@pytest.fixture
async def shop(session):
    owner = await make_user(session, role="restaurant")
    restaurant = await make_restaurant(session, owner)
    item = await make_item(session, restaurant, price=10.0, current_stock=20)
    customer = await make_user(session)
    return owner, restaurant, item, customer


async def test_place_order_with_coupon(session, shop):
    owner, restaurant, item, customer = shop
    await make_coupon(session, "SAVE10", min_order_value=20)

    request = PlaceOrderRequest(
        restaurant_id=restaurant.id,
        order_type="delivery",
        items=[{"menu_item_id": item.id, "quantity": 2}],
        delivery_address=ADDRESS,
        coupon_code="save10",
    )
    order = await checkout.place_order(session, actor_for(customer), request)

    assert order.status == "pending"
    assert order.coupon_code == "SAVE10"
    assert (order.subtotal, order.discount, order.tax, order.total) == (20.0, 2.0, 1.6, 26.59)
    assert [e.status for e in order.status_history] == ["pending"]
    assert order.items[0].name == "Margherita"
    assert order.items[0].quantity == 2

    customer_id, order_id, owner_id = customer.id, order.id, owner.id
    session.expire_all()
    refreshed = await session.get(User, customer_id)
    assert refreshed.order_count == 1
    usage = (await session.execute(select(UsedCoupon))).scalars().all()
    assert [(u.user_id, u.order_id, u.discount_amount) for u in usage] == [
        (customer_id, order_id, 2.0)
    ]
    coupon = (await session.execute(select(Coupon))).scalar_one()
    assert coupon.usage_count == 1
    notices = (
        await session.execute(select(Notification).where(Notification.user_id == owner_id))
    ).scalars().all()
    assert [n.type for n in notices] == ["order-placed"]


async def test_customizations_are_priced(session, shop):
    _, restaurant, item, customer = shop
    request = PlaceOrderRequest(
        restaurant_id=restaurant.id,
        order_type="pickup",
        items=[{
            "menu_item_id": item.id,
            "quantity": 1,
            "customizations": [{"name": "cheese", "value": "extra", "additional_price": 1.5}],
        }],
    )
    order = await checkout.place_order(session, actor_for(customer), request)
    assert order.subtotal == 11.5
    assert order.delivery_fee == 0.0


async def test_coupon_below_minimum_rejects_whole_order(session, shop):
    _, restaurant, item, customer = shop
    await make_coupon(session, "SAVE10", min_order_value=50)
    request = PlaceOrderRequest(
        restaurant_id=restaurant.id,
        order_type="pickup",
        items=[{"menu_item_id": item.id, "quantity": 1}],
        coupon_code="SAVE10",
    )
    with pytest.raises(CouponRejected):
        await checkout.place_order(session, actor_for(customer), request)


async def test_unavailable_items_are_reported(session, shop):
    _, restaurant, item, customer = shop
    sold_out = await make_item(session, restaurant, name="Calzone", is_available=False)
    request = PlaceOrderRequest(
        restaurant_id=restaurant.id,
        order_type="pickup",
        items=[
            {"menu_item_id": item.id, "quantity": 1},
            {"menu_item_id": sold_out.id, "quantity": 1},
            {"menu_item_id": uuid.uuid4(), "quantity": 1},
        ],
    )
    with pytest.raises(ValidationError) as exc_info:
        await checkout.place_order(session, actor_for(customer), request)
    assert len(exc_info.value.errors) == 2
    assert "Calzone is currently unavailable" in exc_info.value.errors


async def test_only_customers_order(session, shop):
    owner, restaurant, item, _ = shop
    request = PlaceOrderRequest(
        restaurant_id=restaurant.id,
        order_type="pickup",
        items=[{"menu_item_id": item.id, "quantity": 1}],
    )
    with pytest.raises(Forbidden):
        await checkout.place_order(session, actor_for(owner), request)


async def test_inactive_restaurant_not_found(session, shop):
    owner, _, _, customer = shop
    closed = await make_restaurant(session, owner, name="Closed", is_active=False)
    item = await make_item(session, closed)
    request = PlaceOrderRequest(
        restaurant_id=closed.id,
        order_type="pickup",
        items=[{"menu_item_id": item.id, "quantity": 1}],
    )
    with pytest.raises(NotFoundError):
        await checkout.place_order(session, actor_for(customer), request)
