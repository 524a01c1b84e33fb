from __future__ import annotations

import uuid
from datetime import timedelta

import pytest

from factories import headers, make_order, make_restaurant, make_user
from orderflow.errors import CouponRejected, NotFoundError, ValidationError
from orderflow.services import discounts
from orderflow.utils.clock import utcnow

CART = [{"name": "Margherita pizza", "price": 10.0, "quantity": 1},
        {"name": "Garlic bread", "price": 4.0, "quantity": 1}]


def _payload(**overrides):
    now = utcnow()
    payload = {
        "code": "lunch20",
        "name": "Lunch deal",
        "description": None,
        "type": "percentage",
        "value": 20,
        "min_order_amount": 0,
        "max_discount": 0,
        "usage_limit": 0,
        "user_limit": 1,
        "start_date": now - timedelta(days=1),
        "end_date": now + timedelta(days=7),
        "applicable_items": [],
        "customer_segment": "all",
        "is_active": True,
    }
    payload.update(overrides)
    return payload


@pytest.fixture
async def shop(session):
    owner = await make_user(session, role="restaurant")
    restaurant = await make_restaurant(session, owner)
    customer = await make_user(session)
    return owner, restaurant, customer


async def test_create_uppercases_and_rejects_duplicate_codes(session, shop):
    _, restaurant, _ = shop
    discount = await discounts.create_discount(session, restaurant.id, _payload())
    assert discount.code == "LUNCH20"
    with pytest.raises(ValidationError, match="already exists"):
        await discounts.create_discount(session, restaurant.id, _payload(code="Lunch20"))


async def test_create_validates_window_and_percentage(session, shop):
    _, restaurant, _ = shop
    now = utcnow()
    with pytest.raises(ValidationError, match="End date"):
        await discounts.create_discount(
            session, restaurant.id, _payload(start_date=now, end_date=now - timedelta(hours=1))
        )
    with pytest.raises(ValidationError, match="cannot exceed 100"):
        await discounts.create_discount(session, restaurant.id, _payload(value=150))


async def test_update_and_delete_are_scoped_to_the_restaurant(session, shop):
    owner, restaurant, _ = shop
    other = await make_restaurant(session, owner, name="Other place")
    discount = await discounts.create_discount(session, restaurant.id, _payload())

    with pytest.raises(NotFoundError):
        await discounts.update_discount(session, other.id, discount.id, {"value": 5})
    updated = await discounts.update_discount(
        session, restaurant.id, discount.id, {"value": 25, "code": "lunch25"}
    )
    assert (updated.value, updated.code) == (25, "LUNCH25")

    with pytest.raises(NotFoundError):
        await discounts.delete_discount(session, other.id, discount.id)
    await discounts.delete_discount(session, restaurant.id, discount.id)
    with pytest.raises(NotFoundError):
        await discounts.get_discount(session, restaurant.id, discount.id)


async def test_list_filters_by_status_and_search(session, shop):
    _, restaurant, _ = shop
    now = utcnow()
    await discounts.create_discount(session, restaurant.id, _payload())
    await discounts.create_discount(
        session, restaurant.id,
        _payload(code="SOON", name="Coming soon", start_date=now + timedelta(days=2),
                 end_date=now + timedelta(days=9)),
    )
    await discounts.create_discount(
        session, restaurant.id,
        _payload(code="GONE", name="Old deal", start_date=now - timedelta(days=9),
                 end_date=now - timedelta(days=2)),
    )

    def codes(result):
        return sorted(d.code for d in result["discounts"])

    assert codes(await discounts.list_discounts(session, restaurant.id, "active")) == ["LUNCH20"]
    assert codes(await discounts.list_discounts(session, restaurant.id, "scheduled")) == ["SOON"]
    assert codes(await discounts.list_discounts(session, restaurant.id, "expired")) == ["GONE"]
    found = await discounts.list_discounts(session, restaurant.id, search="soon")
    assert codes(found) == ["SOON"]
    assert found["stats"]["total_discounts"] == 3
    assert found["stats"]["active_discounts"] == 1
    assert found["pagination"]["total_items"] == 1


@pytest.mark.parametrize(
    "type_, value, max_discount, expected",
    [
        ("percentage", 20, 0, 8.0),
        ("percentage", 50, 5, 5.0),
        ("fixed", 60, 0, 40.0),
        ("free_delivery", 0, 0, 5.0),
        ("bogo", 100, 0, 4.0),
    ],
)
async def test_discount_amounts(session, shop, type_, value, max_discount, expected):
    _, restaurant, customer = shop
    await discounts.create_discount(
        session, restaurant.id, _payload(type=type_, value=value, max_discount=max_discount)
    )
    quote = await discounts.validate_discount(
        session, "lunch20", customer.id, restaurant.id, 40.0, CART
    )
    assert quote.discount_amount == expected
    assert quote.final_amount == round(40.0 - expected, 2)


async def test_bogo_needs_two_units(session, shop):
    _, restaurant, customer = shop
    await discounts.create_discount(session, restaurant.id, _payload(type="bogo", value=100))
    quote = await discounts.validate_discount(
        session, "LUNCH20", customer.id, restaurant.id, 10.0, CART[:1]
    )
    assert quote.discount_amount == 0.0


async def test_unknown_code_and_wrong_restaurant_are_not_found(session, shop):
    owner, restaurant, customer = shop
    await discounts.create_discount(session, restaurant.id, _payload())
    other = await make_restaurant(session, owner, name="Other place")
    with pytest.raises(NotFoundError, match="Invalid discount code"):
        await discounts.validate_discount(session, "NOPE", customer.id, restaurant.id, 40.0)
    with pytest.raises(NotFoundError):
        await discounts.validate_discount(session, "LUNCH20", customer.id, other.id, 40.0)


async def test_rules_checked_in_order(session, shop):
    _, restaurant, customer = shop
    now = utcnow()
    await discounts.create_discount(
        session, restaurant.id,
        _payload(code="LATER", start_date=now + timedelta(days=1), end_date=now + timedelta(days=2)),
    )
    await discounts.create_discount(
        session, restaurant.id, _payload(code="CAPPED", usage_limit=2, used_count=2)
    )
    await discounts.create_discount(session, restaurant.id, _payload(code="BIGONLY", min_order_amount=50))
    await discounts.create_discount(
        session, restaurant.id, _payload(code="GARLIC", applicable_items=["garlic"])
    )
    await discounts.create_discount(
        session, restaurant.id, _payload(code="DRINKS", applicable_items=["soda"])
    )

    with pytest.raises(CouponRejected, match="not yet active"):
        await discounts.validate_discount(session, "LATER", customer.id, restaurant.id, 40.0)
    with pytest.raises(CouponRejected, match="expired"):
        await discounts.validate_discount(
            session, "LATER", customer.id, restaurant.id, 40.0, now=now + timedelta(days=3)
        )
    with pytest.raises(CouponRejected, match="usage limit reached"):
        await discounts.validate_discount(session, "CAPPED", customer.id, restaurant.id, 40.0)
    with pytest.raises(CouponRejected, match="Minimum order amount of 50.00"):
        await discounts.validate_discount(session, "BIGONLY", customer.id, restaurant.id, 40.0)
    quote = await discounts.validate_discount(
        session, "GARLIC", customer.id, restaurant.id, 40.0, CART
    )
    assert quote.discount_amount == 8.0
    with pytest.raises(CouponRejected, match="not applicable"):
        await discounts.validate_discount(session, "DRINKS", customer.id, restaurant.id, 40.0, CART)


@pytest.mark.parametrize(
    "segment, delivered, allowed",
    [
        ("new", 0, True),
        ("new", 1, False),
        ("returning", 0, False),
        ("returning", 1, True),
        ("vip", 9, False),
        ("vip", 10, True),
    ],
)
async def test_customer_segments(session, shop, segment, delivered, allowed):
    _, restaurant, customer = shop
    await discounts.create_discount(session, restaurant.id, _payload(customer_segment=segment))
    for _ in range(delivered):
        await make_order(session, customer, restaurant, status="delivered")

    if allowed:
        await discounts.validate_discount(session, "LUNCH20", customer.id, restaurant.id, 40.0)
    else:
        with pytest.raises(CouponRejected, match=f"only for {'VIP' if segment == 'vip' else segment}"):
            await discounts.validate_discount(session, "LUNCH20", customer.id, restaurant.id, 40.0)


async def test_per_customer_limit_counts_live_orders(session, shop):
    _, restaurant, customer = shop
    await discounts.create_discount(session, restaurant.id, _payload(user_limit=1))
    order = await make_order(session, customer, restaurant, status="cancelled")
    order.coupon_code = "LUNCH20"
    await session.commit()
    await discounts.validate_discount(session, "LUNCH20", customer.id, restaurant.id, 40.0)

    used = await make_order(session, customer, restaurant, status="confirmed")
    used.coupon_code = "LUNCH20"
    await session.commit()
    with pytest.raises(CouponRejected, match="reached the usage limit"):
        await discounts.validate_discount(session, "LUNCH20", customer.id, restaurant.id, 40.0)


async def test_discount_endpoints(client, session, shop):
    owner, restaurant, customer = shop
    body = _payload()
    body["start_date"] = body["start_date"].isoformat()
    body["end_date"] = body["end_date"].isoformat()

    created = await client.post("/api/restaurant/discounts", json=body, headers=headers(owner))
    assert created.status_code == 201
    discount_id = created.json()["data"]["id"]

    listed = await client.get(
        "/api/restaurant/discounts", params={"status": "active"}, headers=headers(owner)
    )
    assert [d["code"] for d in listed.json()["data"]["discounts"]] == ["LUNCH20"]

    valid = await client.post(
        "/api/discounts/validate",
        json={"code": "lunch20", "restaurant_id": str(restaurant.id), "order_amount": 40},
        headers=headers(customer),
    )
    assert valid.status_code == 200
    assert valid.json()["data"]["discount_amount"] == 8.0

    customer_write = await client.post("/api/restaurant/discounts", json=body, headers=headers(customer))
    assert customer_write.status_code == 403

    deleted = await client.delete(f"/api/restaurant/discounts/{discount_id}", headers=headers(owner))
    assert deleted.status_code == 200
    gone = await client.get(f"/api/restaurant/discounts/{uuid.uuid4()}", headers=headers(owner))
    assert gone.status_code == 404
