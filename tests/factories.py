"""Row builders for tests. Each helper commits what it creates."""

from __future__ import annotations

import uuid
from datetime import timedelta
from typing import Optional

from orderflow.auth import Actor
from orderflow.models import (
    Coupon,
    MenuItem,
    Order,
    OrderItem,
    OrderStatusEvent,
    Restaurant,
    User,
)
from orderflow.utils.clock import utcnow

_FORWARD = ["pending", "confirmed", "preparing", "ready", "out_for_delivery", "delivered"]


def actor_for(user: User) -> Actor:
    return Actor(id=user.id, role=user.role)


def headers(user: User) -> dict[str, str]:
    return {"X-User-ID": str(user.id), "X-User-Role": user.role}


async def make_user(session, role: str = "customer", **fields) -> User:
    user = User(id=uuid.uuid4(), name=fields.pop("name", f"{role} user"), role=role, **fields)
    session.add(user)
    await session.commit()
    return user


async def make_restaurant(session, owner: User, **fields) -> Restaurant:
    restaurant = Restaurant(
        owner_id=owner.id,
        name=fields.pop("name", "Luigi's Trattoria"),
        cuisine_types=fields.pop("cuisine_types", ["italian"]),
        **fields,
    )
    session.add(restaurant)
    await session.commit()
    return restaurant


async def make_item(session, restaurant: Restaurant, **fields) -> MenuItem:
    item = MenuItem(
        restaurant_id=restaurant.id,
        name=fields.pop("name", "Margherita"),
        price=fields.pop("price", 10.0),
        category=fields.pop("category", "pizza"),
        track_stock=fields.pop("track_stock", "current_stock" in fields),
        **fields,
    )
    session.add(item)
    await session.commit()
    return item


async def make_coupon(session, code: str = "SAVE10", **fields) -> Coupon:
    now = utcnow()
    restaurants = fields.pop("applicable_restaurants", [])
    coupon = Coupon(
        code=code,
        title=fields.pop("title", code),
        discount_type=fields.pop("discount_type", "percentage"),
        discount_value=fields.pop("discount_value", 10),
        start_date=fields.pop("start_date", now - timedelta(days=1)),
        end_date=fields.pop("end_date", now + timedelta(days=30)),
        applicable_restaurants=restaurants,
        **fields,
    )
    session.add(coupon)
    await session.commit()
    return coupon


async def make_order(
    session,
    customer: User,
    restaurant: Restaurant,
    status: str = "pending",
    total: float = 30.0,
    order_type: str = "delivery",
    item: Optional[MenuItem] = None,
    quantity: int = 1,
) -> Order:
    """An order whose history walks the forward path up to `status`."""
    path = _FORWARD[: _FORWARD.index(status) + 1] if status in _FORWARD else ["pending", status]
    if order_type == "pickup" and "out_for_delivery" in path:
        path.remove("out_for_delivery")
    lines = []
    if item is not None:
        lines.append(OrderItem(
            menu_item_id=item.id, name=item.name, unit_price=item.price, quantity=quantity
        ))
    order = Order(
        order_number=f"FS{uuid.uuid4().int % 10**9:09d}",
        customer_id=customer.id,
        restaurant_id=restaurant.id,
        order_type=order_type,
        status=status,
        subtotal=total,
        total=total,
        items=lines,
        status_history=[OrderStatusEvent(status=s) for s in path],
        delivered_at=utcnow() if status == "delivered" else None,
    )
    session.add(order)
    await session.commit()
    return order
