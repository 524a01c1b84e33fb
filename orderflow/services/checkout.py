"""
Order placement.

Prices are snapshotted from the menu at checkout. The order row, its line
items, the first status event, the coupon redemption and the customer's
order counter commit in one transaction; the owner notification follows.
"""

from __future__ import annotations

import logging
import random
import time

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from orderflow.auth import Actor
from orderflow.config import settings
from orderflow.errors import Forbidden, NotFoundError, StateError, ValidationError
from orderflow.models import MenuItem, Order, OrderItem, OrderStatusEvent, Restaurant, User
from orderflow.schemas.order import PlaceOrderRequest
from orderflow.services import coupons, reporting, system
from orderflow.services.notifications import notify_order_event, run_side_effect

logger = logging.getLogger(__name__)


def generate_order_number() -> str:
    """FS + last 6 digits of the millisecond clock + 3 random digits."""
    stamp = str(int(time.time() * 1000))[-6:]
    return f"FS{stamp}{random.randint(0, 999):03d}"


def price_order(
    subtotal: float,
    order_type: str,
    tip: float = 0,
    discount: float = 0,
) -> dict[str, float]:
    """Pricing breakdown; total = subtotal + fees + tax + tip - discount, never negative."""
    delivery_fee = settings.delivery_fee if order_type == "delivery" else 0.0
    service_fee = settings.service_fee
    tax = round(subtotal * settings.tax_rate, 2)
    discount = round(min(max(discount, 0.0), subtotal), 2)
    total = round(max(0.0, subtotal + delivery_fee + service_fee + tax + tip - discount), 2)
    return {
        "subtotal": round(subtotal, 2),
        "delivery_fee": round(delivery_fee, 2),
        "service_fee": round(service_fee, 2),
        "tax": tax,
        "tip": round(tip, 2),
        "discount": discount,
        "total": total,
    }


async def place_order(db: AsyncSession, actor: Actor, request: PlaceOrderRequest) -> Order:
    if actor.role != "customer":
        raise Forbidden("Only customers can place orders")
    customer = await db.get(User, actor.id)
    if customer is None:
        raise NotFoundError("User not found")
    limits = await system.get_setting(db, "limits")
    if await system.active_order_count(db, actor.id) >= limits["max_active_orders_per_user"]:
        raise StateError("Too many active orders; wait for one to be delivered")

    restaurant = await db.get(Restaurant, request.restaurant_id)
    if restaurant is None or not restaurant.is_active:
        raise NotFoundError("Restaurant not found")

    wanted = {line.menu_item_id for line in request.items}
    menu = {
        item.id: item
        for item in (
            await db.execute(
                select(MenuItem).where(
                    MenuItem.id.in_(wanted), MenuItem.restaurant_id == restaurant.id
                )
            )
        ).scalars()
    }

    lines: list[OrderItem] = []
    subtotal = 0.0
    errors = []
    for line in request.items:
        item = menu.get(line.menu_item_id)
        if item is None:
            errors.append(f"Menu item {line.menu_item_id} not found")
            continue
        if not item.is_available:
            errors.append(f"{item.name} is currently unavailable")
            continue
        extras = sum(c.additional_price for c in line.customizations)
        subtotal += item.price * line.quantity + extras
        lines.append(OrderItem(
            menu_item_id=item.id,
            name=item.name,
            unit_price=item.price,
            quantity=line.quantity,
            customizations=[c.model_dump() for c in line.customizations],
            special_instructions=line.special_instructions,
        ))
    if errors:
        raise ValidationError("Some items cannot be ordered", errors=errors)

    quote = None
    if request.coupon_code:
        quote = await coupons.validate_coupon(
            db, request.coupon_code, actor.id, round(subtotal, 2), restaurant.id
        )
    pricing = price_order(
        subtotal, request.order_type, request.tip, quote.discount_amount if quote else 0.0
    )

    order = Order(
        order_number=generate_order_number(),
        customer_id=actor.id,
        restaurant_id=restaurant.id,
        order_type=request.order_type,
        status="pending",
        coupon_code=quote.coupon.code if quote else None,
        delivery_address=(
            request.delivery_address.model_dump() if request.delivery_address else None
        ),
        special_instructions=request.special_instructions,
        items=lines,
        status_history=[OrderStatusEvent(
            status="pending", note="Order placed", actor_id=actor.id, actor_role=actor.role
        )],
        **pricing,
    )
    db.add(order)
    await db.flush()

    if quote is not None:
        await coupons.redeem(db, quote, actor.id, order.id)

    await db.execute(
        update(User)
        .where(User.id == actor.id)
        .values(order_count=User.order_count + 1)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    reporting.clear_cache()
    await db.refresh(order)
    logger.info(
        "Order %s placed by %s at restaurant %s (total %.2f)",
        order.order_number, actor.id, restaurant.id, order.total,
    )

    async def _effect(session: AsyncSession) -> None:
        await notify_order_event(
            session, restaurant.owner_id, "order-placed", order.id, order.order_number,
            restaurant_name=restaurant.name,
        )

    await run_side_effect(f"new-order notice for order {order.id}", _effect)
    return order
