"""
Restaurant discounts.

A discount belongs to one restaurant and is managed by its owner. Customers
validate a code against a cart to get a quote; the rules are checked in a
fixed order so the first failing rule is the one reported.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from orderflow.errors import CouponRejected, NotFoundError, ValidationError
from orderflow.models import Discount, Order
from orderflow.schemas.common import Pagination
from orderflow.utils.clock import ensure_utc, utcnow

logger = logging.getLogger(__name__)

DISCOUNT_TYPES = ("percentage", "fixed", "bogo", "free_delivery")
SEGMENTS = ("all", "new", "returning", "vip")
LIST_STATUSES = ("all", "active", "scheduled", "expired")
FREE_DELIVERY_VALUE = 5.0
VIP_MIN_ORDERS = 10
# Orders in these states count toward a customer's per-discount limit
_COUNTED_STATUSES = ("confirmed", "preparing", "ready", "out_for_delivery", "delivered")


@dataclass
class DiscountQuote:
    discount: Discount
    discount_amount: float
    final_amount: float


def _check_window(start: datetime, end: datetime) -> None:
    if ensure_utc(end) <= ensure_utc(start):
        raise ValidationError("End date must be after start date")


def _check_value(type_: str, value: float) -> None:
    if type_ in ("percentage", "bogo") and value > 100:
        raise ValidationError("Percentage discount cannot exceed 100")


async def _code_taken(db: AsyncSession, code: str, exclude: Optional[uuid.UUID] = None) -> bool:
    query = select(Discount.id).where(Discount.code == code)
    if exclude is not None:
        query = query.where(Discount.id != exclude)
    return (await db.execute(query)).first() is not None


async def _get_owned(db: AsyncSession, restaurant_id: uuid.UUID, discount_id: uuid.UUID) -> Discount:
    discount = await db.get(Discount, discount_id)
    if discount is None or discount.restaurant_id != restaurant_id:
        raise NotFoundError("Discount not found")
    return discount


async def create_discount(
    db: AsyncSession, restaurant_id: uuid.UUID, payload: dict[str, Any]
) -> Discount:
    code = payload["code"].strip().upper()
    _check_window(payload["start_date"], payload["end_date"])
    _check_value(payload["type"], payload["value"])
    if await _code_taken(db, code):
        raise ValidationError("Discount code already exists")

    discount = Discount(restaurant_id=restaurant_id, **{**payload, "code": code})
    db.add(discount)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ValidationError("Discount code already exists")
    await db.refresh(discount)
    logger.info("Discount %s created for restaurant %s", code, restaurant_id)
    return discount


async def update_discount(
    db: AsyncSession,
    restaurant_id: uuid.UUID,
    discount_id: uuid.UUID,
    changes: dict[str, Any],
) -> Discount:
    discount = await _get_owned(db, restaurant_id, discount_id)
    if "code" in changes:
        changes["code"] = changes["code"].strip().upper()
        if changes["code"] != discount.code and await _code_taken(db, changes["code"], discount.id):
            raise ValidationError("Discount code already exists")
    _check_window(
        changes.get("start_date", discount.start_date), changes.get("end_date", discount.end_date)
    )
    _check_value(changes.get("type", discount.type), changes.get("value", discount.value))

    for field, value in changes.items():
        setattr(discount, field, value)
    await db.commit()
    await db.refresh(discount)
    return discount


async def delete_discount(db: AsyncSession, restaurant_id: uuid.UUID, discount_id: uuid.UUID) -> None:
    discount = await _get_owned(db, restaurant_id, discount_id)
    await db.delete(discount)
    await db.commit()
    logger.info("Discount %s deleted from restaurant %s", discount.code, restaurant_id)


async def get_discount(db: AsyncSession, restaurant_id: uuid.UUID, discount_id: uuid.UUID) -> Discount:
    return await _get_owned(db, restaurant_id, discount_id)


async def list_discounts(
    db: AsyncSession,
    restaurant_id: uuid.UUID,
    status: str = "all",
    search: Optional[str] = None,
    page: int = 1,
    limit: int = 20,
) -> dict[str, Any]:
    """
    status: 'active' (live now), 'scheduled' (not started),
    'expired' (ended) or 'all'.
    """
    if status not in LIST_STATUSES:
        raise ValidationError(f"Invalid status filter: {status}")
    now = utcnow()
    query = select(Discount).where(Discount.restaurant_id == restaurant_id)
    if status == "active":
        query = query.where(
            Discount.is_active.is_(True), Discount.start_date <= now, Discount.end_date >= now
        )
    elif status == "scheduled":
        query = query.where(Discount.start_date > now)
    elif status == "expired":
        query = query.where(Discount.end_date < now)
    if search:
        pattern = f"%{search}%"
        query = query.where(
            or_(
                Discount.name.ilike(pattern),
                Discount.code.ilike(pattern),
                Discount.description.ilike(pattern),
            )
        )

    total = (
        await db.execute(select(func.count()).select_from(query.subquery()))
    ).scalar() or 0
    rows = (
        await db.execute(
            query.order_by(Discount.created_at.desc()).limit(limit).offset((page - 1) * limit)
        )
    ).scalars().all()

    everything = (
        await db.execute(select(Discount).where(Discount.restaurant_id == restaurant_id))
    ).scalars().all()
    live = [
        d for d in everything
        if d.is_active and ensure_utc(d.start_date) <= now <= ensure_utc(d.end_date)
    ]
    return {
        "discounts": list(rows),
        "stats": {
            "total_discounts": len(everything),
            "active_discounts": len(live),
            "total_redemptions": sum(d.used_count for d in everything),
        },
        "pagination": Pagination.of(total, page, limit).model_dump(),
    }


def compute_amount(discount: Discount, order_amount: float, items: list[dict[str, Any]]) -> float:
    """Discount value for a cart, never more than the order amount."""
    if discount.type == "percentage":
        amount = order_amount * discount.value / 100
        if discount.max_discount > 0:
            amount = min(amount, discount.max_discount)
    elif discount.type == "fixed":
        amount = discount.value
    elif discount.type == "free_delivery":
        amount = FREE_DELIVERY_VALUE
    elif discount.type == "bogo":
        # Needs two units in the cart; the cheapest one is discounted
        units = sum(item.get("quantity", 1) for item in items)
        amount = 0.0
        if units >= 2:
            cheapest = min(item["price"] for item in items)
            amount = cheapest * discount.value / 100
    else:
        amount = 0.0
    return round(min(amount, order_amount), 2)


def _matches_items(discount: Discount, items: list[dict[str, Any]]) -> bool:
    scope = [s.lower() for s in discount.applicable_items or []]
    if not scope or "all" in scope:
        return True
    return any(any(s in item["name"].lower() for s in scope) for item in items)


async def _delivered_count(db: AsyncSession, user_id: uuid.UUID) -> int:
    return (
        await db.execute(
            select(func.count(Order.id)).where(
                Order.customer_id == user_id, Order.status == "delivered"
            )
        )
    ).scalar() or 0


async def validate_discount(
    db: AsyncSession,
    code: str,
    user_id: uuid.UUID,
    restaurant_id: uuid.UUID,
    order_amount: float,
    items: Optional[list[dict[str, Any]]] = None,
    now: Optional[datetime] = None,
) -> DiscountQuote:
    """
    Check a discount code against a cart. Raises NotFoundError for an
    unknown code and CouponRejected for the first rule that fails.
    Read-only: nothing is reserved.
    """
    items = items or []
    now = now or utcnow()
    discount = (
        await db.execute(
            select(Discount).where(
                Discount.code == code.strip().upper(),
                Discount.restaurant_id == restaurant_id,
                Discount.is_active.is_(True),
            )
        )
    ).scalar_one_or_none()
    if discount is None:
        raise NotFoundError("Invalid discount code")

    if now < ensure_utc(discount.start_date):
        raise CouponRejected("Discount is not yet active")
    if now > ensure_utc(discount.end_date):
        raise CouponRejected("Discount has expired")
    if discount.usage_limit > 0 and discount.used_count >= discount.usage_limit:
        raise CouponRejected("Discount usage limit reached")
    if order_amount < discount.min_order_amount:
        raise CouponRejected(f"Minimum order amount of {discount.min_order_amount:.2f} required")

    if discount.customer_segment != "all":
        delivered = await _delivered_count(db, user_id)
        if discount.customer_segment == "new" and delivered > 0:
            raise CouponRejected("This discount is only for new customers")
        if discount.customer_segment == "returning" and delivered == 0:
            raise CouponRejected("This discount is only for returning customers")
        if discount.customer_segment == "vip" and delivered < VIP_MIN_ORDERS:
            raise CouponRejected("This discount is only for VIP customers")

    if discount.user_limit > 0:
        used = (
            await db.execute(
                select(func.count(Order.id)).where(
                    Order.customer_id == user_id,
                    Order.restaurant_id == restaurant_id,
                    Order.coupon_code == discount.code,
                    Order.status.in_(_COUNTED_STATUSES),
                )
            )
        ).scalar() or 0
        if used >= discount.user_limit:
            raise CouponRejected("You have reached the usage limit for this discount")

    if not _matches_items(discount, items):
        raise CouponRejected("This discount is not applicable to your selected items")

    amount = compute_amount(discount, order_amount, items)
    return DiscountQuote(
        discount=discount,
        discount_amount=amount,
        final_amount=round(order_amount - amount, 2),
    )
