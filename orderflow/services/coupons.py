"""
Coupon validation and redemption.

Validation short-circuits on the first failed rule, in this order:
  1. coupon exists and is active
  2. now is inside [start_date, end_date]
  3. global usage limit not reached
  4. per-user usage limit not reached
  5. new-users-only coupons require a user with no orders
  6. order value reaches the minimum
  7. restaurant is inside the coupon's scope (empty scope = global)

Redemption closes the check-then-increment race at the storage layer: the
global counter moves with a conditional UPDATE, and each per-user redemption
claims a numbered slot guarded by a unique constraint.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from orderflow.errors import CouponRejected, NotFoundError, ValidationError
from orderflow.models import Coupon, Order, Restaurant, UsedCoupon, User
from orderflow.services import favorites
from orderflow.utils.clock import ensure_utc, utcnow

logger = logging.getLogger(__name__)

DISCOUNT_TYPES = ("percentage", "fixed")
COUPON_CATEGORIES = ("discount", "delivery", "cashback", "combo")


@dataclass
class CouponQuote:
    """Outcome of a successful validation."""

    coupon: Coupon
    discount_amount: float
    final_amount: float


def compute_discount(
    discount_type: str,
    discount_value: float,
    order_value: float,
    max_discount_amount: Optional[float] = None,
) -> tuple[float, float]:
    """
    Return (discount_amount, final_amount), both rounded to cents.
    The discount never exceeds the order value and is never negative.
    """
    if discount_type == "percentage":
        discount = order_value * discount_value / 100
        if max_discount_amount:
            discount = min(discount, max_discount_amount)
    elif discount_type == "fixed":
        discount = discount_value
    else:
        raise ValidationError(f"Unknown discount type '{discount_type}'")

    discount = max(0.0, min(discount, order_value))
    discount = round(discount, 2)
    final_amount = round(max(0.0, order_value - discount), 2)
    return discount, final_amount


async def _get_user(db: AsyncSession, user_id: uuid.UUID) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


async def _get_coupon_by_code(db: AsyncSession, code: str) -> Optional[Coupon]:
    result = await db.execute(select(Coupon).where(Coupon.code == code.strip().upper()))
    return result.scalar_one_or_none()


async def user_usage_count(db: AsyncSession, coupon_id: uuid.UUID, user_id: uuid.UUID) -> int:
    result = await db.execute(
        select(func.count(UsedCoupon.id)).where(
            UsedCoupon.coupon_id == coupon_id, UsedCoupon.user_id == user_id
        )
    )
    return result.scalar() or 0


async def validate_coupon(
    db: AsyncSession,
    code: str,
    user_id: uuid.UUID,
    order_value: float,
    restaurant_id: Optional[uuid.UUID] = None,
    now: Optional[datetime] = None,
) -> CouponQuote:
    """Run every eligibility rule and price the discount. Writes nothing."""
    if order_value is None or order_value < 0:
        raise ValidationError("Order value must be a non-negative number")
    now = now or utcnow()

    coupon = await _get_coupon_by_code(db, code)
    if coupon is None or not coupon.is_active:
        raise NotFoundError("Invalid or inactive coupon code")

    if now < ensure_utc(coupon.start_date) or now > ensure_utc(coupon.end_date):
        raise CouponRejected("Coupon has expired or is not yet active")

    if coupon.usage_count >= coupon.usage_limit_total:
        raise CouponRejected("Coupon usage limit exceeded")

    user = await _get_user(db, user_id)
    if await user_usage_count(db, coupon.id, user_id) >= coupon.usage_limit_per_user:
        raise CouponRejected("You have already used this coupon the maximum number of times")

    if coupon.new_users_only and user.order_count > 0:
        raise CouponRejected("This coupon is only for new users")

    if order_value < coupon.min_order_value:
        raise CouponRejected(
            f"Minimum order value of {coupon.min_order_value:.2f} required"
        )

    scope = coupon.applicable_restaurant_ids
    if scope and restaurant_id not in scope:
        raise CouponRejected("Coupon not applicable for this restaurant")

    discount, final_amount = compute_discount(
        coupon.discount_type,
        coupon.discount_value,
        order_value,
        coupon.max_discount_amount,
    )
    return CouponQuote(coupon=coupon, discount_amount=discount, final_amount=final_amount)


async def redeem(
    db: AsyncSession,
    quote: CouponQuote,
    user_id: uuid.UUID,
    order_id: Optional[uuid.UUID],
) -> UsedCoupon:
    """
    Record a validated redemption on the session without committing.

    Raises CouponRejected when a concurrent redemption took the last global
    use or the same per-user slot; the session is rolled back in that case.
    """
    coupon = quote.coupon

    claimed = await db.execute(
        update(Coupon)
        .where(Coupon.id == coupon.id, Coupon.usage_count < Coupon.usage_limit_total)
        .values(usage_count=Coupon.usage_count + 1)
        .execution_options(synchronize_session=False)
    )
    if claimed.rowcount != 1:
        await db.rollback()
        raise CouponRejected("Coupon usage limit exceeded")

    sequence = await user_usage_count(db, coupon.id, user_id) + 1
    if sequence > coupon.usage_limit_per_user:
        await db.rollback()
        raise CouponRejected("You have already used this coupon the maximum number of times")

    record = UsedCoupon(
        user_id=user_id,
        coupon_id=coupon.id,
        order_id=order_id,
        sequence=sequence,
        discount_amount=quote.discount_amount,
    )
    db.add(record)
    try:
        await db.flush()
    except IntegrityError:
        await db.rollback()
        logger.warning("Concurrent redemption of coupon %s by user %s", coupon.code, user_id)
        raise CouponRejected("You have already used this coupon the maximum number of times")
    return record


_CLOSED_STATUSES = ("cancelled", "delivered")


async def apply_coupon(
    db: AsyncSession,
    code: str,
    user_id: uuid.UUID,
    order_id: uuid.UUID,
) -> dict[str, Any]:
    """
    Attach a coupon to one of the user's open orders and commit.

    The order's own subtotal and restaurant are validated against the
    coupon; an order carries at most one coupon.
    """
    order = await db.get(Order, order_id)
    if order is None or order.customer_id != user_id:
        raise NotFoundError("Order not found")
    if order.status in _CLOSED_STATUSES:
        raise CouponRejected(f"Cannot apply a coupon to a {order.status} order")
    if order.coupon_code:
        raise CouponRejected("A coupon has already been applied to this order")

    quote = await validate_coupon(db, code, user_id, order.subtotal, order.restaurant_id)
    total = round(
        max(
            0.0,
            order.subtotal + order.delivery_fee + order.service_fee + order.tax + order.tip
            - quote.discount_amount,
        ),
        2,
    )
    attached = await db.execute(
        update(Order)
        .where(
            Order.id == order.id,
            Order.coupon_code.is_(None),
            Order.status.not_in(_CLOSED_STATUSES),
        )
        .values(coupon_code=quote.coupon.code, discount=quote.discount_amount, total=total)
        .execution_options(synchronize_session=False)
    )
    if attached.rowcount != 1:
        await db.rollback()
        raise CouponRejected("A coupon has already been applied to this order")

    record = await redeem(db, quote, user_id, order.id)
    await db.commit()
    await db.refresh(order)
    logger.info(
        "Coupon %s applied by user %s to order %s (discount %.2f)",
        quote.coupon.code, user_id, order.order_number, quote.discount_amount,
    )
    return {
        "coupon_id": quote.coupon.id,
        "code": quote.coupon.code,
        "title": quote.coupon.title,
        "order_id": order.id,
        "discount_amount": quote.discount_amount,
        "final_amount": quote.final_amount,
        "order_total": order.total,
        "used_at": record.used_at,
    }


# ── Catalogue ────────────────────────────────────────────────────────────────


def _can_use(coupon: Coupon, times_used: int, user: User) -> bool:
    if times_used >= coupon.usage_limit_per_user:
        return False
    if coupon.usage_count >= coupon.usage_limit_total:
        return False
    return not (coupon.new_users_only and user.order_count > 0)


async def list_coupons(
    db: AsyncSession,
    user_id: uuid.UUID,
    view: str = "all",
    category: Optional[str] = None,
    restaurant_id: Optional[uuid.UUID] = None,
    page: int = 1,
    limit: int = 20,
) -> dict[str, Any]:
    """
    Coupon catalogue for a user.

    view: 'available' (usable now), 'used' (redeemed at least once),
    'expired' (inactive or past end date), 'favorites' (marked by the user)
    or 'all' (currently live).
    """
    user = await _get_user(db, user_id)
    now = utcnow()

    usage_rows = (
        await db.execute(select(UsedCoupon).where(UsedCoupon.user_id == user_id))
    ).scalars().all()
    usage_by_coupon: dict[uuid.UUID, list[UsedCoupon]] = {}
    for row in usage_rows:
        usage_by_coupon.setdefault(row.coupon_id, []).append(row)
    favorite_ids = await favorites.favorite_coupon_ids(db, user_id)

    live = select(Coupon).where(
        Coupon.is_active.is_(True), Coupon.start_date <= now, Coupon.end_date >= now
    )
    if category:
        live = live.where(Coupon.category == category)
    live_coupons = (
        await db.execute(live.order_by(Coupon.created_at.desc()))
    ).scalars().all()
    if restaurant_id:
        live_coupons = [
            c for c in live_coupons
            if not c.applicable_restaurant_ids or restaurant_id in c.applicable_restaurant_ids
        ]

    if view == "favorites":
        coupons = (
            await db.execute(select(Coupon).where(Coupon.id.in_(list(favorite_ids))))
        ).scalars().all() if favorite_ids else []
    elif view == "used":
        coupons = (
            await db.execute(select(Coupon).where(Coupon.id.in_(list(usage_by_coupon))))
        ).scalars().all() if usage_by_coupon else []
    elif view == "expired":
        coupons = (
            await db.execute(
                select(Coupon)
                .where((Coupon.end_date < now) | (Coupon.is_active.is_(False)))
                .order_by(Coupon.end_date.desc())
            )
        ).scalars().all()
    elif view == "available":
        coupons = [
            c for c in live_coupons
            if _can_use(c, len(usage_by_coupon.get(c.id, [])), user)
        ]
    else:
        coupons = live_coupons

    entries = []
    for coupon in coupons:
        used = usage_by_coupon.get(coupon.id, [])
        entries.append({
            "coupon": coupon,
            "times_used": len(used),
            "can_use": coupon in live_coupons and _can_use(coupon, len(used), user),
            "is_favorite": coupon.id in favorite_ids,
        })

    skip = (page - 1) * limit
    total_savings = round(sum(r.discount_amount or 0 for r in usage_rows), 2)

    return {
        "coupons": entries[skip: skip + limit],
        "pagination": {
            "current_page": page,
            "total_pages": (len(entries) + limit - 1) // limit,
            "total_coupons": len(entries),
            "has_more": skip + limit < len(entries),
        },
        "statistics": {
            "total_savings": total_savings,
            "total_coupons_used": len(usage_rows),
            "available_coupons": sum(
                1 for c in live_coupons
                if _can_use(c, len(usage_by_coupon.get(c.id, [])), user)
            ),
            "category_stats": await category_stats(db, now),
        },
    }


async def category_stats(db: AsyncSession, now: Optional[datetime] = None) -> list[dict[str, Any]]:
    """Count, average and max discount value of live coupons per category."""
    now = now or utcnow()
    result = await db.execute(
        select(
            Coupon.category,
            func.count(Coupon.id),
            func.avg(Coupon.discount_value),
            func.max(Coupon.discount_value),
        )
        .where(Coupon.is_active.is_(True), Coupon.start_date <= now, Coupon.end_date >= now)
        .group_by(Coupon.category)
    )
    return [
        {
            "category": category,
            "count": count,
            "avg_discount": round(float(avg or 0), 2),
            "max_discount": float(maximum or 0),
        }
        for category, count, avg, maximum in result.all()
    ]


async def create_coupon(db: AsyncSession, payload: dict[str, Any]) -> Coupon:
    """Create a coupon (admin). Codes are stored upper-case and must be unique."""
    code = payload["code"].strip().upper()
    if payload["discount_type"] not in DISCOUNT_TYPES:
        raise ValidationError("Discount type must be 'percentage' or 'fixed'")
    if payload["discount_type"] == "percentage" and payload["discount_value"] > 100:
        raise ValidationError("Percentage discount cannot exceed 100")
    if ensure_utc(payload["end_date"]) <= ensure_utc(payload["start_date"]):
        raise ValidationError("End date must be after start date")
    if await _get_coupon_by_code(db, code) is not None:
        raise ValidationError(f"Coupon code '{code}' already exists")

    restaurant_ids = payload.get("applicable_restaurant_ids") or []
    restaurants = []
    if restaurant_ids:
        restaurants = (
            await db.execute(select(Restaurant).where(Restaurant.id.in_(restaurant_ids)))
        ).scalars().all()
        if len(restaurants) != len(set(restaurant_ids)):
            raise NotFoundError("One or more applicable restaurants not found")

    coupon = Coupon(
        code=code,
        title=payload["title"],
        description=payload.get("description"),
        category=payload.get("category") or "discount",
        discount_type=payload["discount_type"],
        discount_value=payload["discount_value"],
        max_discount_amount=payload.get("max_discount_amount"),
        min_order_value=payload.get("min_order_value") or 0,
        start_date=payload["start_date"],
        end_date=payload["end_date"],
        usage_limit_total=payload.get("usage_limit_total") or 1000,
        usage_limit_per_user=payload.get("usage_limit_per_user") or 1,
        new_users_only=bool(payload.get("new_users_only")),
        applicable_restaurants=list(restaurants),
    )
    db.add(coupon)
    await db.commit()
    logger.info("Coupon %s created", code)
    return coupon
