"""
Loyalty accrual, redemption and expiry.

Earning is idempotent per (user, order): a pre-check gives the friendly
error, and the partial unique index on earned transactions rejects the
second writer when two requests race past the pre-check.
Redemption debits the balance with a conditional UPDATE, so concurrent
redemptions can never take the balance below the reward price.
"""

from __future__ import annotations

import logging
import math
import uuid
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from orderflow.config import settings
from orderflow.errors import (
    AlreadyEarned,
    InsufficientPoints,
    NotFoundError,
    StateError,
    ValidationError,
)
from orderflow.models import LoyaltyTransaction, Order, User
from orderflow.utils.clock import utcnow
from orderflow.utils.loyalty_data import (
    BASE_EARN_RATE,
    BIG_SPENDER_THRESHOLD,
    LEVEL_MULTIPLIERS,
    LEVEL_ORDER,
    LEVEL_THRESHOLDS,
    ORDER_MILESTONES,
    REWARDS,
)

logger = logging.getLogger(__name__)

TRANSACTION_TYPES = ("earned", "redeemed", "expired")


# ── Pure tiering helpers ─────────────────────────────────────────────────────


def level_for_points(points: int) -> str:
    """Member < 500 ≤ Bronze < 2000 ≤ Silver < 5000 ≤ Gold < 10000 ≤ Platinum."""
    for minimum, level in LEVEL_THRESHOLDS:
        if points >= minimum:
            return level
    return "Member"


def level_info(points: int) -> dict[str, Any]:
    """Level, next level and the points still needed to reach it."""
    level = level_for_points(points)
    idx = LEVEL_ORDER.index(level)
    if idx == len(LEVEL_ORDER) - 1:
        return {"level": level, "next_level": None, "points_to_next": 0, "progress": 100.0}

    next_level = LEVEL_ORDER[idx + 1]
    thresholds = {name: minimum for minimum, name in LEVEL_THRESHOLDS}
    floor_pts, next_pts = thresholds[level], thresholds[next_level]
    progress = (points - floor_pts) / (next_pts - floor_pts) * 100
    return {
        "level": level,
        "next_level": next_level,
        "points_to_next": next_pts - points,
        "progress": round(progress, 1),
    }


def points_for_order(order_total: float, level: str) -> int:
    """floor(order_total × base rate × level multiplier)."""
    multiplier = LEVEL_MULTIPLIERS.get(level, 1.0)
    raw = Decimal(str(order_total)) * BASE_EARN_RATE * Decimal(str(multiplier))
    return max(0, math.floor(raw))


# ── Accrual ──────────────────────────────────────────────────────────────────


async def _get_user(db: AsyncSession, user_id: uuid.UUID) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


async def _already_earned(db: AsyncSession, user_id: uuid.UUID, order_id: uuid.UUID) -> bool:
    result = await db.execute(
        select(LoyaltyTransaction.id).where(
            LoyaltyTransaction.user_id == user_id,
            LoyaltyTransaction.order_id == order_id,
            LoyaltyTransaction.type == "earned",
        )
    )
    return result.first() is not None


async def earn_points(
    db: AsyncSession,
    user_id: uuid.UUID,
    order_id: uuid.UUID,
    order_total: Optional[float] = None,
) -> dict[str, Any]:
    """
    Credit points for a delivered order.

    The level multiplier is taken from the balance *before* this order's
    points are added. Raises AlreadyEarned on a repeat for the same order.
    """
    order = await db.get(Order, order_id)
    if order is None or order.customer_id != user_id:
        raise NotFoundError("Order not found")
    if order.status != "delivered":
        raise StateError("Points can only be earned for delivered orders")

    if await _already_earned(db, user_id, order_id):
        raise AlreadyEarned("Points already earned for this order")

    user = await _get_user(db, user_id)
    total = order.total if order_total is None else order_total
    current = user.loyalty_points or 0
    level = level_for_points(current)
    points = points_for_order(total, level)
    expires_at = utcnow() + timedelta(days=settings.loyalty_points_ttl_days)

    transaction = LoyaltyTransaction(
        user_id=user_id,
        order_id=order_id,
        type="earned",
        points=points,
        description=f"Points earned from order #{order.order_number}",
        expires_at=expires_at,
        meta={
            "order_value": total,
            "user_level": level,
            "multiplier": LEVEL_MULTIPLIERS.get(level, 1.0),
        },
    )
    db.add(transaction)
    try:
        await db.flush()
    except IntegrityError:
        await db.rollback()
        logger.warning("Duplicate earn for order %s rejected by unique index", order_id)
        raise AlreadyEarned("Points already earned for this order")

    await db.execute(
        update(User)
        .where(User.id == user_id)
        .values(loyalty_points=User.loyalty_points + points)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    await db.refresh(user)

    logger.info("User %s earned %d points for order %s (%s)", user_id, points, order_id, level)
    return {
        "points_earned": points,
        "total_points": user.loyalty_points,
        "level": level_for_points(user.loyalty_points),
        "transaction_id": transaction.id,
        "expires_at": expires_at,
    }


# ── Redemption ───────────────────────────────────────────────────────────────


async def redeem_reward(db: AsyncSession, user_id: uuid.UUID, reward_id: str) -> dict[str, Any]:
    """Spend points on a catalogue reward."""
    reward = REWARDS.get(reward_id)
    if reward is None:
        raise ValidationError("Invalid reward ID")
    user = await _get_user(db, user_id)
    cost = reward["points_required"]

    debited = await db.execute(
        update(User)
        .where(User.id == user_id, User.loyalty_points >= cost)
        .values(loyalty_points=User.loyalty_points - cost)
        .execution_options(synchronize_session=False)
    )
    if debited.rowcount != 1:
        await db.rollback()
        raise InsufficientPoints("Insufficient points for this reward")

    transaction = LoyaltyTransaction(
        user_id=user_id,
        type="redeemed",
        points=-cost,
        description=f"Redeemed: {reward['name']}",
        meta={"reward_id": reward_id, "reward_type": reward["type"], "reward_value": reward["value"]},
    )
    db.add(transaction)
    await db.commit()
    await db.refresh(user)

    logger.info("User %s redeemed %s for %d points", user_id, reward_id, cost)
    return {
        "reward_id": reward_id,
        "reward": reward,
        "points_deducted": cost,
        "remaining_points": user.loyalty_points,
        "transaction_id": transaction.id,
    }


# ── Expiry sweep ─────────────────────────────────────────────────────────────


async def expire_points(db: AsyncSession, now: Optional[datetime] = None) -> dict[str, int]:
    """
    Expire earned transactions past their expiry date.

    Each one is deactivated, mirrored by an 'expired' transaction, and
    deducted from the balance (never below zero). Not scheduled: run from
    the admin endpoint or scripts/expire_points.py.
    """
    now = now or utcnow()
    due = (
        await db.execute(
            select(LoyaltyTransaction).where(
                LoyaltyTransaction.type == "earned",
                LoyaltyTransaction.is_active.is_(True),
                LoyaltyTransaction.expires_at.is_not(None),
                LoyaltyTransaction.expires_at <= now,
            )
        )
    ).scalars().all()

    expired_points = 0
    for earned in due:
        user = await db.get(User, earned.user_id)
        if user is None:
            earned.is_active = False
            continue
        deduct = min(earned.points, user.loyalty_points or 0)
        user.loyalty_points = (user.loyalty_points or 0) - deduct
        earned.is_active = False
        db.add(LoyaltyTransaction(
            user_id=earned.user_id,
            order_id=None,
            type="expired",
            points=-deduct,
            description="Points expired",
            meta={"source_transaction_id": str(earned.id), "original_points": earned.points},
        ))
        expired_points += deduct

    await db.commit()
    logger.info("Expired %d transactions (%d points)", len(due), expired_points)
    return {"transactions_expired": len(due), "points_expired": expired_points}


# ── Account view ─────────────────────────────────────────────────────────────


def _achievements(order_count: int, total_spent: float, level: str) -> list[dict[str, Any]]:
    """Earned achievements first, then the order milestones still ahead."""
    earned: list[dict[str, Any]] = [
        {"name": name, "description": description, "earned": True}
        for name, description, _, target in ORDER_MILESTONES
        if order_count >= target
    ]
    if total_spent >= BIG_SPENDER_THRESHOLD:
        earned.append({
            "name": "Big Spender",
            "description": f"Spent {BIG_SPENDER_THRESHOLD:,}+",
            "earned": True,
        })
    if level == "Platinum":
        earned.append({
            "name": "Platinum Member",
            "description": "Reached Platinum level",
            "earned": True,
        })
    upcoming = [
        {
            "name": name,
            "description": upcoming_description,
            "earned": False,
            "progress": order_count,
            "target": target,
        }
        for name, _, upcoming_description, target in ORDER_MILESTONES
        if upcoming_description and order_count < target
    ]
    return earned + upcoming


async def loyalty_summary(
    db: AsyncSession,
    user_id: uuid.UUID,
    include_transactions: bool = False,
    transaction_type: Optional[str] = None,
    page: int = 1,
    limit: int = 20,
) -> dict[str, Any]:
    """Everything the loyalty page shows for one user."""
    user = await _get_user(db, user_id)
    points = user.loyalty_points or 0
    info = level_info(points)

    stats = {"total_earned": 0, "total_redeemed": 0, "total_expired": 0, "transaction_count": 0}
    grouped = await db.execute(
        select(
            LoyaltyTransaction.type,
            func.sum(LoyaltyTransaction.points),
            func.count(LoyaltyTransaction.id),
        )
        .where(LoyaltyTransaction.user_id == user_id)
        .group_by(LoyaltyTransaction.type)
    )
    for type_, total, count in grouped.all():
        stats[f"total_{type_}"] = abs(int(total or 0))
        stats["transaction_count"] += count

    now = utcnow()
    horizon = now + timedelta(days=settings.loyalty_expiry_warning_days)
    expiring = await db.execute(
        select(func.sum(LoyaltyTransaction.points)).where(
            LoyaltyTransaction.user_id == user_id,
            LoyaltyTransaction.type == "earned",
            LoyaltyTransaction.is_active.is_(True),
            LoyaltyTransaction.expires_at > now,
            LoyaltyTransaction.expires_at <= horizon,
        )
    )

    summary: dict[str, Any] = {
        "current_points": points,
        "level": info["level"],
        "next_level": info["next_level"],
        "points_to_next_level": info["points_to_next"],
        "level_progress": info["progress"],
        "statistics": stats,
        "points_expiring_soon": int(expiring.scalar() or 0),
        "achievements": _achievements(user.order_count, user.total_spent or 0, info["level"]),
        "member_since": user.created_at,
        "total_orders": user.order_count,
        "total_spent": user.total_spent or 0,
        "available_rewards": [
            {"id": reward_id, **reward, "can_redeem": points >= reward["points_required"]}
            for reward_id, reward in REWARDS.items()
        ],
    }

    if include_transactions:
        if transaction_type and transaction_type not in TRANSACTION_TYPES:
            raise ValidationError("Invalid transaction type")
        query = select(LoyaltyTransaction).where(LoyaltyTransaction.user_id == user_id)
        if transaction_type:
            query = query.where(LoyaltyTransaction.type == transaction_type)
        total = (
            await db.execute(select(func.count()).select_from(query.subquery()))
        ).scalar() or 0
        rows = (
            await db.execute(
                query.order_by(LoyaltyTransaction.created_at.desc())
                .offset((page - 1) * limit)
                .limit(limit)
            )
        ).scalars().all()
        summary["transactions"] = {
            "data": list(rows),
            "pagination": {
                "current_page": page,
                "total_pages": (total + limit - 1) // limit,
                "total_transactions": total,
                "has_more": page * limit < total,
            },
        }

    return summary
