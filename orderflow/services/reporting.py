"""
Read-only aggregates for the admin dashboard and restaurant owners.

Dashboard numbers are cached in-process (cachetools TTLCache) for
dashboard_cache_ttl_seconds; they may be that many seconds stale.
"""

from __future__ import annotations

import uuid
from datetime import timedelta
from typing import Any, Optional

from cachetools import TTLCache
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from orderflow.config import settings
from orderflow.models import Order, Restaurant, Review, User
from orderflow.utils.clock import utcnow

TREND_DAYS = 30

# Key  : "dashboard"
# Value: dict returned by dashboard_stats
_cache_dashboard: TTLCache = TTLCache(maxsize=1, ttl=settings.dashboard_cache_ttl_seconds)


def clear_cache() -> None:
    _cache_dashboard.clear()


async def dashboard_stats(db: AsyncSession) -> dict[str, Any]:
    cached = _cache_dashboard.get("dashboard")
    if cached is not None:
        return cached

    users = (await db.execute(select(func.count(User.id)))).scalar() or 0
    restaurants = (
        await db.execute(select(func.count(Restaurant.id)).where(Restaurant.is_active.is_(True)))
    ).scalar() or 0
    orders = (await db.execute(select(func.count(Order.id)))).scalar() or 0
    revenue = (
        await db.execute(select(func.sum(Order.total)).where(Order.status == "delivered"))
    ).scalar()
    pending_reviews = (
        await db.execute(
            select(func.count(Review.id)).where(Review.moderation_status.in_(("pending", "flagged")))
        )
    ).scalar() or 0
    open_disputes = (
        await db.execute(select(func.count(Order.id)).where(Order.dispute_status == "open"))
    ).scalar() or 0
    by_status = await db.execute(select(Order.status, func.count(Order.id)).group_by(Order.status))

    stats = {
        "total_users": users,
        "active_restaurants": restaurants,
        "total_orders": orders,
        "total_revenue": round(float(revenue or 0), 2),
        "reviews_awaiting_moderation": pending_reviews,
        "open_disputes": open_disputes,
        "orders_by_status": {status: count for status, count in by_status.all()},
    }
    _cache_dashboard["dashboard"] = stats
    return stats


async def restaurant_order_trend(
    db: AsyncSession, restaurant_id: uuid.UUID, days: Optional[int] = None
) -> list[dict[str, Any]]:
    """Per-day order count and delivered revenue, oldest day first."""
    since = utcnow() - timedelta(days=days or TREND_DAYS)
    day = func.date(Order.created_at)
    rows = await db.execute(
        select(day, func.count(Order.id), func.sum(Order.total))
        .where(
            Order.restaurant_id == restaurant_id,
            Order.status == "delivered",
            Order.created_at >= since,
        )
        .group_by(day)
        .order_by(day)
    )
    return [
        {"date": str(date), "orders": count, "revenue": round(float(revenue or 0), 2)}
        for date, count, revenue in rows.all()
    ]
