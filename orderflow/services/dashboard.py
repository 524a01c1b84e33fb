"""
Customer dashboard: one read that gathers orders, spend, favourites,
reviews, notifications and loyalty standing for the signed-in customer.
"""

from __future__ import annotations

import uuid
from collections import Counter
from datetime import timedelta
from typing import Any

import pandas as pd
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from orderflow.errors import NotFoundError
from orderflow.models import FavoriteRestaurant, Order, Restaurant, Review, User
from orderflow.services import favorites, notifications
from orderflow.services.loyalty import level_info
from orderflow.services.orders import TERMINAL_STATUSES
from orderflow.utils.clock import ensure_utc, utcnow
from orderflow.utils.loyalty_data import DASHBOARD_BADGES

RECENT_ORDERS = 5
RECENT_REVIEWS = 3
RECENT_NOTIFICATIONS = 5
FAVORITES_SHOWN = 5
RECOMMENDATIONS = 5
TREND_MONTHS = 6


def _order_stats(orders: list[Order], now) -> dict[str, Any]:
    """Counts and spend; cancelled orders never count as spend."""
    paid = [o for o in orders if o.status != "cancelled"]
    placed = [ensure_utc(o.created_at) for o in orders]
    spent = round(sum(o.total for o in paid), 2)
    return {
        "total_orders": len(orders),
        "total_spent": spent,
        "average_order_value": round(spent / len(paid), 2) if paid else 0.0,
        "orders_this_month": sum(1 for t in placed if t >= now - timedelta(days=30)),
        "orders_this_week": sum(1 for t in placed if t >= now - timedelta(days=7)),
        "delivered_orders": sum(1 for o in orders if o.status == "delivered"),
        "cancelled_orders": sum(1 for o in orders if o.status == "cancelled"),
    }


def spending_trends(orders: list[Order], now, months: int = TREND_MONTHS) -> list[dict[str, Any]]:
    """Delivered orders and spend per calendar month, oldest first, over the last `months`."""
    since = now - timedelta(days=30 * months)
    rows = [
        {"month": o.created_at.strftime("%Y-%m"), "total": o.total}
        for o in orders
        if o.status == "delivered" and ensure_utc(o.created_at) >= since
    ]
    if not rows:
        return []
    frame = pd.DataFrame(rows)
    grouped = frame.groupby("month")["total"].agg(["count", "sum"]).sort_index()
    return [
        {"month": month, "orders": int(row["count"]), "spent": round(float(row["sum"]), 2)}
        for month, row in grouped.iterrows()
    ]


def cuisine_stats(orders: list[Order], restaurants: dict[uuid.UUID, Restaurant]) -> list[dict[str, Any]]:
    """How often each primary cuisine was ordered, most frequent first."""
    counts: Counter[str] = Counter()
    for order in orders:
        restaurant = restaurants.get(order.restaurant_id)
        if restaurant is not None and restaurant.cuisine_types:
            counts[restaurant.cuisine_types[0]] += 1
    return [{"cuisine": c, "orders": n} for c, n in counts.most_common()]


def badges(delivered: int, reviews: int, favorite_count: int) -> list[dict[str, Any]]:
    metrics = {"orders": delivered, "reviews": reviews, "favorites": favorite_count}
    return [
        {
            "name": name,
            "description": description,
            "earned": metrics[metric] >= target,
            "progress": min(metrics[metric], target),
            "target": target,
        }
        for name, description, metric, target in DASHBOARD_BADGES
    ]


async def _recommended(
    db: AsyncSession, user_id: uuid.UUID, top_cuisines: list[str], exclude: set[uuid.UUID]
) -> list[Restaurant]:
    """Top-rated active restaurants sharing a favourite cuisine, or top-rated overall."""
    rows = (
        await db.execute(
            select(Restaurant)
            .where(Restaurant.is_active.is_(True))
            .order_by(Restaurant.rating_average.desc(), Restaurant.name)
        )
    ).scalars().all()
    candidates = [r for r in rows if r.id not in exclude]
    if top_cuisines:
        wanted = {c.lower() for c in top_cuisines}
        matching = [
            r for r in candidates if wanted & {c.lower() for c in r.cuisine_types or []}
        ]
        if matching:
            return matching[:RECOMMENDATIONS]
    return candidates[:RECOMMENDATIONS]


async def customer_dashboard(db: AsyncSession, user_id: uuid.UUID) -> dict[str, Any]:
    user = await db.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    now = utcnow()

    orders = list(
        (
            await db.execute(
                select(Order).where(Order.customer_id == user_id).order_by(Order.created_at.desc())
            )
        ).scalars()
    )
    restaurant_ids = {o.restaurant_id for o in orders}
    restaurants = {
        r.id: r
        for r in (
            await db.execute(select(Restaurant).where(Restaurant.id.in_(restaurant_ids)))
        ).scalars()
    } if restaurant_ids else {}

    active_order = next((o for o in orders if o.status not in TERMINAL_STATUSES), None)
    stats = _order_stats(orders, now)
    by_cuisine = cuisine_stats(orders, restaurants)

    favorite_list = await favorites.list_favorite_restaurants(db, user_id, limit=FAVORITES_SHOWN)
    favorite_count = (
        await db.execute(
            select(func.count(FavoriteRestaurant.id)).where(FavoriteRestaurant.user_id == user_id)
        )
    ).scalar() or 0

    review_count = (
        await db.execute(select(func.count(Review.id)).where(Review.user_id == user_id))
    ).scalar() or 0
    recent_reviews = list(
        (
            await db.execute(
                select(Review)
                .where(Review.user_id == user_id)
                .order_by(Review.created_at.desc())
                .limit(RECENT_REVIEWS)
            )
        ).scalars()
    )

    inbox = await notifications.list_notifications(db, user_id, limit=RECENT_NOTIFICATIONS)
    recommended = await _recommended(
        db,
        user_id,
        [entry["cuisine"] for entry in by_cuisine[:3]],
        {r.id for r in favorite_list} | restaurant_ids,
    )

    quick_actions = [{"action": "browse_restaurants", "label": "Order food"}]
    if active_order is not None:
        quick_actions.insert(
            0, {"action": "track_order", "label": "Track order", "order_id": active_order.id}
        )
    last_delivered = next((o for o in orders if o.status == "delivered"), None)
    if last_delivered is not None:
        quick_actions.append(
            {"action": "reorder", "label": "Order again", "order_id": last_delivered.id}
        )
    if user.loyalty_points:
        quick_actions.append({"action": "redeem_points", "label": "Redeem points"})

    return {
        "user": user,
        "recent_orders": orders[:RECENT_ORDERS],
        "active_order": active_order,
        "order_stats": stats,
        "favorites": favorite_list,
        "recommended": recommended,
        "recent_reviews": recent_reviews,
        "notifications": {
            "unread_count": inbox["unread_count"],
            "recent": inbox["notifications"],
        },
        "spending_trends": spending_trends(orders, now),
        "cuisine_stats": by_cuisine,
        "loyalty": {"points": user.loyalty_points, **level_info(user.loyalty_points)},
        "badges": badges(stats["delivered_orders"], review_count, favorite_count),
        "quick_actions": quick_actions,
    }
