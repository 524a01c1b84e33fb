"""
Platform-wide switches and admin operations.

Settings live in the system_settings table as one JSON document per key,
merged over DEFAULTS on read. Reads go through a short TTLCache; every write
here clears it, so only other processes can see a stale value, for at most
settings_cache_ttl_seconds.
"""

from __future__ import annotations

import copy
import logging
import time
import uuid
from datetime import datetime, timedelta
from typing import Any, Optional

from cachetools import TTLCache
from sqlalchemy import case, delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from orderflow import __version__
from orderflow.config import settings
from orderflow.errors import ValidationError
from orderflow.models import (
    Notification,
    Order,
    Restaurant,
    Review,
    SearchHistoryEntry,
    SystemSetting,
    User,
)
from orderflow.services import notifications, reporting
from orderflow.utils.clock import ensure_utc, utcnow

logger = logging.getLogger(__name__)

DEFAULT_MAINTENANCE_MESSAGE = "System is under maintenance. Please try again later."

DEFAULTS: dict[str, dict[str, Any]] = {
    "maintenance": {
        "enabled": False,
        "message": DEFAULT_MAINTENANCE_MESSAGE,
        "scheduled_start": None,
        "scheduled_end": None,
    },
    "limits": {
        "max_active_orders_per_user": 10,
        "max_restaurants_per_owner": 3,
    },
    "features": {
        "notifications": True,
        "analytics": True,
        "payments": True,
        "delivery": True,
    },
}
FEATURES = tuple(DEFAULTS["features"])
CACHE_TYPES = ("all", "settings", "dashboard")
ANNOUNCEMENT_TARGETS = {
    "all": None,
    "customers": "customer",
    "restaurants": "restaurant",
    "couriers": "delivery",
    "admins": "admin",
}
CLEANUP_TYPES = ("notifications", "search_history")

_STARTED = time.monotonic()

# Key  : setting key
# Value: merged settings dict
_cache_settings: TTLCache = TTLCache(maxsize=16, ttl=settings.settings_cache_ttl_seconds)


def clear_cache() -> None:
    _cache_settings.clear()


async def get_setting(db: AsyncSession, key: str) -> dict[str, Any]:
    cached = _cache_settings.get(key)
    if cached is not None:
        return copy.deepcopy(cached)
    row = await db.get(SystemSetting, key)
    merged = {**DEFAULTS[key], **(row.value if row is not None else {})}
    _cache_settings[key] = merged
    return copy.deepcopy(merged)


async def _put_setting(
    db: AsyncSession, key: str, value: dict[str, Any], actor_id: Optional[uuid.UUID]
) -> dict[str, Any]:
    row = await db.get(SystemSetting, key)
    if row is None:
        row = SystemSetting(key=key, value=value, updated_by=actor_id)
        db.add(row)
    else:
        row.value = value
        row.updated_by = actor_id
    await db.commit()
    clear_cache()
    return {**value, "updated_by": actor_id, "updated_at": row.updated_at}


def _in_window(config: dict[str, Any], now: datetime) -> bool:
    start = config.get("scheduled_start")
    end = config.get("scheduled_end")
    if start and now < ensure_utc(datetime.fromisoformat(start)):
        return False
    if end and now >= ensure_utc(datetime.fromisoformat(end)):
        return False
    return True


async def maintenance_active(db: AsyncSession, now: Optional[datetime] = None) -> Optional[str]:
    """The maintenance message while maintenance is in force, else None."""
    config = await get_setting(db, "maintenance")
    if config["enabled"] and _in_window(config, now or utcnow()):
        return config["message"]
    return None


async def set_maintenance(
    db: AsyncSession,
    actor_id: uuid.UUID,
    enabled: bool,
    message: Optional[str] = None,
    scheduled_start: Optional[datetime] = None,
    scheduled_end: Optional[datetime] = None,
) -> dict[str, Any]:
    if scheduled_start and scheduled_end and ensure_utc(scheduled_end) <= ensure_utc(scheduled_start):
        raise ValidationError("Maintenance must end after it starts")
    value = {
        "enabled": enabled,
        "message": (message or "").strip() or DEFAULT_MAINTENANCE_MESSAGE,
        "scheduled_start": ensure_utc(scheduled_start).isoformat() if scheduled_start else None,
        "scheduled_end": ensure_utc(scheduled_end).isoformat() if scheduled_end else None,
    }
    config = await _put_setting(db, "maintenance", value, actor_id)
    logger.warning("Maintenance mode %s by %s", "enabled" if enabled else "disabled", actor_id)

    if enabled:
        async def _effect(session: AsyncSession) -> None:
            users = (
                await session.execute(select(User.id).where(User.is_active.is_(True)))
            ).scalars().all()
            for user_id in users:
                await notifications.notify(
                    session, user_id, "system-maintenance", "System Maintenance",
                    value["message"],
                    data={"scheduled_start": value["scheduled_start"],
                          "scheduled_end": value["scheduled_end"]},
                    priority="high",
                )

        await notifications.run_side_effect("maintenance notice", _effect)
    return config


async def update_limits(
    db: AsyncSession, actor_id: uuid.UUID, limits: dict[str, Any]
) -> dict[str, Any]:
    current = await get_setting(db, "limits")
    unknown = set(limits) - set(DEFAULTS["limits"])
    if unknown:
        raise ValidationError(f"Unknown limits: {', '.join(sorted(unknown))}")
    for name, value in limits.items():
        if not isinstance(value, int) or isinstance(value, bool) or value < 1:
            raise ValidationError(f"{name} must be a positive integer")
    current.update(limits)
    return await _put_setting(db, "limits", current, actor_id)


async def toggle_feature(
    db: AsyncSession, actor_id: uuid.UUID, feature: str, enabled: bool
) -> dict[str, Any]:
    if feature not in FEATURES:
        raise ValidationError("Invalid feature name")
    current = await get_setting(db, "features")
    current[feature] = enabled
    return await _put_setting(db, "features", current, actor_id)


def clear_caches(cache_type: str = "all") -> list[str]:
    if cache_type not in CACHE_TYPES:
        raise ValidationError(f"Invalid cache type: {cache_type}")
    cleared = []
    if cache_type in ("all", "settings"):
        clear_cache()
        cleared.append("settings")
    if cache_type in ("all", "dashboard"):
        reporting.clear_cache()
        cleared.append("dashboard")
    logger.info("Cleared caches: %s", ", ".join(cleared))
    return cleared


async def config_snapshot(db: AsyncSession) -> dict[str, Any]:
    return {key: await get_setting(db, key) for key in DEFAULTS}


async def health(db: AsyncSession) -> dict[str, Any]:
    """Process and database health; 'degraded' when the database cannot be counted."""
    data: dict[str, Any] = {
        "status": "healthy",
        "timestamp": utcnow(),
        "uptime_seconds": round(time.monotonic() - _STARTED, 1),
        "version": __version__,
        "environment": settings.app_env,
    }
    try:
        counts = {}
        for name, model in (("users", User), ("restaurants", Restaurant),
                            ("orders", Order), ("reviews", Review)):
            counts[name] = (await db.execute(select(func.count()).select_from(model))).scalar() or 0
        data["database"] = {"status": "connected", "tables": counts}
        data["maintenance"] = await maintenance_active(db) is not None
    except Exception as exc:
        logger.error("Health check could not reach the database: %s", exc)
        data["database"] = {"status": "error", "error": str(exc)}
        data["status"] = "degraded"
    return data


async def stats(db: AsyncSession) -> dict[str, Any]:
    users = await db.execute(
        select(
            User.role,
            func.count(User.id),
            func.sum(case((User.is_active.is_(True), 1), else_=0)),
        ).group_by(User.role)
    )
    restaurants = (
        await db.execute(
            select(
                func.count(Restaurant.id),
                func.sum(case((Restaurant.is_active.is_(True), 1), else_=0)),
            )
        )
    ).one()
    orders = await db.execute(
        select(Order.status, func.count(Order.id), func.sum(Order.total)).group_by(Order.status)
    )
    reviews = (
        await db.execute(
            select(
                func.count(Review.id),
                func.avg(Review.overall_rating),
                func.sum(case((Review.moderation_status == "flagged", 1), else_=0)),
            )
        )
    ).one()
    return {
        "users": [
            {"role": role, "count": count, "active": int(active or 0)}
            for role, count, active in users.all()
        ],
        "restaurants": {"total": restaurants[0] or 0, "active": int(restaurants[1] or 0)},
        "orders": [
            {"status": status, "count": count, "total_value": round(float(value or 0), 2)}
            for status, count, value in orders.all()
        ],
        "reviews": {
            "total": reviews[0] or 0,
            "average_rating": round(float(reviews[1] or 0), 2),
            "flagged": int(reviews[2] or 0),
        },
    }


async def send_announcement(
    db: AsyncSession,
    actor_id: uuid.UUID,
    title: str,
    message: str,
    target: str = "all",
    priority: str = "medium",
) -> int:
    """Notify every active user in the target group. Returns how many were notified."""
    if not title.strip() or not message.strip():
        raise ValidationError("Title and message are required")
    if target not in ANNOUNCEMENT_TARGETS:
        raise ValidationError(f"Invalid target group: {target}")
    query = select(User.id).where(User.is_active.is_(True))
    if ANNOUNCEMENT_TARGETS[target] is not None:
        query = query.where(User.role == ANNOUNCEMENT_TARGETS[target])
    user_ids = (await db.execute(query)).scalars().all()
    for user_id in user_ids:
        await notifications.notify(
            db, user_id, "system-announcement", title, message,
            data={"sent_by": str(actor_id), "target_group": target},
            priority=priority,
        )
    await db.commit()
    logger.info("Announcement '%s' sent to %d users", title, len(user_ids))
    return len(user_ids)


async def cleanup_data(db: AsyncSession, data_type: str, older_than_days: int) -> int:
    """Delete read notifications or search history older than the cut-off."""
    if data_type not in CLEANUP_TYPES:
        raise ValidationError("Invalid data type")
    if older_than_days < 1:
        raise ValidationError("Age threshold must be at least one day")
    cutoff = utcnow() - timedelta(days=older_than_days)
    if data_type == "notifications":
        stmt = delete(Notification).where(
            Notification.created_at < cutoff, Notification.is_read.is_(True)
        )
    else:
        stmt = delete(SearchHistoryEntry).where(SearchHistoryEntry.created_at < cutoff)
    result = await db.execute(stmt.execution_options(synchronize_session=False))
    await db.commit()
    removed = result.rowcount or 0
    logger.info("Cleaned up %d %s rows older than %s", removed, data_type, cutoff.date())
    return removed


async def active_order_count(db: AsyncSession, user_id: uuid.UUID) -> int:
    return (
        await db.execute(
            select(func.count(Order.id)).where(
                Order.customer_id == user_id, Order.status.not_in(("delivered", "cancelled"))
            )
        )
    ).scalar() or 0
