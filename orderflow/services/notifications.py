"""
Notification dispatch.

Notifications are written after the primary mutation has committed, in their
own unit of work. A failed notification is logged and dropped; it never
undoes or fails the operation that triggered it.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from orderflow import database
from orderflow.config import settings
from orderflow.errors import NotFoundError
from orderflow.models import Notification
from orderflow.utils.clock import utcnow
from orderflow.utils.notification_templates import render_order_template

logger = logging.getLogger(__name__)

SideEffect = Callable[[AsyncSession], Awaitable[Any]]


async def run_side_effect(label: str, effect: SideEffect) -> bool:
    """
    Run `effect` in a fresh session and commit it.
    Never raises; a failed effect is logged and False is returned.
    """
    try:
        async with database.AsyncSessionLocal() as session:
            await effect(session)
            await session.commit()
        return True
    except Exception as exc:
        logger.error("Side effect '%s' failed: %s", label, exc)
        return False


async def notify(
    db: AsyncSession,
    user_id: uuid.UUID,
    type_: str,
    title: str,
    message: str,
    data: Optional[dict[str, Any]] = None,
    priority: str = "medium",
    expires_at: Optional[datetime] = None,
) -> Notification:
    """Stage a notification on the session; the caller commits."""
    if expires_at is None:
        expires_at = utcnow() + timedelta(days=settings.notification_ttl_days)
    notification = Notification(
        user_id=user_id,
        type=type_,
        title=title[:100],
        message=message[:500],
        data=data or {},
        priority=priority,
        expires_at=expires_at,
    )
    db.add(notification)
    await db.flush()
    return notification


async def notify_order_event(
    db: AsyncSession,
    user_id: uuid.UUID,
    notification_type: str,
    order_id: uuid.UUID,
    order_number: str,
    restaurant_name: Optional[str] = None,
    **extra: Any,
) -> Notification:
    """Stage an order notification rendered from the order templates."""
    rendered = render_order_template(
        notification_type,
        order_number=order_number,
        restaurant_name=restaurant_name,
        **extra,
    )
    data = {"order_id": str(order_id), "order_number": order_number}
    data.update({k: v for k, v in extra.items() if v is not None})
    return await notify(
        db,
        user_id,
        notification_type,
        rendered["title"],
        rendered["message"],
        data=data,
        priority=rendered["priority"],
    )


# ── User-facing operations ────────────────────────────────────────────────────


def _live(now: datetime):
    return Notification.expires_at.is_(None) | (Notification.expires_at > now)


async def list_notifications(
    db: AsyncSession,
    user_id: uuid.UUID,
    unread_only: bool = False,
    limit: int = 20,
    offset: int = 0,
) -> dict[str, Any]:
    """Paginated notifications, newest first, with the unread count."""
    base = select(Notification).where(
        Notification.user_id == user_id, _live(utcnow())
    )
    if unread_only:
        base = base.where(Notification.is_read.is_(False))

    total = (
        await db.execute(select(func.count()).select_from(base.subquery()))
    ).scalar() or 0
    rows = (
        await db.execute(
            base.order_by(Notification.created_at.desc()).limit(limit).offset(offset)
        )
    ).scalars().all()

    return {
        "notifications": list(rows),
        "total": total,
        "unread_count": await unread_count(db, user_id),
        "limit": limit,
        "offset": offset,
    }


async def unread_count(db: AsyncSession, user_id: uuid.UUID) -> int:
    """Unread notifications that have not expired."""
    result = await db.execute(
        select(func.count(Notification.id)).where(
            Notification.user_id == user_id,
            Notification.is_read.is_(False),
            _live(utcnow()),
        )
    )
    return result.scalar() or 0


async def mark_read(
    db: AsyncSession, user_id: uuid.UUID, notification_id: uuid.UUID
) -> Notification:
    notification = await db.get(Notification, notification_id)
    if notification is None or notification.user_id != user_id:
        raise NotFoundError("Notification not found")
    if not notification.is_read:
        notification.is_read = True
        notification.read_at = utcnow()
        await db.commit()
    return notification


async def mark_all_read(db: AsyncSession, user_id: uuid.UUID) -> int:
    result = await db.execute(
        update(Notification)
        .where(Notification.user_id == user_id, Notification.is_read.is_(False))
        .values(is_read=True, read_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return result.rowcount or 0


async def delete_notification(
    db: AsyncSession, user_id: uuid.UUID, notification_id: uuid.UUID
) -> None:
    notification = await db.get(Notification, notification_id)
    if notification is None or notification.user_id != user_id:
        raise NotFoundError("Notification not found")
    await db.delete(notification)
    await db.commit()


async def cleanup_expired(db: AsyncSession, now: Optional[datetime] = None) -> int:
    """Delete notifications whose expiry has passed. Returns the number removed."""
    now = now or utcnow()
    result = await db.execute(
        delete(Notification)
        .where(Notification.expires_at.is_not(None), Notification.expires_at <= now)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    removed = result.rowcount or 0
    logger.info("Removed %d expired notifications.", removed)
    return removed
