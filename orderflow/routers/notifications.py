"""Notification inbox endpoints."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from orderflow.auth import Actor, get_actor, require_roles
from orderflow.database import get_db
from orderflow.schemas.common import ok
from orderflow.schemas.notification import NotificationRead
from orderflow.services import notifications

router = APIRouter(prefix="/api", tags=["notifications"])


@router.get("/user/notifications")
async def list_notifications(
    unread_only: bool = Query(default=False),
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_actor),
) -> dict:
    result = await notifications.list_notifications(db, actor.id, unread_only, limit, offset)
    result["notifications"] = [NotificationRead.model_validate(n) for n in result["notifications"]]
    return ok(result)


@router.put("/user/notifications/read-all")
async def mark_all_read(
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_actor),
) -> dict:
    updated = await notifications.mark_all_read(db, actor.id)
    return ok({"updated": updated}, "All notifications marked as read")


@router.put("/user/notifications/{notification_id}/read")
async def mark_read(
    notification_id: UUID,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_actor),
) -> dict:
    notification = await notifications.mark_read(db, actor.id, notification_id)
    return ok(NotificationRead.model_validate(notification), "Notification marked as read")


@router.delete("/user/notifications/{notification_id}")
async def delete_notification(
    notification_id: UUID,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_actor),
) -> dict:
    await notifications.delete_notification(db, actor.id, notification_id)
    return ok(None, "Notification deleted")


@router.post("/admin/notifications/cleanup")
async def cleanup_expired(
    db: AsyncSession = Depends(get_db),
    _: Actor = Depends(require_roles("admin")),
) -> dict:
    removed = await notifications.cleanup_expired(db)
    return ok({"removed": removed}, "Expired notifications removed")
