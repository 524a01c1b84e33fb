"""Admin dashboard and system operation endpoints."""

from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from orderflow.auth import Actor, require_roles
from orderflow.database import get_db
from orderflow.schemas.common import ok
from orderflow.schemas.system import (
    Announcement,
    CacheClear,
    FeatureToggle,
    LimitsUpdate,
    MaintenanceUpdate,
    SystemTask,
    SystemUpdate,
)
from orderflow.services import reporting, system

router = APIRouter(prefix="/api/admin", tags=["admin"])

_admin = require_roles("admin")


@router.get("/stats")
async def dashboard(
    db: AsyncSession = Depends(get_db),
    _: Actor = Depends(_admin),
) -> dict:
    return ok(await reporting.dashboard_stats(db))


@router.get("/system")
async def system_info(
    action: Literal["health", "stats", "config"] = Query(default="health"),
    db: AsyncSession = Depends(get_db),
    _: Actor = Depends(_admin),
) -> dict:
    if action == "stats":
        return ok(await system.stats(db))
    if action == "config":
        return ok(await system.config_snapshot(db))
    return ok(await system.health(db))


@router.put("/system")
async def update_system(
    body: SystemUpdate = Body(...),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(_admin),
) -> dict:
    if isinstance(body, MaintenanceUpdate):
        config = await system.set_maintenance(
            db, actor.id, body.enabled, body.message, body.scheduled_start, body.scheduled_end
        )
        return ok(config, f"Maintenance mode {'enabled' if body.enabled else 'disabled'}")
    if isinstance(body, LimitsUpdate):
        limits = await system.update_limits(db, actor.id, body.limits)
        return ok(limits, "System limits updated successfully")
    if isinstance(body, FeatureToggle):
        config = await system.toggle_feature(db, actor.id, body.feature, body.enabled)
        return ok(config, f"Feature '{body.feature}' {'enabled' if body.enabled else 'disabled'}")
    if isinstance(body, CacheClear):
        return ok({"cleared": system.clear_caches(body.cache_type)}, "Cache cleared successfully")
    raise TypeError(f"Unhandled system update: {type(body).__name__}")


@router.post("/system")
async def run_system_task(
    body: SystemTask = Body(...),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(_admin),
) -> dict:
    if isinstance(body, Announcement):
        sent = await system.send_announcement(
            db, actor.id, body.title, body.message, body.target_users, body.priority
        )
        return ok({"sent": sent}, f"System notification sent to {sent} users")
    removed = await system.cleanup_data(db, body.data_type, body.older_than_days)
    return ok({"deleted_count": removed}, f"Cleaned up {removed} {body.data_type} records")
