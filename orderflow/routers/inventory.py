"""
Inventory endpoints for restaurant owners (and admins acting on a restaurant).
Admins pass ?restaurant_id=...; owners act on the restaurant they own.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Literal, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from orderflow.auth import Actor, require_roles
from orderflow.database import get_db
from orderflow.schemas.common import ok
from orderflow.schemas.inventory import (
    AutoReorderRequest,
    BulkAdjustRequest,
    CostRequest,
    ExpiryRequest,
    StockAdjustRequest,
    ThresholdRequest,
)
from orderflow.schemas.restaurant import MenuItemRead, StockHistoryRead
from orderflow.services import inventory
from orderflow.utils.clock import utcnow

router = APIRouter(prefix="/api", tags=["inventory"])

_owner = require_roles("restaurant", "admin")


async def _restaurant_id(db: AsyncSession, actor: Actor, restaurant_id: Optional[UUID]) -> UUID:
    restaurant = await inventory.restaurant_for_actor(db, actor.id, actor.role, restaurant_id)
    return restaurant.id


@router.get("/restaurant/inventory")
async def list_inventory(
    category: Optional[str] = Query(default=None),
    low_stock: bool = Query(default=False),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    restaurant_id: Optional[UUID] = Query(default=None),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(_owner),
) -> dict:
    rid = await _restaurant_id(db, actor, restaurant_id)
    result = await inventory.list_inventory(db, rid, category, low_stock, page, limit)
    result["items"] = [MenuItemRead.model_validate(i) for i in result["items"]]
    return ok(result)


@router.get("/restaurant/inventory/alerts")
async def inventory_alerts(
    restaurant_id: Optional[UUID] = Query(default=None),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(_owner),
) -> dict:
    rid = await _restaurant_id(db, actor, restaurant_id)
    result = await inventory.inventory_alerts(db, rid)
    result["alerts"] = [MenuItemRead.model_validate(i) for i in result["alerts"]]
    return ok(result)


@router.get("/restaurant/inventory/report")
async def inventory_report(
    report_type: Literal["stock-movement", "low-stock", "expiry"] = Query(alias="type"),
    start_date: Optional[datetime] = Query(default=None),
    end_date: Optional[datetime] = Query(default=None),
    restaurant_id: Optional[UUID] = Query(default=None),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(_owner),
) -> dict:
    rid = await _restaurant_id(db, actor, restaurant_id)
    report = await inventory.generate_report(db, rid, report_type, start_date, end_date)
    if report_type != "stock-movement":
        report["data"] = [MenuItemRead.model_validate(i) for i in report["data"]]
    return ok(report)


@router.get("/restaurant/inventory/{item_id}/history")
async def stock_history(
    item_id: UUID,
    restaurant_id: Optional[UUID] = Query(default=None),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(_owner),
) -> dict:
    rid = await _restaurant_id(db, actor, restaurant_id)
    result = await inventory.stock_history(db, rid, item_id)
    result["stock_history"] = [StockHistoryRead.model_validate(e) for e in result["stock_history"]]
    return ok(result)


@router.put("/restaurant/inventory/stock")
async def adjust_stock(
    body: StockAdjustRequest,
    restaurant_id: Optional[UUID] = Query(default=None),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(_owner),
) -> dict:
    rid = await _restaurant_id(db, actor, restaurant_id)
    adjustment = await inventory.adjust_stock(
        db, rid, body.item_id, body.quantity, body.type,
        reason=body.reason, updated_by=actor.id, cost_per_unit=body.cost_per_unit,
    )
    return ok(
        {
            "item": MenuItemRead.model_validate(adjustment.item),
            "previous_stock": adjustment.previous_stock,
            "new_stock": adjustment.new_stock,
            "low_stock_alert": adjustment.low_stock_alert,
        },
        "Stock updated successfully",
    )


@router.put("/restaurant/inventory/threshold")
async def set_threshold(
    body: ThresholdRequest,
    restaurant_id: Optional[UUID] = Query(default=None),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(_owner),
) -> dict:
    rid = await _restaurant_id(db, actor, restaurant_id)
    item = await inventory.set_threshold(
        db, rid, body.item_id, body.low_stock_threshold, body.reorder_point
    )
    return ok(MenuItemRead.model_validate(item), "Thresholds updated successfully")


@router.put("/restaurant/inventory/expiry")
async def set_expiry(
    body: ExpiryRequest,
    restaurant_id: Optional[UUID] = Query(default=None),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(_owner),
) -> dict:
    rid = await _restaurant_id(db, actor, restaurant_id)
    item = await inventory.set_expiry(db, rid, body.item_id, body.expiry_date)
    return ok(MenuItemRead.model_validate(item), "Expiry date updated successfully")


@router.put("/restaurant/inventory/cost")
async def update_cost(
    body: CostRequest,
    restaurant_id: Optional[UUID] = Query(default=None),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(_owner),
) -> dict:
    rid = await _restaurant_id(db, actor, restaurant_id)
    item = await inventory.update_cost(db, rid, body.item_id, body.cost_per_unit)
    return ok(MenuItemRead.model_validate(item), "Cost updated successfully")


@router.post("/restaurant/inventory/bulk")
async def bulk_adjust(
    body: BulkAdjustRequest,
    restaurant_id: Optional[UUID] = Query(default=None),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(_owner),
) -> dict:
    rid = await _restaurant_id(db, actor, restaurant_id)
    results = await inventory.bulk_adjust(
        db, rid, [entry.model_dump() for entry in body.items], updated_by=actor.id
    )
    updated = sum(1 for r in results if r["success"])
    return ok(results, f"Bulk update completed: {updated}/{len(results)} items updated")


@router.post("/restaurant/inventory/auto-reorder")
async def auto_reorder(
    body: AutoReorderRequest,
    restaurant_id: Optional[UUID] = Query(default=None),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(_owner),
) -> dict:
    rid = await _restaurant_id(db, actor, restaurant_id)
    result = await inventory.auto_reorder(db, rid, apply=body.apply, updated_by=actor.id)
    count = len(result["reorder_list"])
    verb = "Restocked" if body.apply else "Found"
    return ok(result, f"{verb} {count} items that need reordering")


@router.delete("/admin/inventory/history")
async def prune_history(
    older_than_days: int = Query(default=180, ge=1),
    db: AsyncSession = Depends(get_db),
    _: Actor = Depends(require_roles("admin")),
) -> dict:
    removed = await inventory.prune_stock_history(db, utcnow() - timedelta(days=older_than_days))
    return ok({"removed": removed}, "Stock history pruned")
