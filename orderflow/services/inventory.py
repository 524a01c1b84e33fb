"""
Inventory stock adjustment and reporting for menu items.

adjust_stock rules:
  add    → new = current + quantity
  remove → new = max(0, current - quantity)   (over-removal clamps, no error)
  set    → new = quantity

Landing on exactly 0 marks the item unavailable; rising above 0 from an
unavailable state makes it available again. A low-stock alert goes to the
restaurant owner only when 0 < new ≤ low_stock_threshold.

Stock is only counted for tracked items (track_stock). The first adjustment
turns tracking on; untracked items never sell out and never run low.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Optional

from sqlalchemy import and_, case, delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from orderflow.config import settings
from orderflow.errors import Forbidden, NotFoundError, StateError, ValidationError
from orderflow.models import MenuItem, Restaurant, StockHistoryEntry
from orderflow.schemas.common import Pagination
from orderflow.services.notifications import notify, run_side_effect
from orderflow.utils.clock import ensure_utc, utcnow

logger = logging.getLogger(__name__)

ADJUSTMENT_MODES = ("add", "remove", "set")
REPORT_TYPES = ("stock-movement", "low-stock", "expiry")
REPORT_EXPIRY_DAYS = 30
STOCK_WRITE_ATTEMPTS = 3


@dataclass
class StockAdjustment:
    """Result of one stock adjustment."""

    item: MenuItem
    previous_stock: int
    new_stock: int
    low_stock_alert: bool


def compute_new_stock(current: int, quantity: int, mode: str) -> int:
    """Apply an adjustment to a stock level. The result is never negative."""
    if mode == "add":
        return current + quantity
    if mode == "remove":
        return max(0, current - quantity)
    if mode == "set":
        return max(0, quantity)
    raise ValidationError("Valid quantity and type (add/remove/set) are required")


def _validate_quantity(quantity: Any, mode: str) -> None:
    if mode not in ADJUSTMENT_MODES:
        raise ValidationError("Valid quantity and type (add/remove/set) are required")
    if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity < 0:
        raise ValidationError("Quantity must be a non-negative integer")
    if mode != "set" and quantity == 0:
        raise ValidationError("Quantity must be greater than zero")


async def restaurant_for_actor(
    db: AsyncSession,
    actor_id: uuid.UUID,
    actor_role: str,
    restaurant_id: Optional[uuid.UUID] = None,
) -> Restaurant:
    """
    Resolve the restaurant an inventory request acts on.
    Owners act on their own restaurant; admins must name one.
    """
    if actor_role == "admin":
        if restaurant_id is None:
            raise ValidationError("Restaurant ID is required")
        restaurant = await db.get(Restaurant, restaurant_id)
        if restaurant is None:
            raise NotFoundError("Restaurant not found")
        return restaurant

    query = select(Restaurant).where(Restaurant.owner_id == actor_id)
    if restaurant_id is not None:
        query = query.where(Restaurant.id == restaurant_id)
    restaurant = (await db.execute(query.order_by(Restaurant.created_at))).scalars().first()
    if restaurant is None:
        if restaurant_id is not None and await db.get(Restaurant, restaurant_id) is not None:
            raise Forbidden("You do not manage this restaurant")
        raise NotFoundError("Restaurant not found")
    return restaurant


async def _get_item(db: AsyncSession, restaurant_id: uuid.UUID, item_id: uuid.UUID) -> MenuItem:
    result = await db.execute(
        select(MenuItem)
        .where(MenuItem.id == item_id, MenuItem.restaurant_id == restaurant_id)
        .execution_options(populate_existing=True)
    )
    item = result.scalar_one_or_none()
    if item is None:
        raise NotFoundError("Item not found")
    return item


async def _send_low_stock_alert(
    owner_id: uuid.UUID, item_id: uuid.UUID, item_name: str, stock: int
) -> None:
    async def _effect(session: AsyncSession) -> None:
        await notify(
            session,
            owner_id,
            "low-stock-alert",
            "Low Stock Alert",
            f"{item_name} is running low on stock ({stock} remaining)",
            data={"item_id": str(item_id), "item_name": item_name, "current_stock": stock},
            priority="high",
        )

    await run_side_effect(f"low-stock alert for item {item_id}", _effect)


async def adjust_stock(
    db: AsyncSession,
    restaurant_id: uuid.UUID,
    item_id: uuid.UUID,
    quantity: int,
    mode: str,
    reason: Optional[str] = None,
    updated_by: Optional[uuid.UUID] = None,
    cost_per_unit: Optional[float] = None,
) -> StockAdjustment:
    """
    Adjust one item's stock, log it, and alert the owner when it runs low.

    The write is a compare-and-set on current_stock; when another writer got
    there first the read is repeated, up to STOCK_WRITE_ATTEMPTS times.
    """
    _validate_quantity(quantity, mode)
    if cost_per_unit is not None and cost_per_unit < 0:
        raise ValidationError("Cost per unit must be non-negative")

    for _ in range(STOCK_WRITE_ATTEMPTS):
        item = await _get_item(db, restaurant_id, item_id)
        previous = item.current_stock or 0
        new_stock = compute_new_stock(previous, quantity, mode)
        now = utcnow()

        values: dict[str, Any] = {
            "current_stock": new_stock,
            "stock_updated_at": now,
            "track_stock": True,
        }
        if cost_per_unit is not None:
            values["cost_per_unit"] = cost_per_unit
        if new_stock == 0:
            values["is_available"] = False
        elif not item.is_available:
            values["is_available"] = True

        swapped = await db.execute(
            update(MenuItem)
            .where(MenuItem.id == item_id, MenuItem.current_stock == previous)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if swapped.rowcount == 1:
            break
        await db.rollback()
        logger.debug("Item %s stock moved under adjustment; re-reading", item_id)
    else:
        raise StateError("Stock is changing too quickly; please retry")

    db.add(StockHistoryEntry(
        menu_item_id=item_id,
        change_type=mode,
        quantity=quantity,
        previous_stock=previous,
        new_stock=new_stock,
        reason=reason or f"Stock {mode}",
        updated_by=updated_by,
        created_at=now,
    ))
    await db.commit()
    await db.refresh(item)
    logger.debug("Item %s stock %d -> %d (%s)", item_id, previous, new_stock, mode)

    alert = 0 < new_stock <= item.low_stock_threshold
    if alert:
        restaurant = await db.get(Restaurant, restaurant_id)
        await _send_low_stock_alert(restaurant.owner_id, item.id, item.name, new_stock)

    return StockAdjustment(
        item=item, previous_stock=previous, new_stock=new_stock, low_stock_alert=alert
    )


async def bulk_adjust(
    db: AsyncSession,
    restaurant_id: uuid.UUID,
    updates: list[dict[str, Any]],
    updated_by: Optional[uuid.UUID] = None,
) -> list[dict[str, Any]]:
    """Apply several adjustments; one failing item does not stop the rest."""
    if not updates:
        raise ValidationError("Items array is required")
    results = []
    for entry in updates:
        item_id = entry.get("item_id")
        try:
            adjustment = await adjust_stock(
                db,
                restaurant_id,
                item_id,
                entry.get("quantity"),
                entry.get("type", "set"),
                reason=entry.get("reason") or f"Bulk {entry.get('type', 'set')}",
                updated_by=updated_by,
            )
            results.append({
                "item_id": item_id,
                "success": True,
                "previous_stock": adjustment.previous_stock,
                "new_stock": adjustment.new_stock,
            })
        except (NotFoundError, StateError, ValidationError) as exc:
            await db.rollback()
            results.append({"item_id": item_id, "success": False, "error": exc.message})
    return results


async def set_threshold(
    db: AsyncSession,
    restaurant_id: uuid.UUID,
    item_id: uuid.UUID,
    low_stock_threshold: int,
    reorder_point: Optional[int] = None,
) -> MenuItem:
    if low_stock_threshold is None or low_stock_threshold < 0:
        raise ValidationError("Low stock threshold must be non-negative")
    if reorder_point is not None and reorder_point < 0:
        raise ValidationError("Reorder point must be non-negative")
    item = await _get_item(db, restaurant_id, item_id)
    item.low_stock_threshold = low_stock_threshold
    if reorder_point is not None:
        item.reorder_point = reorder_point
    item.stock_updated_at = utcnow()
    await db.commit()
    return item


async def set_expiry(
    db: AsyncSession, restaurant_id: uuid.UUID, item_id: uuid.UUID, expiry_date: datetime
) -> MenuItem:
    if expiry_date is None:
        raise ValidationError("Expiry date is required")
    expiry = ensure_utc(expiry_date)
    if expiry <= utcnow():
        raise ValidationError("Expiry date must be in the future")
    item = await _get_item(db, restaurant_id, item_id)
    item.expiry_date = expiry
    item.stock_updated_at = utcnow()
    await db.commit()
    return item


async def update_cost(
    db: AsyncSession, restaurant_id: uuid.UUID, item_id: uuid.UUID, cost_per_unit: float
) -> MenuItem:
    if cost_per_unit is None or cost_per_unit < 0:
        raise ValidationError("Valid cost per unit is required")
    item = await _get_item(db, restaurant_id, item_id)
    item.cost_per_unit = cost_per_unit
    item.stock_updated_at = utcnow()
    await db.commit()
    return item


# ── Read side ────────────────────────────────────────────────────────────────


def _low_stock():
    return and_(
        MenuItem.track_stock.is_(True), MenuItem.current_stock <= MenuItem.low_stock_threshold
    )


async def inventory_stats(db: AsyncSession, restaurant_id: uuid.UUID) -> dict[str, Any]:
    result = await db.execute(
        select(
            func.count(MenuItem.id),
            func.sum(case((MenuItem.is_available.is_(True), 1), else_=0)),
            func.sum(case((_low_stock(), 1), else_=0)),
            func.sum(
                case((and_(MenuItem.track_stock.is_(True), MenuItem.current_stock == 0), 1), else_=0)
            ),
            func.sum(MenuItem.current_stock * MenuItem.cost_per_unit),
        ).where(MenuItem.restaurant_id == restaurant_id)
    )
    total, available, low, out, value = result.one()
    return {
        "total_items": total or 0,
        "available_items": int(available or 0),
        "low_stock_items": int(low or 0),
        "out_of_stock_items": int(out or 0),
        "total_value": round(float(value or 0), 2),
    }


async def list_inventory(
    db: AsyncSession,
    restaurant_id: uuid.UUID,
    category: Optional[str] = None,
    low_stock: bool = False,
    page: int = 1,
    limit: int = 20,
) -> dict[str, Any]:
    query = select(MenuItem).where(MenuItem.restaurant_id == restaurant_id)
    if category:
        query = query.where(MenuItem.category == category)
    if low_stock:
        query = query.where(_low_stock())

    total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar() or 0
    items = (
        await db.execute(
            query.order_by(MenuItem.updated_at.desc()).offset((page - 1) * limit).limit(limit)
        )
    ).scalars().all()
    categories = (
        await db.execute(
            select(MenuItem.category)
            .where(MenuItem.restaurant_id == restaurant_id)
            .distinct()
            .order_by(MenuItem.category)
        )
    ).scalars().all()
    return {
        "items": list(items),
        "pagination": Pagination.of(total, page, limit).model_dump(),
        "categories": list(categories),
        "stats": await inventory_stats(db, restaurant_id),
    }


async def inventory_alerts(
    db: AsyncSession, restaurant_id: uuid.UUID, now: Optional[datetime] = None
) -> dict[str, Any]:
    """Items at or below their low-stock threshold, or expiring soon."""
    now = now or utcnow()
    horizon = now + timedelta(days=settings.expiry_alert_days)
    low_cond = _low_stock()
    expiring_cond = and_(MenuItem.expiry_date.is_not(None), MenuItem.expiry_date <= horizon)

    items = (
        await db.execute(
            select(MenuItem)
            .where(MenuItem.restaurant_id == restaurant_id, or_(low_cond, expiring_cond))
            .order_by(MenuItem.current_stock)
        )
    ).scalars().all()

    low = [i for i in items if i.track_stock and i.current_stock <= i.low_stock_threshold]
    expiring = [
        i for i in items if i.expiry_date is not None and ensure_utc(i.expiry_date) <= horizon
    ]
    return {
        "alerts": list(items),
        "summary": {"low_stock": len(low), "expiring_soon": len(expiring)},
    }


async def auto_reorder(
    db: AsyncSession,
    restaurant_id: uuid.UUID,
    apply: bool = False,
    updated_by: Optional[uuid.UUID] = None,
) -> dict[str, Any]:
    """
    Tracked items at or below a positive reorder point, with a suggested
    quantity that brings stock to twice the reorder point. With apply=True
    each suggestion is booked as an 'add' adjustment.
    """
    items = (
        await db.execute(
            select(MenuItem)
            .where(
                MenuItem.restaurant_id == restaurant_id,
                MenuItem.track_stock.is_(True),
                MenuItem.reorder_point > 0,
                MenuItem.current_stock <= MenuItem.reorder_point,
            )
            .order_by(MenuItem.name)
        )
    ).scalars().all()
    reorder_list = [
        {
            "item_id": item.id,
            "item_name": item.name,
            "current_stock": item.current_stock,
            "reorder_point": item.reorder_point,
            "suggested_quantity": item.reorder_point * 2 - item.current_stock,
        }
        for item in items
    ]

    if apply:
        for entry in reorder_list:
            adjustment = await adjust_stock(
                db,
                restaurant_id,
                entry["item_id"],
                entry["suggested_quantity"],
                "add",
                reason="Auto reorder",
                updated_by=updated_by,
            )
            entry["new_stock"] = adjustment.new_stock
        logger.info("Auto reorder restocked %d items at restaurant %s", len(reorder_list), restaurant_id)

    return {"reorder_list": reorder_list, "applied": apply}


async def _stock_movement(
    db: AsyncSession,
    restaurant_id: uuid.UUID,
    start: Optional[datetime],
    end: Optional[datetime],
) -> list[dict[str, Any]]:
    added = func.sum(
        case((StockHistoryEntry.change_type == "add", StockHistoryEntry.quantity), else_=0)
    )
    removed = func.sum(
        case((StockHistoryEntry.change_type == "remove", StockHistoryEntry.quantity), else_=0)
    )
    query = (
        select(
            MenuItem.id,
            MenuItem.name,
            MenuItem.category,
            func.count(StockHistoryEntry.id),
            added,
            removed,
        )
        .join(StockHistoryEntry, StockHistoryEntry.menu_item_id == MenuItem.id)
        .where(MenuItem.restaurant_id == restaurant_id)
        .group_by(MenuItem.id, MenuItem.name, MenuItem.category)
        .order_by(MenuItem.name)
    )
    if start is not None:
        query = query.where(StockHistoryEntry.created_at >= start)
    if end is not None:
        query = query.where(StockHistoryEntry.created_at <= end)

    rows = await db.execute(query)
    return [
        {
            "item_id": item_id,
            "name": name,
            "category": category,
            "movements": movements,
            "total_added": int(total_added or 0),
            "total_removed": int(total_removed or 0),
        }
        for item_id, name, category, movements, total_added, total_removed in rows.all()
    ]


async def generate_report(
    db: AsyncSession,
    restaurant_id: uuid.UUID,
    report_type: str,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> dict[str, Any]:
    """
    One of three inventory reports:
      stock-movement  per-item totals added and removed, optionally in [start, end]
      low-stock       tracked items at or below their threshold, lowest first
      expiry          items expiring within REPORT_EXPIRY_DAYS, soonest first
    """
    if report_type not in REPORT_TYPES:
        raise ValidationError("Valid report type is required (stock-movement, low-stock, expiry)")
    if start is not None and end is not None and ensure_utc(end) < ensure_utc(start):
        raise ValidationError("End date must not be before start date")
    now = utcnow()

    if report_type == "stock-movement":
        data: list[Any] = await _stock_movement(db, restaurant_id, start, end)
    elif report_type == "low-stock":
        data = list((
            await db.execute(
                select(MenuItem)
                .where(MenuItem.restaurant_id == restaurant_id, _low_stock())
                .order_by(MenuItem.current_stock, MenuItem.name)
            )
        ).scalars().all())
    else:
        horizon = now + timedelta(days=REPORT_EXPIRY_DAYS)
        data = list((
            await db.execute(
                select(MenuItem)
                .where(
                    MenuItem.restaurant_id == restaurant_id,
                    MenuItem.expiry_date.is_not(None),
                    MenuItem.expiry_date <= horizon,
                )
                .order_by(MenuItem.expiry_date)
            )
        ).scalars().all())

    return {"type": report_type, "generated_at": now, "data": data}


async def stock_history(
    db: AsyncSession, restaurant_id: uuid.UUID, item_id: uuid.UUID
) -> dict[str, Any]:
    item = await _get_item(db, restaurant_id, item_id)
    entries = (
        await db.execute(
            select(StockHistoryEntry)
            .where(StockHistoryEntry.menu_item_id == item.id)
            .order_by(StockHistoryEntry.id)
        )
    ).scalars().all()
    return {"item_id": item.id, "name": item.name, "stock_history": list(entries)}


async def prune_stock_history(db: AsyncSession, before: datetime) -> int:
    """Delete stock-history rows created before `before`. Returns the number removed."""
    result = await db.execute(
        delete(StockHistoryEntry)
        .where(StockHistoryEntry.created_at < before)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    removed = result.rowcount or 0
    logger.info("Pruned %d stock history rows older than %s", removed, before.isoformat())
    return removed
