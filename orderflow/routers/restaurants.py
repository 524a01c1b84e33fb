"""Restaurant and menu management endpoints."""

from __future__ import annotations

import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from orderflow.auth import Actor, require_roles
from orderflow.database import get_db
from orderflow.errors import NotFoundError, ValidationError
from orderflow.models import MenuItem, Restaurant, StockHistoryEntry, User
from orderflow.schemas.common import ok
from orderflow.schemas.restaurant import (
    MenuItemCreate,
    MenuItemRead,
    MenuItemUpdate,
    RestaurantCreate,
    RestaurantRead,
)
from orderflow.services import reporting, system
from orderflow.services.inventory import restaurant_for_actor

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["restaurants"])

_owner = require_roles("restaurant", "admin")


# ── Admin ────────────────────────────────────────────────────────────────────


@router.post("/admin/restaurants", status_code=status.HTTP_201_CREATED)
async def create_restaurant(
    body: RestaurantCreate,
    db: AsyncSession = Depends(get_db),
    _: Actor = Depends(require_roles("admin")),
) -> dict:
    owner = await db.get(User, body.owner_id)
    if owner is None:
        raise NotFoundError("Owner not found")
    if owner.role != "restaurant":
        raise ValidationError("Owner must have the restaurant role")
    limits = await system.get_setting(db, "limits")
    owned = (
        await db.execute(select(func.count(Restaurant.id)).where(Restaurant.owner_id == owner.id))
    ).scalar() or 0
    if owned >= limits["max_restaurants_per_owner"]:
        raise ValidationError(
            f"Owner already has {owned} restaurants; the limit is {limits['max_restaurants_per_owner']}"
        )
    restaurant = Restaurant(**body.model_dump())
    db.add(restaurant)
    await db.commit()
    await db.refresh(restaurant)
    logger.info("Restaurant %s created for owner %s", restaurant.id, owner.id)
    return ok(RestaurantRead.model_validate(restaurant), "Restaurant created")


@router.get("/admin/restaurants")
async def list_restaurants(
    active: Optional[bool] = Query(default=None),
    db: AsyncSession = Depends(get_db),
    _: Actor = Depends(require_roles("admin")),
) -> dict:
    query = select(Restaurant).order_by(Restaurant.created_at.desc())
    if active is not None:
        query = query.where(Restaurant.is_active.is_(active))
    rows = (await db.execute(query)).scalars().all()
    return ok([RestaurantRead.model_validate(r) for r in rows])


# ── Public menu ──────────────────────────────────────────────────────────────


@router.get("/restaurants/{restaurant_id}/menu")
async def public_menu(restaurant_id: UUID, db: AsyncSession = Depends(get_db)) -> dict:
    restaurant = await db.get(Restaurant, restaurant_id)
    if restaurant is None or not restaurant.is_active:
        raise NotFoundError("Restaurant not found")
    items = (
        await db.execute(
            select(MenuItem)
            .where(MenuItem.restaurant_id == restaurant_id, MenuItem.is_available.is_(True))
            .order_by(MenuItem.category, MenuItem.name)
        )
    ).scalars().all()
    return ok({
        "restaurant": RestaurantRead.model_validate(restaurant),
        "items": [MenuItemRead.model_validate(i) for i in items],
    })


# ── Owner menu management ────────────────────────────────────────────────────


@router.post("/restaurant/menu", status_code=status.HTTP_201_CREATED)
async def add_menu_item(
    body: MenuItemCreate,
    restaurant_id: Optional[UUID] = Query(default=None),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(_owner),
) -> dict:
    restaurant = await restaurant_for_actor(db, actor.id, actor.role, restaurant_id)
    item = MenuItem(restaurant_id=restaurant.id, **body.model_dump())
    db.add(item)
    await db.commit()
    await db.refresh(item)
    return ok(MenuItemRead.model_validate(item), "Menu item created")


@router.put("/restaurant/menu/{item_id}")
async def update_menu_item(
    item_id: UUID,
    body: MenuItemUpdate,
    restaurant_id: Optional[UUID] = Query(default=None),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(_owner),
) -> dict:
    restaurant = await restaurant_for_actor(db, actor.id, actor.role, restaurant_id)
    item = await db.get(MenuItem, item_id)
    if item is None or item.restaurant_id != restaurant.id:
        raise NotFoundError("Item not found")
    for field, value in body.model_dump(exclude_unset=True).items():
        setattr(item, field, value)
    await db.commit()
    await db.refresh(item)
    return ok(MenuItemRead.model_validate(item), "Menu item updated")


@router.delete("/restaurant/menu/{item_id}")
async def delete_menu_item(
    item_id: UUID,
    restaurant_id: Optional[UUID] = Query(default=None),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(_owner),
) -> dict:
    restaurant = await restaurant_for_actor(db, actor.id, actor.role, restaurant_id)
    item = await db.get(MenuItem, item_id)
    if item is None or item.restaurant_id != restaurant.id:
        raise NotFoundError("Item not found")
    await db.execute(
        delete(StockHistoryEntry)
        .where(StockHistoryEntry.menu_item_id == item.id)
        .execution_options(synchronize_session=False)
    )
    await db.delete(item)
    await db.commit()
    return ok(None, "Menu item deleted")


@router.get("/restaurant/stats/trend")
async def order_trend(
    days: int = Query(default=30, ge=1, le=365),
    restaurant_id: Optional[UUID] = Query(default=None),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(_owner),
) -> dict:
    restaurant = await restaurant_for_actor(db, actor.id, actor.role, restaurant_id)
    return ok(await reporting.restaurant_order_trend(db, restaurant.id, days))
