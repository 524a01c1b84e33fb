"""Favourite restaurant endpoints."""

from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from orderflow.auth import Actor, require_roles
from orderflow.database import get_db
from orderflow.errors import ValidationError
from orderflow.schemas.common import ok
from orderflow.schemas.favorite import FavoriteAdd
from orderflow.schemas.restaurant import RestaurantRead
from orderflow.services import favorites

router = APIRouter(prefix="/api/user/favorites", tags=["favorites"])

_customer = require_roles("customer")


@router.get("")
async def list_favorites(
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(_customer),
) -> dict:
    rows = await favorites.list_favorite_restaurants(db, actor.id)
    return ok([RestaurantRead.model_validate(r) for r in rows])


@router.post("", status_code=status.HTTP_201_CREATED)
async def add_favorite(
    body: FavoriteAdd,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(_customer),
) -> dict:
    restaurant = await favorites.add_favorite_restaurant(db, actor.id, body.restaurant_id)
    return ok(RestaurantRead.model_validate(restaurant), "Restaurant added to favorites")


@router.delete("")
async def remove_favorite(
    restaurant_id: Optional[UUID] = Query(default=None),
    remove_all: bool = Query(default=False),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(_customer),
) -> dict:
    if remove_all:
        removed = await favorites.clear_favorite_restaurants(db, actor.id)
        return ok({"removed": removed}, "All favorites removed")
    if restaurant_id is None:
        raise ValidationError("restaurant_id is required")
    await favorites.remove_favorite_restaurant(db, actor.id, restaurant_id)
    return ok({"removed": 1}, "Restaurant removed from favorites")
