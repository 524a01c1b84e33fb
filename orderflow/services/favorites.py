"""Favourite restaurants and favourite coupons for a customer."""

from __future__ import annotations

import logging
import uuid
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from orderflow.errors import NotFoundError, ValidationError
from orderflow.models import Coupon, FavoriteCoupon, FavoriteRestaurant, Restaurant

logger = logging.getLogger(__name__)

COUPON_ACTIONS = ("favorite", "unfavorite")


async def list_favorite_restaurants(
    db: AsyncSession, user_id: uuid.UUID, limit: Optional[int] = None
) -> list[Restaurant]:
    """Active favourite restaurants, most recently added first."""
    stmt = (
        select(Restaurant)
        .join(FavoriteRestaurant, FavoriteRestaurant.restaurant_id == Restaurant.id)
        .where(FavoriteRestaurant.user_id == user_id, Restaurant.is_active.is_(True))
        .order_by(FavoriteRestaurant.id.desc())
    )
    if limit is not None:
        stmt = stmt.limit(limit)
    return list((await db.execute(stmt)).scalars())


async def add_favorite_restaurant(
    db: AsyncSession, user_id: uuid.UUID, restaurant_id: uuid.UUID
) -> Restaurant:
    restaurant = await db.get(Restaurant, restaurant_id)
    if restaurant is None or not restaurant.is_active:
        raise NotFoundError("Restaurant not found")

    existing = await db.execute(
        select(FavoriteRestaurant.id).where(
            FavoriteRestaurant.user_id == user_id,
            FavoriteRestaurant.restaurant_id == restaurant_id,
        )
    )
    if existing.first() is not None:
        raise ValidationError("Restaurant already in favorites")

    db.add(FavoriteRestaurant(user_id=user_id, restaurant_id=restaurant_id))
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ValidationError("Restaurant already in favorites")
    logger.info("User %s favourited restaurant %s", user_id, restaurant_id)
    return restaurant


async def remove_favorite_restaurant(
    db: AsyncSession, user_id: uuid.UUID, restaurant_id: uuid.UUID
) -> None:
    result = await db.execute(
        delete(FavoriteRestaurant)
        .where(
            FavoriteRestaurant.user_id == user_id,
            FavoriteRestaurant.restaurant_id == restaurant_id,
        )
        .execution_options(synchronize_session=False)
    )
    if not result.rowcount:
        await db.rollback()
        raise NotFoundError("Restaurant not in favorites")
    await db.commit()


async def clear_favorite_restaurants(db: AsyncSession, user_id: uuid.UUID) -> int:
    result = await db.execute(
        delete(FavoriteRestaurant)
        .where(FavoriteRestaurant.user_id == user_id)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return result.rowcount or 0


async def favorite_coupon_ids(db: AsyncSession, user_id: uuid.UUID) -> set[uuid.UUID]:
    rows = await db.execute(
        select(FavoriteCoupon.coupon_id).where(FavoriteCoupon.user_id == user_id)
    )
    return set(rows.scalars())


async def toggle_coupon_favorite(
    db: AsyncSession, user_id: uuid.UUID, coupon_id: uuid.UUID, action: str
) -> bool:
    """Mark or unmark a coupon as favourite. Idempotent; returns the new state."""
    if action not in COUPON_ACTIONS:
        raise ValidationError("Invalid action")
    if await db.get(Coupon, coupon_id) is None:
        raise NotFoundError("Coupon not found")

    if action == "unfavorite":
        await db.execute(
            delete(FavoriteCoupon)
            .where(FavoriteCoupon.user_id == user_id, FavoriteCoupon.coupon_id == coupon_id)
            .execution_options(synchronize_session=False)
        )
        await db.commit()
        return False

    if coupon_id in await favorite_coupon_ids(db, user_id):
        return True
    db.add(FavoriteCoupon(user_id=user_id, coupon_id=coupon_id))
    try:
        await db.commit()
    except IntegrityError:
        # Another request favourited it first
        await db.rollback()
    return True
