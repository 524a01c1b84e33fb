"""Coupon endpoints: browse, favourite, validate and apply for customers; create for admins."""

from __future__ import annotations

from typing import Literal, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from orderflow.auth import Actor, require_roles
from orderflow.database import get_db
from orderflow.schemas.common import ok
from orderflow.schemas.coupon import (
    CouponApplyRequest,
    CouponCreate,
    CouponRead,
    CouponValidateRequest,
)
from orderflow.schemas.favorite import CouponFavoriteRequest
from orderflow.services import coupons, favorites

router = APIRouter(prefix="/api", tags=["coupons"])


@router.get("/user/coupons")
async def browse_coupons(
    view: Literal["available", "used", "expired", "favorites", "all"] = Query(default="available"),
    category: Optional[str] = Query(default=None),
    restaurant_id: Optional[UUID] = Query(default=None),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_roles("customer")),
) -> dict:
    result = await coupons.list_coupons(db, actor.id, view, category, restaurant_id, page, limit)
    for entry in result["coupons"]:
        entry["coupon"] = CouponRead.model_validate(entry["coupon"])
    return ok(result)


@router.put("/user/coupons")
async def favorite_coupon(
    body: CouponFavoriteRequest,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_roles("customer")),
) -> dict:
    is_favorite = await favorites.toggle_coupon_favorite(db, actor.id, body.coupon_id, body.action)
    message = "Coupon added to favorites" if is_favorite else "Coupon removed from favorites"
    return ok({"coupon_id": body.coupon_id, "is_favorite": is_favorite}, message)


@router.post("/user/coupons/validate")
async def validate_coupon(
    body: CouponValidateRequest,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_roles("customer")),
) -> dict:
    quote = await coupons.validate_coupon(
        db, body.code, actor.id, body.order_value, body.restaurant_id
    )
    return ok(
        {
            "coupon": CouponRead.model_validate(quote.coupon),
            "discount_amount": quote.discount_amount,
            "final_amount": quote.final_amount,
        },
        "Coupon is valid",
    )


@router.post("/user/coupons/apply")
async def apply_coupon(
    body: CouponApplyRequest,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_roles("customer")),
) -> dict:
    redemption = await coupons.apply_coupon(
        db, body.code, actor.id, body.order_id
    )
    return ok(redemption, "Coupon applied successfully")


@router.post("/admin/coupons", status_code=status.HTTP_201_CREATED)
async def create_coupon(
    body: CouponCreate,
    db: AsyncSession = Depends(get_db),
    _: Actor = Depends(require_roles("admin")),
) -> dict:
    coupon = await coupons.create_coupon(db, body.model_dump())
    return ok(CouponRead.model_validate(coupon), "Coupon created")


@router.get("/admin/coupons/stats")
async def coupon_stats(
    db: AsyncSession = Depends(get_db),
    _: Actor = Depends(require_roles("admin")),
) -> dict:
    return ok(await coupons.category_stats(db))
