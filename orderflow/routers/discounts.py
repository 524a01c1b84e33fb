"""
Restaurant discount endpoints.
Owners manage their own restaurant's discounts; admins pass ?restaurant_id=...
Customers validate a code against their cart.
"""

from __future__ import annotations

from typing import Literal, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from orderflow.auth import Actor, require_roles
from orderflow.database import get_db
from orderflow.schemas.common import ok
from orderflow.schemas.discount import (
    DiscountCreate,
    DiscountRead,
    DiscountUpdate,
    DiscountValidateRequest,
)
from orderflow.services import discounts
from orderflow.services.inventory import restaurant_for_actor

router = APIRouter(prefix="/api", tags=["discounts"])

_owner = require_roles("restaurant", "admin")


async def _restaurant_id(db: AsyncSession, actor: Actor, restaurant_id: Optional[UUID]) -> UUID:
    restaurant = await restaurant_for_actor(db, actor.id, actor.role, restaurant_id)
    return restaurant.id


@router.get("/restaurant/discounts")
async def list_discounts(
    status_filter: Literal["all", "active", "scheduled", "expired"] = Query(default="all", alias="status"),
    search: Optional[str] = Query(default=None, max_length=100),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    restaurant_id: Optional[UUID] = Query(default=None),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(_owner),
) -> dict:
    rid = await _restaurant_id(db, actor, restaurant_id)
    result = await discounts.list_discounts(db, rid, status_filter, search, page, limit)
    result["discounts"] = [DiscountRead.model_validate(d) for d in result["discounts"]]
    return ok(result)


@router.post("/restaurant/discounts", status_code=status.HTTP_201_CREATED)
async def create_discount(
    body: DiscountCreate,
    restaurant_id: Optional[UUID] = Query(default=None),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(_owner),
) -> dict:
    rid = await _restaurant_id(db, actor, restaurant_id)
    discount = await discounts.create_discount(db, rid, body.model_dump())
    return ok(DiscountRead.model_validate(discount), "Discount created successfully")


@router.get("/restaurant/discounts/{discount_id}")
async def get_discount(
    discount_id: UUID,
    restaurant_id: Optional[UUID] = Query(default=None),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(_owner),
) -> dict:
    rid = await _restaurant_id(db, actor, restaurant_id)
    return ok(DiscountRead.model_validate(await discounts.get_discount(db, rid, discount_id)))


@router.put("/restaurant/discounts/{discount_id}")
async def update_discount(
    discount_id: UUID,
    body: DiscountUpdate,
    restaurant_id: Optional[UUID] = Query(default=None),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(_owner),
) -> dict:
    rid = await _restaurant_id(db, actor, restaurant_id)
    discount = await discounts.update_discount(
        db, rid, discount_id, body.model_dump(exclude_unset=True)
    )
    return ok(DiscountRead.model_validate(discount), "Discount updated successfully")


@router.delete("/restaurant/discounts/{discount_id}")
async def delete_discount(
    discount_id: UUID,
    restaurant_id: Optional[UUID] = Query(default=None),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(_owner),
) -> dict:
    rid = await _restaurant_id(db, actor, restaurant_id)
    await discounts.delete_discount(db, rid, discount_id)
    return ok(None, "Discount deleted successfully")


@router.post("/discounts/validate")
async def validate_discount(
    body: DiscountValidateRequest,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_roles("customer")),
) -> dict:
    quote = await discounts.validate_discount(
        db, body.code, actor.id, body.restaurant_id, body.order_amount,
        [line.model_dump() for line in body.items],
    )
    return ok(
        {
            "discount": DiscountRead.model_validate(quote.discount),
            "discount_amount": quote.discount_amount,
            "final_amount": quote.final_amount,
        },
        "Discount is valid",
    )
