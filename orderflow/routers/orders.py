"""
Order endpoints for customers, restaurant owners, couriers and admins.

Every state change goes through POST /api/orders/{order_id}/actions with a
body tagged by `action`; the lifecycle engine decides who may do what.
"""

from __future__ import annotations

from typing import Any, Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from orderflow.auth import Actor, get_actor, require_roles
from orderflow.database import get_db
from orderflow.schemas.common import ok
from orderflow.schemas.order import OrderRead, PlaceOrderRequest, parse_order_command
from orderflow.services import checkout, orders

router = APIRouter(prefix="/api", tags=["orders"])

_ACTION_MESSAGES = {
    "advance_status": "Order status updated",
    "cancel": "Order cancelled successfully",
    "assign_delivery": "Delivery person assigned",
    "open_dispute": "Dispute opened",
    "resolve_dispute": "Dispute resolved successfully",
}


def _page_out(result: dict) -> dict:
    result["orders"] = [OrderRead.model_validate(o) for o in result["orders"]]
    return result


# ── Customer ─────────────────────────────────────────────────────────────────


@router.post("/user/orders", status_code=status.HTTP_201_CREATED)
async def place_order(
    body: PlaceOrderRequest,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_roles("customer")),
) -> dict:
    order = await checkout.place_order(db, actor, body)
    return ok(OrderRead.model_validate(order), "Order placed successfully")


@router.get("/user/orders")
async def my_orders(
    status_filter: Optional[str] = Query(default=None, alias="status"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=50),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_roles("customer")),
) -> dict:
    result = await orders.list_customer_orders(db, actor, status_filter, page, limit)
    return ok(_page_out(result))


@router.get("/user/orders/{order_id}")
async def my_order_detail(
    order_id: UUID,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_roles("customer")),
) -> dict:
    detail = await orders.customer_order_detail(db, actor, order_id)
    detail["order"] = OrderRead.model_validate(detail["order"])
    detail["tracking"] = detail["order"].status_history
    return ok(detail)


# ── Restaurant owner ─────────────────────────────────────────────────────────


@router.get("/restaurant/orders")
async def restaurant_orders(
    status_filter: Optional[str] = Query(default=None, alias="status"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_roles("restaurant")),
) -> dict:
    result = await orders.list_restaurant_orders(db, actor, status_filter, page, limit)
    return ok(_page_out(result))


# ── Admin ────────────────────────────────────────────────────────────────────


@router.get("/admin/orders")
async def all_orders(
    status_filter: Optional[str] = Query(default=None, alias="status"),
    restaurant_id: Optional[UUID] = Query(default=None),
    customer_id: Optional[UUID] = Query(default=None),
    search: Optional[str] = Query(default=None),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    _: Actor = Depends(require_roles("admin")),
) -> dict:
    result = await orders.list_all_orders(
        db, status_filter, restaurant_id, customer_id, search, page, limit
    )
    return ok(_page_out(result))


@router.get("/admin/orders/disputes")
async def open_disputes(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    _: Actor = Depends(require_roles("admin")),
) -> dict:
    return ok(_page_out(await orders.list_disputes(db, page, limit)))


# ── Commands ─────────────────────────────────────────────────────────────────


@router.post("/orders/{order_id}/actions")
async def order_action(
    order_id: UUID,
    payload: dict[str, Any] = Body(...),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_actor),
) -> dict:
    body = parse_order_command(payload)
    order = await orders.execute(db, order_id, actor, body.to_command())
    return ok(OrderRead.model_validate(order), _ACTION_MESSAGES[body.action])
