"""Saved payment method endpoints."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from orderflow.auth import Actor, require_roles
from orderflow.database import get_db
from orderflow.schemas.common import ok
from orderflow.schemas.payment import PaymentMethodCreate, PaymentMethodRead, PaymentMethodUpdate
from orderflow.services import payment_methods

router = APIRouter(prefix="/api/user/payment-methods", tags=["payment-methods"])

_customer = require_roles("customer")


@router.get("")
async def list_methods(
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(_customer),
) -> dict:
    methods = [PaymentMethodRead.model_validate(m) for m in await payment_methods.list_methods(db, actor.id)]
    return ok({
        "payment_methods": methods,
        "total": len(methods),
        "default": next((m for m in methods if m.is_default), None),
    })


@router.post("", status_code=status.HTTP_201_CREATED)
async def add_method(
    body: PaymentMethodCreate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(_customer),
) -> dict:
    method = await payment_methods.add_method(db, actor.id, body.model_dump())
    return ok(PaymentMethodRead.model_validate(method), "Payment method added successfully")


@router.put("/{method_id}")
async def update_method(
    method_id: UUID,
    body: PaymentMethodUpdate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(_customer),
) -> dict:
    method = await payment_methods.update_method(db, actor.id, method_id, body.action, body.label)
    return ok(PaymentMethodRead.model_validate(method), "Payment method updated successfully")


@router.delete("/{method_id}")
async def delete_method(
    method_id: UUID,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(_customer),
) -> dict:
    await payment_methods.delete_method(db, actor.id, method_id)
    return ok(None, "Payment method deleted successfully")
