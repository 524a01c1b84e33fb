"""
Saved payment methods.

Card and bank numbers are validated and reduced to their last four digits
before anything is stored. A user has at most MAX_METHODS and exactly one
default whenever they have any.
"""

from __future__ import annotations

import logging
import re
import uuid
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from orderflow.errors import NotFoundError, ValidationError
from orderflow.models import PaymentMethod
from orderflow.utils.clock import utcnow

logger = logging.getLogger(__name__)

MAX_METHODS = 5
WALLET_PROVIDERS = ("paypal", "googlepay", "applepay", "phonepe", "paytm", "gpay")

# (prefix pattern, brand), first match wins
_CARD_BRANDS = [
    (re.compile(r"^4"), "visa"),
    (re.compile(r"^5[1-5]"), "mastercard"),
    (re.compile(r"^3[47]"), "amex"),
    (re.compile(r"^6"), "discover"),
]


def card_brand(number: str) -> str:
    for pattern, brand in _CARD_BRANDS:
        if pattern.match(number):
            return brand
    return "unknown"


def _digits(value: str) -> str:
    return re.sub(r"[\s-]", "", value)


def card_expired(month: int, year: int, now: Optional[datetime] = None) -> bool:
    """A card is good through the last day of its expiry month."""
    now = now or utcnow()
    return (year, month) < (now.year, now.month)


def _card_fields(card: dict[str, Any], now: Optional[datetime] = None) -> dict[str, Any]:
    number = _digits(card["card_number"])
    if not number.isdigit() or not 13 <= len(number) <= 19:
        raise ValidationError("Invalid card number")
    if card_expired(card["expiry_month"], card["expiry_year"], now):
        raise ValidationError("Card has expired")
    return {
        "card_brand": card_brand(number),
        "last_four": number[-4:],
        "expiry_month": card["expiry_month"],
        "expiry_year": card["expiry_year"],
        "holder_name": card["holder_name"].strip(),
    }


def _wallet_fields(wallet: dict[str, Any]) -> dict[str, Any]:
    provider = wallet["provider"].strip().lower()
    if provider not in WALLET_PROVIDERS:
        raise ValidationError("Invalid wallet provider")
    return {"provider": provider, "wallet_id": wallet["wallet_id"].strip()}


def _bank_fields(bank: dict[str, Any]) -> dict[str, Any]:
    account = _digits(bank["account_number"])
    if not account.isdigit():
        raise ValidationError("Invalid account number")
    return {
        "last_four": account[-4:],
        "holder_name": bank["account_holder"].strip(),
        "bank_name": bank.get("bank_name"),
        "account_type": bank.get("account_type") or "checking",
    }


async def list_methods(db: AsyncSession, user_id: uuid.UUID) -> list[PaymentMethod]:
    """Default first, then oldest first."""
    rows = await db.execute(
        select(PaymentMethod)
        .where(PaymentMethod.user_id == user_id)
        .order_by(PaymentMethod.is_default.desc(), PaymentMethod.created_at)
        .execution_options(populate_existing=True)
    )
    return list(rows.scalars())


async def _clear_default(
    db: AsyncSession, user_id: uuid.UUID, keep: Optional[uuid.UUID] = None
) -> None:
    stmt = update(PaymentMethod).where(
        PaymentMethod.user_id == user_id, PaymentMethod.is_default.is_(True)
    )
    if keep is not None:
        stmt = stmt.where(PaymentMethod.id != keep)
    await db.execute(
        stmt
        .values(is_default=False)
        .execution_options(synchronize_session=False)
    )


async def add_method(
    db: AsyncSession, user_id: uuid.UUID, payload: dict[str, Any], now: Optional[datetime] = None
) -> PaymentMethod:
    type_ = payload["type"]
    if type_ == "card":
        if not payload.get("card"):
            raise ValidationError("Card details are incomplete")
        fields = _card_fields(payload["card"], now)
    elif type_ == "wallet":
        if not payload.get("wallet"):
            raise ValidationError("Wallet details are incomplete")
        fields = _wallet_fields(payload["wallet"])
    elif type_ == "bank":
        if not payload.get("bank"):
            raise ValidationError("Bank details are incomplete")
        fields = _bank_fields(payload["bank"])
    elif type_ == "cash":
        fields = {}
    else:
        raise ValidationError("Invalid payment method type")

    existing = await list_methods(db, user_id)
    if len(existing) >= MAX_METHODS:
        raise ValidationError(f"Maximum {MAX_METHODS} payment methods allowed")

    make_default = bool(payload.get("is_default")) or not existing
    if make_default:
        await _clear_default(db, user_id)
    method = PaymentMethod(
        user_id=user_id,
        type=type_,
        label=(payload.get("label") or "").strip() or type_.capitalize(),
        is_default=make_default,
        **fields,
    )
    db.add(method)
    await db.commit()
    await db.refresh(method)
    logger.info("Payment method %s (%s) added for user %s", method.id, type_, user_id)
    return method


async def _get_own(db: AsyncSession, user_id: uuid.UUID, method_id: uuid.UUID) -> PaymentMethod:
    method = await db.get(PaymentMethod, method_id)
    if method is None or method.user_id != user_id:
        raise NotFoundError("Payment method not found")
    return method


async def update_method(
    db: AsyncSession,
    user_id: uuid.UUID,
    method_id: uuid.UUID,
    action: str,
    label: Optional[str] = None,
) -> PaymentMethod:
    method = await _get_own(db, user_id, method_id)
    if action == "set-default":
        await _clear_default(db, user_id, keep=method.id)
        method.is_default = True
    elif action == "update":
        if label is None:
            raise ValidationError("Nothing to update")
        method.label = label.strip()
    else:
        raise ValidationError("Invalid action")
    await db.commit()
    await db.refresh(method)
    return method


async def delete_method(db: AsyncSession, user_id: uuid.UUID, method_id: uuid.UUID) -> None:
    """Remove a method; if it was the default, the oldest remaining one takes over."""
    method = await _get_own(db, user_id, method_id)
    was_default = method.is_default
    await db.delete(method)
    await db.flush()
    if was_default:
        successor = (
            await db.execute(
                select(PaymentMethod)
                .where(PaymentMethod.user_id == user_id)
                .order_by(PaymentMethod.created_at)
                .limit(1)
            )
        ).scalar_one_or_none()
        if successor is not None:
            successor.is_default = True
    await db.commit()
