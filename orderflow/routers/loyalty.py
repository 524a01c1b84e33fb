"""Loyalty endpoints: account summary, earning, redemption and the expiry sweep."""

from __future__ import annotations

from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from orderflow.auth import Actor, require_roles
from orderflow.database import get_db
from orderflow.schemas.common import ok
from orderflow.schemas.loyalty import (
    EarnPointsRequest,
    LoyaltyTransactionRead,
    RedeemRewardRequest,
)
from orderflow.services import loyalty

router = APIRouter(prefix="/api", tags=["loyalty"])


@router.get("/user/loyalty")
async def loyalty_summary(
    include_transactions: bool = Query(default=False),
    transaction_type: Optional[Literal["earned", "redeemed", "expired"]] = Query(default=None),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_roles("customer")),
) -> dict:
    summary = await loyalty.loyalty_summary(
        db, actor.id, include_transactions, transaction_type, page, limit
    )
    if "transactions" in summary:
        summary["transactions"]["data"] = [
            LoyaltyTransactionRead.model_validate(t) for t in summary["transactions"]["data"]
        ]
    return ok(summary)


@router.post("/user/loyalty/earn")
async def earn_points(
    body: EarnPointsRequest,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_roles("customer")),
) -> dict:
    result = await loyalty.earn_points(db, actor.id, body.order_id)
    return ok(result, f"Earned {result['points_earned']} points!")


@router.post("/user/loyalty/redeem")
async def redeem_reward(
    body: RedeemRewardRequest,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_roles("customer")),
) -> dict:
    result = await loyalty.redeem_reward(db, actor.id, body.reward_id)
    return ok(result, f"Successfully redeemed {result['reward']['name']}!")


@router.post("/admin/loyalty/expire")
async def expire_points(
    db: AsyncSession = Depends(get_db),
    _: Actor = Depends(require_roles("admin")),
) -> dict:
    return ok(await loyalty.expire_points(db), "Expired points processed")
