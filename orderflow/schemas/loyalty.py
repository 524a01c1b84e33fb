"""Pydantic schemas for loyalty endpoints."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict


class EarnPointsRequest(BaseModel):
    order_id: uuid.UUID


class RedeemRewardRequest(BaseModel):
    reward_id: str


class LoyaltyTransactionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    order_id: Optional[uuid.UUID]
    type: str
    points: int
    description: Optional[str]
    expires_at: Optional[datetime]
    is_active: bool
    meta: dict[str, Any]
    created_at: datetime
