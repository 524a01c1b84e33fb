"""Pydantic schemas for inventory endpoints."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field


class StockAdjustRequest(BaseModel):
    item_id: uuid.UUID
    quantity: int = Field(ge=0)
    type: Literal["add", "remove", "set"]
    reason: Optional[str] = Field(default=None, max_length=200)
    cost_per_unit: Optional[float] = Field(default=None, ge=0)


class ThresholdRequest(BaseModel):
    item_id: uuid.UUID
    low_stock_threshold: int = Field(ge=0)
    reorder_point: Optional[int] = Field(default=None, ge=0)


class ExpiryRequest(BaseModel):
    item_id: uuid.UUID
    expiry_date: datetime


class CostRequest(BaseModel):
    item_id: uuid.UUID
    cost_per_unit: float = Field(ge=0)


class BulkAdjustItem(BaseModel):
    item_id: uuid.UUID
    quantity: int = Field(ge=0)
    type: Literal["add", "remove", "set"] = "set"
    reason: Optional[str] = None


class BulkAdjustRequest(BaseModel):
    items: list[BulkAdjustItem] = Field(min_length=1)


class AutoReorderRequest(BaseModel):
    apply: bool = False
