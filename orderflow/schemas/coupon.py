"""Pydantic schemas for coupon endpoints."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class CouponValidateRequest(BaseModel):
    code: str = Field(min_length=1)
    order_value: float = Field(ge=0)
    restaurant_id: Optional[uuid.UUID] = None


class CouponApplyRequest(BaseModel):
    code: str = Field(min_length=1)
    order_id: uuid.UUID


class CouponCreate(BaseModel):
    code: str = Field(min_length=3, max_length=32)
    title: str = Field(min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    category: Literal["discount", "delivery", "cashback", "combo"] = "discount"
    discount_type: Literal["percentage", "fixed"]
    discount_value: float = Field(ge=0)
    max_discount_amount: Optional[float] = Field(default=None, ge=0)
    min_order_value: float = Field(default=0, ge=0)
    start_date: datetime
    end_date: datetime
    usage_limit_total: int = Field(default=1000, ge=1)
    usage_limit_per_user: int = Field(default=1, ge=1)
    new_users_only: bool = False
    applicable_restaurant_ids: list[uuid.UUID] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_bounds(self) -> "CouponCreate":
        if self.end_date <= self.start_date:
            raise ValueError("end_date must be after start_date")
        if self.discount_type == "percentage" and self.discount_value > 100:
            raise ValueError("Percentage discount cannot exceed 100")
        return self


class CouponRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    code: str
    title: str
    description: Optional[str]
    category: str
    discount_type: str
    discount_value: float
    max_discount_amount: Optional[float]
    min_order_value: float
    start_date: datetime
    end_date: datetime
    usage_limit_total: int
    usage_limit_per_user: int
    usage_count: int
    new_users_only: bool
    is_active: bool
    applicable_restaurant_ids: list[uuid.UUID]
