"""Pydantic schemas for restaurant discounts."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

DiscountType = Literal["percentage", "fixed", "bogo", "free_delivery"]
CustomerSegment = Literal["all", "new", "returning", "vip"]


class DiscountCreate(BaseModel):
    code: str = Field(min_length=3, max_length=32)
    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    type: DiscountType
    value: float = Field(ge=0)
    min_order_amount: float = Field(default=0, ge=0)
    max_discount: float = Field(default=0, ge=0)
    usage_limit: int = Field(default=0, ge=0)
    user_limit: int = Field(default=1, ge=0)
    start_date: datetime
    end_date: datetime
    applicable_items: list[str] = Field(default_factory=list)
    customer_segment: CustomerSegment = "all"
    is_active: bool = True


class DiscountUpdate(BaseModel):
    code: Optional[str] = Field(default=None, min_length=3, max_length=32)
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    type: Optional[DiscountType] = None
    value: Optional[float] = Field(default=None, ge=0)
    min_order_amount: Optional[float] = Field(default=None, ge=0)
    max_discount: Optional[float] = Field(default=None, ge=0)
    usage_limit: Optional[int] = Field(default=None, ge=0)
    user_limit: Optional[int] = Field(default=None, ge=0)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    applicable_items: Optional[list[str]] = None
    customer_segment: Optional[CustomerSegment] = None
    is_active: Optional[bool] = None


class DiscountRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    restaurant_id: uuid.UUID
    code: str
    name: str
    description: Optional[str]
    type: str
    value: float
    min_order_amount: float
    max_discount: float
    usage_limit: int
    used_count: int
    user_limit: int
    start_date: datetime
    end_date: datetime
    applicable_items: list[str]
    customer_segment: str
    is_active: bool
    created_at: datetime


class CartLine(BaseModel):
    name: str = Field(min_length=1)
    price: float = Field(ge=0)
    quantity: int = Field(default=1, ge=1)


class DiscountValidateRequest(BaseModel):
    code: str = Field(min_length=1)
    restaurant_id: uuid.UUID
    order_amount: float = Field(gt=0)
    items: list[CartLine] = Field(default_factory=list)

    @model_validator(mode="after")
    def _strip_code(self) -> "DiscountValidateRequest":
        self.code = self.code.strip()
        return self
