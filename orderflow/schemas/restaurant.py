"""Pydantic schemas for restaurants and their menu items."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class RestaurantCreate(BaseModel):
    owner_id: uuid.UUID
    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    cuisine_types: list[str] = Field(default_factory=list)
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = Field(default=None, pattern=r"^\d{5}(-\d{4})?$")
    lat: Optional[float] = Field(default=None, ge=-90, le=90)
    lng: Optional[float] = Field(default=None, ge=-180, le=180)
    operating_hours: dict[str, Any] = Field(default_factory=dict)


class RestaurantRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    owner_id: uuid.UUID
    name: str
    description: Optional[str]
    cuisine_types: list[str]
    city: Optional[str]
    rating_average: float
    rating_count: int
    is_active: bool
    created_at: datetime


class MenuItemCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=300)
    category: str = Field(default="main", max_length=64)
    price: float = Field(ge=0)
    is_available: bool = True
    track_stock: Optional[bool] = None
    current_stock: int = Field(default=0, ge=0)
    low_stock_threshold: int = Field(default=10, ge=0)
    reorder_point: int = Field(default=5, ge=0)
    cost_per_unit: float = Field(default=0, ge=0)

    @model_validator(mode="after")
    def _default_tracking(self) -> "MenuItemCreate":
        # Opening stock turns tracking on; a tracked item with none is sold out
        if self.track_stock is None:
            self.track_stock = self.current_stock > 0
        if self.track_stock and self.current_stock == 0:
            self.is_available = False
        return self


class MenuItemUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=300)
    category: Optional[str] = Field(default=None, max_length=64)
    price: Optional[float] = Field(default=None, ge=0)
    is_available: Optional[bool] = None


class MenuItemRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    restaurant_id: uuid.UUID
    name: str
    description: Optional[str]
    category: str
    price: float
    is_available: bool
    track_stock: bool
    current_stock: int
    low_stock_threshold: int
    reorder_point: int
    cost_per_unit: float
    expiry_date: Optional[datetime]
    stock_updated_at: Optional[datetime]


class StockHistoryRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    change_type: str
    quantity: int
    previous_stock: int
    new_stock: int
    reason: str
    updated_by: Optional[uuid.UUID]
    created_at: datetime
