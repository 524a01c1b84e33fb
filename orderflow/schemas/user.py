"""Pydantic schemas for user profile endpoints."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class UserCreate(BaseModel):
    """Body for POST /api/users/{uid}, sent by the gateway after registration."""

    name: str = Field(default="", max_length=100)
    email: Optional[str] = Field(default=None, max_length=255)
    phone: Optional[str] = Field(default=None, max_length=32)
    role: Literal["customer", "restaurant", "delivery", "admin"] = "customer"


class UserRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    email: Optional[str]
    phone: Optional[str]
    role: str
    loyalty_points: int
    order_count: int
    total_spent: float
    is_active: bool
    created_at: datetime
