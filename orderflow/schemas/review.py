"""Pydantic schemas for review endpoints."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class ReviewCreate(BaseModel):
    order_id: uuid.UUID
    food_rating: int = Field(ge=1, le=5)
    service_rating: int = Field(ge=1, le=5)
    delivery_rating: Optional[int] = Field(default=None, ge=1, le=5)
    overall_rating: Optional[float] = Field(default=None, ge=1, le=5)
    comment: str = Field(min_length=10, max_length=1000)


class ReviewUpdate(BaseModel):
    comment: str = Field(min_length=10, max_length=1000)
    reason: Optional[str] = Field(default=None, max_length=200)


class ReviewReport(BaseModel):
    reason: str = Field(min_length=1, max_length=200)


class ModerationRequest(BaseModel):
    action: Literal[
        "approve", "reject", "hide", "show", "flag", "unflag", "edit_content"
    ]
    reason: Optional[str] = Field(default=None, max_length=500)
    severity: Literal["low", "medium", "high"] = "medium"
    comment: Optional[str] = Field(default=None, min_length=10, max_length=1000)


class ReviewFlagRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    reason: str
    severity: str
    flagged_by: str
    created_at: datetime


class ReviewEditRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    original_comment: str
    reason: Optional[str]
    edited_by: str
    created_at: datetime


class ReviewRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: uuid.UUID
    restaurant_id: uuid.UUID
    order_id: uuid.UUID
    food_rating: int
    service_rating: int
    delivery_rating: Optional[int]
    overall_rating: float
    comment: str
    moderation_status: str
    moderation_note: Optional[str]
    is_visible: bool
    is_edited: bool
    report_count: int
    created_at: datetime
    flags: list[ReviewFlagRead]
    edit_history: list[ReviewEditRead]
