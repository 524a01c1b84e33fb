"""Pydantic schemas for search endpoints."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class SavedSearchCreate(BaseModel):
    query: str = Field(min_length=1, max_length=100)
    filters: dict[str, Any] = Field(default_factory=dict)


class SavedSearchRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    query: str
    filters: dict[str, Any]
    saved_at: datetime


class SearchHistoryRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    query: str
    results_count: int
    created_at: datetime
