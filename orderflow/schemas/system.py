"""Pydantic schemas for admin system operations. `action` selects the operation."""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field


class MaintenanceUpdate(BaseModel):
    action: Literal["maintenance-mode"]
    enabled: bool
    message: Optional[str] = Field(default=None, max_length=500)
    scheduled_start: Optional[datetime] = None
    scheduled_end: Optional[datetime] = None


class LimitsUpdate(BaseModel):
    action: Literal["update-limits"]
    limits: dict[str, int]


class FeatureToggle(BaseModel):
    action: Literal["toggle-feature"]
    feature: str
    enabled: bool


class CacheClear(BaseModel):
    action: Literal["clear-cache"]
    cache_type: str = "all"


SystemUpdate = Annotated[
    Union[MaintenanceUpdate, LimitsUpdate, FeatureToggle, CacheClear],
    Field(discriminator="action"),
]


class Announcement(BaseModel):
    action: Literal["send-system-notification"]
    title: str = Field(min_length=1, max_length=100)
    message: str = Field(min_length=1, max_length=500)
    target_users: str = "all"
    priority: Literal["low", "medium", "high"] = "medium"


class Cleanup(BaseModel):
    action: Literal["cleanup-data"]
    data_type: str
    older_than_days: int = Field(ge=1)


SystemTask = Annotated[Union[Announcement, Cleanup], Field(discriminator="action")]
