"""Pydantic schemas for notification endpoints."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict


class NotificationRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    type: str
    title: str
    message: str
    data: dict[str, Any]
    priority: str
    is_read: bool
    read_at: Optional[datetime]
    expires_at: Optional[datetime]
    created_at: datetime
