"""Notification ORM model: fire-and-forget messages to a user."""

import uuid

from sqlalchemy import (
    Column, Text, String, Boolean, Uuid, JSON,
    TIMESTAMP, ForeignKey,
)

from orderflow.database import Base
from orderflow.utils.clock import utcnow


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(String(40), nullable=False)
    title = Column(String(100), nullable=False)
    message = Column(String(500), nullable=False)
    data = Column(JSON, nullable=False, default=dict)
    priority = Column(String(10), nullable=False, default="medium")
    # 'low' | 'medium' | 'high' | 'urgent'

    is_read = Column(Boolean, nullable=False, default=False)
    read_at = Column(TIMESTAMP(timezone=True), nullable=True)
    expires_at = Column(TIMESTAMP(timezone=True), nullable=True)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow)
