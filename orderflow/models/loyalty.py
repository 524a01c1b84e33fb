"""LoyaltyTransaction ORM model."""

import uuid

from sqlalchemy import (
    Column, Integer, Text, String, Boolean, Uuid, JSON, Index,
    TIMESTAMP, ForeignKey, text,
)

from orderflow.database import Base
from orderflow.utils.clock import utcnow


class LoyaltyTransaction(Base):
    """
    Signed point movement on a user's loyalty balance.

    At most one 'earned' row may exist per (user, order): the partial unique
    index is what makes earning idempotent under concurrent requests.
    """

    __tablename__ = "loyalty_transactions"
    __table_args__ = (
        Index(
            "uq_loyalty_earned_per_order",
            "user_id",
            "order_id",
            unique=True,
            postgresql_where=text("type = 'earned'"),
            sqlite_where=text("type = 'earned'"),
        ),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    order_id = Column(Uuid, ForeignKey("orders.id", ondelete="SET NULL"), nullable=True)

    type = Column(String(10), nullable=False)   # 'earned' | 'redeemed' | 'expired'
    points = Column(Integer, nullable=False)
    description = Column(Text, nullable=True)
    expires_at = Column(TIMESTAMP(timezone=True), nullable=True)
    # False once an earned row has been swept by the expiry job
    is_active = Column(Boolean, nullable=False, default=True)
    meta = Column(JSON, nullable=False, default=dict)

    created_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow)
