"""Saved payment methods. Only display details are stored, never full numbers."""

import uuid

from sqlalchemy import (
    Column, Integer, Text, String, Boolean, Uuid, TIMESTAMP, ForeignKey,
)

from orderflow.database import Base
from orderflow.utils.clock import utcnow


class PaymentMethod(Base):
    __tablename__ = "payment_methods"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(String(10), nullable=False)    # 'card' | 'wallet' | 'bank' | 'cash'
    label = Column(Text, nullable=False)
    is_default = Column(Boolean, nullable=False, default=False)

    # card
    card_brand = Column(String(16), nullable=True)
    expiry_month = Column(Integer, nullable=True)
    expiry_year = Column(Integer, nullable=True)
    holder_name = Column(Text, nullable=True)
    # card and bank
    last_four = Column(String(4), nullable=True)
    # wallet
    provider = Column(String(16), nullable=True)
    wallet_id = Column(Text, nullable=True)
    # bank
    bank_name = Column(Text, nullable=True)
    account_type = Column(String(16), nullable=True)

    created_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(
        TIMESTAMP(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )
