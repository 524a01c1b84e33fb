"""Restaurant-run discount codes."""

import uuid

from sqlalchemy import (
    Column, Integer, Text, String, Numeric, Boolean, Uuid, JSON,
    TIMESTAMP, ForeignKey, CheckConstraint,
)

from orderflow.database import Base
from orderflow.utils.clock import utcnow


class Discount(Base):
    """
    A discount a restaurant offers on its own orders. Unlike platform
    coupons it is scoped to exactly one restaurant and can target a
    customer segment or specific menu items. usage_limit 0 means unlimited.
    """

    __tablename__ = "discounts"
    __table_args__ = (
        CheckConstraint("value >= 0", name="ck_discount_value"),
        CheckConstraint("used_count >= 0", name="ck_discount_used_count"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    restaurant_id = Column(
        Uuid, ForeignKey("restaurants.id", ondelete="CASCADE"), nullable=False, index=True
    )
    code = Column(String(32), nullable=False, unique=True)
    name = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    type = Column(String(16), nullable=False)   # 'percentage' | 'fixed' | 'bogo' | 'free_delivery'
    value = Column(Numeric(10, 2, asdecimal=False), nullable=False, default=0)
    min_order_amount = Column(Numeric(10, 2, asdecimal=False), nullable=False, default=0)
    max_discount = Column(Numeric(10, 2, asdecimal=False), nullable=False, default=0)
    usage_limit = Column(Integer, nullable=False, default=0)
    used_count = Column(Integer, nullable=False, default=0)
    user_limit = Column(Integer, nullable=False, default=1)
    start_date = Column(TIMESTAMP(timezone=True), nullable=False)
    end_date = Column(TIMESTAMP(timezone=True), nullable=False)
    # Item names; empty means the whole menu
    applicable_items = Column(JSON, nullable=False, default=list)
    customer_segment = Column(String(12), nullable=False, default="all")  # 'all' | 'new' | 'returning' | 'vip'
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(
        TIMESTAMP(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )
