"""Coupon ORM model and its restaurant scope."""

import uuid

from sqlalchemy import (
    Column, Integer, Text, String, Numeric, Boolean, Uuid, Table,
    TIMESTAMP, ForeignKey, CheckConstraint,
)
from sqlalchemy.orm import relationship

from orderflow.database import Base
from orderflow.utils.clock import utcnow


coupon_restaurants = Table(
    "coupon_restaurants",
    Base.metadata,
    Column("coupon_id", Uuid, ForeignKey("coupons.id", ondelete="CASCADE"), primary_key=True),
    Column(
        "restaurant_id", Uuid, ForeignKey("restaurants.id", ondelete="CASCADE"), primary_key=True
    ),
)


class Coupon(Base):
    """
    A discount code. An empty restaurant scope means the coupon is global.
    usage_count never exceeds usage_limit_total; the redemption path
    increments it with a conditional UPDATE.
    """

    __tablename__ = "coupons"
    __table_args__ = (
        CheckConstraint("usage_count <= usage_limit_total", name="ck_coupon_usage_limit"),
        CheckConstraint("discount_value >= 0", name="ck_coupon_value"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    code = Column(String(32), nullable=False, unique=True)
    title = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String(20), nullable=False, default="discount")
    # 'discount' | 'delivery' | 'cashback' | 'combo'

    discount_type = Column(String(12), nullable=False)   # 'percentage' | 'fixed'
    discount_value = Column(Numeric(10, 2, asdecimal=False), nullable=False)
    max_discount_amount = Column(Numeric(10, 2, asdecimal=False), nullable=True)
    min_order_value = Column(Numeric(10, 2, asdecimal=False), nullable=False, default=0)

    start_date = Column(TIMESTAMP(timezone=True), nullable=False)
    end_date = Column(TIMESTAMP(timezone=True), nullable=False)

    usage_limit_total = Column(Integer, nullable=False, default=1000)
    usage_limit_per_user = Column(Integer, nullable=False, default=1)
    usage_count = Column(Integer, nullable=False, default=0)

    new_users_only = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow)

    applicable_restaurants = relationship(
        "Restaurant", secondary=coupon_restaurants, lazy="selectin"
    )

    @property
    def applicable_restaurant_ids(self) -> list:
        return [r.id for r in self.applicable_restaurants]
