"""User ORM model: the profile fields this service owns, plus coupon usage records."""

import uuid

from sqlalchemy import (
    Column, Integer, Text, String, Numeric, Boolean, Uuid,
    TIMESTAMP, ForeignKey, UniqueConstraint,
)
from sqlalchemy.orm import relationship

from orderflow.database import Base
from orderflow.utils.clock import utcnow


class User(Base):
    """
    Identity lives with the auth gateway; this row carries the counters the
    ordering flows depend on (order count for new-user coupons, loyalty balance).
    """

    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(Text, nullable=False, default="")
    email = Column(String(255), nullable=True, unique=True)
    phone = Column(String(32), nullable=True)
    role = Column(String(20), nullable=False, default="customer")

    loyalty_points = Column(Integer, nullable=False, default=0)
    order_count = Column(Integer, nullable=False, default=0)
    total_spent = Column(Numeric(12, 2, asdecimal=False), nullable=False, default=0)

    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(
        TIMESTAMP(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    used_coupons = relationship(
        "UsedCoupon", back_populates="user", cascade="all, delete-orphan"
    )


class UsedCoupon(Base):
    """
    Append-only proof that a user redeemed a coupon on an order.

    `sequence` numbers a user's redemptions of one coupon (1..perUser); the
    unique constraint makes two concurrent redemptions of the same slot fail.
    """

    __tablename__ = "used_coupons"
    __table_args__ = (
        UniqueConstraint("coupon_id", "user_id", "sequence", name="uq_used_coupon_slot"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    coupon_id = Column(Uuid, ForeignKey("coupons.id", ondelete="CASCADE"), nullable=False)
    order_id = Column(Uuid, ForeignKey("orders.id", ondelete="SET NULL"), nullable=True)
    sequence = Column(Integer, nullable=False)
    discount_amount = Column(Numeric(10, 2, asdecimal=False), nullable=False, default=0)
    used_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow)

    user = relationship("User", back_populates="used_coupons")
