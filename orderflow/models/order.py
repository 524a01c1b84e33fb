"""Order ORM models: the order itself, its line items and its status log."""

import uuid

from sqlalchemy import (
    Column, Integer, Text, String, Numeric, Uuid, JSON,
    TIMESTAMP, ForeignKey, CheckConstraint,
)
from sqlalchemy.orm import relationship

from orderflow.database import Base
from orderflow.utils.clock import utcnow


class Order(Base):
    """
    A customer order. Never hard-deleted: cancellation is a terminal status.
    Pricing columns satisfy
    total = subtotal + delivery_fee + service_fee + tax + tip - discount.
    """

    __tablename__ = "orders"
    __table_args__ = (
        CheckConstraint("total >= 0", name="ck_order_total"),
        CheckConstraint("discount >= 0", name="ck_order_discount"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    order_number = Column(String(20), nullable=False, unique=True)
    customer_id = Column(
        Uuid, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    restaurant_id = Column(
        Uuid, ForeignKey("restaurants.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    order_type = Column(String(10), nullable=False)   # 'delivery' | 'pickup'
    status = Column(String(20), nullable=False, default="pending", index=True)

    # Pricing
    subtotal = Column(Numeric(10, 2, asdecimal=False), nullable=False)
    delivery_fee = Column(Numeric(10, 2, asdecimal=False), nullable=False, default=0)
    service_fee = Column(Numeric(10, 2, asdecimal=False), nullable=False, default=0)
    tax = Column(Numeric(10, 2, asdecimal=False), nullable=False, default=0)
    discount = Column(Numeric(10, 2, asdecimal=False), nullable=False, default=0)
    tip = Column(Numeric(10, 2, asdecimal=False), nullable=False, default=0)
    total = Column(Numeric(10, 2, asdecimal=False), nullable=False)
    coupon_code = Column(String(32), nullable=True)

    # Delivery / pickup
    delivery_address = Column(JSON, nullable=True)
    special_instructions = Column(Text, nullable=True)
    delivery_person_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    delivered_at = Column(TIMESTAMP(timezone=True), nullable=True)

    # Cancellation record
    cancel_reason = Column(Text, nullable=True)
    cancelled_by = Column(String(20), nullable=True)
    cancelled_at = Column(TIMESTAMP(timezone=True), nullable=True)
    refund_amount = Column(Numeric(10, 2, asdecimal=False), nullable=True)
    refund_status = Column(String(20), nullable=True)

    # Dispute record ('open' | 'resolved'); None when never disputed
    dispute_status = Column(String(20), nullable=True)
    dispute_reason = Column(Text, nullable=True)
    dispute_opened_at = Column(TIMESTAMP(timezone=True), nullable=True)
    dispute_resolution = Column(String(20), nullable=True)
    dispute_note = Column(Text, nullable=True)
    dispute_refund_amount = Column(Numeric(10, 2, asdecimal=False), nullable=True)
    dispute_resolved_at = Column(TIMESTAMP(timezone=True), nullable=True)

    created_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(
        TIMESTAMP(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="OrderItem.id",
    )
    status_history = relationship(
        "OrderStatusEvent",
        back_populates="order",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="OrderStatusEvent.id",
    )


class OrderItem(Base):
    """A line item; name and price are snapshots taken at checkout."""

    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(Uuid, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    menu_item_id = Column(
        Uuid, ForeignKey("menu_items.id", ondelete="SET NULL"), nullable=True
    )
    name = Column(Text, nullable=False)
    unit_price = Column(Numeric(10, 2, asdecimal=False), nullable=False)
    quantity = Column(Integer, nullable=False)
    # [{"name": "size", "value": "large", "additional_price": 1.5}, ...]
    customizations = Column(JSON, nullable=False, default=list)
    special_instructions = Column(Text, nullable=True)

    order = relationship("Order", back_populates="items")


class OrderStatusEvent(Base):
    """Append-only status log. The first row is always the initial status."""

    __tablename__ = "order_status_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(Uuid, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(String(20), nullable=False)
    note = Column(Text, nullable=True)
    actor_id = Column(Uuid, nullable=True)
    actor_role = Column(String(20), nullable=True)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow)

    order = relationship("Order", back_populates="status_history")
