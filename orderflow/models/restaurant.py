"""Restaurant, menu item and stock-history ORM models."""

import uuid

from sqlalchemy import (
    Column, Integer, Text, String, Numeric, Boolean, Uuid, JSON, Double,
    TIMESTAMP, ForeignKey, CheckConstraint,
)
from sqlalchemy.orm import relationship

from orderflow.database import Base
from orderflow.utils.clock import utcnow


class Restaurant(Base):
    """
    A restaurant owned by a user with the `restaurant` role.
    Operating hours stay embedded (bounded: one entry per weekday);
    menu items are their own table.
    """

    __tablename__ = "restaurants"
    __table_args__ = (
        CheckConstraint(
            "rating_average >= 0 AND rating_average <= 5", name="ck_restaurant_rating_range"
        ),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    owner_id = Column(Uuid, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    name = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    cuisine_types = Column(JSON, nullable=False, default=list)

    street = Column(Text, nullable=True)
    city = Column(Text, nullable=True)
    state = Column(Text, nullable=True)
    zip_code = Column(String(16), nullable=True)
    lat = Column(Double, nullable=True)
    lng = Column(Double, nullable=True)

    # {"monday": {"open": "09:00", "close": "22:00", "is_closed": false}, ...}
    operating_hours = Column(JSON, nullable=False, default=dict)

    rating_average = Column(Numeric(3, 2, asdecimal=False), nullable=False, default=0)
    rating_count = Column(Integer, nullable=False, default=0)

    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(
        TIMESTAMP(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    menu_items = relationship(
        "MenuItem", back_populates="restaurant", cascade="all, delete-orphan", passive_deletes=True
    )


class MenuItem(Base):
    """A dish on a restaurant's menu, with its inventory counters."""

    __tablename__ = "menu_items"
    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_menu_item_price"),
        CheckConstraint("current_stock >= 0", name="ck_menu_item_stock"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    restaurant_id = Column(
        Uuid, ForeignKey("restaurants.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String(64), nullable=False, default="main")
    price = Column(Numeric(10, 2, asdecimal=False), nullable=False)
    is_available = Column(Boolean, nullable=False, default=True)

    # Inventory; current_stock is only meaningful while track_stock is set
    track_stock = Column(Boolean, nullable=False, default=False)
    current_stock = Column(Integer, nullable=False, default=0)
    low_stock_threshold = Column(Integer, nullable=False, default=10)
    reorder_point = Column(Integer, nullable=False, default=5)
    cost_per_unit = Column(Numeric(10, 2, asdecimal=False), nullable=False, default=0)
    expiry_date = Column(TIMESTAMP(timezone=True), nullable=True)
    stock_updated_at = Column(TIMESTAMP(timezone=True), nullable=True)

    created_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(
        TIMESTAMP(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    restaurant = relationship("Restaurant", back_populates="menu_items")
    stock_history = relationship(
        "StockHistoryEntry",
        back_populates="menu_item",
        cascade="all, delete-orphan",
        order_by="StockHistoryEntry.id",
        passive_deletes=True,
    )


class StockHistoryEntry(Base):
    """One stock adjustment. Rows older than the retention cut-off are pruned."""

    __tablename__ = "stock_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    menu_item_id = Column(
        Uuid, ForeignKey("menu_items.id", ondelete="CASCADE"), nullable=False, index=True
    )
    change_type = Column(String(10), nullable=False)   # 'add' | 'remove' | 'set'
    quantity = Column(Integer, nullable=False)
    previous_stock = Column(Integer, nullable=False)
    new_stock = Column(Integer, nullable=False)
    reason = Column(Text, nullable=False)
    updated_by = Column(Uuid, nullable=True)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow)

    menu_item = relationship("MenuItem", back_populates="stock_history")
