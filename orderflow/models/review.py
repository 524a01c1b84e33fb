"""Review ORM models: the review plus its flag and edit logs."""

import uuid

from sqlalchemy import (
    Column, Integer, Text, String, Numeric, Boolean, Uuid,
    TIMESTAMP, ForeignKey, UniqueConstraint, CheckConstraint,
)
from sqlalchemy.orm import relationship

from orderflow.database import Base
from orderflow.utils.clock import utcnow


class Review(Base):
    """
    A customer's review of a delivered order. One per (user, order).
    Only visible reviews count toward the restaurant rating.
    """

    __tablename__ = "reviews"
    __table_args__ = (
        UniqueConstraint("user_id", "order_id", name="uq_review_user_order"),
        CheckConstraint("overall_rating >= 1 AND overall_rating <= 5", name="ck_review_overall"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    restaurant_id = Column(
        Uuid, ForeignKey("restaurants.id", ondelete="CASCADE"), nullable=False, index=True
    )
    order_id = Column(Uuid, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False)

    food_rating = Column(Integer, nullable=False)
    service_rating = Column(Integer, nullable=False)
    delivery_rating = Column(Integer, nullable=True)
    overall_rating = Column(Numeric(2, 1, asdecimal=False), nullable=False)
    comment = Column(Text, nullable=False)

    moderation_status = Column(String(12), nullable=False, default="pending")
    # 'pending' | 'approved' | 'rejected' | 'flagged' | 'hidden'
    moderation_note = Column(Text, nullable=True)
    is_visible = Column(Boolean, nullable=False, default=True)
    is_edited = Column(Boolean, nullable=False, default=False)
    report_count = Column(Integer, nullable=False, default=0)

    created_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(
        TIMESTAMP(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    flags = relationship(
        "ReviewFlag", back_populates="review", cascade="all, delete-orphan", lazy="selectin"
    )
    edit_history = relationship(
        "ReviewEdit",
        back_populates="review",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="ReviewEdit.id",
    )


class ReviewFlag(Base):
    __tablename__ = "review_flags"

    id = Column(Integer, primary_key=True, autoincrement=True)
    review_id = Column(Uuid, ForeignKey("reviews.id", ondelete="CASCADE"), nullable=False)
    reason = Column(Text, nullable=False)
    severity = Column(String(10), nullable=False, default="medium")
    flagged_by = Column(String(20), nullable=False)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow)

    review = relationship("Review", back_populates="flags")


class ReviewEdit(Base):
    __tablename__ = "review_edits"

    id = Column(Integer, primary_key=True, autoincrement=True)
    review_id = Column(Uuid, ForeignKey("reviews.id", ondelete="CASCADE"), nullable=False)
    original_comment = Column(Text, nullable=False)
    reason = Column(Text, nullable=True)
    edited_by = Column(String(20), nullable=False)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow)

    review = relationship("Review", back_populates="edit_history")
