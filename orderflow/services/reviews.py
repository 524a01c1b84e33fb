"""
Reviews: customer writes, admin moderation and restaurant rating upkeep.

The restaurant rating is recomputed from visible reviews whenever
visibility can change (moderation, deletion) and after a new review.
"""

from __future__ import annotations

import logging
import uuid
from datetime import timedelta
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from orderflow.auth import Actor
from orderflow.config import settings
from orderflow.errors import (
    DuplicateReview,
    Forbidden,
    NotFoundError,
    StateError,
    ValidationError,
)
from orderflow.models import Order, Restaurant, Review, ReviewEdit, ReviewFlag
from orderflow.services import reporting
from orderflow.services.notifications import notify, run_side_effect
from orderflow.utils.clock import ensure_utc, utcnow

logger = logging.getLogger(__name__)

MODERATION_ACTIONS = ("approve", "reject", "hide", "show", "flag", "unflag", "edit_content")


def overall_from_subscores(
    food: int, service: int, delivery: Optional[int] = None
) -> float:
    scores = [s for s in (food, service, delivery) if s is not None]
    return round(sum(scores) / len(scores), 1)


async def recompute_restaurant_rating(db: AsyncSession, restaurant_id: uuid.UUID) -> Restaurant:
    """Set the running average and count from visible reviews. Caller commits."""
    avg, count = (
        await db.execute(
            select(func.avg(Review.overall_rating), func.count(Review.id)).where(
                Review.restaurant_id == restaurant_id, Review.is_visible.is_(True)
            )
        )
    ).one()
    restaurant = await db.get(Restaurant, restaurant_id)
    if restaurant is None:
        raise NotFoundError("Restaurant not found")
    restaurant.rating_average = min(5.0, max(0.0, round(float(avg or 0), 1)))
    restaurant.rating_count = count or 0
    return restaurant


async def _get_review(db: AsyncSession, review_id: uuid.UUID) -> Review:
    review = await db.get(Review, review_id)
    if review is None:
        raise NotFoundError("Review not found")
    return review


async def _notify_author(review: Review, type_: str, title: str, message: str) -> None:
    async def _effect(session: AsyncSession) -> None:
        await notify(
            session, review.user_id, type_, title, message,
            data={"review_id": str(review.id), "restaurant_id": str(review.restaurant_id)},
        )

    await run_side_effect(f"{type_} notice for review {review.id}", _effect)


# ── Customer side ────────────────────────────────────────────────────────────


async def create_review(
    db: AsyncSession,
    actor: Actor,
    order_id: uuid.UUID,
    food_rating: int,
    service_rating: int,
    comment: str,
    delivery_rating: Optional[int] = None,
    overall_rating: Optional[float] = None,
) -> Review:
    if actor.role != "customer":
        raise Forbidden("Only customers can write reviews")
    order = await db.get(Order, order_id)
    if order is None or order.customer_id != actor.id:
        raise NotFoundError("Order not found")
    if order.status != "delivered":
        raise StateError("Only delivered orders can be reviewed")

    existing = await db.execute(
        select(Review.id).where(Review.user_id == actor.id, Review.order_id == order_id)
    )
    if existing.first() is not None:
        raise DuplicateReview("You have already reviewed this order")

    if overall_rating is None:
        overall_rating = overall_from_subscores(food_rating, service_rating, delivery_rating)

    review = Review(
        user_id=actor.id,
        restaurant_id=order.restaurant_id,
        order_id=order.id,
        food_rating=food_rating,
        service_rating=service_rating,
        delivery_rating=delivery_rating,
        overall_rating=overall_rating,
        comment=comment.strip(),
    )
    db.add(review)
    try:
        await db.flush()
    except IntegrityError:
        await db.rollback()
        raise DuplicateReview("You have already reviewed this order")

    await recompute_restaurant_rating(db, order.restaurant_id)
    await db.commit()
    reporting.clear_cache()
    await db.refresh(review)
    logger.info("Review %s created for order %s", review.id, order.id)
    return review


async def edit_review(
    db: AsyncSession,
    actor: Actor,
    review_id: uuid.UUID,
    comment: str,
    reason: Optional[str] = None,
) -> Review:
    """Authors may edit while the review is pending and inside the edit window."""
    review = await _get_review(db, review_id)
    if review.user_id != actor.id:
        raise NotFoundError("Review not found")
    window = timedelta(hours=settings.review_edit_window_hours)
    if review.moderation_status != "pending" or utcnow() - ensure_utc(review.created_at) > window:
        raise StateError("Review can no longer be edited")

    review.edit_history.append(ReviewEdit(
        original_comment=review.comment, reason=reason, edited_by="user"
    ))
    review.comment = comment.strip()
    review.is_edited = True
    await db.commit()
    await db.refresh(review)
    return review


async def delete_own_review(db: AsyncSession, actor: Actor, review_id: uuid.UUID) -> None:
    review = await _get_review(db, review_id)
    if review.user_id != actor.id:
        raise NotFoundError("Review not found")
    window = timedelta(hours=settings.review_edit_window_hours)
    if utcnow() - ensure_utc(review.created_at) > window:
        raise StateError("Review can only be deleted within the edit window")
    restaurant_id = review.restaurant_id
    await db.delete(review)
    await db.flush()
    await recompute_restaurant_rating(db, restaurant_id)
    await db.commit()


async def report_review(db: AsyncSession, actor: Actor, review_id: uuid.UUID, reason: str) -> Review:
    """Count a report; at the threshold the review is flagged for moderation."""
    review = await _get_review(db, review_id)
    if review.user_id == actor.id:
        raise ValidationError("You cannot report your own review")
    review.report_count = (review.report_count or 0) + 1
    if review.report_count >= settings.review_report_threshold and review.moderation_status != "flagged":
        review.flags.append(ReviewFlag(
            reason=f"Reported {review.report_count} times: {reason}",
            severity="medium",
            flagged_by="system",
        ))
        review.moderation_status = "flagged"
        review.moderation_note = "Flagged after repeated reports"
        logger.warning("Review %s flagged after %d reports", review.id, review.report_count)
    await db.commit()
    reporting.clear_cache()
    await db.refresh(review)
    return review


async def list_user_reviews(
    db: AsyncSession, actor: Actor, page: int = 1, limit: int = 10
) -> dict[str, Any]:
    query = select(Review).where(Review.user_id == actor.id)
    total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar() or 0
    rows = (
        await db.execute(
            query.order_by(Review.created_at.desc()).offset((page - 1) * limit).limit(limit)
        )
    ).scalars().all()
    return {"reviews": list(rows), "total": total, "page": page, "limit": limit}


# ── Admin moderation ─────────────────────────────────────────────────────────


async def moderate_review(
    db: AsyncSession,
    actor: Actor,
    review_id: uuid.UUID,
    action: str,
    reason: Optional[str] = None,
    severity: str = "medium",
    comment: Optional[str] = None,
) -> Review:
    if not actor.is_admin:
        raise Forbidden("Access denied. Required role: admin")
    if action not in MODERATION_ACTIONS:
        raise ValidationError("Invalid action")
    review = await _get_review(db, review_id)
    notice: Optional[tuple[str, str, str]] = None

    if action == "approve":
        review.moderation_status = "approved"
        review.moderation_note = reason or "Approved by admin"
        review.is_visible = True
    elif action == "reject":
        if not reason:
            raise ValidationError("Rejection reason is required")
        review.moderation_status = "rejected"
        review.moderation_note = reason
        review.is_visible = False
        notice = ("review-rejected", "Review Rejected", f"Your review has been rejected. Reason: {reason}")
    elif action == "hide":
        review.moderation_status = "hidden"
        review.moderation_note = reason or "Hidden by admin"
        review.is_visible = False
    elif action == "show":
        review.moderation_status = "approved"
        review.moderation_note = reason or "Shown by admin"
        review.is_visible = True
    elif action == "flag":
        if not reason:
            raise ValidationError("Flag reason is required")
        review.flags.append(ReviewFlag(reason=reason, severity=severity, flagged_by="admin"))
        review.moderation_status = "flagged"
        review.moderation_note = f"Flagged: {reason}"
    elif action == "unflag":
        review.flags.clear()
        review.moderation_status = "approved"
        review.moderation_note = "Unflagged by admin"
    elif action == "edit_content":
        if not comment or not reason:
            raise ValidationError("New comment and edit reason are required")
        review.edit_history.append(ReviewEdit(
            original_comment=review.comment, reason=reason, edited_by="admin"
        ))
        review.comment = comment.strip()
        review.is_edited = True
        notice = (
            "review-edited",
            "Review Edited",
            f"Your review has been edited by admin. Reason: {reason}",
        )

    await db.flush()
    await recompute_restaurant_rating(db, review.restaurant_id)
    await db.commit()
    reporting.clear_cache()
    await db.refresh(review)
    logger.info("Review %s moderated: %s", review.id, action)

    if notice:
        await _notify_author(review, *notice)
    return review


async def delete_review(db: AsyncSession, actor: Actor, review_id: uuid.UUID, reason: str) -> None:
    if not actor.is_admin:
        raise Forbidden("Access denied. Required role: admin")
    if not (reason and reason.strip()):
        raise ValidationError("Deletion reason is required")
    review = await _get_review(db, review_id)
    restaurant_id = review.restaurant_id
    await db.delete(review)
    await db.flush()
    await recompute_restaurant_rating(db, restaurant_id)
    await db.commit()
    reporting.clear_cache()
    logger.info("Review %s deleted by admin: %s", review_id, reason)
    await _notify_author(
        review,
        "review-deleted",
        "Review Deleted",
        f"Your review has been deleted by admin. Reason: {reason}",
    )


async def list_reviews_for_moderation(
    db: AsyncSession,
    status: Optional[str] = None,
    restaurant_id: Optional[uuid.UUID] = None,
    page: int = 1,
    limit: int = 20,
) -> dict[str, Any]:
    query = select(Review)
    if status:
        query = query.where(Review.moderation_status == status)
    if restaurant_id:
        query = query.where(Review.restaurant_id == restaurant_id)
    total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar() or 0
    rows = (
        await db.execute(
            query.order_by(Review.created_at.desc()).offset((page - 1) * limit).limit(limit)
        )
    ).scalars().all()
    return {"reviews": list(rows), "total": total, "page": page, "limit": limit}
