"""Review endpoints for customers and the admin moderation queue."""

from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from orderflow.auth import Actor, get_actor, require_roles
from orderflow.database import get_db
from orderflow.schemas.common import ok
from orderflow.schemas.review import (
    ModerationRequest,
    ReviewCreate,
    ReviewRead,
    ReviewReport,
    ReviewUpdate,
)
from orderflow.services import reviews

router = APIRouter(prefix="/api", tags=["reviews"])

_MODERATION_MESSAGES = {
    "approve": "Review approved successfully",
    "reject": "Review rejected successfully",
    "hide": "Review hidden successfully",
    "show": "Review made visible successfully",
    "flag": "Review flagged successfully",
    "unflag": "Review unflagged successfully",
    "edit_content": "Review content edited successfully",
}


def _listing(result: dict) -> dict:
    result["reviews"] = [ReviewRead.model_validate(r) for r in result["reviews"]]
    return result


@router.post("/user/reviews", status_code=status.HTTP_201_CREATED)
async def create_review(
    body: ReviewCreate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_roles("customer")),
) -> dict:
    review = await reviews.create_review(
        db, actor, body.order_id, body.food_rating, body.service_rating, body.comment,
        delivery_rating=body.delivery_rating, overall_rating=body.overall_rating,
    )
    return ok(ReviewRead.model_validate(review), "Review submitted successfully")


@router.get("/user/reviews")
async def my_reviews(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=50),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_roles("customer")),
) -> dict:
    return ok(_listing(await reviews.list_user_reviews(db, actor, page, limit)))


@router.put("/user/reviews/{review_id}")
async def edit_review(
    review_id: UUID,
    body: ReviewUpdate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_roles("customer")),
) -> dict:
    review = await reviews.edit_review(db, actor, review_id, body.comment, body.reason)
    return ok(ReviewRead.model_validate(review), "Review updated successfully")


@router.delete("/user/reviews/{review_id}")
async def delete_my_review(
    review_id: UUID,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_roles("customer")),
) -> dict:
    await reviews.delete_own_review(db, actor, review_id)
    return ok(None, "Review deleted successfully")


@router.post("/reviews/{review_id}/report")
async def report_review(
    review_id: UUID,
    body: ReviewReport,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_actor),
) -> dict:
    review = await reviews.report_review(db, actor, review_id, body.reason)
    return ok({"report_count": review.report_count}, "Review reported")


@router.get("/admin/reviews")
async def moderation_queue(
    moderation_status: Optional[str] = Query(default=None, alias="status"),
    restaurant_id: Optional[UUID] = Query(default=None),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    _: Actor = Depends(require_roles("admin")),
) -> dict:
    result = await reviews.list_reviews_for_moderation(
        db, moderation_status, restaurant_id, page, limit
    )
    return ok(_listing(result))


@router.put("/admin/reviews/{review_id}")
async def moderate_review(
    review_id: UUID,
    body: ModerationRequest,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_roles("admin")),
) -> dict:
    review = await reviews.moderate_review(
        db, actor, review_id, body.action,
        reason=body.reason, severity=body.severity, comment=body.comment,
    )
    return ok(ReviewRead.model_validate(review), _MODERATION_MESSAGES[body.action])


@router.delete("/admin/reviews/{review_id}")
async def delete_review(
    review_id: UUID,
    reason: str = Query(default=""),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_roles("admin")),
) -> dict:
    await reviews.delete_review(db, actor, review_id, reason)
    return ok(None, "Review deleted successfully")
