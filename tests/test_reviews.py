from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy import select, update

from factories import actor_for, make_order, make_restaurant, make_user
from orderflow.auth import Actor
from orderflow.errors import DuplicateReview, Forbidden, NotFoundError, StateError, ValidationError
from orderflow.models import Notification, Restaurant, Review
from orderflow.services import reviews
from orderflow.utils.clock import utcnow


def test_overall_from_subscores():
    assert reviews.overall_from_subscores(5, 4) == 4.5
    assert reviews.overall_from_subscores(5, 4, 3) == 4.0
    assert reviews.overall_from_subscores(4, 4, 5) == 4.3


@pytest.fixture
async def delivered(session):
    owner = await make_user(session, role="restaurant")
    restaurant = await make_restaurant(session, owner)
    customer = await make_user(session)
    order = await make_order(session, customer, restaurant, status="delivered")
    admin = Actor(id=owner.id, role="admin")
    return customer, restaurant, order, admin


async def _rating(session, restaurant_id):
    restaurant = await session.get(Restaurant, restaurant_id)
    await session.refresh(restaurant)
    return restaurant.rating_average, restaurant.rating_count


async def test_review_updates_restaurant_rating(session, delivered):
    customer, restaurant, order, _ = delivered
    review = await reviews.create_review(
        session, actor_for(customer), order.id, 5, 4, "  Great pasta  ", delivery_rating=3
    )
    assert review.overall_rating == 4.0
    assert review.comment == "Great pasta"
    assert review.moderation_status == "pending"
    assert await _rating(session, restaurant.id) == (4.0, 1)


async def test_second_review_of_same_order_rejected(session, delivered):
    customer, _, order, _ = delivered
    await reviews.create_review(session, actor_for(customer), order.id, 5, 5, "Lovely")
    with pytest.raises(DuplicateReview):
        await reviews.create_review(session, actor_for(customer), order.id, 1, 1, "Changed my mind")


async def test_undelivered_order_cannot_be_reviewed(session, delivered):
    customer, restaurant, _, _ = delivered
    pending = await make_order(session, customer, restaurant, status="preparing")
    with pytest.raises(StateError):
        await reviews.create_review(session, actor_for(customer), pending.id, 5, 5, "Too early")


async def test_cannot_review_someone_elses_order(session, delivered):
    _, _, order, _ = delivered
    stranger = await make_user(session)
    with pytest.raises(NotFoundError):
        await reviews.create_review(session, actor_for(stranger), order.id, 5, 5, "Not mine")


async def test_edit_inside_window_keeps_history(session, delivered):
    customer, _, order, _ = delivered
    review = await reviews.create_review(session, actor_for(customer), order.id, 4, 4, "Good")
    review = await reviews.edit_review(
        session, actor_for(customer), review.id, "Very good", reason="typo"
    )
    assert review.comment == "Very good"
    assert review.is_edited is True
    assert [(e.original_comment, e.edited_by) for e in review.edit_history] == [("Good", "user")]


async def test_edit_after_window_rejected(session, delivered):
    customer, _, order, _ = delivered
    review = await reviews.create_review(session, actor_for(customer), order.id, 4, 4, "Good")
    await session.execute(
        update(Review)
        .where(Review.id == review.id)
        .values(created_at=utcnow() - timedelta(days=2))
        .execution_options(synchronize_session=False)
    )
    await session.commit()
    await session.refresh(review)
    actor, review_id = actor_for(customer), review.id
    with pytest.raises(StateError):
        await reviews.edit_review(session, actor, review_id, "Late edit")
    with pytest.raises(StateError):
        await reviews.delete_own_review(session, actor, review_id)


async def test_delete_own_review_recomputes_rating(session, delivered):
    customer, restaurant, order, _ = delivered
    review = await reviews.create_review(session, actor_for(customer), order.id, 2, 2, "Meh")
    await reviews.delete_own_review(session, actor_for(customer), review.id)
    assert await _rating(session, restaurant.id) == (0.0, 0)


async def test_reports_flag_review_at_threshold(session, delivered):
    customer, _, order, _ = delivered
    review = await reviews.create_review(session, actor_for(customer), order.id, 1, 1, "Awful")

    with pytest.raises(ValidationError):
        await reviews.report_review(session, actor_for(customer), review.id, "spam")

    for _ in range(5):
        reporter = await make_user(session)
        review = await reviews.report_review(session, actor_for(reporter), review.id, "offensive")
    assert review.report_count == 5
    assert review.moderation_status == "flagged"
    assert [f.flagged_by for f in review.flags] == ["system"]


async def test_hide_and_show_move_the_rating(session, delivered):
    customer, restaurant, order, admin = delivered
    review = await reviews.create_review(session, actor_for(customer), order.id, 3, 3, "Fine")

    await reviews.moderate_review(session, admin, review.id, "hide", reason="off-topic")
    assert await _rating(session, restaurant.id) == (0.0, 0)

    review = await reviews.moderate_review(session, admin, review.id, "show")
    assert review.moderation_status == "approved"
    assert await _rating(session, restaurant.id) == (3.0, 1)


async def test_reject_requires_reason_and_notifies_author(session, delivered):
    customer, _, order, admin = delivered
    review = await reviews.create_review(session, actor_for(customer), order.id, 3, 3, "Fine")

    with pytest.raises(ValidationError):
        await reviews.moderate_review(session, admin, review.id, "reject")
    review = await reviews.moderate_review(session, admin, review.id, "reject", reason="spam")
    assert review.is_visible is False

    types = (
        await session.execute(
            select(Notification.type).where(Notification.user_id == customer.id)
        )
    ).scalars().all()
    assert types == ["review-rejected"]


async def test_admin_edit_content_and_flags(session, delivered):
    customer, _, order, admin = delivered
    review = await reviews.create_review(session, actor_for(customer), order.id, 3, 3, "Rude words")

    review = await reviews.moderate_review(
        session, admin, review.id, "flag", reason="language", severity="high"
    )
    assert [(f.flagged_by, f.severity) for f in review.flags] == [("admin", "high")]

    review = await reviews.moderate_review(session, admin, review.id, "unflag")
    assert review.flags == []
    assert review.moderation_status == "approved"

    review = await reviews.moderate_review(
        session, admin, review.id, "edit_content", reason="language", comment="Polite words"
    )
    assert review.comment == "Polite words"
    assert review.edit_history[-1].edited_by == "admin"


async def test_moderation_is_admin_only(session, delivered):
    customer, _, order, _ = delivered
    review = await reviews.create_review(session, actor_for(customer), order.id, 3, 3, "Fine")
    with pytest.raises(Forbidden):
        await reviews.moderate_review(session, actor_for(customer), review.id, "approve")
    with pytest.raises(Forbidden):
        await reviews.delete_review(session, actor_for(customer), review.id, "gone")


async def test_admin_delete_needs_reason(session, delivered):
    customer, restaurant, order, admin = delivered
    review = await reviews.create_review(session, actor_for(customer), order.id, 5, 5, "Top")
    with pytest.raises(ValidationError):
        await reviews.delete_review(session, admin, review.id, "  ")
    await reviews.delete_review(session, admin, review.id, "fake review")
    assert await _rating(session, restaurant.id) == (0.0, 0)

    listing = await reviews.list_reviews_for_moderation(session)
    assert listing["total"] == 0
