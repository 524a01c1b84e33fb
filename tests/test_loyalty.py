from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy import func, select

from factories import make_order, make_restaurant, make_user
from orderflow.errors import AlreadyEarned, InsufficientPoints, StateError, ValidationError
from orderflow.models import LoyaltyTransaction, User
from orderflow.services import loyalty
from orderflow.utils.clock import utcnow


@pytest.mark.parametrize(
    "points,level",
    [
        (0, "Member"), (499, "Member"), (500, "Bronze"), (1999, "Bronze"),
        (2000, "Silver"), (4999, "Silver"), (5000, "Gold"), (9999, "Gold"),
        (10000, "Platinum"), (250000, "Platinum"),
    ],
)
def test_level_for_points(points, level):
    assert loyalty.level_for_points(points) == level


def test_points_for_order_floors():
    assert loyalty.points_for_order(100, "Bronze") == 120
    assert loyalty.points_for_order(33.99, "Silver") == 50
    assert loyalty.points_for_order(10.5, "Member") == 10


def test_level_info_top_tier():
    info = loyalty.level_info(12000)
    assert info["level"] == "Platinum"
    assert info["next_level"] is None
    assert info["points_to_next"] == 0


@pytest.fixture
async def delivered(session):
    owner = await make_user(session, role="restaurant")
    restaurant = await make_restaurant(session, owner)
    user = await make_user(session, loyalty_points=1800)
    order = await make_order(session, user, restaurant, status="delivered", total=100.0)
    return user, order


async def test_bronze_member_earns_with_multiplier(session, delivered):
    user, order = delivered
    result = await loyalty.earn_points(session, user.id, order.id)
    assert result["points_earned"] == 120
    assert result["total_points"] == 1920
    assert result["level"] == "Bronze"


async def test_earning_twice_is_refused(session, delivered):
    user, order = delivered
    await loyalty.earn_points(session, user.id, order.id)
    with pytest.raises(AlreadyEarned):
        await loyalty.earn_points(session, user.id, order.id)


async def test_racing_earns_credit_once(session, delivered, monkeypatch):
    """Two requests that both pass the pre-check: the unique index rejects the second."""
    user, order = delivered
    user_id, order_id = user.id, order.id

    async def _never_earned(*args, **kwargs):
        return False

    monkeypatch.setattr(loyalty, "_already_earned", _never_earned)

    await loyalty.earn_points(session, user_id, order_id)
    with pytest.raises(AlreadyEarned):
        await loyalty.earn_points(session, user_id, order_id)

    earned = await session.execute(
        select(func.count(LoyaltyTransaction.id)).where(
            LoyaltyTransaction.order_id == order_id, LoyaltyTransaction.type == "earned"
        )
    )
    assert earned.scalar() == 1
    balance = await session.execute(select(User.loyalty_points).where(User.id == user_id))
    assert balance.scalar() == 1920


async def test_earning_requires_delivered_order(session):
    owner = await make_user(session, role="restaurant")
    restaurant = await make_restaurant(session, owner)
    user = await make_user(session)
    order = await make_order(session, user, restaurant, status="preparing")
    with pytest.raises(StateError):
        await loyalty.earn_points(session, user.id, order.id)


async def test_redeem_deducts_points(session):
    user = await make_user(session, loyalty_points=600)
    result = await loyalty.redeem_reward(session, user.id, "discount_50")
    assert result["points_deducted"] == 500
    assert result["remaining_points"] == 100

    txn = (
        await session.execute(
            select(LoyaltyTransaction).where(LoyaltyTransaction.user_id == user.id)
        )
    ).scalar_one()
    assert txn.type == "redeemed"
    assert txn.points == -500


async def test_redeem_insufficient_points(session):
    user = await make_user(session, loyalty_points=299)
    user_id = user.id
    with pytest.raises(InsufficientPoints):
        await loyalty.redeem_reward(session, user_id, "free_delivery")
    balance = await session.execute(select(User.loyalty_points).where(User.id == user_id))
    assert balance.scalar() == 299


async def test_redeem_unknown_reward(session):
    user = await make_user(session, loyalty_points=5000)
    with pytest.raises(ValidationError):
        await loyalty.redeem_reward(session, user.id, "free_car")


async def test_expire_points_sweep(session, delivered):
    user, order = delivered
    await loyalty.earn_points(session, user.id, order.id)

    result = await loyalty.expire_points(session, now=utcnow() + timedelta(days=400))
    assert result == {"transactions_expired": 1, "points_expired": 120}

    await session.refresh(user)
    assert user.loyalty_points == 1800
    types = (
        await session.execute(
            select(LoyaltyTransaction.type).where(LoyaltyTransaction.user_id == user.id)
        )
    ).scalars().all()
    assert sorted(types) == ["earned", "expired"]

    again = await loyalty.expire_points(session, now=utcnow() + timedelta(days=400))
    assert again["transactions_expired"] == 0


async def test_summary_reports_level_progress(session, delivered):
    user, order = delivered
    await loyalty.earn_points(session, user.id, order.id)

    summary = await loyalty.loyalty_summary(session, user.id, include_transactions=True)
    assert summary["current_points"] == 1920
    assert summary["level"] == "Bronze"
    assert summary["next_level"] == "Silver"
    assert summary["points_to_next_level"] == 80
    assert summary["statistics"]["total_earned"] == 120
    assert summary["transactions"]["pagination"]["total_transactions"] == 1
    rewards = {r["id"]: r["can_redeem"] for r in summary["available_rewards"]}
    assert rewards["discount_100"] is True
    assert rewards["priority_support"] is False


def _earned(order_count, spent, level="Member"):
    return {a["name"] for a in loyalty._achievements(order_count, spent, level) if a["earned"]}


def test_achievements_follow_order_milestones():
    upcoming = [a["name"] for a in loyalty._achievements(0, 0, "Member")]
    assert upcoming == ["Regular Customer", "Loyal Customer", "VIP Customer"]
    assert _earned(1, 40) == {"First Order"}
    assert _earned(10, 40) == {"First Order", "Regular Customer"}


def test_big_spender_needs_ten_thousand():
    assert "Big Spender" not in _earned(12, 9_999.99)
    assert "Big Spender" in _earned(12, 10_000)
