from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy import func, select, update

from factories import make_item, make_restaurant, make_user
from orderflow import database
from orderflow.errors import Forbidden, NotFoundError, StateError, ValidationError
from orderflow.models import MenuItem, Notification, StockHistoryEntry
from orderflow.services import inventory
from orderflow.utils.clock import utcnow


@pytest.mark.parametrize(
    "current,quantity,mode,expected",
    [
        (5, 3, "add", 8),
        (5, 3, "remove", 2),
        (5, 9, "remove", 0),
        (5, 12, "set", 12),
        (5, 0, "set", 0),
    ],
)
def test_compute_new_stock(current, quantity, mode, expected):
    assert inventory.compute_new_stock(current, quantity, mode) == expected


def test_compute_new_stock_rejects_unknown_mode():
    with pytest.raises(ValidationError):
        inventory.compute_new_stock(5, 1, "multiply")


@pytest.fixture
async def kitchen(session):
    owner = await make_user(session, role="restaurant")
    restaurant = await make_restaurant(session, owner)
    return owner, restaurant


async def _owner_alerts(owner_id) -> int:
    async with database.AsyncSessionLocal() as s:
        result = await s.execute(
            select(func.count(Notification.id)).where(
                Notification.user_id == owner_id, Notification.type == "low-stock-alert"
            )
        )
        return result.scalar()


async def test_removing_last_units_marks_unavailable_without_alert(session, kitchen):
    owner, restaurant = kitchen
    item = await make_item(session, restaurant, current_stock=3, low_stock_threshold=5)

    result = await inventory.adjust_stock(session, restaurant.id, item.id, 3, "remove")
    assert result.new_stock == 0
    assert result.item.is_available is False
    assert result.low_stock_alert is False
    assert await _owner_alerts(owner.id) == 0


async def test_over_removal_clamps_at_zero(session, kitchen):
    _, restaurant = kitchen
    item = await make_item(session, restaurant, current_stock=4)
    result = await inventory.adjust_stock(session, restaurant.id, item.id, 10, "remove")
    assert result.previous_stock == 4
    assert result.new_stock == 0


async def test_restock_from_zero_makes_item_available_and_alerts_owner(session, kitchen):
    owner, restaurant = kitchen
    item = await make_item(
        session, restaurant, current_stock=0, is_available=False, low_stock_threshold=10
    )
    result = await inventory.adjust_stock(session, restaurant.id, item.id, 2, "add", reason="delivery")
    assert result.new_stock == 2
    assert result.item.is_available is True
    assert result.low_stock_alert is True
    assert await _owner_alerts(owner.id) == 1


async def test_healthy_stock_does_not_alert(session, kitchen):
    owner, restaurant = kitchen
    item = await make_item(session, restaurant, current_stock=1, low_stock_threshold=5)
    result = await inventory.adjust_stock(session, restaurant.id, item.id, 20, "set")
    assert result.low_stock_alert is False
    assert await _owner_alerts(owner.id) == 0


@pytest.mark.parametrize("quantity", [-1, 1.5, "3", True])
async def test_invalid_quantity_rejected(session, kitchen, quantity):
    _, restaurant = kitchen
    item = await make_item(session, restaurant, current_stock=5)
    with pytest.raises(ValidationError):
        await inventory.adjust_stock(session, restaurant.id, item.id, quantity, "add")


async def test_adjustments_are_logged(session, kitchen):
    owner, restaurant = kitchen
    item = await make_item(session, restaurant, current_stock=5)
    await inventory.adjust_stock(session, restaurant.id, item.id, 3, "add", updated_by=owner.id)
    await inventory.adjust_stock(session, restaurant.id, item.id, 6, "remove", updated_by=owner.id)

    history = await inventory.stock_history(session, restaurant.id, item.id)
    entries = history["stock_history"]
    assert [(e.change_type, e.previous_stock, e.new_stock) for e in entries] == [
        ("add", 5, 8),
        ("remove", 8, 2),
    ]
    assert all(e.updated_by == owner.id for e in entries)


async def test_item_from_other_restaurant_not_found(session, kitchen):
    _, restaurant = kitchen
    other_owner = await make_user(session, role="restaurant")
    other = await make_restaurant(session, other_owner, name="Elsewhere")
    item = await make_item(session, other, current_stock=5)
    with pytest.raises(NotFoundError):
        await inventory.adjust_stock(session, restaurant.id, item.id, 1, "add")


async def test_restaurant_for_actor_scopes_owners(session, kitchen):
    owner, restaurant = kitchen
    found = await inventory.restaurant_for_actor(session, owner.id, "restaurant")
    assert found.id == restaurant.id

    intruder = await make_user(session, role="restaurant")
    with pytest.raises(Forbidden):
        await inventory.restaurant_for_actor(session, intruder.id, "restaurant", restaurant.id)


async def test_bulk_adjust_reports_per_item(session, kitchen):
    _, restaurant = kitchen
    pasta = await make_item(session, restaurant, name="Pasta", current_stock=5)
    salad = await make_item(session, restaurant, name="Salad", current_stock=5)
    results = await inventory.bulk_adjust(
        session,
        restaurant.id,
        [
            {"item_id": pasta.id, "quantity": 12, "type": "set"},
            {"item_id": salad.id, "quantity": 2, "type": "remove"},
            {"item_id": salad.id, "quantity": 1, "type": "explode"},
        ],
    )
    assert [r["success"] for r in results] == [True, True, False]
    assert results[0]["new_stock"] == 12
    assert results[1]["new_stock"] == 3


async def test_threshold_expiry_and_cost(session, kitchen):
    _, restaurant = kitchen
    item = await make_item(session, restaurant, current_stock=4)

    item = await inventory.set_threshold(session, restaurant.id, item.id, 6, reorder_point=3)
    assert (item.low_stock_threshold, item.reorder_point) == (6, 3)

    with pytest.raises(ValidationError):
        await inventory.set_expiry(session, restaurant.id, item.id, utcnow() - timedelta(days=1))
    await inventory.set_expiry(session, restaurant.id, item.id, utcnow() + timedelta(days=3))

    item = await inventory.update_cost(session, restaurant.id, item.id, 2.75)
    assert item.cost_per_unit == 2.75

    alerts = await inventory.inventory_alerts(session, restaurant.id)
    assert alerts["summary"] == {"low_stock": 1, "expiring_soon": 1}


async def test_list_inventory_stats(session, kitchen):
    _, restaurant = kitchen
    await make_item(session, restaurant, name="A", current_stock=0, is_available=False, cost_per_unit=1)
    await make_item(session, restaurant, name="B", current_stock=50, cost_per_unit=2)
    listing = await inventory.list_inventory(session, restaurant.id)
    assert listing["stats"] == {
        "total_items": 2,
        "available_items": 1,
        "low_stock_items": 1,
        "out_of_stock_items": 1,
        "total_value": 100.0,
    }


async def test_prune_stock_history(session, kitchen):
    _, restaurant = kitchen
    item = await make_item(session, restaurant, current_stock=1)
    await inventory.adjust_stock(session, restaurant.id, item.id, 1, "add")
    assert await inventory.prune_stock_history(session, utcnow() - timedelta(days=1)) == 0
    assert await inventory.prune_stock_history(session, utcnow() + timedelta(minutes=1)) == 1
    remaining = await session.execute(select(func.count(StockHistoryEntry.id)))
    assert remaining.scalar() == 0


async def test_concurrent_adjustment_is_not_lost(session, kitchen, monkeypatch):
    """Another writer commits between our read and our write; both changes land."""
    _, restaurant = kitchen
    item = await make_item(session, restaurant, current_stock=10, low_stock_threshold=2)
    restaurant_id, item_id = restaurant.id, item.id
    real_get_item = inventory._get_item
    raced = []

    async def _read_then_race(db, rid, iid):
        found = await real_get_item(db, rid, iid)
        if not raced:
            raced.append(True)
            async with database.AsyncSessionLocal() as other:
                await inventory.adjust_stock(other, rid, iid, 4, "remove")
        return found

    monkeypatch.setattr(inventory, "_get_item", _read_then_race)

    result = await inventory.adjust_stock(session, restaurant_id, item_id, 3, "add")
    assert (result.previous_stock, result.new_stock) == (6, 9)
    assert result.item.current_stock == 9

    history = await inventory.stock_history(session, restaurant_id, item_id)
    assert [(e.change_type, e.previous_stock, e.new_stock) for e in history["stock_history"]] == [
        ("remove", 10, 6),
        ("add", 6, 9),
    ]


async def test_adjustment_gives_up_when_stock_keeps_moving(session, kitchen, monkeypatch):
    _, restaurant = kitchen
    item = await make_item(session, restaurant, current_stock=10)
    restaurant_id, item_id = restaurant.id, item.id
    real_get_item = inventory._get_item

    async def _always_raced(db, rid, iid):
        found = await real_get_item(db, rid, iid)
        async with database.AsyncSessionLocal() as other:
            await other.execute(
                update(MenuItem)
                .where(MenuItem.id == iid)
                .values(current_stock=MenuItem.current_stock + 1)
            )
            await other.commit()
        return found

    monkeypatch.setattr(inventory, "_get_item", _always_raced)
    with pytest.raises(StateError):
        await inventory.adjust_stock(session, restaurant_id, item_id, 1, "add")

    entries = await session.execute(select(func.count(StockHistoryEntry.id)))
    assert entries.scalar() == 0


async def test_first_adjustment_starts_tracking(session, kitchen):
    _, restaurant = kitchen
    item = await make_item(session, restaurant)
    assert item.track_stock is False

    result = await inventory.adjust_stock(session, restaurant.id, item.id, 12, "set")
    assert result.item.track_stock is True
    assert result.item.current_stock == 12


async def test_untracked_items_never_count_as_low(session, kitchen):
    _, restaurant = kitchen
    await make_item(session, restaurant, name="Untracked")
    await make_item(session, restaurant, name="Tracked", current_stock=2, low_stock_threshold=5)

    stats = await inventory.inventory_stats(session, restaurant.id)
    assert stats["low_stock_items"] == 1
    assert stats["out_of_stock_items"] == 0
    alerts = await inventory.inventory_alerts(session, restaurant.id)
    assert [i.name for i in alerts["alerts"]] == ["Tracked"]


async def test_auto_reorder_suggests_and_restocks(session, kitchen):
    owner, restaurant = kitchen
    low = await make_item(session, restaurant, name="Basil", current_stock=2, reorder_point=5)
    await make_item(session, restaurant, name="Flour", current_stock=40, reorder_point=5)
    await make_item(session, restaurant, name="Salt", current_stock=0, reorder_point=0)
    await make_item(session, restaurant, name="Water")

    suggestion = await inventory.auto_reorder(session, restaurant.id)
    assert suggestion["applied"] is False
    assert [(e["item_name"], e["suggested_quantity"]) for e in suggestion["reorder_list"]] == [
        ("Basil", 8)
    ]
    await session.refresh(low)
    assert low.current_stock == 2

    applied = await inventory.auto_reorder(session, restaurant.id, apply=True, updated_by=owner.id)
    assert applied["reorder_list"][0]["new_stock"] == 10
    history = await inventory.stock_history(session, restaurant.id, low.id)
    assert [(e.change_type, e.quantity, e.reason) for e in history["stock_history"]] == [
        ("add", 8, "Auto reorder")
    ]
    assert (await inventory.auto_reorder(session, restaurant.id))["reorder_list"] == []


async def test_stock_movement_report(session, kitchen):
    _, restaurant = kitchen
    pasta = await make_item(session, restaurant, name="Pasta", current_stock=10)
    salad = await make_item(session, restaurant, name="Salad", current_stock=10)
    await inventory.adjust_stock(session, restaurant.id, pasta.id, 5, "add")
    await inventory.adjust_stock(session, restaurant.id, pasta.id, 3, "remove")
    await inventory.adjust_stock(session, restaurant.id, pasta.id, 2, "remove")
    await inventory.adjust_stock(session, restaurant.id, salad.id, 4, "set")

    report = await inventory.generate_report(session, restaurant.id, "stock-movement")
    assert report["type"] == "stock-movement"
    rows = {r["name"]: r for r in report["data"]}
    assert (rows["Pasta"]["movements"], rows["Pasta"]["total_added"], rows["Pasta"]["total_removed"]) == (3, 5, 5)
    assert (rows["Salad"]["total_added"], rows["Salad"]["total_removed"]) == (0, 0)

    future = await inventory.generate_report(
        session, restaurant.id, "stock-movement", start=utcnow() + timedelta(days=1)
    )
    assert future["data"] == []


async def test_low_stock_and_expiry_reports(session, kitchen):
    _, restaurant = kitchen
    await make_item(session, restaurant, name="Low", current_stock=1, low_stock_threshold=5)
    await make_item(session, restaurant, name="Plenty", current_stock=50)
    expiring = await make_item(session, restaurant, name="Milk", current_stock=50)
    await inventory.set_expiry(session, restaurant.id, expiring.id, utcnow() + timedelta(days=20))

    low = await inventory.generate_report(session, restaurant.id, "low-stock")
    assert [i.name for i in low["data"]] == ["Low"]
    expiry = await inventory.generate_report(session, restaurant.id, "expiry")
    assert [i.name for i in expiry["data"]] == ["Milk"]

    with pytest.raises(ValidationError):
        await inventory.generate_report(session, restaurant.id, "profit")
