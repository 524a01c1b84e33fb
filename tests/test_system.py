from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy import select

from factories import actor_for, headers, make_item, make_order, make_restaurant, make_user
from orderflow import database
from orderflow.errors import StateError, ValidationError
from orderflow.models import Notification, SearchHistoryEntry
from orderflow.schemas.order import PlaceOrderRequest
from orderflow.services import checkout, reporting, system
from orderflow.utils.clock import utcnow


async def _notification_types(user_id):
    async with database.AsyncSessionLocal() as s:
        rows = await s.execute(select(Notification.type).where(Notification.user_id == user_id))
        return list(rows.scalars())


async def test_settings_fall_back_to_defaults(session):
    limits = await system.get_setting(session, "limits")
    assert limits == system.DEFAULTS["limits"]
    assert await system.maintenance_active(session) is None


async def test_maintenance_notifies_active_users(session):
    admin = await make_user(session, role="admin")
    customer = await make_user(session)
    retired = await make_user(session, is_active=False)

    config = await system.set_maintenance(session, admin.id, True, "Back at noon")
    assert config["enabled"] is True
    assert await system.maintenance_active(session) == "Back at noon"
    assert await _notification_types(customer.id) == ["system-maintenance"]
    assert await _notification_types(retired.id) == []

    await system.set_maintenance(session, admin.id, False)
    assert await system.maintenance_active(session) is None


async def test_scheduled_maintenance_window(session):
    admin = await make_user(session, role="admin")
    start = utcnow() + timedelta(hours=1)
    await system.set_maintenance(
        session, admin.id, True, scheduled_start=start, scheduled_end=start + timedelta(hours=2)
    )
    assert await system.maintenance_active(session) is None
    assert await system.maintenance_active(session, now=start + timedelta(minutes=5)) is not None
    assert await system.maintenance_active(session, now=start + timedelta(hours=3)) is None

    with pytest.raises(ValidationError):
        await system.set_maintenance(
            session, admin.id, True, scheduled_start=start, scheduled_end=start - timedelta(hours=1)
        )


async def test_update_limits_validates(session):
    admin = await make_user(session, role="admin")
    updated = await system.update_limits(session, admin.id, {"max_active_orders_per_user": 2})
    assert updated["max_active_orders_per_user"] == 2
    assert updated["max_restaurants_per_owner"] == 3

    with pytest.raises(ValidationError, match="Unknown limits"):
        await system.update_limits(session, admin.id, {"max_file_size": 10})
    with pytest.raises(ValidationError, match="positive integer"):
        await system.update_limits(session, admin.id, {"max_restaurants_per_owner": 0})


async def test_toggle_feature(session):
    admin = await make_user(session, role="admin")
    config = await system.toggle_feature(session, admin.id, "analytics", False)
    assert config["analytics"] is False
    assert (await system.get_setting(session, "features"))["analytics"] is False
    with pytest.raises(ValidationError):
        await system.toggle_feature(session, admin.id, "teleport", True)


def test_clear_caches(monkeypatch):
    cleared = []
    monkeypatch.setattr(reporting, "clear_cache", lambda: cleared.append("dashboard"))
    assert system.clear_caches("all") == ["settings", "dashboard"]
    assert system.clear_caches("settings") == ["settings"]
    assert cleared == ["dashboard"]
    with pytest.raises(ValidationError):
        system.clear_caches("sessions")


async def test_active_order_limit_blocks_checkout(session):
    admin = await make_user(session, role="admin")
    owner = await make_user(session, role="restaurant")
    restaurant = await make_restaurant(session, owner)
    item = await make_item(session, restaurant)
    customer = await make_user(session)
    await make_order(session, customer, restaurant, status="preparing")
    await make_order(session, customer, restaurant, status="delivered")
    await system.update_limits(session, admin.id, {"max_active_orders_per_user": 1})

    request = PlaceOrderRequest(
        restaurant_id=restaurant.id,
        order_type="pickup",
        items=[{"menu_item_id": item.id, "quantity": 1}],
    )
    with pytest.raises(StateError, match="Too many active orders"):
        await checkout.place_order(session, actor_for(customer), request)


async def test_announcement_targets_a_role(session):
    admin = await make_user(session, role="admin")
    customer = await make_user(session)
    owner = await make_user(session, role="restaurant")

    sent = await system.send_announcement(session, admin.id, "Hello", "New features", "customers")
    assert sent == 1
    assert await _notification_types(customer.id) == ["system-announcement"]
    assert await _notification_types(owner.id) == []
    with pytest.raises(ValidationError):
        await system.send_announcement(session, admin.id, "Hi", "There", "martians")


async def test_cleanup_only_removes_old_read_notifications(session):
    user = await make_user(session)
    old = utcnow() - timedelta(days=40)
    session.add_all([
        Notification(user_id=user.id, type="promo", title="old read", message="m",
                     is_read=True, created_at=old),
        Notification(user_id=user.id, type="promo", title="old unread", message="m", created_at=old),
        Notification(user_id=user.id, type="promo", title="new read", message="m", is_read=True),
        SearchHistoryEntry(user_id=user.id, query="pizza", created_at=old),
    ])
    await session.commit()

    assert await system.cleanup_data(session, "notifications", 30) == 1
    assert await system.cleanup_data(session, "search_history", 30) == 1
    with pytest.raises(ValidationError):
        await system.cleanup_data(session, "logs", 30)


async def test_stats_and_health(session):
    owner = await make_user(session, role="restaurant")
    restaurant = await make_restaurant(session, owner)
    customer = await make_user(session)
    await make_order(session, customer, restaurant, status="delivered", total=40.0)

    stats = await system.stats(session)
    roles = {row["role"]: row["count"] for row in stats["users"]}
    assert roles == {"restaurant": 1, "customer": 1}
    assert stats["restaurants"] == {"total": 1, "active": 1}
    assert stats["orders"] == [{"status": "delivered", "count": 1, "total_value": 40.0}]

    health = await system.health(session)
    assert health["status"] == "healthy"
    assert health["database"]["tables"]["orders"] == 1
    assert health["maintenance"] is False


async def test_maintenance_blocks_customer_writes_over_http(client, session):
    admin = await make_user(session, role="admin")
    customer = await make_user(session)
    owner = await make_user(session, role="restaurant")
    restaurant = await make_restaurant(session, owner)

    toggled = await client.put(
        "/api/admin/system",
        json={"action": "maintenance-mode", "enabled": True, "message": "Upgrading"},
        headers=headers(admin),
    )
    assert toggled.status_code == 200
    assert toggled.json()["message"] == "Maintenance mode enabled"

    blocked = await client.post(
        "/api/user/favorites", json={"restaurant_id": str(restaurant.id)}, headers=headers(customer)
    )
    assert blocked.status_code == 503
    assert blocked.json() == {"success": False, "message": "Upgrading"}

    reads = await client.get("/api/user/favorites", headers=headers(customer))
    assert reads.status_code == 200

    admin_write = await client.post(
        "/api/admin/restaurants",
        json={"owner_id": str(owner.id), "name": "Second spot"},
        headers=headers(admin),
    )
    assert admin_write.status_code == 201


async def test_restaurant_limit_over_http(client, session):
    admin = await make_user(session, role="admin")
    owner = await make_user(session, role="restaurant")
    await make_restaurant(session, owner)

    limited = await client.put(
        "/api/admin/system",
        json={"action": "update-limits", "limits": {"max_restaurants_per_owner": 1}},
        headers=headers(admin),
    )
    assert limited.status_code == 200
    refused = await client.post(
        "/api/admin/restaurants",
        json={"owner_id": str(owner.id), "name": "Second spot"},
        headers=headers(admin),
    )
    assert refused.status_code == 400
    assert "limit is 1" in refused.json()["message"]


async def test_system_info_and_tasks_over_http(client, session):
    admin = await make_user(session, role="admin")
    customer = await make_user(session)

    stats = await client.get("/api/admin/system", params={"action": "stats"}, headers=headers(admin))
    assert stats.status_code == 200
    config = await client.get("/api/admin/system", params={"action": "config"}, headers=headers(admin))
    assert set(config.json()["data"]) == {"maintenance", "limits", "features"}

    sent = await client.post(
        "/api/admin/system",
        json={"action": "send-system-notification", "title": "Hi", "message": "All", "target_users": "all"},
        headers=headers(admin),
    )
    assert sent.json()["data"] == {"sent": 2}

    bad = await client.put("/api/admin/system", json={"action": "reboot"}, headers=headers(admin))
    assert bad.status_code == 400

    forbidden = await client.get("/api/admin/system", headers=headers(customer))
    assert forbidden.status_code == 403
