from __future__ import annotations

from datetime import timedelta

import pytest

from factories import make_user
from orderflow.errors import NotFoundError
from orderflow.services import notifications
from orderflow.utils.clock import utcnow


async def _seed(session, user, count=3):
    for i in range(count):
        await notifications.notify(session, user.id, "promo", f"Deal {i}", "Half price pizza")
    await session.commit()


async def test_list_newest_first_with_unread_count(session):
    user = await make_user(session)
    await _seed(session, user)
    page = await notifications.list_notifications(session, user.id, limit=2)
    assert page["total"] == 3
    assert page["unread_count"] == 3
    assert len(page["notifications"]) == 2


async def test_expired_notifications_are_hidden_and_cleaned_up(session):
    user = await make_user(session)
    await notifications.notify(
        session, user.id, "promo", "Old", "Gone", expires_at=utcnow() - timedelta(days=1)
    )
    await notifications.notify(session, user.id, "promo", "Fresh", "Still here")
    await session.commit()

    page = await notifications.list_notifications(session, user.id)
    assert [n.title for n in page["notifications"]] == ["Fresh"]
    assert await notifications.cleanup_expired(session) == 1


async def test_unread_count_ignores_expired(session):
    user = await make_user(session)
    await notifications.notify(
        session, user.id, "promo", "Old", "Gone", expires_at=utcnow() - timedelta(days=1)
    )
    await session.commit()

    page = await notifications.list_notifications(session, user.id)
    assert page["total"] == 0
    assert page["unread_count"] == 0
    assert await notifications.unread_count(session, user.id) == 0


async def test_mark_read_and_mark_all(session):
    user = await make_user(session)
    await _seed(session, user)
    page = await notifications.list_notifications(session, user.id)
    first = page["notifications"][0]

    marked = await notifications.mark_read(session, user.id, first.id)
    assert marked.is_read is True
    assert marked.read_at is not None
    assert await notifications.unread_count(session, user.id) == 2

    assert await notifications.mark_all_read(session, user.id) == 2
    assert await notifications.unread_count(session, user.id) == 0

    unread = await notifications.list_notifications(session, user.id, unread_only=True)
    assert unread["total"] == 0


async def test_other_users_notifications_are_not_found(session):
    owner = await make_user(session)
    stranger = await make_user(session)
    await _seed(session, owner, count=1)
    target = (await notifications.list_notifications(session, owner.id))["notifications"][0]

    with pytest.raises(NotFoundError):
        await notifications.mark_read(session, stranger.id, target.id)
    with pytest.raises(NotFoundError):
        await notifications.delete_notification(session, stranger.id, target.id)

    await notifications.delete_notification(session, owner.id, target.id)
    assert (await notifications.list_notifications(session, owner.id))["total"] == 0


async def test_long_text_is_truncated(session):
    user = await make_user(session)
    note = await notifications.notify(session, user.id, "promo", "t" * 150, "m" * 900)
    assert len(note.title) == 100
    assert len(note.message) == 500


async def test_order_event_uses_template(session):
    user = await make_user(session)
    note = await notifications.notify_order_event(
        session, user.id, "order-confirmed", user.id, "FS123456789", restaurant_name="Luigi's"
    )
    assert note.title == "Order Confirmed!"
    assert "FS123456789" in note.message
    assert "Luigi's" in note.message
    assert note.priority == "high"
    assert note.data["order_number"] == "FS123456789"


async def test_failed_side_effect_is_swallowed(caplog):
    async def _boom(session):
        raise RuntimeError("mail server down")

    assert await notifications.run_side_effect("test effect", _boom) is False
    assert "mail server down" in caplog.text


async def test_side_effect_commits(session):
    user = await make_user(session)

    async def _effect(s):
        await notifications.notify(s, user.id, "promo", "Hello", "World")

    assert await notifications.run_side_effect("greeting", _effect) is True
    assert await notifications.unread_count(session, user.id) == 1
