"""
Order lifecycle engine.

  pending → confirmed → preparing → ready → out_for_delivery → delivered
                                        └──────────────────────→ delivered
  any non-terminal state → cancelled     (admin: any state except cancelled)
  delivered → dispute open → dispute resolved   (dispute is a sub-state)

A transition is a compare-and-swap on the order's status column: the UPDATE
only matches while the status is still the one the request was validated
against, so two concurrent transitions cannot both win. The status change
and its history row commit together; notifications, inventory and loyalty
follow in their own units of work and never undo the transition.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Optional, Union

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from orderflow.auth import Actor
from orderflow.errors import (
    AlreadyEarned,
    Forbidden,
    InvalidTransition,
    MissingReason,
    NotFoundError,
    OrderNotFound,
    StateError,
    ValidationError,
)
from orderflow.models import MenuItem, Order, OrderStatusEvent, Restaurant, Review, User
from orderflow.schemas.common import Pagination
from orderflow.services import inventory, loyalty, reporting
from orderflow.services.notifications import notify_order_event, run_side_effect
from orderflow.utils.clock import utcnow
from orderflow.utils.notification_templates import STATUS_NOTIFICATION_TYPES

logger = logging.getLogger(__name__)

ORDER_STATUSES = (
    "pending",
    "confirmed",
    "preparing",
    "ready",
    "out_for_delivery",
    "delivered",
    "cancelled",
)
TERMINAL_STATUSES = ("delivered", "cancelled")
DISPUTE_RESOLUTIONS = ("user_favor", "restaurant_favor", "partial_refund")

_KITCHEN = frozenset({"restaurant", "admin"})
_COURIER = frozenset({"restaurant", "delivery", "admin"})

# (from, to) → roles allowed to make that move
_TRANSITIONS: dict[tuple[str, str], frozenset[str]] = {
    ("pending", "confirmed"): _KITCHEN,
    ("confirmed", "preparing"): _KITCHEN,
    ("preparing", "ready"): _KITCHEN,
    ("ready", "out_for_delivery"): _COURIER,
    ("ready", "delivered"): _KITCHEN,
    ("out_for_delivery", "delivered"): _COURIER,
    ("pending", "cancelled"): frozenset({"customer", "restaurant", "admin"}),
    ("confirmed", "cancelled"): _KITCHEN,
    ("preparing", "cancelled"): _KITCHEN,
    ("ready", "cancelled"): _KITCHEN,
    ("out_for_delivery", "cancelled"): _KITCHEN,
    ("delivered", "cancelled"): frozenset({"admin"}),
}


def is_legal_transition(from_status: str, to_status: str) -> bool:
    """True when some role may move an order from `from_status` to `to_status`."""
    return (from_status, to_status) in _TRANSITIONS


def check_transition(order: Order, actor: Actor, target: str) -> None:
    """Raise InvalidTransition unless `actor` may move `order` to `target`."""
    if target not in ORDER_STATUSES:
        raise InvalidTransition(f"Invalid status '{target}'")
    roles = _TRANSITIONS.get((order.status, target))
    if roles is None:
        raise InvalidTransition(f"Cannot change order from '{order.status}' to '{target}'")
    if actor.role not in roles:
        raise InvalidTransition(
            f"Role '{actor.role}' cannot change order from '{order.status}' to '{target}'"
        )
    if target == "out_for_delivery" and order.order_type != "delivery":
        raise InvalidTransition("Pickup orders are never sent out for delivery")


async def _load_order_for_actor(db: AsyncSession, order_id: uuid.UUID, actor: Actor) -> Order:
    """Fetch an order the actor is allowed to see; anything else is OrderNotFound."""
    order = await db.get(Order, order_id)
    if order is None:
        raise OrderNotFound()
    if actor.role == "admin":
        return order
    if actor.role == "customer" and order.customer_id == actor.id:
        return order
    if actor.role == "delivery" and order.delivery_person_id == actor.id:
        return order
    if actor.role == "restaurant":
        restaurant = await db.get(Restaurant, order.restaurant_id)
        if restaurant is not None and restaurant.owner_id == actor.id:
            return order
    raise OrderNotFound()


# ── Side effects ─────────────────────────────────────────────────────────────


async def _notify_status_change(order: Order, restaurant: Restaurant, reason: Optional[str]) -> None:
    notification_type = STATUS_NOTIFICATION_TYPES.get(order.status, "order-update")

    async def _effect(session: AsyncSession) -> None:
        await notify_order_event(
            session,
            order.customer_id,
            notification_type,
            order.id,
            order.order_number,
            restaurant_name=restaurant.name,
            status=order.status,
            reason=reason,
        )

    await run_side_effect(f"status notification for order {order.id}", _effect)


async def _notify_owner_of_cancellation(order: Order, restaurant: Restaurant, reason: str) -> None:
    async def _effect(session: AsyncSession) -> None:
        await notify_order_event(
            session,
            restaurant.owner_id,
            "order-cancelled",
            order.id,
            order.order_number,
            restaurant_name=restaurant.name,
            reason=reason,
        )

    await run_side_effect(f"owner cancellation notice for order {order.id}", _effect)


async def _decrement_inventory(order: Order, actor: Actor) -> None:
    """Take confirmed quantities out of stock. Untracked items are skipped."""
    for line in order.items:
        if line.menu_item_id is None:
            continue

        async def _effect(session: AsyncSession, line=line) -> None:
            item = await session.get(MenuItem, line.menu_item_id)
            if item is None or not item.track_stock:
                return
            await inventory.adjust_stock(
                session,
                order.restaurant_id,
                line.menu_item_id,
                line.quantity,
                "remove",
                reason=f"Order #{order.order_number} confirmed",
                updated_by=actor.id,
            )

        await run_side_effect(f"stock decrement for order {order.id} item {line.menu_item_id}", _effect)


async def _accrue_loyalty(order: Order) -> None:
    async def _effect(session: AsyncSession) -> None:
        try:
            await loyalty.earn_points(session, order.customer_id, order.id)
        except AlreadyEarned:
            logger.info("Loyalty points for order %s were already credited", order.id)

    await run_side_effect(f"loyalty accrual for order {order.id}", _effect)


async def _fan_out(db: AsyncSession, order: Order, actor: Actor, reason: Optional[str]) -> None:
    restaurant = await db.get(Restaurant, order.restaurant_id)
    await _notify_status_change(order, restaurant, reason)
    if order.status == "cancelled":
        await _notify_owner_of_cancellation(order, restaurant, reason)
    elif order.status == "confirmed":
        await _decrement_inventory(order, actor)
    elif order.status == "delivered":
        await _accrue_loyalty(order)


# ── Transition ───────────────────────────────────────────────────────────────


async def transition(
    db: AsyncSession,
    order_id: uuid.UUID,
    actor: Actor,
    target: str,
    note: Optional[str] = None,
    reason: Optional[str] = None,
    refund_amount: Optional[float] = None,
) -> Order:
    """
    Move an order to `target` on behalf of `actor`.

    Raises OrderNotFound, InvalidTransition, or MissingReason for a
    cancellation without a reason. Cancellation records the reason, the
    cancelling role and a refund (defaults to the order total).
    """
    order = await _load_order_for_actor(db, order_id, actor)
    check_transition(order, actor, target)
    if target == "cancelled" and not (reason and reason.strip()):
        raise MissingReason("Cancellation reason is required")

    from_status = order.status
    now = utcnow()
    values: dict[str, Any] = {"status": target, "updated_at": now}
    if target == "delivered":
        values["delivered_at"] = now
    elif target == "cancelled":
        refund = order.total if refund_amount is None else refund_amount
        if refund < 0 or refund > order.total:
            raise ValidationError("Refund amount must be between 0 and the order total")
        values.update(
            cancel_reason=reason.strip(),
            cancelled_by=actor.role,
            cancelled_at=now,
            refund_amount=round(refund, 2),
            refund_status="pending" if refund > 0 else "none",
        )

    swapped = await db.execute(
        update(Order)
        .where(Order.id == order.id, Order.status == from_status)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if swapped.rowcount != 1:
        await db.rollback()
        raise InvalidTransition("Order status changed concurrently; reload and retry")

    order.status_history.append(OrderStatusEvent(
        status=target,
        note=note or (reason if target == "cancelled" else None) or f"Status updated to {target}",
        actor_id=actor.id,
        actor_role=actor.role,
        created_at=now,
    ))
    if target == "delivered":
        await db.execute(
            update(User)
            .where(User.id == order.customer_id)
            .values(total_spent=User.total_spent + order.total)
            .execution_options(synchronize_session=False)
        )
    await db.commit()
    reporting.clear_cache()
    await db.refresh(order)
    logger.info("Order %s: %s -> %s by %s %s", order.id, from_status, target, actor.role, actor.id)

    await _fan_out(db, order, actor, reason)
    return order


# ── Commands ─────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class AdvanceStatus:
    status: str
    note: Optional[str] = None


@dataclass(frozen=True)
class Cancel:
    reason: str
    refund_amount: Optional[float] = None


@dataclass(frozen=True)
class AssignDelivery:
    delivery_person_id: uuid.UUID


@dataclass(frozen=True)
class OpenDispute:
    reason: str


@dataclass(frozen=True)
class ResolveDispute:
    resolution: str
    note: Optional[str] = None
    refund_amount: Optional[float] = None


OrderCommand = Union[AdvanceStatus, Cancel, AssignDelivery, OpenDispute, ResolveDispute]


async def assign_delivery(
    db: AsyncSession, order_id: uuid.UUID, actor: Actor, delivery_person_id: uuid.UUID
) -> Order:
    if not actor.is_admin:
        raise Forbidden("Only admins can assign delivery")
    order = await _load_order_for_actor(db, order_id, actor)
    if order.order_type != "delivery":
        raise StateError("Only delivery orders can be assigned a courier")
    if order.status in TERMINAL_STATUSES:
        raise StateError(f"Cannot assign delivery to a {order.status} order")
    courier = await db.get(User, delivery_person_id)
    if courier is None or courier.role != "delivery":
        raise NotFoundError("Delivery person not found")

    order.delivery_person_id = courier.id
    await db.commit()
    logger.info("Order %s assigned to courier %s", order.id, courier.id)
    return order


async def open_dispute(db: AsyncSession, order_id: uuid.UUID, actor: Actor, reason: str) -> Order:
    if actor.role != "customer":
        raise Forbidden("Only the customer can dispute an order")
    order = await _load_order_for_actor(db, order_id, actor)
    if order.status != "delivered":
        raise StateError("Only delivered orders can be disputed")
    if order.dispute_status is not None:
        raise StateError("A dispute already exists for this order")
    if not (reason and reason.strip()):
        raise MissingReason("Dispute reason is required")

    order.dispute_status = "open"
    order.dispute_reason = reason.strip()
    order.dispute_opened_at = utcnow()
    await db.commit()
    reporting.clear_cache()
    logger.info("Dispute opened on order %s", order.id)

    restaurant = await db.get(Restaurant, order.restaurant_id)

    async def _effect(session: AsyncSession) -> None:
        await notify_order_event(
            session, restaurant.owner_id, "dispute-opened", order.id, order.order_number,
            restaurant_name=restaurant.name, reason=order.dispute_reason,
        )

    await run_side_effect(f"dispute notice for order {order.id}", _effect)
    return order


async def resolve_dispute(
    db: AsyncSession,
    order_id: uuid.UUID,
    actor: Actor,
    resolution: str,
    note: Optional[str] = None,
    refund_amount: Optional[float] = None,
) -> Order:
    if not actor.is_admin:
        raise Forbidden("Only admins can resolve disputes")
    if resolution not in DISPUTE_RESOLUTIONS:
        raise ValidationError(
            "Valid resolution is required (user_favor, restaurant_favor, partial_refund)"
        )
    order = await _load_order_for_actor(db, order_id, actor)
    if order.dispute_status != "open":
        raise StateError("No open dispute for this order")
    if refund_amount is not None and (refund_amount < 0 or refund_amount > order.total):
        raise ValidationError("Refund amount must be between 0 and the order total")

    order.dispute_status = "resolved"
    order.dispute_resolution = resolution
    order.dispute_note = note
    order.dispute_refund_amount = refund_amount
    order.dispute_resolved_at = utcnow()
    await db.commit()
    reporting.clear_cache()
    logger.info("Dispute on order %s resolved: %s", order.id, resolution)

    restaurant = await db.get(Restaurant, order.restaurant_id)
    for recipient in (order.customer_id, restaurant.owner_id):

        async def _effect(session: AsyncSession, recipient=recipient) -> None:
            await notify_order_event(
                session, recipient, "dispute-resolved", order.id, order.order_number,
                restaurant_name=restaurant.name, resolution=resolution,
            )

        await run_side_effect(f"dispute resolution notice for order {order.id}", _effect)
    return order


async def execute(
    db: AsyncSession, order_id: uuid.UUID, actor: Actor, command: OrderCommand
) -> Order:
    """Dispatch one order command. Unknown command types are a programming error."""
    if isinstance(command, AdvanceStatus):
        if command.status == "cancelled":
            raise ValidationError("Use the cancel action to cancel an order")
        return await transition(db, order_id, actor, command.status, note=command.note)
    if isinstance(command, Cancel):
        return await transition(
            db, order_id, actor, "cancelled",
            reason=command.reason, refund_amount=command.refund_amount,
        )
    if isinstance(command, AssignDelivery):
        return await assign_delivery(db, order_id, actor, command.delivery_person_id)
    if isinstance(command, OpenDispute):
        return await open_dispute(db, order_id, actor, command.reason)
    if isinstance(command, ResolveDispute):
        return await resolve_dispute(
            db, order_id, actor, command.resolution, command.note, command.refund_amount
        )
    raise TypeError(f"Unhandled order command: {type(command).__name__}")


# ── Read side ────────────────────────────────────────────────────────────────


async def _page(db: AsyncSession, query, page: int, limit: int) -> tuple[list[Order], dict]:
    total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar() or 0
    rows = (
        await db.execute(
            query.order_by(Order.created_at.desc()).offset((page - 1) * limit).limit(limit)
        )
    ).scalars().all()
    return list(rows), Pagination.of(total, page, limit).model_dump()


async def list_customer_orders(
    db: AsyncSession,
    actor: Actor,
    status: Optional[str] = None,
    page: int = 1,
    limit: int = 10,
) -> dict[str, Any]:
    query = select(Order).where(Order.customer_id == actor.id)
    if status:
        query = query.where(Order.status == status)
    orders, pagination = await _page(db, query, page, limit)

    counts = await db.execute(
        select(Order.status, func.count(Order.id))
        .where(Order.customer_id == actor.id)
        .group_by(Order.status)
    )
    by_status = {s: 0 for s in ORDER_STATUSES}
    by_status.update({s: c for s, c in counts.all()})
    return {"orders": orders, "pagination": pagination, "status_counts": by_status}


async def customer_order_detail(db: AsyncSession, actor: Actor, order_id: uuid.UUID) -> dict[str, Any]:
    """One order with the flags the customer UI needs."""
    order = await _load_order_for_actor(db, order_id, actor)
    restaurant = await db.get(Restaurant, order.restaurant_id)
    reviewed = (
        await db.execute(
            select(Review.id).where(Review.order_id == order.id, Review.user_id == order.customer_id)
        )
    ).first() is not None
    return {
        "order": order,
        "restaurant": {"id": restaurant.id, "name": restaurant.name} if restaurant else None,
        "can_cancel": order.status == "pending",
        "can_review": order.status == "delivered" and not reviewed,
        "can_dispute": order.status == "delivered" and order.dispute_status is None,
        "tracking": list(order.status_history),
    }


async def list_restaurant_orders(
    db: AsyncSession,
    actor: Actor,
    status: Optional[str] = None,
    page: int = 1,
    limit: int = 20,
) -> dict[str, Any]:
    restaurant_ids = select(Restaurant.id).where(Restaurant.owner_id == actor.id)
    query = select(Order).where(Order.restaurant_id.in_(restaurant_ids))
    if status:
        query = query.where(Order.status == status)
    orders, pagination = await _page(db, query, page, limit)
    return {"orders": orders, "pagination": pagination}


async def list_all_orders(
    db: AsyncSession,
    status: Optional[str] = None,
    restaurant_id: Optional[uuid.UUID] = None,
    customer_id: Optional[uuid.UUID] = None,
    search: Optional[str] = None,
    page: int = 1,
    limit: int = 20,
) -> dict[str, Any]:
    query = select(Order)
    if status:
        query = query.where(Order.status == status)
    if restaurant_id:
        query = query.where(Order.restaurant_id == restaurant_id)
    if customer_id:
        query = query.where(Order.customer_id == customer_id)
    if search:
        query = query.where(Order.order_number.ilike(f"%{search}%"))
    orders, pagination = await _page(db, query, page, limit)
    return {"orders": orders, "pagination": pagination}


async def list_disputes(db: AsyncSession, page: int = 1, limit: int = 20) -> dict[str, Any]:
    query = select(Order).where(Order.dispute_status == "open")
    orders, pagination = await _page(db, query, page, limit)
    return {"orders": orders, "pagination": pagination}
