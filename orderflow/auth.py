"""
Actor resolution: identity is established by the upstream gateway.

The gateway verifies the session and forwards X-User-ID and X-User-Role.
This service trusts those headers; JWT verification is not its concern.
Every service function receives the resulting Actor explicitly.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Callable, Optional

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from orderflow.database import get_db
from orderflow.errors import Forbidden, Unauthenticated, Unavailable
from orderflow.services import system

ROLES = ("customer", "restaurant", "delivery", "admin")


@dataclass(frozen=True)
class Actor:
    """The authenticated caller of a request."""

    id: uuid.UUID
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


async def get_actor(
    x_user_id: Optional[str] = Header(default=None, alias="X-User-ID"),
    x_user_role: Optional[str] = Header(default=None, alias="X-User-Role"),
) -> Actor:
    """Parse the gateway identity headers into an Actor."""
    if not x_user_id or not x_user_role:
        raise Unauthenticated("Unauthorized")
    try:
        user_id = uuid.UUID(x_user_id)
    except ValueError:
        raise Unauthenticated("Invalid user ID format")
    role = x_user_role.strip().lower()
    if role not in ROLES:
        raise Unauthenticated("Unknown role")
    return Actor(id=user_id, role=role)


def require_roles(*roles: str) -> Callable:
    """Build a dependency that only lets the given roles through."""

    async def _check(actor: Actor = Depends(get_actor)) -> Actor:
        if actor.role not in roles:
            raise Forbidden(f"Access denied. Required role: {' or '.join(roles)}")
        return actor

    return _check


async def block_writes_during_maintenance(
    request: Request,
    x_user_role: Optional[str] = Header(default=None, alias="X-User-Role"),
    db: AsyncSession = Depends(get_db),
) -> None:
    """Reads and admins pass; every other write gets 503 while maintenance is on."""
    if request.method in ("GET", "HEAD", "OPTIONS"):
        return
    if (x_user_role or "").strip().lower() == "admin":
        return
    message = await system.maintenance_active(db)
    if message is not None:
        raise Unavailable(message)
