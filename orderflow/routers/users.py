"""
User profile endpoints.
Profiles are created by the gateway after registration; creation is idempotent.
"""

from __future__ import annotations

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from orderflow.auth import Actor, get_actor
from orderflow.database import get_db
from orderflow.errors import Forbidden, NotFoundError
from orderflow.models import User
from orderflow.schemas.common import ok
from orderflow.schemas.user import UserCreate, UserRead

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/users", tags=["users"])


def _check_self_or_admin(actor: Actor, uid: UUID) -> None:
    if not actor.is_admin and actor.id != uid:
        raise Forbidden("Access denied")


@router.post("/{uid}", status_code=status.HTTP_201_CREATED)
async def create_or_get_user(
    uid: UUID,
    body: UserCreate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_actor),
) -> dict:
    """
    Create a profile or return the existing one.
    data.created is true on the first call and false afterwards.
    """
    _check_self_or_admin(actor, uid)
    user = await db.get(User, uid)
    if user is not None:
        return ok({"user": UserRead.model_validate(user), "created": False})

    # Only admins may create profiles with elevated roles
    role = body.role if actor.is_admin else actor.role
    user = User(id=uid, name=body.name, email=body.email, phone=body.phone, role=role)
    db.add(user)
    await db.commit()
    await db.refresh(user)
    logger.info("Created user %s (%s)", uid, role)
    return ok({"user": UserRead.model_validate(user), "created": True}, "User created")


@router.get("/{uid}")
async def get_user(
    uid: UUID,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_actor),
) -> dict:
    _check_self_or_admin(actor, uid)
    user = await db.get(User, uid)
    if user is None:
        raise NotFoundError("User not found")
    return ok(UserRead.model_validate(user))
