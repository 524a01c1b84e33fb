"""Customer dashboard endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from orderflow.auth import Actor, require_roles
from orderflow.database import get_db
from orderflow.schemas.common import ok
from orderflow.schemas.notification import NotificationRead
from orderflow.schemas.order import OrderRead
from orderflow.schemas.restaurant import RestaurantRead
from orderflow.schemas.review import ReviewRead
from orderflow.schemas.user import UserRead
from orderflow.services import dashboard

router = APIRouter(prefix="/api/user", tags=["dashboard"])


@router.get("/dashboard")
async def customer_dashboard(
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(require_roles("customer")),
) -> dict:
    data = await dashboard.customer_dashboard(db, actor.id)
    data["user"] = UserRead.model_validate(data["user"])
    data["recent_orders"] = [OrderRead.model_validate(o) for o in data["recent_orders"]]
    if data["active_order"] is not None:
        data["active_order"] = OrderRead.model_validate(data["active_order"])
    data["favorites"] = [RestaurantRead.model_validate(r) for r in data["favorites"]]
    data["recommended"] = [RestaurantRead.model_validate(r) for r in data["recommended"]]
    data["recent_reviews"] = [ReviewRead.model_validate(r) for r in data["recent_reviews"]]
    data["notifications"]["recent"] = [
        NotificationRead.model_validate(n) for n in data["notifications"]["recent"]
    ]
    return ok(data)
