"""Customer search endpoints: search, history and saved searches."""

from __future__ import annotations

from typing import Literal, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from orderflow.auth import Actor, require_roles
from orderflow.database import get_db
from orderflow.schemas.common import ok
from orderflow.schemas.restaurant import MenuItemRead, RestaurantRead
from orderflow.schemas.search import SavedSearchCreate, SavedSearchRead, SearchHistoryRead
from orderflow.services import search

router = APIRouter(prefix="/api/user/search", tags=["search"])

_customer = require_roles("customer")


@router.get("")
async def run_search(
    q: str = Query(min_length=1, max_length=100),
    search_type: Literal["all", "restaurants", "menu", "cuisines"] = Query(default="all", alias="type"),
    cuisine: Optional[list[str]] = Query(default=None),
    rating: Optional[float] = Query(default=None, ge=0, le=5),
    min_price: Optional[float] = Query(default=None, ge=0),
    max_price: Optional[float] = Query(default=None, ge=0),
    lat: Optional[float] = Query(default=None, ge=-90, le=90),
    lng: Optional[float] = Query(default=None, ge=-180, le=180),
    max_distance: float = Query(default=10.0, gt=0, alias="maxDistance"),
    sort_by: Literal["relevance", "rating", "name", "distance"] = Query(default="relevance", alias="sortBy"),
    sort_order: Literal["asc", "desc"] = Query(default="desc", alias="sortOrder"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=50),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(_customer),
) -> dict:
    result = await search.search(
        db, actor.id, q, search_type, cuisine, rating, min_price, max_price,
        lat, lng, max_distance, sort_by, sort_order, page, limit,
    )
    if "restaurants" in result:
        result["restaurants"] = [
            {
                "restaurant": RestaurantRead.model_validate(hit["restaurant"]),
                "distance_km": hit["distance_km"],
                "relevance": hit["relevance"],
            }
            for hit in result["restaurants"]
        ]
    if "menu_items" in result:
        result["menu_items"] = [
            {"item": MenuItemRead.model_validate(item), "restaurant_name": restaurant.name}
            for item, restaurant in result["menu_items"]
        ]
    if "cuisines" in result:
        for group in result["cuisines"]:
            group["restaurants"] = [RestaurantRead.model_validate(r) for r in group["restaurants"]]
    return ok(result)


@router.get("/history")
async def history(
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(_customer),
) -> dict:
    entries = await search.search_history(db, actor.id)
    return ok({
        "recent": [SearchHistoryRead.model_validate(e) for e in entries],
        "summary": search.history_summary(entries),
        "popular": await search.popular_searches(db),
    })


@router.delete("/history")
async def clear_history(
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(_customer),
) -> dict:
    removed = await search.clear_history(db, actor.id)
    return ok({"removed": removed}, "Search history cleared")


@router.get("/saved")
async def list_saved(
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(_customer),
) -> dict:
    return ok([SavedSearchRead.model_validate(s) for s in await search.list_saved(db, actor.id)])


@router.post("/saved", status_code=status.HTTP_201_CREATED)
async def save_search(
    body: SavedSearchCreate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(_customer),
) -> dict:
    saved = await search.save_search(db, actor.id, body.query, body.filters)
    return ok(SavedSearchRead.model_validate(saved), "Search saved successfully")


@router.delete("/saved/{saved_id}")
async def remove_saved(
    saved_id: UUID,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(_customer),
) -> dict:
    await search.remove_saved(db, actor.id, saved_id)
    return ok(None, "Saved search removed")
