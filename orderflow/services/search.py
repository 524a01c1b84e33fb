"""
Customer search over restaurants, menu items and cuisines.

Flow:
  1. SQL: active restaurants whose name, description, city, cuisines or
     menu item names contain the query; scalar filters (rating, price).
  2. Python-side filters for the array and geo fields (cuisine, distance).
  3. Rank by relevance (name hit > cuisine hit > other), rating as tiebreak,
     or by the requested sort key.
  4. Record the query in the user's history after the response is built.
"""

from __future__ import annotations

import logging
import uuid
from collections import Counter
from typing import Any, Optional

from sqlalchemy import String, cast, delete, exists, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from orderflow.errors import NotFoundError, ValidationError
from orderflow.models import MenuItem, Restaurant, SavedSearch, SearchHistoryEntry
from orderflow.schemas.common import Pagination
from orderflow.services.notifications import run_side_effect
from orderflow.utils.geo import haversine_km

logger = logging.getLogger(__name__)

SEARCH_TYPES = ("all", "restaurants", "menu", "cuisines")
SORT_KEYS = ("relevance", "rating", "name", "distance")
HISTORY_LIMIT = 50
SAVED_SEARCH_LIMIT = 20
POPULAR_LIMIT = 10
CUISINE_SAMPLE = 3
SUGGESTION_LIMIT = 5


def _pattern(text: str) -> str:
    escaped = text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def relevance(restaurant: Restaurant, query: str) -> int:
    """3 for a name hit, 2 for a cuisine hit, 1 for anything else that matched."""
    needle = query.lower()
    if needle in (restaurant.name or "").lower():
        return 3
    if any(needle in c.lower() for c in restaurant.cuisine_types or []):
        return 2
    return 1


async def _search_restaurants(
    db: AsyncSession,
    query: str,
    cuisines: list[str],
    min_rating: Optional[float],
    min_price: Optional[float],
    max_price: Optional[float],
    origin: Optional[tuple[float, float]],
    max_distance_km: float,
    sort_by: str,
    descending: bool,
) -> list[dict[str, Any]]:
    pattern = _pattern(query)
    menu_hit = exists().where(
        MenuItem.restaurant_id == Restaurant.id, MenuItem.name.ilike(pattern, escape="\\")
    )
    stmt = select(Restaurant).where(
        Restaurant.is_active.is_(True),
        or_(
            Restaurant.name.ilike(pattern, escape="\\"),
            Restaurant.description.ilike(pattern, escape="\\"),
            Restaurant.city.ilike(pattern, escape="\\"),
            cast(Restaurant.cuisine_types, String).ilike(pattern, escape="\\"),
            menu_hit,
        ),
    )
    if min_rating is not None:
        stmt = stmt.where(Restaurant.rating_average >= min_rating)
    if min_price is not None or max_price is not None:
        priced = [MenuItem.restaurant_id == Restaurant.id, MenuItem.is_available.is_(True)]
        if min_price is not None:
            priced.append(MenuItem.price >= min_price)
        if max_price is not None:
            priced.append(MenuItem.price <= max_price)
        stmt = stmt.where(exists().where(*priced))

    rows = (await db.execute(stmt)).scalars().all()

    wanted = {c.lower() for c in cuisines}
    hits: list[dict[str, Any]] = []
    for restaurant in rows:
        if wanted and not wanted & {c.lower() for c in restaurant.cuisine_types or []}:
            continue
        distance = None
        if origin is not None:
            if restaurant.lat is None or restaurant.lng is None:
                continue
            distance = round(haversine_km(origin[0], origin[1], restaurant.lat, restaurant.lng), 2)
            if distance > max_distance_km:
                continue
        hits.append({
            "restaurant": restaurant,
            "distance_km": distance,
            "relevance": relevance(restaurant, query),
        })

    if sort_by == "relevance":
        hits.sort(key=lambda h: (-h["relevance"], -float(h["restaurant"].rating_average or 0)))
    elif sort_by == "rating":
        hits.sort(key=lambda h: float(h["restaurant"].rating_average or 0), reverse=descending)
    elif sort_by == "name":
        hits.sort(key=lambda h: h["restaurant"].name.lower(), reverse=descending)
    elif sort_by == "distance":
        hits.sort(
            key=lambda h: h["distance_km"] if h["distance_km"] is not None else float("inf"),
            reverse=descending,
        )
    return hits


async def _search_menu_items(
    db: AsyncSession,
    query: str,
    min_price: Optional[float],
    max_price: Optional[float],
) -> list[tuple[MenuItem, Restaurant]]:
    pattern = _pattern(query)
    stmt = (
        select(MenuItem, Restaurant)
        .join(Restaurant, Restaurant.id == MenuItem.restaurant_id)
        .where(
            Restaurant.is_active.is_(True),
            MenuItem.is_available.is_(True),
            or_(
                MenuItem.name.ilike(pattern, escape="\\"),
                MenuItem.description.ilike(pattern, escape="\\"),
                MenuItem.category.ilike(pattern, escape="\\"),
            ),
        )
        .order_by(MenuItem.name)
    )
    if min_price is not None:
        stmt = stmt.where(MenuItem.price >= min_price)
    if max_price is not None:
        stmt = stmt.where(MenuItem.price <= max_price)
    return [(item, restaurant) for item, restaurant in (await db.execute(stmt)).all()]


async def _search_cuisines(db: AsyncSession, query: str) -> list[dict[str, Any]]:
    """Cuisines containing the query, each with a count and a few sample restaurants."""
    needle = query.lower()
    rows = (
        await db.execute(
            select(Restaurant)
            .where(Restaurant.is_active.is_(True))
            .order_by(Restaurant.rating_average.desc())
        )
    ).scalars().all()
    grouped: dict[str, list[Restaurant]] = {}
    for restaurant in rows:
        for cuisine in restaurant.cuisine_types or []:
            if needle in cuisine.lower():
                grouped.setdefault(cuisine, []).append(restaurant)
    return [
        {"cuisine": cuisine, "count": len(members), "restaurants": members[:CUISINE_SAMPLE]}
        for cuisine, members in sorted(grouped.items(), key=lambda kv: -len(kv[1]))
    ]


def _suggestions(hits: list[dict[str, Any]], query: str) -> list[str]:
    seen: list[str] = []
    for hit in hits:
        restaurant = hit["restaurant"]
        for candidate in [restaurant.name, *(restaurant.cuisine_types or [])]:
            if candidate.lower() != query.lower() and candidate not in seen:
                seen.append(candidate)
    return seen[:SUGGESTION_LIMIT]


async def record_search(db: AsyncSession, user_id: uuid.UUID, query: str, results_count: int) -> None:
    """Append to the user's history and drop everything past the newest HISTORY_LIMIT."""
    db.add(SearchHistoryEntry(user_id=user_id, query=query, results_count=results_count))
    await db.flush()
    keep = (
        select(SearchHistoryEntry.id)
        .where(SearchHistoryEntry.user_id == user_id)
        .order_by(SearchHistoryEntry.id.desc())
        .limit(HISTORY_LIMIT)
    )
    await db.execute(
        delete(SearchHistoryEntry)
        .where(SearchHistoryEntry.user_id == user_id, SearchHistoryEntry.id.not_in(keep))
        .execution_options(synchronize_session=False)
    )


async def search(
    db: AsyncSession,
    user_id: uuid.UUID,
    query: str,
    search_type: str = "all",
    cuisines: Optional[list[str]] = None,
    min_rating: Optional[float] = None,
    min_price: Optional[float] = None,
    max_price: Optional[float] = None,
    lat: Optional[float] = None,
    lng: Optional[float] = None,
    max_distance_km: float = 10.0,
    sort_by: str = "relevance",
    sort_order: str = "desc",
    page: int = 1,
    limit: int = 20,
) -> dict[str, Any]:
    query = (query or "").strip()
    if not query:
        raise ValidationError("Search query is required")
    if search_type not in SEARCH_TYPES:
        raise ValidationError(f"Invalid search type: {search_type}")
    if sort_by not in SORT_KEYS:
        raise ValidationError(f"Invalid sort key: {sort_by}")
    if (lat is None) != (lng is None):
        raise ValidationError("lat and lng must be given together")
    if sort_by == "distance" and lat is None:
        raise ValidationError("Distance sorting needs a location")

    origin = (lat, lng) if lat is not None else None
    descending = sort_order != "asc"
    result: dict[str, Any] = {"query": query, "type": search_type}
    total = 0

    if search_type in ("all", "restaurants"):
        hits = await _search_restaurants(
            db, query, cuisines or [], min_rating, min_price, max_price,
            origin, max_distance_km, sort_by, descending,
        )
        total += len(hits)
        start = (page - 1) * limit
        result["restaurants"] = hits[start:start + limit]
        result["pagination"] = Pagination.of(len(hits), page, limit).model_dump()
        result["suggestions"] = _suggestions(hits, query)

    if search_type in ("all", "menu"):
        items = await _search_menu_items(db, query, min_price, max_price)
        total += len(items)
        result["menu_items"] = items[:limit]

    if search_type in ("all", "cuisines"):
        groups = await _search_cuisines(db, query)
        total += len(groups)
        result["cuisines"] = groups

    result["total_results"] = total

    async def _effect(session: AsyncSession) -> None:
        await record_search(session, user_id, query, total)

    await run_side_effect(f"search history for user {user_id}", _effect)
    return result


async def search_history(db: AsyncSession, user_id: uuid.UUID, limit: int = 20) -> list[SearchHistoryEntry]:
    rows = await db.execute(
        select(SearchHistoryEntry)
        .where(SearchHistoryEntry.user_id == user_id)
        .order_by(SearchHistoryEntry.id.desc())
        .limit(limit)
    )
    return list(rows.scalars())


async def clear_history(db: AsyncSession, user_id: uuid.UUID) -> int:
    result = await db.execute(
        delete(SearchHistoryEntry)
        .where(SearchHistoryEntry.user_id == user_id)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return result.rowcount or 0


async def popular_searches(db: AsyncSession, limit: int = POPULAR_LIMIT) -> list[dict[str, Any]]:
    """Most frequent queries across all users, case-folded."""
    rows = await db.execute(
        select(func.lower(SearchHistoryEntry.query), func.count(SearchHistoryEntry.id))
        .group_by(func.lower(SearchHistoryEntry.query))
        .order_by(func.count(SearchHistoryEntry.id).desc())
        .limit(limit)
    )
    return [{"query": q, "count": n} for q, n in rows.all()]


async def list_saved(db: AsyncSession, user_id: uuid.UUID) -> list[SavedSearch]:
    rows = await db.execute(
        select(SavedSearch)
        .where(SavedSearch.user_id == user_id)
        .order_by(SavedSearch.saved_at.desc())
    )
    return list(rows.scalars())


async def save_search(
    db: AsyncSession, user_id: uuid.UUID, query: str, filters: Optional[dict[str, Any]] = None
) -> SavedSearch:
    query = (query or "").strip()
    if not query:
        raise ValidationError("Search query is required")
    existing = await list_saved(db, user_id)
    if any(s.query.lower() == query.lower() for s in existing):
        raise ValidationError("Search already saved")
    if len(existing) >= SAVED_SEARCH_LIMIT:
        raise ValidationError(f"You can save at most {SAVED_SEARCH_LIMIT} searches")
    saved = SavedSearch(user_id=user_id, query=query, filters=filters or {})
    db.add(saved)
    await db.commit()
    await db.refresh(saved)
    return saved


async def remove_saved(db: AsyncSession, user_id: uuid.UUID, saved_id: uuid.UUID) -> None:
    saved = await db.get(SavedSearch, saved_id)
    if saved is None or saved.user_id != user_id:
        raise NotFoundError("Saved search not found")
    await db.delete(saved)
    await db.commit()


def history_summary(entries: list[SearchHistoryEntry]) -> list[dict[str, Any]]:
    """Distinct recent queries with how often each was run."""
    counts = Counter(e.query.lower() for e in entries)
    seen: set[str] = set()
    summary = []
    for entry in entries:
        key = entry.query.lower()
        if key in seen:
            continue
        seen.add(key)
        summary.append({"query": entry.query, "times": counts[key], "last_searched": entry.created_at})
    return summary
