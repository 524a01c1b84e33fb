from __future__ import annotations

import uuid

import pytest
from sqlalchemy import select

from factories import headers, make_item, make_restaurant, make_user
from orderflow import database
from orderflow.errors import NotFoundError, ValidationError
from orderflow.models import SearchHistoryEntry
from orderflow.services import search
from orderflow.utils.geo import haversine_km

NYC = (40.7128, -74.0060)


@pytest.fixture
async def town(session):
    owner = await make_user(session, role="restaurant")
    luigi = await make_restaurant(
        session, owner, name="Luigi's Trattoria", lat=NYC[0], lng=NYC[1], rating_average=4.0
    )
    palace = await make_restaurant(
        session, owner, name="Pizza Palace", cuisine_types=["pizza", "italian"],
        lat=40.73, lng=-73.99, rating_average=3.5,
    )
    napoli = await make_restaurant(
        session, owner, name="Napoli", cuisine_types=["pizza"],
        lat=42.36, lng=-71.06, rating_average=4.8,
    )
    sushi = await make_restaurant(
        session, owner, name="Sushi Go", cuisine_types=["japanese"], rating_average=4.9
    )
    await make_item(session, luigi, name="Margherita pizza", price=12.0, category="mains")
    await make_item(session, palace, name="Pepperoni", price=18.0, category="mains")
    await make_item(session, napoli, name="Marinara", price=9.0, category="mains")
    await make_item(session, sushi, name="Salmon roll", price=8.0, category="mains")
    customer = await make_user(session)
    return {"luigi": luigi, "palace": palace, "napoli": napoli, "sushi": sushi, "customer": customer}


def _names(result):
    return [hit["restaurant"].name for hit in result["restaurants"]]


async def _history(user_id):
    async with database.AsyncSessionLocal() as s:
        rows = await s.execute(
            select(SearchHistoryEntry.query)
            .where(SearchHistoryEntry.user_id == user_id)
            .order_by(SearchHistoryEntry.id)
        )
        return list(rows.scalars())


def test_haversine_known_distance():
    # New York to Boston is roughly 306 km
    assert 300 < haversine_km(*NYC, 42.3601, -71.0589) < 312


async def test_ranks_name_hits_before_cuisine_and_menu_hits(session, town):
    result = await search.search(session, town["customer"].id, "pizza", search_type="restaurants")
    assert _names(result) == ["Pizza Palace", "Napoli", "Luigi's Trattoria"]
    assert [hit["relevance"] for hit in result["restaurants"]] == [3, 2, 1]
    assert result["pagination"]["total_items"] == 3


async def test_rating_and_cuisine_filters(session, town):
    rated = await search.search(
        session, town["customer"].id, "pizza", search_type="restaurants", min_rating=4.0
    )
    assert _names(rated) == ["Napoli", "Luigi's Trattoria"]

    italian = await search.search(
        session, town["customer"].id, "pizza", search_type="restaurants", cuisines=["Italian"]
    )
    assert set(_names(italian)) == {"Pizza Palace", "Luigi's Trattoria"}


async def test_price_filter_needs_an_item_in_range(session, town):
    result = await search.search(
        session, town["customer"].id, "pizza", search_type="restaurants", max_price=10
    )
    assert _names(result) == ["Napoli"]


async def test_distance_filter_and_sort(session, town):
    result = await search.search(
        session, town["customer"].id, "pizza", search_type="restaurants",
        lat=NYC[0], lng=NYC[1], max_distance_km=10, sort_by="distance", sort_order="asc",
    )
    assert _names(result) == ["Luigi's Trattoria", "Pizza Palace"]
    assert result["restaurants"][0]["distance_km"] == 0.0
    assert 0 < result["restaurants"][1]["distance_km"] < 10


async def test_distance_sort_needs_location(session, town):
    with pytest.raises(ValidationError):
        await search.search(session, town["customer"].id, "pizza", sort_by="distance")
    with pytest.raises(ValidationError):
        await search.search(session, town["customer"].id, "pizza", lat=NYC[0])


async def test_wildcards_in_query_are_literal(session, town):
    result = await search.search(session, town["customer"].id, "%", search_type="restaurants")
    assert result["restaurants"] == []


async def test_menu_and_cuisine_results(session, town):
    result = await search.search(session, town["customer"].id, "pizza")
    assert [item.name for item, _ in result["menu_items"]] == ["Margherita pizza"]
    assert result["cuisines"][0]["cuisine"] == "pizza"
    assert result["cuisines"][0]["count"] == 2
    assert result["total_results"] == 3 + 1 + 1
    assert "Pizza Palace" in result["suggestions"]


async def test_blank_query_rejected(session, town):
    with pytest.raises(ValidationError):
        await search.search(session, town["customer"].id, "   ")


async def test_history_is_recorded_and_trimmed(session, town, monkeypatch):
    monkeypatch.setattr(search, "HISTORY_LIMIT", 3)
    user_id = town["customer"].id
    for query in ("pizza", "sushi", "pasta", "ramen"):
        await search.search(session, user_id, query)

    assert await _history(user_id) == ["sushi", "pasta", "ramen"]
    popular = await search.popular_searches(session)
    assert {entry["query"] for entry in popular} == {"sushi", "pasta", "ramen"}

    assert await search.clear_history(session, user_id) == 3
    assert await _history(user_id) == []


async def test_history_summary_groups_repeats(session, town):
    user_id = town["customer"].id
    for query in ("Pizza", "sushi", "pizza"):
        await search.search(session, user_id, query)
    entries = await search.search_history(session, user_id)
    summary = search.history_summary(entries)
    assert [(s["query"], s["times"]) for s in summary] == [("pizza", 2), ("sushi", 1)]


async def test_saved_searches(session, town, monkeypatch):
    user_id = town["customer"].id
    saved = await search.save_search(session, user_id, "pizza", {"min_rating": 4})
    assert saved.filters == {"min_rating": 4}

    with pytest.raises(ValidationError, match="already saved"):
        await search.save_search(session, user_id, "PIZZA")

    monkeypatch.setattr(search, "SAVED_SEARCH_LIMIT", 1)
    with pytest.raises(ValidationError, match="at most"):
        await search.save_search(session, user_id, "sushi")

    stranger = await make_user(session)
    with pytest.raises(NotFoundError):
        await search.remove_saved(session, stranger.id, saved.id)
    await search.remove_saved(session, user_id, saved.id)
    assert await search.list_saved(session, user_id) == []


async def test_search_endpoint(client, session, town):
    response = await client.get(
        "/api/user/search",
        params={"q": "pizza", "type": "restaurants", "sortBy": "rating"},
        headers=headers(town["customer"]),
    )
    assert response.status_code == 200
    hits = response.json()["data"]["restaurants"]
    assert [h["restaurant"]["name"] for h in hits] == ["Napoli", "Luigi's Trattoria", "Pizza Palace"]

    bad = await client.get(
        "/api/user/search",
        params={"q": "pizza", "sortBy": "distance"},
        headers=headers(town["customer"]),
    )
    assert bad.status_code == 400

    owner = await make_user(session, role="restaurant")
    owner_view = await client.get("/api/user/search", params={"q": "pizza"}, headers=headers(owner))
    assert owner_view.status_code == 403


async def test_saved_search_endpoints(client, town):
    caller = headers(town["customer"])
    created = await client.post("/api/user/search/saved", json={"query": "pizza"}, headers=caller)
    assert created.status_code == 201
    saved_id = created.json()["data"]["id"]

    listed = await client.get("/api/user/search/saved", headers=caller)
    assert [s["query"] for s in listed.json()["data"]] == ["pizza"]

    missing = await client.delete(f"/api/user/search/saved/{uuid.uuid4()}", headers=caller)
    assert missing.status_code == 404
    removed = await client.delete(f"/api/user/search/saved/{saved_id}", headers=caller)
    assert removed.status_code == 200
