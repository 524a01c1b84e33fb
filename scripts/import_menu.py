"""
import_menu.py: bulk menu import for one restaurant.

Expected CSV columns: name, price, category, description, current_stock,
low_stock_threshold, cost_per_unit. Only name and price are required.
Rows matching an existing item (same restaurant, same name) are updated.
A new item with a current_stock value is stock-tracked: its opening stock
is recorded as a 'set' stock-history entry and zero means sold out.
A blank current_stock leaves the item untracked and available.

Usage:
    python scripts/import_menu.py --csv data/menu.csv --restaurant-id <uuid>
    python scripts/import_menu.py --csv data/menu.csv --restaurant-id <uuid> --dry-run
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import uuid
from pathlib import Path
from typing import Optional

import pandas as pd

sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import select

from orderflow.database import AsyncSessionLocal, engine
from orderflow.models import Base, MenuItem, Restaurant, StockHistoryEntry
from orderflow.utils.clock import utcnow

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
)
logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ("name", "price")

# ── Column parsing helpers ───────────────────────────────────────────────────


def _parse_price(val: object) -> Optional[float]:
    """Strip currency symbols and commas; None when unparseable or negative."""
    if pd.isna(val):
        return None
    cleaned = str(val).replace("$", "").replace(",", "").strip()
    try:
        price = round(float(cleaned), 2)
    except ValueError:
        return None
    return price if price >= 0 else None


def _parse_int(val: object, default: int) -> int:
    if pd.isna(val):
        return default
    try:
        return max(0, int(float(val)))
    except (TypeError, ValueError):
        return default


def _parse_text(val: object) -> Optional[str]:
    if pd.isna(val):
        return None
    text_ = str(val).strip()
    return text_ or None


def parse_row(row: pd.Series) -> Optional[dict]:
    """Map one CSV row onto MenuItem fields, or None when the row is unusable."""
    name = _parse_text(row.get("name"))
    price = _parse_price(row.get("price"))
    if not name or price is None:
        return None
    return {
        "name": name,
        "price": price,
        "category": _parse_text(row.get("category")) or "main",
        "description": _parse_text(row.get("description")),
        "track_stock": not pd.isna(row.get("current_stock")),
        "current_stock": _parse_int(row.get("current_stock"), 0),
        "low_stock_threshold": _parse_int(row.get("low_stock_threshold"), 10),
        "cost_per_unit": _parse_price(row.get("cost_per_unit")) or 0.0,
    }


# ── Import ───────────────────────────────────────────────────────────────────


async def run_import(csv_path: str, restaurant_id: uuid.UUID, dry_run: bool = False) -> None:
    logger.info("Loading CSV: %s", csv_path)
    df = pd.read_csv(csv_path)
    logger.info("Loaded %d rows.", len(df))

    missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        logger.error("Required columns not found: %s", ", ".join(missing))
        sys.exit(1)

    before = len(df)
    df = df.drop_duplicates(subset=["name"], keep="last")
    logger.info("After dedup on name: %d rows (removed %d).", len(df), before - len(df))

    rows = [parse_row(row) for _, row in df.iterrows()]
    skipped = sum(1 for r in rows if r is None)
    rows = [r for r in rows if r is not None]

    if dry_run:
        logger.info("Dry run complete: %d parsed, %d skipped.", len(rows), skipped)
        return

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    inserted = updated = 0
    async with AsyncSessionLocal() as session:
        restaurant = await session.get(Restaurant, restaurant_id)
        if restaurant is None:
            logger.error("Restaurant %s not found.", restaurant_id)
            sys.exit(1)

        existing = {
            item.name: item
            for item in (
                await session.execute(
                    select(MenuItem).where(MenuItem.restaurant_id == restaurant_id)
                )
            ).scalars()
        }
        now = utcnow()
        for data in rows:
            item = existing.get(data["name"])
            if item is None:
                item = MenuItem(
                    restaurant_id=restaurant_id,
                    is_available=not data["track_stock"] or data["current_stock"] > 0,
                    stock_updated_at=now,
                    **data,
                )
                session.add(item)
                await session.flush()
                if data["track_stock"]:
                    session.add(StockHistoryEntry(
                        menu_item_id=item.id,
                        change_type="set",
                        quantity=data["current_stock"],
                        previous_stock=0,
                        new_stock=data["current_stock"],
                        reason="Opening stock (menu import)",
                        created_at=now,
                    ))
                inserted += 1
            else:
                for field in ("price", "category", "description", "low_stock_threshold", "cost_per_unit"):
                    setattr(item, field, data[field])
                updated += 1
        await session.commit()

    await engine.dispose()
    logger.info("Import complete: %d inserted, %d updated, %d skipped.", inserted, updated, skipped)


def main() -> None:
    parser = argparse.ArgumentParser(description="Import a restaurant menu from CSV.")
    parser.add_argument("--csv", required=True, help="Path to the menu CSV file.")
    parser.add_argument("--restaurant-id", required=True, type=uuid.UUID)
    parser.add_argument("--dry-run", action="store_true", help="Parse only, no DB writes.")
    args = parser.parse_args()
    asyncio.run(run_import(args.csv, args.restaurant_id, args.dry_run))


if __name__ == "__main__":
    main()
