"""
create_tables.py: idempotent table creation script.
Run this before starting the service for the first time, or after schema changes.
Safe to run multiple times (create_all skips existing tables).

Usage:
    python scripts/create_tables.py
"""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

# Ensure the project root is on the path
sys.path.insert(0, str(Path(__file__).parent.parent))

from orderflow.database import engine
from orderflow.models import Base  # noqa: F401  (registers every model)


async def main() -> None:
    print("Creating tables...")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    print("  ✓ All tables created")

    print("\nDone. Run `python scripts/import_menu.py --csv data/menu.csv --restaurant-id <id>` next.")
    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
