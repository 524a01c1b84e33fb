"""
expire_points.py: loyalty expiry sweep and housekeeping.

Expires earned loyalty points past their expiry date, and optionally removes
expired notifications and old stock-history rows. Meant to be run from cron;
the service itself schedules nothing.

Usage:
    python scripts/expire_points.py
    python scripts/expire_points.py --cleanup-notifications
    python scripts/expire_points.py --prune-stock-history-days 180
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from datetime import timedelta
from pathlib import Path
from typing import Optional

sys.path.insert(0, str(Path(__file__).parent.parent))

from orderflow.database import AsyncSessionLocal, engine
from orderflow.services import inventory, loyalty, notifications
from orderflow.utils.clock import utcnow

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
)
logger = logging.getLogger(__name__)


async def run(cleanup_notifications: bool, prune_days: Optional[int]) -> None:
    async with AsyncSessionLocal() as session:
        result = await loyalty.expire_points(session)
        logger.info(
            "Loyalty sweep: %d transactions, %d points expired.",
            result["transactions_expired"], result["points_expired"],
        )

        if cleanup_notifications:
            removed = await notifications.cleanup_expired(session)
            logger.info("Notification cleanup: %d removed.", removed)

        if prune_days:
            removed = await inventory.prune_stock_history(
                session, utcnow() - timedelta(days=prune_days)
            )
            logger.info("Stock history pruning: %d rows removed.", removed)

    await engine.dispose()


def main() -> None:
    parser = argparse.ArgumentParser(description="Run the loyalty expiry sweep.")
    parser.add_argument(
        "--cleanup-notifications",
        action="store_true",
        help="Also delete notifications past their expiry date.",
    )
    parser.add_argument(
        "--prune-stock-history-days",
        type=int,
        default=None,
        help="Also delete stock-history rows older than this many days.",
    )
    args = parser.parse_args()
    asyncio.run(run(args.cleanup_notifications, args.prune_stock_history_days))


if __name__ == "__main__":
    main()
