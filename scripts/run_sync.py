#!/usr/bin/env python3
"""
Cron job script to run a scheduled Ginee sync-all.
Add to crontab: 0 1 * * * cd /path/to/app && /path/to/venv/bin/python scripts/run_sync.py

This runs the sync as a standalone script, not through the web server.
It shares the database lease with the web app. When a sync-all started
from the admin panel is still running it exits 0; when live sync is
disabled in settings it exits 1 so cron reports the misconfiguration.
"""

import argparse
import asyncio
import logging
import sys
import os

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.config import settings
from app.db import SQLiteDatabase, SyncLogStatus
from app.ginee import GineeClient
from app.processor import LIVE_SYNC_DISABLED, SyncAllRejected, run_sync_all_now

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

logger = logging.getLogger(__name__)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Reconcile all active products with Ginee")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Report what would change without writing anything"
    )
    return parser.parse_args(argv)



async def main(argv=None) -> int:
    args = parse_args(argv)
    logger.info(f"Starting scheduled sync-all{' (dry run)' if args.dry_run else ''}...")

    db = SQLiteDatabase(settings.database_path)
    await db.initialize()

    try:
        async with GineeClient(
            settings.ginee_base_url,
            settings.ginee_api_token,
            timeout=settings.ginee_timeout_seconds,
        ) as client:
            result = await run_sync_all_now(
                db,
                client,
                dry_run=args.dry_run,
                live_sync_enabled=settings.ginee_live_sync_enabled,
                lease_ttl_seconds=settings.sync_lease_ttl_seconds,
            )
    except SyncAllRejected as e:
        if e.reason == LIVE_SYNC_DISABLED:
            logger.error(f"{e}. Set GINEE_LIVE_SYNC_ENABLED=true or pass --dry-run.")
            return 1
        logger.info(str(e))
        return 0
    finally:
        await db.close()

    summary = result.summary
    logger.info(
        f"Sync-all {result.outcome.value}: {summary['updated']} updated, "
        f"{summary['unchanged']} unchanged, {summary['failed']} failed"
    )

    if result.outcome != SyncLogStatus.COMPLETED:
        for item in result.items:
            if item.error:
                logger.error(f"  {item.name}: {item.error}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
