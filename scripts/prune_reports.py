#!/usr/bin/env python3
"""
Delete price reports that have left the trust window.

Reports older than the window can no longer corroborate any price, so they
only cost storage. Run from cron; the service itself has no scheduler.

Usage:
    python scripts/prune_reports.py [--hours N] [--dry-run]
"""

import argparse
import asyncio
import sys
from datetime import timedelta
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import func, select

from community_low.config import settings
from community_low.db.models import PriceReport
from community_low.db.session import AsyncSessionLocal, engine
from community_low.ingest.report_history import report_history
from community_low.utils.clock import utcnow


async def prune_reports(hours: int, dry_run: bool) -> int:
    """Prune reports older than ``hours``; returns the affected row count."""
    cutoff = utcnow() - timedelta(hours=hours)
    print(f"Pruning reports created before {cutoff.isoformat()}Z ({hours}h window)")

    async with AsyncSessionLocal() as db:
        if dry_run:
            result = await db.execute(
                select(func.count()).select_from(PriceReport).where(PriceReport.created_at < cutoff)
            )
            count = result.scalar_one()
            print(f"Dry run: {count} report(s) would be deleted")
            return count

        deleted = await report_history.prune(db, cutoff)
        print(f"Deleted {deleted} report(s)")
        return deleted


async def main():
    parser = argparse.ArgumentParser(description="Prune expired price reports")
    parser.add_argument(
        "--hours",
        type=int,
        default=settings.trust_window_hours,
        help="Keep reports newer than this many hours (default: trust window)",
    )
    parser.add_argument("--dry-run", action="store_true", help="Only count matching reports")
    args = parser.parse_args()

    if args.hours < settings.trust_window_hours:
        print(f"Refusing to prune inside the {settings.trust_window_hours}h trust window")
        sys.exit(1)

    try:
        await prune_reports(args.hours, args.dry_run)
    finally:
        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
