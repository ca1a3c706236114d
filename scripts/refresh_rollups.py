#!/usr/bin/env python
"""Rollup refresh CLI for schedulers and operators.

Rebuilds daily, weekly and/or monthly rollups. Safe to re-run: rows are
upserted by identity key, so an interrupted or repeated run converges.

Usage:
    # Nightly: rebuild yesterday's day, week and month for every tenant
    uv run python scripts/refresh_rollups.py --all-tenants --date 2024-01-15 --granularity all

    # Rebuild a range for one tenant
    uv run python scripts/refresh_rollups.py --tenant-id 1 \
        --start-date 2024-01-01 --end-date 2024-03-31 --granularity daily

    # Preview bucket counts without touching the database
    uv run python scripts/refresh_rollups.py --start-date 2024-01-01 --end-date 2024-12-31 --dry-run
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from datetime import date, timedelta

from stitchlab.core.config import get_settings
from stitchlab.core.database import get_engine, get_session_maker, session_scope
from stitchlab.core.exceptions import StitchLabError
from stitchlab.core.logging import configure_logging, get_logger
from stitchlab.features.rollups.periods import Granularity, bucket_for, count_buckets
from stitchlab.features.rollups.service import RollupService

logger = get_logger("scripts.refresh_rollups")


def parse_date(date_str: str) -> date:
    """Parse date string in YYYY-MM-DD format.

    Raises:
        argparse.ArgumentTypeError: If date format is invalid.
    """
    try:
        return date.fromisoformat(date_str)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"Invalid date format: {date_str}. Use YYYY-MM-DD") from e


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser for CLI."""
    parser = argparse.ArgumentParser(
        description="StitchLab rollup refresh",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Rebuild the period containing a date, all granularities, all tenants
  refresh_rollups.py --all-tenants --date 2024-01-15 --granularity all

  # Rebuild January weekly rollups for tenant 3
  refresh_rollups.py --tenant-id 3 --start-date 2024-01-01 --end-date 2024-01-31 \\
      --granularity weekly
        """,
    )

    # Range selection (mutually exclusive)
    range_group = parser.add_mutually_exclusive_group()
    range_group.add_argument(
        "--date",
        type=parse_date,
        help="Rebuild the day / ISO week / month containing this date",
    )
    range_group.add_argument(
        "--start-date",
        type=parse_date,
        help="Start of range (inclusive); requires --end-date",
    )
    parser.add_argument(
        "--end-date",
        type=parse_date,
        help="End of range (inclusive)",
    )

    # Tenant selection (mutually exclusive)
    tenant_group = parser.add_mutually_exclusive_group()
    tenant_group.add_argument(
        "--tenant-id",
        type=int,
        help="Tenant to rebuild (omit for single-tenant data)",
    )
    tenant_group.add_argument(
        "--all-tenants",
        action="store_true",
        help="Rebuild every tenant found on styles",
    )

    parser.add_argument(
        "--granularity",
        choices=[g.value for g in Granularity] + ["all"],
        default=Granularity.DAILY.value,
        help="Bucket size, or 'all' for daily, weekly and monthly (default: daily)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print the buckets that would be rebuilt and exit",
    )

    return parser


def resolve_range(args: argparse.Namespace, granularity: Granularity) -> tuple[date, date]:
    """Turn --date or --start-date/--end-date into an inclusive range.

    Without either, the day before today is used.
    """
    if args.start_date is not None:
        return args.start_date, args.end_date

    day = args.date or date.today() - timedelta(days=1)
    bucket = bucket_for(day, granularity)
    return bucket.first_day, bucket.last_day


async def run_refresh(args: argparse.Namespace, granularities: list[Granularity]) -> int:
    """Refresh each granularity in its own transaction.

    A failed granularity rolls back alone; those already committed stay.
    """
    for granularity in granularities:
        start, end = resolve_range(args, granularity)
        try:
            async with session_scope() as session:
                service = RollupService(session, session_maker=get_session_maker())
                if args.all_tenants:
                    summary = await service.refresh_all_tenants(start, end, granularity)
                    print(
                        f"  {granularity.value:<8} {start} .. {end}: "
                        f"{summary.tenants} tenant(s), {summary.count} bucket(s), "
                        f"{summary.rows_written} row(s)"
                    )
                else:
                    response = await service.refresh(start, end, granularity, args.tenant_id)
                    print(
                        f"  {granularity.value:<8} {start} .. {end}: "
                        f"{response.count} bucket(s), {response.rows_written} row(s)"
                    )
        except StitchLabError as e:
            logger.error(
                "rollups.cli_refresh_failed",
                granularity=granularity.value,
                error=e.message,
                error_code=e.code,
            )
            print(f"ERROR: {e.message}")
            return 1

    return 0


async def main() -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args()

    if args.start_date is not None and args.end_date is None:
        parser.error("--start-date requires --end-date")
    if args.end_date is not None and args.start_date is None:
        parser.error("--end-date requires --start-date")

    configure_logging()
    settings = get_settings()

    if args.granularity == "all":
        granularities = list(Granularity)
    else:
        granularities = [Granularity(args.granularity)]

    print(f"\nRollup refresh ({settings.app_env})")
    print("-" * 40)

    if args.dry_run:
        for granularity in granularities:
            start, end = resolve_range(args, granularity)
            buckets = count_buckets(start, end, granularity)
            print(f"  {granularity.value:<8} {start} .. {end}: {buckets} bucket(s)")
        return 0

    try:
        return await run_refresh(args, granularities)
    finally:
        await get_engine().dispose()


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
