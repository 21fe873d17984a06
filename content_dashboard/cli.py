"""
Operator CLI.

Usage:
    content-dashboard [-v] [--log-json] summary [--json]
    content-dashboard refresh [--json]
    content-dashboard author <user_id>
"""

import argparse
import asyncio
import json
import sys
from typing import Optional

from content_dashboard.core.config import Settings, settings
from content_dashboard.core.errors import DashboardError
from content_dashboard.core.logging_config import configure_logging
from content_dashboard.core.metrics import aggregation_metrics
from content_dashboard.repository.contentful import ContentfulRepository
from content_dashboard.repository.retry import RetryingRepository
from content_dashboard.schemas import DashboardResult
from content_dashboard.services.bucketing import format_percentage_change
from content_dashboard.services.dashboard import DashboardService
from content_dashboard.services.snapshot_cache import FileSnapshotStore


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="content-dashboard", description="Content operations dashboard")
    parser.add_argument("--json", action="store_true", help="Print the full snapshot as JSON")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log at DEBUG level")
    parser.add_argument("--log-json", action="store_true", help="Emit logs as JSON lines")
    sub = parser.add_subparsers(dest="command")
    sub.add_parser("summary", help="Show the dashboard (cached when fresh)")
    sub.add_parser("refresh", help="Recompute now, bypassing the caches")
    author = sub.add_parser("author", help="Resolve an author id to a display name")
    author.add_argument("user_id", help="User id to resolve")
    return parser


def print_summary(result: DashboardResult) -> None:
    snapshot = result.snapshot
    stats = snapshot.stats

    print("=== Content Dashboard ===")
    print(f"Computed at: {snapshot.computed_at.isoformat()}")
    if result.stale:
        print(f"WARNING: using cached data ({result.error})")
    print()
    print(f"Total published:      {stats.total_published}")
    print(
        f"Published this month: {stats.current_month_published} "
        f"({format_percentage_change(stats.percent_change)} vs {stats.previous_month_published} last month)"
    )
    print(f"Scheduled:            {stats.scheduled_count}")
    print(f"Recently published:   {stats.recently_published_count}")
    print(f"Needs update:         {stats.needs_update_count}")
    print(f"Avg time to publish:  {stats.average_time_to_publish:.1f} days")

    if snapshot.scheduled_releases:
        print()
        print("Upcoming releases:")
        for release in snapshot.scheduled_releases:
            print(
                f"  {release.scheduled_for.isoformat()}  {release.title} "
                f"({release.item_count} items, updated by {release.updated_by})"
            )

    monthly = snapshot.chart_series.monthly.new
    if monthly:
        print()
        print("New content per month:")
        for bucket in monthly:
            print(f"  {bucket.month_key}: {bucket.count:>5}  {format_percentage_change(bucket.percent_change)}")


async def run(args: argparse.Namespace, app_settings: Optional[Settings] = None) -> int:
    s = app_settings or settings
    if not s.CONTENTFUL_SPACE_ID or not s.CONTENTFUL_MANAGEMENT_TOKEN:
        print("ERROR: CONTENTFUL_SPACE_ID and CONTENTFUL_MANAGEMENT_TOKEN must be set")
        return 1

    async with ContentfulRepository.from_settings(s) as client:
        service = DashboardService(
            RetryingRepository.from_settings(client, s),
            store=FileSnapshotStore(s.SNAPSHOT_DIR),
            app_settings=s,
        )

        if args.command == "author":
            print(await service.resolve_author_name(args.user_id))
            return 0

        try:
            if args.command == "refresh":
                result = await service.refresh()
            else:
                result = await service.get_dashboard()
        except DashboardError as e:
            print(f"ERROR: dashboard unavailable: {e}")
            return 2

    if args.json:
        payload = result.model_dump(mode="json", by_alias=True)
        payload["metrics"] = aggregation_metrics.get_all_metrics()
        print(json.dumps(payload, indent=2))
    else:
        print_summary(result)
    return 0


def main(argv: Optional[list] = None) -> None:
    args = build_parser().parse_args(argv)
    if args.verbose or args.log_json:
        configure_logging(level="DEBUG" if args.verbose else None, json_output=args.log_json or None)
    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
