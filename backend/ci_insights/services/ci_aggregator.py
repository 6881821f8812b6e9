"""
CI statistics aggregator.

sync_ci_data: fetch recent runs for the tracked branch → fetch jobs in bounded
batches → accumulate per-job stats (all-time + trailing window) → persist the
current view, today's daily snapshot and the date index.

A failed run-list fetch aborts the sync before anything is written. A failed
per-run job fetch only drops that run.
"""

import logging
import time
from datetime import date, timedelta

from ci_insights.config import SyncConfig
from ci_insights.middleware.metrics import ci_jobs_tracked, ci_sync_duration_seconds, ci_sync_runs_total
from ci_insights.models import CISnapshot
from ci_insights.services.backfill import BackfillReport, Backfiller
from ci_insights.services.ci_stats import collect_job_stats
from ci_insights.services.github_client import GitHubClient
from ci_insights.services.snapshots import SnapshotRepository, build_daily_snapshot
from ci_insights.timeutil import Clock, utcnow

logger = logging.getLogger(__name__)


class CIAggregator:
    def __init__(
        self,
        client: GitHubClient,
        snapshots: SnapshotRepository,
        config: SyncConfig,
        *,
        branch: str,
        default_limit: int = 100,
        clock: Clock = utcnow,
    ):
        self.client = client
        self.snapshots = snapshots
        self.config = config
        self.branch = branch
        self.default_limit = default_limit
        self.clock = clock
        self.backfiller = Backfiller(client, snapshots, config, branch=branch, clock=clock)

    async def sync_ci_data(self, run_limit: int | None = None, branch: str | None = None) -> CISnapshot:
        limit = run_limit or self.default_limit
        branch = branch or self.branch
        t_start = time.time()
        logger.info(
            "Fetching CI data for %s (limit=%d, %s)",
            branch, limit, "with token" if self.client.has_token else "no token",
        )
        try:
            snapshot = await self._sync(limit, branch)
        except Exception:
            ci_sync_runs_total.labels(status="failed").inc()
            raise
        ci_sync_runs_total.labels(status="completed").inc()
        ci_sync_duration_seconds.observe(time.time() - t_start)
        return snapshot

    async def _sync(self, limit: int, branch: str) -> CISnapshot:
        now = self.clock()
        window_start = now - timedelta(days=self.config.rolling_window_days)

        runs = await self.client.list_workflow_runs(branch=branch, per_page=limit)
        accumulator = await collect_job_stats(
            self.client, runs,
            batch_size=self.config.job_batch_size,
            window_start=window_start,
            recent_failures_limit=self.config.recent_failures_limit,
        )

        snapshot = CISnapshot(
            job_stats=accumulator.job_stats(),
            job_history=accumulator.history,
            last_updated=now,
            total_runs=len(runs),
        )
        daily = build_daily_snapshot(now.date(), now, accumulator.daily_records())

        await self.snapshots.save_daily(daily)
        await self.snapshots.save_current(snapshot)
        ci_jobs_tracked.set(len(snapshot.job_stats))
        logger.info("Stored CI snapshot: %d runs, %d jobs", len(runs), len(snapshot.job_stats))
        return snapshot

    async def refresh_ci_data(self, limit: int | None = None, backfill: bool = False) -> dict:
        snapshot = await self.sync_ci_data(limit)
        result = {
            "success": True,
            "message": "CI data refreshed successfully",
            "lastUpdated": snapshot.to_json_dict()["lastUpdated"],
            "totalRuns": snapshot.total_runs,
        }
        if not backfill:
            return result

        gaps = await self.backfiller.get_missing_date_ranges()
        result["gapsFound"] = len(gaps)
        if not gaps:
            result["message"] += ". No gaps found in historical data."
            return result

        result["gaps"] = [g.to_dict() for g in gaps]
        reports = [await self.backfiller.backfill_range(gap.start, gap.end) for gap in gaps]
        result["backfill"] = [r.to_dict() for r in reports]
        result["message"] += f". Found {len(gaps)} gap(s) in historical data. " + describe_backfill(reports)
        return result

    async def get_ci_data(
        self, start: date | None = None, end: date | None = None, limit: int | None = None,
    ) -> tuple[dict, str]:
        """Return (payload, source): historical aggregate, cached current, or a fresh fetch."""
        if start and end:
            # raises NoDataError when no daily snapshot falls inside the range
            snapshot = await self.snapshots.query_date_range(start, end)
            return snapshot.to_json_dict(), "historical-aggregated"

        cached = await self.snapshots.load_current()
        if cached:
            return cached, "kv-cache"

        snapshot = await self.sync_ci_data(limit)
        return snapshot.to_json_dict(exclude_none=True), "fresh-fetch"


def describe_backfill(reports: list[BackfillReport]) -> str:
    stored = sum(r.days_stored for r in reports)
    empty = sum(r.days_empty for r in reports)
    failed = sum(r.days_failed for r in reports)
    if failed and not stored and not empty:
        return f"Backfill failed for all {failed} day(s)."
    message = f"Backfilled {stored + empty} day(s) ({stored} with runs, {empty} without)."
    if failed:
        message += f" {failed} day(s) failed."
    return message
