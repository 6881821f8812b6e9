"""
Historical gap detection and day-by-day backfill of daily snapshots.

A gap is an inclusive [start, end] range of UTC days with no snapshot. Gaps
always end at "yesterday" relative to the next known day or to today; today
itself belongs to the regular sync and is never backfilled.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import date, timedelta

from ci_insights.config import SyncConfig
from ci_insights.middleware.metrics import ci_backfill_days_total
from ci_insights.services.ci_stats import collect_job_stats
from ci_insights.services.github_client import GitHubClient
from ci_insights.services.snapshots import SnapshotRepository, build_daily_snapshot
from ci_insights.timeutil import Clock, date_key, iter_days, start_of_day, utcnow

logger = logging.getLogger(__name__)

ONE_DAY = timedelta(days=1)


@dataclass(frozen=True)
class DateGap:
    start: date
    end: date

    @property
    def days(self) -> int:
        return (self.end - self.start).days + 1

    def to_dict(self) -> dict:
        return {"start": self.start.isoformat(), "end": self.end.isoformat()}


def find_missing_date_ranges(known: list[str], today: date, retention_days: int) -> list[DateGap]:
    """Pure gap computation over the date index.

    The horizon holds retention_days dates ending with today, the same dates
    DateIndex.with_date keeps, so a backfilled day is never evicted at once.
    """
    horizon_start = today - timedelta(days=retention_days - 1)
    yesterday = today - ONE_DAY

    if not known:
        if horizon_start > yesterday:
            return []
        return [DateGap(horizon_start, yesterday)]

    days = sorted({date.fromisoformat(d) for d in known})
    gaps: list[DateGap] = []

    if days[0] > horizon_start:
        gaps.append(DateGap(horizon_start, days[0] - ONE_DAY))

    for current, following in zip(days, days[1:]):
        if (following - current).days > 1:
            gaps.append(DateGap(current + ONE_DAY, following - ONE_DAY))

    if (today - days[-1]).days > 1:
        gaps.append(DateGap(days[-1] + ONE_DAY, yesterday))

    return gaps


@dataclass
class BackfillReport:
    days_stored: int = 0
    days_empty: int = 0
    days_failed: int = 0

    def to_dict(self) -> dict:
        return {
            "daysStored": self.days_stored,
            "daysEmpty": self.days_empty,
            "daysFailed": self.days_failed,
        }


class Backfiller:
    def __init__(
        self,
        client: GitHubClient,
        snapshots: SnapshotRepository,
        config: SyncConfig,
        *,
        branch: str,
        clock: Clock = utcnow,
    ):
        self.client = client
        self.snapshots = snapshots
        self.config = config
        self.branch = branch
        self.clock = clock

    async def get_missing_date_ranges(self) -> list[DateGap]:
        index = await self.snapshots.load_index()
        gaps = find_missing_date_ranges(index.dates, self.clock().date(), self.config.retention_days)
        logger.info("Identified %d gap(s) in historical data: %s", len(gaps), [g.to_dict() for g in gaps])
        return gaps

    async def backfill_range(self, start: date, end: date) -> BackfillReport:
        """Re-aggregate one day at a time; a failed day is logged and skipped."""
        logger.info("Backfilling data from %s to %s", start, end)
        report = BackfillReport()
        days = list(iter_days(start, end))
        for i, day in enumerate(days):
            try:
                stored = await self.backfill_day(day)
            except Exception as exc:
                report.days_failed += 1
                ci_backfill_days_total.labels(outcome="failed").inc()
                logger.error("Failed to backfill %s: %s", day, exc)
            else:
                if stored:
                    report.days_stored += 1
                    ci_backfill_days_total.labels(outcome="stored").inc()
                else:
                    report.days_empty += 1
                    ci_backfill_days_total.labels(outcome="empty").inc()

            if i < len(days) - 1 and self.config.backfill_delay_seconds:
                await asyncio.sleep(self.config.backfill_delay_seconds)
        return report

    async def backfill_day(self, day: date) -> int:
        """Store the snapshot for one day. Returns the number of runs aggregated."""
        day_str = date_key(day)
        runs = await self.client.list_workflow_runs(
            branch=self.branch,
            per_page=self.config.backfill_runs_per_day,
            created=day_str,
        )
        runs = [r for r in runs if date_key(r.created_at) == day_str]

        if runs:
            accumulator = await collect_job_stats(
                self.client, runs,
                batch_size=self.config.job_batch_size,
                window_start=None,
                recent_failures_limit=self.config.recent_failures_limit,
            )
            records = accumulator.daily_records()
        else:
            logger.info("No runs found for %s", day_str)
            records = {}

        # An empty day is still recorded so it is not retried forever
        await self.snapshots.save_daily(build_daily_snapshot(day, start_of_day(day), records))
        logger.info("Stored daily snapshot for %s (%d runs)", day_str, len(runs))
        return len(runs)
