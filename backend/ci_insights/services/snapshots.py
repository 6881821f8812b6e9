"""
Snapshot repository: the current CI view, daily snapshots and the date index.

Key layout:
  ci-data             current snapshot (short TTL)
  daily:<YYYY-MM-DD>  one snapshot per UTC day (TTL = retention horizon)
  date-index          {"dates": [...]} sorted, unique, capped at the horizon

Also serves the read-only history queries: date-range aggregation and the
snapshot/per-job history listing.
"""

import asyncio
import logging
from datetime import date, datetime

from ci_insights.config import SyncConfig
from ci_insights.errors import NoDataError
from ci_insights.models import (
    CISnapshot,
    DailySnapshot,
    DateIndex,
    DateRange,
    JobInstance,
    JobStatistic,
    RecentFailure,
    WindowStats,
    failure_rate,
)
from ci_insights.storage import CURRENT_CI_KEY, DATE_INDEX_KEY, KeyValueStore, daily_key
from ci_insights.timeutil import Clock, date_key, utcnow

logger = logging.getLogger(__name__)

DAY_SECONDS = 24 * 60 * 60


class SnapshotRepository:
    def __init__(self, store: KeyValueStore, config: SyncConfig, clock: Clock = utcnow):
        self.store = store
        self.config = config
        self.clock = clock

    @property
    def retention_ttl(self) -> int:
        return self.config.retention_days * DAY_SECONDS

    # ------------------------------------------------------------------
    # Current view
    # ------------------------------------------------------------------

    async def save_current(self, snapshot: CISnapshot) -> None:
        await self.store.put(CURRENT_CI_KEY, snapshot.to_json_dict(exclude_none=True),
                             ttl=self.config.current_ttl_seconds)

    async def load_current(self) -> dict | None:
        return await self.store.get(CURRENT_CI_KEY)

    # ------------------------------------------------------------------
    # Daily snapshots + index
    # ------------------------------------------------------------------

    async def load_index(self) -> DateIndex:
        raw = await self.store.get(DATE_INDEX_KEY)
        if not raw:
            return DateIndex()
        return DateIndex.model_validate(raw)

    async def add_date(self, date_str: str) -> DateIndex:
        index = await self.load_index()
        if date_str in index.dates:
            return index
        updated = index.with_date(date_str, self.config.retention_days)
        await self.store.put(DATE_INDEX_KEY, updated.to_json_dict(), ttl=self.retention_ttl)
        return updated

    async def save_daily(self, snapshot: DailySnapshot) -> None:
        """Upsert the day's snapshot, then register the day in the index."""
        await self.store.put(daily_key(snapshot.date), snapshot.to_json_dict(), ttl=self.retention_ttl)
        await self.add_date(snapshot.date)

    async def load_daily(self, date_str: str) -> DailySnapshot | None:
        raw = await self.store.get(daily_key(date_str))
        if raw is None:
            return None
        return DailySnapshot.model_validate(raw)

    async def load_dailies(self, dates: list[str]) -> list[DailySnapshot]:
        snapshots = await asyncio.gather(*(self.load_daily(d) for d in dates))
        missing = [d for d, s in zip(dates, snapshots) if s is None]
        if missing:
            # index entries outlived their snapshot (TTL or partial write)
            logger.warning("Date index references %d missing snapshot(s): %s", len(missing), missing[:10])
        return [s for s in snapshots if s is not None]

    # ------------------------------------------------------------------
    # Read-only queries
    # ------------------------------------------------------------------

    async def query_date_range(self, start: date, end: date) -> CISnapshot:
        """Aggregate daily snapshots between start and end (inclusive)."""
        index = await self.load_index()
        if not index.dates:
            raise NoDataError("No historical data available")

        start_key, end_key = date_key(start), date_key(end)
        in_range = [d for d in index.dates if start_key <= d <= end_key]
        if not in_range:
            raise NoDataError("No data available for the specified date range")

        dailies = await self.load_dailies(in_range)

        failures: dict[str, int] = {}
        successes: dict[str, int] = {}
        instances: dict[str, list[JobInstance]] = {}
        recent: dict[str, list[RecentFailure]] = {}
        for snapshot in dailies:
            for name, record in snapshot.jobs.items():
                failures[name] = failures.get(name, 0) + record.failures
                successes[name] = successes.get(name, 0) + record.successes
                instances.setdefault(name, []).extend(record.instances)
                recent.setdefault(name, []).extend(record.recent_failures)

        job_stats: dict[str, JobStatistic] = {}
        for name in failures:
            total = WindowStats(
                total_runs=failures[name] + successes[name],
                failures=failures[name],
                successes=successes[name],
                failure_rate=failure_rate(failures[name], successes[name]),
            )
            unique_instances = {i.job_id: i for i in instances[name]}
            unique_failures = {f.run_id: f for f in recent[name]}
            job_stats[name] = JobStatistic(
                name=name,
                total_runs=total.total_runs,
                failures=total.failures,
                successes=total.successes,
                failure_rate=total.failure_rate,
                last7_days=total,
                recent_failures=sorted(
                    unique_failures.values(), key=lambda f: f.created_at, reverse=True,
                )[:self.config.recent_failures_limit],
                instances=sorted(unique_instances.values(), key=lambda i: i.created_at, reverse=True),
            )

        return CISnapshot(
            job_stats=job_stats,
            last_updated=self.clock(),
            total_runs=len(in_range),
            date_range=DateRange(start=start.isoformat(), end=end.isoformat()),
        )

    async def history(
        self,
        *,
        start: date | None = None,
        end: date | None = None,
        days: int = 30,
        job: str | None = None,
    ) -> dict:
        """Daily snapshots in a range (or the most recent `days`), or one job's 7-day series."""
        index = await self.load_index()
        if not index.dates:
            raise NoDataError("No historical data available yet. Data will be collected daily.")

        if start and end:
            start_key, end_key = date_key(start), date_key(end)
            dates = [d for d in index.dates if start_key <= d <= end_key]
        else:
            dates = index.dates[-days:] if days > 0 else []

        snapshots = await self.load_dailies(dates)

        if job:
            series = []
            for snapshot in snapshots:
                record = snapshot.jobs.get(job)
                series.append({
                    "timestamp": snapshot.to_json_dict()["timestamp"],
                    "date": snapshot.date,
                    "failureRate": record.last7_days_failure_rate if record else 0,
                    "failures": record.last7_days_failures if record else 0,
                    "successes": record.last7_days_successes if record else 0,
                })
            return {"job": job, "history": series}

        return {
            "snapshots": [s.to_json_dict() for s in snapshots],
            "count": len(snapshots),
        }


def build_daily_snapshot(day: date, timestamp: datetime, records) -> DailySnapshot:
    return DailySnapshot(date=date_key(day), timestamp=timestamp, jobs=records)
