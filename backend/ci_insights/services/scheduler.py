"""
Periodic sync policy for the worker.

CI statistics are synced once per UTC day during ci_sync_hour_utc; the issue/PR
mirror every item_sync_interval_seconds. A failed job is logged and the next
one still runs. A failed item sync is retried on the next interval, a failed CI
sync on the next day.
"""

import logging
from datetime import date, datetime, timedelta

from ci_insights.services.ci_aggregator import CIAggregator
from ci_insights.services.item_sync import ItemSynchronizer

logger = logging.getLogger(__name__)


class Scheduler:
    def __init__(
        self,
        aggregator: CIAggregator,
        synchronizer: ItemSynchronizer,
        *,
        ci_sync_hour_utc: int = 6,
        item_sync_interval_seconds: int = 3600,
    ):
        self.aggregator = aggregator
        self.synchronizer = synchronizer
        self.ci_sync_hour_utc = ci_sync_hour_utc
        self.item_sync_interval = timedelta(seconds=item_sync_interval_seconds)
        self.last_ci_sync_day: date | None = None
        self.last_item_sync: datetime | None = None

    def ci_sync_due(self, now: datetime) -> bool:
        return now.hour == self.ci_sync_hour_utc and self.last_ci_sync_day != now.date()

    def item_sync_due(self, now: datetime) -> bool:
        return self.last_item_sync is None or now - self.last_item_sync >= self.item_sync_interval

    async def tick(self, now: datetime) -> dict[str, str]:
        """Run whatever is due at `now`. Returns {job: "ok" | "failed"}."""
        outcomes: dict[str, str] = {}

        if self.ci_sync_due(now):
            self.last_ci_sync_day = now.date()
            try:
                snapshot = await self.aggregator.sync_ci_data()
                logger.info("Scheduled CI sync stored %d runs", snapshot.total_runs)
                outcomes["ci"] = "ok"
            except Exception as exc:
                logger.error("Scheduled CI sync failed: %s", exc, exc_info=True)
                outcomes["ci"] = "failed"

        if self.item_sync_due(now):
            self.last_item_sync = now
            try:
                result = await self.synchronizer.sync(force=False)
                logger.info(
                    "Scheduled item sync: %d new, %d updated, %d total",
                    result.new_items, result.updated_items, result.total_items,
                )
                outcomes["items"] = "ok"
            except Exception as exc:
                logger.error("Scheduled item sync failed: %s", exc, exc_info=True)
                outcomes["items"] = "failed"

        return outcomes
