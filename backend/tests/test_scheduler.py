"""Tests for the worker's sync schedule."""

from datetime import datetime, timedelta, timezone

import pytest

from ci_insights.services.ci_aggregator import CIAggregator
from ci_insights.services.item_sync import ItemRepository, ItemSynchronizer
from ci_insights.services.scheduler import Scheduler
from ci_insights.services.snapshots import SnapshotRepository
from ci_insights.storage import ITEMS_META_KEY
from tests.conftest import BRANCH, issue_node


@pytest.fixture
def scheduler(github_client, store, sync_config, clock) -> Scheduler:
    aggregator = CIAggregator(
        github_client, SnapshotRepository(store, sync_config, clock), sync_config,
        branch=BRANCH, clock=clock,
    )
    synchronizer = ItemSynchronizer(github_client, ItemRepository(store), sync_config, clock)
    return Scheduler(aggregator, synchronizer, ci_sync_hour_utc=6, item_sync_interval_seconds=3600)


def _utc(day: int, hour: int, minute: int = 0) -> datetime:
    return datetime(2026, 1, day, hour, minute, tzinfo=timezone.utc)


@pytest.mark.asyncio
class TestScheduler:
    async def test_ci_sync_once_per_day_at_configured_hour(self, scheduler):
        assert await scheduler.tick(_utc(5, 5, 59)) == {"items": "ok"}
        assert (await scheduler.tick(_utc(5, 6, 0)))["ci"] == "ok"
        assert "ci" not in await scheduler.tick(_utc(5, 6, 30))
        assert "ci" not in await scheduler.tick(_utc(5, 7, 0))
        assert (await scheduler.tick(_utc(6, 6, 1)))["ci"] == "ok"

    async def test_item_sync_interval(self, scheduler):
        start = _utc(5, 10)
        assert "items" in await scheduler.tick(start)
        assert "items" not in await scheduler.tick(start + timedelta(minutes=59))
        assert "items" in await scheduler.tick(start + timedelta(minutes=60))

    async def test_failures_do_not_stop_other_jobs(self, scheduler, fake_github, store):
        fake_github.runs_status = 500
        fake_github.issues = [issue_node(1, _utc(1, 0))]

        outcomes = await scheduler.tick(_utc(5, 6))

        assert outcomes == {"ci": "failed", "items": "ok"}
        assert await store.get(ITEMS_META_KEY) is not None

    async def test_failed_item_sync_retried_next_interval(self, scheduler, fake_github):
        fake_github.graphql_errors = ["rate limited"]
        start = _utc(5, 10)

        assert (await scheduler.tick(start))["items"] == "failed"
        assert "items" not in await scheduler.tick(start + timedelta(minutes=5))

        fake_github.graphql_errors = []
        assert (await scheduler.tick(start + timedelta(hours=1)))["items"] == "ok"
