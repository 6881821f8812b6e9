"""
Sync worker: runs the scheduled CI and issue/PR syncs.

Run with: python worker.py
"""

import asyncio
import logging

from ci_insights.timeutil import utcnow

logger = logging.getLogger("worker")

TICK_SECONDS = 60


async def main():
    """Main worker loop: checks the schedule once a minute."""
    from ci_insights.config import settings
    from ci_insights.middleware.logging_config import configure_logging
    from ci_insights.services.ci_aggregator import CIAggregator
    from ci_insights.services.github_client import GitHubClient
    from ci_insights.services.item_sync import ItemRepository, ItemSynchronizer
    from ci_insights.services.scheduler import Scheduler
    from ci_insights.services.snapshots import SnapshotRepository
    from ci_insights.storage import create_store

    configure_logging(settings.log_level, settings.log_format)

    store = create_store(settings.kv_backend, settings.redis_url)
    client = GitHubClient.from_settings(settings)
    aggregator = CIAggregator(
        client,
        SnapshotRepository(store, settings.sync),
        settings.sync,
        branch=settings.ci_branch,
        default_limit=settings.ci_run_limit,
    )
    synchronizer = ItemSynchronizer(client, ItemRepository(store), settings.sync)
    scheduler = Scheduler(
        aggregator,
        synchronizer,
        ci_sync_hour_utc=settings.ci_sync_hour_utc,
        item_sync_interval_seconds=settings.item_sync_interval_seconds,
    )
    logger.info(
        "Worker started: CI sync daily at %02d:00 UTC, item sync every %ds",
        settings.ci_sync_hour_utc, settings.item_sync_interval_seconds,
    )

    try:
        while True:
            try:
                outcomes = await scheduler.tick(utcnow())
                if outcomes:
                    logger.info("Tick finished: %s", outcomes)
            except Exception as exc:
                logger.error("Worker loop error: %s", exc, exc_info=True)
            await asyncio.sleep(TICK_SECONDS)
    finally:
        await client.aclose()
        await store.aclose()


def run():
    asyncio.run(main())


if __name__ == "__main__":
    run()
