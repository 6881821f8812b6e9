"""
Issue / pull-request mirror sync.

Full sync (no metadata yet, or forced):
  paginate every issue, then every PR, ascending by creation; every node
  overwrites its stored item.

Incremental sync:
  1. new items: paginate from the start again and stop after STOP_THRESHOLD
     consecutive already-known items (assumes near-monotonic creation order)
  2. updated items: issues via the since-filter, PRs ordered by UPDATED_AT DESC
     until the first one older than `since` (= lastSync - overlap)

Metadata is recomputed from the whole mirror and written together with the
items only after the mutation pass finished. Nothing is written on failure.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import AsyncIterator, Awaitable, Callable

from ci_insights.config import SyncConfig
from ci_insights.errors import MissingParameterError
from ci_insights.middleware.metrics import (
    item_sync_duration_seconds,
    item_sync_items_total,
    item_sync_runs_total,
)
from ci_insights.models import GitHubItem, ItemPage, ItemType, SyncMetadata
from ci_insights.services.github_client import GitHubClient
from ci_insights.storage import ITEMS_KEY, ITEMS_META_KEY, KeyValueStore
from ci_insights.timeutil import Clock, date_key, utcnow

logger = logging.getLogger(__name__)

PageFetcher = Callable[[str | None], Awaitable[ItemPage]]


class ItemRepository:
    """The mirror lives under one key as {number: item}; metadata under another."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    async def load_items(self) -> dict[int, GitHubItem]:
        raw = await self.store.get(ITEMS_KEY) or {}
        items: dict[int, GitHubItem] = {}
        for number, payload in raw.items():
            try:
                items[int(number)] = GitHubItem.model_validate(payload)
            except ValueError as exc:
                logger.warning("Dropping unreadable stored item #%s: %s", number, exc)
        return items

    async def load_meta(self) -> SyncMetadata | None:
        raw = await self.store.get(ITEMS_META_KEY)
        if not raw:
            return None
        return SyncMetadata.model_validate(raw)

    async def save(self, items: dict[int, GitHubItem], meta: SyncMetadata) -> None:
        payload = {str(number): item.to_json_dict() for number, item in items.items()}
        await asyncio.gather(
            self.store.put(ITEMS_KEY, payload),
            self.store.put(ITEMS_META_KEY, meta.to_json_dict()),
        )

    async def delete(self) -> None:
        await asyncio.gather(
            self.store.delete(ITEMS_KEY),
            self.store.delete(ITEMS_META_KEY),
        )


@dataclass
class SyncResult:
    new_items: int
    updated_items: int
    total_items: int
    issue_count: int
    pr_count: int
    oldest_date: str
    sync_duration: int  # ms

    def to_dict(self) -> dict:
        return {
            "newItems": self.new_items,
            "updatedItems": self.updated_items,
            "totalItems": self.total_items,
            "issueCount": self.issue_count,
            "prCount": self.pr_count,
            "oldestDate": self.oldest_date,
            "syncDuration": self.sync_duration,
        }


def build_metadata(items: dict[int, GitHubItem], now: datetime) -> SyncMetadata:
    values = list(items.values())
    if values:
        oldest_date = date_key(min(item.created_at for item in values))
    else:
        oldest_date = date_key(now)
    return SyncMetadata(
        last_sync=now,
        highest_number=max(items, default=0),
        oldest_date=oldest_date,
        issue_count=sum(1 for i in values if i.type == ItemType.ISSUE),
        pr_count=sum(1 for i in values if i.type == ItemType.PR),
    )


class ItemSynchronizer:
    def __init__(
        self,
        client: GitHubClient,
        repository: ItemRepository,
        config: SyncConfig,
        clock: Clock = utcnow,
    ):
        self.client = client
        self.repository = repository
        self.config = config
        self.clock = clock

    async def sync(self, force: bool = False) -> SyncResult:
        if not self.client.has_token:
            raise MissingParameterError("github_token", "GITHUB_TOKEN is required for syncing")

        t_start = time.time()
        mode = "full"
        try:
            if force:
                logger.info("Force sync: deleting existing item mirror")
                await self.repository.delete()
                items: dict[int, GitHubItem] = {}
                meta = None
            else:
                items = await self.repository.load_items()
                meta = await self.repository.load_meta()

            logger.info("Starting item sync. Existing items: %d", len(items))
            if meta is None:
                logger.info("Performing full sync")
                new_count = await self.full_sync(items)
                updated_count = 0
            else:
                mode = "incremental"
                logger.info(
                    "Performing incremental sync. Last sync: %s, highest number: %d",
                    meta.last_sync.isoformat(), meta.highest_number,
                )
                new_count = await self.fetch_new_items(items)
                since = meta.last_sync - timedelta(minutes=self.config.overlap_minutes)
                updated_count = await self.fetch_updated_items(items, since)

            new_meta = build_metadata(items, self.clock())
            await self.repository.save(items, new_meta)
        except Exception:
            item_sync_runs_total.labels(mode=mode, status="failed").inc()
            raise

        elapsed = time.time() - t_start
        item_sync_runs_total.labels(mode=mode, status="completed").inc()
        item_sync_items_total.labels(kind="new").inc(new_count)
        item_sync_items_total.labels(kind="updated").inc(updated_count)
        item_sync_duration_seconds.observe(elapsed)

        result = SyncResult(
            new_items=new_count,
            updated_items=updated_count,
            total_items=len(items),
            issue_count=new_meta.issue_count,
            pr_count=new_meta.pr_count,
            oldest_date=new_meta.oldest_date,
            sync_duration=int(elapsed * 1000),
        )
        logger.info(
            "Item sync complete. New: %d, updated: %d, total: %d, duration: %dms",
            result.new_items, result.updated_items, result.total_items, result.sync_duration,
        )
        return result

    # ------------------------------------------------------------------
    # Page fetchers
    # ------------------------------------------------------------------

    def _issues(self, since: datetime | None = None) -> PageFetcher:
        async def fetch(cursor: str | None) -> ItemPage:
            return await self.client.fetch_issues_page(cursor, page_size=self.config.page_size, since=since)
        return fetch

    def _pull_requests(self, by_updated: bool = False) -> PageFetcher:
        async def fetch(cursor: str | None) -> ItemPage:
            return await self.client.fetch_pull_requests_page(
                cursor, page_size=self.config.page_size, by_updated=by_updated,
            )
        return fetch

    async def _pages(self, fetch: PageFetcher) -> AsyncIterator[ItemPage]:
        cursor = None
        while True:
            page = await fetch(cursor)
            yield page
            if not page.page_info.has_next_page:
                return
            cursor = page.page_info.end_cursor
            if self.config.page_delay_seconds:
                await asyncio.sleep(self.config.page_delay_seconds)

    # ------------------------------------------------------------------
    # Passes
    # ------------------------------------------------------------------

    async def full_sync(self, items: dict[int, GitHubItem]) -> int:
        new_items = 0
        for what, fetch in (("issues", self._issues()), ("pull requests", self._pull_requests())):
            pages = 0
            async for page in self._pages(fetch):
                for item in page.items:
                    if item.number not in items:
                        new_items += 1
                    items[item.number] = item
                pages += 1
                if pages % 10 == 0:
                    logger.info("%s: %d pages, %d items", what, pages, len(items))
            logger.info("Fetched %d page(s) of %s", pages, what)
        return new_items

    async def fetch_new_items(self, items: dict[int, GitHubItem]) -> int:
        """Write only unknown items; stop a stream after a long run of known ones."""
        new_items = 0
        for fetch in (self._issues(), self._pull_requests()):
            consecutive_known = 0
            async for page in self._pages(fetch):
                for item in page.items:
                    if item.number in items:
                        consecutive_known += 1
                    else:
                        consecutive_known = 0
                        new_items += 1
                        items[item.number] = item
                if consecutive_known >= self.config.stop_threshold:
                    break
        logger.info("Found %d new item(s)", new_items)
        return new_items

    async def fetch_updated_items(self, items: dict[int, GitHubItem], since: datetime) -> int:
        updated = 0

        async for page in self._pages(self._issues(since=since)):
            for item in page.items:
                updated += self._apply_update(items, item)

        found_older = False
        async for page in self._pages(self._pull_requests(by_updated=True)):
            for item in page.items:
                if item.updated_at < since:
                    found_older = True
                    break
                updated += self._apply_update(items, item)
            if found_older:
                break

        logger.info("Updated %d item(s) since %s", updated, since.isoformat())
        return updated

    @staticmethod
    def _apply_update(items: dict[int, GitHubItem], item: GitHubItem) -> int:
        existing = items.get(item.number)
        items[item.number] = item
        return int(existing is not None and existing.updated_at != item.updated_at)
