"""
Bus-factor analysis across the monitored directories.

Commit history is the most expensive upstream read here, so results are cached
under their own key: fresh for cache_max_age_seconds, and the key itself
expires after cache_ttl_seconds.
"""

import logging
from datetime import timedelta

from ci_insights.config import BusFactorConfig
from ci_insights.models import BusFactorCache, BusFactorResult
from ci_insights.services.fanout import fan_out_in_batches
from ci_insights.services.github_client import GitHubClient
from ci_insights.services.views import calculate_bus_factor
from ci_insights.storage import BUS_FACTOR_CACHE_KEY, KeyValueStore
from ci_insights.timeutil import Clock, as_utc, utcnow

logger = logging.getLogger(__name__)


class BusFactorService:
    def __init__(
        self,
        client: GitHubClient,
        store: KeyValueStore,
        config: BusFactorConfig,
        clock: Clock = utcnow,
    ):
        self.client = client
        self.store = store
        self.config = config
        self.clock = clock

    async def fetch_directory_authors(self, directory: str) -> list[str | None]:
        since = self.clock() - timedelta(days=self.config.window_days)
        authors: list[str | None] = []
        for page in range(1, self.config.max_pages + 1):
            batch = await self.client.list_commit_authors(
                path=directory, since=since, page=page, per_page=self.config.per_page,
            )
            authors.extend(batch)
            if len(batch) < self.config.per_page:
                break
        return authors

    def _empty(self, directory: str) -> BusFactorResult:
        return BusFactorResult(
            directory=directory,
            team_member_contributions={m: 0 for m in self.config.team_members},
        )

    async def analyze_directory(self, directory: str) -> BusFactorResult:
        try:
            authors = await self.fetch_directory_authors(directory)
        except Exception as exc:
            logger.error("Error analyzing directory %s: %s", directory, exc)
            return self._empty(directory)
        return calculate_bus_factor(
            directory, authors, self.config.team_members, self.config.top_contributors,
        )

    async def analyze_all(self) -> list[BusFactorResult]:
        directories = self.config.monitored_directories
        logger.info("Analyzing bus factor for %d directories", len(directories))
        outcomes = await fan_out_in_batches(
            directories,
            self.analyze_directory,
            self.config.directory_batch_size,
            delay_between_batches=self.config.batch_delay_seconds,
        )
        results = []
        for directory, outcome in zip(directories, outcomes):
            if isinstance(outcome, Exception):
                logger.error("Error analyzing directory %s: %s", directory, outcome)
                outcome = self._empty(directory)
            results.append(outcome)
        return results

    async def load_cache(self) -> BusFactorCache | None:
        raw = await self.store.get(BUS_FACTOR_CACHE_KEY)
        if not raw:
            return None
        return BusFactorCache.model_validate(raw)

    async def get_bus_factor(self, force_refresh: bool = False) -> dict:
        if not force_refresh:
            cached = await self.load_cache()
            if cached is not None:
                age = (self.clock() - as_utc(cached.timestamp)).total_seconds()
                if age < self.config.cache_max_age_seconds:
                    payload = cached.to_json_dict()
                    return {
                        "data": payload["data"],
                        "teamMembers": self.config.team_members,
                        "cached": True,
                        "cachedAt": payload["timestamp"],
                    }

        results = await self.analyze_all()
        cache = BusFactorCache(data=results, timestamp=self.clock())
        payload = cache.to_json_dict()
        await self.store.put(BUS_FACTOR_CACHE_KEY, payload, ttl=self.config.cache_ttl_seconds)
        return {
            "data": payload["data"],
            "teamMembers": self.config.team_members,
            "cached": False,
            "analyzedAt": payload["timestamp"],
        }
