"""Tests for the bus-factor service: commit pagination, per-directory failures, caching."""

import pytest

from ci_insights.services.bus_factor import BusFactorService
from ci_insights.storage import BUS_FACTOR_CACHE_KEY


@pytest.fixture
def service(github_client, store, bus_factor_config, clock) -> BusFactorService:
    return BusFactorService(github_client, store, bus_factor_config, clock)


@pytest.mark.asyncio
class TestBusFactorService:
    async def test_pagination_stops_on_short_page(self, service, fake_github):
        fake_github.commits["packages/a"] = ["alice", "alice", "bob"]

        authors = await service.fetch_directory_authors("packages/a")

        assert authors == ["alice", "alice", "bob"]
        assert fake_github.count("/commits") == 2

    async def test_pagination_is_capped(self, service, fake_github, bus_factor_config):
        fake_github.commits["packages/a"] = ["alice"] * 20

        authors = await service.fetch_directory_authors("packages/a")

        assert len(authors) == bus_factor_config.per_page * bus_factor_config.max_pages
        assert fake_github.count("/commits") == bus_factor_config.max_pages

    async def test_failed_directory_yields_empty_result(self, service, fake_github):
        fake_github.commits["packages/a"] = ["alice", "bob", "bob"]
        fake_github.failing_paths.add("packages/b")

        results = await service.analyze_all()

        by_dir = {r.directory: r for r in results}
        assert [r.directory for r in results] == ["packages/a", "packages/b", "packages/c"]
        assert by_dir["packages/a"].bus_factor == 1
        assert by_dir["packages/a"].top_contributors[0].login == "bob"
        assert by_dir["packages/b"].bus_factor == 0
        assert by_dir["packages/b"].team_member_contributions == {"alice": 0, "bob": 0}
        assert by_dir["packages/c"].top_contributors == []

    async def test_cached_within_max_age(self, service, fake_github, store, clock, bus_factor_config):
        fake_github.commits["packages/a"] = ["alice"]

        first = await service.get_bus_factor()
        requests_after_first = len(fake_github.requests)
        clock.advance(minutes=30)
        second = await service.get_bus_factor()

        assert first["cached"] is False
        assert second["cached"] is True
        assert second["data"] == first["data"]
        assert second["cachedAt"] == first["analyzedAt"]
        assert second["teamMembers"] == ["alice", "bob"]
        assert len(fake_github.requests) == requests_after_first
        assert store.ttl(BUS_FACTOR_CACHE_KEY) <= bus_factor_config.cache_ttl_seconds

    async def test_stale_cache_and_refresh_recompute(self, service, fake_github, clock):
        await service.get_bus_factor()

        clock.advance(minutes=61)
        assert (await service.get_bus_factor())["cached"] is False

        assert (await service.get_bus_factor(force_refresh=True))["cached"] is False
