"""
API dependencies: the shared store and GitHub client live on app.state (created
in the lifespan); services are built per request on top of them.

Tests swap get_store / get_github / get_clock through app.dependency_overrides.
"""

from datetime import date

from fastapi import Depends, HTTPException, Request

from ci_insights.config import TriageConfig, settings
from ci_insights.services.bus_factor import BusFactorService
from ci_insights.services.ci_aggregator import CIAggregator
from ci_insights.services.github_client import GitHubClient
from ci_insights.services.item_sync import ItemRepository, ItemSynchronizer
from ci_insights.services.snapshots import SnapshotRepository
from ci_insights.storage import KeyValueStore
from ci_insights.timeutil import Clock, parse_day, utcnow


# ── Shared resources ─────────────────────────────────────────────────────────

def get_store(request: Request) -> KeyValueStore:
    return request.app.state.store


def get_github(request: Request) -> GitHubClient:
    return request.app.state.github


def get_clock() -> Clock:
    return utcnow


# ── Services ─────────────────────────────────────────────────────────────────

def get_snapshots(
    store: KeyValueStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
) -> SnapshotRepository:
    return SnapshotRepository(store, settings.sync, clock)


def get_aggregator(
    client: GitHubClient = Depends(get_github),
    snapshots: SnapshotRepository = Depends(get_snapshots),
    clock: Clock = Depends(get_clock),
) -> CIAggregator:
    return CIAggregator(
        client, snapshots, settings.sync,
        branch=settings.ci_branch,
        default_limit=settings.ci_run_limit,
        clock=clock,
    )


def get_triage_config() -> TriageConfig:
    return settings.triage


def get_item_repository(store: KeyValueStore = Depends(get_store)) -> ItemRepository:
    return ItemRepository(store)


def get_item_synchronizer(
    client: GitHubClient = Depends(get_github),
    repository: ItemRepository = Depends(get_item_repository),
    clock: Clock = Depends(get_clock),
) -> ItemSynchronizer:
    return ItemSynchronizer(client, repository, settings.sync, clock)


def get_bus_factor_service(
    client: GitHubClient = Depends(get_github),
    store: KeyValueStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
) -> BusFactorService:
    return BusFactorService(client, store, settings.bus_factor, clock)


# ── Query helpers ────────────────────────────────────────────────────────────

def parse_date_param(value: str | None, name: str) -> date | None:
    """Accept YYYY-MM-DD or a full ISO timestamp; None passes through."""
    if not value:
        return None
    try:
        return parse_day(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"{name} must be an ISO date, got {value!r}")
