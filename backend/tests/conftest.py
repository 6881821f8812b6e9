"""Shared test fixtures: an in-memory store, a fake GitHub behind httpx.MockTransport, an ASGI client."""

import json
import re
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from ci_insights.api.deps import get_clock, get_github, get_store
from ci_insights.config import BusFactorConfig, SyncConfig, settings
from ci_insights.main import app
from ci_insights.services.github_client import GitHubClient
from ci_insights.storage import InMemoryKeyValueStore

API_URL = "https://api.github.test"
GRAPHQL_URL = "https://api.github.test/graphql"
OWNER = "acme"
REPO = "widgets"
BRANCH = "changeset-release/main"

NOW = datetime(2026, 1, 5, 12, 0, tzinfo=timezone.utc)


def iso(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _parse(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


# ── Payload builders ─────────────────────────────────────────────────────────

def make_run(run_id: int, created_at: datetime, branch: str = BRANCH, run_number: int | None = None) -> dict:
    return {
        "id": run_id,
        "run_number": run_number or run_id,
        "head_sha": f"sha{run_id}",
        "head_branch": branch,
        "created_at": iso(created_at),
        "html_url": f"https://github.test/{OWNER}/{REPO}/actions/runs/{run_id}",
        "jobs_url": f"{API_URL}/repos/{OWNER}/{REPO}/actions/runs/{run_id}/jobs",
        "status": "completed",
        "conclusion": "success",
    }


def make_job(job_id: int, name: str, conclusion: str | None) -> dict:
    return {
        "id": job_id,
        "name": name,
        "conclusion": conclusion,
        "started_at": "2026-01-01T00:00:00Z",
        "completed_at": "2026-01-01T00:05:00Z",
        "html_url": f"https://github.test/{OWNER}/{REPO}/actions/jobs/{job_id}",
    }


def issue_node(
    number: int,
    created_at: datetime,
    *,
    closed_at: datetime | None = None,
    updated_at: datetime | None = None,
    labels: tuple[str, ...] = (),
    comments: int = 0,
) -> dict:
    return {
        "number": number,
        "title": f"Issue {number}",
        "state": "CLOSED" if closed_at else "OPEN",
        "stateReason": "COMPLETED" if closed_at else None,
        "createdAt": iso(created_at),
        "closedAt": iso(closed_at) if closed_at else None,
        "updatedAt": iso(updated_at or closed_at or created_at),
        "author": {"login": "octocat", "avatarUrl": "https://avatars.test/octocat"},
        "labels": {"nodes": [{"name": name, "color": "ededed"} for name in labels]},
        "comments": {"totalCount": comments},
    }


def pr_node(
    number: int,
    created_at: datetime,
    *,
    state: str = "OPEN",
    merged_at: datetime | None = None,
    closed_at: datetime | None = None,
    updated_at: datetime | None = None,
    labels: tuple[str, ...] = (),
    comments: int = 0,
) -> dict:
    merged = merged_at is not None
    return {
        "number": number,
        "title": f"PR {number}",
        "state": "MERGED" if merged else state,
        "merged": merged,
        "createdAt": iso(created_at),
        "closedAt": iso(closed_at) if closed_at else None,
        "mergedAt": iso(merged_at) if merged_at else None,
        "updatedAt": iso(updated_at or merged_at or closed_at or created_at),
        "author": None,
        "labels": {"nodes": [{"name": name, "color": "0e8a16"} for name in labels]},
        "comments": {"totalCount": comments},
    }


# ── Fake GitHub ──────────────────────────────────────────────────────────────

class FakeGitHub:
    """Just enough of the REST and GraphQL APIs for the sync services."""

    def __init__(self):
        self.runs: list[dict] = []  # newest first, like the real API
        self.jobs: dict[int, list[dict]] = {}
        self.failing_job_runs: set[int] = set()
        self.runs_status = 200
        self.issues: list[dict] = []
        self.pull_requests: list[dict] = []
        self.graphql_errors: list[str] = []
        self.graphql_status = 200
        self.commits: dict[str, list[str | None]] = {}
        self.failing_paths: set[str] = set()
        self.logs: dict[str, str] = {}
        self.requests: list[httpx.Request] = []
        self.graphql_calls: list[dict] = []

    def add_run(self, run: dict, jobs: list[dict]) -> None:
        self.runs.append(run)
        self.runs.sort(key=lambda r: r["created_at"], reverse=True)
        self.jobs[run["id"]] = jobs

    def count(self, path_fragment: str) -> int:
        return sum(1 for r in self.requests if path_fragment in r.url.path)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        prefix = f"/repos/{OWNER}/{REPO}"

        if path == "/graphql":
            return self._graphql(request)
        if path == f"{prefix}/actions/runs":
            return self._runs(request)
        match = re.fullmatch(rf"{prefix}/actions/runs/(\d+)/jobs", path)
        if match:
            run_id = int(match.group(1))
            if run_id in self.failing_job_runs:
                return httpx.Response(500, text="boom")
            return httpx.Response(200, json={"total_count": len(self.jobs.get(run_id, [])),
                                             "jobs": self.jobs.get(run_id, [])})
        match = re.fullmatch(rf"{prefix}/actions/jobs/(\w+)/logs", path)
        if match:
            job_id = match.group(1)
            if job_id not in self.logs:
                return httpx.Response(404, json={"message": "Not Found"})
            return httpx.Response(200, text=self.logs[job_id])
        if path == f"{prefix}/commits":
            return self._commits(request)
        return httpx.Response(404, json={"message": "Not Found"})

    def _runs(self, request: httpx.Request) -> httpx.Response:
        if self.runs_status != 200:
            return httpx.Response(self.runs_status, json={"message": "API rate limit exceeded"})
        params = request.url.params
        runs = self.runs
        if "branch" in params:
            runs = [r for r in runs if r["head_branch"] == params["branch"]]
        if "created" in params:
            runs = [r for r in runs if r["created_at"].startswith(params["created"])]
        per_page = int(params.get("per_page", 30))
        return httpx.Response(200, json={"total_count": len(runs), "workflow_runs": runs[:per_page]})

    def _commits(self, request: httpx.Request) -> httpx.Response:
        params = request.url.params
        directory = params["path"]
        if directory in self.failing_paths:
            return httpx.Response(500, json={"message": "Server Error"})
        per_page = int(params.get("per_page", 30))
        page = int(params.get("page", 1))
        authors = self.commits.get(directory, [])
        chunk = authors[(page - 1) * per_page:page * per_page]
        return httpx.Response(200, json=[
            {"sha": f"{directory}-{page}-{i}", "author": {"login": login} if login else None}
            for i, login in enumerate(chunk)
        ])

    def _graphql(self, request: httpx.Request) -> httpx.Response:
        if self.graphql_status != 200:
            return httpx.Response(self.graphql_status, json={"message": "Bad credentials"})
        body = json.loads(request.content)
        query, variables = body["query"], body["variables"]
        if self.graphql_errors:
            return httpx.Response(200, json={"data": None,
                                             "errors": [{"message": m} for m in self.graphql_errors]})

        page_size = int(re.search(r"first:\s*(\d+)", query).group(1))
        offset = int(variables.get("cursor") or 0)

        if "pullRequests(" in query:
            kind = "pullRequests"
            if "UPDATED_AT" in query:
                nodes = sorted(self.pull_requests, key=lambda n: n["updatedAt"], reverse=True)
                kind = "pullRequests:updated"
            else:
                nodes = sorted(self.pull_requests, key=lambda n: n["createdAt"])
        else:
            kind = "issues"
            nodes = sorted(self.issues, key=lambda n: n["createdAt"])
            if variables.get("since"):
                since = _parse(variables["since"])
                nodes = [n for n in nodes if _parse(n["updatedAt"]) >= since]
                kind = "issues:since"
        self.graphql_calls.append({"kind": kind, "variables": variables})

        chunk = nodes[offset:offset + page_size]
        end = offset + len(chunk)
        connection = {
            "pageInfo": {"hasNextPage": end < len(nodes), "endCursor": str(end) if chunk else None},
            "nodes": chunk,
        }
        field = "pullRequests" if kind.startswith("pullRequests") else "issues"
        return httpx.Response(200, json={"data": {"repository": {field: connection}}})


class FakeClock:
    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> None:
        self.now += timedelta(**delta)


# ── Fixtures ─────────────────────────────────────────────────────────────────

@pytest.fixture
def fake_github() -> FakeGitHub:
    return FakeGitHub()


def make_client(fake: FakeGitHub, token: str = "test-token") -> GitHubClient:
    return GitHubClient(
        owner=OWNER,
        repo=REPO,
        token=token,
        api_url=API_URL,
        graphql_url=GRAPHQL_URL,
        transport=httpx.MockTransport(fake.handler),
    )


@pytest_asyncio.fixture
async def github_client(fake_github: FakeGitHub) -> AsyncGenerator[GitHubClient, None]:
    client = make_client(fake_github)
    yield client
    await client.aclose()


@pytest.fixture
def store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sync_config() -> SyncConfig:
    return SyncConfig(backfill_delay_seconds=0, page_delay_seconds=0)


@pytest.fixture
def bus_factor_config() -> BusFactorConfig:
    return BusFactorConfig(
        monitored_directories=["packages/a", "packages/b", "packages/c"],
        team_members=["alice", "bob"],
        per_page=2,
        max_pages=3,
        directory_batch_size=2,
        batch_delay_seconds=0,
    )


@pytest_asyncio.fixture
async def api_client(
    monkeypatch, store, github_client, clock, sync_config, bus_factor_config,
) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against the app with store, upstream and clock swapped for fakes."""
    monkeypatch.setattr(settings, "sync", sync_config)
    monkeypatch.setattr(settings, "bus_factor", bus_factor_config)
    monkeypatch.setattr(settings, "ci_branch", BRANCH)
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_github] = lambda: github_client
    app.dependency_overrides[get_clock] = lambda: clock
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()
