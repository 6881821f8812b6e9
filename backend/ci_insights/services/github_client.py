"""
GitHub API client: REST and GraphQL over a shared httpx.AsyncClient.

Contract:
- every request carries the fixed User-Agent and the GitHub JSON Accept header;
  the bearer token is only sent when one is configured
- non-2xx responses raise UpstreamHttpError
- a GraphQL body with a non-empty "errors" array raises UpstreamGraphQLError,
  even on HTTP 200; partial data is never returned
- no retries here, callers decide what a failure means

Payloads are validated into pydantic records at this boundary. Malformed list
entries are dropped with a warning so one bad node cannot poison a sync.
"""

import logging
from datetime import datetime
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from ci_insights.errors import UpstreamGraphQLError, UpstreamHttpError
from ci_insights.middleware.metrics import upstream_requests_total
from ci_insights.models import (
    IssueNode,
    ItemPage,
    JobExecution,
    PageInfo,
    PullRequestNode,
    WorkflowRun,
)

logger = logging.getLogger(__name__)

GITHUB_ACCEPT = "application/vnd.github+json"

ModelT = TypeVar("ModelT", bound=BaseModel)

_LABEL_AND_AUTHOR_FIELDS = """
            author {
              login
              avatarUrl
            }
            labels(first: 20) {
              nodes {
                name
                color
              }
            }
            comments {
              totalCount
            }"""


def build_issues_query(page_size: int, since: bool = False) -> str:
    """Issues ascending by creation; optionally filtered to updated-since."""
    since_var = ", $since: DateTime" if since else ""
    filter_clause = "filterBy: { since: $since }" if since else ""
    return f"""
    query($owner: String!, $repo: String!, $cursor: String{since_var}) {{
      repository(owner: $owner, name: $repo) {{
        issues(
          first: {page_size}
          after: $cursor
          {filter_clause}
          orderBy: {{ field: CREATED_AT, direction: ASC }}
        ) {{
          pageInfo {{
            hasNextPage
            endCursor
          }}
          nodes {{
            number
            title
            state
            stateReason
            createdAt
            closedAt
            updatedAt{_LABEL_AND_AUTHOR_FIELDS}
          }}
        }}
      }}
    }}
    """


def build_pull_requests_query(page_size: int, order_field: str = "CREATED_AT",
                              direction: str = "ASC") -> str:
    """Pull requests have no since-filter, so the updated pass orders by UPDATED_AT DESC."""
    return f"""
    query($owner: String!, $repo: String!, $cursor: String) {{
      repository(owner: $owner, name: $repo) {{
        pullRequests(
          first: {page_size}
          after: $cursor
          orderBy: {{ field: {order_field}, direction: {direction} }}
        ) {{
          pageInfo {{
            hasNextPage
            endCursor
          }}
          nodes {{
            number
            title
            state
            merged
            createdAt
            closedAt
            mergedAt
            updatedAt{_LABEL_AND_AUTHOR_FIELDS}
          }}
        }}
      }}
    }}
    """


def _parse_records(model: type[ModelT], raw: list[Any], what: str) -> list[ModelT]:
    records: list[ModelT] = []
    for entry in raw or []:
        try:
            records.append(model.model_validate(entry))
        except ValidationError as exc:
            ident = entry.get("id") or entry.get("number") if isinstance(entry, dict) else None
            logger.warning("Dropping malformed %s %s: %s", what, ident, exc.errors()[:3])
    return records


class GitHubClient:
    def __init__(
        self,
        *,
        owner: str,
        repo: str,
        token: str = "",
        api_url: str = "https://api.github.com",
        graphql_url: str = "https://api.github.com/graphql",
        user_agent: str = "Workers-SDK-CI-Analyzer",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.owner = owner
        self.repo = repo
        self.token = token
        self.api_url = api_url.rstrip("/")
        self.graphql_url = graphql_url
        self.user_agent = user_agent
        self._http = httpx.AsyncClient(timeout=timeout, transport=transport)

    @classmethod
    def from_settings(cls, settings, transport: httpx.AsyncBaseTransport | None = None) -> "GitHubClient":
        return cls(
            owner=settings.github_owner,
            repo=settings.github_repo,
            token=settings.github_token,
            api_url=settings.github_api_url,
            graphql_url=settings.github_graphql_url,
            user_agent=settings.user_agent,
            timeout=settings.http_timeout_seconds,
            transport=transport,
        )

    @property
    def has_token(self) -> bool:
        return bool(self.token)

    @property
    def repo_url(self) -> str:
        return f"{self.api_url}/repos/{self.owner}/{self.repo}"

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> "GitHubClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _headers(self, accept: str = GITHUB_ACCEPT) -> dict[str, str]:
        headers = {"Accept": accept, "User-Agent": self.user_agent}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def _request(self, kind: str, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            resp = await self._http.request(method, url, **kwargs)
        except httpx.HTTPError:
            upstream_requests_total.labels(kind=kind, status="transport_error").inc()
            raise
        upstream_requests_total.labels(kind=kind, status=str(resp.status_code)).inc()
        if not resp.is_success:
            raise UpstreamHttpError(resp.status_code, resp.text, url)
        return resp

    async def fetch_json(
        self,
        url: str,
        *,
        method: str = "GET",
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> Any:
        resp = await self._request("rest", method, url, params=params, json=json,
                                   headers=self._headers())
        return resp.json()

    async def fetch_text(self, url: str) -> str:
        resp = await self._request("rest", "GET", url, headers=self._headers(),
                                   follow_redirects=True)
        return resp.text

    async def fetch_graphql(self, query: str, variables: dict[str, Any] | None = None) -> dict:
        payload_vars = {"owner": self.owner, "repo": self.repo}
        payload_vars.update(variables or {})
        headers = self._headers()
        headers["Content-Type"] = "application/json"
        resp = await self._request(
            "graphql", "POST", self.graphql_url,
            json={"query": query, "variables": payload_vars},
            headers=headers,
        )
        body = resp.json()
        errors = body.get("errors") or []
        if errors:
            messages = [e.get("message", str(e)) if isinstance(e, dict) else str(e) for e in errors]
            raise UpstreamGraphQLError(messages)
        return body.get("data") or {}

    # ------------------------------------------------------------------
    # Actions (REST)
    # ------------------------------------------------------------------

    async def list_workflow_runs(
        self,
        *,
        branch: str | None = None,
        per_page: int = 100,
        created: str | None = None,
        status: str | None = None,
    ) -> list[WorkflowRun]:
        params: dict[str, Any] = {"per_page": per_page}
        if branch:
            params["branch"] = branch
        if created:
            params["created"] = created
        if status:
            params["status"] = status
        data = await self.fetch_json(f"{self.repo_url}/actions/runs", params=params)
        return _parse_records(WorkflowRun, data.get("workflow_runs", []), "workflow run")

    async def list_workflow_runs_raw(self, per_page: int = 50) -> dict:
        return await self.fetch_json(f"{self.repo_url}/actions/runs", params={"per_page": per_page})

    async def list_run_jobs(self, run: WorkflowRun) -> list[JobExecution]:
        data = await self.fetch_json(run.jobs_url)
        return _parse_records(JobExecution, data.get("jobs", []), "job")

    async def job_logs(self, job_id: int | str) -> str:
        return await self.fetch_text(f"{self.repo_url}/actions/jobs/{job_id}/logs")

    # ------------------------------------------------------------------
    # Commits (REST)
    # ------------------------------------------------------------------

    async def list_commit_authors(
        self, *, path: str, since: datetime, page: int, per_page: int = 100,
    ) -> list[str | None]:
        """One entry per commit: the GitHub login, or None for unlinked authors."""
        data = await self.fetch_json(
            f"{self.repo_url}/commits",
            params={
                "path": path,
                "since": since.isoformat(),
                "per_page": per_page,
                "page": page,
            },
        )
        authors: list[str | None] = []
        for commit in data or []:
            author = commit.get("author") if isinstance(commit, dict) else None
            authors.append(author.get("login") if isinstance(author, dict) else None)
        return authors

    # ------------------------------------------------------------------
    # Issues / PRs (GraphQL)
    # ------------------------------------------------------------------

    async def fetch_issues_page(
        self, cursor: str | None, *, page_size: int = 100, since: datetime | None = None,
    ) -> ItemPage:
        variables: dict[str, Any] = {"cursor": cursor}
        if since is not None:
            variables["since"] = since.isoformat()
        data = await self.fetch_graphql(build_issues_query(page_size, since=since is not None), variables)
        conn = (data.get("repository") or {}).get("issues")
        return self._to_page(conn, IssueNode, "issue")

    async def fetch_pull_requests_page(
        self, cursor: str | None, *, page_size: int = 100, by_updated: bool = False,
    ) -> ItemPage:
        if by_updated:
            query = build_pull_requests_query(page_size, "UPDATED_AT", "DESC")
        else:
            query = build_pull_requests_query(page_size)
        data = await self.fetch_graphql(query, {"cursor": cursor})
        conn = (data.get("repository") or {}).get("pullRequests")
        return self._to_page(conn, PullRequestNode, "pull request")

    @staticmethod
    def _to_page(conn: dict | None, node_model, what: str) -> ItemPage:
        if not conn:
            # repository or connection missing: treat as an empty last page
            return ItemPage()
        nodes = _parse_records(node_model, conn.get("nodes", []), what)
        return ItemPage(
            page_info=PageInfo.model_validate(conn.get("pageInfo") or {}),
            items=[node.to_item() for node in nodes],
        )
