"""
Prometheus metrics.

HTTP traffic is labelled by route template. The sync services import the
counters below directly; everything is served by GET /metrics.
"""

import time

from prometheus_client import Counter, Histogram, Gauge
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

# ── HTTP metrics ─────────────────────────────────────────────────────────────

http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status_code"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)

# ── Upstream API ─────────────────────────────────────────────────────────────

upstream_requests_total = Counter(
    "upstream_requests_total",
    "Requests sent to the GitHub API",
    ["kind", "status"],
)

# ── CI sync / backfill ───────────────────────────────────────────────────────

ci_sync_runs_total = Counter(
    "ci_sync_runs_total",
    "Total CI statistics sync runs",
    ["status"],
)

ci_sync_duration_seconds = Histogram(
    "ci_sync_duration_seconds",
    "CI statistics sync duration in seconds",
    buckets=(1.0, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0),
)

ci_backfill_days_total = Counter(
    "ci_backfill_days_total",
    "Backfilled days by outcome",
    ["outcome"],
)

ci_jobs_tracked = Gauge(
    "ci_jobs_tracked",
    "Distinct CI job names in the current snapshot",
)

# ── Item sync ────────────────────────────────────────────────────────────────

item_sync_runs_total = Counter(
    "item_sync_runs_total",
    "Total issue/PR sync runs",
    ["mode", "status"],
)

item_sync_items_total = Counter(
    "item_sync_items_total",
    "Issues/PRs created or updated by sync",
    ["kind"],
)

item_sync_duration_seconds = Histogram(
    "item_sync_duration_seconds",
    "Issue/PR sync duration in seconds",
    buckets=(1.0, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0, 600.0),
)


UNMATCHED_PATH = "unmatched"


def route_label(request: Request) -> str:
    """The route template that served the request, so labels stay bounded."""
    route = request.scope.get("route")
    return getattr(route, "path", None) or UNMATCHED_PATH


class PrometheusMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        if request.url.path == "/metrics":
            return await call_next(request)

        started = time.perf_counter()
        response = await call_next(request)
        elapsed = time.perf_counter() - started

        path = route_label(request)
        http_requests_total.labels(request.method, path, str(response.status_code)).inc()
        http_request_duration_seconds.labels(request.method, path).observe(elapsed)
        return response
