import logging
import time
import traceback
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from ci_insights import __version__
from ci_insights.config import settings
from ci_insights.errors import (
    CIInsightsError,
    MissingParameterError,
    NoDataError,
    UpstreamGraphQLError,
    UpstreamHttpError,
)
from ci_insights.middleware.logging_config import configure_logging

configure_logging(settings.log_level, settings.log_format)

from ci_insights.api.bus_factor import router as bus_factor_router  # noqa: E402
from ci_insights.api.ci import router as ci_router  # noqa: E402
from ci_insights.api.deps import get_store  # noqa: E402
from ci_insights.api.items import router as items_router  # noqa: E402
from ci_insights.services.github_client import GitHubClient  # noqa: E402
from ci_insights.storage import KeyValueStore, create_store  # noqa: E402

logger = logging.getLogger("ci_insights")


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.store = create_store(settings.kv_backend, settings.redis_url)
    app.state.github = GitHubClient.from_settings(settings)
    logger.info(
        "Starting CI insights for %s/%s (kv=%s, token=%s)",
        settings.github_owner, settings.github_repo, settings.kv_backend,
        "yes" if settings.github_token else "no",
    )
    yield
    await app.state.github.aclose()
    await app.state.store.aclose()


app = FastAPI(
    title="CI Insights",
    description="CI failure statistics, issue/PR trends and bus factor for a GitHub repository",
    version=__version__,
    lifespan=lifespan,
)

# ── CORS ─────────────────────────────────────────────────────────────────────
origins = [o.strip() for o in settings.allowed_origins.split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type", "X-Request-ID"],
    expose_headers=["X-Data-Source", "X-Request-ID"],
)

# ── Request context middleware (request ID + timing) ─────────────────────────
from ci_insights.middleware.request_context import RequestContextMiddleware  # noqa: E402

app.add_middleware(RequestContextMiddleware)

# ── Prometheus metrics middleware ────────────────────────────────────────────
from ci_insights.middleware.metrics import PrometheusMiddleware  # noqa: E402

app.add_middleware(PrometheusMiddleware)


# ── Error mapping ────────────────────────────────────────────────────────────

@app.exception_handler(NoDataError)
async def no_data_handler(request: Request, exc: NoDataError):
    return JSONResponse(status_code=404, content={"error": str(exc), "needsSync": True})


@app.exception_handler(MissingParameterError)
async def missing_parameter_handler(request: Request, exc: MissingParameterError):
    return JSONResponse(status_code=400, content={"error": str(exc)})


@app.exception_handler(CIInsightsError)
async def upstream_error_handler(request: Request, exc: CIInsightsError):
    status = 502 if isinstance(exc, (UpstreamHttpError, UpstreamGraphQLError)) else 500
    logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc)
    return JSONResponse(status_code=status, content={"error": str(exc)})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    tb = traceback.format_exc()
    logger.error(
        "Unhandled %s on %s %s: %s\n%s",
        type(exc).__name__, request.method, request.url.path, exc, tb,
    )
    if settings.environment == "development":
        return JSONResponse(
            status_code=500,
            content={"error": f"{type(exc).__name__}: {exc}", "traceback": tb.splitlines()[-5:]},
        )
    return JSONResponse(status_code=500, content={"error": "Internal Server Error"})


app.include_router(ci_router)
app.include_router(items_router)
app.include_router(bus_factor_router)


@app.get("/metrics", tags=["metrics"])
async def prometheus_metrics():
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


# ── Health check ─────────────────────────────────────────────────────────────

_health_cache: dict = {}
_health_cache_ts: float = 0.0
HEALTH_CACHE_TTL = 10.0  # seconds


@app.get("/api/health")
async def health_check(store: KeyValueStore = Depends(get_store)):
    global _health_cache, _health_cache_ts

    now = time.time()
    if _health_cache and (now - _health_cache_ts) < HEALTH_CACHE_TTL:
        return _health_cache

    store_ok = await store.ping()
    result = {
        "status": "healthy" if store_ok else "unhealthy",
        "environment": settings.environment,
        "version": __version__,
        "components": {
            "store": {"backend": settings.kv_backend, "status": "connected" if store_ok else "disconnected"},
            "github": {"token": bool(settings.github_token), "repository": f"{settings.github_owner}/{settings.github_repo}"},
        },
    }

    _health_cache = result
    _health_cache_ts = now
    return result
