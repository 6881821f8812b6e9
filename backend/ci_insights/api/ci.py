"""
CI statistics API.

GET  /api/ci-data         current snapshot, or a date-range aggregate of daily snapshots
POST /api/refresh         sync now; ?backfill=true also fills historical gaps
GET  /api/history         daily snapshots, or one job's 7-day failure-rate series
GET  /api/workflow-runs   raw workflow runs (passthrough)
GET  /api/job-logs        plain-text logs for one job
"""

import logging

from fastapi import APIRouter, Depends, Query, Response
from fastapi.responses import JSONResponse, PlainTextResponse

from ci_insights.api.deps import get_aggregator, get_github, get_snapshots, parse_date_param
from ci_insights.errors import MissingParameterError, NoDataError
from ci_insights.services.ci_aggregator import CIAggregator
from ci_insights.services.github_client import GitHubClient
from ci_insights.services.snapshots import SnapshotRepository

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["ci"])

CACHE_5_MIN = "public, max-age=300"
CACHE_1_HOUR = "public, max-age=3600"


@router.get("/ci-data")
async def ci_data(
    response: Response,
    startDate: str | None = None,
    endDate: str | None = None,
    limit: int | None = Query(None, ge=1, le=100),
    aggregator: CIAggregator = Depends(get_aggregator),
):
    start = parse_date_param(startDate, "startDate")
    end = parse_date_param(endDate, "endDate")
    response.headers["Cache-Control"] = CACHE_5_MIN
    try:
        payload, source = await aggregator.get_ci_data(start, end, limit)
    except NoDataError as exc:
        payload = {
            "error": str(exc),
            "needsSync": True,
            "jobStats": {},
            "jobHistory": [],
            "totalRuns": 0,
        }
        source = "historical-no-data"
    response.headers["X-Data-Source"] = source
    return payload


@router.post("/refresh")
async def refresh(
    limit: int | None = Query(None, ge=1, le=100),
    backfill: bool = False,
    aggregator: CIAggregator = Depends(get_aggregator),
):
    try:
        return await aggregator.refresh_ci_data(limit, backfill)
    except Exception as exc:
        logger.error("CI refresh failed: %s", exc, exc_info=True)
        return JSONResponse(status_code=500, content={"success": False, "error": str(exc)})


@router.get("/history")
async def history(
    response: Response,
    startDate: str | None = None,
    endDate: str | None = None,
    days: int = Query(30, ge=1, le=365),
    job: str | None = None,
    snapshots: SnapshotRepository = Depends(get_snapshots),
):
    start = parse_date_param(startDate, "startDate")
    end = parse_date_param(endDate, "endDate")
    response.headers["Cache-Control"] = CACHE_1_HOUR
    try:
        return await snapshots.history(start=start, end=end, days=days, job=job)
    except NoDataError as exc:
        return {"snapshots": [], "message": str(exc), "needsSync": True}


@router.get("/workflow-runs")
async def workflow_runs(
    response: Response,
    limit: int = Query(50, ge=1, le=100),
    client: GitHubClient = Depends(get_github),
):
    response.headers["Cache-Control"] = CACHE_5_MIN
    return await client.list_workflow_runs_raw(per_page=limit)


@router.get("/job-logs", response_class=PlainTextResponse)
async def job_logs(
    job_id: str | None = None,
    client: GitHubClient = Depends(get_github),
):
    if not job_id:
        raise MissingParameterError("job_id")
    logs = await client.job_logs(job_id)
    return PlainTextResponse(logs, headers={"Cache-Control": CACHE_5_MIN})
