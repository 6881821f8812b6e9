"""
Issue / PR API backed by the local mirror.

POST /api/sync-github-items      full or incremental mirror sync (?force=true rebuilds)
GET  /api/github-items           daily open counts for issues or PRs
GET  /api/issue-label-stats      open issues per label per day
GET  /api/pr-label-stats         open PRs per label per day
GET  /api/issue-triage           untriaged / awaiting-dev buckets
GET  /api/pr-health              PR age and staleness

Read endpoints answer {"needsSync": true} while nothing has been synced.
"""

import logging
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Response
from fastapi.responses import JSONResponse

from ci_insights.api.deps import (
    get_clock,
    get_item_repository,
    get_item_synchronizer,
    get_triage_config,
    parse_date_param,
)
from ci_insights.config import TriageConfig
from ci_insights.errors import MissingParameterError, NoDataError
from ci_insights.models import GitHubItem, ItemType, SyncMetadata
from ci_insights.services import views
from ci_insights.services.item_sync import ItemRepository, ItemSynchronizer
from ci_insights.timeutil import Clock

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["items"])

CACHE_5_MIN = "public, max-age=300"
NO_DATA_MESSAGE = "No GitHub data available. Please trigger a sync first."

ITEM_TYPES = {"issues": ItemType.ISSUE, "prs": ItemType.PR}


async def _load_mirror(repository: ItemRepository) -> tuple[list[GitHubItem], SyncMetadata | None]:
    meta = await repository.load_meta()
    if meta is None:
        return [], None
    items = await repository.load_items()
    return list(items.values()), meta


def _last_sync(meta: SyncMetadata) -> str:
    return meta.to_json_dict()["lastSync"]


@router.post("/sync-github-items")
async def sync_github_items(
    force: bool = False,
    synchronizer: ItemSynchronizer = Depends(get_item_synchronizer),
):
    try:
        result = await synchronizer.sync(force=force)
    except Exception as exc:
        logger.error("Item sync failed: %s", exc, exc_info=True)
        return JSONResponse(status_code=500, content={"success": False, "error": str(exc)})
    return {"success": True, **result.to_dict()}


@router.get("/github-items")
async def github_items(
    response: Response,
    type: str | None = None,
    startDate: str | None = None,
    endDate: str | None = None,
    repository: ItemRepository = Depends(get_item_repository),
):
    if type not in ITEM_TYPES:
        raise HTTPException(status_code=400, detail='type must be "issues" or "prs"')
    start = parse_date_param(startDate, "startDate")
    end = parse_date_param(endDate, "endDate")
    if start is None or end is None:
        raise MissingParameterError("startDate", "startDate and endDate are required")

    items, meta = await _load_mirror(repository)
    if meta is None or not items:
        raise NoDataError()

    filtered = views.of_type(items, ITEM_TYPES[type])
    response.headers["Cache-Control"] = CACHE_5_MIN
    return {
        "type": type,
        "dateRange": {"start": startDate, "end": endDate},
        "data": views.daily_open_counts(filtered, start, end),
        "totalItems": len(filtered),
        "oldestDate": meta.oldest_date,
        "lastSync": _last_sync(meta),
    }


async def _label_stats(
    item_type: ItemType,
    total_key: str,
    start_param: str | None,
    end_param: str | None,
    repository: ItemRepository,
    clock: Clock,
) -> dict:
    items, meta = await _load_mirror(repository)
    if meta is None or not items:
        return {
            "timestamps": [],
            "total": [],
            "labels": {},
            "message": NO_DATA_MESSAGE,
            "needsSync": True,
        }

    filtered = views.of_type(items, item_type)
    end = parse_date_param(end_param, "end") or clock().date()
    start = parse_date_param(start_param, "start") or views.default_range(end)[0]
    series = views.label_time_series(filtered, start, end)
    return {**series, "lastSync": _last_sync(meta), total_key: len(filtered)}


@router.get("/issue-label-stats")
async def issue_label_stats(
    response: Response,
    start: str | None = None,
    end: str | None = None,
    repository: ItemRepository = Depends(get_item_repository),
    clock: Clock = Depends(get_clock),
):
    response.headers["Cache-Control"] = CACHE_5_MIN
    return await _label_stats(ItemType.ISSUE, "totalIssues", start, end, repository, clock)


@router.get("/pr-label-stats")
async def pr_label_stats(
    response: Response,
    start: str | None = None,
    end: str | None = None,
    repository: ItemRepository = Depends(get_item_repository),
    clock: Clock = Depends(get_clock),
):
    response.headers["Cache-Control"] = CACHE_5_MIN
    return await _label_stats(ItemType.PR, "totalPRs", start, end, repository, clock)


@router.get("/issue-triage")
async def issue_triage(
    response: Response,
    repository: ItemRepository = Depends(get_item_repository),
    config: TriageConfig = Depends(get_triage_config),
):
    response.headers["Cache-Control"] = CACHE_5_MIN
    items, meta = await _load_mirror(repository)
    if meta is None or not items:
        return {"untriaged": [], "awaitingDev": [], "message": NO_DATA_MESSAGE, "needsSync": True}
    return {**views.triage(items, config), "lastSync": _last_sync(meta)}


@router.get("/pr-health")
async def pr_health(
    response: Response,
    state: Literal["open", "all"] = "open",
    sort: Literal["stale", "age", "comments"] = "stale",
    order: Literal["asc", "desc"] = "desc",
    repository: ItemRepository = Depends(get_item_repository),
    clock: Clock = Depends(get_clock),
):
    response.headers["Cache-Control"] = CACHE_5_MIN
    items, meta = await _load_mirror(repository)
    if meta is None or not items:
        return {"prs": [], "message": NO_DATA_MESSAGE, "needsSync": True}
    health = views.pr_health(items, clock(), state=state, sort=sort, order=order)
    return {**health, "lastSync": _last_sync(meta)}
