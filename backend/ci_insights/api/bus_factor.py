"""
Bus factor API.

GET /api/bus-factor   per-directory bus factor; ?refresh=true bypasses the cache
"""

from fastapi import APIRouter, Depends, Response

from ci_insights.api.deps import get_bus_factor_service
from ci_insights.services.bus_factor import BusFactorService

router = APIRouter(prefix="/api", tags=["bus-factor"])


@router.get("/bus-factor")
async def bus_factor(
    response: Response,
    refresh: bool = False,
    service: BusFactorService = Depends(get_bus_factor_service),
):
    response.headers["Cache-Control"] = "public, max-age=300"
    return await service.get_bus_factor(force_refresh=refresh)
