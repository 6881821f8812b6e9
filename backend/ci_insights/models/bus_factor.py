from datetime import datetime

from ci_insights.models.base import CamelModel


class Contributor(CamelModel):
    login: str
    commits: int
    percentage: float


class BusFactorResult(CamelModel):
    directory: str
    bus_factor: int = 0
    top_contributors: list[Contributor] = []
    team_member_contributions: dict[str, float] = {}


class BusFactorCache(CamelModel):
    data: list[BusFactorResult] = []
    timestamp: datetime
