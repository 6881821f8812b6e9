"""CI run/job records: upstream payloads, per-job statistics and daily snapshots."""

from datetime import datetime

from ci_insights.models.base import CamelModel, UpstreamModel

SUCCESS = "success"
FAILURE = "failure"
# Only these outcomes count toward any total; cancelled/skipped/neutral/etc. are ignored.
COUNTED_CONCLUSIONS = frozenset({SUCCESS, FAILURE})


# ── Upstream (REST) ──────────────────────────────────────────────────────────

class WorkflowRun(UpstreamModel):
    id: int
    run_number: int
    head_sha: str = ""
    created_at: datetime
    html_url: str = ""
    jobs_url: str
    status: str | None = None
    conclusion: str | None = None


class JobExecution(UpstreamModel):
    id: int
    name: str
    conclusion: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    html_url: str = ""


# ── Derived statistics ───────────────────────────────────────────────────────

def failure_rate(failures: int, successes: int) -> float:
    total = failures + successes
    return (failures / total) * 100 if total > 0 else 0.0


class RecentFailure(CamelModel):
    run_id: int
    run_number: int
    run_url: str = ""
    created_at: datetime
    job_url: str = ""


class JobInstance(CamelModel):
    job_id: int
    run_id: int
    run_number: int
    conclusion: str
    created_at: datetime
    job_url: str = ""
    run_url: str = ""
    started_at: datetime | None = None
    completed_at: datetime | None = None


class WindowStats(CamelModel):
    total_runs: int = 0
    failures: int = 0
    successes: int = 0
    failure_rate: float = 0.0


class JobStatistic(WindowStats):
    name: str
    last7_days: WindowStats = WindowStats()
    recent_failures: list[RecentFailure] = []
    instances: list[JobInstance] = []


class JobHistoryEntry(CamelModel):
    job_name: str
    conclusion: str
    created_at: datetime
    run_number: int


class DateRange(CamelModel):
    start: str
    end: str


class CISnapshot(CamelModel):
    """The "current" view stored under ci-data and served by /api/ci-data."""

    job_stats: dict[str, JobStatistic] = {}
    job_history: list[JobHistoryEntry] = []
    last_updated: datetime
    total_runs: int = 0
    date_range: DateRange | None = None


# ── History ──────────────────────────────────────────────────────────────────

class DailyJobRecord(CamelModel):
    failure_rate: float = 0.0
    failures: int = 0
    successes: int = 0
    last7_days_failure_rate: float = 0.0
    last7_days_failures: int = 0
    last7_days_successes: int = 0
    instances: list[JobInstance] = []
    recent_failures: list[RecentFailure] = []

    @classmethod
    def from_statistic(cls, stat: JobStatistic) -> "DailyJobRecord":
        return cls(
            failure_rate=stat.failure_rate,
            failures=stat.failures,
            successes=stat.successes,
            last7_days_failure_rate=stat.last7_days.failure_rate,
            last7_days_failures=stat.last7_days.failures,
            last7_days_successes=stat.last7_days.successes,
            instances=stat.instances,
            recent_failures=stat.recent_failures,
        )


class DailySnapshot(CamelModel):
    date: str
    timestamp: datetime
    jobs: dict[str, DailyJobRecord] = {}


class DateIndex(CamelModel):
    dates: list[str] = []

    def with_date(self, date_str: str, horizon: int) -> "DateIndex":
        """Insert a date keeping the list sorted, unique and at most horizon long."""
        dates = sorted(set(self.dates) | {date_str})
        return DateIndex(dates=dates[-horizon:])
