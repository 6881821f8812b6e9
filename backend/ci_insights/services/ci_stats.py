"""
Per-job failure statistics built from workflow runs and their jobs.

Statistics are always rebuilt from scratch for the run set being processed;
nothing here is incremental. Rates are computed once, after every run has been
accumulated.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime

from ci_insights.models import (
    DailyJobRecord,
    JobExecution,
    JobHistoryEntry,
    JobInstance,
    JobStatistic,
    RecentFailure,
    WindowStats,
    WorkflowRun,
    failure_rate,
)
from ci_insights.models.ci import COUNTED_CONCLUSIONS, FAILURE, SUCCESS
from ci_insights.services.fanout import fan_out_in_batches
from ci_insights.services.github_client import GitHubClient

logger = logging.getLogger(__name__)


@dataclass
class _Tally:
    failures: int = 0
    successes: int = 0

    def add(self, conclusion: str) -> None:
        if conclusion == FAILURE:
            self.failures += 1
        elif conclusion == SUCCESS:
            self.successes += 1

    def to_stats(self) -> WindowStats:
        return WindowStats(
            total_runs=self.failures + self.successes,
            failures=self.failures,
            successes=self.successes,
            failure_rate=failure_rate(self.failures, self.successes),
        )


@dataclass
class _JobTally:
    name: str
    overall: _Tally = field(default_factory=_Tally)
    window: _Tally = field(default_factory=_Tally)
    recent_failures: list[RecentFailure] = field(default_factory=list)
    instances: list[JobInstance] = field(default_factory=list)


class JobStatsAccumulator:
    """Accumulates job outcomes across runs.

    window_start: runs created at or after this instant also count toward
    last7Days. None means the whole run set is the window (backfilled days,
    where a true rolling context cannot be reconstructed).
    """

    def __init__(self, window_start: datetime | None = None, recent_failures_limit: int = 5):
        self.window_start = window_start
        self.recent_failures_limit = recent_failures_limit
        self._jobs: dict[str, _JobTally] = {}
        self.history: list[JobHistoryEntry] = []

    def add_run(self, run: WorkflowRun, jobs: list[JobExecution]) -> None:
        in_window = self.window_start is None or run.created_at >= self.window_start
        for job in jobs:
            if job.conclusion not in COUNTED_CONCLUSIONS:
                continue
            tally = self._jobs.get(job.name)
            if tally is None:
                tally = self._jobs[job.name] = _JobTally(name=job.name)

            tally.overall.add(job.conclusion)
            if in_window:
                tally.window.add(job.conclusion)

            if job.conclusion == FAILURE:
                tally.recent_failures.append(RecentFailure(
                    run_id=run.id,
                    run_number=run.run_number,
                    run_url=run.html_url,
                    created_at=run.created_at,
                    job_url=job.html_url,
                ))

            tally.instances.append(JobInstance(
                job_id=job.id,
                run_id=run.id,
                run_number=run.run_number,
                conclusion=job.conclusion,
                created_at=run.created_at,
                job_url=job.html_url,
                run_url=run.html_url,
                started_at=job.started_at,
                completed_at=job.completed_at,
            ))
            self.history.append(JobHistoryEntry(
                job_name=job.name,
                conclusion=job.conclusion,
                created_at=run.created_at,
                run_number=run.run_number,
            ))

    def job_stats(self) -> dict[str, JobStatistic]:
        stats: dict[str, JobStatistic] = {}
        for name, tally in self._jobs.items():
            overall = tally.overall.to_stats()
            stats[name] = JobStatistic(
                name=name,
                total_runs=overall.total_runs,
                failures=overall.failures,
                successes=overall.successes,
                failure_rate=overall.failure_rate,
                last7_days=tally.window.to_stats(),
                # last N pushed, in discovery order
                recent_failures=tally.recent_failures[-self.recent_failures_limit:]
                if self.recent_failures_limit else [],
                instances=sorted(tally.instances, key=lambda i: i.created_at, reverse=True),
            )
        return stats

    def daily_records(self) -> dict[str, DailyJobRecord]:
        return {name: DailyJobRecord.from_statistic(stat) for name, stat in self.job_stats().items()}


async def fetch_jobs_for_runs(
    client: GitHubClient, runs: list[WorkflowRun], batch_size: int,
) -> list[tuple[WorkflowRun, list[JobExecution]]]:
    """Fetch each run's jobs with bounded concurrency; failed runs are skipped."""
    outcomes = await fan_out_in_batches(runs, client.list_run_jobs, batch_size)
    fetched: list[tuple[WorkflowRun, list[JobExecution]]] = []
    for run, outcome in zip(runs, outcomes):
        if isinstance(outcome, Exception):
            logger.warning("Skipping run %s (#%s): job fetch failed: %s", run.id, run.run_number, outcome)
            continue
        fetched.append((run, outcome))
    return fetched


async def collect_job_stats(
    client: GitHubClient,
    runs: list[WorkflowRun],
    *,
    batch_size: int,
    window_start: datetime | None,
    recent_failures_limit: int = 5,
) -> JobStatsAccumulator:
    accumulator = JobStatsAccumulator(window_start, recent_failures_limit)
    for run, jobs in await fetch_jobs_for_runs(client, runs, batch_size):
        accumulator.add_run(run, jobs)
    return accumulator
