from ci_insights.models.ci import (  # noqa: F401
    WorkflowRun, JobExecution, RecentFailure, JobInstance, WindowStats,
    JobStatistic, JobHistoryEntry, DateRange, CISnapshot,
    DailyJobRecord, DailySnapshot, DateIndex, failure_rate,
)
from ci_insights.models.items import (  # noqa: F401
    ItemType, ItemState, Author, Label, GitHubItem, SyncMetadata,
    PageInfo, IssueNode, PullRequestNode, ItemPage,
)
from ci_insights.models.bus_factor import (  # noqa: F401
    Contributor, BusFactorResult, BusFactorCache,
)
