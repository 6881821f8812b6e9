"""Issue/PR mirror records and the GraphQL node shapes they are parsed from."""

from datetime import datetime
from enum import Enum

from pydantic import model_validator

from ci_insights.models.base import CamelModel


class ItemType(str, Enum):
    ISSUE = "issue"
    PR = "pr"


class ItemState(str, Enum):
    OPEN = "open"
    CLOSED = "closed"
    MERGED = "merged"


class Author(CamelModel):
    login: str
    avatar_url: str = ""


class Label(CamelModel):
    name: str
    color: str = ""


class GitHubItem(CamelModel):
    number: int
    type: ItemType
    title: str
    state: ItemState
    created_at: datetime
    closed_at: datetime | None = None
    updated_at: datetime
    author: Author | None = None
    labels: list[Label] = []
    comment_count: int = 0

    @model_validator(mode="after")
    def _merged_only_for_prs(self):
        if self.state == ItemState.MERGED and self.type != ItemType.PR:
            raise ValueError(f"issue #{self.number} cannot be merged")
        return self

    def label_names(self) -> list[str]:
        return [label.name for label in self.labels]


class SyncMetadata(CamelModel):
    last_sync: datetime
    highest_number: int = 0
    oldest_date: str
    issue_count: int = 0
    pr_count: int = 0


# ── GraphQL nodes ────────────────────────────────────────────────────────────

class PageInfo(CamelModel):
    has_next_page: bool = False
    end_cursor: str | None = None


class _LabelConnection(CamelModel):
    nodes: list[Label] = []


class _CommentConnection(CamelModel):
    total_count: int = 0


class IssueNode(CamelModel):
    number: int
    title: str
    state: str
    state_reason: str | None = None
    created_at: datetime
    closed_at: datetime | None = None
    updated_at: datetime
    author: Author | None = None
    labels: _LabelConnection = _LabelConnection()
    comments: _CommentConnection = _CommentConnection()

    def to_item(self) -> GitHubItem:
        return GitHubItem(
            number=self.number,
            type=ItemType.ISSUE,
            title=self.title,
            state=ItemState.OPEN if self.state.upper() == "OPEN" else ItemState.CLOSED,
            created_at=self.created_at,
            closed_at=self.closed_at,
            updated_at=self.updated_at,
            author=self.author,
            labels=self.labels.nodes,
            comment_count=self.comments.total_count,
        )


class PullRequestNode(CamelModel):
    number: int
    title: str
    state: str
    merged: bool = False
    created_at: datetime
    closed_at: datetime | None = None
    merged_at: datetime | None = None
    updated_at: datetime
    author: Author | None = None
    labels: _LabelConnection = _LabelConnection()
    comments: _CommentConnection = _CommentConnection()

    def to_item(self) -> GitHubItem:
        # merge flag wins over the raw state
        if self.merged:
            state = ItemState.MERGED
        elif self.state.upper() == "OPEN":
            state = ItemState.OPEN
        else:
            state = ItemState.CLOSED
        return GitHubItem(
            number=self.number,
            type=ItemType.PR,
            title=self.title,
            state=state,
            created_at=self.created_at,
            closed_at=self.closed_at or self.merged_at,
            updated_at=self.updated_at,
            author=self.author,
            labels=self.labels.nodes,
            comment_count=self.comments.total_count,
        )


class ItemPage(CamelModel):
    page_info: PageInfo = PageInfo()
    items: list[GitHubItem] = []
