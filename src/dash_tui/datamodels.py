from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, List, Optional, Tuple

EPOCH = datetime.fromtimestamp(0, tz=timezone.utc)


class SectionType(str, Enum):
    PRS = "prs"
    ISSUES = "issues"
    NOTIFICATIONS = "notifications"
    REPO = "repo"


class TaskState(Enum):
    START = "start"
    FINISHED = "finished"
    ERROR = "error"


@dataclass(frozen=True)
class SectionIdentifier:
    id: int
    type: SectionType


# Section id reserved for the ad-hoc search section of a view.
SEARCH_SECTION_ID = 0


@dataclass(frozen=True)
class PageCursor:
    token: Optional[str]
    has_next_page: bool


@dataclass
class Task:
    id: str
    start_text: str
    finished_text: str
    state: TaskState = TaskState.START
    error: Optional[str] = None
    start_time: float = 0.0
    finished_time: Optional[float] = None


# --- Rows ---
@dataclass
class Comment:
    author: str
    body: str
    updated_at: datetime


@dataclass
class Label:
    name: str
    color: str = ""


@dataclass
class PullRequest:
    number: int
    repo: str
    title: str
    url: str
    updated_at: datetime
    author: str = ""
    state: str = "OPEN"
    is_draft: bool = False
    body: str = ""
    head_ref: str = ""
    base_ref: str = ""
    additions: int = 0
    deletions: int = 0
    review_decision: str = ""
    labels: List[Label] = field(default_factory=list)
    assignees: List[str] = field(default_factory=list)
    comments: List[Comment] = field(default_factory=list)

    @property
    def identity(self) -> Tuple[str, int]:
        return (self.repo, self.number)


@dataclass
class Issue:
    number: int
    repo: str
    title: str
    url: str
    updated_at: datetime
    author: str = ""
    state: str = "OPEN"
    body: str = ""
    labels: List[Label] = field(default_factory=list)
    assignees: List[str] = field(default_factory=list)
    comments: List[Comment] = field(default_factory=list)

    @property
    def identity(self) -> Tuple[str, int]:
        return (self.repo, self.number)


@dataclass
class Notification:
    id: str
    repo: str
    title: str
    url: str
    updated_at: datetime
    reason: str = ""
    subject_type: str = ""
    unread: bool = True
    number: int = 0
    bookmarked: bool = False

    @property
    def identity(self) -> str:
        return self.id


@dataclass
class Branch:
    name: str
    repo: str = ""
    updated_at: datetime = EPOCH
    last_commit_msg: str = ""
    is_current: bool = False
    ahead: int = 0
    behind: int = 0
    pr: Optional[PullRequest] = None

    @property
    def number(self) -> int:
        return self.pr.number if self.pr else 0

    @property
    def title(self) -> str:
        return self.name

    @property
    def url(self) -> str:
        return self.pr.url if self.pr else ""

    @property
    def identity(self) -> str:
        return self.name


@dataclass
class FetchResult:
    rows: List[Any]
    total_count: int
    page_cursor: PageCursor


# One rendered table line, one cell per column.
DisplayRow = Tuple[str, ...]
