"""Messages and effects exchanged between the engine and the app loop.

The engine never runs I/O itself. Operations return a list of effects:

* a zero-argument callable, executed off the loop in a worker thread. Its
  return value (a message or ``None``) is fed back into the loop.
* ``Delayed(seconds, msg)``, delivered back into the loop after a timer.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, List, Optional, Union

from .datamodels import (
    Branch,
    Comment,
    FetchResult,
    Label,
    PageCursor,
    PullRequest,
    SectionType,
)

Cmd = Callable[[], Any]


@dataclass
class Delayed:
    delay: float
    msg: Any


Effect = Union[Cmd, Delayed]
Effects = List[Effect]


# --- Task lifecycle ---
@dataclass
class TaskFinished:
    task_id: str
    section_id: int
    section_type: Optional[SectionType]
    error: Optional[str] = None
    msg: Any = None


@dataclass
class ClearTask:
    task_id: str
    finished_time: Optional[float]


@dataclass
class SpinnerTick:
    pass


# --- Fetching ---
@dataclass
class RowsFetched:
    task_id: str
    result: FetchResult
    cursor_used: Optional[PageCursor]


@dataclass
class IntervalRefresh:
    pass


@dataclass
class UserFetched:
    login: str


@dataclass
class SuggestionsFetched:
    kind: str
    items: List[str]


# --- Optimistic updates after a mutation ---
@dataclass
class UpdatePR:
    number: int
    # Empty matches the number in any repo.
    repo: str = ""
    is_closed: Optional[bool] = None
    ready_for_review: Optional[bool] = None
    is_merged: Optional[bool] = None
    new_comment: Optional[Comment] = None
    added_assignees: List[str] = field(default_factory=list)
    removed_assignees: List[str] = field(default_factory=list)
    labels: Optional[List[Label]] = None


@dataclass
class UpdateIssue:
    number: int
    repo: str = ""
    is_closed: Optional[bool] = None
    new_comment: Optional[Comment] = None
    added_assignees: List[str] = field(default_factory=list)
    removed_assignees: List[str] = field(default_factory=list)
    labels: Optional[List[Label]] = None


@dataclass
class UpdateBranch:
    name: str
    is_created: Optional[bool] = None
    is_deleted: Optional[bool] = None
    is_checked_out: Optional[bool] = None
    new_branch: Optional[Branch] = None
    new_pr: Optional[PullRequest] = None


@dataclass
class UpdateNotification:
    id: str
    is_done: Optional[bool] = None
    unsubscribed: Optional[bool] = None
    updated_at: Optional[datetime] = None


@dataclass
class UpdateNotificationReadState:
    id: str
    unread: bool


@dataclass
class MarkAllRead:
    pass


@dataclass
class ClearAllNotifications:
    pass
