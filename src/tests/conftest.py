from __future__ import annotations

import copy
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pytest

from dash_tui.config import DEFAULT_CONFIG
from dash_tui.context import ProgramContext
from dash_tui.datamodels import (
    FetchResult,
    Issue,
    Notification,
    PageCursor,
    PullRequest,
)
from dash_tui.messages import Delayed
from dash_tui.sources.base import MutationError, MutationExecutor, NotificationSource, RemoteSource

BASE_TIME = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeSource(RemoteSource):
    """Serves pages of rows; the cursor token is the page index."""

    def __init__(self, pages: Optional[List[List[Any]]] = None):
        super().__init__({})
        self.pages = pages or [[]]
        self.calls: List[tuple] = []
        self.error: Optional[Exception] = None

    def fetch(self, filters: str, limit: int, cursor: Optional[PageCursor]) -> FetchResult:
        self.calls.append((filters, limit, cursor))
        if self.error is not None:
            raise self.error
        index = int(cursor.token) if cursor else 0
        has_next = index + 1 < len(self.pages)
        return FetchResult(
            rows=[copy.copy(row) for row in self.pages[index]],
            total_count=sum(len(p) for p in self.pages),
            page_cursor=PageCursor(str(index + 1) if has_next else None, has_next),
        )


class FakeNotificationSource(NotificationSource):
    def __init__(self, listing: List[Notification], threads: Optional[Dict[str, Notification]] = None):
        super().__init__({})
        self.listing = listing
        self.threads = threads or {}
        self.calls: List[str] = []

    def fetch(self, filters: str, limit: int, cursor: Optional[PageCursor]) -> FetchResult:
        self.calls.append(filters)
        include_read = "is:all" in filters.split()
        rows = [copy.copy(n) for n in self.listing if include_read or n.unread]
        return FetchResult(rows=rows, total_count=len(rows), page_cursor=PageCursor(None, False))

    def fetch_thread(self, thread_id: str) -> Optional[Notification]:
        n = self.threads.get(thread_id)
        return copy.copy(n) if n else None


class FakeExecutor(MutationExecutor):
    def __init__(self):
        self.calls: List[tuple] = []
        self.fail_with: Optional[str] = None

    def execute(self, action_id: str, args: List[str], cwd: Optional[str] = None) -> str:
        self.calls.append((action_id, list(args), cwd))
        if self.fail_with:
            raise MutationError(self.fail_with, 1)
        return ""


def make_pr(number: int, repo: str = "owner/repo", **kwargs: Any) -> PullRequest:
    return PullRequest(
        number=number,
        repo=repo,
        title=kwargs.pop("title", f"PR {number}"),
        url=f"https://github.com/{repo}/pull/{number}",
        updated_at=kwargs.pop("updated_at", BASE_TIME),
        **kwargs,
    )


def make_issue(number: int, repo: str = "owner/repo", **kwargs: Any) -> Issue:
    return Issue(
        number=number,
        repo=repo,
        title=kwargs.pop("title", f"Issue {number}"),
        url=f"https://github.com/{repo}/issues/{number}",
        updated_at=kwargs.pop("updated_at", BASE_TIME),
        **kwargs,
    )


def make_notification(id: str, unread: bool = True, minutes: int = 0, **kwargs: Any) -> Notification:
    return Notification(
        id=id,
        repo=kwargs.pop("repo", "owner/repo"),
        title=kwargs.pop("title", f"Thread {id}"),
        url=f"https://github.com/owner/repo/issues/{id}",
        updated_at=BASE_TIME + timedelta(minutes=minutes),
        reason=kwargs.pop("reason", "mention"),
        unread=unread,
        **kwargs,
    )


def run_workers(effects: List[Any]) -> List[Any]:
    """Run the worker effects in order and collect the messages they return."""
    results = []
    for effect in effects:
        if isinstance(effect, Delayed):
            continue
        msg = effect()
        if msg is not None:
            results.append(msg)
    return results


def delayed(effects: List[Any]) -> List[Delayed]:
    return [e for e in effects if isinstance(e, Delayed)]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def executor():
    return FakeExecutor()


@pytest.fixture
def config():
    cfg = copy.deepcopy(DEFAULT_CONFIG)
    cfg["smart_filtering_at_launch"] = False
    cfg["defaults"]["refetch_interval_minutes"] = 0
    return cfg


@pytest.fixture
def ctx(config, executor, clock):
    return ProgramContext(
        config=config,
        executor=executor,
        git=executor,
        repo="owner/repo",
        repo_path="/work/repo",
        user="me",
        clock=clock,
    )
