from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, List, Optional, Set

from .. import actions
from ..datamodels import DisplayRow, FetchResult, Notification, PageCursor, SectionType
from ..fetcher import build_fetch_task_id
from ..messages import (
    ClearAllNotifications,
    Effects,
    MarkAllRead,
    UpdateNotification,
    UpdateNotificationReadState,
)
from ..sources.base import NotificationSource
from ..stores import DoneStore, OverrideStore
from .base import Section, find_row, time_ago

logger = logging.getLogger("dash")

PARTICIPATING_REASONS = (
    "author",
    "comment",
    "mention",
    "review_requested",
    "assign",
    "state_change",
)

DONE_UNSUPPORTED = "done notifications cannot be retrieved"

SUBJECT_ICONS = {"PullRequest": "PR", "Issue": "IS", "Discussion": "DI", "Release": "RE", "CheckSuite": "CI"}


class ReadState(Enum):
    UNREAD = "unread"
    READ = "read"
    ALL = "all"
    DONE = "done"


@dataclass
class NotificationFilters:
    repos: List[str] = field(default_factory=list)
    reasons: List[str] = field(default_factory=list)
    read_state: ReadState = ReadState.UNREAD
    # True when the user asked for a read state, which bypasses local overrides.
    explicit: bool = False

    @property
    def include_overrides(self) -> bool:
        return not self.explicit

    def remote_filters(self) -> str:
        tokens = [f"repo:{r}" for r in self.repos]
        if self.read_state in (ReadState.READ, ReadState.ALL):
            tokens.append("is:all")
        return " ".join(tokens)


def parse_notification_filters(filters: str) -> NotificationFilters:
    parsed = NotificationFilters()
    states: Set[str] = set()
    for token in filters.split():
        key, sep, value = token.partition(":")
        if not sep or not value:
            continue
        if key == "repo":
            parsed.repos.append(value)
        elif key == "reason":
            reason = value.replace("-", "_")
            if reason == "participating":
                parsed.reasons.extend(PARTICIPATING_REASONS)
            else:
                parsed.reasons.append(reason)
        elif key == "is" and value in ("unread", "read", "done", "all"):
            states.add(value)

    if "done" in states:
        parsed.read_state = ReadState.DONE
    elif "all" in states or {"read", "unread"} <= states:
        parsed.read_state = ReadState.ALL
    elif "read" in states:
        parsed.read_state = ReadState.READ
    parsed.explicit = bool(states)
    return parsed


def _keep(
    n: Notification,
    parsed: NotificationFilters,
    bookmarked: Set[str],
    session_read: Set[str],
    session_done: Set[str],
    done: DoneStore,
) -> bool:
    if n.id in session_done or done.is_done(n.id, n.updated_at):
        return False
    n.bookmarked = n.id in bookmarked
    if parsed.reasons and n.reason not in parsed.reasons:
        return False
    if parsed.include_overrides:
        if n.id in session_read:
            n.unread = False
            return True
        return n.unread or n.bookmarked
    if parsed.read_state is ReadState.UNREAD:
        return n.unread
    if parsed.read_state is ReadState.READ:
        return not n.unread
    return True


def collect_notifications(
    source: NotificationSource,
    parsed: NotificationFilters,
    limit: int,
    cursor: Optional[PageCursor],
    bookmarked: Set[str],
    session_read: Set[str],
    session_done: Set[str],
    done: DoneStore,
) -> FetchResult:
    """Fetch pages until ``limit`` rows survive local filtering.

    On the first page, bookmarked and session-read threads the remote
    listing did not return are looked up one by one.
    """
    rows: List[Notification] = []
    seen: Set[str] = set()
    remote_filters = parsed.remote_filters()
    page_cursor = cursor

    while True:
        page = source.fetch(remote_filters, limit, page_cursor)
        for n in page.rows:
            if n.id in seen:
                continue
            seen.add(n.id)
            if _keep(n, parsed, bookmarked, session_read, session_done, done):
                rows.append(n)
        page_cursor = page.page_cursor
        if len(rows) >= limit or not page_cursor.has_next_page:
            break

    if cursor is None and parsed.include_overrides:
        missing = sorted((bookmarked | session_read) - seen - session_done)
        if missing:
            with ThreadPoolExecutor(max_workers=8) as executor:
                future_to_id = {executor.submit(source.fetch_thread, i): i for i in missing}
                for future in as_completed(future_to_id):
                    thread_id = future_to_id[future]
                    try:
                        n = future.result()
                    except Exception as e:
                        logger.error("Failed to fetch notification %s: %s", thread_id, e)
                        continue
                    if n is None or (parsed.repos and n.repo not in parsed.repos):
                        continue
                    if _keep(n, parsed, bookmarked, session_read, session_done, done):
                        rows.append(n)

    return FetchResult(rows=rows, total_count=len(rows), page_cursor=page_cursor)


class NotificationSection(Section):
    section_type = SectionType.NOTIFICATIONS
    kind_label = "notifications"
    item_label = "Notification"
    limit_key = "notifications_limit"
    columns = ("", "", "Title", "Repo", "Reason", "Updated")

    PROMPTS = {
        "done": "Are you sure you want to mark this notification as done? (Y/n) ",
        "done_all": "Are you sure you want to mark all notifications as done? (Y/n) ",
    }

    def __init__(self, *args: Any, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self.session_read = OverrideStore()
        self.session_done = OverrideStore()
        self.sort_by = "updated"

    def make_fetcher(self) -> Callable[[str, int, Optional[PageCursor]], FetchResult]:
        source = self.source
        bookmarked = self.ctx.bookmarks.all_marked()
        session_read = self.session_read.all_marked()
        session_done = self.session_done.all_marked()
        done = self.ctx.done.snapshot()

        def fetch(filters: str, limit: int, cursor: Optional[PageCursor]) -> FetchResult:
            parsed = parse_notification_filters(filters)
            return collect_notifications(
                source, parsed, limit, cursor, bookmarked, session_read, session_done, done
            )

        return fetch

    def fetch_next_page(self) -> Effects:
        parsed = parse_notification_filters(self.get_filters())
        if parsed.read_state is ReadState.DONE:
            self.has_fetched = True
            self.state.rows = []
            self.state.total_count = 0
            self.state.page_cursor = PageCursor(None, False)
            self.state.is_loading = False
            self.state.error = DONE_UNSUPPORTED
            # Supersede any fetch still in flight for the previous filters.
            task_id = build_fetch_task_id(
                self.section_type.value, self.section_id, self.next_fetch_seq(), None, self.ctx.clock()
            )
            self.state.last_fetch_task_id = task_id
            return self.ctx.tasks.report_error(task_id, DONE_UNSUPPORTED)
        return super().fetch_next_page()

    def refresh(self, manual: bool = True) -> Effects:
        if manual:
            self.session_read.clear()
            self.session_done.clear()
        return super().refresh(manual)

    def on_rows_fetched(self, selected: Optional[Notification]) -> None:
        # Threads looked up on the first page can show up again in a later one.
        rows: List[Notification] = []
        seen: Set[str] = set()
        for n in self.state.rows:
            if n.id not in seen:
                seen.add(n.id)
                rows.append(n)
        self.state.rows = rows
        self.state.total_count = len(rows)
        self.sort_rows(selected.id if selected is not None else None)

    def sort_rows(self, selected_id: Optional[str] = None) -> None:
        if self.sort_by == "repo":
            self.state.rows.sort(key=lambda n: n.updated_at, reverse=True)
            self.state.rows.sort(key=lambda n: n.repo.lower())
        else:
            self.state.rows.sort(key=lambda n: n.updated_at, reverse=True)
        index = None
        if selected_id is not None:
            index = find_row(self.state.rows, lambda n: n.id == selected_id)
        self.state.cursor = index if index is not None else 0

    def build_row(self, n: Notification) -> DisplayRow:
        return (
            "●" if n.unread else "",
            "★" if n.bookmarked else SUBJECT_ICONS.get(n.subject_type, ""),
            f"#{n.number} {n.title}" if n.number else n.title,
            n.repo,
            n.reason.replace("_", " "),
            time_ago(n.updated_at),
        )

    def run_action(self, action: str) -> Effects:
        if action == "mark_all_read":
            return actions.mark_all_notifications_read(self.ctx, self.identifier)
        if action == "sort":
            current = self.get_curr_row()
            self.sort_by = "repo" if self.sort_by == "updated" else "updated"
            self.sort_rows(current.id if current is not None else None)
            return []
        n: Optional[Notification] = self.get_curr_row()
        if n is None:
            return []
        if action == "mark_read":
            return actions.mark_notification_read(self.ctx, self.identifier, n)
        if action == "unsubscribe":
            return actions.unsubscribe_notification(self.ctx, self.identifier, n)
        if action == "bookmark":
            n.bookmarked = self.ctx.bookmarks.toggle(n.id)
            return []
        if action == "view":
            effects = actions.open_url(n.url)
            if n.unread:
                effects += actions.mark_notification_read(self.ctx, self.identifier, n)
            return effects
        return super().run_action(action)

    def run_confirmed(self, action: str, value: str) -> Effects:
        if action == "done_all":
            return actions.mark_all_notifications_done(self.ctx, self.identifier, list(self.state.rows))
        n = self.get_curr_row()
        if n is None:
            return []
        return actions.mark_notification_done(self.ctx, self.identifier, n)

    def begin_prompt(self, action: str) -> bool:
        if action == "done_all" and not self.state.rows:
            return False
        return super().begin_prompt(action)

    def apply_update(self, msg: Any) -> Effects:
        rows = self.state.rows
        if isinstance(msg, UpdateNotificationReadState):
            index = find_row(rows, lambda n: n.id == msg.id)
            if index is not None:
                rows[index].unread = msg.unread
            if not msg.unread:
                self.session_read.mark(msg.id)
        elif isinstance(msg, MarkAllRead):
            for n in rows:
                n.unread = False
                self.session_read.mark(n.id)
        elif isinstance(msg, UpdateNotification):
            index = find_row(rows, lambda n: n.id == msg.id)
            if msg.is_done:
                self.session_done.mark(msg.id)
                self.ctx.done.mark(msg.id, msg.updated_at)
                if index is not None:
                    del rows[index]
                    self.state.total_count = len(rows)
            elif msg.unsubscribed and index is not None:
                rows[index].unread = False
                self.session_read.mark(msg.id)
        elif isinstance(msg, ClearAllNotifications):
            for n in rows:
                self.session_done.mark(n.id)
                self.ctx.done.mark(n.id, n.updated_at)
            self.state.rows = []
            self.state.total_count = 0
        return []
