from __future__ import annotations

import pytest

from dash_tui.datamodels import PageCursor
from dash_tui.fetcher import build_fetch_task_id
from dash_tui.messages import RowsFetched, TaskFinished
from dash_tui.sections.prs import PullRequestSection

from conftest import FakeSource, make_pr, run_workers


@pytest.fixture
def source():
    return FakeSource([[make_pr(1), make_pr(2)], [make_pr(3), make_pr(4)], [make_pr(5)]])


@pytest.fixture
def section(ctx, source):
    return PullRequestSection(ctx, 1, {"title": "Mine", "filters": "is:open"}, source)


def _fetch(section):
    """Dispatch one page fetch and deliver its result."""
    msgs = run_workers(section.fetch_next_page())
    for msg in msgs:
        if msg.error:
            section.on_task_error(msg.task_id, msg.error)
        else:
            section.update(msg.msg)
    return msgs


def _numbers(section):
    return [pr.number for pr in section.state.rows]


def test_task_id_format():
    assert build_fetch_task_id("prs", 2, 3, None, 12.5) == "fetching_prs_2_3_12.500000"
    cursor = PageCursor("abc", True)
    assert build_fetch_task_id("issues", 1, 4, cursor, 12.5) == "fetching_issues_1_4_abc"


def test_fetch_starts_task_and_marks_loading(section, ctx):
    effects = section.fetch_next_page()
    task_id = section.state.last_fetch_task_id
    assert task_id.startswith("fetching_prs_1_1_")
    assert section.state.is_loading
    assert ctx.tasks.tasks[task_id].start_text == "Fetching PRs for Mine"
    msg = run_workers(effects)[0]
    assert isinstance(msg, TaskFinished)
    assert isinstance(msg.msg, RowsFetched)
    assert msg.msg.cursor_used is None


def test_pages_append_in_order(section, source):
    _fetch(section)
    assert _numbers(section) == [1, 2]
    assert section.state.page_cursor == PageCursor("1", True)
    _fetch(section)
    assert _numbers(section) == [1, 2, 3, 4]
    _fetch(section)
    assert _numbers(section) == [1, 2, 3, 4, 5]
    assert section.state.total_count == 5
    assert not section.state.page_cursor.has_next_page
    assert [call[2] for call in source.calls] == [None, PageCursor("1", True), PageCursor("2", True)]


def test_exhausted_cursor_is_a_no_op(section, source):
    for _ in range(3):
        _fetch(section)
    last_id = section.state.last_fetch_task_id
    assert section.fetch_next_page() == []
    assert section.state.last_fetch_task_id == last_id
    assert len(source.calls) == 3


def _two_fetches(section, source):
    source.pages = [[make_pr(10)]]
    first = run_workers(section.fetch_next_page())[0]
    source.pages = [[make_pr(20)]]
    second = run_workers(section.refresh())[0]
    assert first.task_id != second.task_id
    return first, second


def test_stale_result_arriving_late_is_dropped(section, source):
    first, second = _two_fetches(section, source)
    section.update(second.msg)
    section.update(first.msg)
    assert _numbers(section) == [20]


def test_stale_result_arriving_early_is_dropped(section, source):
    first, second = _two_fetches(section, source)
    section.update(first.msg)
    assert _numbers(section) == []
    assert section.state.is_loading
    section.update(second.msg)
    assert _numbers(section) == [20]
    assert not section.state.is_loading


def test_failed_page_keeps_rows(section, source):
    _fetch(section)
    source.error = RuntimeError("rate limited")
    msgs = _fetch(section)
    assert msgs[0].error == "rate limited"
    assert _numbers(section) == [1, 2]
    assert section.state.error == "rate limited"
    assert not section.state.is_loading


def test_stale_error_is_ignored(section, source):
    source.error = RuntimeError("boom")
    failed = run_workers(section.fetch_next_page())[0]
    source.error = None
    _fetch(section)
    section.on_task_error(failed.task_id, failed.error)
    assert section.state.error is None
    assert _numbers(section) == [1, 2]


def test_moving_near_the_end_fetches_next_page(section):
    _fetch(section)
    effects = section.move_cursor(1)
    assert effects
    assert section.state.is_loading
    # Nothing more while a page is in flight.
    assert section.move_cursor(-1) == []


def test_background_refresh_keeps_rows_until_replaced(section, source):
    _fetch(section)
    effects = section.refresh(manual=False)
    assert _numbers(section) == [1, 2]
    source.pages = [[make_pr(7)]]
    msg = run_workers(effects)[0]
    section.update(msg.msg)
    assert _numbers(section) == [7]
