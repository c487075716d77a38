from __future__ import annotations

from typing import List

import pytest

from dash_tui.coordinator import ViewCoordinator
from dash_tui.datamodels import Branch, SectionType, Task, TaskState
from dash_tui.messages import (
    ClearTask,
    Delayed,
    IntervalRefresh,
    SpinnerTick,
    SuggestionsFetched,
    TaskFinished,
    UserFetched,
)
from dash_tui.sources.base import SuggestionSource

from conftest import (
    FakeNotificationSource,
    FakeSource,
    delayed,
    make_issue,
    make_notification,
    make_pr,
    run_workers,
)


class FakeSources:
    def __init__(self):
        self.by_type = {
            SectionType.PRS: FakeSource([[make_pr(1), make_pr(2)]]),
            SectionType.ISSUES: FakeSource([[make_issue(3)]]),
            SectionType.NOTIFICATIONS: FakeNotificationSource([make_notification("10")]),
            SectionType.REPO: FakeSource([[Branch("main", is_current=True)]]),
        }

    def source_for(self, section_type):
        return self.by_type[section_type]


class FakeSuggestions(SuggestionSource):
    def viewer_login(self) -> str:
        return "alice"

    def list_labels(self, repo: str) -> List[str]:
        return ["bug", "docs"]

    def list_users(self, repo: str) -> List[str]:
        return ["alice", "bob"]


@pytest.fixture
def sources():
    return FakeSources()


@pytest.fixture
def coordinator(ctx, sources):
    return ViewCoordinator(ctx, sources, FakeSuggestions())


def _task(id):
    return Task(id=id, start_text="start", finished_text="done")


def deliver(coordinator, effects):
    """Run worker effects and feed their messages back, like the app loop."""
    for msg in run_workers(effects):
        coordinator.update(msg)


def test_views_and_default_selection(coordinator, ctx):
    assert coordinator.views() == ["notifications", "prs", "issues", "repo"]
    assert ctx.view == "prs"
    assert coordinator.tabs() == ["Search", "My Pull Requests", "Needs My Review", "Involved"]
    assert coordinator.current_section().section_id == 1


def test_repo_view_needs_a_clone(ctx, sources):
    ctx.repo_path = None
    coordinator = ViewCoordinator(ctx, sources)
    assert "repo" not in coordinator.views()


def test_unknown_default_view_falls_back(ctx, sources):
    ctx.config["defaults"]["view"] = "repo"
    ctx.repo_path = None
    ViewCoordinator(ctx, sources)
    assert ctx.view == "notifications"


def test_init_fetches_configured_sections_and_pools(coordinator, ctx, sources):
    deliver(coordinator, coordinator.init())
    prs = coordinator.sections["prs"]
    assert not prs[0].has_fetched
    assert [len(s.state.rows) for s in prs[1:]] == [2, 2, 2]
    assert len(sources.by_type[SectionType.PRS].calls) == 3
    assert not coordinator.sections["issues"][1].has_fetched
    assert ctx.user == "alice"
    assert ctx.labels == ["bug", "docs"]
    assert coordinator.suggestions_for("users") == ["alice", "bob"]


def test_switch_view_cycles_and_fetches_lazily(coordinator, ctx, sources):
    deliver(coordinator, coordinator.switch_view())
    assert ctx.view == "issues"
    assert len(sources.by_type[SectionType.ISSUES].calls) == 3
    coordinator.switch_view()
    assert ctx.view == "repo"
    coordinator.switch_view()
    assert ctx.view == "notifications"
    coordinator.switch_view()
    assert ctx.view == "prs"


def test_section_navigation_wraps(coordinator):
    coordinator.prev_section()
    assert coordinator.current_section().section_id == 0
    coordinator.prev_section()
    assert coordinator.current_section().section_id == 3


def test_search_section_is_not_fetched_on_selection(coordinator):
    assert coordinator.prev_section() == []
    assert not coordinator.current_section().has_fetched


def test_task_result_reaches_its_section_only(coordinator):
    deliver(coordinator, coordinator.init())
    section = coordinator.current_section()
    coordinator.handle_key("x")
    msgs = run_workers(section.confirm_prompt(""))
    assert isinstance(msgs[0], TaskFinished)
    coordinator.update(msgs[0])
    assert section.state.rows[0].state == "CLOSED"
    other = coordinator.find_section(2, SectionType.PRS)
    assert other.state.rows[0].state == "OPEN"


def test_failed_mutation_skips_optimistic_update(coordinator, ctx, executor):
    deliver(coordinator, coordinator.init())
    section = coordinator.current_section()
    coordinator.handle_key("x")
    executor.fail_with = "GraphQL: Could not close"
    deliver(coordinator, section.confirm_prompt(""))
    assert section.state.rows[0].state == "OPEN"
    task = ctx.tasks.tasks["pr_close_owner/repo_1"]
    assert task.state is TaskState.ERROR
    assert task.error == "GraphQL: Could not close"


def test_unknown_section_only_finishes_task(coordinator, ctx):
    ctx.tasks.start(_task("x"))
    effects = coordinator.update(TaskFinished("x", 99, SectionType.PRS))
    assert ctx.tasks.tasks["x"].state is TaskState.FINISHED
    assert [type(e.msg) for e in effects] == [ClearTask]


def test_spinner_and_clear_messages(coordinator, ctx):
    ctx.tasks.start(_task("a"))
    assert delayed(coordinator.update(SpinnerTick()))
    effects = ctx.tasks.finish("a")
    assert coordinator.update(SpinnerTick()) == []
    coordinator.update(effects[0].msg)
    assert ctx.tasks.tasks == {}


def test_interval_refresh_reschedules(ctx, sources):
    ctx.config["defaults"]["refetch_interval_minutes"] = 5
    coordinator = ViewCoordinator(ctx, sources)
    effects = coordinator.init()
    assert Delayed(300, IntervalRefresh()) in effects
    deliver(coordinator, effects)

    effects = coordinator.update(IntervalRefresh())
    assert Delayed(300, IntervalRefresh()) in effects
    # Only sections fetched before take part, and their rows stay put.
    assert len([e for e in effects if callable(e)]) == 3
    assert all(len(s.state.rows) == 2 for s in coordinator.sections["prs"][1:])


def test_manual_refresh_of_current_and_all(coordinator, sources):
    deliver(coordinator, coordinator.init())
    calls = sources.by_type[SectionType.PRS].calls
    deliver(coordinator, coordinator.refresh())
    assert len(calls) == 4
    deliver(coordinator, coordinator.refresh_all())
    assert len(calls) == 7


def test_handle_key(coordinator, ctx):
    deliver(coordinator, coordinator.init())
    assert coordinator.handle_key("?") is None
    assert coordinator.handle_key("x") == []
    assert coordinator.current_section().state.prompt is not None
    # Keys go to the prompt while it is open.
    assert coordinator.handle_key("X") is None


def test_handle_key_ignored_while_searching(coordinator):
    coordinator.current_section().begin_search()
    assert coordinator.handle_key("x") is None


def test_keybinding_overrides(coordinator, ctx):
    deliver(coordinator, coordinator.init())
    ctx.config["keybindings"] = {"prs": {"z": "close"}}
    coordinator.handle_key("z")
    assert coordinator.current_section().state.prompt.action == "close"


def test_input_request_round_trip(coordinator, executor):
    deliver(coordinator, coordinator.init())
    coordinator.handle_key("c")
    request = coordinator.pending_input()
    assert request.action == "comment"
    assert coordinator.pending_input() is None
    deliver(coordinator, coordinator.submit_input(request, "thanks @bob"))
    assert executor.calls[0][1] == ["pr", "comment", "1", "-R", "owner/repo", "-b", "thanks @bob"]


def test_notification_subject_follows_cursor(coordinator, ctx):
    coordinator.switch_view()
    coordinator.switch_view()
    assert ctx.notification_subject is None
    deliver(coordinator, coordinator.switch_view())
    assert ctx.view == "notifications"
    assert ctx.notification_subject.id == "10"
    assert coordinator.preview().plain.startswith("Thread 10")
    coordinator.switch_view()
    assert ctx.notification_subject is None


def test_pool_messages(coordinator, ctx):
    coordinator.update(UserFetched("carol"))
    coordinator.update(SuggestionsFetched("labels", ["wontfix"]))
    assert ctx.user == "carol"
    assert coordinator.suggestions_for("labels") == ["wontfix"]


def test_toggle_preview(coordinator):
    assert coordinator.preview_open
    coordinator.toggle_preview()
    assert not coordinator.preview_open
