from __future__ import annotations

import pytest

from dash_tui.autocomplete import Mode
from dash_tui.datamodels import Branch, Label, TaskState
from dash_tui.messages import UpdateBranch, UpdateIssue, UpdatePR
from dash_tui.sections.base import time_ago
from dash_tui.sections.branches import BranchSection
from dash_tui.sections.issues import IssueSection
from dash_tui.sections.prs import PullRequestSection

from conftest import BASE_TIME, FakeSource, make_issue, make_pr, run_workers


def _load(section):
    for msg in run_workers(section.fetch_next_page()):
        section.update(msg.msg)
    return section


@pytest.fixture
def prs(ctx):
    source = FakeSource([[make_pr(1, labels=[Label("bug", "d73a4a")], assignees=["bob"]), make_pr(2)]])
    return _load(PullRequestSection(ctx, 1, {"title": "Mine", "filters": "is:open author:@me"}, source))


# --- Confirmation prompts ---
def test_empty_answer_confirms(prs, executor):
    prs.perform("close")
    assert prs.state.prompt.text == "Are you sure you want to close this PR? (Y/n) "
    msgs = run_workers(prs.confirm_prompt(""))
    assert executor.calls == [("pr_close_owner/repo_1", ["pr", "close", "1", "-R", "owner/repo"], None)]
    assert msgs[0].msg == UpdatePR(1, "owner/repo", is_closed=True)
    assert prs.state.prompt is None


@pytest.mark.parametrize("answer", ["y", "Y"])
def test_yes_confirms(prs, executor, answer):
    prs.perform("merge")
    run_workers(prs.confirm_prompt(answer))
    assert executor.calls[0][1][:2] == ["pr", "merge"]


@pytest.mark.parametrize("answer", ["n", "no", "x"])
def test_other_answers_cancel(prs, executor, answer):
    prs.perform("close")
    assert prs.confirm_prompt(answer) == []
    assert executor.calls == []
    assert prs.state.prompt is None


def test_escape_cancels_prompt(prs, executor):
    prs.perform("reopen")
    prs.set_prompt_value("y")
    assert prs.get_pager_content().endswith("(Y/n) y")
    prs.cancel_prompt()
    assert prs.state.prompt is None
    assert prs.confirm_prompt() == []
    assert executor.calls == []


def test_prompt_needs_a_row(ctx):
    section = PullRequestSection(ctx, 1, {"title": "Mine", "filters": ""}, FakeSource())
    assert section.begin_prompt("close") is False
    assert section.state.prompt is None


# --- Searching ---
def test_cancelled_search_keeps_value(prs, ctx):
    prs.begin_search()
    prs.set_search_bar_value("is:closed")
    prs.cancel_search()
    assert prs.state.search_value == "is:open author:@me"
    assert prs.state.search_bar_value == "is:open author:@me"
    assert not prs.state.is_searching


def test_submitted_search_refetches(prs):
    prs.begin_search()
    effects = prs.submit_search("  is:closed  ")
    assert prs.state.search_value == "is:closed"
    assert prs.state.rows == []
    run_workers(effects)
    assert prs.source.calls[-1][0] == "is:closed"


# --- Smart filtering ---
@pytest.fixture
def smart_ctx(ctx):
    ctx.config["smart_filtering_at_launch"] = True
    return ctx


def test_launch_injects_repo_token(smart_ctx):
    section = PullRequestSection(smart_ctx, 1, {"title": "Mine", "filters": "is:open"}, FakeSource())
    assert section.state.search_value == "repo:owner/repo is:open"
    assert section.state.is_filtered_by_current_repo


def test_configured_repo_filter_wins(smart_ctx):
    section = PullRequestSection(smart_ctx, 1, {"title": "X", "filters": "repo:other/x is:open"}, FakeSource())
    assert section.state.search_value == "repo:other/x is:open"
    assert not section.state.is_filtered_by_current_repo
    assert section.toggle_smart_filter() == []


def test_no_injection_without_launch_flag(ctx):
    section = PullRequestSection(ctx, 1, {"title": "Mine", "filters": "is:open"}, FakeSource())
    assert section.state.search_value == "is:open"
    effects = section.toggle_smart_filter()
    assert effects
    assert section.state.search_value == "repo:owner/repo is:open"


def test_toggle_removes_token(smart_ctx):
    section = PullRequestSection(smart_ctx, 1, {"title": "Mine", "filters": "is:open"}, FakeSource())
    section.toggle_smart_filter()
    assert section.state.search_value == "is:open"
    assert section.state.search_bar_value == "is:open"
    assert not section.state.is_filtered_by_current_repo


def test_removing_token_by_hand_disables_smart_filter(smart_ctx):
    section = PullRequestSection(smart_ctx, 1, {"title": "Mine", "filters": "is:open"}, FakeSource())
    section.submit_search("is:open label:bug")
    assert not section.state.is_filtered_by_current_repo
    assert section.get_search_value() == "is:open label:bug"


def test_typing_token_by_hand_enables_smart_filter(ctx):
    section = PullRequestSection(ctx, 1, {"title": "Mine", "filters": "is:open"}, FakeSource())
    section.submit_search("repo:owner/repo is:open")
    assert section.state.is_filtered_by_current_repo


def test_no_smart_filter_outside_a_repo(smart_ctx):
    smart_ctx.repo = None
    section = PullRequestSection(smart_ctx, 1, {"title": "Mine", "filters": "is:open"}, FakeSource())
    assert section.state.search_value == "is:open"
    assert section.toggle_smart_filter() == []


# --- Local preconditions ---
def test_checkout_in_current_repo(prs, executor):
    run_workers(prs.perform("checkout"))
    assert executor.calls == [("pr_checkout_owner/repo_1", ["pr", "checkout", "1"], "/work/repo")]


def test_checkout_without_local_clone_reports_error(ctx, executor):
    section = _load(
        PullRequestSection(ctx, 1, {"title": "Mine", "filters": ""}, FakeSource([[make_pr(5, repo="someone/else")]]))
    )
    effects = section.perform("checkout")
    assert run_workers(effects) == []
    assert executor.calls == []
    task = ctx.tasks.tasks["checkout_1"]
    assert task.state is TaskState.ERROR
    assert task.error == "No local path configured for someone/else"


def test_checkout_uses_wildcard_repo_path(ctx, executor):
    ctx.config["repo_paths"] = {"someone/*": "/src/someone/*"}
    section = _load(
        PullRequestSection(ctx, 1, {"title": "Mine", "filters": ""}, FakeSource([[make_pr(5, repo="someone/else")]]))
    )
    run_workers(section.perform("checkout"))
    assert executor.calls[0][2] == "/src/someone/else"


# --- Free text input ---
def test_label_input_prefills_current_labels(prs, executor):
    prs.perform("label")
    request = prs.take_input_request()
    assert request.mode is Mode.COMMA
    assert request.pool == "labels"
    assert request.initial == "bug, "
    assert prs.take_input_request() is None

    msgs = run_workers(prs.submit_input("label", "bug, docs, "))
    assert executor.calls[0][1] == [
        "pr", "edit", "1", "-R", "owner/repo", "--add-label", "bug", "--add-label", "docs",
    ]
    assert msgs[0].msg.labels == [Label("bug", "d73a4a"), Label("docs", "")]


def test_label_input_removes_dropped_labels(prs, executor):
    run_workers(prs.submit_input("label", "docs"))
    assert executor.calls[0][1][5:] == ["--remove-label", "bug", "--add-label", "docs"]


def test_assign_strips_mentions(prs, executor):
    msgs = run_workers(prs.submit_input("assign", "@alice  carol"))
    assert executor.calls[0][1][5:] == ["--add-assignee", "alice", "--add-assignee", "carol"]
    prs.update(msgs[0].msg)
    assert prs.get_curr_row().assignees == ["bob", "alice", "carol"]


def test_blank_input_does_nothing(prs, executor):
    assert prs.submit_input("comment", "   ") == []
    assert executor.calls == []


def test_comment_is_appended(prs, ctx):
    msgs = run_workers(prs.submit_input("comment", "looks good @bob"))
    prs.update(msgs[0].msg)
    comment = prs.get_curr_row().comments[-1]
    assert comment.body == "looks good @bob"
    assert comment.author == "me"


# --- Optimistic updates ---
def test_pr_updates(prs):
    prs.update(UpdatePR(2, is_merged=True))
    assert prs.state.rows[1].state == "MERGED"
    prs.update(UpdatePR(1, removed_assignees=["bob"]))
    assert prs.state.rows[0].assignees == []
    prs.update(UpdatePR(99, is_closed=True))
    assert [pr.state for pr in prs.state.rows] == ["OPEN", "MERGED"]


def test_same_number_in_two_repos(ctx, executor):
    source = FakeSource([[make_pr(1, repo="acme/api"), make_pr(1, repo="acme/web")]])
    section = _load(PullRequestSection(ctx, 1, {"title": "Org"}, source))
    section.move_cursor(1)
    section.perform("close")
    msgs = run_workers(section.confirm_prompt(""))
    assert executor.calls[0][0] == "pr_close_acme/web_1"
    assert "pr_close_acme/web_1" in ctx.tasks.tasks
    assert "pr_close_acme/api_1" not in ctx.tasks.tasks
    section.update(msgs[0].msg)
    assert [pr.state for pr in section.state.rows] == ["OPEN", "CLOSED"]


def test_ready_clears_draft(ctx):
    section = _load(PullRequestSection(ctx, 1, {"title": "t"}, FakeSource([[make_pr(3, is_draft=True)]])))
    assert section.build_rows()[0][0] == "◌"
    section.update(UpdatePR(3, ready_for_review=True))
    assert not section.state.rows[0].is_draft
    assert section.build_rows()[0][0] == "○"


def test_issue_close_and_reopen(ctx, executor):
    section = _load(IssueSection(ctx, 1, {"title": "Mine"}, FakeSource([[make_issue(7)]])))
    section.perform("close")
    msgs = run_workers(section.confirm_prompt(""))
    assert executor.calls == [("issue_close_owner/repo_7", ["issue", "close", "7", "-R", "owner/repo"], None)]
    section.update(msgs[0].msg)
    assert section.get_curr_row().state == "CLOSED"
    section.update(UpdateIssue(7, is_closed=False))
    assert section.get_curr_row().state == "OPEN"


# --- Branches ---
@pytest.fixture
def branches(ctx):
    rows = [
        Branch("main", "owner/repo", BASE_TIME, "init", is_current=True),
        Branch("dev", "owner/repo", BASE_TIME, "wip"),
    ]
    return _load(BranchSection(ctx, 1, {"title": "Local Branches", "filters": ""}, FakeSource([rows])))


def test_new_branch_prompt_needs_no_row(ctx, executor):
    section = BranchSection(ctx, 1, {"title": "Local Branches"}, FakeSource())
    section.perform("new")
    assert section.state.prompt.text == "Enter branch name: "
    msgs = run_workers(section.confirm_prompt("feature-x"))
    assert executor.calls == [("branch_create_feature-x", ["checkout", "-b", "feature-x"], "/work/repo")]
    section.update(msgs[0].msg)
    assert section.get_curr_row().name == "feature-x"
    assert section.get_curr_row().is_current


def test_empty_branch_name_cancels(branches, executor):
    branches.perform("new")
    assert branches.confirm_prompt("  ") == []
    assert executor.calls == []


def test_delete_branch(branches, executor):
    branches.move_cursor(1)
    branches.perform("delete")
    msgs = run_workers(branches.confirm_prompt(""))
    assert executor.calls == [("branch_delete_dev", ["branch", "-D", "dev"], "/work/repo")]
    branches.update(msgs[0].msg)
    assert [b.name for b in branches.state.rows] == ["main"]
    assert branches.state.cursor == 0


def test_checkout_branch_moves_current_marker(branches):
    branches.move_cursor(1)
    msgs = run_workers(branches.perform("checkout"))
    branches.update(msgs[0].msg)
    assert [b.is_current for b in branches.state.rows] == [False, True]


def test_create_pr_from_branch(branches, executor):
    branches.move_cursor(1)
    branches.perform("create_pr")
    msgs = run_workers(branches.confirm_prompt("Add dev work"))
    assert executor.calls[0][1] == [
        "pr", "create", "--title", "Add dev work", "--body", "", "--head", "dev", "-R", "owner/repo",
    ]
    branches.update(msgs[0].msg)
    assert branches.get_curr_row().pr.title == "Add dev work"


def test_branch_actions_need_a_repository(branches, ctx, executor):
    ctx.repo_path = None
    assert run_workers(branches.perform("checkout")) == []
    assert executor.calls == []
    assert ctx.tasks.tasks["checkout_1"].error == "Not inside a git repository"


def test_branch_update_for_unknown_name_is_ignored(branches):
    branches.update(UpdateBranch("gone", is_deleted=True))
    assert len(branches.state.rows) == 2


# --- Rendering ---
def test_empty_text_and_pager(ctx):
    section = PullRequestSection(ctx, 1, {"title": "Mine"}, FakeSource())
    assert section.empty_text() == "No PRs were found that match the given filters"
    section.fetch_next_page()
    assert section.empty_text() == "Loading PRs..."
    assert section.get_pager_content() == ""


def test_pager_counts_rows(prs):
    prs.move_cursor(1)
    assert prs.get_pager_content() == "PR 2/2 • Fetched 2"


def test_time_ago():
    assert time_ago(BASE_TIME, BASE_TIME) == "now"
    assert time_ago(BASE_TIME.replace(hour=10), BASE_TIME) == "2h"
    assert time_ago(BASE_TIME.replace(day=3), BASE_TIME.replace(day=10)) == "7d"
