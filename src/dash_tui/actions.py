"""Remote mutations fired from sections.

Every action starts a task and hands back a worker effect. The worker runs
the commands and returns ``TaskFinished``; its ``msg`` is the optimistic
row update, applied only when the commands succeeded.
"""
from __future__ import annotations

import logging
import webbrowser
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, List, Optional, Sequence

from .context import ProgramContext
from .datamodels import (
    Branch,
    Comment,
    Issue,
    Label,
    Notification,
    PullRequest,
    SectionIdentifier,
    Task,
)
from .messages import (
    ClearAllNotifications,
    Effects,
    MarkAllRead,
    TaskFinished,
    UpdateBranch,
    UpdateIssue,
    UpdateNotification,
    UpdateNotificationReadState,
    UpdatePR,
)
from .sources.base import MutationExecutor

logger = logging.getLogger("dash")


class PreconditionError(Exception):
    """An action cannot run with the local setup."""


@dataclass
class RemoteTask:
    id: str
    commands: List[List[str]]
    section: SectionIdentifier
    start_text: str
    finished_text: str
    msg: Callable[[], Any] = lambda: None
    executor: Optional[MutationExecutor] = None
    cwd: Optional[str] = None


def _now() -> datetime:
    return datetime.now(timezone.utc)


def fire_task(ctx: ProgramContext, task: RemoteTask) -> Effects:
    effects = ctx.start_task(Task(task.id, task.start_text, task.finished_text))
    executor = task.executor or ctx.executor
    section_id, section_type = task.section.id, task.section.type

    def run():
        try:
            for args in task.commands:
                executor.execute(task.id, args, cwd=task.cwd)
        except Exception as e:
            logger.error("Task %s failed: %s", task.id, e)
            return TaskFinished(task.id, section_id, section_type, error=str(e))
        return TaskFinished(task.id, section_id, section_type, msg=task.msg())

    effects.append(run)
    return effects


def open_url(url: str) -> Effects:
    if not url:
        return []

    def run():
        webbrowser.open(url)

    return [run]


def require_repo_path(ctx: ProgramContext, repo: str) -> str:
    path = ctx.repo_path_for(repo)
    if not path:
        raise PreconditionError(f"No local path configured for {repo}")
    return path


# --- Pull requests ---
def _pr_task(
    ctx: ProgramContext,
    section: SectionIdentifier,
    pr: PullRequest,
    verb: str,
    subcommand: str,
    start_text: str,
    finished_text: str,
    msg: Callable[[], Any],
    extra: Sequence[str] = (),
) -> Effects:
    return fire_task(
        ctx,
        RemoteTask(
            id=f"pr_{verb}_{pr.repo}_{pr.number}",
            commands=[["pr", subcommand, str(pr.number), "-R", pr.repo, *extra]],
            section=section,
            start_text=start_text,
            finished_text=finished_text,
            msg=msg,
        ),
    )


def close_pr(ctx: ProgramContext, section: SectionIdentifier, pr: PullRequest) -> Effects:
    return _pr_task(
        ctx, section, pr, "close", "close",
        f"Closing PR #{pr.number}", f"PR #{pr.number} has been closed",
        lambda: UpdatePR(pr.number, pr.repo, is_closed=True),
    )


def reopen_pr(ctx: ProgramContext, section: SectionIdentifier, pr: PullRequest) -> Effects:
    return _pr_task(
        ctx, section, pr, "reopen", "reopen",
        f"Reopening PR #{pr.number}", f"PR #{pr.number} has been reopened",
        lambda: UpdatePR(pr.number, pr.repo, is_closed=False),
    )


def ready_pr(ctx: ProgramContext, section: SectionIdentifier, pr: PullRequest) -> Effects:
    return _pr_task(
        ctx, section, pr, "ready", "ready",
        f"Marking PR #{pr.number} as ready for review",
        f"PR #{pr.number} has been marked as ready for review",
        lambda: UpdatePR(pr.number, pr.repo, ready_for_review=True),
    )


def merge_pr(ctx: ProgramContext, section: SectionIdentifier, pr: PullRequest) -> Effects:
    return _pr_task(
        ctx, section, pr, "merge", "merge",
        f"Merging PR #{pr.number}", f"PR #{pr.number} has been merged",
        lambda: UpdatePR(pr.number, pr.repo, is_merged=True),
    )


def update_pr(ctx: ProgramContext, section: SectionIdentifier, pr: PullRequest) -> Effects:
    return _pr_task(
        ctx, section, pr, "update", "update-branch",
        f"Updating PR #{pr.number}", f"PR #{pr.number} has been updated",
        lambda: UpdatePR(pr.number, pr.repo),
    )


def comment_pr(ctx: ProgramContext, section: SectionIdentifier, pr: PullRequest, body: str) -> Effects:
    return _pr_task(
        ctx, section, pr, "comment", "comment",
        f"Commenting on PR #{pr.number}", f"Commented on PR #{pr.number}",
        lambda: UpdatePR(pr.number, pr.repo, new_comment=Comment(ctx.user, body, _now())),
        extra=["-b", body],
    )


def approve_pr(ctx: ProgramContext, section: SectionIdentifier, pr: PullRequest, body: str = "") -> Effects:
    extra = ["--approve"]
    if body:
        extra += ["--body", body]
    return _pr_task(
        ctx, section, pr, "approve", "review",
        f"Approving PR #{pr.number}", f"PR #{pr.number} has been approved",
        lambda: UpdatePR(pr.number, pr.repo),
        extra=extra,
    )


def assign_pr(ctx: ProgramContext, section: SectionIdentifier, pr: PullRequest, users: List[str]) -> Effects:
    extra = [arg for u in users for arg in ("--add-assignee", u)]
    return _pr_task(
        ctx, section, pr, "assign", "edit",
        f"Assigning PR #{pr.number} to {', '.join(users)}",
        f"PR #{pr.number} has been assigned to {', '.join(users)}",
        lambda: UpdatePR(pr.number, pr.repo, added_assignees=list(users)),
        extra=extra,
    )


def unassign_pr(ctx: ProgramContext, section: SectionIdentifier, pr: PullRequest, users: List[str]) -> Effects:
    extra = [arg for u in users for arg in ("--remove-assignee", u)]
    return _pr_task(
        ctx, section, pr, "unassign", "edit",
        f"Unassigning {', '.join(users)} from PR #{pr.number}",
        f"{', '.join(users)} unassigned from PR #{pr.number}",
        lambda: UpdatePR(pr.number, pr.repo, removed_assignees=list(users)),
        extra=extra,
    )


def _label_args(existing: List[Label], labels: List[str]) -> List[str]:
    wanted = set(labels)
    args = [arg for l in existing if l.name not in wanted for arg in ("--remove-label", l.name)]
    args += [arg for name in labels for arg in ("--add-label", name)]
    return args


def _labels_with_colors(existing: List[Label], labels: List[str]) -> List[Label]:
    colors = {l.name: l.color for l in existing}
    return [Label(name, colors.get(name, "")) for name in labels]


def label_pr(ctx: ProgramContext, section: SectionIdentifier, pr: PullRequest, labels: List[str]) -> Effects:
    return _pr_task(
        ctx, section, pr, "label", "edit",
        f"Labeling PR #{pr.number} with {', '.join(labels)}",
        f"PR #{pr.number} has been labeled",
        lambda: UpdatePR(pr.number, pr.repo, labels=_labels_with_colors(pr.labels, labels)),
        extra=_label_args(pr.labels, labels),
    )


def checkout_pr(ctx: ProgramContext, section: SectionIdentifier, pr: PullRequest) -> Effects:
    path = require_repo_path(ctx, pr.repo)
    return fire_task(
        ctx,
        RemoteTask(
            id=f"pr_checkout_{pr.repo}_{pr.number}",
            commands=[["pr", "checkout", str(pr.number)]],
            section=section,
            start_text=f"Checking out PR #{pr.number}",
            finished_text=f"PR #{pr.number} has been checked out at {path}",
            cwd=path,
        ),
    )


# --- Issues ---
def _issue_task(
    ctx: ProgramContext,
    section: SectionIdentifier,
    issue: Issue,
    verb: str,
    subcommand: str,
    start_text: str,
    finished_text: str,
    msg: Callable[[], Any],
    extra: Sequence[str] = (),
) -> Effects:
    return fire_task(
        ctx,
        RemoteTask(
            id=f"issue_{verb}_{issue.repo}_{issue.number}",
            commands=[["issue", subcommand, str(issue.number), "-R", issue.repo, *extra]],
            section=section,
            start_text=start_text,
            finished_text=finished_text,
            msg=msg,
        ),
    )


def close_issue(ctx: ProgramContext, section: SectionIdentifier, issue: Issue) -> Effects:
    return _issue_task(
        ctx, section, issue, "close", "close",
        f"Closing issue #{issue.number}", f"Issue #{issue.number} has been closed",
        lambda: UpdateIssue(issue.number, issue.repo, is_closed=True),
    )


def reopen_issue(ctx: ProgramContext, section: SectionIdentifier, issue: Issue) -> Effects:
    return _issue_task(
        ctx, section, issue, "reopen", "reopen",
        f"Reopening issue #{issue.number}", f"Issue #{issue.number} has been reopened",
        lambda: UpdateIssue(issue.number, issue.repo, is_closed=False),
    )


def comment_issue(ctx: ProgramContext, section: SectionIdentifier, issue: Issue, body: str) -> Effects:
    return _issue_task(
        ctx, section, issue, "comment", "comment",
        f"Commenting on issue #{issue.number}", f"Commented on issue #{issue.number}",
        lambda: UpdateIssue(issue.number, issue.repo, new_comment=Comment(ctx.user, body, _now())),
        extra=["-b", body],
    )


def assign_issue(ctx: ProgramContext, section: SectionIdentifier, issue: Issue, users: List[str]) -> Effects:
    extra = [arg for u in users for arg in ("--add-assignee", u)]
    return _issue_task(
        ctx, section, issue, "assign", "edit",
        f"Assigning issue #{issue.number} to {', '.join(users)}",
        f"Issue #{issue.number} has been assigned to {', '.join(users)}",
        lambda: UpdateIssue(issue.number, issue.repo, added_assignees=list(users)),
        extra=extra,
    )


def unassign_issue(ctx: ProgramContext, section: SectionIdentifier, issue: Issue, users: List[str]) -> Effects:
    extra = [arg for u in users for arg in ("--remove-assignee", u)]
    return _issue_task(
        ctx, section, issue, "unassign", "edit",
        f"Unassigning {', '.join(users)} from issue #{issue.number}",
        f"{', '.join(users)} unassigned from issue #{issue.number}",
        lambda: UpdateIssue(issue.number, issue.repo, removed_assignees=list(users)),
        extra=extra,
    )


def label_issue(ctx: ProgramContext, section: SectionIdentifier, issue: Issue, labels: List[str]) -> Effects:
    return _issue_task(
        ctx, section, issue, "label", "edit",
        f"Labeling issue #{issue.number} with {', '.join(labels)}",
        f"Issue #{issue.number} has been labeled",
        lambda: UpdateIssue(issue.number, issue.repo, labels=_labels_with_colors(issue.labels, labels)),
        extra=_label_args(issue.labels, labels),
    )


# --- Notifications ---
def mark_notification_read(ctx: ProgramContext, section: SectionIdentifier, n: Notification) -> Effects:
    return fire_task(
        ctx,
        RemoteTask(
            id=f"notification_read_{n.id}",
            commands=[["api", "-X", "PATCH", f"notifications/threads/{n.id}"]],
            section=section,
            start_text="Marking notification as read",
            finished_text="Notification marked as read",
            msg=lambda: UpdateNotificationReadState(n.id, unread=False),
        ),
    )


def mark_all_notifications_read(ctx: ProgramContext, section: SectionIdentifier) -> Effects:
    return fire_task(
        ctx,
        RemoteTask(
            id="notification_read_all",
            commands=[["api", "-X", "PUT", "notifications", "-F", "read=true"]],
            section=section,
            start_text="Marking all notifications as read",
            finished_text="All notifications marked as read",
            msg=MarkAllRead,
        ),
    )


def mark_notification_done(ctx: ProgramContext, section: SectionIdentifier, n: Notification) -> Effects:
    return fire_task(
        ctx,
        RemoteTask(
            id=f"notification_done_{n.id}",
            commands=[["api", "-X", "DELETE", f"notifications/threads/{n.id}"]],
            section=section,
            start_text="Marking notification as done",
            finished_text="Notification marked as done",
            msg=lambda: UpdateNotification(n.id, is_done=True, updated_at=n.updated_at),
        ),
    )


def mark_all_notifications_done(
    ctx: ProgramContext, section: SectionIdentifier, notifications: List[Notification]
) -> Effects:
    return fire_task(
        ctx,
        RemoteTask(
            id="notification_done_all",
            commands=[["api", "-X", "DELETE", f"notifications/threads/{n.id}"] for n in notifications],
            section=section,
            start_text=f"Marking {len(notifications)} notifications as done",
            finished_text="All notifications marked as done",
            msg=ClearAllNotifications,
        ),
    )


def unsubscribe_notification(ctx: ProgramContext, section: SectionIdentifier, n: Notification) -> Effects:
    return fire_task(
        ctx,
        RemoteTask(
            id=f"notification_unsubscribe_{n.id}",
            commands=[["api", "-X", "DELETE", f"notifications/threads/{n.id}/subscription"]],
            section=section,
            start_text="Unsubscribing from thread",
            finished_text="Unsubscribed from thread",
            msg=lambda: UpdateNotification(n.id, unsubscribed=True),
        ),
    )


# --- Branches ---
def _branch_task(ctx: ProgramContext, task: RemoteTask) -> Effects:
    if not ctx.repo_path:
        raise PreconditionError("Not inside a git repository")
    task.cwd = ctx.repo_path
    if task.executor is None:
        task.executor = ctx.git
    return fire_task(ctx, task)


def checkout_branch(ctx: ProgramContext, section: SectionIdentifier, branch: Branch) -> Effects:
    return _branch_task(
        ctx,
        RemoteTask(
            id=f"branch_checkout_{branch.name}",
            commands=[["checkout", branch.name]],
            section=section,
            start_text=f"Checking out branch {branch.name}",
            finished_text=f"Branch {branch.name} has been checked out",
            msg=lambda: UpdateBranch(branch.name, is_checked_out=True),
        ),
    )


def delete_branch(ctx: ProgramContext, section: SectionIdentifier, branch: Branch) -> Effects:
    return _branch_task(
        ctx,
        RemoteTask(
            id=f"branch_delete_{branch.name}",
            commands=[["branch", "-D", branch.name]],
            section=section,
            start_text=f"Deleting branch {branch.name}",
            finished_text=f"Branch {branch.name} has been deleted",
            msg=lambda: UpdateBranch(branch.name, is_deleted=True),
        ),
    )


def new_branch(ctx: ProgramContext, section: SectionIdentifier, name: str) -> Effects:
    return _branch_task(
        ctx,
        RemoteTask(
            id=f"branch_create_{name}",
            commands=[["checkout", "-b", name]],
            section=section,
            start_text=f"Creating branch {name}",
            finished_text=f"Branch {name} has been created",
            msg=lambda: UpdateBranch(
                name,
                is_created=True,
                new_branch=Branch(name=name, repo=ctx.repo or "", updated_at=_now(), is_current=True),
            ),
        ),
    )


def create_pr(ctx: ProgramContext, section: SectionIdentifier, branch: Branch, title: str) -> Effects:
    repo = ctx.repo or branch.repo
    return _branch_task(
        ctx,
        RemoteTask(
            id=f"create_pr_{branch.name}",
            commands=[["pr", "create", "--title", title, "--body", "", "--head", branch.name, "-R", repo]],
            section=section,
            start_text=f'Creating PR "{title}"',
            finished_text=f'PR "{title}" has been created',
            msg=lambda: UpdateBranch(
                branch.name,
                new_pr=PullRequest(
                    number=0, repo=repo, title=title, url="", updated_at=_now(),
                    author=ctx.user, head_ref=branch.name,
                ),
            ),
            executor=ctx.executor,
        ),
    )


def open_branch_pr(ctx: ProgramContext, section: SectionIdentifier, branch: Branch) -> Effects:
    repo = ctx.repo or branch.repo
    return fire_task(
        ctx,
        RemoteTask(
            id=f"branch_open_{branch.name}",
            commands=[["pr", "view", "--web", branch.name, "-R", repo]],
            section=section,
            start_text=f"Opening PR for branch {branch.name}",
            finished_text=f"PR for branch {branch.name} has been opened",
        ),
    )
