from __future__ import annotations

from typing import Any

from .. import actions
from ..autocomplete import Mode, current_labels
from ..datamodels import DisplayRow, Issue, SectionType
from ..messages import Effects, UpdateIssue
from .base import Section, find_row, parse_users, time_ago

STATE_ICONS = {"OPEN": "○", "CLOSED": "✓"}


class IssueSection(Section):
    section_type = SectionType.ISSUES
    kind_label = "issues"
    item_label = "Issue"
    limit_key = "issues_limit"
    columns = ("", "#", "Title", "Repo", "Author", "Labels", "Comments", "Updated")

    PROMPTS = {
        "close": "Are you sure you want to close this issue? (Y/n) ",
        "reopen": "Are you sure you want to reopen this issue? (Y/n) ",
    }
    INPUTS = {
        "comment": ("Comment", Mode.MENTION, "users"),
        "assign": ("Assign users", Mode.WHITESPACE, "users"),
        "unassign": ("Unassign users", Mode.WHITESPACE, "users"),
        "label": ("Labels", Mode.COMMA, "labels"),
    }

    def build_row(self, issue: Issue) -> DisplayRow:
        return (
            STATE_ICONS.get(issue.state, ""),
            f"#{issue.number}",
            issue.title,
            issue.repo,
            issue.author,
            ", ".join(l.name for l in issue.labels),
            str(len(issue.comments)),
            time_ago(issue.updated_at),
        )

    def initial_input(self, action: str) -> str:
        issue = self.get_curr_row()
        if action == "label" and issue.labels:
            return ", ".join(l.name for l in issue.labels) + ", "
        if action == "unassign":
            return " ".join(issue.assignees)
        return ""

    def run_confirmed(self, action: str, value: str) -> Effects:
        issue = self.get_curr_row()
        if issue is None:
            return []
        if action == "close":
            return actions.close_issue(self.ctx, self.identifier, issue)
        return actions.reopen_issue(self.ctx, self.identifier, issue)

    def run_input(self, action: str, text: str) -> Effects:
        issue = self.get_curr_row()
        if action == "comment":
            return actions.comment_issue(self.ctx, self.identifier, issue, text)
        if action == "assign":
            return actions.assign_issue(self.ctx, self.identifier, issue, parse_users(text))
        if action == "unassign":
            return actions.unassign_issue(self.ctx, self.identifier, issue, parse_users(text))
        if action == "label":
            return actions.label_issue(self.ctx, self.identifier, issue, current_labels(text))
        return []

    def apply_update(self, msg: Any) -> Effects:
        if not isinstance(msg, UpdateIssue):
            return []
        index = find_row(
            self.state.rows,
            lambda issue: issue.number == msg.number and msg.repo in ("", issue.repo),
        )
        if index is None:
            return []
        issue: Issue = self.state.rows[index]
        if msg.is_closed is not None:
            issue.state = "CLOSED" if msg.is_closed else "OPEN"
        if msg.new_comment is not None:
            issue.comments.append(msg.new_comment)
        for login in msg.added_assignees:
            if login not in issue.assignees:
                issue.assignees.append(login)
        if msg.removed_assignees:
            issue.assignees = [a for a in issue.assignees if a not in msg.removed_assignees]
        if msg.labels is not None:
            issue.labels = list(msg.labels)
        return []
