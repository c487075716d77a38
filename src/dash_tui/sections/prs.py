from __future__ import annotations

from typing import Any, Dict, Tuple

from .. import actions
from ..autocomplete import Mode, current_labels
from ..datamodels import DisplayRow, PullRequest, SectionType
from ..messages import Effects, UpdatePR
from .base import Section, find_row, parse_users, time_ago

STATE_ICONS = {"OPEN": "○", "CLOSED": "✕", "MERGED": "◆"}
DRAFT_ICON = "◌"


class PullRequestSection(Section):
    section_type = SectionType.PRS
    kind_label = "PRs"
    item_label = "PR"
    limit_key = "prs_limit"
    columns = ("", "#", "Title", "Repo", "Author", "Assignees", "+/-", "Updated")

    PROMPTS = {
        "close": "Are you sure you want to close this PR? (Y/n) ",
        "reopen": "Are you sure you want to reopen this PR? (Y/n) ",
        "ready": "Are you sure you want to mark this PR as ready? (Y/n) ",
        "merge": "Are you sure you want to merge this PR? (Y/n) ",
        "update": "Are you sure you want to update this PR? (Y/n) ",
    }
    INPUTS: Dict[str, Tuple[str, Mode, str]] = {
        "comment": ("Comment", Mode.MENTION, "users"),
        "approve": ("Approve with comment", Mode.MENTION, "users"),
        "assign": ("Assign users", Mode.WHITESPACE, "users"),
        "unassign": ("Unassign users", Mode.WHITESPACE, "users"),
        "label": ("Labels", Mode.COMMA, "labels"),
    }

    def build_row(self, pr: PullRequest) -> DisplayRow:
        icon = DRAFT_ICON if pr.is_draft and pr.state == "OPEN" else STATE_ICONS.get(pr.state, "")
        return (
            icon,
            f"#{pr.number}",
            pr.title,
            pr.repo,
            pr.author,
            ", ".join(pr.assignees),
            f"+{pr.additions} -{pr.deletions}",
            time_ago(pr.updated_at),
        )

    def initial_input(self, action: str) -> str:
        pr = self.get_curr_row()
        if action == "label" and pr.labels:
            return ", ".join(l.name for l in pr.labels) + ", "
        if action == "unassign":
            return " ".join(pr.assignees)
        return ""

    def run_action(self, action: str) -> Effects:
        pr = self.get_curr_row()
        if pr is None:
            return []
        if action == "checkout":
            return actions.checkout_pr(self.ctx, self.identifier, pr)
        return super().run_action(action)

    def run_confirmed(self, action: str, value: str) -> Effects:
        pr = self.get_curr_row()
        if pr is None:
            return []
        handler = {
            "close": actions.close_pr,
            "reopen": actions.reopen_pr,
            "ready": actions.ready_pr,
            "merge": actions.merge_pr,
            "update": actions.update_pr,
        }[action]
        return handler(self.ctx, self.identifier, pr)

    def run_input(self, action: str, text: str) -> Effects:
        pr = self.get_curr_row()
        if action == "comment":
            return actions.comment_pr(self.ctx, self.identifier, pr, text)
        if action == "approve":
            return actions.approve_pr(self.ctx, self.identifier, pr, text.strip())
        if action == "assign":
            return actions.assign_pr(self.ctx, self.identifier, pr, parse_users(text))
        if action == "unassign":
            return actions.unassign_pr(self.ctx, self.identifier, pr, parse_users(text))
        if action == "label":
            return actions.label_pr(self.ctx, self.identifier, pr, current_labels(text))
        return []

    def apply_update(self, msg: Any) -> Effects:
        if not isinstance(msg, UpdatePR):
            return []
        index = find_row(
            self.state.rows, lambda pr: pr.number == msg.number and msg.repo in ("", pr.repo)
        )
        if index is None:
            return []
        pr: PullRequest = self.state.rows[index]
        if msg.is_closed is not None:
            pr.state = "CLOSED" if msg.is_closed else "OPEN"
        if msg.ready_for_review:
            pr.is_draft = False
        if msg.is_merged:
            pr.state = "MERGED"
        if msg.new_comment is not None:
            pr.comments.append(msg.new_comment)
        for login in msg.added_assignees:
            if login not in pr.assignees:
                pr.assignees.append(login)
        if msg.removed_assignees:
            pr.assignees = [a for a in pr.assignees if a not in msg.removed_assignees]
        if msg.labels is not None:
            pr.labels = list(msg.labels)
        return []
