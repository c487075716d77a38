from __future__ import annotations

from typing import Any

from .. import actions
from ..datamodels import Branch, DisplayRow, SectionType
from ..messages import Effects, UpdateBranch
from .base import Section, find_row, time_ago


class BranchSection(Section):
    section_type = SectionType.REPO
    kind_label = "branches"
    item_label = "Branch"
    limit_key = "branches_limit"
    supports_smart_filter = False
    columns = ("", "Branch", "↑↓", "Last commit", "PR", "Updated")

    PROMPTS = {
        "delete": "Are you sure you want to delete this branch? (Y/n) ",
        "new": "Enter branch name: ",
        "create_pr": "Enter PR title: ",
    }
    TEXT_PROMPTS = frozenset({"new", "create_pr"})
    ROWLESS_PROMPTS = frozenset({"new"})

    def build_row(self, branch: Branch) -> DisplayRow:
        return (
            "*" if branch.is_current else "",
            branch.name,
            f"↑{branch.ahead} ↓{branch.behind}",
            branch.last_commit_msg,
            f"#{branch.pr.number} {branch.pr.title}".strip() if branch.pr else "",
            time_ago(branch.updated_at),
        )

    def run_action(self, action: str) -> Effects:
        branch = self.get_curr_row()
        if branch is None:
            return []
        if action == "checkout":
            return actions.checkout_branch(self.ctx, self.identifier, branch)
        if action == "view_pr":
            return actions.open_branch_pr(self.ctx, self.identifier, branch)
        return super().run_action(action)

    def run_confirmed(self, action: str, value: str) -> Effects:
        if action == "new":
            return actions.new_branch(self.ctx, self.identifier, value)
        branch = self.get_curr_row()
        if branch is None:
            return []
        if action == "delete":
            return actions.delete_branch(self.ctx, self.identifier, branch)
        return actions.create_pr(self.ctx, self.identifier, branch, value)

    def apply_update(self, msg: Any) -> Effects:
        if not isinstance(msg, UpdateBranch):
            return []
        rows = self.state.rows
        index = find_row(rows, lambda b: b.name == msg.name)
        if msg.is_created and msg.new_branch is not None and index is None:
            for branch in rows:
                branch.is_current = False
            rows.insert(0, msg.new_branch)
            self.state.total_count += 1
            self.state.cursor = 0
            return []
        if index is None:
            return []
        if msg.is_deleted:
            del rows[index]
            self.state.total_count = max(0, self.state.total_count - 1)
        elif msg.is_checked_out:
            for branch in rows:
                branch.is_current = branch.name == msg.name
        if msg.new_pr is not None and not msg.is_deleted:
            rows[index].pr = msg.new_pr
        return []
