from __future__ import annotations

from typing import Dict, List, Optional

from textual.binding import Binding

GLOBAL_BINDINGS = [
    Binding("q", "quit", "Quit"),
    Binding("s", "switch_view", "Switch view"),
    Binding("/", "search", "Search"),
    Binding("r", "refresh", "Refresh"),
    Binding("R", "refresh_all", "Refresh all"),
    Binding("p", "toggle_preview", "Preview"),
    Binding("h,left", "prev_section", "Prev section", show=False),
    Binding("l,right", "next_section", "Next section", show=False),
    Binding("j,down", "cursor(1)", "Down", show=False),
    Binding("k,up", "cursor(-1)", "Up", show=False),
    Binding("g", "first_row", "First", show=False),
    Binding("G", "last_row", "Last", show=False),
    Binding("ctrl+p", "command_palette", "Commands", show=False),
]

PR_BINDINGS = [
    Binding("x", "close", "Close"),
    Binding("X", "reopen", "Reopen"),
    Binding("W", "ready", "Ready for review"),
    Binding("m", "merge", "Merge"),
    Binding("u", "update", "Update branch"),
    Binding("C,space", "checkout", "Checkout"),
    Binding("c", "comment", "Comment"),
    Binding("v", "approve", "Approve"),
    Binding("a", "assign", "Assign"),
    Binding("A", "unassign", "Unassign"),
    Binding("L", "label", "Label"),
    Binding("o", "open", "Open"),
    Binding("t", "toggle_smart_filter", "Smart filter"),
]

ISSUE_BINDINGS = [
    Binding("x", "close", "Close"),
    Binding("X", "reopen", "Reopen"),
    Binding("c", "comment", "Comment"),
    Binding("a", "assign", "Assign"),
    Binding("A", "unassign", "Unassign"),
    Binding("L", "label", "Label"),
    Binding("o", "open", "Open"),
    Binding("t", "toggle_smart_filter", "Smart filter"),
]

NOTIFICATION_BINDINGS = [
    Binding("m", "mark_read", "Mark read"),
    Binding("M", "mark_all_read", "Mark all read"),
    Binding("d", "done", "Done"),
    Binding("D", "done_all", "All done"),
    Binding("u", "unsubscribe", "Unsubscribe"),
    Binding("b", "bookmark", "Bookmark"),
    Binding("S", "sort", "Sort"),
    Binding("o,enter", "view", "Open"),
    Binding("t", "toggle_smart_filter", "Smart filter"),
]

BRANCH_BINDINGS = [
    Binding("C,space", "checkout", "Checkout"),
    Binding("d,backspace", "delete", "Delete"),
    Binding("n", "new", "New branch"),
    Binding("O", "create_pr", "Create PR"),
    Binding("o", "view_pr", "Open PR"),
]

VIEW_BINDINGS: Dict[str, List[Binding]] = {
    "prs": PR_BINDINGS,
    "issues": ISSUE_BINDINGS,
    "notifications": NOTIFICATION_BINDINGS,
    "repo": BRANCH_BINDINGS,
}


def keymap_for(view: str, overrides: Optional[Dict[str, str]] = None) -> Dict[str, str]:
    """Map each key of a view to its section action.

    ``overrides`` comes from the ``keybindings`` config block and maps a
    key to an action name of the same view.
    """
    keymap: Dict[str, str] = {}
    for binding in VIEW_BINDINGS.get(view, []):
        for key in binding.key.split(","):
            keymap[key.strip()] = binding.action
    keymap.update(overrides or {})
    return keymap


def hints_for(view: str) -> str:
    bindings = [b for b in GLOBAL_BINDINGS if b.show] + VIEW_BINDINGS.get(view, [])
    return "  ".join(
        f"[b]{b.key.split(',')[0]}[/] {b.description}" for b in bindings
    )
