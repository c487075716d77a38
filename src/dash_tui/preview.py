from __future__ import annotations

from typing import Any, List, Optional

from rich.text import Text

from .datamodels import Branch, Comment, Issue, Notification, PullRequest


def _header(text: Text, title: str, subtitle: str) -> None:
    text.append(title + "\n", style="bold")
    text.append(subtitle + "\n\n", style="dim")


def _labels(text: Text, labels: List[Any]) -> None:
    if not labels:
        return
    for label in labels:
        style = f"on #{label.color}" if label.color else "reverse"
        text.append(f" {label.name} ", style=style)
        text.append(" ")
    text.append("\n\n")


def _comments(text: Text, comments: List[Comment]) -> None:
    if not comments:
        return
    text.append(f"\nComments ({len(comments)})\n", style="bold underline")
    for comment in comments:
        text.append(f"{comment.author}", style="bold cyan")
        text.append(f"  {comment.updated_at:%Y-%m-%d %H:%M}\n", style="dim")
        text.append(comment.body.strip() + "\n\n")


def render_preview(row: Optional[Any]) -> Text:
    """Read-only detail view of the selected row."""
    text = Text()
    if row is None:
        text.append("Nothing selected", style="dim italic")
        return text

    if isinstance(row, PullRequest):
        state = "DRAFT" if row.is_draft and row.state == "OPEN" else row.state
        _header(text, f"#{row.number} {row.title}", f"{row.repo} · {state} · by {row.author}")
        text.append(f"{row.head_ref} → {row.base_ref}  ", style="magenta")
        text.append(f"+{row.additions} ", style="green")
        text.append(f"-{row.deletions}\n", style="red")
        if row.review_decision:
            text.append(f"Review: {row.review_decision.replace('_', ' ').lower()}\n")
        if row.assignees:
            text.append(f"Assignees: {', '.join(row.assignees)}\n")
        text.append("\n")
        _labels(text, row.labels)
        text.append(row.body.strip() or "No description provided.")
        text.append("\n")
        _comments(text, row.comments)
    elif isinstance(row, Issue):
        _header(text, f"#{row.number} {row.title}", f"{row.repo} · {row.state} · by {row.author}")
        if row.assignees:
            text.append(f"Assignees: {', '.join(row.assignees)}\n\n")
        _labels(text, row.labels)
        text.append(row.body.strip() or "No description provided.")
        text.append("\n")
        _comments(text, row.comments)
    elif isinstance(row, Notification):
        _header(text, row.title, f"{row.repo} · {row.subject_type} · {row.reason.replace('_', ' ')}")
        text.append("Unread\n" if row.unread else "Read\n")
        if row.bookmarked:
            text.append("Bookmarked\n", style="yellow")
        text.append(row.url, style="underline")
    elif isinstance(row, Branch):
        _header(text, row.name, f"{row.repo} · ↑{row.ahead} ↓{row.behind}")
        text.append(row.last_commit_msg + "\n")
        if row.pr is not None:
            text.append(f"\nPR #{row.pr.number} {row.pr.title}\n", style="bold")
    return text
