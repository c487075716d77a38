"""Fetch-and-paginate pipeline shared by every section.

Each dispatched fetch gets a fresh task id that is recorded on the section
before the worker runs. A result is applied only when its id is still the
section's ``last_fetch_task_id``; anything older is dropped on arrival.
"""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

from .datamodels import PageCursor, Task
from .messages import Effects, RowsFetched, TaskFinished

if TYPE_CHECKING:
    from .sections.base import Section, SectionState

logger = logging.getLogger("dash")


def build_fetch_task_id(
    kind: str, section_id: int, seq: int, cursor: Optional[PageCursor], now: float
) -> str:
    position = cursor.token if cursor is not None and cursor.token else f"{now:.6f}"
    return f"fetching_{kind}_{section_id}_{seq}_{position}"


def fetch_next_page(section: "Section") -> Effects:
    state = section.state
    if state.page_cursor is not None and not state.page_cursor.has_next_page:
        logger.debug("Section %s: no more pages", section.section_id)
        return []

    ctx = section.ctx
    cursor = state.page_cursor
    task_id = build_fetch_task_id(
        section.section_type.value,
        section.section_id,
        section.next_fetch_seq(),
        cursor,
        ctx.clock(),
    )
    state.last_fetch_task_id = task_id
    state.is_loading = True

    filters = section.get_filters()
    limit = section.limit
    fetch = section.make_fetcher()
    section_id, section_type = section.section_id, section.section_type
    title = section.config.get("title", "")

    effects = ctx.start_task(
        Task(
            id=task_id,
            start_text=f"Fetching {section.kind_label} for {title}",
            finished_text=f"{section.kind_label} for {title} have been fetched",
        )
    )

    def run():
        logger.debug("Fetching %s: filters=%r cursor=%r", task_id, filters, cursor)
        try:
            result = fetch(filters, limit, cursor)
        except Exception as e:
            logger.exception("Fetch %s failed", task_id)
            return TaskFinished(task_id, section_id, section_type, error=str(e))
        return TaskFinished(
            task_id,
            section_id,
            section_type,
            msg=RowsFetched(task_id, result, cursor),
        )

    effects.append(run)
    return effects


def apply_page(state: "SectionState", msg: RowsFetched) -> bool:
    """Merge a fetched page into ``state``; return False for a stale result."""
    if msg.task_id != state.last_fetch_task_id:
        logger.debug(
            "Discarding stale fetch %s (current %s)", msg.task_id, state.last_fetch_task_id
        )
        return False

    result = msg.result
    if msg.cursor_used is not None:
        state.rows = state.rows + list(result.rows)
    else:
        state.rows = list(result.rows)
    state.total_count = result.total_count
    state.page_cursor = result.page_cursor
    state.is_loading = False
    state.error = None
    return True


def fail_page(state: "SectionState", task_id: str, error: str) -> bool:
    """Record a fetch failure without touching the loaded rows."""
    if task_id != state.last_fetch_task_id:
        return False
    state.is_loading = False
    state.error = error
    return True
