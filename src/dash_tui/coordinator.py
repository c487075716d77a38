from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Type

from rich.text import Text

from .config import VIEWS, get_section_configs
from .context import ProgramContext
from .datamodels import SEARCH_SECTION_ID, SectionType
from .keys import keymap_for
from .messages import (
    ClearTask,
    Delayed,
    Effects,
    IntervalRefresh,
    SpinnerTick,
    SuggestionsFetched,
    TaskFinished,
    UserFetched,
)
from .preview import render_preview
from .sections.base import InputRequest, Section
from .sections.branches import BranchSection
from .sections.issues import IssueSection
from .sections.notifications import NotificationSection
from .sections.prs import PullRequestSection
from .sources.base import SuggestionSource

logger = logging.getLogger("dash")

SECTION_CLASSES: Dict[str, Type[Section]] = {
    "prs": PullRequestSection,
    "issues": IssueSection,
    "notifications": NotificationSection,
    "repo": BranchSection,
}

# Views with an ad-hoc search section in front of the configured ones.
SEARCHABLE_VIEWS = ("prs", "issues")


class ViewCoordinator:
    """Owns the sections of every view and routes messages to them."""

    def __init__(self, ctx: ProgramContext, sources: Any, suggestions: Optional[SuggestionSource] = None):
        self.ctx = ctx
        self.sources = sources
        self.suggestions = suggestions
        self.sections: Dict[str, List[Section]] = {}
        self.current: Dict[str, int] = {}
        self.preview_open = bool(ctx.defaults.get("preview_open", True))

        for view in self.views():
            self.sections[view] = self._build_sections(view)
            self.current[view] = 1 if view in SEARCHABLE_VIEWS and len(self.sections[view]) > 1 else 0

        default_view = ctx.defaults.get("view", "prs")
        if default_view not in self.sections:
            default_view = self.views()[0]
        ctx.view = default_view

    def views(self) -> List[str]:
        return [v for v in VIEWS if v != "repo" or self.ctx.repo_path]

    def _build_sections(self, view: str) -> List[Section]:
        section_class = SECTION_CLASSES[view]
        source = self.sources.source_for(SectionType(view))
        sections: List[Section] = []
        if view in SEARCHABLE_VIEWS:
            sections.append(
                section_class(self.ctx, SEARCH_SECTION_ID, {"title": "Search", "filters": ""}, source)
            )
        for section_id, config in enumerate(get_section_configs(self.ctx.config, view), start=1):
            sections.append(section_class(self.ctx, section_id, config, source))
        return sections

    # --- Lookup ---
    @property
    def view(self) -> str:
        return self.ctx.view

    def current_sections(self) -> List[Section]:
        return self.sections.get(self.view, [])

    def current_section(self) -> Optional[Section]:
        sections = self.current_sections()
        if not sections:
            return None
        return sections[self.current[self.view]]

    def find_section(self, section_id: int, section_type: Optional[SectionType]) -> Optional[Section]:
        if section_type is None:
            return None
        for section in self.sections.get(section_type.value, []):
            if section.section_id == section_id:
                return section
        return None

    # --- Startup and refresh ---
    def init(self) -> Effects:
        effects = self._fetch_unfetched(self.view)
        effects += self._fetch_user() + self._fetch_suggestions()
        effects += self._schedule_refresh()
        return effects

    def _fetch_unfetched(self, view: str) -> Effects:
        effects: Effects = []
        for section in self.sections.get(view, []):
            if section.section_id != SEARCH_SECTION_ID and not section.has_fetched:
                effects += section.fetch_next_page()
        return effects

    def _fetch_user(self) -> Effects:
        suggestions = self.suggestions
        if suggestions is None:
            return []

        def run():
            try:
                return UserFetched(suggestions.viewer_login())
            except Exception as e:
                logger.error("Could not fetch the current user: %s", e)
                return None

        return [run]

    def _fetch_suggestions(self) -> Effects:
        suggestions, repo = self.suggestions, self.ctx.repo
        if suggestions is None or not repo:
            return []

        def load(kind: str, loader):
            def run():
                try:
                    return SuggestionsFetched(kind, loader(repo))
                except Exception as e:
                    logger.error("Could not fetch %s for %s: %s", kind, repo, e)
                    return None

            return run

        return [load("labels", suggestions.list_labels), load("users", suggestions.list_users)]

    def _schedule_refresh(self) -> Effects:
        minutes = self.ctx.defaults.get("refetch_interval_minutes") or 0
        if minutes <= 0:
            return []
        return [Delayed(minutes * 60, IntervalRefresh())]

    def refresh(self) -> Effects:
        section = self.current_section()
        return section.refresh(manual=True) if section else []

    def refresh_all(self) -> Effects:
        effects: Effects = []
        for section in self.current_sections():
            if section.has_fetched:
                effects += section.refresh(manual=True)
        return effects

    # --- Messages ---
    def update(self, msg: Any) -> Effects:
        if isinstance(msg, TaskFinished):
            effects = self.ctx.tasks.finish(msg.task_id, msg.error)
            section = self.find_section(msg.section_id, msg.section_type)
            if section is None:
                return effects
            if msg.error is not None:
                section.on_task_error(msg.task_id, msg.error)
            elif msg.msg is not None:
                effects += section.update(msg.msg)
            self._sync_subject()
            return effects
        if isinstance(msg, ClearTask):
            self.ctx.tasks.clear(msg)
            return []
        if isinstance(msg, SpinnerTick):
            return self.ctx.tasks.tick()
        if isinstance(msg, IntervalRefresh):
            effects = []
            for sections in self.sections.values():
                for section in sections:
                    if section.has_fetched:
                        effects += section.refresh(manual=False)
            return effects + self._schedule_refresh()
        if isinstance(msg, UserFetched):
            self.ctx.user = msg.login
            return []
        if isinstance(msg, SuggestionsFetched):
            if msg.kind == "labels":
                self.ctx.labels = list(msg.items)
            else:
                self.ctx.users = list(msg.items)
            return []
        logger.debug("Unhandled message %r", msg)
        return []

    # --- Navigation ---
    def switch_view(self) -> Effects:
        views = self.views()
        index = views.index(self.view) if self.view in views else -1
        self.ctx.view = views[(index + 1) % len(views)]
        self._sync_subject()
        return self._fetch_unfetched(self.view)

    def next_section(self) -> Effects:
        return self._move_section(1)

    def prev_section(self) -> Effects:
        return self._move_section(-1)

    def _move_section(self, delta: int) -> Effects:
        sections = self.current_sections()
        if not sections:
            return []
        self.current[self.view] = (self.current[self.view] + delta) % len(sections)
        self._sync_subject()
        section = self.current_section()
        if section.section_id != SEARCH_SECTION_ID and not section.has_fetched:
            return section.fetch_next_page()
        return []

    def move_cursor(self, delta: int) -> Effects:
        section = self.current_section()
        effects = section.move_cursor(delta) if section else []
        self._sync_subject()
        return effects

    def first_row(self) -> Effects:
        section = self.current_section()
        effects = section.first_row() if section else []
        self._sync_subject()
        return effects

    def last_row(self) -> Effects:
        section = self.current_section()
        effects = section.last_row() if section else []
        self._sync_subject()
        return effects

    def _sync_subject(self) -> None:
        if self.view == "notifications":
            section = self.current_section()
            self.ctx.notification_subject = section.get_curr_row() if section else None
        else:
            self.ctx.notification_subject = None

    def handle_key(self, key: str) -> Optional[Effects]:
        """Run the section action bound to ``key`` in the current view.

        Returns None when nothing is bound to the key.
        """
        section = self.current_section()
        if section is None or section.state.is_searching or section.state.prompt:
            return None
        overrides = (self.ctx.config.get("keybindings") or {}).get(self.view)
        action = keymap_for(self.view, overrides).get(key)
        if action is None:
            return None
        logger.debug("Key %s -> %s in %s", key, action, self.view)
        effects = section.perform(action)
        self._sync_subject()
        return effects

    # --- Input ---
    def pending_input(self) -> Optional[InputRequest]:
        section = self.current_section()
        return section.take_input_request() if section else None

    def submit_input(self, request: InputRequest, text: str) -> Effects:
        section = self.current_section()
        return section.submit_input(request.action, text) if section else []

    def suggestions_for(self, pool: str) -> List[str]:
        return self.ctx.labels if pool == "labels" else self.ctx.users

    # --- Presentation ---
    def toggle_preview(self) -> None:
        self.preview_open = not self.preview_open

    def preview(self) -> Text:
        if self.view == "notifications":
            return render_preview(self.ctx.notification_subject)
        section = self.current_section()
        return render_preview(section.get_curr_row() if section else None)

    def tabs(self) -> List[str]:
        return [s.title for s in self.current_sections()]

    def status_line(self) -> Text:
        return self.ctx.tasks.render()
