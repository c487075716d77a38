from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, ClassVar, Dict, FrozenSet, List, Optional, Tuple

from ..actions import PreconditionError, open_url
from ..autocomplete import Mode
from ..context import ProgramContext
from ..datamodels import DisplayRow, FetchResult, PageCursor, SectionIdentifier, SectionType
from ..fetcher import apply_page, fail_page, fetch_next_page
from ..messages import Effects, RowsFetched
from ..sources.base import RemoteSource

logger = logging.getLogger("dash")

# Rows left below the cursor before the next page is requested.
PAGE_FETCH_THRESHOLD = 3

CONFIRM_ANSWERS = ("", "y", "Y")


def time_ago(then: datetime, now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    seconds = max(0, int((now - then).total_seconds()))
    for unit, size in (("y", 31536000), ("mo", 2592000), ("d", 86400), ("h", 3600), ("m", 60)):
        if seconds >= size:
            return f"{seconds // size}{unit}"
    return "now"


def has_repo_name_in_filter(filters: str) -> bool:
    return any(token.startswith("repo:") for token in filters.split())


def has_repo_token(filters: str, repo: str) -> bool:
    return f"repo:{repo}" in filters.split()


@dataclass
class Prompt:
    action: str
    text: str
    value: str = ""


@dataclass
class InputRequest:
    """Free text the section needs before it can run an action."""

    action: str
    title: str
    mode: Mode
    pool: str
    initial: str = ""


@dataclass
class SectionState:
    filters: str = ""
    search_value: str = ""
    search_bar_value: str = ""
    is_searching: bool = False
    rows: List[Any] = field(default_factory=list)
    total_count: int = 0
    page_cursor: Optional[PageCursor] = None
    last_fetch_task_id: str = ""
    is_loading: bool = False
    is_filtered_by_current_repo: bool = False
    error: Optional[str] = None
    prompt: Optional[Prompt] = None
    cursor: int = 0


class Section(ABC):
    """One filterable, paginated list.

    Subclasses provide the columns, row rendering and the actions of their
    row kind. Everything else (searching, confirmation prompts, smart
    filtering and pagination) lives here.
    """

    section_type: ClassVar[SectionType]
    kind_label: ClassVar[str] = "rows"
    item_label: ClassVar[str] = "Row"
    columns: ClassVar[Tuple[str, ...]] = ()
    limit_key: ClassVar[str] = "prs_limit"
    supports_smart_filter: ClassVar[bool] = True

    # action -> prompt text
    PROMPTS: ClassVar[Dict[str, str]] = {}
    # prompts answered with free text instead of y/n
    TEXT_PROMPTS: ClassVar[FrozenSet[str]] = frozenset()
    # prompts that do not need a selected row
    ROWLESS_PROMPTS: ClassVar[FrozenSet[str]] = frozenset()
    # action -> (title, mode, suggestion pool)
    INPUTS: ClassVar[Dict[str, Tuple[str, Mode, str]]] = {}

    def __init__(
        self,
        ctx: ProgramContext,
        section_id: int,
        config: Dict[str, Any],
        source: RemoteSource,
    ):
        self.ctx = ctx
        self.section_id = section_id
        self.config = config
        self.source = source
        self.limit: int = config.get("limit") or ctx.defaults.get(self.limit_key, 20)
        self.state = SectionState(filters=config.get("filters", ""))
        self.state.search_value = self.initial_search_value()
        self.state.search_bar_value = self.state.search_value
        self.input_request: Optional[InputRequest] = None
        self.has_fetched = False
        self._fetch_seq = 0

    @property
    def title(self) -> str:
        return self.config.get("title", "")

    @property
    def identifier(self) -> SectionIdentifier:
        return SectionIdentifier(self.section_id, self.section_type)

    # --- Smart filter ---
    def _repo_token(self) -> Optional[str]:
        if not self.supports_smart_filter or not self.ctx.repo:
            return None
        return f"repo:{self.ctx.repo}"

    def has_repo_name_in_configured_filter(self) -> bool:
        return has_repo_name_in_filter(self.state.filters)

    def has_current_repo_name_in_filter(self, value: Optional[str] = None) -> bool:
        if self._repo_token() is None:
            return False
        value = self.state.search_value if value is None else value
        return has_repo_token(value, self.ctx.repo)

    def initial_search_value(self) -> str:
        filters = self.state.filters
        token = self._repo_token()
        if (
            token
            and self.ctx.smart_filtering_at_launch
            and not self.has_repo_name_in_configured_filter()
        ):
            self.state.is_filtered_by_current_repo = True
            return f"{token} {filters}".strip()
        return filters

    def sync_smart_filter_with_search_value(self) -> None:
        """Follow what the user left in the search box.

        Removing the repo token by hand turns smart filtering off, so a
        later value computation will not put it back.
        """
        if self._repo_token() is None:
            return
        self.state.is_filtered_by_current_repo = self.has_current_repo_name_in_filter()

    def get_search_value(self) -> str:
        value = self.state.search_value
        token = self._repo_token()
        if token is None or self.has_repo_name_in_configured_filter():
            return value
        stripped = " ".join(t for t in value.split() if t != token)
        if self.state.is_filtered_by_current_repo:
            return f"{token} {stripped}".strip()
        return stripped

    def toggle_smart_filter(self) -> Effects:
        if self._repo_token() is None or self.has_repo_name_in_configured_filter():
            return []
        self.state.is_filtered_by_current_repo = not self.state.is_filtered_by_current_repo
        value = self.get_search_value()
        if value == self.state.search_value:
            return []
        self.state.search_value = value
        self.state.search_bar_value = value
        self.reset_rows()
        return self.fetch_next_page()

    # --- Fetching ---
    def next_fetch_seq(self) -> int:
        self._fetch_seq += 1
        return self._fetch_seq

    def get_filters(self) -> str:
        return self.state.search_value

    def make_fetcher(self) -> Callable[[str, int, Optional[PageCursor]], FetchResult]:
        """The callable run in a worker thread for each page."""
        return self.source.fetch

    def fetch_next_page(self) -> Effects:
        self.has_fetched = True
        return fetch_next_page(self)

    def reset_rows(self) -> None:
        self.state.rows = []
        self.state.total_count = 0
        self.state.page_cursor = None
        self.state.cursor = 0
        self.state.error = None

    def refresh(self, manual: bool = True) -> Effects:
        """Refetch from the first page.

        A background refresh keeps the current rows until the new page
        replaces them.
        """
        if manual:
            self.reset_rows()
        else:
            self.state.page_cursor = None
        return self.fetch_next_page()

    def update(self, msg: Any) -> Effects:
        if isinstance(msg, RowsFetched):
            selected = self.get_curr_row()
            if apply_page(self.state, msg):
                self.on_rows_fetched(selected)
                self._clamp_cursor()
            return []
        effects = self.apply_update(msg)
        self._clamp_cursor()
        return effects

    def on_task_error(self, task_id: str, error: str) -> None:
        fail_page(self.state, task_id, error)

    def on_rows_fetched(self, selected: Optional[Any]) -> None:
        """Called after a page is merged, with the row selected before it."""
        pass

    def apply_update(self, msg: Any) -> Effects:
        return []

    # --- Rows ---
    def num_rows(self) -> int:
        return len(self.state.rows)

    def get_curr_row(self) -> Optional[Any]:
        if not self.state.rows:
            return None
        return self.state.rows[self.state.cursor]

    def _clamp_cursor(self) -> None:
        self.state.cursor = max(0, min(self.state.cursor, len(self.state.rows) - 1))

    def move_cursor(self, delta: int) -> Effects:
        if not self.state.rows:
            return []
        self.state.cursor = max(0, min(self.state.cursor + delta, len(self.state.rows) - 1))
        cursor = self.state.page_cursor
        near_end = self.state.cursor >= len(self.state.rows) - PAGE_FETCH_THRESHOLD
        if near_end and not self.state.is_loading and cursor is not None and cursor.has_next_page:
            return self.fetch_next_page()
        return []

    def first_row(self) -> Effects:
        return self.move_cursor(-len(self.state.rows))

    def last_row(self) -> Effects:
        return self.move_cursor(len(self.state.rows))

    @abstractmethod
    def build_row(self, row: Any) -> DisplayRow:
        pass

    def build_rows(self) -> List[DisplayRow]:
        return [self.build_row(row) for row in self.state.rows]

    def empty_text(self) -> str:
        if self.state.is_loading:
            return f"Loading {self.kind_label}..."
        return f"No {self.kind_label} were found that match the given filters"

    def view(self) -> str:
        lines = [f"{self.title}  [{self.state.search_value}]"]
        if self.state.error:
            lines.append(f"! {self.state.error}")
        rows = self.build_rows()
        if not rows:
            lines.append(self.empty_text())
        for index, row in enumerate(rows):
            marker = ">" if index == self.state.cursor else " "
            lines.append(f"{marker} " + "  ".join(cell for cell in row if cell))
        if self.state.prompt:
            lines.append(self.state.prompt.text + self.state.prompt.value)
        return "\n".join(lines)

    def get_pager_content(self) -> str:
        if self.state.prompt:
            return self.state.prompt.text + self.state.prompt.value
        if not self.state.rows:
            return ""
        content = (
            f"{self.item_label} {self.state.cursor + 1}/{self.state.total_count}"
            f" • Fetched {len(self.state.rows)}"
        )
        if self.state.is_loading:
            content += " • Loading"
        return content

    # --- Search ---
    def begin_search(self) -> None:
        self.state.is_searching = True
        self.state.search_bar_value = self.state.search_value

    def set_search_bar_value(self, value: str) -> None:
        self.state.search_bar_value = value

    def submit_search(self, value: Optional[str] = None) -> Effects:
        if value is not None:
            self.state.search_bar_value = value
        self.state.is_searching = False
        self.state.search_value = self.state.search_bar_value.strip()
        self.state.search_bar_value = self.state.search_value
        self.sync_smart_filter_with_search_value()
        self.reset_rows()
        return self.fetch_next_page()

    def cancel_search(self) -> None:
        self.state.is_searching = False
        self.state.search_bar_value = self.state.search_value

    # --- Confirmation prompt ---
    def begin_prompt(self, action: str) -> bool:
        if action not in self.PROMPTS:
            return False
        if action not in self.ROWLESS_PROMPTS and self.get_curr_row() is None:
            return False
        self.state.prompt = Prompt(action, self.PROMPTS[action])
        return True

    def set_prompt_value(self, value: str) -> None:
        if self.state.prompt:
            self.state.prompt.value = value

    def cancel_prompt(self) -> None:
        self.state.prompt = None

    def confirm_prompt(self, value: Optional[str] = None) -> Effects:
        prompt = self.state.prompt
        if prompt is None:
            return []
        self.state.prompt = None
        answer = prompt.value if value is None else value
        if prompt.action in self.TEXT_PROMPTS:
            answer = answer.strip()
            if not answer:
                return []
            return self._guarded(prompt.action, lambda: self.run_confirmed(prompt.action, answer))
        if answer.strip() not in CONFIRM_ANSWERS:
            logger.debug("Prompt %s cancelled with %r", prompt.action, answer)
            return []
        return self._guarded(prompt.action, lambda: self.run_confirmed(prompt.action, answer))

    # --- Actions ---
    def _guarded(self, action: str, run: Callable[[], Effects]) -> Effects:
        try:
            return run()
        except PreconditionError as e:
            return self.ctx.tasks.report_error(f"{action}_{self.section_id}", str(e))

    def perform(self, action: str) -> Effects:
        """Run a row action picked by a key."""
        if action in self.PROMPTS:
            self.begin_prompt(action)
            return []
        if action in self.INPUTS:
            self.request_input(action)
            return []
        if action == "toggle_smart_filter":
            return self.toggle_smart_filter()
        if action == "open":
            row = self.get_curr_row()
            return open_url(row.url) if row is not None else []
        return self._guarded(action, lambda: self.run_action(action))

    def run_action(self, action: str) -> Effects:
        logger.debug("Section %s ignores action %s", self.section_id, action)
        return []

    def run_confirmed(self, action: str, value: str) -> Effects:
        return []

    # --- Free text input ---
    def initial_input(self, action: str) -> str:
        return ""

    def request_input(self, action: str) -> bool:
        if action not in self.INPUTS or self.get_curr_row() is None:
            return False
        title, mode, pool = self.INPUTS[action]
        self.input_request = InputRequest(action, title, mode, pool, self.initial_input(action))
        return True

    def take_input_request(self) -> Optional[InputRequest]:
        request, self.input_request = self.input_request, None
        return request

    def submit_input(self, action: str, text: str) -> Effects:
        if not text.strip() or self.get_curr_row() is None:
            return []
        return self._guarded(action, lambda: self.run_input(action, text))

    def run_input(self, action: str, text: str) -> Effects:
        return []


def find_row(rows: List[Any], match: Callable[[Any], bool]) -> Optional[int]:
    for index, row in enumerate(rows):
        if match(row):
            return index
    return None


def parse_users(text: str) -> List[str]:
    return [word.lstrip("@") for word in text.split() if word.lstrip("@")]
