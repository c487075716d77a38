from __future__ import annotations

import logging
from functools import partial
from typing import Any, Optional

from textual.app import App, ComposeResult
from textual.containers import Horizontal, Vertical
from textual.events import Key
from textual.widgets import DataTable, Header, Input, Label, Static
from textual.worker import Worker, WorkerState

from .coordinator import ViewCoordinator
from .keys import GLOBAL_BINDINGS, hints_for
from .messages import Delayed, Effects, SpinnerTick
from .screens import ErrorScreen, InputScreen
from .sections.base import InputRequest
from .widgets import SectionTabs, StatusBar

logger = logging.getLogger("dash")

ENGINE_WORKER = "engine"


class DashApp(App):
    TITLE = "Dash"
    SUB_TITLE = "GitHub in your terminal"

    CSS = """
    #search-bar { height: 3; }
    #main { height: 1fr; }
    #rows { width: 1fr; }
    #preview-pane { width: 45%; border-left: solid $accent; padding: 0 1; overflow-y: auto; }
    #empty { color: $text-muted; padding: 1 2; }
    #prompt-bar { height: auto; display: none; }
    #prompt-label { padding: 1 0 0 1; width: auto; }
    #prompt { width: 1fr; }
    StatusBar { height: 1; background: $panel; }
    """

    BINDINGS = GLOBAL_BINDINGS

    def __init__(
        self,
        coordinator: Optional[ViewCoordinator],
        theme: Optional[str] = None,
        startup_error: Optional[str] = None,
        **kwargs: Any,
    ):
        super().__init__(**kwargs)
        self.coordinator = coordinator
        self._theme_name = theme or "dracula"
        self.startup_error = startup_error

    def compose(self) -> ComposeResult:
        yield Header()
        yield SectionTabs(id="tabs")
        yield Input(placeholder="Search...", id="search-bar")
        with Horizontal(id="main"):
            with Vertical(id="rows"):
                yield DataTable(id="table", cursor_type="row", zebra_stripes=True)
                yield Static("", id="empty")
            yield Static("", id="preview-pane")
        with Horizontal(id="prompt-bar"):
            yield Label("", id="prompt-label")
            yield Input(id="prompt")
        yield StatusBar()

    def on_mount(self) -> None:
        self.theme = self._theme_name
        if self.startup_error:
            self.push_screen(ErrorScreen("Dash could not start", self.startup_error))
            return
        table = self.query_one("#table", DataTable)
        table.can_focus = False
        self.query_one("#search-bar", Input).can_focus = False
        self.run_effects(self.coordinator.init())
        self.refresh_view()

    # --- Engine plumbing ---
    def run_effects(self, effects: Effects) -> None:
        for effect in effects:
            if isinstance(effect, Delayed):
                self.set_timer(effect.delay, partial(self.dispatch, effect.msg))
            else:
                self.run_worker(effect, name=ENGINE_WORKER, thread=True)

    def dispatch(self, msg: Any) -> None:
        self.run_effects(self.coordinator.update(msg))
        if isinstance(msg, SpinnerTick):
            self.refresh_status()
        else:
            self.refresh_view()

    def on_worker_state_changed(self, event: Worker.StateChanged) -> None:
        if event.worker.name != ENGINE_WORKER:
            return
        if event.state is WorkerState.SUCCESS:
            result = event.worker.result
            if result is not None:
                self.dispatch(result)
        elif event.state is WorkerState.ERROR:
            logger.error("Worker failed: %s", event.worker.error)

    # --- Rendering ---
    def refresh_status(self) -> None:
        status = self.query_one(StatusBar)
        section = self.coordinator.current_section()
        status.pager_content = section.get_pager_content() if section else ""
        status.task_status = self.coordinator.status_line()

    def refresh_view(self) -> None:
        coordinator = self.coordinator
        section = coordinator.current_section()
        self.query_one("#tabs", SectionTabs).show(
            coordinator.view, coordinator.tabs(), coordinator.current[coordinator.view]
        )
        self.query_one(StatusBar).set_keybindings(hints_for(coordinator.view))
        self.refresh_status()
        if section is None:
            return

        search = self.query_one("#search-bar", Input)
        if not search.has_focus:
            search.value = section.state.search_bar_value

        table = self.query_one("#table", DataTable)
        table.clear(columns=True)
        table.add_columns(*section.columns)
        rows = section.build_rows()
        table.add_rows(rows)
        empty = self.query_one("#empty", Static)
        empty.display = not rows
        empty.update(section.empty_text() if not rows else "")
        if rows:
            table.move_cursor(row=section.state.cursor)

        preview = self.query_one("#preview-pane", Static)
        preview.display = coordinator.preview_open
        preview.update(coordinator.preview())

        self._sync_prompt(section.state.prompt)
        request = coordinator.pending_input()
        if request is not None:
            self._open_input(request)

    def _sync_prompt(self, prompt) -> None:
        bar = self.query_one("#prompt-bar")
        field = self.query_one("#prompt", Input)
        if prompt is None:
            if bar.display:
                bar.display = False
                field.value = ""
            return
        self.query_one("#prompt-label", Label).update(prompt.text)
        if not bar.display:
            bar.display = True
            field.value = prompt.value
            field.focus()

    def _open_input(self, request: InputRequest) -> None:
        screen = InputScreen(
            request.title,
            request.mode,
            self.coordinator.suggestions_for(request.pool),
            request.initial,
        )

        def submitted(text: Optional[str]) -> None:
            if text is None:
                return
            self.run_effects(self.coordinator.submit_input(request, text))
            self.refresh_view()

        self.push_screen(screen, submitted)

    def check_action(self, action: str, parameters: tuple) -> Optional[bool]:
        if self.coordinator is None:
            return action == "quit"
        return True

    # --- Input handling ---
    def on_key(self, event: Key) -> None:
        if self.coordinator is None:
            return
        section = self.coordinator.current_section()
        if section is None:
            return
        focused = self.focused
        if isinstance(focused, Input):
            if event.key in ("escape", "ctrl+c"):
                event.stop()
                if focused.id == "search-bar":
                    section.cancel_search()
                    focused.can_focus = False
                elif focused.id == "prompt":
                    section.cancel_prompt()
                self.set_focus(None)
                self.refresh_view()
            return
        if event.key == "space":
            key = "space"
        else:
            key = event.character if event.is_printable else event.key
        effects = self.coordinator.handle_key(key)
        if effects is None:
            return
        event.stop()
        self.run_effects(effects)
        self.refresh_view()

    def on_input_changed(self, event: Input.Changed) -> None:
        section = self.coordinator.current_section()
        if section is None:
            return
        if event.input.id == "search-bar" and event.input.has_focus:
            section.set_search_bar_value(event.value)
        elif event.input.id == "prompt":
            section.set_prompt_value(event.value)

    def on_input_submitted(self, event: Input.Submitted) -> None:
        section = self.coordinator.current_section()
        if section is None:
            return
        if event.input.id == "search-bar":
            event.input.can_focus = False
            self.set_focus(None)
            self.run_effects(section.submit_search(event.value))
        elif event.input.id == "prompt":
            self.set_focus(None)
            self.run_effects(section.confirm_prompt(event.value))
        self.refresh_view()

    # --- Actions ---
    def action_search(self) -> None:
        section = self.coordinator.current_section()
        if section is None:
            return
        section.begin_search()
        search = self.query_one("#search-bar", Input)
        search.can_focus = True
        search.value = section.state.search_bar_value
        search.focus()

    def action_switch_view(self) -> None:
        self.run_effects(self.coordinator.switch_view())
        self.refresh_view()

    def action_refresh(self) -> None:
        self.run_effects(self.coordinator.refresh())
        self.refresh_view()

    def action_refresh_all(self) -> None:
        self.run_effects(self.coordinator.refresh_all())
        self.refresh_view()

    def action_toggle_preview(self) -> None:
        self.coordinator.toggle_preview()
        self.refresh_view()

    def action_prev_section(self) -> None:
        self.run_effects(self.coordinator.prev_section())
        self.refresh_view()

    def action_next_section(self) -> None:
        self.run_effects(self.coordinator.next_section())
        self.refresh_view()

    def action_cursor(self, delta: int) -> None:
        self.run_effects(self.coordinator.move_cursor(delta))
        self.refresh_view()

    def action_first_row(self) -> None:
        self.run_effects(self.coordinator.first_row())
        self.refresh_view()

    def action_last_row(self) -> None:
        self.run_effects(self.coordinator.last_row())
        self.refresh_view()
