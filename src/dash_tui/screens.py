from __future__ import annotations

from typing import List

from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Vertical
from textual.screen import ModalScreen, Screen
from textual.widgets import Footer, Header, Input, Label, Markdown

from .autocomplete import Autocomplete, Mode
from .widgets import SuggestionList


class InputScreen(ModalScreen[str]):
    """Single line editor for comments, labels and assignees.

    Dismisses with the entered text, or with ``None`` when cancelled.
    """

    BINDINGS = [
        Binding("escape", "cancel", "Cancel"),
        Binding("tab", "accept_suggestion", "Complete", priority=True),
        Binding("ctrl+n,down", "next_suggestion", "Next", show=False),
        Binding("ctrl+p,up", "prev_suggestion", "Previous", show=False),
        Binding("ctrl+space", "show_suggestions", "Suggest", show=False),
    ]

    DEFAULT_CSS = """
    InputScreen {
        align: center middle;
    }
    InputScreen > Vertical {
        width: 80%;
        height: auto;
        border: round $accent;
        padding: 0 1;
    }
    InputScreen SuggestionList {
        height: auto;
        max-height: 7;
    }
    """

    def __init__(self, title: str, mode: Mode, suggestions: List[str], initial: str = ""):
        super().__init__()
        self.prompt_title = title
        self.initial = initial
        self.autocomplete = Autocomplete(mode, suggestions)

    def compose(self) -> ComposeResult:
        with Vertical():
            yield Label(self.prompt_title)
            yield Input(value=self.initial, id="input-text")
            yield SuggestionList(id="suggestions")

    def on_mount(self) -> None:
        text = self.query_one("#input-text", Input)
        text.cursor_position = len(self.initial)
        text.focus()
        self._render_suggestions()

    def _render_suggestions(self) -> None:
        suggestions = self.query_one("#suggestions", SuggestionList)
        if not self.autocomplete.visible:
            suggestions.show([], "")
            return
        suggestions.show(self.autocomplete.visible_items(), self.autocomplete.selection or "")

    def on_input_changed(self, event: Input.Changed) -> None:
        self.autocomplete.update(event.value, event.input.cursor_position)
        self._render_suggestions()

    def on_input_submitted(self, event: Input.Submitted) -> None:
        self.dismiss(event.value)

    def action_cancel(self) -> None:
        self.dismiss(None)

    def action_accept_suggestion(self) -> None:
        if not self.autocomplete.visible:
            return
        text = self.query_one("#input-text", Input)
        value, cursor = self.autocomplete.accept(text.value)
        text.value = value
        text.cursor_position = cursor
        self.autocomplete.hide()
        self._render_suggestions()

    def action_next_suggestion(self) -> None:
        self.autocomplete.next()
        self._render_suggestions()

    def action_prev_suggestion(self) -> None:
        self.autocomplete.prev()
        self._render_suggestions()

    def action_show_suggestions(self) -> None:
        text = self.query_one("#input-text", Input)
        self.autocomplete.show(text.value, text.cursor_position)
        self._render_suggestions()


class ErrorScreen(Screen):
    BINDINGS = [Binding("q,escape", "app.quit", "Quit")]

    def __init__(self, title: str, message: str):
        super().__init__()
        self.error_title = title
        self.message = message

    def compose(self) -> ComposeResult:
        yield Header()
        yield Label(self.error_title, classes="error-title")
        yield Markdown(self.message)
        yield Footer()
