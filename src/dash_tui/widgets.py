from __future__ import annotations

from typing import List

from textual.reactive import reactive
from textual.widgets import Static
from rich.text import Text


# --- UI Widgets ---
class SectionTabs(Static):
    """One line naming the view and its sections, current one highlighted."""

    def show(self, view: str, titles: List[str], current: int) -> None:
        line = Text()
        line.append(f" {view.upper()} ", style="bold reverse")
        for index, title in enumerate(titles):
            line.append("  ")
            style = "bold underline" if index == current else "dim"
            line.append(title or "Search", style=style)
        self.update(line)


class StatusBar(Static):
    pager_content = reactive("")
    task_status = reactive(Text(""))
    keybinding_hint = reactive("")

    def on_mount(self) -> None:
        self.update_display()

    def set_keybindings(self, hint: str) -> None:
        """Set the keybinding hint text."""
        self.keybinding_hint = hint

    def update_display(self) -> None:
        """Update the status bar display."""
        line = Text()
        for item in (self.pager_content, self.task_status):
            if not item:
                continue
            if line:
                line.append(" | ")
            line.append_text(item if isinstance(item, Text) else Text(item))
        if self.keybinding_hint:
            if line:
                line.append(" | ")
            line.append_text(Text.from_markup(self.keybinding_hint))
        self.update(line)

    def watch_pager_content(self, pager_content: str) -> None:
        self.update_display()

    def watch_task_status(self, task_status: Text) -> None:
        self.update_display()

    def watch_keybinding_hint(self, keybinding_hint: str) -> None:
        self.update_display()


class SuggestionList(Static):
    """The visible page of autocomplete matches."""

    def show(self, items: List[str], selected: str) -> None:
        if not items:
            self.display = False
            return
        lines = Text()
        for item in items:
            style = "bold reverse" if item == selected else ""
            lines.append(f" {item} \n", style=style)
        self.update(lines)
        self.display = True
