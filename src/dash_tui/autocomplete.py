"""Cursor-aware completion for labels, @-mentions and plain words.

Indices are str indices, so every position counts code points and stays
aligned with the cursor for multi-byte characters such as emoji.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional, Sequence, Tuple

MAX_VISIBLE = 5

MENTION_BOUNDARIES = frozenset(" \t\n\r,.!?;:()[]{}<>\"'`")
WORD_BOUNDARIES = frozenset(" \t\n\r")


class Mode(Enum):
    COMMA = "comma"
    MENTION = "mention"
    WHITESPACE = "whitespace"


@dataclass(frozen=True)
class Context:
    text: str
    start: int
    end: int
    is_first: bool
    is_last: bool


NO_CONTEXT = Context("", -1, -1, False, False)


def _clamp(input: str, cursor: int) -> int:
    return max(0, min(cursor, len(input)))


def _comma_segment(input: str, cursor: int) -> Tuple[int, int]:
    cursor = _clamp(input, cursor)
    start = input.rfind(",", 0, cursor) + 1
    end = input.find(",", cursor)
    if end == -1:
        end = len(input)
    return start, end


def _word_bounds(input: str, cursor: int, boundaries: frozenset) -> Tuple[int, int]:
    cursor = _clamp(input, cursor)
    start = cursor
    while start > 0 and input[start - 1] not in boundaries:
        start -= 1
    end = cursor
    while end < len(input) and input[end] not in boundaries:
        end += 1
    return start, end


def _words(input: str) -> List[str]:
    words, current = [], []
    for ch in input:
        if ch in WORD_BOUNDARIES:
            if current:
                words.append("".join(current))
                current = []
        else:
            current.append(ch)
    if current:
        words.append("".join(current))
    return words


def extract_context(input: str, cursor: int, mode: Mode) -> Context:
    """Return the sub-field under the cursor for the given mode."""
    if mode is Mode.COMMA:
        start, end = _comma_segment(input, cursor)
        return Context(
            input[start:end].strip(), start, end, start == 0, end == len(input)
        )

    if mode is Mode.MENTION:
        start, end = _word_bounds(input, cursor, MENTION_BOUNDARIES)
        token = input[start:end]
        if not token.startswith("@"):
            return NO_CONTEXT
        return Context(token[1:], start, end, start == 0, end == len(input))

    start, end = _word_bounds(input, cursor, WORD_BOUNDARIES)
    return Context(input[start:end], start, end, start == 0, end == len(input))


def insert_suggestion(
    input: str, suggestion: str, start: int, end: int, mode: Mode
) -> Tuple[str, int]:
    """Replace ``input[start:end]`` with ``suggestion``.

    Returns the new text and the cursor position right after the inserted
    text. Depends on nothing but its arguments.
    """
    if mode is Mode.COMMA:
        prefix = input[:start]
        if "," in prefix:
            replacement = f" {suggestion}, "
        else:
            replacement = f"{suggestion}, "
        rest = input[end:]
        if rest.startswith(","):
            rest = rest[1:]
        rest = rest.lstrip(" \t")
        return prefix + replacement + rest, start + len(replacement)

    if start < 0 or end < start:
        return input, _clamp(input, len(input))

    if mode is Mode.MENTION:
        replacement = f"@{suggestion} "
    else:
        replacement = f"{suggestion} "
    return input[:start] + replacement + input[end:], start + len(replacement)


def items_to_exclude(input: str, cursor: int, mode: Mode) -> List[str]:
    """Entries already present in the input, minus the one being typed."""
    if mode is Mode.MENTION:
        return []

    if mode is Mode.COMMA:
        current_start, _ = _comma_segment(input, cursor)
        excluded = []
        offset = 0
        for part in input.split(","):
            label = part.strip()
            if label and offset != current_start:
                excluded.append(label)
            offset += len(part) + 1
        return excluded

    current = extract_context(input, cursor, Mode.WHITESPACE).text
    return [word for word in _words(input) if word != current]


def current_labels(input: str) -> List[str]:
    """All non-empty comma separated entries."""
    return [part.strip() for part in input.split(",") if part.strip()]


def _is_subsequence(query: str, candidate: str) -> bool:
    it = iter(candidate)
    return all(ch in it for ch in query)


def score(query: str, candidate: str) -> float:
    q = query.lower()
    c = candidate.lower()
    if c.startswith(q):
        return 1.0
    if q in c:
        return 0.5
    if q and _is_subsequence(q, c):
        return 0.3
    return 0.0


def filter_suggestions(
    query: str, pool: Iterable[str], exclude: Iterable[str] = ()
) -> List[str]:
    """Rank ``pool`` against ``query``, dropping excluded entries."""
    excluded = {item.strip().lower() for item in exclude}
    candidates = [s for s in pool if s.strip().lower() not in excluded]
    query = query.strip()
    if not query:
        return candidates
    scored = [(score(query, s), s) for s in candidates]
    scored = [pair for pair in scored if pair[0] > 0]
    scored.sort(key=lambda pair: (-pair[0], pair[1].lower()))
    return [s for _, s in scored]


class Autocomplete:
    """Suggestion popup state for one text input."""

    def __init__(self, mode: Mode, suggestions: Sequence[str] = (), max_visible: int = MAX_VISIBLE):
        self.mode = mode
        self.max_visible = max_visible
        self.suggestions: List[str] = list(suggestions)
        self.filtered: List[str] = []
        self.selected = 0
        self.visible = False
        self._forced = False
        self.context: Context = NO_CONTEXT

    def set_suggestions(self, suggestions: Sequence[str]) -> None:
        self.suggestions = list(suggestions)

    def update(self, input: str, cursor: int) -> None:
        """Recompute matches for the text around the cursor."""
        self.context = extract_context(input, cursor, self.mode)
        if self.context.start < 0:
            self.filtered = []
            self.visible = False
            return
        exclude = items_to_exclude(input, cursor, self.mode)
        self.filtered = filter_suggestions(self.context.text, self.suggestions, exclude)
        self.selected = 0
        has_query = bool(self.context.text.strip())
        self.visible = bool(self.filtered) and (has_query or self._forced)

    def show(self, input: str, cursor: int) -> None:
        self._forced = True
        self.update(input, cursor)

    def hide(self) -> None:
        self._forced = False
        self.visible = False

    def next(self) -> None:
        if self.filtered:
            self.selected = (self.selected + 1) % len(self.filtered)

    def prev(self) -> None:
        if self.filtered:
            self.selected = (self.selected - 1) % len(self.filtered)

    @property
    def selection(self) -> Optional[str]:
        if not self.filtered:
            return None
        return self.filtered[self.selected]

    def visible_items(self) -> List[str]:
        page = self.selected // self.max_visible
        first = page * self.max_visible
        return self.filtered[first:first + self.max_visible]

    def accept(self, input: str) -> Tuple[str, int]:
        """Insert the selected suggestion into ``input``."""
        choice = self.selection
        if choice is None or self.context.start < 0:
            return input, len(input)
        self.hide()
        return insert_suggestion(
            input, choice, self.context.start, self.context.end, self.mode
        )
