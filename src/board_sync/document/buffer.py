"""In-memory text buffer with a cursor, anchors and decorations.

``OrgBuffer`` is the editable form of one outline document. Offsets are
character indices into ``text``. Every edit goes through ``insert``,
``delete_region`` or ``replace_region`` so that the cursor, anchors and
decorations follow the text:

* positions after an edit shift by the edit's length change;
* positions inside a deleted span collapse to its start;
* a decoration whose start lies inside a deleted span is removed.

Change hooks run after each edit unless notifications are inhibited.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterator

logger = logging.getLogger(__name__)

ChangeHook = Callable[["OrgBuffer", int, int], None]


class Anchor:
    """A position that follows edits, released explicitly when done."""

    __slots__ = ("position",)

    def __init__(self, position: int) -> None:
        self.position = position

    def __repr__(self) -> str:
        return f"Anchor({self.position})"


@dataclass
class Decoration:
    """A visual annotation over ``[start, end)``."""

    start: int
    end: int
    label: str = ""


@dataclass
class OrgBuffer:
    """Editable outline document.

    Attributes:
        name: Buffer identity, unique within a document store.
        text: Current content.
        path: File backing the buffer, if any.
        point: Cursor offset.
    """

    name: str
    text: str = ""
    path: Path | None = None
    point: int = 0
    decorations: list[Decoration] = field(default_factory=list)
    change_hooks: list[ChangeHook] = field(default_factory=list)
    _anchors: list[Anchor] = field(default_factory=list, repr=False)
    _inhibit: int = field(default=0, repr=False)

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    @property
    def notifications_inhibited(self) -> bool:
        return self._inhibit > 0

    def inhibit_notifications(self) -> None:
        self._inhibit += 1

    def allow_notifications(self) -> None:
        self._inhibit = max(0, self._inhibit - 1)

    def _notify(self, start: int, end: int) -> None:
        if self.notifications_inhibited:
            return
        for hook in list(self.change_hooks):
            hook(self, start, end)

    # ------------------------------------------------------------------
    # Anchors and decorations
    # ------------------------------------------------------------------

    def create_anchor(self, position: int) -> Anchor:
        anchor = Anchor(self._clamp(position))
        self._anchors.append(anchor)
        return anchor

    def release_anchor(self, anchor: Anchor) -> None:
        try:
            self._anchors.remove(anchor)
        except ValueError:
            pass

    def add_decoration(self, start: int, end: int, label: str = "") -> Decoration:
        decoration = Decoration(self._clamp(start), self._clamp(end), label)
        self.decorations.append(decoration)
        return decoration

    def decorations_in(self, start: int, end: int) -> list[Decoration]:
        return [d for d in self.decorations if start <= d.start < end]

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self.text)

    def line_start(self, position: int) -> int:
        return self.text.rfind("\n", 0, self._clamp(position)) + 1

    def line_end(self, position: int) -> int:
        """Offset of the newline ending the line at *position* (or EOF)."""
        index = self.text.find("\n", self._clamp(position))
        return len(self.text) if index < 0 else index

    def line_at(self, position: int) -> str:
        return self.text[self.line_start(position) : self.line_end(position)]

    def next_line_start(self, position: int) -> int:
        return min(self.line_end(position) + 1, len(self.text))

    def iter_lines(self, start: int = 0) -> Iterator[tuple[int, str]]:
        """Yield ``(offset, line)`` from the line containing *start* on."""
        offset = self.line_start(start)
        size = len(self.text)
        while offset < size:
            end = self.line_end(offset)
            yield offset, self.text[offset:end]
            offset = end + 1

    def iter_lines_backward(self, start: int) -> Iterator[tuple[int, str]]:
        """Yield ``(offset, line)`` from the line containing *start* back to 0."""
        offset = self.line_start(start)
        while True:
            yield offset, self.text[offset : self.line_end(offset)]
            if offset == 0:
                return
            offset = self.line_start(offset - 1)

    # ------------------------------------------------------------------
    # Editing
    # ------------------------------------------------------------------

    def goto(self, position: int) -> None:
        self.point = self._clamp(position)

    def insert(self, position: int, content: str) -> None:
        self.replace_region(position, position, content)

    def delete_region(self, start: int, end: int) -> str:
        """Remove ``[start, end)`` and decorations anchored in it."""
        start, end = self._clamp(start), self._clamp(end)
        removed = self.text[start:end]
        self.replace_region(start, end, "")
        return removed

    def replace_region(self, start: int, end: int, content: str) -> None:
        start, end = self._clamp(start), self._clamp(end)
        if end < start:
            start, end = end, start
        if start == end and not content:
            return
        self.text = self.text[:start] + content + self.text[end:]
        delta = len(content) - (end - start)

        def shift(pos: int) -> int:
            if pos >= end and (end > start or pos > start):
                return pos + delta
            if start < pos < end:
                return start
            return pos

        if end > start:
            self.decorations = [
                d for d in self.decorations if not start <= d.start < end
            ]
        for decoration in self.decorations:
            decoration.start = shift(decoration.start)
            decoration.end = max(decoration.start, shift(decoration.end))
        for anchor in self._anchors:
            anchor.position = shift(anchor.position)
        self.point = shift(self.point)
        self._notify(start, start + len(content))

    def _clamp(self, position: int) -> int:
        return max(0, min(position, len(self.text)))
