"""Delete-region calculation: the span a deleted entity occupies.

Each function takes the entity's current position and returns the
half-open ``(start, end)`` span to remove from the buffer.
"""

from __future__ import annotations

from ..document.buffer import OrgBuffer
from ..document.org import next_card_heading, next_checkbox_at_level

from .models import EntityLevel

Region = tuple[int, int]


def card_region(buffer: OrgBuffer, position: int) -> Region:
    """Heading start up to the next card heading or end of document."""
    start = buffer.line_start(position)
    end = next_card_heading(buffer, start)
    return start, len(buffer) if end is None else end


def checklist_region(buffer: OrgBuffer, position: int) -> Region:
    """Checklist line plus its items, stopping at the next checklist or card."""
    start = buffer.line_start(position)
    candidates = [
        offset
        for offset in (
            next_checkbox_at_level(buffer, start, EntityLevel.CHECKLIST),
            next_card_heading(buffer, start),
        )
        if offset is not None
    ]
    return start, min(candidates, default=len(buffer))


def item_region(buffer: OrgBuffer, position: int) -> Region:
    """The item's line including its terminating newline."""
    start = buffer.line_start(position)
    return start, buffer.next_line_start(start)
