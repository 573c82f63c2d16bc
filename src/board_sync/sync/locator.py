"""Position recovery for entities whose offset may have shifted.

The document can change between sending a request and handling its
response, so completions never trust the stored offset. ``locate``
first searches for the marker written into the entity, then falls back
to the entity's canonical heading or checkbox line.
"""

from __future__ import annotations

import logging

from ..document.buffer import OrgBuffer
from ..document.org import canonical_pattern, entity_start, find_marker

from .models import Entity

logger = logging.getLogger(__name__)


def locate(buffer: OrgBuffer, marker: str | None, fallback: Entity | None = None) -> int | None:
    """Return the current offset of an entity, or ``None``.

    Args:
        buffer: Buffer to search.
        marker: Remote id or placeholder stored in the entity.
        fallback: Snapshot used to build the canonical-line search.

    Returns:
        Offset of the first id property holding exactly *marker*,
        else the start of the first canonical line match, else ``None``.
    """
    if marker:
        found = find_marker(buffer, marker)
        if found is not None:
            logger.debug("Located %s at %d by marker", marker, found)
            return found
    if fallback is None:
        return None
    pattern = canonical_pattern(fallback)
    if pattern is None:
        return None
    match = pattern.search(buffer.text)
    if match is None:
        logger.debug("Canonical line for %r not found", fallback.name)
        return None
    logger.debug("Located %r at %d by canonical line", fallback.name, match.start())
    return match.start()


def locate_entity_start(buffer: OrgBuffer, marker: str | None, fallback: Entity | None = None) -> int | None:
    """Like ``locate`` but snapped to the owning entity's line start."""
    found = locate(buffer, marker, fallback)
    if found is None:
        return None
    return entity_start(buffer, found)
