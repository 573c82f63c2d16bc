"""Dirty-buffer tracking: remember modified buffers, save each once."""

from __future__ import annotations

import logging
from typing import Callable, Iterator

logger = logging.getLogger(__name__)


class DirtyBuffers:
    """Set of buffer names modified by completed requests.

    Registration is idempotent and keeps first-registration order.
    ``flush`` saves every registered buffer exactly once and forgets the
    ones that were saved; a buffer whose save fails stays registered so
    the next flush retries it.
    """

    def __init__(self) -> None:
        self._names: dict[str, None] = {}

    def register(self, name: str) -> bool:
        """Mark *name* dirty. Returns True if it was not already dirty."""
        if name in self._names:
            return False
        self._names[name] = None
        logger.debug("Buffer %s marked dirty", name)
        return True

    def __contains__(self, name: object) -> bool:
        return name in self._names

    def __len__(self) -> int:
        return len(self._names)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._names))

    def pending(self) -> list[str]:
        return list(self._names)

    def flush(self, save: Callable[[str], object]) -> list[str]:
        """Call *save* once per dirty buffer.

        Returns:
            Names that were saved, in registration order.
        """
        saved: list[str] = []
        for name in list(self._names):
            try:
                save(name)
            except (OSError, ValueError, KeyError) as exc:
                logger.error("Failed to save buffer %s: %s", name, exc)
                continue
            del self._names[name]
            saved.append(name)
        return saved
