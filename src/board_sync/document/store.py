"""Registry of open outline buffers, keyed by buffer name."""

from __future__ import annotations

import logging
from pathlib import Path

from ..file_handler import read_file_with_encoding, validate_file_path, write_file
from .buffer import OrgBuffer
from .org import DocumentConfig, parse_config

logger = logging.getLogger(__name__)


class BufferConflictError(ValueError):
    """The file changed on disk while its buffer holds unsaved edits."""


class DocumentStore:
    """Open, look up and persist ``OrgBuffer`` instances.

    A buffer opened from a file is named after its resolved path, so
    opening the same file twice returns the same buffer. The store
    remembers the text last read from or written to each file; a file
    edited behind its back is reloaded when the buffer is clean and
    refused when the buffer holds unsaved edits.
    """

    def __init__(self) -> None:
        self._buffers: dict[str, OrgBuffer] = {}
        self._encodings: dict[str, str] = {}
        self._disk_text: dict[str, str] = {}
        self._stamps: dict[str, tuple[int, int]] = {}

    def __contains__(self, name: object) -> bool:
        return name in self._buffers

    def __len__(self) -> int:
        return len(self._buffers)

    @property
    def names(self) -> list[str]:
        return list(self._buffers)

    def open(self, path_str: str) -> OrgBuffer:
        """Load the file at *path_str* (absolute) into a buffer.

        An open buffer is returned as is unless the file changed since it
        was read, in which case a clean buffer is reloaded.

        Raises:
            ValueError: If the path is relative, missing or not a file.
            BufferConflictError: If the file changed and the buffer has
                unsaved edits.
        """
        path = validate_file_path(path_str)
        name = str(path)
        if name in self._buffers:
            if not self._changed_on_disk(name, path):
                return self._buffers[name]
            if self.is_modified(name):
                raise BufferConflictError(
                    f"{name} changed on disk while its buffer has unsaved edits"
                )
            logger.info("Reloading %s, changed on disk", name)
        return self._load(name, path)

    def _load(self, name: str, path: Path) -> OrgBuffer:
        stamp = _stat(path)
        content, encoding = read_file_with_encoding(path)
        buffer = OrgBuffer(name=name, text=content, path=path)
        self._buffers[name] = buffer
        self._encodings[name] = encoding
        self._disk_text[name] = content
        self._stamps[name] = stamp
        logger.debug("Opened %s (%s, %d chars)", name, encoding, len(content))
        return buffer

    def _changed_on_disk(self, name: str, path: Path) -> bool:
        stamp = _stat(path)
        if stamp == self._stamps.get(name):
            return False
        content, _ = read_file_with_encoding(path)
        if content != self._disk_text.get(name):
            return True
        # touched but same content
        self._stamps[name] = stamp
        return False

    def is_modified(self, name: str) -> bool:
        """Whether buffer *name* differs from its file as last read or saved."""
        buffer = self.get(name)
        if buffer.path is None:
            return False
        return buffer.text != self._disk_text.get(name)

    def add(self, buffer: OrgBuffer) -> OrgBuffer:
        """Register an in-memory buffer, replacing any with the same name."""
        self._buffers[buffer.name] = buffer
        return buffer

    def get(self, name: str) -> OrgBuffer:
        """Return the buffer called *name*.

        Raises:
            KeyError: If no such buffer is open.
        """
        try:
            return self._buffers[name]
        except KeyError:
            raise KeyError(f"Buffer not open: {name}") from None

    def config(self, name: str) -> DocumentConfig:
        return parse_config(self.get(name))

    def save(self, name: str) -> Path:
        """Write buffer *name* back to its file atomically.

        Raises:
            KeyError: If no such buffer is open.
            ValueError: If the buffer has no backing file.
            BufferConflictError: If the file changed on disk since it was
                read, so writing would discard those edits.
            OSError: If the write fails.
        """
        buffer = self.get(name)
        if buffer.path is None:
            raise ValueError(f"Buffer {name} has no backing file")
        if (
            name in self._stamps
            and buffer.path.exists()
            and self._changed_on_disk(name, buffer.path)
        ):
            raise BufferConflictError(
                f"{name} changed on disk since it was read; not overwriting"
            )
        size = write_file(
            buffer.path, buffer.text, self._encodings.get(name, "utf-8")
        )
        self._disk_text[name] = buffer.text
        self._stamps[name] = _stat(buffer.path)
        logger.info("Saved %s (%d bytes)", buffer.path, size)
        return buffer.path


def _stat(path: Path) -> tuple[int, int]:
    st = path.stat()
    return st.st_mtime_ns, st.st_size
