"""Outline documents: in-memory buffers, Org format parsing and the store."""

from .buffer import Anchor, Decoration, OrgBuffer
from .store import BufferConflictError, DocumentStore

__all__ = ["Anchor", "BufferConflictError", "Decoration", "DocumentStore", "OrgBuffer"]
