"""Level dispatch: pick the handler for an entity level.

A ``DispatchTable`` is indexed by level ordinal. ``dispatch`` is total:
any level the table does not cover (deeper than an item, zero, negative
or not an integer) yields the table's too-deep handler, whose validator
and resolver both report ``ERROR-SYNC-TOO-DEEP-LEVEL``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar

from ..document.buffer import OrgBuffer
from ..document.org import DocumentConfig

from . import regions, resolver, validation
from .models import ErrorKind, FullMetadata, RequestDescriptor, SyncError

Validator = Callable[[FullMetadata], "SyncError | None"]
Resolver = Callable[[FullMetadata, DocumentConfig], "RequestDescriptor | SyncError"]
RegionFn = Callable[[OrgBuffer, int], "regions.Region"]

H = TypeVar("H")


@dataclass(frozen=True, slots=True)
class SyncHandler:
    validate: Validator
    resolve: Resolver


@dataclass(frozen=True, slots=True)
class DeleteHandler:
    resolve: Resolver
    region: RegionFn


@dataclass(frozen=True)
class DispatchTable(Generic[H]):
    """Handlers for levels ``1..len(handlers)`` plus the too-deep fallback."""

    handlers: tuple[H, ...]
    too_deep: H

    def resolve(self, level: Any) -> H:
        if isinstance(level, bool) or not isinstance(level, int):
            return self.too_deep
        if 1 <= level <= len(self.handlers):
            return self.handlers[level - 1]
        return self.too_deep


def too_deep_error() -> SyncError:
    return SyncError(
        kind=ErrorKind.DISPATCH,
        code=validation.TOO_DEEP_LEVEL,
        message="Only cards, checklists and items can be synced.",
    )


def _too_deep_validate(meta: FullMetadata) -> SyncError:
    return too_deep_error()


def _too_deep_resolve(meta: FullMetadata, config: DocumentConfig) -> SyncError:
    return too_deep_error()


def _no_region(buffer: OrgBuffer, position: int) -> regions.Region:
    return position, position


TOO_DEEP_SYNC = SyncHandler(validate=_too_deep_validate, resolve=_too_deep_resolve)
TOO_DEEP_DELETE = DeleteHandler(resolve=_too_deep_resolve, region=_no_region)


def build_sync_table() -> DispatchTable[SyncHandler]:
    return DispatchTable(
        handlers=(
            SyncHandler(validation.validate_card, resolver.card_request),
            SyncHandler(validation.validate_checklist, resolver.checklist_request),
            SyncHandler(validation.validate_item, resolver.item_request),
        ),
        too_deep=TOO_DEEP_SYNC,
    )


def build_delete_table() -> DispatchTable[DeleteHandler]:
    return DispatchTable(
        handlers=(
            DeleteHandler(resolver.card_delete_request, regions.card_region),
            DeleteHandler(resolver.checklist_delete_request, regions.checklist_region),
            DeleteHandler(resolver.item_delete_request, regions.item_region),
        ),
        too_deep=TOO_DEEP_DELETE,
    )


def dispatch(level: Any, table: DispatchTable[H]) -> H:
    """Return the handler for *level*; never raises."""
    return table.resolve(level)
