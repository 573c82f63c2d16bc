"""Request resolution: turn validated metadata into request descriptors.

Every resolver has the signature ``(meta, config) -> RequestDescriptor |
SyncError``. The entity's own remote id is the only create-vs-update
signal. Resolvers run after validation but still guard against missing
ancestor ids so a resolver can never produce a request for an entity
whose parents are unknown remotely.
"""

from __future__ import annotations

import logging
import re

from ..document.org import CHECKED_KEYWORD, DocumentConfig

from .models import (
    EntityKind,
    FullMetadata,
    RequestDescriptor,
    RequestOperation,
    SyncError,
)
from .validation import (
    CARD_MISSING_LIST,
    CHECKLIST_SYNC_CARD_FIRST,
    DELETE_ITEM_SYNC_CHECKLIST_FIRST,
    ITEM_SYNC_CARD_FIRST,
    ITEM_SYNC_CHECKLIST_FIRST,
    MOVE_CARD_NOT_SYNCED,
    delete_not_synced_code,
    validation_error,
)

logger = logging.getLogger(__name__)

ITEM_COMPLETE = "complete"
ITEM_INCOMPLETE = "incomplete"

_ORG_STAMP_RE = re.compile(
    r"^\s*(?P<date>\d{4}-\d{2}-\d{2})"
    r"(?:\s+[^\d\s]+)?"
    r"(?:\s+(?P<hour>\d{1,2}):(?P<minute>\d{2}))?"
)


# ---------------------------------------------------------------------------
# Field conversion
# ---------------------------------------------------------------------------


def tags_to_labels(tags: str | None) -> str | None:
    """Convert Org tags ``":a:b:c:"`` to remote labels ``"a,b,c"``."""
    if not tags:
        return None
    labels = [t for t in tags.split(":") if t]
    return ",".join(labels) or None


def org_date_to_remote(stamp: str | None) -> str | None:
    """Convert an Org timestamp body to the remote ISO 8601 format.

    ``"2026-10-20 Tue 14:00"`` becomes ``"2026-10-20T14:00:00.000Z"``.
    Unparseable stamps are dropped with a warning.
    """
    if not stamp:
        return None
    match = _ORG_STAMP_RE.match(stamp)
    if match is None:
        logger.warning("Ignoring unparseable deadline: %s", stamp)
        return None
    hour = int(match.group("hour") or 0)
    minute = int(match.group("minute") or 0)
    return f"{match.group('date')}T{hour:02d}:{minute:02d}:00.000Z"


def _members(member_ids: list[str]) -> str | None:
    return ",".join(member_ids) or None


# ---------------------------------------------------------------------------
# Sync resolvers
# ---------------------------------------------------------------------------


def card_request(
    meta: FullMetadata, config: DocumentConfig
) -> RequestDescriptor | SyncError:
    card = meta.current
    list_id = config.list_id_for(card.keyword)
    if list_id is None:
        return validation_error(
            CARD_MISSING_LIST,
            f"No list is configured for keyword {card.keyword or '(none)'}.",
        )
    params = {
        "list_id": list_id,
        "name": card.name,
        "due": org_date_to_remote(card.due),
        "member_ids": _members(card.member_ids),
        "description": card.description,
        "labels": tags_to_labels(card.tags),
    }
    if card.id:
        return RequestDescriptor(
            operation=RequestOperation.UPDATE,
            kind=EntityKind.CARD,
            params={"card_id": card.id, **params},
        )
    return RequestDescriptor(
        operation=RequestOperation.CREATE, kind=EntityKind.CARD, params=params
    )


def card_move_request(
    meta: FullMetadata, config: DocumentConfig
) -> RequestDescriptor | SyncError:
    """Move an already-synced card to the list matching its keyword."""
    card = meta.current
    if not card.id:
        return validation_error(
            MOVE_CARD_NOT_SYNCED,
            "Cannot move a card that was never synced.",
        )
    list_id = config.list_id_for(card.keyword)
    if list_id is None:
        return validation_error(
            CARD_MISSING_LIST,
            f"No list is configured for keyword {card.keyword or '(none)'}.",
        )
    return RequestDescriptor(
        operation=RequestOperation.MOVE,
        kind=EntityKind.CARD,
        params={"card_id": card.id, "list_id": list_id},
    )


def checklist_request(
    meta: FullMetadata, config: DocumentConfig
) -> RequestDescriptor | SyncError:
    checklist = meta.current
    if checklist.id:
        return RequestDescriptor(
            operation=RequestOperation.UPDATE,
            kind=EntityKind.CHECKLIST,
            params={"checklist_id": checklist.id, "name": checklist.name},
        )
    card = meta.parent
    if card is None or not card.id:
        return validation_error(
            CHECKLIST_SYNC_CARD_FIRST,
            "The checklist's card must be synced before the checklist.",
        )
    return RequestDescriptor(
        operation=RequestOperation.CREATE,
        kind=EntityKind.CHECKLIST,
        params={"card_id": card.id, "name": checklist.name},
    )


def item_request(
    meta: FullMetadata, config: DocumentConfig
) -> RequestDescriptor | SyncError:
    item, checklist, card = meta.current, meta.parent, meta.grandparent
    if checklist is None or not checklist.id:
        return validation_error(
            ITEM_SYNC_CHECKLIST_FIRST,
            "The item's checklist must be synced before the item.",
        )
    checked = item.keyword == CHECKED_KEYWORD
    if not item.id:
        return RequestDescriptor(
            operation=RequestOperation.CREATE,
            kind=EntityKind.ITEM,
            params={
                "checklist_id": checklist.id,
                "name": item.name,
                "checked": checked,
            },
        )
    if card is None or not card.id:
        return validation_error(
            ITEM_SYNC_CARD_FIRST,
            "The item's card must be synced before the item.",
        )
    return RequestDescriptor(
        operation=RequestOperation.UPDATE,
        kind=EntityKind.ITEM,
        params={
            "card_id": card.id,
            "checklist_id": checklist.id,
            "item_id": item.id,
            "name": item.name,
            "state": ITEM_COMPLETE if checked else ITEM_INCOMPLETE,
        },
    )


# ---------------------------------------------------------------------------
# Delete resolvers
# ---------------------------------------------------------------------------


def _not_synced(kind: EntityKind) -> SyncError:
    return validation_error(
        delete_not_synced_code(kind.value),
        f"Cannot delete a {kind.value} that was never synced.",
    )


def card_delete_request(
    meta: FullMetadata, config: DocumentConfig
) -> RequestDescriptor | SyncError:
    if not meta.current.id:
        return _not_synced(EntityKind.CARD)
    return RequestDescriptor(
        operation=RequestOperation.DELETE,
        kind=EntityKind.CARD,
        params={"card_id": meta.current.id},
    )


def checklist_delete_request(
    meta: FullMetadata, config: DocumentConfig
) -> RequestDescriptor | SyncError:
    if not meta.current.id:
        return _not_synced(EntityKind.CHECKLIST)
    return RequestDescriptor(
        operation=RequestOperation.DELETE,
        kind=EntityKind.CHECKLIST,
        params={"checklist_id": meta.current.id},
    )


def item_delete_request(
    meta: FullMetadata, config: DocumentConfig
) -> RequestDescriptor | SyncError:
    if not meta.current.id:
        return _not_synced(EntityKind.ITEM)
    checklist = meta.parent
    if checklist is None or not checklist.id:
        return validation_error(
            DELETE_ITEM_SYNC_CHECKLIST_FIRST,
            "The item's checklist must be synced before deleting the item.",
        )
    return RequestDescriptor(
        operation=RequestOperation.DELETE,
        kind=EntityKind.ITEM,
        params={"checklist_id": checklist.id, "item_id": meta.current.id},
    )
