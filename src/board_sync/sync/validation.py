"""Validation gates run before any request is built.

Each validator takes a ``FullMetadata`` and returns ``None`` when the
entity may be synced, or a ``SyncError`` describing the first failed
check. Validators never raise and never touch the transport.
"""

from __future__ import annotations

from .models import ErrorKind, FullMetadata, SyncError

CARD_MISSING_NAME = "ERROR-SYNC-CARD-MISSING-NAME"
CARD_MISSING_LIST = "ERROR-SYNC-CARD-MISSING-LIST"
CHECKLIST_MISSING_NAME = "ERROR-SYNC-CHECKLIST-MISSING-NAME"
CHECKLIST_SYNC_CARD_FIRST = "ERROR-SYNC-CHECKLIST-SYNC-CARD-FIRST"
ITEM_MISSING_NAME = "ERROR-SYNC-ITEM-MISSING-NAME"
ITEM_SYNC_CHECKLIST_FIRST = "ERROR-SYNC-ITEM-SYNC-CHECKLIST-FIRST"
ITEM_SYNC_CARD_FIRST = "ERROR-SYNC-ITEM-SYNC-CARD-FIRST"
TOO_DEEP_LEVEL = "ERROR-SYNC-TOO-DEEP-LEVEL"
ENTITY_UNREACHABLE = "ERROR-SYNC-ENTITY-UNREACHABLE"
DELETE_ITEM_SYNC_CHECKLIST_FIRST = "ERROR-DELETE-ITEM-SYNC-CHECKLIST-FIRST"
MOVE_CARD_NOT_SYNCED = "ERROR-MOVE-CARD-NOT-SYNCED"


def delete_not_synced_code(kind: str) -> str:
    """``ERROR-DELETE-CARD-NOT-SYNCED`` and friends."""
    return f"ERROR-DELETE-{kind.upper()}-NOT-SYNCED"


def validation_error(code: str, message: str) -> SyncError:
    return SyncError(kind=ErrorKind.VALIDATION, code=code, message=message)


def validate_card(meta: FullMetadata) -> SyncError | None:
    if not meta.current.name:
        return validation_error(CARD_MISSING_NAME, "Cannot sync a card without a name.")
    return None


def validate_checklist(meta: FullMetadata) -> SyncError | None:
    if not meta.current.name:
        return validation_error(
            CHECKLIST_MISSING_NAME, "Cannot sync a checklist without a name."
        )
    card = meta.parent
    if card is None or not card.id:
        return validation_error(
            CHECKLIST_SYNC_CARD_FIRST,
            "The checklist's card must be synced before the checklist.",
        )
    return None


def validate_item(meta: FullMetadata) -> SyncError | None:
    """Checks run strictly in order: name, checklist id, card id."""
    if not meta.current.name:
        return validation_error(ITEM_MISSING_NAME, "Cannot sync an item without a name.")
    checklist = meta.parent
    if checklist is None or not checklist.id:
        return validation_error(
            ITEM_SYNC_CHECKLIST_FIRST,
            "The item's checklist must be synced before the item.",
        )
    card = meta.grandparent
    if card is None or not card.id:
        return validation_error(
            ITEM_SYNC_CARD_FIRST,
            "The item's card must be synced before the item.",
        )
    return None
