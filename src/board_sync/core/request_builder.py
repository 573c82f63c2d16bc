"""Translate abstract request descriptors into literal REST calls.

Each builder is a pure function returning a ``RemoteCall`` (HTTP method,
path relative to the API base URL, query parameters). Parameters whose
value is ``None`` are dropped so an update never blanks a remote field
the document does not carry.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel


class EntityKind(str, Enum):
    """Remote entity kind targeted by a request."""

    CARD = "card"
    CHECKLIST = "checklist"
    ITEM = "item"


class RequestOperation(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    MOVE = "move"
    DELETE = "delete"


class RequestDescriptor(BaseModel):
    """Abstract remote request produced by the request resolvers.

    ``params`` keys match the keyword arguments of the builder function
    for the (kind, operation) pair.
    """

    operation: RequestOperation
    kind: EntityKind
    params: dict[str, Any] = {}

    model_config = {"frozen": True}


@dataclass(frozen=True, slots=True)
class RemoteCall:
    """A fully formatted REST call."""

    method: str
    path: str
    params: dict[str, Any] = field(default_factory=dict)


def _call(method: str, path: str, **params: Any) -> RemoteCall:
    return RemoteCall(
        method=method,
        path=path,
        params={k: v for k, v in params.items() if v is not None},
    )


def _bool_param(value: bool) -> str:
    return "true" if value else "false"


# ---------------------------------------------------------------------------
# Cards
# ---------------------------------------------------------------------------


def create_card(
    list_id: str,
    name: str,
    due: str | None = None,
    member_ids: str | None = None,
    description: str | None = None,
    labels: str | None = None,
) -> RemoteCall:
    return _call(
        "POST",
        "/cards",
        idList=list_id,
        name=name,
        due=due,
        idMembers=member_ids,
        desc=description,
        labels=labels,
    )


def update_card(
    card_id: str,
    list_id: str,
    name: str,
    due: str | None = None,
    member_ids: str | None = None,
    description: str | None = None,
    labels: str | None = None,
) -> RemoteCall:
    return _call(
        "PUT",
        f"/cards/{card_id}",
        idList=list_id,
        name=name,
        due=due,
        idMembers=member_ids,
        desc=description,
        labels=labels,
    )


def move_card(card_id: str, list_id: str) -> RemoteCall:
    return _call("PUT", f"/cards/{card_id}/idList", value=list_id)


def delete_card(card_id: str) -> RemoteCall:
    return _call("DELETE", f"/cards/{card_id}")


# ---------------------------------------------------------------------------
# Checklists
# ---------------------------------------------------------------------------


def create_checklist(card_id: str, name: str) -> RemoteCall:
    return _call("POST", f"/cards/{card_id}/checklists", name=name)


def update_checklist(checklist_id: str, name: str) -> RemoteCall:
    return _call("PUT", f"/checklists/{checklist_id}", name=name)


def delete_checklist(checklist_id: str) -> RemoteCall:
    return _call("DELETE", f"/checklists/{checklist_id}")


# ---------------------------------------------------------------------------
# Items
# ---------------------------------------------------------------------------


def create_item(
    checklist_id: str, name: str, checked: bool = False
) -> RemoteCall:
    return _call(
        "POST",
        f"/checklists/{checklist_id}/checkItems",
        name=name,
        checked=_bool_param(checked),
    )


def update_item(
    card_id: str,
    checklist_id: str,
    item_id: str,
    name: str,
    state: str | None = None,
) -> RemoteCall:
    return _call(
        "PUT",
        f"/cards/{card_id}/checklist/{checklist_id}/checkItem/{item_id}",
        name=name,
        state=state,
    )


def delete_item(checklist_id: str, item_id: str) -> RemoteCall:
    return _call(
        "DELETE", f"/checklists/{checklist_id}/checkItems/{item_id}"
    )


# ---------------------------------------------------------------------------
# Descriptor dispatch
# ---------------------------------------------------------------------------

_BUILDERS = {
    (EntityKind.CARD, RequestOperation.CREATE): create_card,
    (EntityKind.CARD, RequestOperation.UPDATE): update_card,
    (EntityKind.CARD, RequestOperation.MOVE): move_card,
    (EntityKind.CARD, RequestOperation.DELETE): delete_card,
    (EntityKind.CHECKLIST, RequestOperation.CREATE): create_checklist,
    (EntityKind.CHECKLIST, RequestOperation.UPDATE): update_checklist,
    (EntityKind.CHECKLIST, RequestOperation.DELETE): delete_checklist,
    (EntityKind.ITEM, RequestOperation.CREATE): create_item,
    (EntityKind.ITEM, RequestOperation.UPDATE): update_item,
    (EntityKind.ITEM, RequestOperation.DELETE): delete_item,
}


def build_call(descriptor: RequestDescriptor) -> RemoteCall:
    """Format *descriptor* as a ``RemoteCall``.

    Raises:
        ValueError: If no builder exists for the (kind, operation) pair or
            the descriptor's params do not fit the builder.
    """
    builder = _BUILDERS.get((descriptor.kind, descriptor.operation))
    if builder is None:
        raise ValueError(
            f"Unsupported request: {descriptor.operation.value} {descriptor.kind.value}"
        )
    try:
        return builder(**descriptor.params)
    except TypeError as exc:
        raise ValueError(
            f"Invalid parameters for {descriptor.operation.value} {descriptor.kind.value}: {exc}"
        ) from None
