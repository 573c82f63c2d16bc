"""Tests for the entity sync engine."""

from __future__ import annotations

import logging
import re
from typing import Any

import pytest
import requests

from board_sync.core.request_builder import RemoteCall
from board_sync.core.transport import RequestTransport
from board_sync.document.buffer import OrgBuffer
from board_sync.document.org import entity_at
from board_sync.document.store import DocumentStore
from board_sync.sync.engine import MOVE_NOT_A_CARD, NO_ENTITY, UNEXPECTED_ERROR, SyncEngine
from board_sync.sync.models import (
    ActionOutcome,
    ActionType,
    EntityAction,
    ErrorKind,
)

NEW_CARD = "#+PROPERTY: TODO L1\n* TODO Ship it\n"
NEW_TREE = "#+PROPERTY: TODO L1\n* TODO Card\n  - [ ] CL\n    - [ ] It\n"

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class FakeBoardClient:
    """Minimal BoardClient replacement recording every REST call.

    Scripted responses are consumed in call order; exceptions are raised.
    Once the script runs out each call answers ``{"id": "id<n>"}``.
    """

    def __init__(self, responses: list[Any] | None = None) -> None:
        self.responses = list(responses or [])
        self.calls: list[RemoteCall] = []

    def execute(self, call: RemoteCall) -> Any:
        self.calls.append(call)
        if self.responses:
            response = self.responses.pop(0)
            if isinstance(response, Exception):
                raise response
            return response
        return {"id": f"id{len(self.calls)}"}


def _engine(client: FakeBoardClient) -> SyncEngine:
    return SyncEngine(DocumentStore(), RequestTransport(client))


def _add(engine: SyncEngine, text: str, name: str = "mem") -> OrgBuffer:
    return engine.store.add(OrgBuffer(name=name, text=text))


@pytest.fixture
def client():
    return FakeBoardClient()


@pytest.fixture
def engine(client):
    return _engine(client)


# ---------------------------------------------------------------------------
# sync_entity
# ---------------------------------------------------------------------------


class TestSyncEntity:
    def test_new_card_end_to_end(self):
        client = FakeBoardClient([{"id": "42"}])
        engine = _engine(client)
        buf = _add(engine, NEW_CARD)

        pending = engine.sync_entity("mem", NEW_CARD.index("Ship it"))

        assert pending.outcome == ActionOutcome.PENDING
        assert client.calls == []
        assert re.search(r":orgtrello-id: orgtrello-marker-[0-9a-f]{32}\n", buf.text)

        results = engine.run_pending()

        assert [r.outcome for r in results] == [ActionOutcome.APPLIED]
        assert results[0].remote_id == "42"
        assert client.calls == [
            RemoteCall("POST", "/cards", {"idList": "L1", "name": "Ship it"})
        ]
        assert buf.text == (
            "#+PROPERTY: TODO L1\n* TODO Ship it\n"
            ":PROPERTIES:\n:orgtrello-id: 42\n:END:\n"
        )
        assert "mem" in engine.dirty

    def test_synchronous_update(self, engine, client, sample_text):
        buf = _add(engine, sample_text)

        result = engine.sync_entity("mem", sample_text.index("Ship it"), synchronous=True)

        assert result.outcome == ActionOutcome.APPLIED
        assert result.remote_id == "42"
        call = client.calls[0]
        assert (call.method, call.path) == ("PUT", "/cards/42")
        assert call.params["labels"] == "a,b"
        assert call.params["due"] == "2026-10-20T14:00:00.000Z"
        assert buf.text == sample_text

    def test_cursor_survives_placeholder(self, engine):
        buf = _add(engine, NEW_CARD + "* TODO Other\n")
        buf.goto(buf.text.index("Other"))

        engine.sync_entity("mem", NEW_CARD.index("Ship it"))

        assert buf.text[buf.point :].startswith("Other")

    def test_invalid_item_never_contacts_remote(self, engine, client):
        text = "* TODO Card\n  - [ ] CL\n    - [ ] It\n"
        buf = _add(engine, text)

        result = engine.sync_entity("mem", text.index("It"), synchronous=True)

        assert result.outcome == ActionOutcome.INVALID
        assert result.error.code == "ERROR-SYNC-ITEM-SYNC-CHECKLIST-FIRST"
        assert client.calls == []
        assert buf.text == text
        assert len(engine.dirty) == 0

    def test_too_deep(self, engine, client, sample_text):
        text = sample_text.replace("    - [ ] Open item\n", "      - [ ] Deep\n")
        _add(engine, text)

        result = engine.sync_entity("mem", text.index("Deep"))

        assert result.outcome == ActionOutcome.INVALID
        assert result.error.code == "ERROR-SYNC-TOO-DEEP-LEVEL"
        assert result.error.kind == ErrorKind.DISPATCH
        assert result.level == 4
        assert client.calls == []

    def test_no_entity(self, engine, sample_text):
        _add(engine, sample_text)
        result = engine.sync_entity("mem", 0)
        assert result.outcome == ActionOutcome.INVALID
        assert result.error.code == NO_ENTITY

    def test_unknown_buffer(self, engine):
        with pytest.raises(KeyError):
            engine.sync_entity("nope", 0)

    def test_transport_failure_rolls_back_placeholder(self):
        client = FakeBoardClient([requests.HTTPError("500 Server Error")])
        engine = _engine(client)
        buf = _add(engine, NEW_CARD)

        result = engine.sync_entity("mem", NEW_CARD.index("Ship it"), synchronous=True)

        assert result.outcome == ActionOutcome.CANCELLED
        assert result.error.kind == ErrorKind.TRANSPORT
        assert buf.text == NEW_CARD
        assert len(engine.dirty) == 0

    def test_entity_deleted_before_response(self, engine):
        buf = _add(engine, NEW_CARD)
        engine.sync_entity("mem", NEW_CARD.index("Ship it"))
        buf.delete_region(buf.text.index("* TODO Ship it"), len(buf))
        before = buf.text

        results = engine.run_pending()

        assert results[0].outcome == ActionOutcome.UNREACHABLE
        assert results[0].error.code == "ERROR-SYNC-ENTITY-UNREACHABLE"
        assert buf.text == before
        assert "mem" not in engine.dirty

    async def test_run_pending_async(self, engine):
        buf = _add(engine, NEW_CARD)
        engine.sync_entity("mem", NEW_CARD.index("Ship it"))

        results = await engine.run_pending_async()

        assert results[0].outcome == ActionOutcome.APPLIED
        assert ":orgtrello-id: id1" in buf.text


# ---------------------------------------------------------------------------
# Card trees and buffers
# ---------------------------------------------------------------------------


class TestSyncTree:
    def test_children_see_parent_ids(self, engine, client):
        buf = _add(engine, NEW_TREE)

        results = engine.sync_card_tree("mem", NEW_TREE.index("Card"))

        assert [r.outcome for r in results] == [ActionOutcome.APPLIED] * 3
        assert client.calls == [
            RemoteCall("POST", "/cards", {"idList": "L1", "name": "Card"}),
            RemoteCall("POST", "/cards/id1/checklists", {"name": "CL"}),
            RemoteCall(
                "POST", "/checklists/id2/checkItems", {"name": "It", "checked": "false"}
            ),
        ]
        assert entity_at(buf, buf.text.index("It")).id == "id3"
        assert "orgtrello-marker-" not in buf.text

    def test_position_outside_card(self, engine):
        _add(engine, NEW_TREE)
        results = engine.sync_card_tree("mem", 0)
        assert [r.error.code for r in results] == [NO_ENTITY]

    def test_sync_buffer(self, engine, client):
        text = NEW_TREE + "* TODO Second\n"
        _add(engine, text)

        results = engine.sync_buffer("mem")

        assert len(results) == 4
        assert all(r.success for r in results)
        assert client.calls[-1].params["name"] == "Second"


# ---------------------------------------------------------------------------
# Delete and move
# ---------------------------------------------------------------------------


class TestDeleteAndMove:
    def test_delete_item(self, engine, client, sample_text):
        buf = _add(engine, sample_text)

        result = engine.delete_entity("mem", sample_text.index("Item :PROP"), synchronous=True)

        assert result.outcome == ActionOutcome.APPLIED
        assert client.calls == [RemoteCall("DELETE", "/checklists/c1/checkItems/i1", {})]
        assert "Item :PROP" not in buf.text
        assert "Open item" in buf.text

    def test_delete_unsynced(self, engine, client, sample_text):
        _add(engine, sample_text)
        result = engine.delete_entity("mem", sample_text.index("Second card"))
        assert result.error.code == "ERROR-DELETE-CARD-NOT-SYNCED"
        assert client.calls == []

    def test_queued_delete(self, engine, sample_text):
        buf = _add(engine, sample_text)
        pending = engine.delete_entity("mem", sample_text.index("Checklist"))
        assert pending.outcome == ActionOutcome.PENDING

        engine.run_pending()

        assert "Checklist" not in buf.text
        assert "Item" not in buf.text
        assert "Description text." in buf.text

    def test_delete_card_whose_id_prefixes_another(self, engine, client):
        text = (
            "* TODO First card\n:PROPERTIES:\n:orgtrello-id: abc10\n:END:\n"
            "* TODO Second card\n:PROPERTIES:\n:orgtrello-id: abc1\n:END:\n"
        )
        buf = _add(engine, text)

        result = engine.delete_entity("mem", text.index("Second card"), synchronous=True)

        assert result.outcome == ActionOutcome.APPLIED
        assert client.calls == [RemoteCall("DELETE", "/cards/abc1", {})]
        assert buf.text == "* TODO First card\n:PROPERTIES:\n:orgtrello-id: abc10\n:END:\n"

    def test_move_card(self, engine, client, sample_text):
        _add(engine, sample_text)
        result = engine.move_card("mem", sample_text.index("Ship it"), synchronous=True)
        assert result.action == ActionType.MOVE
        assert result.outcome == ActionOutcome.APPLIED
        assert client.calls == [RemoteCall("PUT", "/cards/42/idList", {"value": "L1"})]

    def test_move_checklist_rejected(self, engine, sample_text):
        _add(engine, sample_text)
        result = engine.move_card("mem", sample_text.index("Checklist"))
        assert result.error.code == MOVE_NOT_A_CARD


# ---------------------------------------------------------------------------
# Batch processing
# ---------------------------------------------------------------------------


class TestProcess:
    def test_batch_report_and_single_save(self, engine, client, org_file):
        buf = engine.store.open(str(org_file))
        text = buf.text
        # text-changing actions last so earlier positions stay valid
        actions = [
            EntityAction(buffer=buf.name, position=0),
            EntityAction(
                buffer=buf.name,
                position=text.index("Second card"),
                action=ActionType.DELETE,
            ),
            EntityAction(
                buffer=buf.name, position=text.index("Ship it"), synchronous=True
            ),
            EntityAction(buffer=buf.name, position=text.index("Open item")),
        ]

        report = engine.process(actions)

        assert [r.outcome for r in report.results] == [
            ActionOutcome.INVALID,
            ActionOutcome.INVALID,
            ActionOutcome.APPLIED,
            ActionOutcome.APPLIED,
        ]
        assert report.results[-1].name == "Open item"
        assert report.saved_buffers == [buf.name]
        assert report.completed_at is not None
        on_disk = org_file.read_text(encoding="utf-8")
        assert 'Open item :PROPERTIES: {"orgtrello-id":"id2"}' in on_disk
        assert len(engine.dirty) == 0

    def test_unexpected_error_does_not_stop_batch(self, engine, sample_text):
        _add(engine, sample_text)
        actions = [
            EntityAction(buffer="closed", position=0),
            EntityAction(buffer="mem", position=sample_text.index("Ship it"), synchronous=True),
        ]

        report = engine.process(actions)

        assert report.results[0].outcome == ActionOutcome.CANCELLED
        assert report.results[0].error.code == UNEXPECTED_ERROR
        assert report.results[1].outcome == ActionOutcome.APPLIED
        # in-memory buffer cannot be saved and stays dirty
        assert report.saved_buffers == []
        assert "mem" in engine.dirty

    def test_failing_continuation_cancels_only_its_request(
        self, engine, client, sample_text, monkeypatch, caplog
    ):
        _add(engine, sample_text)
        merge = engine.continuations.sync_succeeded
        seen = []

        def merge_once_broken(ctx, response):
            seen.append(ctx.name)
            if len(seen) == 1:
                raise RuntimeError("merge failed")
            return merge(ctx, response)

        monkeypatch.setattr(engine.continuations, "sync_succeeded", merge_once_broken)
        engine.sync_entity("mem", sample_text.index("Ship it"))
        engine.sync_entity("mem", sample_text.index("Checklist"))

        with caplog.at_level(logging.ERROR, logger="board_sync.sync.engine"):
            results = engine.run_pending()

        assert [r.outcome for r in results] == [ActionOutcome.CANCELLED, ActionOutcome.APPLIED]
        assert results[0].error.code == UNEXPECTED_ERROR
        assert results[0].error.message == "merge failed"
        assert results[0].name == "Ship it"
        assert results[1].name == "Checklist"
        assert len(client.calls) == 2
        assert engine.transport.pending_count == 0
        assert "Continuation for sync of 'Ship it' failed" in caplog.text

    def test_failing_continuation_synchronous(self, engine, sample_text, monkeypatch):
        _add(engine, sample_text)

        def broken(ctx, response):
            raise KeyError("gone")

        monkeypatch.setattr(engine.continuations, "move_succeeded", broken)
        result = engine.move_card("mem", sample_text.index("Ship it"), synchronous=True)

        assert result.outcome == ActionOutcome.CANCELLED
        assert result.error.code == UNEXPECTED_ERROR
        assert result.error.kind == ErrorKind.DISPATCH
