"""Tests for position recovery after a round trip."""

from __future__ import annotations

import pytest

from board_sync.document.buffer import OrgBuffer
from board_sync.document.org import entity_at, find_marker
from board_sync.sync.locator import locate, locate_entity_start

# ":orgtrello-id: " value starts at offset 40
CARD_WITH_ID = "* TODO Abcd\n:PROPERTIES:\n:orgtrello-id: abc123\n:END:\n"

TWO_CARDS = (
    "* TODO First card\n"
    ":PROPERTIES:\n"
    ":orgtrello-id: abc10\n"
    ":END:\n"
    "* TODO Second card\n"
    ":PROPERTIES:\n"
    ":orgtrello-id: abc1\n"
    ":END:\n"
)

TWO_ITEMS = (
    "* TODO Card\n"
    '  - [ ] CL :PROPERTIES: {"orgtrello-id":"c1"}\n'
    '    - [ ] Ten :PROPERTIES: {"orgtrello-id":"i10"}\n'
    '    - [ ] One :PROPERTIES: {"orgtrello-id":"i1"}\n'
)


# ---------------------------------------------------------------------------
# Marker search
# ---------------------------------------------------------------------------


class TestMarker:
    def test_marker_found(self):
        buf = OrgBuffer(name="b", text=CARD_WITH_ID)
        assert locate(buf, "abc123") == 40

    def test_marker_in_checkbox_properties(self, sample_text):
        buf = OrgBuffer(name="b", text=sample_text)
        assert locate(buf, "c1") == sample_text.index('"c1"') + 1

    def test_marker_missing_without_fallback(self):
        assert locate(OrgBuffer(name="b", text="nothing here"), "abc123") is None

    def test_prefix_of_earlier_card_id_skipped(self):
        buf = OrgBuffer(name="b", text=TWO_CARDS)

        assert locate(buf, "abc1") == TWO_CARDS.index("abc1\n")
        assert locate_entity_start(buf, "abc1") == TWO_CARDS.index("* TODO Second card")
        assert locate_entity_start(buf, "abc10") == 0

    def test_prefix_of_earlier_item_id_skipped(self):
        buf = OrgBuffer(name="b", text=TWO_ITEMS)
        assert locate_entity_start(buf, "i1") == TWO_ITEMS.index("    - [ ] One")

    @pytest.mark.parametrize(
        "before",
        [
            "* TODO Fix abc1 crash\n",
            "* TODO Notes\n  see abc1 for details\n",
            "* TODO Other\n:PROPERTIES:\n:orgtrello-users: abc1\n:END:\n",
        ],
    )
    def test_marker_text_outside_id_property_ignored(self, before):
        text = before + "* TODO Target\n:PROPERTIES:\n:orgtrello-id: abc1\n:END:\n"
        buf = OrgBuffer(name="b", text=text)
        assert locate_entity_start(buf, "abc1") == text.index("* TODO Target")

    def test_marker_is_matched_literally(self):
        buf = OrgBuffer(name="b", text="* TODO A\n:PROPERTIES:\n:orgtrello-id: abc\n:END:\n")
        assert find_marker(buf, "a.c") is None

    @pytest.mark.parametrize("marker", [None, ""])
    def test_empty_marker(self, marker):
        assert find_marker(OrgBuffer(name="b", text=CARD_WITH_ID), marker) is None


# ---------------------------------------------------------------------------
# Canonical-line fallback
# ---------------------------------------------------------------------------


class TestFallback:
    def test_fallback_to_canonical_line(self, sample_text):
        buf = OrgBuffer(name="b", text=sample_text)
        entity = entity_at(buf, sample_text.index("Open item"))
        buf.insert(0, "# moved everything down\n")

        found = locate(buf, "orgtrello-marker-gone", entity)

        assert found == buf.text.index("    - [ ] Open item")

    def test_fallback_without_name(self):
        buf = OrgBuffer(name="b", text="* TODO x\n  - [ ]\n")
        entity = entity_at(buf, 10)
        assert locate(buf, None, entity) is None

    def test_both_strategies_fail(self, sample_text):
        buf = OrgBuffer(name="b", text=sample_text)
        entity = entity_at(buf, sample_text.index("Open item"))
        buf.delete_region(buf.text.index("    - [ ] Open item"), len(buf))
        assert locate(buf, "orgtrello-marker-gone", entity) is None

    def test_entity_start_snaps_to_line(self, sample_text):
        buf = OrgBuffer(name="b", text=sample_text)
        assert locate_entity_start(buf, "c1") == sample_text.index("  - [-] Checklist")
        assert locate_entity_start(buf, "42") == sample_text.index("* TODO Ship it")
        assert locate_entity_start(buf, "zzz") is None
