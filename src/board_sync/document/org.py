"""Org outline format: header configuration, entities and navigation.

A document looks like::

    #+PROPERTY: board-id B1
    #+PROPERTY: TODO L1
    #+TODO: TODO | DONE
    * TODO Ship it                                     :a:b:
    DEADLINE: <2026-10-20 Tue 14:00>
    :PROPERTIES:
    :orgtrello-id: 42
    :orgtrello-users: m1,m2
    :END:
      Description text.
      - [-] Checklist :PROPERTIES: {"orgtrello-id":"c1"}
        - [X] Item :PROPERTIES: {"orgtrello-id":"i1"}

Top-level headings are cards. Checkbox lines are checklists (level 2)
and items (level 3); their level comes from indentation. The
``orgtrello-id`` property holds either the remote id or a placeholder
marker starting with the marker prefix.
"""

from __future__ import annotations

import json
import logging
import re

from pydantic import BaseModel

from ..sync.models import Entity, EntityLevel, FullMetadata

from .buffer import OrgBuffer

logger = logging.getLogger(__name__)

ID_PROPERTY = "orgtrello-id"
USERS_PROPERTY = "orgtrello-users"
BOARD_ID_PROPERTY = "board-id"
DEFAULT_MARKER_PREFIX = "orgtrello-marker-"

CHECKED_KEYWORD = "DONE"
UNCHECKED_KEYWORD = "TODO"

_HEADER_PROPERTY_RE = re.compile(r"^#\+PROPERTY:\s+(\S+)\s+(.*?)\s*$")
_HEADER_TODO_RE = re.compile(r"^#\+TODO:\s*(.*?)\s*$")
_CARD_RE = re.compile(r"^\* (?P<rest>.*)$")
_TAGS_RE = re.compile(r"\s+(?P<tags>:(?:[^\s:]+:)+)\s*$")
_CHECKBOX_RE = re.compile(
    r"^(?P<indent> *)- \[(?P<box>[ X-])\]\s*(?P<name>.*?)"
    r"\s*(?::PROPERTIES:\s*(?P<props>\{.*\}))?\s*$"
)
_PLANNING_RE = re.compile(r"^\s*(?:DEADLINE|SCHEDULED):")
_DEADLINE_RE = re.compile(r"DEADLINE:\s*<(?P<stamp>[^>]*)>")
_DRAWER_PROPERTY_RE = re.compile(r"^\s*:(?P<key>[^:\s]+):\s*(?P<value>.*?)\s*$")


class DocumentConfig(BaseModel):
    """Board configuration read from the document header.

    Attributes:
        board_id: Remote board id.
        list_ids: Org keyword to remote list id.
        todo_keywords: Keywords before ``|`` in ``#+TODO``.
        done_keywords: Keywords after ``|`` in ``#+TODO``.
    """

    board_id: str | None = None
    list_ids: dict[str, str] = {}
    todo_keywords: list[str] = [UNCHECKED_KEYWORD]
    done_keywords: list[str] = [CHECKED_KEYWORD]

    model_config = {"frozen": True}

    @property
    def keywords(self) -> set[str]:
        return {*self.todo_keywords, *self.done_keywords, *self.list_ids}

    def list_id_for(self, keyword: str | None) -> str | None:
        if keyword is None:
            return None
        return self.list_ids.get(keyword)


def parse_config(buffer: OrgBuffer) -> DocumentConfig:
    """Read ``#+PROPERTY`` and ``#+TODO`` header lines from *buffer*."""
    board_id: str | None = None
    list_ids: dict[str, str] = {}
    todo: list[str] = []
    done: list[str] = []
    for _, line in buffer.iter_lines():
        if match := _HEADER_PROPERTY_RE.match(line):
            key, value = match.group(1), match.group(2)
            if key == BOARD_ID_PROPERTY:
                board_id = value
            elif value:
                list_ids[key] = value
        elif match := _HEADER_TODO_RE.match(line):
            words = match.group(1).split()
            if "|" in words:
                split = words.index("|")
                todo.extend(words[:split])
                done.extend(words[split + 1 :])
            elif words:
                # Without a separator the last keyword is the done state
                todo.extend(words[:-1])
                done.append(words[-1])
    return DocumentConfig(
        board_id=board_id,
        list_ids=list_ids,
        todo_keywords=todo or [UNCHECKED_KEYWORD],
        done_keywords=done or [CHECKED_KEYWORD],
    )


# ---------------------------------------------------------------------------
# Line classification
# ---------------------------------------------------------------------------


def is_card_line(line: str) -> bool:
    return _CARD_RE.match(line) is not None


def checkbox_level(indent: str) -> int:
    return max(EntityLevel.CHECKLIST, len(indent) // 2 + 1)


def line_level(line: str) -> int | None:
    """Entity level of *line*, or ``None`` if it is not an entity line."""
    if is_card_line(line):
        return EntityLevel.CARD
    match = _CHECKBOX_RE.match(line)
    if match is None:
        return None
    return checkbox_level(match.group("indent"))


def split_tags(text: str) -> tuple[str, str | None]:
    """Split ``"title   :a:b:"`` into ``("title", ":a:b:")``."""
    match = _TAGS_RE.search(text)
    if match is None:
        return text.strip(), None
    return text[: match.start()].strip(), match.group("tags")


def _split_heading(rest: str, keywords: set[str]) -> tuple[str | None, str, str | None]:
    title, tags = split_tags(rest)
    keyword: str | None = None
    head, _, tail = title.partition(" ")
    if head in keywords:
        keyword, title = head, tail.strip()
    return keyword, title, tags


def _checkbox_props(match: re.Match[str]) -> dict[str, str]:
    raw = match.group("props")
    if not raw:
        return {}
    try:
        props = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Ignoring malformed checkbox properties: %s", raw)
        return {}
    return props if isinstance(props, dict) else {}


def _split_marker(value: str | None, marker_prefix: str) -> tuple[str | None, str | None]:
    """Return ``(id, marker)`` for a stored ``orgtrello-id`` value."""
    if not value:
        return None, None
    if value.startswith(marker_prefix):
        return None, value
    return value, value


# ---------------------------------------------------------------------------
# Navigation
# ---------------------------------------------------------------------------


def card_start(buffer: OrgBuffer, position: int) -> int | None:
    """Offset of the card heading owning *position*, or ``None``."""
    for offset, line in buffer.iter_lines_backward(position):
        if is_card_line(line):
            return offset
    return None


def next_card_heading(buffer: OrgBuffer, position: int) -> int | None:
    """Offset of the first card heading after the line at *position*."""
    start = buffer.line_end(position) + 1
    if start >= len(buffer):
        return None
    for offset, line in buffer.iter_lines(start):
        if is_card_line(line):
            return offset
    return None


def next_checkbox_at_level(buffer: OrgBuffer, position: int, level: int) -> int | None:
    """Offset of the first checkbox of *level* or shallower after *position*."""
    start = buffer.line_end(position) + 1
    if start >= len(buffer):
        return None
    for offset, line in buffer.iter_lines(start):
        match = _CHECKBOX_RE.match(line)
        if match and checkbox_level(match.group("indent")) <= level:
            return offset
    return None


def entity_start(buffer: OrgBuffer, position: int) -> int | None:
    """Line start of the entity at *position*.

    A checkbox line is its own entity; any other line belongs to the
    card above it.
    """
    line = buffer.line_at(position)
    if _CHECKBOX_RE.match(line):
        return buffer.line_start(position)
    return card_start(buffer, position)


def entity_positions(buffer: OrgBuffer, start: int = 0, end: int | None = None) -> list[int]:
    """Line starts of every card and checkbox in ``[start, end)``."""
    limit = len(buffer) if end is None else end
    positions = []
    for offset, line in buffer.iter_lines(start):
        if offset >= limit:
            break
        if line_level(line) is not None:
            positions.append(offset)
    return positions


def card_positions(buffer: OrgBuffer) -> list[int]:
    return [offset for offset, line in buffer.iter_lines() if is_card_line(line)]


# ---------------------------------------------------------------------------
# Materialization
# ---------------------------------------------------------------------------


def _following_line(buffer: OrgBuffer, offset: int) -> int | None:
    """Start of the line after the one at *offset*, or ``None`` at EOF."""
    start = buffer.line_end(offset) + 1
    return start if start < len(buffer) else None


def _card_drawer(buffer: OrgBuffer, heading: int) -> tuple[int, int] | None:
    """Return ``(properties_line, end_line)`` offsets of the card drawer."""
    offset = _following_line(buffer, heading)
    if offset is not None and _PLANNING_RE.match(buffer.line_at(offset)):
        offset = _following_line(buffer, offset)
    if offset is None or buffer.line_at(offset).strip() != ":PROPERTIES:":
        return None
    for end_offset, end_line in buffer.iter_lines(offset):
        if end_line.strip() == ":END:":
            return offset, end_offset
        if is_card_line(end_line):
            break
    return None


def _drawer_properties(buffer: OrgBuffer, drawer: tuple[int, int]) -> dict[str, str]:
    start, end = drawer
    props = {}
    for offset, line in buffer.iter_lines(buffer.next_line_start(start)):
        if offset >= end:
            break
        if match := _DRAWER_PROPERTY_RE.match(line):
            props[match.group("key")] = match.group("value")
    return props


def _card_body(
    buffer: OrgBuffer, heading: int, drawer: tuple[int, int] | None
) -> tuple[str | None, str | None]:
    """Return ``(deadline, description)`` for the card at *heading*."""
    due = None
    offset = _following_line(buffer, heading)
    if offset is not None and _PLANNING_RE.match(buffer.line_at(offset)):
        if match := _DEADLINE_RE.search(buffer.line_at(offset)):
            due = match.group("stamp")
        offset = _following_line(buffer, offset)
    if drawer is not None:
        offset = _following_line(buffer, drawer[1])
    if offset is None:
        return due, None
    lines = []
    for _, line in buffer.iter_lines(offset):
        if is_card_line(line) or _CHECKBOX_RE.match(line):
            break
        lines.append(line[2:] if line.startswith("  ") else line.lstrip())
    description = "\n".join(lines).strip()
    return due, description or None


def _card_entity(
    buffer: OrgBuffer,
    offset: int,
    config: DocumentConfig,
    marker_prefix: str,
) -> Entity:
    match = _CARD_RE.match(buffer.line_at(offset))
    if match is None:
        raise ValueError(f"No card heading at offset {offset} in {buffer.name}")
    keyword, name, tags = _split_heading(match.group("rest"), config.keywords)
    drawer = _card_drawer(buffer, offset)
    props = _drawer_properties(buffer, drawer) if drawer else {}
    entity_id, marker = _split_marker(props.get(ID_PROPERTY), marker_prefix)
    users = props.get(USERS_PROPERTY, "")
    due, description = _card_body(buffer, offset, drawer)
    return Entity(
        level=EntityLevel.CARD,
        buffer=buffer.name,
        position=offset,
        name=name or None,
        id=entity_id,
        marker=marker,
        keyword=keyword,
        due=due,
        description=description,
        member_ids=[u.strip() for u in users.split(",") if u.strip()],
        tags=tags,
    )


def _checkbox_entity(
    buffer: OrgBuffer,
    offset: int,
    match: re.Match[str],
    marker_prefix: str,
) -> Entity:
    props = _checkbox_props(match)
    entity_id, marker = _split_marker(props.get(ID_PROPERTY), marker_prefix)
    return Entity(
        level=checkbox_level(match.group("indent")),
        buffer=buffer.name,
        position=offset,
        name=match.group("name") or None,
        id=entity_id,
        marker=marker,
        keyword=CHECKED_KEYWORD if match.group("box") == "X" else UNCHECKED_KEYWORD,
    )


def entity_at(
    buffer: OrgBuffer,
    position: int,
    config: DocumentConfig | None = None,
    marker_prefix: str = DEFAULT_MARKER_PREFIX,
) -> Entity | None:
    """Materialize the entity owning *position*, or ``None``."""
    start = entity_start(buffer, position)
    if start is None:
        return None
    line = buffer.line_at(start)
    if match := _CHECKBOX_RE.match(line):
        return _checkbox_entity(buffer, start, match, marker_prefix)
    return _card_entity(buffer, start, config or parse_config(buffer), marker_prefix)


def _parent_start(buffer: OrgBuffer, entity: Entity) -> int | None:
    if entity.level <= EntityLevel.CARD:
        return None
    if entity.level == EntityLevel.CHECKLIST:
        return card_start(buffer, entity.position)
    if entity.position == 0:
        return None
    for offset, line in buffer.iter_lines_backward(entity.position - 1):
        if is_card_line(line):
            return None
        match = _CHECKBOX_RE.match(line)
        if match and checkbox_level(match.group("indent")) == entity.level - 1:
            return offset
    return None


def metadata_at(
    buffer: OrgBuffer,
    position: int,
    config: DocumentConfig | None = None,
    marker_prefix: str = DEFAULT_MARKER_PREFIX,
) -> FullMetadata | None:
    """Materialize the entity at *position* with its parent and grandparent."""
    config = config or parse_config(buffer)
    current = entity_at(buffer, position, config, marker_prefix)
    if current is None:
        return None
    ancestors: list[Entity] = []
    node = current
    while len(ancestors) < 2:
        start = _parent_start(buffer, node)
        if start is None:
            break
        node = entity_at(buffer, start, config, marker_prefix)
        if node is None:
            break
        ancestors.append(node)
    return FullMetadata(
        current=current,
        parent=ancestors[0] if ancestors else None,
        grandparent=ancestors[1] if len(ancestors) > 1 else None,
    )


def marker_pattern(marker: str) -> re.Pattern[str]:
    """Match *marker* only where it is a whole ``orgtrello-id`` value.

    Group ``drawer`` holds it for a card drawer line, group ``inline``
    for the property object of a checkbox line.
    """
    key = re.escape(ID_PROPERTY)
    value = re.escape(marker)
    return re.compile(
        rf"^[ \t]*:{key}:[ \t]*(?P<drawer>{value})[ \t]*$"
        rf'|^ *- \[[ X-]\].*?:PROPERTIES:.*?"{key}"\s*:\s*"(?P<inline>{value})"',
        re.MULTILINE,
    )


def find_marker(buffer: OrgBuffer, marker: str | None) -> int | None:
    """Offset of the first id property whose value is exactly *marker*."""
    if not marker:
        return None
    match = marker_pattern(marker).search(buffer.text)
    if match is None:
        return None
    return match.start(match.lastgroup)


def canonical_pattern(entity: Entity) -> re.Pattern[str] | None:
    """Line pattern that re-finds *entity* when its marker is gone."""
    if not entity.name:
        return None
    name = re.escape(entity.name)
    if entity.level == EntityLevel.CARD:
        keyword = f"{re.escape(entity.keyword)} " if entity.keyword else ""
        return re.compile(rf"^\* {keyword}{name}(?=\s|$)", re.MULTILINE)
    return re.compile(rf"^ *- \[[ X-]\] {name}(?=\s|$)", re.MULTILINE)


# ---------------------------------------------------------------------------
# Id property editing
# ---------------------------------------------------------------------------


def _dump_props(props: dict[str, str]) -> str:
    return json.dumps(props, separators=(",", ":"))


def set_entity_id(buffer: OrgBuffer, position: int, value: str) -> None:
    """Write *value* as the ``orgtrello-id`` of the entity at *position*."""
    start = entity_start(buffer, position)
    if start is None:
        raise ValueError(f"No entity at offset {position} in {buffer.name}")
    line_end = buffer.line_end(start)
    line = buffer.text[start:line_end]

    if match := _CHECKBOX_RE.match(line):
        props = _checkbox_props(match)
        props[ID_PROPERTY] = value
        head = line[: match.end("name")] if match.group("props") else line.rstrip()
        buffer.replace_region(start, line_end, f"{head} :PROPERTIES: {_dump_props(props)}")
        return

    drawer = _card_drawer(buffer, start)
    entry = f":{ID_PROPERTY}: {value}"
    if drawer is None:
        anchor = buffer.line_end(start)
        following = _following_line(buffer, start)
        if following is not None and _PLANNING_RE.match(buffer.line_at(following)):
            anchor = buffer.line_end(following)
        buffer.insert(anchor, f"\n:PROPERTIES:\n{entry}\n:END:")
        return
    drawer_start, drawer_end = drawer
    for offset, existing in buffer.iter_lines(buffer.next_line_start(drawer_start)):
        if offset >= drawer_end:
            break
        match = _DRAWER_PROPERTY_RE.match(existing)
        if match and match.group("key") == ID_PROPERTY:
            buffer.replace_region(offset, offset + len(existing), entry)
            return
    buffer.insert(buffer.line_end(drawer_start), f"\n{entry}")


def remove_entity_id(buffer: OrgBuffer, position: int) -> bool:
    """Remove the ``orgtrello-id`` of the entity at *position*.

    Returns:
        True if a property was removed.
    """
    start = entity_start(buffer, position)
    if start is None:
        return False
    line_end = buffer.line_end(start)
    line = buffer.text[start:line_end]

    if match := _CHECKBOX_RE.match(line):
        props = _checkbox_props(match)
        if props.pop(ID_PROPERTY, None) is None:
            return False
        head = line[: match.end("name")]
        suffix = f" :PROPERTIES: {_dump_props(props)}" if props else ""
        buffer.replace_region(start, line_end, head + suffix)
        return True

    drawer = _card_drawer(buffer, start)
    if drawer is None:
        return False
    drawer_start, drawer_end = drawer
    entries = []
    target = None
    for offset, existing in buffer.iter_lines(buffer.next_line_start(drawer_start)):
        if offset >= drawer_end:
            break
        match = _DRAWER_PROPERTY_RE.match(existing)
        if match and match.group("key") == ID_PROPERTY:
            target = offset
        else:
            entries.append(existing)
    if target is None:
        return False
    if entries:
        buffer.delete_region(target, buffer.next_line_start(target))
    else:
        # Drop the now-empty drawer along with the newline before it
        buffer.delete_region(drawer_start - 1, buffer.line_end(drawer_end))
    return True
