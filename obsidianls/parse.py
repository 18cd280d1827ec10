"""Markdown note parsing: frontmatter, headings, block ids and links.

Ranges use 0-based line numbers and UTF-8 byte offsets for characters.
"""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional, Union

import yaml


@dataclass(frozen=True)
class Pos:
    """A 0-based position: line and UTF-8 byte offset within the line."""

    line: int
    character: int


@dataclass(frozen=True)
class Range:
    """A 0-based [start, end) span in a document."""

    start: Pos
    end: Pos


@dataclass
class Heading:
    """A markdown heading (h1-h6)."""

    level: int
    text: str
    range: Range


@dataclass
class Block:
    """An explicit block id (``^block-id``) at the end of a line."""

    id: str
    range: Range


class LinkKind(enum.IntEnum):
    """Distinguishes wiki links from markdown links."""

    WIKI = 0
    MARKDOWN = 1


@dataclass
class Link:
    """A link to another note or resource.

    ``target`` is empty for same-note links such as ``[[#heading]]``;
    ``anchor`` holds heading text without ``#`` and ``block_ref`` a block id
    without ``^``.
    """

    kind: LinkKind
    target: str
    range: Range
    anchor: str = ""
    block_ref: str = ""
    alias: str = ""


@dataclass
class Doc:
    """The parsed result of a single markdown file."""

    path: str
    id: str = ""
    title: str = ""
    id_range: Optional[Range] = None
    tags: list[str] = field(default_factory=list)
    aliases: list[str] = field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    headings: list[Heading] = field(default_factory=list)
    blocks: list[Block] = field(default_factory=list)
    links: list[Link] = field(default_factory=list)


_WS = r"[\t\n\f\r ]"
_RE_HEADING = re.compile(r"(#{1,6})" + _WS + r"+(.+)")
_RE_BLOCK_ID = re.compile(_WS + r"+\^([a-zA-Z0-9_-]+)" + _WS + r"*\Z")
_RE_WIKI_LINK = re.compile(r"\[\[([^\]|#]*)(?:#([^\]|]+))?(?:\|([^\]]+))?\]\]")
_RE_MD_LINK = re.compile(r"\[([^\]]*)\]\(([^)]+)\)")

_RE_DATETIME = re.compile(r"(\d{4})-(\d{2})-(\d{2}) (\d{2}):(\d{2}):(\d{2})(?:\.(\d+))?")
_RE_DATE = re.compile(r"(\d{4})-(\d{2})-(\d{2})")
_RE_RFC3339 = re.compile(
    r"(\d{4})-(\d{2})-(\d{2})T(\d{2}):(\d{2}):(\d{2})(?:\.(\d+))?(Z|[+-]\d{2}:\d{2})"
)

_NULL_TAG = "tag:yaml.org,2002:null"


def _byte_len(s: str) -> int:
    return len(s.encode("utf-8", errors="surrogatepass"))


def _line_range(line_idx: int, start: int, end: int) -> Range:
    return Range(Pos(line_idx, start), Pos(line_idx, end))


def _parse_heading(line: str, line_idx: int) -> Optional[Heading]:
    m = _RE_HEADING.fullmatch(line)
    if m is None:
        return None
    return Heading(
        level=len(m.group(1)),
        text=m.group(2).strip(),
        range=_line_range(line_idx, 0, _byte_len(line)),
    )


def _parse_block_id(line: str, line_idx: int) -> Optional[Block]:
    m = _RE_BLOCK_ID.search(line)
    if m is None:
        return None
    return Block(
        id=m.group(1),
        range=_line_range(line_idx, _byte_len(line[: m.start()]), _byte_len(line)),
    )


def _match_range(line: str, line_idx: int, m: re.Match) -> Range:
    return _line_range(line_idx, _byte_len(line[: m.start()]), _byte_len(line[: m.end()]))


def _parse_links(line: str, line_idx: int) -> list[Link]:
    links = []
    for m in _RE_WIKI_LINK.finditer(line):
        anchor_id = m.group(2) or ""
        anchor, block_ref = "", ""
        if anchor_id.startswith("^"):
            block_ref = anchor_id[1:]
        else:
            anchor = anchor_id
        links.append(
            Link(
                kind=LinkKind.WIKI,
                target=m.group(1),
                anchor=anchor,
                block_ref=block_ref,
                alias=m.group(3) or "",
                range=_match_range(line, line_idx, m),
            )
        )
    for m in _RE_MD_LINK.finditer(line):
        links.append(
            Link(
                kind=LinkKind.MARKDOWN,
                target=m.group(2),
                alias=m.group(1),
                range=_match_range(line, line_idx, m),
            )
        )
    return links


def _micros(fraction: Optional[str]) -> int:
    return int((fraction or "0")[:6].ljust(6, "0"))


def _parse_time(value: str) -> Optional[datetime]:
    """Parse a frontmatter timestamp in one of the accepted layouts."""
    m = _RE_DATETIME.fullmatch(value)
    if m:
        try:
            return datetime(*map(int, m.groups()[:6]), _micros(m.group(7)))
        except ValueError:
            pass
    m = _RE_DATE.fullmatch(value)
    if m:
        try:
            return datetime(*map(int, m.groups()))
        except ValueError:
            pass
    m = _RE_RFC3339.fullmatch(value)
    if m:
        zone = m.group(8)
        if zone == "Z":
            tz = timezone.utc
        else:
            sign = -1 if zone[0] == "-" else 1
            tz = timezone(sign * timedelta(hours=int(zone[1:3]), minutes=int(zone[4:6])))
        try:
            return datetime(*map(int, m.groups()[:6]), _micros(m.group(7)), tzinfo=tz)
        except ValueError:
            pass
    return None


class _DecodeError(Exception):
    """Frontmatter that cannot be decoded into the expected fields."""


def _is_null(node) -> bool:
    return isinstance(node, yaml.ScalarNode) and node.tag == _NULL_TAG


def _load_fields(raw: str) -> dict:
    try:
        node = next(iter(yaml.compose_all(raw, Loader=yaml.SafeLoader)), None)
    except yaml.YAMLError as exc:
        raise _DecodeError(str(exc)) from exc
    if node is None or _is_null(node):
        return {}
    if not isinstance(node, yaml.MappingNode):
        raise _DecodeError("frontmatter is not a mapping")
    fields: dict = {}
    for key, value in node.value:
        if not isinstance(key, yaml.ScalarNode):
            continue
        if key.value in fields:
            raise _DecodeError(f"mapping key {key.value!r} already defined")
        fields[key.value] = value
    return fields


def _string_field(node) -> str:
    if node is None or _is_null(node):
        return ""
    if isinstance(node, yaml.ScalarNode):
        return node.value
    raise _DecodeError("expected a scalar")


def _string_list(node) -> list[str]:
    if node is None or _is_null(node):
        return []
    if isinstance(node, yaml.ScalarNode):
        return [node.value]
    if isinstance(node, yaml.SequenceNode):
        return [c.value for c in node.value if isinstance(c, yaml.ScalarNode)]
    return []


def _time_field(node) -> Optional[datetime]:
    if node is None or _is_null(node) or not isinstance(node, yaml.ScalarNode):
        return None
    value = node.value.strip()
    if not value:
        return None
    return _parse_time(value)


def _apply_frontmatter(raw: str, doc: Doc, start_line: int) -> None:
    try:
        fields = _load_fields(raw)
        doc_id = _string_field(fields.get("id"))
        title = _string_field(fields.get("title"))
    except _DecodeError:
        return
    doc.id = doc_id
    doc.title = title.strip()
    doc.aliases = _string_list(fields.get("aliases"))
    doc.tags.extend(_string_list(fields.get("tags")))
    doc.created_at = _time_field(fields.get("createdAt"))
    doc.updated_at = _time_field(fields.get("updatedAt"))
    if not doc.id:
        return
    for i, line in enumerate(raw.split("\n")):
        key, sep, _ = line.partition(":")
        if sep and key.strip() == "id":
            doc.id_range = _line_range(start_line + i, 0, _byte_len(line))
            break


def _split_frontmatter(text: str) -> tuple[Optional[str], str]:
    if not text.startswith("---\n"):
        return None, text
    rest = text[4:]
    end = rest.find("\n---")
    if end < 0:
        return None, text
    return rest[:end], rest[end + 4 :]


def _parse_body(body: str, body_start_line: int, doc: Doc) -> None:
    for line_idx, line in enumerate(body.split("\n"), start=body_start_line):
        heading = _parse_heading(line, line_idx)
        if heading is not None:
            doc.headings.append(heading)
        block = _parse_block_id(line, line_idx)
        if block is not None:
            doc.blocks.append(block)
        doc.links.extend(_parse_links(line, line_idx))


def parse(content: Union[str, bytes], path: str) -> Doc:
    """Parse a markdown note; ``path`` is its path relative to the vault root."""
    if isinstance(content, (bytes, bytearray)):
        text = bytes(content).decode("utf-8", errors="replace")
    else:
        text = content
    doc = Doc(path=path)
    frontmatter, body = _split_frontmatter(text)
    body_start_line = 0
    if frontmatter is not None:
        _apply_frontmatter(frontmatter, doc, 1)
        body_start_line = text[: len(text) - len(body)].count("\n")
    _parse_body(body, body_start_line, doc)
    return doc