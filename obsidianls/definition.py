"""Go-to-definition for wiki links: target note, heading or block."""

from __future__ import annotations

import os
from typing import Optional

from .anchors import find_heading, in_range
from .index import Index, path_to_uri
from .parse import Doc, Link, Range
from .position import Encoder


def _position(line: int, character: int) -> dict:
    return {"line": line, "character": character}


def _zero_range() -> dict:
    return {"start": _position(0, 0), "end": _position(0, 0)}


def _line_at(lines: list[str], i: int) -> str:
    return lines[i] if 0 <= i < len(lines) else ""


def range_to_protocol(idx: Index, rel_path: str, r: Range, enc: Encoder) -> dict:
    """Convert a byte-offset range in ``rel_path`` to an LSP range.

    Yields an all-zero range when the file cannot be read.
    """
    try:
        lines = idx.get_lines(rel_path)
    except OSError:
        return _zero_range()
    start_char = enc.byte_to_char(_line_at(lines, r.start.line), r.start.character)
    end_char = enc.byte_to_char(_line_at(lines, r.end.line), r.end.character)
    return {
        "start": _position(r.start.line, start_char),
        "end": _position(r.end.line, end_char),
    }


def link_at_position(doc: Doc, line_idx: int, byte_off: int) -> Optional[Link]:
    """The link whose range contains (line_idx, byte_off), or None."""
    return next(
        (link for link in doc.links if link is not None and in_range(line_idx, byte_off, link.range)),
        None,
    )


def _location(idx: Index, path: str, rng: dict) -> dict:
    return {"uri": path_to_uri(os.path.join(idx.root(), path)), "range": rng}


def _heading_location(idx: Index, target_path: str, anchor: str, enc: Encoder) -> dict:
    rng = _zero_range()
    if anchor:
        doc = idx.get_by_path(target_path)
        heading = find_heading(doc, anchor) if doc is not None else None
        if heading is not None:
            rng = range_to_protocol(idx, target_path, heading.range, enc)
    return _location(idx, target_path, rng)


def _block_location(idx: Index, target_path: str, block_id: str, enc: Encoder) -> dict:
    rng = _zero_range()
    doc = idx.get_by_path(target_path)
    if doc is not None:
        block = next((b for b in doc.blocks if b is not None and b.id == block_id), None)
        if block is not None:
            rng = range_to_protocol(idx, target_path, block.range, enc)
    return _location(idx, target_path, rng)


def resolve_definition(
    idx: Optional[Index], rel_path: str, encoding: str, params: Optional[dict]
) -> Optional[list[dict]]:
    """Locations for the link under the cursor: the target note, or its heading or block."""
    if idx is None or params is None:
        return None
    enc = Encoder(encoding)
    doc = idx.get_by_path(rel_path)
    if doc is None:
        return None
    try:
        lines = idx.get_lines(rel_path)
    except OSError:
        return None
    position = params.get("position") or {}
    line_idx = int(position.get("line", 0))
    if not 0 <= line_idx < len(lines):
        return None
    byte_off = enc.char_to_byte(lines[line_idx], int(position.get("character", 0)))

    link = link_at_position(doc, line_idx, byte_off)
    if link is None:
        return None
    if link.target:
        target_path = idx.resolve_link_target_to_path(link.target)
        if not target_path:
            return None
    else:
        # Same-note link such as [[#heading]] or [[#^block]].
        target_path = rel_path

    if link.block_ref:
        return [_block_location(idx, target_path, link.block_ref, enc)]
    return [_heading_location(idx, target_path, link.anchor, enc)]