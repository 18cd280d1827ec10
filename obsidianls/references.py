"""Find references: file backlinks and heading backlinks."""

from __future__ import annotations

import os
from typing import Optional

from .anchors import heading_anchor, heading_at_position, normalize_heading_anchor
from .definition import range_to_protocol
from .index import Index, path_to_uri
from .parse import Heading, Link
from .position import Encoder


def _location(idx: Index, path: str, rng: dict) -> dict:
    return {"uri": path_to_uri(os.path.join(idx.root(), path)), "range": rng}


def resolve_file_references(idx: Optional[Index], rel_path: str, enc: Encoder) -> list[dict]:
    """Locations of every link in the vault that resolves to ``rel_path``."""
    if idx is None:
        return []
    out = []
    for entry in idx.snapshot_paths():
        if entry.doc is None:
            continue
        for link in entry.doc.links:
            if link is None or not link.target:
                continue
            if idx.resolve_link_target_to_path(link.target) != rel_path:
                continue
            out.append(_location(idx, entry.path, range_to_protocol(idx, entry.path, link.range, enc)))
    return out


def _link_matches_heading(
    idx: Index, source_path: str, target_path: str, want_anchor: str, link: Optional[Link]
) -> bool:
    if link is None or not link.anchor or link.block_ref:
        return False
    resolved = idx.resolve_link_target_to_path(link.target) if link.target else source_path
    if resolved != target_path:
        return False
    return normalize_heading_anchor(link.anchor) == want_anchor


def resolve_heading_references(
    idx: Optional[Index],
    rel_path: str,
    heading: Optional[Heading],
    enc: Encoder,
    include_declaration: bool,
) -> tuple[list[dict], bool]:
    """Links to ``heading`` in ``rel_path`` and whether any were found.

    With ``include_declaration`` the heading itself comes first, and a
    match needs at least one link besides it.
    """
    if idx is None or heading is None:
        return [], False
    want_anchor = heading_anchor(idx.get_by_path(rel_path), heading)
    if not want_anchor:
        return [], False

    out = []
    if include_declaration:
        out.append(_location(idx, rel_path, range_to_protocol(idx, rel_path, heading.range, enc)))
    for entry in idx.snapshot_paths():
        if entry.doc is None:
            continue
        for link in entry.doc.links:
            if not _link_matches_heading(idx, entry.path, rel_path, want_anchor, link):
                continue
            out.append(_location(idx, entry.path, range_to_protocol(idx, entry.path, link.range, enc)))
    matched = bool(out) and (not include_declaration or len(out) > 1)
    return out, matched


def resolve_references(
    idx: Optional[Index], rel_path: str, encoding: str, params: Optional[dict]
) -> Optional[list[dict]]:
    """References for the cursor: heading backlinks on a linked heading, else file backlinks."""
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
    if 0 <= line_idx < len(lines):
        byte_off = enc.char_to_byte(lines[line_idx], int(position.get("character", 0)))
        heading = heading_at_position(doc, line_idx, byte_off)
        if heading is not None:
            include = bool((params.get("context") or {}).get("includeDeclaration", False))
            locs, matched = resolve_heading_references(idx, rel_path, heading, enc, include)
            if matched:
                return locs
    return resolve_file_references(idx, rel_path, enc)