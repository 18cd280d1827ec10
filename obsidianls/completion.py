"""Completion of wiki links: files, headings, blocks and aliases."""

from __future__ import annotations

import posixpath
from dataclasses import dataclass
from typing import Iterable, Optional

from .index import Index
from .parse import Doc
from .position import Encoder
from .wikilink_cursor import WikiLinkCursorContext, parse_wikilink_cursor_context

MAX_COMPLETION_ITEMS = 100

KIND_TEXT = 1
KIND_FILE = 17
KIND_REFERENCE = 18


@dataclass(frozen=True)
class _Request:
    current_rel: str
    line: str
    line_idx: int
    cursor_char: int
    enc: Encoder


def match_level(prefix_lower: str, candidate_lower: str) -> int:
    """2 for a prefix match, 1 for a substring match, 0 otherwise."""
    if candidate_lower.startswith(prefix_lower):
        return 2
    if prefix_lower in candidate_lower:
        return 1
    return 0


def file_match_score(
    prefix_lower: str, display_lower: str, path_lower: str, aliases: Iterable[str]
) -> int:
    """Rank a file: 3 prefix, 2 substring, 1 alias match, 0 no match."""
    if not prefix_lower:
        return 1
    best = max(match_level(prefix_lower, display_lower), match_level(prefix_lower, path_lower))
    if best == 2:
        return 3
    if best == 1:
        return 2
    if any(match_level(prefix_lower, alias.lower()) > 0 for alias in aliases):
        return 1
    return 0


def heading_match_score(prefix_lower: str, heading_lower: str) -> int:
    """Rank a heading, block id or alias; an empty prefix matches everything."""
    if not prefix_lower:
        return 1
    return match_level(prefix_lower, heading_lower)


def _byte_len(s: str) -> int:
    return len(s.encode("utf-8", errors="surrogatepass"))


def _dir(path: str) -> str:
    return posixpath.dirname(path) or "."


def _build_request(idx: Index, rel_path: str, encoding: str, params: dict) -> Optional[_Request]:
    try:
        lines = idx.get_lines(rel_path)
    except OSError:
        return None
    position = params.get("position") or {}
    line_idx = int(position.get("line", 0))
    cursor_char = int(position.get("character", 0))
    if not 0 <= line_idx < len(lines) or cursor_char < 0:
        return None
    return _Request(rel_path, lines[line_idx], line_idx, cursor_char, Encoder(encoding))


def _replace_range(ctx: WikiLinkCursorContext, req: _Request) -> dict:
    start_char = req.enc.byte_to_char(req.line, ctx.start_byte)
    return {
        "start": {"line": req.line_idx, "character": start_char},
        "end": {"line": req.line_idx, "character": req.cursor_char},
    }


def _item(label: str, insert: str, filter_text: str, kind: int, rng: dict, detail: str = "") -> dict:
    item = {
        "label": label,
        "kind": kind,
        "insertText": insert,
        "filterText": filter_text,
        "textEdit": {"range": dict(rng), "newText": insert},
    }
    if detail:
        item["detail"] = detail
    return item


def _sort_items(scored: list[tuple[int, str, dict]]) -> list[dict]:
    ordered = sorted(scored, key=lambda s: (-s[0], s[1], s[2]["insertText"]))
    return [item for _, _, item in ordered]


def _target_doc(idx: Index, current_rel: str, target_path: str) -> Optional[Doc]:
    doc_path = current_rel
    if target_path:
        doc_path = idx.resolve_link_target_to_path(target_path)
        if not doc_path:
            return None
    return idx.get_by_path(doc_path)


def _complete_files(idx: Index, ctx: WikiLinkCursorContext, req: _Request) -> list[dict]:
    prefix_lower = ctx.prefix.lower()
    current_dir = _dir(req.current_rel)
    rng = _replace_range(ctx, req)
    scored = []
    for entry in idx.snapshot_paths():
        path, doc = entry.path, entry.doc
        if doc is None:
            continue
        display = path[:-3] if path.endswith(".md") else path
        if not display:
            display = path
        score = file_match_score(prefix_lower, display.lower(), path.lower(), doc.aliases)
        if score == 0:
            continue
        if not prefix_lower and _dir(path) == current_dir:
            score += 1
        insert = doc.id or display
        detail = f"id: {doc.id}" if doc.id else ""
        filter_text = " ".join([display, path, *doc.aliases])
        item = _item(display, insert, filter_text, KIND_FILE, rng, detail)
        scored.append((score, display.lower(), item))
    return _sort_items(scored)


def _alias_candidates(idx: Index, current_rel: str, ctx: WikiLinkCursorContext) -> list[str]:
    if ctx.target_anchor:
        return [ctx.target_anchor]
    doc = _target_doc(idx, current_rel, ctx.target_path)
    if doc is None:
        return []
    candidates = [doc.title] if doc.title else []
    candidates.extend(doc.aliases)
    display = doc.path[:-3] if doc.path.endswith(".md") else doc.path
    if display:
        candidates.append(display.rstrip("/").rsplit("/", 1)[-1] or "/")
    return candidates


def _complete_aliases(idx: Index, ctx: WikiLinkCursorContext, req: _Request) -> list[dict]:
    candidates = _alias_candidates(idx, req.current_rel, ctx)
    prefix_lower = ctx.prefix.lower()
    rng = _replace_range(ctx, req)
    scored = []
    seen: set[str] = set()
    for candidate in candidates:
        if not candidate or candidate in seen:
            continue
        seen.add(candidate)
        score = heading_match_score(prefix_lower, candidate.lower())
        if score == 0:
            continue
        item = _item(candidate, candidate, candidate, KIND_TEXT, rng)
        scored.append((score, candidate.lower(), item))
    return _sort_items(scored)


def _complete_named(
    names: Iterable[str], ctx: WikiLinkCursorContext, req: _Request
) -> list[dict]:
    if ctx.start_byte > _byte_len(req.line):
        return []
    prefix_lower = ctx.prefix.lower()
    rng = _replace_range(ctx, req)
    scored = []
    for name in names:
        score = heading_match_score(prefix_lower, name.lower())
        if score == 0:
            continue
        scored.append((score, name.lower(), _item(name, name, name, KIND_REFERENCE, rng)))
    return _sort_items(scored)


def _complete_blocks(idx: Index, ctx: WikiLinkCursorContext, req: _Request) -> list[dict]:
    doc = _target_doc(idx, req.current_rel, ctx.target_path)
    if doc is None:
        return []
    return _complete_named((b.id for b in doc.blocks if b is not None), ctx, req)


def _complete_headings(idx: Index, ctx: WikiLinkCursorContext, req: _Request) -> list[dict]:
    doc = _target_doc(idx, req.current_rel, ctx.target_path)
    if doc is None:
        return []
    return _complete_named((h.text for h in doc.headings if h is not None), ctx, req)


def resolve_completion(
    idx: Optional[Index], rel_path: str, encoding: str, params: Optional[dict]
) -> Optional[dict]:
    """Completion list for the wiki link at the cursor, or None outside one.

    ``[[`` completes files, ``[[#`` and ``[[path#`` headings, ``#^`` block
    ids and ``|`` aliases.
    """
    if idx is None or params is None:
        return None
    req = _build_request(idx, rel_path, encoding, params)
    if req is None:
        return None
    byte_off = req.enc.char_to_byte(req.line, req.cursor_char)
    ctx = parse_wikilink_cursor_context(req.line, byte_off)
    if ctx is None:
        # A single "[" may become "[[": keep the client's session open.
        data = req.line.encode("utf-8", errors="surrogatepass")
        if byte_off > 0 and data[byte_off - 1 : byte_off] == b"[":
            return {"isIncomplete": True, "items": []}
        return None

    if ctx.complete_files:
        items = _complete_files(idx, ctx, req)
    elif ctx.complete_alias:
        items = _complete_aliases(idx, ctx, req)
    elif ctx.complete_block:
        items = _complete_blocks(idx, ctx, req)
    else:
        items = _complete_headings(idx, ctx, req)

    is_incomplete = False
    if ctx.complete_files and len(items) > MAX_COMPLETION_ITEMS:
        items = items[:MAX_COMPLETION_ITEMS]
        # Clients may hide the popup for an incomplete list with no filter typed.
        is_incomplete = ctx.prefix != ""
    return {"isIncomplete": is_incomplete, "items": items}