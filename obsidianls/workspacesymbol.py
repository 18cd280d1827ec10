"""Workspace symbols: notes and headings filtered by tags and title."""

from __future__ import annotations

import os
import re
from typing import Optional

from .definition import range_to_protocol
from .index import Index, path_to_uri
from .parse import Doc
from .position import Encoder

MAX_WORKSPACE_SYMBOLS = 200

SYMBOL_KIND_FILE = 1
SYMBOL_KIND_MODULE = 2

_WHITESPACE = re.compile(r"\s")


def _normalize_tag(s: str) -> str:
    return s.removeprefix("#").strip().lower()


def _contains_fold(s: str, sub: str) -> bool:
    return sub.lower() in s.lower()


def _stem(path: str) -> str:
    name = path.rstrip("/").rsplit("/", 1)[-1]
    dot = name.rfind(".")
    return name[:dot] if dot >= 0 else name


def parse_workspace_symbol_query(query: str) -> tuple[list[str], str]:
    """Split ``#tag1,tag2 title`` into normalized tags and a title filter.

    A query without a leading ``#`` is a title filter only.
    """
    q = query.strip()
    if not q.startswith("#"):
        return [], q
    rest = q[1:].strip()
    if not rest:
        return [], ""
    m = _WHITESPACE.search(rest)
    tags_part, title = rest, ""
    if m is not None:
        tags_part = rest[: m.start()]
        title = rest[m.start() :].strip()
    tags = [t for t in (_normalize_tag(p) for p in tags_part.split(",")) if t]
    return tags, title


def _matches_all_tags(doc: Doc, query_tags: list[str]) -> bool:
    if not query_tags:
        return True
    available = {t for t in (_normalize_tag(tag) for tag in doc.tags) if t}
    return all(_normalize_tag(q) in available for q in query_tags)


def resolve_workspace_symbol(
    idx: Optional[Index], encoding: str, params: Optional[dict]
) -> Optional[list[dict]]:
    """Notes, and with a title filter their headings, matching the query.

    At most MAX_WORKSPACE_SYMBOLS symbols are returned.
    """
    if idx is None or params is None:
        return None
    tags, title_filter = parse_workspace_symbol_query(params.get("query") or "")
    enc = Encoder(encoding)
    out: list[dict] = []
    for entry in idx.snapshot_paths():
        if len(out) >= MAX_WORKSPACE_SYMBOLS:
            break
        doc = entry.doc
        if doc is None or not _matches_all_tags(doc, tags):
            continue
        base = _stem(entry.path)
        uri = path_to_uri(os.path.join(idx.root(), entry.path))
        if not title_filter or _contains_fold(base, title_filter):
            out.append(
                {
                    "name": base,
                    "kind": SYMBOL_KIND_FILE,
                    "location": {
                        "uri": uri,
                        "range": {
                            "start": {"line": 0, "character": 0},
                            "end": {"line": 0, "character": 0},
                        },
                    },
                }
            )
            if len(out) >= MAX_WORKSPACE_SYMBOLS:
                break
        if not title_filter:
            continue
        for h in doc.headings:
            if h is None or not _contains_fold(h.text, title_filter):
                continue
            out.append(
                {
                    "name": h.text,
                    "kind": SYMBOL_KIND_MODULE,
                    "containerName": base,
                    "location": {
                        "uri": uri,
                        "range": range_to_protocol(idx, entry.path, h.range, enc),
                    },
                }
            )
            if len(out) >= MAX_WORKSPACE_SYMBOLS:
                break
    return out