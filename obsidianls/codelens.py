"""Code lenses showing reference counts on a note's id and headings."""

from __future__ import annotations

import os
from typing import Optional

from .commands import Command
from .definition import range_to_protocol
from .index import Index, path_to_uri
from .position import Encoder
from .references import resolve_file_references, resolve_heading_references


def reference_title(n: int) -> str:
    """``1 reference`` or ``N references``."""
    return "1 reference" if n == 1 else f"{n} references"


def _lens(doc_uri: str, rng: dict, refs: list[dict]) -> dict:
    return {
        "range": rng,
        "command": {
            "title": reference_title(len(refs)),
            "command": Command.SHOW_REFERENCES.value,
            "arguments": [doc_uri, rng["start"], refs],
        },
    }


def resolve_code_lens(
    idx: Optional[Index], rel_path: str, encoding: str, params: Optional[dict]
) -> Optional[list[dict]]:
    """Lenses for the frontmatter id (file backlinks) and each linked heading."""
    if idx is None or params is None:
        return None
    doc = idx.get_by_path(rel_path)
    if doc is None:
        return None
    enc = Encoder(encoding)
    doc_uri = path_to_uri(os.path.join(idx.root(), rel_path))

    lenses = []
    if doc.id_range is not None:
        refs = resolve_file_references(idx, rel_path, enc)
        if refs:
            lenses.append(_lens(doc_uri, range_to_protocol(idx, rel_path, doc.id_range, enc), refs))
    for heading in doc.headings:
        if heading is None:
            continue
        refs, matched = resolve_heading_references(idx, rel_path, heading, enc, False)
        if not matched:
            continue
        lenses.append(_lens(doc_uri, range_to_protocol(idx, rel_path, heading.range, enc), refs))
    return lenses