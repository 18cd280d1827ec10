"""Document outline: headings as a tree of document symbols."""

from __future__ import annotations

from typing import Optional

from .definition import range_to_protocol
from .index import Index
from .parse import Pos, Range
from .position import Encoder

SYMBOL_KIND_MODULE = 2


def _byte_len(s: str) -> int:
    return len(s.encode("utf-8", errors="surrogatepass"))


def resolve_document_symbol(
    idx: Optional[Index], rel_path: str, encoding: str, params: Optional[dict]
) -> Optional[list[dict]]:
    """Heading tree of ``rel_path``; each ``range`` spans the whole section.

    Returns None when the note has no headings.
    """
    if idx is None or params is None:
        return None
    try:
        lines = idx.get_lines(rel_path)
    except OSError:
        return None
    doc = idx.get_by_path(rel_path)
    if doc is None or not doc.headings:
        return None
    enc = Encoder(encoding)
    headings = doc.headings

    nodes: list[dict] = []
    for i, h in enumerate(headings):
        end_line = len(lines) - 1
        following = next((n for n in headings[i + 1 :] if n.level <= h.level), None)
        if following is not None:
            end_line = following.range.start.line - 1
        end_line = max(end_line, h.range.start.line)
        end_text = lines[end_line] if 0 <= end_line < len(lines) else ""
        section = Range(h.range.start, Pos(end_line, _byte_len(end_text)))
        nodes.append(
            {
                "name": h.text,
                "detail": "",
                "kind": SYMBOL_KIND_MODULE,
                "range": range_to_protocol(idx, rel_path, section, enc),
                "selectionRange": range_to_protocol(idx, rel_path, h.range, enc),
            }
        )

    roots = []
    for i, node in enumerate(nodes):
        level = headings[i].level
        parent = next((j for j in range(i - 1, -1, -1) if headings[j].level < level), None)
        if parent is None:
            roots.append(node)
        else:
            nodes[parent].setdefault("children", []).append(node)
    return roots