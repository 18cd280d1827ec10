"""Diagnostics for links whose target cannot be resolved."""

from __future__ import annotations

import contextlib
import os
from typing import Optional, Union

from .index import Index, path_to_uri
from .parse import Range, parse
from .position import Encoder

DIAG_SOURCE = "obsidian-ls"
DIAG_CODE_BROKEN_LINK = "broken-link"
SEVERITY_WARNING = 2
PUBLISH_DIAGNOSTICS_METHOD = "textDocument/publishDiagnostics"


def _line_at(lines: list[str], i: int) -> str:
    return lines[i] if 0 <= i < len(lines) else ""


def _to_protocol(r: Range, lines: list[str], enc: Encoder) -> dict:
    start_char = enc.byte_to_char(_line_at(lines, r.start.line), r.start.character)
    end_char = enc.byte_to_char(_line_at(lines, r.end.line), r.end.character)
    return {
        "start": {"line": r.start.line, "character": start_char},
        "end": {"line": r.end.line, "character": end_char},
    }


def find_broken_links(
    idx: Index, rel_path: str, encoding: str, content: Union[str, bytes]
) -> list[dict]:
    """Warning diagnostics for every link in ``content`` with an unresolved target."""
    text = content.decode("utf-8", errors="replace") if isinstance(content, (bytes, bytearray)) else content
    doc = parse(text, rel_path)
    enc = Encoder(encoding)
    lines = text.split("\n")
    diags = []
    for link in doc.links:
        if link is None or not link.target:
            continue
        if idx.resolve_link_target_to_path(link.target):
            continue
        diags.append(
            {
                "range": _to_protocol(link.range, lines, enc),
                "severity": SEVERITY_WARNING,
                "source": DIAG_SOURCE,
                "code": DIAG_CODE_BROKEN_LINK,
                "message": f"Unresolved wikilink target: {link.target}",
                "data": {"target": link.target},
            }
        )
    return diags


def _publish(conn, idx: Index, rel_path: str, diags: list[dict]) -> None:
    params = {
        "uri": path_to_uri(os.path.join(idx.root(), rel_path)),
        "diagnostics": diags,
    }
    # Publishing is best effort: a lost notification is not an error.
    with contextlib.suppress(OSError):
        conn.notify(PUBLISH_DIAGNOSTICS_METHOD, params)


def diagnose_file(
    conn, idx: Optional[Index], rel_path: str, encoding: str, content: Union[str, bytes]
) -> None:
    """Compute and publish broken-link diagnostics for ``rel_path``."""
    if conn is None or idx is None or not rel_path:
        return
    _publish(conn, idx, rel_path, find_broken_links(idx, rel_path, encoding, content))


def clear_diagnostics(conn, idx: Optional[Index], rel_path: str) -> None:
    """Publish an empty diagnostic list for ``rel_path``."""
    if conn is None or idx is None or not rel_path:
        return
    _publish(conn, idx, rel_path, [])