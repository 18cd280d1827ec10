"""Heading anchors: slugs, lookup by anchor and position tests."""

from __future__ import annotations

from typing import Optional

from .parse import Doc, Heading, Range


def in_range(line: int, byte_off: int, r: Range) -> bool:
    """Whether (line, byte_off) lies inside the half-open range ``r``."""
    if line < r.start.line or (line == r.start.line and byte_off < r.start.character):
        return False
    if line > r.end.line or (line == r.end.line and byte_off >= r.end.character):
        return False
    return True


def normalize_heading_anchor(s: str) -> str:
    """Turn heading text into its anchor slug.

    Lower-cased; spaces and tabs become dashes, runs of dashes collapse,
    and only ASCII digits, underscores and letters are kept.
    """
    s = s.strip().lower().replace(" ", "-").replace("\t", "-")
    out: list[str] = []
    last_dash = False
    for ch in s:
        if "a" <= ch <= "z" or "0" <= ch <= "9" or ch == "_":
            out.append(ch)
            last_dash = False
        elif ch == "-":
            if not last_dash and out:
                out.append(ch)
                last_dash = True
        elif ch.isalpha():
            out.append(ch)
            last_dash = False
    return "".join(out).strip("-")


def heading_anchors(doc: Optional[Doc]) -> list[str]:
    """Anchors for every heading of ``doc``, in order.

    Repeated slugs get ``-1``, ``-2``... suffixes; headings whose slug is
    empty get an empty anchor.
    """
    if doc is None:
        return []
    anchors: list[str] = []
    seen: dict[str, int] = {}
    for heading in doc.headings:
        base = normalize_heading_anchor(heading.text) if heading is not None else ""
        if not base:
            anchors.append("")
            continue
        n = seen.get(base, 0)
        anchors.append(base if n == 0 else f"{base}-{n}")
        seen[base] = n + 1
    return anchors


def heading_anchor(doc: Optional[Doc], heading: Optional[Heading]) -> str:
    """The anchor of ``heading`` within ``doc``, or an empty string."""
    if doc is None or heading is None:
        return ""
    for h, anchor in zip(doc.headings, heading_anchors(doc)):
        if h is heading:
            return anchor
    return ""


def _find_by_text(doc: Doc, anchor: str) -> Optional[Heading]:
    folded = anchor.casefold()
    for h in doc.headings:
        if h is not None and h.text.casefold() == folded:
            return h
    return None


def find_heading(doc: Optional[Doc], anchor: str) -> Optional[Heading]:
    """The heading of ``doc`` named by ``anchor`` (slug first, then text)."""
    if doc is None:
        return None
    want = normalize_heading_anchor(anchor)
    if want:
        for h, candidate in zip(doc.headings, heading_anchors(doc)):
            if h is not None and candidate == want:
                return h
    return _find_by_text(doc, anchor)


def heading_at_position(doc: Optional[Doc], line_idx: int, byte_off: int) -> Optional[Heading]:
    """The heading whose range contains the position, or None."""
    if doc is None:
        return None
    for h in doc.headings:
        if h is not None and in_range(line_idx, byte_off, h.range):
            return h
    return None