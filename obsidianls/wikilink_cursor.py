"""Completion context for a cursor inside an unclosed wiki link ``[[...``."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

_BRACKETS = re.compile(rb"\[\[|\]\]")


@dataclass
class WikiLinkCursorContext:
    """What to complete at the cursor; ``start_byte`` is where replacement begins."""

    start_byte: int
    prefix: str
    complete_files: bool = False
    complete_block: bool = False
    complete_alias: bool = False
    target_path: str = ""
    target_anchor: str = ""


def _text(data: bytes) -> str:
    return data.decode("utf-8", errors="replace")


def parse_wikilink_cursor_context(line: str, byte_off: int) -> Optional[WikiLinkCursorContext]:
    """Return the wiki-link context at ``byte_off`` in ``line``, or None when
    the cursor is not inside an unclosed wiki link."""
    if byte_off < 0:
        raise ValueError(f"negative byte offset: {byte_off}")
    data = line.encode("utf-8", errors="surrogatepass")
    before = data[: min(byte_off, len(data))]

    open_at = -1
    for m in _BRACKETS.finditer(before):
        open_at = m.end() if m.group() == b"[[" else -1
    if open_at < 0:
        return None

    inner = before[open_at:]

    if b"|" in inner:
        raw_target, alias_prefix = inner.split(b"|", 1)
        target_part = _text(raw_target).strip()
        ctx = WikiLinkCursorContext(
            start_byte=open_at + len(raw_target) + 1,
            prefix=_text(alias_prefix),
            complete_alias=True,
            target_path=target_part,
        )
        hash_at = target_part.rfind("#")
        if hash_at >= 0:
            ctx.target_path = target_part[:hash_at].strip()
            ctx.target_anchor = target_part[hash_at + 1 :]
            if ctx.target_anchor.startswith("^"):
                return None
        return ctx

    if inner.startswith(b"#"):
        after = inner[1:]
        if after.startswith(b"^"):
            return WikiLinkCursorContext(
                start_byte=open_at + 2,
                prefix=_text(after[1:]),
                complete_block=True,
            )
        last_hash = after.rfind(b"#")
        if last_hash >= 0:
            return WikiLinkCursorContext(
                start_byte=open_at + 2 + last_hash,
                prefix=_text(after[last_hash + 1 :]),
            )
        return WikiLinkCursorContext(start_byte=open_at + 1, prefix=_text(after))

    hash_at = inner.rfind(b"#")
    if hash_at >= 0:
        prefix = inner[hash_at + 1 :]
        start_byte = open_at + hash_at + 1
        complete_block = prefix.startswith(b"^")
        if complete_block:
            prefix = prefix[1:]
            start_byte += 1
        return WikiLinkCursorContext(
            start_byte=start_byte,
            prefix=_text(prefix),
            complete_block=complete_block,
            target_path=_text(inner[:hash_at]).strip(),
        )

    return WikiLinkCursorContext(start_byte=open_at, prefix=_text(inner), complete_files=True)