"""Document formatting: a pipeline of operations producing LSP text edits."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional, Sequence

from .position import Encoder
from .template import generate_id

_UPDATED_AT_FORMAT = "%Y-%m-%d %H:%M:%S"


@dataclass
class FormatContext:
    """What format operations know about the document."""

    path: str = ""
    title: str = ""
    enc: Encoder = field(default_factory=Encoder)


FormatOp = Callable[[str, FormatContext], "tuple[Optional[dict], str]"]


def _split(content: str) -> Optional[tuple[str, str]]:
    if not content.startswith("---\n"):
        return None
    rest = content[4:]
    end = rest.find("\n---")
    if end < 0:
        return None
    return rest[:end], rest[end + 4 :]


def _has_key(frontmatter: str, key: str) -> bool:
    prefix = key + ":"
    return any(line.strip().startswith(prefix) for line in frontmatter.split("\n"))


def _replace_key_value(frontmatter: str, key: str, value: str) -> str:
    prefix = key + ":"
    lines = frontmatter.split("\n")
    out = [key + ": " + value if line.strip().startswith(prefix) else line for line in lines]
    return "\n".join(out)


def ensure_frontmatter_defaults(content: str, title: str) -> str:
    """Ensure frontmatter with id, title, createdAt and updatedAt.

    Missing keys are added; updatedAt is always refreshed.
    """
    now = datetime.now()
    date = now.strftime("%Y-%m-%d")
    updated_at = now.strftime(_UPDATED_AT_FORMAT)
    if not content.startswith("---\n"):
        block = (
            f"---\nid: {generate_id()}\ntitle: {title}\ncreatedAt: {date}\n"
            f"updatedAt: {updated_at}\n---"
        )
        return block + "\n" + content
    parts = _split(content)
    if parts is None:
        return content
    fm, after = parts
    original = fm
    inject = []
    if not _has_key(fm, "id"):
        inject.append("id: " + generate_id())
    if not _has_key(fm, "title"):
        inject.append("title: " + title)
    if not _has_key(fm, "createdAt"):
        inject.append("createdAt: " + date)
    if not _has_key(fm, "updatedAt"):
        inject.append("updatedAt: " + updated_at)
    else:
        fm = _replace_key_value(fm, "updatedAt", updated_at)
    if not inject and fm == original:
        return content
    new_fm = "\n".join(inject)
    if new_fm:
        new_fm += "\n"
    new_fm += fm
    return content[:4] + new_fm + "\n---" + after


def _frontmatter_text(content: str) -> str:
    parts = _split(content)
    if parts is None:
        return ""
    return content[: 4 + len(parts[0]) + 4]


def _frontmatter_end(content: str, enc: Encoder) -> tuple[int, int]:
    fm = _frontmatter_text(content)
    if not fm:
        return 0, 0
    lines = fm.split("\n")
    last = lines[-1]
    return len(lines) - 1, enc.byte_to_char(last, len(last.encode("utf-8")))


def _position(line: int, character: int) -> dict:
    return {"line": line, "character": character}


def frontmatter_op(content: str, ctx: FormatContext) -> tuple[Optional[dict], str]:
    """Fill in default frontmatter; the edit covers the frontmatter only."""
    formatted = ensure_frontmatter_defaults(content, ctx.title)
    if formatted == content:
        return None, content
    end_line, end_char = _frontmatter_end(content, ctx.enc)
    new_text = _frontmatter_text(formatted)
    if end_line == 0 and end_char == 0:
        new_text += "\n"
    edit = {
        "range": {"start": _position(0, 0), "end": _position(end_line, end_char)},
        "newText": new_text,
    }
    return edit, formatted


DEFAULT_OPS: tuple[FormatOp, ...] = (frontmatter_op,)


def run(content: str, ctx: FormatContext, ops: Sequence[FormatOp] = DEFAULT_OPS) -> list[dict]:
    """Run ``ops`` in order, each on the previous result, and collect their edits."""
    edits = []
    for op in ops:
        edit, content = op(content, ctx)
        if edit is not None:
            edits.append(edit)
    return edits