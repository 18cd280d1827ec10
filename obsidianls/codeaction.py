"""Quick fixes: create the note a broken link points to."""

from __future__ import annotations

from typing import Optional

from .commands import Command
from .diagnostics import DIAG_CODE_BROKEN_LINK
from .index import Index

QUICK_FIX = "quickfix"
_MESSAGE_PREFIX = "Unresolved wikilink target:"


def extract_broken_link_target(diagnostic: dict) -> str:
    """The missing target of a broken-link diagnostic, from its data or message."""
    data = diagnostic.get("data")
    if isinstance(data, dict) and isinstance(data.get("target"), str):
        return data["target"].strip()
    message = str(diagnostic.get("message") or "").strip()
    if not message.startswith(_MESSAGE_PREFIX):
        return ""
    return message[len(_MESSAGE_PREFIX) :].strip()


def resolve_code_action(
    idx: Optional[Index], rel_path: str, encoding: str, params: Optional[dict]
) -> Optional[list[dict]]:
    """One "Create note" quick fix per distinct broken-link target."""
    if idx is None or params is None:
        return None
    diagnostics = (params.get("context") or {}).get("diagnostics") or []
    actions = []
    seen: set[str] = set()
    for diag in diagnostics:
        if not isinstance(diag, dict) or str(diag.get("code")) != DIAG_CODE_BROKEN_LINK:
            continue
        target = extract_broken_link_target(diag)
        if not target or target in seen:
            continue
        seen.add(target)
        actions.append(
            {
                "title": f"Create note '{target}'",
                "kind": QUICK_FIX,
                "diagnostics": [diag],
                "command": {
                    "title": "Create note",
                    "command": Command.CREATE_NOTE.value,
                    "arguments": [target],
                },
            }
        )
    return actions