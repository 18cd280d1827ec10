"""workspace/executeCommand: note creation, templates and reference display."""

from __future__ import annotations

import enum
import logging
import os
import threading
from datetime import datetime
from typing import Any, Optional, Sequence

from . import template
from .index import Index, path_to_uri, uri_to_path
from .settings import Settings

SHOW_REFERENCES_TIMEOUT = 2.0
MESSAGE_TYPE_INFO = 3


class Command(str, enum.Enum):
    """Commands the server executes."""

    NEW = "obsidian.new"
    NEW_FROM_TEMPLATE = "obsidian.newFromTemplate"
    INSERT_TEMPLATE = "obsidian.insertTemplate"
    LIST_TEMPLATES = "obsidian.listTemplates"
    CREATE_NOTE = "obsidian.createNote"
    SHOW_REFERENCES = "obsidian.showReferences"


class CommandError(Exception):
    """A command could not be carried out."""


def ensure_md_ext(path: str) -> str:
    """``path`` with a ``.md`` extension appended unless it has one."""
    return path if path.lower().endswith(".md") else path + ".md"


def _untitled_name() -> str:
    return f"Untitled {datetime.now().strftime('%Y-%m-%d %H-%M-%S')}.md"


def _arg_string(args: Sequence[Any], i: int) -> str:
    if i < len(args) and isinstance(args[i], str):
        return args[i]
    return ""


def _to_int(value: Any) -> Optional[int]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return int(value)


def _arg_position(args: Sequence[Any], i: int) -> Optional[dict]:
    if i >= len(args) or not isinstance(args[i], dict):
        return None
    pos = args[i]
    return {
        "line": _to_int(pos.get("line")) or 0,
        "character": _to_int(pos.get("character")) or 0,
    }


def _strict_position(value: Any) -> Optional[dict]:
    if not isinstance(value, dict):
        return None
    line = _to_int(value.get("line"))
    character = _to_int(value.get("character"))
    if line is None or character is None:
        return None
    return {"line": line, "character": character}


def _arg_locations(args: Sequence[Any], i: int) -> list[dict]:
    if i >= len(args) or not isinstance(args[i], list):
        return []
    locations = []
    for item in args[i]:
        if not isinstance(item, dict):
            continue
        uri = item.get("uri")
        rng = item.get("range")
        if not isinstance(uri, str) or not uri or not isinstance(rng, dict):
            continue
        start = _strict_position(rng.get("start"))
        end = _strict_position(rng.get("end"))
        if start is None or end is None:
            continue
        locations.append({"uri": uri, "range": {"start": start, "end": end}})
    return locations


class CommandExecutor:
    """Runs the server's commands against a vault index."""

    def __init__(self, index: Optional[Index], settings: Settings, conn, log=None) -> None:
        self.index = index
        self.settings = settings
        self.conn = conn
        self.log = log if log is not None else logging.getLogger(__name__)

    def execute(self, command: str, arguments: Optional[Sequence[Any]] = None) -> dict:
        """Run ``command`` with ``arguments``; raises CommandError on failure."""
        if self.index is None:
            raise CommandError("no vault: open a workspace first")
        args = list(arguments or [])
        try:
            cmd = Command(command)
        except ValueError:
            raise CommandError(f"unknown command: {command}") from None
        template_dir = os.path.join(self.index.root(), self.settings.template_path())

        if cmd is Command.NEW:
            target = ensure_md_ext(_arg_string(args, 0) or _untitled_name())
            return self._create_from_template(template_dir, template.DEFAULT_NAME, target)
        if cmd is Command.NEW_FROM_TEMPLATE:
            name = _arg_string(args, 0)
            if not name:
                raise CommandError(
                    "obsidian.newFromTemplate requires template name as first argument"
                )
            target = ensure_md_ext(_arg_string(args, 1) or _untitled_name())
            return self._create_from_template(template_dir, name, target)
        if cmd is Command.INSERT_TEMPLATE:
            return self._insert_template(template_dir, args)
        if cmd is Command.LIST_TEMPLATES:
            try:
                names = template.list_names(template_dir)
            except OSError as exc:
                raise CommandError(f"list templates: {exc}") from exc
            return {"templates": names}
        if cmd is Command.CREATE_NOTE:
            target = _arg_string(args, 0)
            if not target:
                raise CommandError("obsidian.createNote requires target name as first argument")
            return self._create_from_template(
                template_dir, template.DEFAULT_NAME, ensure_md_ext(target)
            )
        return self._show_references(args)

    def _load(self, template_dir: str, name: str) -> template.Template:
        try:
            return template.load(template_dir, name)
        except OSError as exc:
            raise CommandError(f"load template {name}: {exc}") from exc

    def _create_from_template(self, template_dir: str, name: str, target_path: str) -> dict:
        if self.settings.should_ignore(target_path):
            raise CommandError(f"path is ignored: {target_path}")
        root = self.index.root()
        path = os.path.normpath(os.path.join(root, target_path.lstrip("/\\")))
        try:
            os.makedirs(os.path.dirname(path), exist_ok=True)
        except OSError as exc:
            raise CommandError(f"create directory: {exc}") from exc
        if os.path.exists(path):
            raise CommandError(f"file already exists: {target_path}")

        tmpl = self._load(template_dir, name)
        title = os.path.basename(target_path).removesuffix(".md")
        content = tmpl.execute(template.new_vars(title))
        try:
            with open(path, "w", encoding="utf-8", newline="") as f:
                f.write(content)
        except OSError as exc:
            raise CommandError(f"write file: {exc}") from exc

        self.index.add(target_path, content)
        self.log.info("created note path=%s template=%s", target_path, name)
        return {"uri": path_to_uri(path)}

    def _insert_template(self, template_dir: str, args: list) -> dict:
        name = _arg_string(args, 0)
        if not name:
            raise CommandError("obsidian.insertTemplate requires template name as first argument")
        doc_uri = _arg_string(args, 1)
        if not doc_uri:
            raise CommandError(
                "obsidian.insertTemplate requires document URI as second argument"
            )
        pos = _arg_position(args, 2)
        if pos is None:
            raise CommandError(
                "obsidian.insertTemplate requires position {line, character} as third argument"
            )

        tmpl = self._load(template_dir, name)
        try:
            full_path = uri_to_path(doc_uri)
        except ValueError as exc:
            raise CommandError(str(exc)) from exc
        title = os.path.basename(full_path).removesuffix(".md") or "Untitled"
        content = tmpl.execute(template.new_vars(title))

        if self.conn is None:
            raise CommandError("apply edit: no client connection")
        edit = {
            "changes": {
                doc_uri: [{"range": {"start": dict(pos), "end": dict(pos)}, "newText": content}]
            }
        }
        try:
            result = self.conn.call("workspace/applyEdit", {"edit": edit})
        except Exception as exc:
            raise CommandError(f"apply edit: {exc}") from exc
        result = result if isinstance(result, dict) else {}
        applied = bool(result.get("applied", False))
        reason = result.get("failureReason") or ""
        if not applied and reason:
            raise CommandError(f"edit not applied: {reason}")

        self.log.info("inserted template template=%s uri=%s", name, doc_uri)
        return {"applied": applied}

    def _show_references(self, args: list) -> dict:
        refs = _arg_locations(args, 2)
        if not refs:
            raise CommandError("obsidian.showReferences requires locations as third argument")
        first = refs[0]
        if self.conn is not None:
            threading.Thread(
                target=self._open_first_reference, args=(first, len(refs)), daemon=True
            ).start()
        return {"shown": first["uri"], "count": len(refs)}

    def _open_first_reference(self, first: dict, total: int) -> None:
        params = {"uri": first["uri"], "takeFocus": True, "selection": first["range"]}
        try:
            self.conn.call("window/showDocument", params, SHOW_REFERENCES_TIMEOUT)
        except Exception as exc:
            self.log.debug("show document failed uri=%s err=%s", first["uri"], exc)
            return
        if total <= 1:
            return
        try:
            self.conn.notify(
                "window/showMessage",
                {
                    "type": MESSAGE_TYPE_INFO,
                    "message": f"{total} references found; opened the first result",
                },
            )
        except Exception as exc:
            self.log.debug("show references message failed count=%d err=%s", total, exc)