"""The language server: request and notification handlers for an Obsidian vault."""

from __future__ import annotations

import logging
import os
import threading
from typing import Any, Callable, Optional

from .codeaction import resolve_code_action
from .codelens import resolve_code_lens
from .commands import Command, CommandExecutor
from .completion import resolve_completion
from .definition import resolve_definition
from .diagnostics import clear_diagnostics, diagnose_file
from .documentsymbol import resolve_document_symbol
from .format import FormatContext, frontmatter_op, run
from .index import Index, uri_to_path
from .position import Encoder
from .references import resolve_references
from .rpc import METHOD_NOT_FOUND, RpcError
from .settings import Settings
from .workspacesymbol import resolve_workspace_symbol

SERVER_NAME = "obsidian-lsp"
SERVER_VERSION = "0.1.0"

TEXT_DOCUMENT_SYNC_FULL = 1

FILE_CREATED = 1
FILE_CHANGED = 2
FILE_DELETED = 3

WATCHER_REGISTRATION_ID = "obsidian-watched-files"


def extract_position_encoding(params: Optional[dict]) -> str:
    """The position encoding to use: ``utf-8`` if the client offers it, else ``utf-16``.

    ``initializationOptions.positionEncoding`` takes precedence over
    ``capabilities.general.positionEncodings``.
    """
    if not isinstance(params, dict):
        return "utf-16"
    options = params.get("initializationOptions")
    if isinstance(options, dict):
        chosen = options.get("positionEncoding")
        if chosen in ("utf-8", "utf-16"):
            return chosen
    capabilities = params.get("capabilities")
    general = capabilities.get("general") if isinstance(capabilities, dict) else None
    encodings = general.get("positionEncodings") if isinstance(general, dict) else None
    if isinstance(encodings, list) and "utf-8" in encodings:
        return "utf-8"
    return "utf-16"


def _relative(full_path: str, root: str) -> str:
    try:
        rel = os.path.relpath(full_path, root)
    except ValueError:
        return ""
    rel = rel.replace(os.sep, "/")
    if rel.startswith(".."):
        return ""
    return rel


def uri_to_rel_path(doc_uri: str, root: str) -> str:
    """The path of ``doc_uri`` relative to ``root``; empty when outside it."""
    try:
        full_path = uri_to_path(doc_uri)
    except ValueError:
        return ""
    return _relative(full_path, root)


def _is_full_change(change: dict) -> bool:
    rng = change.get("range")
    if not rng:
        return True
    start = rng.get("start") or {}
    end = rng.get("end") or {}
    return not any(
        (start.get("line"), start.get("character"), end.get("line"), end.get("character"))
    )


def _char_index(line: str, byte_off: int) -> int:
    """Index into ``line`` of the character at UTF-8 byte offset ``byte_off``."""
    data = line.encode("utf-8", errors="surrogatepass")
    return len(data[: max(byte_off, 0)].decode("utf-8", errors="ignore"))


def apply_content_changes(content: str, changes: list[dict], enc: Encoder) -> str:
    """Apply LSP content changes to ``content``; a change without a range replaces all."""
    for change in changes:
        text = change.get("text", "")
        if _is_full_change(change):
            content = text
            continue
        rng = change["range"]
        lines = content.split("\n")
        start_line = int(rng["start"].get("line", 0))
        end_line = int(rng["end"].get("line", 0))
        start_char = int(rng["start"].get("character", 0))
        end_char = int(rng["end"].get("character", 0))
        if not 0 <= start_line < len(lines):
            continue
        end_line = min(end_line, len(lines) - 1)

        before = "\n".join(lines[:start_line])
        if start_line > 0:
            before += "\n"
        first = lines[start_line]
        before += first[: _char_index(first, enc.char_to_byte(first, start_char))]

        last = lines[end_line]
        after = last[_char_index(last, enc.char_to_byte(last, end_char)) :]
        if end_line + 1 < len(lines):
            after += "\n" + "\n".join(lines[end_line + 1 :])
        content = before + text + after
    return content


def _extract_obsidian_section(settings: Any) -> Optional[dict]:
    if not isinstance(settings, dict):
        return None
    section = settings.get("obsidian")
    if isinstance(section, dict):
        return section
    return settings


def _document_uri(params: Optional[dict]) -> str:
    if not isinstance(params, dict):
        return ""
    document = params.get("textDocument") or {}
    return document.get("uri") or ""


class Handler:
    """Handles LSP requests and notifications for one vault."""

    def __init__(self, conn=None, log: Optional[logging.Logger] = None) -> None:
        self.conn = conn
        self.log = log if log is not None else logging.getLogger(__name__)
        self.settings = Settings()
        self.index: Optional[Index] = None
        self.position_encoding = "utf-16"
        self._open_files: set[str] = set()
        self._open_lock = threading.Lock()
        self._background: Optional[threading.Thread] = None
        self._methods: dict[str, Callable[[Any], Any]] = {
            "initialize": self.initialize,
            "initialized": self.initialized,
            "shutdown": lambda _params: self.shutdown(),
            "exit": lambda _params: self.exit(),
            "textDocument/definition": self.definition,
            "textDocument/references": self.references,
            "textDocument/completion": self.completion,
            "textDocument/codeLens": self.code_lens,
            "textDocument/codeAction": self.code_action,
            "textDocument/formatting": self.formatting,
            "textDocument/documentSymbol": self.document_symbol,
            "workspace/symbol": self.symbols,
            "workspace/executeCommand": self.execute_command,
            "workspace/didChangeConfiguration": self.did_change_configuration,
            "textDocument/didOpen": self.did_open,
            "textDocument/didChange": self.did_change,
            "textDocument/didClose": self.did_close,
            "workspace/didChangeWatchedFiles": self.did_change_watched_files,
        }

    def handle(self, method: str, params: Any) -> Any:
        """Dispatch one message; raises RpcError for an unknown method."""
        handler = self._methods.get(method)
        if handler is None:
            raise RpcError(METHOD_NOT_FOUND, f"method not found: {method}")
        return handler(params)

    # lifecycle

    def _resolve_vault_root(self, params: dict) -> str:
        folders = params.get("workspaceFolders") or []
        candidates = []
        if folders and isinstance(folders[0], dict):
            candidates.append(folders[0].get("uri") or "")
        else:
            candidates.append(params.get("rootUri") or "")
        for candidate in candidates:
            if not candidate:
                continue
            try:
                return uri_to_path(candidate)
            except ValueError:
                return ""
        return ""

    def initialize(self, params: Optional[dict]) -> dict:
        """Open the vault named by the workspace and return server capabilities."""
        params = params if isinstance(params, dict) else {}
        root = self._resolve_vault_root(params)
        if root:
            self.index = Index(root, self.log, lambda p: self.settings.should_ignore(p))
        else:
            self.log.warning(
                "no vault root; skip indexing workspaceFolders=%d rootURI=%s",
                len(params.get("workspaceFolders") or []),
                params.get("rootUri") or "",
            )
        self.position_encoding = extract_position_encoding(params)
        return {
            "capabilities": {
                "textDocumentSync": {"openClose": True, "change": TEXT_DOCUMENT_SYNC_FULL},
                "definitionProvider": True,
                "referencesProvider": True,
                "documentSymbolProvider": True,
                "documentFormattingProvider": True,
                "codeLensProvider": {},
                "completionProvider": {"triggerCharacters": ["[", "#", "|"]},
                "codeActionProvider": True,
                "workspaceSymbolProvider": True,
                "executeCommandProvider": {"commands": [c.value for c in Command]},
            },
            "serverInfo": {"name": SERVER_NAME, "version": SERVER_VERSION},
        }

    def initialized(self, params: Any = None) -> None:
        """Fetch settings, register file watchers and index the vault in the background.

        The work runs on its own thread: waiting for client responses on the
        serving thread would block the replies from ever being read.
        """
        if self.index is None:
            return None
        self._background = threading.Thread(target=self._start_up, daemon=True)
        self._background.start()
        return None

    def _start_up(self) -> None:
        self._fetch_settings()
        self._register_file_watchers()
        try:
            self.index.index_all()
        except OSError as exc:
            self.log.error("index all failed: %s", exc)

    def shutdown(self) -> None:
        """Acknowledge the client's shutdown request."""
        self.log.debug("shutdown requested")
        return None

    def exit(self) -> None:
        """Close the connection so the server stops."""
        self.log.debug("exit requested")
        if self.conn is not None:
            self.conn.close()
        return None

    def _fetch_settings(self) -> None:
        if self.conn is None:
            return
        try:
            result = self.conn.call(
                "workspace/configuration", {"items": [{"section": "obsidian"}]}
            )
        except Exception as exc:
            self.log.debug("workspace/configuration failed: %s", exc)
            return
        if isinstance(result, list) and result and result[0] is not None:
            self._apply_settings(result[0])

    def _register_file_watchers(self) -> None:
        if self.conn is None:
            return
        params = {
            "registrations": [
                {
                    "id": WATCHER_REGISTRATION_ID,
                    "method": "workspace/didChangeWatchedFiles",
                    "registerOptions": {"watchers": [{"globPattern": "**/*.md"}]},
                }
            ]
        }
        try:
            self.conn.call("client/registerCapability", params)
        except Exception as exc:
            self.log.debug("register file watchers failed: %s", exc)

    def _apply_settings(self, settings: Any) -> None:
        section = _extract_obsidian_section(settings)
        if section is None:
            return
        ignores = section.get("ignores")
        if isinstance(ignores, list):
            self.settings.set_ignore_patterns([p for p in ignores if isinstance(p, str)])
        template_path = section.get("templatePath")
        if isinstance(template_path, str):
            self.settings.set_template_path(template_path)

    # requests

    def _rel(self, params: Any) -> str:
        if self.index is None:
            return ""
        uri = _document_uri(params)
        if not uri:
            return ""
        return uri_to_rel_path(uri, self.index.root())

    def definition(self, params: Optional[dict]) -> Optional[list[dict]]:
        """Location of the link target under the cursor."""
        rel = self._rel(params)
        if not rel:
            return None
        return resolve_definition(self.index, rel, self.position_encoding, params)

    def references(self, params: Optional[dict]) -> Optional[list[dict]]:
        """Backlinks to the current note or to the heading under the cursor."""
        rel = self._rel(params)
        if not rel:
            return None
        return resolve_references(self.index, rel, self.position_encoding, params)

    def completion(self, params: Optional[dict]) -> Optional[dict]:
        """Wiki-link completions at the cursor."""
        rel = self._rel(params)
        if not rel:
            return None
        return resolve_completion(self.index, rel, self.position_encoding, params)

    def code_lens(self, params: Optional[dict]) -> Optional[list[dict]]:
        """Reference-count lenses for the current note."""
        rel = self._rel(params)
        if not rel:
            return None
        return resolve_code_lens(self.index, rel, self.position_encoding, params)

    def code_action(self, params: Optional[dict]) -> Optional[list[dict]]:
        """Quick fixes for the diagnostics in the request."""
        rel = self._rel(params)
        if not rel:
            return None
        return resolve_code_action(self.index, rel, self.position_encoding, params)

    def formatting(self, params: Optional[dict]) -> Optional[list]:
        """Edits that add or refresh the note's frontmatter."""
        rel = self._rel(params)
        if not rel or not rel.lower().endswith(".md"):
            return None
        if self.settings.should_ignore(rel):
            return None
        try:
            content = self.index.get_content(rel)
        except OSError:
            return None
        title = rel.rsplit("/", 1)[-1].removesuffix(".md")
        ctx = FormatContext(path=rel, title=title, enc=Encoder(self.position_encoding))
        edits = run(content, ctx, [frontmatter_op])
        return list(edits) if edits else None

    def document_symbol(self, params: Optional[dict]) -> Optional[list[dict]]:
        """The heading outline of the current note."""
        rel = self._rel(params)
        if not rel:
            return None
        symbols = resolve_document_symbol(self.index, rel, self.position_encoding, params)
        return symbols or None

    def symbols(self, params: Optional[dict]) -> Optional[list[dict]]:
        """Workspace symbols for a tag and title query."""
        if self.index is None or params is None:
            return None
        return resolve_workspace_symbol(self.index, self.position_encoding, params)

    def execute_command(self, params: Optional[dict]) -> dict:
        """Run a server command; raises CommandError when it fails."""
        params = params if isinstance(params, dict) else {}
        executor = CommandExecutor(self.index, self.settings, self.conn, self.log)
        return executor.execute(params.get("command") or "", params.get("arguments"))

    # notifications

    def did_change_configuration(self, params: Optional[dict]) -> None:
        """Apply changed workspace settings."""
        if isinstance(params, dict):
            self._apply_settings(params.get("settings"))
        return None

    def _diagnose_async(self, rel: str, content: str) -> None:
        threading.Thread(
            target=diagnose_file,
            args=(self.conn, self.index, rel, self.position_encoding, content),
            daemon=True,
        ).start()

    def did_open(self, params: Optional[dict]) -> None:
        """Track an opened document and its unsaved content."""
        rel = self._rel(params)
        if not rel:
            return None
        text = (params.get("textDocument") or {}).get("text") or ""
        self.index.set_content(rel, text)
        with self._open_lock:
            self._open_files.add(rel)
        self._diagnose_async(rel, text)
        return None

    def did_change(self, params: Optional[dict]) -> None:
        """Update the unsaved content of a document from full or incremental changes."""
        if self.index is None or not isinstance(params, dict):
            return None
        changes = params.get("contentChanges") or []
        if not changes:
            return None
        rel = self._rel(params)
        if not rel:
            return None
        if len(changes) == 1 and _is_full_change(changes[0]):
            new_content = changes[0].get("text", "")
        else:
            try:
                content = self.index.get_content(rel)
            except OSError:
                return None
            if not content:
                return None
            new_content = apply_content_changes(
                content, changes, Encoder(self.position_encoding)
            )
        self.index.set_content(rel, new_content)
        self._diagnose_async(rel, new_content)
        return None

    def did_close(self, params: Optional[dict]) -> None:
        """Revert a closed document to its content on disk."""
        rel = self._rel(params)
        if not rel:
            return None
        self.index.clear_content(rel)
        with self._open_lock:
            self._open_files.discard(rel)
        clear_diagnostics(self.conn, self.index, rel)
        return None

    def did_change_watched_files(self, params: Optional[dict]) -> None:
        """Update the index for created, changed and deleted notes.

        Changes to open documents are skipped so unsaved content is kept.
        """
        if self.index is None or not isinstance(params, dict):
            return None
        root = self.index.root()
        for event in params.get("changes") or []:
            if not isinstance(event, dict):
                continue
            try:
                full_path = uri_to_path(event.get("uri") or "")
            except ValueError:
                continue
            rel = _relative(full_path, root)
            if not rel or not rel.rsplit("/", 1)[-1].lower().endswith(".md"):
                continue
            if self.settings.should_ignore(rel):
                continue
            kind = event.get("type")
            if kind == FILE_CREATED:
                self._reload(rel, full_path, self.index.add)
            elif kind == FILE_CHANGED:
                if not self.index.has_open_content(rel):
                    self._reload(rel, full_path, self.index.update)
            elif kind == FILE_DELETED:
                self.index.remove(rel)
                self.log.debug("removed %s", rel)
        self._rediagnose_open_files()
        return None

    def _reload(self, rel: str, full_path: str, store: Callable[[str, bytes], None]) -> None:
        try:
            with open(full_path, "rb") as f:
                content = f.read()
        except OSError as exc:
            self.log.debug("read file failed path=%s err=%s", rel, exc)
            return
        store(rel, content)
        self.log.debug("indexed %s", rel)

    def _rediagnose_open_files(self) -> None:
        with self._open_lock:
            open_files = list(self._open_files)
        for rel in open_files:
            try:
                content = self.index.get_content(rel)
            except OSError:
                continue
            self._diagnose_async(rel, content)