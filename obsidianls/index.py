"""Vault index: parsed notes by path, by frontmatter id and by basename.

Paths are always relative to the vault root and use forward slashes.
"""

from __future__ import annotations

import logging
import os
import threading
import urllib.parse
import urllib.request
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Union

from .parse import Doc, parse

REPARSE_DELAY = 0.1

IgnoreFunc = Callable[[str], bool]


@dataclass(frozen=True)
class PathDoc:
    """A snapshot entry pairing a relative path with its parsed note."""

    path: str
    doc: Optional[Doc]


def path_to_uri(path: Union[str, os.PathLike]) -> str:
    """Return the ``file://`` URI of ``path`` (made absolute first)."""
    return Path(os.path.abspath(path)).as_uri()


def uri_to_path(uri: str) -> str:
    """Return the filesystem path named by a ``file://`` URI."""
    parts = urllib.parse.urlsplit(uri)
    if parts.scheme != "file":
        raise ValueError(f"not a file URI: {uri!r}")
    return urllib.request.url2pathname(parts.path)


def _to_slash(path: str) -> str:
    if os.sep != "/":
        path = path.replace(os.sep, "/")
    return path


def _base(path: str) -> str:
    if not path:
        return "."
    stripped = path.rstrip("/")
    if not stripped:
        return "/"
    return stripped.rsplit("/", 1)[-1]


def _basename_key(path: str) -> str:
    base = _base(_to_slash(path)).lower()
    return base[:-3] if base.endswith(".md") else base


def _decode(content: Union[str, bytes]) -> str:
    if isinstance(content, (bytes, bytearray)):
        return bytes(content).decode("utf-8", errors="replace")
    return content


def _collect_md_files(root: str, ignore: Optional[IgnoreFunc]) -> list[str]:
    """Walk ``root`` in lexical order and return relative paths of ``.md`` files.

    Errors while reading a directory propagate as OSError.
    """
    paths: list[str] = []

    def walk(directory: str) -> None:
        with os.scandir(directory) as it:
            entries = sorted(it, key=lambda e: e.name)
        for entry in entries:
            if entry.is_dir(follow_symlinks=False):
                walk(entry.path)
                continue
            if not entry.name.lower().endswith(".md"):
                continue
            rel = _to_slash(os.path.relpath(entry.path, root))
            if ignore is not None and ignore(rel):
                continue
            paths.append(rel)

    walk(root)
    return paths


class Index:
    """Thread-safe index of the notes in a vault."""

    def __init__(
        self,
        root: Union[str, os.PathLike],
        log: Optional[logging.Logger] = None,
        ignore: Optional[IgnoreFunc] = None,
    ) -> None:
        self._root = os.path.abspath(root)
        self._log = log if log is not None else logging.getLogger(__name__)
        self._ignore = ignore
        self._lock = threading.RLock()
        self._by_path: dict[str, Doc] = {}
        self._by_id: dict[str, str] = {}
        self._by_basename: dict[str, list[str]] = {}
        self._content_by_path: dict[str, str] = {}
        self._timers_lock = threading.Lock()
        self._timers: dict[str, threading.Timer] = {}

    def root(self) -> str:
        """The absolute vault root."""
        return self._root

    def _index_file(self, rel: str) -> Doc:
        self._log.info("index %s", rel)
        content = Path(self._root, rel).read_bytes()
        return parse(content, rel)

    def index_all(self) -> None:
        """Scan the vault and replace the whole index with its ``.md`` files."""
        paths = _collect_md_files(self._root, self._ignore)
        workers = (os.cpu_count() or 1) * 2
        with ThreadPoolExecutor(max_workers=workers) as pool:
            docs = list(pool.map(self._index_file, paths))

        by_path: dict[str, Doc] = {}
        by_id: dict[str, str] = {}
        by_basename: dict[str, list[str]] = {}
        for rel, doc in zip(paths, docs):
            by_path[rel] = doc
            if doc.id:
                by_id[doc.id] = rel
            by_basename.setdefault(_basename_key(rel), []).append(rel)

        with self._lock:
            self._by_path = by_path
            self._by_id = by_id
            self._by_basename = by_basename
        self._log.info("index complete root=%s files=%d", self._root, len(by_path))

    def _add_doc(self, path: str, doc: Optional[Doc]) -> None:
        self._by_path[path] = doc
        if doc is not None and doc.id:
            self._by_id[doc.id] = path
        key = _basename_key(path)
        if key:
            self._by_basename.setdefault(key, []).append(path)

    def _remove_doc(self, path: str) -> None:
        if path not in self._by_path:
            return
        old = self._by_path.pop(path)
        if old is not None and old.id:
            self._by_id.pop(old.id, None)
        key = _basename_key(path)
        candidates = self._by_basename.get(key, [])
        if path in candidates:
            candidates.remove(path)
            if not candidates:
                del self._by_basename[key]

    def _replace(self, path: str, doc: Doc) -> None:
        with self._lock:
            self._remove_doc(path)
            self._add_doc(path, doc)

    def add(self, path: str, content: Union[str, bytes]) -> None:
        """Index a single new file from its content."""
        path = _to_slash(path)
        self._replace(path, parse(content, path))

    def update(self, path: str, content: Union[str, bytes]) -> None:
        """Re-parse a changed file from its content."""
        path = _to_slash(path)
        self._replace(path, parse(content, path))

    def remove(self, path: str) -> None:
        """Drop a file from the index, together with any open content."""
        path = _to_slash(path)
        with self._lock:
            self._remove_doc(path)
            self._content_by_path.pop(path, None)

    def get_by_path(self, path: str) -> Optional[Doc]:
        """The note at ``path``, or None."""
        path = _to_slash(path)
        with self._lock:
            return self._by_path.get(path)

    def get_by_id(self, id: str) -> str:
        """The path of the note with frontmatter ``id``, or an empty string."""
        with self._lock:
            return self._by_id.get(id, "")

    def resolve_link_target_to_path(self, target: str) -> str:
        """Resolve a link target (id, path, path without ``.md`` or basename).

        Returns an empty string when nothing matches.
        """
        with self._lock:
            found = self._by_id.get(target, "")
            if found:
                return found
            if target in self._by_path:
                return target
            if not target.lower().endswith(".md") and target + ".md" in self._by_path:
                return target + ".md"
            key = _basename_key(target)
            if not key:
                return ""
            candidates = self._by_basename.get(key)
            if not candidates:
                return ""
            return min(candidates, key=lambda p: (len(p.encode("utf-8")), p))

    def list_paths(self) -> list[str]:
        """All indexed paths."""
        with self._lock:
            return list(self._by_path)

    def snapshot_paths(self) -> list[PathDoc]:
        """A snapshot of all indexed (path, doc) pairs."""
        with self._lock:
            return [PathDoc(p, d) for p, d in self._by_path.items()]

    def set_content(self, path: str, content: Union[str, bytes]) -> None:
        """Store unsaved content of an open file; re-parsing is debounced."""
        path = _to_slash(path)
        with self._lock:
            self._content_by_path[path] = _decode(content)
        self._schedule_reparse(path)

    def clear_content(self, path: str) -> None:
        """Forget open content and revert to disk; drop the note if it is gone."""
        path = _to_slash(path)
        self._cancel_pending_reparse(path)
        with self._lock:
            self._content_by_path.pop(path, None)
            try:
                content = Path(self._root, path).read_bytes()
            except OSError:
                self._remove_doc(path)
                return
            self._remove_doc(path)
            self._add_doc(path, parse(content, path))

    def _schedule_reparse(self, path: str) -> None:
        def fire() -> None:
            with self._timers_lock:
                if self._timers.get(path) is timer:
                    del self._timers[path]
            self._reparse_from_content(path)

        timer = threading.Timer(REPARSE_DELAY, fire)
        timer.daemon = True
        with self._timers_lock:
            old = self._timers.get(path)
            if old is not None:
                old.cancel()
            self._timers[path] = timer
            timer.start()

    def _cancel_pending_reparse(self, path: str) -> None:
        with self._timers_lock:
            timer = self._timers.pop(path, None)
        if timer is not None:
            timer.cancel()

    def _reparse_from_content(self, path: str) -> None:
        with self._lock:
            content = self._content_by_path.get(path)
        if content is None:
            return
        doc = parse(content, path)
        with self._lock:
            if path not in self._content_by_path:
                return
            self._remove_doc(path)
            self._add_doc(path, doc)

    def flush_reparse(self, path: str) -> None:
        """Re-parse the open content of ``path`` now instead of after the delay."""
        path = _to_slash(path)
        self._cancel_pending_reparse(path)
        self._reparse_from_content(path)

    def get_content(self, path: str) -> str:
        """Raw content: open-file content if any, else read from disk.

        Raises OSError when the file cannot be read.
        """
        path = _to_slash(path)
        with self._lock:
            content = self._content_by_path.get(path)
        if content is not None:
            return content
        return Path(self._root, path).read_bytes().decode("utf-8", errors="replace")

    def get_lines(self, path: str) -> list[str]:
        """The content of ``path`` split into lines."""
        return self.get_content(path).split("\n")

    def has_open_content(self, path: str) -> bool:
        """Whether ``path`` has unsaved open content."""
        path = _to_slash(path)
        with self._lock:
            return path in self._content_by_path