"""Server settings: ignore patterns and template directory."""

from __future__ import annotations

import os
import re
import threading
from typing import Iterable

_DEFAULT_TEMPLATE_PATH = ".templates"


class Settings:
    """Thread-safe server settings."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._ignore_patterns: list[re.Pattern] = []
        self._template_path = ""

    def set_template_path(self, path: str) -> None:
        """Set the template directory, relative to the vault root."""
        with self._lock:
            self._template_path = os.path.normpath(path) if path else _DEFAULT_TEMPLATE_PATH

    def template_path(self) -> str:
        """The template directory, ``.templates`` unless set."""
        with self._lock:
            return self._template_path or _DEFAULT_TEMPLATE_PATH

    def set_ignore_patterns(self, patterns: Iterable[str]) -> None:
        """Set ignore regexes; empty and invalid patterns are skipped."""
        compiled = []
        for pattern in patterns:
            if not pattern:
                continue
            try:
                compiled.append(re.compile(pattern))
            except re.error:
                continue
        with self._lock:
            self._ignore_patterns = compiled

    def ignore_patterns(self) -> list[re.Pattern]:
        """A copy of the compiled ignore patterns."""
        with self._lock:
            return list(self._ignore_patterns)

    def should_ignore(self, path: str) -> bool:
        """Whether ``path`` matches any ignore pattern."""
        return any(p.search(path) for p in self.ignore_patterns())