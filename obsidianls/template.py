"""Note templates with Obsidian-style ``{{variable}}`` substitution."""

from __future__ import annotations

import os
import secrets
import time
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

DEFAULT_NAME = "default"

DEFAULT_TEMPLATE = """---
id: {{id}}
title: {{title}}
createdAt: {{date}}
---

# {{title}}
"""


@dataclass
class Vars:
    """Values for ``{{title}}``, ``{{date}}``, ``{{time}}`` and ``{{id}}``."""

    title: str
    date: str = ""
    time: str = ""
    id: str = ""

    def replace_all(self, content: str) -> str:
        """Replace the built-in variables in ``content``."""
        for name, value in (
            ("title", self.title),
            ("date", self.date),
            ("time", self.time),
            ("id", self.id),
        ):
            content = content.replace("{{" + name + "}}", value)
        return content


def generate_id() -> str:
    """Return a unique id of the form ``timestamp-XXXX``."""
    ts = int(time.time())
    letters = "".join(chr(ord("A") + b % 26) for b in secrets.token_bytes(4))
    return f"{ts}-{letters}"


def new_vars(title: str) -> Vars:
    """Vars for ``title`` with the current date and time and a fresh id."""
    now = datetime.now()
    return Vars(
        title=title,
        date=now.strftime("%Y-%m-%d"),
        time=now.strftime("%H:%M"),
        id=generate_id(),
    )


def _has_key(frontmatter: str, key: str) -> bool:
    prefix = key + ":"
    return any(line.strip().startswith(prefix) for line in frontmatter.split("\n"))


def _ensure_frontmatter_id(content: str, note_id: str) -> str:
    if not content.startswith("---\n"):
        return content
    rest = content[4:]
    end = rest.find("\n---")
    if end < 0:
        return content
    frontmatter, after = rest[:end], rest[end + 4 :]
    if _has_key(frontmatter, "id"):
        return content
    return content[:4] + "id: " + note_id + "\n" + frontmatter + "\n---" + after


@dataclass
class Template:
    """A loaded template body."""

    content: str
    path: str = ""

    def execute(self, vars: Vars) -> str:
        """Substitute ``vars`` and make sure the frontmatter carries an id."""
        return _ensure_frontmatter_id(vars.replace_all(self.content), vars.id)


def list_names(template_dir) -> list[str]:
    """Template names (file names without ``.md``) in ``template_dir``.

    A missing directory yields an empty list.
    """
    try:
        with os.scandir(template_dir) as it:
            entries = sorted(it, key=lambda e: e.name)
    except FileNotFoundError:
        return []
    return [
        e.name[:-3]
        for e in entries
        if not e.is_dir(follow_symlinks=False) and e.name.lower().endswith(".md")
    ]


def load(template_dir, name: str) -> Template:
    """Load ``template_dir/name.md``; the default template falls back to a built-in one."""
    if not name:
        name = DEFAULT_NAME
    path = Path(template_dir) / f"{name}.md"
    try:
        content = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        if name == DEFAULT_NAME:
            return Template(content=DEFAULT_TEMPLATE, path=str(path))
        raise
    return Template(content=content, path=str(path))