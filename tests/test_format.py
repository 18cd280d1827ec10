import re

from obsidianls.format import (
    FormatContext,
    ensure_frontmatter_defaults,
    frontmatter_op,
    run,
)
from obsidianls.position import Encoder

FULL = """---
id: 1-AAAA
title: Foo
createdAt: 2025-01-01
updatedAt: 2025-01-01 12:00:00
---
body"""


def ctx():
    return FormatContext(title="Test", enc=Encoder("utf-8"))


def test_frontmatter_op_no_frontmatter_adds_block():
    content = "# Hello\nbody"
    edit, new_content = frontmatter_op(content, ctx())
    assert new_content != content
    assert edit is not None
    assert "id:" in new_content
    assert "title: Test" in new_content
    assert edit["range"] == {
        "start": {"line": 0, "character": 0},
        "end": {"line": 0, "character": 0},
    }
    assert edit["newText"].startswith("---\n")
    assert edit["newText"].endswith("\n---\n")


def test_frontmatter_op_all_fields_keeps_body():
    edit, new_content = frontmatter_op(FULL, ctx())
    assert new_content.endswith("\nbody")
    assert edit["range"]["start"] == {"line": 0, "character": 0}
    assert edit["range"]["end"] == {"line": 5, "character": 3}
    assert "id: 1-AAAA" in edit["newText"]
    assert "body" not in edit["newText"]


def test_ensure_defaults_no_frontmatter_adds_full_block():
    got = ensure_frontmatter_defaults("# Hello\nbody", "Hello")
    assert got.startswith("---\n")
    for key in ("id:", "title: Hello", "createdAt:", "updatedAt:"):
        assert key in got
    assert got.endswith("\n# Hello\nbody")
    assert re.search(r"^id: \d+-[A-Z]{4}$", got, re.M)


def test_ensure_defaults_refreshes_updated_at():
    got = ensure_frontmatter_defaults(FULL, "Foo")
    assert "updatedAt:" in got
    assert "updatedAt: 2025-01-01 12:00:00" not in got
    assert re.search(r"^updatedAt: \d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}$", got, re.M)


def test_ensure_defaults_injects_missing_keys_first():
    got = ensure_frontmatter_defaults("---\ntitle: X\n---\nbody", "Ignored")
    lines = got.split("\n")
    assert lines[0] == "---"
    assert lines[1].startswith("id: ")
    assert lines[2].startswith("createdAt: ")
    assert lines[3].startswith("updatedAt: ")
    assert lines[4] == "title: X"
    assert got.endswith("\n---\nbody")
    assert "Ignored" not in got


def test_ensure_defaults_unterminated_frontmatter_unchanged():
    content = "---\ntitle: X\nbody"
    assert ensure_frontmatter_defaults(content, "T") == content


def test_run_collects_edits():
    edits = run("# Hello", ctx())
    assert len(edits) == 1
    assert "title: Test" in edits[0]["newText"]


def test_run_without_ops_has_no_edits():
    assert run("# Hello", ctx(), []) == []


def test_run_chains_content_between_ops():
    seen = []

    def record(content, _ctx):
        seen.append(content)
        return None, content

    edits = run("# Hello", ctx(), [frontmatter_op, record])
    assert len(edits) == 1
    assert edits[0]["newText"].startswith("---\n")
    assert "title: Test" in edits[0]["newText"]
    assert seen[0].startswith("---\n")
    assert seen[0].endswith("\n# Hello")