from pathlib import Path

from obsidianls.index import Index
from obsidianls.workspacesymbol import (
    MAX_WORKSPACE_SYMBOLS,
    SYMBOL_KIND_FILE,
    SYMBOL_KIND_MODULE,
    parse_workspace_symbol_query,
    resolve_workspace_symbol,
)


def write_ref_file(root: Path, name: str, content: str) -> None:
    p = root / name
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(content, encoding="utf-8")


def tagged_index(root: Path) -> Index:
    write_ref_file(root, "daily.md", "---\ntags: [daily, project]\n---\n# Standup notes\n")
    write_ref_file(root, "random.md", "---\ntags: [daily]\n---\n# Other topic\n")
    idx = Index(root)
    idx.index_all()
    return idx


def test_tag_and_title_filter(tmp_path):
    idx = tagged_index(tmp_path)
    symbols = resolve_workspace_symbol(idx, "utf-8", {"query": "#daily,project standup"})
    assert [s["name"] for s in symbols] == ["Standup notes"]
    assert symbols[0]["containerName"] == "daily"
    assert symbols[0]["kind"] == SYMBOL_KIND_MODULE
    assert symbols[0]["location"]["range"]["start"]["line"] == 3


def test_parse_query_multi_tags():
    assert parse_workspace_symbol_query("#daily,project,work standup") == (
        ["daily", "project", "work"],
        "standup",
    )


def test_parse_query_without_tags():
    assert parse_workspace_symbol_query("  plain title ") == ([], "plain title")
    assert parse_workspace_symbol_query("#") == ([], "")
    assert parse_workspace_symbol_query("#A,,#B") == (["a", "b"], "")


def test_empty_query_lists_notes(tmp_path):
    idx = tagged_index(tmp_path)
    symbols = resolve_workspace_symbol(idx, "utf-8", {"query": ""})
    assert sorted(s["name"] for s in symbols) == ["daily", "random"]
    assert all(s["kind"] == SYMBOL_KIND_FILE for s in symbols)


def test_tag_only_query(tmp_path):
    idx = tagged_index(tmp_path)
    symbols = resolve_workspace_symbol(idx, "utf-8", {"query": "#project"})
    assert [s["name"] for s in symbols] == ["daily"]
    assert resolve_workspace_symbol(idx, "utf-8", {"query": "#nope"}) == []


def test_title_matches_note_and_heading(tmp_path):
    idx = tagged_index(tmp_path)
    symbols = resolve_workspace_symbol(idx, "utf-8", {"query": "OTHER"})
    assert [(s["name"], s.get("containerName")) for s in symbols] == [("Other topic", "random")]


def test_limit(tmp_path):
    for i in range(MAX_WORKSPACE_SYMBOLS + 5):
        write_ref_file(tmp_path, f"n{i}.md", "# x\n")
    idx = Index(tmp_path)
    idx.index_all()
    symbols = resolve_workspace_symbol(idx, "utf-8", {"query": ""})
    assert len(symbols) == MAX_WORKSPACE_SYMBOLS


def test_missing_index_or_params(tmp_path):
    assert resolve_workspace_symbol(None, "utf-8", {"query": ""}) is None
    assert resolve_workspace_symbol(Index(tmp_path), "utf-8", None) is None