import pytest

from obsidianls.codelens import reference_title, resolve_code_lens
from obsidianls.commands import Command
from obsidianls.index import Index, path_to_uri


def write(root, name, content):
    path = root / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


def indexed(root):
    idx = Index(root)
    idx.index_all()
    return idx


def params_for(root, name):
    return {"textDocument": {"uri": path_to_uri(root / name)}}


def test_heading_references(tmp_path):
    write(tmp_path, "a.md", "# A\n## Intro\n## Intro\n## Lonely\n")
    write(tmp_path, "b.md", "[[a#intro]]\n[[a#intro-1]]\n")
    write(tmp_path, "c.md", "[[a#intro-1]]\n")
    idx = indexed(tmp_path)

    lenses = resolve_code_lens(idx, "a.md", "utf-8", params_for(tmp_path, "a.md"))
    assert len(lenses) == 2
    assert lenses[0]["command"]["title"] == "1 reference"
    assert lenses[0]["command"]["command"] == Command.SHOW_REFERENCES.value
    assert lenses[1]["command"]["title"] == "2 references"
    assert lenses[0]["range"]["start"]["line"] == 1
    assert lenses[1]["range"]["start"]["line"] == 2


def test_lens_arguments(tmp_path):
    write(tmp_path, "a.md", "# A\n## Intro\n")
    write(tmp_path, "b.md", "[[a#intro]]\n")
    idx = indexed(tmp_path)
    (lens,) = resolve_code_lens(idx, "a.md", "utf-8", params_for(tmp_path, "a.md"))
    uri, start, refs = lens["command"]["arguments"]
    assert uri == path_to_uri(tmp_path / "a.md")
    assert start == lens["range"]["start"]
    assert [r["uri"] for r in refs] == [path_to_uri(tmp_path / "b.md")]


def test_frontmatter_id_references(tmp_path):
    write(tmp_path, "a.md", "---\nid: note-a\n---\n# A\n## Intro\n")
    write(tmp_path, "b.md", "[[note-a]]\n[[a#intro]]\n")
    idx = indexed(tmp_path)

    lenses = resolve_code_lens(idx, "a.md", "utf-8", params_for(tmp_path, "a.md"))
    assert len(lenses) == 2
    assert lenses[0]["range"]["start"]["line"] == 1
    assert lenses[0]["command"]["title"] == "2 references"


def test_unindexed_note_and_missing_params(tmp_path):
    write(tmp_path, "a.md", "# A\n")
    idx = indexed(tmp_path)
    assert resolve_code_lens(idx, "missing.md", "utf-8", {}) is None
    assert resolve_code_lens(idx, "a.md", "utf-8", None) is None
    assert resolve_code_lens(idx, "a.md", "utf-8", params_for(tmp_path, "a.md")) == []


@pytest.mark.parametrize("n, title", [(0, "0 references"), (1, "1 reference"), (5, "5 references")])
def test_reference_title(n, title):
    assert reference_title(n) == title