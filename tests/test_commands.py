import logging
import threading
import time

import pytest

from obsidianls.commands import Command, CommandError, CommandExecutor, ensure_md_ext
from obsidianls.index import Index, path_to_uri
from obsidianls.settings import Settings


class RecordingConn:
    def __init__(self, result=None, block=None):
        self.result = result
        self.block = block
        self.calls = []
        self.notifications = []
        self.called = threading.Event()

    def call(self, method, params=None, timeout=None):
        self.calls.append((method, params))
        self.called.set()
        if self.block is not None:
            self.block.wait()
        return self.result

    def notify(self, method, params=None):
        self.notifications.append((method, params))


def make_executor(root, conn=None, settings=None):
    return CommandExecutor(
        Index(root), settings or Settings(), conn, logging.getLogger("test-commands")
    )


def test_show_references_does_not_block(tmp_path):
    release = threading.Event()
    conn = RecordingConn(block=release)
    executor = make_executor(tmp_path, conn)
    result = {}

    def run():
        result["value"] = executor.execute(
            Command.SHOW_REFERENCES,
            [
                "file:///tmp/a.md",
                {"line": 1, "character": 0},
                [
                    {
                        "uri": "file:///tmp/b.md",
                        "range": {
                            "start": {"line": 2, "character": 0},
                            "end": {"line": 2, "character": 5},
                        },
                    }
                ],
            ],
        )

    worker = threading.Thread(target=run)
    worker.start()
    worker.join(0.5)
    try:
        assert not worker.is_alive(), "execute blocked on showReferences"
        assert result["value"] == {"shown": "file:///tmp/b.md", "count": 1}
        assert conn.called.wait(5)
        method, params = conn.calls[0]
        assert method == "window/showDocument"
        assert params["selection"]["end"] == {"line": 2, "character": 5}
    finally:
        release.set()


def test_show_references_with_several_shows_message(tmp_path):
    conn = RecordingConn(result={"success": True})
    executor = make_executor(tmp_path, conn)
    loc = {"uri": "file:///tmp/b.md", "range": {"start": {"line": 0, "character": 0}, "end": {"line": 0, "character": 1}}}
    result = executor.execute("obsidian.showReferences", ["u", {}, [loc, loc]])
    assert result["count"] == 2
    deadline = time.monotonic() + 5
    while not conn.notifications and time.monotonic() < deadline:
        time.sleep(0.01)
    method, params = conn.notifications[0]
    assert method == "window/showMessage"
    assert params["message"] == "2 references found; opened the first result"


def test_show_references_requires_locations(tmp_path):
    with pytest.raises(CommandError, match="locations"):
        make_executor(tmp_path).execute(Command.SHOW_REFERENCES, ["u", {}, [{"uri": ""}]])


def test_new_creates_note_from_default_template(tmp_path):
    executor = make_executor(tmp_path)
    result = executor.execute(Command.NEW, ["notes/first"])
    path = tmp_path / "notes" / "first.md"
    assert result == {"uri": path_to_uri(path)}
    content = path.read_text(encoding="utf-8")
    assert "title: first" in content
    assert "# first" in content
    doc = executor.index.get_by_path("notes/first.md")
    assert doc.title == "first"
    assert doc.id


def test_new_without_name_creates_untitled(tmp_path):
    make_executor(tmp_path).execute(Command.NEW, [])
    created = list(tmp_path.glob("Untitled *.md"))
    assert len(created) == 1


def test_existing_file_is_an_error(tmp_path):
    executor = make_executor(tmp_path)
    executor.execute(Command.CREATE_NOTE, ["dup"])
    with pytest.raises(CommandError, match="file already exists: dup.md"):
        executor.execute(Command.CREATE_NOTE, ["dup.md"])


def test_ignored_path_is_refused(tmp_path):
    settings = Settings()
    settings.set_ignore_patterns(["^private/"])
    with pytest.raises(CommandError, match="path is ignored"):
        make_executor(tmp_path, settings=settings).execute(Command.CREATE_NOTE, ["private/x"])
    assert not (tmp_path / "private" / "x.md").exists()


def test_create_note_requires_name(tmp_path):
    with pytest.raises(CommandError, match="requires target name"):
        make_executor(tmp_path).execute(Command.CREATE_NOTE, [])


def test_new_from_template_uses_named_template(tmp_path):
    templates = tmp_path / ".templates"
    templates.mkdir()
    (templates / "daily.md").write_text("Day {{title}}\n", encoding="utf-8")
    make_executor(tmp_path).execute(Command.NEW_FROM_TEMPLATE, ["daily", "2025-01-01"])
    assert (tmp_path / "2025-01-01.md").read_text(encoding="utf-8") == "Day 2025-01-01\n"


def test_new_from_template_missing_template(tmp_path):
    executor = make_executor(tmp_path)
    with pytest.raises(CommandError, match="load template weekly"):
        executor.execute(Command.NEW_FROM_TEMPLATE, ["weekly", "x"])
    with pytest.raises(CommandError, match="requires template name"):
        executor.execute(Command.NEW_FROM_TEMPLATE, [])


def test_list_templates(tmp_path):
    templates = tmp_path / "tpl"
    templates.mkdir()
    (templates / "daily.md").write_text("x", encoding="utf-8")
    (templates / "notes.txt").write_text("x", encoding="utf-8")
    settings = Settings()
    settings.set_template_path("tpl")
    result = make_executor(tmp_path, settings=settings).execute(Command.LIST_TEMPLATES)
    assert result == {"templates": ["daily"]}
    assert make_executor(tmp_path).execute(Command.LIST_TEMPLATES) == {"templates": []}


def test_insert_template_applies_edit(tmp_path):
    templates = tmp_path / ".templates"
    templates.mkdir()
    (templates / "greet.md").write_text("Hello {{title}}", encoding="utf-8")
    conn = RecordingConn(result={"applied": True})
    doc_uri = path_to_uri(tmp_path / "My Note.md")
    result = make_executor(tmp_path, conn).execute(
        Command.INSERT_TEMPLATE, ["greet", doc_uri, {"line": 1, "character": 2}]
    )
    assert result == {"applied": True}
    method, params = conn.calls[0]
    assert method == "workspace/applyEdit"
    (edit,) = params["edit"]["changes"][doc_uri]
    assert edit["newText"] == "Hello My Note"
    assert edit["range"]["start"] == {"line": 1, "character": 2}
    assert edit["range"]["end"] == edit["range"]["start"]


def test_insert_template_rejected_edit(tmp_path):
    conn = RecordingConn(result={"applied": False, "failureReason": "busy"})
    doc_uri = path_to_uri(tmp_path / "n.md")
    with pytest.raises(CommandError, match="edit not applied: busy"):
        make_executor(tmp_path, conn).execute(
            Command.INSERT_TEMPLATE, ["default", doc_uri, {"line": 0, "character": 0}]
        )


def test_insert_template_requires_position(tmp_path):
    with pytest.raises(CommandError, match="position"):
        make_executor(tmp_path, RecordingConn()).execute(
            Command.INSERT_TEMPLATE, ["default", "file:///tmp/n.md"]
        )


def test_unknown_command(tmp_path):
    with pytest.raises(CommandError, match="unknown command: obsidian.nope"):
        make_executor(tmp_path).execute("obsidian.nope", [])


def test_no_vault():
    executor = CommandExecutor(None, Settings(), None)
    with pytest.raises(CommandError, match="no vault"):
        executor.execute(Command.LIST_TEMPLATES, [])


@pytest.mark.parametrize(
    "path, expected",
    [("note", "note.md"), ("note.md", "note.md"), ("NOTE.MD", "NOTE.MD"), ("a.txt", "a.txt.md")],
)
def test_ensure_md_ext(path, expected):
    assert ensure_md_ext(path) == expected