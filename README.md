# obsidianls

A language server for vaults of Markdown notes written in the Obsidian style.
It speaks the Language Server Protocol (JSON-RPC with `Content-Length`
framing) over standard input and output, so any editor with an LSP client can
use it.

## Features

- **Go to definition** on `[[note]]`, `[[note#heading]]`, `[[note#^block-id]]`,
  same-note links such as `[[#heading]]`, and Markdown links `[text](path.md)`.
  Link targets resolve by frontmatter `id`, by relative path (with or without
  `.md`), or by basename anywhere in the vault (the shortest matching path
  wins).
- **References** (backlinks) to the current note, or to the heading under the
  cursor when links to that heading exist.
- **Completion** inside wiki links: note names (ranked by prefix, substring
  and alias matches; notes with an `id` insert the id), headings after `#`,
  block ids after `#^`, and the title, aliases and file name after `|`.
  File completion is capped at 100 items.
- **Code lenses** showing how many links point to a note's `id` and to each
  heading.
- **Diagnostics** for links whose target cannot be found, with a quick fix
  that creates the missing note.
- **Document symbols**: an outline of the headings as a tree.
- **Workspace symbols**: search notes and headings by title, and filter by
  frontmatter tags with a query such as `#daily,project standup`
  (at most 200 results).
- **Formatting** that fills in the frontmatter fields `id`, `title` and
  `createdAt` when missing and always refreshes `updatedAt`.
- **Commands** to create notes from templates and insert templates:
  `obsidian.new`, `obsidian.newFromTemplate`, `obsidian.insertTemplate`,
  `obsidian.listTemplates`, `obsidian.createNote` and
  `obsidian.showReferences`.

Positions are exchanged in UTF-16 unless the client offers `utf-8` in
`capabilities.general.positionEncodings` or sets
`initializationOptions.positionEncoding`.

## Installation

```
pip install .
```

## Running

Configure your editor to start the server with:

```
obsidian-ls
```

The first workspace folder the client opens (or its root URI) is taken as
the vault root. The server writes its log to `.obsidian_ls.log` in your home
directory.

## Settings

Settings are read from the `obsidian` configuration section, both when the
server starts (`workspace/configuration`) and on
`workspace/didChangeConfiguration`:

```json
{
  "obsidian": {
    "ignores": ["^templates/", "\\.git"],
    "templatePath": ".templates"
  }
}
```

- `ignores`: regular expressions searched in vault-relative paths; files
  that match are not indexed, formatted or created. Patterns that do not
  compile are skipped.
- `templatePath`: directory of templates relative to the vault root
  (default `.templates`).

## Templates

A template is a Markdown file in the template directory. These placeholders
are replaced when a note is created or a template is inserted:

| Placeholder | Value                               |
|-------------|-------------------------------------|
| `{{title}}` | note title, taken from the filename |
| `{{date}}`  | current date, `YYYY-MM-DD`          |
| `{{time}}`  | current time, `HH:mm`               |
| `{{id}}`    | unique id such as `1770123038-LOCB` |

Notes created from a template always carry an `id` in their frontmatter. If
no `default.md` template exists, a built-in one is used.

## Using the library

The parser can be used on its own:

```python
from obsidianls.parse import parse

doc = parse(b"# Title\nSee [[other#Section]]\n", "note.md")
print([h.text for h in doc.headings])
print([(link.target, link.anchor) for link in doc.links])
```

The vault index resolves link targets:

```python
from obsidianls.index import Index

idx = Index("/path/to/vault")
idx.index_all()
print(idx.resolve_link_target_to_path("other"))
```

Other modules: `obsidianls.wikilink_cursor` (completion context at a cursor),
`obsidianls.position` (`Encoder` for UTF-8/UTF-16 offsets),
`obsidianls.template`, `obsidianls.format`, and one module per LSP feature
(`definition`, `references`, `completion`, `codelens`, `codeaction`,
`diagnostics`, `documentsymbol`, `workspacesymbol`, `commands`), tied
together by `obsidianls.handler.Handler` and served by `obsidianls.rpc.Connection`.

## Limits

- The server does not watch the file system itself. It asks the client to
  watch `**/*.md` and updates the index from the client's
  `workspace/didChangeWatchedFiles` notifications.
- Incoming messages are handled one at a time, in order.
- Tags are taken from frontmatter only; inline `#tags` in the body are not
  indexed.

## Running the tests

```
pip install ".[test]"
pytest
```