[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "obsidianls"
version = "0.1.0"
description = "A language server for Obsidian-style Markdown vaults: wiki links, headings, blocks, templates and frontmatter."
requires-python = ">=3.10"
dependencies = [
    "pyyaml",
]
keywords = ["obsidian", "markdown", "lsp", "language-server", "wikilinks", "notes"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Intended Audience :: End Users/Desktop",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Text Editors :: Integrated Development Environments (IDE)",
    "Topic :: Text Processing :: Markup :: Markdown",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
obsidian-ls = "obsidianls.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["obsidianls"]

[tool.pytest.ini_options]
addopts = "-ra"
