"""Language server and note parser for Obsidian-style Markdown vaults."""

__version__ = "0.1.0"