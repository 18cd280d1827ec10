"""Command-line entry point: serve LSP over standard input and output."""

from __future__ import annotations

import argparse
import logging
import os
import sys
from typing import Optional, Sequence

from .handler import Handler
from .rpc import Connection

LOG_FILE_NAME = ".obsidian_ls.log"


def start_server(logger: logging.Logger, reader=None, writer=None) -> None:
    """Serve the language server until the connection closes.

    ``reader`` and ``writer`` are binary streams; they default to standard
    input and output.
    """
    if reader is None:
        reader = sys.stdin.buffer
    if writer is None:
        writer = sys.stdout.buffer
    conn = Connection(reader, writer)
    conn.serve(Handler(conn, logger))


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the server, logging to ``~/.obsidian_ls.log``."""
    parser = argparse.ArgumentParser(
        prog="obsidian-ls", description="Language server for Obsidian vaults."
    )
    parser.parse_args(argv)

    log_path = os.path.join(os.path.expanduser("~"), LOG_FILE_NAME)
    try:
        file_handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
    except OSError as exc:
        logging.getLogger(__name__).error("open log file path=%s err=%s", log_path, exc)
        return 1
    file_handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(message)s"))

    logger = logging.getLogger("obsidianls")
    logger.setLevel(logging.INFO)
    logger.propagate = False
    logger.addHandler(file_handler)
    try:
        start_server(logger)
    finally:
        logger.removeHandler(file_handler)
        file_handler.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())