"""Conversion between LSP character offsets and UTF-8 byte offsets."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator


def _utf8_width(ch: str) -> int:
    return len(ch.encode("utf-8", errors="surrogatepass"))


def _char_widths(line: str) -> Iterator[tuple[int, int]]:
    """Yield (UTF-16 code units, UTF-8 bytes) for each character of ``line``."""
    for ch in line:
        units = len(ch.encode("utf-16-le", errors="surrogatepass")) // 2
        yield units, _utf8_width(ch)


@dataclass(frozen=True)
class Encoder:
    """Converts offsets for a client position encoding, "utf-8" or "utf-16".

    Any value other than "utf-8" is treated as UTF-16.
    """

    encoding: str = "utf-16"

    def char_to_byte(self, line: str, char_off: int) -> int:
        """Convert an LSP character offset to a UTF-8 byte offset in ``line``."""
        total = _utf8_width(line)
        if self.encoding == "utf-8":
            return min(char_off, total)
        units = 0
        byte_pos = 0
        for unit_width, byte_width in _char_widths(line):
            if units >= char_off:
                return byte_pos
            units += unit_width
            byte_pos += byte_width
        return total

    def byte_to_char(self, line: str, byte_off: int) -> int:
        """Convert a UTF-8 byte offset in ``line`` to an LSP character offset."""
        if self.encoding == "utf-8":
            return min(byte_off, _utf8_width(line))
        units = 0
        byte_pos = 0
        for unit_width, byte_width in _char_widths(line):
            if byte_pos >= byte_off:
                return units
            units += unit_width
            byte_pos += byte_width
        return units