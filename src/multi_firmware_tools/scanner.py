"""
Byte scanning helpers for firmware and backup files.

Provides shared low-level logic for the firmware tools, core actions and CLI:
- Literal pattern search over raw byte buffers
- Bounded reads of fixed windows at arbitrary file offsets
- Hex dump formatting for previews
"""

from pathlib import Path
from typing import List, Optional, Union

PathLike = Union[str, Path]


def find_pattern(data: bytes, pattern: bytes, start: int = 0) -> int:
    """
    Return the offset of the first occurrence of pattern in data, or -1.

    Operates on raw bytes, so embedded NUL bytes are matched literally and
    the buffer is never assumed to be null-terminated.
    """
    if not pattern:
        raise ValueError("Search pattern must not be empty")
    return data.find(pattern, start)


def read_window(path: PathLike, offset: int, size: int) -> bytes:
    """
    Read at most `size` bytes starting at `offset`.

    Returns fewer bytes if the file ends inside the window.
    """
    if offset < 0:
        raise ValueError(f"Offset must be >= 0 (got {offset})")
    if size < 0:
        raise ValueError(f"Size must be >= 0 (got {size})")
    with open(path, "rb") as f:
        f.seek(offset)
        return f.read(size)


def read_tail(path: PathLike, size: int) -> bytes:
    """Read the final `size` bytes of a file (the whole file if it is shorter)."""
    length = Path(path).stat().st_size
    return read_window(path, max(0, length - size), size)


def read_all(path: PathLike, limit: Optional[int] = None) -> bytes:
    """Read a whole file, or at most `limit` bytes of it."""
    with open(path, "rb") as f:
        return f.read(-1 if limit is None else limit)


def hexdump_lines(data: bytes, base: int = 0, width: int = 16) -> List[str]:
    """Format bytes as offset | hex | ascii lines."""
    lines = []
    for offset in range(0, len(data), width):
        chunk = data[offset:offset + width]
        hex_part = " ".join(f"{b:02X}" for b in chunk)
        ascii_part = "".join(chr(b) if 32 <= b < 127 else "." for b in chunk)
        lines.append(f"0x{base + offset:06X} | {hex_part:<{width * 3 - 1}} | {ascii_part}")
    return lines
