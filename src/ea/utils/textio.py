"""Byte-exact text file helpers.

Files are decoded as UTF-8 with ``surrogateescape`` and without newline
translation so that reading then writing unchanged content reproduces the
original bytes, including ``\\r\\n`` endings and undecodable sequences.
"""

from __future__ import annotations

from pathlib import Path
from typing import Sequence

ENCODING = "utf-8"
ERRORS = "surrogateescape"


def read_text(path: Path | str) -> str:
    with open(path, "r", encoding=ENCODING, errors=ERRORS, newline="") as handle:
        return handle.read()


def write_text(path: Path | str, content: str) -> None:
    with open(path, "w", encoding=ENCODING, errors=ERRORS, newline="") as handle:
        handle.write(content)


def split_lines(text: str) -> list[str]:
    """Split ``text`` on ``\\n`` only; a trailing newline yields a final empty line."""

    return text.split("\n")


def join_lines(lines: Sequence[str]) -> str:
    return "\n".join(lines)


__all__ = ["join_lines", "read_text", "split_lines", "write_text"]
