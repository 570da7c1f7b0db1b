"""Boundary between the session and whatever displays files to the user."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Protocol, Sequence

from .presenter import DiffEntry

LOGGER = logging.getLogger(__name__)


class EditorSurface(Protocol):
    """Presentation hooks invoked by :class:`ea.session.Session`."""

    def show_lines(self, title: str, lines: Sequence[str]) -> None:
        """Display a block of text such as a proposal preview."""

    def place_markers(self, path: Path, entries: Sequence[DiffEntry]) -> None:
        """Decorate ``path`` with inline diff markers."""

    def clear_markers(self) -> None:
        """Remove every marker placed so far."""

    def reload(self, paths: Iterable[Path]) -> None:
        """Refresh any open views of ``paths`` after they changed on disk."""


class NullSurface:
    """Surface that displays nothing; used when no editor is attached."""

    def show_lines(self, title: str, lines: Sequence[str]) -> None:
        LOGGER.debug("%s (%d line(s))", title, len(lines))

    def place_markers(self, path: Path, entries: Sequence[DiffEntry]) -> None:
        LOGGER.debug("%d marker(s) for %s", len(entries), path)

    def clear_markers(self) -> None:
        return None

    def reload(self, paths: Iterable[Path]) -> None:
        for path in paths:
            LOGGER.debug("Reload requested for %s", path)


__all__ = ["EditorSurface", "NullSurface"]
