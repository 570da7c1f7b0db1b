"""Failure values shared by the proposal, snapshot and runner components."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum


class FailureKind(str, Enum):
    """Category of a failure surfaced to the user."""

    PARSE = "parse"
    VALIDATION = "validation"
    APPLY = "apply"
    IO = "io"
    PROCESS = "process"
    TIMEOUT = "timeout"
    BUSY = "busy"


_LABELS: dict[FailureKind, str] = {
    FailureKind.PARSE: "Parse error",
    FailureKind.VALIDATION: "Validation error",
    FailureKind.APPLY: "Apply error",
    FailureKind.IO: "I/O error",
    FailureKind.PROCESS: "Assistant error",
    FailureKind.TIMEOUT: "Assistant timed out",
    FailureKind.BUSY: "Busy",
}


@dataclass(frozen=True, slots=True)
class Failure:
    """A single failure returned as data rather than raised.

    ``index`` is the 1-based position of the offending change in the proposal
    when the failure concerns one entry; ``path`` names the file for I/O
    failures that are not tied to a change. ``causes`` keeps secondary
    messages that would otherwise be lost when several attempts failed.
    """

    kind: FailureKind
    message: str
    index: int | None = None
    path: str | None = None
    causes: tuple[str, ...] = field(default=())

    def with_causes(self, *causes: str) -> "Failure":
        """Return a copy carrying ``causes`` in addition to existing ones."""

        return replace(self, causes=self.causes + tuple(cause for cause in causes if cause))

    def render(self) -> str:
        """Return the one-line human-readable description of the failure."""

        if self.index is not None:
            head = f"Change #{self.index}: {self.message}"
        elif self.path:
            head = f"{self.path}: {self.message}"
        else:
            head = self.message
        text = f"{_LABELS[self.kind]}: {head}"
        if self.causes:
            text = f"{text} ({'; '.join(self.causes)})"
        return text


__all__ = ["Failure", "FailureKind"]
