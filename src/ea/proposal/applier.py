"""Apply validated proposals to files on disk by line range."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Sequence, Tuple

from ..failures import Failure, FailureKind
from ..structured import ChangeEntry, Proposal
from ..utils.telemetry import emit_event
from ..utils.textio import join_lines, read_text, split_lines, write_text

LOGGER = logging.getLogger(__name__)

IndexedChange = Tuple[int, ChangeEntry]


@dataclass(slots=True)
class ApplyResult:
    """Outcome of applying a proposal; ``failures`` are keyed by change index."""

    written: List[Path] = field(default_factory=list)
    failures: List[Failure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


@dataclass(frozen=True, slots=True)
class ChangePreview:
    """Current lines in a change's range next to their proposed replacement."""

    filepath: str
    start_line: int
    end_line: int
    old_lines: Tuple[str, ...]
    new_lines: Tuple[str, ...]
    explanation: str | None = None


def replacement_lines(change: ChangeEntry) -> List[str]:
    """Return the lines that replace the change's range; empty content deletes it."""

    if change.deletes:
        return []
    return split_lines(change.new_content)


def _resolve(filepath: str, root: Path | None) -> Path:
    path = Path(filepath)
    if root is not None and not path.is_absolute():
        path = root / path
    return path


def application_order(entries: Iterable[IndexedChange]) -> List[IndexedChange]:
    """Order one file's entries bottom-up.

    Entries sharing a ``start_line`` are ordered so the lower proposal index is
    applied last and wins any remaining overlap.
    """

    return sorted(entries, key=lambda item: (item[1].start_line, item[0]), reverse=True)


def fold_changes(
    lines: Sequence[str],
    entries: Iterable[IndexedChange],
) -> Tuple[List[str], List[Failure]]:
    """Apply ``entries`` to ``lines`` in the order given.

    Each range is checked against the length of the already-folded lines
    immediately before it is applied; an out-of-range entry is reported and
    skipped without affecting the others.
    """

    current = list(lines)
    failures: List[Failure] = []
    for index, change in entries:
        if change.start_line < 1 or change.end_line > len(current):
            failures.append(
                Failure(
                    FailureKind.APPLY,
                    f"line range {change.start_line}-{change.end_line} invalid for file with {len(current)} lines",
                    index=index,
                    path=change.filepath,
                )
            )
            continue
        current[change.start_line - 1 : change.end_line] = replacement_lines(change)
    return current, failures


def _group_by_file(proposal: Proposal, root: Path | None) -> dict[Path, List[IndexedChange]]:
    # Keyed on the resolved path so two spellings of one file share a single pass.
    grouped: dict[Path, List[IndexedChange]] = {}
    for index, change in enumerate(proposal.changes, start=1):
        grouped.setdefault(_resolve(change.filepath, root).resolve(), []).append((index, change))
    return grouped


def apply_proposal(proposal: Proposal, *, root: Path | None = None) -> ApplyResult:
    """Rewrite every file targeted by ``proposal``.

    Each file is read once, folded bottom-up and written once. Failures never
    abort sibling entries or other files; relative paths resolve against
    ``root`` when given.
    """

    result = ApplyResult()
    for entries in _group_by_file(proposal, root).values():
        target = _resolve(entries[0][1].filepath, root)
        try:
            original = read_text(target)
        except OSError as error:
            LOGGER.warning("Could not read %s: %s", target, error)
            result.failures.extend(
                Failure(
                    FailureKind.IO,
                    f"could not read {change.filepath}: {error.strerror or error}",
                    index=index,
                    path=change.filepath,
                )
                for index, change in entries
            )
            continue

        folded, failures = fold_changes(split_lines(original), application_order(entries))
        result.failures.extend(failures)
        if len(failures) == len(entries):
            continue

        try:
            write_text(target, join_lines(folded))
        except OSError as error:
            LOGGER.error("Could not write %s: %s", target, error)
            failed = {failure.index for failure in failures}
            result.failures.extend(
                Failure(
                    FailureKind.IO,
                    f"could not write {change.filepath}: {error.strerror or error}",
                    index=index,
                    path=change.filepath,
                )
                for index, change in entries
                if index not in failed
            )
            continue
        result.written.append(target)

    result.failures.sort(key=lambda failure: failure.index or 0)
    emit_event(
        "proposal.apply",
        changes=len(proposal.changes),
        written=result.written,
        failed=[failure.index for failure in result.failures],
    )
    return result


def preview_change(change: ChangeEntry, *, root: Path | None = None) -> ChangePreview | Failure:
    """Return the lines ``change`` would replace without writing anything.

    Lines past the end of the file are shown as empty strings.
    """

    try:
        lines = split_lines(read_text(_resolve(change.filepath, root)))
    except OSError as error:
        return Failure(FailureKind.IO, f"could not read file: {error.strerror or error}", path=change.filepath)

    old_lines = tuple(
        lines[number - 1] if number <= len(lines) else ""
        for number in range(change.start_line, change.end_line + 1)
    )
    return ChangePreview(
        filepath=change.filepath,
        start_line=change.start_line,
        end_line=change.end_line,
        old_lines=old_lines,
        new_lines=tuple(replacement_lines(change)),
        explanation=change.explanation,
    )


__all__ = [
    "ApplyResult",
    "ChangePreview",
    "application_order",
    "apply_proposal",
    "fold_changes",
    "preview_change",
    "replacement_lines",
]
