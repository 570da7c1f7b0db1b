"""Line-level diffs and text renderings for proposals and detected changes.

Nothing here touches the filesystem or an editor; callers decide how the
returned entries and lines are displayed.
"""

from __future__ import annotations

import difflib
import os
from collections import Counter
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, List, Mapping, Sequence

from .failures import Failure
from .proposal.applier import ChangePreview
from .structured import ChangeRecord, ChangeStatus, Proposal
from .utils.textio import split_lines

DEFAULT_SIGNS: Dict[str, str] = {"add": "+", "delete": "-", "change": "~"}
DEFAULT_RULE_WIDTH = 60


class DiffKind(str, Enum):
    ADD = "add"
    DELETE = "delete"
    CHANGE = "change"


@dataclass(frozen=True, slots=True)
class DiffEntry:
    """One line of a diff.

    For ``add`` and ``change`` entries ``position`` is the 1-based line in the
    new sequence. For ``delete`` entries it is the number of new lines that
    precede the removed line, i.e. the line it should be drawn after (0 means
    above the first line).
    """

    kind: DiffKind
    position: int
    text: str
    old_line: int | None = None
    new_line: int | None = None


def compute_diff(old_lines: Sequence[str], new_lines: Sequence[str]) -> List[DiffEntry]:
    """Return add/delete/change entries turning ``old_lines`` into ``new_lines``.

    Mixed regions produce the deleted lines followed by ``change`` entries for
    their replacements, so pure additions stay distinguishable.
    """

    matcher = difflib.SequenceMatcher(a=list(old_lines), b=list(new_lines), autojunk=False)
    entries: List[DiffEntry] = []
    for tag, old_start, old_end, new_start, new_end in matcher.get_opcodes():
        if tag == "equal":
            continue
        if tag in ("delete", "replace"):
            entries.extend(
                DiffEntry(DiffKind.DELETE, position=new_start, text=old_lines[index], old_line=index + 1)
                for index in range(old_start, old_end)
            )
        if tag in ("insert", "replace"):
            kind = DiffKind.ADD if tag == "insert" else DiffKind.CHANGE
            entries.extend(
                DiffEntry(kind, position=index + 1, text=new_lines[index], new_line=index + 1)
                for index in range(new_start, new_end)
            )
    return entries


def diff_record(record: ChangeRecord) -> List[DiffEntry]:
    """Diff a detected change; added files diff against an empty file."""

    old_lines = split_lines(record.old) if record.old is not None else []
    new_lines = split_lines(record.new) if record.new is not None else []
    return compute_diff(old_lines, new_lines)


def group_deletions(entries: Sequence[DiffEntry]) -> Dict[int, List[str]]:
    """Collect deleted text by the position it should be drawn after."""

    grouped: Dict[int, List[str]] = {}
    for entry in entries:
        if entry.kind is DiffKind.DELETE:
            grouped.setdefault(entry.position, []).append(entry.text)
    return grouped


def display_path(path: Path | str, cwd: Path | None = None) -> str:
    """Return ``path`` relative to ``cwd`` when it lives underneath it."""

    base = Path(cwd or Path.cwd())
    candidate = Path(path)
    try:
        return candidate.relative_to(base).as_posix()
    except ValueError:
        return os.fspath(candidate)


def render_inline_diff(entries: Sequence[DiffEntry], signs: Mapping[str, str] | None = None) -> List[str]:
    marks = {**DEFAULT_SIGNS, **(signs or {})}
    lines: List[str] = []
    for entry in entries:
        number = entry.old_line if entry.kind is DiffKind.DELETE else entry.new_line
        lines.append(f"{marks[entry.kind.value]} {number or 0:>4} | {entry.text}")
    return lines


def render_proposal_preview(
    proposal: Proposal,
    previews: Sequence[ChangePreview | Failure],
    *,
    cwd: Path | None = None,
    width: int = DEFAULT_RULE_WIDTH,
) -> List[str]:
    """Render the accept/reject preview of a proposal, one entry per change."""

    rule = "-" * width
    lines = [""]
    lines.append(f"  Summary: {proposal.summary}" if proposal.summary else "  Proposed Changes")
    lines.extend(["", rule, ""])

    total = len(proposal.changes)
    for number, (change, preview) in enumerate(zip(proposal.changes, previews), start=1):
        lines.append(
            f"  [{number}/{total}] {display_path(change.filepath, cwd)} "
            f"(lines {change.start_line}-{change.end_line})"
        )
        if change.explanation:
            lines.append(f"  {change.explanation}")
        lines.append("")

        if isinstance(preview, Failure):
            lines.append(f"  Error: {preview.message}")
        else:
            lines.extend(f"  - {old_line}" for old_line in preview.old_lines)
            if preview.new_lines:
                lines.extend(f"  + {new_line}" for new_line in preview.new_lines)
            else:
                lines.append("  (lines deleted)")

        lines.append("")
        if number < total:
            lines.extend([rule, ""])

    lines.extend([rule, "", "  [a]ccept all  [r]eject all", ""])
    return lines


_STATUS_PREFIX = {
    ChangeStatus.MODIFIED: "~",
    ChangeStatus.ADDED: "+",
    ChangeStatus.DELETED: "-",
}


def render_change_summary(changes: Sequence[ChangeRecord], *, cwd: Path | None = None) -> List[str]:
    """Summarise files changed by a direct-edit run."""

    counts = Counter(record.status for record in changes)
    total = len(changes)
    lines = [
        "",
        f"  Assistant changed {total} {'file' if total == 1 else 'files'}"
        f" ({counts[ChangeStatus.MODIFIED]} modified, {counts[ChangeStatus.ADDED]} added,"
        f" {counts[ChangeStatus.DELETED]} deleted)",
        "",
    ]
    lines.extend(f"  {_STATUS_PREFIX[record.status]} {display_path(record.filepath, cwd)}" for record in changes)
    lines.extend(["", "  [a]ccept  [r]eject", ""])
    return lines


__all__ = [
    "DEFAULT_SIGNS",
    "DiffEntry",
    "DiffKind",
    "compute_diff",
    "diff_record",
    "display_path",
    "group_deletions",
    "render_change_summary",
    "render_inline_diff",
    "render_proposal_preview",
]
