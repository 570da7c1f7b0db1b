"""Capture file contents before an assistant run and classify what it changed."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, FrozenSet, Iterable, List, Sequence

from ..failures import Failure, FailureKind
from ..structured import ChangeRecord, ChangeStatus
from ..utils.telemetry import emit_event
from ..utils.textio import read_text, write_text
from .vcs import GitError, GitRepository

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class Snapshot:
    """Pre-run file contents keyed by resolved absolute path.

    ``baseline_untracked`` records the untracked files that already existed
    when the snapshot was taken so they are never reported as added.
    """

    files: Dict[Path, str] = field(default_factory=dict)
    baseline_untracked: FrozenSet[Path] = frozenset()
    captured_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def paths(self) -> List[Path]:
        return sorted(self.files)


@dataclass(slots=True)
class RevertResult:
    """Files restored or removed by a revert, plus per-path failures."""

    restored: List[Path] = field(default_factory=list)
    removed: List[Path] = field(default_factory=list)
    failures: List[Failure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


def _untracked(repo: GitRepository | None) -> List[Path] | None:
    """Return resolved untracked paths, or ``None`` when they cannot be listed."""

    if repo is None:
        return None
    try:
        entries = repo.untracked_files()
    except GitError as error:
        LOGGER.warning("Skipping added-file detection: %s", error)
        return None
    return [(repo.root / entry).resolve() for entry in entries]


def capture_snapshot(paths: Iterable[Path | str], *, repo: GitRepository | None = None) -> Snapshot:
    """Read every readable file in ``paths``; unreadable ones are skipped."""

    files: Dict[Path, str] = {}
    for raw_path in paths:
        path = Path(raw_path).resolve()
        if path in files:
            continue
        try:
            files[path] = read_text(path)
        except OSError as error:
            LOGGER.debug("Not snapshotting %s: %s", path, error)
    baseline = frozenset(_untracked(repo) or ())
    LOGGER.debug("Captured snapshot of %d file(s), %d untracked baseline path(s)", len(files), len(baseline))
    return Snapshot(files=files, baseline_untracked=baseline)


def detect_changes(snapshot: Snapshot, *, repo: GitRepository | None = None) -> List[ChangeRecord]:
    """Compare ``snapshot`` with the disk and return one record per changed file.

    Content is compared exactly; line endings and whitespace are significant.
    Files that appeared since the snapshot are found through git's untracked
    listing and skipped when no repository is available.
    """

    records: List[ChangeRecord] = []
    for path in snapshot.paths():
        old = snapshot.files[path]
        try:
            current = read_text(path)
        except OSError:
            records.append(ChangeRecord(filepath=path, status=ChangeStatus.DELETED, old=old))
            continue
        if current != old:
            records.append(ChangeRecord(filepath=path, status=ChangeStatus.MODIFIED, old=old, new=current))

    for path in sorted(_untracked(repo) or ()):
        if path in snapshot.files or path in snapshot.baseline_untracked or not path.is_file():
            continue
        try:
            content = read_text(path)
        except OSError as error:
            LOGGER.debug("Ignoring unreadable new file %s: %s", path, error)
            continue
        records.append(ChangeRecord(filepath=path, status=ChangeStatus.ADDED, new=content))

    return records


def revert_changes(records: Sequence[ChangeRecord]) -> RevertResult:
    """Restore modified and deleted files and remove added ones.

    Every record is attempted; failures are collected rather than raised.
    """

    result = RevertResult()
    for record in records:
        path = record.filepath
        if record.status is ChangeStatus.ADDED:
            try:
                path.unlink(missing_ok=True)
            except OSError as error:
                result.failures.append(
                    Failure(FailureKind.IO, f"could not delete file: {error.strerror or error}", path=str(path))
                )
                continue
            result.removed.append(path)
            continue

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            write_text(path, record.old or "")
        except OSError as error:
            result.failures.append(
                Failure(FailureKind.IO, f"could not restore file: {error.strerror or error}", path=str(path))
            )
            continue
        result.restored.append(path)

    emit_event(
        "changes.revert",
        restored=result.restored,
        removed=result.removed,
        failed=[failure.path for failure in result.failures],
    )
    return result


__all__ = ["RevertResult", "Snapshot", "capture_snapshot", "detect_changes", "revert_changes"]
