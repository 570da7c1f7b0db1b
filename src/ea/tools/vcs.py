"""Minimal git helpers
The helpers below locate the repository that owns the edited files, list
tracked and untracked paths for change detection, and render ``git diff``.
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Sequence

import subprocess


class GitError(RuntimeError):
    """Raised when a git command fails or the repository cannot be used."""


def _completed(process: subprocess.CompletedProcess[bytes]) -> subprocess.CompletedProcess[str]:
    stdout = process.stdout.decode("utf-8", errors="replace") if process.stdout else ""
    stderr = process.stderr.decode("utf-8", errors="replace") if process.stderr else ""
    return subprocess.CompletedProcess(process.args, process.returncode, stdout, stderr)


def _invoke(cwd: Path, args: Sequence[str], *, check: bool) -> subprocess.CompletedProcess[str]:
    command = ["git", *args]
    try:
        process = subprocess.run(
            command,
            cwd=cwd,
            capture_output=True,
            text=False,
            check=False,
        )
    except OSError as error:
        raise GitError(f"git {' '.join(args)} could not be started: {error}") from error
    result = _completed(process)
    if check and result.returncode != 0:
        message = result.stderr.strip() or result.stdout.strip() or "unknown git error"
        raise GitError(f"git {' '.join(args)} failed: {message}")
    return result


class GitRepository:
    """Lightweight wrapper around ``git`` commands."""

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root).resolve()
        if not (self.root / ".git").exists():
            raise GitError(f"Not a git repository: {self.root}")

    @classmethod
    def discover(cls, start: Path | str | None = None) -> "GitRepository":
        """Locate the nearest git repository starting from ``start``."""

        path = Path(start or Path.cwd()).resolve()
        for candidate in (path, *path.parents):
            if (candidate / ".git").exists():
                return cls(candidate)
        raise GitError(f"Unable to locate a git repository from {path}")

    # ------------------------------------------------------------------ git IO
    def _run_git(self, args: Sequence[str], *, check: bool = True) -> subprocess.CompletedProcess[str]:
        return _invoke(self.root, args, check=check)

    def _ls_files(self, args: List[str], what: str) -> List[Path]:
        result = self._run_git(args, check=False)
        if result.returncode != 0:
            message = result.stderr.strip() or result.stdout.strip() or f"unable to list {what}"
            raise GitError(f"git ls-files failed: {message}")
        return [Path(entry) for entry in result.stdout.split("\0") if entry]

    def list_tracked_paths(self) -> List[Path]:
        """Return every tracked path, relative to the repository root."""

        return self._ls_files(["ls-files", "-z"], "tracked paths")

    def untracked_files(self) -> List[Path]:
        """Return untracked files not excluded by ignore rules, relative to the root."""

        return self._ls_files(["ls-files", "--others", "--exclude-standard", "-z"], "untracked files")

    def diff(self) -> str:
        """Return the unified diff of the working tree against the index."""

        return self._run_git(["diff"], check=True).stdout


__all__ = ["GitError", "GitRepository"]
