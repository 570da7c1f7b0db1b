from __future__ import annotations

import stat
import subprocess
import sys
import textwrap
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, List, Sequence, Tuple

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from ea.presenter import DiffEntry  # noqa: E402
from ea.tools.vcs import GitRepository  # noqa: E402


@dataclass(slots=True)
class RecordingSurface:
    """Editor surface that remembers every call made by the session."""

    shown: List[Tuple[str, List[str]]] = field(default_factory=list)
    markers: List[Tuple[Path, List[DiffEntry]]] = field(default_factory=list)
    reloaded: List[Path] = field(default_factory=list)
    cleared: int = 0

    def show_lines(self, title: str, lines: Sequence[str]) -> None:
        self.shown.append((title, list(lines)))

    def place_markers(self, path: Path, entries: Sequence[DiffEntry]) -> None:
        self.markers.append((path, list(entries)))

    def clear_markers(self) -> None:
        self.cleared += 1

    def reload(self, paths: Iterable[Path]) -> None:
        self.reloaded.extend(paths)


@pytest.fixture()
def surface() -> RecordingSurface:
    return RecordingSurface()


@pytest.fixture()
def git_repo(tmp_path: Path) -> GitRepository:
    """Create a git repository with two committed text files."""

    repo_root = tmp_path / "repo"
    repo_root.mkdir()
    (repo_root / "alpha.txt").write_text("one\ntwo\nthree\n", encoding="utf-8")
    (repo_root / "beta.txt").write_text("beta\n", encoding="utf-8")
    (repo_root / ".gitignore").write_text("*.log\n", encoding="utf-8")
    for args in (
        ["init", "-q"],
        ["config", "user.email", "tests@example.com"],
        ["config", "user.name", "Tests"],
        ["add", "."],
        ["commit", "-q", "-m", "Initial commit"],
    ):
        subprocess.run(["git", *args], cwd=repo_root, check=True, capture_output=True)
    return GitRepository(repo_root)


FakeAssistant = Callable[[str], Path]


@pytest.fixture()
def fake_assistant(tmp_path: Path) -> FakeAssistant:
    """Return a factory writing executable shell scripts that stand in for the assistant."""

    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    counter = {"value": 0}

    def _factory(body: str) -> Path:
        counter["value"] += 1
        script = bin_dir / f"assistant-{counter['value']}"
        script.write_text("#!/bin/sh\n" + textwrap.dedent(body).lstrip(), encoding="utf-8")
        script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return script

    return _factory
