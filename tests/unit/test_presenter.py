from __future__ import annotations

from pathlib import Path

from ea.failures import Failure, FailureKind
from ea.presenter import (
    DiffEntry,
    DiffKind,
    compute_diff,
    diff_record,
    display_path,
    group_deletions,
    render_change_summary,
    render_inline_diff,
    render_proposal_preview,
)
from ea.proposal.applier import ChangePreview
from ea.structured import ChangeEntry, ChangeRecord, ChangeStatus, Proposal


def test_identical_sequences_have_no_entries() -> None:
    assert compute_diff(["a", "b"], ["a", "b"]) == []


def test_pure_addition() -> None:
    entries = compute_diff(["a", "c"], ["a", "b", "c"])

    assert entries == [DiffEntry(DiffKind.ADD, position=2, text="b", new_line=2)]


def test_pure_deletion_is_anchored_after_preceding_line() -> None:
    entries = compute_diff(["a", "b", "c"], ["a", "c"])

    assert entries == [DiffEntry(DiffKind.DELETE, position=1, text="b", old_line=2)]


def test_deletion_at_top_anchors_to_zero() -> None:
    entries = compute_diff(["a", "b"], ["b"])

    assert entries == [DiffEntry(DiffKind.DELETE, position=0, text="a", old_line=1)]


def test_mixed_region_pairs_deletes_with_changes() -> None:
    entries = compute_diff(["keep", "old1", "old2", "tail"], ["keep", "new1", "tail"])

    assert [(entry.kind, entry.text) for entry in entries] == [
        (DiffKind.DELETE, "old1"),
        (DiffKind.DELETE, "old2"),
        (DiffKind.CHANGE, "new1"),
    ]
    assert entries[2].new_line == 2
    assert group_deletions(entries) == {1: ["old1", "old2"]}


def test_added_file_diffs_against_empty() -> None:
    record = ChangeRecord(filepath=Path("/x/new.txt"), status=ChangeStatus.ADDED, new="a\nb")

    entries = diff_record(record)

    assert [entry.kind for entry in entries] == [DiffKind.ADD, DiffKind.ADD]


def test_render_inline_diff_uses_signs() -> None:
    entries = compute_diff(["a", "b"], ["a", "B"])

    lines = render_inline_diff(entries, {"delete": "D", "change": "C"})

    assert lines == ["D    2 | b", "C    2 | B"]


def test_display_path_relative_to_cwd(tmp_path: Path) -> None:
    assert display_path(tmp_path / "src" / "a.py", tmp_path) == "src/a.py"
    assert display_path("/elsewhere/b.py", tmp_path) == "/elsewhere/b.py"


def test_render_proposal_preview(tmp_path: Path) -> None:
    first = ChangeEntry(
        filepath=str(tmp_path / "a.py"), start_line=2, end_line=2, new_content="X\nY", explanation="split"
    )
    second = ChangeEntry(filepath=str(tmp_path / "b.py"), start_line=1, end_line=1, new_content="")
    third = ChangeEntry(filepath=str(tmp_path / "c.py"), start_line=1, end_line=1, new_content="z")
    proposal = Proposal(summary="Split things", changes=(first, second, third))
    previews = [
        ChangePreview(first.filepath, 2, 2, ("old",), ("X", "Y"), "split"),
        ChangePreview(second.filepath, 1, 1, ("gone",), ()),
        Failure(FailureKind.IO, "could not read file: missing", path=third.filepath),
    ]

    lines = render_proposal_preview(proposal, previews, cwd=tmp_path, width=10)

    assert lines[1] == "  Summary: Split things"
    assert "  [1/3] a.py (lines 2-2)" in lines
    assert "  split" in lines
    assert lines.count("  - old") == 1
    assert "  + X" in lines and "  + Y" in lines
    assert "  (lines deleted)" in lines
    assert "  Error: could not read file: missing" in lines
    assert lines.count("-" * 10) == 4
    assert lines[-2] == "  [a]ccept all  [r]eject all"


def test_render_change_summary(tmp_path: Path) -> None:
    changes = [
        ChangeRecord(filepath=tmp_path / "m.txt", status=ChangeStatus.MODIFIED, old="a", new="b"),
        ChangeRecord(filepath=tmp_path / "n.txt", status=ChangeStatus.ADDED, new="n"),
        ChangeRecord(filepath=tmp_path / "d.txt", status=ChangeStatus.DELETED, old="d"),
    ]

    lines = render_change_summary(changes, cwd=tmp_path)

    assert lines[1] == "  Assistant changed 3 files (1 modified, 1 added, 1 deleted)"
    assert lines[3:6] == ["  ~ m.txt", "  + n.txt", "  - d.txt"]
