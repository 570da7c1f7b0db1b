from __future__ import annotations

from pathlib import Path

import pytest

from ea.prompts import (
    PROPOSAL_INSTRUCTIONS,
    Selection,
    build_direct_edit_prompt,
    build_proposal_prompt,
    render_numbered_lines,
)


def _write(tmp_path: Path) -> Path:
    path = tmp_path / "mod.py"
    path.write_text("import os\n\ndef main():\n    return os.getcwd()\n", encoding="utf-8")
    return path


def test_selection_defaults_to_whole_file(tmp_path: Path) -> None:
    selection = Selection.from_file(_write(tmp_path))

    assert selection.start_line == 1
    assert selection.end_line == 4
    assert selection.lines[-1] == "    return os.getcwd()"
    assert selection.filetype == "python"


def test_selection_range(tmp_path: Path) -> None:
    selection = Selection.from_file(_write(tmp_path), 3, 4)

    assert selection.lines == ("def main():", "    return os.getcwd()")


@pytest.mark.parametrize(("start", "end"), [(0, 1), (3, 2), (1, 99)])
def test_selection_rejects_bad_ranges(tmp_path: Path, start: int, end: int) -> None:
    with pytest.raises(ValueError):
        Selection.from_file(_write(tmp_path), start, end)


def test_numbered_lines() -> None:
    assert render_numbered_lines(["a", "b"], 9) == "   9 | a\n  10 | b"


def test_proposal_prompt_contains_contract_and_context(tmp_path: Path) -> None:
    selection = Selection.from_file(_write(tmp_path), 3, 4)

    prompt = build_proposal_prompt(selection, "Use pathlib", cwd=tmp_path)

    assert prompt.startswith(PROPOSAL_INSTRUCTIONS)
    assert f"Working directory: {tmp_path.as_posix()}" in prompt
    assert f"File: {selection.filepath.as_posix()}" in prompt
    assert "Lines 3-4:" in prompt
    assert "```python\n   3 | def main():\n   4 |     return os.getcwd()\n```" in prompt
    assert prompt.endswith("Request: Use pathlib")


def test_direct_edit_prompt_omits_json_contract(tmp_path: Path) -> None:
    selection = Selection.from_file(_write(tmp_path))

    prompt = build_direct_edit_prompt(selection, "Add a docstring")

    assert "JSON Format" not in prompt
    assert "Working directory" not in prompt
    assert prompt.endswith("Request: Add a docstring")
