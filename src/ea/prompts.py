"""Prompt templates and selection helpers for assistant runs."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Sequence, Tuple

from .utils.textio import read_text, split_lines

PROPOSAL_INSTRUCTIONS = """You are a code modification assistant. You MUST output ONLY valid JSON describing proposed changes.

CRITICAL: Output ONLY the JSON object, no explanation before or after.

JSON Format:
{
  "summary": "Brief description of what the changes accomplish",
  "changes": [
    {
      "filepath": "/absolute/path/to/file",
      "start_line": <first line number to replace>,
      "end_line": <last line number to replace>,
      "new_content": "the replacement code (can be multiple lines)",
      "explanation": "why this specific change is needed"
    }
  ]
}

Rules:
- Line numbers are 1-indexed
- start_line and end_line define the range of lines to REPLACE (inclusive)
- new_content replaces lines start_line through end_line
- To INSERT code without replacing: set start_line and end_line to the same line, include that original line plus new code in new_content
- To DELETE code: set new_content to empty string ""
- Use actual newlines in new_content, not \\n escape sequences
- Preserve correct indentation in new_content
- filepath must be the absolute path provided to you
- Each change should be atomic and focused"""

DIRECT_EDIT_INSTRUCTIONS = (
    "Edit the files in the working directory directly to satisfy the request. "
    "Keep changes focused on the selected code unless the request requires otherwise."
)

_FILETYPES = {
    ".py": "python",
    ".lua": "lua",
    ".js": "javascript",
    ".ts": "typescript",
    ".rs": "rust",
    ".go": "go",
    ".rb": "ruby",
    ".sh": "sh",
    ".md": "markdown",
    ".yaml": "yaml",
    ".yml": "yaml",
    ".json": "json",
    ".toml": "toml",
}


@dataclass(frozen=True, slots=True)
class Selection:
    """A contiguous, 1-indexed range of lines taken from one file."""

    filepath: Path
    start_line: int
    end_line: int
    lines: Tuple[str, ...]

    @property
    def filetype(self) -> str:
        return _FILETYPES.get(self.filepath.suffix.lower(), self.filepath.suffix.lstrip("."))

    @classmethod
    def from_file(cls, path: Path | str, start_line: int | None = None, end_line: int | None = None) -> "Selection":
        """Read ``start_line``..``end_line`` of ``path`` (the whole file by default).

        Raises ``OSError`` when the file cannot be read and ``ValueError`` for a
        range outside the file.
        """

        filepath = Path(path).resolve()
        lines = split_lines(read_text(filepath))
        last_line = len(lines)
        if last_line > 1 and lines[-1] == "":
            last_line -= 1

        start = 1 if start_line is None else start_line
        end = last_line if end_line is None else end_line
        if start < 1 or end < start or end > len(lines):
            raise ValueError(f"line range {start}-{end} is outside {filepath} ({last_line} lines)")
        return cls(filepath=filepath, start_line=start, end_line=end, lines=tuple(lines[start - 1 : end]))


def render_numbered_lines(lines: Sequence[str], first_line: int) -> str:
    """Prefix each line with its right-aligned line number."""
    return "\n".join(f"{first_line + offset:4d} | {line}" for offset, line in enumerate(lines))


def _render_context(selection: Selection, request: str, cwd: Path | None) -> str:
    parts = []
    if cwd is not None:
        parts.append(f"Working directory: {cwd.as_posix()}")
    parts.append(f"File: {selection.filepath.as_posix()}")
    parts.append(f"Lines {selection.start_line}-{selection.end_line}:")
    parts.append("")
    parts.append(f"```{selection.filetype}")
    parts.append(render_numbered_lines(selection.lines, selection.start_line))
    parts.append("```")
    parts.append("")
    parts.append(f"Request: {request}")
    return "\n".join(parts)


def build_proposal_prompt(selection: Selection, request: str, *, cwd: Path | None = None) -> str:
    """Build a prompt asking for a JSON change proposal about ``selection``."""
    return "\n".join([PROPOSAL_INSTRUCTIONS, "", "---", "", _render_context(selection, request, cwd)])


def build_direct_edit_prompt(selection: Selection, request: str, *, cwd: Path | None = None) -> str:
    """Build a prompt for an assistant that edits files on disk itself."""
    return "\n".join([DIRECT_EDIT_INSTRUCTIONS, "", _render_context(selection, request, cwd)])


__all__ = [
    "DIRECT_EDIT_INSTRUCTIONS",
    "PROPOSAL_INSTRUCTIONS",
    "Selection",
    "build_direct_edit_prompt",
    "build_proposal_prompt",
    "render_numbered_lines",
]
