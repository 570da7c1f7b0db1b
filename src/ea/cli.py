"""CLI commands for sending code selections to an external coding assistant."""

from __future__ import annotations

import asyncio
import copy
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import typer
import yaml

from .failures import Failure
from .presenter import DEFAULT_SIGNS, DiffEntry, render_inline_diff, display_path
from .prompts import Selection, build_direct_edit_prompt, build_proposal_prompt
from .proposal.envelope import parse_assistant_output
from .session import Session, SessionOutcome
from .tools.vcs import GitError, GitRepository

APP_HELP = "Send code selections to an external coding assistant and reconcile its edits."

LOGGER = logging.getLogger(__name__)

DEFAULT_CONFIG_NAME = "edit-assist.yaml"

DEFAULT_CONFIG_TEMPLATE: Dict[str, Any] = {
    "project": {
        "repo_root": ".",
    },
    "assistant": {
        "executable": "claude",
        "timeout_ms": 300000,
    },
    "preview": {
        "width": 60,
    },
    "inline_diff": {
        "signs": dict(DEFAULT_SIGNS),
    },
}

app = typer.Typer(help=APP_HELP)


def _copy_config_template() -> Dict[str, Any]:
    """Return a deep copy of the default configuration template."""
    return copy.deepcopy(DEFAULT_CONFIG_TEMPLATE)


def _write_config(config_path: Path, config_data: Dict[str, Any]) -> None:
    """Persist configuration data to disk with stable formatting."""
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with config_path.open("w", encoding="utf-8") as handle:
        yaml.safe_dump(config_data, handle, sort_keys=False)


def _merge(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _merge(base[key], value)
        else:
            base[key] = value
    return base


def load_config(config_path: Path, *, required: bool = False) -> Dict[str, Any]:
    """Load YAML configuration from disk merged over the defaults.

    A missing file yields the defaults unless ``required`` is set.
    """
    config = _copy_config_template()
    if not config_path.exists():
        if required:
            raise typer.BadParameter(f"Config file not found: {config_path}")
        return config

    try:
        with config_path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except yaml.YAMLError as error:
        typer.echo(f"Failed to parse config: {error}")
        raise typer.Exit(code=1) from error

    if not isinstance(data, dict):
        raise typer.BadParameter("Configuration must be a mapping at the top level.")

    return _merge(config, data)


def _resolve_repo_root(config: Dict[str, Any], config_path: Path) -> Path:
    """Resolve the repository root from configuration."""

    project_cfg = config.get("project") or {}
    repo_root_value = project_cfg.get("repo_root", ".")
    repo_root_path = Path(repo_root_value)
    if not repo_root_path.is_absolute():
        repo_root_path = (config_path.parent / repo_root_path).resolve()
    return repo_root_path


def _configure_logging(verbosity: int) -> None:
    """Initialise logging once for the CLI process."""
    if verbosity >= 2:
        level = logging.DEBUG
    elif verbosity == 1:
        level = logging.INFO
    else:
        level = logging.WARNING
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


def _parse_line_range(value: Optional[str]) -> Tuple[Optional[int], Optional[int]]:
    """Parse ``A-B`` or ``A`` into 1-indexed inclusive bounds."""
    if value is None:
        return None, None
    text = value.strip()
    start_text, _, end_text = text.partition("-")
    try:
        start = int(start_text)
        end = int(end_text) if end_text else start
    except ValueError as error:
        raise typer.BadParameter(f"Invalid line range: {value!r} (expected A-B)") from error
    if start < 1 or end < start:
        raise typer.BadParameter(f"Invalid line range: {value!r}")
    return start, end


class TerminalSurface:
    """Editor surface that prints to the terminal."""

    def __init__(self, signs: Optional[Dict[str, str]] = None, cwd: Optional[Path] = None) -> None:
        self.signs = {**DEFAULT_SIGNS, **(signs or {})}
        self.cwd = cwd

    def show_lines(self, title: str, lines: Sequence[str]) -> None:
        typer.echo(f"== {title} ==")
        for line in lines:
            typer.echo(line)

    def place_markers(self, path: Path, entries: Sequence[DiffEntry]) -> None:
        if not entries:
            return
        typer.echo(f"--- {display_path(path, self.cwd)}")
        for line in render_inline_diff(entries, self.signs):
            typer.echo(line)

    def clear_markers(self) -> None:
        return None

    def reload(self, paths: Iterable[Path]) -> None:
        for path in paths:
            LOGGER.debug("File changed on disk: %s", path)


class _Context:
    """Configuration shared by the workflow commands."""

    def __init__(self, config: Optional[str], verbose: int) -> None:
        _configure_logging(verbose)
        self.config_path = Path(config or DEFAULT_CONFIG_NAME)
        self.config = load_config(self.config_path, required=config is not None)
        self.repo_root = _resolve_repo_root(self.config, self.config_path)
        signs = (self.config.get("inline_diff") or {}).get("signs") or {}
        self.surface = TerminalSurface(signs=signs, cwd=self.repo_root)

    def session(self) -> Session:
        try:
            return Session.from_config(self.config, repo_root=self.repo_root, surface=self.surface)
        except ValueError as error:
            raise typer.BadParameter(str(error)) from error


def _sentence(message: str) -> str:
    return message[:1].upper() + message[1:]


def _echo_failures(failures: Sequence[Failure]) -> None:
    for failure in failures:
        typer.echo(failure.render(), err=True)


def _finish(outcome: SessionOutcome) -> None:
    """Print the outcome of a lifecycle call and exit non-zero on failure."""
    if outcome.message:
        typer.echo(_sentence(outcome.message))
    _echo_failures(outcome.failures)
    if outcome.failures:
        raise typer.Exit(code=1)


def _load_selection(file: Path, lines: Optional[str]) -> Selection:
    start, end = _parse_line_range(lines)
    try:
        return Selection.from_file(file, start, end)
    except OSError as error:
        raise typer.BadParameter(f"Cannot read {file}: {error.strerror or error}") from error
    except ValueError as error:
        raise typer.BadParameter(str(error)) from error


def _resolve_proposal(session: Session, yes: bool) -> None:
    if yes or typer.confirm("Apply these changes?", default=False):
        _finish(session.accept())
    else:
        _finish(session.reject())


def _resolve_edits(session: Session, yes: bool) -> None:
    if yes or typer.confirm("Keep these changes?", default=True):
        _finish(session.accept())
    else:
        _finish(session.reject())


def _run(coroutine: Any) -> Optional[SessionOutcome]:
    """Run a session request; ``None`` means the user interrupted it."""
    try:
        return asyncio.run(coroutine)
    except KeyboardInterrupt:
        typer.echo("Assistant run cancelled.", err=True)
        return None


@app.command()
def init(
    config: str = typer.Option(
        DEFAULT_CONFIG_NAME,
        "--config",
        "-c",
        help="Path of the configuration file to write.",
    ),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing configuration file."),
) -> None:
    """Write the default configuration file."""
    config_path = Path(config)
    if config_path.exists() and not force:
        typer.echo(f"Config already exists: {config_path} (use --force to overwrite)")
        raise typer.Exit(code=1)
    _write_config(config_path, _copy_config_template())
    typer.echo(f"Wrote {config_path}")


@app.command()
def propose(
    request: str = typer.Argument(..., help="What the assistant should change."),
    file: Path = typer.Option(..., "--file", "-f", help="File containing the selection."),
    lines: Optional[str] = typer.Option(None, "--lines", "-l", help="Selected line range, e.g. 10-20."),
    yes: bool = typer.Option(False, "--yes", "-y", help="Apply the proposal without asking."),
    timeout_ms: Optional[int] = typer.Option(None, "--timeout-ms", min=1, help="Override the run time budget."),
    config: Optional[str] = typer.Option(
        None,
        "--config",
        "-c",
        help=f"Path to the configuration file (defaults to ./{DEFAULT_CONFIG_NAME} when present).",
    ),
    verbose: int = typer.Option(0, "--verbose", "-v", count=True, help="Increase logging verbosity."),
) -> None:
    """Ask the assistant for a JSON change proposal and apply it on confirmation."""
    context = _Context(config, verbose)
    selection = _load_selection(file, lines)
    session = context.session()
    prompt = build_proposal_prompt(selection, request, cwd=context.repo_root)

    typer.echo("Waiting for the assistant...")
    outcome = _run(session.request_proposal(prompt, timeout_ms=timeout_ms))
    if outcome is None:
        raise typer.Exit(code=130)
    if outcome.cancelled or not outcome.ok:
        _finish(outcome)
        raise typer.Exit(code=1)
    _resolve_proposal(session, yes)


@app.command()
def edit(
    request: str = typer.Argument(..., help="What the assistant should change."),
    file: Path = typer.Option(..., "--file", "-f", help="File containing the selection."),
    lines: Optional[str] = typer.Option(None, "--lines", "-l", help="Selected line range, e.g. 10-20."),
    track: List[Path] = typer.Option(None, "--track", "-t", help="Additional file to snapshot (repeatable)."),
    all_tracked: bool = typer.Option(False, "--all-tracked", help="Snapshot every file tracked by git."),
    yes: bool = typer.Option(False, "--yes", "-y", help="Keep the changes without asking."),
    timeout_ms: Optional[int] = typer.Option(None, "--timeout-ms", min=1, help="Override the run time budget."),
    config: Optional[str] = typer.Option(
        None,
        "--config",
        "-c",
        help=f"Path to the configuration file (defaults to ./{DEFAULT_CONFIG_NAME} when present).",
    ),
    verbose: int = typer.Option(0, "--verbose", "-v", count=True, help="Increase logging verbosity."),
) -> None:
    """Let the assistant edit files directly, then keep or revert what it changed."""
    context = _Context(config, verbose)
    selection = _load_selection(file, lines)
    session = context.session()

    tracked: List[Path] = [selection.filepath, *(track or [])]
    if all_tracked:
        if session.repo is None:
            raise typer.BadParameter("--all-tracked requires a git repository")
        tracked.extend(session.repo.root / path for path in session.repo.list_tracked_paths())

    prompt = build_direct_edit_prompt(selection, request, cwd=context.repo_root)
    typer.echo("Waiting for the assistant...")
    outcome = _run(session.request_direct_edit(prompt, tracked, timeout_ms=timeout_ms))
    if outcome is not None:
        typer.echo(_sentence(outcome.message))
        _echo_failures(outcome.failures)

    if session.pending is None:
        if outcome is None:
            raise typer.Exit(code=130)
        if not outcome.ok:
            raise typer.Exit(code=1)
        return
    _resolve_edits(session, yes)


def _read_proposal_source(source: str) -> str:
    if source == "-":
        return sys.stdin.read()
    path = Path(source)
    try:
        return path.read_text(encoding="utf-8")
    except OSError as error:
        raise typer.BadParameter(f"Cannot read {path}: {error.strerror or error}") from error


@app.command()
def apply(
    proposal_file: str = typer.Argument(..., help="Proposal JSON or assistant output ('-' for stdin)."),
    yes: bool = typer.Option(False, "--yes", "-y", help="Apply without asking."),
    config: Optional[str] = typer.Option(
        None,
        "--config",
        "-c",
        help=f"Path to the configuration file (defaults to ./{DEFAULT_CONFIG_NAME} when present).",
    ),
    verbose: int = typer.Option(0, "--verbose", "-v", count=True, help="Increase logging verbosity."),
) -> None:
    """Apply a saved proposal without running the assistant."""
    context = _Context(config, verbose)
    parsed = parse_assistant_output(_read_proposal_source(proposal_file))
    if parsed.failure is not None:
        _echo_failures([parsed.failure])
        raise typer.Exit(code=1)

    session = context.session()
    _finish(session.open_proposal(parsed.proposal))
    _resolve_proposal(session, yes)


@app.command()
def preview(
    proposal_file: str = typer.Argument(..., help="Proposal JSON or assistant output ('-' for stdin)."),
    config: Optional[str] = typer.Option(
        None,
        "--config",
        "-c",
        help=f"Path to the configuration file (defaults to ./{DEFAULT_CONFIG_NAME} when present).",
    ),
    verbose: int = typer.Option(0, "--verbose", "-v", count=True, help="Increase logging verbosity."),
) -> None:
    """Show what a saved proposal would change without writing anything."""
    context = _Context(config, verbose)
    parsed = parse_assistant_output(_read_proposal_source(proposal_file))
    if parsed.failure is not None:
        _echo_failures([parsed.failure])
        raise typer.Exit(code=1)

    session = context.session()
    _finish(session.open_proposal(parsed.proposal))
    session.reject()


@app.command()
def diff(
    config: Optional[str] = typer.Option(
        None,
        "--config",
        "-c",
        help=f"Path to the configuration file (defaults to ./{DEFAULT_CONFIG_NAME} when present).",
    ),
    verbose: int = typer.Option(0, "--verbose", "-v", count=True, help="Increase logging verbosity."),
) -> None:
    """Show uncommitted changes in the repository."""
    context = _Context(config, verbose)
    try:
        repo = GitRepository.discover(context.repo_root)
        output = repo.diff()
    except GitError as error:
        typer.echo(str(error), err=True)
        raise typer.Exit(code=1) from error

    if not output.strip():
        typer.echo("-- No uncommitted changes --")
        return
    typer.echo(output.rstrip("\n"))


if __name__ == "__main__":
    app()
