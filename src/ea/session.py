"""Session orchestration for proposal and direct-edit workflows.

A :class:`Session` owns the runner, the pre-run snapshot and whatever is
awaiting the user's decision. Only one invocation is unresolved at a time:
a new request is refused until the previous one has been accepted or
rejected. While a decision is pending the lifecycle is driven by
:meth:`Session.accept`, :meth:`Session.reject` and :meth:`Session.cancel`.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from .editor import EditorSurface, NullSurface
from .failures import Failure, FailureKind
from .presenter import (
    DEFAULT_RULE_WIDTH,
    DiffEntry,
    diff_record,
    render_change_summary,
    render_proposal_preview,
)
from .proposal.applier import ChangePreview, apply_proposal, preview_change
from .structured import ChangeRecord, ChangeStatus, Proposal
from .tools.runner import AssistantRunner, RunnerSettings, RunOutcome, WorkflowMode
from .tools.snapshot import Snapshot, capture_snapshot, detect_changes, revert_changes
from .tools.vcs import GitError, GitRepository

LOGGER = logging.getLogger(__name__)


class SessionStateError(RuntimeError):
    """Raised when a lifecycle call does not match the session's phase."""


class SessionPhase(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    AWAITING_DECISION = "awaiting-decision"


@dataclass(slots=True)
class PendingProposal:
    """A parsed proposal waiting to be applied or discarded."""

    proposal: Proposal
    previews: List[Union[ChangePreview, Failure]]


@dataclass(slots=True)
class PendingEdits:
    """Files the assistant changed directly, waiting to be kept or reverted."""

    snapshot: Snapshot
    changes: List[ChangeRecord]
    diffs: Dict[Path, List[DiffEntry]] = field(default_factory=dict)


Pending = Union[PendingProposal, PendingEdits]


@dataclass(slots=True)
class SessionOutcome:
    """What a session call did, with every failure kept as data."""

    mode: WorkflowMode
    message: str = ""
    failures: List[Failure] = field(default_factory=list)
    proposal: Optional[Proposal] = None
    changes: List[ChangeRecord] = field(default_factory=list)
    cancelled: bool = False

    @property
    def ok(self) -> bool:
        return not self.failures and not self.cancelled

    def messages(self) -> List[str]:
        return [failure.render() for failure in self.failures]


def _task_cancelling() -> bool:
    task = asyncio.current_task()
    return task is not None and task.cancelling() > 0


class Session:
    """Drive one assistant invocation at a time through to a user decision."""

    def __init__(
        self,
        runner: AssistantRunner,
        *,
        repo_root: Path,
        surface: EditorSurface | None = None,
        repo: GitRepository | None = None,
        preview_width: int = DEFAULT_RULE_WIDTH,
    ) -> None:
        self.runner = runner
        self.repo_root = Path(repo_root).resolve()
        self.surface: EditorSurface = surface or NullSurface()
        self.repo = repo
        self.preview_width = preview_width
        self._snapshot: Snapshot | None = None
        self._pending: Pending | None = None

    @classmethod
    def from_config(
        cls,
        config: Mapping[str, Any],
        *,
        repo_root: Path,
        surface: EditorSurface | None = None,
    ) -> "Session":
        """Build a session whose runner and repository come from ``config``."""

        settings = RunnerSettings.from_config(config, repo_root=repo_root)
        try:
            repo: GitRepository | None = GitRepository.discover(repo_root)
        except GitError as error:
            LOGGER.info("No git repository for %s; added files will not be detected (%s)", repo_root, error)
            repo = None
        preview_cfg = config.get("preview") or {}
        width = int(preview_cfg.get("width") or DEFAULT_RULE_WIDTH)
        return cls(AssistantRunner(settings), repo_root=repo_root, surface=surface, repo=repo, preview_width=width)

    # ------------------------------------------------------------- queries
    @property
    def phase(self) -> SessionPhase:
        if self.runner.is_running or self._snapshot is not None:
            return SessionPhase.RUNNING
        if self._pending is not None:
            return SessionPhase.AWAITING_DECISION
        return SessionPhase.IDLE

    @property
    def pending(self) -> Pending | None:
        return self._pending

    # ------------------------------------------------------------ requests
    def _refuse(self, mode: WorkflowMode) -> SessionOutcome | None:
        if self.runner.is_running or self._snapshot is not None:
            message = "assistant is already running"
        elif self._pending is not None:
            message = "previous changes are still awaiting accept or reject"
        else:
            return None
        LOGGER.warning("Refusing new %s request: %s", mode.value, message)
        return SessionOutcome(mode, failures=[Failure(FailureKind.BUSY, message)])

    def open_proposal(self, proposal: Proposal) -> SessionOutcome:
        """Stage an already-parsed proposal for accept/reject."""

        refused = self._refuse(WorkflowMode.PROPOSAL)
        if refused is not None:
            return refused
        return self._stage_proposal(proposal)

    def _stage_proposal(self, proposal: Proposal) -> SessionOutcome:
        previews = [preview_change(change, root=self.repo_root) for change in proposal.changes]
        self._pending = PendingProposal(proposal=proposal, previews=previews)
        self.surface.show_lines(
            "Proposed changes",
            render_proposal_preview(proposal, previews, cwd=self.repo_root, width=self.preview_width),
        )
        count = len(proposal.changes)
        return SessionOutcome(
            WorkflowMode.PROPOSAL,
            message=f"{count} change{'s' if count != 1 else ''} proposed",
            proposal=proposal,
        )

    async def _await_run(self, future: "asyncio.Future[RunOutcome]") -> RunOutcome | None:
        """Wait for the run; ``None`` means it was cancelled."""

        try:
            return await future
        except asyncio.CancelledError:
            self.runner.cancel()
            if _task_cancelling():
                raise
            return None

    async def request_proposal(self, prompt: str, *, timeout_ms: int | None = None) -> SessionOutcome:
        """Ask the assistant for a structured proposal and stage it for review."""

        mode = WorkflowMode.PROPOSAL
        refused = self._refuse(mode)
        if refused is not None:
            return refused

        run = await self._await_run(self.runner.start(prompt, mode=mode, timeout_ms=timeout_ms))
        if run is None:
            return SessionOutcome(mode, message="assistant run cancelled", cancelled=True)
        if run.failure is not None:
            return SessionOutcome(mode, failures=[run.failure])
        if run.proposal is None:
            return SessionOutcome(mode, failures=[Failure(FailureKind.PARSE, "assistant returned no proposal")])
        return self._stage_proposal(run.proposal)

    async def request_direct_edit(
        self,
        prompt: str,
        tracked_paths: Iterable[Path | str],
        *,
        timeout_ms: int | None = None,
    ) -> SessionOutcome:
        """Let the assistant edit files itself, then stage what it changed.

        Changes are collected even when the run fails or is cancelled so that
        partial edits can still be reverted.
        """

        mode = WorkflowMode.DIRECT_EDIT
        refused = self._refuse(mode)
        if refused is not None:
            return refused

        snapshot = capture_snapshot(tracked_paths, repo=self.repo)
        self._snapshot = snapshot
        try:
            run = await self._await_run(self.runner.start(prompt, mode=mode, timeout_ms=timeout_ms))
        finally:
            self._snapshot = None
            if _task_cancelling():
                self._collect_edits(snapshot, [])

        if run is None:
            outcome = self._collect_edits(snapshot, [])
            outcome.cancelled = True
            outcome.message = f"assistant run cancelled; {outcome.message}"
            return outcome
        failures = [run.failure] if run.failure is not None else []
        return self._collect_edits(snapshot, failures)

    def _collect_edits(self, snapshot: Snapshot, failures: List[Failure]) -> SessionOutcome:
        mode = WorkflowMode.DIRECT_EDIT
        changes = detect_changes(snapshot, repo=self.repo)
        if not changes:
            return SessionOutcome(mode, message="no files were changed", failures=failures)

        diffs = {
            record.filepath: diff_record(record)
            for record in changes
            if record.status is not ChangeStatus.DELETED
        }
        self._pending = PendingEdits(snapshot=snapshot, changes=changes, diffs=diffs)
        self.surface.reload(record.filepath for record in changes)
        for path, entries in diffs.items():
            self.surface.place_markers(path, entries)
        self.surface.show_lines("Assistant changes", render_change_summary(changes, cwd=self.repo_root))
        count = len(changes)
        return SessionOutcome(
            mode,
            message=f"{count} file{'s' if count != 1 else ''} changed",
            failures=failures,
            changes=changes,
        )

    # ----------------------------------------------------------- lifecycle
    def accept(self) -> SessionOutcome:
        """Apply the pending proposal, or keep the assistant's direct edits."""

        pending = self._pending
        if pending is None:
            raise SessionStateError("No pending changes to accept")

        if isinstance(pending, PendingProposal):
            self._pending = None
            result = apply_proposal(pending.proposal, root=self.repo_root)
            self.surface.reload(result.written)
            message = "changes applied" if result.ok else "some changes could not be applied"
            return SessionOutcome(
                WorkflowMode.PROPOSAL,
                message=message,
                failures=list(result.failures),
                proposal=pending.proposal,
            )

        self._pending = None
        self.surface.clear_markers()
        return SessionOutcome(WorkflowMode.DIRECT_EDIT, message="changes kept", changes=pending.changes)

    def reject(self) -> SessionOutcome:
        """Discard the pending proposal, or revert the assistant's direct edits.

        A revert that fails for any file keeps the pending edits so it can be
        retried; the change list is recomputed before every attempt.
        """

        pending = self._pending
        if pending is None:
            raise SessionStateError("No pending changes to reject")

        if isinstance(pending, PendingProposal):
            self._pending = None
            return SessionOutcome(WorkflowMode.PROPOSAL, message="proposal discarded", proposal=pending.proposal)

        self.surface.clear_markers()
        changes = detect_changes(pending.snapshot, repo=self.repo)
        result = revert_changes(changes)
        self.surface.reload(record.filepath for record in changes)
        if result.ok:
            self._pending = None
            return SessionOutcome(WorkflowMode.DIRECT_EDIT, message="changes reverted", changes=changes)

        pending.changes = changes
        LOGGER.error("Revert failed for %d file(s); changes kept for retry.", len(result.failures))
        return SessionOutcome(
            WorkflowMode.DIRECT_EDIT,
            message="some files could not be reverted",
            failures=list(result.failures),
            changes=changes,
        )

    def cancel(self) -> bool:
        """Interrupt the running assistant; returns ``False`` when none is running."""

        if not self.runner.is_running:
            LOGGER.info("Cancel requested but the assistant is not running.")
            return False
        return self.runner.cancel()


__all__ = [
    "PendingEdits",
    "PendingProposal",
    "Session",
    "SessionOutcome",
    "SessionPhase",
    "SessionStateError",
]
