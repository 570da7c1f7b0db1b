"""Process, snapshot and git integrations used by the session orchestrator."""

from .runner import AssistantRunner, RunnerSettings, RunOutcome, RunStatus, WorkflowMode
from .snapshot import RevertResult, Snapshot, capture_snapshot, detect_changes, revert_changes
from .vcs import GitError, GitRepository

__all__ = [
    "AssistantRunner",
    "GitError",
    "GitRepository",
    "RevertResult",
    "RunOutcome",
    "RunStatus",
    "RunnerSettings",
    "Snapshot",
    "WorkflowMode",
    "capture_snapshot",
    "detect_changes",
    "revert_changes",
]
