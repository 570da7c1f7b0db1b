"""Supervise one external assistant process at a time.

``AssistantRunner.start`` returns an :class:`asyncio.Future` that resolves
exactly once with a :class:`RunOutcome`. Process exit, the timeout timer and
``cancel()`` race to settle it; the first one wins and the others become
no-ops. Cancellation cancels the future instead of resolving it.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable, List, Mapping, Optional

from ..failures import Failure, FailureKind
from ..proposal.envelope import parse_assistant_output
from ..structured import Proposal
from ..utils.telemetry import emit_event

LOGGER = logging.getLogger(__name__)

DEFAULT_EXECUTABLE = "claude"
DEFAULT_TIMEOUT_MS = 300_000


class RunStatus(str, Enum):
    """Lifecycle of the assistant invocation."""

    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"


class WorkflowMode(str, Enum):
    """How the assistant is invoked and how its output is interpreted."""

    PROPOSAL = "proposal"
    DIRECT_EDIT = "direct-edit"

    def command(self, executable: str, prompt: str) -> List[str]:
        """Build the argv; the prompt is always passed as an argument."""

        command = [executable, "-p", prompt]
        if self is WorkflowMode.PROPOSAL:
            command.extend(["--output-format", "json", "--tools", ""])
        return command


@dataclass(slots=True)
class RunnerSettings:
    """Executable, time budget and working directory for assistant runs."""

    executable: str = DEFAULT_EXECUTABLE
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    cwd: Optional[Path] = None

    @classmethod
    def from_config(cls, config: Mapping[str, Any], *, repo_root: Path | None = None) -> "RunnerSettings":
        assistant_cfg = config.get("assistant") or {}
        executable = str(assistant_cfg.get("executable") or DEFAULT_EXECUTABLE).strip() or DEFAULT_EXECUTABLE
        timeout_value = assistant_cfg.get("timeout_ms", DEFAULT_TIMEOUT_MS)
        try:
            timeout_ms = int(timeout_value)
        except (TypeError, ValueError) as error:
            raise ValueError(f"assistant.timeout_ms must be an integer, got {timeout_value!r}") from error
        if timeout_ms <= 0:
            raise ValueError("assistant.timeout_ms must be positive")
        return cls(executable=executable, timeout_ms=timeout_ms, cwd=repo_root)


@dataclass(slots=True)
class RunOutcome:
    """Terminal result of one assistant run.

    ``proposal`` is populated only for successful proposal-mode runs.
    """

    mode: WorkflowMode
    status: RunStatus
    stdout: str = ""
    stderr: str = ""
    exit_code: Optional[int] = None
    elapsed: float = 0.0
    proposal: Optional[Proposal] = None
    failure: Optional[Failure] = None

    @property
    def ok(self) -> bool:
        return self.failure is None


def _stderr_message(stderr: str) -> str:
    return "\n".join(line for line in stderr.splitlines() if line)


def _terminate(process: asyncio.subprocess.Process | None) -> None:
    if process is None or process.returncode is not None:
        return
    try:
        process.kill()
    except ProcessLookupError:
        pass


class AssistantRunner:
    """Spawn the assistant with a bounded lifetime and report how it ended."""

    def __init__(
        self,
        settings: RunnerSettings | None = None,
        *,
        which: Callable[[str], Optional[str]] = shutil.which,
    ) -> None:
        self.settings = settings or RunnerSettings()
        self._which = which
        self._status = RunStatus.IDLE
        self._mode: WorkflowMode | None = None
        self._future: asyncio.Future[RunOutcome] | None = None
        self._process: asyncio.subprocess.Process | None = None
        self._timer: asyncio.TimerHandle | None = None
        self._tasks: set[asyncio.Task[None]] = set()
        self._started_at = 0.0

    @property
    def status(self) -> RunStatus:
        return self._status

    @property
    def is_running(self) -> bool:
        return self._status is RunStatus.RUNNING

    def start(
        self,
        prompt: str,
        *,
        mode: WorkflowMode = WorkflowMode.PROPOSAL,
        timeout_ms: int | None = None,
    ) -> asyncio.Future[RunOutcome]:
        """Spawn the assistant and return the future for its outcome.

        A request made while a run is active, or when the executable cannot be
        found, gets an already-resolved future and leaves the current run
        untouched.
        """

        loop = asyncio.get_running_loop()
        future: asyncio.Future[RunOutcome] = loop.create_future()

        if self._status is RunStatus.RUNNING:
            LOGGER.warning("Assistant is already running; rejecting new request.")
            future.set_result(
                RunOutcome(
                    mode=mode,
                    status=RunStatus.ERROR,
                    failure=Failure(FailureKind.BUSY, "assistant is already running"),
                )
            )
            return future

        executable = self._which(self.settings.executable)
        if executable is None:
            LOGGER.error("Assistant executable not found: %s", self.settings.executable)
            future.set_result(
                RunOutcome(
                    mode=mode,
                    status=RunStatus.ERROR,
                    failure=Failure(FailureKind.PROCESS, f"assistant executable not found: {self.settings.executable}"),
                )
            )
            return future

        budget_ms = timeout_ms if timeout_ms is not None else self.settings.timeout_ms
        self._status = RunStatus.RUNNING
        self._mode = mode
        self._future = future
        self._started_at = loop.time()
        self._timer = loop.call_later(budget_ms / 1000, self._on_timeout, future, budget_ms)
        task = loop.create_task(self._supervise(mode.command(executable, prompt), future))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        emit_event("assistant.spawn", mode=mode, executable=executable, timeout_ms=budget_ms)
        return future

    def cancel(self) -> bool:
        """Stop the active run without resolving it; status returns to idle.

        The child is killed asynchronously, so files it was writing may still
        change briefly after this returns. Returns ``True`` when a run was
        interrupted.
        """

        future = self._future
        interrupted = self._status is RunStatus.RUNNING
        _terminate(self._process)
        self._release()
        self._status = RunStatus.IDLE
        if future is not None and not future.done():
            future.cancel()
        if interrupted:
            LOGGER.info("Assistant run cancelled.")
            emit_event("assistant.cancel")
        return interrupted

    async def join(self) -> None:
        """Wait until every spawned process has been reaped."""

        if self._tasks:
            await asyncio.gather(*tuple(self._tasks), return_exceptions=True)

    # ----------------------------------------------------------- internals
    async def _supervise(self, command: List[str], future: asyncio.Future[RunOutcome]) -> None:
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                cwd=str(self.settings.cwd) if self.settings.cwd is not None else None,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as error:
            LOGGER.error("Failed to start assistant: %s", error)
            self._settle(
                future,
                self._outcome(RunStatus.ERROR, failure=Failure(FailureKind.PROCESS, f"failed to start assistant: {error}")),
            )
            return

        if future.done():
            # Cancelled or timed out while spawning.
            _terminate(process)
            await process.wait()
            return

        self._process = process
        stdout_bytes, stderr_bytes = await process.communicate()
        self._on_exit(
            future,
            process.returncode,
            stdout_bytes.decode("utf-8", errors="replace"),
            stderr_bytes.decode("utf-8", errors="replace"),
        )

    def _outcome(self, status: RunStatus, **fields: Any) -> RunOutcome:
        elapsed = asyncio.get_running_loop().time() - self._started_at
        return RunOutcome(mode=self._mode or WorkflowMode.PROPOSAL, status=status, elapsed=elapsed, **fields)

    def _on_exit(self, future: asyncio.Future[RunOutcome], exit_code: int | None, stdout: str, stderr: str) -> None:
        if future.done() or future is not self._future:
            LOGGER.debug("Ignoring exit of an assistant run that already settled.")
            return

        if exit_code != 0:
            message = _stderr_message(stderr) or f"assistant exited with code {exit_code}"
            LOGGER.error("Assistant failed: %s", message)
            self._settle(
                future,
                self._outcome(
                    RunStatus.ERROR,
                    stdout=stdout,
                    stderr=stderr,
                    exit_code=exit_code,
                    failure=Failure(FailureKind.PROCESS, message),
                ),
            )
            return

        outcome = self._outcome(RunStatus.COMPLETED, stdout=stdout, stderr=stderr, exit_code=exit_code)
        if outcome.mode is WorkflowMode.PROPOSAL:
            parsed = parse_assistant_output(stdout)
            if parsed.ok:
                outcome.proposal = parsed.proposal
            else:
                LOGGER.error("Assistant output is not a valid proposal.")
                outcome.status = RunStatus.ERROR
                outcome.failure = parsed.failure
        self._settle(future, outcome)

    def _on_timeout(self, future: asyncio.Future[RunOutcome], budget_ms: int) -> None:
        if future.done() or future is not self._future:
            return
        _terminate(self._process)
        outcome = self._outcome(RunStatus.ERROR)
        LOGGER.error("Assistant timed out after %.1f seconds (budget %d ms).", outcome.elapsed, budget_ms)
        outcome.failure = Failure(FailureKind.TIMEOUT, f"no result after {outcome.elapsed:.1f} seconds")
        self._settle(future, outcome)

    def _settle(self, future: asyncio.Future[RunOutcome], outcome: RunOutcome) -> None:
        if future.done() or future is not self._future:
            return
        self._release()
        self._status = outcome.status
        future.set_result(outcome)
        emit_event(
            "assistant.settled",
            mode=outcome.mode,
            status=outcome.status,
            exit_code=outcome.exit_code,
            elapsed=round(outcome.elapsed, 3),
            failure=outcome.failure.kind if outcome.failure else None,
        )

    def _release(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
        self._timer = None
        self._process = None
        self._future = None


__all__ = [
    "AssistantRunner",
    "DEFAULT_EXECUTABLE",
    "DEFAULT_TIMEOUT_MS",
    "RunOutcome",
    "RunStatus",
    "RunnerSettings",
    "WorkflowMode",
]
