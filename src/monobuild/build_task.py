from __future__ import annotations

import enum
import os
import shlex
import subprocess
import time
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from .classifier import ErrorDetector, Finding, Severity
from .logging import get_logger


class TaskState(str, enum.Enum):
    PENDING = "pending"
    BLOCKED = "blocked"
    READY = "ready"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (TaskState.SUCCEEDED, TaskState.FAILED)


class FailureReason(str, enum.Enum):
    EXIT_CODE = "exit_code"
    ERRORS_DETECTED = "errors_detected"
    LAUNCH_FAILED = "launch_failed"
    DEPENDENCY_FAILED = "dependency_failed"
    INTERNAL_ERROR = "internal_error"


@dataclass
class TaskOutcome:
    exit_code: Optional[int] = None
    stdout: str = ""
    stderr: str = ""
    errors: List[Finding] = field(default_factory=list)
    warnings: List[Finding] = field(default_factory=list)
    reason: Optional[FailureReason] = None
    blocked_by: Optional[str] = None
    elapsed: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.reason is None


class LaunchError(OSError):
    """A build command could not be started; carries the output of the commands that ran before it."""

    def __init__(self, message: str, stdout: str = "", stderr: str = ""):
        super().__init__(message)
        self.stdout = stdout
        self.stderr = stderr


def skipped_outcome(blocked_by: str) -> TaskOutcome:
    return TaskOutcome(reason=FailureReason.DEPENDENCY_FAILED, blocked_by=blocked_by)


class BuildTask:
    """One unit of work in the task graph.

    Subclasses implement :meth:`invoke`. :meth:`run` turns its result into a
    judged :class:`TaskOutcome`; the scheduler owns ``state`` and ``outcome``.
    """

    def __init__(
        self,
        id: str,
        detector: ErrorDetector | None = None,
        priority: int = 0,
        quiet: bool = False,
    ):
        self.id = id
        self.detector = detector
        self.priority = priority
        self.quiet = quiet
        self.dependency_ids: set[str] = set()
        self.state = TaskState.PENDING
        self.outcome: Optional[TaskOutcome] = None
        self.logger = get_logger(f"monobuild.task.{id}")

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.id!r}, state={self.state.value})"

    @property
    def exit_code(self) -> Optional[int]:
        return self.outcome.exit_code if self.outcome else None

    @property
    def stdout_buffer(self) -> str:
        return self.outcome.stdout if self.outcome else ""

    @property
    def stderr_buffer(self) -> str:
        return self.outcome.stderr if self.outcome else ""

    @property
    def classified_errors(self) -> List[Finding]:
        return self.outcome.errors if self.outcome else []

    @property
    def classified_warnings(self) -> List[Finding]:
        return self.outcome.warnings if self.outcome else []

    def invoke(self) -> Tuple[int, str, str]:
        """Run the build step and return (exit_code, stdout, stderr).

        May raise OSError when the step cannot be launched at all.
        """
        raise NotImplementedError

    def classify(self, stdout: str, stderr: str) -> List[Finding]:
        if self.detector is None:
            return []
        lines = stdout.splitlines() + stderr.splitlines()
        return self.detector.classify(lines)

    def run(self) -> TaskOutcome:
        start = time.monotonic()
        try:
            exit_code, stdout, stderr = self.invoke()
        except OSError as e:
            self.logger.error("Failed to launch build for %s: %s", self.id, e)
            stderr = getattr(e, "stderr", "") or ""
            return TaskOutcome(
                stdout=getattr(e, "stdout", "") or "",
                stderr=stderr + str(e),
                reason=FailureReason.LAUNCH_FAILED,
                elapsed=time.monotonic() - start,
            )

        findings = self.classify(stdout, stderr)
        outcome = TaskOutcome(
            exit_code=exit_code,
            stdout=stdout,
            stderr=stderr,
            errors=[f for f in findings if f.severity is Severity.ERROR],
            warnings=[f for f in findings if f.severity is Severity.WARNING],
            elapsed=time.monotonic() - start,
        )
        if exit_code != 0:
            outcome.reason = FailureReason.EXIT_CODE
        elif outcome.errors:
            outcome.reason = FailureReason.ERRORS_DETECTED
        return outcome


class ProjectBuildTask(BuildTask):
    """Runs a project's build commands in its folder, in order, stopping at the first failure."""

    def __init__(
        self,
        project,
        detector: ErrorDetector | None = None,
        production: bool = False,
        quiet: bool = False,
    ):
        super().__init__(
            project.name, detector=detector, priority=project.priority, quiet=quiet
        )
        self.project = project
        self.production = production
        self.commands = list(project.resolve_commands(production))

    def _split(self, command) -> List[str]:
        # Commands may be given as argv lists already
        if isinstance(command, (list, tuple)):
            return [str(c) for c in command]
        return shlex.split(command, posix=os.name != "nt")

    def invoke(self) -> Tuple[int, str, str]:
        stdout_parts: List[str] = []
        stderr_parts: List[str] = []
        exit_code = 0
        for command in self.commands:
            argv = self._split(command)
            if not self.quiet:
                self.logger.info("[%s] > %s", self.id, shlex.join(argv))
            if not argv:
                raise LaunchError(
                    "empty build command", "".join(stdout_parts), "".join(stderr_parts)
                )
            try:
                proc = subprocess.run(
                    argv,
                    cwd=str(self.project.folder),
                    capture_output=True,
                    text=True,
                    encoding="utf-8",
                    errors="replace",
                )
            except OSError as e:
                raise LaunchError(
                    str(e), "".join(stdout_parts), "".join(stderr_parts)
                ) from e
            stdout_parts.append(proc.stdout or "")
            stderr_parts.append(proc.stderr or "")
            exit_code = proc.returncode
            if exit_code != 0:
                break
        return exit_code, "".join(stdout_parts), "".join(stderr_parts)

