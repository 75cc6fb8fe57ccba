"""Parallel, dependency-aware build orchestrator for monorepos.

Provides build tasks, a task graph scheduler, rule-based output classification, and a Typer CLI.
"""

from .build_task import BuildTask, ProjectBuildTask, TaskState  # re-export for convenience
from .classifier import ErrorDetector, Finding, ReportingMode, Severity, classify, rule
from .core import RunResult, TaskRunner
from .errors import ConfigurationError

__all__ = [
    "BuildTask",
    "ProjectBuildTask",
    "TaskState",
    "ErrorDetector",
    "Finding",
    "ReportingMode",
    "Severity",
    "classify",
    "rule",
    "RunResult",
    "TaskRunner",
    "ConfigurationError",
]
