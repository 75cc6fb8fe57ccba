from __future__ import annotations

from typing import List

from .build_task import FailureReason
from .core import RunResult, TaskReport


def describe_failure(report: TaskReport) -> str:
    outcome = report.outcome
    reason = outcome.reason
    if reason is FailureReason.DEPENDENCY_FAILED:
        return f"{report.id}: skipped because {outcome.blocked_by} failed"
    if reason is FailureReason.LAUNCH_FAILED:
        return f"{report.id}: could not be launched ({outcome.stderr.strip()})"
    if reason is FailureReason.EXIT_CODE:
        return f"{report.id}: exited with code {outcome.exit_code}"
    if reason is FailureReason.ERRORS_DETECTED:
        n = len(outcome.errors)
        return f"{report.id}: {n} error{'s' if n != 1 else ''} detected in output"
    if reason is FailureReason.INTERNAL_ERROR:
        return f"{report.id}: internal error ({outcome.stderr.strip()})"
    return report.id


def render_failures(result: RunResult) -> List[str]:
    # Findings start at column 0 so CI logging commands are picked up.
    lines: List[str] = []
    for report in result.failed + result.skipped:
        lines.append(describe_failure(report))
        lines.extend(f.rendered for f in report.outcome.errors)
    warned = [r for r in result.tasks.values() if r.outcome.warnings]
    for report in warned:
        lines.append(f"{report.id}: {len(report.outcome.warnings)} warning(s)")
        lines.extend(f.rendered for f in report.outcome.warnings)
    return lines


def render_summary(result: RunResult) -> str:
    return (
        f"{len(result.succeeded)} succeeded, {len(result.failed)} failed, "
        f"{len(result.skipped)} skipped in {result.elapsed:.2f}s"
    )
