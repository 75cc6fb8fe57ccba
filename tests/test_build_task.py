from __future__ import annotations

from pathlib import Path

from conftest import py

from monobuild.build_task import FailureReason, ProjectBuildTask, TaskState
from monobuild.classifier import ErrorDetector, ReportingMode, build_ruleset
from monobuild.config import ProjectConfig


def _task(tmp_path, commands, production=False, production_args=None, quiet=True):
    project = ProjectConfig(
        name="lib-a",
        folder=tmp_path,
        commands=commands,
        production_args=production_args if production_args is not None else ["--production"],
    )
    detector = ErrorDetector(build_ruleset(), mode=ReportingMode.LOCAL)
    return ProjectBuildTask(project, detector, production=production, quiet=quiet)


def test_successful_build_captures_output(tmp_path):
    task = _task(tmp_path, [py("print('cleaned')"), py("import sys; print('built'); print('note', file=sys.stderr)")])
    outcome = task.run()
    assert outcome.succeeded
    assert outcome.exit_code == 0
    assert outcome.stdout.splitlines() == ["cleaned", "built"]
    assert outcome.stderr.strip() == "note"
    assert outcome.errors == [] and outcome.warnings == []


def test_run_does_not_touch_task_state(tmp_path):
    task = _task(tmp_path, [py("pass")])
    task.run()
    assert task.state is TaskState.PENDING
    assert task.outcome is None


def test_nonzero_exit_fails_and_stops_remaining_commands(tmp_path):
    marker = tmp_path / "second-ran"
    task = _task(
        tmp_path,
        [py("import sys; sys.exit(3)"), py(f"open({str(marker)!r}, 'w').close()")],
    )
    outcome = task.run()
    assert outcome.reason is FailureReason.EXIT_CODE
    assert outcome.exit_code == 3
    assert not marker.exists()


def test_nonzero_exit_fails_even_without_findings(tmp_path):
    outcome = _task(tmp_path, [py("import sys; print('fine'); sys.exit(1)")]).run()
    assert not outcome.succeeded
    assert outcome.errors == []


def test_zero_exit_with_error_output_is_a_failure(tmp_path):
    outcome = _task(
        tmp_path, [py("print(\"src/a.ts(1,7): error TS1005: ';' expected.\")")]
    ).run()
    assert outcome.exit_code == 0
    assert outcome.reason is FailureReason.ERRORS_DETECTED
    assert [f.code for f in outcome.errors] == ["TS1005"]


def test_errors_on_stderr_are_classified(tmp_path):
    outcome = _task(tmp_path, [py("import sys; print('  1 failing', file=sys.stderr)")]).run()
    assert outcome.reason is FailureReason.ERRORS_DETECTED
    assert outcome.errors[0].rule == "mocha"


def test_warnings_do_not_fail_the_build(tmp_path):
    outcome = _task(tmp_path, [py("print('[gulp] Warning - deprecated option')")]).run()
    assert outcome.succeeded
    assert [f.message for f in outcome.warnings] == ["deprecated option"]


def test_missing_binary_is_a_launch_failure(tmp_path):
    outcome = _task(tmp_path, ["monobuild-no-such-binary --flag"]).run()
    assert outcome.reason is FailureReason.LAUNCH_FAILED
    assert outcome.exit_code is None
    assert outcome.stderr


def test_missing_project_folder_is_a_launch_failure(tmp_path):
    task = _task(tmp_path / "gone", [py("pass")])
    assert task.run().reason is FailureReason.LAUNCH_FAILED


def test_commands_run_in_project_folder(tmp_path):
    outcome = _task(tmp_path, [py("import os; print(os.getcwd())")]).run()
    assert Path(outcome.stdout.strip()).resolve() == tmp_path.resolve()


def test_production_flag_extends_last_command(tmp_path):
    show_args = py("import sys; print(sys.argv[1:])")
    task = _task(tmp_path, [py("pass"), show_args], production=True)
    assert task.commands[0] == py("pass")
    assert task.commands[1] == show_args + ["--production"]
    assert task.run().stdout.strip() == "['--production']"


def test_string_commands_are_split(tmp_path):
    task = _task(tmp_path, ["monobuild-no-such-binary 'two words'"])
    assert task._split(task.commands[0]) == ["monobuild-no-such-binary", "two words"]


def test_launch_failure_keeps_output_of_earlier_commands(tmp_path):
    task = _task(
        tmp_path,
        [py("import sys; print('cleaned'); print('rm dist', file=sys.stderr)"), "monobuild-no-such-binary"],
    )
    outcome = task.run()
    assert outcome.reason is FailureReason.LAUNCH_FAILED
    assert outcome.stdout.strip() == "cleaned"
    assert outcome.stderr.startswith("rm dist")
    assert "monobuild-no-such-binary" in outcome.stderr


def test_empty_command_is_a_launch_failure(tmp_path):
    outcome = _task(tmp_path, [py("print('cleaned')"), []]).run()
    assert outcome.reason is FailureReason.LAUNCH_FAILED
    assert outcome.stdout.strip() == "cleaned"
    assert "empty build command" in outcome.stderr
