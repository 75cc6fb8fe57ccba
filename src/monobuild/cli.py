from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from dotenv import load_dotenv

from .build_task import ProjectBuildTask
from .classifier import ErrorDetector, ReportingMode, build_ruleset, discover_rules
from .config import MonorepoConfig, default_config_path, load_config, load_link_file
from .core import RunResult, TaskRunner
from .errors import ConfigurationError
from .logging import configure_run_logging, get_logger
from .report import render_failures, render_summary

load_dotenv()

app = typer.Typer(add_completion=False, help="Parallel monorepo build orchestrator CLI")
log = get_logger("monobuild.cli")


def _fail_config(e: ConfigurationError) -> None:
    typer.secho(f"ERROR: {e}", fg=typer.colors.RED, err=True)
    raise typer.Exit(code=2)


def build_runner(
    cfg: MonorepoConfig,
    links: dict[str, list[str]],
    mode: ReportingMode = ReportingMode.LOCAL,
    quiet: bool = False,
    production: bool = False,
    parallelism: int | None = None,
    first_match: bool | None = None,
) -> TaskRunner:
    """Create one build task per project, then wire up the local link dependencies."""
    detector = ErrorDetector(
        build_ruleset(cfg.detectors),
        mode=mode,
        first_match=cfg.first_match if first_match is None else first_match,
    )
    runner = TaskRunner(
        concurrency_limit=parallelism if parallelism is not None else cfg.parallelism,
        quiet=quiet,
    )
    for project in cfg.projects:
        runner.add_task(
            ProjectBuildTask(project, detector, production=production, quiet=quiet)
        )
    for project_name, dependencies in links.items():
        runner.add_dependencies(project_name, dependencies)
    return runner


def _print_result(result: RunResult) -> None:
    for line in render_failures(result):
        typer.echo(line)
    typer.echo(render_summary(result))


@app.command()
def rebuild(
    config: Optional[Path] = typer.Option(None, help="Path to monorepo YAML config"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Only show errors and overall build status"),
    production: bool = typer.Option(False, "--production", help="Perform a production build"),
    vso: bool = typer.Option(
        False, "--vso", help="Display error messages in the format expected by Visual Studio Online"
    ),
    parallelism: Optional[int] = typer.Option(
        None, "--parallelism", "-p", help="Max concurrent builds (default: CPU count)"
    ),
    first_match: Optional[bool] = typer.Option(
        None, "--first-match/--all-matches", help="Stop at the first matching rule per output line"
    ),
    log_file: Optional[Path] = typer.Option(None, help="Also write logs to this file"),
):
    """Clean and rebuild every project, in parallel where the dependency graph allows."""
    configure_run_logging(quiet=quiet, log_file=log_file)
    typer.echo('Starting "monobuild rebuild"\n')
    try:
        cfg = load_config(config or default_config_path())
        links = load_link_file(cfg.link_file)
        log.info("Loaded %d projects from %s", len(cfg.projects), cfg.path)
        runner = build_runner(
            cfg,
            links,
            mode=ReportingMode.VSO if vso else ReportingMode.LOCAL,
            quiet=quiet,
            production=production,
            parallelism=parallelism,
            first_match=first_match,
        )
        result = runner.execute()
    except ConfigurationError as e:
        _fail_config(e)

    _print_result(result)
    if not result.success:
        typer.secho("monobuild rebuild - Errors!", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    typer.secho("monobuild rebuild - Done!", fg=typer.colors.GREEN)


@app.command("projects")
def list_projects(
    config: Optional[Path] = typer.Option(None, help="Path to monorepo YAML config"),
):
    """List configured projects and the projects they depend on."""
    try:
        cfg = load_config(config or default_config_path())
        links = load_link_file(cfg.link_file) if cfg.link_file.exists() else {}
    except ConfigurationError as e:
        _fail_config(e)
    for project in cfg.projects:
        deps = links.get(project.name, [])
        suffix = f" -> {', '.join(deps)}" if deps else ""
        typer.echo(f"- {project.name}{suffix}")


@app.command("detectors")
def list_detectors():
    """List discovered detector modules and their rules."""
    specs = discover_rules()
    if not specs:
        typer.echo("No detectors discovered.")
        raise typer.Exit(code=0)
    typer.echo("Discovered detectors:")
    for name in sorted(specs.keys()):
        rules = ", ".join(f"{r.name} ({r.severity.value})" for r in specs[name])
        typer.echo(f"- {name}: {rules}")


def main():  # pragma: no cover
    app()


if __name__ == "__main__":  # pragma: no cover
    main()
