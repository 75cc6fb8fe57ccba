"""Loading of the monorepo config (YAML) and the local link file (JSON)."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

import yaml

from .classifier import DEFAULT_DETECTORS
from .errors import ConfigurationError


DEFAULT_CONFIG_FILE = "monobuild.yaml"
DEFAULT_LINK_FILE = "monobuild-link.json"
DEFAULT_COMMANDS = ["npm run clean", "npm run test"]
DEFAULT_PRODUCTION_ARGS = ["--", "--production"]


def _get(d: Dict, *keys, default=None):
    cur = d
    for k in keys:
        if not isinstance(cur, dict):
            return default
        cur = cur.get(k)
        if cur is None:
            return default
    return cur


def _list(value, what: str) -> list:
    if not isinstance(value, list):
        raise ConfigurationError(f"{what} must be a list, got {type(value).__name__}")
    return value


def _int(value, what: str) -> int:
    # bool is an int subclass, but `true` is never a valid count
    if isinstance(value, bool):
        raise ConfigurationError(f"{what} must be an integer, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{what} must be an integer, got {value!r}") from None


def _commands(value, what: str) -> list:
    commands = _list(value, what)
    for command in commands:
        if isinstance(command, str):
            if not command.strip():
                raise ConfigurationError(f"{what} contains an empty command")
        elif isinstance(command, list):
            if not command:
                raise ConfigurationError(f"{what} contains an empty command")
        else:
            raise ConfigurationError(
                f"{what} entries must be strings or argv lists, got {type(command).__name__}"
            )
    return commands


@dataclass
class ProjectConfig:
    name: str
    folder: Path
    commands: List = field(default_factory=lambda: list(DEFAULT_COMMANDS))
    production_args: List[str] = field(default_factory=lambda: list(DEFAULT_PRODUCTION_ARGS))
    priority: int = 0

    def resolve_commands(self, production: bool = False) -> List:
        commands = list(self.commands)
        if production and commands and self.production_args:
            last = commands[-1]
            if isinstance(last, str):
                commands[-1] = " ".join([last, *self.production_args])
            else:
                commands[-1] = [*last, *self.production_args]
        return commands


@dataclass
class MonorepoConfig:
    path: Path
    projects: List[ProjectConfig]
    link_file: Path
    parallelism: Optional[int] = None
    detectors: List[str] = field(default_factory=lambda: list(DEFAULT_DETECTORS))
    first_match: bool = False


def default_config_path() -> Path:
    return Path(os.getenv("MONOBUILD_CONFIG", DEFAULT_CONFIG_FILE))


def load_config(path: str | Path) -> MonorepoConfig:
    p = Path(path)
    if not p.exists():
        raise ConfigurationError(f"Config file not found: {p}")
    try:
        with open(p, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {p}: {e}") from e
    if not isinstance(raw, dict):
        raise ConfigurationError(f"{p} must contain a mapping at the top level")

    root = p.resolve().parent
    commands = _commands(
        _get(raw, "build", "commands", default=list(DEFAULT_COMMANDS)), "build.commands"
    )
    production_args = _list(
        _get(raw, "build", "production_args", default=list(DEFAULT_PRODUCTION_ARGS)),
        "build.production_args",
    )

    entries = _get(raw, "projects")
    if not entries:
        raise ConfigurationError(f"{p} does not list any projects")
    projects: List[ProjectConfig] = []
    seen: set[str] = set()
    for entry in _list(entries, "projects"):
        if isinstance(entry, str):
            entry = {"name": entry}
        name = _get(entry, "name")
        if not name:
            raise ConfigurationError(f"Project entry without a name in {p}: {entry!r}")
        if name in seen:
            raise ConfigurationError(f"Project {name!r} is listed more than once in {p}")
        seen.add(name)
        projects.append(
            ProjectConfig(
                name=str(name),
                folder=root / str(_get(entry, "folder", default=name)),
                commands=_commands(_get(entry, "commands", default=commands), f"{name}.commands"),
                production_args=production_args,
                priority=_int(_get(entry, "priority", default=0), f"{name}.priority"),
            )
        )

    parallelism = _get(raw, "build", "parallelism")
    return MonorepoConfig(
        path=p,
        projects=projects,
        link_file=root / str(_get(raw, "build", "link_file", default=DEFAULT_LINK_FILE)),
        parallelism=_int(parallelism, "build.parallelism") if parallelism is not None else None,
        detectors=[
            str(d)
            for d in _list(
                _get(raw, "error_detection", "detectors", default=list(DEFAULT_DETECTORS)),
                "error_detection.detectors",
            )
        ],
        first_match=bool(_get(raw, "error_detection", "first_match", default=False)),
    )


def load_link_file(path: str | Path) -> Dict[str, List[str]]:
    """Read the `localLinks` mapping of project name -> names of the projects it depends on."""
    p = Path(path)
    if not p.exists():
        raise ConfigurationError(
            f"File not found: {p}\nGenerate the link file for this monorepo before rebuilding."
        )
    try:
        with open(p, "r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid JSON in {p}: {e}") from e
    links = _get(data, "localLinks", default={})
    if not isinstance(links, dict):
        raise ConfigurationError(f"localLinks in {p} must be a mapping")
    return {str(k): [str(d) for d in _list(v, f"localLinks.{k}")] for k, v in links.items()}
