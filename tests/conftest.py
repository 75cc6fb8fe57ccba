"""Pytest configuration and fixtures for monobuild tests."""

from __future__ import annotations

import json
import sys
import threading
import time
from pathlib import Path

import pytest
import yaml

from monobuild.build_task import BuildTask


def py(code: str) -> list[str]:
    """A build command that runs a snippet with the current interpreter."""
    return [sys.executable, "-c", code]


class Tracker:
    """Records task start/finish events and the peak number of tasks running at once."""

    def __init__(self):
        self.lock = threading.Lock()
        self.events: list[tuple[str, str]] = []
        self.current = 0
        self.peak = 0

    def start(self, task_id: str) -> None:
        with self.lock:
            self.current += 1
            self.peak = max(self.peak, self.current)
            self.events.append(("start", task_id))

    def finish(self, task_id: str) -> None:
        with self.lock:
            self.current -= 1
            self.events.append(("finish", task_id))

    def started(self) -> list[str]:
        return [task_id for kind, task_id in self.events if kind == "start"]

    def index(self, kind: str, task_id: str) -> int:
        return self.events.index((kind, task_id))


class ScriptedTask(BuildTask):
    def __init__(
        self,
        id: str,
        tracker: Tracker,
        exit_code: int = 0,
        stdout: str = "",
        stderr: str = "",
        delay: float = 0.0,
        raises: Exception | None = None,
        **kwargs,
    ):
        super().__init__(id, **kwargs)
        self.tracker = tracker
        self.result = (exit_code, stdout, stderr)
        self.delay = delay
        self.raises = raises

    def invoke(self):
        self.tracker.start(self.id)
        try:
            if self.delay:
                time.sleep(self.delay)
            if self.raises is not None:
                raise self.raises
            return self.result
        finally:
            self.tracker.finish(self.id)


@pytest.fixture
def tracker() -> Tracker:
    return Tracker()


@pytest.fixture
def make_task(tracker):
    def _make(id: str, **kwargs) -> ScriptedTask:
        return ScriptedTask(id, tracker, **kwargs)

    return _make


@pytest.fixture
def make_monorepo(tmp_path):
    """Write a monobuild.yaml (and optionally a link file) with one folder per project."""

    def _make(
        projects: dict[str, list],
        links: dict[str, list[str]] | None = None,
        build: dict | None = None,
        error_detection: dict | None = None,
    ) -> Path:
        entries = []
        for name, commands in projects.items():
            (tmp_path / name).mkdir(exist_ok=True)
            entries.append({"name": name, "folder": name, "commands": commands})
        raw: dict = {"projects": entries, "build": dict(build or {})}
        if error_detection is not None:
            raw["error_detection"] = error_detection
        config_path = tmp_path / "monobuild.yaml"
        config_path.write_text(yaml.safe_dump(raw), encoding="utf-8")
        if links is not None:
            (tmp_path / "monobuild-link.json").write_text(
                json.dumps({"localLinks": links}), encoding="utf-8"
            )
        return config_path

    return _make
