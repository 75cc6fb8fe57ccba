from __future__ import annotations

import heapq
import os
import time
from collections import deque
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from .build_task import (
    BuildTask,
    FailureReason,
    TaskOutcome,
    TaskState,
    skipped_outcome,
)
from .errors import ConfigurationError
from .logging import get_logger


def default_parallelism() -> int:
    return os.cpu_count() or 1


def find_cycle(nodes: Iterable[str], edges: Dict[str, Iterable[str]]) -> Optional[List[str]]:
    """Return one dependency cycle as a closed path (``[a, b, a]``), or None.

    Nodes are visited in the given order so the reported cycle is reproducible.
    """
    nodes = list(nodes)
    white, grey, black = 0, 1, 2
    color = {n: white for n in nodes}
    for root in nodes:
        if color[root] != white:
            continue
        color[root] = grey
        path = [root]
        stack = [iter(sorted(edges.get(root, ()), key=nodes.index))]
        while stack:
            nxt = next(stack[-1], None)
            if nxt is None:
                stack.pop()
                color[path.pop()] = black
                continue
            if color[nxt] == grey:
                return path[path.index(nxt):] + [nxt]
            if color[nxt] == white:
                color[nxt] = grey
                path.append(nxt)
                stack.append(iter(sorted(edges.get(nxt, ()), key=nodes.index)))
    return None


@dataclass
class TaskReport:
    id: str
    state: TaskState
    outcome: TaskOutcome

    @property
    def skipped(self) -> bool:
        return self.outcome.reason is FailureReason.DEPENDENCY_FAILED


@dataclass
class RunResult:
    tasks: Dict[str, TaskReport]
    elapsed: float

    @property
    def success(self) -> bool:
        return all(t.state is TaskState.SUCCEEDED for t in self.tasks.values())

    @property
    def succeeded(self) -> List[TaskReport]:
        return [t for t in self.tasks.values() if t.state is TaskState.SUCCEEDED]

    @property
    def failed(self) -> List[TaskReport]:
        """Tasks that failed on their own, i.e. the root causes."""
        return [
            t for t in self.tasks.values() if t.state is TaskState.FAILED and not t.skipped
        ]

    @property
    def skipped(self) -> List[TaskReport]:
        return [t for t in self.tasks.values() if t.skipped]

    @property
    def failed_ids(self) -> List[str]:
        return [t.id for t in self.tasks.values() if t.state is TaskState.FAILED]


class TaskRunner:
    """Runs a graph of build tasks in parallel, never starting a task before its dependencies.

    Tasks are added first, then their dependencies, then :meth:`execute` runs the
    whole graph once. A failed task fails all of its transitive dependents without
    running them; independent tasks keep going.
    """

    def __init__(self, concurrency_limit: int | None = None, quiet: bool = False):
        if concurrency_limit is None:
            concurrency_limit = default_parallelism()
        if concurrency_limit < 1:
            raise ConfigurationError(
                f"Parallelism must be a positive integer, got {concurrency_limit}"
            )
        self.concurrency_limit = concurrency_limit
        self.quiet = quiet
        self.tasks: Dict[str, BuildTask] = {}
        self.edges: Dict[str, set[str]] = {}
        self._order: Dict[str, int] = {}
        self._executed = False
        self.logger = get_logger("monobuild.runner")

    def add_task(self, task: BuildTask) -> None:
        if task.id in self.tasks:
            raise ConfigurationError(f"A task with id {task.id!r} has already been added")
        self._order[task.id] = len(self._order)
        self.tasks[task.id] = task
        self.edges[task.id] = set()

    def add_dependencies(self, task_id: str, dependency_ids: Iterable[str]) -> None:
        if task_id not in self.tasks:
            raise ConfigurationError(f"Cannot add dependencies to unknown task {task_id!r}")
        dependency_ids = list(dependency_ids)
        unknown = [d for d in dependency_ids if d not in self.tasks]
        if unknown:
            raise ConfigurationError(
                f"Task {task_id!r} depends on unknown tasks: " + ", ".join(unknown)
            )
        if task_id in dependency_ids:
            raise ConfigurationError(f"Task {task_id!r} cannot depend on itself")
        self.edges[task_id].update(dependency_ids)
        self.tasks[task_id].dependency_ids.update(dependency_ids)

    def validate(self) -> None:
        for task_id, deps in self.edges.items():
            orphans = sorted(d for d in deps if d not in self.tasks)
            if orphans:
                raise ConfigurationError(
                    f"Task {task_id!r} depends on unknown tasks: " + ", ".join(orphans)
                )
        cycle = find_cycle(self.tasks.keys(), self.edges)
        if cycle:
            raise ConfigurationError("Dependency cycle detected: " + " -> ".join(cycle))

    def _status(self, msg: str, *args) -> None:
        if not self.quiet:
            self.logger.info(msg, *args)

    def _push_ready(self, ready: list, task_id: str) -> None:
        task = self.tasks[task_id]
        task.state = TaskState.READY
        heapq.heappush(ready, (-task.priority, self._order[task_id], task_id))

    def _start(self, pool: ThreadPoolExecutor, task_id: str) -> Future:
        task = self.tasks[task_id]
        task.state = TaskState.RUNNING
        self._status("Start: %s", task_id)
        return pool.submit(task.run)

    def _finish(self, task_id: str, fut: Future) -> TaskOutcome:
        try:
            return fut.result()
        except Exception as e:  # noqa: BLE001
            self.logger.exception("Task %s raised an unexpected error", task_id)
            return TaskOutcome(stderr=str(e), reason=FailureReason.INTERNAL_ERROR)

    def _cascade(self, root_id: str, dependents: Dict[str, List[str]]) -> None:
        queue = deque(dependents[root_id])
        while queue:
            dep_id = queue.popleft()
            task = self.tasks[dep_id]
            if task.state.terminal:
                continue
            task.state = TaskState.FAILED
            task.outcome = skipped_outcome(root_id)
            self._status("Skip: %s (dependency %s failed)", dep_id, root_id)
            queue.extend(dependents[dep_id])

    def execute(self) -> RunResult:
        if self._executed:
            raise ConfigurationError("A task graph can only be executed once")
        self.validate()
        self._executed = True
        start = time.monotonic()

        dependents: Dict[str, List[str]] = {t: [] for t in self.tasks}
        for task_id in self.tasks:
            for dep in sorted(self.edges[task_id], key=self._order.__getitem__):
                dependents[dep].append(task_id)
        for deps in dependents.values():
            deps.sort(key=self._order.__getitem__)

        remaining = {t: len(self.edges[t]) for t in self.tasks}
        ready: list = []
        for task_id, task in self.tasks.items():
            if remaining[task_id] == 0:
                self._push_ready(ready, task_id)
            else:
                task.state = TaskState.BLOCKED

        self.logger.info(
            "Executing %d tasks (parallelism=%d)", len(self.tasks), self.concurrency_limit
        )
        running: Dict[Future, str] = {}
        with ThreadPoolExecutor(
            max_workers=self.concurrency_limit, thread_name_prefix="monobuild"
        ) as pool:
            while ready or running:
                while ready and len(running) < self.concurrency_limit:
                    _, _, task_id = heapq.heappop(ready)
                    running[self._start(pool, task_id)] = task_id

                done, _ = wait(list(running), return_when=FIRST_COMPLETED)
                for fut in sorted(done, key=lambda f: self._order[running[f]]):
                    task_id = running.pop(fut)
                    task = self.tasks[task_id]
                    outcome = self._finish(task_id, fut)
                    task.outcome = outcome
                    if outcome.succeeded:
                        task.state = TaskState.SUCCEEDED
                        self._status("Done: %s (%.2fs)", task_id, outcome.elapsed)
                        for dep_id in dependents[task_id]:
                            remaining[dep_id] -= 1
                            if (
                                remaining[dep_id] == 0
                                and self.tasks[dep_id].state is TaskState.BLOCKED
                            ):
                                self._push_ready(ready, dep_id)
                    else:
                        task.state = TaskState.FAILED
                        self.logger.warning("Failed: %s (%s)", task_id, outcome.reason.value)
                        self._cascade(task_id, dependents)

        result = RunResult(
            tasks={
                t.id: TaskReport(id=t.id, state=t.state, outcome=t.outcome or TaskOutcome())
                for t in self.tasks.values()
            },
            elapsed=time.monotonic() - start,
        )
        self.logger.info(
            "Finished: %d succeeded, %d failed, %d skipped in %.2fs",
            len(result.succeeded),
            len(result.failed),
            len(result.skipped),
            result.elapsed,
        )
        return result
