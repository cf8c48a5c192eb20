"""Dependency ordering of tasks."""

from __future__ import annotations

import heapq
from collections.abc import Sequence

from scaffolder.config.schema import TaskSpec
from scaffolder.dag.build import build_adjacency
from scaffolder.util.errors import CyclicDependencyError


def find_cycle(tasks: Sequence[TaskSpec], remaining: set[str]) -> list[str]:
    """Return one dependency cycle among ``remaining`` as ``[a, b, ..., a]``."""
    deps_by_id = {task.id: task.dependencies for task in tasks}
    visiting: list[str] = []
    done: set[str] = set()

    def _walk(task_id: str) -> list[str] | None:
        if task_id in visiting:
            return visiting[visiting.index(task_id) :] + [task_id]
        if task_id in done:
            return None
        visiting.append(task_id)
        for dep in deps_by_id[task_id]:
            if dep in remaining:
                cycle = _walk(dep)
                if cycle is not None:
                    return cycle
        visiting.pop()
        done.add(task_id)
        return None

    for task in tasks:
        if task.id in remaining:
            cycle = _walk(task.id)
            if cycle is not None:
                return cycle
    return sorted(remaining)


def topological_sort(tasks: Sequence[TaskSpec]) -> list[TaskSpec]:
    """Order tasks so each one follows all of its dependencies.

    Uses Kahn's algorithm; among tasks that are ready at the same time the
    one declared first runs first.
    """
    dependents, in_degree = build_adjacency(tasks)
    index_by_id = {task.id: index for index, task in enumerate(tasks)}
    degrees = dict(in_degree)
    ready = [index_by_id[task.id] for task in tasks if degrees[task.id] == 0]
    heapq.heapify(ready)
    ordered: list[TaskSpec] = []

    while ready:
        current = tasks[heapq.heappop(ready)]
        ordered.append(current)
        for nxt in dependents.get(current.id, []):
            degrees[nxt] -= 1
            if degrees[nxt] == 0:
                heapq.heappush(ready, index_by_id[nxt])

    if len(ordered) != len(tasks):
        remaining = {task.id for task in tasks} - {task.id for task in ordered}
        raise CyclicDependencyError(find_cycle(tasks, remaining))
    return ordered
