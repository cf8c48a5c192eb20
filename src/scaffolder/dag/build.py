"""Build graph structures from task lists."""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Sequence

from scaffolder.config.schema import TaskSpec
from scaffolder.util.errors import UnresolvedTaskDependencyError


def build_adjacency(tasks: Sequence[TaskSpec]) -> tuple[dict[str, list[str]], dict[str, int]]:
    """Return dependents adjacency and in-degree by task id."""
    known = {task.id for task in tasks}
    dependents: dict[str, list[str]] = defaultdict(list)
    in_degree: dict[str, int] = {}

    for task in tasks:
        deps = list(dict.fromkeys(task.dependencies))
        in_degree[task.id] = len(deps)
        dependents.setdefault(task.id, [])
        for dep in deps:
            if dep not in known:
                raise UnresolvedTaskDependencyError(task.id, dep)
            dependents[dep].append(task.id)

    return dict(dependents), in_degree
