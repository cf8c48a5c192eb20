"""Validation, filtering, ordering and sequential execution of tasks."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from scaffolder.condition.evaluate import evaluate_enabled_async, evaluate_required_async
from scaffolder.config.schema import TaskSpec
from scaffolder.dag.sort import topological_sort
from scaffolder.plugins.registry import ExecutionOptions, PluginRegistry
from scaffolder.run.model import RunSummary, TaskRecord
from scaffolder.util.errors import TaskValidationError
from scaffolder.util.time import duration_sec, iso, local_now

logger = logging.getLogger(__name__)


async def validate_tasks(tasks: Sequence[TaskSpec], registry: PluginRegistry) -> list[str]:
    """Return every structural problem across ``tasks``."""
    errors: list[str] = []
    for task in tasks:
        if not task.type:
            errors.append(f"task '{task.id}': missing type")
            continue
        errors.extend(await registry.validate_plugin_task(task))
    return errors


async def is_task_enabled(task: TaskSpec, context: Mapping[str, Any]) -> bool:
    if not await evaluate_enabled_async(task.config_enabled, context):
        return False
    return await evaluate_enabled_async(task.enabled, context)


async def validate_and_filter(
    tasks: Sequence[TaskSpec], context: Mapping[str, Any], registry: PluginRegistry
) -> list[TaskSpec]:
    errors = await validate_tasks(tasks, registry)
    if errors:
        raise TaskValidationError(errors)
    enabled: list[TaskSpec] = []
    for task in tasks:
        if await is_task_enabled(task, context):
            enabled.append(task)
        else:
            logger.info("task '%s' is disabled", task.name)
    return enabled


def sort_tasks_by_dependencies(tasks: Sequence[TaskSpec]) -> list[TaskSpec]:
    return topological_sort(tasks)


def new_summary(name: str | None, options: ExecutionOptions) -> RunSummary:
    return RunSummary(
        name=name,
        dry_run=options.dry_run,
        workdir=str(options.workdir),
        started_at=iso(local_now()),
    )


async def _dry_run_task(
    task: TaskSpec,
    record: TaskRecord,
    context: Mapping[str, Any],
    registry: PluginRegistry,
    options: ExecutionOptions,
) -> None:
    logger.info("[dry run] would run %s (%s)", task.name, task.type)
    try:
        record.diff = await registry.get_plugin_task_diff(task, context, options)
    except Exception as exc:
        logger.debug("no diff for '%s': %s", task.id, exc)
    record.status = "SKIPPED"


async def _run_one(
    index: int,
    task: TaskSpec,
    summary: RunSummary,
    context: Mapping[str, Any],
    registry: PluginRegistry,
    options: ExecutionOptions,
    *,
    total: int,
) -> None:
    record = summary.tasks[task.id]
    await registry.call_hook("before_task", task, context)
    if options.dry_run:
        await _dry_run_task(task, record, context, registry, options)
        await registry.call_hook("after_task", task, context)
        return

    logger.info("[%d/%d] %s", index, total, task.name)
    started = local_now()
    record.status = "EXECUTING"
    record.started_at = iso(started)
    try:
        await registry.execute_plugin_task(task, context, options)
    except Exception as exc:
        ended = local_now()
        record.ended_at = iso(ended)
        record.duration_sec = duration_sec(started, ended)
        record.status = "FAILED"
        record.error = str(exc) or type(exc).__name__
        record.required = await evaluate_required_async(task.required, context)
        if record.required:
            logger.error("task '%s' failed: %s", task.name, record.error)
            await registry.call_hook("on_error", exc, task)
        else:
            logger.warning("optional task '%s' failed: %s", task.name, record.error)
        return

    ended = local_now()
    record.ended_at = iso(ended)
    record.duration_sec = duration_sec(started, ended)
    record.status = "SUCCEEDED"
    summary.completed += 1
    await registry.call_hook("after_task", task, context)


async def execute_tasks(
    tasks: Sequence[TaskSpec],
    context: Mapping[str, Any],
    registry: PluginRegistry,
    options: ExecutionOptions,
    *,
    summary: RunSummary | None = None,
) -> RunSummary:
    """Run ``tasks`` one at a time in the given order.

    A failing task never stops the ones after it. The run fails only when a
    task whose ``required`` evaluates true fails.
    """
    summary = summary or new_summary(None, options)
    for task in tasks:
        summary.tasks[task.id] = TaskRecord(id=task.id, name=task.name, type=task.type)

    await registry.call_hook("before_all", context)
    try:
        for index, task in enumerate(tasks, start=1):
            await _run_one(index, task, summary, context, registry, options, total=len(tasks))
    finally:
        await registry.call_hook("after_all", context)
        summary.ended_at = iso(local_now())
    return summary
