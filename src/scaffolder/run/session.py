"""End-to-end driver for one scaffolding run."""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Mapping
from typing import Any, TypeVar

from rich.console import Console

from scaffolder.condition.evaluate import evaluate_enabled, evaluate_enabled_async
from scaffolder.config.schema import ConfigDocument, PromptSpec, TaskSpec, VariableSpec
from scaffolder.plugins.builtin import register_builtin_plugins
from scaffolder.plugins.registry import ExecutionOptions, PluginRegistry
from scaffolder.prompts.collect import collect_prompts, validate_prompts
from scaffolder.run.model import RunSummary, TaskRecord
from scaffolder.run.orchestrator import (
    execute_tasks,
    new_summary,
    sort_tasks_by_dependencies,
    validate_and_filter,
    validate_tasks,
)
from scaffolder.util.errors import TaskValidationError
from scaffolder.values.context import ResolvedContext
from scaffolder.values.resolve import resolve_all_variables

logger = logging.getLogger(__name__)

_Sourced = TypeVar("_Sourced", PromptSpec, VariableSpec)


async def plan_configuration(config: ConfigDocument, registry: PluginRegistry) -> list[TaskSpec]:
    """Validate every task and return them in execution order, without running anything."""
    errors = await validate_tasks(config.tasks, registry)
    if errors:
        raise TaskValidationError(errors)
    return sort_tasks_by_dependencies(config.tasks)


def _prune_dependencies(tasks: list[TaskSpec]) -> list[TaskSpec]:
    enabled_ids = {task.id for task in tasks}
    pruned: list[TaskSpec] = []
    for task in tasks:
        kept = [dep for dep in task.dependencies if dep in enabled_ids]
        if len(kept) != len(task.dependencies):
            dropped = sorted(set(task.dependencies) - enabled_ids)
            logger.debug("task '%s': ignoring disabled dependencies %s", task.id, dropped)
            task = dataclasses.replace(task, dependencies=kept)
        pruned.append(task)
    return pruned


def _by_layer(config: ConfigDocument, entities: list[_Sourced]) -> list[list[_Sourced]]:
    layers: list[str | None] = list(dict.fromkeys(config.layers)) or [config.source]
    groups: dict[str | None, list[_Sourced]] = {layer: [] for layer in layers}
    for entity in entities:
        # Entities without a known source belong to the root document.
        key = entity.source_url if entity.source_url in groups else layers[-1]
        groups[key].append(entity)
    return [groups[layer] for layer in layers]


async def build_context(
    config: ConfigDocument,
    *,
    assume_defaults: bool = False,
    console: Console | None = None,
    initial: Mapping[str, Any] | None = None,
) -> ResolvedContext:
    """Resolve variables then prompts per document, bases first, then conditional variables.

    A variable declared in an extending document can therefore use the
    answers to prompts declared in the documents it extends.
    """
    context = ResolvedContext(initial)
    layers = zip(_by_layer(config, config.variables), _by_layer(config, config.prompts))
    for variables, prompts in layers:
        context.update_from(
            await resolve_all_variables(variables, context, skip_conditional=True)
        )
        answers = await collect_prompts(
            prompts, context, assume_defaults=assume_defaults, console=console
        )
        context.update_from(answers)
    context.update_from(
        await resolve_all_variables(config.variables, context, only_conditional=True)
    )
    return context


async def run_configuration(
    config: ConfigDocument,
    options: ExecutionOptions,
    *,
    registry: PluginRegistry | None = None,
    assume_defaults: bool = False,
    console: Console | None = None,
    initial_context: Mapping[str, Any] | None = None,
) -> RunSummary:
    summary = new_summary(config.name, options)
    if not evaluate_enabled(config.enabled, initial_context or {}, lazy=True):
        logger.info("configuration %s is disabled, nothing to do", config.name or config.source)
        return summary

    registry = registry or PluginRegistry()
    register_builtin_plugins(registry)
    # Fails before any prompt is shown when the task set is broken.
    ordered_all = await plan_configuration(config, registry)
    validate_prompts(config.prompts)

    context = await build_context(
        config, assume_defaults=assume_defaults, console=console, initial=initial_context
    )
    if not await evaluate_enabled_async(config.enabled, context):
        logger.info("configuration %s is disabled, nothing to do", config.name or config.source)
        return summary

    enabled = await validate_and_filter(ordered_all, context, registry)
    enabled_ids = {task.id for task in enabled}
    for task in config.tasks:
        if task.id not in enabled_ids:
            summary.tasks[task.id] = TaskRecord(
                id=task.id, name=task.name, type=task.type, status="DISABLED"
            )
    ordered = sort_tasks_by_dependencies(
        _prune_dependencies([task for task in config.tasks if task.id in enabled_ids])
    )
    return await execute_tasks(ordered, context, registry, options, summary=summary)
