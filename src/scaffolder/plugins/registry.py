from __future__ import annotations

import inspect
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

from scaffolder.config.schema import TaskSpec
from scaffolder.util.errors import PluginRegistrationError, UnknownTaskTypeError

logger = logging.getLogger(__name__)

HOOK_NAMES = ("before_all", "after_all", "before_task", "after_task", "on_error")


@dataclass(slots=True)
class ExecutionOptions:
    dry_run: bool = False
    workdir: Path = field(default_factory=Path.cwd)


@dataclass(slots=True)
class TaskPlugin:
    """A handler for one or more task types.

    ``execute(task, context, options)`` performs the task.
    ``get_diff(task, context, options)`` and ``validate(task)`` are optional. Any of them may be
    coroutine functions.
    """

    name: str
    task_types: list[str]
    execute: Callable[..., Any]
    get_diff: Callable[..., Any] | None = None
    validate: Callable[..., Any] | None = None
    version: str | None = None


@dataclass(slots=True)
class Hooks:
    before_all: Callable[..., Any] | None = None
    after_all: Callable[..., Any] | None = None
    before_task: Callable[..., Any] | None = None
    after_task: Callable[..., Any] | None = None
    on_error: Callable[..., Any] | None = None


async def _call(func: Callable[..., Any], *args: Any) -> Any:
    result = func(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


class PluginRegistry:
    """Plugins and lifecycle hooks for one run."""

    def __init__(self) -> None:
        self._plugins: dict[str, TaskPlugin] = {}
        self._by_task_type: dict[str, TaskPlugin] = {}
        self._hooks = Hooks()

    def register_plugin(self, plugin: TaskPlugin) -> None:
        if not isinstance(plugin.name, str) or not plugin.name.strip():
            raise PluginRegistrationError("plugin name must be non-empty string")
        if plugin.name in self._plugins:
            raise PluginRegistrationError(f"plugin '{plugin.name}' is already registered")
        if not plugin.task_types or not all(
            isinstance(task_type, str) and task_type.strip() for task_type in plugin.task_types
        ):
            raise PluginRegistrationError(
                f"plugin '{plugin.name}' must declare at least one task type"
            )
        if not callable(plugin.execute):
            raise PluginRegistrationError(f"plugin '{plugin.name}' must provide execute")
        if len(set(plugin.task_types)) != len(plugin.task_types):
            raise PluginRegistrationError(f"plugin '{plugin.name}' declares a task type twice")
        for task_type in plugin.task_types:
            owner = self._by_task_type.get(task_type)
            if owner is not None:
                raise PluginRegistrationError(
                    f"task type '{task_type}' is already registered by plugin '{owner.name}'"
                )

        self._plugins[plugin.name] = plugin
        for task_type in plugin.task_types:
            self._by_task_type[task_type] = plugin
        logger.debug("registered plugin %s for %s", plugin.name, ", ".join(plugin.task_types))

    def unregister_plugin(self, name: str) -> bool:
        plugin = self._plugins.pop(name, None)
        if plugin is None:
            return False
        for task_type in plugin.task_types:
            self._by_task_type.pop(task_type, None)
        return True

    def get_plugin(self, name: str) -> TaskPlugin | None:
        return self._plugins.get(name)

    def list_plugins(self) -> list[TaskPlugin]:
        return list(self._plugins.values())

    def get_plugin_for_task_type(self, task_type: str) -> TaskPlugin | None:
        return self._by_task_type.get(task_type)

    def is_plugin_task_type(self, task_type: str) -> bool:
        return task_type in self._by_task_type

    def _require_plugin(self, task: TaskSpec) -> TaskPlugin:
        plugin = self._by_task_type.get(task.type)
        if plugin is None:
            raise UnknownTaskTypeError(task.type)
        return plugin

    async def execute_plugin_task(
        self, task: TaskSpec, context: Mapping[str, Any], options: ExecutionOptions
    ) -> None:
        plugin = self._require_plugin(task)
        await _call(plugin.execute, task, context, options)

    async def get_plugin_task_diff(
        self, task: TaskSpec, context: Mapping[str, Any], options: ExecutionOptions
    ) -> str | None:
        plugin = self._require_plugin(task)
        if plugin.get_diff is None:
            return None
        return await _call(plugin.get_diff, task, context, options)

    async def validate_plugin_task(self, task: TaskSpec) -> list[str]:
        plugin = self._by_task_type.get(task.type)
        if plugin is None:
            return [f"task '{task.id}': unknown task type '{task.type}'"]
        if plugin.validate is None:
            return []
        errors = await _call(plugin.validate, task)
        return list(errors or [])

    def register_hooks(self, hooks: Hooks | None = None, **callbacks: Callable[..., Any]) -> None:
        """Set lifecycle hooks; a hook given here replaces the previous one."""
        unknown = set(callbacks) - set(HOOK_NAMES)
        if unknown:
            raise PluginRegistrationError(f"unknown hooks: {sorted(unknown)}")
        if hooks is not None:
            for hook_field in fields(Hooks):
                value = getattr(hooks, hook_field.name)
                if value is not None:
                    setattr(self._hooks, hook_field.name, value)
        for name, callback in callbacks.items():
            setattr(self._hooks, name, callback)

    def clear_hooks(self) -> None:
        self._hooks = Hooks()

    async def call_hook(self, name: str, *args: Any) -> None:
        """Invoke a hook if present; errors are logged and never propagate."""
        hook = getattr(self._hooks, name, None)
        if hook is None:
            return
        try:
            await _call(hook, *args)
        except Exception:
            logger.exception("hook %s failed", name)

    def reset(self) -> None:
        self._plugins.clear()
        self._by_task_type.clear()
        self.clear_hooks()
