from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest

from scaffolder.config.schema import TaskSpec
from scaffolder.plugins.registry import ExecutionOptions, Hooks, PluginRegistry, TaskPlugin
from scaffolder.util.errors import PluginRegistrationError, UnknownTaskTypeError


def _noop(task: TaskSpec, context: Any, options: ExecutionOptions) -> None:
    return None


def test_register_and_lookup() -> None:
    registry = PluginRegistry()
    plugin = TaskPlugin(name="docs", task_types=["docs", "docs-site"], execute=_noop)
    registry.register_plugin(plugin)
    assert registry.get_plugin_for_task_type("docs-site") is plugin
    assert registry.is_plugin_task_type("docs") is True
    assert registry.is_plugin_task_type("other") is False
    assert registry.list_plugins() == [plugin]


@pytest.mark.parametrize(
    "plugin",
    [
        TaskPlugin(name="", task_types=["x"], execute=_noop),
        TaskPlugin(name="p", task_types=[], execute=_noop),
        TaskPlugin(name="p", task_types=[""], execute=_noop),
        TaskPlugin(name="p", task_types=["x"], execute=None),  # type: ignore[arg-type]
    ],
)
def test_register_rejects_invalid_plugins(plugin: TaskPlugin) -> None:
    with pytest.raises(PluginRegistrationError):
        PluginRegistry().register_plugin(plugin)


def test_register_rejects_duplicate_name_and_task_type() -> None:
    registry = PluginRegistry()
    registry.register_plugin(TaskPlugin(name="first", task_types=["shared"], execute=_noop))
    with pytest.raises(PluginRegistrationError, match="already registered"):
        registry.register_plugin(TaskPlugin(name="first", task_types=["other"], execute=_noop))
    with pytest.raises(PluginRegistrationError, match="'first'"):
        registry.register_plugin(TaskPlugin(name="second", task_types=["shared"], execute=_noop))
    assert registry.get_plugin("second") is None


def test_unregister_and_reset() -> None:
    registry = PluginRegistry()
    registry.register_plugin(TaskPlugin(name="p", task_types=["x"], execute=_noop))
    assert registry.unregister_plugin("p") is True
    assert registry.unregister_plugin("p") is False
    assert registry.is_plugin_task_type("x") is False
    registry.register_plugin(TaskPlugin(name="p", task_types=["x"], execute=_noop))
    registry.reset()
    assert registry.list_plugins() == []


@pytest.mark.asyncio
async def test_execute_dispatches_sync_and_async_plugins(tmp_path: Path) -> None:
    calls: list[str] = []

    def _sync(task: TaskSpec, context: Any, options: ExecutionOptions) -> None:
        calls.append(f"sync:{task.id}:{context['name']}")

    async def _async(task: TaskSpec, context: Any, options: ExecutionOptions) -> None:
        calls.append(f"async:{task.id}:{options.workdir.name}")

    registry = PluginRegistry()
    registry.register_plugin(TaskPlugin(name="s", task_types=["s"], execute=_sync))
    registry.register_plugin(TaskPlugin(name="a", task_types=["a"], execute=_async))
    options = ExecutionOptions(workdir=tmp_path)
    await registry.execute_plugin_task(TaskSpec(id="one", type="s"), {"name": "n"}, options)
    await registry.execute_plugin_task(TaskSpec(id="two", type="a"), {}, options)
    assert calls == ["sync:one:n", f"async:two:{tmp_path.name}"]


@pytest.mark.asyncio
async def test_unknown_task_type() -> None:
    registry = PluginRegistry()
    with pytest.raises(UnknownTaskTypeError):
        await registry.execute_plugin_task(TaskSpec(id="t", type="nope"), {}, ExecutionOptions())
    errors = await registry.validate_plugin_task(TaskSpec(id="t", type="nope"))
    assert errors == ["task 't': unknown task type 'nope'"]


@pytest.mark.asyncio
async def test_optional_capabilities_default_to_noop() -> None:
    registry = PluginRegistry()
    registry.register_plugin(TaskPlugin(name="p", task_types=["x"], execute=_noop))
    task = TaskSpec(id="t", type="x")
    assert await registry.get_plugin_task_diff(task, {}, ExecutionOptions()) is None
    assert await registry.validate_plugin_task(task) == []


@pytest.mark.asyncio
async def test_optional_capabilities_are_called() -> None:
    registry = PluginRegistry()
    registry.register_plugin(
        TaskPlugin(
            name="p",
            task_types=["x"],
            execute=_noop,
            get_diff=lambda task, context, options: f"+ {task.id}",
            validate=lambda task: [] if task.config else [f"task '{task.id}': config required"],
        )
    )
    assert await registry.get_plugin_task_diff(TaskSpec(id="t", type="x"), {}, ExecutionOptions()) == "+ t"
    assert await registry.validate_plugin_task(TaskSpec(id="t", type="x")) == [
        "task 't': config required"
    ]


@pytest.mark.asyncio
async def test_hooks_replace_rather_than_accumulate() -> None:
    calls: list[str] = []
    registry = PluginRegistry()
    registry.register_hooks(before_all=lambda context: calls.append("first"))
    registry.register_hooks(before_all=lambda context: calls.append("second"))
    await registry.call_hook("before_all", {})
    assert calls == ["second"]


@pytest.mark.asyncio
async def test_hook_errors_are_swallowed(caplog: pytest.LogCaptureFixture) -> None:
    async def _boom(context: Any) -> None:
        raise RuntimeError("hook exploded")

    registry = PluginRegistry()
    registry.register_hooks(Hooks(after_all=_boom))
    await registry.call_hook("after_all", {})
    await registry.call_hook("on_error", RuntimeError("x"), None)
    assert any("after_all" in record.getMessage() for record in caplog.records)


def test_register_hooks_rejects_unknown_names() -> None:
    with pytest.raises(PluginRegistrationError):
        PluginRegistry().register_hooks(before_everything=lambda: None)
