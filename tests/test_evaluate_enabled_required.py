from __future__ import annotations

import sys

import pytest

from scaffolder.condition.evaluate import (
    evaluate_enabled,
    evaluate_enabled_async,
    evaluate_required,
    evaluate_required_async,
)
from scaffolder.config.schema import ConditionCheck, ExecCheck


def _py(code: str) -> str:
    return f'"{sys.executable}" -c "{code}"'


def test_defaults_are_true() -> None:
    assert evaluate_enabled(None, {}) is True
    assert evaluate_required(None, {}) is True


def test_boolean_passthrough() -> None:
    assert evaluate_enabled(False, {}) is False
    assert evaluate_required(False, {}) is False


def test_enabled_condition_fails_closed() -> None:
    assert evaluate_enabled(ConditionCheck("useTs === true"), {"useTs": True}) is True
    assert evaluate_enabled(ConditionCheck("useTs === true"), {}) is False
    assert evaluate_enabled(ConditionCheck("useTs === true"), {}, lazy=True) is True
    assert evaluate_enabled(ConditionCheck("((("), {}) is False


def test_required_condition_fails_open() -> None:
    assert evaluate_required(ConditionCheck("strict === true"), {"strict": False}) is False
    assert evaluate_required(ConditionCheck("strict === true"), {}) is True
    assert evaluate_required(ConditionCheck("((("), {}) is True


def test_sync_exec_checks_cannot_run_commands() -> None:
    assert evaluate_enabled(ExecCheck("exit 1"), {}) is False
    assert evaluate_enabled(ExecCheck("exit 1"), {}, lazy=True) is True
    assert evaluate_required(ExecCheck("exit 0"), {}) is False


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("output", "expected"),
    [
        ("yes", True),
        ("1", True),
        ("", False),
        ("0", False),
        ("FALSE", False),
        ("No", False),
    ],
)
async def test_enabled_async_maps_command_output(output: str, expected: bool) -> None:
    command = _py(f"print('{output}')")
    assert await evaluate_enabled_async(ExecCheck(command), {}) is expected


@pytest.mark.asyncio
async def test_enabled_async_nonzero_exit_is_disabled() -> None:
    command = _py("import sys; print('yes'); sys.exit(3)")
    assert await evaluate_enabled_async(ExecCheck(command), {}) is False


@pytest.mark.asyncio
async def test_enabled_async_interpolates_command() -> None:
    command = _py("print('{{answer}}')")
    assert await evaluate_enabled_async(ExecCheck(command), {"answer": "no"}) is False
    assert await evaluate_enabled_async(ExecCheck(command), {"answer": "ok"}) is True


@pytest.mark.asyncio
async def test_enabled_async_delegates_non_exec_specs() -> None:
    assert await evaluate_enabled_async(None, {}) is True
    assert await evaluate_enabled_async(ConditionCheck("x > 1"), {"x": 2}) is True


@pytest.mark.asyncio
async def test_required_async_uses_exit_code() -> None:
    assert await evaluate_required_async(ExecCheck(_py("import sys; sys.exit(0)")), {}) is True
    assert await evaluate_required_async(ExecCheck(_py("import sys; sys.exit(1)")), {}) is False
    assert await evaluate_required_async(ExecCheck(_py("import sys; sys.exit(255)")), {}) is False


@pytest.mark.asyncio
async def test_required_async_spawn_failure_is_not_required(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    from scaffolder.condition import evaluate as evaluate_module

    async def _fail_to_start(*args: object, **kwargs: object) -> None:
        raise FileNotFoundError("no shell")

    monkeypatch.setattr(evaluate_module, "run_shell", _fail_to_start)
    assert await evaluate_required_async(ExecCheck("anything"), {}) is False
    assert await evaluate_enabled_async(ExecCheck("anything"), {}) is False


@pytest.mark.asyncio
async def test_required_async_condition_fails_open() -> None:
    assert await evaluate_required_async(ConditionCheck("missing > 1"), {}) is True


def test_pathological_conditions_keep_fail_policies() -> None:
    nested = ConditionCheck("(" * 3000 + "1" + ")" * 3000)
    assert evaluate_enabled(nested, {}) is False
    assert evaluate_required(nested, {}) is True
    assert evaluate_enabled(ConditionCheck("1" * 400 + " === 1"), {}) is False
    assert evaluate_required(ConditionCheck("9" * 400 + " > 1"), {}) is True
