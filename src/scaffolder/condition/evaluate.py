"""Boolean evaluation of ``enabled``/``required``/``condition`` specs.

``enabled`` fails closed (any error disables) while ``required`` fails open
(any error keeps the task required).
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from scaffolder.condition.parser import evaluate_expression, is_truthy
from scaffolder.config.schema import DEFAULT_EXEC_TIMEOUT_SEC, BoolSpec, ConditionCheck, ExecCheck
from scaffolder.exec.process import ProcessResult, run_shell
from scaffolder.util.errors import ConditionEvaluationWarning, UnknownIdentifierError
from scaffolder.util.template import interpolate

logger = logging.getLogger(__name__)

_FALSE_OUTPUTS = {"", "0", "false", "no"}


def evaluate_condition(
    expression: str,
    context: Mapping[str, Any],
    *,
    lazy: bool = False,
    silent: bool = False,
) -> bool:
    """Evaluate ``expression`` against ``context``.

    In lazy mode a reference to a name that is not bound yet defers the
    decision and yields ``True``. Every other failure yields ``False``.
    """
    try:
        return is_truthy(evaluate_expression(expression, context))
    except UnknownIdentifierError as exc:
        if lazy:
            logger.debug("deferring condition %r: %s", expression, exc)
            return True
        if not silent:
            logger.warning("failed to evaluate condition %r: %s", expression, exc)
        return False
    except Exception as exc:
        if not silent:
            logger.warning("failed to evaluate condition %r: %s", expression, exc)
        return False


async def _run_check(command: str, context: Mapping[str, Any]) -> ProcessResult:
    try:
        result = await run_shell(interpolate(command, context), timeout_sec=DEFAULT_EXEC_TIMEOUT_SEC)
    except (OSError, ValueError) as exc:
        raise ConditionEvaluationWarning(f"failed to start {command!r}: {exc}") from exc
    if result.timed_out:
        raise ConditionEvaluationWarning(
            f"{command!r} timed out after {DEFAULT_EXEC_TIMEOUT_SEC:g}s"
        )
    return result


def evaluate_enabled(
    value: BoolSpec | None, context: Mapping[str, Any], *, lazy: bool = False
) -> bool:
    if value is None:
        return True
    if isinstance(value, bool):
        return value
    if isinstance(value, ConditionCheck):
        return evaluate_condition(value.expression, context, lazy=lazy)
    if isinstance(value, ExecCheck):
        # Commands only run in the async variant.
        return lazy
    logger.warning("unsupported enabled value: %r", value)
    return False


async def evaluate_enabled_async(
    value: BoolSpec | None, context: Mapping[str, Any], *, lazy: bool = False
) -> bool:
    if not isinstance(value, ExecCheck):
        return evaluate_enabled(value, context, lazy=lazy)
    try:
        result = await _run_check(value.command, context)
    except ConditionEvaluationWarning as exc:
        logger.warning("enabled check failed: %s", exc)
        return False
    if result.exit_code != 0:
        logger.warning(
            "enabled check %r exited with code %s", value.command, result.exit_code
        )
        return False
    return result.stdout.strip().lower() not in _FALSE_OUTPUTS


def evaluate_required(value: BoolSpec | None, context: Mapping[str, Any]) -> bool:
    if value is None:
        return True
    if isinstance(value, bool):
        return value
    if isinstance(value, ConditionCheck):
        try:
            return is_truthy(evaluate_expression(value.expression, context))
        except Exception as exc:
            logger.warning(
                "failed to evaluate required condition %r, treating as required: %s",
                value.expression,
                exc,
            )
            return True
    if isinstance(value, ExecCheck):
        return False
    return True


async def evaluate_required_async(value: BoolSpec | None, context: Mapping[str, Any]) -> bool:
    if not isinstance(value, ExecCheck):
        return evaluate_required(value, context)
    try:
        result = await _run_check(value.command, context)
    except ConditionEvaluationWarning as exc:
        logger.warning("required check failed, treating as not required: %s", exc)
        return False
    return result.exit_code == 0
