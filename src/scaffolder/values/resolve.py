from __future__ import annotations

import json
import logging
import re
from collections import ChainMap
from collections.abc import Mapping
from typing import Any

from scaffolder.condition.evaluate import evaluate_condition, evaluate_enabled_async
from scaffolder.config.parse import parse_dynamic_value
from scaffolder.config.schema import (
    DEFAULT_EXEC_TIMEOUT_SEC,
    DYNAMIC_VALUE_TYPES,
    Conditional,
    Exec,
    ExecFile,
    Interpolate,
    Static,
    VariableSpec,
)
from scaffolder.exec.process import ProcessResult, run_shell
from scaffolder.util.errors import ScaffolderError, ValueResolutionWarning
from scaffolder.util.template import interpolate
from scaffolder.values.script import run_script

logger = logging.getLogger(__name__)

_NUMBER_PATTERN = re.compile(r"^[-+]?\d+(?:\.\d+)?$")


def coerce_output(output: str) -> Any:
    """Turn trimmed command output into JSON, a number, a boolean or a string."""
    text = output.strip()
    if text.startswith(("{", "[")):
        try:
            return json.loads(text)
        except json.JSONDecodeError:
            return text
    if _NUMBER_PATTERN.fullmatch(text):
        return float(text) if "." in text else int(text)
    if text == "true":
        return True
    if text == "false":
        return False
    return text


def _check_result(what: str, result: ProcessResult, timeout_sec: float | None) -> str:
    if result.timed_out:
        raise ValueResolutionWarning(f"{what} timed out after {timeout_sec:g}s")
    if result.exit_code != 0:
        detail = result.stderr.strip()
        suffix = f": {detail}" if detail else ""
        raise ValueResolutionWarning(f"{what} exited with code {result.exit_code}{suffix}")
    return result.stdout


async def _resolve(
    spec: Any,
    context: Mapping[str, Any] | None,
    source_url: str | None,
) -> Any:
    if isinstance(spec, Static):
        return spec.value
    if isinstance(spec, Exec):
        command = interpolate(spec.command, context or {})
        try:
            result = await run_shell(command, timeout_sec=DEFAULT_EXEC_TIMEOUT_SEC)
        except OSError as exc:
            raise ValueResolutionWarning(f"failed to start {command!r}: {exc}") from exc
        stdout = _check_result(f"command {command!r}", result, DEFAULT_EXEC_TIMEOUT_SEC)
        return coerce_output(stdout)
    if isinstance(spec, ExecFile):
        timeout_sec = spec.timeout_sec or DEFAULT_EXEC_TIMEOUT_SEC
        try:
            result = await run_script(
                spec, context or {}, source_url=source_url, timeout_sec=timeout_sec
            )
        except (ScaffolderError, OSError) as exc:
            raise ValueResolutionWarning(f"script {spec.file!r} failed: {exc}") from exc
        stdout = _check_result(f"script {spec.file!r}", result, timeout_sec)
        return coerce_output(stdout)
    if isinstance(spec, Interpolate):
        if context is None:
            return spec.template
        return interpolate(spec.template, context)
    if isinstance(spec, Conditional):
        chosen = spec.if_true if evaluate_condition(spec.condition, context or {}) else spec.if_false
        return await _resolve(chosen, context, source_url)
    return spec


async def resolve_value(
    spec: Any,
    *,
    id: str,
    context: Mapping[str, Any] | None = None,
    source_url: str | None = None,
    kind: str = "Variable",
) -> Any:
    """Resolve a dynamic value spec; returns ``None`` when resolution fails.

    Raw ``{"type": ...}`` mappings are parsed first, plain literals pass
    through unchanged.
    """
    if isinstance(spec, dict):
        try:
            spec = parse_dynamic_value(f"{kind.lower()} '{id}'", spec)
        except ScaffolderError as exc:
            logger.warning("%s '%s': %s", kind, id, exc)
            return None
    elif not isinstance(spec, DYNAMIC_VALUE_TYPES):
        return spec
    try:
        return await _resolve(spec, context, source_url)
    except ValueResolutionWarning as exc:
        logger.warning("%s '%s' could not be resolved: %s", kind, id, exc)
        return None


def is_conditional_variable(variable: VariableSpec) -> bool:
    return isinstance(variable.value, Conditional)


async def resolve_all_variables(
    variables: list[VariableSpec],
    context: Mapping[str, Any],
    *,
    skip_conditional: bool = False,
    only_conditional: bool = False,
) -> dict[str, Any]:
    """Resolve variables one after another in declaration order.

    Each variable sees ``context`` plus everything resolved before it in the
    same pass. Variables of a disabled document, or that fail to resolve,
    are left out of the result.
    """
    resolved: dict[str, Any] = {}
    scope = ChainMap(resolved, dict(context))
    for variable in variables:
        conditional = is_conditional_variable(variable)
        if (skip_conditional and conditional) or (only_conditional and not conditional):
            continue
        if variable.id in context:
            continue
        if variable.config_enabled is not None and not await evaluate_enabled_async(
            variable.config_enabled, scope, lazy=True
        ):
            logger.debug("variable '%s' skipped: its configuration is disabled", variable.id)
            continue
        value = await resolve_value(
            variable.value, id=variable.id, context=scope, source_url=variable.source_url
        )
        if value is None:
            continue
        resolved[variable.id] = value
        logger.debug("variable '%s' resolved", variable.id)
    return resolved
