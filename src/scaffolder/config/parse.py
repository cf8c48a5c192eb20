"""Structural parsing of raw JSON/YAML mappings into configuration dataclasses."""

from __future__ import annotations

import math
import re
from typing import Any

from scaffolder.config.schema import (
    PROMPT_KINDS,
    BoolSpec,
    ConditionCheck,
    Conditional,
    ConfigDocument,
    Exec,
    ExecCheck,
    ExecFile,
    Interpolate,
    PromptChoice,
    PromptSpec,
    Static,
    TaskSpec,
    VariableSpec,
)
from scaffolder.util.errors import InvalidConfigurationError

ID_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
ID_MAX_LEN = 128
_ALLOWED_ROOT_KEYS = {
    "$schema",
    "name",
    "description",
    "extends",
    "enabled",
    "prompts",
    "variables",
    "tasks",
}
_ALLOWED_TASK_KEYS = {
    "id",
    "name",
    "description",
    "type",
    "config",
    "dependencies",
    "required",
    "enabled",
    "rollback",
    "override",
}
_ALLOWED_PROMPT_KEYS = {
    "id",
    "type",
    "message",
    "required",
    "enabled",
    "default",
    "choices",
    "min",
    "max",
    "placeholder",
    "override",
}
_ALLOWED_VARIABLE_KEYS = {"id", "value", "override"}
_OVERRIDE_VALUES = {"replace", "merge"}
_EXEC_FILE_KEYS = {"type", "file", "runtime", "args", "parameters", "cwd", "timeout"}


def _is_non_blank_str(value: object) -> bool:
    return isinstance(value, str) and bool(value.strip()) and "\x00" not in value


def _is_finite_real_number(value: object) -> bool:
    if not isinstance(value, (int, float)) or isinstance(value, bool):
        return False
    return math.isfinite(value)


def is_valid_id(value: object) -> bool:
    return (
        isinstance(value, str)
        and len(value) <= ID_MAX_LEN
        and ID_PATTERN.fullmatch(value) is not None
    )


def _require_mapping(kind: str, raw: Any) -> dict[str, Any]:
    if not isinstance(raw, dict):
        raise InvalidConfigurationError(f"{kind} must be mapping")
    if any(not isinstance(key, str) for key in raw):
        raise InvalidConfigurationError(f"{kind} fields must use string keys")
    return raw


def _require_id(kind: str, raw: dict[str, Any]) -> str:
    entity_id = raw.get("id")
    if not _is_non_blank_str(entity_id):
        raise InvalidConfigurationError(f"{kind}.id is required and must be non-empty string")
    if len(entity_id) > ID_MAX_LEN:
        raise InvalidConfigurationError(f"{kind}.id must be <= {ID_MAX_LEN} characters")
    if not is_valid_id(entity_id):
        raise InvalidConfigurationError(
            f"{kind} id '{entity_id}' must match {ID_PATTERN.pattern}"
        )
    return entity_id


def _reject_unknown(kind: str, entity_id: str, raw: dict[str, Any], allowed: set[str]) -> None:
    unknown = set(raw.keys()) - allowed
    if unknown:
        raise InvalidConfigurationError(f"{kind} '{entity_id}' has unknown fields: {sorted(unknown)}")


def _parse_override(kind: str, entity_id: str, raw: dict[str, Any]) -> Any:
    override = raw.get("override")
    if override is not None and override not in _OVERRIDE_VALUES:
        raise InvalidConfigurationError(
            f"{kind} '{entity_id}' override must be one of {sorted(_OVERRIDE_VALUES)}"
        )
    return override


def _ensure_list_str(name: str, value: Any) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list) or not all(_is_non_blank_str(v) for v in value):
        raise InvalidConfigurationError(f"{name} must be list of non-empty strings")
    return list(value)


def parse_bool_spec(name: str, raw: Any) -> BoolSpec | None:
    """Accept ``true/false``, a condition string, or a condition/exec mapping."""
    if raw is None or isinstance(raw, bool):
        return raw
    if isinstance(raw, str):
        if not raw.strip():
            raise InvalidConfigurationError(f"{name} condition must be non-empty")
        return ConditionCheck(raw)
    if isinstance(raw, dict):
        if set(raw) == {"condition"} and _is_non_blank_str(raw["condition"]):
            return ConditionCheck(raw["condition"])
        spec_type = raw.get("type")
        value = raw.get("value")
        if spec_type == "condition" and _is_non_blank_str(value):
            return ConditionCheck(value)
        if spec_type == "exec" and _is_non_blank_str(value):
            return ExecCheck(value)
    raise InvalidConfigurationError(
        f"{name} must be boolean, condition string, {{condition}} or {{type: condition|exec, value}}"
    )


def parse_dynamic_value(name: str, raw: Any) -> Any:
    """Parse a value spec; non-tagged values are static literals."""
    if not isinstance(raw, dict) or "type" not in raw:
        return Static(raw)
    spec_type = raw["type"]
    if spec_type == "static":
        return Static(raw.get("value"))
    if spec_type == "exec":
        command = raw.get("value", raw.get("command"))
        if not _is_non_blank_str(command):
            raise InvalidConfigurationError(f"{name} exec value must be non-empty command string")
        return Exec(command)
    if spec_type == "interpolate":
        template = raw.get("value")
        if not isinstance(template, str):
            raise InvalidConfigurationError(f"{name} interpolate value must be string")
        return Interpolate(template)
    if spec_type == "conditional":
        condition = raw.get("condition")
        if not _is_non_blank_str(condition):
            raise InvalidConfigurationError(f"{name} conditional requires condition string")
        if "ifTrue" not in raw or "ifFalse" not in raw:
            raise InvalidConfigurationError(f"{name} conditional requires ifTrue and ifFalse")
        return Conditional(
            condition=condition,
            if_true=parse_dynamic_value(f"{name}.ifTrue", raw["ifTrue"]),
            if_false=parse_dynamic_value(f"{name}.ifFalse", raw["ifFalse"]),
        )
    if spec_type == "exec-file":
        return _parse_exec_file(name, raw)
    raise InvalidConfigurationError(f"{name} has unknown value type: {spec_type!r}")


def _parse_exec_file(name: str, raw: dict[str, Any]) -> ExecFile:
    unknown = set(raw) - _EXEC_FILE_KEYS
    if unknown:
        raise InvalidConfigurationError(f"{name} exec-file has unknown fields: {sorted(unknown)}")
    file = raw.get("file")
    if not _is_non_blank_str(file):
        raise InvalidConfigurationError(f"{name} exec-file requires file")
    runtime = raw.get("runtime")
    if runtime is not None and not _is_non_blank_str(runtime):
        raise InvalidConfigurationError(f"{name} exec-file runtime must be non-empty string")
    args = raw.get("args", [])
    if not isinstance(args, list) or not all(isinstance(arg, str) for arg in args):
        raise InvalidConfigurationError(f"{name} exec-file args must be list[str]")
    parameters = raw.get("parameters", {})
    if not isinstance(parameters, dict) or not all(
        isinstance(k, str) and isinstance(v, str) for k, v in parameters.items()
    ):
        raise InvalidConfigurationError(f"{name} exec-file parameters must be dict[str, str]")
    cwd = raw.get("cwd")
    if cwd is not None and not _is_non_blank_str(cwd):
        raise InvalidConfigurationError(f"{name} exec-file cwd must be non-empty string")
    timeout = raw.get("timeout")
    if timeout is not None:
        if not _is_finite_real_number(timeout) or timeout <= 0:
            raise InvalidConfigurationError(f"{name} exec-file timeout must be > 0")
        timeout = float(timeout)
    return ExecFile(
        file=file,
        runtime=runtime,
        args=list(args),
        parameters=dict(parameters),
        cwd=cwd,
        timeout_sec=timeout,
    )


def parse_task(raw: Any, source_url: str | None = None) -> TaskSpec:
    raw = _require_mapping("task", raw)
    task_id = _require_id("task", raw)
    _reject_unknown("task", task_id, raw, _ALLOWED_TASK_KEYS)
    override = _parse_override("task", task_id, raw)
    task_type = raw.get("type")
    # Missing types are reported by task validation, after merging.
    if task_type is not None and not _is_non_blank_str(task_type):
        raise InvalidConfigurationError(f"task '{task_id}' type must be non-empty string")
    config = raw.get("config", {})
    if not isinstance(config, dict):
        raise InvalidConfigurationError(f"task '{task_id}' config must be mapping")
    for key in ("name", "description"):
        if key in raw and not isinstance(raw[key], str):
            raise InvalidConfigurationError(f"task '{task_id}' {key} must be string")
    dependencies = _ensure_list_str(
        f"task '{task_id}' dependencies", raw.get("dependencies")
    )
    if task_id in dependencies:
        raise InvalidConfigurationError(f"task '{task_id}' must not depend on itself")
    return TaskSpec(
        id=task_id,
        type=task_type or "",
        name=raw.get("name", ""),
        description=raw.get("description", ""),
        config=dict(config),
        dependencies=list(dict.fromkeys(dependencies)),
        required=parse_bool_spec(f"task '{task_id}' required", raw.get("required")),
        enabled=parse_bool_spec(f"task '{task_id}' enabled", raw.get("enabled")),
        rollback=raw.get("rollback"),
        override=override,
        source_url=source_url,
        declared_fields=frozenset(raw),
    )


def _parse_choices(prompt_id: str, raw: Any) -> list[PromptChoice]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise InvalidConfigurationError(f"prompt '{prompt_id}' choices must be list")
    choices: list[PromptChoice] = []
    for item in raw:
        if isinstance(item, dict) and "value" in item:
            choices.append(PromptChoice(name=str(item.get("name", item["value"])), value=item["value"]))
        elif isinstance(item, (str, int, float, bool)):
            choices.append(PromptChoice(name=str(item), value=item))
        else:
            raise InvalidConfigurationError(
                f"prompt '{prompt_id}' choices must be scalars or {{name, value}} mappings"
            )
    return choices


def parse_prompt(raw: Any, source_url: str | None = None) -> PromptSpec:
    raw = _require_mapping("prompt", raw)
    prompt_id = _require_id("prompt", raw)
    _reject_unknown("prompt", prompt_id, raw, _ALLOWED_PROMPT_KEYS)
    override = _parse_override("prompt", prompt_id, raw)
    kind = raw.get("type")
    if kind is None and override != "merge":
        raise InvalidConfigurationError(f"prompt '{prompt_id}' missing type")
    if kind is not None and kind not in PROMPT_KINDS:
        raise InvalidConfigurationError(
            f"prompt '{prompt_id}' type must be one of {sorted(PROMPT_KINDS)}"
        )
    message = raw.get("message", "")
    if not isinstance(message, str):
        raise InvalidConfigurationError(f"prompt '{prompt_id}' message must be string")
    required = raw.get("required", True)
    if not isinstance(required, bool):
        raise InvalidConfigurationError(f"prompt '{prompt_id}' required must be boolean")
    bounds: dict[str, float | None] = {}
    for key in ("min", "max"):
        value = raw.get(key)
        if value is not None and not _is_finite_real_number(value):
            raise InvalidConfigurationError(f"prompt '{prompt_id}' {key} must be number")
        bounds[key] = value
    return PromptSpec(
        id=prompt_id,
        kind=kind or "input",
        message=message,
        required=required,
        enabled=parse_bool_spec(f"prompt '{prompt_id}' enabled", raw.get("enabled")),
        default=(
            parse_dynamic_value(f"prompt '{prompt_id}' default", raw["default"])
            if "default" in raw
            else None
        ),
        choices=_parse_choices(prompt_id, raw.get("choices")),
        min=bounds["min"],
        max=bounds["max"],
        override=override,
        source_url=source_url,
        declared_fields=frozenset(raw),
    )


def parse_variable(raw: Any, source_url: str | None = None) -> VariableSpec:
    raw = _require_mapping("variable", raw)
    variable_id = _require_id("variable", raw)
    _reject_unknown("variable", variable_id, raw, _ALLOWED_VARIABLE_KEYS)
    override = _parse_override("variable", variable_id, raw)
    if "value" not in raw:
        raise InvalidConfigurationError(f"variable '{variable_id}' missing value")
    return VariableSpec(
        id=variable_id,
        value=parse_dynamic_value(f"variable '{variable_id}' value", raw["value"]),
        override=override,
        source_url=source_url,
        declared_fields=frozenset(raw),
    )


def _parse_list(kind: str, raw: Any) -> list[Any]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise InvalidConfigurationError(f"{kind} must be a list")
    return raw


def parse_document(raw: Any, source: str | None = None) -> ConfigDocument:
    if not isinstance(raw, dict):
        raise InvalidConfigurationError("configuration root must be a mapping")
    if any(not isinstance(key, str) for key in raw):
        raise InvalidConfigurationError("configuration root keys must be strings")
    unknown_root = set(raw.keys()) - _ALLOWED_ROOT_KEYS
    if unknown_root:
        raise InvalidConfigurationError(
            f"configuration contains unknown fields: {sorted(unknown_root)}"
        )

    extends = raw.get("extends")
    if isinstance(extends, str):
        extends = [extends]
    extends = _ensure_list_str("extends", extends)

    for key in ("name", "description"):
        if raw.get(key) is not None and not isinstance(raw[key], str):
            raise InvalidConfigurationError(f"configuration {key} must be string")

    document = ConfigDocument(
        source=source,
        name=raw.get("name"),
        description=raw.get("description"),
        extends=extends,
        enabled=parse_bool_spec("configuration enabled", raw.get("enabled")),
        prompts=[parse_prompt(item, source) for item in _parse_list("prompts", raw.get("prompts"))],
        variables=[
            parse_variable(item, source) for item in _parse_list("variables", raw.get("variables"))
        ],
        tasks=[parse_task(item, source) for item in _parse_list("tasks", raw.get("tasks"))],
    )
    for kind, entities in (
        ("task", document.tasks),
        ("variable", document.variables),
        ("prompt", document.prompts),
    ):
        ids = [entity.id for entity in entities]
        if len(set(ids)) != len(ids):
            raise InvalidConfigurationError(f"{kind} ids must be unique within one document")
    return document
