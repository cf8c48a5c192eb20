"""Merging of an inheritance chain into a single configuration document.

Documents are folded in chain order (bases first). An entity re-declared
under the same id replaces the earlier one unless it opts into
``override: merge``, in which case only the fields it declares are taken
over. Entities keep the position of their first declaration.
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Iterable
from typing import Any, TypeVar

from scaffolder.config.schema import (
    BoolSpec,
    ConfigDocument,
    PromptSpec,
    TaskSpec,
    VariableSpec,
)
from scaffolder.util.errors import DuplicateIdError, InvalidConfigurationError

logger = logging.getLogger(__name__)

# Config keys that are alternatives to each other; declaring one drops the rest.
CONFLICTING_CONFIG_FIELDS: dict[str, list[set[str]]] = {
    "write": [{"template", "templateFile"}],
}
_PROMPT_FIELD_MAP = {"type": "kind"}

_Entity = TypeVar("_Entity", TaskSpec, PromptSpec, VariableSpec)


def _merge_config(task_type: str, base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for group in CONFLICTING_CONFIG_FIELDS.get(task_type, []):
        if group & override.keys():
            for key in group - override.keys():
                merged.pop(key, None)
    merged.update(override)
    return merged


def merge_task(base: TaskSpec, override: TaskSpec) -> TaskSpec:
    fields = override.declared_fields
    changes: dict[str, Any] = {
        "source_url": override.source_url,
        "config_enabled": override.config_enabled,
        "override": override.override,
        "declared_fields": base.declared_fields | fields,
    }
    for name in ("type", "name", "description", "required", "enabled", "rollback"):
        if name in fields:
            changes[name] = getattr(override, name)
    task_type = changes.get("type", base.type)
    if "config" in fields:
        changes["config"] = _merge_config(task_type, base.config, override.config)
    if "dependencies" in fields:
        changes["dependencies"] = list(dict.fromkeys([*base.dependencies, *override.dependencies]))
    return dataclasses.replace(base, **changes)


def merge_prompt(base: PromptSpec, override: PromptSpec) -> PromptSpec:
    changes: dict[str, Any] = {
        "source_url": override.source_url,
        "config_enabled": override.config_enabled,
        "override": override.override,
        "declared_fields": base.declared_fields | override.declared_fields,
    }
    for name in override.declared_fields - {"id", "override", "placeholder"}:
        attr = _PROMPT_FIELD_MAP.get(name, name)
        changes[attr] = getattr(override, attr)
    return dataclasses.replace(base, **changes)


def merge_variable(base: VariableSpec, override: VariableSpec) -> VariableSpec:
    changes: dict[str, Any] = {
        "source_url": override.source_url,
        "config_enabled": override.config_enabled,
        "override": override.override,
        "declared_fields": base.declared_fields | override.declared_fields,
    }
    if "value" in override.declared_fields:
        changes["value"] = override.value
    return dataclasses.replace(base, **changes)


def _fold(
    kind: str,
    merged: dict[str, _Entity],
    incoming: Iterable[_Entity],
    config_enabled: BoolSpec | None,
    merger: Any,
) -> None:
    for entity in incoming:
        entity = dataclasses.replace(entity, config_enabled=config_enabled)
        existing = merged.get(entity.id)
        if existing is not None and entity.override == "merge":
            logger.debug("merging %s '%s' from %s", kind, entity.id, entity.source_url)
            merged[entity.id] = merger(existing, entity)
        else:
            if existing is not None:
                logger.debug("replacing %s '%s' from %s", kind, entity.id, entity.source_url)
            merged[entity.id] = entity


def validate_unique_ids(
    tasks: Iterable[TaskSpec],
    variables: Iterable[VariableSpec],
    prompts: Iterable[PromptSpec],
) -> None:
    seen: dict[str, str] = {}
    for kind, entities in (("task", tasks), ("variable", variables), ("prompt", prompts)):
        for entity in entities:
            existing_kind = seen.get(entity.id)
            if existing_kind is not None and existing_kind != kind:
                raise DuplicateIdError(entity.id, kind, existing_kind)
            seen[entity.id] = kind


def merge_documents(documents: list[ConfigDocument]) -> ConfigDocument:
    if not documents:
        raise InvalidConfigurationError("no configuration documents to merge")
    root = documents[-1]
    tasks: dict[str, TaskSpec] = {}
    variables: dict[str, VariableSpec] = {}
    prompts: dict[str, PromptSpec] = {}

    for document in documents:
        if document.enabled is False:
            logger.info("skipping disabled configuration %s", document.source)
            continue
        config_enabled = None if document.enabled is True else document.enabled
        _fold("task", tasks, document.tasks, config_enabled, merge_task)
        _fold("variable", variables, document.variables, config_enabled, merge_variable)
        _fold("prompt", prompts, document.prompts, config_enabled, merge_prompt)

    validate_unique_ids(tasks.values(), variables.values(), prompts.values())
    return ConfigDocument(
        source=root.source,
        name=root.name,
        description=root.description,
        extends=[],
        enabled=root.enabled,
        prompts=list(prompts.values()),
        variables=list(variables.values()),
        tasks=list(tasks.values()),
        layers=[
            document.source
            for document in documents
            if document.source is not None and document.enabled is not False
        ],
    )
