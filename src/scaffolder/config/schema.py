from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

OverrideStrategy = Literal["replace", "merge"]
PromptKind = Literal["input", "password", "number", "select", "confirm"]
PROMPT_KINDS: set[str] = {"input", "password", "number", "select", "confirm"}
DEFAULT_EXEC_TIMEOUT_SEC = 10.0


@dataclass(slots=True)
class Static:
    value: Any


@dataclass(slots=True)
class Exec:
    command: str


@dataclass(slots=True)
class ExecFile:
    file: str
    runtime: str | None = None
    args: list[str] = field(default_factory=list)
    parameters: dict[str, str] = field(default_factory=dict)
    cwd: str | None = None
    timeout_sec: float | None = None


@dataclass(slots=True)
class Interpolate:
    template: str


@dataclass(slots=True)
class Conditional:
    condition: str
    if_true: Any
    if_false: Any


DynamicValue = Static | Exec | ExecFile | Interpolate | Conditional
DYNAMIC_VALUE_TYPES = (Static, Exec, ExecFile, Interpolate, Conditional)


@dataclass(slots=True)
class ConditionCheck:
    expression: str


@dataclass(slots=True)
class ExecCheck:
    command: str


BoolSpec = bool | ConditionCheck | ExecCheck


@dataclass(slots=True)
class TaskSpec:
    id: str
    type: str
    name: str = ""
    description: str = ""
    config: dict[str, Any] = field(default_factory=dict)
    dependencies: list[str] = field(default_factory=list)
    required: BoolSpec | None = None
    enabled: BoolSpec | None = None
    # Carried through untouched; nothing in the run interprets it.
    rollback: Any = None
    override: OverrideStrategy | None = None
    source_url: str | None = None
    config_enabled: BoolSpec | None = None
    declared_fields: frozenset[str] = frozenset()

    def __post_init__(self) -> None:
        if not self.name:
            self.name = self.id


@dataclass(slots=True)
class PromptChoice:
    name: str
    value: Any


@dataclass(slots=True)
class PromptSpec:
    id: str
    kind: PromptKind
    message: str
    required: bool = True
    enabled: BoolSpec | None = None
    default: Any = None
    choices: list[PromptChoice] = field(default_factory=list)
    min: float | None = None
    max: float | None = None
    override: OverrideStrategy | None = None
    source_url: str | None = None
    config_enabled: BoolSpec | None = None
    declared_fields: frozenset[str] = frozenset()


@dataclass(slots=True)
class VariableSpec:
    id: str
    value: Any
    override: OverrideStrategy | None = None
    source_url: str | None = None
    config_enabled: BoolSpec | None = None
    declared_fields: frozenset[str] = frozenset()


@dataclass(slots=True)
class ConfigDocument:
    source: str | None = None
    name: str | None = None
    description: str | None = None
    extends: list[str] = field(default_factory=list)
    enabled: BoolSpec | None = None
    prompts: list[PromptSpec] = field(default_factory=list)
    variables: list[VariableSpec] = field(default_factory=list)
    tasks: list[TaskSpec] = field(default_factory=list)
    # Sources of the merged documents, bases first.
    layers: list[str] = field(default_factory=list)


def is_conditional(value: Any) -> bool:
    return isinstance(value, Conditional)
