"""Application-level error types."""

from __future__ import annotations


class ScaffolderError(Exception):
    """Base error for scaffolder."""


class ConfigurationError(ScaffolderError):
    """Raised when configuration loading/validation fails."""


class ConfigurationNotFoundError(ConfigurationError):
    """Raised when a configuration reference cannot be fetched."""

    def __init__(self, ref: str, reason: str | None = None) -> None:
        self.ref = ref
        detail = f"configuration not found: {ref}"
        if reason:
            detail = f"{detail} ({reason})"
        super().__init__(detail)


class ConfigurationParseError(ConfigurationError):
    """Raised when configuration text is not valid JSON/YAML."""

    def __init__(self, ref: str, reason: str) -> None:
        self.ref = ref
        super().__init__(f"failed to parse configuration {ref}: {reason}")


class InvalidConfigurationError(ConfigurationError):
    """Raised when a configuration document is structurally invalid."""


class CircularDependencyError(ConfigurationError):
    """Raised when an extends chain loops back on itself."""

    def __init__(self, chain: list[str], kind: str = "configuration inheritance") -> None:
        self.chain = chain
        super().__init__(f"circular {kind} detected: {' -> '.join(chain)}")


class CyclicDependencyError(CircularDependencyError):
    """Raised when task dependencies form a cycle."""

    def __init__(self, chain: list[str]) -> None:
        super().__init__(chain, kind="task dependency")


class DuplicateIdError(ConfigurationError):
    """Raised when one id is declared by more than one kind."""

    def __init__(self, entity_id: str, kind: str, existing_kind: str) -> None:
        self.entity_id = entity_id
        self.kind = kind
        self.existing_kind = existing_kind
        super().__init__(
            f"duplicate id '{entity_id}': {kind} id conflicts with an existing {existing_kind} id"
        )


class UnresolvedTaskDependencyError(ConfigurationError):
    """Raised when a task depends on an unknown task id."""

    def __init__(self, task_id: str, dependency: str) -> None:
        self.task_id = task_id
        self.dependency = dependency
        super().__init__(f"task '{task_id}' depends on unknown task '{dependency}'")


class UnknownTaskTypeError(ScaffolderError):
    """Raised when no plugin handles a task type."""

    def __init__(self, task_type: str) -> None:
        self.task_type = task_type
        super().__init__(f"unknown task type: {task_type}")


class PluginRegistrationError(ScaffolderError):
    """Raised when a plugin cannot be registered."""


class TaskValidationError(ScaffolderError):
    """Raised when one or more tasks fail validation."""

    def __init__(self, errors: list[str]) -> None:
        self.errors = errors
        lines = "\n".join(f"  - {error}" for error in errors)
        super().__init__(f"task validation failed:\n{lines}")


class PromptValidationError(ScaffolderError):
    """Raised when prompt definitions or answers are invalid."""


class TaskExecutionError(ScaffolderError):
    """Raised by task executors when a task cannot complete."""


class ContextError(ScaffolderError):
    """Raised when a resolved context binding is rebound."""


class ConditionError(ScaffolderError):
    """Raised when a condition expression cannot be evaluated."""


class ConditionSyntaxError(ConditionError):
    """Raised when a condition expression does not parse."""


class UnknownIdentifierError(ConditionError):
    """Raised when a condition references an unbound identifier."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"{name} is not defined")


class ConditionEvaluationError(ConditionError):
    """Raised when operands are incompatible for an operator."""


class ValueResolutionWarning(ScaffolderError):
    """Non-fatal failure while resolving a dynamic value."""


class ConditionEvaluationWarning(ScaffolderError):
    """Non-fatal failure while evaluating a condition."""
