from __future__ import annotations

import asyncio
import logging
from collections import ChainMap
from collections.abc import Mapping
from typing import Any

from rich.console import Console
from rich.prompt import Confirm, FloatPrompt, Prompt

from scaffolder.condition.evaluate import evaluate_enabled_async
from scaffolder.config.parse import is_valid_id
from scaffolder.config.schema import PromptSpec
from scaffolder.util.errors import PromptValidationError
from scaffolder.values.resolve import resolve_value

logger = logging.getLogger(__name__)


def validate_prompts(prompts: list[PromptSpec]) -> None:
    """Raise ``PromptValidationError`` listing every problem found."""
    errors: list[str] = []
    seen: set[str] = set()
    for prompt in prompts:
        if prompt.id in seen:
            errors.append(f"duplicate prompt id '{prompt.id}'")
        seen.add(prompt.id)
        if not is_valid_id(prompt.id):
            errors.append(f"prompt id '{prompt.id}' is not a valid identifier")
        if not prompt.message.strip():
            errors.append(f"prompt '{prompt.id}' requires a message")
        if prompt.kind == "select" and not prompt.choices:
            errors.append(f"select prompt '{prompt.id}' requires at least one choice")
        if (
            prompt.kind == "number"
            and prompt.min is not None
            and prompt.max is not None
            and prompt.min > prompt.max
        ):
            errors.append(f"number prompt '{prompt.id}' has min greater than max")
    if errors:
        raise PromptValidationError("invalid prompts:\n" + "\n".join(f"  - {e}" for e in errors))


async def resolve_prompt_defaults(
    prompts: list[PromptSpec], context: Mapping[str, Any]
) -> dict[str, Any]:
    defaults: dict[str, Any] = {}
    scope = ChainMap(defaults, dict(context))
    for prompt in prompts:
        if prompt.default is None:
            continue
        value = await resolve_value(
            prompt.default,
            id=prompt.id,
            context=scope,
            source_url=prompt.source_url,
            kind="Prompt",
        )
        if value is not None:
            defaults[prompt.id] = value
    return defaults


def _as_number(value: float) -> int | float:
    return int(value) if float(value).is_integer() else value


def _in_range(prompt: PromptSpec, value: float) -> bool:
    if prompt.min is not None and value < prompt.min:
        return False
    if prompt.max is not None and value > prompt.max:
        return False
    return True


def ask_prompt(prompt: PromptSpec, default: Any, console: Console) -> Any:
    """Ask one question on the terminal."""
    if prompt.kind == "confirm":
        return Confirm.ask(prompt.message, default=bool(default), console=console)
    if prompt.kind == "number":
        while True:
            answer = FloatPrompt.ask(
                prompt.message,
                default=float(default) if default is not None else ...,
                console=console,
            )
            if _in_range(prompt, answer):
                return _as_number(answer)
            console.print(f"[red]Value must be between {prompt.min} and {prompt.max}[/red]")
    if prompt.kind == "select":
        names = [choice.name for choice in prompt.choices]
        default_name = next(
            (choice.name for choice in prompt.choices if choice.value == default), ...
        )
        picked = Prompt.ask(prompt.message, choices=names, default=default_name, console=console)
        return next(choice.value for choice in prompt.choices if choice.name == picked)
    while True:
        answer = Prompt.ask(
            prompt.message,
            password=prompt.kind == "password",
            default=str(default) if default is not None else "",
            show_default=prompt.kind != "password",
            console=console,
        )
        if answer.strip() or not prompt.required:
            return answer
        console.print("[red]A value is required[/red]")


def _default_answer(prompt: PromptSpec, default: Any) -> Any:
    if default is not None:
        return default
    if prompt.kind == "confirm":
        return False
    if prompt.required:
        raise PromptValidationError(
            f"prompt '{prompt.id}' is required but has no default in non-interactive mode"
        )
    return None


async def collect_prompts(
    prompts: list[PromptSpec],
    context: Mapping[str, Any],
    *,
    assume_defaults: bool = False,
    console: Console | None = None,
) -> dict[str, Any]:
    """Ask every enabled prompt in order and return the answers by id.

    With ``assume_defaults`` nothing is asked; resolved defaults are used and
    a required prompt without one is an error.
    """
    validate_prompts(prompts)
    console = console or Console()
    defaults = await resolve_prompt_defaults(prompts, context)
    answers: dict[str, Any] = {}
    scope = ChainMap(answers, dict(context))
    for prompt in prompts:
        if prompt.id in context:
            continue
        if not await evaluate_enabled_async(prompt.config_enabled, scope):
            logger.debug("prompt '%s' skipped: its configuration is disabled", prompt.id)
            continue
        if not await evaluate_enabled_async(prompt.enabled, scope):
            logger.debug("prompt '%s' skipped: disabled", prompt.id)
            continue
        default = defaults.get(prompt.id)
        if assume_defaults:
            value = _default_answer(prompt, default)
        else:
            value = await asyncio.to_thread(ask_prompt, prompt, default, console)
        if value is None:
            continue
        answers[prompt.id] = value
    return answers
