"""Built-in task types.

Every path in a task config is interpolated and resolved against the run's
working directory. Each type accepts an optional ``condition`` expression;
when it evaluates false the task does nothing.
"""

from __future__ import annotations

import asyncio
import difflib
import json
import logging
import re
import shutil
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from scaffolder.condition.evaluate import evaluate_condition
from scaffolder.config.fetch import fetch_text
from scaffolder.config.parse import parse_dynamic_value
from scaffolder.config.schema import ExecFile, TaskSpec
from scaffolder.exec.process import run_argv, run_shell
from scaffolder.plugins.registry import ExecutionOptions, PluginRegistry, TaskPlugin
from scaffolder.util.errors import ScaffolderError, TaskExecutionError
from scaffolder.util.refs import resolve_file_path
from scaffolder.util.template import interpolate, set_nested
from scaffolder.values.script import run_script

logger = logging.getLogger(__name__)

JSON_INDENT = 2


def _is_non_blank_str(value: object) -> bool:
    return isinstance(value, str) and bool(value.strip())


def _require_str_fields(task: TaskSpec, *keys: str) -> list[str]:
    return [
        f"task '{task.id}': config.{key} must be non-empty string"
        for key in keys
        if not _is_non_blank_str(task.config.get(key))
    ]


def _condition_errors(task: TaskSpec) -> list[str]:
    condition = task.config.get("condition")
    if condition is not None and not isinstance(condition, str):
        return [f"task '{task.id}': config.condition must be string"]
    return []


def _condition_met(task: TaskSpec, context: Mapping[str, Any]) -> bool:
    condition = task.config.get("condition")
    if not condition:
        return True
    if evaluate_condition(condition, context):
        return True
    logger.info("task '%s': condition not met, skipping", task.id)
    return False


def _target(options: ExecutionOptions, raw: str, context: Mapping[str, Any]) -> Path:
    return options.workdir / interpolate(raw, context)


def _read_text_or_none(path: Path) -> str | None:
    try:
        return path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None


def _unified_diff(path: str, before: str | None, after: str | None) -> str:
    diff = difflib.unified_diff(
        (before or "").splitlines(keepends=True),
        (after or "").splitlines(keepends=True),
        fromfile=f"a/{path}" if before is not None else "/dev/null",
        tofile=f"b/{path}" if after is not None else "/dev/null",
    )
    return "".join(diff)


# write


def _template_source_errors(task: TaskSpec, inline_key: str = "template") -> list[str]:
    has_inline = inline_key in task.config
    has_file = "templateFile" in task.config
    if has_inline and has_file:
        return [f"task '{task.id}': config cannot have both {inline_key} and templateFile"]
    if not has_inline and not has_file:
        return [f"task '{task.id}': config requires {inline_key} or templateFile"]
    if has_inline and not isinstance(task.config[inline_key], str):
        return [f"task '{task.id}': config.{inline_key} must be string"]
    if has_file:
        return _require_str_fields(task, "templateFile")
    return []


def _validate_write(task: TaskSpec) -> list[str]:
    errors = _require_str_fields(task, "file") + _condition_errors(task)
    errors.extend(_template_source_errors(task))
    allow_create = task.config.get("allowCreate", True)
    if not isinstance(allow_create, bool):
        errors.append(f"task '{task.id}': config.allowCreate must be boolean")
    return errors


async def _render_template(
    task: TaskSpec, context: Mapping[str, Any], inline_key: str = "template"
) -> str:
    if inline_key in task.config:
        return interpolate(task.config[inline_key], context)
    location = resolve_file_path(interpolate(task.config["templateFile"], context), task.source_url)
    try:
        template = await asyncio.to_thread(fetch_text, location)
    except ScaffolderError as exc:
        raise TaskExecutionError(f"template file not found: {location}") from exc
    return interpolate(template, context)


async def _execute_write(
    task: TaskSpec, context: Mapping[str, Any], options: ExecutionOptions
) -> None:
    if not _condition_met(task, context):
        return
    path = _target(options, task.config["file"], context)
    if not path.exists():
        if task.config.get("allowCreate", True) is False:
            raise TaskExecutionError(f"file does not exist: {task.config['file']}")
        logger.info("creating new file %s", path)
    content = await _render_template(task, context)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


async def _diff_write(task: TaskSpec, context: Mapping[str, Any], options: ExecutionOptions) -> str:
    path = _target(options, task.config["file"], context)
    return _unified_diff(
        interpolate(task.config["file"], context),
        _read_text_or_none(path),
        await _render_template(task, context),
    )


# create / append


async def _execute_create(
    task: TaskSpec, context: Mapping[str, Any], options: ExecutionOptions
) -> None:
    if not _condition_met(task, context):
        return
    path = _target(options, task.config["file"], context)
    if path.exists():
        logger.info("task '%s': %s already exists, skipping", task.id, path)
        return
    content = await _render_template(task, context)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


async def _diff_create(
    task: TaskSpec, context: Mapping[str, Any], options: ExecutionOptions
) -> str:
    path = _target(options, task.config["file"], context)
    if path.exists():
        return ""
    return _unified_diff(
        interpolate(task.config["file"], context), None, await _render_template(task, context)
    )


def _validate_create(task: TaskSpec) -> list[str]:
    return (
        _require_str_fields(task, "file")
        + _condition_errors(task)
        + _template_source_errors(task)
    )


def _append_inline_key(task: TaskSpec) -> str:
    return "content" if "content" in task.config else "template"


def _validate_append(task: TaskSpec) -> list[str]:
    errors = _require_str_fields(task, "file") + _condition_errors(task)
    errors.extend(_template_source_errors(task, _append_inline_key(task)))
    if not isinstance(task.config.get("newline", True), bool):
        errors.append(f"task '{task.id}': config.newline must be boolean")
    return errors


async def _appended(
    task: TaskSpec, context: Mapping[str, Any], before: str | None
) -> str:
    content = await _render_template(task, context, _append_inline_key(task))
    if before and not before.endswith("\n") and task.config.get("newline", True):
        content = "\n" + content
    return (before or "") + content


async def _execute_append(
    task: TaskSpec, context: Mapping[str, Any], options: ExecutionOptions
) -> None:
    if not _condition_met(task, context):
        return
    path = _target(options, task.config["file"], context)
    after = await _appended(task, context, _read_text_or_none(path))
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(after, encoding="utf-8")


async def _diff_append(
    task: TaskSpec, context: Mapping[str, Any], options: ExecutionOptions
) -> str:
    before = _read_text_or_none(_target(options, task.config["file"], context))
    return _unified_diff(
        interpolate(task.config["file"], context), before, await _appended(task, context, before)
    )


# mkdir


def _validate_mkdir(task: TaskSpec) -> list[str]:
    return _require_str_fields(task, "path") + _condition_errors(task)


def _execute_mkdir(task: TaskSpec, context: Mapping[str, Any], options: ExecutionOptions) -> None:
    if not _condition_met(task, context):
        return
    _target(options, task.config["path"], context).mkdir(parents=True, exist_ok=True)


def _diff_mkdir(task: TaskSpec, context: Mapping[str, Any], options: ExecutionOptions) -> str:
    path = _target(options, task.config["path"], context)
    if path.is_dir():
        return ""
    return f"+ {interpolate(task.config['path'], context)}/\n"


# delete


def _validate_delete(task: TaskSpec) -> list[str]:
    paths = task.config.get("paths")
    errors = _condition_errors(task)
    if not isinstance(paths, list) or not paths or not all(_is_non_blank_str(p) for p in paths):
        errors.append(f"task '{task.id}': config.paths must be non-empty list of strings")
    return errors


def _execute_delete(task: TaskSpec, context: Mapping[str, Any], options: ExecutionOptions) -> None:
    if not _condition_met(task, context):
        return
    for raw in task.config["paths"]:
        path = _target(options, raw, context)
        if path.is_dir() and not path.is_symlink():
            shutil.rmtree(path)
        elif path.exists() or path.is_symlink():
            path.unlink()


def _diff_delete(task: TaskSpec, context: Mapping[str, Any], options: ExecutionOptions) -> str:
    lines = [
        f"- {interpolate(raw, context)}\n"
        for raw in task.config["paths"]
        if _target(options, raw, context).exists()
    ]
    return "".join(lines)


# copy / move


def _validate_from_to(task: TaskSpec) -> list[str]:
    return _require_str_fields(task, "from", "to") + _condition_errors(task)


def _source_and_destination(
    task: TaskSpec, context: Mapping[str, Any], options: ExecutionOptions
) -> tuple[Path, Path]:
    source = _target(options, task.config["from"], context)
    destination = _target(options, task.config["to"], context)
    if not source.exists():
        raise TaskExecutionError(f"source does not exist: {task.config['from']}")
    destination.parent.mkdir(parents=True, exist_ok=True)
    return source, destination


def _execute_copy(task: TaskSpec, context: Mapping[str, Any], options: ExecutionOptions) -> None:
    if not _condition_met(task, context):
        return
    source, destination = _source_and_destination(task, context, options)
    if source.is_dir():
        shutil.copytree(source, destination, dirs_exist_ok=True)
    else:
        shutil.copy2(source, destination)


def _execute_move(task: TaskSpec, context: Mapping[str, Any], options: ExecutionOptions) -> None:
    if not _condition_met(task, context):
        return
    source, destination = _source_and_destination(task, context, options)
    shutil.move(str(source), str(destination))


# exec


def _validate_exec(task: TaskSpec) -> list[str]:
    errors = _require_str_fields(task, "command") + _condition_errors(task)
    cwd = task.config.get("cwd")
    if cwd is not None and not _is_non_blank_str(cwd):
        errors.append(f"task '{task.id}': config.cwd must be non-empty string")
    timeout = task.config.get("timeout")
    if timeout is not None and (
        not isinstance(timeout, (int, float)) or isinstance(timeout, bool) or timeout <= 0
    ):
        errors.append(f"task '{task.id}': config.timeout must be > 0")
    return errors


def _log_output(task: TaskSpec, stdout: str) -> None:
    for line in stdout.splitlines():
        logger.info("[%s] %s", task.id, line)


async def _execute_exec(
    task: TaskSpec, context: Mapping[str, Any], options: ExecutionOptions
) -> None:
    if not _condition_met(task, context):
        return
    command = interpolate(task.config["command"], context)
    cwd = options.workdir
    if task.config.get("cwd"):
        cwd = _target(options, task.config["cwd"], context)
    timeout = task.config.get("timeout")
    result = await run_shell(command, cwd=str(cwd), timeout_sec=timeout)
    _log_output(task, result.stdout)
    if result.timed_out:
        raise TaskExecutionError(f"command timed out after {timeout}s: {command}")
    if result.exit_code != 0:
        detail = result.stderr.strip()
        raise TaskExecutionError(
            f"command exited with code {result.exit_code}: {command}"
            + (f"\n{detail}" if detail else "")
        )


# exec-file


def _exec_file_spec(task: TaskSpec) -> ExecFile:
    raw = {key: value for key, value in task.config.items() if key != "condition"}
    spec = parse_dynamic_value(f"task '{task.id}' config", {**raw, "type": "exec-file"})
    assert isinstance(spec, ExecFile)
    return spec


def _validate_exec_file(task: TaskSpec) -> list[str]:
    errors = _condition_errors(task)
    try:
        _exec_file_spec(task)
    except ScaffolderError as exc:
        errors.append(str(exc))
    return errors


async def _execute_exec_file(
    task: TaskSpec, context: Mapping[str, Any], options: ExecutionOptions
) -> None:
    if not _condition_met(task, context):
        return
    spec = _exec_file_spec(task)
    if spec.cwd is None:
        spec.cwd = str(options.workdir)
    else:
        spec.cwd = str(_target(options, spec.cwd, context))
    result = await run_script(spec, context, source_url=task.source_url, timeout_sec=spec.timeout_sec)
    _log_output(task, result.stdout)
    if result.timed_out:
        raise TaskExecutionError(f"script timed out after {spec.timeout_sec}s: {spec.file}")
    if result.exit_code != 0:
        detail = result.stderr.strip()
        raise TaskExecutionError(
            f"script exited with code {result.exit_code}: {spec.file}"
            + (f"\n{detail}" if detail else "")
        )


# update-json


def _validate_update_json(task: TaskSpec) -> list[str]:
    errors = _require_str_fields(task, "file") + _condition_errors(task)
    if not isinstance(task.config.get("updates"), dict):
        errors.append(f"task '{task.id}': config.updates must be mapping")
    return errors


def _interpolate_deep(value: Any, context: Mapping[str, Any]) -> Any:
    if isinstance(value, str):
        return interpolate(value, context)
    if isinstance(value, list):
        return [_interpolate_deep(item, context) for item in value]
    if isinstance(value, dict):
        return {key: _interpolate_deep(item, context) for key, item in value.items()}
    return value


def _apply_json_updates(task: TaskSpec, context: Mapping[str, Any], path: Path) -> tuple[str, str]:
    try:
        before = path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise TaskExecutionError(f"file does not exist: {task.config['file']}") from exc
    try:
        data = json.loads(before)
    except json.JSONDecodeError as exc:
        raise TaskExecutionError(f"invalid JSON in {task.config['file']}: {exc}") from exc
    if not isinstance(data, dict):
        raise TaskExecutionError(f"JSON root must be an object: {task.config['file']}")
    for key, value in task.config["updates"].items():
        set_nested(data, key, _interpolate_deep(value, context))
    after = json.dumps(data, indent=JSON_INDENT, ensure_ascii=False) + "\n"
    return before, after


def _execute_update_json(
    task: TaskSpec, context: Mapping[str, Any], options: ExecutionOptions
) -> None:
    if not _condition_met(task, context):
        return
    path = _target(options, task.config["file"], context)
    _, after = _apply_json_updates(task, context, path)
    path.write_text(after, encoding="utf-8")


def _diff_update_json(
    task: TaskSpec, context: Mapping[str, Any], options: ExecutionOptions
) -> str:
    path = _target(options, task.config["file"], context)
    before, after = _apply_json_updates(task, context, path)
    return _unified_diff(interpolate(task.config["file"], context), before, after)


# regex-replace / replace-in-file

# JavaScript-style flags accepted in configurations; "g" and "u" need no re flag.
_REGEX_FLAGS = {"g": 0, "u": 0, "i": re.IGNORECASE, "m": re.MULTILINE, "s": re.DOTALL}
_REPLACEMENT_TOKEN = re.compile(r"\$(\$|&|\d{1,2}|<([^>]*)>)")


def _expand_replacement(replacement: str, match: re.Match[str]) -> str:
    """Expand ``$1``, ``$<name>``, ``$&`` and ``$$`` in ``replacement``."""

    def _token(token: re.Match[str]) -> str:
        ref = token.group(1)
        if ref == "$":
            return "$"
        if ref == "&":
            return match.group(0)
        name = token.group(2)
        if name is not None:
            if name not in match.re.groupindex:
                return token.group(0)
            return match.group(name) or ""
        index = int(ref)
        if 0 < index <= match.re.groups:
            return match.group(index) or ""
        # "$12" with fewer than 12 groups means group 1 followed by "2".
        if len(ref) == 2 and 0 < int(ref[0]) <= match.re.groups:
            return (match.group(int(ref[0])) or "") + ref[1]
        return token.group(0)

    return _REPLACEMENT_TOKEN.sub(_token, replacement)


def _compile(task: TaskSpec, pattern: str, flags: str = "") -> re.Pattern[str]:
    value = 0
    for flag in flags:
        if flag not in _REGEX_FLAGS:
            raise TaskExecutionError(f"task '{task.id}': unsupported regex flag {flag!r}")
        value |= _REGEX_FLAGS[flag]
    try:
        return re.compile(pattern, value)
    except re.error as exc:
        raise TaskExecutionError(f"task '{task.id}': invalid regex {pattern!r}: {exc}") from exc


def _substitute(
    pattern: re.Pattern[str], replacement: str, text: str, *, replace_all: bool
) -> str:
    return pattern.sub(
        lambda match: _expand_replacement(replacement, match), text, count=0 if replace_all else 1
    )


def _validate_regex_replace(task: TaskSpec) -> list[str]:
    errors = _require_str_fields(task, "file", "pattern") + _condition_errors(task)
    flags = task.config.get("flags", "")
    replacement = task.config.get("replacement")
    if not isinstance(flags, str):
        errors.append(f"task '{task.id}': config.flags must be string")
    if not isinstance(replacement, str):
        errors.append(f"task '{task.id}': config.replacement must be string")
    if not errors:
        try:
            _compile(task, task.config["pattern"], flags)
        except TaskExecutionError as exc:
            errors.append(str(exc))
    return errors


def _regex_replaced(task: TaskSpec, context: Mapping[str, Any], path: Path) -> tuple[str, str]:
    before = _read_text_or_none(path)
    if before is None:
        raise TaskExecutionError(f"file does not exist: {task.config['file']}")
    flags = task.config.get("flags", "")
    pattern = _compile(task, task.config["pattern"], flags)
    replacement = interpolate(task.config["replacement"], context)
    return before, _substitute(pattern, replacement, before, replace_all="g" in flags)


def _execute_regex_replace(
    task: TaskSpec, context: Mapping[str, Any], options: ExecutionOptions
) -> None:
    if not _condition_met(task, context):
        return
    path = _target(options, task.config["file"], context)
    _, after = _regex_replaced(task, context, path)
    path.write_text(after, encoding="utf-8")


def _diff_regex_replace(
    task: TaskSpec, context: Mapping[str, Any], options: ExecutionOptions
) -> str:
    path = _target(options, task.config["file"], context)
    before, after = _regex_replaced(task, context, path)
    return _unified_diff(interpolate(task.config["file"], context), before, after)


def _validate_replace_in_file(task: TaskSpec) -> list[str]:
    errors = _require_str_fields(task, "file") + _condition_errors(task)
    replacements = task.config.get("replacements")
    if not isinstance(replacements, list) or not replacements:
        errors.append(f"task '{task.id}': config.replacements must be non-empty list")
        return errors
    for index, item in enumerate(replacements):
        if (
            not isinstance(item, dict)
            or not _is_non_blank_str(item.get("find"))
            or not isinstance(item.get("replace"), str)
        ):
            errors.append(
                f"task '{task.id}': config.replacements[{index}] needs string find and replace"
            )
            continue
        try:
            _compile(task, item["find"])
        except TaskExecutionError as exc:
            errors.append(str(exc))
    return errors


def _replaced_in_file(
    task: TaskSpec, context: Mapping[str, Any], path: Path
) -> tuple[str, str] | None:
    before = _read_text_or_none(path)
    if before is None:
        logger.warning("task '%s': file not found: %s, skipping", task.id, path)
        return None
    after = before
    for item in task.config["replacements"]:
        pattern = _compile(task, item["find"])
        after = _substitute(pattern, interpolate(item["replace"], context), after, replace_all=True)
    return before, after


def _execute_replace_in_file(
    task: TaskSpec, context: Mapping[str, Any], options: ExecutionOptions
) -> None:
    if not _condition_met(task, context):
        return
    path = _target(options, task.config["file"], context)
    replaced = _replaced_in_file(task, context, path)
    if replaced is not None:
        path.write_text(replaced[1], encoding="utf-8")


def _diff_replace_in_file(
    task: TaskSpec, context: Mapping[str, Any], options: ExecutionOptions
) -> str:
    path = _target(options, task.config["file"], context)
    replaced = _replaced_in_file(task, context, path)
    if replaced is None:
        return ""
    return _unified_diff(interpolate(task.config["file"], context), *replaced)


# rename


def _execute_rename(
    task: TaskSpec, context: Mapping[str, Any], options: ExecutionOptions
) -> None:
    if not _condition_met(task, context):
        return
    source = _target(options, task.config["from"], context)
    destination = _target(options, task.config["to"], context)
    if not source.exists():
        logger.warning("task '%s': source path does not exist: %s", task.id, source)
        return
    destination.parent.mkdir(parents=True, exist_ok=True)
    source.rename(destination)


def _diff_rename(task: TaskSpec, context: Mapping[str, Any], options: ExecutionOptions) -> str:
    if not _target(options, task.config["from"], context).exists():
        return ""
    source = interpolate(task.config["from"], context)
    destination = interpolate(task.config["to"], context)
    return f"- {source}\n+ {destination}\n"


# git-init


def _validate_git_init(task: TaskSpec) -> list[str]:
    errors = _condition_errors(task)
    for key in ("removeExisting", "initialCommit"):
        if not isinstance(task.config.get(key, False), bool):
            errors.append(f"task '{task.id}': config.{key} must be boolean")
    message = task.config.get("message")
    if message is not None and not _is_non_blank_str(message):
        errors.append(f"task '{task.id}': config.message must be non-empty string")
    return errors


async def _git(task: TaskSpec, args: list[str], cwd: Path) -> None:
    try:
        result = await run_argv(["git", *args], cwd=str(cwd))
    except OSError as exc:
        raise TaskExecutionError(f"failed to start git: {exc}") from exc
    _log_output(task, result.stdout)
    if result.exit_code != 0:
        detail = result.stderr.strip()
        raise TaskExecutionError(
            f"git {args[0]} exited with code {result.exit_code}"
            + (f"\n{detail}" if detail else "")
        )


async def _execute_git_init(
    task: TaskSpec, context: Mapping[str, Any], options: ExecutionOptions
) -> None:
    if not _condition_met(task, context):
        return
    if task.config.get("removeExisting", False):
        git_dir = options.workdir / ".git"
        if git_dir.is_dir():
            shutil.rmtree(git_dir)
    await _git(task, ["init"], options.workdir)
    if task.config.get("initialCommit", False):
        message = interpolate(task.config.get("message") or "Initial commit", context)
        await _git(task, ["add", "."], options.workdir)
        await _git(task, ["commit", "-m", message], options.workdir)


def _diff_git_init(task: TaskSpec, context: Mapping[str, Any], options: ExecutionOptions) -> str:
    lines: list[str] = []
    exists = (options.workdir / ".git").is_dir()
    if exists and task.config.get("removeExisting", False):
        lines.append("- .git/\n")
        exists = False
    if not exists:
        lines.append("+ .git/\n")
    if task.config.get("initialCommit", False):
        message = interpolate(task.config.get("message") or "Initial commit", context)
        lines.append(f"+ commit: {message}\n")
    return "".join(lines)


BUILTIN_PLUGINS = (
    TaskPlugin("write", ["write", "template"], _execute_write, _diff_write, _validate_write),
    TaskPlugin("mkdir", ["mkdir"], _execute_mkdir, _diff_mkdir, _validate_mkdir),
    TaskPlugin("delete", ["delete"], _execute_delete, _diff_delete, _validate_delete),
    TaskPlugin("copy", ["copy"], _execute_copy, None, _validate_from_to),
    TaskPlugin("move", ["move"], _execute_move, None, _validate_from_to),
    TaskPlugin("exec", ["exec"], _execute_exec, None, _validate_exec),
    TaskPlugin("exec-file", ["exec-file"], _execute_exec_file, None, _validate_exec_file),
    TaskPlugin(
        "update-json", ["update-json"], _execute_update_json, _diff_update_json, _validate_update_json
    ),
    TaskPlugin("create", ["create"], _execute_create, _diff_create, _validate_create),
    TaskPlugin("append", ["append"], _execute_append, _diff_append, _validate_append),
    TaskPlugin(
        "regex-replace",
        ["regex-replace"],
        _execute_regex_replace,
        _diff_regex_replace,
        _validate_regex_replace,
    ),
    TaskPlugin(
        "replace-in-file",
        ["replace-in-file"],
        _execute_replace_in_file,
        _diff_replace_in_file,
        _validate_replace_in_file,
    ),
    TaskPlugin("rename", ["rename"], _execute_rename, _diff_rename, _validate_from_to),
    TaskPlugin("git-init", ["git-init"], _execute_git_init, _diff_git_init, _validate_git_init),
)


def register_builtin_plugins(registry: PluginRegistry) -> None:
    for plugin in BUILTIN_PLUGINS:
        if registry.get_plugin(plugin.name) is None:
            registry.register_plugin(plugin)
