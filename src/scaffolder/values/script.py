from __future__ import annotations

import asyncio
import logging
import os
import sys
import tempfile
from collections.abc import Mapping
from contextlib import suppress
from pathlib import Path, PurePosixPath
from typing import Any
from urllib.parse import urlparse

from scaffolder.config.fetch import fetch_url
from scaffolder.config.schema import ExecFile
from scaffolder.exec.process import ProcessResult, run_argv
from scaffolder.util.errors import ConfigurationNotFoundError, InvalidConfigurationError
from scaffolder.util.refs import is_url, resolve_file_path
from scaffolder.util.template import interpolate

logger = logging.getLogger(__name__)

RUNTIME_BY_SUFFIX = {
    ".js": "node",
    ".cjs": "node",
    ".mjs": "node",
    ".sh": "bash",
    ".bash": "bash",
    ".ps1": "pwsh",
    ".py": "python",
}
SUPPORTED_RUNTIMES = {"node", "bash", "sh", "pwsh", "powershell", "python"}


def _suffix(location: str) -> str:
    path = urlparse(location).path if is_url(location) else location
    return PurePosixPath(path).suffix.lower()


def detect_runtime(location: str) -> str:
    runtime = RUNTIME_BY_SUFFIX.get(_suffix(location))
    if runtime is None:
        raise InvalidConfigurationError(
            f"cannot detect runtime for script {location}; set runtime explicitly"
        )
    return runtime


def build_command(runtime: str, script: str, args: list[str]) -> list[str]:
    if runtime not in SUPPORTED_RUNTIMES:
        raise InvalidConfigurationError(
            f"unsupported runtime {runtime!r}; expected one of {sorted(SUPPORTED_RUNTIMES)}"
        )
    if runtime == "python":
        return [sys.executable, script, *args]
    if runtime in ("pwsh", "powershell"):
        return [runtime, "-NoProfile", "-File", script, *args]
    return [runtime, script, *args]


def _write_temp_script(text: str, suffix: str) -> str:
    fd, path = tempfile.mkstemp(prefix="scaffolder-script-", suffix=suffix)
    with os.fdopen(fd, "w", encoding="utf-8") as f:
        f.write(text)
    os.chmod(path, 0o700)
    return path


async def run_script(
    spec: ExecFile,
    context: Mapping[str, Any],
    *,
    source_url: str | None = None,
    timeout_sec: float | None = None,
) -> ProcessResult:
    """Run a local or remote script with interpolated args, env parameters and cwd.

    Remote scripts are downloaded to a temporary file which is removed
    whatever the outcome.
    """
    location = resolve_file_path(interpolate(spec.file, context), source_url)
    runtime = spec.runtime or detect_runtime(location)
    args = [interpolate(arg, context) for arg in spec.args]
    env = {key: interpolate(value, context) for key, value in spec.parameters.items()}
    cwd = interpolate(spec.cwd, context) if spec.cwd else None

    temp_path: str | None = None
    try:
        if is_url(location):
            text = await asyncio.to_thread(fetch_url, location)
            temp_path = _write_temp_script(text, _suffix(location))
            script = temp_path
        else:
            if not Path(location).is_file():
                raise ConfigurationNotFoundError(location, "script file does not exist")
            script = location
        command = build_command(runtime, script, args)
        logger.debug("running script %s with %s", location, runtime)
        return await run_argv(command, cwd=cwd, env=env, timeout_sec=timeout_sec)
    finally:
        if temp_path is not None:
            with suppress(OSError):
                os.unlink(temp_path)
