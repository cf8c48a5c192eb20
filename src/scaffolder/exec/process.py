from __future__ import annotations

import asyncio
import os
from contextlib import suppress
from dataclasses import dataclass


@dataclass(slots=True)
class ProcessResult:
    exit_code: int | None
    stdout: str
    stderr: str
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return not self.timed_out and self.exit_code == 0


async def wait_with_timeout(
    proc: asyncio.subprocess.Process, timeout_sec: float | None
) -> tuple[bool, int | None]:
    if timeout_sec is None:
        return False, await proc.wait()
    try:
        code = await asyncio.wait_for(proc.wait(), timeout=timeout_sec)
        return False, code
    except TimeoutError:
        proc.terminate()
        try:
            await asyncio.wait_for(proc.wait(), timeout=1.0)
        except TimeoutError:
            proc.kill()
            await proc.wait()
        return True, None


async def _read_stream(stream: asyncio.StreamReader | None) -> bytes:
    if stream is None:
        return b""
    return await stream.read()


async def _collect(proc: asyncio.subprocess.Process, timeout_sec: float | None) -> ProcessResult:
    readers = [
        asyncio.ensure_future(_read_stream(proc.stdout)),
        asyncio.ensure_future(_read_stream(proc.stderr)),
    ]
    timed_out, code = await wait_with_timeout(proc, timeout_sec)
    if timed_out:
        # Orphaned grandchildren may keep the pipes open; stop reading.
        for reader in readers:
            reader.cancel()
        for reader in readers:
            with suppress(asyncio.CancelledError):
                await reader
        return ProcessResult(exit_code=None, stdout="", stderr="", timed_out=True)
    stdout, stderr = await asyncio.gather(*readers)
    return ProcessResult(
        exit_code=code,
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
    )


def _merged_env(env: dict[str, str] | None) -> dict[str, str] | None:
    if not env:
        return None
    merged = os.environ.copy()
    merged.update(env)
    return merged


async def run_shell(
    command: str,
    *,
    cwd: str | None = None,
    env: dict[str, str] | None = None,
    timeout_sec: float | None = None,
) -> ProcessResult:
    """Run ``command`` through the system shell and capture its output.

    Raises ``OSError`` when the shell itself cannot be started.
    """
    proc = await asyncio.create_subprocess_shell(
        command,
        cwd=cwd,
        env=_merged_env(env),
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    return await _collect(proc, timeout_sec)


async def run_argv(
    argv: list[str],
    *,
    cwd: str | None = None,
    env: dict[str, str] | None = None,
    timeout_sec: float | None = None,
) -> ProcessResult:
    proc = await asyncio.create_subprocess_exec(
        *argv,
        cwd=cwd,
        env=_merged_env(env),
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    return await _collect(proc, timeout_sec)
