"""External process execution with cooperative cancellation.

Exactly one external process runs at a time. Waiting happens in bounded poll
intervals; the run's cancellation flag is checked after each one and the
process is killed when it is raised.
"""

import asyncio
import logging
import os
import shutil
from collections.abc import Callable
from collections.abc import Mapping
from collections.abc import Sequence
from pathlib import Path
from typing import cast

from .context import RunContext
from .exceptions import InstallCancelled
from .exceptions import ToolNotFoundError

logger = logging.getLogger(__name__)

# Longest single output line accepted before the reader gives up on the stream
_LINE_LIMIT = 1024 * 1024


def _resolve_executable(command: str) -> str:
    # Windows shims (pnpm.cmd, npm.cmd) are only found through which()
    return shutil.which(command) or command


def _format_command(command: str, args: Sequence[str]) -> str:
    return " ".join([command, *args])


async def _pump_output(
    stream: asyncio.StreamReader,
    label: str,
    on_output: Callable[[str], None] | None,
) -> None:
    async for raw in stream:
        line = raw.decode("utf-8", errors="replace").rstrip()
        if not line:
            continue
        logger.info(f"[{label}] {line}")
        if on_output is not None:
            on_output(line)


async def _kill(process: asyncio.subprocess.Process) -> None:
    if process.returncode is None:
        try:
            process.kill()
        except ProcessLookupError:
            pass
        await process.wait()


async def _wait_polling(ctx: RunContext, process: asyncio.subprocess.Process) -> int:
    """Wait for exit, checking for cancellation every ``ctx.poll_interval`` seconds."""
    waiter = asyncio.ensure_future(process.wait())
    try:
        while not waiter.done():
            await asyncio.wait({waiter}, timeout=ctx.poll_interval)
            if ctx.cancelled:
                logger.warning(f"Terminating process {process.pid}")
                await _kill(process)
                raise InstallCancelled()
        return waiter.result()
    finally:
        if not waiter.done():
            waiter.cancel()


async def run_command(
    ctx: RunContext,
    command: str,
    args: Sequence[str],
    cwd: Path | None = None,
    on_output: Callable[[str], None] | None = None,
    env: Mapping[str, str] | None = None,
) -> int:
    """Run a command, stream its combined output to the log, return its exit code.

    Args:
        ctx: Run context (cancellation, active process handle)
        command: Executable name or path
        args: Arguments
        cwd: Working directory
        on_output: Optional callback receiving each non-empty output line
        env: Variables set on top of the current environment

    Returns:
        Process exit code

    Raises:
        InstallCancelled: If the run was cancelled while the process ran
        ToolNotFoundError: If the process could not be started
    """
    ctx.raise_if_cancelled()
    location = f" (in {cwd})" if cwd else ""
    logger.info(f"Running: {_format_command(command, args)}{location}")

    try:
        process = await asyncio.create_subprocess_exec(
            _resolve_executable(command),
            *args,
            cwd=cwd,
            env={**os.environ, **env} if env else None,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
            stdin=asyncio.subprocess.DEVNULL,
            limit=_LINE_LIMIT,
        )
    except OSError as e:
        raise ToolNotFoundError(
            f"Could not start '{command}': {e}",
            context={"command": command, "cwd": str(cwd) if cwd else None},
        ) from e

    ctx.active_process = process
    # stdout=PIPE always yields a reader
    stdout = cast(asyncio.StreamReader, process.stdout)
    reader = asyncio.create_task(_pump_output(stdout, Path(command).stem, on_output))
    try:
        exit_code = await _wait_polling(ctx, process)
        await reader
    finally:
        if not reader.done():
            reader.cancel()
        await _kill(process)
        ctx.active_process = None

    # cancel() kills the process directly; the exit it causes is not a failure
    ctx.raise_if_cancelled()
    logger.debug(f"'{_format_command(command, args)}' exited with {exit_code}")
    return exit_code


def _powershell_quote(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def _is_root() -> bool:
    geteuid = getattr(os, "geteuid", None)
    return callable(geteuid) and geteuid() == 0


def elevated_argv(command: str, args: Sequence[str], cwd: Path | None = None) -> list[str]:
    """Build the argv that runs ``command`` in an elevated, interactive session.

    Raises:
        ToolNotFoundError: If no elevation mechanism is available
    """
    executable = _resolve_executable(command)

    if os.name == "nt":
        script = f"$p = Start-Process -FilePath {_powershell_quote(executable)}"
        if args:
            script += " -ArgumentList @(" + ",".join(_powershell_quote(a) for a in args) + ")"
        if cwd is not None:
            script += f" -WorkingDirectory {_powershell_quote(str(cwd))}"
        script += " -Verb RunAs -Wait -PassThru; exit $p.ExitCode"
        return ["powershell", "-NoProfile", "-ExecutionPolicy", "Bypass", "-Command", script]

    if _is_root():
        return [executable, *args]

    sudo = shutil.which("sudo")
    if sudo is None:
        raise ToolNotFoundError(
            f"'{command}' needs elevated privileges but sudo is not available",
            context={"command": command},
        )
    # sudo resets PATH; carry ours so provisioned tools stay reachable
    return [sudo, "env", f"PATH={os.environ.get('PATH', '')}", executable, *args]


async def launch_elevated(
    ctx: RunContext,
    command: str,
    args: Sequence[str],
    cwd: Path | None = None,
) -> int:
    """Run a command elevated with the user's terminal attached (output not captured).

    Returns:
        Exit code of the elevated session

    Raises:
        InstallCancelled: If the run was cancelled while waiting
        ToolNotFoundError: If the session could not be started
    """
    ctx.raise_if_cancelled()
    argv = elevated_argv(command, args, cwd)
    logger.info(f"Launching elevated: {_format_command(command, args)}")

    try:
        process = await asyncio.create_subprocess_exec(*argv, cwd=cwd)
    except OSError as e:
        raise ToolNotFoundError(f"Could not start elevated '{command}': {e}", context={"argv": argv}) from e

    ctx.active_process = process
    try:
        exit_code = await _wait_polling(ctx, process)
    finally:
        await _kill(process)
        ctx.active_process = None

    ctx.raise_if_cancelled()
    return exit_code
