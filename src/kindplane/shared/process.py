"""Async subprocess helper shared by the kind/kubectl/helm/docker/git adapters."""

from __future__ import annotations

import asyncio
import os
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from pathlib import Path

from ..errors import CommandError
from .logging import get_logger

logger = get_logger(__name__)


@dataclass
class CommandResult:
    """Captured output of a finished command."""

    command: list[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


async def run_command(
    command: Sequence[str],
    *,
    input: str | None = None,
    cwd: str | Path | None = None,
    env: dict[str, str] | None = None,
    check: bool = True,
    on_stderr_line: Callable[[str], Awaitable[None]] | None = None,
) -> CommandResult:
    """Run a command to completion.

    Cancelling the awaiting task kills the child process before the
    cancellation propagates.

    Args:
        command: Program and arguments.
        input: Text written to stdin.
        cwd: Working directory.
        env: Extra environment variables on top of os.environ.
        check: Raise CommandError on a non-zero exit status.
        on_stderr_line: Awaited for each stderr line as it arrives.

    Returns:
        CommandResult with decoded output.

    Raises:
        CommandError: The program is missing, or exited non-zero with ``check``.
    """
    argv = [str(part) for part in command]
    logger.debug("Running command", command=" ".join(argv))

    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            stdin=asyncio.subprocess.PIPE if input is not None else asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=str(cwd) if cwd else None,
            env={**os.environ, **env} if env else None,
        )
    except FileNotFoundError as e:
        raise CommandError(f"{argv[0]} not found. Is it installed?", command=argv) from e

    try:
        if on_stderr_line is None:
            out, err = await proc.communicate(input.encode() if input is not None else None)
            stdout, stderr = out.decode(errors="replace"), err.decode(errors="replace")
        else:
            stdout, stderr = await _stream(proc, input, on_stderr_line)
    except asyncio.CancelledError:
        if proc.returncode is None:
            proc.kill()
            await proc.wait()
        raise

    result = CommandResult(argv, proc.returncode or 0, stdout, stderr)
    if check and not result.ok:
        detail = stderr.strip().splitlines()[-1] if stderr.strip() else f"exit status {result.returncode}"
        raise CommandError(
            f"{' '.join(argv[:2])} failed: {detail}",
            command=argv,
            returncode=result.returncode,
            stderr=stderr,
        )
    return result


async def _stream(
    proc: asyncio.subprocess.Process,
    input: str | None,
    on_stderr_line: Callable[[str], Awaitable[None]],
) -> tuple[str, str]:
    if input is not None and proc.stdin is not None:
        proc.stdin.write(input.encode())
        await proc.stdin.drain()
        proc.stdin.close()

    lines: list[str] = []

    async def read_stderr() -> None:
        assert proc.stderr is not None
        async for raw in proc.stderr:
            line = raw.decode(errors="replace").rstrip("\n")
            lines.append(line)
            await on_stderr_line(line)

    assert proc.stdout is not None
    out, _ = await asyncio.gather(proc.stdout.read(), read_stderr())
    await proc.wait()
    return out.decode(errors="replace"), "\n".join(lines)
