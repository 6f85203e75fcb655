"""Async child-process execution."""
import asyncio
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from pathlib import Path

import structlog

from devstream.errors import CommandError

logger = structlog.get_logger()


@dataclass(frozen=True)
class CommandResult:
    """Outcome of a finished child process."""

    argv: list[str]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


CommandRunner = Callable[..., Awaitable[CommandResult]]


async def run_command(
    argv: Sequence[str],
    cwd: Path | str | None = None,
    timeout: float | None = None,
) -> CommandResult:
    """Run a program without a shell and capture its output.

    Args:
        argv: Program followed by its arguments.
        cwd: Working directory for the child.
        timeout: Seconds before the child is killed, None waits forever.

    Returns:
        Exit status and decoded output streams.

    Raises:
        CommandError: If the program cannot be started or times out.
    """
    args = list(argv)
    if not args:
        raise CommandError("Empty command", args)

    try:
        proc = await asyncio.create_subprocess_exec(
            *args,
            cwd=str(cwd) if cwd is not None else None,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        raise CommandError(f"Cannot start {args[0]}: {e}", args) from e

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError as e:
        proc.kill()
        await proc.wait()
        raise CommandError(f"{args[0]} timed out after {timeout}s", args) from e

    result = CommandResult(
        argv=args,
        returncode=proc.returncode if proc.returncode is not None else -1,
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
    )
    logger.debug("command_finished", argv=args, returncode=result.returncode)
    return result
