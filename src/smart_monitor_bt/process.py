"""Async wrapper for running the external Bluetooth and audio tools."""

import asyncio
import logging
import os
import shlex
import signal
from dataclasses import dataclass

from .errors import ToolReportedFailure, ToolTimeout

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommandResult:
    """Exit status and decoded output of one finished command."""

    argv: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def output(self) -> str:
        """stdout and stderr combined, as the tools mix them freely."""
        if self.stderr:
            return f"{self.stdout}\n{self.stderr}" if self.stdout else self.stderr
        return self.stdout

    @property
    def command(self) -> str:
        return shlex.join(self.argv)


class CommandRunner:
    """Runs a program with asyncio subprocesses and a hard deadline.

    The event loop is never blocked; a process that outlives its timeout
    is killed and reported as :class:`ToolTimeout`.
    """

    def __init__(self, default_timeout: float = 5.0):
        self.default_timeout = default_timeout

    async def run(self, *argv: str, timeout: float | None = None) -> CommandResult:
        timeout = self.default_timeout if timeout is None else timeout
        command = shlex.join(argv)
        logger.debug("exec: %s (timeout %.1fs)", command, timeout)
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=True,
            )
        except (FileNotFoundError, PermissionError) as exc:
            raise ToolReportedFailure(command, f"cannot execute: {exc}") from exc

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            _kill_group(proc)
            await proc.wait()
            logger.warning("Command timed out after %.1fs: %s", timeout, command)
            raise ToolTimeout(command, timeout) from None

        result = CommandResult(
            argv=tuple(argv),
            returncode=proc.returncode,
            stdout=stdout.decode(errors="replace").strip(),
            stderr=stderr.decode(errors="replace").strip(),
        )
        if not result.ok:
            logger.debug("exit %d from %s: %s", result.returncode, command, result.output)
        return result

    async def spawn(self, *argv: str) -> asyncio.subprocess.Process:
        """Start a long-running process whose output is discarded."""
        command = shlex.join(argv)
        logger.debug("spawn: %s", command)
        try:
            return await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except (FileNotFoundError, PermissionError) as exc:
            raise ToolReportedFailure(command, f"cannot execute: {exc}") from exc


def _kill_group(proc: asyncio.subprocess.Process) -> None:
    """SIGKILL the child's whole session so no helper keeps its pipes open."""
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass
