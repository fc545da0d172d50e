"""
External tool execution.

Every compiler, linker, objcopy and avrdude invocation goes through
``run_tool``: an asyncio subprocess with captured, separately kept stdout and
stderr and a wall-clock timeout. On timeout the whole process tree is killed
(avr-gcc forks cc1plus/as/ld, avrdude may fork helpers) so nothing keeps
holding files or the serial device.
"""

import asyncio
import logging
import shlex
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, List, Optional, Sequence

import psutil

logger = logging.getLogger(__name__)


class ToolNotFoundError(Exception):
    """Raised when an external tool executable cannot be started."""

    def __init__(self, tool: str):
        super().__init__(f"Required tool '{tool}' was not found on PATH. Is the AVR toolchain installed?")
        self.tool = tool


class ToolTimeoutError(Exception):
    """Raised when an external tool exceeds its time limit."""

    def __init__(self, tool: str, timeout: float):
        super().__init__(f"'{tool}' did not finish within {timeout:g}s")
        self.tool = tool
        self.timeout = timeout


@dataclass(frozen=True)
class ToolResult:
    """Outcome of one tool invocation."""

    command: List[str]
    returncode: int
    stdout: str
    stderr: str

    @property
    def output(self) -> str:
        """Combined output, stdout first."""
        return "\n".join(part for part in (self.stdout, self.stderr) if part)


ToolRunner = Callable[..., Awaitable[ToolResult]]


def _kill_process_tree(pid: int) -> None:
    """Terminate a process and all of its children, children first."""
    try:
        root = psutil.Process(pid)
        processes = root.children(recursive=True) + [root]
    except psutil.NoSuchProcess:
        return

    for proc in reversed(processes):
        try:
            proc.terminate()
        except psutil.NoSuchProcess:
            pass

    _, alive = psutil.wait_procs(processes, timeout=3)
    for proc in alive:
        try:
            proc.kill()
        except psutil.NoSuchProcess:
            pass
        else:
            logger.warning("Force killed process %d (%s)", proc.pid, proc.name())


async def run_tool(
    command: Sequence[str],
    cwd: Optional[Path] = None,
    timeout: Optional[float] = None,
) -> ToolResult:
    """
    Run an external tool to completion.

    Args:
        command: Executable followed by its arguments
        cwd: Working directory
        timeout: Seconds before the process tree is killed (None waits forever)

    Returns:
        ToolResult; a non-zero return code is not an error at this level

    Raises:
        ToolNotFoundError: If the executable does not exist
        ToolTimeoutError: If the timeout elapses
    """
    command = [str(part) for part in command]
    logger.debug("Running: %s", shlex.join(command))
    try:
        process = await asyncio.create_subprocess_exec(
            *command,
            cwd=str(cwd) if cwd else None,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError as e:
        raise ToolNotFoundError(command[0]) from e

    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout)
    except asyncio.TimeoutError:
        await asyncio.to_thread(_kill_process_tree, process.pid)
        await process.wait()
        raise ToolTimeoutError(command[0], timeout or 0) from None

    return ToolResult(
        command=command,
        returncode=process.returncode,
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
    )
