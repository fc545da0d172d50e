"""
Shared fixtures for unit tests.

``fake_runner`` stands in for ``run_tool``: it records every command and, by
default, succeeds and creates the file named after ``-o`` (or the last
argument for objcopy) so the build sees its artifacts.
"""

from pathlib import Path
from typing import List, Optional

import pytest

from avrforge.build.tool_runner import ToolResult


class FakeToolRunner:
    """Records commands and answers them from fragment rules."""

    def __init__(self):
        self.calls: List[List[str]] = []
        self.timeouts: List[Optional[float]] = []
        self._rules = []

    def respond(self, fragment: str, returncode: int = 0, stdout: str = "", stderr: str = "",
                create_output: bool = False) -> None:
        """Answer commands containing ``fragment`` with a fixed result."""
        self._rules.append((fragment, (returncode, stdout, stderr, create_output)))

    def raise_on(self, fragment: str, error: Exception) -> None:
        self._rules.append((fragment, error))

    def commands_with(self, fragment: str) -> List[List[str]]:
        return [call for call in self.calls if fragment in " ".join(call)]

    @staticmethod
    def _create_output(command: List[str]) -> None:
        if command[0].endswith("objcopy"):
            target = Path(command[-1])
        elif "-o" in command:
            target = Path(command[command.index("-o") + 1])
        else:
            return
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(b"\0")

    async def __call__(self, command, cwd=None, timeout=None) -> ToolResult:
        command = [str(part) for part in command]
        self.calls.append(command)
        self.timeouts.append(timeout)
        joined = " ".join(command)
        for fragment, outcome in self._rules:
            if fragment not in joined:
                continue
            if isinstance(outcome, Exception):
                raise outcome
            returncode, stdout, stderr, create_output = outcome
            if create_output:
                self._create_output(command)
            return ToolResult(command, returncode, stdout, stderr)
        self._create_output(command)
        return ToolResult(command, 0, "", "")


@pytest.fixture
def fake_runner():
    return FakeToolRunner()
