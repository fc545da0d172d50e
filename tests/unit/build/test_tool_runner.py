"""
Unit tests for external tool execution.
"""

import asyncio
import subprocess
import sys

import psutil
import pytest

from avrforge.build.tool_runner import (
    ToolNotFoundError,
    ToolResult,
    ToolTimeoutError,
    _kill_process_tree,
    run_tool,
)


class TestRunTool:
    """Test suite for run_tool."""

    def test_captures_stdout_and_stderr(self):
        script = "import sys; print('out'); print('err', file=sys.stderr); sys.exit(3)"

        result = asyncio.run(run_tool([sys.executable, "-c", script]))

        assert result.returncode == 3
        assert result.stdout.strip() == "out"
        assert result.stderr.strip() == "err"

    def test_cwd(self, tmp_path):
        script = "import os; print(os.getcwd())"

        result = asyncio.run(run_tool([sys.executable, "-c", script], cwd=tmp_path))

        assert result.stdout.strip() == str(tmp_path.resolve())

    def test_missing_executable(self):
        with pytest.raises(ToolNotFoundError) as excinfo:
            asyncio.run(run_tool(["avrforge-no-such-tool", "--version"]))

        assert excinfo.value.tool == "avrforge-no-such-tool"

    def test_timeout(self):
        with pytest.raises(ToolTimeoutError) as excinfo:
            asyncio.run(run_tool([sys.executable, "-c", "import time; time.sleep(30)"], timeout=0.5))

        assert excinfo.value.timeout == 0.5


class TestToolResult:
    """Test suite for ToolResult."""

    def test_output_combines_streams(self):
        assert ToolResult(["x"], 0, "a", "b").output == "a\nb"
        assert ToolResult(["x"], 0, "", "b").output == "b"


class TestKillProcessTree:
    """Test suite for _kill_process_tree."""

    def test_kills_process(self):
        proc = subprocess.Popen([sys.executable, "-c", "import time; time.sleep(30)"])
        try:
            _kill_process_tree(proc.pid)
            proc.wait(timeout=5)
            assert not psutil.pid_exists(proc.pid) or proc.returncode is not None
        finally:
            if proc.poll() is None:
                proc.kill()

    def test_missing_process(self):
        # A pid that is not running is ignored
        _kill_process_tree(2 ** 22 + 12345)
