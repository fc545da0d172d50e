"""
AVR compiler wrapper.

Builds avr-gcc / avr-g++ command lines from the resolved ToolchainProfile and
BoardProfile and compiles single translation units to object files.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple

from ..config.board_config import BoardProfile
from ..config.toolchain_profile import ToolchainProfile
from .diagnostics import CompilerProblem, parse_problems
from .project_classifier import ProjectLayout
from .tool_runner import ToolRunner, run_tool

logger = logging.getLogger(__name__)

C_SUFFIXES = (".c",)
CPP_SUFFIXES = (".cpp", ".cc", ".cxx")
ASM_SUFFIXES = (".S",)
SOURCE_SUFFIXES = C_SUFFIXES + CPP_SUFFIXES + ASM_SUFFIXES

# Per-file compile time limit
COMPILE_TIMEOUT = 300.0


class CompilerError(Exception):
    """Raised when a translation unit that the build depends on fails."""

    def __init__(self, message: str, stdout: str = "", stderr: str = ""):
        super().__init__(message)
        self.stdout = stdout
        self.stderr = stderr


@dataclass(frozen=True)
class UnitResult:
    """Result of compiling one translation unit."""

    source: Path
    object_file: Optional[Path]
    stdout: str
    stderr: str
    returncode: int
    problems: Tuple[CompilerProblem, ...] = field(default=())

    @property
    def success(self) -> bool:
        return self.object_file is not None


def object_name(source: Path, base: Path, prefix: str) -> str:
    """
    Derive a flat, collision-free object file name.

    ``src/drivers/led.cpp`` relative to ``src`` with prefix ``src`` becomes
    ``src_drivers_led.o``.
    """
    relative = source.relative_to(base).with_suffix("")
    return f"{prefix}_{'_'.join(relative.parts)}.o"


class AvrCompiler:
    """
    Compiles C, C++ and assembler sources for one board.

    Framework builds get the core and variant include directories and the
    board/arch defines; bare-register builds only get ``-mmcu`` and ``F_CPU``.
    """

    def __init__(
        self,
        toolchain: ToolchainProfile,
        board: BoardProfile,
        layout: ProjectLayout,
        runner: ToolRunner = run_tool,
    ):
        self.toolchain = toolchain
        self.board = board
        self.layout = layout
        self.runner = runner

    def include_flags(self) -> List[str]:
        flags = [f"-I{self.layout.entry_file.parent}"]
        if self.layout.is_framework:
            flags.extend([f"-I{self.layout.core_dir}", f"-I{self.layout.variant_dir}"])
        return flags

    def build_command(self, source: Path, output: Path) -> List[str]:
        """Build the compiler command line for one source file."""
        if source.suffix in CPP_SUFFIXES:
            cmd = [self.toolchain.cpp_cmd, *self.toolchain.cpp_flag_list()]
        elif source.suffix in ASM_SUFFIXES:
            cmd = [self.toolchain.c_cmd, *self.toolchain.c_flag_list(), "-x", "assembler-with-cpp"]
        else:
            cmd = [self.toolchain.c_cmd, *self.toolchain.c_flag_list()]

        cmd.extend(self.board.get_defines(framework=self.layout.is_framework))
        cmd.extend(self.include_flags())
        cmd.extend([str(source), "-o", str(output)])
        return cmd

    async def compile(self, source: Path, output: Path) -> UnitResult:
        """
        Compile one source file.

        A unit succeeds when the compiler exits 0, reports no error-level
        diagnostic and the object file exists.

        Raises:
            ToolNotFoundError: If the compiler executable is missing
            ToolTimeoutError: If compilation exceeds COMPILE_TIMEOUT
        """
        output.parent.mkdir(parents=True, exist_ok=True)
        if output.exists():
            output.unlink()

        result = await self.runner(self.build_command(source, output), cwd=self.layout.project_dir,
                                   timeout=COMPILE_TIMEOUT)
        problems = tuple(parse_problems(result.output))
        failed = result.returncode != 0 or any(p.is_error for p in problems) or not output.exists()

        if failed:
            logger.debug("Compilation of %s failed (exit %d)", source, result.returncode)

        return UnitResult(
            source=source,
            object_file=None if failed else output,
            stdout=result.stdout,
            stderr=result.stderr,
            returncode=result.returncode,
            problems=problems,
        )
