"""
Linking and image extraction for AVR firmware.

Object files are linked with avr-gcc into firmware.elf together with the
math library, and avr-objcopy then produces the Intel HEX image that the
bootloader accepts.
"""

from pathlib import Path
from typing import List, Sequence

from ..config.board_config import BoardProfile
from ..config.toolchain_profile import ToolchainProfile
from .diagnostics import has_fatal_diagnostics
from .tool_runner import ToolResult, ToolRunner, run_tool

LINK_TIMEOUT = 300.0
OBJCOPY_TIMEOUT = 60.0


class LinkerError(Exception):
    """Raised when linking or image extraction fails."""

    def __init__(self, message: str, stdout: str = "", stderr: str = ""):
        super().__init__(message)
        self.stdout = stdout
        self.stderr = stderr


class AvrLinker:
    """Links objects to an ELF executable and extracts the flash image."""

    def __init__(self, toolchain: ToolchainProfile, board: BoardProfile, runner: ToolRunner = run_tool):
        self.toolchain = toolchain
        self.board = board
        self.runner = runner

    def link_command(self, objects: Sequence[Path], elf_path: Path) -> List[str]:
        return [
            self.toolchain.elf_cmd,
            *self.toolchain.elf_flag_list(),
            f"-mmcu={self.board.mcu}",
            "-o",
            str(elf_path),
            *[str(obj) for obj in objects],
            "-lm",
        ]

    def objcopy_command(self, elf_path: Path, hex_path: Path) -> List[str]:
        return [
            self.toolchain.objcopy_cmd,
            *self.toolchain.objcopy_flag_list(),
            str(elf_path),
            str(hex_path),
        ]

    @staticmethod
    def _check(result: ToolResult, artifact: Path, what: str) -> None:
        if result.returncode != 0 or has_fatal_diagnostics(result.output) or not artifact.exists():
            raise LinkerError(f"{what} failed (exit code {result.returncode})", result.stdout, result.stderr)

    async def link(self, objects: Sequence[Path], elf_path: Path) -> ToolResult:
        """
        Link object files into an ELF executable.

        Raises:
            LinkerError: On any error-level diagnostic or missing output
        """
        if not objects:
            raise LinkerError("No object files to link")
        if elf_path.exists():
            elf_path.unlink()
        result = await self.runner(self.link_command(objects, elf_path), timeout=LINK_TIMEOUT)
        self._check(result, elf_path, "Linking")
        return result

    async def extract_image(self, elf_path: Path, hex_path: Path) -> ToolResult:
        """
        Convert the ELF executable to an Intel HEX flash image.

        Raises:
            LinkerError: If objcopy fails or produces no image
        """
        if hex_path.exists():
            hex_path.unlink()
        result = await self.runner(self.objcopy_command(elf_path, hex_path), timeout=OBJCOPY_TIMEOUT)
        self._check(result, hex_path, "Image extraction")
        return result
