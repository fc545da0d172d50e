"""
Build orchestration for AVR firmware projects.

The build runs five strictly sequential stages:
1. Classify the project (framework or bare-register)
2. Compile the entry unit and the other project sources (fatal on failure)
3. Compile the framework core sources (framework builds only; a failing
   core file is skipped with a warning)
4. Link all produced objects plus libm into firmware.elf
5. Extract firmware.hex

Stage failures are raised as module exceptions internally and converted into
a CompileResult here; callers never see a raw exception.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from ..config.board_config import BoardProfile, load_board_profile
from ..config.project_settings import ConfigurationError, ProjectSettings
from ..config.toolchain_profile import ToolchainProfile, load_toolchain_profile
from .compiler import SOURCE_SUFFIXES, AvrCompiler, CompilerError, UnitResult, object_name
from .diagnostics import CompilerProblem
from .linker import AvrLinker, LinkerError
from .project_classifier import ClassificationError, ProjectLayout, classify_project
from .tool_runner import ToolNotFoundError, ToolRunner, ToolTimeoutError, run_tool

logger = logging.getLogger(__name__)

PRIMARY_OBJECT = "app_main.o"
ELF_NAME = "firmware.elf"
HEX_NAME = "firmware.hex"


class BuildStage(Enum):
    CLASSIFY = "classify"
    PRIMARY = "primary compilation"
    SUPPORT = "support compilation"
    LINK = "link"
    IMAGE = "image extraction"


class FailurePolicy(Enum):
    """What a failing translation unit in a compile group does to the build."""

    FATAL = "fatal"
    SKIP = "skip"


@dataclass(frozen=True)
class CompileGroup:
    """Sources compiled together under one failure policy."""

    stage: BuildStage
    units: Tuple[Tuple[Path, Path], ...]
    policy: FailurePolicy


@dataclass(frozen=True)
class CompileResult:
    """
    Terminal outcome of one build.

    Attributes:
        success: Whether firmware.hex was produced
        elf_path: Linked executable, on success
        hex_path: Flashable image, on success
        error: Human-readable failure reason, on failure
        stage: Stage that failed, on failure
        stdout: Standard output of the failing (or last) tool
        stderr: Standard error of the failing (or last) tool
        warnings: Skipped support files and other recovered problems
        problems: Structured diagnostics parsed from compiler output
        build_time: Wall-clock seconds
    """

    success: bool
    elf_path: Optional[Path] = None
    hex_path: Optional[Path] = None
    error: Optional[str] = None
    stage: Optional[BuildStage] = None
    stdout: str = ""
    stderr: str = ""
    warnings: Tuple[str, ...] = ()
    problems: Tuple[CompilerProblem, ...] = field(default=())
    build_time: float = 0.0


class _StageFailure(Exception):
    def __init__(self, stage: BuildStage, error: Exception):
        super().__init__(str(error))
        self.stage = stage
        self.error = error


class BuildOrchestrator:
    """
    Orchestrates a complete firmware build.

    Example usage:
        orchestrator = BuildOrchestrator(verbose=True)
        result = asyncio.run(orchestrator.build(Path("."), "uno"))
        if result.success:
            print(f"Firmware: {result.hex_path}")
    """

    def __init__(self, runner: ToolRunner = run_tool, jobs: int = 4, verbose: bool = False):
        """
        Initialize build orchestrator.

        Args:
            runner: Coroutine used to execute external tools
            jobs: Maximum number of concurrent compiler processes
            verbose: Print stage progress
        """
        self.runner = runner
        self.jobs = max(1, jobs)
        self.verbose = verbose

    def _progress(self, message: str) -> None:
        logger.info(message)
        if self.verbose:
            print(message)

    async def build(
        self,
        project_dir: Path,
        board_id: str,
        toolchain: Optional[ToolchainProfile] = None,
        board: Optional[BoardProfile] = None,
    ) -> CompileResult:
        """
        Build a project for a board.

        Args:
            project_dir: Project root directory
            board_id: Board identifier (e.g. "uno")
            toolchain: Pre-resolved toolchain profile (read from platform.txt if None)
            board: Pre-resolved board profile (read from boards.txt if None)

        Returns:
            CompileResult with artifact paths or the failure reason
        """
        start_time = time.time()
        warnings: List[str] = []
        problems: List[CompilerProblem] = []

        def failure(stage: Optional[BuildStage], error: str, stdout: str = "", stderr: str = "") -> CompileResult:
            return CompileResult(
                success=False,
                error=error,
                stage=stage,
                stdout=stdout,
                stderr=stderr,
                warnings=tuple(warnings),
                problems=tuple(problems),
                build_time=time.time() - start_time,
            )

        try:
            project_dir = Path(project_dir).resolve()
            if toolchain is None or board is None:
                settings = ProjectSettings.load(project_dir)
                toolchain = toolchain or load_toolchain_profile(settings.platform_txt)
                board = board or load_board_profile(board_id, settings.boards_txt)
            warnings.extend(toolchain.diagnostics)
            warnings.extend(board.diagnostics)

            # Stage 1: classify
            self._progress("[1/5] Classifying project...")
            try:
                layout = classify_project(project_dir, board)
            except ClassificationError as e:
                raise _StageFailure(BuildStage.CLASSIFY, e) from e
            self._progress(f"      {layout.kind.value} build for {board.name} ({board.mcu} @ {board.f_cpu})")

            layout.build_dir.mkdir(parents=True, exist_ok=True)
            compiler = AvrCompiler(toolchain, board, layout, self.runner)
            objects: List[Path] = []

            # Stages 2 and 3: compile groups in order
            for number, group in ((2, self._primary_group(layout)), (3, self._support_group(layout))):
                if group is None:
                    self._progress(f"[{number}/5] Skipping support compilation (bare-register build)")
                    continue
                self._progress(f"[{number}/5] {group.stage.value.capitalize()} ({len(group.units)} files)...")
                produced = await self._compile_group(compiler, group, warnings, problems)
                objects.extend(produced)

            if layout.build_dir / PRIMARY_OBJECT not in objects:
                raise _StageFailure(BuildStage.SUPPORT, CompilerError("Primary object file is missing"))

            # Stage 4: link
            self._progress(f"[4/5] Linking {len(objects)} objects...")
            linker = AvrLinker(toolchain, board, self.runner)
            elf_path = layout.build_dir / ELF_NAME
            hex_path = layout.build_dir / HEX_NAME
            try:
                await linker.link(objects, elf_path)
            except LinkerError as e:
                raise _StageFailure(BuildStage.LINK, e) from e

            # Stage 5: image
            self._progress("[5/5] Extracting flash image...")
            try:
                image = await linker.extract_image(elf_path, hex_path)
            except LinkerError as e:
                raise _StageFailure(BuildStage.IMAGE, e) from e

            self._progress(f"      Firmware: {hex_path}")
            return CompileResult(
                success=True,
                elf_path=elf_path,
                hex_path=hex_path,
                stdout=image.stdout,
                stderr=image.stderr,
                warnings=tuple(warnings),
                problems=tuple(problems),
                build_time=time.time() - start_time,
            )

        except _StageFailure as e:
            error = e.error
            logger.error("Build failed during %s: %s", e.stage.value, error)
            return failure(e.stage, str(error), getattr(error, "stdout", ""), getattr(error, "stderr", ""))
        except (ToolNotFoundError, ToolTimeoutError, ConfigurationError) as e:
            logger.error("Build failed: %s", e)
            return failure(None, str(e))
        except Exception as e:
            logger.exception("Unexpected build error")
            return failure(None, f"Unexpected error: {e}")

    def _primary_group(self, layout: ProjectLayout) -> CompileGroup:
        source_dir = layout.entry_file.parent
        units = [(layout.entry_file, layout.build_dir / PRIMARY_OBJECT)]
        for source in sorted(source_dir.rglob("*")):
            if source.is_file() and source.suffix in SOURCE_SUFFIXES and source != layout.entry_file:
                units.append((source, layout.build_dir / object_name(source, source_dir, "src")))
        return CompileGroup(BuildStage.PRIMARY, tuple(units), FailurePolicy.FATAL)

    def _support_group(self, layout: ProjectLayout) -> Optional[CompileGroup]:
        if not layout.is_framework:
            return None
        units = tuple(
            (source, layout.build_dir / object_name(source, layout.core_dir, "core"))
            for source in sorted(layout.core_dir.iterdir())
            if source.is_file() and source.suffix in SOURCE_SUFFIXES
        )
        return CompileGroup(BuildStage.SUPPORT, units, FailurePolicy.SKIP)

    async def _compile_group(
        self,
        compiler: AvrCompiler,
        group: CompileGroup,
        warnings: List[str],
        problems: List[CompilerProblem],
    ) -> List[Path]:
        """
        Compile a group concurrently and apply its failure policy.

        Results are consumed in source order, so the returned object list is
        independent of completion order.
        """
        semaphore = asyncio.Semaphore(self.jobs)

        async def compile_one(source: Path, output: Path) -> UnitResult:
            async with semaphore:
                try:
                    return await compiler.compile(source, output)
                except ToolTimeoutError as e:
                    logger.warning("%s", e)
                    return UnitResult(source=source, object_file=None, stdout="", stderr=str(e), returncode=-1)

        # Every unit runs to completion before a tool error is re-raised
        outcomes = await asyncio.gather(
            *(compile_one(source, output) for source, output in group.units),
            return_exceptions=True,
        )
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                raise outcome
        results: Sequence[UnitResult] = outcomes

        produced: List[Path] = []
        for result in results:
            problems.extend(result.problems)
            if result.success:
                produced.append(result.object_file)
                continue
            if group.policy is FailurePolicy.FATAL:
                raise _StageFailure(group.stage, CompilerError(
                    f"Compilation failed: {result.source.name}", result.stdout, result.stderr,
                ))
            message = f"Skipped {result.source.name}: compilation failed"
            logger.warning(message)
            warnings.append(message)
        return produced
