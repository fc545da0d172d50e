"""
End-to-end firmware pipeline.

Configuration change -> synthesize and merge generated sources -> build ->
take the port from telemetry -> flash -> hand the port back.

Every public operation returns a result record; exceptions stop here.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from .build.orchestrator import BuildOrchestrator, CompileResult
from .build.tool_runner import ToolRunner, run_tool
from .codegen.catalog import CatalogError, PeripheralCatalog
from .codegen.merger import MergeError
from .codegen.models import GeneratedCode, ProjectConfiguration
from .codegen.project_writer import write_project_files
from .codegen.synthesizer import CodeSynthesizer
from .config.board_config import BoardProfile, load_board_profile
from .config.project_settings import ConfigurationError, ProjectSettings
from .config.toolchain_profile import load_toolchain_profile
from .deploy.port_coordinator import PortCoordinator
from .deploy.port_detection import detect_board_port, usb_ids_from_board
from .deploy.upload_policy import REMEDIATION, UploadErrorCategory
from .deploy.uploader import Uploader, UploadResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GenerationResult:
    """Outcome of regenerating the generated project files."""

    success: bool
    written: List[Path] = field(default_factory=list)
    code: Optional[GeneratedCode] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class DeployResult:
    """Outcome of build followed by upload."""

    compile: CompileResult
    upload: Optional[UploadResult] = None

    @property
    def success(self) -> bool:
        return self.compile.success and self.upload is not None and self.upload.success


class FirmwarePipeline:
    """
    Facade over synthesis, build and upload for one project.

    Example:
        pipeline = FirmwarePipeline(PortCoordinator())
        pipeline.regenerate(project_dir)
        result = await pipeline.build_and_upload(project_dir)
    """

    def __init__(
        self,
        coordinator: Optional[PortCoordinator] = None,
        runner: ToolRunner = run_tool,
        verbose: bool = False,
    ):
        self.coordinator = coordinator or PortCoordinator()
        self.runner = runner
        self.verbose = verbose

    def _board(self, settings: ProjectSettings, board_id: Optional[str]) -> BoardProfile:
        return load_board_profile(board_id or settings.board, settings.boards_txt)

    def regenerate(
        self,
        project_dir: Path,
        configuration: Optional[ProjectConfiguration] = None,
        board_id: Optional[str] = None,
    ) -> GenerationResult:
        """
        Synthesize code for the project's peripherals and merge it into the
        header, implementation and entry files.

        Args:
            project_dir: Project root
            configuration: Peripheral configuration (read from the project's
                configuration file when None)
            board_id: Board override

        Returns:
            GenerationResult listing the files that changed
        """
        try:
            settings = ProjectSettings.load(project_dir)
            board = self._board(settings, board_id)
            if configuration is None:
                config_path = settings.peripheral_config
                if config_path is not None and config_path.exists():
                    configuration = ProjectConfiguration.from_json_file(config_path)
                else:
                    configuration = ProjectConfiguration()

            # No peripherals, no catalog lookup
            catalog = PeripheralCatalog.load(board.mcu) if configuration.peripherals else None
            code = CodeSynthesizer(catalog).synthesize(configuration)
            written = write_project_files(settings.project_dir, code)
            return GenerationResult(success=True, written=written, code=code)
        except (ConfigurationError, CatalogError, MergeError, OSError) as e:
            logger.error("Code generation failed: %s", e)
            return GenerationResult(success=False, error=str(e))
        except Exception as e:
            logger.exception("Unexpected code generation error")
            return GenerationResult(success=False, error=f"Unexpected error: {e}")

    async def build(self, project_dir: Path, board_id: Optional[str] = None) -> CompileResult:
        try:
            settings = ProjectSettings.load(project_dir)
        except ConfigurationError as e:
            return CompileResult(success=False, error=str(e))
        orchestrator = BuildOrchestrator(runner=self.runner, verbose=self.verbose)
        return await orchestrator.build(
            settings.project_dir,
            board_id or settings.board,
            toolchain=load_toolchain_profile(settings.platform_txt),
            board=self._board(settings, board_id),
        )

    async def upload(
        self,
        image_path: Path,
        port: str,
        board: BoardProfile,
        settings: Optional[ProjectSettings] = None,
    ) -> UploadResult:
        """Flash an image under a FLASHING lease."""
        uploader = Uploader(
            toolchain=load_toolchain_profile(settings.platform_txt) if settings else None,
            coordinator=self.coordinator,
            runner=self.runner,
            attempt_timeout=settings.upload_timeout if settings else 120.0,
            verbose=self.verbose,
        )
        return await uploader.upload(image_path, port, board)

    async def build_and_upload(
        self,
        project_dir: Path,
        board_id: Optional[str] = None,
        port: Optional[str] = None,
    ) -> DeployResult:
        """Build the project and, if that succeeds, flash it."""
        compile_result = await self.build(project_dir, board_id)
        if not compile_result.success:
            return DeployResult(compile=compile_result)

        settings = ProjectSettings.load(project_dir)
        board = self._board(settings, board_id)
        port = port or settings.port or detect_board_port(usb_ids_from_board(board.usb_ids))
        if port is None:
            category = UploadErrorCategory.PORT_NOT_FOUND
            return DeployResult(
                compile=compile_result,
                upload=UploadResult(success=False, category=category, message=REMEDIATION[category]),
            )

        upload_result = await self.upload(compile_result.hex_path, port, board, settings)
        return DeployResult(compile=compile_result, upload=upload_result)
