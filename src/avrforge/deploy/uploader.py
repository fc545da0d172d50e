"""
Firmware upload with avrdude.

The uploader checks its preconditions (image present, port usable) before
touching the device, takes a FLASHING lease when a PortCoordinator is
available, and walks the protocol's baud ladder: the first attempt uses the
default rate, and the alternate rates are only tried after that attempt
fails to synchronize with the bootloader. Protocols are never switched.
"""

import asyncio
import logging
import os
import re
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, List, Optional, Tuple

from ..build.tool_runner import ToolNotFoundError, ToolRunner, ToolTimeoutError, run_tool
from ..config.board_config import BoardProfile
from ..config.toolchain_profile import ToolchainProfile
from .port_coordinator import PortCoordinator, PortPurpose
from .upload_policy import (
    AVRDUDE_OUTPUT_POLICY,
    REMEDIATION,
    OutcomeStatus,
    OutputPolicy,
    ProtocolPolicy,
    UploadErrorCategory,
    select_protocol,
)

logger = logging.getLogger(__name__)

ATTEMPT_TIMEOUT = 120.0
PRE_UPLOAD_DELAY = 0.5

_WINDOWS_PORT = re.compile(r"^COM\d+$", re.IGNORECASE)


class UploadError(Exception):
    """Raised for upload failures that stop before any attempt."""

    def __init__(self, category: UploadErrorCategory, message: str):
        super().__init__(message)
        self.category = category


class PortAccessError(UploadError):
    """Raised when the serial port is missing or not read/write accessible."""

    pass


@dataclass(frozen=True)
class UploadAttempt:
    """One avrdude invocation."""

    baud: int
    returncode: Optional[int]
    stdout: str
    stderr: str
    status: OutcomeStatus
    category: Optional[UploadErrorCategory] = None
    caveat: Optional[str] = None


@dataclass(frozen=True)
class UploadResult:
    """
    Terminal outcome of an upload.

    Attributes:
        success: Whether the firmware was written
        category: Failure category, on failure
        message: Human-readable summary with remediation text
        caveat: Set when the write succeeded but verification reported a problem
        protocol: Programmer protocol used
        baud: Baud rate of the last attempt
        attempts: Every avrdude invocation, in order
        stdout: Standard output of the last attempt
        stderr: Standard error of the last attempt
        upload_time: Wall-clock seconds
    """

    success: bool
    category: Optional[UploadErrorCategory] = None
    message: str = ""
    caveat: Optional[str] = None
    protocol: Optional[str] = None
    baud: Optional[int] = None
    attempts: Tuple[UploadAttempt, ...] = ()
    stdout: str = ""
    stderr: str = ""
    upload_time: float = 0.0


def check_port_access(port: str) -> None:
    """
    Verify the serial port exists and is read/write accessible.

    Windows COM ports cannot be probed this way and are assumed usable.

    Raises:
        PortAccessError: If the port is missing or not accessible
    """
    if _WINDOWS_PORT.match(port):
        return
    if not os.path.exists(port):
        raise PortAccessError(UploadErrorCategory.PORT_NOT_FOUND, f"Serial port {port} does not exist")
    if not os.access(port, os.R_OK | os.W_OK):
        raise PortAccessError(UploadErrorCategory.PERMISSION_DENIED, f"No read/write access to {port}")


class Uploader:
    """
    Flashes Intel HEX images to AVR boards through their serial bootloader.

    Example:
        uploader = Uploader(coordinator=coordinator)
        result = await uploader.upload(Path("build/firmware.hex"), "/dev/ttyACM0", board)
    """

    def __init__(
        self,
        toolchain: Optional[ToolchainProfile] = None,
        coordinator: Optional[PortCoordinator] = None,
        runner: ToolRunner = run_tool,
        output_policy: OutputPolicy = AVRDUDE_OUTPUT_POLICY,
        attempt_timeout: float = ATTEMPT_TIMEOUT,
        pre_upload_delay: float = PRE_UPLOAD_DELAY,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        verbose: bool = False,
    ):
        self.toolchain = toolchain or ToolchainProfile()
        self.coordinator = coordinator
        self.runner = runner
        self.output_policy = output_policy
        self.attempt_timeout = attempt_timeout
        self.pre_upload_delay = pre_upload_delay
        self.sleep = sleep
        self.verbose = verbose

    def build_command(self, image_path: Path, port: str, board: BoardProfile, protocol: str, baud: int) -> List[str]:
        return [
            self.toolchain.avrdude_cmd,
            "-v",
            "-p", board.mcu,
            "-c", protocol,
            "-P", port,
            "-b", str(baud),
            "-D",
            "-U", f"flash:w:{image_path}:i",
        ]

    async def upload(self, image_path: Path, port: str, board: BoardProfile) -> UploadResult:
        """
        Flash an image.

        Args:
            image_path: Intel HEX firmware image
            port: Serial device path
            board: Target board profile

        Returns:
            UploadResult; never raises for upload problems
        """
        start_time = time.time()
        protocol = select_protocol(board)
        image_path = Path(image_path)

        try:
            if not image_path.is_file():
                raise UploadError(UploadErrorCategory.IMAGE_NOT_FOUND, f"Firmware image not found: {image_path}")
            check_port_access(port)
        except UploadError as e:
            logger.error("Upload precondition failed: %s", e)
            return UploadResult(
                success=False,
                category=e.category,
                message=f"{e}. {REMEDIATION[e.category]}",
                protocol=protocol.name,
                upload_time=time.time() - start_time,
            )

        try:
            if self.coordinator is not None:
                async with await self.coordinator.request_lease(port, PortPurpose.FLASHING):
                    attempts = await self._run_ladder(image_path, port, board, protocol)
            else:
                attempts = await self._run_ladder(image_path, port, board, protocol)
        except ToolNotFoundError as e:
            logger.error("%s", e)
            return UploadResult(
                success=False,
                category=UploadErrorCategory.TOOL_MISSING,
                message=f"{e} {REMEDIATION[UploadErrorCategory.TOOL_MISSING]}",
                protocol=protocol.name,
                upload_time=time.time() - start_time,
            )
        except Exception as e:
            logger.exception("Unexpected upload error")
            return UploadResult(
                success=False,
                category=UploadErrorCategory.UNKNOWN,
                message=f"Unexpected error: {e}",
                protocol=protocol.name,
                upload_time=time.time() - start_time,
            )

        return self._result(attempts, protocol, time.time() - start_time)

    async def _run_ladder(
        self,
        image_path: Path,
        port: str,
        board: BoardProfile,
        protocol: ProtocolPolicy,
    ) -> List[UploadAttempt]:
        """
        Try each baud rate of the protocol in order.

        The ladder is only entered when the default rate fails with a
        synchronization error. From then on every alternate rate is tried
        until one succeeds, whatever the earlier alternates failed with.
        """
        await self.sleep(self.pre_upload_delay)
        attempts: List[UploadAttempt] = []
        ladder = protocol.baud_ladder

        for index, baud in enumerate(ladder):
            if self.verbose:
                print(f"Uploading to {port} ({protocol.name} @ {baud} baud)...")
            logger.info("Upload attempt %d/%d: %s @ %d baud on %s", index + 1, len(ladder), protocol.name, baud, port)

            attempt = await self._attempt(image_path, port, board, protocol.name, baud)
            attempts.append(attempt)
            if attempt.status is not OutcomeStatus.FAILURE:
                break

            if index == 0:
                output = "\n".join((attempt.stdout, attempt.stderr))
                if not (protocol.supports_multiple_rates and self.output_policy.is_sync_failure(output)):
                    break
            if index + 1 < len(ladder):
                logger.warning("Upload failed at %d baud; retrying at %d", baud, ladder[index + 1])

        return attempts

    async def _attempt(self, image_path: Path, port: str, board: BoardProfile, protocol: str, baud: int) -> UploadAttempt:
        command = self.build_command(image_path, port, board, protocol, baud)
        try:
            result = await self.runner(command, timeout=self.attempt_timeout)
        except ToolTimeoutError as e:
            logger.warning("%s", e)
            return UploadAttempt(baud, None, "", str(e), OutcomeStatus.FAILURE, UploadErrorCategory.TIMEOUT)

        outcome = self.output_policy.classify(result.output, result.returncode)
        return UploadAttempt(
            baud, result.returncode, result.stdout, result.stderr, outcome.status, outcome.category, outcome.caveat,
        )

    def _result(self, attempts: List[UploadAttempt], protocol: ProtocolPolicy, elapsed: float) -> UploadResult:
        last = attempts[-1]
        common = dict(
            protocol=protocol.name,
            baud=last.baud,
            attempts=tuple(attempts),
            stdout=last.stdout,
            stderr=last.stderr,
            upload_time=elapsed,
        )

        if last.status is OutcomeStatus.FAILURE:
            category = last.category or UploadErrorCategory.UNKNOWN
            tried = ", ".join(str(a.baud) for a in attempts)
            logger.error("Upload failed (%s) after trying %s baud", category.value, tried)
            return UploadResult(
                success=False,
                category=category,
                message=f"Upload failed at {tried} baud. {REMEDIATION[category]}",
                **common,
            )

        caveat = last.caveat
        if caveat:
            logger.warning("Upload completed with caveat: %s", caveat)
        return UploadResult(
            success=True,
            message=f"Firmware uploaded ({protocol.name} @ {last.baud} baud)",
            caveat=caveat,
            **common,
        )
