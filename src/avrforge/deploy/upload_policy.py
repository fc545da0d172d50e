"""
Upload policies: protocol selection, baud ladders and avrdude output rules.

avrdude exit codes do not say why an upload failed, so outcomes are derived
from its output text. The matching rules live in a versioned OutputPolicy so
they can be tested on their own and replaced when avrdude's wording changes.
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional, Tuple

from ..config.board_config import BoardProfile


class UploadErrorCategory(Enum):
    IMAGE_NOT_FOUND = "image_not_found"
    PORT_NOT_FOUND = "port_not_found"
    PERMISSION_DENIED = "permission_denied"
    TIMEOUT = "timeout"
    SYNC_FAILURE = "sync_failure"
    PARTIAL_WRITE = "partial_write"
    TOOL_MISSING = "tool_missing"
    UNKNOWN = "unknown"


REMEDIATION = {
    UploadErrorCategory.IMAGE_NOT_FOUND: "Firmware image not found. Build the project first.",
    UploadErrorCategory.PORT_NOT_FOUND: "Serial port not found. Check the USB cable and the selected port.",
    UploadErrorCategory.PERMISSION_DENIED: (
        "No permission to open the serial port. On Linux add your user to the "
        "'dialout' group (sudo usermod -a -G dialout $USER) and log in again."
    ),
    UploadErrorCategory.TIMEOUT: "The upload timed out. Reset the board and try again.",
    UploadErrorCategory.SYNC_FAILURE: (
        "Could not synchronize with the bootloader. Check the board type and port, "
        "close other programs using the port, or press reset right before uploading."
    ),
    UploadErrorCategory.PARTIAL_WRITE: (
        "The connection was lost while writing. Check the USB cable and power, then upload again."
    ),
    UploadErrorCategory.TOOL_MISSING: "avrdude was not found. Install the AVR toolchain and make sure it is on PATH.",
    UploadErrorCategory.UNKNOWN: "The upload failed. See the avrdude output for details.",
}


@dataclass(frozen=True)
class ProtocolPolicy:
    """Programmer protocol and the ordered baud rates to try with it."""

    name: str
    default_baud: int
    alternate_bauds: Tuple[int, ...] = ()

    @property
    def baud_ladder(self) -> Tuple[int, ...]:
        return (self.default_baud,) + tuple(b for b in self.alternate_bauds if b != self.default_baud)

    @property
    def supports_multiple_rates(self) -> bool:
        return len(self.baud_ladder) > 1


ARDUINO_PROTOCOL = ProtocolPolicy("arduino", 115200, (57600, 19200, 9600))
AVR109_PROTOCOL = ProtocolPolicy("avr109", 57600)

# Boards whose native USB bootloader speaks avr109 (Caterina)
AVR109_BOARDS = frozenset({"leonardo", "micro"})


def select_protocol(board: BoardProfile) -> ProtocolPolicy:
    """
    Choose the protocol family for a board.

    A board table ``upload.speed`` overrides the default rate of the arduino
    family; the alternate rates stay the same.
    """
    if board.board_id.lower() in AVR109_BOARDS or board.upload_protocol == AVR109_PROTOCOL.name:
        return AVR109_PROTOCOL
    if board.upload_speed:
        return replace(ARDUINO_PROTOCOL, default_baud=board.upload_speed)
    return ARDUINO_PROTOCOL


class OutcomeStatus(Enum):
    SUCCESS = "success"
    SUCCESS_WITH_CAVEAT = "success_with_caveat"
    FAILURE = "failure"


@dataclass(frozen=True)
class UploadOutcome:
    status: OutcomeStatus
    category: Optional[UploadErrorCategory] = None
    caveat: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status is not OutcomeStatus.FAILURE


@dataclass(frozen=True)
class OutputPolicy:
    """
    Text rules for interpreting avrdude output.

    All substring checks are done on the lowercased output unless noted.
    """

    version: str
    sync_markers: Tuple[str, ...]
    done_markers: Tuple[str, ...]
    flash_written_marker: str
    progress_marker: str
    verification_markers: Tuple[str, ...]
    verification_context: str
    verification_context_markers: Tuple[str, ...]
    partial_write_markers: Tuple[str, ...]
    port_missing_markers: Tuple[str, ...]
    permission_markers: Tuple[str, ...]
    timeout_markers: Tuple[str, ...]

    def is_sync_failure(self, output: str) -> bool:
        lowered = output.lower()
        return any(marker in lowered for marker in self.sync_markers)

    def write_completed(self, output: str) -> bool:
        lowered = output.lower()
        if self.progress_marker in output:
            return True
        return self.flash_written_marker in lowered and "error" not in lowered and "failed" not in lowered

    def verification_failed(self, output: str) -> bool:
        lowered = output.lower()
        if any(marker in lowered for marker in self.verification_markers):
            return True
        return self.verification_context in lowered and any(
            marker in lowered for marker in self.verification_context_markers
        )

    def classify(self, output: str, returncode: int) -> UploadOutcome:
        """
        Classify the output of one avrdude run.

        A completed write counts as success even when the exit code is
        non-zero or verification failed afterwards; the latter is reported
        as a caveat.
        """
        lowered = output.lower()
        completed = self.write_completed(output)
        done = any(marker in lowered for marker in self.done_markers)

        if (returncode == 0 and (done or completed)) or (
            completed and (self.flash_written_marker in lowered or "avrdude done" in lowered)
        ):
            if self.verification_failed(output):
                return UploadOutcome(
                    OutcomeStatus.SUCCESS_WITH_CAVEAT,
                    caveat="Firmware was written, but avrdude reported a verification problem. "
                           "If the board misbehaves, upload again.",
                )
            return UploadOutcome(OutcomeStatus.SUCCESS)

        return UploadOutcome(OutcomeStatus.FAILURE, self.failure_category(output))

    def failure_category(self, output: str) -> UploadErrorCategory:
        lowered = output.lower()
        if any(marker in lowered for marker in self.permission_markers):
            return UploadErrorCategory.PERMISSION_DENIED
        if any(marker in lowered for marker in self.port_missing_markers):
            return UploadErrorCategory.PORT_NOT_FOUND
        if any(marker in lowered for marker in self.timeout_markers):
            return UploadErrorCategory.TIMEOUT
        if self.is_sync_failure(output):
            if any(marker in lowered for marker in self.partial_write_markers) or self.progress_marker in output:
                return UploadErrorCategory.PARTIAL_WRITE
            return UploadErrorCategory.SYNC_FAILURE
        if "sync" in lowered:
            return UploadErrorCategory.SYNC_FAILURE
        return UploadErrorCategory.UNKNOWN


AVRDUDE_OUTPUT_POLICY = OutputPolicy(
    version="avrdude-6",
    sync_markers=("stk500_recv", "not responding", "stk500_getsync", "not in sync"),
    done_markers=("avrdude done", "thank you"),
    flash_written_marker="bytes of flash written",
    progress_marker="100%",
    verification_markers=("verification error", "content mismatch"),
    verification_context="verifying",
    verification_context_markers=("ser_recv", "unable to read", "out of sync"),
    partial_write_markers=("writing", "bytes flash"),
    port_missing_markers=("not found", "enoent", "no such file or directory", "can't open device"),
    permission_markers=("permission denied", "eacces"),
    timeout_markers=("timeout", "etimedout", "timed out"),
)
