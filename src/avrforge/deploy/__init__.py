"""Serial port coordination, telemetry and firmware upload."""

from .port_coordinator import LeaseState, PortCoordinator, PortLease, PortPurpose
from .port_detection import DetectedPort, detect_board_port, list_board_ports
from .telemetry import TelemetryError, TelemetryReader, parse_telemetry_line
from .upload_policy import (
    AVRDUDE_OUTPUT_POLICY,
    OutputPolicy,
    ProtocolPolicy,
    UploadErrorCategory,
    select_protocol,
)
from .uploader import PortAccessError, UploadError, Uploader, UploadResult

__all__ = [
    "AVRDUDE_OUTPUT_POLICY",
    "DetectedPort",
    "LeaseState",
    "OutputPolicy",
    "PortAccessError",
    "PortCoordinator",
    "PortLease",
    "PortPurpose",
    "ProtocolPolicy",
    "TelemetryError",
    "TelemetryReader",
    "UploadError",
    "UploadErrorCategory",
    "UploadResult",
    "Uploader",
    "detect_board_port",
    "list_board_ports",
    "parse_telemetry_line",
    "select_protocol",
]
