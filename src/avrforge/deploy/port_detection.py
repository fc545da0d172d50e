"""
Serial port discovery for Arduino-compatible boards.

Boards are matched by USB vendor/product id first. Ports without a known id
fall back to name heuristics (USB-serial adapters and CDC-ACM devices);
built-in UARTs such as /dev/ttyS0 are never offered.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

import serial.tools.list_ports

logger = logging.getLogger(__name__)

ARDUINO_USB_IDS = frozenset({
    (0x2341, 0x0043),  # Uno R3
    (0x2341, 0x0001),  # Uno
    (0x2341, 0x0010),  # Mega 2560
    (0x2341, 0x0036),  # Leonardo bootloader
    (0x2341, 0x0037),  # Micro bootloader
    (0x2341, 0x003F),  # Mega ADK
    (0x2341, 0x0243),  # Uno R3 (newer)
    (0x2A03, 0x0043),  # arduino.org Uno
    (0x2A03, 0x0001),  # arduino.org Uno
})

_NAME_HINTS = ("ttyusb", "ttyacm", "com", "usbserial", "usbmodem")


@dataclass(frozen=True)
class DetectedPort:
    """A candidate serial port."""

    device: str
    description: str
    vid: Optional[int] = None
    pid: Optional[int] = None
    is_arduino: bool = False


def _is_candidate_name(device: str) -> bool:
    lowered = device.lower()
    if lowered.startswith("/dev/ttys"):
        return False
    return any(hint in lowered for hint in _NAME_HINTS)


def classify_ports(ports: Iterable, extra_ids: Iterable[Tuple[int, int]] = ()) -> List[DetectedPort]:
    """
    Turn pyserial ListPortInfo objects into ranked candidates.

    Args:
        ports: Objects with ``device``, ``description``, ``vid`` and ``pid``
        extra_ids: Additional (vid, pid) pairs, e.g. from boards.txt

    Returns:
        Known Arduino boards first, then name-matched ports, each in
        device-name order
    """
    known = ARDUINO_USB_IDS | frozenset(extra_ids)
    arduinos: List[DetectedPort] = []
    others: List[DetectedPort] = []
    for port in ports:
        vid, pid = getattr(port, "vid", None), getattr(port, "pid", None)
        candidate = DetectedPort(
            device=port.device,
            description=getattr(port, "description", "") or "",
            vid=vid,
            pid=pid,
            is_arduino=(vid, pid) in known,
        )
        if candidate.is_arduino:
            arduinos.append(candidate)
        elif _is_candidate_name(port.device):
            others.append(candidate)
    return sorted(arduinos, key=lambda p: p.device) + sorted(others, key=lambda p: p.device)


def list_board_ports(extra_ids: Iterable[Tuple[int, int]] = ()) -> List[DetectedPort]:
    """List candidate ports on this machine."""
    return classify_ports(serial.tools.list_ports.comports(), extra_ids)


def detect_board_port(extra_ids: Iterable[Tuple[int, int]] = ()) -> Optional[str]:
    """
    Pick the most likely board port.

    Returns:
        Device path, or None when nothing suitable is attached
    """
    candidates = list_board_ports(extra_ids)
    if not candidates:
        logger.info("No serial port with an attached board found")
        return None
    chosen = candidates[0]
    logger.info("Using %s (%s)", chosen.device, chosen.description)
    return chosen.device


def usb_ids_from_board(usb_ids: Iterable[Tuple[str, str]]) -> List[Tuple[int, int]]:
    """Convert boards.txt ``("0x2341", "0x0043")`` pairs to integers, skipping bad values."""
    converted = []
    for vid, pid in usb_ids:
        try:
            converted.append((int(vid, 16), int(pid, 16)))
        except ValueError:
            logger.debug("Ignoring malformed USB id %s:%s", vid, pid)
    return converted
