"""
Telemetry reader for firmware that reports values over the serial port.

Firmware prints one record per line, either as a JSON object or as
``KEY:VALUE``. Decorative separator lines (``-----``, ``=====``, ...) are
ignored. The reader holds a TELEMETRY lease for as long as the device is
open and closes itself when the coordinator revokes the lease for flashing.
"""

import asyncio
import json
import logging
import re
from typing import Any, Callable, Dict, List, Optional

import serial

from .port_coordinator import PortCoordinator, PortLease, PortPurpose

logger = logging.getLogger(__name__)

DEFAULT_BAUDRATE = 9600
READ_CHUNK = 256

_SEPARATOR = re.compile(r"^[-=*#]{3,}$")
_KEY_VALUE = re.compile(r"^([^:]+):(.*)$")

Record = Dict[str, Any]


class TelemetryError(Exception):
    """Raised when the telemetry device cannot be opened or written."""

    pass


def _number(text: str) -> Any:
    try:
        return int(text)
    except ValueError:
        pass
    try:
        return float(text)
    except ValueError:
        return text


def parse_telemetry_line(line: str) -> Optional[Record]:
    """
    Parse one line of device output.

    Returns:
        A record dict, or None for blank and separator lines

    Example:
        parse_telemetry_line('{"temp": 21.5}')  # {"temp": 21.5}
        parse_telemetry_line("TEMP:21.5")       # {"TEMP": 21.5}
        parse_telemetry_line("booting")         # {"text": "booting"}
    """
    line = line.strip()
    if not line or _SEPARATOR.match(line):
        return None

    if line.startswith("{"):
        try:
            value = json.loads(line)
        except json.JSONDecodeError:
            value = None
        if isinstance(value, dict):
            return value

    match = _KEY_VALUE.match(line)
    if match and match.group(1).strip():
        return {match.group(1).strip(): _number(match.group(2).strip())}

    return {"text": line}


class LineBuffer:
    """Splits a byte stream into decoded lines."""

    def __init__(self):
        self._pending = b""

    def feed(self, data: bytes) -> List[str]:
        self._pending += data
        *complete, self._pending = re.split(rb"\r?\n|\r", self._pending)
        return [chunk.decode("utf-8", errors="replace") for chunk in complete]


class TelemetryReader:
    """
    Reads telemetry records from a serial device under a TELEMETRY lease.

    Usage:
        reader = TelemetryReader(coordinator, "/dev/ttyACM0", on_record=print)
        await reader.start()
        ...
        await reader.close()
    """

    def __init__(
        self,
        coordinator: PortCoordinator,
        port: str,
        baudrate: int = DEFAULT_BAUDRATE,
        on_record: Optional[Callable[[Record], None]] = None,
        serial_factory: Callable[..., Any] = serial.Serial,
    ):
        self.coordinator = coordinator
        self.port = port
        self.baudrate = baudrate
        self.on_record = on_record
        self.serial_factory = serial_factory
        self._serial = None
        self._lease: Optional[PortLease] = None
        self._task: Optional[asyncio.Task] = None
        self._buffer = LineBuffer()

    @property
    def is_open(self) -> bool:
        return self._serial is not None

    async def start(self) -> None:
        """
        Acquire the port and start reading in the background.

        Raises:
            TelemetryError: If the device cannot be opened
        """
        if self.is_open:
            return
        self._lease = await self.coordinator.request_lease(self.port, PortPurpose.TELEMETRY, on_revoke=self.close)
        try:
            self._serial = await asyncio.to_thread(
                self.serial_factory,
                self.port,
                self.baudrate,
                bytesize=serial.EIGHTBITS,
                parity=serial.PARITY_NONE,
                stopbits=serial.STOPBITS_ONE,
                timeout=0.1,
            )
        except serial.SerialException as e:
            await self._lease.release()
            self._lease = None
            raise TelemetryError(f"Cannot open {self.port}: {e}") from e

        logger.info("Telemetry connected on %s at %d baud", self.port, self.baudrate)
        self._task = asyncio.get_running_loop().create_task(self._read_loop())

    async def _read_loop(self) -> None:
        while self._serial is not None:
            try:
                data = await asyncio.to_thread(self._serial.read, READ_CHUNK)
            except serial.SerialException as e:
                logger.warning("Telemetry read error on %s: %s", self.port, e)
                break
            for line in self._buffer.feed(data):
                record = parse_telemetry_line(line)
                if record is not None and self.on_record is not None:
                    self.on_record(record)

    async def write(self, data: str) -> None:
        if self._serial is None:
            raise TelemetryError(f"{self.port} is not open")
        try:
            await asyncio.to_thread(self._serial.write, data.encode("utf-8"))
        except serial.SerialException as e:
            raise TelemetryError(f"Write to {self.port} failed: {e}") from e

    async def close(self) -> None:
        """Stop reading, close the device and release the lease."""
        device, self._serial = self._serial, None
        task, self._task = self._task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        try:
            if device is not None:
                await asyncio.to_thread(device.close)
                logger.info("Telemetry disconnected from %s", self.port)
        finally:
            lease, self._lease = self._lease, None
            if lease is not None:
                await lease.release()
