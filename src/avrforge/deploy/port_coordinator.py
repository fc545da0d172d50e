"""
Exclusive serial port leasing.

A serial device can be used by one consumer at a time: either the telemetry
reader or the uploader. The PortCoordinator owns a registry of per-path
leases. Requests for the same path are granted one at a time in FIFO order.

Closing a serial device does not free it in the driver immediately, so when
a telemetry lease is released the path only becomes available again after
``settle_delay`` seconds. A flashing request preempts a telemetry holder by
asking it to close, then waits for the release and the settling delay.

Example:
    coordinator = PortCoordinator()
    async with await coordinator.request_lease("/dev/ttyACM0", PortPurpose.FLASHING):
        ...  # run avrdude
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Union

logger = logging.getLogger(__name__)

DEFAULT_SETTLE_DELAY = 3.0

RevokeCallback = Callable[[], Union[None, Awaitable[Any]]]


class PortPurpose(Enum):
    TELEMETRY = "telemetry"
    FLASHING = "flashing"


class LeaseState(Enum):
    NONE = "none"
    HELD = "held"
    PENDING_RELEASE = "pending-release"


class PortLease:
    """
    The right to use one serial device path for one purpose.

    Release it exactly once with ``release()`` or by using it as an async
    context manager. Further releases are ignored.
    """

    def __init__(
        self,
        coordinator: "PortCoordinator",
        path: str,
        purpose: PortPurpose,
        on_revoke: Optional[RevokeCallback] = None,
    ):
        self.coordinator = coordinator
        self.path = path
        self.purpose = purpose
        self.on_revoke = on_revoke
        self.released = False

    async def release(self) -> None:
        if self.released:
            return
        self.released = True
        self.coordinator._release(self)

    async def __aenter__(self) -> "PortLease":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.release()

    def __repr__(self) -> str:
        return f"PortLease({self.path!r}, {self.purpose.value}, released={self.released})"


@dataclass
class _PortEntry:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    state: LeaseState = LeaseState.NONE
    holder: Optional[PortLease] = None
    settle_handle: Optional[asyncio.TimerHandle] = None


class PortCoordinator:
    """Registry of serial port leases keyed by device path."""

    def __init__(self, settle_delay: float = DEFAULT_SETTLE_DELAY):
        self.settle_delay = settle_delay
        self._ports: Dict[str, _PortEntry] = {}

    def _entry(self, path: str) -> _PortEntry:
        entry = self._ports.get(path)
        if entry is None:
            entry = _PortEntry()
            self._ports[path] = entry
        return entry

    def state(self, path: str) -> LeaseState:
        entry = self._ports.get(path)
        return entry.state if entry else LeaseState.NONE

    def holder(self, path: str) -> Optional[PortLease]:
        entry = self._ports.get(path)
        return entry.holder if entry else None

    async def request_lease(
        self,
        path: str,
        purpose: PortPurpose,
        on_revoke: Optional[RevokeCallback] = None,
    ) -> PortLease:
        """
        Wait until ``path`` is free and take a lease on it.

        Args:
            path: Serial device path (e.g. "/dev/ttyUSB0" or "COM3")
            purpose: What the lease is for
            on_revoke: Called when a flashing request needs the port back;
                telemetry holders pass their close routine here

        Returns:
            Granted PortLease
        """
        entry = self._entry(path)
        holder = entry.holder
        if purpose is PortPurpose.FLASHING and holder is not None and holder.purpose is PortPurpose.TELEMETRY:
            await self._revoke(holder)

        await entry.lock.acquire()
        lease = PortLease(self, path, purpose, on_revoke)
        entry.state = LeaseState.HELD
        entry.holder = lease
        logger.debug("Granted %s lease on %s", purpose.value, path)
        return lease

    async def _revoke(self, lease: PortLease) -> None:
        logger.info("Closing %s reader on %s for flashing", lease.purpose.value, lease.path)
        try:
            if lease.on_revoke is not None:
                outcome = lease.on_revoke()
                if inspect.isawaitable(outcome):
                    await outcome
        except Exception as e:
            logger.warning("Error closing %s: %s", lease.path, e)
        finally:
            await lease.release()

    def _release(self, lease: PortLease) -> None:
        entry = self._ports.get(lease.path)
        if entry is None or entry.holder is not lease:
            return
        entry.holder = None

        if lease.purpose is PortPurpose.TELEMETRY and self.settle_delay > 0:
            entry.state = LeaseState.PENDING_RELEASE
            loop = asyncio.get_running_loop()
            entry.settle_handle = loop.call_later(self.settle_delay, self._settle, entry)
            logger.debug("%s released; available in %.1fs", lease.path, self.settle_delay)
        else:
            self._settle(entry)

    @staticmethod
    def _settle(entry: _PortEntry) -> None:
        entry.settle_handle = None
        entry.state = LeaseState.NONE
        entry.lock.release()
