"""
Configuration and output models for code synthesis.

A project configuration is an ordered list of peripherals. Each peripheral is
one of two tagged variants:

- ``PinPeripheral``: attached to one or more pins, each pin carrying its own
  settings and enabled interrupts (GPIO, UART, SPI, ...)
- ``GlobalPeripheral``: board-wide singleton settings (watchdog, timers)

Example pins_config.json:
    {
        "peripherals": [
            {"id": "GPIO", "pins": {"PB5": {"settings": {"mode": "OUTPUT"}}}},
            {"id": "WATCHDOG_TIMER", "settings": {"timeout": 1000}, "interrupts": ["WDT"]}
        ]
    }
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, ClassVar, Dict, FrozenSet, List, Mapping, Tuple, Union

from ..config.project_settings import ConfigurationError


class PeripheralKind(Enum):
    """Discriminator for the peripheral variants."""

    PIN = "pin"
    GLOBAL = "global"


@dataclass(frozen=True)
class PinAssignment:
    """Settings and enabled interrupts for one pin of a pin-scoped peripheral."""

    pin: str
    settings: Mapping[str, Any] = field(default_factory=dict)
    interrupts: Tuple[str, ...] = ()


@dataclass(frozen=True)
class PinPeripheral:
    """Peripheral attached to specific pins."""

    kind: ClassVar[PeripheralKind] = PeripheralKind.PIN

    id: str
    pins: Tuple[PinAssignment, ...]


@dataclass(frozen=True)
class GlobalPeripheral:
    """Board-wide peripheral with a single set of settings."""

    kind: ClassVar[PeripheralKind] = PeripheralKind.GLOBAL

    id: str
    settings: Mapping[str, Any] = field(default_factory=dict)
    interrupts: Tuple[str, ...] = ()


Peripheral = Union[PinPeripheral, GlobalPeripheral]


def _interrupt_names(raw: Any, where: str) -> Tuple[str, ...]:
    """Normalize ``["RX"]`` or ``{"RX": true, "TX": false}`` to enabled names."""
    if raw is None:
        return ()
    if isinstance(raw, Mapping):
        return tuple(sorted(str(name) for name, enabled in raw.items() if enabled))
    if isinstance(raw, (list, tuple)):
        return tuple(sorted({str(name) for name in raw}))
    raise ConfigurationError(f"{where}: interrupts must be a list or an object")


def _settings(raw: Any, where: str) -> Dict[str, Any]:
    if raw is None:
        return {}
    if not isinstance(raw, Mapping):
        raise ConfigurationError(f"{where}: settings must be an object")
    return dict(raw)


@dataclass(frozen=True)
class ProjectConfiguration:
    """Ordered peripheral configuration for one project."""

    peripherals: Tuple[Peripheral, ...] = ()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ProjectConfiguration":
        """
        Normalize a raw configuration document into tagged peripherals.

        An entry is pin-scoped when it declares ``"kind": "pin"`` or has a
        ``pins`` object, and global otherwise.

        Raises:
            ConfigurationError: If the document is structurally invalid
        """
        entries = data.get("peripherals", [])
        if not isinstance(entries, list):
            raise ConfigurationError("'peripherals' must be a list")

        peripherals: List[Peripheral] = []
        for index, entry in enumerate(entries):
            if not isinstance(entry, Mapping) or not entry.get("id"):
                raise ConfigurationError(f"peripheral #{index} has no id")
            peripheral_id = str(entry["id"])
            kind = entry.get("kind", "pin" if "pins" in entry else "global")

            if kind == PeripheralKind.PIN.value:
                raw_pins = entry.get("pins") or {}
                if not isinstance(raw_pins, Mapping) or not raw_pins:
                    raise ConfigurationError(f"{peripheral_id}: pin peripheral needs a 'pins' object")
                assignments = []
                for pin, pin_entry in raw_pins.items():
                    where = f"{peripheral_id}.{pin}"
                    pin_entry = pin_entry or {}
                    if not isinstance(pin_entry, Mapping):
                        raise ConfigurationError(f"{where}: pin entry must be an object")
                    # Short form: settings given inline next to "interrupts"
                    raw_settings = pin_entry.get("settings")
                    if raw_settings is None:
                        raw_settings = {k: v for k, v in pin_entry.items() if k != "interrupts"}
                    assignments.append(PinAssignment(
                        pin=str(pin).upper(),
                        settings=_settings(raw_settings, where),
                        interrupts=_interrupt_names(pin_entry.get("interrupts"), where),
                    ))
                peripherals.append(PinPeripheral(id=peripheral_id, pins=tuple(assignments)))
            elif kind == PeripheralKind.GLOBAL.value:
                peripherals.append(GlobalPeripheral(
                    id=peripheral_id,
                    settings=_settings(entry.get("settings"), peripheral_id),
                    interrupts=_interrupt_names(entry.get("interrupts"), peripheral_id),
                ))
            else:
                raise ConfigurationError(f"{peripheral_id}: unknown peripheral kind '{kind}'")

        return cls(peripherals=tuple(peripherals))

    @classmethod
    def from_json_file(cls, path: Path) -> "ProjectConfiguration":
        """
        Load a configuration document from disk.

        Raises:
            ConfigurationError: If the file is unreadable or not valid JSON
        """
        try:
            data = json.loads(Path(path).read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Cannot load peripheral configuration {path}: {e}") from e
        if not isinstance(data, Mapping):
            raise ConfigurationError(f"{path}: top level must be an object")
        return cls.from_dict(data)


@dataclass(frozen=True)
class GeneratedCode:
    """
    Output of synthesis. Pure value; knows nothing about files.

    Attributes:
        includes: Include targets such as ``<avr/io.h>`` (order-insensitive)
        declarations: Declarations for the header file
        implementation: Statements for the body of the init function
        isr: Interrupt service routine definitions, empty when none are enabled
    """

    includes: FrozenSet[str]
    declarations: str
    implementation: str
    isr: str = ""

    def include_lines(self) -> List[str]:
        """Render includes as ``#include`` directives in a stable order."""
        return [f"#include {target}" for target in sorted(self.includes)]
