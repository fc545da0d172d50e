"""
Peripheral catalog.

The catalog describes, per MCU, which peripherals exist, which pins they may
use and the register-level templates used to initialize them. It is data
(``catalogs/<mcu>.json``) so supporting a new part does not need code changes.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .models import PeripheralKind

logger = logging.getLogger(__name__)

CATALOG_DIR = Path(__file__).parent / "catalogs"


class CatalogError(Exception):
    """Raised for a missing or malformed catalog, or an unknown peripheral."""

    pass


@dataclass(frozen=True)
class PortRegisters:
    """Register names and pin-change group of one I/O port."""

    letter: str
    ddr: str
    port: str
    pin: str
    pcint_group: int
    pcint_base: int
    bits: Tuple[int, ...]


@dataclass(frozen=True)
class InterruptTemplate:
    """Lines that enable an interrupt and the ISR emitted for it."""

    name: str
    enable: Tuple[str, ...] = ()
    isr: Tuple[str, ...] = ()


@dataclass(frozen=True)
class PeripheralDefinition:
    """Catalog entry for one peripheral."""

    id: str
    kind: PeripheralKind
    pins: Mapping[str, Tuple[str, ...]] = field(default_factory=dict)
    requires_all_pins: bool = False
    defaults: Mapping[str, Any] = field(default_factory=dict)
    includes: Tuple[str, ...] = ()
    mode_key: Optional[str] = None
    mode_mapping: Mapping[str, str] = field(default_factory=dict)
    value_mapping: Mapping[str, Mapping[str, Any]] = field(default_factory=dict)
    init: Mapping[str, Any] = field(default_factory=dict)
    interrupts: Mapping[str, InterruptTemplate] = field(default_factory=dict)

    def role_of(self, pin: str) -> Optional[str]:
        """Return the role (e.g. ``TX``) under which this peripheral uses ``pin``."""
        for role, role_pins in self.pins.items():
            if pin in role_pins:
                return role
        return None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PeripheralDefinition":
        try:
            peripheral_id = data["id"]
            kind = PeripheralKind(data["kind"])
        except (KeyError, ValueError) as e:
            raise CatalogError(f"Malformed peripheral entry {data.get('id', '?')}: {e}") from e

        interrupts = {
            name: InterruptTemplate(
                name=name,
                enable=tuple(template.get("enable", ())),
                isr=tuple(template.get("isr", ())),
            )
            for name, template in data.get("interrupts", {}).items()
        }
        return cls(
            id=peripheral_id,
            kind=kind,
            pins={role: tuple(pins) for role, pins in data.get("pins", {}).items()},
            requires_all_pins=bool(data.get("requires_all_pins", False)),
            defaults=dict(data.get("defaults", {})),
            includes=tuple(data.get("includes", ())),
            mode_key=data.get("mode_key"),
            mode_mapping=dict(data.get("mode_mapping", {})),
            value_mapping=dict(data.get("value_mapping", {})),
            init=dict(data.get("init", {})),
            interrupts=interrupts,
        )


class PeripheralCatalog:
    """
    Lookup of peripheral definitions and port registers for one MCU.

    Usage:
        catalog = PeripheralCatalog.load("atmega328p")
        gpio = catalog.get("GPIO")
        port = catalog.port_for("PB5")
    """

    def __init__(
        self,
        mcu: str,
        ports: Dict[str, PortRegisters],
        definitions: List[PeripheralDefinition],
    ):
        self.mcu = mcu
        self.ports = ports
        self._definitions = {definition.id: definition for definition in definitions}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PeripheralCatalog":
        ports = {
            letter: PortRegisters(
                letter=letter,
                ddr=entry["ddr"],
                port=entry["port"],
                pin=entry["pin"],
                pcint_group=int(entry["pcint_group"]),
                pcint_base=int(entry["pcint_base"]),
                bits=tuple(entry["bits"]),
            )
            for letter, entry in data.get("ports", {}).items()
        }
        definitions = [PeripheralDefinition.from_dict(entry) for entry in data.get("peripherals", [])]
        return cls(str(data.get("mcu", "")), ports, definitions)

    @classmethod
    def load(cls, mcu: str = "atmega328p", catalog_dir: Optional[Path] = None) -> "PeripheralCatalog":
        """
        Load the catalog for an MCU.

        Raises:
            CatalogError: If no catalog exists for the MCU or it is malformed
        """
        path = (catalog_dir or CATALOG_DIR) / f"{mcu.lower()}.json"
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError as e:
            raise CatalogError(f"No peripheral catalog for MCU '{mcu}'") from e
        except (OSError, json.JSONDecodeError) as e:
            raise CatalogError(f"Cannot load peripheral catalog {path}: {e}") from e
        try:
            return cls.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            raise CatalogError(f"Malformed peripheral catalog {path}: {e}") from e

    def get(self, peripheral_id: str) -> PeripheralDefinition:
        try:
            return self._definitions[peripheral_id]
        except KeyError:
            raise CatalogError(
                f"Unknown peripheral '{peripheral_id}' for {self.mcu}. "
                f"Known peripherals: {', '.join(self._definitions)}"
            ) from None

    def port_for(self, pin: str) -> Tuple[PortRegisters, int]:
        """
        Resolve a pin name such as ``PB5`` to its port registers and bit.

        Raises:
            CatalogError: If the pin does not exist on this MCU
        """
        if len(pin) >= 3 and pin[0] == "P" and pin[2:].isdigit():
            port = self.ports.get(pin[1])
            bit = int(pin[2:])
            if port is not None and bit in port.bits:
                return port, bit
        raise CatalogError(f"Unknown pin '{pin}' for {self.mcu}")

    def __contains__(self, peripheral_id: str) -> bool:
        return peripheral_id in self._definitions

    def __iter__(self):
        return iter(self._definitions.values())
