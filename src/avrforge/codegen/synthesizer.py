"""
Code synthesis from a peripheral configuration.

The synthesizer walks the configured peripherals in declaration order and
renders each one's catalog templates into a single GeneratedCode value:

- include targets (a set)
- header declarations
- statements for the body of ``pins_init_all()``
- ISR definitions, only for explicitly enabled interrupts

Output is a pure function of the configuration and catalog, so synthesizing
the same input twice yields identical text.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Set, Tuple

from ..config.project_settings import ConfigurationError
from .catalog import PeripheralCatalog, PeripheralDefinition
from .models import GeneratedCode, GlobalPeripheral, PeripheralKind, PinPeripheral, ProjectConfiguration

logger = logging.getLogger(__name__)

INIT_FUNCTION = "pins_init_all"
INIT_DECLARATION = f"void {INIT_FUNCTION}(void);"
INIT_CALL = f"{INIT_FUNCTION}();"

_PLACEHOLDER = re.compile(r"\{\{(\w+)\}\}")


def render_template(line: str, context: Mapping[str, Any]) -> str:
    """Fill ``{{name}}`` placeholders. Unknown names are left in place."""
    return _PLACEHOLDER.sub(
        lambda m: str(context[m.group(1)]) if m.group(1) in context else m.group(0),
        line,
    )


@dataclass(frozen=True)
class _Unit:
    """One initialization unit: a pin, or a whole peripheral."""

    settings: Mapping[str, Any]
    interrupts: Tuple[str, ...]
    context: Mapping[str, Any]
    role: Optional[str] = None


class IsrCollector:
    """
    Accumulates ISR definitions in first-seen order.

    Handlers written as ``ISR(VECTOR) {`` ... ``}`` that target the same
    vector are combined into one definition, since a vector can only have one
    handler. Identical bodies are added once.
    """

    def __init__(self):
        self._order: List[str] = []
        self._bodies: Dict[str, List[str]] = {}
        self._seen: Dict[str, Set[Tuple[str, ...]]] = {}

    def add(self, lines: List[str]) -> None:
        if not lines:
            return
        header = lines[0].rstrip()
        if len(lines) >= 2 and header.endswith("{") and lines[-1].strip() == "}":
            body = tuple(lines[1:-1])
        else:
            header, body = "\n".join(lines), ()
        if header not in self._bodies:
            self._order.append(header)
            self._bodies[header] = []
            self._seen[header] = set()
        if body and body not in self._seen[header]:
            self._seen[header].add(body)
            self._bodies[header].extend(body)

    def __bool__(self) -> bool:
        return bool(self._order)

    def render(self) -> str:
        blocks = []
        for header in self._order:
            if header.endswith("{"):
                blocks.append("\n".join([header, *self._bodies[header], "}"]))
            else:
                blocks.append(header)
        return "\n\n".join(blocks)


class CodeSynthesizer:
    """
    Turns a ProjectConfiguration into GeneratedCode using a PeripheralCatalog.

    The catalog may be None when the configuration has no peripherals.

    Example:
        synthesizer = CodeSynthesizer(PeripheralCatalog.load("atmega328p"))
        code = synthesizer.synthesize(configuration)
    """

    def __init__(self, catalog: Optional[PeripheralCatalog]):
        self.catalog = catalog

    def synthesize(self, configuration: ProjectConfiguration) -> GeneratedCode:
        """
        Render every configured peripheral.

        Args:
            configuration: Normalized peripheral configuration

        Returns:
            GeneratedCode aggregate

        Raises:
            CatalogError: If a peripheral or pin is unknown to the catalog
            ConfigurationError: If a peripheral is configured inconsistently
        """
        includes: Set[str] = set()
        sections: List[str] = []
        isr = IsrCollector()

        for peripheral in configuration.peripherals:
            definition = self.catalog.get(peripheral.id)
            if definition.kind is not peripheral.kind:
                raise ConfigurationError(
                    f"{peripheral.id} is a {definition.kind.value} peripheral, "
                    f"configured as {peripheral.kind.value}"
                )

            if peripheral.kind is PeripheralKind.PIN:
                units = self._pin_units(definition, peripheral)
            elif peripheral.kind is PeripheralKind.GLOBAL:
                units = [self._global_unit(definition, peripheral)]
            else:
                raise ConfigurationError(f"Unhandled peripheral kind: {peripheral.kind}")

            lines: List[str] = []
            for unit in units:
                lines.extend(self._render_unit(definition, unit, isr))
            if lines:
                sections.append("\n".join([f"// {definition.id}", *lines]))
                includes.update(definition.includes)

        if isr:
            sections.append("sei();")

        return GeneratedCode(
            includes=frozenset(includes),
            declarations=INIT_DECLARATION,
            implementation="\n\n".join(sections),
            isr=isr.render(),
        )

    def _pin_units(self, definition: PeripheralDefinition, peripheral: PinPeripheral) -> List[_Unit]:
        if not peripheral.pins:
            raise ConfigurationError(f"{definition.id} has no pins assigned")
        for assignment in peripheral.pins:
            if definition.role_of(assignment.pin) is None:
                raise ConfigurationError(f"{definition.id} cannot use pin {assignment.pin}")

        if definition.requires_all_pins:
            # The pins act as one module: initialize once with the first
            # pin's settings and every interrupt enabled on any of them.
            enabled = {name for assignment in peripheral.pins for name in assignment.interrupts}
            context = {role: pins[0] for role, pins in definition.pins.items()}
            return [_Unit(
                settings=self._settings(definition, peripheral.pins[0].settings),
                interrupts=tuple(sorted(enabled)),
                context=context,
            )]

        units = []
        for assignment in peripheral.pins:
            port, bit = self.catalog.port_for(assignment.pin)
            role = definition.role_of(assignment.pin)
            context = {
                "pin": assignment.pin,
                "port": port.letter,
                "bit": bit,
                "ddr": port.ddr,
                "portReg": port.port,
                "pinReg": port.pin,
                "pcintGroup": port.pcint_group,
                "pcint": port.pcint_base + bit,
                "role": role,
                "channel": role[-1],
            }
            units.append(_Unit(
                settings=self._settings(definition, assignment.settings),
                interrupts=assignment.interrupts,
                context=context,
                role=role,
            ))
        return units

    def _global_unit(self, definition: PeripheralDefinition, peripheral: GlobalPeripheral) -> _Unit:
        return _Unit(
            settings=self._settings(definition, peripheral.settings),
            interrupts=peripheral.interrupts,
            context={},
        )

    @staticmethod
    def _settings(definition: PeripheralDefinition, configured: Mapping[str, Any]) -> Dict[str, Any]:
        settings = dict(definition.defaults)
        settings.update(configured)
        return settings

    def _render_unit(self, definition: PeripheralDefinition, unit: _Unit, isr: IsrCollector) -> List[str]:
        context = dict(unit.context)
        for key, value in unit.settings.items():
            mapping = definition.value_mapping.get(key)
            if mapping is not None and str(value) in mapping:
                value = mapping[str(value)]
            context[key] = value

        lines = [render_template(line, context) for line in self._select_init(definition, unit)]

        for name in unit.interrupts:
            template = definition.interrupts.get(name)
            if template is None:
                raise ConfigurationError(f"{definition.id} has no interrupt '{name}'")
            lines.extend(render_template(line, context) for line in template.enable)
            isr.add([render_template(line, context) for line in template.isr])

        return lines

    @staticmethod
    def _select_init(definition: PeripheralDefinition, unit: _Unit) -> List[str]:
        init = definition.init
        if "$mode" in init:
            raw_mode = unit.settings.get(definition.mode_key or "mode")
            mode = definition.mode_mapping.get(str(raw_mode))
            if mode is None or mode not in init["$mode"]:
                raise ConfigurationError(f"{definition.id}: unsupported mode '{raw_mode}'")
            return list(init["$mode"][mode])

        if len(init) == 1:
            return list(next(iter(init.values())))
        if unit.role in init:
            return list(init[unit.role])
        for value in unit.settings.values():
            if isinstance(value, str) and value in init:
                return list(init[value])
        if not init:
            return []
        raise ConfigurationError(f"{definition.id}: cannot select an initialization template")
