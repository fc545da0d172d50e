"""
Unit tests for the peripheral catalog.
"""

import json

import pytest

from avrforge.codegen.catalog import CatalogError, PeripheralCatalog
from avrforge.codegen.models import PeripheralKind


class TestPeripheralCatalog:
    """Test suite for the bundled atmega328p catalog."""

    @pytest.fixture(scope="class")
    def catalog(self):
        return PeripheralCatalog.load("atmega328p")

    def test_known_peripherals(self, catalog):
        for peripheral_id in ("GPIO", "UART", "SPI", "I2C", "ADC", "WATCHDOG_TIMER", "TIMER1"):
            assert peripheral_id in catalog

    def test_kinds(self, catalog):
        assert catalog.get("GPIO").kind is PeripheralKind.PIN
        assert catalog.get("WATCHDOG_TIMER").kind is PeripheralKind.GLOBAL

    def test_requires_all_pins(self, catalog):
        assert catalog.get("UART").requires_all_pins
        assert catalog.get("SPI").requires_all_pins
        assert not catalog.get("GPIO").requires_all_pins

    def test_role_of(self, catalog):
        uart = catalog.get("UART")
        assert uart.role_of("PD1") == "TX"
        assert uart.role_of("PD0") == "RX"
        assert uart.role_of("PB5") is None

    def test_unknown_peripheral(self, catalog):
        with pytest.raises(CatalogError, match="Unknown peripheral 'CAN'"):
            catalog.get("CAN")

    def test_port_for(self, catalog):
        port, bit = catalog.port_for("PB5")
        assert (port.ddr, port.port, port.pin, bit) == ("DDRB", "PORTB", "PINB", 5)
        port, bit = catalog.port_for("PD2")
        assert port.pcint_group == 2
        assert port.pcint_base + bit == 18

    @pytest.mark.parametrize("pin", ["PB7", "PE0", "B5", "PBX", ""])
    def test_port_for_unknown_pin(self, catalog, pin):
        with pytest.raises(CatalogError):
            catalog.port_for(pin)

    def test_iteration(self, catalog):
        ids = [definition.id for definition in catalog]
        assert ids[0] == "GPIO"
        assert len(ids) == len(set(ids))

    def test_missing_mcu(self):
        with pytest.raises(CatalogError, match="No peripheral catalog"):
            PeripheralCatalog.load("atmega2560")

    def test_malformed_catalog(self, tmp_path):
        (tmp_path / "bad.json").write_text(json.dumps({"peripherals": [{"id": "X", "kind": "weird"}]}))

        with pytest.raises(CatalogError, match="Malformed"):
            PeripheralCatalog.load("bad", catalog_dir=tmp_path)

    def test_invalid_json(self, tmp_path):
        (tmp_path / "bad.json").write_text("{")

        with pytest.raises(CatalogError, match="Cannot load"):
            PeripheralCatalog.load("bad", catalog_dir=tmp_path)
