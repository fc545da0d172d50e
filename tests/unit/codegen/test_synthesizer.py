"""
Unit tests for code synthesis.
"""

import pytest

from avrforge.codegen.catalog import CatalogError, PeripheralCatalog
from avrforge.codegen.models import ProjectConfiguration
from avrforge.codegen.synthesizer import (
    INIT_DECLARATION,
    CodeSynthesizer,
    IsrCollector,
    render_template,
)
from avrforge.config.project_settings import ConfigurationError


@pytest.fixture(scope="module")
def synthesizer():
    return CodeSynthesizer(PeripheralCatalog.load("atmega328p"))


def configure(*peripherals):
    return ProjectConfiguration.from_dict({"peripherals": list(peripherals)})


class TestRenderTemplate:
    """Test suite for placeholder substitution."""

    def test_known_and_unknown_placeholders(self):
        assert render_template("{{ddr}} |= {{missing}};", {"ddr": "DDRB"}) == "DDRB |= {{missing}};"


class TestCodeSynthesizer:
    """Test suite for CodeSynthesizer."""

    def test_gpio_output(self, synthesizer):
        code = synthesizer.synthesize(configure(
            {"id": "GPIO", "pins": {"PB5": {"settings": {"mode": "OUTPUT"}}}},
        ))

        assert code.implementation == "// GPIO\nDDRB |= (1 << 5);\nPORTB &= ~(1 << 5);"
        assert code.declarations == INIT_DECLARATION
        assert code.includes == frozenset({"<avr/io.h>", "<avr/interrupt.h>"})
        assert code.isr == ""

    def test_gpio_default_mode_is_input(self, synthesizer):
        code = synthesizer.synthesize(configure({"id": "GPIO", "pins": {"PC2": {}}}))

        assert "DDRC &= ~(1 << 2);" in code.implementation

    def test_deterministic(self, synthesizer):
        config = configure(
            {"id": "TIMER1", "settings": {"mode": "CTC"}, "interrupts": ["COMPA"]},
            {"id": "GPIO", "pins": {"PB0": {"interrupts": ["PCINT"]}, "PD7": {"mode": "OUTPUT"}}},
            {"id": "UART", "pins": {"PD1": {}, "PD0": {}}},
        )

        assert synthesizer.synthesize(config) == synthesizer.synthesize(config)

    def test_declaration_order(self, synthesizer):
        code = synthesizer.synthesize(configure(
            {"id": "TIMER0"},
            {"id": "GPIO", "pins": {"PB0": {}}},
        ))

        assert code.implementation.index("// TIMER0") < code.implementation.index("// GPIO")

    def test_requires_all_pins_initializes_once(self, synthesizer):
        code = synthesizer.synthesize(configure(
            {"id": "UART", "pins": {"PD1": {"baudRate": 115200}, "PD0": {"interrupts": ["RX"]}}},
        ))

        assert code.implementation.count("UCSR0B = (1<<RXEN0)|(1<<TXEN0);") == 1
        assert "UBRR0L = (F_CPU/16/115200-1);" in code.implementation
        assert "UCSR0C = (0<<UPM00)|(0<<USBS0)|(3<<UCSZ00);" in code.implementation
        assert "UCSR0B |= (1<<RXCIE0);" in code.implementation
        assert "ISR(USART_RX_vect) {" in code.isr

    def test_no_isr_without_enabled_interrupt(self, synthesizer):
        code = synthesizer.synthesize(configure(
            {"id": "TIMER1"},
            {"id": "ADC", "pins": {"PC0": {}}},
        ))

        assert code.isr == ""
        assert "sei();" not in code.implementation

    def test_enabled_interrupt_emits_isr_and_sei(self, synthesizer):
        code = synthesizer.synthesize(configure(
            {"id": "WATCHDOG_TIMER", "settings": {"timeout": 500}, "interrupts": ["WDT"]},
        ))

        assert code.isr == "ISR(WDT_vect) {\n    wdt_reset();\n}"
        assert "WDTCSR = (5 << WDP0) | (1 << WDE);" in code.implementation
        assert code.implementation.endswith("sei();")
        assert "<avr/wdt.h>" in code.includes

    def test_pin_change_handlers_share_vector(self, synthesizer):
        code = synthesizer.synthesize(configure(
            {"id": "GPIO", "pins": {"PB0": {"interrupts": ["PCINT"]}, "PB1": {"interrupts": ["PCINT"]}}},
        ))

        assert code.isr.count("ISR(PCINT0_vect) {") == 1
        assert "// PB0 high" in code.isr
        assert "// PB1 high" in code.isr
        assert "PCMSK0 |= (1 << PCINT0);" in code.implementation
        assert "PCMSK0 |= (1 << PCINT1);" in code.implementation

    def test_pin_change_number_includes_port_offset(self, synthesizer):
        code = synthesizer.synthesize(configure(
            {"id": "GPIO", "pins": {"PC3": {"interrupts": ["PCINT"]}}},
        ))

        assert "PCICR |= (1 << PCIE1);" in code.implementation
        assert "PCMSK1 |= (1 << PCINT11);" in code.implementation
        assert "{{" not in code.implementation

    def test_pwm_channel_from_role(self, synthesizer):
        code = synthesizer.synthesize(configure(
            {"id": "TIMER0_PWM", "pins": {"PD5": {"dutyCycle": 64}}},
        ))

        assert "OCR0B = 64;" in code.implementation
        assert "TCCR0B = (3 << CS00);" in code.implementation

    def test_external_interrupt_selects_init_by_role(self, synthesizer):
        code = synthesizer.synthesize(configure(
            {"id": "EXTERNAL_INTERRUPT", "pins": {"PD3": {"trigger": "FALLING", "interrupts": ["INT1"]}}},
        ))

        assert "EICRA |= (2 << ISC10);" in code.implementation
        assert "ISR(INT1_vect) {" in code.isr

    def test_empty_configuration(self, synthesizer):
        code = synthesizer.synthesize(ProjectConfiguration())

        assert code.implementation == ""
        assert code.includes == frozenset()
        assert code.declarations == INIT_DECLARATION

    def test_empty_configuration_needs_no_catalog(self):
        code = CodeSynthesizer(None).synthesize(ProjectConfiguration())

        assert code.implementation == ""
        assert code.isr == ""

    def test_unknown_peripheral(self, synthesizer):
        with pytest.raises(CatalogError):
            synthesizer.synthesize(configure({"id": "CAN"}))

    def test_kind_mismatch(self, synthesizer):
        with pytest.raises(ConfigurationError, match="global peripheral"):
            synthesizer.synthesize(configure({"id": "WATCHDOG_TIMER", "pins": {"PB0": {}}}))

    def test_pin_not_usable(self, synthesizer):
        with pytest.raises(ConfigurationError, match="cannot use pin PB5"):
            synthesizer.synthesize(configure({"id": "UART", "pins": {"PB5": {}}}))

    def test_unsupported_mode(self, synthesizer):
        with pytest.raises(ConfigurationError, match="unsupported mode"):
            synthesizer.synthesize(configure({"id": "GPIO", "pins": {"PB5": {"mode": "ANALOG"}}}))

    def test_unknown_interrupt(self, synthesizer):
        with pytest.raises(ConfigurationError, match="no interrupt 'OVF'"):
            synthesizer.synthesize(configure({"id": "WATCHDOG_TIMER", "interrupts": ["OVF"]}))


class TestIsrCollector:
    """Test suite for ISR merging."""

    def test_identical_bodies_added_once(self):
        collector = IsrCollector()
        collector.add(["ISR(A_vect) {", "    x();", "}"])
        collector.add(["ISR(A_vect) {", "    x();", "}"])
        collector.add(["ISR(B_vect) {", "}"])

        assert collector.render() == "ISR(A_vect) {\n    x();\n}\n\nISR(B_vect) {\n}"

    def test_empty(self):
        collector = IsrCollector()
        collector.add([])

        assert not collector
        assert collector.render() == ""
