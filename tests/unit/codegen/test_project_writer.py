"""
Unit tests for regeneration of the generated project files.
"""

import pytest

from avrforge.codegen import markers
from avrforge.codegen.catalog import PeripheralCatalog
from avrforge.codegen.models import GeneratedCode, ProjectConfiguration
from avrforge.codegen.project_writer import (
    render_entry,
    render_header,
    render_implementation,
    write_project_files,
)
from avrforge.codegen.synthesizer import INIT_CALL, CodeSynthesizer


@pytest.fixture
def code():
    synthesizer = CodeSynthesizer(PeripheralCatalog.load("atmega328p"))
    return synthesizer.synthesize(ProjectConfiguration.from_dict({
        "peripherals": [
            {"id": "GPIO", "pins": {"PB5": {"mode": "OUTPUT"}}},
            {"id": "TIMER1", "interrupts": ["OVF"]},
        ]
    }))


@pytest.fixture
def plain_code():
    return GeneratedCode(
        includes=frozenset({"<avr/io.h>"}),
        declarations="void pins_init_all(void);",
        implementation="DDRB |= (1 << 5);",
    )


class TestRenderers:
    """Test suite for the per-file renderers."""

    def test_header_from_scratch(self, plain_code):
        text = render_header(None, plain_code)

        assert text.startswith("#ifndef PINS_INIT_H\n#define PINS_INIT_H\n")
        assert "#include <avr/io.h>" in text
        assert "void pins_init_all(void);" in text
        assert text.rstrip().endswith("#endif  // PINS_INIT_H")
        assert text.count(markers.INCLUDES.start) == 1
        assert text.count(markers.DECLARATIONS.start) == 1

    def test_implementation_from_scratch(self, plain_code):
        text = render_implementation(None, plain_code)

        expected_init = f"    {markers.INIT.start}\n    DDRB |= (1 << 5);\n    {markers.INIT.end}"
        assert '#include "pins_init.h"' in text
        assert "void pins_init_all(void) {\n" + expected_init + "\n}" in text
        assert markers.ISR.start not in text

    def test_implementation_isr_region_only_when_needed(self, code, plain_code):
        with_isr = render_implementation(None, code)
        assert markers.ISR.start in with_isr
        assert "ISR(TIMER1_OVF_vect) {" in with_isr

        # An existing ISR region is emptied rather than removed
        without_isr = render_implementation(with_isr, plain_code)
        assert markers.ISR.start in without_isr
        assert "ISR(TIMER1_OVF_vect)" not in without_isr

    def test_implementation_inserts_region_into_existing_function(self, plain_code):
        existing = '#include "pins_init.h"\n\nvoid pins_init_all(void) {\n    custom();\n}\n'

        text = render_implementation(existing, plain_code)

        assert "    custom();\n}" in text
        assert text.index(markers.INIT.start) < text.index("custom();")
        assert "DDRB |= (1 << 5);" in text

    def test_implementation_appends_function(self, plain_code):
        text = render_implementation("// user file\n", plain_code)

        assert text.startswith("// user file\n")
        assert "void pins_init_all(void) {" in text
        assert "DDRB |= (1 << 5);" in text

    def test_entry_from_scratch(self):
        text = render_entry(None)

        assert text.startswith("#include <Arduino.h>\n")
        assert '#include "pins_init.h"' in text
        assert "void setup() {" in text
        assert "void loop() {" in text
        assert text.count(INIT_CALL) == 1

    def test_entry_uses_existing_setup(self):
        existing = (
            "#include <Arduino.h>\n"
            "\n"
            "void setup() {\n"
            "    Serial.begin(9600);\n"
            "}\n"
            "\n"
            "void loop() {\n"
            "    delay(100);\n"
            "}\n"
        )

        text = render_entry(existing)

        assert text.count("void setup()") == 1
        assert text.count("void loop()") == 1
        setup_body = text[text.index("void setup() {"):text.index("void loop()")]
        assert INIT_CALL in setup_body
        assert "Serial.begin(9600);" in setup_body
        assert "    delay(100);\n" in text

    def test_entry_bare_register_main(self):
        existing = "#include <avr/io.h>\n\nint main(void) {\n    for (;;) {}\n}\n"

        text = render_entry(existing)

        assert text.startswith(markers.INCLUDES.start)
        main_body = text[text.index("int main(void) {"):]
        assert INIT_CALL in main_body
        assert "void setup()" not in text

    def test_entry_keeps_existing_loop(self):
        text = render_entry("#include <Arduino.h>\nvoid loop() {}\n")

        assert text.count("void loop()") == 1
        assert "void setup() {" in text


class TestWriteProjectFiles:
    """Test suite for write_project_files."""

    def test_creates_three_files(self, tmp_path, code):
        written = write_project_files(tmp_path, code)

        src = tmp_path / "src"
        assert written == [src / "pins_init.h", src / "pins_init.cpp", src / "main.cpp"]
        assert all(path.exists() for path in written)

    def test_regeneration_is_idempotent(self, tmp_path, code):
        write_project_files(tmp_path, code)
        first = {p.name: p.read_bytes() for p in (tmp_path / "src").iterdir()}

        assert write_project_files(tmp_path, code) == []
        second = {p.name: p.read_bytes() for p in (tmp_path / "src").iterdir()}
        assert first == second

    def test_user_text_survives_regeneration(self, tmp_path, code, plain_code):
        write_project_files(tmp_path, code)
        main = tmp_path / "src" / "main.cpp"
        user_text = "\n// user comment\nint ticks = 0;\n"
        main.write_text(main.read_text() + user_text)

        write_project_files(tmp_path, plain_code)
        write_project_files(tmp_path, code)

        text = main.read_text()
        assert text.endswith(user_text)
        assert text.count(INIT_CALL) == 1

    def test_only_changed_files_written(self, tmp_path, code, plain_code):
        write_project_files(tmp_path, code)

        written = write_project_files(tmp_path, plain_code)

        names = [path.name for path in written]
        assert "main.cpp" not in names
        assert "pins_init.cpp" in names
