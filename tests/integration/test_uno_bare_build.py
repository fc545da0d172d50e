"""
Integration tests for a bare-register Arduino Uno build.

Runs the real avr-gcc toolchain, so it is skipped unless pytest is run with
--full and avr-gcc is on PATH.
"""

import asyncio
import json
import shutil

import pytest

from avrforge.pipeline import FirmwarePipeline

BARE_MAIN = """#include <avr/io.h>

int main(void) {
    for (;;) {
    }
}
"""


@pytest.mark.integration
@pytest.mark.skipif(shutil.which("avr-gcc") is None, reason="avr-gcc not installed")
class TestUnoBareBuild:
    """Generate, then build a blink-style project with the real toolchain."""

    @pytest.fixture
    def project_dir(self, tmp_path):
        (tmp_path / "src").mkdir()
        (tmp_path / "src" / "main.cpp").write_text(BARE_MAIN)
        (tmp_path / "pins_config.json").write_text(json.dumps({
            "peripherals": [
                {"id": "GPIO", "pins": {"PB5": {"mode": "OUTPUT"}}},
                {"id": "TIMER1", "interrupts": ["OVF"]},
            ]
        }))
        return tmp_path

    def test_generate_and_build(self, project_dir):
        pipeline = FirmwarePipeline()

        generated = pipeline.regenerate(project_dir)
        assert generated.success, generated.error
        assert "pins_init_all();" in (project_dir / "src" / "main.cpp").read_text()

        result = asyncio.run(pipeline.build(project_dir))

        assert result.success, result.error
        hex_lines = result.hex_path.read_text().splitlines()
        assert hex_lines[0].startswith(":")
        assert hex_lines[-1] == ":00000001FF"
