"""
Unit tests for platform descriptor resolution.
"""

from avrforge.config.toolchain_profile import (
    ToolchainProfile,
    load_toolchain_profile,
    parse_platform_descriptor,
)


class TestParsePlatformDescriptor:
    """Test suite for parse_platform_descriptor."""

    def test_none_yields_defaults(self):
        profile = parse_platform_descriptor(None)

        assert profile == ToolchainProfile()
        assert profile.c_cmd == "avr-gcc"
        assert profile.cpp_cmd == "avr-g++"
        assert profile.objcopy_cmd == "avr-objcopy"
        assert profile.diagnostics

    def test_empty_text_yields_defaults_without_diagnostics(self):
        profile = parse_platform_descriptor("")

        assert profile == ToolchainProfile()
        assert profile.diagnostics == ()

    def test_overrides_and_interpolation(self):
        text = """
compiler.path=/opt/avr/bin/
compiler.c.cmd={compiler.path}avr-gcc
compiler.cpp.cmd={compiler.path}avr-g++
compiler.c.flags=-c -Os
compiler.elf2hex.flags=-O ihex
"""
        profile = parse_platform_descriptor(text)

        assert profile.c_cmd == "/opt/avr/bin/avr-gcc"
        assert profile.cpp_cmd == "/opt/avr/bin/avr-g++"
        assert profile.c_flag_list() == ["-c", "-Os"]
        assert profile.objcopy_flag_list() == ["-O", "ihex"]
        # Untouched fields keep their defaults
        assert profile.elf_cmd == "avr-gcc"
        assert profile.avrdude_cmd == "avrdude"

    def test_empty_value_falls_back(self):
        profile = parse_platform_descriptor("compiler.c.cmd=\n")

        assert profile.c_cmd == "avr-gcc"
        assert any("compiler.c.cmd" in d for d in profile.diagnostics)

    def test_unbalanced_quotes_fall_back(self):
        profile = parse_platform_descriptor('compiler.cpp.flags=-c "-DNAME=x\n')

        assert profile.cpp_flags == ToolchainProfile().cpp_flags
        assert any("quoting" in d for d in profile.diagnostics)

    def test_default_flag_lists(self):
        profile = ToolchainProfile()

        assert "-fno-threadsafe-statics" in profile.cpp_flag_list()
        assert "-std=gnu11" in profile.c_flag_list()
        assert profile.elf_flag_list() == ["-Os", "-g", "-Wl,--gc-sections"]


class TestLoadToolchainProfile:
    """Test suite for loading from disk."""

    def test_missing_file(self, tmp_path):
        profile = load_toolchain_profile(tmp_path / "platform.txt")
        assert profile == ToolchainProfile()

    def test_existing_file(self, tmp_path):
        path = tmp_path / "platform.txt"
        path.write_text("tools.avrdude.cmd=/usr/local/bin/avrdude\n")

        assert load_toolchain_profile(path).avrdude_cmd == "/usr/local/bin/avrdude"
