"""
Unit tests for AvrCompiler.

Tests command construction and unit result classification.
"""

import asyncio
from pathlib import Path

import pytest

from avrforge.build.compiler import AvrCompiler, object_name
from avrforge.build.project_classifier import ProjectKind, ProjectLayout
from avrforge.config.board_config import parse_board_config
from avrforge.config.toolchain_profile import ToolchainProfile


@pytest.fixture
def framework_layout(tmp_path):
    return ProjectLayout(
        kind=ProjectKind.FRAMEWORK,
        project_dir=tmp_path,
        entry_file=tmp_path / "src" / "main.cpp",
        build_dir=tmp_path / "build",
        core_dir=tmp_path / "cores" / "arduino",
        variant_dir=tmp_path / "variants" / "standard",
    )


@pytest.fixture
def bare_layout(tmp_path):
    return ProjectLayout(
        kind=ProjectKind.BARE_REGISTER,
        project_dir=tmp_path,
        entry_file=tmp_path / "src" / "main.cpp",
        build_dir=tmp_path / "build",
    )


@pytest.fixture
def compiler(framework_layout, fake_runner):
    return AvrCompiler(ToolchainProfile(), parse_board_config("uno"), framework_layout, fake_runner)


class TestBuildCommand:
    """Test suite for command construction."""

    def test_cpp_command(self, compiler, tmp_path):
        cmd = compiler.build_command(tmp_path / "src" / "main.cpp", tmp_path / "build" / "app_main.o")

        assert cmd[0] == "avr-g++"
        assert "-fno-threadsafe-statics" in cmd
        assert "-mmcu=atmega328p" in cmd
        assert "-DF_CPU=16000000L" in cmd
        assert "-DARDUINO_AVR_UNO" in cmd
        assert f"-I{tmp_path / 'cores' / 'arduino'}" in cmd
        assert f"-I{tmp_path / 'variants' / 'standard'}" in cmd
        assert cmd[-3:] == [str(tmp_path / "src" / "main.cpp"), "-o", str(tmp_path / "build" / "app_main.o")]

    def test_c_command(self, compiler, tmp_path):
        cmd = compiler.build_command(tmp_path / "wiring.c", tmp_path / "wiring.o")

        assert cmd[0] == "avr-gcc"
        assert "-std=gnu11" in cmd

    def test_assembler_command(self, compiler, tmp_path):
        cmd = compiler.build_command(tmp_path / "wiring_pulse.S", tmp_path / "wiring_pulse.o")

        assert cmd[0] == "avr-gcc"
        assert cmd[cmd.index("-x") + 1] == "assembler-with-cpp"

    def test_bare_register_command(self, bare_layout, fake_runner, tmp_path):
        compiler = AvrCompiler(ToolchainProfile(), parse_board_config("uno"), bare_layout, fake_runner)

        cmd = compiler.build_command(tmp_path / "src" / "main.cpp", tmp_path / "build" / "app_main.o")

        assert "-mmcu=atmega328p" in cmd
        assert not any(flag.startswith("-DARDUINO") for flag in cmd)
        assert compiler.include_flags() == [f"-I{tmp_path / 'src'}"]


class TestCompile:
    """Test suite for compiling one unit."""

    def test_success(self, compiler, fake_runner, tmp_path):
        output = tmp_path / "build" / "app_main.o"

        result = asyncio.run(compiler.compile(tmp_path / "src" / "main.cpp", output))

        assert result.success
        assert result.object_file == output
        assert fake_runner.calls[0][0] == "avr-g++"

    def test_nonzero_exit(self, compiler, fake_runner, tmp_path):
        fake_runner.respond("main.cpp", returncode=1, stderr="src/main.cpp:1:1: error: expected ';'")

        result = asyncio.run(compiler.compile(tmp_path / "src" / "main.cpp", tmp_path / "build" / "app_main.o"))

        assert not result.success
        assert result.object_file is None
        assert result.problems[0].line == 1

    def test_error_diagnostic_with_zero_exit(self, compiler, fake_runner, tmp_path):
        fake_runner.respond("main.cpp", stderr="error: something odd", create_output=True)

        result = asyncio.run(compiler.compile(tmp_path / "src" / "main.cpp", tmp_path / "build" / "app_main.o"))

        assert not result.success

    def test_warning_is_not_failure(self, compiler, fake_runner, tmp_path):
        fake_runner.respond("main.cpp", stderr="src/main.cpp:3:9: warning: unused variable", create_output=True)

        result = asyncio.run(compiler.compile(tmp_path / "src" / "main.cpp", tmp_path / "build" / "app_main.o"))

        assert result.success
        assert result.problems[0].severity == "warning"

    def test_missing_output_is_failure(self, compiler, fake_runner, tmp_path):
        fake_runner.respond("main.cpp")

        result = asyncio.run(compiler.compile(tmp_path / "src" / "main.cpp", tmp_path / "build" / "app_main.o"))

        assert not result.success

    def test_stale_object_removed(self, compiler, fake_runner, tmp_path):
        output = tmp_path / "build" / "app_main.o"
        output.parent.mkdir(parents=True)
        output.write_bytes(b"stale")
        fake_runner.respond("main.cpp", returncode=1)

        result = asyncio.run(compiler.compile(tmp_path / "src" / "main.cpp", output))

        assert not result.success
        assert not output.exists()


class TestObjectName:
    """Test suite for object_name."""

    def test_nested_source(self):
        assert object_name(Path("src/drivers/led.cpp"), Path("src"), "src") == "src_drivers_led.o"

    def test_core_source(self):
        assert object_name(Path("cores/arduino/wiring.c"), Path("cores/arduino"), "core") == "core_wiring.o"
