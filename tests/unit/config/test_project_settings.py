"""
Unit tests for avrforge.ini project settings.
"""

import pytest

from avrforge.config.project_settings import SETTINGS_FILENAME, ConfigurationError, ProjectSettings


class TestProjectSettings:
    """Test suite for ProjectSettings.load."""

    def test_defaults_without_file(self, tmp_path):
        settings = ProjectSettings.load(tmp_path)

        assert settings.project_dir == tmp_path.resolve()
        assert settings.board == "uno"
        assert settings.peripheral_config == tmp_path.resolve() / "pins_config.json"
        assert settings.platform_txt == tmp_path.resolve() / "platform.txt"
        assert settings.boards_txt == tmp_path.resolve() / "boards.txt"
        assert settings.port is None
        assert settings.upload_timeout == 120.0
        assert settings.settle_delay == 3.0

    def test_full_file(self, tmp_path):
        (tmp_path / SETTINGS_FILENAME).write_text(
            """
[project]
board = mega
config = config/pins.json

[toolchain]
platform = hardware/platform.txt
boards = hardware/boards.txt

[upload]
port = /dev/ttyACM1
timeout = 30
settle_delay = 0.5
"""
        )

        settings = ProjectSettings.load(tmp_path)

        assert settings.board == "mega"
        assert settings.peripheral_config == tmp_path.resolve() / "config" / "pins.json"
        assert settings.platform_txt == tmp_path.resolve() / "hardware" / "platform.txt"
        assert settings.boards_txt == tmp_path.resolve() / "hardware" / "boards.txt"
        assert settings.port == "/dev/ttyACM1"
        assert settings.upload_timeout == 30.0
        assert settings.settle_delay == 0.5

    def test_unparsable_file(self, tmp_path):
        (tmp_path / SETTINGS_FILENAME).write_text("board = uno\n")

        with pytest.raises(ConfigurationError, match="Failed to parse"):
            ProjectSettings.load(tmp_path)

    def test_invalid_number(self, tmp_path):
        (tmp_path / SETTINGS_FILENAME).write_text("[upload]\ntimeout = soon\n")

        with pytest.raises(ConfigurationError, match="Invalid value"):
            ProjectSettings.load(tmp_path)
