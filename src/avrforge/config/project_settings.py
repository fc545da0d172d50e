"""
avrforge.ini project settings parser.

Example avrforge.ini:
    [project]
    board = uno
    config = pins_config.json

    [toolchain]
    platform = platform.txt
    boards = boards.txt

    [upload]
    port = /dev/ttyACM0
    timeout = 120
    settle_delay = 3.0

Every key is optional. A project without avrforge.ini builds for the Uno with
descriptors looked up at the project root.
"""

import configparser
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

SETTINGS_FILENAME = "avrforge.ini"


class ConfigurationError(Exception):
    """Exception raised for unreadable project settings or configuration."""

    pass


@dataclass(frozen=True)
class ProjectSettings:
    """Project-level settings resolved against the project root."""

    project_dir: Path
    board: str = "uno"
    peripheral_config: Optional[Path] = None
    platform_txt: Optional[Path] = None
    boards_txt: Optional[Path] = None
    port: Optional[str] = None
    upload_timeout: float = 120.0
    settle_delay: float = 3.0

    @classmethod
    def load(cls, project_dir: Path) -> "ProjectSettings":
        """
        Load settings from ``<project_dir>/avrforge.ini``.

        Args:
            project_dir: Project root directory

        Returns:
            ProjectSettings with defaults for everything not configured

        Raises:
            ConfigurationError: If the file exists but cannot be parsed
        """
        project_dir = Path(project_dir).resolve()
        ini_path = project_dir / SETTINGS_FILENAME
        parser = configparser.ConfigParser()

        if ini_path.exists():
            try:
                parser.read(ini_path, encoding="utf-8")
            except configparser.Error as e:
                raise ConfigurationError(f"Failed to parse {ini_path}: {e}") from e

        def path_option(section: str, key: str, default: Optional[str]) -> Optional[Path]:
            value = parser.get(section, key, fallback=default)
            if not value:
                return None
            return (project_dir / value).resolve()

        try:
            return cls(
                project_dir=project_dir,
                board=parser.get("project", "board", fallback="uno").strip(),
                peripheral_config=path_option("project", "config", "pins_config.json"),
                platform_txt=path_option("toolchain", "platform", "platform.txt"),
                boards_txt=path_option("toolchain", "boards", "boards.txt"),
                port=parser.get("upload", "port", fallback=None) or None,
                upload_timeout=parser.getfloat("upload", "timeout", fallback=120.0),
                settle_delay=parser.getfloat("upload", "settle_delay", fallback=3.0),
            )
        except ValueError as e:
            raise ConfigurationError(f"Invalid value in {ini_path}: {e}") from e
