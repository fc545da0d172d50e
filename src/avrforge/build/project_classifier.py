"""
Project classification.

A project is either a framework build (its entry file includes the Arduino
core header, so the core runtime is compiled and linked in) or a
bare-register build (it only uses avr-libc register headers and defines its
own ``main``). Anything else is not a buildable project.
"""

import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional

from ..config.board_config import BoardProfile

ENTRY_FILE = Path("src") / "main.cpp"
CORE_DIR = Path("cores") / "arduino"
VARIANTS_DIR = Path("variants")

_FRAMEWORK_INCLUDE = re.compile(r"#\s*include\s*<Arduino\.h>")
_REGISTER_INCLUDE = re.compile(r'#\s*include\s*[<"]avr/(?:io|interrupt|wdt|power|sleep)\.h[>"]')
_MAIN_FUNCTION = re.compile(r"\b(?:int|void)\s+main\s*\(")


class ClassificationError(Exception):
    """Raised when a directory is not a recognizable firmware project."""

    pass


class ProjectKind(Enum):
    FRAMEWORK = "framework"
    BARE_REGISTER = "bare-register"


@dataclass(frozen=True)
class ProjectLayout:
    """Classified project and the directories its build uses."""

    kind: ProjectKind
    project_dir: Path
    entry_file: Path
    build_dir: Path
    core_dir: Optional[Path] = None
    variant_dir: Optional[Path] = None

    @property
    def is_framework(self) -> bool:
        return self.kind is ProjectKind.FRAMEWORK


def classify_project(project_dir: Path, board: BoardProfile) -> ProjectLayout:
    """
    Classify a project and resolve its build directories.

    Args:
        project_dir: Project root
        board: Resolved board profile (selects the variant directory)

    Returns:
        ProjectLayout

    Raises:
        ClassificationError: If there is no entry file, the entry file uses
            neither the framework nor register headers, or a framework
            build lacks its core or variant directory
    """
    project_dir = Path(project_dir).resolve()
    entry_file = project_dir / ENTRY_FILE
    if not entry_file.is_file():
        raise ClassificationError(f"No entry file: expected {ENTRY_FILE} in {project_dir}")

    source = entry_file.read_text(encoding="utf-8", errors="replace")
    build_dir = project_dir / "build"

    if _FRAMEWORK_INCLUDE.search(source):
        core_dir = project_dir / CORE_DIR
        variant_dir = project_dir / VARIANTS_DIR / board.variant
        if not core_dir.is_dir():
            raise ClassificationError(f"Framework core not found: {core_dir}")
        if not variant_dir.is_dir():
            raise ClassificationError(f"Board variant '{board.variant}' not found: {variant_dir}")
        return ProjectLayout(ProjectKind.FRAMEWORK, project_dir, entry_file, build_dir, core_dir, variant_dir)

    if _REGISTER_INCLUDE.search(source) and _MAIN_FUNCTION.search(source):
        return ProjectLayout(ProjectKind.BARE_REGISTER, project_dir, entry_file, build_dir)

    raise ClassificationError(
        f"{ENTRY_FILE} is neither a framework sketch (#include <Arduino.h>) "
        "nor a bare-register program (<avr/io.h> and main())"
    )
