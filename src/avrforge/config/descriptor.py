"""
Line-oriented descriptor reader.

Arduino-style descriptors (platform.txt, boards.txt) are plain ``key=value``
lines. Lines starting with ``#`` and blank lines are ignored, and so is
anything that does not contain an ``=``.
"""

import logging
import re
from pathlib import Path
from typing import Dict, Iterator, Optional, Tuple

logger = logging.getLogger(__name__)

_REFERENCE = re.compile(r"\{([A-Za-z0-9_.\-]+)\}")


class DescriptorError(Exception):
    """Raised when a descriptor file cannot be read."""

    pass


def iter_entries(text: str) -> Iterator[Tuple[str, str]]:
    """Yield ``(key, value)`` pairs in file order.

    Args:
        text: Raw descriptor text

    Yields:
        Stripped key and value for every well-formed line
    """
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        if key:
            yield key, value.strip()


def parse_descriptor(text: str) -> Dict[str, str]:
    """Parse descriptor text into a flat dictionary. Later keys win."""
    return dict(iter_entries(text))


def interpolate(value: str, properties: Dict[str, str], depth: int = 8) -> str:
    """Expand ``{key}`` references using other descriptor properties.

    References to unknown keys are left as written. Expansion stops after
    ``depth`` passes so self-referencing keys cannot loop forever.
    """
    for _ in range(depth):
        expanded = _REFERENCE.sub(
            lambda m: properties.get(m.group(1), m.group(0)), value
        )
        if expanded == value:
            break
        value = expanded
    return value


def read_descriptor(path: Path) -> str:
    """Read a descriptor file.

    Raises:
        DescriptorError: If the file is missing or unreadable
    """
    try:
        return path.read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        raise DescriptorError(f"Cannot read descriptor {path}: {e}") from e


def try_read_descriptor(path: Optional[Path]) -> Optional[str]:
    """Read a descriptor, returning None (and logging) instead of raising."""
    if path is None:
        return None
    try:
        return read_descriptor(path)
    except DescriptorError as e:
        logger.warning("%s; using built-in defaults", e)
        return None
