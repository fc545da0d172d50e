"""
Toolchain profile resolution from platform.txt.

A ToolchainProfile holds the command names and flag strings the build
orchestrator needs. Every field has a built-in default, and the parser falls
back to it field by field whenever the descriptor is missing, unreadable or
simply does not mention the key.

Example platform.txt:
    compiler.path=
    compiler.c.cmd=avr-gcc
    compiler.c.flags=-c -g -Os -w -std=gnu11 -ffunction-sections -fdata-sections
    compiler.cpp.cmd=avr-g++
    compiler.c.elf.flags=-Os -g -Wl,--gc-sections
    compiler.elf2hex.cmd=avr-objcopy
"""

import logging
import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from .descriptor import interpolate, parse_descriptor, try_read_descriptor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolchainProfile:
    """Resolved compiler, linker, image and programmer invocation settings."""

    c_cmd: str = "avr-gcc"
    c_flags: str = "-c -g -Os -w -std=gnu11 -ffunction-sections -fdata-sections -MMD -MP"
    cpp_cmd: str = "avr-g++"
    cpp_flags: str = (
        "-c -g -Os -w -std=gnu++11 -ffunction-sections -fdata-sections "
        "-fno-threadsafe-statics -MMD -MP"
    )
    elf_cmd: str = "avr-gcc"
    elf_flags: str = "-Os -g -Wl,--gc-sections"
    objcopy_cmd: str = "avr-objcopy"
    objcopy_hex_flags: str = "-O ihex -R .eeprom"
    avrdude_cmd: str = "avrdude"
    diagnostics: Tuple[str, ...] = field(default=(), compare=False)

    def c_flag_list(self) -> List[str]:
        return shlex.split(self.c_flags)

    def cpp_flag_list(self) -> List[str]:
        return shlex.split(self.cpp_flags)

    def elf_flag_list(self) -> List[str]:
        return shlex.split(self.elf_flags)

    def objcopy_flag_list(self) -> List[str]:
        return shlex.split(self.objcopy_hex_flags)


# platform.txt key -> ToolchainProfile field
PLATFORM_KEYS: Dict[str, str] = {
    "compiler.c.cmd": "c_cmd",
    "compiler.c.flags": "c_flags",
    "compiler.cpp.cmd": "cpp_cmd",
    "compiler.cpp.flags": "cpp_flags",
    "compiler.c.elf.cmd": "elf_cmd",
    "compiler.c.elf.flags": "elf_flags",
    "compiler.elf2hex.cmd": "objcopy_cmd",
    "compiler.elf2hex.flags": "objcopy_hex_flags",
    "tools.avrdude.cmd": "avrdude_cmd",
}


def _is_valid_flags(value: str) -> bool:
    try:
        shlex.split(value)
    except ValueError:
        return False
    return True


def parse_platform_descriptor(text: Optional[str]) -> ToolchainProfile:
    """Build a ToolchainProfile from platform descriptor text.

    Never raises. ``None`` or text without any recognised key yields the
    default profile. Values that are empty, or flag strings with unbalanced
    quoting, are replaced by the default for that field and noted in
    ``diagnostics``.

    Args:
        text: Raw platform.txt contents, or None if the file was unavailable

    Returns:
        Fully populated ToolchainProfile
    """
    if text is None:
        return ToolchainProfile(diagnostics=("platform descriptor unavailable; using defaults",))

    properties = parse_descriptor(text)
    values: Dict[str, str] = {}
    diagnostics: List[str] = []
    for key, attr in PLATFORM_KEYS.items():
        if key not in properties:
            continue
        value = interpolate(properties[key], properties).strip()
        if not value:
            diagnostics.append(f"{key} is empty; using default")
        elif attr.endswith("flags") and not _is_valid_flags(value):
            diagnostics.append(f"{key} has unbalanced quoting; using default")
        else:
            values[attr] = value

    for message in diagnostics:
        logger.warning("platform descriptor: %s", message)

    return ToolchainProfile(**values, diagnostics=tuple(diagnostics))


def load_toolchain_profile(path: Optional[Path]) -> ToolchainProfile:
    """Read and parse a platform descriptor from disk, defaulting on failure."""
    return parse_platform_descriptor(try_read_descriptor(path))
