"""
Board profile resolution for AVR boards.

This module resolves a board identifier into the MCU, clock, variant and
board-define values the build needs, reading an Arduino-style boards.txt when
one is available and falling back to a built-in table otherwise.

Example boards.txt entry:
    uno.name=Arduino Uno
    uno.build.mcu=atmega328p
    uno.build.f_cpu=16000000L
    uno.build.board=AVR_UNO
    uno.build.core=arduino
    uno.build.variant=standard

Values that would miscompile (an MCU outside the AVR families, a malformed
clock literal) are never passed on: they are replaced with safe defaults and
recorded in ``BoardProfile.diagnostics``.
"""

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from .descriptor import iter_entries, try_read_descriptor

logger = logging.getLogger(__name__)

MCU_PATTERN = re.compile(r"^(atmega|attiny)\d+", re.IGNORECASE)
F_CPU_PATTERN = re.compile(r"^\d+L?$")

DEFAULT_MCU = "atmega328p"
# Arduino NG / Diecimila era boards shipped with the smaller part
LEGACY_MCU = "atmega168"
FALLBACK_MCUS = frozenset({DEFAULT_MCU, LEGACY_MCU})
DEFAULT_F_CPU = "16000000L"
DEFAULT_VARIANT = "standard"

# Value of the ARDUINO define injected into framework builds (IDE 1.8.9)
ARDUINO_VERSION = "10809"


@dataclass(frozen=True)
class BoardProfile:
    """
    Resolved, validated build parameters for one board.

    Attributes:
        board_id: Identifier used to look the board up (e.g. "uno")
        name: Human-readable board name
        mcu: Validated MCU identifier (e.g. "atmega328p")
        f_cpu: Clock frequency literal (e.g. "16000000L")
        variant: Pin layout directory name under ``variants/``
        board: Token used for the ``ARDUINO_<board>`` define
        core: Core directory name under ``cores/``
        upload_protocol: Programmer protocol from the board table, if any
        upload_speed: Programmer baud rate from the board table, if any
        usb_ids: ``(vid, pid)`` pairs advertised by the board table
        diagnostics: Warnings recorded while resolving the profile
    """

    board_id: str
    name: str
    mcu: str
    f_cpu: str
    variant: str
    board: str
    core: str = "arduino"
    upload_protocol: Optional[str] = None
    upload_speed: Optional[int] = None
    usb_ids: Tuple[Tuple[str, str], ...] = ()
    diagnostics: Tuple[str, ...] = field(default=(), compare=False)

    def get_defines(self, framework: bool = True) -> List[str]:
        """
        Get preprocessor flags for this board.

        Framework builds get the board and architecture defines; bare-register
        builds only get the MCU and clock.

        Args:
            framework: Whether the project builds against the Arduino core

        Returns:
            Compiler arguments, e.g. ``["-mmcu=atmega328p", "-DF_CPU=16000000L"]``
        """
        defines = [f"-mmcu={self.mcu}", f"-DF_CPU={self.f_cpu}"]
        if framework:
            defines.extend([
                f"-DARDUINO={ARDUINO_VERSION}",
                f"-DARDUINO_{self.board}",
                "-DARDUINO_ARCH_AVR",
            ])
        return defines


# Built-in board table, used when no boards.txt is available
BOARD_DEFAULTS: Dict[str, Dict[str, str]] = {
    "uno": {
        "name": "Arduino Uno",
        "mcu": "atmega328p",
        "f_cpu": "16000000L",
        "variant": "standard",
        "board": "AVR_UNO",
    },
    "nano": {
        "name": "Arduino Nano",
        "mcu": "atmega328p",
        "f_cpu": "16000000L",
        "variant": "standard",
        "board": "AVR_NANO",
    },
    "mega": {
        "name": "Arduino Mega",
        "mcu": "atmega2560",
        "f_cpu": "16000000L",
        "variant": "mega",
        "board": "AVR_MEGA",
    },
    "leonardo": {
        "name": "Arduino Leonardo",
        "mcu": "atmega32u4",
        "f_cpu": "16000000L",
        "variant": "leonardo",
        "board": "AVR_LEONARDO",
    },
    "micro": {
        "name": "Arduino Micro",
        "mcu": "atmega32u4",
        "f_cpu": "16000000L",
        "variant": "micro",
        "board": "AVR_MICRO",
    },
}

# boards.txt suffix -> field name
_BOARD_KEYS = {
    "name": "name",
    "build.mcu": "mcu",
    "build.f_cpu": "f_cpu",
    "build.variant": "variant",
    "build.board": "board",
    "build.core": "core",
    "upload.protocol": "upload_protocol",
    "upload.speed": "upload_speed",
}
_USB_ID_KEY = re.compile(r"^(vid|pid)\.(\d+)$")


def fallback_mcu(board_id: str) -> str:
    """Pick the MCU from the fallback set used when a declared MCU is unusable."""
    return LEGACY_MCU if "ng" in board_id.lower() else DEFAULT_MCU


def is_valid_mcu(mcu: Optional[str]) -> bool:
    return bool(mcu) and MCU_PATTERN.match(mcu) is not None


def _builtin_fields(board_id: str) -> Dict[str, str]:
    known = BOARD_DEFAULTS.get(board_id.lower())
    if known is not None:
        return dict(known)
    return {
        "name": board_id,
        "mcu": DEFAULT_MCU,
        "f_cpu": DEFAULT_F_CPU,
        "variant": DEFAULT_VARIANT,
        "board": f"AVR_{board_id.upper()}",
    }


def scan_board_block(text: str, board_id: str) -> Dict[str, str]:
    """
    Collect the ``<board_id>.*`` keys of one board from boards.txt text.

    The block ends at the first key belonging to a different board after the
    block has started, so later redefinitions elsewhere in the file are not
    mixed in.

    Returns:
        Keys with the board prefix removed (e.g. ``build.mcu``)
    """
    prefix = f"{board_id}."
    block: Dict[str, str] = {}
    in_block = False
    for key, value in iter_entries(text):
        if key.startswith(prefix):
            in_block = True
            block[key[len(prefix):]] = value
        elif in_block:
            break
    return block


def parse_board_config(board_id: str, boards_text: Optional[str] = None) -> BoardProfile:
    """
    Resolve a BoardProfile from a board id and optional boards.txt text.

    Never raises. Without board table text, or when the board is not in the
    table, the built-in table is used. When the board is in the table but its
    MCU is missing or does not match ``^(atmega|attiny)\\d+``, an MCU from the
    fallback set is substituted and a diagnostic recorded.

    Args:
        board_id: Board identifier (e.g. "uno")
        boards_text: Raw boards.txt contents, or None

    Returns:
        Validated BoardProfile

    Example:
        profile = parse_board_config("uno")
        profile.mcu  # "atmega328p"
    """
    board_id = board_id.strip()
    data = _builtin_fields(board_id)
    diagnostics: List[str] = []
    usb_ids: List[Tuple[str, str]] = []

    block = scan_board_block(boards_text, board_id) if boards_text else {}
    if block:
        vids: Dict[str, str] = {}
        pids: Dict[str, str] = {}
        for key, value in block.items():
            if key in _BOARD_KEYS:
                data[_BOARD_KEYS[key]] = value
                continue
            usb = _USB_ID_KEY.match(key)
            if usb:
                (vids if usb.group(1) == "vid" else pids)[usb.group(2)] = value
        usb_ids = [(vids[i], pids[i]) for i in sorted(vids) if i in pids]

        declared_mcu = block.get("build.mcu")
        if not is_valid_mcu(declared_mcu):
            replacement = fallback_mcu(board_id)
            if declared_mcu:
                diagnostics.append(
                    f"board '{board_id}': MCU '{declared_mcu}' is not an AVR part; using {replacement}"
                )
            else:
                diagnostics.append(f"board '{board_id}': no build.mcu declared; using {replacement}")
            data["mcu"] = replacement
    elif boards_text is not None:
        diagnostics.append(f"board '{board_id}' not found in board table; using built-in defaults")

    data["mcu"] = data["mcu"].lower()

    if not F_CPU_PATTERN.match(data.get("f_cpu", "")):
        diagnostics.append(
            f"board '{board_id}': clock '{data.get('f_cpu')}' is malformed; using {DEFAULT_F_CPU}"
        )
        data["f_cpu"] = DEFAULT_F_CPU

    upload_speed: Optional[int] = None
    if data.get("upload_speed"):
        try:
            upload_speed = int(data["upload_speed"])
        except ValueError:
            diagnostics.append(f"board '{board_id}': upload speed '{data['upload_speed']}' ignored")

    for message in diagnostics:
        logger.warning(message)

    return BoardProfile(
        board_id=board_id,
        name=data.get("name") or board_id,
        mcu=data["mcu"],
        f_cpu=data["f_cpu"],
        variant=data.get("variant") or DEFAULT_VARIANT,
        board=data.get("board") or f"AVR_{board_id.upper()}",
        core=data.get("core") or "arduino",
        upload_protocol=data.get("upload_protocol") or None,
        upload_speed=upload_speed,
        usb_ids=tuple(usb_ids),
        diagnostics=tuple(diagnostics),
    )


def load_board_profile(board_id: str, boards_txt_path: Optional[Path] = None) -> BoardProfile:
    """Resolve a board profile, reading boards.txt from disk when it exists."""
    text = None
    if boards_txt_path is not None and boards_txt_path.exists():
        text = try_read_descriptor(boards_txt_path)
    return parse_board_config(board_id, text)
