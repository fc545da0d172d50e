"""
Marker tokens delimiting generated regions in user-owned source files.

The same four regions are used in the header, implementation and entry-point
files. Everything outside a marker pair belongs to the user.
"""

from dataclasses import dataclass
from typing import Tuple


@dataclass(frozen=True)
class MarkerPair:
    """Start and end sentinel of one generated region."""

    name: str
    start: str
    end: str


def _pair(name: str) -> MarkerPair:
    return MarkerPair(
        name=name,
        start=f"// avrforge:begin {name} (generated, do not edit)",
        end=f"// avrforge:end {name}",
    )


INCLUDES = _pair("includes")
DECLARATIONS = _pair("declarations")
INIT = _pair("init")
ISR = _pair("isr")

ALL_MARKERS: Tuple[MarkerPair, ...] = (INCLUDES, DECLARATIONS, INIT, ISR)
