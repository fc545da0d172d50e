"""Peripheral code synthesis and marker-region merging."""

from .catalog import CatalogError, PeripheralCatalog, PeripheralDefinition
from .markers import ALL_MARKERS, MarkerPair
from .merger import MarkedSection, MergeError, frame_body, merge_section
from .models import (
    GeneratedCode,
    GlobalPeripheral,
    PeripheralKind,
    PinAssignment,
    PinPeripheral,
    ProjectConfiguration,
)
from .project_writer import write_project_files
from .synthesizer import CodeSynthesizer

__all__ = [
    "ALL_MARKERS",
    "CatalogError",
    "CodeSynthesizer",
    "GeneratedCode",
    "GlobalPeripheral",
    "MarkedSection",
    "MarkerPair",
    "MergeError",
    "PeripheralCatalog",
    "PeripheralDefinition",
    "PeripheralKind",
    "PinAssignment",
    "PinPeripheral",
    "ProjectConfiguration",
    "frame_body",
    "merge_section",
    "write_project_files",
]
