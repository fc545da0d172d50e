"""Descriptor and project configuration for avrforge."""

from .board_config import BOARD_DEFAULTS, BoardProfile, load_board_profile, parse_board_config
from .descriptor import DescriptorError
from .project_settings import ConfigurationError, ProjectSettings
from .toolchain_profile import ToolchainProfile, load_toolchain_profile, parse_platform_descriptor

__all__ = [
    "BOARD_DEFAULTS",
    "BoardProfile",
    "ConfigurationError",
    "DescriptorError",
    "ProjectSettings",
    "ToolchainProfile",
    "load_board_profile",
    "load_toolchain_profile",
    "parse_board_config",
    "parse_platform_descriptor",
]
