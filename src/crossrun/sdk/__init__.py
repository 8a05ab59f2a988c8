"""
Cross-compilation SDK support.

Public API:
    - BuildProfile: Architecture + debug/release selections
    - TargetLayout, find_target_root, read_build_config: Build tree layout
    - CrossEnvironment, EnvironmentConfigurator: Environment assembly
    - ToolWrappers: pkg-config / configure wrappers
"""

from .profile import BuildProfile, SUPPORTED_CPUS
from .layout import TargetLayout, BuildConfig, find_target_root, read_build_config
from .environment import CrossEnvironment, EnvironmentConfigurator
from .wrappers import ToolWrappers

__all__ = [
    "BuildProfile",
    "SUPPORTED_CPUS",
    "TargetLayout",
    "BuildConfig",
    "find_target_root",
    "read_build_config",
    "CrossEnvironment",
    "EnvironmentConfigurator",
    "ToolWrappers",
]
