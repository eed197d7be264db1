"""
Toolchain abstraction for qtbuildkit.

Provides the host/target toolchain interface consumed by the build core and
a GCC/Clang command-line implementation.
"""

from .base import (
    Toolchain,
    ToolchainIdentity,
    ToolchainPair,
    Defines,
    HOST,
    TARGET,
)
from .command import CommandToolchain, define_flags

__all__ = [
    "Toolchain",
    "ToolchainIdentity",
    "ToolchainPair",
    "Defines",
    "HOST",
    "TARGET",
    "CommandToolchain",
    "define_flags",
]
