"""Declaration module for qtbuildkit.

This module provides YAML parsing and validation for qtbuild.yaml.
"""

from qtbuildkit.config.parser import (
    BuildDeclaration,
    BuildOptions,
    ConfigError,
    parse_declaration,
)

__all__ = [
    "BuildDeclaration",
    "BuildOptions",
    "ConfigError",
    "parse_declaration",
]
