"""
Core functionality for qtbuildkit.

This package contains the foundational modules that other components depend on:
the build root coordinator, locking, fingerprints, process execution and the
exception hierarchy.
"""

from .build_root import (
    BuildRoot,
    BuildDirectoryCoordinator,
    Record,
    Lease,
    config_key,
    tool_key,
    codegen_key,
    module_key,
)

from .fingerprint import Fingerprint

from .locking import (
    LockManager,
    try_lock,
    LockTimeout,
)

from .platform import (
    PlatformInfo,
    detect_platform,
    parse_triple,
)

from .process import ProcessRunner, ProcessResult

from .exceptions import (
    QtBuildKitError,
    BuildRootError,
    RootConflict,
    Busy,
    BuildCancelled,
    DeclarationError,
    CyclicDependency,
    ProbeFailed,
    StepFailure,
    CompileError,
    HostToolBuildError,
    CodeGenFailed,
)

__all__ = [
    "BuildRoot",
    "BuildDirectoryCoordinator",
    "Record",
    "Lease",
    "config_key",
    "tool_key",
    "codegen_key",
    "module_key",
    "Fingerprint",
    "LockManager",
    "try_lock",
    "LockTimeout",
    "PlatformInfo",
    "detect_platform",
    "parse_triple",
    "ProcessRunner",
    "ProcessResult",
    "QtBuildKitError",
    "BuildRootError",
    "RootConflict",
    "Busy",
    "BuildCancelled",
    "DeclarationError",
    "CyclicDependency",
    "ProbeFailed",
    "StepFailure",
    "CompileError",
    "HostToolBuildError",
    "CodeGenFailed",
]
