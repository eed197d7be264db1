"""
Centralized exception hierarchy for qtbuildkit.

Errors fall into two groups: fatal ones that stop the whole build
(RootConflict, ProbeFailed, CyclicDependency, DeclarationError) and scoped
ones that only affect the failing module or host tool and whatever depends
on it (HostToolBuildError, CodeGenFailed, CompileError).
"""

from pathlib import Path
from typing import Sequence, Union


# ============================================================================
# Base Exceptions
# ============================================================================


class QtBuildKitError(Exception):
    """Base exception for all qtbuildkit errors."""

    pass


# ============================================================================
# Build Root Exceptions
# ============================================================================


class BuildRootError(QtBuildKitError):
    """Base exception for build root errors."""

    pass


class RootConflict(BuildRootError):
    """Raised when a build root has an incompatible layout or toolkit version."""

    def __init__(self, root: Path, reason: str):
        self.root = root
        self.reason = reason
        super().__init__(
            f"Incompatible build root {root}: {reason}. Use a fresh build root."
        )


class Busy(BuildRootError):
    """Raised when a key is already reserved by a concurrent builder."""

    def __init__(self, key: str, timeout: float = 0):
        self.key = key
        self.timeout = timeout
        if timeout:
            msg = f"Key '{key}' still reserved by another builder after {timeout}s"
        else:
            msg = f"Key '{key}' is reserved by another builder"
        super().__init__(msg)


class BuildCancelled(QtBuildKitError):
    """Raised inside a build step interrupted by cancellation."""

    pass


# ============================================================================
# Configuration Exceptions
# ============================================================================


class DeclarationError(QtBuildKitError):
    """Raised when module or host tool declarations are inconsistent."""

    pass


class CyclicDependency(DeclarationError):
    """Raised when the module dependency graph contains a cycle."""

    def __init__(self, involved_modules: Sequence[str]):
        self.involved_modules = list(involved_modules)
        super().__init__(
            "Cyclic module dependency: " + " -> ".join(self.involved_modules)
        )


class ProbeFailed(QtBuildKitError):
    """Raised when a configuration probe cannot produce a result."""

    def __init__(self, probe_name: str, detail: str):
        self.probe_name = probe_name
        self.detail = detail
        super().__init__(f"Configuration probe '{probe_name}' failed: {detail}")


# ============================================================================
# Scoped Build Failures
# ============================================================================


class StepFailure(QtBuildKitError):
    """Base exception for failures scoped to one build step."""

    @property
    def diagnostic(self) -> str:
        return str(self)


class CompileError(StepFailure):
    """Raised when a translation unit fails to compile."""

    def __init__(self, file: Union[str, Path], diagnostic: str):
        self.file = Path(file)
        self._diagnostic = diagnostic
        super().__init__(f"Compilation of {self.file} failed:\n{diagnostic}")

    @property
    def diagnostic(self) -> str:
        return self._diagnostic


class HostToolBuildError(StepFailure):
    """Raised when a host tool cannot be compiled or linked."""

    def __init__(self, tool: str, diagnostic: str):
        self.tool = tool
        self._diagnostic = diagnostic
        super().__init__(f"Host tool '{tool}' failed to build: {diagnostic}")

    @property
    def diagnostic(self) -> str:
        return self._diagnostic


class CodeGenFailed(StepFailure):
    """Raised when a host tool invocation exits unsuccessfully."""

    def __init__(
        self, tool: str, input_file: Union[str, Path], exit_code: int, stderr: str
    ):
        self.tool = tool
        self.input_file = Path(input_file)
        self.exit_code = exit_code
        self.stderr = stderr
        super().__init__(
            f"{tool} failed on {self.input_file} (exit code {exit_code}): "
            f"{stderr.strip()}"
        )
