"""
GCC/Clang-style toolchain driven through external commands.

Example:
    >>> from qtbuildkit.toolchain.command import CommandToolchain
    >>> host = CommandToolchain(Path("/usr/bin/g++"))
    >>> target = CommandToolchain(Path("/opt/cross/bin/aarch64-linux-gnu-g++"),
    ...                           ar=Path("/opt/cross/bin/aarch64-linux-gnu-ar"))
    >>> print(host.identity(), target.identity())
"""

import logging
import re
import threading
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from qtbuildkit.core.exceptions import CompileError
from qtbuildkit.core.process import ProcessResult, ProcessRunner
from qtbuildkit.toolchain.base import Defines, Toolchain, ToolchainIdentity

logger = logging.getLogger(__name__)


def define_flags(defines: Optional[Defines]) -> List[str]:
    """Render a define table as ``-DNAME`` / ``-DNAME=VALUE`` flags, sorted by name."""
    flags = []
    for name, value in sorted((defines or {}).items()):
        flags.append(f"-D{name}" if value is None else f"-D{name}={value}")
    return flags


class CommandToolchain(Toolchain):
    """
    Toolchain invoking a C++ compiler driver and an archiver.

    Attributes:
        cxx: C++ compiler driver (g++, clang++, or a cross-prefixed variant)
        ar: Archiver used for static libraries
        cxx_standard: Language standard passed as ``-std=``
        extra_flags: Flags added to every compile and link
        runner: Process runner shared with the build (for cancellation)
    """

    def __init__(
        self,
        cxx: Path,
        ar: Optional[Path] = None,
        cxx_standard: str = "c++17",
        extra_flags: Sequence[str] = (),
        runner: Optional[ProcessRunner] = None,
    ):
        self.cxx = Path(cxx)
        self.ar = Path(ar) if ar else Path("ar")
        self.cxx_standard = cxx_standard
        self.extra_flags = list(extra_flags)
        self.runner = runner or ProcessRunner()
        self._identity: Optional[ToolchainIdentity] = None
        self._macros: Optional[Dict[str, str]] = None
        self._lock = threading.Lock()

    def identity(self) -> ToolchainIdentity:
        """
        Detect compiler family, version and target triple.

        Runs ``--version`` and ``-dumpmachine`` once and caches the result.

        Raises:
            RuntimeError: If the compiler cannot report its version or target
        """
        with self._lock:
            if self._identity is None:
                self._identity = self._detect_identity()
            return self._identity

    def fingerprint_fields(self) -> dict:
        fields = self.identity().as_dict()
        fields.update(
            cxx=str(self.cxx),
            ar=str(self.ar),
            cxx_standard=self.cxx_standard,
            extra_flags=list(self.extra_flags),
        )
        return fields

    def _detect_identity(self) -> ToolchainIdentity:
        result = self.runner.run([self.cxx, "--version"])
        if not result.ok:
            raise RuntimeError(
                f"{self.cxx} --version exited with code {result.returncode}: "
                f"{result.stderr.strip()}"
            )
        output = result.stdout + result.stderr
        name = "clang" if "clang" in output.lower() else "gcc"

        match = re.search(r"\b(\d+\.\d+\.\d+(?:\.\d+)?)\b", output) or re.search(
            r"\b(\d+\.\d+)\b", output
        )
        if not match:
            raise RuntimeError(f"Could not parse compiler version from: {output[:200]}")
        version = match.group(1)

        result = self.runner.run([self.cxx, "-dumpmachine"])
        triple = result.stdout.strip()
        if not result.ok or not triple:
            raise RuntimeError(f"{self.cxx} -dumpmachine did not report a target triple")

        identity = ToolchainIdentity(name=name, version=version, triple=triple)
        logger.debug(f"Detected toolchain {identity} at {self.cxx}")
        return identity

    def _run_step(self, cmd: Sequence, file: Path) -> ProcessResult:
        try:
            result = self.runner.run(cmd)
        except OSError as e:
            raise CompileError(file, f"cannot run {cmd[0]}: {e}") from e
        if not result.ok:
            raise CompileError(file, result.stderr or result.stdout)
        return result

    def compile_object(
        self,
        source: Path,
        output: Path,
        include_dirs: Sequence[Path] = (),
        defines: Optional[Defines] = None,
        flags: Sequence[str] = (),
    ) -> None:
        output.parent.mkdir(parents=True, exist_ok=True)
        cmd = [str(self.cxx), f"-std={self.cxx_standard}", *self.extra_flags, *flags]
        cmd.extend(f"-I{inc}" for inc in include_dirs)
        cmd.extend(define_flags(defines))
        cmd.extend(["-c", str(source), "-o", str(output)])

        result = self._run_step(cmd, source)
        if result.stderr:
            logger.debug(f"Compiler output for {source.name}:\n{result.stderr}")

    def create_archive(self, objects: Sequence[Path], output: Path) -> None:
        output.parent.mkdir(parents=True, exist_ok=True)
        self._run_step([self.ar, "rcs", output, *objects], output)

    def link_executable(
        self,
        objects: Sequence[Path],
        output: Path,
        libraries: Sequence[Path] = (),
        flags: Sequence[str] = (),
    ) -> None:
        output.parent.mkdir(parents=True, exist_ok=True)
        cmd = [str(self.cxx), *self.extra_flags, *map(str, objects), *map(str, libraries)]
        cmd.extend(["-o", str(output), *flags])
        self._run_step(cmd, output)

    def predefined_macros(self) -> Dict[str, str]:
        """
        Return the compiler's predefined macros.

        Raises:
            RuntimeError: If the preprocessor fails
        """
        with self._lock:
            if self._macros is not None:
                return self._macros

        result = self.runner.run(
            [self.cxx, f"-std={self.cxx_standard}", *self.extra_flags, "-dM", "-E", "-x", "c++", "-"],
            input="",
        )
        if not result.ok:
            raise RuntimeError(
                f"Preprocessor exited with code {result.returncode}: {result.stderr.strip()}"
            )

        macros = {}
        for line in result.stdout.splitlines():
            parts = line.split(None, 2)
            if len(parts) >= 2 and parts[0] == "#define":
                macros[parts[1]] = parts[2] if len(parts) == 3 else ""

        with self._lock:
            self._macros = macros
        return macros

    def has_header(self, header: str, include_dirs: Sequence[Path] = ()) -> bool:
        cmd = [str(self.cxx), f"-std={self.cxx_standard}", *self.extra_flags, "-E", "-x", "c++"]
        cmd.extend(f"-I{inc}" for inc in include_dirs)
        cmd.extend(["-o", "-", "-"])
        result = self.runner.run(cmd, input=f"#include <{header}>\n")
        return result.ok


__all__ = ["CommandToolchain", "define_flags"]
