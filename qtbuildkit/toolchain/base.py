"""
Toolchain abstraction.

The build core never locates or selects compilers itself. It is handed a
ToolchainPair: a *host* toolchain producing binaries that run on the machine
doing the build (host tools) and a *target* toolchain producing the toolkit
libraries. For native builds both are the same toolchain.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Sequence

from qtbuildkit.core.platform import PlatformInfo, parse_triple

Defines = Dict[str, Optional[str]]

HOST = "host"
TARGET = "target"


@dataclass(frozen=True)
class ToolchainIdentity:
    """
    Identity of a toolchain, part of every fingerprint it contributes to.

    Attributes:
        name: Compiler family ('gcc', 'clang', ...)
        version: Compiler version (e.g., '13.2.0')
        triple: Target triple the toolchain produces code for
    """

    name: str
    version: str
    triple: str

    @property
    def platform(self) -> PlatformInfo:
        return parse_triple(self.triple)

    def as_dict(self) -> dict:
        return {"name": self.name, "version": self.version, "triple": self.triple}

    def __str__(self) -> str:
        return f"{self.name}-{self.version} ({self.triple})"


class Toolchain(ABC):
    """
    Abstract compiler/archiver/linker for one platform.

    Implementations raise CompileError for failing compile, archive and link
    steps, with the tool's diagnostic output.
    """

    @abstractmethod
    def identity(self) -> ToolchainIdentity:
        """Return the toolchain identity."""
        pass

    def fingerprint_fields(self) -> dict:
        """
        Return everything about the toolchain that affects its output.

        Every config, host tool and module fingerprint includes these fields.
        Implementations add the compiler path and any flags applied to every
        invocation on top of the identity.
        """
        return self.identity().as_dict()

    @abstractmethod
    def compile_object(
        self,
        source: Path,
        output: Path,
        include_dirs: Sequence[Path] = (),
        defines: Optional[Defines] = None,
        flags: Sequence[str] = (),
    ) -> None:
        """
        Compile one translation unit into an object file.

        Raises:
            CompileError: If the compiler reports an error
        """
        pass

    @abstractmethod
    def create_archive(self, objects: Sequence[Path], output: Path) -> None:
        """
        Bundle object files into a static library.

        Raises:
            CompileError: If the archiver fails
        """
        pass

    @abstractmethod
    def link_executable(
        self,
        objects: Sequence[Path],
        output: Path,
        libraries: Sequence[Path] = (),
        flags: Sequence[str] = (),
    ) -> None:
        """
        Link object files and static libraries into an executable.

        Raises:
            CompileError: If the linker fails
        """
        pass

    @abstractmethod
    def predefined_macros(self) -> Dict[str, str]:
        """Return the macros the compiler predefines (``-dM -E``)."""
        pass

    @abstractmethod
    def has_header(self, header: str, include_dirs: Sequence[Path] = ()) -> bool:
        """Return True if ``#include <header>`` preprocesses successfully."""
        pass


@dataclass
class ToolchainPair:
    """
    Host and target toolchains of a build.

    Every step that runs an external compiler picks one of the two
    explicitly: host tools use ``host``, toolkit modules and configuration
    probes for the toolkit use ``target``.

    Attributes:
        host: Toolchain producing binaries for the build machine
        target: Toolchain producing binaries for the deployment platform
    """

    host: Toolchain
    target: Toolchain

    @classmethod
    def native(cls, toolchain: Toolchain) -> "ToolchainPair":
        """Pair for a non-cross build: one toolchain plays both roles."""
        return cls(host=toolchain, target=toolchain)

    @property
    def is_cross(self) -> bool:
        """True when host and target produce code for different platforms."""
        if self.host is self.target:
            return False
        return self.host.identity().platform != self.target.identity().platform

    def for_role(self, role: str) -> Toolchain:
        """Return the toolchain for 'host' or 'target'."""
        if role == HOST:
            return self.host
        if role == TARGET:
            return self.target
        raise ValueError(f"Unknown toolchain role: {role!r} (expected 'host' or 'target')")


__all__ = [
    "Toolchain",
    "ToolchainIdentity",
    "ToolchainPair",
    "Defines",
    "HOST",
    "TARGET",
]
