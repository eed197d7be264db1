"""
Configuration probes.

The probe set is fixed: compiler identity, platform identification, word
size, and availability of the declared system headers. Probes query the
toolchain they are given and nothing else; the caller decides whether that
is the host or the target toolchain. A failing probe is fatal because the
configuration headers cannot be written without its answer.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional

from qtbuildkit.configure.features import QtConfiguration
from qtbuildkit.core.exceptions import ProbeFailed
from qtbuildkit.core.fingerprint import Fingerprint
from qtbuildkit.core.filesystem import glob_files
from qtbuildkit.core.platform import PlatformInfo
from qtbuildkit.toolchain.base import TARGET, Toolchain, ToolchainIdentity

logger = logging.getLogger(__name__)


@dataclass
class ProbeInputs:
    """
    Everything configuration header generation depends on.

    Attributes:
        toolkit_version: Qt release being configured (e.g. '6.2.0')
        toolchain: Toolchain the probes run against
        configuration: Feature and define tables
        role: 'target' or 'host', part of the build root key
        cross_compiling: Whether host and target platforms differ
        source_root: Qt source checkout, needed for platformdefs and
            forwarding headers
    """

    toolkit_version: str
    toolchain: Toolchain
    configuration: QtConfiguration
    role: str = TARGET
    cross_compiling: bool = False
    source_root: Optional[Path] = None

    def resolve_source_path(self, path: Path) -> Path:
        path = Path(path)
        if path.is_absolute() or self.source_root is None:
            return path
        return self.source_root / path

    def fingerprint(self) -> str:
        """
        Fingerprint of the probe inputs.

        Includes the toolchain fingerprint fields and, for forwarding headers and an
        explicit platformdefs header, the content of the headers involved.
        """
        fp = (
            Fingerprint("config")
            .add("toolkit_version", self.toolkit_version)
            .add("role", self.role)
            .add("cross_compiling", self.cross_compiling)
            .add("toolchain", self.toolchain.fingerprint_fields())
            .add("configuration", self.configuration.as_dict())
            .add("source_root", str(self.source_root.resolve()) if self.source_root else None)
        )
        platformdefs = self.configuration.platformdefs_path
        if platformdefs is not None and self.resolve_source_path(platformdefs).is_file():
            fp.add_file("platformdefs", self.resolve_source_path(platformdefs))
        for spec in self.configuration.forwarding:
            directory = self.resolve_source_path(spec.path)
            fp.add_files(f"forwarding:{spec.module}", glob_files(directory, "h"))
        return fp.digest()


@dataclass
class ProbeResults:
    """
    Answers of the probe set.

    Attributes:
        compiler: Identity of the probed toolchain
        platform: OS and architecture the toolchain targets
        pointer_size: sizeof(void *) on the target, in bytes
        headers: Availability of each probed system header
    """

    compiler: ToolchainIdentity
    platform: PlatformInfo
    pointer_size: int
    headers: Dict[str, bool] = field(default_factory=dict)

    def as_dict(self) -> dict:
        return {
            "compiler": self.compiler.as_dict(),
            "platform": self.platform.platform_string(),
            "pointer_size": self.pointer_size,
            "headers": dict(self.headers),
        }


def _probe_compiler(inputs: ProbeInputs, results: dict) -> None:
    results["compiler"] = inputs.toolchain.identity()


def _probe_platform(inputs: ProbeInputs, results: dict) -> None:
    results["platform"] = results["compiler"].platform


def _probe_word_size(inputs: ProbeInputs, results: dict) -> None:
    macros = inputs.toolchain.predefined_macros()
    value = macros.get("__SIZEOF_POINTER__")
    if value is None:
        raise ValueError("compiler does not define __SIZEOF_POINTER__")
    pointer_size = int(value)
    if pointer_size not in (4, 8):
        raise ValueError(f"unsupported pointer size {pointer_size}")
    results["pointer_size"] = pointer_size


def _probe_headers(inputs: ProbeInputs, results: dict) -> None:
    available = {}
    for header in sorted(inputs.configuration.probe_headers):
        available[header] = inputs.toolchain.has_header(header)
        logger.debug(f"Header {header}: {'found' if available[header] else 'missing'}")
    results["headers"] = available


PROBES: List[tuple] = [
    ("compiler", _probe_compiler),
    ("platform", _probe_platform),
    ("word_size", _probe_word_size),
    ("headers", _probe_headers),
]


def run_probes(inputs: ProbeInputs) -> ProbeResults:
    """
    Run the fixed probe set against the toolchain in ``inputs``.

    Returns:
        ProbeResults

    Raises:
        ProbeFailed: If any probe raises
    """
    results: dict = {}
    for name, probe in PROBES:
        probe: Callable[[ProbeInputs, dict], None]
        try:
            probe(inputs, results)
        except ProbeFailed:
            raise
        except Exception as e:
            raise ProbeFailed(name, str(e)) from e

    probed = ProbeResults(**results)
    logger.info(
        f"Probed {inputs.role} toolchain {probed.compiler}: "
        f"{probed.platform}, {probed.pointer_size * 8}-bit"
    )
    return probed


__all__ = ["ProbeInputs", "ProbeResults", "run_probes", "PROBES"]
