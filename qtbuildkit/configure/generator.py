"""
Configuration header generation.

ConfigHeaderGenerator runs the configuration probes and writes the Qt
configuration headers into the build root, once per toolchain role and
input fingerprint. Concurrent generators with identical inputs serialize on
the ``config:<role>`` key; the second one finds the first one's record and
does no work.

Example:
    >>> generator = ConfigHeaderGenerator(coordinator)
    >>> headers = generator.generate(ProbeInputs("6.2.0", toolchain, default_configuration()))
    >>> print(headers.include_dirs)
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from qtbuildkit.configure.headers import (
    render_config_headers,
    write_forwarding_headers,
    write_platformdefs,
)
from qtbuildkit.configure.probes import ProbeInputs, run_probes
from qtbuildkit.core.build_root import BuildDirectoryCoordinator, Record, config_key
from qtbuildkit.core.exceptions import ProbeFailed
from qtbuildkit.core.filesystem import atomic_write
from qtbuildkit.core.fingerprint import short
from qtbuildkit.core.stats import BuildStats

logger = logging.getLogger(__name__)

INCLUDE_DIR = "include"


@dataclass
class ConfigurationHeaderSet:
    """
    Generated configuration headers of one toolchain role.

    Attributes:
        role: Toolchain role ('target' or 'host')
        fingerprint: Fingerprint of the probe inputs
        directory: Build root entry holding the headers
        headers: Logical header name -> content
        include_dirs: Directories to add to the include path, in order
        probes: Probe answers recorded at generation time
    """

    role: str
    fingerprint: str
    directory: Path
    headers: Dict[str, str] = field(default_factory=dict)
    include_dirs: List[Path] = field(default_factory=list)
    probes: dict = field(default_factory=dict)

    @classmethod
    def from_record(cls, role: str, record: Record) -> "ConfigurationHeaderSet":
        include_root = record.directory / INCLUDE_DIR
        headers = {}
        for artifact in record.artifacts:
            logical = artifact.relative_to(include_root).as_posix()
            headers[logical] = artifact.read_text(encoding="utf-8")
        include_dirs = [record.directory / d for d in record.extra.get("include_dirs", [])]
        return cls(
            role=role,
            fingerprint=record.fingerprint,
            directory=record.directory,
            headers=headers,
            include_dirs=include_dirs,
            probes=record.extra.get("probes", {}),
        )

    def header_path(self, logical: str) -> Path:
        return self.directory / INCLUDE_DIR / logical


class ConfigHeaderGenerator:
    """
    Produces configuration header sets through the build root.

    Attributes:
        coordinator: Build root coordinator
        stats: Work counters
        wait: Wait for a concurrent generator instead of failing with Busy
    """

    def __init__(
        self,
        coordinator: BuildDirectoryCoordinator,
        stats: Optional[BuildStats] = None,
        wait: bool = True,
    ):
        self.coordinator = coordinator
        self.stats = stats or BuildStats()
        self.wait = wait

    def generate(self, probe_inputs: ProbeInputs) -> ConfigurationHeaderSet:
        """
        Return the configuration headers for the given inputs.

        Reuses the recorded header set when its fingerprint matches;
        otherwise probes the toolchain and generates a new set.

        Raises:
            ProbeFailed: If a probe fails, or the platformdefs header or a
                forwarding header directory is missing
            Busy: If another builder holds the key and waiting is disabled
        """
        key = config_key(probe_inputs.role)
        fingerprint = probe_inputs.fingerprint()

        record = self.coordinator.find(key, fingerprint)
        if record is not None:
            logger.debug(f"Configuration headers for {probe_inputs.role} are up to date")
            self.stats.hit("config")
            return ConfigurationHeaderSet.from_record(probe_inputs.role, record)

        with self.coordinator.reserve(key, wait=self.wait) as lease:
            record = self.coordinator.find(key, fingerprint)
            if record is not None:
                self.stats.hit("config")
                return ConfigurationHeaderSet.from_record(probe_inputs.role, record)

            logger.info(
                f"Generating {probe_inputs.role} configuration headers "
                f"({short(fingerprint, 12)})"
            )
            results = run_probes(probe_inputs)

            include_dir = lease.staging_dir / INCLUDE_DIR
            written = []
            for logical, content in render_config_headers(probe_inputs, results).items():
                atomic_write(include_dir / logical, content)
                written.append(logical)

            try:
                platformdefs = write_platformdefs(include_dir, probe_inputs, results)
            except (FileNotFoundError, ValueError) as e:
                raise ProbeFailed("platformdefs", str(e)) from e
            if platformdefs:
                written.append(platformdefs)

            include_dirs = [INCLUDE_DIR, f"{INCLUDE_DIR}/QtCore"]
            for spec in probe_inputs.configuration.forwarding:
                source_dir = probe_inputs.resolve_source_path(spec.path)
                try:
                    written.extend(write_forwarding_headers(include_dir, spec.module, source_dir))
                except FileNotFoundError as e:
                    raise ProbeFailed("forwarding", str(e)) from e
                module_dir = f"{INCLUDE_DIR}/{spec.module}"
                if module_dir not in include_dirs:
                    include_dirs.append(module_dir)

            record = self.coordinator.record(
                lease,
                fingerprint,
                [Path(INCLUDE_DIR) / logical for logical in sorted(set(written))],
                extra={"include_dirs": include_dirs, "probes": results.as_dict()},
            )
            self.stats.increment("config_generations")

        return ConfigurationHeaderSet.from_record(probe_inputs.role, record)


__all__ = ["ConfigHeaderGenerator", "ConfigurationHeaderSet"]
