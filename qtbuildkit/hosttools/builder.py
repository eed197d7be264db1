"""
Host tool bootstrapping.

Host tools (moc, rcc, uic, or any other code generator) are compiled from
source with the *host* toolchain, because they run on the machine doing the
build even when the toolkit itself is cross-compiled. A tool is built once
per build root and fingerprint; every later build unit finds the recorded
binary and reuses it.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from qtbuildkit.configure.generator import ConfigurationHeaderSet
from qtbuildkit.core.build_root import BuildDirectoryCoordinator, Record, tool_key
from qtbuildkit.core.exceptions import CompileError, HostToolBuildError
from qtbuildkit.core.filesystem import make_executable
from qtbuildkit.core.fingerprint import Fingerprint, short
from qtbuildkit.core.stats import BuildStats
from qtbuildkit.toolchain.base import ToolchainPair

logger = logging.getLogger(__name__)

DEFAULT_ARGS = ["-o", "{output}", "{input}"]


@dataclass
class HostToolSpec:
    """
    Recipe for building and invoking a host tool.

    Attributes:
        name: Tool name, unique within a build
        sources: Translation units of the tool
        version: Recipe version; bump to force a rebuild
        include_dirs: Extra include directories
        defines: Preprocessor defines (value None for a bare define)
        flags: Extra compiler flags
        output_pattern: Name of the generated file, ``{stem}`` and ``{name}``
            are replaced by the input file stem and name
        args: Invocation arguments, ``{input}`` and ``{output}`` are replaced
            by the input and output paths
    """

    name: str
    sources: List[Path]
    version: str = "1"
    include_dirs: List[Path] = field(default_factory=list)
    defines: Dict[str, Optional[str]] = field(default_factory=dict)
    flags: List[str] = field(default_factory=list)
    output_pattern: str = "{stem}.cpp"
    args: List[str] = field(default_factory=lambda: list(DEFAULT_ARGS))

    def output_name(self, input_file: Path) -> str:
        input_file = Path(input_file)
        return self.output_pattern.replace("{stem}", input_file.stem).replace(
            "{name}", input_file.name
        )


@dataclass
class HostTool:
    """
    A built host tool.

    Attributes:
        spec: Recipe the tool was built from
        executable: Absolute path of the binary inside the build root
        fingerprint: Fingerprint of the tool build inputs
        from_cache: True if the binary was found already built
    """

    spec: HostToolSpec
    executable: Path
    fingerprint: str
    from_cache: bool = False

    @property
    def name(self) -> str:
        return self.spec.name


class HostToolBuilder:
    """
    Builds host tools into the build root.

    Attributes:
        coordinator: Build root coordinator
        toolchains: Host/target toolchains; only ``host`` is used
        stats: Work counters
        wait: Wait for a concurrent builder instead of failing with Busy
    """

    def __init__(
        self,
        coordinator: BuildDirectoryCoordinator,
        toolchains: ToolchainPair,
        stats: Optional[BuildStats] = None,
        wait: bool = True,
    ):
        self.coordinator = coordinator
        self.toolchains = toolchains
        self.stats = stats or BuildStats()
        self.wait = wait

    def fingerprint(
        self, spec: HostToolSpec, config_headers: Optional[ConfigurationHeaderSet] = None
    ) -> str:
        return (
            Fingerprint("tool")
            .add("name", spec.name)
            .add("version", spec.version)
            .add("toolchain", self.toolchains.host.fingerprint_fields())
            .add_files("sources", spec.sources)
            .add("include_dirs", spec.include_dirs)
            .add("defines", spec.defines)
            .add("flags", spec.flags)
            .add("config", config_headers.fingerprint if config_headers else None)
            .digest()
        )

    def ensure_built(
        self, tool_spec: HostToolSpec, config_headers: Optional[ConfigurationHeaderSet] = None
    ) -> HostTool:
        """
        Return the built tool, building it first if needed.

        Args:
            tool_spec: Tool recipe
            config_headers: Host configuration headers, when the tool
                includes toolkit headers

        Raises:
            HostToolBuildError: If a source is missing or the host compiler
                or linker fails
            Busy: If another builder holds the tool and waiting is disabled
        """
        missing = [str(s) for s in tool_spec.sources if not Path(s).is_file()]
        if missing:
            raise HostToolBuildError(tool_spec.name, f"missing sources: {', '.join(missing)}")

        key = tool_key(tool_spec.name)
        fingerprint = self.fingerprint(tool_spec, config_headers)

        record = self.coordinator.find(key, fingerprint)
        if record is not None:
            logger.debug(f"Host tool {tool_spec.name} is up to date")
            self.stats.hit("tool")
            return self._from_record(tool_spec, record, from_cache=True)

        with self.coordinator.reserve(key, wait=self.wait) as lease:
            record = self.coordinator.find(key, fingerprint)
            if record is not None:
                self.stats.hit("tool")
                return self._from_record(tool_spec, record, from_cache=True)

            logger.info(f"Building host tool {tool_spec.name} ({short(fingerprint, 12)})")
            executable = Path("bin") / self._executable_name(tool_spec.name)
            try:
                self._build(tool_spec, config_headers, lease.staging_dir, executable)
            except CompileError as e:
                raise HostToolBuildError(tool_spec.name, e.diagnostic) from e

            record = self.coordinator.record(lease, fingerprint, [executable])
            self.stats.increment("tool_builds")

        return self._from_record(tool_spec, record, from_cache=False)

    def _build(
        self,
        spec: HostToolSpec,
        config_headers: Optional[ConfigurationHeaderSet],
        staging: Path,
        executable: Path,
    ) -> None:
        host = self.toolchains.host
        include_dirs = list(config_headers.include_dirs) if config_headers else []
        include_dirs.extend(spec.include_dirs)

        objects = []
        for index, source in enumerate(spec.sources):
            source = Path(source)
            obj = staging / "obj" / f"{index:03d}_{source.stem}.o"
            host.compile_object(source, obj, include_dirs, spec.defines, spec.flags)
            self.stats.increment("translation_units")
            objects.append(obj)

        output = staging / executable
        host.link_executable(objects, output)
        if not output.is_file():
            raise CompileError(output, "linker did not produce the executable")
        make_executable(output)

    def _executable_name(self, name: str) -> str:
        if self.toolchains.host.identity().platform.os == "windows":
            return f"{name}.exe"
        return name

    @staticmethod
    def _from_record(spec: HostToolSpec, record: Record, from_cache: bool) -> HostTool:
        return HostTool(
            spec=spec,
            executable=record.artifacts[0],
            fingerprint=record.fingerprint,
            from_cache=from_cache,
        )


__all__ = ["HostToolSpec", "HostTool", "HostToolBuilder", "DEFAULT_ARGS"]
