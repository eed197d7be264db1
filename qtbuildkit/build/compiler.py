"""
Module compilation.

ModuleCompiler turns one module (its sources plus the sources generated for
it) into a static library with the *target* toolchain. Translation units are
compiled in parallel; the archive is recorded under ``module:<name>`` with a
fingerprint covering the toolchain, the configuration headers, every source,
the generated sources and the dependency artifacts.
"""

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import List, Optional, Sequence

from qtbuildkit.build.module import Module, ModuleArtifact
from qtbuildkit.codegen.stage import GeneratedSource
from qtbuildkit.configure.generator import ConfigurationHeaderSet
from qtbuildkit.core.build_root import BuildDirectoryCoordinator, Record, module_key
from qtbuildkit.core.exceptions import CompileError
from qtbuildkit.core.fingerprint import Fingerprint, short
from qtbuildkit.core.filesystem import glob_files
from qtbuildkit.core.stats import BuildStats
from qtbuildkit.toolchain.base import Toolchain

logger = logging.getLogger(__name__)

HEADER_EXTENSIONS = ("h", "hpp")
SOURCE_SUFFIXES = (".cpp", ".cc", ".cxx", ".c")


def _unique(paths) -> List[Path]:
    result: List[Path] = []
    for path in paths:
        if path not in result:
            result.append(path)
    return result


def _unique_last(paths) -> List[Path]:
    """Drop duplicates, keeping the last occurrence so a library stays after its users."""
    return list(reversed(_unique(reversed(list(paths)))))


def _public_headers(include_dirs: Sequence[Path]) -> List[Path]:
    headers: List[Path] = []
    for directory in include_dirs:
        if Path(directory).is_dir():
            for extension in HEADER_EXTENSIONS:
                headers.extend(glob_files(directory, extension))
    return headers


class ModuleCompiler:
    """
    Compiles modules into the build root.

    Attributes:
        coordinator: Build root coordinator
        toolchain: Target toolchain
        stats: Work counters
        jobs: Translation units compiled concurrently per module
        wait: Wait for a concurrent builder instead of failing with Busy
    """

    def __init__(
        self,
        coordinator: BuildDirectoryCoordinator,
        toolchain: Toolchain,
        stats: Optional[BuildStats] = None,
        jobs: Optional[int] = None,
        wait: bool = True,
    ):
        self.coordinator = coordinator
        self.toolchain = toolchain
        self.stats = stats or BuildStats()
        self.jobs = jobs or os.cpu_count() or 1
        self.wait = wait

    def fingerprint(
        self,
        module: Module,
        config_headers: Optional[ConfigurationHeaderSet],
        generated_sources: Sequence[GeneratedSource],
        dependency_artifacts: Sequence[ModuleArtifact],
    ) -> str:
        return (
            Fingerprint("module")
            .add("name", module.name)
            .add("toolchain", self.toolchain.fingerprint_fields())
            .add("config", config_headers.fingerprint if config_headers else None)
            .add_files("sources", module.sources)
            .add_files("headers", _public_headers(module.include_dirs))
            .add("generated", [g.as_dict() for g in generated_sources])
            .add("dependencies", [[a.module, a.fingerprint] for a in dependency_artifacts])
            .add("include_dirs", module.include_dirs)
            .add("defines", module.defines)
            .add("flags", module.flags)
            .digest()
        )

    def compile(
        self,
        module: Module,
        config_headers: Optional[ConfigurationHeaderSet],
        generated_sources: Sequence[GeneratedSource],
        dependency_artifacts: Sequence[ModuleArtifact],
    ) -> ModuleArtifact:
        """
        Return the compiled module, compiling it if needed.

        Args:
            module: Module declaration
            config_headers: Target configuration headers
            generated_sources: Sources produced for this module by host tools
            dependency_artifacts: Artifacts of the module's direct dependencies

        Raises:
            CompileError: For a missing source or the first failing translation
                unit (in source order)
            BuildCancelled: If the build is cancelled
            Busy: If another builder holds the module and waiting is disabled
        """
        for source in module.sources:
            if not Path(source).is_file():
                raise CompileError(source, "source file not found")

        key = module_key(module.name)
        fingerprint = self.fingerprint(
            module, config_headers, generated_sources, dependency_artifacts
        )

        record = self.coordinator.find(key, fingerprint)
        if record is not None:
            logger.debug(f"Module {module.name} is up to date")
            self.stats.hit("module")
            return self._artifact(module, record, dependency_artifacts, from_cache=True)

        with self.coordinator.reserve(key, wait=self.wait) as lease:
            record = self.coordinator.find(key, fingerprint)
            if record is not None:
                self.stats.hit("module")
                return self._artifact(module, record, dependency_artifacts, from_cache=True)

            # Generated headers only reach the include path
            units = [Path(s) for s in module.sources] + [
                g.path for g in generated_sources if g.path.suffix in SOURCE_SUFFIXES
            ]
            logger.info(
                f"Compiling module {module.name}: {len(units)} translation units "
                f"({short(fingerprint, 12)})"
            )
            include_dirs = self._include_dirs(
                module, config_headers, generated_sources, dependency_artifacts
            )
            objects = self._compile_units(module, units, include_dirs, lease.staging_dir)

            library = Path(f"lib{module.name}.a")
            self.toolchain.create_archive(objects, lease.staging_dir / library)
            record = self.coordinator.record(
                lease, fingerprint, [library], extra={"units": len(units)}
            )
            self.stats.increment("compilations")

        return self._artifact(module, record, dependency_artifacts, from_cache=False)

    def _include_dirs(
        self,
        module: Module,
        config_headers: Optional[ConfigurationHeaderSet],
        generated_sources: Sequence[GeneratedSource],
        dependency_artifacts: Sequence[ModuleArtifact],
    ) -> List[Path]:
        dirs: List[Path] = []
        if config_headers is not None:
            dirs.extend(config_headers.include_dirs)
        dirs.extend(g.path.parent for g in generated_sources)
        dirs.extend(Path(d) for d in module.include_dirs)
        for artifact in dependency_artifacts:
            dirs.extend(artifact.include_dirs)
        return _unique(dirs)

    def _compile_units(
        self, module: Module, units: List[Path], include_dirs: List[Path], staging: Path
    ) -> List[Path]:
        objects = [
            staging / "obj" / f"{index:04d}_{unit.stem}.o" for index, unit in enumerate(units)
        ]

        def compile_one(index: int) -> None:
            self.toolchain.compile_object(
                units[index], objects[index], include_dirs, module.defines, module.flags
            )
            self.stats.increment("translation_units")

        with ThreadPoolExecutor(max_workers=max(1, self.jobs)) as executor:
            futures = [executor.submit(compile_one, i) for i in range(len(units))]
            # Report the first failure in source order, not completion order
            for future in futures:
                error = future.exception()
                if error is not None:
                    for other in futures:
                        other.cancel()
                    raise error

        return objects

    @staticmethod
    def _artifact(
        module: Module,
        record: Record,
        dependency_artifacts: Sequence[ModuleArtifact],
        from_cache: bool,
    ) -> ModuleArtifact:
        library = record.artifacts[0]
        include_dirs = [Path(d) for d in module.include_dirs]
        link_libraries = [library]
        for artifact in dependency_artifacts:
            include_dirs.extend(artifact.include_dirs)
            link_libraries.extend(artifact.link_libraries)
        return ModuleArtifact(
            module=module.name,
            library=library,
            fingerprint=record.fingerprint,
            include_dirs=_unique(include_dirs),
            link_libraries=_unique_last(link_libraries),
            from_cache=from_cache,
        )


__all__ = ["ModuleCompiler"]
