"""
Module declarations and compiled module artifacts.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional


@dataclass
class CodeGenRequirement:
    """
    Host tool run a module needs before it can compile.

    Attributes:
        tool: Host tool name
        inputs: Files the tool is run on, one generated source each
        args: Argument template overriding the tool's default
    """

    tool: str
    inputs: List[Path] = field(default_factory=list)
    args: Optional[List[str]] = None


@dataclass
class Module:
    """
    A unit of the toolkit compiled into one static library.

    Attributes:
        name: Module name, unique within a build
        sources: Translation units
        dependencies: Names of modules this module links against
        include_dirs: Public include directories, also seen by dependents
        defines: Preprocessor defines (value None for a bare define)
        flags: Extra compiler flags
        codegen: Host tool runs producing additional sources
    """

    name: str
    sources: List[Path] = field(default_factory=list)
    dependencies: List[str] = field(default_factory=list)
    include_dirs: List[Path] = field(default_factory=list)
    defines: Dict[str, Optional[str]] = field(default_factory=dict)
    flags: List[str] = field(default_factory=list)
    codegen: List[CodeGenRequirement] = field(default_factory=list)

    @property
    def tools(self) -> List[str]:
        """Host tools the module needs, in declaration order."""
        seen: List[str] = []
        for requirement in self.codegen:
            if requirement.tool not in seen:
                seen.append(requirement.tool)
        return seen

    def requirements_for(self, tool: str) -> List[CodeGenRequirement]:
        return [r for r in self.codegen if r.tool == tool]


@dataclass
class ModuleArtifact:
    """
    Compiled module.

    Attributes:
        module: Module name
        library: Static library inside the build root
        fingerprint: Fingerprint of the compilation inputs
        include_dirs: Public include directories of the module and its
            transitive dependencies
        link_libraries: Link line: the module's own library followed by the
            libraries of its transitive dependencies, each library before
            every library it depends on
        from_cache: True if no compilation was needed
    """

    module: str
    library: Path
    fingerprint: str
    include_dirs: List[Path] = field(default_factory=list)
    link_libraries: List[Path] = field(default_factory=list)
    from_cache: bool = False


__all__ = ["CodeGenRequirement", "Module", "ModuleArtifact"]
