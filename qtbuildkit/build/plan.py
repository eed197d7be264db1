"""
Build plan resolution.

Orders modules so each one comes after its dependencies, and expands the
order into build steps: a ``host_tool`` step right before the first module
needing the tool, one ``codegen`` step per (module, tool) and one
``compile`` step per module. The order is deterministic: among modules
whose dependencies are satisfied, the one declared first goes first.

Example:
    >>> plan = BuildPlanResolver().resolve(modules, host_tools)
    >>> for step in plan:
    ...     print(step.id, step.depends_on)
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

from qtbuildkit.build.module import Module
from qtbuildkit.core.exceptions import CyclicDependency, DeclarationError
from qtbuildkit.hosttools.builder import HostToolSpec

logger = logging.getLogger(__name__)

HOST_TOOL = "host_tool"
CODEGEN = "codegen"
COMPILE = "compile"


@dataclass(frozen=True)
class BuildStep:
    """
    One unit of scheduled work.

    Attributes:
        kind: 'host_tool', 'codegen' or 'compile'
        id: Unique step id ('tool:moc', 'codegen:gui:moc', 'module:gui')
        module: Module the step belongs to (None for host tool steps)
        tool: Host tool involved (None for compile steps)
        depends_on: Ids of the steps that must succeed first
    """

    kind: str
    id: str
    module: Optional[str] = None
    tool: Optional[str] = None
    depends_on: Tuple[str, ...] = ()


def host_tool_step_id(tool: str) -> str:
    return f"tool:{tool}"


def codegen_step_id(module: str, tool: str) -> str:
    return f"codegen:{module}:{tool}"


def compile_step_id(module: str) -> str:
    return f"module:{module}"


@dataclass
class BuildPlan:
    """
    Ordered build steps.

    Attributes:
        steps: Steps in execution order
        module_order: Module names in dependency order
        modules: Module declarations by name
        host_tools: Host tool recipes by name
    """

    steps: List[BuildStep] = field(default_factory=list)
    module_order: List[str] = field(default_factory=list)
    modules: Dict[str, Module] = field(default_factory=dict)
    host_tools: Dict[str, HostToolSpec] = field(default_factory=dict)

    def __iter__(self) -> Iterator[BuildStep]:
        return iter(self.steps)

    def __len__(self) -> int:
        return len(self.steps)

    def step(self, step_id: str) -> BuildStep:
        for step in self.steps:
            if step.id == step_id:
                return step
        raise KeyError(step_id)

    def step_ids(self) -> List[str]:
        return [step.id for step in self.steps]

    def dependents(self, step_id: str) -> List[str]:
        """Ids of every step that transitively depends on ``step_id``."""
        found: List[str] = []
        frontier = [step_id]
        while frontier:
            current = frontier.pop(0)
            for step in self.steps:
                if current in step.depends_on and step.id not in found:
                    found.append(step.id)
                    frontier.append(step.id)
        return [s.id for s in self.steps if s.id in found]


class BuildPlanResolver:
    """Validates module and host tool declarations and orders them into a plan."""

    def resolve(
        self, modules: Sequence[Module], host_tools: Sequence[HostToolSpec] = ()
    ) -> BuildPlan:
        """
        Resolve declarations into an ordered build plan.

        Args:
            modules: Module declarations, in declaration order
            host_tools: Host tool recipes

        Returns:
            BuildPlan

        Raises:
            DeclarationError: On duplicate names, unknown dependencies or
                unknown host tools
            CyclicDependency: If module dependencies form a cycle
        """
        by_name = self._index_modules(modules)
        tools = self._index_tools(host_tools)

        for module in modules:
            for dependency in module.dependencies:
                if dependency not in by_name:
                    raise DeclarationError(
                        f"Module '{module.name}' depends on unknown module '{dependency}'"
                    )
            for tool in module.tools:
                if tool not in tools:
                    raise DeclarationError(
                        f"Module '{module.name}' uses unknown host tool '{tool}'"
                    )

        order = self._topological_order(modules, by_name)

        steps: List[BuildStep] = []
        built_tools: List[str] = []
        for name in order:
            module = by_name[name]
            codegen_ids = []
            for tool in module.tools:
                if tool not in built_tools:
                    steps.append(BuildStep(HOST_TOOL, host_tool_step_id(tool), tool=tool))
                    built_tools.append(tool)
                step_id = codegen_step_id(name, tool)
                steps.append(
                    BuildStep(
                        CODEGEN,
                        step_id,
                        module=name,
                        tool=tool,
                        depends_on=(host_tool_step_id(tool),),
                    )
                )
                codegen_ids.append(step_id)

            depends_on = tuple(codegen_ids) + tuple(
                compile_step_id(d) for d in _unique(module.dependencies)
            )
            steps.append(BuildStep(COMPILE, compile_step_id(name), module=name, depends_on=depends_on))

        unused = [name for name in tools if name not in built_tools]
        if unused:
            logger.debug(f"Host tools not needed by any module: {', '.join(unused)}")

        logger.debug(f"Resolved build plan: {len(order)} modules, {len(steps)} steps")
        return BuildPlan(steps=steps, module_order=order, modules=by_name, host_tools=tools)

    @staticmethod
    def _index_modules(modules: Sequence[Module]) -> Dict[str, Module]:
        by_name: Dict[str, Module] = {}
        for module in modules:
            if not module.name:
                raise DeclarationError("Module declared without a name")
            if module.name in by_name:
                raise DeclarationError(f"Duplicate module name: {module.name}")
            by_name[module.name] = module
        return by_name

    @staticmethod
    def _index_tools(host_tools: Sequence[HostToolSpec]) -> Dict[str, HostToolSpec]:
        tools: Dict[str, HostToolSpec] = {}
        for spec in host_tools:
            if spec.name in tools:
                raise DeclarationError(f"Duplicate host tool name: {spec.name}")
            tools[spec.name] = spec
        return tools

    @staticmethod
    def _topological_order(
        modules: Sequence[Module], by_name: Dict[str, Module]
    ) -> List[str]:
        placed: List[str] = []
        remaining = [m.name for m in modules]

        while remaining:
            ready = next(
                (
                    name
                    for name in remaining
                    if all(d in placed for d in by_name[name].dependencies)
                ),
                None,
            )
            if ready is None:
                raise CyclicDependency(_find_cycle(remaining, by_name))
            placed.append(ready)
            remaining.remove(ready)

        return placed


def _find_cycle(remaining: List[str], by_name: Dict[str, Module]) -> List[str]:
    """
    Return one dependency cycle among the unplaced modules.

    Every unplaced module has an unplaced dependency, so following the first
    such dependency from any of them must revisit a module.
    """
    path: List[str] = []
    current = remaining[0]
    while current not in path:
        path.append(current)
        current = next(d for d in by_name[current].dependencies if d in remaining)
    cycle = path[path.index(current):]
    return cycle + [current]


def _unique(names: Sequence[str]) -> List[str]:
    result: List[str] = []
    for name in names:
        if name not in result:
            result.append(name)
    return result


__all__ = [
    "BuildPlan",
    "BuildPlanResolver",
    "BuildStep",
    "HOST_TOOL",
    "CODEGEN",
    "COMPILE",
    "host_tool_step_id",
    "codegen_step_id",
    "compile_step_id",
]
