"""
Build driver: wires configuration, host tools, code generation and module
compilation into one build.

Example:
    >>> runner = ProcessRunner()
    >>> toolchain = CommandToolchain(Path("/usr/bin/g++"), runner=runner)
    >>> driver = BuildDriver(Path("build/qt"), "6.2.0", ToolchainPair.native(toolchain),
    ...                      runner=runner)
    >>> report = driver.build(modules, host_tools)
    >>> print(report.summary())
"""

import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Dict, List, Optional, Sequence

from qtbuildkit.build.compiler import ModuleCompiler
from qtbuildkit.build.module import Module, ModuleArtifact
from qtbuildkit.build.plan import (
    CODEGEN,
    COMPILE,
    HOST_TOOL,
    BuildPlan,
    BuildPlanResolver,
    BuildStep,
    codegen_step_id,
    compile_step_id,
    host_tool_step_id,
)
from qtbuildkit.build.scheduler import (
    BLOCKED,
    FAILED,
    SUCCESS,
    BuildScheduler,
    StepResult,
)
from qtbuildkit.codegen.stage import CodeGenStage, GeneratedSource
from qtbuildkit.configure.features import QtConfiguration, default_configuration
from qtbuildkit.configure.generator import ConfigHeaderGenerator
from qtbuildkit.configure.probes import ProbeInputs
from qtbuildkit.core.build_root import BuildDirectoryCoordinator
from qtbuildkit.core.platform import detect_platform
from qtbuildkit.core.process import ProcessRunner
from qtbuildkit.core.stats import BuildStats
from qtbuildkit.hosttools.builder import HostTool, HostToolBuilder, HostToolSpec
from qtbuildkit.toolchain.base import HOST, TARGET, ToolchainPair

if TYPE_CHECKING:
    from qtbuildkit.config.parser import BuildDeclaration

logger = logging.getLogger(__name__)


@dataclass
class Outcome:
    """
    Result of building one module or host tool.

    Attributes:
        name: Module or tool name
        status: 'success', 'failed', 'blocked' or 'cancelled'
        error: Failure raised by the module's own steps
        blocked_by: Step id of the failure that kept this one from building
        artifact: ModuleArtifact or HostTool on success
    """

    name: str
    status: str
    error: Optional[BaseException] = None
    blocked_by: Optional[str] = None
    artifact: object = None

    @property
    def diagnostic(self) -> str:
        if self.error is None:
            return ""
        return getattr(self.error, "diagnostic", str(self.error))


@dataclass
class BuildReport:
    """
    Outcome of a build.

    Attributes:
        plan: Plan that was executed
        modules: Outcome per module, in build order
        tools: Outcome per host tool, in build order
        stats: Work counters of this build
        cancelled: True if the build was cancelled
    """

    plan: BuildPlan
    modules: Dict[str, Outcome] = field(default_factory=dict)
    tools: Dict[str, Outcome] = field(default_factory=dict)
    stats: BuildStats = field(default_factory=BuildStats)
    cancelled: bool = False

    @property
    def succeeded(self) -> bool:
        return all(o.status == SUCCESS for o in [*self.modules.values(), *self.tools.values()])

    def artifact(self, module: str) -> Optional[ModuleArtifact]:
        outcome = self.modules.get(module)
        return outcome.artifact if outcome is not None else None

    def with_status(self, status: str) -> List[str]:
        """Names of the modules with the given status."""
        return [name for name, o in self.modules.items() if o.status == status]

    def summary(self) -> str:
        """One line per built, failed, blocked or cancelled module and host tool."""
        lines = []
        for kind, outcomes in (("tool", self.tools), ("module", self.modules)):
            for name, outcome in outcomes.items():
                if outcome.status == FAILED:
                    diagnostic = outcome.diagnostic.strip().splitlines()
                    first = diagnostic[0] if diagnostic else ""
                    lines.append(f"FAILED   {kind} {name}: {first}")
                    dependents = [
                        n for n, o in self.modules.items()
                        if o.status == BLOCKED and o.blocked_by in self._step_ids(kind, name)
                    ]
                    if dependents:
                        lines.append(f"         blocks: {', '.join(dependents)}")
                elif outcome.status == BLOCKED:
                    lines.append(f"BLOCKED  {kind} {name} (by {outcome.blocked_by})")
                elif outcome.status == SUCCESS:
                    cached = getattr(outcome.artifact, "from_cache", False)
                    lines.append(f"OK       {kind} {name}{' (cached)' if cached else ''}")
                else:
                    lines.append(f"{outcome.status.upper():<8} {kind} {name}")

        stats = self.stats
        lines.append(
            f"{stats.compilations} modules compiled, "
            f"{stats.codegen_invocations} sources generated, "
            f"{stats.tool_builds} host tools built, "
            f"{stats.config_generations} configurations generated, "
            f"{stats.cache_hits} cache hits"
        )
        return "\n".join(lines)

    def _step_ids(self, kind: str, name: str) -> List[str]:
        if kind == "tool":
            return [host_tool_step_id(name)]
        module = self.plan.modules[name]
        return [compile_step_id(name)] + [codegen_step_id(name, t) for t in module.tools]


class BuildDriver:
    """
    Runs a whole build against one build root.

    Attributes:
        root: Build root directory
        toolkit_version: Toolkit release being built
        toolchains: Host and target toolchains
        configuration: Qt feature and define tables
        source_root: Qt source checkout (for platformdefs and forwarding headers)
        jobs: Concurrent steps (and translation units per module)
        lock_timeout: Seconds to wait for a key held by another builder
        runner: Process runner shared with the toolchains, cancelled by cancel()
    """

    def __init__(
        self,
        root: Path,
        toolkit_version: str,
        toolchains: ToolchainPair,
        configuration: Optional[QtConfiguration] = None,
        source_root: Optional[Path] = None,
        jobs: Optional[int] = None,
        lock_timeout: Optional[float] = None,
        runner: Optional[ProcessRunner] = None,
    ):
        self.root = Path(root)
        self.toolkit_version = toolkit_version
        self.toolchains = toolchains
        self.configuration = configuration or default_configuration()
        self.source_root = Path(source_root) if source_root else None
        self.jobs = jobs or 1
        self.lock_timeout = lock_timeout
        self.runner = runner or ProcessRunner()
        self.scheduler = BuildScheduler(jobs=self.jobs, runner=self.runner)
        self._lock = threading.Lock()

    @classmethod
    def from_declaration(
        cls,
        declaration: "BuildDeclaration",
        toolchains: ToolchainPair,
        runner: Optional[ProcessRunner] = None,
    ) -> "BuildDriver":
        """Create a driver for a parsed qtbuild.yaml declaration."""
        options = declaration.options
        return cls(
            root=declaration.build_root,
            toolkit_version=declaration.toolkit_version,
            toolchains=toolchains,
            configuration=declaration.configuration,
            source_root=declaration.source_root,
            jobs=options.jobs,
            lock_timeout=options.lock_timeout,
            runner=runner,
        )

    def cancel(self) -> None:
        """Cancel a running build; the build root stays consistent and resumable."""
        self.scheduler.cancel()

    def build(
        self, modules: Sequence[Module], host_tools: Sequence[HostToolSpec] = ()
    ) -> BuildReport:
        """
        Build every module.

        Raises:
            CyclicDependency: If module dependencies form a cycle (before any work)
            DeclarationError: On inconsistent declarations (before any work)
            RootConflict: If the build root belongs to another toolkit version
            ProbeFailed: If configuration probing fails
        """
        plan = BuildPlanResolver().resolve(modules, host_tools)

        coordinator = BuildDirectoryCoordinator.open(
            self.root, self.toolkit_version, lock_timeout=self.lock_timeout
        )
        stats = BuildStats()
        cross = self.toolchains.is_cross
        logger.info(
            f"Building {len(plan.module_order)} modules on {detect_platform()} "
            f"for {self.toolchains.target.identity().platform}"
            f"{' (cross)' if cross else ''}"
        )

        generator = ConfigHeaderGenerator(coordinator, stats)
        target_config = generator.generate(self._probe_inputs(TARGET, cross))
        host_config = target_config
        if cross:
            host_config = generator.generate(self._probe_inputs(HOST, cross))

        tool_builder = HostToolBuilder(coordinator, self.toolchains, stats)
        stage = CodeGenStage(coordinator, self.runner, stats)
        compiler = ModuleCompiler(coordinator, self.toolchains.target, stats, jobs=self.jobs)

        tools: Dict[str, HostTool] = {}
        generated: Dict[str, List[GeneratedSource]] = {}
        artifacts: Dict[str, ModuleArtifact] = {}

        def execute(step: BuildStep):
            if step.kind == HOST_TOOL:
                tool = tool_builder.ensure_built(plan.host_tools[step.tool], host_config)
                with self._lock:
                    tools[step.tool] = tool
                return tool

            module = plan.modules[step.module]
            if step.kind == CODEGEN:
                with self._lock:
                    tool = tools[step.tool]
                outputs = [
                    stage.generate(tool, input_file, requirement.args)
                    for requirement in module.requirements_for(step.tool)
                    for input_file in requirement.inputs
                ]
                with self._lock:
                    generated.setdefault(module.name, []).extend(outputs)
                return outputs

            if step.kind == COMPILE:
                with self._lock:
                    sources = [
                        source
                        for tool in module.tools
                        for source in generated.get(module.name, [])
                        if source.tool == tool
                    ]
                    dependencies = [artifacts[d] for d in module.dependencies]
                artifact = compiler.compile(module, target_config, sources, dependencies)
                with self._lock:
                    artifacts[module.name] = artifact
                return artifact

            raise ValueError(f"Unknown step kind: {step.kind}")

        results = self.scheduler.run(plan, execute)
        report = self._report(plan, results, stats)
        logger.info(f"Build finished:\n{report.summary()}")
        return report

    def _probe_inputs(self, role: str, cross: bool) -> ProbeInputs:
        return ProbeInputs(
            toolkit_version=self.toolkit_version,
            toolchain=self.toolchains.for_role(role),
            configuration=self.configuration,
            role=role,
            cross_compiling=cross,
            source_root=self.source_root,
        )

    def _report(
        self, plan: BuildPlan, results: Dict[str, StepResult], stats: BuildStats
    ) -> BuildReport:
        report = BuildReport(plan=plan, stats=stats, cancelled=self.scheduler.cancelled)

        for step in plan:
            if step.kind == HOST_TOOL:
                result = results[step.id]
                report.tools[step.tool] = Outcome(
                    step.tool, result.status, result.error, result.blocked_by, result.value
                )

        for name in plan.module_order:
            module = plan.modules[name]
            step_ids = [codegen_step_id(name, t) for t in module.tools] + [compile_step_id(name)]
            own_failure = next(
                (results[s] for s in step_ids if results[s].status == FAILED), None
            )
            compiled = results[compile_step_id(name)]
            if own_failure is not None:
                report.modules[name] = Outcome(name, FAILED, own_failure.error)
            else:
                report.modules[name] = Outcome(
                    name, compiled.status, compiled.error, compiled.blocked_by, compiled.value
                )

        return report


__all__ = ["BuildDriver", "BuildReport", "Outcome"]
