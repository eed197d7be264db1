"""
Unit tests for BuildPlanResolver.

Tests cover:
- Dependency ordering with declaration order as the tie-breaker
- Step expansion (host tool, codegen and compile steps)
- Declaration errors and dependency cycles
"""

import pytest

from qtbuildkit.build.module import CodeGenRequirement, Module
from qtbuildkit.build.plan import CODEGEN, COMPILE, HOST_TOOL, BuildPlanResolver
from qtbuildkit.core.exceptions import CyclicDependency, DeclarationError
from qtbuildkit.hosttools.builder import HostToolSpec


def _module(name, deps=(), tools=()):
    return Module(
        name=name,
        dependencies=list(deps),
        codegen=[CodeGenRequirement(tool=t) for t in tools],
    )


def _tool(name):
    return HostToolSpec(name=name, sources=[])


class TestModuleOrder:
    """Tests for the module order of a plan."""

    def test_dependencies_first(self):
        """Test that modules follow their dependencies."""
        plan = BuildPlanResolver().resolve(
            [_module("declarative", ["gui"]), _module("gui", ["core"]), _module("core")]
        )

        assert plan.module_order == ["core", "gui", "declarative"]

    def test_declaration_order_breaks_ties(self):
        """Test that independent modules keep their declaration order."""
        plan = BuildPlanResolver().resolve(
            [_module("network"), _module("core"), _module("xml"), _module("gui", ["core"])]
        )

        assert plan.module_order == ["network", "core", "xml", "gui"]

    def test_ready_module_declared_first_wins(self):
        """Test the tie-break after a dependency is placed."""
        plan = BuildPlanResolver().resolve(
            [_module("b", ["a"]), _module("c"), _module("a")]
        )

        assert plan.module_order == ["c", "a", "b"]

    def test_diamond(self):
        """Test a diamond dependency graph."""
        plan = BuildPlanResolver().resolve(
            [
                _module("app", ["gui", "network"]),
                _module("gui", ["core"]),
                _module("network", ["core"]),
                _module("core"),
            ]
        )

        assert plan.module_order == ["core", "gui", "network", "app"]

    def test_deterministic(self):
        """Test that the same declarations always resolve to the same plan."""
        modules = [_module("gui", ["core"]), _module("core"), _module("xml")]

        first = BuildPlanResolver().resolve(modules)
        second = BuildPlanResolver().resolve(modules)

        assert first.step_ids() == second.step_ids()


class TestSteps:
    """Tests for step expansion."""

    def test_compile_steps_depend_on_dependencies(self):
        """Test compile step dependencies."""
        plan = BuildPlanResolver().resolve([_module("core"), _module("gui", ["core", "core"])])

        assert plan.step("module:gui").kind == COMPILE
        assert plan.step("module:gui").depends_on == ("module:core",)
        assert plan.step("module:core").depends_on == ()

    def test_tool_and_codegen_steps(self):
        """Test that a tool is built right before its first user."""
        plan = BuildPlanResolver().resolve(
            [
                _module("core"),
                _module("gui", ["core"], tools=["moc"]),
                _module("widgets", ["gui"], tools=["moc", "uic"]),
            ],
            [_tool("moc"), _tool("uic"), _tool("rcc")],
        )

        assert plan.step_ids() == [
            "module:core",
            "tool:moc",
            "codegen:gui:moc",
            "module:gui",
            "codegen:widgets:moc",
            "tool:uic",
            "codegen:widgets:uic",
            "module:widgets",
        ]
        assert plan.step("tool:moc").kind == HOST_TOOL
        assert plan.step("codegen:widgets:uic").kind == CODEGEN
        assert plan.step("codegen:widgets:uic").depends_on == ("tool:uic",)
        assert plan.step("module:widgets").depends_on == (
            "codegen:widgets:moc",
            "codegen:widgets:uic",
            "module:gui",
        )

    def test_unused_tool_has_no_step(self):
        """Test that tools no module needs are not built."""
        plan = BuildPlanResolver().resolve([_module("core")], [_tool("rcc")])

        assert plan.step_ids() == ["module:core"]
        assert "rcc" in plan.host_tools

    def test_dependents(self):
        """Test transitive dependents of a step."""
        plan = BuildPlanResolver().resolve(
            [
                _module("core"),
                _module("gui", ["core"], tools=["moc"]),
                _module("xml"),
                _module("declarative", ["gui"]),
            ],
            [_tool("moc")],
        )

        assert plan.dependents("tool:moc") == ["codegen:gui:moc", "module:gui", "module:declarative"]
        assert plan.dependents("module:xml") == []

    def test_unknown_step(self):
        """Test looking up a step that is not in the plan."""
        plan = BuildPlanResolver().resolve([_module("core")])

        with pytest.raises(KeyError):
            plan.step("module:gui")

    def test_len_and_iter(self):
        """Test the sequence protocol of a plan."""
        plan = BuildPlanResolver().resolve([_module("core"), _module("gui", ["core"])])

        assert len(plan) == 2
        assert [s.module for s in plan] == ["core", "gui"]


class TestDeclarationErrors:
    """Tests for invalid declarations."""

    def test_unknown_dependency(self):
        """Test a dependency on an undeclared module."""
        with pytest.raises(DeclarationError, match="unknown module 'core'"):
            BuildPlanResolver().resolve([_module("gui", ["core"])])

    def test_unknown_tool(self):
        """Test a module needing an undeclared host tool."""
        with pytest.raises(DeclarationError, match="unknown host tool 'moc'"):
            BuildPlanResolver().resolve([_module("gui", tools=["moc"])])

    def test_duplicate_module(self):
        """Test two modules with the same name."""
        with pytest.raises(DeclarationError, match="Duplicate module"):
            BuildPlanResolver().resolve([_module("core"), _module("core")])

    def test_duplicate_tool(self):
        """Test two host tools with the same name."""
        with pytest.raises(DeclarationError, match="Duplicate host tool"):
            BuildPlanResolver().resolve([_module("core")], [_tool("moc"), _tool("moc")])

    def test_empty_declarations(self):
        """Test that no modules resolve to an empty plan."""
        plan = BuildPlanResolver().resolve([])

        assert plan.steps == []
        assert plan.module_order == []


class TestCycles:
    """Tests for dependency cycle detection."""

    def test_two_module_cycle(self):
        """Test a cycle between two modules."""
        with pytest.raises(CyclicDependency) as exc_info:
            BuildPlanResolver().resolve([_module("a", ["b"]), _module("b", ["a"])])

        assert exc_info.value.involved_modules == ["a", "b", "a"]

    def test_self_dependency(self):
        """Test a module depending on itself."""
        with pytest.raises(CyclicDependency) as exc_info:
            BuildPlanResolver().resolve([_module("core", ["core"])])

        assert exc_info.value.involved_modules == ["core", "core"]

    def test_cycle_behind_acyclic_prefix(self):
        """Test that only the modules on the cycle are reported."""
        with pytest.raises(CyclicDependency) as exc_info:
            BuildPlanResolver().resolve(
                [
                    _module("core"),
                    _module("app", ["gui"]),
                    _module("gui", ["core", "widgets"]),
                    _module("widgets", ["gui"]),
                ]
            )

        assert exc_info.value.involved_modules == ["gui", "widgets", "gui"]
        assert "gui -> widgets -> gui" in str(exc_info.value)

    def test_cycle_is_a_declaration_error(self):
        """Test that cycles can be caught as declaration errors."""
        with pytest.raises(DeclarationError):
            BuildPlanResolver().resolve([_module("a", ["b"]), _module("b", ["a"])])
