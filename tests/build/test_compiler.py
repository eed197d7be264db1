"""
Unit tests for ModuleCompiler.

Tests cover:
- Compiling sources and generated sources into a static library
- Include path order and transitive link libraries
- Reuse and recompilation depending on the inputs
- Compile failures leaving no record
"""

import pytest

from qtbuildkit.build.compiler import ModuleCompiler
from qtbuildkit.build.module import Module, ModuleArtifact
from qtbuildkit.codegen.stage import GeneratedSource
from qtbuildkit.core.build_root import module_key
from qtbuildkit.core.exceptions import CompileError
from qtbuildkit.core.stats import BuildStats
from tests.fixtures.toolchains import FakeToolchain


@pytest.fixture
def core(sample_project) -> Module:
    return sample_project.module("core")


@pytest.fixture
def generated(tmp_path) -> GeneratedSource:
    path = tmp_path / "generated" / "gen_qwindow.cpp"
    path.parent.mkdir(parents=True)
    path.write_text("// generated\n")
    return GeneratedSource("toolgen", tmp_path / "qwindow.h", path, "sha256:gen")


class TestCompile:
    """Tests for ModuleCompiler.compile."""

    def test_compile_module(self, coordinator, fake_toolchain, core):
        """Test that every source is compiled and archived."""
        stats = BuildStats()
        artifact = ModuleCompiler(coordinator, fake_toolchain, stats).compile(core, None, [], [])

        assert artifact.module == "core"
        assert artifact.library.name == "libcore.a"
        assert artifact.library.is_file()
        assert artifact.link_libraries == [artifact.library]
        assert not artifact.from_cache
        assert fake_toolchain.count("compile") == 2
        assert fake_toolchain.count("archive") == 1
        assert stats.compilations == 1
        assert stats.translation_units == 2
        assert coordinator.lookup(module_key("core")) is not None

    def test_defines_and_flags(self, coordinator, fake_toolchain, core):
        """Test that module defines and flags reach every translation unit."""
        core.flags = ["-O2"]
        ModuleCompiler(coordinator, fake_toolchain).compile(core, None, [], [])

        args = fake_toolchain.compile_args["qstring.cpp"]
        assert args["defines"] == {"QT_BUILD_CORE_LIB": None}
        assert args["flags"] == ["-O2"]

    def test_generated_sources_compiled(self, coordinator, fake_toolchain, sample_project, generated):
        """Test that generated sources are compiled with the module."""
        gui = sample_project.module("gui")
        ModuleCompiler(coordinator, fake_toolchain).compile(gui, None, [generated], [])

        assert ("compile", "gen_qwindow.cpp") in fake_toolchain.calls
        args = fake_toolchain.compile_args["qwindow.cpp"]
        assert args["include_dirs"][0] == generated.path.parent

    def test_generated_headers_not_compiled(
        self, coordinator, fake_toolchain, sample_project, generated, tmp_path
    ):
        """Test that generated headers are only added to the include path."""
        ui_header = tmp_path / "uic" / "ui_form.h"
        ui_header.parent.mkdir()
        ui_header.write_text("// generated form\n")
        form = GeneratedSource("uic", tmp_path / "form.ui", ui_header, "sha256:ui")
        gui = sample_project.module("gui")

        artifact = ModuleCompiler(coordinator, fake_toolchain).compile(
            gui, None, [generated, form], []
        )

        compiled = [name for op, name in fake_toolchain.calls if op == "compile"]
        assert "gen_qwindow.cpp" in compiled
        assert "ui_form.h" not in compiled
        assert ui_header.parent in fake_toolchain.compile_args["qwindow.cpp"]["include_dirs"]
        assert coordinator.lookup(module_key("gui")).extra["units"] == len(compiled)
        assert artifact.library.is_file()

    def test_include_order(self, coordinator, fake_toolchain, sample_project, generated, tmp_path):
        """Test config, generated, own and dependency include directories in order."""
        gui = sample_project.module("gui")
        dependency = ModuleArtifact(
            module="core",
            library=tmp_path / "libcore.a",
            fingerprint="sha256:core",
            include_dirs=[sample_project.root / "core/include"],
            link_libraries=[tmp_path / "libcore.a"],
        )

        artifact = ModuleCompiler(coordinator, fake_toolchain).compile(
            gui, None, [generated], [dependency]
        )

        assert fake_toolchain.compile_args["qwindow.cpp"]["include_dirs"] == [
            generated.path.parent,
            sample_project.root / "gui/include",
            sample_project.root / "core/include",
        ]
        assert artifact.include_dirs == [
            sample_project.root / "gui/include",
            sample_project.root / "core/include",
        ]
        assert artifact.link_libraries == [artifact.library, tmp_path / "libcore.a"]

    def test_diamond_link_order(self, coordinator, fake_toolchain, core, tmp_path):
        """Test that every library comes before the libraries it needs."""
        libc = tmp_path / "libc.a"
        libb = tmp_path / "libb.a"
        c = ModuleArtifact("c", libc, "sha256:c", link_libraries=[libc])
        b = ModuleArtifact("b", libb, "sha256:b", link_libraries=[libb, libc])

        artifact = ModuleCompiler(coordinator, fake_toolchain).compile(core, None, [], [c, b])

        assert artifact.link_libraries == [artifact.library, libb, libc]

    def test_unchanged_module_is_cache_hit(self, coordinator, fake_toolchain, core):
        """Test that an unchanged module is not recompiled."""
        stats = BuildStats()
        compiler = ModuleCompiler(coordinator, fake_toolchain, stats)

        first = compiler.compile(core, None, [], [])
        second = compiler.compile(core, None, [], [])

        assert second.from_cache
        assert second.library == first.library
        assert fake_toolchain.count("compile") == 2
        assert stats.compilations == 1
        assert stats.hits("module") == 1

    def test_source_change_recompiles(self, coordinator, fake_toolchain, core, sample_project):
        """Test that editing a source recompiles the module."""
        compiler = ModuleCompiler(coordinator, fake_toolchain)
        first = compiler.compile(core, None, [], [])

        sample_project.files["core_string"].write_text("// changed\n")
        second = compiler.compile(core, None, [], [])

        assert not second.from_cache
        assert second.fingerprint != first.fingerprint

    def test_public_header_change_recompiles(self, coordinator, fake_toolchain, core, sample_project):
        """Test that editing a public header changes the fingerprint."""
        compiler = ModuleCompiler(coordinator, fake_toolchain)
        before = compiler.fingerprint(core, None, [], [])

        sample_project.files["core_header"].write_text("class QString { int d; };\n")

        assert compiler.fingerprint(core, None, [], []) != before

    def test_dependency_change_recompiles(self, coordinator, fake_toolchain, sample_project, tmp_path):
        """Test that a new dependency fingerprint changes the fingerprint."""
        gui = sample_project.module("gui")
        compiler = ModuleCompiler(coordinator, fake_toolchain)
        old = ModuleArtifact("core", tmp_path / "libcore.a", "sha256:old")
        new = ModuleArtifact("core", tmp_path / "libcore.a", "sha256:new")

        assert compiler.fingerprint(gui, None, [], [old]) != compiler.fingerprint(gui, None, [], [new])

    def test_toolchain_change_recompiles(self, coordinator, core):
        """Test that a different target compiler changes the fingerprint."""
        gcc = ModuleCompiler(coordinator, FakeToolchain())
        clang = ModuleCompiler(coordinator, FakeToolchain(name="clang", version="18.1.3"))

        assert gcc.fingerprint(core, None, [], []) != clang.fingerprint(core, None, [], [])

    def test_toolchain_flags_change_recompiles(self, coordinator, core):
        """Test that target compiler flags change the fingerprint."""
        plain = ModuleCompiler(coordinator, FakeToolchain())
        m32 = ModuleCompiler(coordinator, FakeToolchain(extra_flags=["-m32"]))

        assert plain.fingerprint(core, None, [], []) != m32.fingerprint(core, None, [], [])


class TestCompileFailures:
    """Tests for failing compilations."""

    def test_compile_error(self, coordinator, core):
        """Test that a failing translation unit fails the module."""
        toolchain = FakeToolchain(fail_sources=["qobject.cpp"])

        with pytest.raises(CompileError) as exc_info:
            ModuleCompiler(coordinator, toolchain, jobs=2).compile(core, None, [], [])

        assert exc_info.value.file.name == "qobject.cpp"
        assert "expected ';'" in exc_info.value.diagnostic
        assert toolchain.count("archive") == 0
        assert coordinator.lookup(module_key("core")) is None

    def test_first_failure_in_source_order(self, coordinator, core):
        """Test that the first failing source is reported."""
        toolchain = FakeToolchain(fail_sources=["qstring.cpp", "qobject.cpp"])

        with pytest.raises(CompileError) as exc_info:
            ModuleCompiler(coordinator, toolchain, jobs=4).compile(core, None, [], [])

        assert exc_info.value.file.name == "qstring.cpp"

    def test_missing_source(self, coordinator, fake_toolchain, tmp_path):
        """Test that a missing source fails before compiling anything."""
        module = Module(name="core", sources=[tmp_path / "missing.cpp"])

        with pytest.raises(CompileError) as exc_info:
            ModuleCompiler(coordinator, fake_toolchain).compile(module, None, [], [])

        assert exc_info.value.diagnostic == "source file not found"
        assert fake_toolchain.calls == []

    def test_failure_then_fix(self, coordinator, core):
        """Test that fixing the error compiles the module."""
        toolchain = FakeToolchain(fail_sources=["qobject.cpp"])
        compiler = ModuleCompiler(coordinator, toolchain)
        with pytest.raises(CompileError):
            compiler.compile(core, None, [], [])

        toolchain.fail_sources.clear()
        artifact = compiler.compile(core, None, [], [])

        assert artifact.library.is_file()
