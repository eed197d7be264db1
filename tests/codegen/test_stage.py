"""
Unit tests for CodeGenStage.

The host tool used here is the generator script the fake toolchain links,
so every invocation starts a real process.
"""

import pytest

from qtbuildkit.codegen.stage import CodeGenStage, expand_args
from qtbuildkit.core.build_root import codegen_key
from qtbuildkit.core.exceptions import BuildCancelled, CodeGenFailed
from qtbuildkit.core.process import ProcessRunner
from qtbuildkit.core.stats import BuildStats
from qtbuildkit.hosttools.builder import HostTool, HostToolBuilder, HostToolSpec


@pytest.fixture
def toolgen(coordinator, native_toolchains, tmp_path):
    source = tmp_path / "toolgen.cpp"
    source.write_text("int main() {}\n")
    spec = HostToolSpec(name="toolgen", sources=[source], output_pattern="gen_{stem}.cpp")
    return HostToolBuilder(coordinator, native_toolchains).ensure_built(spec)


@pytest.fixture
def header(tmp_path):
    path = tmp_path / "include" / "qwindow.h"
    path.parent.mkdir(parents=True)
    path.write_text("class QWindow {};\n")
    return path


class TestExpandArgs:
    """Tests for expand_args."""

    def test_placeholders(self, tmp_path):
        """Test input and output substitution."""
        args = expand_args(
            ["-o", "{output}", "--name={input}"], tmp_path / "a.h", tmp_path / "out.cpp"
        )

        assert args == ["-o", str(tmp_path / "out.cpp"), f"--name={tmp_path / 'a.h'}"]


class TestGenerate:
    """Tests for CodeGenStage.generate."""

    def test_generate(self, coordinator, toolgen, header):
        """Test running a tool and recording its output."""
        stats = BuildStats()
        generated = CodeGenStage(coordinator, stats=stats).generate(toolgen, header)

        assert generated.path.name == "gen_qwindow.cpp"
        assert generated.path.read_text().startswith("// generated by toolgen from qwindow.h")
        assert generated.tool == "toolgen"
        assert generated.input_file == header.resolve()
        assert not generated.from_cache
        assert stats.codegen_invocations == 1
        assert coordinator.lookup(codegen_key("toolgen", header)) is not None

    def test_unchanged_input_is_cache_hit(self, coordinator, toolgen, header):
        """Test that the tool is not invoked again for an unchanged input."""
        stats = BuildStats()
        stage = CodeGenStage(coordinator, stats=stats)

        first = stage.generate(toolgen, header)
        second = stage.generate(toolgen, header)

        assert second.from_cache
        assert second.path == first.path
        assert stats.codegen_invocations == 1
        assert stats.hits("codegen") == 1

    def test_input_change_regenerates(self, coordinator, toolgen, header):
        """Test that editing the input reruns the tool."""
        stage = CodeGenStage(coordinator)
        first = stage.generate(toolgen, header)

        header.write_text("class QWindow { int x; };\n")
        second = stage.generate(toolgen, header)

        assert not second.from_cache
        assert second.fingerprint != first.fingerprint
        assert "int x;" in second.path.read_text()

    def test_args_change_regenerates(self, coordinator, toolgen, header):
        """Test that different invocation arguments change the fingerprint."""
        stage = CodeGenStage(coordinator)
        first = stage.generate(toolgen, header)

        second = stage.generate(toolgen, header, args=["-o", "{output}", "-DX", "{input}"])

        assert second.fingerprint != first.fingerprint

    def test_stdout_only_tool(self, coordinator, toolgen, header):
        """Test that a tool not writing its output file fails."""
        with pytest.raises(CodeGenFailed) as exc_info:
            CodeGenStage(coordinator).generate(toolgen, header, args=["{input}"])

        assert exc_info.value.exit_code == 0
        assert "gen_qwindow.cpp" in exc_info.value.stderr

    def test_tool_failure(self, coordinator, toolgen, header):
        """Test that a non-zero exit fails with the tool's stderr."""
        header.write_text("FAIL\n")

        with pytest.raises(CodeGenFailed) as exc_info:
            CodeGenStage(coordinator).generate(toolgen, header)

        assert exc_info.value.tool == "toolgen"
        assert exc_info.value.exit_code == 3
        assert "cannot process this file" in exc_info.value.stderr
        assert coordinator.lookup(codegen_key("toolgen", header)) is None

    def test_missing_input(self, coordinator, toolgen, tmp_path):
        """Test that a missing input fails without running the tool."""
        stats = BuildStats()

        with pytest.raises(CodeGenFailed) as exc_info:
            CodeGenStage(coordinator, stats=stats).generate(toolgen, tmp_path / "missing.h")

        assert exc_info.value.exit_code == -1
        assert stats.codegen_invocations == 0

    def test_tool_cannot_start(self, coordinator, toolgen, header, tmp_path):
        """Test that a tool that cannot be started fails only this generation."""
        broken = HostTool(toolgen.spec, tmp_path / "bin" / "toolgen", "sha256:broken")

        with pytest.raises(CodeGenFailed) as exc_info:
            CodeGenStage(coordinator).generate(broken, header)

        assert exc_info.value.exit_code == -1
        assert "cannot run" in exc_info.value.stderr
        assert coordinator.lookup(codegen_key("toolgen", header)) is None

    def test_cancelled_runner(self, coordinator, toolgen, header):
        """Test that a cancelled build does not start the tool."""
        runner = ProcessRunner()
        runner.cancel()

        with pytest.raises(BuildCancelled):
            CodeGenStage(coordinator, runner=runner).generate(toolgen, header)

        assert coordinator.lookup(codegen_key("toolgen", header)) is None
