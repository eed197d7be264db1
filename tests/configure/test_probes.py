"""
Unit tests for configuration probes and probe input fingerprints.
"""

from pathlib import Path

import pytest

from qtbuildkit.configure.features import ForwardingHeaders, default_configuration
from qtbuildkit.configure.probes import ProbeInputs, run_probes
from qtbuildkit.core.exceptions import ProbeFailed
from qtbuildkit.core.platform import PlatformInfo
from tests.fixtures.toolchains import FakeToolchain


def _inputs(toolchain=None, **kwargs) -> ProbeInputs:
    return ProbeInputs(
        toolkit_version="6.2.0",
        toolchain=toolchain or FakeToolchain(),
        configuration=kwargs.pop("configuration", default_configuration()),
        **kwargs,
    )


class TestRunProbes:
    """Tests for run_probes."""

    def test_probe_results(self):
        """Test the answers of the fixed probe set."""
        toolchain = FakeToolchain(headers=("alloca.h",))
        results = run_probes(_inputs(toolchain))

        assert results.compiler.name == "gcc"
        assert results.platform == PlatformInfo("linux", "x64")
        assert results.pointer_size == 8
        assert results.headers["alloca.h"] is True
        assert results.headers["sys/inotify.h"] is False

    def test_probes_use_given_toolchain(self):
        """Test that probes query only the toolchain passed in."""
        target = FakeToolchain(triple="aarch64-linux-gnu", pointer_size=4)
        host = FakeToolchain()

        results = run_probes(_inputs(target, role="target", cross_compiling=True))

        assert results.platform == PlatformInfo("linux", "arm64")
        assert results.pointer_size == 4
        assert host.calls == []

    def test_word_size_failure(self):
        """Test that a compiler without __SIZEOF_POINTER__ fails the word_size probe."""
        with pytest.raises(ProbeFailed) as exc_info:
            run_probes(_inputs(FakeToolchain(pointer_size=None)))

        assert exc_info.value.probe_name == "word_size"
        assert "__SIZEOF_POINTER__" in exc_info.value.detail

    def test_platform_failure(self):
        """Test that an unrecognizable target triple fails the platform probe."""
        with pytest.raises(ProbeFailed) as exc_info:
            run_probes(_inputs(FakeToolchain(triple="x86_64-unknown-plan9")))

        assert exc_info.value.probe_name == "platform"


class TestProbeInputFingerprint:
    """Tests for ProbeInputs.fingerprint."""

    def test_stable(self):
        """Test that identical inputs have identical fingerprints."""
        assert _inputs().fingerprint() == _inputs().fingerprint()

    def test_role_matters(self):
        """Test that host and target header sets never share a fingerprint."""
        assert _inputs(role="host").fingerprint() != _inputs(role="target").fingerprint()

    def test_toolchain_version_matters(self):
        """Test that a compiler upgrade changes the fingerprint."""
        assert (
            _inputs(FakeToolchain(version="12.3.0")).fingerprint()
            != _inputs(FakeToolchain(version="13.2.0")).fingerprint()
        )

    def test_feature_change_matters(self):
        """Test that toggling a feature changes the fingerprint."""
        config = default_configuration()
        config.qtcore_features["mimetype"] = True

        assert _inputs(configuration=config).fingerprint() != _inputs().fingerprint()

    def test_forwarded_header_content_matters(self, qt_source_tree):
        """Test that editing a forwarded header changes the fingerprint."""
        config = default_configuration()
        config.forwarding.append(ForwardingHeaders("QtCore", Path("qtbase/src/corelib")))
        inputs = _inputs(configuration=config, source_root=qt_source_tree)
        before = inputs.fingerprint()

        (qt_source_tree / "qtbase/src/corelib/kernel/qobject.h").write_text("class QObject {};\n")

        assert inputs.fingerprint() != before
