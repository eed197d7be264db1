"""
Pytest configuration and shared fixtures for qtbuildkit tests.
"""

import logging

import pytest

# Import test fixtures to make them available to all tests
# These imports register the fixtures with pytest's fixture discovery system
# ruff: noqa: F401
from tests.fixtures.toolchains import (
    fake_toolchain,
    native_toolchains,
    cross_toolchains,
)
from tests.fixtures.projects import (
    sample_project,
    qt_source_tree,
    declaration_file,
)
from tests.fixtures.directories import (
    build_root,
    coordinator,
    foreign_build_root,
)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line("markers", "unit: fast tests of a single component")
    config.addinivalue_line("markers", "e2e: end-to-end builds of a sample project")


@pytest.fixture(autouse=True)
def reset_caches():
    """Reset module-level caches between tests."""
    from qtbuildkit.core import platform

    platform.detect_platform.cache_clear()
    yield


@pytest.fixture
def debug_logging(caplog):
    """Capture qtbuildkit debug logging."""
    caplog.set_level(logging.DEBUG, logger="qtbuildkit")
    return caplog
