"""
Unit tests for build work counters.
"""

import threading

import pytest

from qtbuildkit.core.stats import BuildStats


class TestBuildStats:
    """Tests for BuildStats."""

    def test_counters_start_at_zero(self):
        """Test initial values."""
        stats = BuildStats()

        assert stats.compilations == 0
        assert stats.cache_hits == 0
        assert stats.new_work == 0

    def test_increment_and_hits(self):
        """Test counting work and cache hits."""
        stats = BuildStats()
        stats.increment("compilations")
        stats.increment("translation_units", 3)
        stats.hit("module")
        stats.hit("module")
        stats.hit("tool")

        assert stats.compilations == 1
        assert stats.translation_units == 3
        assert stats.cache_hits == 3
        assert stats.hits("module") == 2
        assert stats.new_work == 1
        assert stats.as_dict()["cache_hits"] == {"module": 2, "tool": 1}

    def test_unknown_counter(self):
        """Test that typos in counter names are caught."""
        stats = BuildStats()

        with pytest.raises(KeyError):
            stats.increment("compilation")
        with pytest.raises(AttributeError):
            stats.compilation

    def test_thread_safe(self):
        """Test concurrent increments."""
        stats = BuildStats()

        def work():
            for _ in range(1000):
                stats.increment("translation_units")

        threads = [threading.Thread(target=work) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert stats.translation_units == 8000
