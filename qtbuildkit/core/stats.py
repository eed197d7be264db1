"""
Work counters shared by the build components.

Every component counts the work it actually performed and the work it
skipped because the build root already held a valid result. Two builds with
unchanged inputs must show zero new work on the second run.
"""

import threading
from typing import Dict


class BuildStats:
    """
    Thread-safe counters of performed and skipped work.

    Attributes (read through ``as_dict`` or the properties):
        config_generations: Configuration header sets generated
        tool_builds: Host tools compiled and linked
        codegen_invocations: Host tool runs producing generated sources
        compilations: Modules compiled
        translation_units: Source files compiled (modules and host tools)
        cache_hits: Skipped work, per kind ('config', 'tool', 'codegen', 'module')
    """

    COUNTERS = (
        "config_generations",
        "tool_builds",
        "codegen_invocations",
        "compilations",
        "translation_units",
    )

    def __init__(self):
        self._lock = threading.Lock()
        self._counts: Dict[str, int] = {name: 0 for name in self.COUNTERS}
        self._hits: Dict[str, int] = {}

    def increment(self, counter: str, amount: int = 1) -> None:
        if counter not in self._counts:
            raise KeyError(f"Unknown counter: {counter}")
        with self._lock:
            self._counts[counter] += amount

    def hit(self, kind: str) -> None:
        """Count one cache hit of the given kind."""
        with self._lock:
            self._hits[kind] = self._hits.get(kind, 0) + 1

    def __getattr__(self, name: str) -> int:
        if name in BuildStats.COUNTERS:
            with self._lock:
                return self._counts[name]
        raise AttributeError(name)

    @property
    def cache_hits(self) -> int:
        with self._lock:
            return sum(self._hits.values())

    def hits(self, kind: str) -> int:
        with self._lock:
            return self._hits.get(kind, 0)

    @property
    def new_work(self) -> int:
        """Total config generations, tool builds, code generations and compilations."""
        with self._lock:
            return (
                self._counts["config_generations"]
                + self._counts["tool_builds"]
                + self._counts["codegen_invocations"]
                + self._counts["compilations"]
            )

    def as_dict(self) -> dict:
        with self._lock:
            return {**self._counts, "cache_hits": dict(self._hits)}


__all__ = ["BuildStats"]
