"""
Concurrent access control for build roots.

This module provides file-based locking so that at most one builder, in any
thread or process, works on a given build root key at a time.

Features:
- Cross-process locking (not just threading)
- Timeout support to prevent hanging
- Fail-fast acquisition for callers that prefer to skip busy keys
- Automatic cleanup on process death (the OS drops file locks)

Usage:
    from qtbuildkit.core.locking import LockManager

    lock_manager = LockManager(build_root / "lock")
    with lock_manager.key_lock("module:core", timeout=300):
        # Safely build and record the module
        pass
"""

import logging
import re
from contextlib import contextmanager
from pathlib import Path
from typing import Optional

from filelock import FileLock, Timeout as LockTimeout

logger = logging.getLogger(__name__)

_UNSAFE = re.compile(r"[^A-Za-z0-9_+-]+")


def sanitize_key(key: str) -> str:
    """
    Turn a build root key into a string usable as a file name.

    Args:
        key: Key such as 'codegen:moc:/src/qobject.h'

    Returns:
        File-name-safe slug, e.g. 'codegen-moc-src-qobject-h'
    """
    return _UNSAFE.sub("-", key).strip("-") or "key"


class LockManager:
    """
    Manages per-key locks for a build root.

    Uses file-based locking with the `filelock` library for cross-platform
    compatibility and automatic cleanup on process death.

    Attributes:
        lock_dir: Directory where lock files are stored
    """

    def __init__(self, lock_dir: Path):
        """
        Initialize lock manager.

        Args:
            lock_dir: Directory for lock files
        """
        self.lock_dir = Path(lock_dir)
        self.lock_dir.mkdir(parents=True, exist_ok=True)

    def lock_path(self, slug: str) -> Path:
        """Return the lock file path for an already sanitized key."""
        return self.lock_dir / f"{slug}.lock"

    @contextmanager
    def key_lock(self, key: str, slug: Optional[str] = None, timeout: float = -1):
        """
        Acquire the lock for a build root key.

        Args:
            key: Build root key (e.g., 'module:core')
            slug: File-name-safe form of the key (default: sanitized key)
            timeout: Seconds to wait; 0 fails immediately, negative waits forever

        Yields:
            None

        Raises:
            LockTimeout: If lock can't be acquired within timeout

        Example:
            >>> with lock_manager.key_lock("tool:moc", timeout=0):
            ...     build_moc()
        """
        lock_path = self.lock_path(slug or sanitize_key(key))
        lock = FileLock(lock_path, timeout=timeout)

        try:
            with lock:
                logger.debug(f"Acquired key lock: {key}")
                yield
                logger.debug(f"Released key lock: {key}")
        except LockTimeout as e:
            logger.debug(f"Could not acquire key lock for {key} within {timeout}s")
            raise LockTimeout(
                f"Could not acquire lock for '{key}' within {timeout}s. "
                "Another builder is working on it."
            ) from e


@contextmanager
def try_lock(lock_path: Path, timeout: float = 0):
    """
    Try to acquire lock without blocking (or with short timeout).

    This is useful for "try-and-skip" patterns such as removing leftovers of
    a builder that is no longer running.

    Args:
        lock_path: Path to lock file
        timeout: 0 for immediate (non-blocking), or seconds to wait

    Yields:
        bool: True if lock acquired, False otherwise

    Example:
        >>> with try_lock(Path('/tmp/build/lock/module-core.lock')) as acquired:
        ...     if acquired:
        ...         remove_stale_staging()
    """
    lock = FileLock(lock_path, timeout=timeout)

    acquired = False
    try:
        lock.acquire(timeout=timeout)
        acquired = True
        logger.debug(f"Acquired lock (try_lock): {lock_path}")
        yield True
    except LockTimeout:
        logger.debug(f"Could not acquire lock (try_lock): {lock_path}")
        yield False
    finally:
        if acquired:
            lock.release()
            logger.debug(f"Released lock (try_lock): {lock_path}")


__all__ = [
    "LockManager",
    "try_lock",
    "sanitize_key",
    "LockTimeout",
]
