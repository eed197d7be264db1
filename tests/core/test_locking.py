"""
Unit tests for the locking module.

Tests cover:
- Key lock acquisition and release
- Timeout behavior
- Try-lock patterns
- Key sanitizing
"""

import threading
import time

import pytest

from filelock import Timeout as LockTimeout

from qtbuildkit.core.locking import LockManager, sanitize_key, try_lock


class TestSanitizeKey:
    """Tests for sanitize_key."""

    def test_replaces_separators(self):
        """Test that separators become dashes."""
        assert sanitize_key("codegen:moc:/src/qobject.h") == "codegen-moc-src-qobject-h"

    def test_empty_result(self):
        """Test that a key with no safe characters still yields a name."""
        assert sanitize_key("::") == "key"


class TestLockManager:
    """Tests for LockManager class."""

    def test_init_creates_lock_dir(self, tmp_path):
        """Test that the lock directory is created."""
        lock_dir = tmp_path / "locks"
        manager = LockManager(lock_dir)

        assert manager.lock_dir == lock_dir
        assert lock_dir.is_dir()

    def test_key_lock_acquire_and_release(self, tmp_path):
        """Test acquiring and releasing a key lock."""
        manager = LockManager(tmp_path)

        with manager.key_lock("module:core", timeout=5):
            assert manager.lock_path("module-core").exists()

        # Reacquiring proves the lock was released
        with manager.key_lock("module:core", timeout=1):
            pass

    def test_key_lock_timeout(self, tmp_path):
        """Test key lock timeout when already locked."""
        manager = LockManager(tmp_path)

        with manager.key_lock("module:core", timeout=5):
            with pytest.raises(LockTimeout) as exc_info:
                with manager.key_lock("module:core", timeout=0.1):
                    pass

            assert "module:core" in str(exc_info.value)

    def test_key_lock_released_on_exception(self, tmp_path):
        """Test that the lock is released when the body raises."""
        manager = LockManager(tmp_path)

        with pytest.raises(ValueError):
            with manager.key_lock("module:core"):
                raise ValueError("boom")

        with manager.key_lock("module:core", timeout=0):
            pass

    def test_custom_slug(self, tmp_path):
        """Test that an explicit slug names the lock file."""
        manager = LockManager(tmp_path)

        with manager.key_lock("module:core", slug="custom"):
            assert (tmp_path / "custom.lock").exists()

    def test_waits_for_other_thread(self, tmp_path):
        """Test that a waiting acquirer gets the lock once it is released."""
        manager = LockManager(tmp_path)
        acquired = threading.Event()
        order = []

        def holder():
            with manager.key_lock("tool:moc"):
                acquired.set()
                time.sleep(0.2)
                order.append("holder")

        thread = threading.Thread(target=holder)
        thread.start()
        acquired.wait(timeout=5)

        with manager.key_lock("tool:moc", timeout=5):
            order.append("waiter")
        thread.join()

        assert order == ["holder", "waiter"]


class TestTryLock:
    """Tests for try_lock."""

    def test_try_lock_free(self, tmp_path):
        """Test try_lock on a free lock."""
        with try_lock(tmp_path / "a.lock") as acquired:
            assert acquired is True

    def test_try_lock_held(self, tmp_path):
        """Test try_lock on a held lock."""
        manager = LockManager(tmp_path)

        with manager.key_lock("a", slug="a"):
            with try_lock(tmp_path / "a.lock") as acquired:
                assert acquired is False
