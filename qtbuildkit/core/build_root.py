"""
Shared build root management.

A build root is a directory shared by every build unit that compiles the same
toolkit release. All cached state lives here, addressed by a key and the
fingerprint of the inputs that produced it:

Directory Structure:
    <root>/
        layout.json     : Layout version and toolkit version of this root
        config/         : Generated configuration header sets
        tools/          : Host tool binaries
        generated/      : Sources produced by host tools
        modules/        : Compiled module libraries
        meta/           : One JSON metadata record per key
        staging/        : Private work directories of active reservations
        lock/           : Per-key lock files

Every entry directory is ``<category>/<key-slug>/<fingerprint-prefix>/``.
Work for a key happens in a staging directory while the key is reserved; on
success the staging directory is renamed into place and only then is the
metadata record (atomically) replaced. A crash at any point therefore leaves
either the previous valid record or no record, never one pointing at a
partially written artifact.

Example:
    >>> coordinator = BuildDirectoryCoordinator.open(Path("build/qt"), "6.2.0")
    >>> key = module_key("core")
    >>> record = coordinator.lookup(key)
    >>> if record is None or record.fingerprint != fingerprint:
    ...     with coordinator.reserve(key) as lease:
    ...         build_into(lease.staging_dir / "libcore.a")
    ...         record = coordinator.record(lease, fingerprint, ["libcore.a"])
"""

import hashlib
import json
import logging
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Union

from packaging.version import InvalidVersion, Version

from qtbuildkit.core.exceptions import BuildRootError, Busy, RootConflict
from qtbuildkit.core.filesystem import (
    atomic_write,
    is_relative_to,
    replace_directory,
    safe_rmtree,
)
from qtbuildkit.core.fingerprint import short
from qtbuildkit.core.locking import LockManager, LockTimeout, sanitize_key, try_lock

logger = logging.getLogger(__name__)

LAYOUT_VERSION = 1

# Key namespace -> subdirectory holding its entries
CATEGORIES: Dict[str, str] = {
    "config": "config",
    "tool": "tools",
    "codegen": "generated",
    "module": "modules",
}


# ============================================================================
# Keys
# ============================================================================


def config_key(role: str = "target") -> str:
    """Key of the configuration header set for a toolchain role."""
    return f"config:{role}"


def tool_key(name: str) -> str:
    """Key of a host tool binary."""
    return f"tool:{name}"


def codegen_key(tool: str, input_file: Union[str, Path]) -> str:
    """Key of the source generated by running a tool on one input file."""
    return f"codegen:{tool}:{Path(input_file).resolve()}"


def module_key(name: str) -> str:
    """Key of a compiled module."""
    return f"module:{name}"


def key_slug(key: str) -> str:
    """
    File-name-safe, collision-free form of a key.

    Sanitizing alone could map two keys to the same name, so a short hash of
    the raw key is appended.
    """
    digest = hashlib.sha1(key.encode("utf-8")).hexdigest()[:10]
    return f"{sanitize_key(key)[:80]}-{digest}"


def key_category(key: str) -> str:
    """Return the namespace of a key, validating it."""
    category = key.split(":", 1)[0]
    if category not in CATEGORIES or ":" not in key:
        raise ValueError(
            f"Invalid build root key {key!r}: expected one of "
            f"{sorted(CATEGORIES)} followed by ':'"
        )
    return category


# ============================================================================
# Records and Leases
# ============================================================================


@dataclass
class Record:
    """
    Metadata record of a valid cached entry.

    Attributes:
        key: Build root key
        fingerprint: Fingerprint of the inputs that produced the entry
        directory: Absolute entry directory
        artifacts: Absolute paths of the recorded artifacts
        extra: Component-specific metadata (JSON-compatible)
        recorded_at: ISO 8601 timestamp of the recording
    """

    key: str
    fingerprint: str
    directory: Path
    artifacts: List[Path]
    extra: dict = field(default_factory=dict)
    recorded_at: Optional[str] = None


@dataclass
class Lease:
    """
    Exclusive reservation of a key.

    Attributes:
        key: Reserved key
        slug: File-name-safe form of the key
        staging_dir: Private directory to write outputs into
    """

    key: str
    slug: str
    staging_dir: Path
    active: bool = True
    recorded: bool = False


# ============================================================================
# Build Root Layout
# ============================================================================


class BuildRoot:
    """
    Paths of a build root.

    Attributes:
        path: Build root directory
    """

    SUBDIRS = ("config", "tools", "generated", "modules", "meta", "staging", "lock")

    def __init__(self, path: Path):
        self.path = Path(path).resolve()

    @property
    def layout_file(self) -> Path:
        return self.path / "layout.json"

    @property
    def meta_dir(self) -> Path:
        return self.path / "meta"

    @property
    def staging_dir(self) -> Path:
        return self.path / "staging"

    @property
    def lock_dir(self) -> Path:
        return self.path / "lock"

    def category_dir(self, key: str) -> Path:
        return self.path / CATEGORIES[key_category(key)]

    def entry_dir(self, key: str, slug: str, fingerprint: str) -> Path:
        return self.category_dir(key) / slug / short(fingerprint)

    def meta_path(self, slug: str) -> Path:
        return self.meta_dir / f"{slug}.json"

    def create(self) -> None:
        """Create all layout subdirectories (idempotent)."""
        self.path.mkdir(parents=True, exist_ok=True)
        for subdir in self.SUBDIRS:
            (self.path / subdir).mkdir(exist_ok=True)


# ============================================================================
# Coordinator
# ============================================================================


class BuildDirectoryCoordinator:
    """
    Owns a build root: reservations, metadata records and lookups.

    Writers go through ``reserve`` / ``record``; at most one builder holds a
    key at any time, across threads and processes. Readers use ``lookup``,
    which never takes a lock.

    Attributes:
        root: Layout of the build root
        toolkit_version: Toolkit release this root was created for
        lock_timeout: Default seconds ``reserve`` waits (None waits forever)
    """

    def __init__(
        self,
        root: BuildRoot,
        toolkit_version: str,
        lock_timeout: Optional[float] = None,
    ):
        self.root = root
        self.toolkit_version = toolkit_version
        self.lock_timeout = lock_timeout
        self.locks = LockManager(root.lock_dir)

    # ------------------------------------------------------------------
    # Opening
    # ------------------------------------------------------------------

    @classmethod
    def open(
        cls,
        root_path: Union[str, Path],
        toolkit_version: str,
        lock_timeout: Optional[float] = None,
    ) -> "BuildDirectoryCoordinator":
        """
        Open (creating if needed) a build root.

        Args:
            root_path: Build root directory
            toolkit_version: Toolkit release built in this root
            lock_timeout: Default reservation timeout in seconds

        Returns:
            Coordinator for the root

        Raises:
            RootConflict: If the root was created with another layout version
                or for another toolkit version, or is not a directory
        """
        root = BuildRoot(Path(root_path))
        if root.path.exists() and not root.path.is_dir():
            raise RootConflict(root.path, "path exists and is not a directory")

        root.create()
        coordinator = cls(root, toolkit_version, lock_timeout)

        with coordinator.locks.key_lock("root", slug="root"):
            coordinator._check_layout()

        coordinator._remove_stale_staging()
        logger.debug(f"Opened build root {root.path} (toolkit {toolkit_version})")
        return coordinator

    def _check_layout(self) -> None:
        layout_file = self.root.layout_file

        if not layout_file.exists():
            layout = {
                "layout_version": LAYOUT_VERSION,
                "toolkit_version": self.toolkit_version,
                "created": datetime.now().isoformat(),
            }
            atomic_write(layout_file, json.dumps(layout, indent=2))
            logger.info(f"Initialized build root {self.root.path}")
            return

        try:
            with open(layout_file, "r", encoding="utf-8") as f:
                layout = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            raise RootConflict(self.root.path, f"unreadable layout record: {e}") from e

        if not isinstance(layout, dict):
            raise RootConflict(self.root.path, "malformed layout record")

        found_layout = layout.get("layout_version")
        if found_layout != LAYOUT_VERSION:
            raise RootConflict(
                self.root.path,
                f"layout version {found_layout} (expected {LAYOUT_VERSION})",
            )

        found_version = str(layout.get("toolkit_version"))
        if not _same_version(found_version, self.toolkit_version):
            raise RootConflict(
                self.root.path,
                f"created for toolkit {found_version}, "
                f"not {self.toolkit_version}",
            )

    def _remove_stale_staging(self) -> int:
        """
        Remove staging directories left behind by builders that died.

        A staging directory is stale when the lock of its key is free.

        Returns:
            Number of directories removed
        """
        removed = 0
        for staging in sorted(self.root.staging_dir.iterdir()):
            slug = staging.name.split(".", 1)[0]
            with try_lock(self.locks.lock_path(slug)) as acquired:
                if not acquired:
                    continue
                logger.warning(f"Removing stale staging directory: {staging}")
                if staging.is_dir():
                    safe_rmtree(staging, require_prefix=self.root.staging_dir)
                else:
                    staging.unlink(missing_ok=True)
                removed += 1
        return removed

    # ------------------------------------------------------------------
    # Reservation and recording
    # ------------------------------------------------------------------

    @contextmanager
    def reserve(
        self, key: str, wait: bool = True, timeout: Optional[float] = None
    ) -> Iterator[Lease]:
        """
        Reserve a key for exclusive building.

        Args:
            key: Build root key
            wait: Block until the key is free; False fails fast
            timeout: Seconds to wait (default: coordinator lock_timeout)

        Yields:
            Lease with a private staging directory

        Raises:
            Busy: If the key is held by another builder (immediately when
                wait is False, after timeout otherwise)
        """
        key_category(key)
        slug = key_slug(key)

        if not wait:
            lock_timeout: float = 0
        else:
            lock_timeout = self.lock_timeout if timeout is None else timeout
            if lock_timeout is None:
                lock_timeout = -1

        try:
            with self.locks.key_lock(key, slug=slug, timeout=lock_timeout):
                staging = Path(
                    tempfile.mkdtemp(dir=self.root.staging_dir, prefix=f"{slug}.")
                )
                lease = Lease(key=key, slug=slug, staging_dir=staging)
                try:
                    yield lease
                finally:
                    lease.active = False
                    if staging.exists():
                        if not lease.recorded:
                            logger.debug(f"Discarding staged output for {key}")
                        safe_rmtree(staging, require_prefix=self.root.staging_dir)
        except LockTimeout as e:
            raise Busy(key, max(lock_timeout, 0)) from e

    def record(
        self,
        lease: Lease,
        fingerprint: str,
        artifact_paths: Iterable[Union[str, Path]],
        extra: Optional[dict] = None,
    ) -> Record:
        """
        Publish the staged output of a lease.

        Args:
            lease: Active lease whose staging directory holds the outputs
            fingerprint: Fingerprint of the inputs
            artifact_paths: Artifacts inside the staging directory (relative
                to it, or absolute)
            extra: Component-specific metadata stored with the record

        Returns:
            Record pointing at the published artifacts

        Raises:
            BuildRootError: If the lease is no longer active or an artifact
                is missing or outside the staging directory
        """
        if not lease.active or lease.recorded:
            raise BuildRootError(f"Lease for '{lease.key}' is no longer active")

        staging = lease.staging_dir
        relative: List[Path] = []
        sizes: List[Optional[int]] = []
        for artifact in artifact_paths:
            path = Path(artifact)
            if not path.is_absolute():
                path = staging / path
            if not is_relative_to(path.resolve(), staging.resolve()):
                raise BuildRootError(
                    f"Artifact {path} of '{lease.key}' is outside its staging directory"
                )
            if not path.exists():
                raise BuildRootError(f"Artifact {path} of '{lease.key}' was not produced")
            relative.append(path.resolve().relative_to(staging.resolve()))
            sizes.append(path.stat().st_size if path.is_file() else None)

        final_dir = self.root.entry_dir(lease.key, lease.slug, fingerprint)
        replace_directory(staging, final_dir)

        recorded_at = datetime.now().isoformat()
        meta = {
            "key": lease.key,
            "fingerprint": fingerprint,
            "directory": str(final_dir.relative_to(self.root.path)),
            "artifacts": [
                {"path": rel.as_posix(), "size": size}
                for rel, size in zip(relative, sizes)
            ],
            "extra": extra or {},
            "recorded_at": recorded_at,
        }
        atomic_write(self.root.meta_path(lease.slug), json.dumps(meta, indent=2))
        lease.recorded = True

        logger.info(f"Recorded {lease.key} ({short(fingerprint, 12)})")
        return Record(
            key=lease.key,
            fingerprint=fingerprint,
            directory=final_dir,
            artifacts=[final_dir / rel for rel in relative],
            extra=extra or {},
            recorded_at=recorded_at,
        )

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def lookup(self, key: str) -> Optional[Record]:
        """
        Return the valid record of a key, or None.

        Records whose artifacts are missing or have a different size than
        recorded are reported as absent. Never blocks.

        Args:
            key: Build root key
        """
        key_category(key)
        meta_path = self.root.meta_path(key_slug(key))
        if not meta_path.exists():
            return None

        try:
            with open(meta_path, "r", encoding="utf-8") as f:
                meta = json.load(f)
            directory = self.root.path / meta["directory"]
            artifacts = []
            for entry in meta["artifacts"]:
                path = directory / entry["path"]
                if not path.exists():
                    logger.debug(f"Record of {key} is stale: {path} is missing")
                    return None
                size = entry.get("size")
                if size is not None and path.stat().st_size != size:
                    logger.warning(f"Record of {key} is stale: {path} changed size")
                    return None
                artifacts.append(path)
        except (json.JSONDecodeError, OSError, KeyError, TypeError) as e:
            logger.warning(f"Ignoring unreadable record {meta_path}: {e}")
            return None

        if meta.get("key") != key:
            logger.warning(f"Record {meta_path} belongs to {meta.get('key')}, not {key}")
            return None

        return Record(
            key=key,
            fingerprint=meta["fingerprint"],
            directory=directory,
            artifacts=artifacts,
            extra=meta.get("extra", {}),
            recorded_at=meta.get("recorded_at"),
        )

    def find(self, key: str, fingerprint: str) -> Optional[Record]:
        """Return the record of a key only if its fingerprint matches."""
        record = self.lookup(key)
        if record is not None and record.fingerprint == fingerprint:
            return record
        return None

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def invalidate(self, key: str) -> bool:
        """
        Drop the record of a key so the next build redoes the work.

        Returns:
            True if a record was removed
        """
        key_category(key)
        slug = key_slug(key)
        timeout = -1 if self.lock_timeout is None else self.lock_timeout
        with self.locks.key_lock(key, slug=slug, timeout=timeout):
            meta_path = self.root.meta_path(slug)
            if meta_path.exists():
                meta_path.unlink()
                logger.info(f"Invalidated {key}")
                return True
        return False

    def prune(self) -> int:
        """
        Remove entry directories no metadata record points at.

        Each key is pruned under its own lock, so this is safe while other
        builds use the root.

        Returns:
            Number of entry directories removed
        """
        removed = 0
        for category_dir in sorted(set(CATEGORIES.values())):
            base = self.root.path / category_dir
            if not base.is_dir():
                continue
            for slug_dir in sorted(p for p in base.iterdir() if p.is_dir()):
                slug = slug_dir.name
                with try_lock(self.locks.lock_path(slug)) as acquired:
                    if not acquired:
                        continue
                    keep = self._recorded_directory(slug)
                    for entry in sorted(slug_dir.iterdir()):
                        if entry.is_dir() and entry != keep:
                            safe_rmtree(entry, require_prefix=base)
                            removed += 1
        if removed:
            logger.info(f"Pruned {removed} unreferenced entries from {self.root.path}")
        return removed

    def _recorded_directory(self, slug: str) -> Optional[Path]:
        meta_path = self.root.meta_path(slug)
        try:
            with open(meta_path, "r", encoding="utf-8") as f:
                return self.root.path / json.load(f)["directory"]
        except (OSError, json.JSONDecodeError, KeyError, TypeError):
            return None

    def stats(self) -> Dict[str, int]:
        """
        Count the valid records per category.

        Returns:
            Mapping of category ('config', 'tool', 'codegen', 'module') to count
        """
        counts = {category: 0 for category in CATEGORIES}
        for meta_path in self.root.meta_dir.glob("*.json"):
            try:
                with open(meta_path, "r", encoding="utf-8") as f:
                    key = json.load(f)["key"]
            except (OSError, json.JSONDecodeError, KeyError, TypeError):
                continue
            if self.lookup(key) is not None:
                counts[key_category(key)] += 1
        return counts


def _same_version(a: str, b: str) -> bool:
    try:
        return Version(a) == Version(b)
    except InvalidVersion:
        return a == b


__all__ = [
    "BuildRoot",
    "BuildDirectoryCoordinator",
    "Record",
    "Lease",
    "config_key",
    "tool_key",
    "codegen_key",
    "module_key",
    "key_slug",
    "LAYOUT_VERSION",
]
