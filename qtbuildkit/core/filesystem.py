"""
File system utilities for qtbuildkit.

This module provides the safe file operations the build root relies on:
- Atomic writes (temp file + rename) for metadata records
- Atomic directory replacement for staged build outputs
- Safe deletion guarded by a required prefix
- Content hashing and source globbing

A partially written file or directory must never become visible under its
final name; every helper here writes next to the destination first and
renames into place.
"""

import os
import shutil
import tempfile
import hashlib
from pathlib import Path
from typing import Iterator, Optional, Union


class FilesystemError(Exception):
    """Base exception for filesystem operations."""

    pass


# ============================================================================
# Path Utilities
# ============================================================================


def is_relative_to(path: Path, parent: Path) -> bool:
    """
    Check if path is relative to (under) parent directory.

    Args:
        path: Path to check
        parent: Parent directory

    Returns:
        True if path is under parent directory

    Example:
        >>> is_relative_to(Path("/home/user/project/file.txt"), Path("/home/user"))
        True
    """
    try:
        path.relative_to(parent)
        return True
    except ValueError:
        return False


def glob_files(path: Union[str, Path], extension: str) -> Iterator[Path]:
    """
    Yield all files with the given extension under path, in sorted order.

    Args:
        path: Directory to search recursively
        extension: File extension without the dot (e.g. 'h')

    Example:
        >>> headers = list(glob_files("qtbase/src/corelib", "h"))
    """
    suffix = f".{extension.lstrip('.')}"
    for item in sorted(Path(path).rglob(f"*{suffix}")):
        if item.is_file() and item.suffix == suffix:
            yield item


# ============================================================================
# Safe File Operations
# ============================================================================


def atomic_write(
    file_path: Union[str, Path], content: Union[str, bytes], encoding: str = "utf-8"
) -> None:
    """
    Write file atomically using temp file + rename.

    This ensures the file is never in a partially-written state.
    If the write fails, the original file (if any) remains unchanged.

    Args:
        file_path: Path to write to
        content: Content to write (string or bytes)
        encoding: Text encoding (used only for string content)

    Example:
        >>> atomic_write('meta/module-core.json', '{"fingerprint": "sha256:..."}')
    """
    file_path = Path(file_path)
    file_path.parent.mkdir(parents=True, exist_ok=True)

    # Create temp file in same directory (ensures same filesystem)
    temp_fd, temp_path_str = tempfile.mkstemp(
        dir=file_path.parent, prefix=f".{file_path.name}.", suffix=".tmp"
    )
    temp_path = Path(temp_path_str)

    try:
        if isinstance(content, str):
            with open(temp_fd, "w", encoding=encoding) as f:
                f.write(content)
        else:
            with open(temp_fd, "wb") as f:
                f.write(content)

        temp_path.replace(file_path)

    except Exception:
        try:
            temp_path.unlink(missing_ok=True)
        except OSError:
            pass
        raise


def replace_directory(source: Union[str, Path], destination: Union[str, Path]) -> None:
    """
    Move a fully written directory to its final location.

    If the destination already exists it is first renamed aside and removed
    after the move, so the destination name only ever points at a complete
    directory (or, after a crash between the two renames, at nothing).

    Args:
        source: Completed directory (must be on the same filesystem)
        destination: Final directory path

    Raises:
        FilesystemError: If the rename fails
    """
    source = Path(source)
    destination = Path(destination)
    destination.parent.mkdir(parents=True, exist_ok=True)

    displaced: Optional[Path] = None
    try:
        if destination.exists():
            displaced = Path(
                tempfile.mkdtemp(dir=destination.parent, prefix=f".{destination.name}.old.")
            )
            displaced.rmdir()
            destination.rename(displaced)
        source.rename(destination)
    except OSError as e:
        raise FilesystemError(
            f"Failed to move '{source}' into place at '{destination}': {e}"
        ) from e

    if displaced is not None:
        shutil.rmtree(displaced, ignore_errors=True)


def safe_rmtree(
    path: Union[str, Path], require_prefix: Optional[Union[str, Path]] = None
) -> None:
    """
    Safely remove a directory tree with safeguards.

    Args:
        path: Directory to remove
        require_prefix: If specified, path must be under this directory

    Raises:
        ValueError: If path is not under require_prefix
        FilesystemError: If deletion fails

    Example:
        >>> safe_rmtree('/tmp/build/staging/x', require_prefix='/tmp/build')
    """
    path = Path(path).resolve()

    if require_prefix is not None:
        require_prefix = Path(require_prefix).resolve()
        if not is_relative_to(path, require_prefix):
            raise ValueError(
                f"Refusing to delete '{path}': not under required prefix '{require_prefix}'"
            )

    if not path.exists():
        return

    if not path.is_dir():
        raise FilesystemError(f"Path is not a directory: {path}")

    try:
        shutil.rmtree(path)
    except OSError as e:
        raise FilesystemError(f"Failed to remove directory '{path}': {e}") from e


def make_executable(path: Union[str, Path]) -> None:
    """Add execute permission bits to a file."""
    path = Path(path)
    mode = path.stat().st_mode
    os.chmod(path, mode | 0o111)


# ============================================================================
# File Hashing
# ============================================================================


def compute_file_hash(
    file_path: Union[str, Path], algorithm: str = "sha256", chunk_size: int = 65536
) -> str:
    """
    Compute hash of a file.

    Memory-efficient implementation that reads file in chunks.

    Args:
        file_path: Path to file
        algorithm: Hash algorithm ('sha256', 'sha1', 'md5')
        chunk_size: Number of bytes to read at once

    Returns:
        Hex digest of the hash

    Raises:
        FilesystemError: If the file does not exist
    """
    file_path = Path(file_path)

    if not file_path.is_file():
        raise FilesystemError(f"File not found: {file_path}")

    try:
        hasher = hashlib.new(algorithm)
    except ValueError:
        raise ValueError(f"Unsupported hash algorithm: {algorithm}")

    with open(file_path, "rb") as f:
        while chunk := f.read(chunk_size):
            hasher.update(chunk)

    return hasher.hexdigest()


__all__ = [
    "FilesystemError",
    "is_relative_to",
    "glob_files",
    "atomic_write",
    "replace_directory",
    "safe_rmtree",
    "make_executable",
    "compute_file_hash",
]
