"""
Build fingerprints.

A fingerprint is a SHA256 digest over every input that can affect the content
of a cached artifact: toolchain identity, source content hashes, generated
inputs and declared build options. Fingerprints are rendered as
``sha256:<hex>`` strings and stored in the build root metadata records.

Example:
    >>> fp = (
    ...     Fingerprint("module")
    ...     .add("name", "core")
    ...     .add("toolchain", toolchain.identity().as_dict())
    ...     .add_files("sources", module.sources)
    ...     .digest()
    ... )
"""

import hashlib
import json
from pathlib import Path
from typing import Any, Iterable, Union

from qtbuildkit.core.filesystem import compute_file_hash

PREFIX = "sha256:"


def _canonical(value: Any) -> Any:
    """Convert a value into a JSON-serializable, order-stable structure."""
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, dict):
        return {str(k): _canonical(v) for k, v in sorted(value.items(), key=lambda i: str(i[0]))}
    if isinstance(value, (list, tuple)):
        return [_canonical(v) for v in value]
    if isinstance(value, (set, frozenset)):
        return sorted(_canonical(v) for v in value)
    if hasattr(value, "as_dict"):
        return _canonical(value.as_dict())
    return value


class Fingerprint:
    """
    Incremental fingerprint builder.

    Fields are hashed in the order they are added, together with their names,
    so two fingerprints only collide if every named input is identical.

    Attributes:
        kind: Artifact kind the fingerprint is for ('config', 'tool', ...)
    """

    def __init__(self, kind: str):
        self.kind = kind
        self._fields: list = [("kind", kind)]

    def add(self, name: str, value: Any) -> "Fingerprint":
        """Add a named JSON-compatible value."""
        self._fields.append((name, _canonical(value)))
        return self

    def add_file(self, name: str, path: Union[str, Path]) -> "Fingerprint":
        """Add a file by path and content hash."""
        path = Path(path)
        self._fields.append((name, [str(path), compute_file_hash(path)]))
        return self

    def add_files(self, name: str, paths: Iterable[Union[str, Path]]) -> "Fingerprint":
        """Add a list of files by path and content hash, keeping their order."""
        entries = [[str(Path(p)), compute_file_hash(p)] for p in paths]
        self._fields.append((name, entries))
        return self

    def digest(self) -> str:
        """Return the ``sha256:<hex>`` digest of all fields added so far."""
        payload = json.dumps(self._fields, sort_keys=True, separators=(",", ":"))
        return PREFIX + hashlib.sha256(payload.encode("utf-8")).hexdigest()


def short(fingerprint: str, length: int = 16) -> str:
    """Return the first characters of a fingerprint's hex digest."""
    if fingerprint.startswith(PREFIX):
        fingerprint = fingerprint[len(PREFIX):]
    return fingerprint[:length]


__all__ = ["Fingerprint", "short", "PREFIX"]
