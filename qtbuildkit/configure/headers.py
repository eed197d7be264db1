"""
Rendering of Qt configuration and forwarding headers.

Configuration headers are plain ``#define`` lists: defines are written as
``#define NAME VALUE`` and features as ``#define QT_FEATURE_<name> 1`` or
``-1``. Entries are sorted by name so identical inputs always render
byte-identical headers.

Forwarding headers make headers of the Qt source tree reachable under their
module include prefix (``#include <QtCore/qstring.h>``, ``<QtCore/QString>``,
``<QtCore/private/qobject_p.h>``) without copying them.
"""

import logging
import re
from pathlib import Path
from typing import Dict, Iterator, List, Mapping, Optional

from qtbuildkit.configure.features import QtConfiguration
from qtbuildkit.configure.probes import ProbeInputs, ProbeResults
from qtbuildkit.core.filesystem import atomic_write, glob_files

logger = logging.getLogger(__name__)

# Logical header names, relative to the generated include directory
QCONFIG = "QtCore/qconfig.h"
QCONFIG_PRIVATE = "QtCore/private/qconfig_p.h"
QTCORE_CONFIG = "QtCore/qtcore-config.h"
QTCORE_CONFIG_PRIVATE = "QtCore/private/qtcore-config_p.h"
PLATFORMDEFS = "QtCore/qplatformdefs.h"

# (os, compiler family) -> mkspec directory providing qplatformdefs.h
MKSPECS: Dict[tuple, str] = {
    ("linux", "gcc"): "linux-g++",
    ("linux", "clang"): "linux-clang",
    ("android", "clang"): "android-clang",
    ("macos", "clang"): "macx-clang",
    ("ios", "clang"): "macx-ios-clang",
    ("freebsd", "clang"): "freebsd-clang",
    ("freebsd", "gcc"): "freebsd-g++",
    ("windows", "gcc"): "win32-g++",
    ("windows", "clang"): "win32-clang-g++",
}

_CLASS_NAME = re.compile(r"^Q[A-Za-z0-9]*$")


def make_define_lines(defines: Mapping[str, str]) -> str:
    """Render defines as ``#define NAME VALUE`` lines."""
    lines = []
    for name, value in sorted(defines.items()):
        lines.append(f"#define {name} {value}".rstrip() + "\n")
    return "".join(lines)


def make_feature_lines(features: Mapping[str, bool]) -> str:
    """Render features as ``#define QT_FEATURE_<name> 1/-1`` lines."""
    return "".join(
        f"#define QT_FEATURE_{name} {1 if enabled else -1}\n"
        for name, enabled in sorted(features.items())
    )


def render_config_header(
    banner: str, defines: Mapping[str, str], features: Mapping[str, bool]
) -> str:
    return f"/* {banner} */\n" + make_define_lines(defines) + make_feature_lines(features)


def render_config_headers(inputs: ProbeInputs, results: ProbeResults) -> Dict[str, str]:
    """
    Render the four configuration headers.

    Probed header availability overrides the corresponding private feature;
    the pointer size and cross-compilation flag are taken from the probes.

    Returns:
        Mapping of logical header name to content
    """
    config: QtConfiguration = inputs.configuration
    banner = (
        f"Qt {inputs.toolkit_version} configuration for {results.platform} "
        f"({results.compiler})"
    )

    global_defines = dict(config.global_defines)
    global_defines["QT_POINTER_SIZE"] = str(results.pointer_size)

    global_private = dict(config.global_private_features)
    global_private["cross_compile"] = inputs.cross_compiling

    qtcore_private = dict(config.qtcore_private_features)
    for header, feature in config.probe_headers.items():
        if header not in results.headers:
            continue
        if feature in global_private:
            global_private[feature] = results.headers[header]
        else:
            qtcore_private[feature] = results.headers[header]

    return {
        QCONFIG: render_config_header(banner, global_defines, config.global_features),
        QCONFIG_PRIVATE: render_config_header(banner, {}, global_private),
        QTCORE_CONFIG: render_config_header(
            banner, config.qtcore_defines, config.qtcore_features
        ),
        QTCORE_CONFIG_PRIVATE: render_config_header(banner, {}, qtcore_private),
    }


def default_platformdefs(results: ProbeResults) -> Path:
    """
    Return the qplatformdefs.h location for the probed platform and compiler.

    The path is relative to the Qt source root.

    Raises:
        ValueError: If no mkspec matches the platform and compiler
    """
    mkspec = MKSPECS.get((results.platform.os, results.compiler.name))
    if mkspec is None:
        raise ValueError(
            f"No mkspec for {results.compiler.name} on {results.platform.os}"
        )
    return Path("qtbase") / "mkspecs" / mkspec / "qplatformdefs.h"


def forwarding_header(target: Path) -> str:
    """Content of a header that includes ``target`` by absolute path."""
    return f'#include "{Path(target).resolve().as_posix()}"\n'


def find_class_names(text: str) -> List[str]:
    """
    Find Qt class names declared in a header.

    A class name is the token after ``class`` (or after ``class MACRO`` for
    exported classes) that starts with 'Q' and contains no punctuation.
    Forward declarations are skipped.
    """
    tokens = text.split() + [""]
    found = []
    for first, second, third in zip(tokens, tokens[1:], tokens[2:]):
        if first != "class":
            continue
        candidate = third if _is_export_macro(second) else second
        if _CLASS_NAME.match(candidate) and candidate not in found:
            found.append(candidate)
    return found


def _is_export_macro(token: str) -> bool:
    return token.isupper() and token.startswith("Q") and token.endswith("_EXPORT")


def _forwarding_entries(source_dir: Path, module: str) -> Iterator[tuple]:
    """Yield (logical name, target) pairs for every header under source_dir."""
    for header in glob_files(source_dir, "h"):
        name = header.name
        if name.endswith("_p.h"):
            yield f"{module}/private/{name}", header
            continue

        yield f"{module}/{name}", header
        try:
            text = header.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            logger.warning(f"Could not scan {header} for class names: {e}")
            continue
        for class_name in find_class_names(text):
            yield f"{module}/{class_name}", header


def write_forwarding_headers(
    include_dir: Path, module: str, source_dir: Path
) -> List[str]:
    """
    Write forwarding headers for every header of a module source directory.

    Args:
        include_dir: Generated include directory
        module: Include prefix (e.g. 'QtCore')
        source_dir: Directory holding the module headers

    Returns:
        Logical names of the written headers, in sorted order

    Raises:
        FileNotFoundError: If source_dir does not exist
    """
    if not source_dir.is_dir():
        raise FileNotFoundError(f"Forwarding header directory not found: {source_dir}")

    written: Dict[str, Path] = {}
    for logical, target in _forwarding_entries(source_dir, module):
        if logical in written:
            if written[logical] != target:
                logger.debug(
                    f"{logical} already forwards to {written[logical]}, "
                    f"ignoring {target}"
                )
            continue
        written[logical] = target
        atomic_write(include_dir / logical, forwarding_header(target))

    logger.debug(f"Wrote {len(written)} forwarding headers for {module}")
    return sorted(written)


def write_platformdefs(
    include_dir: Path, inputs: ProbeInputs, results: ProbeResults
) -> Optional[str]:
    """
    Write the qplatformdefs.h forwarding header.

    Skipped (returns None) when no Qt source root is configured and no
    absolute platformdefs path was given.

    Raises:
        FileNotFoundError: If the selected platformdefs header does not exist
    """
    path = inputs.configuration.platformdefs_path or default_platformdefs(results)
    if inputs.source_root is None and not Path(path).is_absolute():
        logger.debug("No Qt source root, skipping qplatformdefs.h")
        return None

    target = inputs.resolve_source_path(path)
    if not target.is_file():
        raise FileNotFoundError(f"Platform definitions header not found: {target}")
    atomic_write(include_dir / PLATFORMDEFS, forwarding_header(target))
    return PLATFORMDEFS


__all__ = [
    "QCONFIG",
    "QCONFIG_PRIVATE",
    "QTCORE_CONFIG",
    "QTCORE_CONFIG_PRIVATE",
    "PLATFORMDEFS",
    "make_define_lines",
    "make_feature_lines",
    "render_config_headers",
    "default_platformdefs",
    "find_class_names",
    "forwarding_header",
    "write_forwarding_headers",
    "write_platformdefs",
]
