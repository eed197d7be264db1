"""
Qt configuration tables.

QtConfiguration holds everything the configuration headers are rendered
from: the platformdefs header location, global and QtCore features and
defines, the system headers whose availability is probed, and the header
directories that get forwarding headers. The configuration is independent of
the Qt source and build locations.

The defaults describe a static Linux build of Qt 6.2 with the GUI disabled.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional


@dataclass
class ForwardingHeaders:
    """
    Forwarding headers to generate for one Qt module.

    Attributes:
        module: Include prefix (e.g. 'QtCore')
        path: Header directory, relative to the Qt source root or absolute
    """

    module: str
    path: Path

    def as_dict(self) -> dict:
        return {"module": self.module, "path": str(self.path)}


@dataclass
class QtConfiguration:
    """
    Features and defines written into the Qt configuration headers.

    Feature tables map a feature name to enabled/disabled; they are rendered
    as ``QT_FEATURE_<name>`` (1 or -1). ``probe_headers`` maps a system header
    to the private feature its availability decides.
    """

    platformdefs_path: Optional[Path] = None
    global_features: Dict[str, bool] = field(default_factory=dict)
    global_private_features: Dict[str, bool] = field(default_factory=dict)
    global_defines: Dict[str, str] = field(default_factory=dict)
    qtcore_features: Dict[str, bool] = field(default_factory=dict)
    qtcore_private_features: Dict[str, bool] = field(default_factory=dict)
    qtcore_defines: Dict[str, str] = field(default_factory=dict)
    probe_headers: Dict[str, str] = field(default_factory=dict)
    forwarding: List[ForwardingHeaders] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "platformdefs_path": str(self.platformdefs_path) if self.platformdefs_path else None,
            "global_features": dict(self.global_features),
            "global_private_features": dict(self.global_private_features),
            "global_defines": dict(self.global_defines),
            "qtcore_features": dict(self.qtcore_features),
            "qtcore_private_features": dict(self.qtcore_private_features),
            "qtcore_defines": dict(self.qtcore_defines),
            "probe_headers": dict(self.probe_headers),
            "forwarding": [f.as_dict() for f in self.forwarding],
        }


def global_features() -> Dict[str, bool]:
    return {
        "shared": False,
        "static": True,
        "debug": False,
        "debug_and_release": False,
        "framework": False,
        "rpath": False,
        "cxx11": True,
        "cxx14": True,
        "cxx17": True,
        "cxx1z": True,
        "cxx20": False,
        "c11": True,
        "c99": True,
        "thread": True,
        "future": True,
        "concurrent": False,
        "signaling_nan": True,
        "force_asserts": False,
        "separate_debug_info": False,
        "pkg_config": False,
        "appstore_compliant": False,
        "simulator_and_device": False,
    }


def global_private_features() -> Dict[str, bool]:
    return {
        "alloca": True,
        "alloca_h": True,
        "alloca_malloc_h": False,
        "reduce_relocations": False,
        "reduce_exports": False,
        "use_bfd_linker": False,
        "use_gold_linker": False,
        "use_lld_linker": False,
        "dbus": False,
        "gui": False,
        "network": False,
        "widgets": False,
        "sse2": True,
        "stack_protector_strong": False,
        "system_zlib": False,
        "zstd": False,
        "ltcg": False,
        "enable_new_dtags": True,
        "gc_binaries": False,
        "posix_fallocate": True,
        "precompile_header": False,
    }


def global_defines() -> Dict[str, str]:
    return {
        "QT_STATIC": "",
        "QT_NO_EXCEPTIONS": "",
        "QT_COMPILER_SUPPORTS_SSE2": "1",
    }


def qt_core_features() -> Dict[str, bool]:
    return {
        "animation": False,
        "cborstreamreader": True,
        "cborstreamwriter": True,
        "commandlineparser": True,
        "concatenatetablesproxymodel": False,
        "cxx11_future": True,
        "datestring": True,
        "datetimeparser": True,
        "easingcurve": False,
        "filesystemiterator": True,
        "filesystemwatcher": False,
        "gestures": False,
        "identityproxymodel": False,
        "itemmodel": True,
        "library": False,
        "mimetype": False,
        "process": True,
        "processenvironment": True,
        "proxymodel": True,
        "regularexpression": True,
        "settings": True,
        "sharedmemory": False,
        "sortfilterproxymodel": True,
        "statemachine": False,
        "systemsemaphore": False,
        "temporaryfile": True,
        "textdate": True,
        "thread": True,
        "timezone": True,
        "topleveldomain": False,
        "translation": True,
        "transposeproxymodel": False,
        "xmlstream": True,
        "xmlstreamreader": True,
        "xmlstreamwriter": True,
    }


def qt_core_private_features() -> Dict[str, bool]:
    return {
        "clock_gettime": True,
        "clock_monotonic": True,
        "doubleconversion": True,
        "dladdr": True,
        "etw": False,
        "futimens": True,
        "getauxval": True,
        "getentropy": True,
        "glib": False,
        "gnu_libiconv": False,
        "hijricalendar": False,
        "icu": False,
        "inotify": True,
        "journald": False,
        "linkat": True,
        "lttng": False,
        "poll_ppoll": True,
        "poll_poll": False,
        "poll_pollts": False,
        "poll_select": False,
        "posix_libiconv": False,
        "renameat2": True,
        "slog2": False,
        "statx": True,
        "syslog": False,
        "system_doubleconversion": False,
        "system_libb2": False,
        "system_pcre2": True,
        "pcre2": True,
    }


def qt_core_defines() -> Dict[str, str]:
    return {}


def default_probe_headers() -> Dict[str, str]:
    """System headers probed on the target and the private feature each decides."""
    return {
        "alloca.h": "alloca_h",
        "sys/inotify.h": "inotify",
        "sys/auxv.h": "getauxval",
        "pcre2.h": "system_pcre2",
    }


def default_configuration() -> QtConfiguration:
    """
    Return the default (Linux, static) Qt configuration.

    The platformdefs header is left unset so that it is chosen from the
    probed platform and compiler.
    """
    return QtConfiguration(
        platformdefs_path=None,
        global_features=global_features(),
        global_private_features=global_private_features(),
        global_defines=global_defines(),
        qtcore_features=qt_core_features(),
        qtcore_private_features=qt_core_private_features(),
        qtcore_defines=qt_core_defines(),
        probe_headers=default_probe_headers(),
        forwarding=[],
    )


__all__ = ["QtConfiguration", "ForwardingHeaders", "default_configuration"]
