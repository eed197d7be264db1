"""
Platform identification for qtbuildkit.

Build steps never assume the machine running the build is the machine the
output is for. This module normalizes both sides into PlatformInfo values:
the host platform is detected from the running interpreter, target platforms
are derived from compiler target triples (e.g. 'aarch64-linux-gnu').

Usage:
    from qtbuildkit.core.platform import detect_platform, parse_triple

    host = detect_platform()
    target = parse_triple("arm-linux-gnueabihf")
    print(host.platform_string(), target.platform_string())
"""

import functools
import platform
from dataclasses import dataclass


@dataclass(frozen=True)
class PlatformInfo:
    """
    Operating system and architecture of a host or target.

    Attributes:
        os: Operating system ('windows', 'linux', 'macos', 'android', 'ios')
        arch: CPU architecture ('x64', 'arm64', 'x86', 'arm', 'riscv64', ...)
    """

    os: str
    arch: str

    def platform_string(self) -> str:
        """
        Get canonical platform string (e.g., 'linux-x64', 'macos-arm64').

        Example:
            >>> PlatformInfo('linux', 'x64').platform_string()
            'linux-x64'
        """
        return f"{self.os}-{self.arch}"

    def __str__(self) -> str:
        return self.platform_string()


def normalize_arch(machine: str) -> str:
    """
    Normalize an architecture name.

    Returns:
        Normalized architecture: 'x64', 'arm64', 'x86', 'arm' or the input
    """
    machine = machine.lower()

    if machine in ("x86_64", "amd64", "x64"):
        return "x64"
    elif machine in ("aarch64", "arm64"):
        return "arm64"
    elif machine in ("i386", "i486", "i586", "i686", "x86"):
        return "x86"
    elif machine.startswith("arm"):
        return "arm"
    else:
        return machine


def parse_triple(triple: str) -> PlatformInfo:
    """
    Derive the platform from a compiler target triple.

    Args:
        triple: Target triple as printed by ``cc -dumpmachine``

    Returns:
        PlatformInfo for the triple

    Raises:
        ValueError: If the triple has no recognizable architecture or OS

    Example:
        >>> parse_triple("x86_64-pc-linux-gnu")
        PlatformInfo(os='linux', arch='x64')
    """
    parts = triple.strip().lower().split("-")
    if len(parts) < 2 or not parts[0]:
        raise ValueError(f"Malformed target triple: {triple!r}")

    arch = normalize_arch(parts[0])
    rest = "-".join(parts[1:])

    if "android" in rest:
        os_name = "android"
    elif "linux" in rest:
        os_name = "linux"
    elif "darwin" in rest or "macos" in rest:
        os_name = "macos"
    elif "ios" in rest:
        os_name = "ios"
    elif "windows" in rest or "mingw" in rest or "msvc" in rest:
        os_name = "windows"
    elif "freebsd" in rest:
        os_name = "freebsd"
    else:
        raise ValueError(f"Unrecognized operating system in target triple: {triple!r}")

    return PlatformInfo(os=os_name, arch=arch)


@functools.lru_cache(maxsize=1)
def detect_platform() -> PlatformInfo:
    """
    Detect the platform of the machine running the build.

    This function is cached - it only runs detection once per process.

    Raises:
        RuntimeError: If the operating system is not supported
    """
    system = platform.system().lower()

    if system == "windows":
        os_name = "windows"
    elif system == "linux":
        os_name = "android" if "android" in platform.platform().lower() else "linux"
    elif system == "darwin":
        os_name = "macos"
    elif system == "freebsd":
        os_name = "freebsd"
    else:
        raise RuntimeError(f"Unsupported operating system: {system}")

    return PlatformInfo(os=os_name, arch=normalize_arch(platform.machine()))


__all__ = ["PlatformInfo", "detect_platform", "parse_triple", "normalize_arch"]
