"""YAML declaration parser for qtbuildkit.

This module parses and validates qtbuild.yaml declaration files into the
module, host tool and configuration objects the build core consumes.
Relative paths are resolved against the directory of the declaration file.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

import yaml
from packaging.version import InvalidVersion, Version

from qtbuildkit.build.module import CodeGenRequirement, Module
from qtbuildkit.configure.features import (
    ForwardingHeaders,
    QtConfiguration,
    default_configuration,
)
from qtbuildkit.hosttools.builder import DEFAULT_ARGS, HostToolSpec


OPTION_KEYS = {"jobs", "lock_timeout"}


class ConfigError(Exception):
    """Declaration parsing or validation error."""

    pass


@dataclass
class BuildOptions:
    """Build options."""

    jobs: Optional[int] = None
    lock_timeout: Optional[float] = None  # seconds, None waits forever


@dataclass
class BuildDeclaration:
    """Complete build declaration."""

    version: int
    toolkit_version: str
    base_dir: Path
    build_root: Path
    source_root: Optional[Path] = None
    options: BuildOptions = field(default_factory=BuildOptions)
    configuration: QtConfiguration = field(default_factory=default_configuration)
    host_tools: List[HostToolSpec] = field(default_factory=list)
    modules: List[Module] = field(default_factory=list)


def parse_declaration(path: Path) -> BuildDeclaration:
    """
    Parse a qtbuild.yaml declaration file.

    Args:
        path: Path to qtbuild.yaml

    Returns:
        Parsed and validated declaration

    Raises:
        ConfigError: If the declaration is invalid
    """
    path = Path(path)
    if not path.exists():
        raise ConfigError(f"Declaration file not found: {path}")

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML syntax: {e}") from e

    if data is None:
        raise ConfigError("Declaration file is empty")
    if not isinstance(data, dict):
        raise ConfigError("Declaration file must contain a mapping")

    return _parse_and_validate(data, path.parent.resolve())


def _parse_and_validate(data: dict, base_dir: Path) -> BuildDeclaration:
    """Parse and validate declaration data."""
    if "version" not in data:
        raise ConfigError("Missing required field: version")
    if data["version"] != 1:
        raise ConfigError(f"Unsupported version: {data['version']} (expected 1)")

    if "toolkit_version" not in data:
        raise ConfigError("Missing required field: toolkit_version")
    toolkit_version = str(data["toolkit_version"])
    try:
        Version(toolkit_version)
    except InvalidVersion as e:
        raise ConfigError(f"Invalid toolkit_version: {toolkit_version}") from e

    source_root = data.get("source_root")
    source_root = _resolve(base_dir, source_root) if source_root else None

    host_tools = []
    tool_names = set()
    for tool_data in _list(data, "host_tools"):
        tool = _parse_host_tool(tool_data, base_dir)
        if tool.name in tool_names:
            raise ConfigError(f"Duplicate host tool name: {tool.name}")
        tool_names.add(tool.name)
        host_tools.append(tool)

    if not data.get("modules"):
        raise ConfigError("At least one module must be declared")

    modules = []
    module_names = set()
    for module_data in _list(data, "modules"):
        module = _parse_module(module_data, base_dir)
        if module.name in module_names:
            raise ConfigError(f"Duplicate module name: {module.name}")
        module_names.add(module.name)
        modules.append(module)

    for module in modules:
        for dependency in module.dependencies:
            if dependency not in module_names:
                raise ConfigError(
                    f"Module '{module.name}' depends on undefined module: {dependency}"
                )
        for tool in module.tools:
            if tool not in tool_names:
                raise ConfigError(f"Module '{module.name}' uses undefined host tool: {tool}")

    return BuildDeclaration(
        version=data["version"],
        toolkit_version=toolkit_version,
        base_dir=base_dir,
        build_root=_resolve(base_dir, data.get("build_root", "build")),
        source_root=source_root,
        options=_parse_options(data.get("options") or {}),
        configuration=_parse_configure(data.get("configure") or {}),
        host_tools=host_tools,
        modules=modules,
    )


def _parse_options(data: dict) -> BuildOptions:
    """Parse build options."""
    if not isinstance(data, dict):
        raise ConfigError("options must be a dictionary")

    unknown = sorted(set(data) - OPTION_KEYS)
    if unknown:
        raise ConfigError(f"Unknown option(s): {', '.join(map(str, unknown))}")

    jobs = data.get("jobs")
    if jobs is not None and (not isinstance(jobs, int) or jobs < 1):
        raise ConfigError(f"options.jobs must be a positive integer, got {jobs!r}")

    lock_timeout = data.get("lock_timeout")
    if lock_timeout is not None:
        if not isinstance(lock_timeout, (int, float)) or lock_timeout < 0:
            raise ConfigError(f"options.lock_timeout must be >= 0, got {lock_timeout!r}")
        lock_timeout = float(lock_timeout)

    return BuildOptions(jobs=jobs, lock_timeout=lock_timeout)


def _parse_configure(data: dict) -> QtConfiguration:
    """Parse the configure section on top of the default configuration."""
    if not isinstance(data, dict):
        raise ConfigError("configure must be a dictionary")

    config = default_configuration()
    if data.get("platformdefs"):
        config.platformdefs_path = Path(data["platformdefs"])

    tables = {
        "features": config.global_features,
        "private_features": config.global_private_features,
        "qtcore_features": config.qtcore_features,
        "qtcore_private_features": config.qtcore_private_features,
    }
    for name, table in tables.items():
        for feature, enabled in _mapping(data, name).items():
            if not isinstance(enabled, bool):
                raise ConfigError(f"configure.{name}.{feature} must be true or false")
            table[str(feature)] = enabled

    for name, table in (
        ("defines", config.global_defines),
        ("qtcore_defines", config.qtcore_defines),
    ):
        for define, value in _mapping(data, name).items():
            table[str(define)] = "" if value is None else str(value)

    if "probe_headers" in data:
        config.probe_headers = {str(k): str(v) for k, v in _mapping(data, "probe_headers").items()}

    for entry in _list(data, "forwarding"):
        if not isinstance(entry, dict) or "module" not in entry or "path" not in entry:
            raise ConfigError("configure.forwarding entries need 'module' and 'path'")
        config.forwarding.append(ForwardingHeaders(str(entry["module"]), Path(entry["path"])))

    return config


def _parse_host_tool(data: dict, base_dir: Path) -> HostToolSpec:
    """Parse host tool declaration."""
    if not isinstance(data, dict):
        raise ConfigError("Host tool declaration must be a dictionary")
    for field_name in ("name", "sources"):
        if field_name not in data:
            raise ConfigError(f"Host tool missing required field: {field_name}")

    name = str(data["name"])
    sources = _parse_sources(data["sources"], base_dir, f"host tool '{name}'")
    if not sources:
        raise ConfigError(f"Host tool '{name}' has no sources")

    args = data.get("args", DEFAULT_ARGS)
    if not isinstance(args, list):
        raise ConfigError(f"Host tool '{name}': args must be a list")

    return HostToolSpec(
        name=name,
        sources=sources,
        version=str(data.get("version", "1")),
        include_dirs=[_resolve(base_dir, p) for p in _list(data, "include_dirs")],
        defines=_parse_defines(data, f"host tool '{name}'"),
        flags=[str(f) for f in _list(data, "flags")],
        output_pattern=str(data.get("output_pattern", "{stem}.cpp")),
        args=[str(a) for a in args],
    )


def _parse_module(data: dict, base_dir: Path) -> Module:
    """Parse module declaration."""
    if not isinstance(data, dict):
        raise ConfigError("Module declaration must be a dictionary")
    if "name" not in data:
        raise ConfigError("Module missing required field: name")

    name = str(data["name"])
    codegen = []
    for entry in _list(data, "codegen"):
        if not isinstance(entry, dict) or "tool" not in entry:
            raise ConfigError(f"Module '{name}': codegen entries need a 'tool'")
        args = entry.get("args")
        if args is not None and not isinstance(args, list):
            raise ConfigError(f"Module '{name}': codegen args must be a list")
        codegen.append(
            CodeGenRequirement(
                tool=str(entry["tool"]),
                inputs=_parse_sources(entry.get("inputs", []), base_dir, f"module '{name}'"),
                args=[str(a) for a in args] if args is not None else None,
            )
        )

    return Module(
        name=name,
        sources=_parse_sources(data.get("sources", []), base_dir, f"module '{name}'"),
        dependencies=[str(d) for d in _list(data, "dependencies")],
        include_dirs=[_resolve(base_dir, p) for p in _list(data, "include_dirs")],
        defines=_parse_defines(data, f"module '{name}'"),
        flags=[str(f) for f in _list(data, "flags")],
        codegen=codegen,
    )


def _parse_sources(data, base_dir: Path, owner: str) -> List[Path]:
    """
    Parse a source list.

    Accepts a list of paths and entries of the form
    ``{prefix: dir, files: [...]}`` or ``{glob: pattern}``.
    """
    if isinstance(data, (str, dict)):
        data = [data]
    if not isinstance(data, list):
        raise ConfigError(f"{owner}: sources must be a list")

    sources: List[Path] = []
    for entry in data:
        if isinstance(entry, str):
            sources.append(_resolve(base_dir, entry))
        elif isinstance(entry, dict) and "prefix" in entry:
            prefix = _resolve(base_dir, entry["prefix"])
            files = entry.get("files") or []
            if not isinstance(files, list):
                raise ConfigError(f"{owner}: 'files' under prefix {entry['prefix']} must be a list")
            sources.extend(prefix / str(f) for f in files)
        elif isinstance(entry, dict) and "glob" in entry:
            matches = sorted(p for p in base_dir.glob(str(entry["glob"])) if p.is_file())
            if not matches:
                raise ConfigError(f"{owner}: glob {entry['glob']} matches no files")
            sources.extend(matches)
        else:
            raise ConfigError(f"{owner}: invalid source entry {entry!r}")
    return sources


def _parse_defines(data: dict, owner: str) -> Dict[str, Optional[str]]:
    defines = data.get("defines") or {}
    if isinstance(defines, list):
        return {str(d): None for d in defines}
    if not isinstance(defines, dict):
        raise ConfigError(f"{owner}: defines must be a list or a dictionary")
    return {str(k): None if v is None else str(v) for k, v in defines.items()}


def _list(data: dict, key: str) -> list:
    value = data.get(key) or []
    if not isinstance(value, list):
        raise ConfigError(f"{key} must be a list")
    return value


def _mapping(data: dict, key: str) -> dict:
    value = data.get(key) or {}
    if not isinstance(value, dict):
        raise ConfigError(f"configure.{key} must be a dictionary")
    return value


def _resolve(base_dir: Path, path) -> Path:
    path = Path(str(path))
    return path if path.is_absolute() else (base_dir / path)


__all__ = [
    "ConfigError",
    "BuildOptions",
    "BuildDeclaration",
    "parse_declaration",
]
