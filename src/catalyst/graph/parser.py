"""Parse a Tuist graph document (``tuist graph --format json``) into a ProjectGraph."""

from __future__ import annotations

import logging
from dataclasses import replace
from pathlib import Path
from typing import Any

from catalyst.core.errors import MalformedGraphError
from catalyst.core.models import (
    Dependency,
    DependencyKind,
    Destination,
    InfoPlist,
    Platform,
    ProductKind,
    ProjectGraph,
    Target,
)
from catalyst.graph.dag import resolve_build_order

logger = logging.getLogger(__name__)

SOURCE_EXTENSIONS = frozenset({".swift", ".m", ".mm", ".c", ".cc", ".cpp", ".h", ".hpp"})
RESOURCE_EXTENSIONS = frozenset({
    ".xcassets", ".storyboard", ".xib", ".strings", ".stringsdict", ".xcstrings",
    ".json", ".plist", ".png", ".jpg", ".jpeg", ".pdf", ".ttf", ".otf", ".bundle",
    ".xcdatamodeld", ".xcmappingmodel", ".scnassets", ".lproj", ".wav", ".mp3",
})

# Tuist spells deployment target keys after the platform's display name.
_DEPLOYMENT_KEYS = {
    "iOS": Platform.IOS,
    "macOS": Platform.MACOS,
    "tvOS": Platform.TVOS,
    "watchOS": Platform.WATCHOS,
    "visionOS": Platform.VISIONOS,
}

# Swift's Codable encoding of Plist.Value tags each value with its case name.
_PLIST_TAGS = frozenset({"string", "integer", "real", "boolean", "dictionary", "array"})


def _require(data: Any, key: str, kind: type | tuple[type, ...], where: str) -> Any:
    if not isinstance(data, dict):
        raise MalformedGraphError(f"Expected an object, got {type(data).__name__}", field=where)
    if key not in data or data[key] is None:
        raise MalformedGraphError(f"Missing required field '{key}'", field=f"{where}.{key}")
    value = data[key]
    if not isinstance(value, kind):
        expected = kind.__name__ if isinstance(kind, type) else "/".join(k.__name__ for k in kind)
        raise MalformedGraphError(
            f"Field '{key}' must be {expected}, got {type(value).__name__}",
            field=f"{where}.{key}",
        )
    return value


def _optional(data: dict, key: str, kind: type | tuple[type, ...], where: str, default: Any) -> Any:
    if data.get(key) is None:
        return default
    return _require(data, key, kind, where)


def _pairs(value: Any, where: str) -> list[tuple[Any, Any]]:
    """Entries of a Swift dictionary encoded either as an object or an alternating array."""
    if isinstance(value, dict):
        return list(value.items())
    if isinstance(value, list):
        if len(value) % 2 != 0:
            raise MalformedGraphError("Alternating key/value array has odd length", field=where)
        return [(value[i], value[i + 1]) for i in range(0, len(value), 2)]
    raise MalformedGraphError(f"Expected object or array, got {type(value).__name__}", field=where)


def _enum(enum_cls, raw: Any, where: str):
    try:
        return enum_cls(raw)
    except ValueError:
        raise MalformedGraphError(
            f"Unknown {enum_cls.__name__} '{raw}'", field=where
        ) from None


def decode_plist_value(value: Any) -> Any:
    """Decode a plist value, accepting plain JSON or Swift-tagged forms.

    ``{"string": {"_0": "x"}}`` and ``{"string": "x"}`` both decode to ``"x"``.
    """
    if isinstance(value, dict) and len(value) == 1:
        (tag, inner), = value.items()
        if tag in _PLIST_TAGS:
            if isinstance(inner, dict) and set(inner) == {"_0"}:
                inner = inner["_0"]
            if tag == "dictionary":
                return {k: decode_plist_value(v) for k, v in inner.items()}
            if tag == "array":
                return [decode_plist_value(v) for v in inner]
            return inner
    if isinstance(value, dict):
        return {k: decode_plist_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [decode_plist_value(v) for v in value]
    return value


def parse_info_plist(raw: Any, where: str) -> InfoPlist:
    """Parse Tuist's InfoPlist enum (``extendingDefault``, ``dictionary``, ``file``)."""
    if raw is None:
        return InfoPlist()
    if not isinstance(raw, dict) or len(raw) != 1:
        raise MalformedGraphError("infoPlist must be a single-case object", field=where)
    (case, payload), = raw.items()
    if case == "extendingDefault":
        overrides = payload.get("with", {}) if isinstance(payload, dict) else {}
        return InfoPlist(overrides=decode_plist_value(overrides), extends_default=True)
    if case == "dictionary":
        overrides = payload.get("_0", payload) if isinstance(payload, dict) else {}
        return InfoPlist(overrides=decode_plist_value(overrides), extends_default=False)
    if case in ("file", "generatedFile"):
        path = payload.get("path") if isinstance(payload, dict) else None
        if isinstance(path, dict):
            path = path.get("pathString") or path.get("_0")
        if not isinstance(path, str):
            raise MalformedGraphError("infoPlist file has no path", field=f"{where}.{case}.path")
        return InfoPlist(file=path, extends_default=False)
    raise MalformedGraphError(f"Unknown infoPlist case '{case}'", field=where)


def _path_string(value: Any, where: str) -> str:
    """Tuist paths are plain strings; older encoders wrap them as ``{"pathString": ...}``."""
    if isinstance(value, str):
        return value
    if isinstance(value, dict) and isinstance(value.get("pathString"), str):
        return value["pathString"]
    raise MalformedGraphError("Expected a path string", field=where)


def _classify(path: str) -> str | None:
    suffix = Path(path).suffix.lower()
    if suffix in SOURCE_EXTENSIONS:
        return "source"
    if suffix in RESOURCE_EXTENSIONS:
        return "resource"
    return None


def _resolved_files(folder: dict, where: str) -> list[str]:
    files = _optional(folder, "resolvedFiles", list, where, [])
    paths = []
    for i, entry in enumerate(files):
        raw = entry.get("path") if isinstance(entry, dict) else entry
        paths.append(_path_string(raw, f"{where}.resolvedFiles[{i}]"))
    return paths


def _explicit_resources(raw: Any, where: str) -> list[str]:
    """Resources declared with a concrete path outside buildable folders."""
    if raw is None:
        return []
    entries = raw.get("resources", []) if isinstance(raw, dict) else raw
    if not isinstance(entries, list):
        raise MalformedGraphError("resources must be a list", field=where)
    paths = []
    for i, entry in enumerate(entries):
        if isinstance(entry, str):
            paths.append(entry)
        elif isinstance(entry, dict) and "path" in entry:
            paths.append(_path_string(entry["path"], f"{where}[{i}].path"))
        else:
            logger.debug("Ignoring unresolved resource entry at %s[%d]", where, i)
    return paths


def _dependency_name(entry: Any, where: str) -> tuple[str | None, str | None]:
    """Return (target name, explicit kind) for target dependencies, (None, None) otherwise."""
    if not isinstance(entry, dict):
        raise MalformedGraphError("Dependency must be an object", field=where)
    kind = entry.get("kind")
    if "target" in entry:
        ref = entry["target"]
        name = ref if isinstance(ref, str) else _require(ref, "name", str, f"{where}.target")
        return name, kind
    if "project" in entry:
        ref = entry["project"]
        name = _require(ref, "target", str, f"{where}.project")
        return name, kind
    logger.debug("Ignoring non-target dependency %s at %s", sorted(entry), where)
    return None, None


def _parse_target(data: Any, where: str) -> tuple[Target, list[tuple[str, str | None]]]:
    name = _require(data, "name", str, where)
    product = _enum(ProductKind, _require(data, "product", str, where), f"{where}.product")
    bundle_id = _require(data, "bundleId", str, where)

    destinations = frozenset(
        _enum(Destination, d, f"{where}.destinations[{i}]")
        for i, d in enumerate(_optional(data, "destinations", list, where, []))
    )

    source_roots: list[str] = []
    sources: list[str] = []
    resources: list[str] = []
    for i, folder in enumerate(_optional(data, "buildableFolders", list, where, [])):
        folder_where = f"{where}.buildableFolders[{i}]"
        if isinstance(folder, str):
            source_roots.append(folder)
            continue
        source_roots.append(_path_string(_require(folder, "path", (str, dict), folder_where), f"{folder_where}.path"))
        for path in _resolved_files(folder, folder_where):
            kind = _classify(path)
            if kind == "source":
                sources.append(path)
            elif kind == "resource":
                resources.append(path)

    for path in _explicit_resources(data.get("resources"), f"{where}.resources"):
        if path not in resources:
            resources.append(path)

    deployment_targets: dict[Platform, str] = {}
    for key, version in _optional(data, "deploymentTargets", dict, where, {}).items():
        if key in _DEPLOYMENT_KEYS and isinstance(version, str):
            deployment_targets[_DEPLOYMENT_KEYS[key]] = version

    deps: list[tuple[str, str | None]] = []
    for i, entry in enumerate(_optional(data, "dependencies", list, where, [])):
        dep_name, dep_kind = _dependency_name(entry, f"{where}.dependencies[{i}]")
        if dep_name is not None:
            deps.append((dep_name, dep_kind))

    target = Target(
        name=name,
        product=product,
        bundle_id=bundle_id,
        destinations=destinations,
        source_roots=tuple(source_roots),
        sources=tuple(sources),
        resources=tuple(resources),
        info_plist=parse_info_plist(data.get("infoPlist"), f"{where}.infoPlist"),
        deployment_targets=deployment_targets,
    )
    return target, deps


def _dependency_kind(dep: Target, explicit: str | None, where: str) -> DependencyKind:
    if explicit is not None:
        return _enum(DependencyKind, explicit, where)
    if dep.product is ProductKind.FRAMEWORK:
        return DependencyKind.EMBED
    return DependencyKind.LINK


def parse_graph(document: Any) -> ProjectGraph:
    """Build a ProjectGraph from a decoded Tuist graph document.

    Targets from every project in the document are merged; their names must
    be unique. Raises MalformedGraphError or CyclicDependencyError.
    """
    name = _require(document, "name", str, "graph")
    path = _path_string(_require(document, "path", (str, dict), "graph"), "graph.path")
    projects = _require(document, "projects", (dict, list), "graph")

    parsed: dict[str, Target] = {}
    raw_deps: dict[str, list[tuple[str, str | None]]] = {}

    for project_path, project in _pairs(projects, "graph.projects"):
        where = f"projects[{project_path}]"
        targets = _require(project, "targets", (dict, list), where)
        entries = list(targets.values()) if isinstance(targets, dict) else targets
        for target_data in entries:
            target_where = f"{where}.targets"
            target, deps = _parse_target(target_data, target_where)
            if target.name in parsed:
                raise MalformedGraphError(
                    f"Duplicate target name '{target.name}'", field=f"{target_where}.{target.name}"
                )
            parsed[target.name] = target
            raw_deps[target.name] = deps

    resolved: dict[str, Target] = {}
    for target_name, target in parsed.items():
        dependencies = []
        for i, (dep_name, explicit) in enumerate(raw_deps[target_name]):
            where = f"targets.{target_name}.dependencies[{i}]"
            if dep_name not in parsed:
                raise MalformedGraphError(
                    f"Target '{target_name}' depends on unknown target '{dep_name}'", field=where
                )
            dependencies.append(
                Dependency(dep_name, _dependency_kind(parsed[dep_name], explicit, f"{where}.kind"))
            )
        resolved[target_name] = replace(target, dependencies=tuple(dependencies))

    graph = ProjectGraph(name=name, path=path, targets=resolved)
    resolve_build_order(graph)
    return graph
