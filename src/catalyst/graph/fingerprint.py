"""Input fingerprinting: self-describing, versioned hashes for graph cache invalidation."""

from __future__ import annotations

import hashlib
import json
import os
from dataclasses import dataclass
from pathlib import Path

GRAPH_SCHEME = "catalyst:graph:v1"

# Manifest files whose presence and mtime determine the Tuist graph.
MANIFEST_FILES = (
    "Project.swift",
    "Workspace.swift",
    "Tuist.swift",
    "Tuist/Config.swift",
    "Tuist/Package.swift",
    "Package.swift",
)
HELPERS_DIR = "Tuist/ProjectDescriptionHelpers"


@dataclass(frozen=True)
class Fingerprint:
    """A self-describing, versioned hash of the inputs that produced a graph.

    Each fingerprint records its scheme (how it was generated) and its
    components (what went into it), so a mismatch can be explained.
    """

    scheme: str
    digest: str  # SHA256 hex (full)
    components: dict[str, str]  # component_name -> component_hash

    def matches(self, other: Fingerprint | None) -> bool:
        """Match requires same scheme AND same digest."""
        if other is None:
            return False
        return self.scheme == other.scheme and self.digest == other.digest

    def explain_diff(self, other: Fingerprint | None) -> list[str]:
        """Human-readable list of reasons these fingerprints differ."""
        if other is None:
            return ["no stored fingerprint"]
        if self.scheme != other.scheme:
            return [f"scheme changed ({other.scheme} -> {self.scheme})"]
        all_keys = sorted(set(self.components) | set(other.components))
        changed = [k for k in all_keys if self.components.get(k) != other.components.get(k)]
        return [f"{k} changed" for k in changed] or ["unknown"]

    def to_dict(self) -> dict:
        return {
            "scheme": self.scheme,
            "digest": self.digest,
            "components": dict(self.components),
        }

    @classmethod
    def from_dict(cls, data: dict) -> Fingerprint | None:
        """Deserialize from a dict. Returns None if data is empty/missing."""
        if not data or "scheme" not in data:
            return None
        return cls(
            scheme=data["scheme"],
            digest=data["digest"],
            components=dict(data.get("components", {})),
        )


def compute_digest(components: dict[str, str]) -> str:
    """Deterministic digest from sorted component hashes."""
    parts = "|".join(f"{k}={v}" for k, v in sorted(components.items()))
    return hashlib.sha256(parts.encode()).hexdigest()


def fingerprint_value(obj) -> str:
    """Deterministic SHA256 prefix for any common Python value.

    The built-in hash() is salted per process, so values are serialized to a
    canonical string form and hashed with SHA256 instead.
    """
    if obj is None:
        raw = ""
    elif isinstance(obj, str):
        raw = obj.replace("\r\n", "\n").rstrip()
    elif isinstance(obj, dict):
        raw = json.dumps(obj, sort_keys=True, default=str)
    elif isinstance(obj, (list, tuple)):
        raw = "|".join(sorted(str(x) for x in obj))
    else:
        raw = str(obj)
    return hashlib.sha256(raw.encode()).hexdigest()[:16]


def find_manifests(project_root: Path) -> list[Path]:
    """Manifest files present under ``project_root``, in a stable order."""
    found = [project_root / name for name in MANIFEST_FILES if (project_root / name).is_file()]
    helpers = project_root / HELPERS_DIR
    if helpers.is_dir():
        found.extend(sorted(p for p in helpers.rglob("*.swift") if p.is_file()))
    return found


def _listing(folders: list[str]) -> list[str]:
    """Relative file listing of every folder, prefixed with the folder path."""
    entries: list[str] = []
    for folder in folders:
        root = Path(folder)
        if not root.is_dir():
            entries.append(f"{folder}:<missing>")
            continue
        for dirpath, dirnames, filenames in os.walk(root):
            dirnames.sort()
            for name in sorted(filenames):
                entries.append(str(Path(dirpath, name)))
    return entries


def compute_graph_fingerprint(
    project_root: Path,
    tool_version: str,
    source_roots: list[str] | None = None,
) -> Fingerprint:
    """Fingerprint the inputs that determine the upstream tool's graph output.

    Components:
    - manifest: paths of the project manifests
    - mtime: their modification times (nanoseconds)
    - tool: the upstream tool's reported version
    - folders: file listing of the graph's buildable folders, since adding a
      source file changes the graph without touching any manifest
    """
    manifests = find_manifests(project_root)
    components = {
        "manifest": fingerprint_value([str(p) for p in manifests]),
        "mtime": fingerprint_value([f"{p}@{p.stat().st_mtime_ns}" for p in manifests]),
        "tool": fingerprint_value(tool_version.strip()),
    }
    if source_roots is not None:
        components["folders"] = fingerprint_value(_listing(sorted(source_roots)))
    return Fingerprint(
        scheme=GRAPH_SCHEME,
        digest=compute_digest(components),
        components=components,
    )
