"""Graph cache: persist the last fetched project graph per project (filesystem-backed)."""

from __future__ import annotations

import hashlib
import json
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from catalyst.core.errors import atomic_write
from catalyst.core.models import ProjectGraph
from catalyst.graph.fingerprint import Fingerprint

logger = logging.getLogger(__name__)

CACHE_FORMAT_VERSION = 1


def project_key(project_root: str | Path) -> str:
    """Stable identity for a project: directory slug + hash of the absolute path."""
    root = Path(project_root).resolve()
    slug = re.sub(r"[^a-z0-9]+", "-", root.name.lower()).strip("-") or "project"
    digest = hashlib.sha256(str(root).encode()).hexdigest()[:16]
    return f"{slug}-{digest}"


@dataclass(frozen=True)
class CacheEntry:
    """A cached graph together with the fingerprint of the inputs that produced it."""

    project_key: str
    project_root: str
    graph: ProjectGraph
    fingerprint: Fingerprint
    created_at: datetime
    tool_version: str = ""

    def to_dict(self) -> dict:
        return {
            "version": CACHE_FORMAT_VERSION,
            "project_key": self.project_key,
            "project_root": self.project_root,
            "tool_version": self.tool_version,
            "created_at": self.created_at.isoformat(),
            "fingerprint": self.fingerprint.to_dict(),
            "graph": self.graph.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> CacheEntry:
        if not isinstance(data, dict):
            raise ValueError(f"cache entry must be an object, got {type(data).__name__}")
        if data.get("version") != CACHE_FORMAT_VERSION:
            raise ValueError(f"unsupported cache format version {data.get('version')!r}")
        fingerprint = Fingerprint.from_dict(data.get("fingerprint", {}))
        if fingerprint is None:
            raise ValueError("cache entry has no fingerprint")
        return cls(
            project_key=data["project_key"],
            project_root=data["project_root"],
            graph=ProjectGraph.from_dict(data["graph"]),
            fingerprint=fingerprint,
            created_at=datetime.fromisoformat(data["created_at"]),
            tool_version=str(data.get("tool_version", "")),
        )


class GraphCache:
    """One JSON file per project key under ``cache_dir``.

    Entries are replaced atomically. Concurrent writers race and the last
    one wins; a lost write only costs an extra fetch on the next run.
    """

    def __init__(self, cache_dir: str | Path):
        self.cache_dir = Path(cache_dir)

    def path_for(self, key: str) -> Path:
        return self.cache_dir / f"{key}.json"

    def load_entry(self, key: str) -> CacheEntry | None:
        """Load the raw entry for ``key``. Corrupt or unreadable files are a miss."""
        path = self.path_for(key)
        if not path.exists():
            return None
        try:
            data = json.loads(path.read_text())
            return CacheEntry.from_dict(data)
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
            logger.warning("Ignoring unreadable graph cache %s: %s", path, e)
            return None

    def load(self, key: str, fingerprint: Fingerprint | None = None) -> ProjectGraph | None:
        """Return the cached graph, or None if absent or not matching ``fingerprint``."""
        entry = self.load_entry(key)
        if entry is None:
            return None
        if fingerprint is not None and not fingerprint.matches(entry.fingerprint):
            return None
        return entry.graph

    def store(
        self,
        key: str,
        graph: ProjectGraph,
        fingerprint: Fingerprint,
        project_root: str | Path | None = None,
        tool_version: str = "",
    ) -> CacheEntry:
        entry = CacheEntry(
            project_key=key,
            project_root=str(project_root if project_root is not None else graph.path),
            graph=graph,
            fingerprint=fingerprint,
            created_at=datetime.now(timezone.utc),
            tool_version=tool_version,
        )
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        atomic_write(self.path_for(key), json.dumps(entry.to_dict(), indent=2, sort_keys=True))
        logger.info("Cached graph for %s at %s", key, self.path_for(key))
        return entry

    def invalidate(self, key: str) -> bool:
        """Discard the entry for ``key``. Returns True if one existed."""
        path = self.path_for(key)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        logger.info("Invalidated graph cache for %s", key)
        return True

    def clear(self) -> int:
        """Discard every entry. Returns the number removed."""
        if not self.cache_dir.is_dir():
            return 0
        removed = 0
        for path in sorted(self.cache_dir.glob("*.json")):
            path.unlink(missing_ok=True)
            removed += 1
        return removed

    def keys(self) -> list[str]:
        if not self.cache_dir.is_dir():
            return []
        return sorted(p.stem for p in self.cache_dir.glob("*.json"))
