"""Graph loader: fetch the Tuist graph, consulting the graph cache first."""

from __future__ import annotations

import json
import logging
import tempfile
from pathlib import Path

from catalyst.build.commands import CommandNotFound, CommandRunner
from catalyst.core.errors import MalformedGraphError, UpstreamToolError, output_tail
from catalyst.core.logging import CatalystLogger
from catalyst.core.models import ProjectGraph
from catalyst.graph.cache import GraphCache, project_key
from catalyst.graph.fingerprint import compute_graph_fingerprint
from catalyst.graph.parser import parse_graph

logger = logging.getLogger(__name__)

GRAPH_FILE = "graph.json"


class GraphLoader:
    """The only component that spawns the upstream graph tool."""

    def __init__(
        self,
        cache: GraphCache,
        runner: CommandRunner,
        tuist_bin: str = "tuist",
        run_logger: CatalystLogger | None = None,
    ):
        self.cache = cache
        self.runner = runner
        self.tuist_bin = tuist_bin
        self.run_logger = run_logger

    def _command(self, args: list[str], cwd: Path):
        try:
            result = self.runner.run(args, cwd=cwd)
        except CommandNotFound as e:
            raise UpstreamToolError(
                f"'{self.tuist_bin}' could not be located; is Tuist installed and on PATH?"
            ) from e
        if self.run_logger is not None:
            self.run_logger.command("load", args, result.returncode)
        if not result.ok:
            raise UpstreamToolError(
                f"'{' '.join(args)}' exited with status {result.returncode}",
                returncode=result.returncode,
                stderr=output_tail(result.stderr.splitlines() or result.stdout.splitlines()),
            )
        return result

    def tool_version(self, project_root: Path) -> str:
        """The upstream tool's reported version string."""
        result = self._command([self.tuist_bin, "version"], project_root)
        return result.stdout.strip()

    def fetch(self, project_root: str | Path, refresh: bool = False) -> ProjectGraph:
        """Return the project graph, from cache when its inputs are unchanged.

        A freshly fetched graph is always written back to the cache, even
        when ``refresh`` bypassed the lookup.
        """
        root = Path(project_root).resolve()
        key = project_key(root)
        version = self.tool_version(root)

        if refresh:
            reasons = ["refresh requested"]
        else:
            entry = self.cache.load_entry(key)
            if entry is None:
                reasons = ["no cached graph"]
            else:
                current = compute_graph_fingerprint(root, version, entry.graph.source_roots())
                if current.matches(entry.fingerprint):
                    logger.info("Graph cache hit for %s", key)
                    if self.run_logger is not None:
                        self.run_logger.cache_hit(key)
                    return entry.graph
                reasons = current.explain_diff(entry.fingerprint)

        logger.info("Graph cache miss for %s: %s", key, ", ".join(reasons))
        if self.run_logger is not None:
            self.run_logger.cache_miss(key, reasons)

        graph = self._fetch_upstream(root)
        fingerprint = compute_graph_fingerprint(root, version, graph.source_roots())
        self.cache.store(key, graph, fingerprint, root, tool_version=version)
        return graph

    def _fetch_upstream(self, root: Path) -> ProjectGraph:
        with tempfile.TemporaryDirectory(prefix="catalyst-graph-") as tmp:
            args = [
                self.tuist_bin, "graph",
                "--format", "json",
                "--no-open",
                "--output-path", tmp,
            ]
            result = self._command(args, root)
            raw = self.runner.read_output(Path(tmp) / GRAPH_FILE)

        if raw is None:
            raw = result.stdout.encode()
        try:
            document = json.loads(raw.decode("utf-8"))
        except UnicodeDecodeError as e:
            raise MalformedGraphError(f"Graph document is not valid UTF-8: {e}") from e
        except json.JSONDecodeError as e:
            raise MalformedGraphError(f"Graph document is not valid JSON: {e}") from e

        graph = parse_graph(document)
        logger.info("Parsed graph for project %s (%d targets)", graph.name, len(graph.targets))
        return graph
