"""End-to-end pipeline: load graph, generate Bazel files, build, optionally run."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from catalyst.bazel.generator import BuildFileGenerator, GeneratedArtifactSet
from catalyst.build.cassette import make_runner
from catalyst.build.commands import CommandRunner, LineCallback
from catalyst.build.orchestrator import BuildOrchestrator, BuildReport
from catalyst.build.simulator import RunReport, SimulatorRunner
from catalyst.config import Settings
from catalyst.core.logging import CatalystLogger
from catalyst.core.models import ProjectGraph
from catalyst.graph.cache import GraphCache
from catalyst.graph.loader import GraphLoader


@dataclass
class PipelineResult:
    graph: ProjectGraph
    artifacts: GeneratedArtifactSet
    build: BuildReport | None = None
    run: RunReport | None = None


class CatalystPipeline:
    """Wires the stages together. Every collaborator is passed in explicitly."""

    def __init__(
        self,
        settings: Settings,
        runner: CommandRunner,
        cache: GraphCache,
        run_logger: CatalystLogger | None = None,
    ):
        self.settings = settings
        self.runner = runner
        self.cache = cache
        self.run_logger = run_logger

    @classmethod
    def from_settings(cls, settings: Settings, run_logger: CatalystLogger | None = None) -> CatalystPipeline:
        runner = make_runner(settings.cassette_mode, settings.cassette_dir)
        return cls(settings, runner, GraphCache(settings.graphs_dir), run_logger)

    @contextmanager
    def _stage(self, name: str) -> Iterator[None]:
        if self.run_logger is None:
            yield
            return
        self.run_logger.stage_start(name)
        try:
            yield
        except BaseException:
            self.run_logger.stage_finish(name, status="failed")
            raise
        self.run_logger.stage_finish(name)

    # -- Stages --

    def load(self, project_root: str | Path, refresh: bool = False) -> ProjectGraph:
        loader = GraphLoader(
            self.cache, self.runner, tuist_bin=self.settings.tuist_bin, run_logger=self.run_logger
        )
        with self._stage("load"):
            return loader.fetch(project_root, refresh=refresh)

    def generate(self, graph: ProjectGraph, output_dir: str | Path) -> GeneratedArtifactSet:
        generator = BuildFileGenerator(self.settings, run_logger=self.run_logger)
        with self._stage("generate"):
            return generator.generate(graph, output_dir)

    def _orchestrator(self) -> BuildOrchestrator:
        return BuildOrchestrator(self.runner, bazel_bin=self.settings.bazel_bin, run_logger=self.run_logger)

    # -- Commands --

    def generate_only(self, project_root: str | Path, refresh: bool = False) -> PipelineResult:
        graph = self.load(project_root, refresh=refresh)
        return PipelineResult(graph=graph, artifacts=self.generate(graph, project_root))

    def build(
        self,
        project_root: str | Path,
        target_filter: str | None = None,
        config: str | None = None,
        refresh: bool = False,
        on_line: LineCallback | None = None,
    ) -> PipelineResult:
        """Load, generate into the project root, and run bazel."""
        result = self.generate_only(project_root, refresh=refresh)
        with self._stage("build"):
            result.build = self._orchestrator().build(
                project_root, target_filter=target_filter, config=config, on_line=on_line
            )
        return result

    def run(
        self,
        project_root: str | Path,
        app_target: str | None = None,
        simulator_name: str | None = None,
        refresh: bool = False,
        stream_logs: bool = True,
        on_line: LineCallback | None = None,
        on_log: LineCallback | None = None,
    ) -> PipelineResult:
        """Build the app for the simulator, then install and launch it."""
        result = self.generate_only(project_root, refresh=refresh)
        simulator = SimulatorRunner(
            result.graph,
            project_root,
            self.runner,
            xcrun_bin=self.settings.xcrun_bin,
            default_simulator=self.settings.default_simulator,
            boot_timeout=self.settings.boot_timeout,
            poll_interval=self.settings.boot_poll_interval,
            run_logger=self.run_logger,
        )
        target = simulator.select_app(app_target)

        with self._stage("build"):
            result.build = self._orchestrator().build(
                project_root, target_filter=target.name, config="simulator", on_line=on_line
            )
        with self._stage("run"):
            result.run = simulator.run(
                app_target=target.name,
                simulator_name=simulator_name,
                stream_logs=stream_logs,
                on_line=on_log,
            )
        return result
