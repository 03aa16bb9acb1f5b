"""Catalyst - Build Tuist projects with Bazel.

Usage:
    from catalyst import CatalystPipeline, get_settings

    pipeline = CatalystPipeline.from_settings(get_settings())
    result = pipeline.build("~/Projects/MyApp", target_filter="MyApp")
    print(result.build.label)
"""

from catalyst.bazel.generator import BuildFileGenerator, GeneratedArtifactSet
from catalyst.build.orchestrator import BuildOrchestrator, BuildReport
from catalyst.build.pipeline import CatalystPipeline, PipelineResult
from catalyst.build.simulator import RunReport, SimulatorRunner
from catalyst.config import Settings, get_settings
from catalyst.core.errors import CatalystError
from catalyst.core.models import Dependency, ProjectGraph, Target
from catalyst.graph.cache import GraphCache
from catalyst.graph.loader import GraphLoader
from catalyst.graph.parser import parse_graph

__all__ = [
    "BuildFileGenerator",
    "BuildOrchestrator",
    "BuildReport",
    "CatalystError",
    "CatalystPipeline",
    "Dependency",
    "GeneratedArtifactSet",
    "GraphCache",
    "GraphLoader",
    "PipelineResult",
    "ProjectGraph",
    "RunReport",
    "Settings",
    "SimulatorRunner",
    "Target",
    "get_settings",
    "parse_graph",
]

__version__ = "0.1.0"
