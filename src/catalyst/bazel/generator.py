"""Bazel file generation: translate a ProjectGraph into WORKSPACE, .bazelrc and BUILD.

The whole artifact set is rendered in memory first, so any error in the
graph surfaces before a single file is touched. Files are then written
atomically in dependency order: WORKSPACE, .bazelrc, Info.plists, BUILD.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath

from catalyst.bazel import rules
from catalyst.bazel.plist import merge_info_plist, render_info_plist
from catalyst.bazel.rules import RuleKind
from catalyst.bazel.starlark import Call, Raw, files_expr, load_statement, render_value
from catalyst.config import Settings
from catalyst.core.errors import (
    ArtifactWriteError,
    GenerationError,
    SourceOutsideWorkspaceError,
    UnsupportedDestinationError,
    atomic_write,
)
from catalyst.core.logging import CatalystLogger
from catalyst.core.models import DependencyKind, Platform, ProductKind, ProjectGraph, Target
from catalyst.graph.dag import resolve_build_order

logger = logging.getLogger(__name__)

WORKSPACE_FILE = "WORKSPACE"
BAZELRC_FILE = ".bazelrc"
BUILD_FILE = "BUILD"
INFOPLISTS_DIR = "Infoplists"

# Resource paths that are directories Xcode treats as a single resource.
BUNDLE_DIR_SUFFIXES = (
    ".xcassets", ".bundle", ".xcdatamodeld", ".scnassets", ".lproj", ".xcmappingmodel",
)

HEADER = "# Generated by catalyst from the Tuist graph of '{name}'. Do not edit.\n"


def rule_name(target_name: str) -> str:
    """Bazel rule name for a Tuist target: lower-cased, restricted charset."""
    return re.sub(r"[^a-z0-9_.+-]", "_", target_name.lower())


@dataclass
class GeneratedArtifactSet:
    """Files written by one generation, in write order."""

    output_dir: Path
    workspace: Path
    bazelrc: Path
    build: Path
    plists: list[Path] = field(default_factory=list)
    rule_names: list[str] = field(default_factory=list)

    @property
    def files(self) -> list[Path]:
        return [self.workspace, self.bazelrc, *self.plists, self.build]


@dataclass
class RenderedArtifacts:
    """In-memory artifact contents keyed by path relative to the workspace."""

    workspace: str
    bazelrc: str
    build: str
    plists: dict[str, bytes] = field(default_factory=dict)
    rule_names: list[str] = field(default_factory=list)


class BuildFileGenerator:
    """Maps the graph model onto rules_apple / rules_swift configuration."""

    def __init__(self, settings: Settings, run_logger: CatalystLogger | None = None):
        self.settings = settings
        self.run_logger = run_logger

    # -- Public API --

    def render(self, graph: ProjectGraph, output_dir: str | Path) -> RenderedArtifacts:
        """Render every artifact without touching the filesystem."""
        workspace_root = Path(output_dir).resolve()
        order = resolve_build_order(graph)
        kinds = {t.name: rules.rule_kind_for(t) for t in order}
        platforms = {t.name: rules.platform_for(t, kinds[t.name]) for t in order}
        position = {t.name: i for i, t in enumerate(order)}

        calls: list[Call] = []
        loads: dict[str, set[str]] = {}
        plists: dict[str, bytes] = {}
        primary_names: list[str] = []

        for target in order:
            emitted, target_plists = self._target_rules(
                graph, target, kinds, platforms, position, workspace_root, loads
            )
            calls.extend(emitted)
            plists.update(target_plists)
            primary_names.append(rule_name(target.name))

        self._check_unique([c.name for c in calls])

        return RenderedArtifacts(
            workspace=self.render_workspace(graph),
            bazelrc=self.render_bazelrc(graph),
            build=self._render_build(graph, loads, calls),
            plists=plists,
            rule_names=primary_names,
        )

    def generate(self, graph: ProjectGraph, output_dir: str | Path) -> GeneratedArtifactSet:
        """Render and write the artifact set into ``output_dir``."""
        out = Path(output_dir).resolve()
        rendered = self.render(graph, out)

        artifacts = GeneratedArtifactSet(
            output_dir=out,
            workspace=out / WORKSPACE_FILE,
            bazelrc=out / BAZELRC_FILE,
            build=out / BUILD_FILE,
            rule_names=rendered.rule_names,
        )
        try:
            out.mkdir(parents=True, exist_ok=True)
            self._write(artifacts.workspace, rendered.workspace)
            self._write(artifacts.bazelrc, rendered.bazelrc)
            if rendered.plists:
                (out / INFOPLISTS_DIR).mkdir(exist_ok=True)
            for rel, content in sorted(rendered.plists.items()):
                path = out / rel
                self._write(path, content)
                artifacts.plists.append(path)
            self._remove_stale_plists(out, set(rendered.plists))
            self._write(artifacts.build, rendered.build)
        except OSError as e:
            raise ArtifactWriteError(f"Failed to write Bazel files in {out}: {e}") from e

        logger.info("Generated %d rules for %s in %s", len(rendered.rule_names), graph.name, out)
        return artifacts

    # -- Descriptors --

    def render_workspace(self, graph: ProjectGraph) -> str:
        version = self.settings.rules_apple_version
        archive = Call("http_archive")
        archive.set("name", "build_bazel_rules_apple")
        archive.set("sha256", self.settings.rules_apple_sha256)
        archive.set(
            "url",
            f"https://github.com/bazelbuild/rules_apple/releases/download/{version}/rules_apple.{version}.tar.gz",
        )

        parts = [
            HEADER.format(name=graph.name),
            "\n",
            Call("workspace").set("name", "catalyst_workspace").render(),
            "\n",
            load_statement("@bazel_tools//tools/build_defs/repo:http.bzl", ["http_archive"]),
            "\n",
            archive.render(),
            "\n",
            load_statement(f"{rules.RULES_APPLE}:repositories.bzl", ["apple_rules_dependencies"]),
            "\n",
            "apple_rules_dependencies()\n",
            "\n",
            load_statement(f"{rules.RULES_SWIFT}:repositories.bzl", ["swift_rules_dependencies"]),
            "\n",
            "swift_rules_dependencies()\n",
            "\n",
            load_statement(f"{rules.RULES_SWIFT}:extras.bzl", ["swift_rules_extra_dependencies"]),
            "\n",
            "swift_rules_extra_dependencies()\n",
            "\n",
            load_statement("@build_bazel_apple_support//lib:repositories.bzl", ["apple_support_dependencies"]),
            "\n",
            "apple_support_dependencies()\n",
        ]

        platforms = graph.platforms()
        if platforms:
            parts += [
                "\n",
                f"# Apple toolchains for: {', '.join(p.value for p in platforms)}\n",
                load_statement("@build_bazel_apple_support//crosstool:setup.bzl", ["apple_cc_configure"]),
                "\n",
                "apple_cc_configure()\n",
                "\n",
                Call("register_toolchains", args=["@local_config_apple_cc_toolchains//:all"]).render(),
            ]
        return "".join(parts)

    def render_bazelrc(self, graph: ProjectGraph) -> str:
        lines = [
            HEADER.format(name=graph.name).rstrip("\n"),
            "",
            "# WORKSPACE-based dependencies",
            "common --noenable_bzlmod",
            "",
            "# Output",
            "build --verbose_failures",
            "build --announce_rc",
            "",
            "# Caching",
            f"build --disk_cache={self.settings.bazel_disk_cache}",
        ]

        platforms = graph.platforms()
        if platforms:
            lines += ["", "# Minimum OS versions"]
            for platform in platforms:
                lines.append(f"build {rules.minimum_os_flag(platform, self._minimum_os(graph, platform))}")
            lines += ["", "# CPU selection: bazel build --config=simulator | --config=device"]
            for platform in platforms:
                simulator, device = rules.cpu_flags(platform)
                lines.append(f"build:simulator {simulator}")
                lines.append(f"build:device {device}")
        return "\n".join(lines) + "\n"

    # -- Per-target rules --

    def _target_rules(
        self,
        graph: ProjectGraph,
        target: Target,
        kinds: dict[str, RuleKind],
        platforms: dict[str, Platform | None],
        position: dict[str, int],
        workspace_root: Path,
        loads: dict[str, set[str]],
    ) -> tuple[list[Call], dict[str, bytes]]:
        kind = kinds[target.name]
        platform = platforms[target.name]
        name = rule_name(target.name)

        module_deps: list[str] = []
        data: list[str] = []
        frameworks: list[str] = []
        test_host: str | None = None

        for dep in sorted(target.dependencies, key=lambda d: position[d.target]):
            dep_target = graph.targets[dep.target]
            dep_kind = kinds[dep.target]
            dep_name = rule_name(dep.target)
            if dep_kind is RuleKind.RESOURCE_BUNDLE:
                data.append(f":{dep_name}")
                continue
            module_deps.append(f":{self._module_name(dep_target, dep_kind)}")
            if dep_target.product is ProductKind.APP and kind in (RuleKind.UNIT_TEST, RuleKind.UI_TEST):
                test_host = test_host or f":{dep_name}"
            if dep.kind is DependencyKind.EMBED:
                if dep_kind is not RuleKind.FRAMEWORK:
                    raise GenerationError(
                        f"Target '{target.name}' embeds '{dep.target}', which is not a dynamic framework"
                    )
                if kind.is_bundled:
                    frameworks.append(f":{dep_name}")
                else:
                    logger.debug("%s links %s without embedding (library target)", target.name, dep.target)

        srcs = [self._relative(target, p, workspace_root) for p in target.sources]
        resource_files, resource_dirs = self._split_resources(target, workspace_root)
        resources = files_expr(resource_files, resource_dirs)

        calls: list[Call] = []
        plists: dict[str, bytes] = {}

        if kind is RuleKind.RESOURCE_BUNDLE:
            self._add_load(loads, rules.RESOURCE_BUNDLE)
            infoplists = self._infoplists(target, kind, platform, workspace_root, plists)
            call = Call("apple_resource_bundle")
            call.set("name", name)
            call.set("bundle_id", target.bundle_id)
            call.set("bundle_name", target.name)
            call.set_if("infoplists", infoplists)
            call.set("resources", resources)
            call.set("visibility", ["//visibility:public"])
            return [call], plists

        self._add_load(loads, rules.SWIFT_LIBRARY)
        library = Call("swift_library")
        library.set("name", self._module_name(target, kind))
        library.set("srcs", srcs)
        library.set("module_name", target.name)
        if kind in (RuleKind.UNIT_TEST, RuleKind.UI_TEST):
            library.set("testonly", True)
        library.set_if("deps", module_deps)
        if kind is RuleKind.SWIFT_LIBRARY:
            library.set_if("data", self._library_data(data, resources))
        else:
            library.set_if("data", data)
        library.set("visibility", ["//visibility:public"])
        calls.append(library)

        if kind is RuleKind.SWIFT_LIBRARY:
            return calls, plists

        if platform is None:
            raise UnsupportedDestinationError(target.name, "bundled product has no platform")
        bzl, symbol = rules.bundling_rule(kind, platform)
        self._add_load(loads, (bzl, symbol))
        infoplists = self._infoplists(target, kind, platform, workspace_root, plists)

        bundle = Call(symbol)
        bundle.set("name", name)
        # Bundle and executable keep the Tuist target name; the rule name is lower-cased.
        bundle.set("bundle_name", target.name)
        bundle.set("bundle_id", target.bundle_id)
        if kind in (RuleKind.APPLICATION, RuleKind.FRAMEWORK) and rules.supports_families(platform):
            bundle.set("families", target.families or ["iphone"])
        bundle.set("infoplists", infoplists)
        bundle.set("minimum_os_version", self._target_minimum_os(target, platform))
        if kind is RuleKind.UI_TEST and test_host is None:
            raise GenerationError(
                f"UI test target '{target.name}' has no application dependency to use as test host"
            )
        bundle.set_if("test_host", test_host)
        if resource_files or resource_dirs:
            bundle.set("resources", resources)
        bundle.set_if("frameworks", frameworks)
        bundle.set("deps", [f":{library.name}"])
        if kind is RuleKind.FRAMEWORK:
            bundle.set("visibility", ["//visibility:public"])
        calls.append(bundle)
        return calls, plists

    @staticmethod
    def _module_name(target: Target, kind: RuleKind) -> str:
        """Name of the swift_library holding a target's code."""
        name = rule_name(target.name)
        return name if kind is RuleKind.SWIFT_LIBRARY else f"{name}_lib"

    @staticmethod
    def _library_data(data: list[str], resources: list[str] | Raw):
        if isinstance(resources, Raw):
            if not data:
                return resources
            return Raw(f"{render_value(data, 1)} + {resources.expr}")
        return data + resources

    def _infoplists(
        self,
        target: Target,
        kind: RuleKind,
        platform: Platform | None,
        workspace_root: Path,
        plists: dict[str, bytes],
    ) -> list[str]:
        if target.info_plist.file:
            return [self._relative(target, target.info_plist.file, workspace_root)]
        rel = f"{INFOPLISTS_DIR}/{target.name}-Info.plist"
        plists[rel] = render_info_plist(merge_info_plist(target, kind, platform))
        return [rel]

    def _split_resources(self, target: Target, workspace_root: Path) -> tuple[list[str], list[str]]:
        files: list[str] = []
        dirs: list[str] = []
        for path in target.resources:
            rel = self._relative(target, path, workspace_root)
            if rel.endswith(BUNDLE_DIR_SUFFIXES):
                dirs.append(rel)
            else:
                files.append(rel)
        return files, dirs

    @staticmethod
    def _relative(target: Target, path: str, workspace_root: Path) -> str:
        """Workspace-relative label path for a resolved filesystem path."""
        candidate = Path(path)
        if not candidate.is_absolute():
            return PurePosixPath(candidate).as_posix()
        try:
            return candidate.relative_to(workspace_root).as_posix()
        except ValueError:
            raise SourceOutsideWorkspaceError(target.name, path, str(workspace_root)) from None

    def _target_minimum_os(self, target: Target, platform: Platform) -> str:
        return target.deployment_targets.get(platform) or self.settings.minimum_os(platform.value)

    def _minimum_os(self, graph: ProjectGraph, platform: Platform) -> str:
        """Lowest deployment target declared for a platform, else the configured default."""
        declared = [
            t.deployment_targets[platform]
            for t in graph.targets.values()
            if platform in t.deployment_targets
        ]
        if not declared:
            return self.settings.minimum_os(platform.value)
        return min(declared, key=_version_key)

    @staticmethod
    def _add_load(loads: dict[str, set[str]], rule: tuple[str, str]) -> None:
        bzl, symbol = rule
        loads.setdefault(bzl, set()).add(symbol)

    @staticmethod
    def _check_unique(names: list[str | None]) -> None:
        seen: set[str] = set()
        for name in names:
            if name in seen:
                raise GenerationError(f"Two targets map to the same Bazel rule name '{name}'")
            seen.add(name)

    def _render_build(self, graph: ProjectGraph, loads: dict[str, set[str]], calls: list[Call]) -> str:
        parts = [HEADER.format(name=graph.name), "\n"]
        for bzl in sorted(loads):
            parts.append(load_statement(bzl, sorted(loads[bzl])))
        for call in calls:
            parts.append("\n")
            parts.append(call.render())
        return "".join(parts)

    # -- Writing --

    def _write(self, path: Path, content: str | bytes) -> None:
        atomic_write(path, content)
        if self.run_logger is not None:
            self.run_logger.artifact_written(path)

    @staticmethod
    def _remove_stale_plists(out: Path, keep: set[str]) -> None:
        plist_dir = out / INFOPLISTS_DIR
        if not plist_dir.is_dir():
            return
        for path in sorted(plist_dir.glob("*-Info.plist")):
            if f"{INFOPLISTS_DIR}/{path.name}" not in keep:
                path.unlink()


def _version_key(version: str) -> tuple[int, ...]:
    return tuple(int(p) if p.isdigit() else 0 for p in version.split("."))
