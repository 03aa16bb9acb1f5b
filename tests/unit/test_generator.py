"""Tests for Bazel file generation."""

from __future__ import annotations

import json
import plistlib

import pytest

from catalyst.bazel.generator import BuildFileGenerator, rule_name
from catalyst.bazel.rules import RuleKind
from catalyst.core.errors import (
    ArtifactWriteError,
    CyclicDependencyError,
    GenerationError,
    SourceOutsideWorkspaceError,
    UnsupportedDestinationError,
    UnsupportedProductError,
)
from catalyst.core.logging import CatalystLogger
from catalyst.core.models import (
    Dependency,
    DependencyKind,
    Destination,
    InfoPlist,
    Platform,
    ProductKind,
    ProjectGraph,
)


def _graph(*targets, path="/p") -> ProjectGraph:
    return ProjectGraph(name="P", path=path, targets={t.name: t for t in targets})


@pytest.fixture
def generator(settings):
    return BuildFileGenerator(settings)


class TestRuleName:
    def test_lowercased(self):
        assert rule_name("MyApp") == "myapp"

    def test_invalid_characters_replaced(self):
        assert rule_name("My App (Dev)") == "my_app__dev_"


class TestGenerateSampleProject:
    def test_writes_all_artifacts(self, generator, sample_graph, project_dir):
        artifacts = generator.generate(sample_graph, project_dir)

        assert artifacts.workspace == project_dir / "WORKSPACE"
        assert artifacts.bazelrc == project_dir / ".bazelrc"
        assert artifacts.build == project_dir / "BUILD"
        assert [p.name for p in artifacts.plists] == ["App-Info.plist", "AppTests-Info.plist"]
        for path in artifacts.files:
            assert path.is_file()
        assert artifacts.rule_names == ["lib", "app", "apptests"]

    def test_dependency_rule_precedes_dependent(self, generator, sample_graph, project_dir):
        build = generator.generate(sample_graph, project_dir).build.read_text()
        assert build.index('name = "lib"') < build.index('name = "app_lib"') < build.index('name = "app"')

    def test_app_links_library(self, generator, sample_graph, project_dir):
        build = generator.generate(sample_graph, project_dir).build.read_text()
        app_lib = build[build.index('name = "app_lib"'):]
        app_lib = app_lib[: app_lib.index(")")]
        assert 'deps = [":lib"]' in app_lib
        assert 'srcs = ["App/Sources/AppDelegate.swift"]' in app_lib

    def test_application_rule(self, generator, sample_graph, project_dir):
        build = generator.generate(sample_graph, project_dir).build.read_text()
        assert (
            "ios_application(\n"
            '    name = "app",\n'
            '    bundle_name = "App",\n'
            '    bundle_id = "com.example.app",\n'
            "    families = [\n"
            '        "ipad",\n'
            '        "iphone",\n'
            "    ],\n"
            '    infoplists = ["Infoplists/App-Info.plist"],\n'
            '    minimum_os_version = "17.0",\n'
            '    resources = glob(["App/Resources/Assets.xcassets/**"]),\n'
            '    deps = [":app_lib"],\n'
            ")\n"
        ) in build

    def test_unit_test_hosted_by_app(self, generator, sample_graph, project_dir):
        build = generator.generate(sample_graph, project_dir).build.read_text()
        assert "ios_unit_test(" in build
        assert 'test_host = ":app"' in build
        assert "testonly = True" in build

    def test_one_primary_rule_per_target(self, generator, sample_graph, project_dir):
        build = generator.generate(sample_graph, project_dir).build.read_text()
        for name in ("lib", "app", "apptests"):
            assert build.count(f'name = "{name}"') == 1

    def test_load_statements_sorted(self, generator, sample_graph, project_dir):
        build = generator.generate(sample_graph, project_dir).build.read_text()
        loads = [line for line in build.splitlines() if line.startswith("load(")]
        assert loads == [
            'load("@build_bazel_rules_apple//apple:ios.bzl", "ios_application", "ios_unit_test")',
            'load("@build_bazel_rules_swift//swift:swift.bzl", "swift_library")',
        ]

    def test_workspace(self, generator, sample_graph, project_dir):
        workspace = generator.generate(sample_graph, project_dir).workspace.read_text()
        assert "rules_apple/releases/download/3.5.1/rules_apple.3.5.1.tar.gz" in workspace
        assert 'sha256 = "b4df908ec14868369021182ab191dbd1f40830c9b300650d5dc389e0b9266c8d"' in workspace
        assert "apple_rules_dependencies()" in workspace
        assert "swift_rules_dependencies()" in workspace
        assert "apple_support_dependencies()" in workspace
        assert "# Apple toolchains for: ios" in workspace
        assert 'register_toolchains("@local_config_apple_cc_toolchains//:all")' in workspace

    def test_bazelrc(self, generator, settings, sample_graph, project_dir):
        bazelrc = generator.generate(sample_graph, project_dir).bazelrc.read_text().splitlines()
        assert "build --verbose_failures" in bazelrc
        assert "build --announce_rc" in bazelrc
        assert f"build --disk_cache={settings.cache_dir / 'bazel-disk-cache'}" in bazelrc
        assert "build --ios_minimum_os=17.0" in bazelrc
        assert "build:simulator --ios_multi_cpus=sim_arm64" in bazelrc
        assert "build:device --ios_multi_cpus=arm64" in bazelrc
        assert not any("macos" in line for line in bazelrc)

    def test_info_plist_merged(self, generator, sample_graph, project_dir):
        generator.generate(sample_graph, project_dir)
        plist = plistlib.loads((project_dir / "Infoplists" / "App-Info.plist").read_bytes())
        assert plist["CFBundleDisplayName"] == "My App"
        assert plist["CFBundleIdentifier"] == "com.example.app"
        assert plist["CFBundlePackageType"] == "APPL"
        assert plist["LSRequiresIPhoneOS"] is True

    def test_deterministic(self, generator, sample_graph, project_dir):
        first = {p: p.read_bytes() for p in generator.generate(sample_graph, project_dir).files}
        second = {p: p.read_bytes() for p in generator.generate(sample_graph, project_dir).files}
        assert first == second

    def test_render_matches_written_files(self, generator, sample_graph, project_dir):
        rendered = generator.render(sample_graph, project_dir)
        artifacts = generator.generate(sample_graph, project_dir)
        assert artifacts.build.read_text() == rendered.build
        assert artifacts.workspace.read_text() == rendered.workspace

    def test_write_order(self, settings, sample_graph, project_dir, tmp_path):
        run_logger = CatalystLogger(logs_dir=tmp_path / "logs")
        BuildFileGenerator(settings, run_logger=run_logger).generate(sample_graph, project_dir)
        log_path = run_logger.log_path
        run_logger.close()

        events = [json.loads(line) for line in log_path.read_text().splitlines()]
        written = [e["path"].rsplit("/", 1)[-1] for e in events if e["event"] == "artifact_written"]
        assert written == ["WORKSPACE", ".bazelrc", "App-Info.plist", "AppTests-Info.plist", "BUILD"]

    def test_stale_plists_removed(self, generator, sample_graph, project_dir):
        stale = project_dir / "Infoplists" / "Removed-Info.plist"
        stale.parent.mkdir()
        stale.write_text("old")
        generator.generate(sample_graph, project_dir)
        assert not stale.exists()


class TestProductMapping:
    def test_framework_embedded_in_app(self, generator, make_target, tmp_path):
        graph = _graph(
            make_target("App", ProductKind.APP, dependencies=(Dependency("Kit", DependencyKind.EMBED),)),
            make_target("Kit", ProductKind.FRAMEWORK),
        )
        build = generator.render(graph, tmp_path).build
        assert "ios_framework(" in build
        assert 'frameworks = [":kit"]' in build
        assert 'deps = [":kit_lib"]' in build

    def test_embed_of_static_library_rejected(self, generator, make_target, tmp_path):
        graph = _graph(
            make_target("App", ProductKind.APP, dependencies=(Dependency("Lib", DependencyKind.EMBED),)),
            make_target("Lib"),
        )
        with pytest.raises(GenerationError, match="not a dynamic framework"):
            generator.render(graph, tmp_path)

    def test_resource_bundle_goes_to_data(self, generator, make_target, tmp_path):
        res = tmp_path / "Res" / "Strings.strings"
        graph = _graph(
            make_target("App", ProductKind.APP, dependencies=(Dependency("Res"),)),
            make_target("Res", ProductKind.BUNDLE, resources=(str(res),)),
        )
        build = generator.render(graph, tmp_path).build
        assert "apple_resource_bundle(" in build
        assert 'data = [":res"]' in build
        assert 'resources = ["Res/Strings.strings"]' in build
        assert 'load("@build_bazel_rules_apple//apple:resources.bzl", "apple_resource_bundle")' in build

    def test_library_resources_as_data(self, generator, make_target, tmp_path):
        graph = _graph(
            make_target("Lib", resources=(str(tmp_path / "Lib" / "Media.xcassets"),)),
        )
        build = generator.render(graph, tmp_path).build
        assert 'data = glob(["Lib/Media.xcassets/**"])' in build

    def test_ui_test_requires_app(self, generator, make_target, tmp_path):
        graph = _graph(make_target("UITests", ProductKind.UI_TESTS))
        with pytest.raises(GenerationError, match="test host"):
            generator.render(graph, tmp_path)

    def test_macos_app(self, generator, make_target, tmp_path):
        graph = _graph(make_target("Mac", ProductKind.APP, destinations=frozenset({Destination.MAC})))
        rendered = generator.render(graph, tmp_path)
        assert "macos_application(" in rendered.build
        assert "families" not in rendered.build
        assert "build --macos_minimum_os=12.0" in rendered.bazelrc
        plist = plistlib.loads(rendered.plists["Infoplists/Mac-Info.plist"])
        assert plist["NSPrincipalClass"] == "NSApplication"
        assert "LSRequiresIPhoneOS" not in plist

    def test_explicit_plist_file(self, generator, make_target, tmp_path):
        graph = _graph(
            make_target(
                "App", ProductKind.APP,
                info_plist=InfoPlist(file=str(tmp_path / "Support" / "Info.plist"), extends_default=False),
            )
        )
        rendered = generator.render(graph, tmp_path)
        assert 'infoplists = ["Support/Info.plist"]' in rendered.build
        assert rendered.plists == {}

    def test_dictionary_plist_replaces_default(self, generator, make_target, tmp_path):
        graph = _graph(
            make_target("App", ProductKind.APP, info_plist=InfoPlist(overrides={"A": 1}, extends_default=False))
        )
        plist = plistlib.loads(generator.render(graph, tmp_path).plists["Infoplists/App-Info.plist"])
        assert plist == {"A": 1}

    def test_deployment_target_override(self, generator, make_target, tmp_path):
        graph = _graph(
            make_target("App", ProductKind.APP, deployment_targets={Platform.IOS: "16.4"}),
        )
        assert 'minimum_os_version = "16.4"' in generator.render(graph, tmp_path).build

    def test_no_platforms_no_toolchain_block(self, generator, make_target, tmp_path):
        graph = _graph(make_target("Lib", destinations=frozenset()))
        rendered = generator.render(graph, tmp_path)
        assert "register_toolchains" not in rendered.workspace
        assert "minimum_os" not in rendered.bazelrc


class TestGenerationErrors:
    def test_unsupported_product(self, generator, make_target, tmp_path):
        graph = _graph(make_target("Tool", ProductKind.COMMAND_LINE_TOOL))
        with pytest.raises(UnsupportedProductError, match="command_line_tool"):
            generator.generate(graph, tmp_path)
        assert list(tmp_path.iterdir()) == []

    def test_mac_catalyst_unsupported(self, generator, make_target, tmp_path):
        graph = _graph(
            make_target("App", ProductKind.APP, destinations=frozenset({Destination.IPHONE, Destination.MAC_CATALYST}))
        )
        with pytest.raises(UnsupportedDestinationError, match="macCatalyst"):
            generator.render(graph, tmp_path)

    def test_multi_platform_bundle_unsupported(self, generator, make_target, tmp_path):
        graph = _graph(
            make_target("App", ProductKind.APP, destinations=frozenset({Destination.IPHONE, Destination.MAC}))
        )
        with pytest.raises(UnsupportedDestinationError, match="several platforms"):
            generator.render(graph, tmp_path)

    def test_bundle_without_destinations(self, generator, make_target, tmp_path):
        graph = _graph(make_target("App", ProductKind.APP, destinations=frozenset()))
        with pytest.raises(UnsupportedDestinationError, match="no destinations"):
            generator.render(graph, tmp_path)

    def test_bundled_rule_without_platform(self, generator, make_target, tmp_path):
        app = make_target("App", ProductKind.APP)
        graph = _graph(app)
        with pytest.raises(UnsupportedDestinationError, match="no platform"):
            generator._target_rules(
                graph, app, {"App": RuleKind.APPLICATION}, {"App": None}, {"App": 0}, tmp_path, {}
            )

    def test_bundle_name_keeps_target_name(self, generator, make_target, tmp_path):
        graph = _graph(make_target("My App", ProductKind.APP), path=str(tmp_path))
        build = generator.render(graph, tmp_path).build
        assert '    name = "my_app",\n    bundle_name = "My App",\n' in build

    def test_cycle_writes_nothing(self, generator, make_target, tmp_path):
        graph = _graph(
            make_target("A", dependencies=(Dependency("B"),)),
            make_target("B", dependencies=(Dependency("A"),)),
        )
        with pytest.raises(CyclicDependencyError):
            generator.generate(graph, tmp_path)
        assert list(tmp_path.iterdir()) == []

    def test_source_outside_workspace(self, generator, make_target, tmp_path):
        graph = _graph(make_target("Lib", sources=("/elsewhere/Lib.swift",)))
        with pytest.raises(SourceOutsideWorkspaceError, match="/elsewhere/Lib.swift"):
            generator.generate(graph, tmp_path / "ws")
        assert not (tmp_path / "ws").exists()

    def test_rule_name_collision(self, generator, make_target, tmp_path):
        graph = _graph(make_target("Core"), make_target("core"))
        with pytest.raises(GenerationError, match="same Bazel rule name 'core'"):
            generator.render(graph, tmp_path)

    def test_unwritable_output(self, generator, make_target, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("")
        with pytest.raises(ArtifactWriteError):
            generator.generate(_graph(make_target("Lib")), blocker)
