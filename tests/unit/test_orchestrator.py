"""Tests for the build orchestrator."""

from __future__ import annotations

import pytest

from catalyst.bazel.generator import BuildFileGenerator
from catalyst.build.cassette import RecordedCall, RecordedRunner
from catalyst.build.orchestrator import BuildOrchestrator, rule_names
from catalyst.core.errors import BuildFailed
from catalyst.core.models import ProductKind, ProjectGraph


@pytest.fixture
def workspace(settings, sample_graph, project_dir):
    BuildFileGenerator(settings).generate(sample_graph, project_dir)
    return project_dir


class TestRuleNames:
    def test_reads_generated_build(self, workspace):
        assert rule_names(workspace / "BUILD") == ["lib", "app_lib", "app", "apptests_lib", "apptests"]

    def test_missing_build(self, tmp_path):
        assert rule_names(tmp_path / "BUILD") == []


class TestBuild:
    def test_builds_everything(self, workspace):
        runner = RecordedRunner([RecordedCall(["bazel", "build"], stdout="INFO: Build completed successfully")])
        lines = []
        report = BuildOrchestrator(runner).build(workspace, on_line=lines.append)

        assert report.label == "//..."
        assert runner.invocations == [["bazel", "build", "//..."]]
        assert lines == ["INFO: Build completed successfully"]

    def test_target_filter_case_insensitive(self, workspace):
        runner = RecordedRunner([RecordedCall(["bazel", "build"])])
        report = BuildOrchestrator(runner).build(workspace, target_filter="App")
        assert report.label == "//:app"
        assert runner.invocations == [["bazel", "build", "//:app"]]

    def test_target_filter_with_space(self, settings, make_target, tmp_path):
        graph = ProjectGraph(
            name="P", path=str(tmp_path), targets={"My App": make_target("My App", ProductKind.APP)}
        )
        BuildFileGenerator(settings).generate(graph, tmp_path)
        runner = RecordedRunner([RecordedCall(["bazel", "build"])])

        report = BuildOrchestrator(runner).build(tmp_path, target_filter="My App")
        assert report.label == "//:my_app"
        assert runner.invocations == [["bazel", "build", "//:my_app"]]

    def test_target_filter_accepts_label(self, workspace):
        runner = RecordedRunner([RecordedCall(["bazel", "build"])])
        assert BuildOrchestrator(runner).build(workspace, target_filter="//:lib").label == "//:lib"

    def test_config(self, workspace):
        runner = RecordedRunner([RecordedCall(["bazel", "build"])])
        BuildOrchestrator(runner).build(workspace, target_filter="app", config="simulator")
        assert runner.invocations == [["bazel", "build", "--config=simulator", "//:app"]]

    def test_unknown_target_fails_before_bazel(self, workspace):
        runner = RecordedRunner([RecordedCall(["bazel", "build"])])
        with pytest.raises(BuildFailed, match="'Nope' is not defined") as exc:
            BuildOrchestrator(runner).build(workspace, target_filter="Nope")
        assert "apptests" in str(exc.value)
        assert runner.invocations == []

    def test_nonzero_exit(self, workspace):
        output = "\n".join(f"line {i}" for i in range(100)) + "\nERROR: compile failed"
        runner = RecordedRunner([RecordedCall(["bazel", "build"], returncode=1, stdout=output)])
        with pytest.raises(BuildFailed, match="exit code 1") as exc:
            BuildOrchestrator(runner).build(workspace)

        assert exc.value.returncode == 1
        tail = exc.value.output.splitlines()
        assert len(tail) == 40
        assert tail[-1] == "ERROR: compile failed"

    def test_missing_bazel(self, workspace):
        runner = RecordedRunner([RecordedCall(["bazel"], not_found=True)])
        with pytest.raises(BuildFailed, match="could not be located"):
            BuildOrchestrator(runner).build(workspace)

    def test_custom_binary(self, workspace):
        runner = RecordedRunner([RecordedCall(["bazelisk", "build"])])
        BuildOrchestrator(runner, bazel_bin="bazelisk").build(workspace)
        assert runner.called("bazelisk", "build", "//...")
