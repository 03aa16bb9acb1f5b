"""Shared test fixtures for Catalyst."""

from __future__ import annotations

import json

import pytest

from catalyst.build.cassette import RecordedCall, RecordedRunner
from catalyst.config import Settings, reset_settings
from catalyst.core.models import Destination, ProductKind, ProjectGraph, Target
from catalyst.graph.parser import parse_graph

TUIST_VERSION = "4.40.0"


@pytest.fixture(autouse=True)
def _isolated_settings(tmp_path, monkeypatch):
    """Point the cache at a per-test directory and drop cached settings."""
    monkeypatch.setenv("CATALYST_CACHE_DIR", str(tmp_path / "cache"))
    monkeypatch.delenv("CATALYST_CASSETTE_MODE", raising=False)
    monkeypatch.delenv("CATALYST_CASSETTE_DIR", raising=False)
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def settings(tmp_path):
    return Settings(cache_dir=tmp_path / "cache")


@pytest.fixture
def project_dir(tmp_path):
    """A Tuist project on disk: App depends on Lib, AppTests tests App."""
    root = tmp_path / "MyApp"
    (root / "App" / "Sources").mkdir(parents=True)
    (root / "App" / "Resources" / "Assets.xcassets").mkdir(parents=True)
    (root / "Lib" / "Sources").mkdir(parents=True)
    (root / "AppTests").mkdir()

    (root / "Project.swift").write_text('let project = Project(name: "MyApp")\n')
    (root / "App" / "Sources" / "AppDelegate.swift").write_text("import UIKit\n")
    (root / "App" / "Resources" / "Assets.xcassets" / "Contents.json").write_text("{}\n")
    (root / "Lib" / "Sources" / "Lib.swift").write_text("public struct Lib {}\n")
    (root / "AppTests" / "AppTests.swift").write_text("import XCTest\n")
    return root.resolve()


@pytest.fixture
def sample_document(project_dir):
    """Graph document in the shape ``tuist graph --format json`` emits."""
    root = str(project_dir)
    return {
        "name": "MyApp",
        "path": root,
        "projects": [
            root,
            {
                "name": "MyApp",
                "path": root,
                "targets": {
                    "App": {
                        "name": "App",
                        "product": "app",
                        "bundleId": "com.example.app",
                        "destinations": ["iPhone", "iPad"],
                        "deploymentTargets": {"iOS": "17.0"},
                        "buildableFolders": [
                            {
                                "path": f"{root}/App/Sources",
                                "resolvedFiles": [{"path": f"{root}/App/Sources/AppDelegate.swift"}],
                            },
                            {
                                "path": f"{root}/App/Resources",
                                "resolvedFiles": [{"path": f"{root}/App/Resources/Assets.xcassets"}],
                            },
                        ],
                        "dependencies": [{"target": {"name": "Lib"}}],
                        "infoPlist": {
                            "extendingDefault": {
                                "with": {"CFBundleDisplayName": {"string": {"_0": "My App"}}},
                            },
                        },
                    },
                    "Lib": {
                        "name": "Lib",
                        "product": "static_library",
                        "bundleId": "com.example.lib",
                        "destinations": ["iPhone", "iPad"],
                        "buildableFolders": [
                            {
                                "path": f"{root}/Lib/Sources",
                                "resolvedFiles": [{"path": f"{root}/Lib/Sources/Lib.swift"}],
                            },
                        ],
                        "dependencies": [{"sdk": {"name": "UIKit.framework"}}],
                    },
                    "AppTests": {
                        "name": "AppTests",
                        "product": "unit_tests",
                        "bundleId": "com.example.app.tests",
                        "destinations": ["iPhone"],
                        "buildableFolders": [
                            {
                                "path": f"{root}/AppTests",
                                "resolvedFiles": [{"path": f"{root}/AppTests/AppTests.swift"}],
                            },
                        ],
                        "dependencies": [{"target": {"name": "App"}}],
                    },
                },
            },
        ],
    }


@pytest.fixture
def sample_graph(sample_document) -> ProjectGraph:
    return parse_graph(sample_document)


@pytest.fixture
def tuist_calls(sample_document):
    """Recorded ``tuist version`` and ``tuist graph`` results for the sample project."""
    return [
        RecordedCall(["tuist", "version"], stdout=f"{TUIST_VERSION}\n"),
        RecordedCall(["tuist", "graph"], stdout=json.dumps(sample_document)),
    ]


@pytest.fixture
def recorded_runner(tuist_calls):
    return RecordedRunner(list(tuist_calls))


@pytest.fixture
def make_target():
    """Factory for Target with iPhone destination defaults."""

    def _make(name: str, product: ProductKind = ProductKind.STATIC_LIBRARY, **kwargs) -> Target:
        kwargs.setdefault("bundle_id", f"com.example.{name.lower()}")
        kwargs.setdefault("destinations", frozenset({Destination.IPHONE}))
        return Target(name=name, product=product, **kwargs)

    return _make
