"""Tests for DAG resolution over target dependencies."""

from __future__ import annotations

import pytest

from catalyst.core.errors import CyclicDependencyError, MalformedGraphError
from catalyst.core.models import Dependency, ProductKind, ProjectGraph
from catalyst.graph.dag import resolve_build_order


def _graph(*targets) -> ProjectGraph:
    return ProjectGraph(name="P", path="/p", targets={t.name: t for t in targets})


class TestResolveBuildOrder:
    def test_dependencies_first(self, make_target):
        graph = _graph(
            make_target("App", ProductKind.APP, dependencies=(Dependency("Lib"),)),
            make_target("Lib"),
        )
        names = [t.name for t in resolve_build_order(graph)]
        assert names == ["Lib", "App"]

    def test_diamond_no_duplicates(self, make_target):
        graph = _graph(
            make_target("Base"),
            make_target("Left", dependencies=(Dependency("Base"),)),
            make_target("Right", dependencies=(Dependency("Base"),)),
            make_target("App", ProductKind.APP, dependencies=(Dependency("Left"), Dependency("Right"))),
        )
        names = [t.name for t in resolve_build_order(graph)]

        assert len(names) == len(set(names)) == 4
        assert names.index("Base") < names.index("Left")
        assert names.index("Base") < names.index("Right")
        assert names[-1] == "App"

    def test_ties_broken_by_name(self, make_target):
        """Independent targets come out alphabetically."""
        graph = _graph(make_target("Zeta"), make_target("Alpha"), make_target("Mid"))
        assert [t.name for t in resolve_build_order(graph)] == ["Alpha", "Mid", "Zeta"]

    def test_order_is_stable_across_calls(self, sample_graph):
        first = [t.name for t in resolve_build_order(sample_graph)]
        second = [t.name for t in resolve_build_order(sample_graph)]
        assert first == second == ["Lib", "App", "AppTests"]

    def test_cycle_detection(self, make_target):
        graph = _graph(
            make_target("A", dependencies=(Dependency("C"),)),
            make_target("B", dependencies=(Dependency("A"),)),
            make_target("C", dependencies=(Dependency("B"),)),
            make_target("Free"),
        )
        with pytest.raises(CyclicDependencyError, match="[Cc]ircular") as exc:
            resolve_build_order(graph)
        assert exc.value.targets == ["A", "B", "C"]

    def test_self_dependency_is_a_cycle(self, make_target):
        graph = _graph(make_target("A", dependencies=(Dependency("A"),)))
        with pytest.raises(CyclicDependencyError):
            resolve_build_order(graph)

    def test_unknown_dependency(self, make_target):
        graph = _graph(make_target("A", dependencies=(Dependency("Ghost"),)))
        with pytest.raises(MalformedGraphError, match="Ghost"):
            resolve_build_order(graph)

    def test_empty_graph(self):
        assert resolve_build_order(_graph()) == []
