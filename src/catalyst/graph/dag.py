"""DAG resolution: deterministic build order over target dependencies."""

from __future__ import annotations

import heapq

from catalyst.core.errors import CyclicDependencyError, MalformedGraphError
from catalyst.core.models import ProjectGraph, Target


def resolve_build_order(graph: ProjectGraph) -> list[Target]:
    """Topological sort of targets, dependencies first.

    Ties are broken by target name so the order is identical across runs.
    """
    targets = graph.targets

    in_degree: dict[str, int] = {name: 0 for name in targets}
    children: dict[str, list[str]] = {name: [] for name in targets}

    for target in targets.values():
        for dep in target.dependencies:
            if dep.target not in targets:
                raise MalformedGraphError(
                    f"Target '{target.name}' depends on unknown target '{dep.target}'",
                    field=f"targets.{target.name}.dependencies",
                )
            children[dep.target].append(target.name)
            in_degree[target.name] += 1

    ready = [name for name, degree in in_degree.items() if degree == 0]
    heapq.heapify(ready)

    order: list[str] = []
    while ready:
        name = heapq.heappop(ready)
        order.append(name)
        for child in children[name]:
            in_degree[child] -= 1
            if in_degree[child] == 0:
                heapq.heappush(ready, child)

    if len(order) != len(targets):
        raise CyclicDependencyError(list(set(targets) - set(order)))

    return [targets[name] for name in order]
