# src/resolver/resolver.py - v1
"""Resolver: validate a locked DependencyGraph and produce an InstallPlan.

Validation is a depth-first traversal with three-colour marking. A back edge
to an in-progress package closes a cycle; the packages on the current path
from that package onwards are the cycle's members.

Ordering places, at every step, the lexicographically smallest package whose
dependencies are all already placed. Identical graphs therefore always yield
identical plans.

Pure: no I/O.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from enum import IntEnum

import networkx as nx

from envrestore.core.errors import CycleError, DanglingReferenceError
from envrestore.core.models import DependencyGraph, InstallPlan

logger = logging.getLogger(__name__)


class _Mark(IntEnum):
    UNVISITED = 0
    IN_PROGRESS = 1
    DONE = 2


def resolve(graph: DependencyGraph) -> InstallPlan:
    """Validate *graph* and return a deterministic installation order.

    Raises:
        DanglingReferenceError: A dependency is not present in the graph.
        CycleError: The graph contains a dependency cycle.
    """
    if not graph.packages:
        return InstallPlan()

    check_closed(graph)
    check_acyclic(graph)

    g = graph.to_networkx()
    order = list(nx.lexicographical_topological_sort(g))
    stages = [sorted(level) for level in nx.topological_generations(g)]

    plan = InstallPlan(
        packages=[graph.packages[name] for name in order],
        stages=stages,
    )
    logger.info(
        "Resolved %d packages in %d stages", len(plan), len(plan.stages)
    )
    return plan


def check_closed(graph: DependencyGraph) -> None:
    """Every depends_on name must be a key of the graph."""
    for name in graph.names():
        for dep in sorted(graph.packages[name].depends_on):
            if dep not in graph.packages:
                raise DanglingReferenceError(name, dep)


def check_acyclic(graph: DependencyGraph) -> None:
    """Three-colour DFS; raises CycleError naming the members of the first cycle."""
    marks = {name: _Mark.UNVISITED for name in graph.packages}

    def children(name: str) -> Iterator[str]:
        return iter(sorted(graph.packages[name].depends_on))

    for root in graph.names():
        if marks[root] is not _Mark.UNVISITED:
            continue
        marks[root] = _Mark.IN_PROGRESS
        path = [root]
        stack = [children(root)]
        while stack:
            dep = next(stack[-1], None)
            if dep is None:
                marks[path.pop()] = _Mark.DONE
                stack.pop()
                continue
            if dep not in marks:
                raise DanglingReferenceError(path[-1], dep)
            mark = marks[dep]
            if mark is _Mark.IN_PROGRESS:
                members = path[path.index(dep):]
                logger.error("Dependency cycle: %s", " -> ".join(members + [dep]))
                raise CycleError(members)
            if mark is _Mark.UNVISITED:
                marks[dep] = _Mark.IN_PROGRESS
                path.append(dep)
                stack.append(children(dep))
