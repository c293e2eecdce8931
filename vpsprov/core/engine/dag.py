"""
DAG utilities (pure).

Stable topological ordering and cycle discovery for step dependency
graphs. No I/O, no subprocess.

Graphs are given as an ordered node list plus a mapping of
``node → predecessors`` (the nodes it depends on).
"""

from __future__ import annotations

import heapq
from collections.abc import Iterable, Mapping


def stable_topological_order(
    nodes: list[str],
    edges: Mapping[str, Iterable[str]],
) -> tuple[list[str], list[str]]:
    """Order nodes so that every node follows its predecessors.

    Kahn's algorithm with a priority queue keyed on each node's
    position in ``nodes``: whenever several nodes are ready, the one
    listed first wins. Identical input always yields identical output.

    Predecessors not present in ``nodes`` are ignored.

    Args:
        nodes: Nodes in preferred (registration) order.
        edges: ``node → predecessors``.

    Returns:
        ``(order, remaining)``. ``remaining`` lists the nodes that could
        not be ordered because they sit on or behind a cycle; it is
        empty for an acyclic graph.
    """
    position = {node: i for i, node in enumerate(nodes)}
    in_degree: dict[str, int] = {node: 0 for node in nodes}
    successors: dict[str, list[str]] = {node: [] for node in nodes}

    for node in nodes:
        for dep in set(edges.get(node, ())):
            if dep not in position:
                continue
            in_degree[node] += 1
            successors[dep].append(node)

    ready = [position[n] for n in nodes if in_degree[n] == 0]
    heapq.heapify(ready)
    order: list[str] = []

    while ready:
        node = nodes[heapq.heappop(ready)]
        order.append(node)
        for successor in successors[node]:
            in_degree[successor] -= 1
            if in_degree[successor] == 0:
                heapq.heappush(ready, position[successor])

    placed = set(order)
    remaining = [n for n in nodes if n not in placed]
    return order, remaining


def find_cycle(
    nodes: list[str],
    edges: Mapping[str, Iterable[str]],
) -> list[str]:
    """Find one dependency cycle.

    Depth-first search following ``node → predecessor`` edges, visiting
    nodes and predecessors in ``nodes`` order so the reported cycle is
    deterministic.

    Returns:
        The cycle as ``[a, b, ..., a]`` (a depends on b, ...), or an
        empty list if the graph is acyclic.
    """
    position = {node: i for i, node in enumerate(nodes)}
    visiting: set[str] = set()
    done: set[str] = set()
    path: list[str] = []

    def visit(node: str) -> list[str]:
        visiting.add(node)
        path.append(node)
        deps = sorted(
            (d for d in set(edges.get(node, ())) if d in position),
            key=position.__getitem__,
        )
        for dep in deps:
            if dep in visiting:
                return path[path.index(dep):] + [dep]
            if dep not in done:
                cycle = visit(dep)
                if cycle:
                    return cycle
        path.pop()
        visiting.discard(node)
        done.add(node)
        return []

    for node in nodes:
        if node not in done:
            cycle = visit(node)
            if cycle:
                return cycle
    return []
