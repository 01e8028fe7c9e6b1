"""Graph walks over ``node -> [dependency, ...]`` adjacency maps.

Both walks use an explicit stack with a three-colour marker per node
(unvisited / in-progress / done) instead of recursion, so deep graphs cannot
hit the interpreter recursion limit and the visitation order is exactly the
order given by the caller.

Edges pointing at nodes absent from the map are ignored (tolerated missing
optional dependencies never reach the walk as nodes).
"""
from __future__ import annotations

from typing import Callable, Dict, Hashable, Iterable, List, Mapping, Optional, Sequence

from modflow.errors import CircularDependencyError

WHITE, GREY, BLACK = 0, 1, 2

Graph = Mapping[str, Sequence[str]]


def find_cycle(graph: Graph, order: Optional[Iterable[str]] = None) -> Optional[List[str]]:
    """Return the first cycle found as ``[a, b, ..., a]`` or ``None``.

    Roots are tried in ``order`` (default: mapping order), neighbours in
    adjacency order, so the reported cycle is deterministic.
    """
    color: Dict[str, int] = {}
    for root in order if order is not None else graph:
        if root not in graph or color.get(root, WHITE) != WHITE:
            continue
        color[root] = GREY
        path = [root]
        stack = [iter(graph[root])]
        while stack:
            for nxt in stack[-1]:
                if nxt not in graph:
                    continue
                c = color.get(nxt, WHITE)
                if c == GREY:
                    return path[path.index(nxt):] + [nxt]
                if c == WHITE:
                    color[nxt] = GREY
                    path.append(nxt)
                    stack.append(iter(graph[nxt]))
                    break
            else:
                color[path.pop()] = BLACK
                stack.pop()
    return None


def topological_order(
    graph: Graph,
    key: Optional[Callable[[str], Hashable]] = None,
) -> List[str]:
    """Postorder DFS: each node is emitted after all of its dependencies.

    ``key`` orders roots and sibling dependencies (ties between unrelated
    nodes); nodes equal under ``key`` keep mapping order.
    """
    nodes = list(graph)
    if key is not None:
        nodes.sort(key=key)

    def neighbours(node: str) -> List[str]:
        deps = [d for d in graph[node] if d in graph]
        if key is not None:
            deps.sort(key=key)
        return deps

    color: Dict[str, int] = {}
    out: List[str] = []
    for root in nodes:
        if color.get(root, WHITE) != WHITE:
            continue
        color[root] = GREY
        path = [root]
        stack = [iter(neighbours(root))]
        while stack:
            for nxt in stack[-1]:
                c = color.get(nxt, WHITE)
                if c == GREY:
                    raise CircularDependencyError(path[path.index(nxt):] + [nxt])
                if c == WHITE:
                    color[nxt] = GREY
                    path.append(nxt)
                    stack.append(iter(neighbours(nxt)))
                    break
            else:
                done = path.pop()
                color[done] = BLACK
                out.append(done)
                stack.pop()
    return out


def reverse_edges(graph: Graph) -> Dict[str, List[str]]:
    """``node -> [dependents]`` (nodes that depend on it), mapping order kept."""
    rev: Dict[str, List[str]] = {n: [] for n in graph}
    for node, deps in graph.items():
        for d in deps:
            if d in rev:
                rev[d].append(node)
    return rev


def depths(graph: Graph) -> Dict[str, int]:
    """Longest dependency chain below each node (0 = no dependencies).

    Assumes an acyclic graph; nodes on a cycle get the depth reached before
    the back edge.
    """
    out: Dict[str, int] = {}
    for node in topological_order_safe(graph):
        deps = [d for d in graph[node] if d in out]
        out[node] = max((out[d] + 1 for d in deps), default=0)
    return out


def topological_order_safe(graph: Graph) -> List[str]:
    try:
        return topological_order(graph)
    except CircularDependencyError:
        return list(graph)


__all__ = [
    "find_cycle",
    "topological_order",
    "reverse_edges",
    "depths",
    "topological_order_safe",
]
