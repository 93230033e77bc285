"""Bounded path enumeration and neighbourhood extraction.

These back the explore queries "paths between two nodes" and "subgraph around
a node". Both are bounded by the engine configuration and report truncation
instead of growing without limit.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from ..config import EngineConfig
from ..exceptions import ConfigurationError
from .closure import Condition, Path
from .edges import Direction, Edge, EdgeType
from .store import GraphStore


@dataclass(frozen=True)
class PathSet:
    """Simple paths from ``source`` to ``target``, shortest first."""

    source: str
    target: str
    paths: tuple[Path, ...]
    conditions: frozenset[Condition] = frozenset()


@dataclass(frozen=True)
class Subgraph:
    """Nodes within ``depth`` hops of ``center`` and the edges among them."""

    center: str
    depth: int
    nodes: frozenset[str]
    edges: tuple[Edge, ...]
    conditions: frozenset[Condition] = frozenset()


def simple_paths(
    store: GraphStore,
    source: str,
    target: str,
    edge_types: Iterable[EdgeType] | None = None,
    direction: Direction = Direction.OUT,
    config: EngineConfig | None = None,
) -> PathSet:
    """Enumerate simple (node-disjoint within a path) paths between two nodes.

    Args:
        store: Frozen graph store.
        source: Start node id.
        target: End node id.
        edge_types: Edge types that may be followed (default: all).
        direction: Direction in which edges are followed.
        config: Bounds (``max_depth``, ``max_path_enumeration``).

    Returns:
        PathSet with paths sorted by length then lexicographically.
    """
    config = config or EngineConfig()
    store.get(source)
    store.get(target)
    allowed = tuple(EdgeType(e) for e in edge_types) if edge_types else tuple(EdgeType)

    results: list[Path] = []
    conditions: set[Condition] = set()
    visited = [source]
    on_path = {source}

    def walk(node: str) -> None:
        if len(results) >= config.max_path_enumeration:
            conditions.add(Condition.TRUNCATED)
            return
        if len(visited) > config.max_depth:
            conditions.add(Condition.TRUNCATED)
            return
        successors = set()
        for edge_type in allowed:
            successors |= store.neighbors(node, edge_type, direction)
        for nxt in sorted(successors):
            if nxt in on_path:
                continue
            if nxt == target:
                if len(results) >= config.max_path_enumeration:
                    conditions.add(Condition.TRUNCATED)
                    return
                results.append(tuple(visited) + (nxt,))
                continue
            visited.append(nxt)
            on_path.add(nxt)
            walk(nxt)
            on_path.discard(nxt)
            visited.pop()

    if source != target:
        walk(source)

    results.sort(key=lambda p: (len(p), p))
    return PathSet(source=source, target=target, paths=tuple(results), conditions=frozenset(conditions))


def extract_subgraph(
    store: GraphStore,
    center: str,
    depth: int,
    config: EngineConfig | None = None,
) -> Subgraph:
    """Breadth-first neighbourhood of ``center`` over every edge type, both directions.

    Raises:
        ConfigurationError: If ``depth`` is negative or above ``max_subgraph_depth``.
    """
    config = config or EngineConfig()
    if depth < 0 or depth > config.max_subgraph_depth:
        raise ConfigurationError(
            f"Subgraph depth must be between 0 and {config.max_subgraph_depth}",
            depth=depth,
        )
    store.get(center)

    seen = {center}
    conditions: set[Condition] = set()
    frontier = [center]
    for _ in range(depth):
        following = []
        for node in frontier:
            for edge_type in EdgeType:
                for direction in Direction:
                    for neighbor in sorted(store.neighbors(node, edge_type, direction)):
                        if neighbor in seen:
                            continue
                        if len(seen) >= config.max_closure_size:
                            conditions.add(Condition.TRUNCATED)
                            continue
                        seen.add(neighbor)
                        following.append(neighbor)
        frontier = following

    edges = []
    for node in sorted(seen):
        for edge_type in EdgeType:
            for neighbor in sorted(store.neighbors(node, edge_type, Direction.OUT)):
                if neighbor in seen:
                    edges.append(store.edge(node, neighbor, edge_type))

    return Subgraph(
        center=center,
        depth=depth,
        nodes=frozenset(seen),
        edges=tuple(edges),
        conditions=frozenset(conditions),
    )


__all__ = [
    "PathSet",
    "Subgraph",
    "extract_subgraph",
    "simple_paths",
]
