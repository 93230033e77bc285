"""Closure Engine: transitive closures with witness paths.

Provides:
- ``Condition``: non-fatal annotations (cycle detected, truncated).
- ``Closure``: members of a closure with their BFS depth and all shortest
  witness paths (bounded per member).
- ``AssetTags``: tags effectively applied to an asset, grouped by source.
- ``TagReach``: every asset a tag effectively reaches.
- ``ClosureEngine``: computes and caches the above for one frozen store.

Closures are breadth-first. A node reached again at the same depth through a
new predecessor gains the extra paths; a node reached again at a greater depth
is ignored, so only shortest paths are kept. Visited tracking guarantees
termination on cyclic input; the cycle is reported as a condition.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Mapping

from ..config import EngineConfig
from ..exceptions import CycleDetected, Truncated
from .edges import Direction, EdgeType
from .nodes import NodeKind
from .store import GraphStore

logger = logging.getLogger(__name__)

Path = tuple[str, ...]


class Condition(str, Enum):
    """Incompleteness signals attached to query results."""

    CYCLE_DETECTED = "cycle_detected"
    TRUNCATED = "truncated"


@dataclass(frozen=True)
class Closure:
    """Transitive closure of ``start`` over one edge type and direction.

    ``start`` itself is never a member.
    """

    start: str
    edge_type: EdgeType
    direction: Direction
    depths: Mapping[str, int]
    paths: Mapping[str, tuple[Path, ...]]
    conditions: frozenset[Condition] = frozenset()

    def __contains__(self, node_id: object) -> bool:
        return node_id in self.depths

    def __len__(self) -> int:
        return len(self.depths)

    @property
    def members(self) -> frozenset[str]:
        return frozenset(self.depths)

    @property
    def complete(self) -> bool:
        return not self.conditions

    def distance(self, node_id: str) -> int | None:
        return self.depths.get(node_id)

    def paths_to(self, node_id: str) -> tuple[Path, ...]:
        return self.paths.get(node_id, ())

    def at_depth(self, depth: int) -> frozenset[str]:
        return frozenset(n for n, d in self.depths.items() if d == depth)


@dataclass(frozen=True)
class AssetTags:
    """Tags applied to an asset, grouped by how they got there.

    Each mapping is ``tag id -> witness paths``; paths start at the asset and
    end at the tag (``a2 -> a1 -> t`` for a tag inherited from parent ``a1``).
    """

    asset: str
    direct: Mapping[str, tuple[Path, ...]] = field(default_factory=lambda: MappingProxyType({}))
    via_hierarchy: Mapping[str, tuple[Path, ...]] = field(default_factory=lambda: MappingProxyType({}))
    via_lineage: Mapping[str, tuple[Path, ...]] = field(default_factory=lambda: MappingProxyType({}))
    conditions: frozenset[Condition] = frozenset()

    @property
    def all_tags(self) -> frozenset[str]:
        return frozenset(self.direct) | frozenset(self.via_hierarchy) | frozenset(self.via_lineage)

    def __contains__(self, tag_id: object) -> bool:
        return tag_id in self.direct or tag_id in self.via_hierarchy or tag_id in self.via_lineage

    def paths_to(self, tag_id: str) -> tuple[Path, ...]:
        return self.direct.get(tag_id, ()) + self.via_hierarchy.get(tag_id, ()) + self.via_lineage.get(tag_id, ())

    def sources(self, tag_id: str) -> tuple[str, ...]:
        found = []
        if tag_id in self.direct:
            found.append("direct")
        if tag_id in self.via_hierarchy:
            found.append("via_hierarchy")
        if tag_id in self.via_lineage:
            found.append("via_lineage")
        return tuple(found)


@dataclass(frozen=True)
class TagReach:
    """Every asset a tag is effectively applied to."""

    tag: str
    assets: Mapping[str, AssetTags] = field(default_factory=dict)
    conditions: frozenset[Condition] = frozenset()


class ClosureEngine:
    """Computes closures over a frozen :class:`GraphStore`.

    Results are cached for the lifetime of the engine, which is the lifetime
    of one generation. Cache population is idempotent: two threads computing
    the same key at once produce equal results and the first one stored wins.
    """

    def __init__(self, store: GraphStore, config: EngineConfig | None = None) -> None:
        self.store = store
        self.config = config or EngineConfig()
        self._cache: dict[tuple[str, EdgeType, Direction], Closure] = {}
        self._tag_cache: dict[str, AssetTags] = {}

    # ── Generic closures ────────────────────────────────

    def closure(self, start: str, edge_type: EdgeType | str, direction: Direction | str = Direction.OUT) -> Closure:
        """Closure of ``start`` along ``edge_type`` in ``direction``.

        Raises:
            NotFound: If ``start`` is unknown.
            CycleDetected / Truncated: Only with ``fail_on_incomplete``.
        """
        key = (start, EdgeType(edge_type), Direction(direction))
        result = self._cache.get(key)
        if result is None:
            self.store.get(start)
            result = self._cache.setdefault(key, self._traverse(*key))
        self._check_complete(result.conditions, f"{key[1].value} closure of {start!r}")
        return result

    def _traverse(self, start: str, edge_type: EdgeType, direction: Direction) -> Closure:
        cfg = self.config
        depths: dict[str, int] = {}
        paths: dict[str, tuple[Path, ...]] = {start: ((start,),)}
        conditions: set[Condition] = set()

        frontier = [start]
        depth = 0
        while frontier:
            if depth >= cfg.max_depth:
                if any(
                    neighbor != start and neighbor not in depths
                    for n in frontier
                    for neighbor in self.store.neighbors(n, edge_type, direction)
                ):
                    conditions.add(Condition.TRUNCATED)
                break
            depth += 1
            found: dict[str, list[Path]] = {}
            for node in frontier:
                node_paths = paths[node]
                for neighbor in sorted(self.store.neighbors(node, edge_type, direction)):
                    if neighbor == start or depths.get(neighbor, depth) < depth:
                        continue
                    if neighbor not in depths:
                        if len(depths) >= cfg.max_closure_size:
                            conditions.add(Condition.TRUNCATED)
                            continue
                        depths[neighbor] = depth
                    bucket = found.setdefault(neighbor, [])
                    for p in node_paths:
                        if len(bucket) >= cfg.max_paths_per_target:
                            conditions.add(Condition.TRUNCATED)
                            break
                        bucket.append(p + (neighbor,))
            for node, node_paths in found.items():
                paths[node] = tuple(node_paths)
            frontier = sorted(found)

        del paths[start]
        if self._reaches_cycle(start, edge_type, direction, depths):
            conditions.add(Condition.CYCLE_DETECTED)
        if Condition.CYCLE_DETECTED in conditions:
            logger.warning("Cycle detected in %s graph while traversing from %r", edge_type.value, start)
        if Condition.TRUNCATED in conditions:
            logger.warning(
                "%s closure from %r truncated at %d members", edge_type.value, start, len(depths)
            )
        logger.debug("Computed %s/%s closure for %r: %d members", edge_type.value, direction.value, start, len(depths))
        return Closure(
            start=start,
            edge_type=edge_type,
            direction=direction,
            depths=MappingProxyType(depths),
            paths=MappingProxyType(paths),
            conditions=frozenset(conditions),
        )

    def _reaches_cycle(self, start: str, edge_type: EdgeType, direction: Direction, members: Mapping[str, int]) -> bool:
        """Iterative three-colour DFS over ``start`` and the closure members."""
        on_stack, done = 1, 2
        state = {start: on_stack}
        stack = [(start, iter(sorted(self.store.neighbors(start, edge_type, direction))))]
        while stack:
            node, pending = stack[-1]
            for neighbor in pending:
                if neighbor != start and neighbor not in members:
                    continue
                seen = state.get(neighbor)
                if seen == on_stack:
                    return True
                if seen is None:
                    state[neighbor] = on_stack
                    stack.append((neighbor, iter(sorted(self.store.neighbors(neighbor, edge_type, direction)))))
                    break
            else:
                state[node] = done
                stack.pop()
        return False

    def _check_complete(self, conditions: frozenset[Condition], what: str) -> None:
        if not self.config.fail_on_incomplete or not conditions:
            return
        if Condition.CYCLE_DETECTED in conditions:
            raise CycleDetected(f"Cycle detected in {what}", what=what)
        raise Truncated(f"Truncated {what}", what=what)

    # ── Named closures ──────────────────────────────────

    def groups_of(self, agent: str) -> Closure:
        """All groups a user or group belongs to, directly or transitively."""
        return self.closure(agent, EdgeType.MEMBER_OF, Direction.OUT)

    def members_of(self, group: str) -> Closure:
        """All users and groups that belong to a group, directly or transitively."""
        return self.closure(group, EdgeType.MEMBER_OF, Direction.IN)

    def ancestors(self, asset: str) -> Closure:
        return self.closure(asset, EdgeType.CHILD_OF, Direction.OUT)

    def descendants(self, asset: str) -> Closure:
        return self.closure(asset, EdgeType.CHILD_OF, Direction.IN)

    def lineage_upstream(self, asset: str) -> Closure:
        return self.closure(asset, EdgeType.DERIVED_FROM, Direction.OUT)

    def lineage_downstream(self, asset: str) -> Closure:
        return self.closure(asset, EdgeType.DERIVED_FROM, Direction.IN)

    def member_users(self, group: str) -> frozenset[str]:
        """User ids among the transitive members of a group."""
        return frozenset(
            n for n in self.members_of(group).members if self.store.get(n).kind == NodeKind.USER
        )

    # ── Tag propagation ─────────────────────────────────

    def tags_for_asset(self, asset: str) -> AssetTags:
        """Tags effectively applied to ``asset``, by source.

        A tag reaches the asset:
        - directly, through a ``tagged_with`` edge;
        - via hierarchy, from an ancestor, if the tag passes through hierarchy
          and the ancestor's ``tagged_with`` edge does not block it;
        - via lineage, from an upstream asset, likewise for lineage.

        A path is dropped when any asset on it carries an ``untagged_as`` edge
        to the tag. Hierarchy and lineage are never mixed within one path.
        """
        result = self._tag_cache.get(asset)
        if result is None:
            self.store.get_kind(asset, NodeKind.ASSET)
            result = self._tag_cache.setdefault(asset, self._propagate_tags(asset))
        self._check_complete(result.conditions, f"tag closure of {asset!r}")
        return result

    def _propagate_tags(self, asset: str) -> AssetTags:
        store = self.store
        conditions: set[Condition] = set()

        direct = {
            tag: ((asset, tag),)
            for tag in sorted(store.neighbors(asset, EdgeType.TAGGED_WITH))
            if not store.has_edge(asset, tag, EdgeType.UNTAGGED_AS)
        }

        via_hierarchy = self._inherited_tags(
            self.raw_closure(asset, EdgeType.CHILD_OF),
            "pass_through_hierarchy",
            "no_hierarchy_inherit",
            conditions,
        )
        via_lineage = self._inherited_tags(
            self.raw_closure(asset, EdgeType.DERIVED_FROM),
            "pass_through_lineage",
            "no_lineage_inherit",
            conditions,
        )

        return AssetTags(
            asset=asset,
            direct=MappingProxyType(direct),
            via_hierarchy=MappingProxyType(via_hierarchy),
            via_lineage=MappingProxyType(via_lineage),
            conditions=frozenset(conditions),
        )

    def raw_closure(self, start: str, edge_type: EdgeType, direction: Direction = Direction.OUT) -> Closure:
        """Like :meth:`closure` but never raises for cycles or truncation.

        Used where the condition is folded into a larger result or turned
        into a load-time error.
        """
        key = (start, EdgeType(edge_type), Direction(direction))
        result = self._cache.get(key)
        if result is None:
            self.store.get(start)
            result = self._cache.setdefault(key, self._traverse(*key))
        return result

    def _inherited_tags(
        self,
        route: Closure,
        pass_flag: str,
        block_flag: str,
        conditions: set[Condition],
    ) -> dict[str, tuple[Path, ...]]:
        store = self.store
        conditions.update(route.conditions)
        found: dict[str, list[Path]] = {}
        for source in sorted(route.depths, key=lambda n: (route.depths[n], n)):
            for tag in sorted(store.neighbors(source, EdgeType.TAGGED_WITH)):
                if not getattr(store.get(tag).attributes, pass_flag):
                    continue
                if getattr(store.edge(source, tag, EdgeType.TAGGED_WITH), block_flag):
                    continue
                bucket = found.setdefault(tag, [])
                kept = False
                for path in route.paths_to(source):
                    if any(store.has_edge(n, tag, EdgeType.UNTAGGED_AS) for n in path):
                        continue
                    if len(bucket) >= self.config.max_paths_per_target:
                        conditions.add(Condition.TRUNCATED)
                        break
                    bucket.append(path + (tag,))
                    kept = True
                if not kept and len(bucket) < self.config.max_paths_per_target:
                    # Every shortest path is poisoned; a longer one may not be
                    detour = self._unpoisoned_path(route, source, tag)
                    if detour is not None:
                        bucket.append(detour + (tag,))
        return {tag: tuple(paths) for tag, paths in found.items() if paths}

    def _unpoisoned_path(self, route: Closure, target: str, tag: str) -> Path | None:
        """Shortest path along ``route``'s edges avoiding assets that drop ``tag``."""
        store = self.store

        def removed(node: str) -> bool:
            return store.has_edge(node, tag, EdgeType.UNTAGGED_AS)

        if removed(route.start) or removed(target):
            return None
        parents: dict[str, str | None] = {route.start: None}
        frontier = [route.start]
        for _ in range(self.config.max_depth):
            next_frontier = []
            for node in frontier:
                for neighbor in sorted(store.neighbors(node, route.edge_type, route.direction)):
                    if neighbor in parents or removed(neighbor):
                        continue
                    parents[neighbor] = node
                    if neighbor == target:
                        path = [neighbor]
                        while parents[path[-1]] is not None:
                            path.append(parents[path[-1]])
                        return tuple(reversed(path))
                    next_frontier.append(neighbor)
            if not next_frontier:
                break
            frontier = next_frontier
        return None

    def assets_for_tag(self, tag: str) -> TagReach:
        """Every asset ``tag`` is effectively applied to, with witness paths."""
        tag_node = self.store.get_kind(tag, NodeKind.TAG)
        attributes = tag_node.attributes
        conditions: set[Condition] = set()

        candidates = set(self.store.neighbors(tag, EdgeType.TAGGED_WITH, Direction.IN))
        for source in list(candidates):
            if attributes.pass_through_hierarchy:
                below = self.closure(source, EdgeType.CHILD_OF, Direction.IN)
                conditions.update(below.conditions)
                candidates |= below.members
            if attributes.pass_through_lineage:
                downstream = self.closure(source, EdgeType.DERIVED_FROM, Direction.IN)
                conditions.update(downstream.conditions)
                candidates |= downstream.members

        assets = {}
        for candidate in sorted(candidates):
            asset_tags = self.tags_for_asset(candidate)
            if tag in asset_tags:
                assets[candidate] = asset_tags
                conditions.update(asset_tags.conditions)
        return TagReach(tag=tag, assets=MappingProxyType(assets), conditions=frozenset(conditions))


__all__ = [
    "AssetTags",
    "Closure",
    "ClosureEngine",
    "Condition",
    "Path",
    "TagReach",
]
