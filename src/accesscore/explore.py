"""Query/Explore façade: read-only projections over one generation.

Every query is a pure function of the generation and its arguments. Results
are pydantic models ready for JSON: node summaries, zero or more witness
paths, and the conditions (cycle detected, truncated) of the traversals the
answer was built from.

Usage:
    explorer = Explorer(holder.current)
    explorer.users_with_access("sf-orders")
    explorer.accessible_assets("alice")
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Iterable, Optional

from pydantic import BaseModel, Field

from .generation import Generation
from .graph.closure import Closure, Condition, Path
from .graph.edges import Direction, EdgeType
from .graph.nodes import Node, NodeKind
from .graph.paths import extract_subgraph, simple_paths
from .permissions.inheritance import expand_targets
from .permissions.resolver import Explanation, Resolution

logger = logging.getLogger(__name__)


# =============================================================================
# Response Models
# =============================================================================


class NodeSummary(BaseModel):
    """Display projection of a node."""

    id: str
    name: str
    kind: str
    display_name: str
    icon: str
    connectors: list[str] = Field(default_factory=list)

    @classmethod
    def of(cls, node: Node) -> NodeSummary:
        return cls(
            id=node.id,
            name=node.name,
            kind=node.kind.value,
            display_name=node.display_name(),
            icon=node.icon(),
            connectors=sorted(node.connectors),
        )


class NodeDetail(BaseModel):
    """A node with its kind-specific attributes and neighbour ids."""

    node: NodeSummary
    attributes: dict[str, Any]
    neighbors: dict[str, list[str]] = Field(
        default_factory=dict,
        description="'<edge_type>:<in|out>' -> neighbour ids",
    )


class RelatedNode(BaseModel):
    """A node reached from the query subject, with witness paths."""

    node: NodeSummary
    distance: Optional[int] = None
    paths: list[list[str]] = Field(default_factory=list)
    sources: list[str] = Field(default_factory=list)
    assets: list[str] = Field(default_factory=list)


class RelatedNodes(BaseModel):
    items: list[RelatedNode] = Field(default_factory=list)
    conditions: list[str] = Field(default_factory=list)


class DirectMembers(BaseModel):
    users: list[NodeSummary] = Field(default_factory=list)
    groups: list[NodeSummary] = Field(default_factory=list)


class AccessEntry(BaseModel):
    """Effective access of one (user, asset) pair as seen from the query subject."""

    node: NodeSummary
    privilege: str
    policies: list[str] = Field(default_factory=list)
    agent_paths: list[list[str]] = Field(default_factory=list)
    target_paths: list[list[str]] = Field(default_factory=list)
    assets: list[str] = Field(default_factory=list)


class AccessList(BaseModel):
    entries: list[AccessEntry] = Field(default_factory=list)
    conditions: list[str] = Field(default_factory=list)


class ExplanationView(BaseModel):
    policy: str
    privilege: str
    specificity: str
    distance: int
    route: str
    contributing: bool
    agents: list[str]
    agent_paths: list[list[str]]
    target_paths: list[list[str]]

    @classmethod
    def of(cls, explanation: Explanation) -> ExplanationView:
        return cls(
            policy=explanation.policy.id,
            privilege=explanation.policy.privilege.value,
            specificity=explanation.specificity.name.lower(),
            distance=explanation.distance,
            route=explanation.route.value,
            contributing=explanation.contributing,
            agents=sorted(explanation.agents),
            agent_paths=_paths(explanation.agent_paths),
            target_paths=_paths(explanation.target_paths),
        )


class ResolutionView(BaseModel):
    agent: NodeSummary
    asset: NodeSummary
    privilege: Optional[str] = None
    has_access: bool = False
    explanations: list[ExplanationView] = Field(default_factory=list)
    considered: list[ExplanationView] = Field(default_factory=list)
    conditions: list[str] = Field(default_factory=list)


class PathsView(BaseModel):
    source: NodeSummary
    target: NodeSummary
    paths: list[list[str]] = Field(default_factory=list)
    conditions: list[str] = Field(default_factory=list)


class EdgeView(BaseModel):
    source: str
    target: str
    edge_type: str


class SubgraphView(BaseModel):
    center: str
    depth: int
    nodes: list[NodeSummary] = Field(default_factory=list)
    edges: list[EdgeView] = Field(default_factory=list)
    conditions: list[str] = Field(default_factory=list)


class FetchInfo(BaseModel):
    generation_id: int
    built_at: datetime
    fetched_at: Optional[datetime] = None
    nodes: int
    edges: int
    policies: int


# =============================================================================
# Helpers
# =============================================================================


def _paths(paths: Iterable[Path]) -> list[list[str]]:
    return [list(p) for p in paths]


def _conditions(conditions: Iterable[Condition]) -> list[str]:
    return sorted({Condition(c).value for c in conditions})


# =============================================================================
# Explorer
# =============================================================================


class Explorer:
    """Read-only queries over one generation."""

    def __init__(self, generation: Generation) -> None:
        self.generation = generation
        self.store = generation.store
        self.closures = generation.closures
        self.index = generation.index
        self.resolver = generation.resolver

    def summary(self, node_id: str) -> NodeSummary:
        return NodeSummary.of(self.store.get(node_id))

    def _related(self, closure: Closure, kinds: Iterable[NodeKind] | None = None) -> RelatedNodes:
        kinds = frozenset(kinds) if kinds else None
        items = []
        for member in sorted(closure.depths, key=lambda n: (closure.depths[n], n)):
            node = self.store.get(member)
            if kinds is not None and node.kind not in kinds:
                continue
            items.append(
                RelatedNode(
                    node=NodeSummary.of(node),
                    distance=closure.depths[member],
                    paths=_paths(closure.paths_to(member)),
                )
            )
        return RelatedNodes(items=items, conditions=_conditions(closure.conditions))

    def _adjacent(self, node_id: str, edge_type: EdgeType, direction: Direction, kind: NodeKind | None = None) -> RelatedNodes:
        items = []
        for neighbor in sorted(self.store.neighbors(node_id, edge_type, direction)):
            node = self.store.get(neighbor)
            if kind is not None and node.kind != kind:
                continue
            path = [node_id, neighbor] if direction is Direction.OUT else [neighbor, node_id]
            items.append(RelatedNode(node=NodeSummary.of(node), distance=1, paths=[path]))
        return RelatedNodes(items=items)

    # ── Nodes ───────────────────────────────────────────

    def list_nodes(self, kind: NodeKind | str | None = None) -> list[NodeSummary]:
        kind = NodeKind(kind) if kind is not None else None
        return [NodeSummary.of(n) for n in self.store.nodes(kind)]

    def node(self, node_id: str) -> NodeDetail:
        node = self.store.get(node_id)
        neighbors = {}
        for edge_type in EdgeType:
            for direction in Direction:
                found = self.store.neighbors(node_id, edge_type, direction)
                if found:
                    neighbors[f"{edge_type.value}:{direction.value}"] = sorted(found)
        return NodeDetail(
            node=NodeSummary.of(node),
            attributes=node.attributes.model_dump(mode="json", exclude={"kind"}),
            neighbors=neighbors,
        )

    def neighbors(
        self,
        node_id: str,
        edge_type: EdgeType | str,
        direction: Direction | str = Direction.OUT,
    ) -> list[NodeSummary]:
        return [
            NodeSummary.of(self.store.get(n))
            for n in sorted(self.store.neighbors(node_id, edge_type, direction))
        ]

    # ── Effective access ────────────────────────────────

    def resolve(self, agent: str, asset: str) -> Resolution:
        return self.resolver.resolve(agent, asset)

    def explain(self, agent: str, asset: str) -> ResolutionView:
        resolution = self.resolver.resolve(agent, asset)
        return ResolutionView(
            agent=self.summary(agent),
            asset=self.summary(asset),
            privilege=resolution.privilege.value if resolution.privilege is not None else None,
            has_access=resolution.has_access,
            explanations=[ExplanationView.of(e) for e in resolution.explanations],
            considered=[ExplanationView.of(e) for e in resolution.considered],
            conditions=_conditions(resolution.conditions),
        )

    def _candidate_users(self, asset: str) -> tuple[set[str], set[Condition]]:
        """Users named, directly or through groups, by any policy reaching ``asset``."""
        matches, conditions = expand_targets(asset, self.store, self.index, self.closures)
        conditions = set(conditions)
        users: set[str] = set()
        for match in matches:
            for agent in match.policy.agents:
                if self.store.get(agent).kind == NodeKind.USER:
                    users.add(agent)
                else:
                    members = self.closures.members_of(agent)
                    conditions.update(members.conditions)
                    users |= self.closures.member_users(agent)
        return users, conditions

    @staticmethod
    def _entry(node: Node, resolution: Resolution, assets: Iterable[str] = ()) -> AccessEntry:
        return AccessEntry(
            node=NodeSummary.of(node),
            privilege=resolution.privilege.value,
            policies=[e.policy.id for e in resolution.explanations],
            agent_paths=_paths(p for e in resolution.explanations for p in e.agent_paths),
            target_paths=_paths(p for e in resolution.explanations for p in e.target_paths),
            assets=sorted(assets),
        )

    def _granted(self, asset: str, conditions: set[Condition]) -> dict[str, Resolution]:
        """Resolutions granting access to ``asset``, keyed by user id."""
        users, found = self._candidate_users(asset)
        conditions.update(found)
        granted = {}
        for user in sorted(users):
            resolution = self.resolver.resolve(user, asset)
            conditions.update(resolution.conditions)
            if resolution.has_access:
                granted[user] = resolution
        logger.debug("Access to %r: %d of %d candidate users", asset, len(granted), len(users))
        return granted

    def users_with_access(self, asset: str) -> AccessList:
        """Users whose effective privilege on ``asset`` grants any access."""
        conditions: set[Condition] = set()
        granted = self._granted(asset, conditions)
        entries = [self._entry(self.store.get(u), r) for u, r in granted.items()]
        return AccessList(entries=entries, conditions=_conditions(conditions))

    def _users_across(self, assets: Iterable[str], conditions: set[Condition]) -> AccessList:
        reached: dict[str, list[str]] = {}
        first: dict[str, Resolution] = {}
        for asset in assets:
            for user, resolution in self._granted(asset, conditions).items():
                reached.setdefault(user, []).append(asset)
                first.setdefault(user, resolution)
        entries = [self._entry(self.store.get(u), first[u], reached[u]) for u in sorted(reached)]
        return AccessList(entries=entries, conditions=_conditions(conditions))

    def all_users(self, asset: str) -> AccessList:
        """Users with access to ``asset`` or anything below or downstream of it.

        Each entry lists which of those assets the user can access; the
        explanation shown is the one for the first of them (``asset`` itself
        when the user can access it).
        """
        self.store.get_kind(asset, NodeKind.ASSET)
        conditions: set[Condition] = set()
        scope: set[str] = set()
        for closure in (self.closures.descendants(asset), self.closures.lineage_downstream(asset)):
            conditions.update(closure.conditions)
            scope |= closure.members
        scope.discard(asset)
        return self._users_across([asset] + sorted(scope), conditions)

    def _candidate_assets(self, agents: Iterable[str]) -> tuple[set[str], set[Condition]]:
        """Assets any allow policy of ``agents`` can reach."""
        candidates: set[str] = set()
        conditions: set[Condition] = set()
        for policy in self.index.for_agents(agents):
            if policy.is_deny:
                continue
            for asset in policy.assets:
                below = self.closures.descendants(asset)
                conditions.update(below.conditions)
                candidates |= below.members
                if not policy.is_default:
                    candidates.add(asset)
            if policy.is_tag_only:
                for tag in policy.include_tags:
                    reach = self.closures.assets_for_tag(tag)
                    conditions.update(reach.conditions)
                    candidates |= set(reach.assets)
        return candidates, conditions

    def accessible_assets(self, user: str) -> AccessList:
        """Assets on which ``user``'s effective privilege grants any access."""
        agents, _, agent_conditions = self.resolver.agent_set(user)
        candidates, conditions = self._candidate_assets(agents)
        conditions |= agent_conditions
        entries = []
        for asset, resolution in self.resolver.resolve_many(user, sorted(candidates)).items():
            conditions.update(resolution.conditions)
            if resolution.has_access:
                entries.append(self._entry(self.store.get(asset), resolution))
        return AccessList(entries=entries, conditions=_conditions(conditions))

    def user_tags(self, user: str) -> RelatedNodes:
        """Tags on the assets ``user`` can access, with those assets."""
        accessible = self.accessible_assets(user)
        conditions = set(accessible.conditions)
        by_tag: dict[str, list[str]] = {}
        for entry in accessible.entries:
            asset_tags = self.closures.tags_for_asset(entry.node.id)
            conditions.update(c.value for c in asset_tags.conditions)
            for tag in asset_tags.all_tags:
                by_tag.setdefault(tag, []).append(entry.node.id)
        items = [
            RelatedNode(node=self.summary(tag), assets=sorted(assets))
            for tag, assets in sorted(by_tag.items())
        ]
        return RelatedNodes(items=items, conditions=sorted(conditions))

    # ── Users and groups ────────────────────────────────

    def direct_groups(self, agent: str) -> RelatedNodes:
        self.store.get_kind(agent, NodeKind.USER, NodeKind.GROUP)
        return self._adjacent(agent, EdgeType.MEMBER_OF, Direction.OUT)

    def inherited_groups(self, agent: str) -> RelatedNodes:
        """Every group ``agent`` belongs to, directly or through other groups."""
        self.store.get_kind(agent, NodeKind.USER, NodeKind.GROUP)
        return self._related(self.closures.groups_of(agent))

    def direct_members(self, group: str) -> DirectMembers:
        self.store.get_kind(group, NodeKind.GROUP)
        members = [self.store.get(n) for n in sorted(self.store.neighbors(group, EdgeType.MEMBER_OF, Direction.IN))]
        return DirectMembers(
            users=[NodeSummary.of(n) for n in members if n.kind == NodeKind.USER],
            groups=[NodeSummary.of(n) for n in members if n.kind == NodeKind.GROUP],
        )

    def all_members(self, group: str) -> RelatedNodes:
        """Users and groups that belong to ``group`` at any depth, with membership paths."""
        self.store.get_kind(group, NodeKind.GROUP)
        return self._related(self.closures.members_of(group))

    # ── Tags ────────────────────────────────────────────

    def direct_assets(self, tag: str) -> RelatedNodes:
        self.store.get_kind(tag, NodeKind.TAG)
        result = self._adjacent(tag, EdgeType.TAGGED_WITH, Direction.IN)
        removed = {
            item.node.id for item in result.items if self.store.has_edge(item.node.id, tag, EdgeType.UNTAGGED_AS)
        }
        result.items = [item for item in result.items if item.node.id not in removed]
        return result

    def all_assets(self, tag: str) -> RelatedNodes:
        """Every asset ``tag`` is effectively applied to, grouped by source."""
        reach = self.closures.assets_for_tag(tag)
        items = []
        for asset, asset_tags in reach.assets.items():
            items.append(
                RelatedNode(
                    node=self.summary(asset),
                    paths=_paths(asset_tags.paths_to(tag)),
                    sources=list(asset_tags.sources(tag)),
                )
            )
        return RelatedNodes(items=items, conditions=_conditions(reach.conditions))

    def tag_users(self, tag: str) -> AccessList:
        """Users with access to any asset carrying ``tag``, with those assets."""
        reach = self.closures.assets_for_tag(tag)
        return self._users_across(reach.assets, set(reach.conditions))

    # ── Assets ──────────────────────────────────────────

    def hierarchy_upstream(self, asset: str) -> RelatedNodes:
        self.store.get_kind(asset, NodeKind.ASSET)
        return self._related(self.closures.ancestors(asset))

    def hierarchy_downstream(self, asset: str) -> RelatedNodes:
        self.store.get_kind(asset, NodeKind.ASSET)
        return self._related(self.closures.descendants(asset))

    def lineage_upstream(self, asset: str) -> RelatedNodes:
        self.store.get_kind(asset, NodeKind.ASSET)
        return self._related(self.closures.lineage_upstream(asset))

    def lineage_downstream(self, asset: str) -> RelatedNodes:
        self.store.get_kind(asset, NodeKind.ASSET)
        return self._related(self.closures.lineage_downstream(asset))

    def asset_tags(self, asset: str) -> RelatedNodes:
        """Tags effectively applied to ``asset``, each with its sources and paths."""
        asset_tags = self.closures.tags_for_asset(asset)
        items = [
            RelatedNode(
                node=self.summary(tag),
                paths=_paths(asset_tags.paths_to(tag)),
                sources=list(asset_tags.sources(tag)),
            )
            for tag in sorted(asset_tags.all_tags)
        ]
        return RelatedNodes(items=items, conditions=_conditions(asset_tags.conditions))

    # ── Graph shape ─────────────────────────────────────

    def paths_between(
        self,
        source: str,
        target: str,
        edge_types: Iterable[EdgeType | str] | None = None,
        direction: Direction | str = Direction.OUT,
    ) -> PathsView:
        found = simple_paths(
            self.store,
            source,
            target,
            edge_types=[EdgeType(e) for e in edge_types] if edge_types else None,
            direction=Direction(direction),
            config=self.generation.config,
        )
        return PathsView(
            source=self.summary(source),
            target=self.summary(target),
            paths=_paths(found.paths),
            conditions=_conditions(found.conditions),
        )

    def subgraph(self, node_id: str, depth: int = 1) -> SubgraphView:
        sub = extract_subgraph(self.store, node_id, depth, self.generation.config)
        return SubgraphView(
            center=sub.center,
            depth=sub.depth,
            nodes=[NodeSummary.of(self.store.get(n)) for n in sorted(sub.nodes)],
            edges=[
                EdgeView(source=e.source, target=e.target, edge_type=e.edge_type.value)
                for e in sub.edges
            ],
            conditions=_conditions(sub.conditions),
        )

    def last_fetch(self) -> FetchInfo:
        generation = self.generation
        return FetchInfo(
            generation_id=generation.generation_id,
            built_at=generation.built_at,
            fetched_at=generation.fetched_at,
            nodes=len(self.store),
            edges=self.store.edge_count,
            policies=len(self.index),
        )


__all__ = [
    "AccessEntry",
    "AccessList",
    "DirectMembers",
    "EdgeView",
    "ExplanationView",
    "Explorer",
    "FetchInfo",
    "NodeDetail",
    "NodeSummary",
    "PathsView",
    "RelatedNode",
    "RelatedNodes",
    "ResolutionView",
    "SubgraphView",
]
