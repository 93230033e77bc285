"""Graph Store: typed nodes and typed directed edges with O(1) id lookup.

The store is populated once per fetch cycle and then frozen. Readers never
see a store that is still being built: :mod:`accesscore.generation` only
publishes frozen stores.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Iterable, Iterator

from ..exceptions import ConfigurationError, GraphFrozenError, NotFound
from .edges import EDGE_ENDPOINTS, Direction, Edge, EdgeType
from .nodes import Node, NodeKind

logger = logging.getLogger(__name__)


class GraphStore:
    """In-memory typed graph.

    Example::

        store = GraphStore()
        store.add_node(Node.user("u"))
        store.add_node(Node.group("g"))
        store.add_edge("u", "g", EdgeType.MEMBER_OF)
        store.freeze()
        store.neighbors("u", EdgeType.MEMBER_OF, Direction.OUT)  # frozenset({"g"})
    """

    def __init__(self) -> None:
        self._nodes: dict[str, Node] = {}
        self._edges: dict[tuple[str, str, EdgeType], Edge] = {}
        # (edge_type, direction) -> node id -> neighbour ids
        self._adjacency: dict[tuple[EdgeType, Direction], dict[str, set[str]]] = defaultdict(lambda: defaultdict(set))
        self._frozen = False

    # ── Mutation (load time only) ───────────────────────

    def _check_mutable(self) -> None:
        if self._frozen:
            raise GraphFrozenError("Graph store is frozen; build a new generation instead")

    def add_node(self, node: Node) -> Node:
        """Add a node, merging it with an existing report of the same id.

        Returns:
            The stored (possibly merged) node.
        """
        self._check_mutable()
        existing = self._nodes.get(node.id)
        if existing is not None:
            node = existing.merge(node)
        self._nodes[node.id] = node
        return node

    def add_edge(
        self,
        source: str,
        target: str,
        edge_type: EdgeType | str,
        *,
        no_hierarchy_inherit: bool = False,
        no_lineage_inherit: bool = False,
    ) -> Edge:
        """Add a directed edge between two known nodes.

        Raises:
            NotFound: If either endpoint is unknown.
            ConfigurationError: If the endpoint kinds do not fit the edge type.
        """
        self._check_mutable()
        edge_type = EdgeType(edge_type)
        source_node = self.get(source)
        target_node = self.get(target)

        source_kinds, target_kinds = EDGE_ENDPOINTS[edge_type]
        if source_node.kind not in source_kinds or target_node.kind not in target_kinds:
            raise ConfigurationError(
                f"{edge_type.value} edge cannot connect {source_node.kind.value} "
                f"{source!r} to {target_node.kind.value} {target!r}",
                source=source,
                target=target,
                edge_type=edge_type.value,
            )
        if (no_hierarchy_inherit or no_lineage_inherit) and edge_type is not EdgeType.TAGGED_WITH:
            raise ConfigurationError(
                "Inheritance overrides are only valid on tagged_with edges",
                source=source,
                target=target,
            )

        edge = Edge(
            source=source,
            target=target,
            edge_type=edge_type,
            no_hierarchy_inherit=no_hierarchy_inherit,
            no_lineage_inherit=no_lineage_inherit,
        )
        previous = self._edges.get(edge.key)
        if previous is not None:
            # Duplicate reports keep the strictest overrides
            edge = edge.model_copy(
                update={
                    "no_hierarchy_inherit": previous.no_hierarchy_inherit or no_hierarchy_inherit,
                    "no_lineage_inherit": previous.no_lineage_inherit or no_lineage_inherit,
                }
            )
        self._edges[edge.key] = edge
        self._adjacency[(edge_type, Direction.OUT)][source].add(target)
        self._adjacency[(edge_type, Direction.IN)][target].add(source)
        return edge

    def add_edges(self, edges: Iterable[Edge]) -> None:
        for edge in edges:
            self.add_edge(
                edge.source,
                edge.target,
                edge.edge_type,
                no_hierarchy_inherit=edge.no_hierarchy_inherit,
                no_lineage_inherit=edge.no_lineage_inherit,
            )

    def freeze(self) -> None:
        """Make the store read-only for the rest of its life."""
        if not self._frozen:
            self._frozen = True
            logger.debug("Graph store frozen: %d nodes, %d edges", len(self._nodes), len(self._edges))

    @property
    def frozen(self) -> bool:
        return self._frozen

    # ── Lookup ──────────────────────────────────────────

    def get(self, node_id: str) -> Node:
        try:
            return self._nodes[node_id]
        except KeyError:
            raise NotFound(f"Unknown node id: {node_id!r}", node_id=node_id) from None

    def get_kind(self, node_id: str, *kinds: NodeKind) -> Node:
        """Get a node and check it is one of ``kinds``.

        Raises:
            NotFound: If the id is unknown or names a node of another kind.
        """
        node = self.get(node_id)
        if node.kind not in kinds:
            expected = " or ".join(k.value for k in kinds)
            raise NotFound(
                f"Node {node_id!r} is a {node.kind.value}, not a {expected}",
                node_id=node_id,
                kind=node.kind.value,
            )
        return node

    def has(self, node_id: str) -> bool:
        return node_id in self._nodes

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def nodes(self, kind: NodeKind | None = None) -> Iterator[Node]:
        """Iterate nodes (optionally of one kind) in id order."""
        for node_id in sorted(self._nodes):
            node = self._nodes[node_id]
            if kind is None or node.kind == kind:
                yield node

    def neighbors(self, node_id: str, edge_type: EdgeType | str, direction: Direction | str = Direction.OUT) -> frozenset[str]:
        if node_id not in self._nodes:
            raise NotFound(f"Unknown node id: {node_id!r}", node_id=node_id)
        adjacency = self._adjacency.get((EdgeType(edge_type), Direction(direction)))
        if adjacency is None:
            return frozenset()
        return frozenset(adjacency.get(node_id, ()))

    def edge(self, source: str, target: str, edge_type: EdgeType | str) -> Edge:
        try:
            return self._edges[(source, target, EdgeType(edge_type))]
        except KeyError:
            raise NotFound(
                f"No {EdgeType(edge_type).value} edge from {source!r} to {target!r}",
                source=source,
                target=target,
            ) from None

    def has_edge(self, source: str, target: str, edge_type: EdgeType | str) -> bool:
        return (source, target, EdgeType(edge_type)) in self._edges

    @property
    def edge_count(self) -> int:
        return len(self._edges)


__all__ = ["GraphStore"]
