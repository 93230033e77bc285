"""Typed directed edges and traversal directions."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field

from .nodes import NodeKind


class EdgeType(str, Enum):
    """Edge types of the access graph.

    ``member_of``    User/Group -> Group (membership, may nest)
    ``child_of``     Asset -> Asset (hierarchical containment)
    ``derived_from`` Asset -> Asset (lineage)
    ``tagged_with``  Asset -> Tag (direct tag application)
    ``untagged_as``  Asset -> Tag (tag explicitly removed from the asset)
    """

    MEMBER_OF = "member_of"
    CHILD_OF = "child_of"
    DERIVED_FROM = "derived_from"
    TAGGED_WITH = "tagged_with"
    UNTAGGED_AS = "untagged_as"


class Direction(str, Enum):
    """Traversal direction relative to the stored edge.

    ``OUT`` follows edges from source to target (user -> groups, asset ->
    parents, asset -> upstream sources). ``IN`` follows them backwards.
    """

    OUT = "out"
    IN = "in"

    def reverse(self) -> Direction:
        return Direction.IN if self is Direction.OUT else Direction.OUT


# Edge types whose graphs should be acyclic
ACYCLIC_EDGE_TYPES = frozenset({EdgeType.MEMBER_OF, EdgeType.CHILD_OF, EdgeType.DERIVED_FROM})

# Allowed (source kinds, target kinds) per edge type
EDGE_ENDPOINTS: dict[EdgeType, tuple[frozenset[NodeKind], frozenset[NodeKind]]] = {
    EdgeType.MEMBER_OF: (frozenset({NodeKind.USER, NodeKind.GROUP}), frozenset({NodeKind.GROUP})),
    EdgeType.CHILD_OF: (frozenset({NodeKind.ASSET}), frozenset({NodeKind.ASSET})),
    EdgeType.DERIVED_FROM: (frozenset({NodeKind.ASSET}), frozenset({NodeKind.ASSET})),
    EdgeType.TAGGED_WITH: (frozenset({NodeKind.ASSET}), frozenset({NodeKind.TAG})),
    EdgeType.UNTAGGED_AS: (frozenset({NodeKind.ASSET}), frozenset({NodeKind.TAG})),
}


class Edge(BaseModel):
    """A directed, typed edge.

    ``no_hierarchy_inherit`` / ``no_lineage_inherit`` are only meaningful on
    ``tagged_with`` edges: the tag applies to the source asset but does not
    flow further along that inheritance route.
    """

    source: str = Field(..., min_length=1)
    target: str = Field(..., min_length=1)
    edge_type: EdgeType
    no_hierarchy_inherit: bool = False
    no_lineage_inherit: bool = False

    model_config = {"frozen": True}

    @property
    def key(self) -> tuple[str, str, EdgeType]:
        return (self.source, self.target, self.edge_type)


__all__ = [
    "ACYCLIC_EDGE_TYPES",
    "EDGE_ENDPOINTS",
    "Direction",
    "Edge",
    "EdgeType",
]
