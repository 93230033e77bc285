"""Access graph: typed nodes and edges, store, closures and paths."""

from .closure import AssetTags, Closure, ClosureEngine, Condition, Path, TagReach
from .edges import ACYCLIC_EDGE_TYPES, Direction, Edge, EdgeType
from .nodes import (
    AssetAttributes,
    GroupAttributes,
    Node,
    NodeKind,
    TagAttributes,
    UserAttributes,
)
from .paths import PathSet, Subgraph, extract_subgraph, simple_paths
from .store import GraphStore

__all__ = [
    "ACYCLIC_EDGE_TYPES",
    "AssetAttributes",
    "AssetTags",
    "Closure",
    "ClosureEngine",
    "Condition",
    "Direction",
    "Edge",
    "EdgeType",
    "GraphStore",
    "GroupAttributes",
    "Node",
    "NodeKind",
    "Path",
    "PathSet",
    "Subgraph",
    "TagAttributes",
    "TagReach",
    "UserAttributes",
    "extract_subgraph",
    "simple_paths",
]
