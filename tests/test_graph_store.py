"""Tests for accesscore.graph nodes, edges and store."""

from __future__ import annotations

import pytest

from accesscore import ConfigurationError, GraphFrozenError, NotFound
from accesscore.graph import Direction, EdgeType, GraphStore, Node, NodeKind


@pytest.fixture
def store() -> GraphStore:
    store = GraphStore()
    store.add_node(Node.user("u", connectors={"snowflake"}))
    store.add_node(Node.group("g"))
    store.add_node(Node.asset("a1", name="snowflake::db/a1", asset_type="table"))
    store.add_node(Node.asset("a2"))
    store.add_node(Node.tag("t", name="pii", value="high"))
    return store


class TestNode:
    """Tests for Node construction and kind dispatch."""

    def test_name_defaults_to_id(self) -> None:
        """Test that a node without a name is displayed by id."""
        assert Node.user("u").name == "u"

    def test_kind_specific_attributes(self) -> None:
        """Test that builders attach the right attribute model."""
        asset = Node.asset("a", asset_type="view")
        tag = Node.tag("t", pass_through_lineage=True)
        assert asset.attributes.asset_type == "view"
        assert tag.attributes.pass_through_lineage is True
        assert tag.attributes.pass_through_hierarchy is False

    def test_attributes_default_from_kind(self) -> None:
        """Test that attributes are filled in from the kind when omitted."""
        node = Node(id="x", kind="asset")
        assert node.attributes.kind == "asset"
        assert node.attributes.asset_type == "unknown"

    def test_attributes_kind_inferred_from_node(self) -> None:
        """Test that an attribute dict without a kind takes the node's kind."""
        node = Node.model_validate(
            {"id": "t", "kind": "tag", "attributes": {"pass_through_hierarchy": True}}
        )
        assert node.attributes.pass_through_hierarchy is True

    def test_mismatched_attributes_rejected(self) -> None:
        """Test that attributes of another kind are rejected."""
        with pytest.raises(ValueError):
            Node(id="x", kind="user", attributes={"kind": "asset"})

    def test_display_name_per_kind(self) -> None:
        """Test kind-specific display names."""
        assert Node.asset("a", name="sf::t", asset_type="table").display_name() == "sf::t (table)"
        assert Node.tag("t", name="pii", value="high").display_name() == "pii=high"
        assert Node.tag("t", name="pii").display_name() == "pii"
        assert Node.user("u", name="Ann").display_name() == "Ann"
        assert Node.group("g", name="Analysts").display_name() == "Analysts"

    def test_icon_per_kind(self) -> None:
        """Test that every kind has an icon."""
        icons = {Node(id=k.value, kind=k).icon() for k in NodeKind}
        assert len(icons) == len(NodeKind)

    def test_merge_unions_connectors(self) -> None:
        """Test merging the same user reported by two connectors."""
        a = Node.user("u", connectors={"snowflake"}, email="u@x.io")
        b = Node.user("u", connectors={"tableau"}, team="data")
        merged = a.merge(b)
        assert merged.connectors == frozenset({"snowflake", "tableau"})
        assert merged.attributes.metadata == {"email": "u@x.io", "team": "data"}

    def test_merge_kind_conflict(self) -> None:
        """Test that a kind mismatch cannot be merged."""
        with pytest.raises(ConfigurationError, match="both user and group"):
            Node.user("x").merge(Node.group("x"))

    def test_merge_metadata_conflict(self) -> None:
        """Test that conflicting metadata values cannot be merged."""
        with pytest.raises(ConfigurationError, match="conflicting metadata"):
            Node.user("u", email="a@x.io").merge(Node.user("u", email="b@x.io"))

    def test_merge_attribute_conflict(self) -> None:
        """Test that differing asset types cannot be merged."""
        with pytest.raises(ConfigurationError):
            Node.asset("a", asset_type="table").merge(Node.asset("a", asset_type="view"))


class TestGraphStore:
    """Tests for GraphStore."""

    def test_get_and_has(self, store: GraphStore) -> None:
        """Test O(1) lookup by id."""
        assert store.get("u").kind == NodeKind.USER
        assert "u" in store
        assert store.has("a1")
        assert not store.has("missing")
        assert len(store) == 5

    def test_get_unknown(self, store: GraphStore) -> None:
        """Test that unknown ids raise NotFound."""
        with pytest.raises(NotFound) as exc_info:
            store.get("missing")
        assert exc_info.value.details == {"node_id": "missing"}

    def test_get_kind(self, store: GraphStore) -> None:
        """Test that a node of the wrong kind raises NotFound."""
        assert store.get_kind("g", NodeKind.USER, NodeKind.GROUP).id == "g"
        with pytest.raises(NotFound, match="is a tag, not a asset"):
            store.get_kind("t", NodeKind.ASSET)

    def test_add_duplicate_node_merges(self, store: GraphStore) -> None:
        """Test that re-adding a node merges connectors."""
        merged = store.add_node(Node.user("u", connectors={"tableau"}))
        assert merged.connectors == frozenset({"snowflake", "tableau"})
        assert store.get("u").connectors == frozenset({"snowflake", "tableau"})

    def test_neighbors_both_directions(self, store: GraphStore) -> None:
        """Test adjacency in both directions."""
        store.add_edge("u", "g", EdgeType.MEMBER_OF)
        assert store.neighbors("u", EdgeType.MEMBER_OF) == frozenset({"g"})
        assert store.neighbors("g", EdgeType.MEMBER_OF, Direction.IN) == frozenset({"u"})
        assert store.neighbors("g", EdgeType.MEMBER_OF) == frozenset()
        assert store.neighbors("a1", EdgeType.CHILD_OF) == frozenset()

    def test_neighbors_unknown_node(self, store: GraphStore) -> None:
        """Test that neighbors of an unknown id raise NotFound."""
        with pytest.raises(NotFound):
            store.neighbors("missing", EdgeType.MEMBER_OF)

    def test_add_edge_unknown_endpoint(self, store: GraphStore) -> None:
        """Test that edges to unknown nodes raise NotFound."""
        with pytest.raises(NotFound):
            store.add_edge("u", "missing", EdgeType.MEMBER_OF)

    def test_add_edge_wrong_endpoint_kind(self, store: GraphStore) -> None:
        """Test that edge endpoint kinds are validated."""
        with pytest.raises(ConfigurationError, match="member_of edge cannot connect"):
            store.add_edge("u", "a1", EdgeType.MEMBER_OF)
        with pytest.raises(ConfigurationError):
            store.add_edge("a1", "u", EdgeType.TAGGED_WITH)

    def test_overrides_only_on_tagged_with(self, store: GraphStore) -> None:
        """Test that inheritance overrides are rejected on other edge types."""
        with pytest.raises(ConfigurationError, match="only valid on tagged_with"):
            store.add_edge("a2", "a1", EdgeType.CHILD_OF, no_hierarchy_inherit=True)

    def test_duplicate_edge_keeps_strictest_override(self, store: GraphStore) -> None:
        """Test that duplicate edges are idempotent and keep overrides."""
        store.add_edge("a1", "t", EdgeType.TAGGED_WITH, no_lineage_inherit=True)
        store.add_edge("a1", "t", EdgeType.TAGGED_WITH)
        assert store.edge_count == 1
        assert store.edge("a1", "t", EdgeType.TAGGED_WITH).no_lineage_inherit is True

    def test_edge_lookup(self, store: GraphStore) -> None:
        """Test edge lookup by endpoints and type."""
        store.add_edge("a2", "a1", "child_of")
        assert store.has_edge("a2", "a1", EdgeType.CHILD_OF)
        assert not store.has_edge("a1", "a2", EdgeType.CHILD_OF)
        with pytest.raises(NotFound):
            store.edge("a1", "a2", EdgeType.CHILD_OF)

    def test_nodes_filtered_and_sorted(self, store: GraphStore) -> None:
        """Test iteration over nodes of one kind in id order."""
        assert [n.id for n in store.nodes(NodeKind.ASSET)] == ["a1", "a2"]
        assert [n.id for n in store.nodes()] == ["a1", "a2", "g", "t", "u"]

    def test_frozen_store_rejects_mutation(self, store: GraphStore) -> None:
        """Test that a frozen store cannot be modified."""
        store.freeze()
        assert store.frozen
        with pytest.raises(GraphFrozenError):
            store.add_node(Node.user("w"))
        with pytest.raises(GraphFrozenError):
            store.add_edge("u", "g", EdgeType.MEMBER_OF)
