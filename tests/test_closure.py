"""Tests for accesscore.graph.closure."""

from __future__ import annotations

import pytest

from accesscore import CycleDetected, NotFound, Truncated
from accesscore.graph import AssetTags, ClosureEngine, Condition, Direction, EdgeType, Node

from .conftest import build, edge


def groups(*ids: str) -> list[Node]:
    return [Node.group(i) for i in ids]


class TestMembershipClosure:
    """Tests for member_of closures."""

    def test_nested_groups(self, nested_groups) -> None:
        """Test that C is reported as an ancestor group of a direct member of A."""
        closures = nested_groups.closures
        from_a = closures.groups_of("A")
        assert from_a.distance("C") == 2
        assert from_a.paths_to("C") == (("A", "B", "C"),)

        from_u = closures.groups_of("u")
        assert dict(from_u.depths) == {"A": 1, "B": 2, "C": 3}
        assert from_u.paths_to("C") == (("u", "A", "B", "C"),)
        assert from_u.complete

    def test_members_of_reverse(self, nested_groups) -> None:
        """Test the inverse closure from the outermost group."""
        members = nested_groups.closures.members_of("C")
        assert members.members == frozenset({"u", "A", "B"})
        assert members.paths_to("u") == (("C", "B", "A", "u"),)
        assert nested_groups.closures.member_users("C") == frozenset({"u"})

    def test_start_not_a_member(self, nested_groups) -> None:
        """Test that the start node is never part of its own closure."""
        assert "u" not in nested_groups.closures.groups_of("u")

    def test_all_shortest_paths_kept(self) -> None:
        """Test that a diamond yields both shortest paths."""
        gen = build(
            [Node.user("u"), *groups("g1", "g2", "h")],
            [
                edge("u", "g1", EdgeType.MEMBER_OF),
                edge("u", "g2", EdgeType.MEMBER_OF),
                edge("g1", "h", EdgeType.MEMBER_OF),
                edge("g2", "h", EdgeType.MEMBER_OF),
            ],
        )
        closure = gen.closures.groups_of("u")
        assert closure.distance("h") == 2
        assert closure.paths_to("h") == (("u", "g1", "h"), ("u", "g2", "h"))

    def test_longer_paths_discarded(self) -> None:
        """Test that rediscovery at a greater depth adds no path."""
        gen = build(
            [Node.user("u"), *groups("g1", "g2")],
            [
                edge("u", "g1", EdgeType.MEMBER_OF),
                edge("u", "g2", EdgeType.MEMBER_OF),
                edge("g1", "g2", EdgeType.MEMBER_OF),
            ],
        )
        closure = gen.closures.groups_of("u")
        assert closure.distance("g2") == 1
        assert closure.paths_to("g2") == (("u", "g2"),)
        assert closure.at_depth(1) == frozenset({"g1", "g2"})

    def test_unknown_start(self, nested_groups) -> None:
        """Test that closures from unknown ids raise NotFound."""
        with pytest.raises(NotFound):
            nested_groups.closures.groups_of("nobody")

    def test_cached_per_generation(self, nested_groups) -> None:
        """Test that closures are computed once per key."""
        closures = nested_groups.closures
        assert closures.groups_of("u") is closures.groups_of("u")
        assert closures.closure("u", "member_of", "out") is closures.groups_of("u")


class TestCycles:
    """Tests for traversal over cyclic input."""

    @pytest.fixture
    def cyclic(self):
        return build(
            [Node.user("u"), *groups("x", "y", "z")],
            [
                edge("u", "x", EdgeType.MEMBER_OF),
                edge("x", "y", EdgeType.MEMBER_OF),
                edge("y", "x", EdgeType.MEMBER_OF),
                edge("y", "z", EdgeType.MEMBER_OF),
            ],
        )

    def test_terminates_and_annotates(self, cyclic) -> None:
        """Test that a membership cycle terminates and is reported."""
        closure = cyclic.closures.groups_of("u")
        assert dict(closure.depths) == {"x": 1, "y": 2, "z": 3}
        assert Condition.CYCLE_DETECTED in closure.conditions
        assert not closure.complete

    def test_cycle_through_start(self, cyclic) -> None:
        """Test that reaching the start node again is a cycle."""
        closure = cyclic.closures.groups_of("x")
        assert closure.members == frozenset({"y", "z"})
        assert Condition.CYCLE_DETECTED in closure.conditions

    def test_same_depth_cycle(self) -> None:
        """Test that a cycle between two nodes at the same depth is detected."""
        gen = build(
            [Node.user("u"), *groups("a", "b")],
            [
                edge("u", "a", EdgeType.MEMBER_OF),
                edge("u", "b", EdgeType.MEMBER_OF),
                edge("a", "b", EdgeType.MEMBER_OF),
                edge("b", "a", EdgeType.MEMBER_OF),
            ],
        )
        assert Condition.CYCLE_DETECTED in gen.closures.groups_of("u").conditions

    def test_acyclic_diamond_not_flagged(self) -> None:
        """Test that two paths to one node are not a cycle."""
        gen = build(
            [Node.user("u"), *groups("g1", "g2", "h")],
            [
                edge("u", "g1", EdgeType.MEMBER_OF),
                edge("u", "g2", EdgeType.MEMBER_OF),
                edge("g1", "h", EdgeType.MEMBER_OF),
                edge("g2", "h", EdgeType.MEMBER_OF),
            ],
        )
        assert gen.closures.groups_of("u").conditions == frozenset()

    def test_hierarchy_cycle_terminates(self) -> None:
        """Test that a child_of cycle terminates with an annotation."""
        gen = build(
            [Node.asset("a"), Node.asset("b"), Node.asset("c")],
            [
                edge("a", "b", EdgeType.CHILD_OF),
                edge("b", "c", EdgeType.CHILD_OF),
                edge("c", "a", EdgeType.CHILD_OF),
            ],
        )
        ancestors = gen.closures.ancestors("a")
        assert ancestors.members == frozenset({"b", "c"})
        assert Condition.CYCLE_DETECTED in ancestors.conditions

    def test_fail_on_incomplete_raises(self) -> None:
        """Test that strict mode raises instead of annotating."""
        gen = build(
            groups("x", "y"),
            [edge("x", "y", EdgeType.MEMBER_OF), edge("y", "x", EdgeType.MEMBER_OF)],
            fail_on_incomplete=True,
        )
        with pytest.raises(CycleDetected):
            gen.closures.groups_of("x")
        assert Condition.CYCLE_DETECTED in gen.closures.raw_closure("x", EdgeType.MEMBER_OF).conditions


class TestBounds:
    """Tests for truncation by configured bounds."""

    def test_max_depth(self) -> None:
        """Test that a closure deeper than max_depth is truncated."""
        gen = build(
            [Node.user("u"), *groups("A", "B", "C")],
            [
                edge("u", "A", EdgeType.MEMBER_OF),
                edge("A", "B", EdgeType.MEMBER_OF),
                edge("B", "C", EdgeType.MEMBER_OF),
            ],
            max_depth=2,
        )
        closure = gen.closures.groups_of("u")
        assert closure.members == frozenset({"A", "B"})
        assert closure.conditions == frozenset({Condition.TRUNCATED})

    def test_max_depth_exact_not_truncated(self) -> None:
        """Test that a closure ending exactly at max_depth is complete."""
        gen = build(
            [Node.user("u"), Node.group("A")],
            [edge("u", "A", EdgeType.MEMBER_OF)],
            max_depth=1,
        )
        assert gen.closures.groups_of("u").complete

    def test_max_depth_back_edge_not_truncated(self) -> None:
        """Test that a back-edge at max_depth is a cycle, not a truncation."""
        gen = build(
            groups("A", "B"),
            [edge("A", "B", EdgeType.MEMBER_OF), edge("B", "A", EdgeType.MEMBER_OF)],
            max_depth=1,
        )
        closure = gen.closures.groups_of("A")
        assert closure.members == frozenset({"B"})
        assert closure.conditions == frozenset({Condition.CYCLE_DETECTED})

    def test_max_paths_per_target(self) -> None:
        """Test that witness paths are capped per member."""
        gen = build(
            [Node.user("u"), *groups("g1", "g2", "h")],
            [
                edge("u", "g1", EdgeType.MEMBER_OF),
                edge("u", "g2", EdgeType.MEMBER_OF),
                edge("g1", "h", EdgeType.MEMBER_OF),
                edge("g2", "h", EdgeType.MEMBER_OF),
            ],
            max_paths_per_target=1,
        )
        closure = gen.closures.groups_of("u")
        assert closure.paths_to("h") == (("u", "g1", "h"),)
        assert Condition.TRUNCATED in closure.conditions

    def test_max_closure_size(self) -> None:
        """Test that closures stop growing at max_closure_size."""
        gen = build(
            [Node.user("u"), *groups("g1", "g2", "g3")],
            [edge("u", g, EdgeType.MEMBER_OF) for g in ("g1", "g2", "g3")],
            max_closure_size=2,
        )
        closure = gen.closures.groups_of("u")
        assert len(closure) == 2
        assert Condition.TRUNCATED in closure.conditions

    def test_fail_on_incomplete_truncated(self) -> None:
        """Test that strict mode raises Truncated."""
        gen = build(
            [Node.user("u"), *groups("g1", "g2")],
            [edge("u", "g1", EdgeType.MEMBER_OF), edge("u", "g2", EdgeType.MEMBER_OF)],
            max_closure_size=1,
            fail_on_incomplete=True,
        )
        with pytest.raises(Truncated):
            gen.closures.groups_of("u")


class TestTagPropagation:
    """Tests for tag closures over hierarchy and lineage."""

    def test_direct_tag(self, scenario) -> None:
        """Test a tag applied directly."""
        tags = scenario.closures.tags_for_asset("a1")
        assert dict(tags.direct) == {"t": (("a1", "t"),)}
        assert tags.sources("t") == ("direct",)

    def test_hierarchy_propagation_path_ends_at_tag(self, scenario) -> None:
        """Test that a child inherits a pass-through tag with the full path."""
        tags = scenario.closures.tags_for_asset("a2")
        assert tags.all_tags == frozenset({"t"})
        assert dict(tags.via_hierarchy) == {"t": (("a2", "a1", "t"),)}
        assert not tags.direct
        assert tags.sources("t") == ("via_hierarchy",)

    def test_no_lineage_without_flag(self, scenario) -> None:
        """Test that tags do not flow along lineage unless the tag says so."""
        assert scenario.closures.tags_for_asset("a3").all_tags == frozenset()

    def test_lineage_propagation(self) -> None:
        """Test that a lineage pass-through tag reaches derived assets."""
        gen = build(
            [Node.tag("t", pass_through_lineage=True), Node.asset("src"), Node.asset("mid"), Node.asset("out")],
            [
                edge("src", "t", EdgeType.TAGGED_WITH),
                edge("mid", "src", EdgeType.DERIVED_FROM),
                edge("out", "mid", EdgeType.DERIVED_FROM),
            ],
        )
        tags = gen.closures.tags_for_asset("out")
        assert dict(tags.via_lineage) == {"t": (("out", "mid", "src", "t"),)}
        assert not tags.via_hierarchy

    def test_no_tag_flag_no_propagation(self) -> None:
        """Test that tags default to not passing through either route."""
        gen = build(
            [Node.tag("t"), Node.asset("p"), Node.asset("c")],
            [edge("p", "t", EdgeType.TAGGED_WITH), edge("c", "p", EdgeType.CHILD_OF)],
        )
        assert "t" not in gen.closures.tags_for_asset("c")

    def test_edge_override_blocks_hierarchy(self) -> None:
        """Test that no_hierarchy_inherit keeps the tag on its asset only."""
        gen = build(
            [Node.tag("t", pass_through_hierarchy=True), Node.asset("p"), Node.asset("c")],
            [
                edge("p", "t", EdgeType.TAGGED_WITH, no_hierarchy_inherit=True),
                edge("c", "p", EdgeType.CHILD_OF),
            ],
        )
        assert "t" in gen.closures.tags_for_asset("p")
        assert "t" not in gen.closures.tags_for_asset("c")

    def test_untagged_as_poisons_paths(self) -> None:
        """Test that removing a tag from an asset cuts every path through it."""
        gen = build(
            [
                Node.tag("t", pass_through_hierarchy=True),
                Node.asset("top"),
                Node.asset("mid"),
                Node.asset("leaf"),
                Node.asset("other"),
            ],
            [
                edge("top", "t", EdgeType.TAGGED_WITH),
                edge("mid", "top", EdgeType.CHILD_OF),
                edge("leaf", "mid", EdgeType.CHILD_OF),
                edge("other", "top", EdgeType.CHILD_OF),
                edge("mid", "t", EdgeType.UNTAGGED_AS),
            ],
        )
        closures = gen.closures
        assert "t" in closures.tags_for_asset("top")
        assert "t" not in closures.tags_for_asset("mid")
        assert "t" not in closures.tags_for_asset("leaf")
        assert "t" in closures.tags_for_asset("other")

    def test_longer_clean_route_keeps_tag(self) -> None:
        """Test that a tag survives when only the shortest route is cut."""
        gen = build(
            [
                Node.tag("t", pass_through_lineage=True),
                *(Node.asset(a) for a in ("v", "p", "q", "r", "src")),
            ],
            [
                edge("src", "t", EdgeType.TAGGED_WITH),
                edge("v", "p", EdgeType.DERIVED_FROM),
                edge("p", "src", EdgeType.DERIVED_FROM),
                edge("v", "q", EdgeType.DERIVED_FROM),
                edge("q", "r", EdgeType.DERIVED_FROM),
                edge("r", "src", EdgeType.DERIVED_FROM),
                edge("p", "t", EdgeType.UNTAGGED_AS),
            ],
        )
        tags = gen.closures.tags_for_asset("v")
        assert tags.via_lineage == {"t": (("v", "q", "r", "src", "t"),)}
        assert "t" not in gen.closures.tags_for_asset("p")
        assert "v" in gen.closures.assets_for_tag("t").assets

    def test_untagged_as_drops_direct_tag(self) -> None:
        """Test that an explicit removal also drops a direct tag."""
        gen = build(
            [Node.tag("t"), Node.asset("a")],
            [edge("a", "t", EdgeType.TAGGED_WITH), edge("a", "t", EdgeType.UNTAGGED_AS)],
        )
        assert gen.closures.tags_for_asset("a").all_tags == frozenset()

    def test_routes_not_mixed(self) -> None:
        """Test that an inherited tag does not continue along the other route."""
        gen = build(
            [
                Node.tag("t", pass_through_hierarchy=True, pass_through_lineage=True),
                Node.asset("parent"),
                Node.asset("child"),
                Node.asset("derived"),
            ],
            [
                edge("parent", "t", EdgeType.TAGGED_WITH),
                edge("child", "parent", EdgeType.CHILD_OF),
                edge("derived", "child", EdgeType.DERIVED_FROM),
            ],
        )
        assert "t" in gen.closures.tags_for_asset("child")
        assert "t" not in gen.closures.tags_for_asset("derived")

    def test_empty_asset_tags(self) -> None:
        """Test that an untagged asset has empty, separate tag maps."""
        first = AssetTags(asset="a")
        second = AssetTags(asset="b")
        assert first.all_tags == frozenset()
        assert first.paths_to("t") == ()
        assert first.sources("t") == ()
        assert first.direct is not second.direct

    def test_idempotent(self, scenario) -> None:
        """Test that propagation run twice, or in a fresh engine, gives the same tags."""
        first = scenario.closures.tags_for_asset("a2")
        again = scenario.closures.tags_for_asset("a2")
        fresh = ClosureEngine(scenario.store, scenario.config).tags_for_asset("a2")
        assert first is again
        assert fresh.all_tags == first.all_tags
        assert dict(fresh.via_hierarchy) == dict(first.via_hierarchy)

    def test_tags_for_non_asset(self, scenario) -> None:
        """Test that tag closures are only defined for assets."""
        with pytest.raises(NotFound):
            scenario.closures.tags_for_asset("u")

    def test_assets_for_tag(self, scenario) -> None:
        """Test the inverse closure from a tag."""
        reach = scenario.closures.assets_for_tag("t")
        assert set(reach.assets) == {"a1", "a2"}
        assert reach.assets["a2"].paths_to("t") == (("a2", "a1", "t"),)
        assert reach.conditions == frozenset()


class TestLineageClosure:
    """Tests for derived_from closures."""

    def test_upstream_and_downstream(self, warehouse) -> None:
        """Test lineage closures in both directions."""
        nodes, edges = warehouse
        closures = build(nodes, edges).closures
        upstream = closures.lineage_upstream("dash")
        assert dict(upstream.depths) == {"revenue": 1, "orders": 2}
        assert upstream.paths_to("orders") == (("dash", "revenue", "orders"),)
        assert closures.lineage_downstream("orders").members == frozenset({"revenue", "dash"})
        assert closures.closure("orders", EdgeType.DERIVED_FROM, Direction.IN).members == frozenset(
            {"revenue", "dash"}
        )
