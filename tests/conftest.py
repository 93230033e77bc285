"""Shared fixtures: small access graphs built into generations."""

from __future__ import annotations

from typing import Any, Iterable

import pytest

from accesscore import EngineConfig, GraphSnapshot, Node, Policy, build_generation
from accesscore.explore import Explorer
from accesscore.graph import Edge, EdgeType


def edge(source: str, target: str, edge_type: EdgeType | str, **flags: bool) -> Edge:
    return Edge(source=source, target=target, edge_type=EdgeType(edge_type), **flags)


def build(
    nodes: Iterable[Node],
    edges: Iterable[Edge] = (),
    policies: Iterable[Policy] = (),
    **config: Any,
):
    """Build a generation from literal nodes, edges and policies."""
    snapshot = GraphSnapshot(nodes=list(nodes), edges=list(edges), policies=list(policies))
    return build_generation(snapshot, EngineConfig(**config))


def scenario_nodes() -> list[Node]:
    return [
        Node.user("u", name="snowflake::u", connectors={"snowflake"}),
        Node.user("v", name="snowflake::v", connectors={"snowflake"}),
        Node.group("g", name="snowflake::g", connectors={"snowflake"}),
        Node.tag("t", name="pii", value="true", pass_through_hierarchy=True),
        Node.asset("a1", name="snowflake::db/a1", connectors={"snowflake"}, asset_type="schema"),
        Node.asset("a2", name="snowflake::db/a1/a2", connectors={"snowflake"}, asset_type="table"),
        Node.asset("a3", name="snowflake::db/a3", connectors={"snowflake"}, asset_type="table"),
    ]


def scenario_edges() -> list[Edge]:
    return [
        edge("u", "g", EdgeType.MEMBER_OF),
        edge("a1", "t", EdgeType.TAGGED_WITH),
        edge("a2", "a1", EdgeType.CHILD_OF),
        edge("a3", "a1", EdgeType.DERIVED_FROM),
    ]


READ_ON_TAG = Policy(id="g-read-t", privilege="read", agents={"g"}, include_tags={"t"})


@pytest.fixture
def scenario():
    """``u`` in ``g``; ``g`` reads tag ``t``; ``a1`` tagged ``t``; ``a2`` child of ``a1``; ``a3`` derived from ``a1``."""
    return build(scenario_nodes(), scenario_edges(), [READ_ON_TAG])


@pytest.fixture
def explorer(scenario) -> Explorer:
    return Explorer(scenario)


@pytest.fixture
def nested_groups():
    """``u`` in ``A``, ``A`` in ``B``, ``B`` in ``C``."""
    return build(
        [Node.user("u"), Node.group("A"), Node.group("B"), Node.group("C")],
        [
            edge("u", "A", EdgeType.MEMBER_OF),
            edge("A", "B", EdgeType.MEMBER_OF),
            edge("B", "C", EdgeType.MEMBER_OF),
        ],
    )


@pytest.fixture
def warehouse():
    """A three-level hierarchy with two connectors.

    ``db`` > ``raw`` > ``orders`` / ``customers``, ``db`` > ``mart`` > ``revenue``;
    ``revenue`` is derived from ``orders``; ``dash`` (tableau) is derived
    from ``revenue``.
    """
    nodes = [
        Node.user("alice", connectors={"snowflake", "tableau"}),
        Node.user("bob", connectors={"snowflake"}),
        Node.user("carol", connectors={"tableau"}),
        Node.group("analysts", connectors={"snowflake"}),
        Node.group("engineers", connectors={"snowflake"}),
        Node.group("everyone", connectors={"snowflake"}),
        Node.tag("pii", pass_through_hierarchy=True, pass_through_lineage=True),
        Node.tag("finance", pass_through_hierarchy=True),
        Node.tag("gold"),
        Node.asset("db", connectors={"snowflake"}, asset_type="database"),
        Node.asset("raw", connectors={"snowflake"}, asset_type="schema"),
        Node.asset("mart", connectors={"snowflake"}, asset_type="schema"),
        Node.asset("orders", connectors={"snowflake"}, asset_type="table"),
        Node.asset("customers", connectors={"snowflake"}, asset_type="table"),
        Node.asset("revenue", connectors={"snowflake"}, asset_type="table"),
        Node.asset("dash", connectors={"tableau"}, asset_type="dashboard"),
    ]
    edges = [
        edge("alice", "analysts", EdgeType.MEMBER_OF),
        edge("bob", "engineers", EdgeType.MEMBER_OF),
        edge("analysts", "everyone", EdgeType.MEMBER_OF),
        edge("engineers", "everyone", EdgeType.MEMBER_OF),
        edge("raw", "db", EdgeType.CHILD_OF),
        edge("mart", "db", EdgeType.CHILD_OF),
        edge("orders", "raw", EdgeType.CHILD_OF),
        edge("customers", "raw", EdgeType.CHILD_OF),
        edge("revenue", "mart", EdgeType.CHILD_OF),
        edge("revenue", "orders", EdgeType.DERIVED_FROM),
        edge("dash", "revenue", EdgeType.DERIVED_FROM),
        edge("customers", "pii", EdgeType.TAGGED_WITH),
        edge("mart", "finance", EdgeType.TAGGED_WITH),
        edge("revenue", "gold", EdgeType.TAGGED_WITH),
    ]
    return nodes, edges
