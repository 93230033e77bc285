"""Policy Index: policies keyed by target and by agent.

The index is built once per generation from configuration-resolved policies
and validated against the graph store; it is read-only afterwards.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Iterable, Iterator

from ..exceptions import ConfigurationError, NotFound
from ..graph.closure import ClosureEngine, Condition, Path
from ..graph.edges import Direction, EdgeType
from ..graph.nodes import NodeKind
from ..graph.store import GraphStore
from .policy import Policy

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DefaultMatch:
    """A default policy whose glob covers an asset."""

    policy: Policy
    anchor: str
    distance: int
    paths: tuple[Path, ...]


class PolicyIndex:
    """Read-only policy lookups for one generation.

    Use :meth:`build` to construct; it validates every policy against the
    store and raises before any query can observe a bad policy.
    """

    def __init__(self, closures: ClosureEngine) -> None:
        self._closures = closures
        self._policies: dict[str, Policy] = {}
        self._by_asset: dict[str, list[Policy]] = defaultdict(list)
        self._by_tag: dict[str, list[Policy]] = defaultdict(list)
        self._by_agent: dict[str, list[Policy]] = defaultdict(list)
        self._defaults_by_anchor: dict[str, list[Policy]] = defaultdict(list)

    @classmethod
    def build(cls, policies: Iterable[Policy], store: GraphStore, closures: ClosureEngine) -> PolicyIndex:
        """Validate and index policies.

        Raises:
            NotFound: A policy references an unknown agent, asset or tag, or
                an id of the wrong kind.
            ConfigurationError: Duplicate policy id, or a default policy
                anchored on a hierarchy cycle.
        """
        index = cls(closures)
        for policy in policies:
            index._add(policy, store)
        index._freeze()
        logger.info(
            "Policy index built: %d policies (%d default)",
            len(index._policies),
            sum(len(v) for v in index._defaults_by_anchor.values()),
        )
        return index

    def _add(self, policy: Policy, store: GraphStore) -> None:
        if policy.id in self._policies:
            raise ConfigurationError(f"Duplicate policy id: {policy.id!r}", policy_id=policy.id)

        for agent in policy.agents:
            self._check(store, policy, agent, NodeKind.USER, NodeKind.GROUP)
        for asset in policy.assets:
            self._check(store, policy, asset, NodeKind.ASSET)
        for tag in policy.include_tags:
            self._check(store, policy, tag, NodeKind.TAG)

        if policy.is_default:
            for anchor in policy.assets:
                below = self._closures.raw_closure(anchor, EdgeType.CHILD_OF, Direction.IN)
                if Condition.CYCLE_DETECTED in below.conditions:
                    raise ConfigurationError(
                        f"Default policy {policy.id!r} is anchored at {anchor!r}, whose hierarchy contains a cycle",
                        policy_id=policy.id,
                        anchor=anchor,
                    )
                self._defaults_by_anchor[anchor].append(policy)
        elif policy.assets:
            for asset in policy.assets:
                self._by_asset[asset].append(policy)
        else:
            for tag in policy.include_tags:
                self._by_tag[tag].append(policy)

        for agent in policy.agents:
            self._by_agent[agent].append(policy)
        self._policies[policy.id] = policy

    @staticmethod
    def _check(store: GraphStore, policy: Policy, node_id: str, *kinds: NodeKind) -> None:
        try:
            store.get_kind(node_id, *kinds)
        except NotFound as e:
            raise NotFound(f"Policy {policy.id!r}: {e.message}", policy_id=policy.id, **e.details) from e

    def _freeze(self) -> None:
        # Sorted, immutable buckets keep every lookup deterministic
        for table in (self._by_asset, self._by_tag, self._by_agent, self._defaults_by_anchor):
            for key, bucket in table.items():
                table[key] = tuple(sorted(bucket, key=lambda p: p.id))
            table.default_factory = None

    # ── Lookups ─────────────────────────────────────────

    def get(self, policy_id: str) -> Policy:
        try:
            return self._policies[policy_id]
        except KeyError:
            raise NotFound(f"Unknown policy id: {policy_id!r}", policy_id=policy_id) from None

    def all(self) -> tuple[Policy, ...]:
        return tuple(self._policies[k] for k in sorted(self._policies))

    def __len__(self) -> int:
        return len(self._policies)

    def __iter__(self) -> Iterator[Policy]:
        return iter(self.all())

    def for_asset(self, asset: str) -> tuple[Policy, ...]:
        """Non-default policies naming ``asset`` (with or without a tag filter)."""
        return tuple(self._by_asset.get(asset, ()))

    def for_tags(self, tags: Iterable[str]) -> tuple[Policy, ...]:
        """Tag-only policies naming any of ``tags``."""
        found: dict[str, Policy] = {}
        for tag in tags:
            for policy in self._by_tag.get(tag, ()):
                found[policy.id] = policy
        return tuple(found[k] for k in sorted(found))

    def for_agents(self, agents: Iterable[str]) -> tuple[Policy, ...]:
        """Policies naming any of ``agents``."""
        found: dict[str, Policy] = {}
        for agent in agents:
            for policy in self._by_agent.get(agent, ()):
                found[policy.id] = policy
        return tuple(found[k] for k in sorted(found))

    def anchored_at(self, asset: str) -> tuple[Policy, ...]:
        """Default policies anchored at ``asset``."""
        return tuple(self._defaults_by_anchor.get(asset, ()))

    def defaults_for(self, asset: str, asset_type: str) -> tuple[DefaultMatch, ...]:
        """Default policies whose glob covers ``asset``.

        The glob is evaluated against the shortest hierarchical distance from
        each anchor ancestor to the asset.
        """
        if not self._defaults_by_anchor:
            return ()
        ancestors = self._closures.ancestors(asset)
        matches = []
        for anchor in sorted(ancestors.depths, key=lambda n: (ancestors.depths[n], n)):
            distance = ancestors.depths[anchor]
            for policy in self._defaults_by_anchor.get(anchor, ()):
                if policy.default.covers(distance, asset_type):
                    matches.append(
                        DefaultMatch(
                            policy=policy,
                            anchor=anchor,
                            distance=distance,
                            paths=ancestors.paths_to(anchor),
                        )
                    )
        return tuple(matches)


__all__ = [
    "DefaultMatch",
    "PolicyIndex",
]
