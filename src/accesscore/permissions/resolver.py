"""Resolver: effective privilege of an agent on an asset, with explanations.

Decision procedure:
1. The agent is expanded to itself plus every group it belongs to.
2. Every policy reaching the asset (see :mod:`.inheritance`) whose agents
   intersect that set is a candidate.
3. Candidates are ranked by specificity tier, then, in the ancestor tier,
   by hierarchical distance. Only the best rank present decides.
4. At that rank a Deny wins; otherwise the most permissive Allow wins.
5. No candidate at all means no access.

The contributing policies are returned with the membership paths from the
agent to the policy's agent and the target paths from the asset to the
policy's attachment point.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Iterable

from ..config import EngineConfig
from ..graph.closure import ClosureEngine, Condition, Path
from ..graph.nodes import NodeKind
from ..graph.store import GraphStore
from .constants import MatchRoute, Privilege, Specificity, most_permissive
from .index import PolicyIndex
from .inheritance import TargetMatch, expand_targets
from .policy import Policy

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Explanation:
    """Why one policy applies to an (agent, asset) pair."""

    policy: Policy
    specificity: Specificity
    distance: int
    route: MatchRoute
    agents: frozenset[str]
    agent_paths: tuple[Path, ...]
    target_paths: tuple[Path, ...]
    contributing: bool = False

    @property
    def rank(self) -> tuple[int, int]:
        if self.specificity is Specificity.ANCESTOR:
            return (int(self.specificity), self.distance)
        return (int(self.specificity), 0)

    def describe(self) -> str:
        via = "; ".join(" -> ".join(p) for p in self.agent_paths)
        to = "; ".join(" -> ".join(p) for p in self.target_paths)
        state = "applies" if self.contributing else "overridden"
        return (
            f"{self.policy.id} ({self.policy.privilege.value}, {self.specificity.name.lower()}"
            f"{f' @{self.distance}' if self.distance else ''}, {self.route.value}) {state}: "
            f"agent [{via}] target [{to}]"
        )


@dataclass(frozen=True)
class Resolution:
    """Effective privilege of ``agent`` on ``asset``.

    ``privilege`` is ``None`` when no policy applies (no access), ``DENY``
    when a deny won, and an allow level otherwise.
    """

    agent: str
    asset: str
    privilege: Privilege | None
    explanations: tuple[Explanation, ...]
    considered: tuple[Explanation, ...]
    conditions: frozenset[Condition] = frozenset()

    @property
    def is_denied(self) -> bool:
        return self.privilege is Privilege.DENY

    @property
    def has_access(self) -> bool:
        return self.privilege is not None and self.privilege.implies(Privilege.METADATA)

    @property
    def complete(self) -> bool:
        return not self.conditions

    def grants(self, privilege: Privilege) -> bool:
        return self.privilege is not None and self.privilege.implies(privilege)

    def describe(self) -> list[str]:
        outcome = self.privilege.value if self.privilege is not None else "no access"
        lines = [f"{self.agent} on {self.asset}: {outcome}"]
        lines.extend(f"  {e.describe()}" for e in self.considered)
        if self.conditions:
            lines.append("  incomplete: " + ", ".join(sorted(c.value for c in self.conditions)))
        return lines


def _order(explanation: Explanation):
    # Deny first, then more permissive, then id
    privilege = explanation.policy.privilege
    return (
        explanation.rank,
        0 if privilege.is_deny else 1,
        0 if privilege.is_deny else -privilege.rank,
        explanation.policy.id,
    )


class Resolver:
    """Resolves effective permissions for one generation.

    All methods are pure functions of the generation and their inputs and
    are safe to call from many threads at once.
    """

    def __init__(
        self,
        store: GraphStore,
        index: PolicyIndex,
        closures: ClosureEngine,
        config: EngineConfig | None = None,
    ) -> None:
        self.store = store
        self.index = index
        self.closures = closures
        self.config = config or closures.config

    def agent_set(self, agent: str) -> tuple[frozenset[str], dict[str, tuple[Path, ...]], frozenset[Condition]]:
        """The agent plus its groups, with membership paths per member."""
        self.store.get_kind(agent, NodeKind.USER, NodeKind.GROUP)
        groups = self.closures.groups_of(agent)
        paths = {agent: ((agent,),)}
        paths.update(groups.paths)
        return frozenset(paths), paths, groups.conditions

    def resolve(self, agent: str, asset: str) -> Resolution:
        """Effective privilege of ``agent`` on ``asset``.

        Raises:
            NotFound: If either id is unknown or of the wrong kind.
        """
        agents, agent_paths, agent_conditions = self.agent_set(agent)
        targets, target_conditions = expand_targets(asset, self.store, self.index, self.closures)
        return self._decide(agent, asset, agents, agent_paths, targets, agent_conditions | target_conditions)

    def resolve_many(self, agent: str, assets: Iterable[str]) -> dict[str, Resolution]:
        """Resolve one agent against many assets, expanding the agent once."""
        agents, agent_paths, agent_conditions = self.agent_set(agent)
        results = {}
        for asset in assets:
            targets, target_conditions = expand_targets(asset, self.store, self.index, self.closures)
            results[asset] = self._decide(
                agent, asset, agents, agent_paths, targets, agent_conditions | target_conditions
            )
        return results

    def explain(self, agent: str, asset: str) -> list[str]:
        """Human-readable explanation lines for ``resolve(agent, asset)``."""
        return self.resolve(agent, asset).describe()

    def _decide(
        self,
        agent: str,
        asset: str,
        agents: frozenset[str],
        agent_paths: dict[str, tuple[Path, ...]],
        targets: tuple[TargetMatch, ...],
        conditions: frozenset[Condition],
    ) -> Resolution:
        best: dict[str, Explanation] = {}
        for match in targets:
            matched_agents = match.policy.agents & agents
            if not matched_agents:
                continue
            explanation = Explanation(
                policy=match.policy,
                specificity=match.specificity,
                distance=match.distance,
                route=match.route,
                agents=matched_agents,
                agent_paths=tuple(p for a in sorted(matched_agents) for p in agent_paths[a]),
                target_paths=match.paths,
            )
            # A policy reaching the asset by several routes counts once, at its best rank
            current = best.get(match.policy.id)
            if current is None or explanation.rank < current.rank:
                best[match.policy.id] = explanation

        considered = sorted(best.values(), key=_order)
        if not considered:
            logger.debug("No policy applies to %r on %r", agent, asset)
            return Resolution(
                agent=agent, asset=asset, privilege=None, explanations=(), considered=(), conditions=conditions
            )

        top_rank = considered[0].rank
        top = [e for e in considered if e.rank == top_rank]
        denies = [e for e in top if e.policy.is_deny]
        if denies:
            privilege = Privilege.DENY
            winners = denies
        else:
            privilege = most_permissive(e.policy.privilege for e in top)
            winners = [e for e in top if e.policy.privilege is privilege]

        winner_ids = {e.policy.id for e in winners}
        considered = tuple(
            replace(e, contributing=e.policy.id in winner_ids) for e in considered
        )
        explanations = tuple(e for e in considered if e.contributing)

        if conditions:
            logger.warning(
                "Resolution of %r on %r is incomplete: %s",
                agent,
                asset,
                ", ".join(sorted(c.value for c in conditions)),
            )
        return Resolution(
            agent=agent,
            asset=asset,
            privilege=privilege,
            explanations=explanations,
            considered=considered,
            conditions=conditions,
        )


__all__ = [
    "Explanation",
    "Resolution",
    "Resolver",
]
