"""Policy target expansion: which policies reach an asset, and how.

Allow and Deny inherit differently:

- Allow reaches an asset through the asset itself, its tags, its
  hierarchical ancestors and default policies covering it, and only within
  the policy's connector scope.
- Deny reaches everything Allow does, regardless of connector, and also
  every asset lineage-derived from a denied asset.

Provides:
- ``TargetMatch``: one policy reaching one asset, with tier and witness paths.
- ``expand_targets()``: all target matches for an asset.
"""

from __future__ import annotations

from dataclasses import dataclass

from ..graph.closure import ClosureEngine, Condition, Path
from ..graph.nodes import NodeKind
from ..graph.store import GraphStore
from .constants import MatchRoute, Specificity
from .index import PolicyIndex
from .policy import Policy


@dataclass(frozen=True)
class TargetMatch:
    """A policy whose target reaches an asset.

    Attributes:
        policy: The matching policy.
        specificity: Tier of the match.
        distance: Hops from the asset to ``attachment`` (0 for direct and tag
            matches).
        route: How the target reached the asset.
        attachments: Node ids the policy is attached to along this route
            (the asset, an ancestor, an upstream asset, or tags).
        paths: Witness paths from the asset to the attachments.
    """

    policy: Policy
    specificity: Specificity
    distance: int
    route: MatchRoute
    attachments: frozenset[str]
    paths: tuple[Path, ...]

    @property
    def rank(self) -> tuple[int, int]:
        """Sort key; lower is more specific.

        Distance only separates matches in the ancestor tier.
        """
        if self.specificity is Specificity.ANCESTOR:
            return (int(self.specificity), self.distance)
        return (int(self.specificity), 0)


def _tag_paths(asset_tags, tags) -> tuple[Path, ...]:
    paths: list[Path] = []
    for tag in sorted(tags):
        paths.extend(asset_tags.paths_to(tag))
    return tuple(paths)


def expand_targets(
    asset: str,
    store: GraphStore,
    index: PolicyIndex,
    closures: ClosureEngine,
) -> tuple[tuple[TargetMatch, ...], frozenset[Condition]]:
    """Every policy whose target reaches ``asset``, with tier and witness paths.

    Agents are not considered here; see :class:`~.resolver.Resolver`.

    Returns:
        ``(matches, conditions)`` where ``conditions`` collects cycle and
        truncation signals from every closure consulted.

    Raises:
        NotFound: If ``asset`` is unknown or not an asset.
    """
    node = store.get_kind(asset, NodeKind.ASSET)
    asset_type = node.attributes.asset_type
    connectors = node.connectors
    conditions: set[Condition] = set()
    matches: list[TargetMatch] = []

    asset_tags = closures.tags_for_asset(asset)
    conditions.update(asset_tags.conditions)
    tags = asset_tags.all_tags

    # Direct: joint tag+asset, or asset alone
    for policy in index.for_asset(asset):
        if not policy.in_connector_scope(connectors):
            continue
        if policy.include_tags:
            matched = policy.tags_match(tags)
            if not matched:
                continue
            matches.append(
                TargetMatch(
                    policy=policy,
                    specificity=Specificity.JOINT,
                    distance=0,
                    route=MatchRoute.DIRECT,
                    attachments=frozenset({asset}) | matched,
                    paths=_tag_paths(asset_tags, matched),
                )
            )
        else:
            matches.append(
                TargetMatch(
                    policy=policy,
                    specificity=Specificity.ASSET,
                    distance=0,
                    route=MatchRoute.DIRECT,
                    attachments=frozenset({asset}),
                    paths=((asset,),),
                )
            )

    # Tag alone
    for policy in index.for_tags(tags):
        if not policy.in_connector_scope(connectors):
            continue
        matched = policy.tags_match(tags)
        matches.append(
            TargetMatch(
                policy=policy,
                specificity=Specificity.TAG,
                distance=0,
                route=MatchRoute.TAG,
                attachments=matched,
                paths=_tag_paths(asset_tags, matched),
            )
        )

    # Hierarchical ancestors
    ancestors = closures.ancestors(asset)
    conditions.update(ancestors.conditions)
    for ancestor in sorted(ancestors.depths, key=lambda n: (ancestors.depths[n], n)):
        for policy in index.for_asset(ancestor):
            if not policy.in_connector_scope(connectors):
                continue
            if policy.include_tags and not policy.tags_match(tags):
                continue
            matches.append(
                TargetMatch(
                    policy=policy,
                    specificity=Specificity.ANCESTOR,
                    distance=ancestors.depths[ancestor],
                    route=MatchRoute.HIERARCHY,
                    attachments=frozenset({ancestor}),
                    paths=ancestors.paths_to(ancestor),
                )
            )

    # Default policies covering the asset
    for default in index.defaults_for(asset, asset_type):
        policy = default.policy
        if not policy.in_connector_scope(connectors):
            continue
        if policy.include_tags and not policy.tags_match(tags):
            continue
        matches.append(
            TargetMatch(
                policy=policy,
                specificity=Specificity.ANCESTOR,
                distance=default.distance,
                route=MatchRoute.DEFAULT,
                attachments=frozenset({default.anchor}),
                paths=default.paths,
            )
        )

    # Deny only: anything derived from a denied asset is denied too
    upstream = closures.lineage_upstream(asset)
    conditions.update(upstream.conditions)
    for source in sorted(upstream.depths, key=lambda n: (upstream.depths[n], n)):
        for policy in index.for_asset(source):
            if not policy.is_deny:
                continue
            if policy.include_tags:
                source_tags = closures.tags_for_asset(source)
                conditions.update(source_tags.conditions)
                if not policy.tags_match(source_tags.all_tags):
                    continue
            matches.append(
                TargetMatch(
                    policy=policy,
                    specificity=Specificity.LINEAGE,
                    distance=upstream.depths[source],
                    route=MatchRoute.LINEAGE,
                    attachments=frozenset({source}),
                    paths=upstream.paths_to(source),
                )
            )

    return tuple(matches), frozenset(conditions)


__all__ = [
    "TargetMatch",
    "expand_targets",
]
