"""Policies and permission resolution for accesscore.

Defines:
- Privilege: Deny plus the ordered Allow levels (none < metadata < read < write)
- Specificity: Tier of a policy match (joint < asset < tag < ancestor)
- Policy / DefaultScope / PathGlob: Policy records and default-policy globs
- PolicyIndex: Policies keyed by target and agent for one generation
- expand_targets(): Every policy whose target reaches an asset
- Resolver: Effective privilege of an agent on an asset, with explanations
"""

from .constants import PRIVILEGE_ORDER, MatchRoute, Privilege, Specificity, most_permissive
from .index import DefaultMatch, PolicyIndex
from .inheritance import TargetMatch, expand_targets
from .policy import DefaultScope, PathGlob, Policy
from .resolver import Explanation, Resolution, Resolver

__all__ = [
    "PRIVILEGE_ORDER",
    "DefaultMatch",
    "DefaultScope",
    "Explanation",
    "MatchRoute",
    "PathGlob",
    "Policy",
    "PolicyIndex",
    "Privilege",
    "Resolution",
    "Resolver",
    "Specificity",
    "TargetMatch",
    "expand_targets",
    "most_permissive",
]
