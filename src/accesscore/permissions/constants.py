"""Privilege levels and specificity tiers.

Provides:
- ``Privilege``: deny plus the ordered scale none < metadata < read < write.
- ``Specificity``: ranking tiers used to pick the winning policy.
- ``MatchRoute``: how a policy reached the resolved asset.
"""

from __future__ import annotations

from enum import Enum, IntEnum


class Privilege(str, Enum):
    """Privilege granted (or denied) by a policy.

    ``DENY`` is an override outside the ordered scale; it is never compared
    by permissiveness. The remaining levels are ordered::

        none < metadata < read < write
    """

    DENY = "deny"
    NONE = "none"
    METADATA = "metadata"
    READ = "read"
    WRITE = "write"

    @property
    def is_deny(self) -> bool:
        return self is Privilege.DENY

    @property
    def rank(self) -> int:
        """Position on the permissiveness scale.

        Raises:
            ValueError: For ``DENY``, which has no position.
        """
        if self is Privilege.DENY:
            raise ValueError("deny is not part of the ordered privilege scale")
        return PRIVILEGE_ORDER.index(self)

    def implies(self, other: Privilege) -> bool:
        """True if holding ``self`` grants at least ``other``."""
        if self.is_deny or other.is_deny:
            return False
        return self.rank >= other.rank


# Least to most permissive
PRIVILEGE_ORDER = (Privilege.NONE, Privilege.METADATA, Privilege.READ, Privilege.WRITE)


def most_permissive(privileges) -> Privilege:
    """Most permissive of a non-empty collection of allow privileges."""
    return max(privileges, key=lambda p: p.rank)


class Specificity(IntEnum):
    """Specificity tier of a matching policy. Lower values win.

    LINEAGE   deny on an asset this one is lineage-derived from; outranks
              every allow on the derived asset
    JOINT     policy names this asset and a tag filter that matches it
    ASSET     policy names this asset
    TAG       tag-only policy matching one of the asset's tags
    ANCESTOR  policy on a hierarchical ancestor, or a default policy whose
              glob covers the asset; ranked further by distance
    """

    LINEAGE = 0
    JOINT = 1
    ASSET = 2
    TAG = 3
    ANCESTOR = 4


class MatchRoute(str, Enum):
    """How a policy's target reached the resolved asset."""

    DIRECT = "direct"
    TAG = "tag"
    HIERARCHY = "hierarchy"
    DEFAULT = "default"
    LINEAGE = "lineage"


__all__ = [
    "PRIVILEGE_ORDER",
    "MatchRoute",
    "Privilege",
    "Specificity",
    "most_permissive",
]
