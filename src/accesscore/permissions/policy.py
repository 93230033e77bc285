"""Policy records and default-policy globs.

Provides:
- ``PathGlob``: parsed hierarchical glob (``*`` one level, ``**`` one or more).
- ``DefaultScope``: ``{path_glob, target_type}`` descriptor of a default policy.
- ``Policy``: immutable Allow/Deny policy.

Malformed policies raise :class:`~accesscore.exceptions.ConfigurationError`
while being constructed, so they never reach query time.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Iterable, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from ..exceptions import ConfigurationError
from .constants import Privilege


@dataclass(frozen=True)
class PathGlob:
    """A default-policy path glob.

    Every segment is ``*`` (exactly one hierarchy level) or ``**`` (one or
    more levels). Leading and trailing slashes are ignored.

    Example::

        PathGlob.parse("*/**").matches(1)  # False
        PathGlob.parse("*/**").matches(4)  # True
        PathGlob.parse("/*").matches(1)    # True
    """

    pattern: str
    segments: tuple[str, ...]

    @property
    def min_depth(self) -> int:
        return len(self.segments)

    @property
    def open_ended(self) -> bool:
        return "**" in self.segments

    def matches(self, distance: int) -> bool:
        """True if an asset ``distance`` levels below the anchor is covered."""
        if self.open_ended:
            return distance >= self.min_depth
        return distance == self.min_depth

    @staticmethod
    @lru_cache(maxsize=1024)
    def parse(pattern: str) -> PathGlob:
        stripped = pattern.strip()
        if stripped.startswith("/"):
            stripped = stripped[1:]
        if stripped.endswith("/"):
            stripped = stripped[:-1]
        if not stripped:
            raise ConfigurationError(f"Empty default-policy glob: {pattern!r}", glob=pattern)

        segments = tuple(stripped.split("/"))
        for segment in segments:
            if segment not in ("*", "**"):
                raise ConfigurationError(
                    f"Invalid glob segment {segment!r} in {pattern!r}: only '*' and '**' are allowed",
                    glob=pattern,
                )
        return PathGlob(pattern=pattern, segments=segments)


class DefaultScope(BaseModel):
    """Scope of a default policy relative to its anchor asset(s)."""

    path_glob: str
    target_type: Optional[str] = None

    model_config = {"frozen": True}

    @field_validator("path_glob")
    @classmethod
    def validate_glob(cls, v: str) -> str:
        PathGlob.parse(v)
        return v

    @property
    def glob(self) -> PathGlob:
        return PathGlob.parse(self.path_glob)

    def covers(self, distance: int, asset_type: str) -> bool:
        if self.target_type is not None and self.target_type != asset_type:
            return False
        return self.glob.matches(distance)


class Policy(BaseModel):
    """Immutable Allow/Deny policy.

    Args:
        id: Stable policy identifier.
        privilege: Granted privilege, or ``deny``.
        agents: User and/or group ids the policy applies to.
        assets: Asset ids targeted (anchors when ``default`` is set).
        include_tags: Tag ids targeted. Together with ``assets`` this forms a
            joint target: the asset must carry one of the tags.
        default: Makes this a default policy applying to matching
            descendants of ``assets`` rather than the assets themselves.
        connectors: Restricts an Allow to assets living in these connectors.
            Ignored for Deny, which is evaluated across connectors.
        managed: Whether the policy is managed by configuration.

    Example::

        Policy(
            id="analysts-read-pii",
            privilege=Privilege.READ,
            agents={"analysts"},
            include_tags={"pii"},
        )
    """

    id: str = Field(..., min_length=1)
    privilege: Privilege
    agents: frozenset[str]
    assets: frozenset[str] = Field(default_factory=frozenset)
    include_tags: frozenset[str] = Field(default_factory=frozenset)
    default: Optional[DefaultScope] = None
    connectors: Optional[frozenset[str]] = None
    managed: bool = False
    description: str = ""

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def validate_target(self) -> Policy:
        if not self.agents:
            raise ConfigurationError(f"Policy {self.id!r} names no agents", policy_id=self.id)
        if not self.assets and not self.include_tags:
            raise ConfigurationError(f"Policy {self.id!r} has an empty target", policy_id=self.id)
        if self.default is not None and not self.assets:
            raise ConfigurationError(
                f"Default policy {self.id!r} needs at least one anchor asset",
                policy_id=self.id,
            )
        if self.connectors is not None and not self.connectors:
            raise ConfigurationError(
                f"Policy {self.id!r} has an empty connector scope",
                policy_id=self.id,
            )
        return self

    @property
    def is_deny(self) -> bool:
        return self.privilege.is_deny

    @property
    def is_default(self) -> bool:
        return self.default is not None

    @property
    def is_joint(self) -> bool:
        return bool(self.assets) and bool(self.include_tags)

    @property
    def is_tag_only(self) -> bool:
        return not self.assets and bool(self.include_tags)

    def tags_match(self, tags: Iterable[str]) -> frozenset[str]:
        """Tag ids of ``tags`` selected by ``include_tags`` (all when unfiltered)."""
        tags = frozenset(tags)
        if not self.include_tags:
            return tags
        return self.include_tags & tags

    def in_connector_scope(self, connectors: Iterable[str]) -> bool:
        if self.is_deny or self.connectors is None:
            return True
        return bool(self.connectors & frozenset(connectors))


__all__ = [
    "DefaultScope",
    "PathGlob",
    "Policy",
]
