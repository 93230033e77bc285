"""Typed graph nodes.

Provides:
- ``NodeKind``: the closed set of node kinds (user, group, asset, tag).
- ``UserAttributes`` / ``GroupAttributes`` / ``AssetAttributes`` /
  ``TagAttributes``: kind-specific attributes, discriminated by ``kind``.
- ``Node``: a node with a stable id, display name and origin connectors.

Every kind-specific behaviour is a lookup in a table keyed by every
``NodeKind`` member, so a new kind cannot be added without updating each site.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, model_validator

from ..exceptions import ConfigurationError


class NodeKind(str, Enum):
    """Kinds of node in the access graph."""

    USER = "user"
    GROUP = "group"
    ASSET = "asset"
    TAG = "tag"


class UserAttributes(BaseModel):
    kind: Literal["user"] = "user"
    metadata: dict[str, str] = Field(default_factory=dict)

    model_config = {"frozen": True}


class GroupAttributes(BaseModel):
    kind: Literal["group"] = "group"
    metadata: dict[str, str] = Field(default_factory=dict)

    model_config = {"frozen": True}


class AssetAttributes(BaseModel):
    kind: Literal["asset"] = "asset"
    asset_type: str = "unknown"
    metadata: dict[str, str] = Field(default_factory=dict)

    model_config = {"frozen": True}


class TagAttributes(BaseModel):
    """Tag attributes.

    Both inheritance flags default to False: a tag only reaches other assets
    through hierarchy or lineage when explicitly told to.
    """

    kind: Literal["tag"] = "tag"
    description: str = ""
    value: str | None = None
    pass_through_hierarchy: bool = False
    pass_through_lineage: bool = False

    model_config = {"frozen": True}


NodeAttributes = Annotated[
    Union[UserAttributes, GroupAttributes, AssetAttributes, TagAttributes],
    Field(discriminator="kind"),
]

_ATTRIBUTE_TYPES: dict[NodeKind, type[BaseModel]] = {
    NodeKind.USER: UserAttributes,
    NodeKind.GROUP: GroupAttributes,
    NodeKind.ASSET: AssetAttributes,
    NodeKind.TAG: TagAttributes,
}


class Node(BaseModel):
    """A node in the access graph.

    Attributes:
        id: Globally unique, opaque id, stable across fetches.
        name: Platform-qualified display name (``connector::path``).
        kind: Node kind; must agree with ``attributes.kind``.
        connectors: Connectors the node is known to exist in.
        attributes: Kind-specific attributes.

    Example::

        Node.asset("sf-orders", name="snowflake::db/raw/orders",
                   asset_type="table", connectors={"snowflake"})
    """

    id: str = Field(..., min_length=1)
    name: str = ""
    kind: NodeKind
    connectors: frozenset[str] = Field(default_factory=frozenset)
    attributes: NodeAttributes

    model_config = {"frozen": True}

    @model_validator(mode="before")
    @classmethod
    def default_attributes(cls, data):
        if isinstance(data, dict):
            kind = data.get("kind")
            attributes = data.get("attributes")
            if kind is not None and attributes is None:
                data = {**data, "attributes": {"kind": NodeKind(kind).value}}
            elif kind is not None and isinstance(attributes, dict) and "kind" not in attributes:
                data = {**data, "attributes": {**attributes, "kind": NodeKind(kind).value}}
            if not data.get("name"):
                data = {**data, "name": data.get("id", "")}
        return data

    @model_validator(mode="after")
    def check_kind(self) -> Node:
        if self.attributes.kind != self.kind:
            raise ValueError(f"attributes of kind {self.attributes.kind} given for a {self.kind.value} node")
        return self

    # ── Builders ────────────────────────────────────────

    @classmethod
    def user(cls, id: str, name: str = "", connectors=(), **metadata: str) -> Node:
        return cls(
            id=id, name=name, kind=NodeKind.USER, connectors=frozenset(connectors),
            attributes=UserAttributes(metadata=metadata),
        )

    @classmethod
    def group(cls, id: str, name: str = "", connectors=(), **metadata: str) -> Node:
        return cls(
            id=id, name=name, kind=NodeKind.GROUP, connectors=frozenset(connectors),
            attributes=GroupAttributes(metadata=metadata),
        )

    @classmethod
    def asset(cls, id: str, name: str = "", connectors=(), asset_type: str = "unknown", **metadata: str) -> Node:
        return cls(
            id=id, name=name, kind=NodeKind.ASSET, connectors=frozenset(connectors),
            attributes=AssetAttributes(asset_type=asset_type, metadata=metadata),
        )

    @classmethod
    def tag(
        cls,
        id: str,
        name: str = "",
        connectors=(),
        *,
        description: str = "",
        value: str | None = None,
        pass_through_hierarchy: bool = False,
        pass_through_lineage: bool = False,
    ) -> Node:
        return cls(
            id=id, name=name, kind=NodeKind.TAG, connectors=frozenset(connectors),
            attributes=TagAttributes(
                description=description,
                value=value,
                pass_through_hierarchy=pass_through_hierarchy,
                pass_through_lineage=pass_through_lineage,
            ),
        )

    # ── Kind dispatch ───────────────────────────────────

    def display_name(self) -> str:
        match self.kind:
            case NodeKind.USER | NodeKind.GROUP:
                return self.name
            case NodeKind.ASSET:
                return f"{self.name} ({self.attributes.asset_type})"
            case NodeKind.TAG:
                value = self.attributes.value
                return f"{self.name}={value}" if value else self.name
        raise AssertionError(f"Unhandled node kind: {self.kind!r}")

    def icon(self) -> str:
        """Icon name used by API consumers."""
        match self.kind:
            case NodeKind.USER:
                return "person"
            case NodeKind.GROUP:
                return "group"
            case NodeKind.ASSET:
                return "table_chart"
            case NodeKind.TAG:
                return "sell"
        raise AssertionError(f"Unhandled node kind: {self.kind!r}")

    def merge(self, other: Node) -> Node:
        """Merge the same node as reported by another connector.

        Connectors are unioned and metadata maps merged. Kind and name must
        match, and so must every attribute other than metadata.

        Raises:
            ConfigurationError: If the two reports disagree.
        """
        if other.id != self.id:
            raise ConfigurationError(f"Cannot merge node {other.id!r} into {self.id!r}", node_id=self.id)
        if other.kind != self.kind:
            raise ConfigurationError(
                f"Node {self.id!r} reported as both {self.kind.value} and {other.kind.value}",
                node_id=self.id,
            )
        if other.name != self.name:
            raise ConfigurationError(
                f"Node {self.id!r} reported with names {self.name!r} and {other.name!r}",
                node_id=self.id,
            )

        mine = self.attributes.model_dump(exclude={"metadata"})
        theirs = other.attributes.model_dump(exclude={"metadata"})
        if mine != theirs:
            raise ConfigurationError(f"Node {self.id!r} reported with conflicting attributes", node_id=self.id)

        attributes = self.attributes
        if hasattr(attributes, "metadata"):
            metadata = dict(attributes.metadata)
            for key, value in other.attributes.metadata.items():
                if key in metadata and metadata[key] != value:
                    raise ConfigurationError(
                        f"Node {self.id!r} has conflicting metadata for {key!r}",
                        node_id=self.id,
                        key=key,
                    )
                metadata[key] = value
            attributes = attributes.model_copy(update={"metadata": metadata})

        return self.model_copy(update={"connectors": self.connectors | other.connectors, "attributes": attributes})


def attribute_type(kind: NodeKind) -> type[BaseModel]:
    """Attribute model for a node kind."""
    return _ATTRIBUTE_TYPES[kind]


__all__ = [
    "AssetAttributes",
    "GroupAttributes",
    "Node",
    "NodeAttributes",
    "NodeKind",
    "TagAttributes",
    "UserAttributes",
    "attribute_type",
]
