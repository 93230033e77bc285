"""Generations: immutable, atomically swapped snapshots of the access graph.

A generation bundles a frozen :class:`GraphStore`, its :class:`ClosureEngine`,
the validated :class:`PolicyIndex` and a :class:`Resolver`. Readers capture
``holder.current`` once per query and keep using that generation even if a
newer one is published meanwhile.

Usage:
    holder = GenerationHolder(config)
    holder.rebuild(GraphSnapshot(nodes=[...], edges=[...], policies=[...]))
    holder.current.resolver.resolve("alice", "sf-orders")
"""

from __future__ import annotations

import itertools
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field

from .config import EngineConfig
from .exceptions import AccessCoreError, NotFound
from .graph.closure import ClosureEngine
from .graph.edges import Edge
from .graph.nodes import Node
from .graph.store import GraphStore
from .logging import get_generation_logger
from .permissions.index import PolicyIndex
from .permissions.policy import Policy
from .permissions.resolver import Resolver

logger = get_generation_logger(__name__)

_generation_ids = itertools.count(1)


class GraphSnapshot(BaseModel):
    """Everything one fetch cycle reports: nodes, edges and resolved policies.

    Nodes with the same id (reported by several connectors) are merged when
    the store is built.
    """

    nodes: list[Node] = Field(default_factory=list)
    edges: list[Edge] = Field(default_factory=list)
    policies: list[Policy] = Field(default_factory=list)
    fetched_at: Optional[datetime] = None


@dataclass(frozen=True)
class Generation:
    """One immutable build of the graph, its closures and policies."""

    generation_id: int
    store: GraphStore
    closures: ClosureEngine
    index: PolicyIndex
    resolver: Resolver
    config: EngineConfig
    built_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    fetched_at: Optional[datetime] = None


def build_generation(snapshot: GraphSnapshot, config: EngineConfig | None = None) -> Generation:
    """Build and validate a new generation from a snapshot.

    Raises:
        NotFound: An edge or policy references an unknown id.
        ConfigurationError: Bad edge endpoints, node conflicts or invalid
            policies.
    """
    config = config or EngineConfig()
    generation_id = next(_generation_ids)
    log = get_generation_logger(__name__, generation_id=generation_id)
    started = time.perf_counter()

    store = GraphStore()
    for node in snapshot.nodes:
        store.add_node(node)
    store.add_edges(snapshot.edges)
    store.freeze()

    closures = ClosureEngine(store, config)
    index = PolicyIndex.build(snapshot.policies, store, closures)
    resolver = Resolver(store, index, closures, config)

    log.info(
        "Built generation: %d nodes, %d edges, %d policies in %.1fms",
        len(store),
        store.edge_count,
        len(index),
        (time.perf_counter() - started) * 1000,
        query="build",
    )
    return Generation(
        generation_id=generation_id,
        store=store,
        closures=closures,
        index=index,
        resolver=resolver,
        config=config,
        fetched_at=snapshot.fetched_at,
    )


class GenerationHolder:
    """Publishes the current generation; swapped atomically on rebuild.

    Publication is the only synchronized operation. A failed rebuild leaves
    the previous generation serving.
    """

    def __init__(self, config: EngineConfig | None = None, generation: Generation | None = None) -> None:
        self.config = config or EngineConfig()
        self._lock = threading.Lock()
        self._current = generation

    @property
    def current(self) -> Generation:
        """The generation to serve this query from.

        Raises:
            NotFound: If nothing has been published yet.
        """
        current = self._current
        if current is None:
            raise NotFound("No graph generation has been published yet")
        return current

    @property
    def ready(self) -> bool:
        return self._current is not None

    def publish(self, generation: Generation) -> Generation | None:
        """Make ``generation`` current; returns the one it replaced."""
        with self._lock:
            previous = self._current
            if previous is not None and previous.generation_id > generation.generation_id:
                logger.warning(
                    "Ignoring stale generation %d; %d is already serving",
                    generation.generation_id,
                    previous.generation_id,
                )
                return None
            self._current = generation
        logger.info(
            "Published generation %d (replacing %s)",
            generation.generation_id,
            previous.generation_id if previous is not None else "none",
            generation_id=generation.generation_id,
            query="publish",
        )
        return previous

    def rebuild(self, snapshot: GraphSnapshot) -> Generation:
        """Build a generation from ``snapshot`` off to the side and publish it.

        Raises:
            AccessCoreError: Load-time failures; the previous generation
                keeps serving.
        """
        try:
            generation = build_generation(snapshot, self.config)
        except AccessCoreError as e:
            logger.error(
                "Rebuild failed (%s): %s; keeping generation %s",
                e.code,
                e.message,
                self._current.generation_id if self._current is not None else "none",
                query="rebuild",
            )
            raise
        self.publish(generation)
        return generation


__all__ = [
    "Generation",
    "GenerationHolder",
    "GraphSnapshot",
    "build_generation",
]
