"""Unified exception hierarchy for accesscore.

All engine errors inherit from AccessCoreError. This module provides:
- Base exception hierarchy with stable error codes
- ErrorRegistry for protocol mapping
- HTTP status mapping used by the JSON API layer

Load-time errors (``NotFound``, ``ConfigurationError``) are fatal to building
a generation. ``CycleDetected`` and ``Truncated`` are normally carried as
:class:`~accesscore.graph.closure.Condition` annotations on query results and
are only raised when ``EngineConfig.fail_on_incomplete`` is set.

Usage:
    from accesscore.exceptions import NotFound, ConfigurationError

    try:
        store.get("snowflake::db/schema/table")
    except NotFound as e:
        logger.warning("%s (%s)", e.message, e.code)
"""

from __future__ import annotations

from typing import Any, Callable, TypeVar, cast

__all__ = [
    # Base hierarchy
    "AccessCoreError",
    "NotFound",
    "ConfigurationError",
    "CycleDetected",
    "Truncated",
    "GraphFrozenError",
    # Registry
    "ErrorRegistry",
    "error_registry",
    "register_error",
    # HTTP helpers
    "get_http_status_code",
]


# ---- Exception Hierarchy ----------------------------------------------------


class AccessCoreError(Exception):
    """Base exception for the access engine.

    Attributes:
        code: Stable error code string for protocol mapping (e.g. "NOT_FOUND").
        message: Human-readable error description.
        details: Additional context as keyword arguments.
    """

    code: str = "INTERNAL_ERROR"
    message: str = "An internal error occurred"

    def __init__(self, message: str | None = None, code: str | None = None, **kwargs: Any) -> None:
        self.message = message or self.message
        self.code = code or self.code
        self.details = kwargs
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class NotFound(AccessCoreError):
    """Unknown node, edge endpoint or policy id referenced."""

    code: str = "NOT_FOUND"
    message: str = "Referenced id does not exist"


class ConfigurationError(AccessCoreError):
    """Malformed policy target, invalid glob or circular default-policy reference."""

    code: str = "CONFIGURATION_ERROR"
    message: str = "Invalid configuration"


class CycleDetected(AccessCoreError):
    """A supposedly acyclic edge type contains a cycle."""

    code: str = "CYCLE_DETECTED"
    message: str = "Cycle detected during traversal"


class Truncated(AccessCoreError):
    """A closure or path enumeration hit a configured bound."""

    code: str = "TRUNCATED"
    message: str = "Traversal truncated by a configured bound"


class GraphFrozenError(AccessCoreError):
    """Mutation attempted on a graph that already serves queries."""

    code: str = "GRAPH_FROZEN"
    message: str = "Graph store is frozen"


# ---- Error Registry for Protocol Mapping ------------------------------------

_E = TypeVar("_E", bound=type[AccessCoreError])


class ErrorRegistry:
    """Registry for mapping internal errors to external protocol codes."""

    def __init__(self) -> None:
        self._errors: dict[str, type[AccessCoreError]] = {}

    def register(self, code: str, error_cls: type[AccessCoreError]) -> None:
        self._errors[code] = error_cls

    def get(self, code: str) -> type[AccessCoreError] | None:
        return self._errors.get(code)

    def all(self) -> dict[str, type[AccessCoreError]]:
        return dict(self._errors)


error_registry = ErrorRegistry()


def register_error(code: str) -> Callable[[_E], _E]:
    """Decorator to register a custom error type.

    Usage:
        @register_error("CONNECTOR_PAYLOAD_ERROR")
        class ConnectorPayloadError(AccessCoreError):
            code = "CONNECTOR_PAYLOAD_ERROR"
    """

    def decorator(cls: _E) -> _E:
        error_registry.register(code, cls)
        return cls

    return cast(Callable[[_E], _E], decorator)


# Register base errors
error_registry.register("INTERNAL_ERROR", AccessCoreError)
error_registry.register("NOT_FOUND", NotFound)
error_registry.register("CONFIGURATION_ERROR", ConfigurationError)
error_registry.register("CYCLE_DETECTED", CycleDetected)
error_registry.register("TRUNCATED", Truncated)
error_registry.register("GRAPH_FROZEN", GraphFrozenError)


# ---- HTTP Mapping -----------------------------------------------------------

_ERROR_TO_STATUS = {
    "NOT_FOUND": 404,
    "CONFIGURATION_ERROR": 422,
    "CYCLE_DETECTED": 409,
    "TRUNCATED": 413,
    "GRAPH_FROZEN": 409,
}


def get_http_status_code(error: AccessCoreError) -> int:
    """Map an AccessCoreError to the HTTP status used by the JSON API."""
    return _ERROR_TO_STATUS.get(error.code, 500)
