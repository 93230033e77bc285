"""Engine configuration for accesscore.

This module provides the Pydantic-validated configuration model shared by the
graph store, closure engine, resolver and API layer. Traversal bounds live
here so that every closure and path enumeration stays bounded on very large
or malformed graphs.

Direct os.environ/os.getenv usage is limited to ``load_config_from_env()``.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class LogLevel(str, Enum):
    """Standard log levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class EngineConfig(BaseModel):
    """Configuration for one access engine instance.

    Bounds apply per query: a closure that would exceed them is cut short and
    annotated as truncated rather than growing without limit.
    """

    # Logging
    log_level: LogLevel = Field(
        default=LogLevel.INFO,
        description="Logging level for the engine",
    )
    log_json: bool = Field(
        default=False,
        description="Use JSON log format (default: plain text)",
    )

    # Traversal bounds
    max_paths_per_target: int = Field(
        default=16,
        description="Maximum number of shortest witness paths kept per closure member",
    )
    max_depth: int = Field(
        default=64,
        description="Maximum BFS depth for any closure",
    )
    max_closure_size: int = Field(
        default=200_000,
        description="Maximum number of members in a single closure",
    )
    max_subgraph_depth: int = Field(
        default=5,
        description="Largest depth accepted for subgraph extraction",
    )
    max_path_enumeration: int = Field(
        default=64,
        description="Maximum number of simple paths returned between two nodes",
    )
    fail_on_incomplete: bool = Field(
        default=False,
        description="Raise CycleDetected/Truncated instead of annotating results",
    )

    # Service identification
    service_name: Optional[str] = Field(
        default=None,
        description="Service name used as the logger name for the API layer",
    )

    @field_validator(
        "max_paths_per_target",
        "max_depth",
        "max_closure_size",
        "max_subgraph_depth",
        "max_path_enumeration",
    )
    @classmethod
    def validate_positive(cls, v: int) -> int:
        """Bounds must be strictly positive."""
        if v < 1:
            raise ValueError("Traversal bounds must be positive integers")
        return v

    @field_validator("log_level", mode="before")
    @classmethod
    def validate_log_level(cls, v: str | LogLevel) -> LogLevel:
        """Convert string to LogLevel enum."""
        if isinstance(v, LogLevel):
            return v
        if isinstance(v, str):
            try:
                return LogLevel[v.upper()]
            except KeyError:
                raise ValueError(f"Invalid log level: {v}. Must be one of {[e.value for e in LogLevel]}")
        raise ValueError(f"Log level must be string or LogLevel enum, got {type(v)}")

    model_config = {
        "use_enum_values": True,
        "extra": "forbid",
        "frozen": True,
    }


_TRUTHY = ("true", "1", "yes", "on")


def load_config_from_env() -> EngineConfig:
    """Load engine configuration from environment variables.

    Environment variables:
    - LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    - LOG_JSON: Use JSON log format (true/false, default: false)
    - MAX_PATHS_PER_TARGET: Witness paths kept per closure member
    - MAX_TRAVERSAL_DEPTH: Maximum BFS depth
    - MAX_CLOSURE_SIZE: Maximum closure member count
    - MAX_SUBGRAPH_DEPTH: Largest accepted subgraph depth
    - MAX_PATH_ENUMERATION: Maximum simple paths between two nodes
    - FAIL_ON_INCOMPLETE: Raise instead of annotating incomplete results
    - SERVICE_NAME: Service name

    Returns:
        EngineConfig instance with values from environment or defaults.
    """
    import os

    return EngineConfig(
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        log_json=os.getenv("LOG_JSON", "false").lower() in _TRUTHY,
        max_paths_per_target=int(os.getenv("MAX_PATHS_PER_TARGET", "16")),
        max_depth=int(os.getenv("MAX_TRAVERSAL_DEPTH", "64")),
        max_closure_size=int(os.getenv("MAX_CLOSURE_SIZE", "200000")),
        max_subgraph_depth=int(os.getenv("MAX_SUBGRAPH_DEPTH", "5")),
        max_path_enumeration=int(os.getenv("MAX_PATH_ENUMERATION", "64")),
        fail_on_incomplete=os.getenv("FAIL_ON_INCOMPLETE", "false").lower() in _TRUTHY,
        service_name=os.getenv("SERVICE_NAME"),
    )


__all__ = [
    "EngineConfig",
    "LogLevel",
    "load_config_from_env",
]
