from .config import EngineConfig, LogLevel, load_config_from_env
from .exceptions import (
    AccessCoreError,
    ConfigurationError,
    CycleDetected,
    GraphFrozenError,
    NotFound,
    Truncated,
)
from .generation import Generation, GenerationHolder, GraphSnapshot, build_generation
from .graph import (
    ClosureEngine,
    Condition,
    Direction,
    Edge,
    EdgeType,
    GraphStore,
    Node,
    NodeKind,
)
from .logging import (
    safe_preview,
    AccessCoreFormatter,
    GenerationLoggerAdapter,
    setup_logging,
    get_generation_logger,
)
from .permissions import (
    DefaultScope,
    Policy,
    PolicyIndex,
    Privilege,
    Resolution,
    Resolver,
    Specificity,
)
from .explore import Explorer

__all__ = [
    'EngineConfig',
    'LogLevel',
    'load_config_from_env',
    'AccessCoreError',
    'ConfigurationError',
    'CycleDetected',
    'GraphFrozenError',
    'NotFound',
    'Truncated',
    'Generation',
    'GenerationHolder',
    'GraphSnapshot',
    'build_generation',
    'ClosureEngine',
    'Condition',
    'Direction',
    'Edge',
    'EdgeType',
    'GraphStore',
    'Node',
    'NodeKind',
    'safe_preview',
    'AccessCoreFormatter',
    'GenerationLoggerAdapter',
    'setup_logging',
    'get_generation_logger',
    'DefaultScope',
    'Policy',
    'PolicyIndex',
    'Privilege',
    'Resolution',
    'Resolver',
    'Specificity',
    'Explorer',
]
