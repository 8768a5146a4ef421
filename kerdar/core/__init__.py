"""Core modules for the Kerdar workflow engine."""

from kerdar.core.builtin_nodes import create_default_catalog
from kerdar.core.catalog import CatalogError, NodeTypeCatalog, NodeTypeDefinition
from kerdar.core.config import ConfigError, EngineConfig, load_config
from kerdar.core.execution_state import ExecutionLedger, NodeExecutionState, StatusTransition
from kerdar.core.graph_store import GraphStore
from kerdar.core.models import (
    Edge,
    ExecutionStatus,
    Node,
    NodeCategory,
    Position,
    RunStatus,
    Workflow,
)
from kerdar.core.schema import DataSchema, SchemaProperty
from kerdar.core.schema_context import ResolvedSchema, SchemaContext, SchemaResolver
from kerdar.core.simulator import (
    SimulationError,
    SimulationOptions,
    SimulationResult,
    WorkflowSimulator,
    simulate_workflow,
)

__all__ = [
    "CatalogError",
    "ConfigError",
    "DataSchema",
    "Edge",
    "EngineConfig",
    "ExecutionLedger",
    "ExecutionStatus",
    "GraphStore",
    "Node",
    "NodeCategory",
    "NodeExecutionState",
    "NodeTypeCatalog",
    "NodeTypeDefinition",
    "Position",
    "ResolvedSchema",
    "RunStatus",
    "SchemaContext",
    "SchemaProperty",
    "SchemaResolver",
    "SimulationError",
    "SimulationOptions",
    "SimulationResult",
    "StatusTransition",
    "Workflow",
    "WorkflowSimulator",
    "create_default_catalog",
    "load_config",
    "simulate_workflow",
]
