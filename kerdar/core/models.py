"""Workflow graph data models using Pydantic.

A workflow is a directed graph of typed nodes connected by edges that carry
data from an output port of one node to an input port of another. The JSON
document form ``{id, name, version, nodes, edges, settings, metadata}`` is the
only exchange format, so every model here serializes with camelCase aliases
and keeps unknown keys, which lets documents round-trip losslessly.

Structural invariants (no self loops, no cycles, no dangling endpoints) are
enforced by the GraphStore at edit time and reported by
``Workflow.validate_graph()`` for documents loaded from elsewhere.
"""

from __future__ import annotations

import json
from enum import Enum
from typing import Any

import networkx as nx
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from kerdar.core.utils import parse_output_index, utc_now_iso, workflow_id


class NodeCategory(str, Enum):
    """Behavioral class of a node type; drives simulation transform rules."""

    TRIGGER = "trigger"  # Originates new data
    ACTION = "action"  # Performs an operation per item
    LOGIC = "logic"  # Routes items (IF, Switch, Merge)
    DATA = "data"  # Reshapes items
    INTEGRATION = "integration"  # External services
    AI = "ai"
    DATABASE = "database"
    COMMUNICATION = "communication"  # Email, chat
    CUSTOM = "custom"


class ExecutionStatus(str, Enum):
    """Per-node execution status within one simulation run."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"
    SKIPPED = "skipped"

    @property
    def is_terminal(self) -> bool:
        return self in (ExecutionStatus.SUCCESS, ExecutionStatus.ERROR, ExecutionStatus.SKIPPED)


class RunStatus(str, Enum):
    """Overall status of a simulation run."""

    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"


class _DocumentModel(BaseModel):
    """Base for models that are part of the exchanged workflow document."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
        validate_assignment=True,
    )

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_unset=True)

    def clone(self):
        """Independent deep copy (keeps the set-field bookkeeping)."""
        return self.model_copy(deep=True)


class Position(_DocumentModel):
    x: float = 0
    y: float = 0


class Viewport(_DocumentModel):
    x: float = 0
    y: float = 0
    zoom: float = 1


class Node(_DocumentModel):
    """A typed unit of the workflow graph."""

    id: str
    type: str  # Key into the NodeTypeCatalog
    name: str
    position: Position = Field(default_factory=Position)
    parameters: dict[str, Any] = Field(default_factory=dict)
    disabled: bool = False
    credentials: dict[str, Any] | None = None  # Opaque to the engine
    notes: str | None = None
    metadata: dict[str, Any] | None = None


class Edge(_DocumentModel):
    """Directed connection from an output port to an input port."""

    id: str
    source: str
    target: str
    source_handle: str | None = None  # e.g. "output-1"
    target_handle: str | None = None
    data: dict[str, Any] | None = None  # Visual metadata (label, ...)
    animated: bool | None = None

    @property
    def output_index(self) -> int:
        return parse_output_index(self.source_handle)

    def connects(self, source: str, source_handle: str | None, target: str, target_handle: str | None) -> bool:
        """True if this edge joins exactly these ports."""
        return (
            self.source == source
            and self.target == target
            and self.source_handle == source_handle
            and self.target_handle == target_handle
        )


class WorkflowMetadata(_DocumentModel):
    created_at: str = Field(default_factory=utc_now_iso)
    updated_at: str = Field(default_factory=utc_now_iso)
    author: str | None = None
    instance_id: str | None = None
    template_id: str | None = None
    template_version: str | None = None


class Workflow(_DocumentModel):
    """Complete workflow document (the single source of truth)."""

    id: str = Field(default_factory=workflow_id)
    name: str = "Untitled Workflow"
    description: str | None = None
    version: str = "1.0.0"
    active: bool | None = None

    nodes: list[Node] = Field(default_factory=list)
    edges: list[Edge] = Field(default_factory=list)

    settings: dict[str, Any] = Field(default_factory=dict)
    metadata: WorkflowMetadata = Field(default_factory=WorkflowMetadata)

    @classmethod
    def new(cls, name: str = "Untitled Workflow") -> Workflow:
        """Empty workflow with every document field populated."""
        return cls(
            id=workflow_id(),
            name=name,
            version="1.0.0",
            nodes=[],
            edges=[],
            settings={},
            metadata=WorkflowMetadata(created_at=utc_now_iso(), updated_at=utc_now_iso()),
        )

    # ========== Serialization ==========

    def to_json(self, indent: int | None = None) -> str:
        return json.dumps(self.to_dict(), indent=indent)

    @classmethod
    def from_json(cls, text: str | bytes) -> Workflow:
        return cls.model_validate_json(text)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Workflow:
        return cls.model_validate(data)

    # ========== Graph helpers ==========

    def get_node(self, node_id: str) -> Node | None:
        return next((n for n in self.nodes if n.id == node_id), None)

    def to_networkx(self) -> nx.MultiDiGraph:
        """Convert to a NetworkX graph for analysis.

        A MultiDiGraph keeps parallel edges between the same pair of nodes
        (distinct output/input handles).
        """
        G = nx.MultiDiGraph()
        for node in self.nodes:
            G.add_node(node.id)
        for edge in self.edges:
            G.add_edge(edge.source, edge.target, key=edge.id)
        return G

    def get_start_nodes(self) -> list[Node]:
        """Nodes with no incoming edge, in declaration order."""
        targets = {e.target for e in self.edges}
        return [n for n in self.nodes if n.id not in targets]

    def analyze_levels(self) -> list[list[str]]:
        """Group node ids by topological generation (empty if cyclic)."""
        try:
            return [list(level) for level in nx.topological_generations(self.to_networkx())]
        except nx.NetworkXUnfeasible:
            return []

    def validate_graph(self) -> list[str]:
        """
        Validate graph structure.
        Returns list of validation errors (empty when the graph is a valid DAG).
        """
        errors = []

        seen_node_ids = set()
        for node in self.nodes:
            if node.id in seen_node_ids:
                errors.append(f"Duplicate node ID: '{node.id}'")
            seen_node_ids.add(node.id)

        seen_edge_ids = set()
        seen_connections = set()
        for edge in self.edges:
            if edge.id in seen_edge_ids:
                errors.append(f"Duplicate edge ID: '{edge.id}'")
            seen_edge_ids.add(edge.id)

            connection = (edge.source, edge.target, edge.source_handle, edge.target_handle)
            if connection in seen_connections:
                errors.append(f"Duplicate edge from '{edge.source}' to '{edge.target}'")
            seen_connections.add(connection)

            if edge.source == edge.target:
                errors.append(f"Edge {edge.id}: self loop on '{edge.source}'")
            if edge.source not in seen_node_ids:
                errors.append(f"Edge {edge.id}: source '{edge.source}' not found")
            if edge.target not in seen_node_ids:
                errors.append(f"Edge {edge.id}: target '{edge.target}' not found")

        G = self.to_networkx()
        G.remove_edges_from(list(nx.selfloop_edges(G)))
        try:
            cycle = nx.find_cycle(G)
            cycle_path = " -> ".join(str(edge[0]) for edge in cycle)
            errors.append(f"Cycle detected: {cycle_path}")
        except nx.NetworkXNoCycle:
            pass

        if self.nodes and not self.get_start_nodes():
            errors.append("No start nodes found (every node has an incoming edge)")

        return errors
