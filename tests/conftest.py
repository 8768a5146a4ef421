# conftest.py - Shared pytest fixtures for all tests
"""Shared pytest fixtures for the Kerdar test suite.

This module provides foundational fixtures used across all test modules:
- Node type catalogs (built-in and minimal)
- Graph stores with and without content
- Sample workflow documents (in-memory and on disk)

Usage:
    Import fixtures implicitly via pytest's fixture discovery.
    All fixtures in this file are automatically available in test modules.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest

from kerdar.core.builtin_nodes import create_default_catalog
from kerdar.core.catalog import NodeTypeCatalog
from kerdar.core.graph_store import GraphStore
from kerdar.core.models import Edge, Node, Position, Workflow
from kerdar.core.simulator import SimulationOptions


def make_node(node_id: str, node_type: str, name: str | None = None, **fields: Any) -> Node:
    """Build a node with a predictable id and position."""
    return Node(
        id=node_id,
        type=node_type,
        name=name or node_id,
        position=fields.pop("position", Position(x=0, y=0)),
        **fields,
    )


def make_edge(source: str, target: str, source_handle: str | None = None, **fields: Any) -> Edge:
    """Build an edge with an id derived from its endpoints."""
    handle_suffix = f"-{source_handle}" if source_handle else ""
    return Edge(
        id=fields.pop("id", f"e-{source}-{target}{handle_suffix}"),
        source=source,
        target=target,
        source_handle=source_handle,
        **fields,
    )


def make_workflow(nodes: list[Node], edges: list[Edge] | None = None, name: str = "Test Workflow") -> Workflow:
    workflow = Workflow.new(name)
    workflow.nodes = nodes
    workflow.edges = edges or []
    return workflow


# =============================================================================
# Catalog Fixtures
# =============================================================================


@pytest.fixture
def catalog() -> NodeTypeCatalog:
    """Create a catalog with the built-in node types registered.

    Returns:
        Fresh NodeTypeCatalog (tests may register extra types freely).
    """
    return create_default_catalog()


@pytest.fixture
def empty_catalog() -> NodeTypeCatalog:
    """Create a catalog with no node types."""
    return NodeTypeCatalog()


# =============================================================================
# Graph Store Fixtures
# =============================================================================


@pytest.fixture
def store(catalog: NodeTypeCatalog) -> GraphStore:
    """Create an empty GraphStore backed by the built-in catalog.

    Example:
        def test_add(store):
            node = store.add_node_of_type("manual-trigger")
            assert store.get_node(node.id) is not None
    """
    return GraphStore(catalog=catalog)


@pytest.fixture
def chain_store(catalog: NodeTypeCatalog) -> GraphStore:
    """Create a store holding the chain trigger -> http -> email.

    Node ids are ``trigger``, ``http`` and ``email``; edges are
    ``e-trigger-http`` and ``e-http-email``.
    """
    workflow = make_workflow(
        [
            make_node("trigger", "manual-trigger", "Start", position=Position(x=0, y=0)),
            make_node(
                "http",
                "http-request",
                "Fetch",
                position=Position(x=300, y=0),
                parameters={"method": "GET", "options": {"fullResponse": True}},
            ),
            make_node("email", "send-email", "Notify", position=Position(x=600, y=0)),
        ],
        [make_edge("trigger", "http"), make_edge("http", "email")],
    )
    return GraphStore(catalog=catalog, workflow=workflow)


# =============================================================================
# Workflow Fixtures
# =============================================================================


@pytest.fixture
def linear_workflow() -> Workflow:
    """Workflow A(trigger) -> B(http) -> C(http), ids ``A``, ``B``, ``C``."""
    return make_workflow(
        [
            make_node("A", "manual-trigger", "Trigger"),
            make_node("B", "http-request", "Action B", parameters={"options": {"fullResponse": True}}),
            make_node("C", "http-request", "Action C", parameters={"options": {"fullResponse": True}}),
        ],
        [make_edge("A", "B"), make_edge("B", "C")],
    )


@pytest.fixture
def fast_options() -> SimulationOptions:
    """Simulation options with no pacing delay."""
    return SimulationOptions(node_delay=0)


@pytest.fixture
def workflow_file(tmp_path: Path, linear_workflow: Workflow) -> Path:
    """Write ``linear_workflow`` to a JSON file.

    Returns:
        Path to the JSON document.
    """
    path = tmp_path / "workflow.json"
    path.write_text(json.dumps(linear_workflow.to_dict()))
    return path
