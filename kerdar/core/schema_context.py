"""Upstream schema resolution for expression editing.

For a consumer node, ``SchemaResolver`` walks the edge set backwards
(breadth-first) and collects the output schema of every upstream node:
direct predecessors form the node's input, every visited node is
addressable by ``$node["<name>"]``. Results are cached per
``(node_id, graph version)`` and the whole cache is dropped as soon as the
store's version token moves.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Any

from kerdar.core.catalog import NodeTypeCatalog
from kerdar.core.graph_store import GraphStore
from kerdar.core.models import Node
from kerdar.core.schema import (
    DataSchema,
    SchemaSuggestion,
    generate_mock_data,
    merge_schemas,
    schema_to_suggestions,
)
from kerdar.core.utils import parse_output_index

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedSchema:
    """One upstream node's output shape, as seen from a consumer node."""

    schema: DataSchema
    source_node_id: str
    source_node_name: str
    source_node_type: str
    output_index: int = 0


@dataclass
class SchemaContext:
    """Everything nameable in an expression for ``node_id``.

    ``accessible_schemas`` is keyed by node id in BFS order (nearest first);
    use ``by_name()`` for the ``$node["<name>"]`` view.
    """

    node_id: str
    input_schemas: list[ResolvedSchema] = field(default_factory=list)
    accessible_schemas: dict[str, ResolvedSchema] = field(default_factory=dict)
    merged_input_schema: DataSchema | None = None

    def by_name(self) -> dict[str, ResolvedSchema]:
        """Name-keyed view; when names collide the nearest upstream node wins."""
        named: dict[str, ResolvedSchema] = {}
        for resolved in self.accessible_schemas.values():
            named.setdefault(resolved.source_node_name, resolved)
        return named


BUILT_IN_VARIABLES = [
    SchemaSuggestion(
        path="$executionId",
        label="$executionId",
        type="string",
        kind="variable",
        description="Unique ID of the current execution",
    ),
    SchemaSuggestion(
        path="$runIndex",
        label="$runIndex",
        type="integer",
        kind="variable",
        description="Index of the current run (for retry scenarios)",
    ),
    SchemaSuggestion(
        path="$itemIndex",
        label="$itemIndex",
        type="integer",
        kind="variable",
        description="Index of the current item in the array",
    ),
    SchemaSuggestion(
        path="$now",
        label="$now",
        type="string",
        kind="variable",
        description="Current timestamp in ISO format",
    ),
    SchemaSuggestion(
        path="$today",
        label="$today",
        type="string",
        kind="variable",
        description="Current date in YYYY-MM-DD format",
    ),
    SchemaSuggestion(
        path="$workflow",
        label="$workflow",
        type="object",
        kind="object",
        description="Workflow metadata (id, name, active)",
    ),
]


class SchemaResolver:
    """Computes and caches schema contexts over a GraphStore."""

    def __init__(self, store: GraphStore, catalog: NodeTypeCatalog):
        self.store = store
        self.catalog = catalog
        self._cache: dict[tuple[str, int], SchemaContext] = {}
        self._cache_version = store.version

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    def invalidate(self) -> None:
        self._cache.clear()

    def _resolve_output_schema(self, node: Node) -> DataSchema | None:
        try:
            return self.catalog.resolve_node_schema(node)
        except Exception as e:
            logger.warning(f"Output schema of node {node.id} ({node.type}) failed to resolve: {e}")
            return None

    def _build_context(self, node_id: str) -> SchemaContext:
        context = SchemaContext(node_id=node_id)
        visited: set[str] = set()

        # (node id, distance from the consumer, handle of the edge that reached it)
        queue: deque[tuple[str, int, str | None]] = deque(
            (e.source, 1, e.source_handle) for e in self.store.get_incoming_edges(node_id)
        )
        while queue:
            current_id, distance, handle = queue.popleft()
            if current_id in visited:
                continue
            visited.add(current_id)

            node = self.store.get_node(current_id)
            if node is None:
                continue

            schema = self._resolve_output_schema(node)
            if schema is not None:
                resolved = ResolvedSchema(
                    schema=schema,
                    source_node_id=node.id,
                    source_node_name=node.name,
                    source_node_type=node.type,
                    output_index=parse_output_index(handle),
                )
                if distance == 1:
                    context.input_schemas.append(resolved)
                context.accessible_schemas[node.id] = resolved

            for edge in self.store.get_incoming_edges(current_id):
                if edge.source not in visited:
                    queue.append((edge.source, distance + 1, edge.source_handle))

        context.merged_input_schema = merge_schemas(*(r.schema for r in context.input_schemas))
        return context

    def get_schema_context(self, node_id: str) -> SchemaContext:
        version = self.store.version
        if version != self._cache_version:
            self._cache.clear()
            self._cache_version = version

        key = (node_id, version)
        context = self._cache.get(key)
        if context is None:
            context = self._build_context(node_id)
            self._cache[key] = context
            logger.debug(
                f"Schema context for {node_id}: {len(context.input_schemas)} input(s), "
                f"{len(context.accessible_schemas)} accessible"
            )
        return context

    def accessible_by_name(self, node_id: str) -> dict[str, ResolvedSchema]:
        return self.get_schema_context(node_id).by_name()

    def get_suggestions(self, node_id: str) -> list[SchemaSuggestion]:
        """Flat autocomplete list: ``$json``, ``$input.item.json``, then ``$node[...]``."""
        variables = self.get_expression_variables(node_id)
        suggestions = [*variables["json"], *variables["input"]]
        for node_suggestions in variables["nodes"].values():
            suggestions.extend(node_suggestions)
        return suggestions

    def get_expression_variables(self, node_id: str) -> dict[str, Any]:
        """Suggestions grouped as ``json``, ``input``, ``nodes`` (by name) and ``built_in``."""
        context = self.get_schema_context(node_id)
        variables: dict[str, Any] = {
            "json": [],
            "input": [],
            "nodes": {},
            "built_in": [s.model_copy() for s in BUILT_IN_VARIABLES],
        }

        if context.merged_input_schema is not None:
            variables["json"] = schema_to_suggestions(context.merged_input_schema, "$json")
        if context.input_schemas:
            first = context.input_schemas[0]
            variables["input"] = schema_to_suggestions(
                first.schema, "$input.item.json", first.source_node_name
            )
        for name, resolved in context.by_name().items():
            variables["nodes"][name] = schema_to_suggestions(
                resolved.schema, f'$node["{name}"].json', name
            )
        return variables

    def get_mock_data(self, node_id: str) -> dict[str, Any]:
        """Sample input for ``node_id`` synthesized from its merged input schema."""
        context = self.get_schema_context(node_id)
        if context.merged_input_schema is None:
            return {}
        return generate_mock_data(context.merged_input_schema)
