"""Node type catalog.

The catalog maps a node's ``type`` key to its definition: behavioral
category, declared parameters with defaults, and output schema (static or
computed from the node's parameters). The graph store uses it as a node
factory; the schema resolver and the simulator use it to find out what data a
node produces.

Node types are registered in code (see ``builtin_nodes``) or loaded from YAML
files holding static definitions:

    node_types:
      - type: crm-lookup
        display_name: CRM Lookup
        category: integration
        properties:
          - {name: entity, default: contact}
        output_schema:
          properties:
            id: {type: string, format: uuid}
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Any

import pydantic
import yaml
from pydantic import BaseModel, ConfigDict, Field

from kerdar.core.models import Node, NodeCategory, Position
from kerdar.core.schema import DataSchema, aresolve_schema, generate_mock_data, resolve_schema
from kerdar.core.utils import node_id

logger = logging.getLogger(__name__)


class CatalogError(Exception):
    """Node type definitions could not be loaded."""

    pass


class NodeProperty(BaseModel):
    """A configurable parameter of a node type (only what the engine needs)."""

    name: str
    display_name: str | None = None
    type: str = "string"
    default: Any = None
    required: bool = False
    description: str | None = None


class NodeDefaults(BaseModel):
    name: str | None = None


class NodeTypeDefinition(BaseModel):
    """Definition of a node type."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    type: str
    display_name: str
    name: str | None = None
    description: str = ""
    category: NodeCategory
    group: list[str] = Field(default_factory=list)
    version: int = 1
    properties: list[NodeProperty] = Field(default_factory=list)
    defaults: NodeDefaults = Field(default_factory=NodeDefaults)
    aliases: list[str] = Field(default_factory=list)
    # Static schema, or a (sync or async) function of (parameters, node)
    output_schema: DataSchema | Callable[..., Any] | None = None

    def default_parameters(self) -> dict[str, Any]:
        return {
            prop.name: copy.deepcopy(prop.default)
            for prop in self.properties
            if "default" in prop.model_fields_set
        }

    def search_terms(self) -> list[str]:
        terms = [self.type.lower(), self.display_name.lower()]
        if self.name:
            terms.append(self.name.lower())
        terms += [w for w in self.description.lower().split() if len(w) > 2]
        terms += [g.lower() for g in self.group]
        terms.append(self.category.value)
        terms += [a.lower() for a in self.aliases]
        return list(dict.fromkeys(terms))


class NodeTypeCatalog:
    """Registry of node type definitions."""

    def __init__(self, node_types: Iterable[NodeTypeDefinition] = ()):
        self._node_types: dict[str, NodeTypeDefinition] = {}
        self._categories: dict[NodeCategory, list[str]] = {}
        self._search_index: dict[str, list[str]] = {}
        self.register_node_types(node_types)

    def __contains__(self, type_key: str) -> bool:
        return type_key in self._node_types

    def __len__(self) -> int:
        return len(self._node_types)

    # ========== Registration ==========

    def register_node_type(self, node_type: NodeTypeDefinition) -> None:
        self.register_node_types([node_type])

    def register_node_types(self, node_types: Iterable[NodeTypeDefinition]) -> None:
        for node_type in node_types:
            previous = self._node_types.get(node_type.type)
            if previous is not None and previous.category != node_type.category:
                old_members = self._categories[previous.category]
                old_members.remove(node_type.type)
                if not old_members:
                    self._categories.pop(previous.category)
            self._node_types[node_type.type] = node_type
            members = self._categories.setdefault(node_type.category, [])
            if node_type.type not in members:
                members.append(node_type.type)
            self._search_index[node_type.type] = node_type.search_terms()

    def unregister_node_type(self, type_key: str) -> None:
        node_type = self._node_types.pop(type_key, None)
        if node_type is None:
            return
        members = self._categories.get(node_type.category, [])
        if type_key in members:
            members.remove(type_key)
        if not members:
            self._categories.pop(node_type.category, None)
        self._search_index.pop(type_key, None)

    def clear(self) -> None:
        self._node_types.clear()
        self._categories.clear()
        self._search_index.clear()

    def load_node_types(self, path: str | Path) -> list[NodeTypeDefinition]:
        """Load static node type definitions from a YAML file or directory.

        Raises:
            CatalogError: If a file is unreadable or a definition is invalid
        """
        path = Path(path)
        if path.is_dir():
            files = sorted([*path.glob("*.yaml"), *path.glob("*.yml")])
        elif path.exists():
            files = [path]
        else:
            raise CatalogError(f"Node type path not found: {path}")

        loaded = []
        for file in files:
            try:
                with open(file, encoding="utf-8") as f:
                    data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise CatalogError(f"Invalid YAML in {file}: {e}") from e

            entries = data.get("node_types", []) if isinstance(data, dict) else data
            if not isinstance(entries, list):
                raise CatalogError(f"{file}: expected a list of node types")
            for entry in entries:
                try:
                    loaded.append(NodeTypeDefinition.model_validate(entry))
                except pydantic.ValidationError as e:
                    raise CatalogError(f"{file}: invalid node type definition: {e}") from e

        self.register_node_types(loaded)
        logger.debug(f"Loaded {len(loaded)} node type(s) from {path}")
        return loaded

    # ========== Lookups ==========

    def get_node_type(self, type_key: str) -> NodeTypeDefinition | None:
        return self._node_types.get(type_key)

    def get_all_node_types(self) -> list[NodeTypeDefinition]:
        return list(self._node_types.values())

    def get_node_types_by_category(self, category: NodeCategory) -> list[NodeTypeDefinition]:
        return [self._node_types[t] for t in self._categories.get(category, [])]

    def get_node_types_for_group(self, group: str) -> list[NodeTypeDefinition]:
        return [t for t in self._node_types.values() if group in t.group]

    def get_categories(self) -> list[NodeCategory]:
        return list(self._categories)

    def search_node_types(self, query: str) -> list[NodeTypeDefinition]:
        """Rank node types by keyword match (exact term 10 points, partial 1)."""
        if not query.strip():
            return self.get_all_node_types()

        scores: dict[str, int] = {}
        for term in query.lower().split():
            for type_key, terms in self._search_index.items():
                matching = [t for t in terms if term in t or t in term]
                if matching:
                    scores[type_key] = scores.get(type_key, 0) + (10 if term in matching else 1)

        ranked = sorted(scores.items(), key=lambda item: item[1], reverse=True)
        return [self._node_types[type_key] for type_key, _ in ranked]

    # ========== Factory ==========

    def get_default_parameters(self, type_key: str) -> dict[str, Any]:
        node_type = self._node_types.get(type_key)
        return node_type.default_parameters() if node_type else {}

    def create_node_instance(
        self,
        type_key: str,
        position: Position | None = None,
        overrides: dict[str, Any] | None = None,
    ) -> Node | None:
        """Build a node of ``type_key`` populated with declared defaults."""
        node_type = self._node_types.get(type_key)
        if node_type is None:
            logger.warning(f"Node type not found: {type_key}")
            return None

        data: dict[str, Any] = {
            "id": node_id(),
            "type": node_type.type,
            "name": node_type.defaults.name or node_type.display_name,
            "position": position or Position(x=100, y=100),
            "parameters": node_type.default_parameters(),
            "disabled": False,
        }
        data.update(overrides or {})
        return Node.model_validate(data)

    # ========== Schemas ==========

    def resolve_schema(
        self,
        schema: DataSchema | Callable[..., Any] | None,
        parameters: dict[str, Any] | None = None,
        node: Node | None = None,
    ) -> DataSchema | None:
        return resolve_schema(schema, parameters, node)

    def resolve_node_schema(self, node: Node) -> DataSchema | None:
        """Concrete output schema of ``node`` for its current parameters."""
        node_type = self._node_types.get(node.type)
        if node_type is None or node_type.output_schema is None:
            return None
        return resolve_schema(node_type.output_schema, node.parameters, node)

    async def aresolve_node_schema(self, node: Node) -> DataSchema | None:
        node_type = self._node_types.get(node.type)
        if node_type is None or node_type.output_schema is None:
            return None
        return await aresolve_schema(node_type.output_schema, node.parameters, node)

    def generate_mock_data(self, schema: DataSchema | None) -> dict[str, Any]:
        return generate_mock_data(schema) if schema is not None else {}
