"""Tests for the node type catalog and the built-in node set."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest
import yaml

from conftest import make_node
from kerdar.core.catalog import CatalogError, NodeProperty, NodeTypeCatalog, NodeTypeDefinition
from kerdar.core.models import NodeCategory, Position
from kerdar.core.schema import DataSchema, create_schema, string_property


def _definition(type_key: str, category: NodeCategory = NodeCategory.ACTION, **fields) -> NodeTypeDefinition:
    return NodeTypeDefinition(type=type_key, display_name=fields.pop("display_name", type_key), category=category, **fields)


# =============================================================================
# Registration and lookup
# =============================================================================


class TestRegistration:
    """Tests for registering and removing node types."""

    def test_register_and_get(self, empty_catalog):
        empty_catalog.register_node_type(_definition("ping"))
        assert "ping" in empty_catalog
        assert empty_catalog.get_node_type("ping").display_name == "ping"
        assert empty_catalog.get_node_type("missing") is None

    def test_reregister_moves_category(self, empty_catalog):
        empty_catalog.register_node_type(_definition("ping", NodeCategory.ACTION))
        empty_catalog.register_node_type(_definition("ping", NodeCategory.DATA))
        assert empty_catalog.get_node_types_by_category(NodeCategory.ACTION) == []
        assert [t.type for t in empty_catalog.get_node_types_by_category(NodeCategory.DATA)] == ["ping"]
        assert empty_catalog.get_categories() == [NodeCategory.DATA]
        assert len(empty_catalog) == 1

    def test_unregister(self, empty_catalog):
        empty_catalog.register_node_type(_definition("ping"))
        empty_catalog.unregister_node_type("ping")
        empty_catalog.unregister_node_type("never-registered")
        assert "ping" not in empty_catalog
        assert empty_catalog.get_categories() == []
        assert empty_catalog.search_node_types("ping") == []

    def test_clear(self, catalog):
        catalog.clear()
        assert len(catalog) == 0
        assert catalog.get_all_node_types() == []

    def test_groups_and_categories(self, catalog):
        http_types = {t.type for t in catalog.get_node_types_for_group("http")}
        assert http_types == {"webhook-trigger", "http-request"}
        assert NodeCategory.TRIGGER in catalog.get_categories()


class TestSearch:
    """Tests for keyword search ranking."""

    def test_exact_term_ranks_first(self, catalog):
        results = catalog.search_node_types("slack")
        assert results[0].type == "slack"

    def test_partial_match(self, catalog):
        types = [t.type for t in catalog.search_node_types("webho")]
        assert "webhook-trigger" in types

    def test_blank_query_returns_all(self, catalog):
        assert len(catalog.search_node_types("  ")) == len(catalog)

    def test_no_match(self, catalog):
        assert catalog.search_node_types("zzzzqqq") == []


# =============================================================================
# Factory
# =============================================================================


class TestFactory:
    """Tests for node instance creation from declared defaults."""

    def test_default_parameters(self, catalog):
        assert catalog.get_default_parameters("http-request") == {"method": "GET", "url": "", "options": {}}
        assert catalog.get_default_parameters("unknown") == {}

    def test_property_without_default_is_omitted(self):
        definition = _definition("x", properties=[NodeProperty(name="a"), NodeProperty(name="b", default=None)])
        assert definition.default_parameters() == {"b": None}

    def test_create_node_instance(self, catalog):
        node = catalog.create_node_instance("manual-trigger", Position(x=5, y=7))
        assert node.id.startswith("node_")
        assert node.type == "manual-trigger"
        assert node.name == "When clicking Execute"
        assert node.position.x == 5
        assert node.disabled is False

    def test_create_uses_display_name_and_overrides(self, catalog):
        node = catalog.create_node_instance("redis", overrides={"name": "Cache", "id": "fixed"})
        assert node.name == "Cache"
        assert node.id == "fixed"
        assert node.parameters == {"operation": "get", "key": ""}
        assert node.position.x == 100

    def test_create_unknown_type(self, catalog):
        assert catalog.create_node_instance("nope") is None

    def test_instances_do_not_share_parameters(self, catalog):
        first = catalog.create_node_instance("set")
        second = catalog.create_node_instance("set")
        first.parameters["fields"]["values"].append({"name": "a"})
        assert second.parameters["fields"]["values"] == []


# =============================================================================
# Schemas
# =============================================================================


class TestNodeSchemas:
    """Tests for static and parameter-dependent output schemas."""

    def test_static_schema(self, catalog):
        schema = catalog.resolve_node_schema(make_node("t", "manual-trigger"))
        assert set(schema.properties) == {"timestamp", "executionMode"}

    def test_no_schema(self, catalog):
        assert catalog.resolve_node_schema(make_node("f", "filter")) is None
        assert catalog.resolve_node_schema(make_node("u", "unknown")) is None
        assert catalog.generate_mock_data(None) == {}

    def test_http_request_depends_on_options(self, catalog):
        simple = catalog.resolve_node_schema(make_node("h", "http-request"))
        full = catalog.resolve_node_schema(
            make_node("h", "http-request", parameters={"options": {"fullResponse": True}})
        )
        assert simple.properties == {}
        assert set(full.properties) == {"data", "statusCode", "headers"}

    def test_set_node_schema_from_fields(self, catalog):
        node = make_node(
            "s",
            "set",
            parameters={
                "fields": {
                    "values": [
                        {"name": "total", "type": "number", "numberValue": 12},
                        {"name": "label", "stringValue": "hello"},
                        {"name": "flag", "type": "boolean"},
                        {"type": "string"},
                    ]
                }
            },
        )
        schema = catalog.resolve_node_schema(node)
        assert list(schema.properties) == ["total", "label", "flag"]
        assert schema.properties["total"].type == "number"
        assert catalog.generate_mock_data(schema) == {"total": 12, "label": "hello", "flag": False}

    def test_redis_schema_by_operation(self, catalog):
        keys = catalog.resolve_node_schema(make_node("r", "redis", parameters={"operation": "keys"}))
        assert catalog.generate_mock_data(keys) == {"keys": ["cache:key"]}
        incr = catalog.resolve_node_schema(make_node("r", "redis", parameters={"operation": "incr"}))
        assert catalog.generate_mock_data(incr) == {"key": "counter", "value": 1}

    def test_async_schema_resolution(self, empty_catalog):
        async def dynamic(params, node):
            return create_schema({"echo": string_property(example=params.get("word", "none"))})

        empty_catalog.register_node_type(_definition("async-node", output_schema=dynamic))
        node = make_node("a", "async-node", parameters={"word": "hi"})
        schema = asyncio.run(empty_catalog.aresolve_node_schema(node))
        assert empty_catalog.generate_mock_data(schema) == {"echo": "hi"}
        assert empty_catalog.resolve_node_schema(node) is None

    def test_resolve_schema_passthrough(self, catalog):
        schema = catalog.resolve_schema(lambda params, node: {"properties": {"a": {"type": "string"}}}, {})
        assert isinstance(schema, DataSchema)


# =============================================================================
# YAML loading
# =============================================================================


class TestLoadNodeTypes:
    """Tests for loading static node types from YAML."""

    def test_load_file(self, empty_catalog, tmp_path: Path):
        path = tmp_path / "crm.yaml"
        path.write_text(
            yaml.safe_dump(
                {
                    "node_types": [
                        {
                            "type": "crm-lookup",
                            "display_name": "CRM Lookup",
                            "category": "integration",
                            "properties": [{"name": "entity", "default": "contact"}],
                            "output_schema": {"properties": {"id": {"type": "string", "format": "uuid"}}},
                        }
                    ]
                }
            )
        )
        loaded = empty_catalog.load_node_types(path)
        assert [t.type for t in loaded] == ["crm-lookup"]
        node_type = empty_catalog.get_node_type("crm-lookup")
        assert node_type.category == NodeCategory.INTEGRATION
        assert empty_catalog.get_default_parameters("crm-lookup") == {"entity": "contact"}
        schema = empty_catalog.resolve_node_schema(make_node("c", "crm-lookup"))
        assert empty_catalog.generate_mock_data(schema) == {"id": "550e8400-e29b-41d4-a716-446655440000"}

    def test_load_directory_of_lists(self, empty_catalog, tmp_path: Path):
        (tmp_path / "a.yaml").write_text(yaml.safe_dump([{"type": "a", "display_name": "A", "category": "data"}]))
        (tmp_path / "b.yml").write_text(yaml.safe_dump([{"type": "b", "display_name": "B", "category": "logic"}]))
        empty_catalog.load_node_types(tmp_path)
        assert {"a", "b"} <= {t.type for t in empty_catalog.get_all_node_types()}

    def test_missing_path(self, empty_catalog, tmp_path: Path):
        with pytest.raises(CatalogError, match="not found"):
            empty_catalog.load_node_types(tmp_path / "missing.yaml")

    def test_invalid_yaml(self, empty_catalog, tmp_path: Path):
        path = tmp_path / "bad.yaml"
        path.write_text("node_types: [unclosed")
        with pytest.raises(CatalogError, match="Invalid YAML"):
            empty_catalog.load_node_types(path)

    def test_invalid_definition(self, empty_catalog, tmp_path: Path):
        path = tmp_path / "bad.yaml"
        path.write_text(yaml.safe_dump({"node_types": [{"type": "x", "category": "not-a-category"}]}))
        with pytest.raises(CatalogError, match="invalid node type definition"):
            empty_catalog.load_node_types(path)
        assert "x" not in empty_catalog

    def test_catalog_is_per_instance(self, catalog):
        other = NodeTypeCatalog()
        assert "manual-trigger" in catalog
        assert "manual-trigger" not in other
