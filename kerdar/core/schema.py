"""Declarative output-schema definitions for node types.

Schemas describe the shape of the items a node emits. They drive:
- expression autocomplete (``schema_to_suggestions``)
- mock data synthesis for simulation (``generate_mock_data``)
- sample validation between connected nodes (``validate_against_schema``)

A node type declares either a static ``DataSchema`` or a function of the
node's parameters that computes one (``resolve_schema`` evaluates both).
"""

from __future__ import annotations

import copy
import inspect
import logging
import re
from collections.abc import Awaitable, Callable, Mapping
from typing import TYPE_CHECKING, Any, Literal, Union

from jsonschema import Draft7Validator
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

if TYPE_CHECKING:
    from kerdar.core.models import Node

logger = logging.getLogger(__name__)

SchemaPropertyType = Literal["string", "number", "boolean", "integer", "array", "object", "null", "any"]

_SCHEMA_CONFIG = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")


class SchemaProperty(BaseModel):
    """A single property within a schema."""

    model_config = _SCHEMA_CONFIG

    type: SchemaPropertyType | list[SchemaPropertyType] = "any"
    display_name: str | None = None
    description: str | None = None
    required: bool | None = None
    default: Any = None
    example: Any = None
    enum: list[Any] | None = None
    enum_labels: list[str] | None = None
    format: str | None = None  # date, datetime, email, uri, uuid, ...
    minimum: float | None = None
    maximum: float | None = None
    min_length: int | None = None
    max_length: int | None = None
    pattern: str | None = None
    items: SchemaProperty | None = None
    properties: dict[str, SchemaProperty] | None = None
    required_properties: list[str] | None = None
    additional_properties: bool | SchemaProperty | None = None
    ref: str | None = Field(default=None, alias="$ref")
    one_of: list[SchemaProperty] | None = None
    all_of: list[SchemaProperty] | None = None
    any_of: list[SchemaProperty] | None = None
    const: Any = None
    read_only: bool | None = None
    deprecated: bool | None = None
    metadata: dict[str, Any] | None = None

    def has(self, field_name: str) -> bool:
        """True if the field was given explicitly (a null example counts)."""
        return field_name in self.model_fields_set

    @property
    def primary_type(self) -> str:
        return self.type[0] if isinstance(self.type, list) else self.type


class DataSchema(BaseModel):
    """Complete schema for the data flowing out of a node (always an object)."""

    model_config = _SCHEMA_CONFIG

    type: Literal["object"] = "object"
    display_name: str | None = None
    description: str | None = None
    properties: dict[str, SchemaProperty] = Field(default_factory=dict)
    required: list[str] | None = None
    example: dict[str, Any] | None = None
    additional_properties: bool | SchemaProperty | None = None
    definitions: dict[str, SchemaProperty] | None = None
    schema_uri: str | None = Field(default=None, alias="$schema")
    schema_id: str | None = Field(default=None, alias="$id")
    metadata: dict[str, Any] | None = None


DynamicSchemaFn = Callable[[dict[str, Any], "Node | None"], Union[DataSchema, Mapping, None, Awaitable[Any]]]
SchemaDefinition = Union[DataSchema, DynamicSchemaFn]


# =============================================================================
# Builders
# =============================================================================


def _prop(type_: str, options: dict[str, Any]) -> SchemaProperty:
    return SchemaProperty(type=type_, **options)


def string_property(**options: Any) -> SchemaProperty:
    return _prop("string", options)


def number_property(**options: Any) -> SchemaProperty:
    return _prop("number", options)


def integer_property(**options: Any) -> SchemaProperty:
    return _prop("integer", options)


def boolean_property(**options: Any) -> SchemaProperty:
    return _prop("boolean", options)


def any_property(**options: Any) -> SchemaProperty:
    return _prop("any", options)


def array_property(items: SchemaProperty, **options: Any) -> SchemaProperty:
    return SchemaProperty(type="array", items=items, **options)


def object_property(properties: dict[str, SchemaProperty], **options: Any) -> SchemaProperty:
    return SchemaProperty(type="object", properties=properties, **options)


def create_schema(properties: dict[str, SchemaProperty], **options: Any) -> DataSchema:
    return DataSchema(properties=properties, **options)


# Common templates

http_response_schema = create_schema(
    {
        "data": any_property(description="Response body data"),
        "statusCode": integer_property(description="HTTP status code", example=200),
        "headers": object_property(
            {}, description="Response headers", additional_properties=string_property()
        ),
    },
    display_name="HTTP Response",
    description="Standard HTTP response structure",
)

webhook_request_schema = create_schema(
    {
        "headers": object_property(
            {},
            description="Request headers",
            additional_properties=string_property(),
            example={"content-type": "application/json"},
        ),
        "query": object_property(
            {}, description="Query string parameters", additional_properties=any_property()
        ),
        "body": any_property(description="Request body"),
        "method": string_property(
            description="HTTP method",
            enum=["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"],
            example="POST",
        ),
        "path": string_property(description="Request path", example="/webhook/my-endpoint"),
    },
    display_name="Webhook Request",
    description="Incoming webhook request structure",
)

pagination_property = object_property(
    {
        "page": integer_property(description="Current page number", example=1, minimum=1),
        "pageSize": integer_property(description="Items per page", example=20, minimum=1, maximum=100),
        "total": integer_property(description="Total number of items", example=100),
        "totalPages": integer_property(description="Total number of pages", example=5),
        "hasMore": boolean_property(description="Whether more pages exist", example=True),
    },
    display_name="Pagination",
    description="Standard pagination metadata",
)

timestamp_property = string_property(
    format="datetime", description="ISO 8601 timestamp", example="2024-01-15T10:30:00.000Z"
)
id_property = string_property(
    format="uuid", description="Unique identifier", example="550e8400-e29b-41d4-a716-446655440000"
)
email_property = string_property(format="email", description="Email address", example="user@example.com")


# =============================================================================
# Resolution and merging
# =============================================================================


def is_dynamic_schema(schema: Any) -> bool:
    return callable(schema) and not isinstance(schema, BaseModel)


def _coerce(result: Any) -> DataSchema | None:
    if result is None:
        return None
    if isinstance(result, DataSchema):
        return result
    if isinstance(result, Mapping):
        return DataSchema.model_validate(result)
    raise TypeError(f"Schema function returned {type(result).__name__}, expected DataSchema")


def resolve_schema(
    schema: SchemaDefinition | Mapping | None,
    params: dict[str, Any] | None = None,
    node: Node | None = None,
) -> DataSchema | None:
    """Resolve a static or dynamic schema definition to a concrete DataSchema.

    Async schema functions cannot be evaluated here; use ``aresolve_schema``.
    """
    if schema is None:
        return None
    if not is_dynamic_schema(schema):
        return _coerce(schema)
    result = schema(dict(params or {}), node)
    if inspect.isawaitable(result):
        if inspect.iscoroutine(result):
            result.close()
        logger.warning("Async schema function used in synchronous resolution; treating as no schema")
        return None
    return _coerce(result)


async def aresolve_schema(
    schema: SchemaDefinition | Mapping | None,
    params: dict[str, Any] | None = None,
    node: Node | None = None,
) -> DataSchema | None:
    """Async variant of ``resolve_schema`` that awaits async schema functions."""
    if schema is None:
        return None
    if not is_dynamic_schema(schema):
        return _coerce(schema)
    result = schema(dict(params or {}), node)
    if inspect.isawaitable(result):
        result = await result
    return _coerce(result)


def merge_schemas(*schemas: DataSchema | None) -> DataSchema | None:
    """Field-wise union of schemas.

    Later schemas override earlier ones for conflicting properties; types are
    not reconciled.
    """
    valid = [s for s in schemas if s is not None]
    if not valid:
        return None
    if len(valid) == 1:
        return valid[0]

    properties: dict[str, SchemaProperty] = {}
    required: list[str] = []
    for schema in valid:
        properties.update(schema.properties)
        for name in schema.required or []:
            if name not in required:
                required.append(name)
    return DataSchema(properties=properties, required=required)


def get_property_by_path(schema: DataSchema, path: str) -> SchemaProperty | None:
    """Look up a property by dotted path, e.g. ``contact.address.city`` or ``items[0].id``."""
    current: DataSchema | SchemaProperty | None = schema
    for part in path.split("."):
        if current is None:
            return None
        props = current.properties or {}

        array_match = re.match(r"^(\w+)\[(\d+)\]$", part)
        if array_match:
            array_prop = props.get(array_match.group(1))
            if array_prop is None or array_prop.primary_type != "array" or array_prop.items is None:
                return None
            current = array_prop.items
            continue

        current = props.get(part)
    return current if isinstance(current, SchemaProperty) else None


# =============================================================================
# Mock data
# =============================================================================

_MOCK_STRINGS = {
    "date": "2024-01-15",
    "datetime": "2024-01-15T10:30:00.000Z",
    "date-time": "2024-01-15T10:30:00.000Z",
    "time": "10:30:00",
    "email": "user@example.com",
    "uri": "https://example.com",
    "url": "https://example.com",
    "uuid": "550e8400-e29b-41d4-a716-446655440000",
    "hostname": "example.com",
    "ipv4": "192.168.1.1",
    "ipv6": "2001:0db8:85a3:0000:0000:8a2e:0370:7334",
    "phone": "+1-555-123-4567",
    "color": "#3B82F6",
}


def generate_mock_data(schema: DataSchema) -> dict[str, Any]:
    """Produce one representative value per declared field."""
    if schema.example is not None:
        return copy.deepcopy(schema.example)
    return {key: generate_mock_value(prop) for key, prop in schema.properties.items()}


def generate_mock_value(prop: SchemaProperty) -> Any:
    for field_name in ("example", "default", "const"):
        if prop.has(field_name):
            return copy.deepcopy(getattr(prop, field_name))
    if prop.enum:
        return copy.deepcopy(prop.enum[0])

    kind = prop.primary_type
    if kind == "string":
        return _MOCK_STRINGS.get(prop.format or "", prop.display_name or "sample text")
    if kind in ("number", "integer"):
        return prop.minimum if prop.minimum is not None else 0
    if kind == "boolean":
        return False
    if kind == "array":
        return [generate_mock_value(prop.items)] if prop.items else []
    if kind == "object":
        return {key: generate_mock_value(sub) for key, sub in (prop.properties or {}).items()}
    return None


# =============================================================================
# Autocomplete
# =============================================================================


class SchemaSuggestion(BaseModel):
    """Expression autocomplete entry derived from a schema property."""

    path: str  # e.g. '$json.contact.name'
    label: str
    type: str | list[str]
    kind: Literal["property", "array", "object", "method", "variable"]
    description: str | None = None
    source_node: str | None = None
    detail: str | None = None
    insert_text: str | None = None
    children: list[SchemaSuggestion] | None = None


def format_type_label(prop: SchemaProperty) -> str:
    label = " | ".join(prop.type) if isinstance(prop.type, list) else prop.type
    if prop.format:
        return f"{label} ({prop.format})"
    if label == "array" and prop.items:
        item_type = prop.items.type
        item_label = " | ".join(item_type) if isinstance(item_type, list) else item_type
        return f"{item_label}[]"
    return label


def schema_to_suggestions(
    schema: DataSchema,
    prefix: str = "$json",
    source_node: str | None = None,
) -> list[SchemaSuggestion]:
    """Convert a schema to autocomplete suggestions rooted at ``prefix``."""
    suggestions = []
    for key, prop in schema.properties.items():
        path = f"{prefix}.{key}"
        kind = prop.primary_type
        suggestion = SchemaSuggestion(
            path=path,
            label=key,
            type=prop.type,
            description=prop.description,
            source_node=source_node,
            kind="object" if kind == "object" else "array" if kind == "array" else "property",
            detail=format_type_label(prop),
            insert_text=path,
        )
        if kind == "object" and prop.properties:
            suggestion.children = schema_to_suggestions(
                DataSchema(properties=prop.properties), path, source_node
            )
        if (
            kind == "array"
            and prop.items is not None
            and prop.items.primary_type == "object"
            and prop.items.properties
        ):
            suggestion.children = schema_to_suggestions(
                DataSchema(properties=prop.items.properties), f"{path}[0]", source_node
            )
        suggestions.append(suggestion)
    return suggestions


# =============================================================================
# Validation
# =============================================================================

_JSON_SCHEMA_FORMATS = {"datetime": "date-time", "url": "uri"}


def _property_to_json_schema(prop: SchemaProperty) -> dict[str, Any]:
    out: dict[str, Any] = {}
    types = [t for t in (prop.type if isinstance(prop.type, list) else [prop.type]) if t != "any"]
    if types:
        out["type"] = types[0] if len(types) == 1 else types
    if prop.format:
        out["format"] = _JSON_SCHEMA_FORMATS.get(prop.format, prop.format)
    for field_name, key in (
        ("minimum", "minimum"),
        ("maximum", "maximum"),
        ("min_length", "minLength"),
        ("max_length", "maxLength"),
        ("pattern", "pattern"),
        ("enum", "enum"),
    ):
        value = getattr(prop, field_name)
        if value is not None:
            out[key] = value
    if prop.has("const"):
        out["const"] = prop.const
    if prop.items is not None:
        out["items"] = _property_to_json_schema(prop.items)
    if prop.properties:
        out["properties"] = {k: _property_to_json_schema(v) for k, v in prop.properties.items()}
        required = list(prop.required_properties or [])
        required += [k for k, v in prop.properties.items() if v.required and k not in required]
        if required:
            out["required"] = required
    if isinstance(prop.additional_properties, SchemaProperty):
        out["additionalProperties"] = _property_to_json_schema(prop.additional_properties)
    elif prop.additional_properties is not None:
        out["additionalProperties"] = prop.additional_properties
    for field_name, key in (("one_of", "oneOf"), ("any_of", "anyOf"), ("all_of", "allOf")):
        variants = getattr(prop, field_name)
        if variants:
            out[key] = [_property_to_json_schema(v) for v in variants]
    return out


def to_json_schema(schema: DataSchema) -> dict[str, Any]:
    """Translate a DataSchema into a JSON Schema (draft 7) document.

    Unknown root properties are rejected unless the schema allows them.
    """
    required = list(schema.required or [])
    required += [k for k, v in schema.properties.items() if v.required and k not in required]
    out: dict[str, Any] = {
        "type": "object",
        "properties": {k: _property_to_json_schema(v) for k, v in schema.properties.items()},
    }
    if required:
        out["required"] = required
    if isinstance(schema.additional_properties, SchemaProperty):
        out["additionalProperties"] = _property_to_json_schema(schema.additional_properties)
    else:
        out["additionalProperties"] = bool(schema.additional_properties)
    return out


def validate_against_schema(data: Any, schema: DataSchema) -> tuple[bool, list[str]]:
    """Validate sample data against a schema.

    Returns:
        (valid, errors) where errors are ``"<path>: <message>"`` strings
    """
    validator = Draft7Validator(to_json_schema(schema))
    errors = []
    for error in sorted(validator.iter_errors(data), key=lambda e: [str(p) for p in e.absolute_path]):
        location = ".".join(str(p) for p in error.absolute_path) or "(root)"
        errors.append(f"{location}: {error.message}")
    return not errors, errors
