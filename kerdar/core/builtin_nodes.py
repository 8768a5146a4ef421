"""Standard node types shipped with the engine.

Only the parts the engine consumes are declared here: category, parameters
with defaults, and output schema. Parameter-dependent schemas are plain
functions of ``(params, node)``.
"""

from __future__ import annotations

from typing import Any

from kerdar.core.catalog import NodeDefaults, NodeProperty, NodeTypeCatalog, NodeTypeDefinition
from kerdar.core.models import NodeCategory
from kerdar.core.schema import (
    DataSchema,
    SchemaProperty,
    any_property,
    array_property,
    boolean_property,
    create_schema,
    email_property,
    integer_property,
    number_property,
    object_property,
    string_property,
    timestamp_property,
)

SET_NODE_TYPE = "set"


# =============================================================================
# Output schemas
# =============================================================================

manual_trigger_schema = create_schema(
    {
        "timestamp": timestamp_property,
        "executionMode": string_property(enum=["manual"], example="manual"),
    },
    display_name="Manual Trigger",
)

webhook_output_schema = create_schema(
    {
        "headers": object_property(
            {},
            display_name="Headers",
            additional_properties=string_property(),
            example={"content-type": "application/json", "user-agent": "Webhook-Client/1.0"},
        ),
        "params": object_property({}, display_name="URL Parameters", additional_properties=string_property()),
        "query": object_property(
            {},
            display_name="Query Parameters",
            additional_properties=any_property(),
            example={"page": "1", "limit": "10"},
        ),
        "body": any_property(display_name="Body", example={"message": "Hello", "data": {"id": 1}}),
        "webhookUrl": string_property(
            display_name="Webhook URL",
            format="url",
            example="https://your-domain.com/webhook/my-endpoint",
        ),
        "executionMode": string_property(enum=["webhook", "manual"], example="webhook"),
    },
    display_name="Webhook Data",
    description="Data received from incoming webhook request",
)

schedule_trigger_schema = create_schema(
    {
        "timestamp": timestamp_property,
        "scheduledTime": timestamp_property,
        "timezone": string_property(example="UTC"),
    },
    display_name="Schedule Trigger",
)


def http_request_schema(params: dict[str, Any], node=None) -> DataSchema:
    """Full responses expose status and headers; simple ones only the body."""
    options = params.get("options") or {}
    if options.get("fullResponse"):
        return create_schema(
            {
                "data": any_property(display_name="Response Data", example={"id": 1, "name": "Example"}),
                "statusCode": integer_property(display_name="Status Code", example=200, minimum=100, maximum=599),
                "headers": object_property(
                    {},
                    display_name="Response Headers",
                    additional_properties=string_property(),
                    example={"content-type": "application/json", "x-request-id": "12345"},
                ),
            },
            display_name="HTTP Response (Full)",
        )
    return create_schema(
        {},
        display_name="HTTP Response",
        additional_properties=any_property(description="API response fields vary by endpoint"),
    )


_SET_FIELD_TYPES = {
    "string": ("string", "stringValue"),
    "number": ("number", "numberValue"),
    "boolean": ("boolean", "booleanValue"),
    "json": ("object", "jsonValue"),
}


def set_node_schema(params: dict[str, Any], node=None) -> DataSchema:
    """One property per configured field, with the configured value as example."""
    properties = {}
    for field in (params.get("fields") or {}).get("values", []):
        name = field.get("name")
        if not name:
            continue
        prop_type, value_key = _SET_FIELD_TYPES.get(field.get("type", "string"), ("string", "stringValue"))
        options: dict[str, Any] = {"type": prop_type}
        if value_key in field:
            options["example"] = field[value_key]
        properties[name] = SchemaProperty(**options)
    return create_schema(properties, display_name="Set Fields")


def redis_schema(params: dict[str, Any], node=None) -> DataSchema:
    operation = params.get("operation", "get")
    if operation == "set":
        return create_schema(
            {"key": string_property(example="cache:key"), "success": boolean_property(example=True)}
        )
    if operation == "keys":
        return create_schema({"keys": array_property(string_property(example="cache:key"))})
    if operation == "incr":
        return create_schema({"key": string_property(example="counter"), "value": integer_property(example=1)})
    return create_schema({"key": string_property(example="cache:key"), "value": any_property(example="value")})


ai_agent_schema = create_schema(
    {
        "output": string_property(display_name="Response", example="Here is the summary you asked for."),
        "model": string_property(example="gpt-4o-mini"),
        "usage": object_property(
            {
                "promptTokens": integer_property(example=120),
                "completionTokens": integer_property(example=48),
            }
        ),
    },
    display_name="AI Agent Output",
)

send_email_schema = create_schema(
    {
        "messageId": string_property(example="<20240115103000.1234@example.com>"),
        "accepted": array_property(email_property),
        "rejected": array_property(email_property, example=[]),
    },
    display_name="Email Result",
)

slack_schema = create_schema(
    {
        "ok": boolean_property(example=True),
        "channel": string_property(example="C0123456789"),
        "ts": string_property(example="1705314600.000100"),
    },
    display_name="Slack Message",
)

date_time_schema = create_schema(
    {
        "formattedDate": string_property(format="datetime"),
        "epoch": number_property(example=1705314600),
    }
)


# =============================================================================
# Definitions
# =============================================================================


def _props(*entries: tuple[str, Any]) -> list[NodeProperty]:
    return [NodeProperty(name=name, default=default) for name, default in entries]


BUILTIN_NODE_TYPES: list[NodeTypeDefinition] = [
    NodeTypeDefinition(
        type="manual-trigger",
        display_name="Manual Trigger",
        description="Starts the workflow when run manually",
        category=NodeCategory.TRIGGER,
        group=["trigger"],
        defaults=NodeDefaults(name="When clicking Execute"),
        output_schema=manual_trigger_schema,
    ),
    NodeTypeDefinition(
        type="webhook-trigger",
        display_name="Webhook",
        description="Starts the workflow when a webhook is called",
        category=NodeCategory.TRIGGER,
        group=["trigger", "http"],
        properties=_props(("httpMethod", "POST"), ("path", "")),
        output_schema=webhook_output_schema,
    ),
    NodeTypeDefinition(
        type="schedule-trigger",
        display_name="Schedule",
        description="Starts the workflow on a schedule",
        category=NodeCategory.TRIGGER,
        group=["trigger", "cron"],
        properties=_props(("interval", "hours"), ("timezone", "UTC")),
        output_schema=schedule_trigger_schema,
    ),
    NodeTypeDefinition(
        type="http-request",
        display_name="HTTP Request",
        description="Make HTTP requests to any URL",
        category=NodeCategory.ACTION,
        group=["action", "http", "api"],
        properties=_props(("method", "GET"), ("url", ""), ("options", {})),
        output_schema=http_request_schema,
    ),
    NodeTypeDefinition(
        type=SET_NODE_TYPE,
        display_name="Set",
        description="Set values in your data",
        category=NodeCategory.DATA,
        group=["data", "transform", "set"],
        properties=_props(("mode", "manual"), ("keepOnlySet", False), ("fields", {"values": []})),
        output_schema=set_node_schema,
    ),
    NodeTypeDefinition(
        type="filter",
        display_name="Filter",
        description="Keep only items matching conditions",
        category=NodeCategory.DATA,
        group=["data", "transform"],
        properties=_props(("conditions", [])),
    ),
    NodeTypeDefinition(
        type="date-time",
        display_name="Date & Time",
        description="Format and convert dates",
        category=NodeCategory.DATA,
        group=["data", "transform"],
        properties=_props(("format", "iso")),
        output_schema=date_time_schema,
    ),
    NodeTypeDefinition(
        type="no-op",
        display_name="No Operation",
        description="Pass data through unchanged",
        category=NodeCategory.DATA,
        group=["data"],
    ),
    NodeTypeDefinition(
        type="if",
        display_name="IF",
        description="Route items based on a condition",
        category=NodeCategory.LOGIC,
        group=["logic", "flow"],
        properties=_props(("conditions", []), ("combineOperation", "all")),
    ),
    NodeTypeDefinition(
        type="merge",
        display_name="Merge",
        description="Merge data from multiple inputs",
        category=NodeCategory.LOGIC,
        group=["logic", "flow"],
        properties=_props(("mode", "append")),
    ),
    NodeTypeDefinition(
        type="code",
        display_name="Code",
        description="Run custom JavaScript or Python code",
        category=NodeCategory.CUSTOM,
        group=["custom", "code"],
        properties=_props(("language", "javaScript"), ("code", "")),
    ),
    NodeTypeDefinition(
        type="ai-agent",
        display_name="AI Agent",
        description="Generate text with a language model",
        category=NodeCategory.AI,
        group=["ai", "llm"],
        properties=_props(("prompt", ""), ("model", "gpt-4o-mini")),
        output_schema=ai_agent_schema,
    ),
    NodeTypeDefinition(
        type="redis",
        display_name="Redis",
        description="Get, set and list keys in Redis",
        category=NodeCategory.DATABASE,
        group=["database", "cache"],
        properties=_props(("operation", "get"), ("key", "")),
        output_schema=redis_schema,
    ),
    NodeTypeDefinition(
        type="send-email",
        display_name="Send Email",
        description="Send an email over SMTP",
        category=NodeCategory.COMMUNICATION,
        group=["communication", "email"],
        properties=_props(("toEmail", ""), ("subject", ""), ("text", "")),
        output_schema=send_email_schema,
    ),
    NodeTypeDefinition(
        type="slack",
        display_name="Slack",
        description="Post messages to Slack channels",
        category=NodeCategory.COMMUNICATION,
        group=["communication", "chat"],
        properties=_props(("channel", ""), ("text", "")),
        output_schema=slack_schema,
    ),
]


def create_default_catalog() -> NodeTypeCatalog:
    """Catalog with the standard node types registered."""
    return NodeTypeCatalog(BUILTIN_NODE_TYPES)
