"""CLI entry point for the Kerdar workflow engine.

Commands:
- kerdar validate: Check a workflow document's graph structure
- kerdar simulate: Simulate a workflow with mock data
- kerdar context: Show the expressions available to a node
- kerdar nodes: List node types in the catalog
- kerdar version: Show version information
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

import click
import pydantic
import yaml
from rich.console import Console
from rich.markup import escape

from kerdar import __version__
from kerdar.cli_ui.graph_renderer import (
    NodeTypeTableRenderer,
    StatusTableRenderer,
    TerminalGraphRenderer,
)
from kerdar.core.builtin_nodes import create_default_catalog
from kerdar.core.catalog import CatalogError, NodeTypeCatalog
from kerdar.core.config import ConfigError, EngineConfig, load_config
from kerdar.core.graph_store import GraphStore
from kerdar.core.models import NodeCategory, Workflow
from kerdar.core.schema_context import SchemaResolver
from kerdar.core.simulator import SimulationError, SimulationOptions, simulate_workflow

console = Console()


class EngineContext:
    """Configuration and catalog shared by all commands."""

    def __init__(self, config: EngineConfig, catalog: NodeTypeCatalog):
        self.config = config
        self.catalog = catalog


def _build_context(config_path: str | None) -> EngineContext:
    config = load_config(config_path)
    catalog = create_default_catalog()
    for path in config.catalog.node_type_paths:
        catalog.load_node_types(path)
    return EngineContext(config, catalog)


def load_workflow_file(workflow_file: str) -> Workflow:
    """Load a workflow document from JSON or YAML, exiting with a message on error."""
    path = Path(workflow_file)
    try:
        with open(path, encoding="utf-8") as f:
            if path.suffix == ".json":
                data = json.load(f)
            else:
                data = yaml.safe_load(f)
    except json.JSONDecodeError as e:
        console.print(f"[red]Error parsing JSON file '{escape(workflow_file)}':[/red]")
        console.print(f"  {escape(str(e))}")
        sys.exit(1)
    except yaml.YAMLError as e:
        console.print(f"[red]Error parsing YAML file '{escape(workflow_file)}':[/red]")
        console.print(f"  {escape(str(e))}")
        sys.exit(1)

    if not isinstance(data, dict):
        console.print(
            f"[red]Error: Invalid content in '{escape(workflow_file)}'. "
            f"Expected a mapping, got {type(data).__name__}.[/red]"
        )
        sys.exit(1)

    try:
        return Workflow.from_dict(data)
    except pydantic.ValidationError as e:
        console.print("[red]Error validating workflow document:[/red]")
        for err in e.errors():
            loc = ".".join(str(x) for x in err["loc"])
            console.print(f"  - {escape(loc)}: {escape(err['msg'])}")
        sys.exit(1)


def _parse_assignments(values: tuple[str, ...], option: str) -> dict[str, str]:
    parsed = {}
    for value in values:
        node_id, sep, rest = value.partition("=")
        if not sep or not node_id:
            raise click.BadParameter(f"expected NODE=VALUE, got '{value}'", param_hint=option)
        parsed[node_id] = rest
    return parsed


def _parse_overrides(values: tuple[str, ...]) -> dict[str, dict[str, Any]]:
    overrides = {}
    for node_id, raw in _parse_assignments(values, "--override").items():
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as e:
            raise click.BadParameter(f"invalid JSON for '{node_id}': {e}", param_hint="--override") from e
        if not isinstance(payload, dict):
            raise click.BadParameter(f"override for '{node_id}' must be a JSON object", param_hint="--override")
        overrides[node_id] = payload
    return overrides


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False),
    help="Engine config file (default: .kerdar/config.yaml, then ~/.kerdar/config.yaml)",
)
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warning", "error"], case_sensitive=False),
    default="warning",
    show_default=True,
    help="Logging verbosity (written to stderr)",
)
@click.pass_context
def main(ctx: click.Context, config_path: str | None, log_level: str) -> None:
    """Kerdar - workflow graph engine.

    Validate, inspect and simulate workflow documents without running any
    real side effects.
    """
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="[%(name)s] %(levelname)s: %(message)s",
        stream=sys.stderr,
    )
    try:
        ctx.obj = _build_context(config_path)
    except (ConfigError, CatalogError) as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        sys.exit(1)


@main.command()
@click.argument("workflow_file", type=click.Path(exists=True, dir_okay=False))
@click.pass_obj
def validate(engine: EngineContext, workflow_file: str) -> None:
    """Check a workflow's graph structure."""
    workflow = load_workflow_file(workflow_file)
    renderer = TerminalGraphRenderer(console, engine.catalog)

    console.print(renderer.render_as_tree(workflow))
    console.print()
    console.print(f"[bold]Nodes:[/] {len(workflow.nodes)}")
    console.print(f"[bold]Edges:[/] {len(workflow.edges)}")

    errors = workflow.validate_graph()
    unknown = sorted({n.type for n in workflow.nodes if n.type not in engine.catalog})
    for type_key in unknown:
        console.print(f"[yellow]Warning: unknown node type '{escape(type_key)}'[/yellow]")

    if errors:
        console.print("\n[red bold]Validation Errors:[/]")
        for error in errors:
            console.print(f"  [red]• {escape(error)}[/]")
        sys.exit(1)
    console.print("\n[green]✓ Graph is valid[/]")


@main.command()
@click.argument("workflow_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--delay", type=float, default=None, help="Seconds between nodes (default from config)")
@click.option("--override", "overrides", multiple=True, metavar="NODE=JSON", help="Mock output for a node")
@click.option("--fail", "failures", multiple=True, metavar="NODE=MSG", help="Inject an error into a node")
@click.option("--json", "as_json", is_flag=True, help="Print the simulation result as JSON")
@click.pass_obj
def simulate(
    engine: EngineContext,
    workflow_file: str,
    delay: float | None,
    overrides: tuple[str, ...],
    failures: tuple[str, ...],
    as_json: bool,
) -> None:
    """Simulate a workflow with mock data."""
    workflow = load_workflow_file(workflow_file)
    options = SimulationOptions(
        node_delay=delay if delay is not None else engine.config.simulation.node_delay,
        mock_data_overrides=_parse_overrides(overrides),
        simulate_errors=_parse_assignments(failures, "--fail"),
    )

    try:
        result = asyncio.run(simulate_workflow(workflow, engine.catalog, options))
    except SimulationError as e:
        console.print(f"[red]Simulation failed:[/red] {escape(str(e))}")
        sys.exit(1)

    if as_json:
        click.echo(result.model_dump_json(indent=2))
    else:
        console.print(StatusTableRenderer(console).render_status_table(workflow, result))
        if result.last_node_executed:
            console.print(f"[bold]Last node:[/] {escape(result.last_node_executed)}")

    if result.status.value == "error":
        sys.exit(1)


@main.command()
@click.argument("workflow_file", type=click.Path(exists=True, dir_okay=False))
@click.argument("node_id")
@click.option("--mock", "show_mock", is_flag=True, help="Also print mock input data")
@click.pass_obj
def context(engine: EngineContext, workflow_file: str, node_id: str, show_mock: bool) -> None:
    """Show the expressions available to a node."""
    workflow = load_workflow_file(workflow_file)
    store = GraphStore(catalog=engine.catalog, config=engine.config, workflow=workflow)
    node = store.get_node(node_id)
    if node is None:
        console.print(f"[red]Error: node '{escape(node_id)}' not found[/red]")
        sys.exit(1)

    resolver = SchemaResolver(store, engine.catalog)
    schema_context = resolver.get_schema_context(node_id)
    variables = resolver.get_expression_variables(node_id)
    renderer = NodeTypeTableRenderer()

    console.print(f"[bold]{escape(node.name)}[/] ({escape(node.type)})")
    console.print(f"Inputs: {len(schema_context.input_schemas)}, accessible nodes: {len(schema_context.accessible_schemas)}")

    if variables["json"]:
        console.print(renderer.render_suggestions(variables["json"], "$json"))
    if variables["input"]:
        console.print(renderer.render_suggestions(variables["input"], "$input"))
    for name, suggestions in variables["nodes"].items():
        console.print(renderer.render_suggestions(suggestions, f'$node["{name}"]'))
    console.print(renderer.render_suggestions(variables["built_in"], "Built-in"))

    if show_mock:
        console.print_json(json.dumps(resolver.get_mock_data(node_id), default=str))


@main.command()
@click.option(
    "--category",
    type=click.Choice([c.value for c in NodeCategory], case_sensitive=False),
    help="Only list this category",
)
@click.option("--search", "query", help="Keyword search over names, descriptions and groups")
@click.pass_obj
def nodes(engine: EngineContext, category: str | None, query: str | None) -> None:
    """List node types in the catalog."""
    if query:
        node_types = engine.catalog.search_node_types(query)
    else:
        node_types = engine.catalog.get_all_node_types()
    if category:
        node_types = [t for t in node_types if t.category.value == category.lower()]

    if not node_types:
        console.print("[yellow]No matching node types[/yellow]")
        return
    console.print(NodeTypeTableRenderer().render_node_types(node_types))


@main.command()
def version() -> None:
    """Show version information."""
    console.print(f"Kerdar v{__version__}")
    console.print("Workflow graph engine")


if __name__ == "__main__":
    main()
