"""Terminal rendering for workflows, node catalogs and simulation runs.

All user-controlled strings (node names, ids, messages) are escaped before
being embedded in Rich markup.
"""

from __future__ import annotations

import json
from collections.abc import Iterable
from typing import Any

from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.tree import Tree

from kerdar.core.catalog import NodeTypeCatalog, NodeTypeDefinition
from kerdar.core.models import Edge, ExecutionStatus, Node, NodeCategory, Workflow
from kerdar.core.schema import SchemaSuggestion
from kerdar.core.simulator import SimulationResult


class TerminalGraphRenderer:
    """
    Renders workflow graphs in the terminal.

    render_graph() shows topological levels only; render_as_tree() shows the
    actual edges (with their output handle when it is not the default port).
    """

    # Category symbols and colors
    CATEGORY_STYLES = {
        NodeCategory.TRIGGER: ("[T]", "green"),
        NodeCategory.ACTION: ("[A]", "cyan"),
        NodeCategory.LOGIC: ("[?]", "magenta"),
        NodeCategory.DATA: ("[D]", "blue"),
        NodeCategory.INTEGRATION: ("[I]", "white"),
        NodeCategory.AI: ("[*]", "bright_magenta"),
        NodeCategory.DATABASE: ("[S]", "yellow"),
        NodeCategory.COMMUNICATION: ("[C]", "bright_cyan"),
        NodeCategory.CUSTOM: ("[ ]", "white"),
    }

    # Keyed by status string so plain strings and enums both work
    STATUS_COLORS = {
        "pending": "dim",
        "running": "blue bold",
        "success": "green",
        "error": "red bold",
        "skipped": "dim strikethrough",
    }

    STATUS_INDICATORS = {"success": " ✓", "error": " ✗", "running": " ⟳", "skipped": " ⊘"}

    @staticmethod
    def _normalize_status(status: ExecutionStatus | str | None) -> str:
        if isinstance(status, ExecutionStatus):
            return status.value
        return str(status) if status else "pending"

    def __init__(self, console: Console | None = None, catalog: NodeTypeCatalog | None = None):
        self.console = console or Console()
        self.catalog = catalog

    def _style(self, node: Node) -> tuple[str, str]:
        node_type = self.catalog.get_node_type(node.type) if self.catalog else None
        if node_type is None:
            return ("[!]", "red") if self.catalog else ("[ ]", "white")
        return self.CATEGORY_STYLES.get(node_type.category, ("[ ]", "white"))

    def _node_text(self, node: Node, statuses: dict[str, Any] | None) -> str:
        symbol, color = self._style(node)
        safe_name = escape(node.name or node.id)
        status = self._normalize_status(statuses.get(node.id)) if statuses else None
        if node.disabled:
            safe_name += " (disabled)"
        if status and status != "pending":
            status_color = self.STATUS_COLORS.get(status, "white")
            indicator = self.STATUS_INDICATORS.get(status, "")
            return f"[{status_color}]{symbol} {safe_name}{indicator}[/]"
        return f"[{color}]{symbol} {safe_name}[/]"

    def render_graph(
        self,
        workflow: Workflow,
        statuses: dict[str, ExecutionStatus | str] | None = None,
    ) -> str:
        """
        Render workflow nodes grouped by topological level.

        Args:
            workflow: The workflow to render
            statuses: Optional dict of node_id -> current status

        Returns:
            Rich markup, one line per level
        """
        node_map = {n.id: n for n in workflow.nodes}
        levels = workflow.analyze_levels()
        if not levels and workflow.nodes:
            # Cyclic document: no meaningful levels
            levels = [[n.id for n in workflow.nodes]]

        lines = []
        for level_idx, level in enumerate(levels):
            level_nodes = [
                self._node_text(node_map[node_id], statuses) for node_id in level if node_id in node_map
            ]
            lines.append("  |  ".join(level_nodes))
            if level_idx < len(levels) - 1:
                lines.append("  " + "  |  " * len(level_nodes))
                lines.append("  " + "  v  " * len(level_nodes))
        return "\n".join(lines)

    def render_as_tree(
        self,
        workflow: Workflow,
        statuses: dict[str, ExecutionStatus | str] | None = None,
        max_depth: int = 50,
    ) -> Tree:
        """Render workflow as a Rich Tree rooted at its start nodes."""
        tree = Tree(f"[bold]{escape(workflow.name)}[/] (v{escape(workflow.version)})")
        node_map = {n.id: n for n in workflow.nodes}
        edge_map: dict[str, list[Edge]] = {n.id: [] for n in workflow.nodes}
        for edge in workflow.edges:
            if edge.source in edge_map:
                edge_map[edge.source].append(edge)

        start_nodes = workflow.get_start_nodes()
        if not start_nodes:
            tree.add("[red]Error: no start node found[/]")
            return tree

        for start in start_nodes:
            self._add_node_to_tree(tree, start, statuses, node_map, edge_map, set(), 0, max_depth)
        return tree

    def _add_node_to_tree(
        self,
        parent: Tree,
        node: Node,
        statuses: dict[str, Any] | None,
        node_map: dict[str, Node],
        edge_map: dict[str, list[Edge]],
        visited: set[str],
        depth: int,
        max_depth: int,
    ) -> None:
        if depth >= max_depth:
            parent.add("[dim]... (max depth reached)[/]")
            return
        if node.id in visited:
            parent.add(f"[dim]↩ {escape(node.id)} (loop)[/]")
            return
        visited.add(node.id)

        branch = parent.add(self._node_text(node, statuses))
        for edge in edge_map.get(node.id, []):
            child = node_map.get(edge.target)
            if child is None:
                continue
            target_branch = branch
            if edge.output_index:
                target_branch = branch.add(f"[dim](output {edge.output_index})[/]")
            self._add_node_to_tree(
                target_branch, child, statuses, node_map, edge_map, visited.copy(), depth + 1, max_depth
            )


class StatusTableRenderer:
    """Renders a simulation run as a Rich table."""

    STATUS_TEXT = {
        "success": "[green]✓ Success[/]",
        "error": "[red]✗ Error[/]",
        "running": "[blue]⟳ Running[/]",
        "skipped": "[dim]⊘ Skipped[/]",
        "pending": "[dim]○ Pending[/]",
    }

    def __init__(self, console: Console | None = None):
        self.console = console or Console()

    def render_status_table(self, workflow: Workflow, result: SimulationResult) -> Table:
        """One row per workflow node; nodes that never ran show as pending."""
        table = Table(title=f"Simulation: {escape(result.id)} ({escape(result.status.value)})")
        table.add_column("Node", style="cyan")
        table.add_column("Type", style="magenta")
        table.add_column("Status", justify="center")
        table.add_column("Items", justify="right")
        table.add_column("Time (ms)", justify="right")
        table.add_column("Output", max_width=40)

        for node in workflow.nodes:
            node_result = result.get_node_result(node.id)
            status = node_result.status.value if node_result else "pending"
            if node_result is None:
                items, elapsed, output = "", "", ""
            elif node_result.error is not None:
                items, elapsed = "", f"{node_result.execution_time:.0f}"
                output = node_result.error.message
            else:
                first_batch = node_result.output_data[0] if node_result.output_data else []
                items = str(len(first_batch))
                elapsed = f"{node_result.execution_time:.0f}"
                output = json.dumps(node_result.mock_data, default=str) if node_result.mock_data else ""

            output_str = escape(output)
            if len(output_str) > 40:
                output_str = output_str[:37] + "..."

            table.add_row(
                escape(node.name or node.id),
                escape(node.type),
                self.STATUS_TEXT.get(status, status),
                items,
                elapsed,
                output_str,
            )
        return table


class NodeTypeTableRenderer:
    """Renders node type listings and expression suggestions."""

    def render_node_types(self, node_types: Iterable[NodeTypeDefinition]) -> Table:
        table = Table(title="Node Types")
        table.add_column("Type", style="cyan")
        table.add_column("Name", style="white")
        table.add_column("Category", style="magenta")
        table.add_column("Schema", justify="center")
        table.add_column("Description", max_width=50)

        for node_type in node_types:
            if node_type.output_schema is None:
                schema = "-"
            elif callable(node_type.output_schema):
                schema = "dynamic"
            else:
                schema = "static"
            table.add_row(
                escape(node_type.type),
                escape(node_type.display_name),
                node_type.category.value,
                schema,
                escape(node_type.description),
            )
        return table

    def render_suggestions(self, suggestions: Iterable[SchemaSuggestion], title: str = "Expressions") -> Table:
        table = Table(title=escape(title))
        table.add_column("Expression", style="cyan")
        table.add_column("Type", style="magenta")
        table.add_column("Source", style="green")
        table.add_column("Description", max_width=50)

        for suggestion in _flatten(suggestions):
            table.add_row(
                escape(suggestion.path),
                escape(suggestion.detail or str(suggestion.type)),
                escape(suggestion.source_node or ""),
                escape(suggestion.description or ""),
            )
        return table


def _flatten(suggestions: Iterable[SchemaSuggestion]) -> list[SchemaSuggestion]:
    flat = []
    for suggestion in suggestions:
        flat.append(suggestion)
        if suggestion.children:
            flat.extend(_flatten(suggestion.children))
    return flat
