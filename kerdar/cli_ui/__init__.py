"""CLI UI components for terminal rendering of workflows.

This package provides rich terminal output for:
- Workflow graphs laid out by topological level
- Node type catalog listings
- Simulation status tables
"""

from kerdar.cli_ui.graph_renderer import (
    NodeTypeTableRenderer,
    StatusTableRenderer,
    TerminalGraphRenderer,
)

__all__ = [
    "TerminalGraphRenderer",
    "StatusTableRenderer",
    "NodeTypeTableRenderer",
]
