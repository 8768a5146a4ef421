"""Mutable workflow graph with structural invariants, undo/redo and clipboard.

GraphStore is the single writer of a workflow document. Every editing
operation:
- is a no-op (never an exception) for unknown node or edge ids
- keeps the edge set acyclic and free of self loops and duplicate connections
- pushes exactly one history entry when it changes the node/edge arrays,
  and none when it changes nothing

Position-only moves and selection/viewport changes never touch history or
the graph ``version`` token; the drag lifecycle (``set_dragging``) pushes one
entry when a drag ends.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

import networkx as nx

from kerdar.core.catalog import NodeTypeCatalog
from kerdar.core.config import EngineConfig
from kerdar.core.history import HistoryEntry, UndoHistory
from kerdar.core.models import Edge, Node, Position, Viewport, Workflow
from kerdar.core.utils import edge_id as new_edge_id
from kerdar.core.utils import node_id as new_node_id
from kerdar.core.utils import utc_now_iso

logger = logging.getLogger(__name__)

MIN_ZOOM = 0.1
MAX_ZOOM = 4.0

# Nominal node footprint used by fit_view
NODE_WIDTH = 220
NODE_HEIGHT = 100


@dataclass(frozen=True)
class Clipboard:
    """Deep snapshot of copied nodes and the edges between them."""

    nodes: tuple[Node, ...] = ()
    edges: tuple[Edge, ...] = ()


def _as_position(position: Position | Mapping[str, float]) -> Position:
    return position if isinstance(position, Position) else Position.model_validate(position)


class GraphStore:
    """Owner of the canonical workflow graph.

    Args:
        catalog: Node type catalog used by ``add_node_of_type``
        config: Engine configuration (history bound, duplicate/paste offsets)
        workflow: Initial document; an empty workflow when omitted
    """

    def __init__(
        self,
        catalog: NodeTypeCatalog | None = None,
        config: EngineConfig | None = None,
        workflow: Workflow | None = None,
    ):
        self.catalog = catalog
        self.config = config or EngineConfig()
        self._history = UndoHistory(self.config.history.max_entries)
        self._version = 0
        self._workflow = Workflow.new()
        self._selected_node_ids: list[str] = []
        self._selected_edge_ids: list[str] = []
        self._viewport = Viewport()
        self._clipboard: Clipboard | None = None
        self._dirty = False
        self._dragging = False
        self.set_workflow(workflow if workflow is not None else Workflow.new())

    # ========== State ==========

    @property
    def workflow(self) -> Workflow:
        return self._workflow

    @property
    def nodes(self) -> list[Node]:
        return self._workflow.nodes

    @property
    def edges(self) -> list[Edge]:
        return self._workflow.edges

    @property
    def version(self) -> int:
        """Token that changes whenever the node or edge arrays change."""
        return self._version

    @property
    def viewport(self) -> Viewport:
        return self._viewport

    @property
    def clipboard(self) -> Clipboard | None:
        return self._clipboard

    @property
    def history(self) -> UndoHistory:
        return self._history

    @property
    def is_dirty(self) -> bool:
        return self._dirty

    @property
    def is_dragging(self) -> bool:
        return self._dragging

    def set_dirty(self, is_dirty: bool) -> None:
        self._dirty = is_dirty

    def to_json(self, indent: int | None = None) -> str:
        return self._workflow.to_json(indent=indent)

    def _graph_changed(self) -> None:
        self._version += 1
        self._dirty = True

    def _commit(self) -> None:
        self._graph_changed()
        self.push_history()

    def _node_index(self, node_id: str) -> int | None:
        return next((i for i, n in enumerate(self.nodes) if n.id == node_id), None)

    def _edge_index(self, edge_id: str) -> int | None:
        return next((i for i, e in enumerate(self.edges) if e.id == edge_id), None)

    # ========== Workflow ==========

    def set_workflow(self, workflow: Workflow) -> None:
        """Replace the document; selection and history start over."""
        self._workflow = workflow
        self._selected_node_ids = []
        self._selected_edge_ids = []
        self._version += 1
        self._dirty = False
        self.clear_history()
        self.push_history()

    def update_workflow(self, **fields: Any) -> None:
        """Update document-level fields and touch ``metadata.updatedAt``."""
        if not fields:
            return
        arrays_changed = "nodes" in fields or "edges" in fields
        for key, value in fields.items():
            setattr(self._workflow, key, value)

        self._workflow.metadata.updated_at = utc_now_iso()
        self._dirty = True

        if arrays_changed:
            self._commit()

    def reset_workflow(self) -> None:
        self.set_workflow(Workflow.new())

    # ========== Nodes ==========

    def add_node(self, node: Node | Mapping[str, Any]) -> Node:
        """Insert a node, generating an id when it has none.

        A node whose id is already taken is not inserted; the existing node is
        returned instead.
        """
        if isinstance(node, Node):
            new_node = node.clone()
            if not new_node.id:
                new_node.id = new_node_id()
        else:
            data = dict(node)
            data["id"] = data.get("id") or new_node_id()
            new_node = Node.model_validate(data)

        existing = self.get_node(new_node.id)
        if existing is not None:
            logger.warning(f"Node '{new_node.id}' already exists, not adding")
            return existing

        self.nodes.append(new_node)
        self._commit()
        logger.debug(f"Added node {new_node.id} ({new_node.type})")
        return new_node

    def add_node_of_type(
        self,
        type_key: str,
        position: Position | Mapping[str, float] | None = None,
        overrides: dict[str, Any] | None = None,
    ) -> Node | None:
        """Create a node from the catalog's declared defaults and insert it."""
        if self.catalog is None:
            logger.warning("No node type catalog configured")
            return None
        node = self.catalog.create_node_instance(
            type_key, _as_position(position) if position is not None else None, overrides
        )
        if node is None:
            return None
        return self.add_node(node)

    def update_node(self, node_id: str, **updates: Any) -> None:
        """Apply field updates to a node. The id cannot be changed."""
        index = self._node_index(node_id)
        if index is None:
            return
        current = self.nodes[index]
        updated = current.clone()
        for key, value in updates.items():
            if key == "id":
                continue
            setattr(updated, key, value)
        if updated == current:
            return
        self.nodes[index] = updated
        self._commit()

    def remove_node(self, node_id: str) -> None:
        self.remove_nodes([node_id])

    def remove_nodes(self, node_ids: Iterable[str]) -> None:
        """Remove nodes together with every edge touching them."""
        wanted = set(node_ids)
        doomed = {n.id for n in self.nodes if n.id in wanted}
        if not doomed:
            return

        for doomed_id in doomed:
            self._drop_edges_for_node(doomed_id)
        self._workflow.nodes = [n for n in self.nodes if n.id not in doomed]
        self._selected_node_ids = [i for i in self._selected_node_ids if i not in doomed]
        self._commit()
        logger.debug(f"Removed {len(doomed)} node(s)")

    def duplicate_nodes(self, node_ids: Iterable[str]) -> list[Node]:
        """Clone nodes and their internal edges; the clones become the selection."""
        wanted = set(node_ids)
        originals = [n for n in self.nodes if n.id in wanted]
        if not originals:
            return []

        offset = self.config.editor.duplicate_offset
        id_map: dict[str, str] = {}
        new_nodes = []
        for original in originals:
            clone = original.clone()
            clone.id = new_node_id()
            clone.name = f"{original.name} (copy)"
            clone.position = Position(x=original.position.x + offset.x, y=original.position.y + offset.y)
            id_map[original.id] = clone.id
            new_nodes.append(clone)

        new_edges = []
        for edge in self.edges:
            if edge.source in id_map and edge.target in id_map:
                clone = edge.clone()
                clone.id = new_edge_id()
                clone.source = id_map[edge.source]
                clone.target = id_map[edge.target]
                new_edges.append(clone)

        self.nodes.extend(new_nodes)
        self.edges.extend(new_edges)
        self._selected_node_ids = [n.id for n in new_nodes]
        self._commit()
        return new_nodes

    def move_node(self, node_id: str, position: Position | Mapping[str, float]) -> None:
        """Position-only update; no history entry and no version change."""
        node = self.get_node(node_id)
        if node is not None:
            node.position = _as_position(position)

    def move_nodes(self, updates: Iterable[tuple[str, Position | Mapping[str, float]]]) -> None:
        for moved_id, position in updates:
            self.move_node(moved_id, position)

    def set_node_parameters(self, node_id: str, parameters: dict[str, Any]) -> None:
        self.update_node(node_id, parameters=dict(parameters))

    def set_node_credentials(self, node_id: str, credentials: dict[str, Any] | None) -> None:
        self.update_node(node_id, credentials=credentials)

    def toggle_node_disabled(self, node_id: str) -> None:
        node = self.get_node(node_id)
        if node is not None:
            self.update_node(node_id, disabled=not node.disabled)

    # ========== Edges ==========

    def _connection_error(
        self,
        source: str,
        source_handle: str | None,
        target: str,
        target_handle: str | None,
        ignore_edge: str | None = None,
    ) -> str | None:
        """Reason a connection is not allowed, or None when it is."""
        if source == target:
            return "self loop"
        if self.get_node(source) is None or self.get_node(target) is None:
            return "unknown endpoint"
        edges = [e for e in self.edges if e.id != ignore_edge]
        if any(e.connects(source, source_handle, target, target_handle) for e in edges):
            return "duplicate connection"

        G = nx.DiGraph()
        G.add_nodes_from(n.id for n in self.nodes)
        G.add_edges_from((e.source, e.target) for e in edges)
        if nx.has_path(G, target, source):
            return "cycle"
        return None

    def is_valid_connection(
        self,
        source: str,
        source_handle: str | None,
        target: str,
        target_handle: str | None,
    ) -> bool:
        """True if ``add_edge`` would accept this connection."""
        return self._connection_error(source, source_handle, target, target_handle) is None

    def add_edge(self, edge: Edge | Mapping[str, Any]) -> Edge:
        """Insert an edge unless it is a self loop, a duplicate, dangling or closes a cycle.

        A rejected edge is returned as given (with its id filled in) but not
        inserted.
        """
        if isinstance(edge, Edge):
            new_edge = edge.clone()
            if not new_edge.id:
                new_edge.id = new_edge_id()
        else:
            data = dict(edge)
            data["id"] = data.get("id") or new_edge_id()
            new_edge = Edge.model_validate(data)

        reason = self._connection_error(
            new_edge.source, new_edge.source_handle, new_edge.target, new_edge.target_handle
        )
        if reason is None and self.get_edge(new_edge.id) is not None:
            reason = "duplicate edge id"
        if reason is not None:
            logger.warning(f"Rejected edge {new_edge.source} -> {new_edge.target}: {reason}")
            return new_edge

        self.edges.append(new_edge)
        self._commit()
        return new_edge

    def update_edge(self, edge_id: str, **updates: Any) -> None:
        """Apply field updates to an edge; reconnections must keep the graph valid."""
        index = self._edge_index(edge_id)
        if index is None:
            return
        current = self.edges[index]
        updated = current.clone()
        for key, value in updates.items():
            if key == "id":
                continue
            setattr(updated, key, value)
        if updated == current:
            return

        endpoints = (updated.source, updated.source_handle, updated.target, updated.target_handle)
        if endpoints != (current.source, current.source_handle, current.target, current.target_handle):
            reason = self._connection_error(*endpoints, ignore_edge=edge_id)
            if reason is not None:
                logger.warning(f"Rejected update of edge {edge_id}: {reason}")
                return

        self.edges[index] = updated
        self._commit()

    def remove_edge(self, edge_id: str) -> None:
        self.remove_edges([edge_id])

    def remove_edges(self, edge_ids: Iterable[str]) -> None:
        wanted = set(edge_ids)
        doomed = {e.id for e in self.edges if e.id in wanted}
        if not doomed:
            return
        self._workflow.edges = [e for e in self.edges if e.id not in doomed]
        self._selected_edge_ids = [i for i in self._selected_edge_ids if i not in doomed]
        self._commit()

    def _drop_edges_for_node(self, node_id: str) -> bool:
        kept = [e for e in self.edges if e.source != node_id and e.target != node_id]
        if len(kept) == len(self.edges):
            return False
        kept_ids = {e.id for e in kept}
        self._workflow.edges = kept
        self._selected_edge_ids = [i for i in self._selected_edge_ids if i in kept_ids]
        return True

    def remove_edges_for_node(self, node_id: str) -> None:
        """Remove every edge with ``node_id`` as source or target."""
        if self._drop_edges_for_node(node_id):
            self._commit()

    # ========== Selection ==========

    @property
    def selected_node_ids(self) -> list[str]:
        return list(self._selected_node_ids)

    @property
    def selected_edge_ids(self) -> list[str]:
        return list(self._selected_edge_ids)

    @property
    def selected_nodes(self) -> list[Node]:
        return [n for n in self.nodes if n.id in self._selected_node_ids]

    def select_node(self, node_id: str, add_to_selection: bool = False) -> None:
        if self.get_node(node_id) is None:
            return
        if add_to_selection:
            if node_id not in self._selected_node_ids:
                self._selected_node_ids.append(node_id)
        else:
            self._selected_node_ids = [node_id]
            self._selected_edge_ids = []

    def select_nodes(self, node_ids: Iterable[str]) -> None:
        known = {n.id for n in self.nodes}
        self._selected_node_ids = list(dict.fromkeys(i for i in node_ids if i in known))

    def select_edge(self, edge_id: str, add_to_selection: bool = False) -> None:
        if self.get_edge(edge_id) is None:
            return
        if add_to_selection:
            if edge_id not in self._selected_edge_ids:
                self._selected_edge_ids.append(edge_id)
        else:
            self._selected_edge_ids = [edge_id]
            self._selected_node_ids = []

    def select_edges(self, edge_ids: Iterable[str]) -> None:
        known = {e.id for e in self.edges}
        self._selected_edge_ids = list(dict.fromkeys(i for i in edge_ids if i in known))

    def select_all(self) -> None:
        self._selected_node_ids = [n.id for n in self.nodes]
        self._selected_edge_ids = [e.id for e in self.edges]

    def deselect_all(self) -> None:
        self._selected_node_ids = []
        self._selected_edge_ids = []

    def deselect_node(self, node_id: str) -> None:
        self._selected_node_ids = [i for i in self._selected_node_ids if i != node_id]

    def deselect_edge(self, edge_id: str) -> None:
        self._selected_edge_ids = [i for i in self._selected_edge_ids if i != edge_id]

    # ========== Viewport ==========

    def set_viewport(self, viewport: Viewport | Mapping[str, float]) -> None:
        self._viewport = viewport if isinstance(viewport, Viewport) else Viewport.model_validate(viewport)

    def zoom_to(self, zoom: float) -> None:
        self._viewport.zoom = min(max(zoom, MIN_ZOOM), MAX_ZOOM)

    def pan_to(self, x: float, y: float) -> None:
        self._viewport.x = x
        self._viewport.y = y

    def fit_view(self) -> None:
        """Center the viewport on the bounding box of all nodes at zoom 1."""
        if not self.nodes:
            return
        min_x = min(n.position.x for n in self.nodes)
        min_y = min(n.position.y for n in self.nodes)
        max_x = max(n.position.x + NODE_WIDTH for n in self.nodes)
        max_y = max(n.position.y + NODE_HEIGHT for n in self.nodes)
        self._viewport = Viewport(x=-(min_x + max_x) / 2, y=-(min_y + max_y) / 2, zoom=1)

    def set_dragging(self, is_dragging: bool) -> None:
        """Track a drag gesture; the end of a drag records one history entry."""
        was_dragging = self._dragging
        self._dragging = is_dragging
        if was_dragging and not is_dragging:
            self._dirty = True
            self.push_history()

    # ========== History ==========

    def push_history(self) -> HistoryEntry:
        return self._history.push(self.nodes, self.edges)

    def _restore(self, entry: HistoryEntry) -> None:
        nodes, edges = entry.restore()
        self._workflow.nodes = nodes
        self._workflow.edges = edges
        node_ids = {n.id for n in nodes}
        edge_ids = {e.id for e in edges}
        self._selected_node_ids = [i for i in self._selected_node_ids if i in node_ids]
        self._selected_edge_ids = [i for i in self._selected_edge_ids if i in edge_ids]
        self._graph_changed()

    def undo(self) -> None:
        entry = self._history.undo()
        if entry is not None:
            self._restore(entry)

    def redo(self) -> None:
        entry = self._history.redo()
        if entry is not None:
            self._restore(entry)

    def can_undo(self) -> bool:
        return self._history.can_undo()

    def can_redo(self) -> bool:
        return self._history.can_redo()

    def clear_history(self) -> None:
        self._history.clear()

    # ========== Clipboard ==========

    def copy(self) -> None:
        """Snapshot the selected nodes and the edges between them."""
        selected = set(self._selected_node_ids)
        self._clipboard = Clipboard(
            nodes=tuple(n.clone() for n in self.nodes if n.id in selected),
            edges=tuple(
                e.clone() for e in self.edges if e.source in selected and e.target in selected
            ),
        )

    def cut(self) -> None:
        self.copy()
        self.remove_nodes(self._selected_node_ids)

    def paste(self, position: Position | Mapping[str, float] | None = None) -> list[Node]:
        """Insert the clipboard with fresh ids.

        With ``position`` the pasted group is centered on it; otherwise it is
        offset from the originals by ``editor.paste_offset``.
        """
        clipboard = self._clipboard
        if clipboard is None or not clipboard.nodes:
            return []

        if position is not None:
            anchor = _as_position(position)
            center_x = sum(n.position.x for n in clipboard.nodes) / len(clipboard.nodes)
            center_y = sum(n.position.y for n in clipboard.nodes) / len(clipboard.nodes)
            dx, dy = anchor.x - center_x, anchor.y - center_y
        else:
            offset = self.config.editor.paste_offset
            dx, dy = offset.x, offset.y

        id_map: dict[str, str] = {}
        new_nodes = []
        for original in clipboard.nodes:
            clone = original.clone()
            clone.id = new_node_id()
            clone.position = Position(x=original.position.x + dx, y=original.position.y + dy)
            id_map[original.id] = clone.id
            new_nodes.append(clone)

        new_edges = []
        for edge in clipboard.edges:
            clone = edge.clone()
            clone.id = new_edge_id()
            clone.source = id_map[edge.source]
            clone.target = id_map[edge.target]
            new_edges.append(clone)

        self.nodes.extend(new_nodes)
        self.edges.extend(new_edges)
        self._selected_node_ids = [n.id for n in new_nodes]
        self._selected_edge_ids = []
        self._commit()
        return new_nodes

    # ========== Lookups ==========

    def get_node(self, node_id: str) -> Node | None:
        return next((n for n in self.nodes if n.id == node_id), None)

    def get_edge(self, edge_id: str) -> Edge | None:
        return next((e for e in self.edges if e.id == edge_id), None)

    def get_connected_edges(self, node_id: str) -> list[Edge]:
        return [e for e in self.edges if e.source == node_id or e.target == node_id]

    def get_incoming_edges(self, node_id: str) -> list[Edge]:
        return [e for e in self.edges if e.target == node_id]

    def get_outgoing_edges(self, node_id: str) -> list[Edge]:
        return [e for e in self.edges if e.source == node_id]

    def get_connected_nodes(self, node_id: str) -> list[Node]:
        """Distinct neighbours (either direction) in edge declaration order."""
        neighbour_ids: list[str] = []
        for edge in self.get_connected_edges(node_id):
            other = edge.target if edge.source == node_id else edge.source
            if other not in neighbour_ids:
                neighbour_ids.append(other)
        return [n for i in neighbour_ids if (n := self.get_node(i)) is not None]
