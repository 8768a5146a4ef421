"""Bounded undo/redo history of graph snapshots."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime

from kerdar.core.models import Edge, Node
from kerdar.core.utils import utc_now

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HistoryEntry:
    """Immutable snapshot of the node and edge arrays."""

    nodes: tuple[Node, ...]
    edges: tuple[Edge, ...]
    timestamp: datetime = field(default_factory=utc_now)

    @classmethod
    def capture(cls, nodes: Iterable[Node], edges: Iterable[Edge]) -> HistoryEntry:
        return cls(
            nodes=tuple(n.clone() for n in nodes),
            edges=tuple(e.clone() for e in edges),
        )

    def restore(self) -> tuple[list[Node], list[Edge]]:
        """Fresh copies for the live graph; the entry itself is never handed out."""
        return [n.clone() for n in self.nodes], [e.clone() for e in self.edges]


class UndoHistory:
    """Linear history with a cursor.

    The cursor stays within [-1, len - 1]. Pushing while the cursor is not at
    the end discards the redo branch; once ``max_entries`` is exceeded the
    oldest entries are dropped.
    """

    def __init__(self, max_entries: int = 50):
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.max_entries = max_entries
        self._entries: list[HistoryEntry] = []
        self._index = -1

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def index(self) -> int:
        return self._index

    @property
    def entries(self) -> tuple[HistoryEntry, ...]:
        return tuple(self._entries)

    @property
    def current(self) -> HistoryEntry | None:
        return self._entries[self._index] if self._index >= 0 else None

    def push(self, nodes: Iterable[Node], edges: Iterable[Edge]) -> HistoryEntry:
        entry = HistoryEntry.capture(nodes, edges)
        del self._entries[self._index + 1 :]
        self._entries.append(entry)
        overflow = len(self._entries) - self.max_entries
        if overflow > 0:
            del self._entries[:overflow]
        self._index = len(self._entries) - 1
        logger.debug(f"History push: {self._index + 1}/{len(self._entries)}")
        return entry

    def can_undo(self) -> bool:
        return self._index > 0

    def can_redo(self) -> bool:
        return self._index < len(self._entries) - 1

    def undo(self) -> HistoryEntry | None:
        """Step back one entry; None at the boundary."""
        if not self.can_undo():
            return None
        self._index -= 1
        return self._entries[self._index]

    def redo(self) -> HistoryEntry | None:
        if not self.can_redo():
            return None
        self._index += 1
        return self._entries[self._index]

    def clear(self) -> None:
        self._entries.clear()
        self._index = -1
