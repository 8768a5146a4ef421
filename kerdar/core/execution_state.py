"""Per-run execution state ledger.

The simulator is the only writer; observers read states or subscribe to
status transitions. Each node follows ``pending -> running -> success |
error | skipped`` and a terminal status is final for the run.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from kerdar.core.models import ExecutionStatus, RunStatus
from kerdar.core.utils import utc_now

logger = logging.getLogger(__name__)


@dataclass
class NodeError:
    message: str
    description: str | None = None
    stack: str | None = None


@dataclass
class NodeExecutionState:
    node_id: str
    status: ExecutionStatus = ExecutionStatus.PENDING
    input_data: list[dict[str, Any]] | None = None
    output_data: list[list[dict[str, Any]]] | None = None
    mock_data: dict[str, Any] | None = None
    error: NodeError | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None

    @property
    def execution_time(self) -> float:
        """Milliseconds between start and end (0 when not both known)."""
        if self.start_time is None or self.end_time is None:
            return 0.0
        return (self.end_time - self.start_time).total_seconds() * 1000

    @property
    def items_processed(self) -> int:
        return len(self.output_data[0]) if self.output_data else 0


@dataclass(frozen=True)
class StatusTransition:
    node_id: str
    status: ExecutionStatus
    execution_id: str | None


StatusListener = Callable[[StatusTransition], None]


class ExecutionLedger:
    """Node states for the current simulation run."""

    def __init__(self):
        self.execution_id: str | None = None
        self.status: RunStatus | None = None
        self.started_at: datetime | None = None
        self.finished_at: datetime | None = None
        self._states: dict[str, NodeExecutionState] = {}
        self._listeners: list[StatusListener] = []

    # ========== Run lifecycle ==========

    def start_execution(self, execution_id: str, node_ids: Iterable[str]) -> None:
        """Begin a run: every listed node starts over as pending."""
        self.execution_id = execution_id
        self.status = RunStatus.RUNNING
        self.started_at = utc_now()
        self.finished_at = None
        self._states = {node_id: NodeExecutionState(node_id=node_id) for node_id in node_ids}
        logger.info(f"Execution {execution_id} started ({len(self._states)} nodes)")

    def complete_execution(self, status: RunStatus) -> None:
        self.status = status
        self.finished_at = utc_now()
        logger.info(f"Execution {self.execution_id} finished: {status.value}")

    @property
    def is_running(self) -> bool:
        return self.status == RunStatus.RUNNING

    # ========== Node transitions ==========

    def _transition(self, node_id: str, status: ExecutionStatus) -> NodeExecutionState | None:
        state = self._states.setdefault(node_id, NodeExecutionState(node_id=node_id))
        if state.status.is_terminal:
            logger.warning(
                f"Ignoring {status.value} for node {node_id}: already {state.status.value}"
            )
            return None
        if status == ExecutionStatus.RUNNING and state.status == ExecutionStatus.RUNNING:
            return None
        state.status = status
        return state

    def _notify(self, node_id: str, status: ExecutionStatus) -> None:
        event = StatusTransition(node_id=node_id, status=status, execution_id=self.execution_id)
        for listener in list(self._listeners):
            listener(event)

    def set_node_running(self, node_id: str, input_data: list[dict[str, Any]] | None = None) -> None:
        state = self._transition(node_id, ExecutionStatus.RUNNING)
        if state is None:
            return
        state.input_data = input_data
        state.start_time = utc_now()
        logger.debug(f"Node {node_id} running")
        self._notify(node_id, ExecutionStatus.RUNNING)

    def set_node_success(
        self,
        node_id: str,
        output_data: list[list[dict[str, Any]]] | None = None,
        mock_data: dict[str, Any] | None = None,
    ) -> None:
        state = self._transition(node_id, ExecutionStatus.SUCCESS)
        if state is None:
            return
        state.output_data = output_data
        state.mock_data = mock_data
        state.end_time = utc_now()
        if state.start_time is None:
            state.start_time = state.end_time
        logger.debug(f"Node {node_id} succeeded ({state.execution_time:.0f}ms)")
        self._notify(node_id, ExecutionStatus.SUCCESS)

    def set_node_error(
        self,
        node_id: str,
        message: str,
        description: str | None = None,
        stack: str | None = None,
    ) -> None:
        state = self._transition(node_id, ExecutionStatus.ERROR)
        if state is None:
            return
        state.error = NodeError(message=message, description=description, stack=stack)
        state.end_time = utc_now()
        if state.start_time is None:
            state.start_time = state.end_time
        logger.error(f"Node {node_id} failed: {message}")
        self._notify(node_id, ExecutionStatus.ERROR)

    def set_node_skipped(self, node_id: str, input_data: list[dict[str, Any]] | None = None) -> None:
        state = self._transition(node_id, ExecutionStatus.SKIPPED)
        if state is None:
            return
        state.input_data = input_data
        state.output_data = [[]]
        state.start_time = state.end_time = utc_now()
        logger.debug(f"Node {node_id} skipped")
        self._notify(node_id, ExecutionStatus.SKIPPED)

    # ========== Read access ==========

    def get_state(self, node_id: str) -> NodeExecutionState | None:
        return self._states.get(node_id)

    def get_status(self, node_id: str) -> ExecutionStatus | None:
        state = self._states.get(node_id)
        return state.status if state else None

    @property
    def states(self) -> dict[str, NodeExecutionState]:
        return dict(self._states)

    def count(self, status: ExecutionStatus) -> int:
        return sum(1 for s in self._states.values() if s.status == status)

    # ========== Observers ==========

    def subscribe(self, listener: StatusListener) -> Callable[[], None]:
        """Register a synchronous status listener; returns the unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe
