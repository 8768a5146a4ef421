"""Side-effect-free workflow simulation.

The simulator walks a workflow in data-flow order, synthesizes each node's
output from its declared schema and records per-node status in an
``ExecutionLedger``. Nothing external is called: the only suspension points
are the pacing delay and async schema functions, both awaited one at a time.

Traversal:
- start nodes (no incoming edge) run in declaration order, each seeded with
  its own mock data (or the caller's override)
- after a node finishes, its outgoing edges are followed in declaration
  order, routing output batch N to edges whose source handle is
  ``output-N``
- a node with several incoming edges runs once, after all of them have
  delivered; its input is the concatenation of the delivered batches in
  incoming-edge order
- edges out of a failed node deliver nothing; a node none of whose incoming
  edges delivered data is never run and stays pending
"""

from __future__ import annotations

import asyncio
import copy
import logging
import traceback
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from kerdar.core.builtin_nodes import SET_NODE_TYPE
from kerdar.core.catalog import NodeTypeCatalog, NodeTypeDefinition
from kerdar.core.execution_state import ExecutionLedger
from kerdar.core.models import Edge, ExecutionStatus, Node, NodeCategory, RunStatus, Workflow
from kerdar.core.utils import execution_id as new_execution_id
from kerdar.core.utils import utc_now_iso

logger = logging.getLogger(__name__)

Item = dict[str, Any]  # {"json": {...}, "pairedItem": {"item": i}}

_LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}


class SimulationError(Exception):
    """The workflow cannot be simulated at all (e.g. it has no start node)."""

    pass


@dataclass(frozen=True)
class ExecutionLogEntry:
    timestamp: str
    level: Literal["debug", "info", "warn", "error"]
    message: str
    data: dict[str, Any] | None = None


ProgressCallback = Callable[[str, str, Any], None]
LogCallback = Callable[[ExecutionLogEntry], None]
DataFlowCallback = Callable[[str, str, list[Item]], None]


@dataclass
class SimulationOptions:
    """Simulation knobs and observer hooks.

    Attributes:
        node_delay: Seconds to pause before each node runs (UI pacing only)
        mock_data_overrides: Node id -> mock payload replacing the synthesized one
        simulate_errors: Node id -> error message to inject
        on_progress: ``(node_id, status, data)`` on running/success/error
        on_log: Receives every ExecutionLogEntry
        on_data_flow: ``(source_id, target_id, items)`` when data crosses an edge
    """

    node_delay: float = 0.5
    mock_data_overrides: dict[str, dict[str, Any]] = field(default_factory=dict)
    simulate_errors: dict[str, str] = field(default_factory=dict)
    on_progress: ProgressCallback | None = None
    on_log: LogCallback | None = None
    on_data_flow: DataFlowCallback | None = None


class NodeResultError(BaseModel):
    message: str
    stack: str | None = None


class NodeSimulationResult(BaseModel):
    node_id: str
    node_name: str
    status: ExecutionStatus
    input_data: list[Item] = Field(default_factory=list)
    output_data: list[list[Item]] = Field(default_factory=list)
    mock_data: dict[str, Any] = Field(default_factory=dict)
    execution_time: float = 0.0  # milliseconds
    error: NodeResultError | None = None


class SimulationResult(BaseModel):
    id: str
    workflow_id: str
    status: RunStatus
    mode: str = "manual"
    simulation_mode: bool = True
    started_at: str
    finished_at: str
    node_results: list[NodeSimulationResult] = Field(default_factory=list)
    run_data: dict[str, list[dict[str, Any]]] = Field(default_factory=dict)
    last_node_executed: str | None = None

    def get_node_result(self, node_id: str) -> NodeSimulationResult | None:
        return next((r for r in self.node_results if r.node_id == node_id), None)


def _item(json_data: dict[str, Any], index: int) -> Item:
    return {"json": json_data, "pairedItem": {"item": index}}


def _epoch_ms(moment: datetime | None) -> int | None:
    return int(moment.timestamp() * 1000) if moment else None


class WorkflowSimulator:
    """Simulates one workflow against a node type catalog."""

    def __init__(
        self,
        workflow: Workflow,
        catalog: NodeTypeCatalog,
        options: SimulationOptions | None = None,
        ledger: ExecutionLedger | None = None,
    ):
        self.workflow = workflow
        self.catalog = catalog
        self.options = options or SimulationOptions()
        self.ledger = ledger or ExecutionLedger()
        self._node_results: list[NodeSimulationResult] = []
        self._incoming: dict[str, list[Edge]] = {}
        self._delivered: dict[str, dict[str, list[Item] | None]] = {}

    # ========== Run ==========

    async def simulate(self) -> SimulationResult:
        """Run the simulation.

        Raises:
            SimulationError: If the workflow has no start node
        """
        exec_id = new_execution_id()
        started_at = utc_now_iso()
        self._reset()
        self.ledger.start_execution(exec_id, [n.id for n in self.workflow.nodes])
        self._log("info", f"Starting workflow simulation: {self.workflow.name}")

        start_nodes = self.workflow.get_start_nodes()
        if not start_nodes:
            self.ledger.complete_execution(RunStatus.ERROR)
            self._log("error", "Workflow simulation failed: no start nodes found")
            raise SimulationError("No start nodes found in workflow")

        try:
            for start_node in start_nodes:
                await self._walk(start_node, await self._initial_data(start_node))
        except Exception as e:
            self.ledger.complete_execution(RunStatus.ERROR)
            self._log("error", f"Workflow simulation failed: {e}")
            raise

        failed = self.ledger.count(ExecutionStatus.ERROR)
        status = RunStatus.ERROR if failed else RunStatus.SUCCESS
        self.ledger.complete_execution(status)
        self._log("info", f"Workflow simulation completed: {status.value}", {"failedNodes": failed})

        return SimulationResult(
            id=exec_id,
            workflow_id=self.workflow.id,
            status=status,
            started_at=started_at,
            finished_at=utc_now_iso(),
            node_results=list(self._node_results),
            run_data=self.run_data(),
            last_node_executed=self.last_node_executed(),
        )

    def _reset(self) -> None:
        node_ids = {n.id for n in self.workflow.nodes}
        self._node_results = []
        self._incoming = {n.id: [] for n in self.workflow.nodes}
        for edge in self.workflow.edges:
            if edge.target in node_ids and edge.source in node_ids:
                self._incoming[edge.target].append(edge)
        self._delivered = {n.id: {} for n in self.workflow.nodes}

    async def _initial_data(self, node: Node) -> list[Item]:
        if node.id in self.options.mock_data_overrides:
            return [_item(copy.deepcopy(self.options.mock_data_overrides[node.id]), 0)]
        node_type = self.catalog.get_node_type(node.type)
        if node_type is None:
            return [_item({}, 0)]
        try:
            mock = await self._generate_mock(node)
        except Exception as e:
            # The node's own run reports the failure
            logger.debug(f"Initial data for {node.id} unavailable: {e}")
            mock = {}
        return [_item(mock, 0)]

    async def _generate_mock(self, node: Node) -> dict[str, Any]:
        schema = await self.catalog.aresolve_node_schema(node)
        return self.catalog.generate_mock_data(schema)

    # ========== Nodes ==========

    async def _run_node(self, node: Node, input_data: list[Item]) -> list[list[Item]] | None:
        """Run one node; returns its output batches, or ``None`` if it failed."""
        if node.disabled:
            self.ledger.set_node_skipped(node.id, input_data)
            self._log("debug", f"Node skipped (disabled): {node.name}")
            self._record(node, ExecutionStatus.SKIPPED, input_data, [[]])
            return [[]]

        node_type = self.catalog.get_node_type(node.type)
        if node_type is None:
            self._fail(node, input_data, f"Unknown node type: {node.type}")
            return None

        if node.id in self.options.simulate_errors:
            self._fail(node, input_data, self.options.simulate_errors[node.id])
            return None

        self.ledger.set_node_running(node.id, input_data)
        self._log("debug", f"Simulating node: {node.name}", {"nodeType": node.type})
        self._progress(node.id, "running")

        if self.options.node_delay:
            await asyncio.sleep(self.options.node_delay)

        try:
            if node.id in self.options.mock_data_overrides:
                mock_data = copy.deepcopy(self.options.mock_data_overrides[node.id])
            else:
                mock_data = await self._generate_mock(node)
            output = self.transform_data(input_data, mock_data, node, node_type)
        except Exception as e:
            self._fail(node, input_data, str(e), stack=traceback.format_exc())
            return None

        self.ledger.set_node_success(node.id, [output], mock_data)
        self._progress(node.id, "success", {"outputData": output, "mockData": mock_data})
        result = self._record(node, ExecutionStatus.SUCCESS, input_data, [output], mock_data)
        self._log(
            "info",
            f"Node simulation completed: {node.name}",
            {"itemsProcessed": len(output), "executionTime": result.execution_time},
        )
        return [output]

    def _fail(self, node: Node, input_data: list[Item], message: str, stack: str | None = None) -> None:
        self.ledger.set_node_error(node.id, message, stack=stack)
        self._progress(node.id, "error", {"error": message})
        self._log("error", f"Node simulation failed: {node.name}", {"error": message})
        self._record(
            node,
            ExecutionStatus.ERROR,
            input_data,
            [],
            error=NodeResultError(message=message, stack=stack),
        )

    def _record(
        self,
        node: Node,
        status: ExecutionStatus,
        input_data: list[Item],
        output_data: list[list[Item]],
        mock_data: dict[str, Any] | None = None,
        error: NodeResultError | None = None,
    ) -> NodeSimulationResult:
        state = self.ledger.get_state(node.id)
        result = NodeSimulationResult(
            node_id=node.id,
            node_name=node.name,
            status=status,
            input_data=input_data,
            output_data=output_data,
            mock_data=mock_data or {},
            execution_time=state.execution_time if state else 0.0,
            error=error,
        )
        self._node_results.append(result)
        return result

    def transform_data(
        self,
        input_data: list[Item],
        mock_output: dict[str, Any],
        node: Node,
        node_type: NodeTypeDefinition,
    ) -> list[Item]:
        """Combine a node's input items with its synthesized output by category."""
        category = node_type.category

        if category == NodeCategory.TRIGGER:
            return [_item(copy.deepcopy(mock_output), 0)]

        if category == NodeCategory.LOGIC:
            return copy.deepcopy(input_data)

        if category in (NodeCategory.AI, NodeCategory.CUSTOM):
            if mock_output:
                return [_item(copy.deepcopy(mock_output), 0)]
            return copy.deepcopy(input_data)

        if category == NodeCategory.DATA and node_type.type == SET_NODE_TYPE:
            return [
                _item(copy.deepcopy(mock_output if mock_output else item.get("json", {})), index)
                for index, item in enumerate(input_data)
            ]

        # Action, integration, communication, database, other data nodes
        return [
            _item({**copy.deepcopy(item.get("json", {})), **copy.deepcopy(mock_output)}, index)
            for index, item in enumerate(input_data)
        ]

    # ========== Propagation ==========

    async def _walk(self, start: Node, input_data: list[Item]) -> None:
        """Run ``start`` and everything it feeds, depth-first.

        Pending deliveries live on an explicit stack. Outgoing edges are pushed
        in reverse so they pop in declaration order, and a target's own edges
        land on top, so each branch finishes before its next sibling edge.
        """
        stack: list[tuple[Edge, list[Item] | None]] = []
        self._push_outgoing(stack, start, await self._run_node(start, input_data))

        while stack:
            edge, batch = stack.pop()
            if batch is not None and self.options.on_data_flow:
                self.options.on_data_flow(edge.source, edge.target, batch)

            delivered = self._delivered[edge.target]
            delivered[edge.id] = batch
            incoming = self._incoming[edge.target]
            if any(e.id not in delivered for e in incoming):
                continue

            target = self.workflow.get_node(edge.target)
            live = [delivered[e.id] for e in incoming if delivered[e.id] is not None]
            if live:
                output = await self._run_node(target, [item for batch_ in live for item in batch_])
            else:
                self._log("debug", f"Node not reached (no input delivered): {target.name}")
                output = None
            self._push_outgoing(stack, target, output)

    def _push_outgoing(
        self,
        stack: list[tuple[Edge, list[Item] | None]],
        node: Node,
        output_data: list[list[Item]] | None,
    ) -> None:
        """Queue ``node``'s outgoing edges; ``None`` marks them as carrying no data."""
        outgoing = []
        for edge in self.workflow.edges:
            if edge.source != node.id or edge.target not in self._delivered:
                continue
            if output_data is None:
                batch = None
            else:
                index = edge.output_index
                batch = output_data[index] if index < len(output_data) else []
            outgoing.append((edge, batch))
        stack.extend(reversed(outgoing))

    # ========== Observers ==========

    def _progress(self, node_id: str, status: str, data: Any = None) -> None:
        if self.options.on_progress:
            self.options.on_progress(node_id, status, data)

    def _log(self, level: str, message: str, data: dict[str, Any] | None = None) -> None:
        logger.log(_LOG_LEVELS[level], message)
        if self.options.on_log:
            self.options.on_log(
                ExecutionLogEntry(timestamp=utc_now_iso(), level=level, message=message, data=data)
            )

    # ========== Summary ==========

    def run_data(self) -> dict[str, list[dict[str, Any]]]:
        """Per-node run records for every node that left ``pending``."""
        run_data: dict[str, list[dict[str, Any]]] = {}
        for node_id, state in self.ledger.states.items():
            if state.status == ExecutionStatus.PENDING:
                continue
            run_data[node_id] = [
                {
                    "startTime": _epoch_ms(state.start_time),
                    "executionTime": state.execution_time,
                    "executionStatus": (
                        state.status.value
                        if state.status in (ExecutionStatus.SUCCESS, ExecutionStatus.ERROR)
                        else None
                    ),
                    "source": None,
                    "data": {"main": copy.deepcopy(state.output_data or [])},
                    "error": (
                        {"message": state.error.message, "stack": state.error.stack}
                        if state.error
                        else None
                    ),
                }
            ]
        return run_data

    def last_node_executed(self) -> str | None:
        """Id of the node that reached a final status last."""
        return self._node_results[-1].node_id if self._node_results else None


async def simulate_workflow(
    workflow: Workflow,
    catalog: NodeTypeCatalog,
    options: SimulationOptions | None = None,
    ledger: ExecutionLedger | None = None,
) -> SimulationResult:
    """Convenience wrapper around ``WorkflowSimulator.simulate``."""
    return await WorkflowSimulator(workflow, catalog, options, ledger).simulate()


def get_node_mock_data_preview(node: Node, catalog: NodeTypeCatalog) -> dict[str, Any]:
    """Mock output of a single node for its current parameters."""
    schema = catalog.resolve_node_schema(node)
    return catalog.generate_mock_data(schema)


def preview_data_flow(workflow: Workflow, catalog: NodeTypeCatalog) -> dict[str, dict[str, list]]:
    """Static breadth-first preview of each node's input and output payloads.

    Cheaper than a simulation: no ledger, no delays, triggers replace their
    input and every other node shallow-merges its mock onto each item.
    """
    flow: dict[str, dict[str, list]] = {}
    visited: set[str] = set()
    queue: deque[tuple[Node, list[dict[str, Any]]]] = deque()

    for node in workflow.get_start_nodes():
        mock = get_node_mock_data_preview(node, catalog)
        flow[node.id] = {"input": [{}], "output": [mock]}
        queue.append((node, [mock]))

    while queue:
        node, input_data = queue.popleft()
        if node.id in visited:
            continue
        visited.add(node.id)

        for edge in workflow.edges:
            if edge.source != node.id:
                continue
            target = workflow.get_node(edge.target)
            if target is None or target.id in visited:
                continue
            node_type = catalog.get_node_type(target.type)
            mock = get_node_mock_data_preview(target, catalog)
            if node_type is not None and node_type.category == NodeCategory.TRIGGER:
                output = [mock]
            else:
                output = [{**item, **mock} for item in input_data]
            flow[target.id] = {"input": input_data, "output": output}
            queue.append((target, output))

    return flow
