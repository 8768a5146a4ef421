"""Tests for the per-run execution state ledger."""

from __future__ import annotations

from kerdar.core.execution_state import ExecutionLedger, StatusTransition
from kerdar.core.models import ExecutionStatus, RunStatus


class TestExecutionLedger:
    """Tests for node transitions and run lifecycle."""

    def test_start_execution_resets_states(self):
        ledger = ExecutionLedger()
        ledger.start_execution("exec_1", ["a", "b"])
        ledger.set_node_running("a")
        ledger.set_node_success("a", [[{"json": {}}]])
        ledger.start_execution("exec_2", ["a", "b"])
        assert ledger.get_status("a") == ExecutionStatus.PENDING
        assert ledger.execution_id == "exec_2"
        assert ledger.is_running

    def test_success_records_data(self):
        ledger = ExecutionLedger()
        ledger.start_execution("exec_1", ["a"])
        ledger.set_node_running("a", [{"json": {"x": 1}}])
        ledger.set_node_success("a", [[{"json": {"x": 1}}, {"json": {"x": 2}}]], {"x": 1})
        state = ledger.get_state("a")
        assert state.status == ExecutionStatus.SUCCESS
        assert state.input_data == [{"json": {"x": 1}}]
        assert state.items_processed == 2
        assert state.mock_data == {"x": 1}
        assert state.execution_time >= 0

    def test_terminal_state_is_final(self):
        ledger = ExecutionLedger()
        ledger.start_execution("exec_1", ["a"])
        ledger.set_node_error("a", "failed", stack="trace")
        ledger.set_node_success("a", [[]])
        ledger.set_node_running("a")
        state = ledger.get_state("a")
        assert state.status == ExecutionStatus.ERROR
        assert state.error.message == "failed"
        assert state.error.stack == "trace"
        assert state.output_data is None

    def test_skipped_has_empty_output(self):
        ledger = ExecutionLedger()
        ledger.start_execution("exec_1", ["a"])
        ledger.set_node_skipped("a")
        assert ledger.get_state("a").output_data == [[]]
        assert ledger.count(ExecutionStatus.SKIPPED) == 1

    def test_skipped_keeps_input(self):
        ledger = ExecutionLedger()
        ledger.start_execution("exec_1", ["a"])
        ledger.set_node_skipped("a", [{"json": {"x": 1}}])
        assert ledger.get_state("a").input_data == [{"json": {"x": 1}}]

    def test_complete_execution(self):
        ledger = ExecutionLedger()
        ledger.start_execution("exec_1", [])
        ledger.complete_execution(RunStatus.SUCCESS)
        assert ledger.status == RunStatus.SUCCESS
        assert not ledger.is_running
        assert ledger.finished_at is not None

    def test_unknown_node_is_tracked(self):
        ledger = ExecutionLedger()
        ledger.start_execution("exec_1", [])
        ledger.set_node_running("late")
        assert ledger.get_status("late") == ExecutionStatus.RUNNING
        assert ledger.get_status("never") is None

    def test_states_is_a_copy(self):
        ledger = ExecutionLedger()
        ledger.start_execution("exec_1", ["a"])
        ledger.states.clear()
        assert "a" in ledger.states


class TestSubscriptions:
    """Tests for status transition listeners."""

    def test_subscribe_and_unsubscribe(self):
        ledger = ExecutionLedger()
        events: list[StatusTransition] = []
        unsubscribe = ledger.subscribe(events.append)

        ledger.start_execution("exec_1", ["a", "b"])
        ledger.set_node_running("a")
        ledger.set_node_running("a")
        ledger.set_node_success("a")
        unsubscribe()
        ledger.set_node_skipped("b")
        unsubscribe()

        assert [(e.node_id, e.status) for e in events] == [
            ("a", ExecutionStatus.RUNNING),
            ("a", ExecutionStatus.SUCCESS),
        ]
        assert events[0].execution_id == "exec_1"

    def test_ignored_transitions_are_not_published(self):
        ledger = ExecutionLedger()
        events: list[StatusTransition] = []
        ledger.subscribe(events.append)
        ledger.start_execution("exec_1", ["a"])
        ledger.set_node_skipped("a")
        ledger.set_node_error("a", "late")
        assert [e.status for e in events] == [ExecutionStatus.SKIPPED]
