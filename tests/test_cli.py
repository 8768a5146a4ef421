"""Tests for CLI commands.

Tests all kerdar CLI commands using Click's CliRunner:
- validate: Check graph structure
- simulate: Run a mock simulation
- context: Show expressions available to a node
- nodes: List node types
- version: Show version information
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest
import yaml
from click.testing import CliRunner

from conftest import make_edge, make_node, make_workflow
from kerdar import __version__
from kerdar.cli import main


@pytest.fixture
def cli_runner() -> CliRunner:
    """Create a Click CLI test runner."""
    return CliRunner()


@pytest.fixture
def cyclic_file(tmp_path: Path) -> Path:
    workflow = make_workflow(
        [make_node("a", "set", "Alpha"), make_node("b", "set", "Beta")],
        [make_edge("a", "b"), make_edge("b", "a")],
    )
    path = tmp_path / "cyclic.json"
    path.write_text(json.dumps(workflow.to_dict()))
    return path


class TestValidateCommand:
    """Tests for 'kerdar validate' command."""

    def test_valid_workflow(self, cli_runner, workflow_file):
        result = cli_runner.invoke(main, ["validate", str(workflow_file)])
        assert result.exit_code == 0
        assert "Graph is valid" in result.output
        assert "Nodes: 3" in result.output
        assert "Edges: 2" in result.output

    def test_yaml_workflow(self, cli_runner, tmp_path, linear_workflow):
        path = tmp_path / "workflow.yaml"
        path.write_text(yaml.safe_dump(linear_workflow.to_dict()))
        result = cli_runner.invoke(main, ["validate", str(path)])
        assert result.exit_code == 0
        assert "Graph is valid" in result.output

    def test_cycle_fails(self, cli_runner, cyclic_file):
        result = cli_runner.invoke(main, ["validate", str(cyclic_file)])
        assert result.exit_code == 1
        assert "Validation Errors" in result.output
        assert "Cycle detected" in result.output

    def test_unknown_type_warns(self, cli_runner, tmp_path):
        path = tmp_path / "unknown.json"
        path.write_text(json.dumps(make_workflow([make_node("x", "mystery")]).to_dict()))
        result = cli_runner.invoke(main, ["validate", str(path)])
        assert result.exit_code == 0
        assert "unknown node type 'mystery'" in result.output

    def test_invalid_json(self, cli_runner, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json")
        result = cli_runner.invoke(main, ["validate", str(path)])
        assert result.exit_code == 1
        assert "Error parsing JSON" in result.output

    def test_invalid_yaml(self, cli_runner, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("nodes: [unclosed")
        result = cli_runner.invoke(main, ["validate", str(path)])
        assert result.exit_code == 1
        assert "Error parsing YAML" in result.output

    def test_non_mapping_document(self, cli_runner, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        result = cli_runner.invoke(main, ["validate", str(path)])
        assert result.exit_code == 1
        assert "Invalid content" in result.output

    def test_invalid_document(self, cli_runner, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text(json.dumps({"nodes": [{"id": "a"}]}))
        result = cli_runner.invoke(main, ["validate", str(path)])
        assert result.exit_code == 1
        assert "Error validating workflow document" in result.output

    def test_missing_file(self, cli_runner, tmp_path):
        result = cli_runner.invoke(main, ["validate", str(tmp_path / "nope.json")])
        assert result.exit_code == 2


class TestSimulateCommand:
    """Tests for 'kerdar simulate' command."""

    def test_simulate_table(self, cli_runner, workflow_file):
        result = cli_runner.invoke(main, ["simulate", str(workflow_file), "--delay", "0"])
        assert result.exit_code == 0
        assert "Simulation" in result.output
        assert "Last node: C" in result.output

    def test_simulate_json(self, cli_runner, workflow_file):
        result = cli_runner.invoke(main, ["simulate", str(workflow_file), "--delay", "0", "--json"])
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["status"] == "success"
        assert data["last_node_executed"] == "C"

    def test_override(self, cli_runner, workflow_file):
        result = cli_runner.invoke(
            main,
            ["simulate", str(workflow_file), "--delay", "0", "--json", "--override", 'A={"orderId": 7}'],
        )
        assert result.exit_code == 0
        data = json.loads(result.output)
        trigger = next(r for r in data["node_results"] if r["node_id"] == "A")
        assert trigger["output_data"][0][0]["json"] == {"orderId": 7}

    def test_injected_failure(self, cli_runner, workflow_file):
        result = cli_runner.invoke(main, ["simulate", str(workflow_file), "--delay", "0", "--fail", "B=boom"])
        assert result.exit_code == 1
        assert "boom" in result.output

    @pytest.mark.parametrize("override", ["A", "A=[1, 2]", "A={not json"])
    def test_bad_override(self, cli_runner, workflow_file, override):
        result = cli_runner.invoke(main, ["simulate", str(workflow_file), "--override", override])
        assert result.exit_code == 2

    def test_no_start_nodes(self, cli_runner, cyclic_file):
        result = cli_runner.invoke(main, ["simulate", str(cyclic_file), "--delay", "0"])
        assert result.exit_code == 1
        assert "Simulation failed" in result.output


class TestContextCommand:
    """Tests for 'kerdar context' command."""

    def test_context(self, cli_runner, workflow_file):
        result = cli_runner.invoke(main, ["context", str(workflow_file), "C"])
        assert result.exit_code == 0
        assert "Action C (http-request)" in result.output
        assert "Inputs: 1, accessible nodes: 2" in result.output
        assert "$executionId" in result.output

    def test_context_with_mock(self, cli_runner, workflow_file):
        result = cli_runner.invoke(main, ["context", str(workflow_file), "C", "--mock"])
        assert result.exit_code == 0
        assert '"statusCode": 200' in result.output

    def test_unknown_node(self, cli_runner, workflow_file):
        result = cli_runner.invoke(main, ["context", str(workflow_file), "ghost"])
        assert result.exit_code == 1
        assert "node 'ghost' not found" in result.output


class TestNodesCommand:
    """Tests for 'kerdar nodes' command."""

    def test_list_all(self, cli_runner):
        result = cli_runner.invoke(main, ["nodes"])
        assert result.exit_code == 0
        assert "Node Types" in result.output

    def test_category_filter(self, cli_runner):
        result = cli_runner.invoke(main, ["nodes", "--category", "trigger"])
        assert result.exit_code == 0
        assert "Webhook" in result.output
        assert "Slack" not in result.output

    def test_search(self, cli_runner):
        result = cli_runner.invoke(main, ["nodes", "--search", "slack"])
        assert result.exit_code == 0
        assert "Slack" in result.output

    def test_no_matches(self, cli_runner):
        result = cli_runner.invoke(main, ["nodes", "--search", "slack", "--category", "database"])
        assert result.exit_code == 0
        assert "No matching node types" in result.output

    def test_custom_node_types_from_config(self, cli_runner, tmp_path):
        (tmp_path / "nodes").mkdir()
        (tmp_path / "nodes" / "crm.yaml").write_text(
            yaml.safe_dump([{"type": "crm-lookup", "display_name": "CRM Lookup", "category": "integration"}])
        )
        config = tmp_path / "config.yaml"
        config.write_text(yaml.safe_dump({"catalog": {"node_type_paths": ["nodes"]}}))
        result = cli_runner.invoke(main, ["--config", str(config), "nodes", "--category", "integration"])
        assert result.exit_code == 0
        assert "CRM Lookup" in result.output


class TestGlobalOptions:
    """Tests for version output and config loading."""

    def test_version_command(self, cli_runner):
        result = cli_runner.invoke(main, ["version"])
        assert result.exit_code == 0
        assert f"Kerdar v{__version__}" in result.output

    def test_version_option(self, cli_runner):
        result = cli_runner.invoke(main, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_missing_config(self, cli_runner, tmp_path):
        result = cli_runner.invoke(main, ["--config", str(tmp_path / "missing.yaml"), "nodes"])
        assert result.exit_code == 1
        assert "Config file not found" in result.output

    def test_invalid_config(self, cli_runner, tmp_path):
        config = tmp_path / "config.yaml"
        config.write_text(yaml.safe_dump({"simulation": {"node_delay": "slow"}}))
        result = cli_runner.invoke(main, ["--config", str(config), "nodes"])
        assert result.exit_code == 1
        assert "Invalid config" in result.output
