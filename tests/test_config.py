"""Tests for engine configuration loading."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from kerdar.core.config import ConfigError, EngineConfig, load_config


class TestLoadConfig:
    """Tests for load_config search and validation."""

    def test_defaults(self):
        config = EngineConfig()
        assert config.history.max_entries == 50
        assert config.editor.duplicate_offset.x == 50
        assert config.editor.paste_offset.y == 50
        assert config.simulation.node_delay == 0.5
        assert config.catalog.node_type_paths == []

    def test_no_file_found_uses_defaults(self, tmp_path: Path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setattr("kerdar.core.config.default_search_paths", lambda: [tmp_path / "nope.yaml"])
        assert load_config() == EngineConfig()

    def test_project_config_is_found(self, tmp_path: Path, monkeypatch):
        config_dir = tmp_path / ".kerdar"
        config_dir.mkdir()
        (config_dir / "config.yaml").write_text(yaml.safe_dump({"history": {"max_entries": 7}}))
        monkeypatch.chdir(tmp_path)
        assert load_config().history.max_entries == 7

    def test_explicit_path(self, tmp_path: Path):
        path = tmp_path / "engine.yaml"
        path.write_text(
            yaml.safe_dump(
                {
                    "editor": {"paste_offset": {"x": 10, "y": 20}},
                    "simulation": {"node_delay": 0},
                    "catalog": {"node_type_paths": ["nodes", "/abs/types.yaml"]},
                }
            )
        )
        config = load_config(path)
        assert config.editor.paste_offset.x == 10
        assert config.simulation.node_delay == 0
        assert config.catalog.node_type_paths == [tmp_path / "nodes", Path("/abs/types.yaml")]

    def test_empty_file(self, tmp_path: Path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_config(path) == EngineConfig()

    def test_explicit_path_missing(self, tmp_path: Path):
        with pytest.raises(ConfigError, match="not found"):
            load_config(tmp_path / "missing.yaml")

    def test_invalid_yaml(self, tmp_path: Path):
        path = tmp_path / "bad.yaml"
        path.write_text("history: [unclosed")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_config(path)

    def test_not_a_mapping(self, tmp_path: Path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigError, match="expected a mapping"):
            load_config(path)

    def test_validation_error(self, tmp_path: Path):
        path = tmp_path / "bad.yaml"
        path.write_text(yaml.safe_dump({"history": {"max_entries": 0}}))
        with pytest.raises(ConfigError, match="history.max_entries"):
            load_config(path)
