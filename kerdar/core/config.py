"""Engine configuration loading.

Configuration is a single YAML document; every key is optional:

    history:
      max_entries: 50
    editor:
      duplicate_offset: {x: 50, y: 50}
      paste_offset: {x: 50, y: 50}
    simulation:
      node_delay: 0.5        # seconds between node executions (UI pacing)
    catalog:
      node_type_paths: ["nodes"]   # relative to the config file

Search order (first found wins):
- explicit path passed to ``load_config``
- ``.kerdar/config.yaml`` (project)
- ``~/.kerdar/config.yaml`` (user-global)
"""

import logging
from pathlib import Path

import pydantic
import yaml
from pydantic import BaseModel, Field

from kerdar.core.models import Position

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """Configuration file is missing or invalid."""

    pass


class HistoryConfig(BaseModel):
    max_entries: int = Field(default=50, ge=1)


class EditorConfig(BaseModel):
    duplicate_offset: Position = Field(default_factory=lambda: Position(x=50, y=50))
    paste_offset: Position = Field(default_factory=lambda: Position(x=50, y=50))


class SimulationConfig(BaseModel):
    node_delay: float = Field(default=0.5, ge=0)


class CatalogConfig(BaseModel):
    node_type_paths: list[Path] = Field(default_factory=list)


class EngineConfig(BaseModel):
    """Top-level engine configuration."""

    history: HistoryConfig = Field(default_factory=HistoryConfig)
    editor: EditorConfig = Field(default_factory=EditorConfig)
    simulation: SimulationConfig = Field(default_factory=SimulationConfig)
    catalog: CatalogConfig = Field(default_factory=CatalogConfig)


def default_search_paths() -> list[Path]:
    return [
        Path(".kerdar/config.yaml"),  # Project-specific
        Path.home() / ".kerdar/config.yaml",  # User-global
    ]


def load_config(path: str | Path | None = None) -> EngineConfig:
    """Load engine configuration.

    Args:
        path: Explicit config file. Must exist when given.

    Returns:
        EngineConfig (defaults when no config file is found)

    Raises:
        ConfigError: If the file cannot be parsed or fails validation
    """
    if path is not None:
        config_path = Path(path)
        if not config_path.exists():
            raise ConfigError(f"Config file not found: {config_path}")
    else:
        config_path = next((p for p in default_search_paths() if p.exists()), None)
        if config_path is None:
            logger.debug("No config file found, using defaults")
            return EngineConfig()

    try:
        with open(config_path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {config_path}: {e}") from e

    if data is None:
        return EngineConfig()
    if not isinstance(data, dict):
        raise ConfigError(
            f"Invalid config in {config_path}: expected a mapping, got {type(data).__name__}"
        )

    try:
        config = EngineConfig.model_validate(data)
    except pydantic.ValidationError as e:
        details = "; ".join(
            f"{'.'.join(str(x) for x in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise ConfigError(f"Invalid config in {config_path}: {details}") from e

    config.catalog.node_type_paths = [
        p if p.is_absolute() else (config_path.parent / p) for p in config.catalog.node_type_paths
    ]
    logger.debug(f"Loaded config from {config_path}")
    return config
