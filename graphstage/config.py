"""
Configuration management for graphstage.

Loads and validates a graphstage.yaml configuration file:

    pipeline:
      name: friends-of-friends
    graph:
      input:   {format: graphson, location: data/graph.json}
      output:  {format: graphson, location: out/graph, overwrite: false}
    statistics:
      output:  {format: text, location: out/stats}
    intermediate:
      root: /tmp/graphstage
    logging:
      level: INFO
      format: structured
      console: true
      output: logs/graphstage-{date}.log
    properties:
      mapred.reduce.tasks: "4"
"""

import os
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

import yaml


CONFIG_ENV_VAR = "GRAPHSTAGE_CONFIG"
DEFAULT_CONFIG_FILE = "graphstage.yaml"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class ConfigError(Exception):
    """Configuration validation error."""
    pass


def _section(data: Dict[str, Any], *path: str) -> Dict[str, Any]:
    """Walk nested mappings, returning {} for missing sections."""
    node: Any = data
    for part in path:
        node = node.get(part) if isinstance(node, dict) else None
        if node is None:
            return {}
    if not isinstance(node, dict):
        raise ConfigError(f"Section '{'.'.join(path)}' must be a mapping")
    return node


def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class GraphStageConfig:
    """Complete graphstage configuration."""

    def __init__(self, config_path: Path):
        self.config_path = config_path
        self.raw_config = self._load_yaml()

        pipeline = _section(self.raw_config, "pipeline")
        self.name = pipeline.get("name", "unnamed-pipeline")

        self.graph_input = _section(self.raw_config, "graph", "input")
        self.graph_output = _section(self.raw_config, "graph", "output")
        self.statistics_output = _section(self.raw_config, "statistics", "output")
        self.intermediate = _section(self.raw_config, "intermediate")
        self.logging = _section(self.raw_config, "logging")
        self.properties = _section(self.raw_config, "properties")

    def _load_yaml(self) -> Dict[str, Any]:
        """Load and parse YAML configuration file."""
        if not self.config_path.exists():
            raise ConfigError(f"Configuration file not found: {self.config_path}")

        try:
            with open(self.config_path, "r") as f:
                config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML syntax: {e}")

        if not config:
            raise ConfigError("Configuration file is empty")
        if not isinstance(config, dict):
            raise ConfigError("Configuration root must be a mapping")
        return config

    def get_source_format(self) -> Optional[str]:
        return self.graph_input.get("format")

    def get_source_location(self) -> Optional[str]:
        location = self.graph_input.get("location")
        return str(location) if location is not None else None

    def get_graph_sink_format(self) -> Optional[str]:
        return self.graph_output.get("format")

    def get_graph_sink_location(self) -> Optional[str]:
        location = self.graph_output.get("location")
        return str(location) if location is not None else None

    def get_overwrite(self) -> bool:
        """Check if an existing sink should be deleted before running."""
        return bool(self.graph_output.get("overwrite", False))

    def get_statistics_sink_format(self) -> str:
        return self.statistics_output.get("format", "text")

    def get_statistics_sink_location(self) -> Optional[str]:
        """Statistics output location, defaulting to the graph output location."""
        location = self.statistics_output.get("location")
        if location is None:
            return self.get_graph_sink_location()
        return str(location)

    def get_intermediate_root(self) -> str:
        return str(self.intermediate.get("root", ""))

    def get_properties(self) -> Dict[str, str]:
        """Pass-through properties, stringified for stage configurations."""
        return {str(k): _stringify(v) for k, v in self.properties.items()}

    def get_log_file_path(self) -> Optional[Path]:
        """Get log file path with date interpolation (None disables file logging)."""
        log_output = self.logging.get("output")
        if not log_output:
            return None
        log_output = log_output.replace("{date}", datetime.now().strftime("%Y-%m-%d"))
        return Path(log_output)

    def get_log_level(self) -> str:
        """Get logging level."""
        return str(self.logging.get("level", "INFO")).upper()

    def get_log_format(self) -> str:
        """Get log format (structured or pretty)."""
        return self.logging.get("format", "structured")

    def should_log_to_console(self) -> bool:
        """Check if console logging is enabled."""
        return self.logging.get("console", True)

    def validate(self) -> None:
        """
        Validate that required values are present.

        Format names are checked by the composer so unsupported formats are
        reported as UnsupportedFormat at compose time.
        """
        if not self.name:
            raise ConfigError("Pipeline name is required")
        if not self.get_source_format():
            raise ConfigError("graph.input.format is required")
        if not self.get_graph_sink_format():
            raise ConfigError("graph.output.format is required")
        if self.get_log_format() not in ("structured", "pretty"):
            raise ConfigError(f"logging.format must be 'structured' or 'pretty', got {self.get_log_format()!r}")
        if self.get_log_level() not in LOG_LEVELS:
            raise ConfigError(f"logging.level must be one of {', '.join(LOG_LEVELS)}, got {self.get_log_level()!r}")

    def __repr__(self) -> str:
        return f"GraphStageConfig(name={self.name}, path={self.config_path})"


def load_config(config_path: Optional[Path] = None) -> GraphStageConfig:
    """
    Load and validate graphstage configuration from a YAML file.

    Args:
        config_path: Path to config file. Defaults to $GRAPHSTAGE_CONFIG,
            then ./graphstage.yaml

    Returns:
        GraphStageConfig instance

    Raises:
        ConfigError: If config is invalid or missing
    """
    if config_path is None:
        env_path = os.environ.get(CONFIG_ENV_VAR)
        config_path = Path(env_path) if env_path else Path.cwd() / DEFAULT_CONFIG_FILE

    config = GraphStageConfig(Path(config_path))
    config.validate()
    return config
