"""
Configuration manager for block analytics settings.

Loads configuration from YAML files, validates settings,
and provides environment variable substitution.
"""

import copy
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .blocks.assignment import BlockStrategy

LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}

DEFAULT_SECTIONS: Dict[str, Dict[str, Any]] = {
    "assignment": {
        "block_size": 100,
        "use_natural_boundaries": False,
        "gap_threshold": 50,
    },
    "geometry": {
        "source_crs": "EPSG:4326",
        "metric_crs": "EPSG:32617",
        "min_endpoint_distance_m": 10.0,
        "buffer_distance_m": 50.0,
    },
    "validation": {
        "sparse_min_density": 0.3,
        "number_spacing": 2,
        "small_block_min_parcels": 3,
    },
    "ingest": {
        "chunk_size": 5000,
        "require_coordinates": False,
    },
    "api": {
        "endpoints": {},
        "batch_size": 500,
        "max_retries": 3,
        "retry_delay": 1.0,
        "max_workers": 5,
        "timeout": 60,
    },
}


def _coerce(value: Any, default: Any) -> Any:
    """Convert substituted strings back to the type of the default value."""
    if not isinstance(value, str) or default is None or isinstance(default, str):
        return value
    if isinstance(default, bool):
        return value.strip().lower() in ("1", "true", "yes", "on")
    if isinstance(default, int):
        return int(value)
    if isinstance(default, float):
        return float(value)
    return value


@dataclass
class BlockConfig:
    """Validated block analytics configuration."""
    name: str
    db_path: Path
    strategy: BlockStrategy = BlockStrategy.FIXED_SIZE
    log_level: str = "INFO"
    assignment: Dict[str, Any] = field(default_factory=lambda: dict(DEFAULT_SECTIONS["assignment"]))
    geometry: Dict[str, Any] = field(default_factory=lambda: dict(DEFAULT_SECTIONS["geometry"]))
    validation: Dict[str, Any] = field(default_factory=lambda: dict(DEFAULT_SECTIONS["validation"]))
    ingest: Dict[str, Any] = field(default_factory=lambda: dict(DEFAULT_SECTIONS["ingest"]))
    api: Dict[str, Any] = field(default_factory=lambda: copy.deepcopy(DEFAULT_SECTIONS["api"]))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "name": self.name,
            "db_path": str(self.db_path),
            "strategy": self.strategy.value,
            "log_level": self.log_level,
            "assignment": self.assignment,
            "geometry": self.geometry,
            "validation": self.validation,
            "ingest": self.ingest,
            "api": self.api,
        }


class ConfigManager:
    """Manages block analytics configuration."""

    def __init__(self, config_path: Optional[Path] = None):
        """Initialize configuration manager.

        Args:
            config_path: Path to configuration YAML file (optional)
        """
        self.config_path = config_path
        self._config: Optional[Dict[str, Any]] = None

    def load(self, config_path: Optional[Path] = None) -> BlockConfig:
        """Load and validate configuration from YAML file.

        Args:
            config_path: Path to configuration file (overrides init path)

        Returns:
            BlockConfig with validated settings

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If configuration is invalid
        """
        path = config_path or self.config_path
        if path is None:
            raise ValueError("No configuration path provided")

        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        with open(path, 'r') as f:
            config = yaml.safe_load(f) or {}

        return self.from_dict(config)

    def from_dict(self, config: Dict[str, Any]) -> BlockConfig:
        """Build a BlockConfig from an in-memory mapping."""
        if not isinstance(config, dict):
            raise ValueError("Configuration must be a mapping")

        config = self._substitute_env_vars(config)
        self._validate_config(config)
        self._config = config
        return self._create_block_config(config)

    def _substitute_env_vars(self, config: Any) -> Any:
        """Recursively substitute environment variables in configuration.

        Supports syntax: ${VAR_NAME} or ${VAR_NAME:default_value}
        """
        if isinstance(config, dict):
            return {
                key: self._substitute_env_vars(value)
                for key, value in config.items()
            }
        elif isinstance(config, list):
            return [self._substitute_env_vars(item) for item in config]
        elif isinstance(config, str):
            return self._substitute_env_var_string(config)
        else:
            return config

    def _substitute_env_var_string(self, value: str) -> str:
        # Pattern: ${VAR_NAME} or ${VAR_NAME:default}
        pattern = r'\$\{([^}:]+)(?::([^}]*))?\}'

        def replacer(match):
            var_name = match.group(1)
            default_value = match.group(2) if match.group(2) is not None else ""
            return os.environ.get(var_name, default_value)

        return re.sub(pattern, replacer, value)

    def _validate_config(self, config: Dict[str, Any]) -> None:
        """Validate configuration structure and values.

        Raises:
            ValueError: If configuration is invalid
        """
        if "name" not in config:
            raise ValueError("Configuration missing required field: name")

        if "database" not in config or "db_path" not in (config["database"] or {}):
            raise ValueError("Configuration missing required field: database.db_path")

        strategy = config.get("strategy", BlockStrategy.FIXED_SIZE.value)
        valid_strategies = {s.value for s in BlockStrategy}
        if strategy not in valid_strategies:
            raise ValueError(f"Unknown strategy '{strategy}' (expected one of {sorted(valid_strategies)})")

        log_level = str(config.get("log_level", "INFO")).upper()
        if log_level not in LOG_LEVELS:
            raise ValueError(f"Invalid log_level: {config.get('log_level')}")

        for section in DEFAULT_SECTIONS:
            value = config.get(section)
            if value is not None and not isinstance(value, dict):
                raise ValueError(f"Section {section} must be a dictionary")

        assignment = config.get("assignment") or {}
        if int(assignment.get("block_size", 100)) <= 0:
            raise ValueError("assignment.block_size must be positive")
        if int(assignment.get("gap_threshold", 50)) < 0:
            raise ValueError("assignment.gap_threshold must not be negative")

        geometry = config.get("geometry") or {}
        for key in ("min_endpoint_distance_m", "buffer_distance_m"):
            if float(geometry.get(key, 0)) < 0:
                raise ValueError(f"geometry.{key} must not be negative")

        validation = config.get("validation") or {}
        density = float(validation.get("sparse_min_density", 0.3))
        if not 0 <= density <= 1:
            raise ValueError("validation.sparse_min_density must be between 0 and 1")
        if int(validation.get("number_spacing", 2)) <= 0:
            raise ValueError("validation.number_spacing must be positive")

        ingest = config.get("ingest") or {}
        if int(ingest.get("chunk_size", 5000)) <= 0:
            raise ValueError("ingest.chunk_size must be positive")

        api = config.get("api") or {}
        for key in ("batch_size", "max_workers"):
            if int(api.get(key, 1)) <= 0:
                raise ValueError(f"api.{key} must be positive")
        if int(api.get("max_retries", 0)) < 0:
            raise ValueError("api.max_retries must not be negative")

    def _create_block_config(self, config: Dict[str, Any]) -> BlockConfig:
        sections = {}
        for section, defaults in DEFAULT_SECTIONS.items():
            merged = copy.deepcopy(defaults)
            for key, value in (config.get(section) or {}).items():
                merged[key] = _coerce(value, defaults.get(key))
            sections[section] = merged

        # Empty endpoint strings come from unset ${VAR} references
        sections["api"]["endpoints"] = {
            name: url for name, url in (sections["api"].get("endpoints") or {}).items() if url
        }

        strategy = BlockStrategy(config.get("strategy", BlockStrategy.FIXED_SIZE.value))
        if strategy == BlockStrategy.NATURAL_BOUNDARY:
            sections["assignment"]["use_natural_boundaries"] = True

        return BlockConfig(
            name=config["name"],
            db_path=Path(config["database"]["db_path"]).expanduser(),
            strategy=strategy,
            log_level=str(config.get("log_level", "INFO")).upper(),
            **sections,
        )

    def save_example_config(self, output_path: Path) -> None:
        """Save an example configuration file.

        Args:
            output_path: Path where to save example config
        """
        example_config = {
            "name": "detroit_block_analytics",
            "database": {
                "db_path": "${BLOCKS_DB_PATH:detroit_blocks.db}"
            },
            "strategy": BlockStrategy.FIXED_SIZE.value,
            "log_level": "${LOG_LEVEL:INFO}",
            "assignment": dict(DEFAULT_SECTIONS["assignment"]),
            "geometry": dict(DEFAULT_SECTIONS["geometry"]),
            "validation": dict(DEFAULT_SECTIONS["validation"]),
            "ingest": dict(DEFAULT_SECTIONS["ingest"]),
            "api": {
                "endpoints": {
                    "parcels": "${PARCELS_API}",
                    "addresses": "${ADDRESSES_API}",
                    "buildings": "${BUILDINGS_API}",
                    "streets": "${STREETS_API}",
                    "geocoder": "${GEOCODER_API}",
                },
                "batch_size": "${BATCH_SIZE:500}",
                "max_retries": "${MAX_RETRIES:3}",
                "retry_delay": 1.0,
                "max_workers": "${CONCURRENT_REQUESTS:5}",
                "timeout": 60,
            },
        }

        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, 'w') as f:
            yaml.dump(example_config, f, default_flow_style=False, sort_keys=False)
