"""
Configuration management and loading.

Handles application settings read from a YAML file.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Dict

import yaml

from ..storage.db import DEFAULT_DB_PATH

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


@dataclass(frozen=True)
class DatabaseConfig:
    """Where the inventory database lives."""
    path: str = DEFAULT_DB_PATH

    def __post_init__(self):
        """Validate the database path is not empty."""
        if not self.path or not self.path.strip():
            raise ValueError("database path must not be empty")


@dataclass(frozen=True)
class LoggingConfig:
    """Logging verbosity for the command line."""
    level: str = "WARNING"

    def __post_init__(self):
        """Validate the log level name."""
        if self.level not in LOG_LEVELS:
            raise ValueError(f"logging level must be one of: {list(LOG_LEVELS)}")


@dataclass(frozen=True)
class InventoryConfig:
    """Complete application configuration."""
    database: DatabaseConfig
    logging: LoggingConfig


def default_config() -> InventoryConfig:
    """Configuration used when no file is given."""
    return InventoryConfig(database=DatabaseConfig(), logging=LoggingConfig())


def load_inventory_config(path: str) -> InventoryConfig:
    """Load and validate inventory configuration from YAML file.

    Both sections are optional; omitted values fall back to the defaults.
    Unknown keys are rejected so typos do not silently point at the wrong
    database.

    Args:
        path: Path to YAML configuration file

    Returns:
        Validated InventoryConfig object

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Inventory config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if not raw_config:
        raise ValueError("Configuration file is empty")
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration must be a dictionary")

    allowed_top_keys = {'database', 'logging'}
    unknown_keys = set(raw_config.keys()) - allowed_top_keys
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    database_data = _section(raw_config, 'database', {'path'})
    logging_data = _section(raw_config, 'logging', {'level'})

    database = DatabaseConfig()
    if 'path' in database_data:
        db_path = database_data['path']
        if not isinstance(db_path, str):
            raise ValueError("'database.path' must be a string")
        database = DatabaseConfig(path=db_path)

    log_config = LoggingConfig()
    if 'level' in logging_data:
        level = logging_data['level']
        if not isinstance(level, str):
            raise ValueError("'logging.level' must be a string")
        log_config = LoggingConfig(level=level.upper())

    return InventoryConfig(database=database, logging=log_config)


def _section(raw_config: Dict, name: str, allowed_keys: set) -> Dict:
    """Return an optional config section after checking its keys.

    Raises:
        ValueError: If the section is not a dictionary or has unknown keys
    """
    data = raw_config.get(name)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"'{name}' must be a dictionary")

    unknown_keys = set(data.keys()) - allowed_keys
    if unknown_keys:
        raise ValueError(f"Unknown {name} keys: {unknown_keys}")
    return data
