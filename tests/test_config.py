"""
Unit tests for configuration loading and validation.

Tests strict validation and defaults for inventory configs.
"""

import os
import tempfile

import pytest
import yaml

from server_inventory.config.loader import (
    DatabaseConfig,
    InventoryConfig,
    LoggingConfig,
    default_config,
    load_inventory_config,
)
from server_inventory.storage.db import DEFAULT_DB_PATH


class TestConfigLoading:
    """Test configuration loading and validation."""

    def setup_method(self):
        """Set up test environment."""
        self.temp_dir = tempfile.mkdtemp()

    def teardown_method(self):
        """Clean up test environment."""
        import shutil
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _write_config(self, config_data, filename: str = "config.yaml") -> str:
        """Write configuration data to temporary file."""
        config_path = os.path.join(self.temp_dir, filename)
        with open(config_path, 'w', encoding='utf-8') as f:
            yaml.dump(config_data, f)
        return config_path

    def test_valid_config_loads_correctly(self):
        """Test that a valid configuration loads correctly."""
        config_path = self._write_config({
            "database": {"path": "/var/lib/inventory/servers.db"},
            "logging": {"level": "debug"},
        })
        config = load_inventory_config(config_path)

        assert isinstance(config, InventoryConfig)
        assert config.database.path == "/var/lib/inventory/servers.db"
        assert config.logging.level == "DEBUG"

    def test_sections_are_optional(self):
        """Test that a config with only one section falls back to defaults."""
        config_path = self._write_config({"database": {"path": "inv.db"}})
        config = load_inventory_config(config_path)

        assert config.database.path == "inv.db"
        assert config.logging.level == "WARNING"

    def test_default_config(self):
        """Test the defaults used without a config file."""
        config = default_config()
        assert config.database.path == DEFAULT_DB_PATH
        assert config.logging.level == "WARNING"

    def test_missing_file_raises_error(self):
        """Test that missing config file raises error."""
        with pytest.raises(FileNotFoundError, match="Inventory config file not found"):
            load_inventory_config("nonexistent.yaml")

    def test_empty_config_raises_error(self):
        """Test that empty config file raises error."""
        config_path = self._write_config({})

        with pytest.raises(ValueError, match="Configuration file is empty"):
            load_inventory_config(config_path)

    def test_invalid_yaml_raises_error(self):
        """Test that invalid YAML raises error."""
        config_path = os.path.join(self.temp_dir, "invalid.yaml")
        with open(config_path, 'w') as f:
            f.write("invalid: yaml: content: [")

        with pytest.raises(yaml.YAMLError):
            load_inventory_config(config_path)

    def test_non_mapping_config_raises_error(self):
        """Test that a YAML list is rejected."""
        config_path = self._write_config(["database"])

        with pytest.raises(ValueError, match="must be a dictionary"):
            load_inventory_config(config_path)

    def test_unknown_top_level_keys_raise_error(self):
        """Test that unknown top-level keys are rejected."""
        config_path = self._write_config({
            "database": {"path": "inv.db"},
            "metrics": {"enabled": True},
        })

        with pytest.raises(ValueError, match="Unknown configuration keys"):
            load_inventory_config(config_path)

    def test_unknown_section_keys_raise_error(self):
        """Test that unknown keys inside a section are rejected."""
        config_path = self._write_config({"database": {"path": "inv.db", "host": "x"}})

        with pytest.raises(ValueError, match="Unknown database keys"):
            load_inventory_config(config_path)

    def test_section_must_be_dictionary(self):
        """Test that a scalar section is rejected."""
        config_path = self._write_config({"logging": "debug"})

        with pytest.raises(ValueError, match="'logging' must be a dictionary"):
            load_inventory_config(config_path)

    def test_invalid_log_level_raises_error(self):
        """Test that an unknown log level is rejected."""
        config_path = self._write_config({"logging": {"level": "verbose"}})

        with pytest.raises(ValueError, match="logging level must be one of"):
            load_inventory_config(config_path)

    def test_non_string_database_path_raises_error(self):
        """Test that a numeric database path is rejected."""
        config_path = self._write_config({"database": {"path": 42}})

        with pytest.raises(ValueError, match="'database.path' must be a string"):
            load_inventory_config(config_path)


class TestConfigDataclasses:
    """Test dataclass-level validation."""

    def test_empty_database_path_rejected(self):
        """Test that a blank path is rejected."""
        with pytest.raises(ValueError, match="database path must not be empty"):
            DatabaseConfig(path="  ")

    def test_lowercase_level_rejected_directly(self):
        """The loader upper-cases levels; the dataclass expects canonical names."""
        with pytest.raises(ValueError):
            LoggingConfig(level="info")
