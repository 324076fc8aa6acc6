"""
Tests for deployment configuration loading.
"""

import pytest
import yaml

from shared.errors import InvalidInputError
from coordinator.config import VaultConfig, config_from_env, load_config


class TestVaultConfig:
    """Tests for config validation."""

    def test_defaults(self):
        config = VaultConfig()
        assert config.node_names == ["node-1", "node-2", "node-3"]
        assert config.threshold.t == 2
        assert config.poll_interval == 0.5
        assert config.default_timeout == 10.0
        assert config.default_symbol == "PADO Token"

    def test_node_count_must_match_n(self):
        """Test that n must equal the number of node names."""
        with pytest.raises(ValueError):
            VaultConfig(node_names=["a", "b"], threshold={"t": 2, "n": 3})

    def test_duplicate_names(self):
        with pytest.raises(ValueError):
            VaultConfig(node_names=["a", "a", "b"])

    def test_threshold_bounds(self):
        """Test that t > n is rejected."""
        with pytest.raises(ValueError):
            VaultConfig(node_names=["a", "b"], threshold={"t": 3, "n": 2})

    def test_node_position(self):
        config = VaultConfig(node_names=["x", "y", "z"])
        assert config.node_position("x") == 1
        assert config.node_position("z") == 3
        assert config.node_position("w") is None


class TestLoadConfig:
    """Tests for environment, file and override resolution."""

    def test_env(self):
        settings = config_from_env({
            "SHARDVAULT_NODE_NAMES": "a, b",
            "SHARDVAULT_THRESHOLD_N": "2",
            "SHARDVAULT_LEDGER_URL": "http://ledger:9000",
        })
        assert settings == {
            "node_names": ["a", "b"],
            "threshold": {"n": "2"},
            "services": {"task_ledger": "http://ledger:9000"},
        }

    def test_env_only(self):
        config = load_config(environ={
            "SHARDVAULT_NODE_NAMES": "a,b",
            "SHARDVAULT_THRESHOLD_N": "2",
            "SHARDVAULT_TIMEOUT": "3",
        })
        assert config.node_names == ["a", "b"]
        assert config.threshold.n == 2
        assert config.default_timeout == 3.0

    def test_file_overrides_env(self, tmp_path):
        """Test that YAML beats the environment and keeps other section keys."""
        path = tmp_path / "config.yaml"
        path.write_text(yaml.safe_dump({
            "poll_interval": 0.1,
            "services": {"blob_store": "http://blobs:1"},
        }))

        config = load_config(path, environ={
            "SHARDVAULT_POLL_INTERVAL": "2",
            "SHARDVAULT_LEDGER_URL": "http://ledger:9000",
        })

        assert config.poll_interval == 0.1
        assert config.services.blob_store == "http://blobs:1"
        assert config.services.task_ledger == "http://ledger:9000"

    def test_overrides_beat_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("default_timeout: 5\n")

        config = load_config(path, overrides={"default_timeout": 1.5, "poll_interval": None}, environ={})

        assert config.default_timeout == 1.5
        assert config.poll_interval == 0.5

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nope.yaml", environ={})

    def test_non_mapping_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(InvalidInputError):
            load_config(path, environ={})

    def test_invalid_values(self):
        """Test that validation errors surface as InvalidInputError."""
        with pytest.raises(InvalidInputError):
            load_config(environ={"SHARDVAULT_POLL_INTERVAL": "0"})
