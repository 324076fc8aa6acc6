"""
ShardVault Configuration

Deployment settings passed to the orchestrators at construction time.

Resolution priority: explicit overrides (CLI) > YAML file > environment
variables > defaults.
"""

import os
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, model_validator
import structlog

from shared.errors import InvalidInputError
from shared.models import ThresholdParams

logger = structlog.get_logger()

DEFAULT_CONFIG_PATH = Path.home() / ".shardvault" / "config.yaml"

# Environment variable -> (section, key); section None means top level
ENV_VARS = {
    "SHARDVAULT_NODE_NAMES": (None, "node_names"),
    "SHARDVAULT_THRESHOLD_T": ("threshold", "t"),
    "SHARDVAULT_THRESHOLD_N": ("threshold", "n"),
    "SHARDVAULT_POLL_INTERVAL": (None, "poll_interval"),
    "SHARDVAULT_TIMEOUT": (None, "default_timeout"),
    "SHARDVAULT_DIRECTORY_URL": ("services", "node_directory"),
    "SHARDVAULT_BLOB_STORE_URL": ("services", "blob_store"),
    "SHARDVAULT_REGISTRY_URL": ("services", "metadata_registry"),
    "SHARDVAULT_LEDGER_URL": ("services", "task_ledger"),
}


class ServiceURLs(BaseModel):
    """Base URLs of the external services."""
    node_directory: str = "http://localhost:8101"
    blob_store: str = "http://localhost:8102"
    metadata_registry: str = "http://localhost:8103"
    task_ledger: str = "http://localhost:8104"


class VaultConfig(BaseModel):
    """Participant set, threshold and task parameters of a deployment."""
    node_names: list[str] = Field(default_factory=lambda: ["node-1", "node-2", "node-3"])
    threshold: ThresholdParams = Field(default_factory=ThresholdParams)
    task_type: str = "ZKLHEDataSharing"
    compute_limit: str = "9000000000000"
    memory_limit: str = "512M"
    poll_interval: float = Field(default=0.5, gt=0)  # seconds
    default_timeout: float = Field(default=10.0, gt=0)  # seconds
    default_symbol: str = "PADO Token"
    request_timeout: float = 30.0
    services: ServiceURLs = Field(default_factory=ServiceURLs)

    @model_validator(mode="after")
    def _check_participants(self) -> "VaultConfig":
        if len(set(self.node_names)) != len(self.node_names):
            raise ValueError("node_names must be unique")
        if len(self.node_names) != self.threshold.n:
            raise ValueError(
                f"threshold.n={self.threshold.n} but {len(self.node_names)} node names configured"
            )
        return self

    def node_position(self, name: str) -> Optional[int]:
        """1-based position of a node in the participant list, or None."""
        try:
            return self.node_names.index(name) + 1
        except ValueError:
            return None


def _coerce_env(key: str, value: str) -> Any:
    if key == "node_names":
        return [name.strip() for name in value.split(",") if name.strip()]
    return value


def _merge(base: dict, override: dict) -> dict:
    """Merge one level deep so partial sections keep their other keys."""
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = {**merged[key], **value}
        else:
            merged[key] = value
    return merged


def config_from_env(environ: Optional[dict] = None) -> dict:
    """Collect settings from SHARDVAULT_* environment variables."""
    environ = os.environ if environ is None else environ
    settings: dict = {}
    for var, (section, key) in ENV_VARS.items():
        if var not in environ:
            continue
        value = _coerce_env(key, environ[var])
        if section is None:
            settings[key] = value
        else:
            settings.setdefault(section, {})[key] = value
    return settings


def load_config_file(config_path: Path) -> dict:
    """
    Load configuration from a YAML file.

    Args:
        config_path: Path to the YAML configuration file

    Returns:
        Dictionary with configuration values
    """
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path, "r") as f:
        config = yaml.safe_load(f) or {}

    if not isinstance(config, dict):
        raise InvalidInputError(f"Config file {config_path} must contain a mapping")
    return config


def load_config(
    config_path: Optional[Path] = None,
    overrides: Optional[dict] = None,
    environ: Optional[dict] = None
) -> VaultConfig:
    """
    Build a VaultConfig from defaults, environment, YAML and overrides.

    Raises:
        FileNotFoundError: If an explicit config path does not exist
        InvalidInputError: If the merged settings are invalid
    """
    settings = config_from_env(environ)
    if config_path is not None:
        settings = _merge(settings, load_config_file(config_path))
    if overrides:
        settings = _merge(settings, {k: v for k, v in overrides.items() if v is not None})

    try:
        config = VaultConfig.model_validate(settings)
    except ValidationError as e:
        raise InvalidInputError(f"Invalid configuration: {e}") from e

    logger.debug(
        "config_loaded",
        path=str(config_path) if config_path else None,
        nodes=config.node_names,
        threshold=f"{config.threshold.t}-of-{config.threshold.n}"
    )
    return config
