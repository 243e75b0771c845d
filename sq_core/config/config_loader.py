"""
Configuration loader for SlotQuorum
Loads the optional YAML file and resolves the configuration of a run
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..async_client import COMMITMENT_LEVELS, TRANSACTION_ENCODINGS
from ..consensus.consensus_errors import ConfigError
from .settings import Settings, clean_endpoints

logger = logging.getLogger(__name__)

# Settings field -> RpcConfig field
RPC_SETTING_FIELDS = {
    "RPC_TIMEOUT_SECONDS": "timeout",
    "QUERY_TIMEOUT_SECONDS": "query_timeout",
    "MAX_CONCURRENCY": "max_concurrency",
    "RPC_COMMITMENT": "commitment",
    "TRANSACTION_ENCODING": "encoding",
}


class RpcConfig(BaseModel):
    """RPC client configuration"""

    model_config = ConfigDict(frozen=True)

    timeout: float = Field(default=30.0, gt=0)
    query_timeout: float = Field(default=15.0, ge=0)
    max_concurrency: int = Field(default=0, ge=0)
    commitment: Optional[str] = None
    encoding: str = "base64"

    @field_validator("commitment")
    @classmethod
    def _check_commitment(cls, value: Optional[str]):
        if value is not None and value not in COMMITMENT_LEVELS:
            raise ValueError(f"commitment must be one of {', '.join(COMMITMENT_LEVELS)}")
        return value

    @field_validator("encoding")
    @classmethod
    def _check_encoding(cls, value: str):
        if value not in TRANSACTION_ENCODINGS:
            raise ValueError(f"encoding must be one of {', '.join(TRANSACTION_ENCODINGS)}")
        return value


class QuorumConfig(BaseModel):
    """Endpoint set and slot override as written in the YAML file"""

    endpoints: List[str] = Field(default_factory=list)
    slot: int = Field(default=0, ge=0)


class FileConfig(BaseModel):
    """Complete YAML file configuration"""

    quorum: QuorumConfig = Field(default_factory=QuorumConfig)
    rpc: Dict[str, Any] = Field(default_factory=dict)


class RunConfig(BaseModel):
    """Everything one pass needs, fully resolved."""

    model_config = ConfigDict(frozen=True)

    endpoints: List[str]
    slot_override: Optional[int] = None
    rpc: RpcConfig = Field(default_factory=RpcConfig)
    metrics_file: Optional[str] = None
    log_level: str = "INFO"


def load_config_file(path: str) -> FileConfig:
    """Load and validate a YAML configuration file."""
    file_path = Path(path)

    if not file_path.exists():
        raise ConfigError(f"Config file not found: {file_path}")

    try:
        with open(file_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.error(f"Error loading config {file_path}: {e}")
        raise ConfigError(f"Failed to load {file_path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"{file_path} must contain a mapping at the top level")

    try:
        config = FileConfig(**data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration in {file_path}: {e}") from e

    logger.info(f"Loaded config: {file_path}")
    return config


def _resolve_rpc(settings: Settings, file_config: FileConfig) -> RpcConfig:
    rpc_values: Dict[str, Any] = dict(file_config.rpc)
    for setting_name, rpc_name in RPC_SETTING_FIELDS.items():
        if setting_name in settings.model_fields_set or rpc_name not in rpc_values:
            rpc_values[rpc_name] = getattr(settings, setting_name)
    try:
        return RpcConfig(**rpc_values)
    except ValidationError as e:
        raise ConfigError(f"Invalid RPC configuration: {e}") from e


def resolve_run_config(
    settings: Settings,
    endpoints: Optional[Sequence[str]] = None,
    slot: Optional[int] = None,
    config_file: Optional[str] = None,
) -> RunConfig:
    """
    Merge CLI values, settings (environment/.env) and the YAML file.

    Precedence is CLI > environment > YAML file > defaults.

    Raises:
        ConfigError: if no endpoint is configured or a value is invalid.
    """
    config_path = config_file or settings.CONFIG_FILE
    file_config = load_config_file(config_path) if config_path else FileConfig()

    resolved_endpoints = clean_endpoints(endpoints or [])
    if not resolved_endpoints:
        resolved_endpoints = settings.get_private_endpoints()
    if not resolved_endpoints:
        resolved_endpoints = clean_endpoints(file_config.quorum.endpoints)
    if not resolved_endpoints:
        raise ConfigError(
            "PRIVATE_ENDPOINTS must be set with a `;` separated list of endpoints."
        )

    if slot is None:
        if "SLOT_OVERRIDE" in settings.model_fields_set:
            slot = settings.SLOT_OVERRIDE
        else:
            slot = file_config.quorum.slot
    if slot < 0:
        raise ConfigError(f"Slot override must not be negative, got {slot}")

    return RunConfig(
        endpoints=resolved_endpoints,
        slot_override=slot or None,
        rpc=_resolve_rpc(settings, file_config),
        metrics_file=settings.METRICS_FILE,
        log_level=settings.LOG_LEVEL,
    )
