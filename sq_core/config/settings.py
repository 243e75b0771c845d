# sq_core/config/settings.py

import logging
import re
from typing import List, Optional

import coloredlogs
from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..async_client import COMMITMENT_LEVELS, TRANSACTION_ENCODINGS
from ..consensus.consensus_errors import ConfigError

# ANSI color codes
RED = "\033[91m"
YELLOW = "\033[93m"
RESET = "\033[0m"

# Base58 block hashes (32-44 chars) and negative content verdicts
BLOCKHASH_REGEX = re.compile(r"(\b[1-9A-HJ-NP-Za-km-z]{32,44}\b)")
MISMATCH_REGEX = re.compile(r"(content match: False)")

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class HighlightFormatter(coloredlogs.ColoredFormatter):
    """Custom formatter to highlight block hashes and content mismatches."""

    def format(self, record):
        formatted_message = super().format(record)

        if MISMATCH_REGEX.search(formatted_message):
            formatted_message = MISMATCH_REGEX.sub(f"{RED}\\1{RESET}", formatted_message)

        formatted_message = BLOCKHASH_REGEX.sub(
            f"{YELLOW}\\1{RESET}", formatted_message
        )
        return formatted_message


class Settings(BaseSettings):
    """
    Centralised configuration, loaded from environment variables or a .env file.
    """

    model_config = SettingsConfigDict(
        extra="ignore",
        env_file=".env",
        env_file_encoding="utf-8",
        populate_by_name=True,
    )

    # --- Endpoint set ---
    PRIVATE_ENDPOINTS: str = Field(
        default="",
        alias="PRIVATE_ENDPOINTS",
        description="`;` separated list of node RPC endpoints to poll",
    )
    SLOT_OVERRIDE: int = Field(
        default=0,
        ge=0,
        alias="SLOT_OVERRIDE",
        description="Slot to inspect instead of the quorum slot (0 = use quorum)",
    )

    # --- RPC ---
    RPC_TIMEOUT_SECONDS: float = Field(
        default=30.0,
        gt=0,
        alias="RPC_TIMEOUT_SECONDS",
        description="HTTP timeout for a single RPC request",
    )
    QUERY_TIMEOUT_SECONDS: float = Field(
        default=15.0,
        ge=0,
        alias="QUERY_TIMEOUT_SECONDS",
        description="Hard limit for one endpoint query; 0 waits indefinitely",
    )
    MAX_CONCURRENCY: int = Field(
        default=0,
        ge=0,
        alias="MAX_CONCURRENCY",
        description="Maximum queries in flight per round; 0 = one per endpoint",
    )
    RPC_COMMITMENT: Optional[str] = Field(
        default=None,
        alias="RPC_COMMITMENT",
        description="Commitment level sent with queries (processed/confirmed/finalized)",
    )
    TRANSACTION_ENCODING: str = Field(
        default="base64",
        alias="TRANSACTION_ENCODING",
        description="Encoding requested for block transactions (base64/json)",
    )

    # --- Output ---
    LOG_LEVEL: str = Field(
        default="INFO",
        alias="LOG_LEVEL",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    METRICS_FILE: Optional[str] = Field(
        default=None,
        alias="METRICS_FILE",
        description="Write Prometheus metrics to this textfile after a run",
    )
    CONFIG_FILE: Optional[str] = Field(
        default=None,
        alias="SLOTQUORUM_CONFIG_FILE",
        description="Optional YAML file with endpoints and RPC options",
    )

    @field_validator("RPC_COMMITMENT", mode="before")
    def validate_commitment(cls, value: Optional[str]):
        if value is None:
            return None
        normalized = str(value).strip().lower()
        if not normalized:
            return None
        if normalized not in COMMITMENT_LEVELS:
            raise ValueError(
                f"RPC_COMMITMENT must be one of {', '.join(COMMITMENT_LEVELS)}"
            )
        return normalized

    @field_validator("TRANSACTION_ENCODING", mode="before")
    def validate_encoding(cls, value: str):
        normalized = str(value).strip().lower()
        if normalized not in TRANSACTION_ENCODINGS:
            raise ValueError(
                f"TRANSACTION_ENCODING must be one of {', '.join(TRANSACTION_ENCODINGS)}"
            )
        return normalized

    @field_validator("LOG_LEVEL", mode="before")
    def validate_log_level(cls, value: str):
        normalized = str(value).strip().upper()
        return normalized if normalized in LOG_LEVELS else "INFO"

    def get_private_endpoints(self) -> List[str]:
        """Endpoints from PRIVATE_ENDPOINTS, trimmed, empty entries dropped."""
        return clean_endpoints(self.PRIVATE_ENDPOINTS.split(";"))


def clean_endpoints(endpoints) -> List[str]:
    cleaned = []
    for endpoint in endpoints:
        endpoint = str(endpoint).strip()
        if endpoint:
            cleaned.append(endpoint)
    return cleaned


def load_settings(**overrides) -> Settings:
    """Build Settings, turning validation problems into a ConfigError."""
    try:
        return Settings(**overrides)
    except ValidationError as e:
        raise ConfigError(f"Invalid settings: {e}") from e


# --- LOGGING CONFIGURATION ---

DEFAULT_LEVEL_STYLES = {
    "debug": {"color": "green"},
    "info": {"color": "cyan"},
    "warning": {"color": "yellow"},
    "error": {"color": "red"},
    "critical": {"bold": True, "color": "red"},
}
DEFAULT_FIELD_STYLES = {
    "asctime": {"color": "magenta"},
    "levelname": {"bold": True, "color": "blue"},
    "name": {"color": "white"},
}
DEFAULT_FMT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> int:
    """Install coloredlogs on the root logger. Returns the numeric level used."""
    level_str = str(level).upper()
    if level_str not in LOG_LEVELS:
        level_str = "INFO"
    log_level = getattr(logging, level_str)

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    highlight_formatter = HighlightFormatter(
        fmt=DEFAULT_FMT,
        level_styles=DEFAULT_LEVEL_STYLES,
        field_styles=DEFAULT_FIELD_STYLES,
    )
    coloredlogs.install(
        level=log_level,
        formatter=highlight_formatter,
        reconfigure=True,
    )
    root_logger.setLevel(log_level)
    for handler in root_logger.handlers:
        handler.setFormatter(highlight_formatter)
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(max(log_level, logging.WARNING))

    logging.getLogger(__name__).debug(
        f"Logging configured at {logging.getLevelName(log_level)}"
    )
    return log_level
