#!/usr/bin/env python3
"""
Quorum Error Handling
Error classes and handlers for slot quorum operations
"""

import logging
from contextlib import contextmanager
from typing import Generator, Optional

logger = logging.getLogger(__name__)


class QuorumError(Exception):
    """Base exception for slot quorum errors"""

    pass


class ConfigError(QuorumError):
    """Missing or invalid configuration. Fatal, raised before any round runs."""

    pass


class EndpointQueryError(QuorumError):
    """A single endpoint failed to answer a query (network, HTTP or RPC error)."""

    def __init__(
        self,
        endpoint: str,
        method: str,
        message: str,
        code: Optional[int] = None,
    ):
        self.endpoint = endpoint
        self.method = method
        self.message = message
        self.code = code
        detail = f"{method}({endpoint}): {message}"
        if code is not None:
            detail = f"{detail} (code {code})"
        super().__init__(detail)


class SerializationError(QuorumError):
    """A transaction payload could not be turned into bytes for comparison."""

    pass


class RoundError(QuorumError):
    """Unexpected failure while orchestrating a round"""

    pass


@contextmanager
def round_error_handler(operation: str) -> Generator[None, None, None]:
    """
    Context manager for handling round orchestration errors.

    Quorum errors pass through untouched; anything else is logged and
    wrapped in a RoundError.

    Args:
        operation: Name of the operation being performed
    """
    try:
        yield
    except QuorumError:
        raise
    except Exception as e:
        logger.error(f"Error in round operation '{operation}': {e}")
        raise RoundError(f"Failed {operation}: {e}") from e
