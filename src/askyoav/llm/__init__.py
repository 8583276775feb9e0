"""Completion transport module for AskYoav.

Provides streaming completion against a llama.cpp server or a mock
implementation.
"""

import logging
from typing import TYPE_CHECKING

from .cancellation import CancellationToken
from .errors import (
    CompletionAPIError,
    CompletionConnectivityError,
    CompletionError,
    CompletionProtocolError,
    CompletionTimeoutError,
)
from .mock import MockCompletionClient
from .model import CompletionChunk, CompletionClient, Timings
from .params import PARAMETER_RANGES, SamplingParameters

if TYPE_CHECKING:
    from ..config import ServerConfig

logger = logging.getLogger(__name__)


def create_completion_client(
    config: "ServerConfig | None" = None,
    use_mock: bool = False,
) -> CompletionClient:
    """Create a completion client instance.

    Args:
        config: Server configuration
        use_mock: If True, return mock implementation for testing

    Returns:
        CompletionClient implementation
    """
    if use_mock:
        logger.info("Using mock completion client")
        return MockCompletionClient()

    from .llama import DEFAULT_HOST, DEFAULT_TIMEOUT, LlamaCompletionClient

    host = DEFAULT_HOST
    timeout = DEFAULT_TIMEOUT

    if config is not None:
        host = config.host
        timeout = config.timeout_seconds

    return LlamaCompletionClient(host=host, timeout=timeout)


__all__ = [
    "PARAMETER_RANGES",
    "CancellationToken",
    "CompletionAPIError",
    "CompletionChunk",
    "CompletionClient",
    "CompletionConnectivityError",
    "CompletionError",
    "CompletionProtocolError",
    "CompletionTimeoutError",
    "MockCompletionClient",
    "SamplingParameters",
    "Timings",
    "create_completion_client",
]
