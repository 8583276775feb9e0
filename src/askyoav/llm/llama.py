"""llama.cpp completion client.

Streams tokens from a llama.cpp server's `/completion` endpoint, which
answers with Server-Sent Events carrying one JSON object per `data:` line.
"""

import asyncio
import contextlib
import json
import logging
from collections.abc import AsyncGenerator, AsyncIterator
from typing import Any

import httpx

from .cancellation import CancellationToken
from .errors import (
    CompletionAPIError,
    CompletionConnectivityError,
    CompletionProtocolError,
    CompletionTimeoutError,
)
from .model import CompletionChunk

logger = logging.getLogger(__name__)

DEFAULT_HOST = "http://localhost:8080"
DEFAULT_TIMEOUT = 30.0  # seconds, applies to connect/write; reads wait for tokens
COMPLETION_PATH = "/completion"
HEALTH_PATH = "/health"


async def _next_line(lines: AsyncIterator[str]) -> str:
    return await anext(lines)


async def _until_cancelled(
    lines: AsyncIterator[str],
    cancellation: CancellationToken,
) -> AsyncGenerator[str, None]:
    """Yield lines until the source ends or the token is cancelled.

    Waiting for the next line is raced against the token, so a cancel
    ends the sequence even while the server is silent.
    """
    cancel_wait = asyncio.ensure_future(cancellation.wait())
    try:
        while not cancellation.cancelled:
            next_line = asyncio.ensure_future(_next_line(lines))
            await asyncio.wait({next_line, cancel_wait}, return_when=asyncio.FIRST_COMPLETED)

            if not next_line.done():
                next_line.cancel()
                try:
                    await next_line
                except (asyncio.CancelledError, StopAsyncIteration):
                    pass
                return

            try:
                line = next_line.result()
            except StopAsyncIteration:
                return
            yield line
    finally:
        cancel_wait.cancel()


def parse_event_line(line: str) -> CompletionChunk | None:
    """Decode one SSE line into a chunk.

    Args:
        line: Raw line from the response body

    Returns:
        CompletionChunk for `data:` lines, None for lines carrying no data

    Raises:
        CompletionAPIError: If the server streamed an `error:` event
        CompletionProtocolError: If the data is not valid JSON
    """
    line = line.strip()
    if not line or line.startswith(":"):
        return None

    if line.startswith("error:"):
        raise CompletionAPIError(f"Server reported an error: {line[6:].strip()}")

    if not line.startswith("data:"):
        return None

    data_str = line[5:].strip()
    if not data_str:
        return None
    if data_str == "[DONE]":
        return CompletionChunk(stop=True)

    try:
        data = json.loads(data_str)
    except json.JSONDecodeError as e:
        raise CompletionProtocolError(f"Malformed completion chunk: {data_str[:80]}") from e

    if not isinstance(data, dict):
        raise CompletionProtocolError(f"Unexpected completion chunk: {data_str[:80]}")

    return CompletionChunk.from_dict(data)


class LlamaCompletionClient:
    """Streaming completion client for a llama.cpp server.

    One `httpx.AsyncClient` is kept for the lifetime of the client so
    connections are reused between turns.
    """

    def __init__(
        self,
        host: str = DEFAULT_HOST,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the completion client.

        Args:
            host: Server base URL
            timeout: Connect/write timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        self._host = host.rstrip("/")
        self._timeout = timeout
        self._client = httpx.AsyncClient(
            base_url=self._host,
            timeout=httpx.Timeout(timeout, read=None),
            transport=transport,
        )

        logger.info(f"llama.cpp client initialized for {self._host}")

    @property
    def host(self) -> str:
        """Get server base URL."""
        return self._host

    async def stream_completion(
        self,
        prompt: str,
        parameters: dict[str, Any],
        cancellation: CancellationToken,
    ) -> AsyncGenerator[CompletionChunk, None]:
        """Stream completion chunks.

        Args:
            prompt: Fully rendered prompt text
            parameters: Sampling parameters, including `stop`
            cancellation: Token that ends the stream cleanly when cancelled

        Yields:
            CompletionChunk for each server event
        """
        payload = {**parameters, "prompt": prompt, "stream": True}
        logger.debug(f"Opening completion stream ({len(prompt)} prompt chars)")

        try:
            async with self._client.stream("POST", COMPLETION_PATH, json=payload) as response:
                if response.is_error:
                    await response.aread()
                    raise CompletionAPIError(
                        f"Completion request failed with HTTP {response.status_code}: "
                        f"{response.text[:200]}",
                        status_code=response.status_code,
                    )

                lines = _until_cancelled(response.aiter_lines(), cancellation)
                async with contextlib.aclosing(lines):
                    async for line in lines:
                        chunk = parse_event_line(line)
                        if chunk is None:
                            continue
                        yield chunk
                        if chunk.stop:
                            return

                if cancellation.cancelled:
                    logger.debug("Completion stream cancelled")

        except httpx.TimeoutException as e:
            logger.error(f"Completion request timed out: {e}")
            raise CompletionTimeoutError(
                f"Completion request timed out after {self._timeout} seconds."
            ) from e
        except httpx.TransportError as e:
            logger.error(f"Completion transport failed: {e}")
            raise CompletionConnectivityError(
                f"Failed to reach completion server at {self._host}: {e}"
            ) from e

    async def check_health(self) -> bool:
        """Check if the server answers its health endpoint.

        Returns:
            True if the server responded with a success status
        """
        try:
            response = await self._client.get(HEALTH_PATH)
        except httpx.HTTPError as e:
            logger.debug(f"Health check failed: {e}")
            return False
        return response.is_success

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()


__all__ = ["LlamaCompletionClient", "parse_event_line"]
