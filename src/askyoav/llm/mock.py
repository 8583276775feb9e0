"""Mock completion client for testing.

Provides a controllable streaming implementation for unit and integration
testing, and for running the chat front end without a server.
"""

import asyncio
from collections.abc import AsyncGenerator
from typing import Any

from .cancellation import CancellationToken
from .errors import CompletionError
from .model import CompletionChunk, Timings


class MockCompletionClient:
    """Mock completion client.

    Allows scripting the chunks of the next streams for predictable testing,
    pausing a stream between chunks, and injecting transport failures.
    """

    def __init__(self) -> None:
        """Initialize mock completion client."""
        self._chunks: list[CompletionChunk] = []
        self._error_message: str | None = None
        self._error_after: int = 0
        self._delay_s: float = 0.0
        self._pause_after: int | None = None
        self._resume = asyncio.Event()
        self._paused = asyncio.Event()
        self._requests: list[dict[str, Any]] = []
        self._closed = False
        self.set_response("This is a mock response.")

    def set_response(self, text: str, timings: Timings | None = None) -> None:
        """Stream text word by word on the next generations.

        Args:
            text: Text to stream
            timings: Timing sample attached to the final chunk
        """
        words = text.split(" ")
        chunks = [
            CompletionChunk(content=word if i == 0 else " " + word)
            for i, word in enumerate(words)
        ]
        last = chunks[-1]
        chunks[-1] = CompletionChunk(content=last.content, stop=True, timings=timings)
        self.set_chunks(chunks)

    def set_chunks(self, chunks: list[CompletionChunk]) -> None:
        """Stream exactly these chunks on the next generations."""
        self._chunks = list(chunks)
        self._error_message = None

    def set_error(self, message: str, after_chunks: int = 0) -> None:
        """Fail the next streams with CompletionError.

        Args:
            message: Error message
            after_chunks: Number of chunks delivered before failing
        """
        self._error_message = message
        self._error_after = after_chunks

    def set_delay(self, delay_s: float) -> None:
        """Set simulated delay between chunks in seconds."""
        self._delay_s = delay_s

    def pause_after(self, count: int | None) -> None:
        """Hold streams after `count` chunks until resume() or cancellation."""
        self._pause_after = count
        self._resume.clear()
        self._paused.clear()

    def resume(self) -> None:
        """Release a paused stream."""
        self._resume.set()

    async def wait_paused(self) -> None:
        """Block until a stream reaches its pause point."""
        await self._paused.wait()

    async def _hold(self, cancellation: CancellationToken) -> None:
        self._paused.set()
        resume = asyncio.ensure_future(self._resume.wait())
        cancelled = asyncio.ensure_future(cancellation.wait())
        try:
            await asyncio.wait({resume, cancelled}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            resume.cancel()
            cancelled.cancel()

    async def stream_completion(
        self,
        prompt: str,
        parameters: dict[str, Any],
        cancellation: CancellationToken,
    ) -> AsyncGenerator[CompletionChunk, None]:
        """Stream the scripted chunks."""
        self._requests.append({"prompt": prompt, "parameters": dict(parameters)})

        for i, chunk in enumerate(self._chunks):
            if self._error_message is not None and i == self._error_after:
                raise CompletionError(self._error_message)

            if self._pause_after == i:
                await self._hold(cancellation)
            elif self._delay_s > 0:
                await asyncio.sleep(self._delay_s)
            else:
                await asyncio.sleep(0)

            if cancellation.cancelled:
                return
            yield chunk

        if self._error_message is not None and self._error_after >= len(self._chunks):
            raise CompletionError(self._error_message)

    async def aclose(self) -> None:
        """Mark the client closed."""
        self._closed = True

    @property
    def requests(self) -> list[dict[str, Any]]:
        """Get every request made so far."""
        return list(self._requests)

    @property
    def last_request(self) -> dict[str, Any] | None:
        """Get the most recent request."""
        return self._requests[-1] if self._requests else None

    @property
    def call_count(self) -> int:
        """Get number of streams opened."""
        return len(self._requests)

    @property
    def closed(self) -> bool:
        """Return True after aclose()."""
        return self._closed


__all__ = ["MockCompletionClient"]
