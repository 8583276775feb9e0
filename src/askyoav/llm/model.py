"""Completion client protocol and data classes.

Defines the streaming boundary between the chat controller and the
text-generation server.
"""

from collections.abc import AsyncGenerator
from dataclasses import dataclass
from typing import Any, Protocol

from .cancellation import CancellationToken


@dataclass(frozen=True)
class Timings:
    """Generation speed sample reported by the server.

    Attributes:
        predicted_per_token_ms: Milliseconds spent per generated token
        predicted_per_second: Generated tokens per second
    """

    predicted_per_token_ms: float
    predicted_per_second: float

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Timings":
        """Create timings from the server's `timings` object."""
        return cls(
            predicted_per_token_ms=float(data["predicted_per_token_ms"]),
            predicted_per_second=float(data["predicted_per_second"]),
        )


@dataclass(frozen=True)
class CompletionChunk:
    """Single incremental unit of a streaming completion.

    Attributes:
        content: Text fragment generated since the previous chunk
        stop: True if this is the final chunk of the turn
        timings: Speed sample, when the server attached one
    """

    content: str = ""
    stop: bool = False
    timings: Timings | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CompletionChunk":
        """Create a chunk from one decoded server event."""
        timings = data.get("timings")
        return cls(
            content=data.get("content") or "",
            stop=bool(data.get("stop", False)),
            timings=Timings.from_dict(timings) if timings else None,
        )


class CompletionClient(Protocol):
    """Interface for streaming text completion.

    Implementations open one request per call and yield chunks until the
    server ends the turn or the cancellation token fires.
    """

    def stream_completion(
        self,
        prompt: str,
        parameters: dict[str, Any],
        cancellation: CancellationToken,
    ) -> AsyncGenerator[CompletionChunk, None]:
        """Stream completion chunks for a prompt.

        Args:
            prompt: Fully rendered prompt text
            parameters: Sampling parameters, including `stop` sequences
            cancellation: Token that ends the stream cleanly when cancelled

        Yields:
            CompletionChunk for each server event

        Raises:
            CompletionError: If the transport fails
        """
        ...

    async def aclose(self) -> None:
        """Release transport resources."""
        ...


__all__ = ["CompletionChunk", "CompletionClient", "Timings"]
