"""Cooperative cancellation for streaming generations."""

import asyncio


class CancellationToken:
    """Request early termination of one in-flight streaming generation.

    A token is created per turn and handed to the transport when the
    stream is opened. Cancelling is idempotent and never raises.

    The underlying event is created lazily so a token can be built
    outside a running event loop.
    """

    def __init__(self) -> None:
        self._cancelled = False
        self._event: asyncio.Event | None = None

    @property
    def cancelled(self) -> bool:
        """Return True once cancel() has been called."""
        return self._cancelled

    def cancel(self) -> None:
        """Signal cancellation to every waiter."""
        if self._cancelled:
            return
        self._cancelled = True
        if self._event is not None:
            self._event.set()

    async def wait(self) -> None:
        """Block until the token is cancelled."""
        if self._event is None:
            self._event = asyncio.Event()
            if self._cancelled:
                self._event.set()
        await self._event.wait()


__all__ = ["CancellationToken"]
