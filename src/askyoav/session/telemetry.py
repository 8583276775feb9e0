"""Generation telemetry.

Keeps the last timing sample reported by the server. Samples overwrite
each other; no history is retained.
"""

from collections.abc import Callable
from decimal import ROUND_HALF_UP, Decimal

from ..llm.model import Timings

TimingListener = Callable[[Timings | None], None]


def _round_half_up(value: float, digits: int) -> str:
    # Exact halves round up; format() would round them to even
    quantum = Decimal(1).scaleb(-digits)
    return format(Decimal(value).quantize(quantum, rounding=ROUND_HALF_UP), "f")


class TelemetrySink:
    """Last-known generation speed."""

    def __init__(self) -> None:
        self._timing: Timings | None = None
        self._listeners: list[TimingListener] = []

    def observe_timing(self, sample: Timings) -> None:
        """Overwrite the last-known sample."""
        self._timing = sample
        self._notify()

    def current_timing(self) -> Timings | None:
        """Get the last-known sample, or None if none was observed."""
        return self._timing

    def clear(self) -> None:
        """Forget the last sample."""
        self._timing = None
        self._notify()

    def summary(self) -> str:
        """Format the sample for display.

        Returns:
            "<ms>ms per token, <tps> tokens per second", or "" with no sample
        """
        if self._timing is None:
            return ""
        return (
            f"{_round_half_up(self._timing.predicted_per_token_ms, 0)}ms per token, "
            f"{_round_half_up(self._timing.predicted_per_second, 2)} tokens per second"
        )

    def subscribe(self, listener: TimingListener) -> Callable[[], None]:
        """Register a listener for sample changes."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self._timing)


__all__ = ["TelemetrySink", "TimingListener"]
