"""Session-scoped chat context.

Bundles the values one chat session shares between the controller and
whatever front end observes it: conversation state, sampling parameters,
telemetry and the last transport fault.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import replace
from typing import TYPE_CHECKING, Any

from ..llm.params import SamplingParameters
from ..session.state import Session, SessionStore
from ..session.telemetry import TelemetrySink
from ..template.engine import TemplateEngine

if TYPE_CHECKING:
    from ..config import AskYoavConfig

logger = logging.getLogger(__name__)

FaultListener = Callable[[Exception | None], None]


class ChatContext:
    """Shared state for one chat session.

    Example:
        context = ChatContext()
        context.update_session(char="Ada")
        context.params.set("temperature", 0.9)
    """

    def __init__(
        self,
        store: SessionStore | None = None,
        params: SamplingParameters | None = None,
        telemetry: TelemetrySink | None = None,
    ) -> None:
        """Initialize the context.

        Args:
            store: Conversation state store
            params: Sampling parameters
            telemetry: Telemetry sink
        """
        self.store = store or SessionStore()
        self.params = params or SamplingParameters()
        self.telemetry = telemetry or TelemetrySink()
        self.templates = TemplateEngine(self.store)
        self._fault: Exception | None = None
        self._fault_listeners: list[FaultListener] = []

    @classmethod
    def from_config(cls, config: AskYoavConfig) -> ChatContext:
        """Create a context seeded from configuration."""
        session = Session(
            prompt=config.session.prompt,
            template=config.session.template,
            history_template=config.session.history_template,
            char=config.session.char,
            user=config.session.user,
        )
        return cls(store=SessionStore(session), params=replace(config.sampling))

    @property
    def session(self) -> Session:
        """Get the current session snapshot."""
        return self.store.session

    @property
    def chat_started(self) -> bool:
        """Return True once the transcript has entries."""
        return self.store.chat_started

    @property
    def fault(self) -> Exception | None:
        """Get the last transport or rendering fault, if any."""
        return self._fault

    def update_session(self, **changes: Any) -> Session:
        """Replace session fields (prompt, char, user, templates)."""
        return self.store.update(**changes)

    def render(self, template: str, overrides: dict[str, Any] | None = None) -> str:
        """Render a template against the current session."""
        return self.templates.render(template, overrides)

    def display_transcript(self) -> list[tuple[str, str]]:
        """Get the transcript with speakers and messages rendered.

        Returns:
            List of (speaker name, message text) pairs
        """
        return [
            (self.render(entry.speaker), self.render(entry.message))
            for entry in self.store.transcript
        ]

    def record_fault(self, error: Exception) -> None:
        """Publish a fault to observers."""
        self._fault = error
        for listener in list(self._fault_listeners):
            listener(error)

    def clear_fault(self) -> None:
        """Forget the last fault."""
        if self._fault is None:
            return
        self._fault = None
        for listener in list(self._fault_listeners):
            listener(None)

    def subscribe_faults(self, listener: FaultListener) -> Callable[[], None]:
        """Register a listener for fault changes."""
        self._fault_listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._fault_listeners:
                self._fault_listeners.remove(listener)

        return unsubscribe


__all__ = ["ChatContext", "FaultListener"]
