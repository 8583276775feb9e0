"""Conversation state for AskYoav.

Holds the session configuration and transcript as immutable snapshots.
Every mutation builds a new Session and swaps it into the store in one
assignment, so readers never observe a half-applied change.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, fields, replace
from typing import Any, NamedTuple

logger = logging.getLogger(__name__)

# Speakers are stored as placeholders and resolved at render time, so
# renaming the character also renames it throughout the history.
USER_SPEAKER = "{{user}}"
CHAR_SPEAKER = "{{char}}"

DEFAULT_PROMPT = (
    "This is a conversation between user and Yoav, a chatbot. respond in simple markdown."
)
DEFAULT_TEMPLATE = "{{prompt}}\n\n{{history}}\n{{char}}:"
DEFAULT_HISTORY_TEMPLATE = "{{name}}: {{message}}"


class TranscriptEntry(NamedTuple):
    """One speaker/message pair in the transcript."""

    speaker: str
    message: str


SessionListener = Callable[["Session"], None]


@dataclass(frozen=True)
class Session:
    """Conversation configuration and history.

    Attributes:
        prompt: Preamble template rendered once per turn
        template: Template combining prompt, history and the character cue
        history_template: Template applied to each transcript entry
        char: Character (assistant) display name
        user: User display name
        transcript: Ordered speaker/message pairs
    """

    prompt: str = DEFAULT_PROMPT
    template: str = DEFAULT_TEMPLATE
    history_template: str = DEFAULT_HISTORY_TEMPLATE
    char: str = "Yoav"
    user: str = "User"
    transcript: tuple[TranscriptEntry, ...] = ()

    @classmethod
    def editable_fields(cls) -> list[str]:
        """Get names of the text fields that can be edited."""
        return [f.name for f in fields(cls) if f.name != "transcript"]

    def settings(self) -> Mapping[str, Any]:
        """Get the values placeholders resolve against."""
        return {name: getattr(self, name) for name in self.editable_fields()}


class SessionStore:
    """Owner of the current Session snapshot.

    Notifies subscribers after each replacement. Subscribers receive the
    new snapshot and must not mutate the store from inside the callback.
    """

    def __init__(self, session: Session | None = None) -> None:
        """Initialize the store.

        Args:
            session: Initial snapshot. Defaults to an empty Session.
        """
        self._session = session or Session()
        self._listeners: list[SessionListener] = []

    @property
    def session(self) -> Session:
        """Get the current snapshot."""
        return self._session

    @property
    def transcript(self) -> tuple[TranscriptEntry, ...]:
        """Get the current transcript."""
        return self._session.transcript

    @property
    def chat_started(self) -> bool:
        """Return True if the transcript has any entries."""
        return len(self._session.transcript) > 0

    def settings(self) -> Mapping[str, Any]:
        """Get the current snapshot's settings."""
        return self._session.settings()

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Register a listener for snapshot changes.

        Args:
            listener: Called with each new Session

        Returns:
            Function that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def replace(self, session: Session) -> None:
        """Swap in a new snapshot and notify listeners."""
        self._session = session
        for listener in list(self._listeners):
            listener(session)

    def update(self, **changes: Any) -> Session:
        """Replace one or more session fields.

        Args:
            **changes: Field values to change

        Returns:
            The new snapshot

        Raises:
            ValueError: If a field name is unknown
        """
        known = {f.name for f in fields(Session)}
        unknown = sorted(set(changes) - known)
        if unknown:
            raise ValueError(f"Unknown session field(s): {', '.join(unknown)}")

        if "transcript" in changes:
            changes["transcript"] = tuple(TranscriptEntry(*entry) for entry in changes["transcript"])

        session = replace(self._session, **changes)
        self.replace(session)
        return session

    def set_transcript(self, transcript: tuple[TranscriptEntry, ...]) -> None:
        """Replace the whole transcript."""
        self.replace(replace(self._session, transcript=tuple(transcript)))

    def append_entry(self, speaker: str, message: str) -> tuple[TranscriptEntry, ...]:
        """Append one entry to the transcript.

        Returns:
            The new transcript
        """
        transcript = (*self._session.transcript, TranscriptEntry(speaker, message))
        self.set_transcript(transcript)
        return transcript

    def clear_transcript(self) -> None:
        """Empty the transcript, keeping the configuration."""
        self.set_transcript(())
        logger.debug("Transcript cleared")


__all__ = [
    "CHAR_SPEAKER",
    "DEFAULT_HISTORY_TEMPLATE",
    "DEFAULT_PROMPT",
    "DEFAULT_TEMPLATE",
    "USER_SPEAKER",
    "Session",
    "SessionListener",
    "SessionStore",
    "TranscriptEntry",
]
