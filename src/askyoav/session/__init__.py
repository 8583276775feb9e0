"""Session module for AskYoav.

Provides the conversation state store and the generation telemetry sink.
"""

from .state import (
    CHAR_SPEAKER,
    USER_SPEAKER,
    Session,
    SessionStore,
    TranscriptEntry,
)
from .telemetry import TelemetrySink

__all__ = [
    "CHAR_SPEAKER",
    "USER_SPEAKER",
    "Session",
    "SessionStore",
    "TelemetrySink",
    "TranscriptEntry",
]
