"""Chat module for AskYoav.

Provides the generation session controller and the session-scoped context
it publishes progress through.
"""

from .context import ChatContext
from .controller import END_OF_TURN, ChatController, GenerationHandle, GenerationState

__all__ = [
    "END_OF_TURN",
    "ChatContext",
    "ChatController",
    "GenerationHandle",
    "GenerationState",
]
