"""AskYoav - streaming chat client for llama.cpp servers.

AskYoav provides a turn-based conversation with:
- Prompt construction from `{{placeholder}}` templates
- Token-by-token streaming into the live transcript
- One generation at a time, with cancellation
- Generation speed telemetry

Usage:
    python -m askyoav --profile dev
    python -m askyoav --mock
"""

__version__ = "0.1.0"

from .chat import ChatContext, ChatController, GenerationState
from .config import AskYoavConfig
from .config.loader import load_config

__all__ = [
    "AskYoavConfig",
    "ChatContext",
    "ChatController",
    "GenerationState",
    "__version__",
    "load_config",
]
