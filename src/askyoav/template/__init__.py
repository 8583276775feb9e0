"""Template module for AskYoav.

Provides recursive `{{key}}` placeholder rendering for prompts, history
lines and stop sequences.
"""

from .engine import (
    MAX_DEPTH,
    MappingSettings,
    SettingsProvider,
    TemplateEngine,
    TemplateError,
    TemplateRecursionError,
    render_template,
)

__all__ = [
    "MAX_DEPTH",
    "MappingSettings",
    "SettingsProvider",
    "TemplateEngine",
    "TemplateError",
    "TemplateRecursionError",
    "render_template",
]
