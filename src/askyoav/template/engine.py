"""Placeholder template engine.

Replaces `{{key}}` placeholders with values from a settings provider,
rendering looked-up values recursively so settings may reference each
other (for example a prompt that mentions `{{char}}`).

Supports:
- Overrides merged on top of the provider settings for one call
- Unknown keys rendered as empty strings
- A nesting bound that turns self-referencing settings into an error
"""

import logging
import re
from collections.abc import Mapping
from typing import Any, Protocol

logger = logging.getLogger(__name__)

PLACEHOLDER_PATTERN = re.compile(r"\{\{(.*?)\}\}")
MAX_DEPTH = 32  # nested substitutions before rendering fails


class TemplateError(Exception):
    """Base exception for template rendering errors."""

    pass


class TemplateRecursionError(TemplateError):
    """Raised when placeholder substitution nests deeper than allowed."""

    def __init__(self, chain: tuple[str, ...]) -> None:
        """Initialize recursion error.

        Args:
            chain: Placeholder keys being resolved when the bound was hit.
        """
        preview = " -> ".join(chain[:6])
        if len(chain) > 6:
            preview += " -> ..."
        super().__init__(
            f"Template nesting exceeded {len(chain) - 1} levels while resolving {preview}"
        )
        self.chain = chain


class SettingsProvider(Protocol):
    """Anything that can supply the settings placeholders resolve against."""

    def settings(self) -> Mapping[str, Any]:
        """Return the current settings mapping."""
        ...


class MappingSettings:
    """Settings provider backed by a fixed mapping."""

    def __init__(self, values: Mapping[str, Any] | None = None) -> None:
        self._values = dict(values or {})

    def settings(self) -> Mapping[str, Any]:
        return self._values


class TemplateEngine:
    """Renders templates against a settings provider.

    Settings are read from the provider on every call, so a render always
    reflects the latest values.

    Example:
        engine = TemplateEngine(MappingSettings({"char": "Yoav"}))
        engine.render("{{char}}:")  # "Yoav:"
    """

    def __init__(self, provider: SettingsProvider, max_depth: int = MAX_DEPTH) -> None:
        """Initialize the engine.

        Args:
            provider: Source of settings values
            max_depth: Maximum nested substitutions before failing
        """
        self._provider = provider
        self._max_depth = max_depth

    @property
    def max_depth(self) -> int:
        """Get the nesting bound."""
        return self._max_depth

    def render(self, template: Any, overrides: Mapping[str, Any] | None = None) -> str:
        """Render a template.

        Overrides are visible to the top-level template only; values that
        are looked up are rendered against the provider settings.

        Args:
            template: Template text (non-strings are converted with str())
            overrides: Extra values that win over provider settings

        Returns:
            Rendered text

        Raises:
            TemplateRecursionError: If substitution nests deeper than max_depth
        """
        settings = self._provider.settings()
        view = {**settings, **overrides} if overrides else settings
        return self._render(template, view, settings, ())

    def _render(
        self,
        template: Any,
        view: Mapping[str, Any],
        settings: Mapping[str, Any],
        chain: tuple[str, ...],
    ) -> str:
        if template is None:
            return ""

        def substitute(match: re.Match[str]) -> str:
            key = match.group(1)
            if len(chain) >= self._max_depth:
                logger.warning(f"Template recursion limit hit resolving '{key}'")
                raise TemplateRecursionError((*chain, key))
            return self._render(view.get(key), settings, settings, (*chain, key))

        return PLACEHOLDER_PATTERN.sub(substitute, str(template))


def render_template(
    template: Any,
    settings: Mapping[str, Any],
    overrides: Mapping[str, Any] | None = None,
) -> str:
    """Render a template against a plain mapping.

    Args:
        template: Template text
        settings: Settings mapping
        overrides: Extra values for the top-level template

    Returns:
        Rendered text
    """
    return TemplateEngine(MappingSettings(settings)).render(template, overrides)


__all__ = [
    "MAX_DEPTH",
    "MappingSettings",
    "SettingsProvider",
    "TemplateEngine",
    "TemplateError",
    "TemplateRecursionError",
    "render_template",
]
