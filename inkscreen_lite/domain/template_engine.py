"""Template expansion of screen markup against the render context."""

from __future__ import annotations

import logging
from typing import Any, Protocol

import jinja2

from .context_builder import RenderContext
from .exceptions import TemplateRenderError, TemplateSyntaxError

logger = logging.getLogger(__name__)


class TemplateExpander(Protocol):
    """Expands template text into vector markup."""

    def expand(self, text: str, context: RenderContext) -> str:
        """Render ``text`` with the variables of ``context``.

        Raises:
            TemplateSyntaxError: If the template text is malformed
            TemplateRenderError: If expansion fails for any other reason
        """
        ...


def create_environment() -> jinja2.Environment:
    """Create the Jinja2 environment used for screen templates.

    ``ChainableUndefined`` lets any lookup chain below a missing name
    (``metrics.unknown[0].value``) render as an empty string, and nil values
    print as nothing instead of ``None``. Autoescaping is off: templates
    produce SVG markup directly.
    """
    return jinja2.Environment(
        undefined=jinja2.ChainableUndefined,
        finalize=_nil_as_empty,
        autoescape=False,
        keep_trailing_newline=True,
        cache_size=0,
    )


def _nil_as_empty(value: Any) -> Any:
    return "" if value is None else value


class JinjaTemplateExpander:
    """TemplateExpander backed by Jinja2.

    Templates are compiled on every call; nothing is cached between renders.
    """

    def __init__(self, environment: jinja2.Environment | None = None):
        self.environment = environment or create_environment()

    def expand(self, text: str, context: RenderContext) -> str:
        try:
            template = self.environment.from_string(text)
        except jinja2.TemplateSyntaxError as e:
            raise TemplateSyntaxError(e.message or str(e), lineno=e.lineno) from e

        try:
            return template.render(context.to_template_vars())
        except jinja2.TemplateSyntaxError as e:
            # Raised lazily by {% include %}/{% import %} of broken sources
            raise TemplateSyntaxError(e.message or str(e), lineno=e.lineno) from e
        except Exception as e:
            logger.debug("Template expansion failed", exc_info=True)
            raise TemplateRenderError(f"Template rendering failed: {e}") from e
