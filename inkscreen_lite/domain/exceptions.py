"""Exception hierarchy for the screen rendering pipeline.

Every failure a render can surface derives from ``RenderError`` so that the
HTTP layer can translate any of them into a server error (device endpoint) or
a "no preview available" state (admin preview) with a readable message.
"""

from typing import Optional


class RenderError(Exception):
    """Base exception for all render pipeline errors.

    The string form of every subclass is meant to be shown to an operator
    as-is, so messages should name the failing input.
    """


class ConfigError(RenderError):
    """Deployment configuration is invalid.

    Raised when:
    - The configured timezone identifier is empty or unknown

    Fatal: aborts the render. Indicates misconfiguration, not transient data.
    """


class MetricQueryError(RenderError):
    """A single metric query failed.

    Raised when:
    - The metric source is unreachable or times out
    - The response is not valid JSON or has an unexpected shape
    - The source reports a non-success status

    Recovered locally by the context builder: the metric gets an empty series.
    """


class TemplateError(RenderError):
    """Template expansion failed."""


class TemplateSyntaxError(TemplateError):
    """The template text itself is malformed.

    Carries the 1-based line number of the offending construct when the
    template engine reports one.
    """

    def __init__(self, message: str, lineno: Optional[int] = None) -> None:
        self.message = message
        self.lineno = lineno
        if lineno is not None:
            message = f"{message} (line {lineno})"
        super().__init__(message)


class TemplateRenderError(TemplateError):
    """Template parsed but raised while being expanded.

    Raised when:
    - A filter or call inside the template raises
    - An operation is applied to a value of the wrong type
    """


class RasterError(RenderError):
    """Vector markup could not be rasterized."""


class RasterParseError(RasterError):
    """Markup is not a parsable SVG document.

    Raised when:
    - The text is not well-formed XML
    - The document root is not an ``<svg>`` element
    - Width/height are present but not pixel lengths
    - The rendering backend rejects the document
    """


class RasterAllocError(RasterError):
    """The pixel buffer for the document cannot be allocated.

    Raised when the declared intrinsic size is zero, negative, missing or
    beyond the supported maximum.
    """


class SerializationError(RenderError):
    """Packed pixel data does not match its declared geometry.

    Internal invariant violation; never expected for buffers produced by the
    monochrome encoder.
    """


class StoreError(Exception):
    """Base exception for persistence failures outside the render pipeline."""


class DuplicateMetricNameError(StoreError):
    """A template already has a metric query with this name.

    Metric names are the keys templates read (``metrics.<name>``), so they are
    unique per template.
    """

    def __init__(self, template_id: int, name: str) -> None:
        self.template_id = template_id
        self.name = name
        super().__init__(f"Template {template_id} already has a metric named {name!r}")
