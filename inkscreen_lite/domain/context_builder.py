"""Render context assembly: device attributes, wall clock and metric fan-out."""

from __future__ import annotations

import asyncio
import datetime
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, cast

from inkscreen_lite.core.timezone_utils import format_local_time, now_utc, resolve_timezone

from . import values
from .exceptions import MetricQueryError
from .metric_source import MetricSource
from .models import DeviceProfile, MetricQuerySpec, MetricSample

logger = logging.getLogger(__name__)

METRICS_KEY = "metrics"


@dataclass(frozen=True)
class RenderContext:
    """Variable tree for one render.

    ``errors`` maps the dotted path of each failed metric (``metrics.<name>``)
    to its error message. It is only consulted by the debug view; templates
    see the empty series.
    """

    root: values.Object
    errors: dict[str, str] = field(default_factory=dict)

    def to_template_vars(self) -> dict[str, Any]:
        """Return the tree as plain dicts/lists for the template engine."""
        return values.to_python(self.root)

    def flatten(self) -> list[values.FlatEntry]:
        return values.flatten(self.root, self.errors)


class ContextBuilder:
    """Builds a RenderContext for a device and a template's metric queries.

    Metric queries run concurrently, one task per query. A failing query never
    aborts the render: its name maps to an empty series and the failure is
    logged and recorded on the context.
    """

    def __init__(
        self,
        metric_source: MetricSource,
        timezone_name: str,
        clock: Optional[Callable[[], datetime.datetime]] = None,
    ):
        """Initialize the context builder.

        Args:
            metric_source: Backend used for every metric query
            timezone_name: IANA timezone used for the time/date strings
            clock: Returns the current aware datetime (defaults to now_utc)
        """
        self.metric_source = metric_source
        self.timezone_name = timezone_name
        self.clock = clock or now_utc

    async def build(
        self, device: DeviceProfile, queries: Sequence[MetricQuerySpec]
    ) -> RenderContext:
        """Assemble the render context.

        Raises:
            ConfigError: If the configured timezone is invalid
        """
        # Resolve first so a misconfigured deployment fails before any network I/O
        tz = resolve_timezone(self.timezone_name)
        local = format_local_time(self.clock(), tz)

        metrics, errors = await self._fetch_metrics(queries)

        root = cast(values.Object, values.from_python(
            {
                "device": device.to_render_object(),
                "time": local.time,
                "date": local.date,
                "timezone": local.timezone,
                METRICS_KEY: {
                    name: [sample.to_render_object() for sample in samples]
                    for name, samples in metrics.items()
                },
            }
        ))
        return RenderContext(root=root, errors=errors)

    async def _fetch_metrics(
        self, queries: Sequence[MetricQuerySpec]
    ) -> tuple[dict[str, list[MetricSample]], dict[str, str]]:
        unique: dict[str, MetricQuerySpec] = {}
        for spec in queries:
            if spec.name in unique:
                logger.warning(
                    "Duplicate metric name %r; using query %r", spec.name, spec.query
                )
            unique[spec.name] = spec

        if not unique:
            return {}, {}

        specs = list(unique.values())
        results = await asyncio.gather(
            *(self.metric_source.query(spec.address, spec.query) for spec in specs),
            return_exceptions=True,
        )

        metrics: dict[str, list[MetricSample]] = {}
        errors: dict[str, str] = {}
        for spec, result in zip(specs, results):
            if isinstance(result, MetricQueryError):
                logger.warning(
                    "Metric %r from %s failed: %s", spec.name, spec.address, result
                )
                metrics[spec.name] = []
                errors[f"{METRICS_KEY}.{spec.name}"] = str(result)
            elif isinstance(result, Exception):
                logger.error(
                    "Metric %r from %s raised unexpectedly",
                    spec.name,
                    spec.address,
                    exc_info=result,
                )
                metrics[spec.name] = []
                errors[f"{METRICS_KEY}.{spec.name}"] = f"{type(result).__name__}: {result}"
            elif isinstance(result, BaseException):
                raise result
            else:
                logger.debug("Metric %r returned %d samples", spec.name, len(result))
                metrics[spec.name] = result

        return metrics, errors
