"""Metric sources queried while building the render context."""

from __future__ import annotations

import logging
from collections.abc import Awaitable
from typing import Any, Callable, Protocol

import httpx

from inkscreen_lite.core.http_client import (
    get_request_headers,
    record_client_error,
    record_client_success,
)

from .exceptions import MetricQueryError
from .models import MetricSample

logger = logging.getLogger(__name__)

PROMETHEUS_QUERY_PATH = "/api/v1/query"


class MetricSource(Protocol):
    """Executes one query expression against a metric backend."""

    async def query(self, address: str, expression: str) -> list[MetricSample]:
        """Return the labelled samples of ``expression`` evaluated now.

        Raises:
            MetricQueryError: If the backend is unreachable or the response is malformed
        """
        ...


class PrometheusMetricSource:
    """Instant-vector queries against the Prometheus HTTP API.

    ``client_getter`` is awaited on every query, normally
    ``functools.partial(get_shared_client, client_id)``. Connection pooling
    then spans renders, and a client that crossed the error threshold is
    replaced by the shared pool before the next query.
    """

    def __init__(
        self,
        client_getter: Callable[[], Awaitable[httpx.AsyncClient]],
        client_id: str = "metrics",
    ):
        self.client_getter = client_getter
        self.client_id = client_id

    async def query(self, address: str, expression: str) -> list[MetricSample]:
        url = address.rstrip("/") + PROMETHEUS_QUERY_PATH
        logger.debug("Querying %s: %s", url, expression)

        client = await self.client_getter()
        try:
            response = await client.get(
                url, params={"query": expression}, headers=get_request_headers()
            )
        except httpx.HTTPError as e:
            await record_client_error(self.client_id)
            raise MetricQueryError(f"Request to {url} failed: {e}") from e

        try:
            payload = response.json()
        except ValueError as e:
            await record_client_error(self.client_id)
            raise MetricQueryError(
                f"Invalid JSON from {url} (HTTP {response.status_code})"
            ) from e

        await record_client_success(self.client_id)
        return parse_query_response(payload)


def parse_query_response(payload: Any) -> list[MetricSample]:
    """Convert a Prometheus ``/api/v1/query`` JSON body to samples.

    Only ``vector`` results carry labelled samples; ``scalar``, ``string`` and
    ``matrix`` results yield an empty list.

    Raises:
        MetricQueryError: If the status is not ``success`` or the body is malformed
    """
    if not isinstance(payload, dict):
        raise MetricQueryError("Query response is not a JSON object")

    status = payload.get("status")
    if status != "success":
        error = payload.get("error") or "unknown error"
        error_type = payload.get("errorType")
        if error_type:
            error = f"{error_type}: {error}"
        raise MetricQueryError(f"Query failed with status {status!r}: {error}")

    data = payload.get("data")
    if not isinstance(data, dict):
        raise MetricQueryError("Query response has no data object")

    if data.get("resultType") != "vector":
        logger.debug("Ignoring non-vector result type %r", data.get("resultType"))
        return []

    samples: list[MetricSample] = []
    for item in data.get("result") or []:
        try:
            labels = {str(k): str(v) for k, v in (item.get("metric") or {}).items()}
            value = float(item["value"][1])
        except (AttributeError, KeyError, IndexError, TypeError, ValueError) as e:
            raise MetricQueryError(f"Malformed vector sample: {item!r}") from e
        samples.append(MetricSample(labels=labels, value=value))

    return samples
