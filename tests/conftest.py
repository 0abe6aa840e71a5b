from collections.abc import AsyncIterator, Generator
from datetime import datetime, timezone
from typing import Any, Callable, Union

import numpy as np
import pytest

from inkscreen_lite.core.http_client import close_all_clients
from inkscreen_lite.domain.models import DeviceProfile, MetricQuerySpec, MetricSample
from inkscreen_lite.domain.rasterizer import RGBABuffer


class FakeMetricSource:
    """MetricSource returning canned results keyed by query expression.

    A value that is an exception instance is raised instead of returned.
    Every call is recorded in ``calls`` as ``(address, expression)``.
    """

    def __init__(self, responses: dict[str, Union[list[MetricSample], Exception]] | None = None):
        self.responses = responses or {}
        self.calls: list[tuple[str, str]] = []

    async def query(self, address: str, expression: str) -> list[MetricSample]:
        self.calls.append((address, expression))
        result = self.responses.get(expression, [])
        if isinstance(result, Exception):
            raise result
        return list(result)


class FakeRasterizer:
    """Rasterizer producing a solid buffer of the requested color and size."""

    def __init__(self, width: int, height: int, rgba: tuple[int, int, int, int] = (255, 255, 255, 255)):
        self.width = width
        self.height = height
        self.rgba = rgba
        self.texts: list[str] = []

    def rasterize(self, text: str) -> RGBABuffer:
        self.texts.append(text)
        pixels = np.empty((self.height, self.width, 4), dtype=np.uint8)
        pixels[...] = self.rgba
        return RGBABuffer(width=self.width, height=self.height, pixels=pixels)


@pytest.fixture
def test_timezone() -> str:
    """Return a deterministic timezone identifier for tests.

    Using a fixed timezone string avoids host-local timezone differences
    which can make time-sensitive tests flaky.
    """
    return "America/Los_Angeles"


@pytest.fixture
def fixed_now() -> datetime:
    """2025-01-15 23:07:00 UTC, i.e. 03:07 pm PST."""
    return datetime(2025, 1, 15, 23, 7, 0, tzinfo=timezone.utc)


@pytest.fixture
def fixed_clock(fixed_now: datetime) -> Callable[[], datetime]:
    """Clock callable always returning ``fixed_now``."""
    return lambda: fixed_now


@pytest.fixture
def device() -> DeviceProfile:
    """Small 16x8 panel with a firmware version and a secret access token."""
    return DeviceProfile(
        id=1,
        width=16,
        height=8,
        fw_version="1.5.2",
        access_token="secret-token",
        mac_address="AA:BB:CC:DD:EE:FF",
        battery_voltage=4.1,
    )


@pytest.fixture
def metric_queries() -> list[MetricQuerySpec]:
    """Two queries against the same Prometheus address."""
    return [
        MetricQuerySpec(name="cpu", address="http://prom:9090", query="cpu_usage"),
        MetricQuerySpec(name="temp", address="http://prom:9090", query="porch_temperature"),
    ]


@pytest.fixture
def fake_source() -> FakeMetricSource:
    """Metric source with one sample for each query of ``metric_queries``."""
    return FakeMetricSource(
        {
            "cpu_usage": [MetricSample(labels={"host": "pi"}, value=42.5)],
            "porch_temperature": [
                MetricSample(labels={"location": "Front Porch"}, value=71.0),
            ],
        }
    )


@pytest.fixture(autouse=True)
def clean_test_environment(monkeypatch: Any) -> Generator[None, Any, None]:
    """Ensure time override and config variables do not leak between tests."""
    for name in ("INKSCREEN_TEST_TIME", "INKSCREEN_DEBUG", "INKSCREEN_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    yield


@pytest.fixture(autouse=True)
async def cleanup_shared_http_clients() -> AsyncIterator[None]:
    """Close shared httpx clients after every test to prevent resource leaks."""
    yield
    await close_all_clients()


@pytest.fixture
def make_rasterizer() -> Callable[..., FakeRasterizer]:
    """Factory for FakeRasterizer(width, height, rgba)."""
    return FakeRasterizer


@pytest.fixture
def make_source() -> Callable[..., FakeMetricSource]:
    """Factory for FakeMetricSource(responses)."""
    return FakeMetricSource
