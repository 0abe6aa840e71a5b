"""Smoke test for inkscreen_lite server startup and shutdown.

Runs the real ``_serve`` coroutine in-process with the in-memory store and an
external stop event, polls the health endpoint and asserts that no ERROR logs
were emitted while booting.
"""

from __future__ import annotations

import asyncio
import logging
import socket
from typing import Any

import httpx
import pytest

from inkscreen_lite.api.server import _serve, build_renderer, create_app
from inkscreen_lite.core.http_client import get_client_health, get_shared_client
from inkscreen_lite.domain.rasterizer import CairoRasterizer
from inkscreen_lite.stores.memory import MemoryStore

pytestmark = pytest.mark.integration


def _free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


async def _wait_for_health(base_url: str, attempts: int = 50) -> httpx.Response:
    async with httpx.AsyncClient(base_url=base_url, timeout=1.0) as client:
        for _ in range(attempts):
            try:
                return await client.get("/api/health")
            except httpx.TransportError:
                await asyncio.sleep(0.05)
    raise AssertionError("server did not come up")


async def test_serve_boots_answers_and_stops_cleanly(caplog: Any) -> None:
    caplog.set_level(logging.INFO)
    port = _free_port()
    config = {
        "store": "memory",
        "server_bind": "127.0.0.1",
        "server_port": port,
        "timezone": "UTC",
    }
    stop_event = asyncio.Event()

    task = asyncio.create_task(_serve(config, external_stop_event=stop_event))
    try:
        resp = await _wait_for_health(f"http://127.0.0.1:{port}")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}
        assert resp.headers["X-Request-ID"]
    finally:
        stop_event.set()
        await asyncio.wait_for(task, timeout=5)

    errors = [r for r in caplog.records if r.levelno >= logging.ERROR]
    assert not errors, f"ERROR logs found during startup: {errors}"
    assert any("Server shutdown complete" in r.getMessage() for r in caplog.records)


async def test_build_renderer_uses_configured_timezone() -> None:
    renderer = build_renderer({"timezone": "Europe/Berlin"})

    assert renderer.context_builder.timezone_name == "Europe/Berlin"
    assert isinstance(renderer.rasterizer, CairoRasterizer)


async def test_build_renderer_fetches_shared_metrics_client_per_query() -> None:
    renderer = build_renderer({"timezone": "UTC"})
    source = renderer.context_builder.metric_source

    first = await source.client_getter()
    assert first is await get_shared_client("metrics")

    await first.aclose()
    replacement = await source.client_getter()

    assert replacement is not first
    assert not replacement.is_closed


async def test_serve_when_store_setup_fails_then_shared_clients_are_closed() -> None:
    with pytest.raises(ValueError, match="Unknown store backend"):
        await _serve({"store": "redis"}, external_stop_event=asyncio.Event())

    assert get_client_health("metrics") is None


async def test_serve_when_seeding_fails_then_store_and_clients_are_released(monkeypatch) -> None:
    closed = []

    async def broken_seed(self):
        raise OSError("disk full")

    async def record_close(self):
        closed.append(self)

    monkeypatch.setattr(MemoryStore, "get_default_template", broken_seed)
    monkeypatch.setattr(MemoryStore, "close", record_close)

    with pytest.raises(OSError, match="disk full"):
        await _serve({"store": "memory"}, external_stop_event=asyncio.Event())

    assert len(closed) == 1
    assert get_client_health("metrics") is None


def test_create_app_registers_panel_and_admin_routes() -> None:
    app = create_app(MemoryStore(), renderer=None)

    paths = {resource.canonical for resource in app.router.resources()}
    assert "/render/screen.bmp" in paths
    assert "/api/preview" in paths
    assert "/api/context" in paths
    assert "/api/template/queries/{query_id}" in paths
