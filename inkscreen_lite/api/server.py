"""aiohttp server wiring for inkscreen_lite."""

from __future__ import annotations

import asyncio
import contextlib
import functools
import logging
import signal
from typing import Any

from inkscreen_lite.core.config_manager import (
    DEFAULT_SERVER_BIND,
    DEFAULT_SERVER_PORT,
    DEFAULT_TIMEZONE,
    get_config_value,
)
from inkscreen_lite.core.http_client import close_all_clients, get_shared_client

logger = logging.getLogger(__name__)

METRICS_CLIENT_ID = "metrics"


def build_renderer(config: Any, client_getter: Any = None) -> Any:
    """Create the ScreenRenderer with the production stage implementations.

    Args:
        config: Configuration dict or object (reads ``timezone``)
        client_getter: Awaitable factory returning the httpx client for metric
            queries (default: the shared ``metrics`` client)

    Returns:
        ScreenRenderer
    """
    from inkscreen_lite.domain.context_builder import ContextBuilder
    from inkscreen_lite.domain.metric_source import PrometheusMetricSource
    from inkscreen_lite.domain.pipeline import ScreenRenderer
    from inkscreen_lite.domain.rasterizer import CairoRasterizer
    from inkscreen_lite.domain.template_engine import JinjaTemplateExpander

    if client_getter is None:
        client_getter = functools.partial(get_shared_client, METRICS_CLIENT_ID)
    source = PrometheusMetricSource(client_getter, client_id=METRICS_CLIENT_ID)
    context_builder = ContextBuilder(
        source, str(get_config_value(config, "timezone", DEFAULT_TIMEZONE))
    )
    return ScreenRenderer(context_builder, JinjaTemplateExpander(), CairoRasterizer())


def create_app(store: Any, renderer: Any) -> Any:
    """Create the aiohttp application with all routes registered.

    Args:
        store: Device registry, template store and metric query store
        renderer: ScreenRenderer shared by all handlers

    Returns:
        aiohttp web.Application
    """
    from aiohttp import web

    from inkscreen_lite.api.middleware import correlation_id_middleware
    from inkscreen_lite.api.routes import register_admin_routes, register_device_routes

    app = web.Application(middlewares=[correlation_id_middleware])

    register_device_routes(app, store=store, renderer=renderer)
    register_admin_routes(app, store=store, renderer=renderer)

    async def _shutdown(_app: Any) -> None:
        logger.info("Application shutdown requested")

    app.on_shutdown.append(_shutdown)
    return app


async def _serve(config: Any, external_stop_event: asyncio.Event | None = None) -> None:
    """Run the server until signalled to stop.

    Every resource acquired during startup (shared HTTP clients, store, app
    runner) is released on the way out, including when startup itself fails.

    Args:
        config: Server configuration object/dict.
        external_stop_event: Optional event to signal shutdown. If provided,
            signal handlers will NOT be registered (caller owns signal handling).
    """
    from aiohttp import web

    from inkscreen_lite.stores import create_store

    stop_event = external_stop_event or asyncio.Event()
    store = None
    runner = None

    try:
        # Create the metrics client up front so pool errors surface at startup
        await get_shared_client(METRICS_CLIENT_ID)
        store = create_store(config)
        renderer = build_renderer(config)

        # Seed the default template before the first panel polls
        template = await store.get_default_template()
        logger.debug("Active template id=%d", template.id)

        app = create_app(store, renderer)
        runner = web.AppRunner(app)
        await runner.setup()

        host = get_config_value(config, "server_bind", DEFAULT_SERVER_BIND)
        port = int(get_config_value(config, "server_port", DEFAULT_SERVER_PORT))
        site = web.TCPSite(runner, host=host, port=port)
        try:
            await site.start()
        except OSError:
            logger.exception("Failed to start server on %s:%d", host, port)
            raise

        logger.info("Server started successfully on %s:%d", host, port)

        loop = asyncio.get_running_loop()
        if external_stop_event is None:

            def _on_signal() -> None:
                logger.info("Shutdown signal received")
                stop_event.set()

            for sig in (signal.SIGINT, signal.SIGTERM):
                with contextlib.suppress(NotImplementedError):
                    loop.add_signal_handler(sig, _on_signal)
        else:
            logger.debug("Using external stop event - skipping signal handler registration")

        await stop_event.wait()
        logger.info("Stop event received, shutting down")
    finally:
        if runner is not None:
            await runner.cleanup()

        if store is not None:
            try:
                await store.close()
            except Exception as e:
                logger.warning("Error closing store: %s", e)

        try:
            await close_all_clients()
            logger.debug("Shared HTTP clients cleaned up")
        except Exception as e:
            logger.warning("Error cleaning up shared HTTP clients: %s", e)

    logger.info("Server shutdown complete")


def start_server(config: Any) -> None:
    """Start the asyncio event loop and HTTP server.

    Args:
        config: dict or object with keys:
            - server_bind: host to bind (str)
            - server_port: port (int)
            - timezone: IANA timezone for the time/date template variables
            - store: "sqlite" or "memory"
            - database_path: SQLite file (sqlite store only)
            - debug_logging: enable debug logging for inkscreen_lite (bool)

    This function blocks the calling thread and runs until a SIGINT/SIGTERM is received.
    """
    from inkscreen_lite.core.logging_config import configure_logging

    debug_mode = bool(get_config_value(config, "debug_logging", False))
    configure_logging(debug_mode=debug_mode)
    logger.info("Logging configuration applied: debug_mode=%s", debug_mode)

    try:
        logger.debug("Running asyncio event loop for server")
        asyncio.run(_serve(config))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    except Exception:
        logger.exception("Server terminated unexpectedly")
        raise
