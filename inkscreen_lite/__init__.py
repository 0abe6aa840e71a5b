"""inkscreen_lite - screen rendering server for e-ink display panels.

The package keeps top-level imports light: the aiohttp server, CairoSVG and
numpy are only imported once a server or render pipeline is actually built.
"""

__version__ = "0.1.0"

from typing import TYPE_CHECKING, Optional, TextIO

if TYPE_CHECKING:
    import logging


def _make_console_handler(stream: Optional[TextIO] = None) -> "logging.Handler":
    """Create the colorized console handler, tagging records with the request ID."""
    import logging
    import sys

    from colorlog import ColoredFormatter

    from inkscreen_lite.core.logging_config import CorrelationIdFilter

    handler = logging.StreamHandler(stream=stream or sys.stderr)
    # HH:MM:SS [request-id] LEVEL logger.name: message (only the level is colorized)
    fmt = (
        "%(asctime)s [%(request_id)s] "
        "%(log_color)s%(levelname)-7s%(reset)s %(name)s: %(message)s"
    )
    log_colors = {
        "DEBUG": "cyan",
        "INFO": "green",
        "WARNING": "yellow",
        "ERROR": "red",
        "CRITICAL": "bold_red",
    }
    handler.setFormatter(ColoredFormatter(fmt, datefmt="%H:%M:%S", log_colors=log_colors))
    handler.addFilter(CorrelationIdFilter())
    return handler


def _init_logging(level_name: Optional[str]) -> None:
    """Initialize root logging to stream to console.

    Installs a colorized console handler so that import-time errors and early
    startup messages are visible. Callers may adjust the level later (e.g. from
    config).

    The INKSCREEN_DEBUG environment variable (truthy values: "1", "true", "yes",
    "on") forces DEBUG verbosity regardless of the requested level.
    """
    import logging
    import os

    debug_env = os.environ.get("INKSCREEN_DEBUG", "")
    if debug_env.strip().lower() in ("1", "true", "yes", "on"):
        level_name = "DEBUG"

    root = logging.getLogger()
    # Only configure a handler if none are present to avoid duplicate output.
    if not root.handlers:
        root.addHandler(_make_console_handler())

    level = logging.INFO
    if isinstance(level_name, str):
        level = getattr(logging, level_name.upper(), logging.INFO)
    root.setLevel(level)
    logging.getLogger(__name__).debug(
        "Logging initialized at level %s", logging.getLevelName(level)
    )


def run_server(args: Optional[object] = None) -> None:
    """Start the inkscreen_lite server.

    Builds the configuration from the environment (and .env file), applies
    command line overrides and delegates to ``inkscreen_lite.api.server.start_server``,
    which blocks until SIGINT/SIGTERM.

    Args:
        args: Optional argparse namespace with ``port``, ``host`` and ``store`` overrides
    """
    import logging
    import os

    _init_logging(os.environ.get("INKSCREEN_LOG_LEVEL"))

    from inkscreen_lite.api.server import start_server
    from inkscreen_lite.core.config_manager import ConfigManager

    logger = logging.getLogger(__name__)

    cfg = ConfigManager().load_full_config()

    if args is not None:
        port = getattr(args, "port", None)
        if port is not None:
            cfg["server_port"] = int(port)
            logger.debug("Applied command line port override: %d", cfg["server_port"])
        host = getattr(args, "host", None)
        if host:
            cfg["server_bind"] = host
        store = getattr(args, "store", None)
        if store:
            cfg["store"] = store

    cfg_level = cfg.get("log_level")
    if isinstance(cfg_level, str):
        logging.getLogger().setLevel(getattr(logging, cfg_level.upper(), logging.INFO))

    logger.debug(
        "Resolved configuration (diagnostic): %s",
        {k: cfg.get(k) for k in ("timezone", "store", "server_bind", "server_port")},
    )

    start_server(cfg)
