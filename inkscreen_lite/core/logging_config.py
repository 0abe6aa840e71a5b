"""
Central logging configuration for inkscreen_lite.

Suppresses verbose DEBUG logs from third-party libraries while keeping the
render pipeline's own diagnostics, and tags every record with the request
correlation ID.
"""

import logging
import os
from typing import Optional


class CorrelationIdFilter(logging.Filter):
    """Add correlation ID to all log records for request tracing."""

    def filter(self, record: logging.LogRecord) -> bool:
        """Add correlation ID to log record.

        Args:
            record: Log record to enhance

        Returns:
            True to allow record to be logged
        """
        # Imported here: the middleware module pulls in aiohttp.
        from inkscreen_lite.api.middleware.correlation_id import get_request_id

        record.request_id = get_request_id()
        return True


# Third-party loggers that are too chatty at DEBUG/INFO for normal operation
NOISY_LOGGERS: dict[str, int] = {
    "aiohttp.access": logging.WARNING,
    "aiohttp.server": logging.WARNING,
    "aiohttp.web": logging.INFO,
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "asyncio": logging.WARNING,
    "aiosqlite": logging.WARNING,
    "cairosvg": logging.WARNING,
    "PIL": logging.INFO,
}

PACKAGE_LOGGERS = (
    "inkscreen_lite",
    "inkscreen_lite.domain",
    "inkscreen_lite.api",
    "inkscreen_lite.stores",
)


def configure_logging(debug_mode: bool = False, force_debug: Optional[bool] = None) -> None:
    """
    Configure logging levels for inkscreen_lite.

    Args:
        debug_mode: Whether to enable debug logging for inkscreen_lite modules
        force_debug: Override debug mode setting (None to use env var detection)

    Environment Variables:
        INKSCREEN_DEBUG: Set to '1', 'true', 'yes' to force debug logging
        INKSCREEN_LOG_LEVEL: Override root log level (DEBUG, INFO, WARNING, ERROR)
    """
    env_debug = os.getenv("INKSCREEN_DEBUG", "").lower() in ("1", "true", "yes")
    env_log_level = os.getenv("INKSCREEN_LOG_LEVEL", "").upper()

    if force_debug is not None:
        final_debug = force_debug
    elif env_debug:
        final_debug = True
    else:
        final_debug = debug_mode

    root_level = logging.DEBUG if final_debug else logging.INFO
    if env_log_level in ("DEBUG", "INFO", "WARNING", "ERROR"):
        root_level = getattr(logging, env_log_level)

    root_logger = logging.getLogger()
    root_logger.setLevel(root_level)

    correlation_filter = CorrelationIdFilter()

    # Keep the colorized handler installed by inkscreen_lite._init_logging if present
    if not root_logger.handlers:
        handler = logging.StreamHandler()
        handler.setLevel(root_level)
        handler.setFormatter(
            logging.Formatter("[%(asctime)s] [%(request_id)s] %(levelname)s - %(name)s - %(message)s")
        )
        handler.addFilter(correlation_filter)
        root_logger.addHandler(handler)
    else:
        for existing_handler in root_logger.handlers:
            if not any(isinstance(f, CorrelationIdFilter) for f in existing_handler.filters):
                existing_handler.addFilter(correlation_filter)

    logger_config = dict(NOISY_LOGGERS)
    package_level = logging.DEBUG if final_debug else logging.INFO
    for module in PACKAGE_LOGGERS:
        logger_config[module] = package_level

    for logger_name, level in logger_config.items():
        logging.getLogger(logger_name).setLevel(level)

    if final_debug:
        root_logger.info(
            "Debug logging enabled for inkscreen_lite modules; third-party debug logs suppressed."
        )
    else:
        root_logger.info("Production logging configuration applied.")


def get_logging_status() -> dict[str, str]:
    """
    Get current logging configuration status.

    Returns:
        Dictionary mapping logger names to their current levels
    """
    status = {"root": logging.getLevelName(logging.getLogger().level)}

    for logger_name in ("inkscreen_lite", "aiohttp.access", "httpx", "cairosvg"):
        status[logger_name] = logging.getLevelName(logging.getLogger(logger_name).level)

    return status
