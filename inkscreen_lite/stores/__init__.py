"""Device, template and metric query stores."""

from __future__ import annotations

import logging
from importlib import resources
from typing import TYPE_CHECKING, Any

from inkscreen_lite.core.config_manager import DEFAULT_DATABASE_PATH, get_config_value

if TYPE_CHECKING:
    from .protocols import Store

logger = logging.getLogger(__name__)

DEFAULT_TEMPLATE_RESOURCE = "default_screen.svg.j2"


def load_default_template_text() -> str:
    """Read the bundled template used to seed an empty store."""
    return (
        resources.files("inkscreen_lite.assets")
        .joinpath(DEFAULT_TEMPLATE_RESOURCE)
        .read_text(encoding="utf-8")
    )


def create_store(config: Any) -> Store:
    """Create the store backend selected by ``config['store']``.

    Args:
        config: Configuration dict or object (see ConfigManager)

    Returns:
        MemoryStore or SQLiteStore
    """
    backend = str(get_config_value(config, "store", "sqlite")).lower()
    if backend == "memory":
        from .memory import MemoryStore

        logger.info("Using in-memory store; data is lost on restart")
        return MemoryStore()

    if backend != "sqlite":
        raise ValueError(f"Unknown store backend {backend!r}")

    from .sqlite_store import SQLiteStore

    return SQLiteStore(get_config_value(config, "database_path", DEFAULT_DATABASE_PATH))
