"""Configuration management for the inkscreen_lite server."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = "UTC"
DEFAULT_DATABASE_PATH = "./data/devices.db"
DEFAULT_SERVER_BIND = "0.0.0.0"  # nosec B104 - server is meant to be reachable by panels on the LAN
DEFAULT_SERVER_PORT = 8080
STORE_BACKENDS = ("sqlite", "memory")


def parse_env_file(path: Path) -> dict[str, str]:
    """Parse a .env file and return key-value pairs.

    Args:
        path: Path to .env file

    Returns:
        Dictionary of key-value pairs from the .env file.
        Empty dict if file doesn't exist or cannot be read.

    Note:
        - Skips empty lines and comments (lines starting with #)
        - Strips quotes (both single and double) from values
        - Handles KEY=VALUE format with optional whitespace
    """
    if not path.exists():
        return {}

    result: dict[str, str] = {}

    try:
        content = path.read_text(encoding="utf-8")
    except OSError:
        logger.debug("Failed to read .env file (continuing): %s", str(path), exc_info=True)
        return {}

    for raw_line in content.splitlines():
        line = raw_line.strip()

        if not line or line.startswith("#"):
            continue

        if "=" not in line:
            continue

        key, val = line.split("=", 1)
        key = key.strip()
        val = val.strip().strip('"').strip("'")

        if key:
            result[key] = val

    return result


class ConfigManager:
    """Manages application configuration from environment variables and .env files."""

    def __init__(self, env_file_path: Path | None = None):
        """Initialize configuration manager.

        Args:
            env_file_path: Optional path to .env file (defaults to .env in current directory)
        """
        self.env_file_path = env_file_path or Path.cwd() / ".env"

    def load_env_file(self) -> list[str]:
        """Load .env file and set environment variables.

        Only sets variables that are not already in the environment to avoid
        surprising overrides of the user's environment.

        Returns:
            List of environment variable keys that were loaded from .env file
        """
        if not self.env_file_path.exists():
            logger.debug("No .env file found at %s", self.env_file_path)
            return []

        parsed = parse_env_file(self.env_file_path)

        set_keys = []
        for key, val in parsed.items():
            if key not in os.environ:
                os.environ[key] = val
                set_keys.append(key)

        if set_keys:
            logger.debug("Loaded .env defaults for keys: %s", ", ".join(set_keys))

        return set_keys

    def build_config_from_env(self) -> dict[str, Any]:
        """Build configuration dictionary from environment variables.

        Recognizes:
        - INKSCREEN_TIMEZONE (falls back to TZ) -> 'timezone'
        - INKSCREEN_DATABASE_PATH -> 'database_path'
        - INKSCREEN_WEB_HOST -> 'server_bind'
        - INKSCREEN_WEB_PORT -> 'server_port' (int)
        - INKSCREEN_STORE -> 'store' ('sqlite' or 'memory')
        - INKSCREEN_LOG_LEVEL -> 'log_level'
        - INKSCREEN_DEBUG -> 'debug_logging' (bool)

        The timezone identifier is not validated here; the render pipeline
        rejects an unknown zone with ConfigError on first use.

        Returns:
            Configuration dictionary compatible with start_server
        """
        cfg: dict[str, Any] = {
            "timezone": DEFAULT_TIMEZONE,
            "database_path": DEFAULT_DATABASE_PATH,
            "server_bind": DEFAULT_SERVER_BIND,
            "server_port": DEFAULT_SERVER_PORT,
            "store": "sqlite",
            "debug_logging": False,
        }

        tz_name = os.environ.get("INKSCREEN_TIMEZONE") or os.environ.get("TZ")
        if tz_name:
            cfg["timezone"] = tz_name

        db_path = os.environ.get("INKSCREEN_DATABASE_PATH")
        if db_path:
            cfg["database_path"] = db_path

        host = os.environ.get("INKSCREEN_WEB_HOST")
        if host:
            cfg["server_bind"] = host

        port = os.environ.get("INKSCREEN_WEB_PORT")
        if port:
            try:
                cfg["server_port"] = int(port)
            except ValueError:
                logger.warning("Invalid INKSCREEN_WEB_PORT=%r; ignoring", port)

        store = os.environ.get("INKSCREEN_STORE")
        if store:
            if store.lower() in STORE_BACKENDS:
                cfg["store"] = store.lower()
            else:
                logger.warning("Invalid INKSCREEN_STORE=%r; expected one of %s", store, STORE_BACKENDS)

        log_level = os.environ.get("INKSCREEN_LOG_LEVEL")
        if log_level:
            cfg["log_level"] = log_level.upper()

        debug = os.environ.get("INKSCREEN_DEBUG", "")
        if debug.strip().lower() in ("1", "true", "yes", "on"):
            cfg["debug_logging"] = True

        return cfg

    def load_full_config(self) -> dict[str, Any]:
        """Load .env file and build configuration from environment.

        Returns:
            Configuration dictionary
        """
        self.load_env_file()
        return self.build_config_from_env()


def get_config_value(config: Any, key: str, default: Any = None) -> Any:
    """Get configuration value supporting both dict and attribute-style objects.

    Args:
        config: Configuration object (dict or object with attributes)
        key: Configuration key to retrieve
        default: Default value if key not found

    Returns:
        Configuration value or default
    """
    if isinstance(config, dict):
        return config.get(key, default)
    return getattr(config, key, default)
