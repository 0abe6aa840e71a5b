"""Route modules for the inkscreen_lite server."""

from .admin_routes import register_admin_routes
from .device_routes import register_device_routes

__all__ = [
    "register_admin_routes",
    "register_device_routes",
]
