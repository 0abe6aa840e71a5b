"""Panel-facing routes: display polling with telemetry, and the rendered screen image."""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Mapping
from typing import Any, Optional

from inkscreen_lite.core.timezone_utils import now_utc
from inkscreen_lite.domain.exceptions import RenderError
from inkscreen_lite.domain.models import DeviceProfile

logger = logging.getLogger(__name__)

BMP_CONTENT_TYPE = "image/bmp"

# Size assumed for a panel that registers without Width/Height headers
DEFAULT_PANEL_WIDTH = 800
DEFAULT_PANEL_HEIGHT = 480

DEFAULT_REFRESH_RATE_SECONDS = 60

ACCESS_TOKEN_HEADER = "Access-Token"

# Request header -> DeviceProfile field
TELEMETRY_HEADERS = {
    "ID": "mac_address",
    "Model": "model",
    "Friendly-Id": "friendly_id",
    "FW-Version": "fw_version",
    "RSSI": "rssi",
}


def parse_id(raw: Optional[str]) -> Optional[int]:
    """Parse a positive integer id from a query/path parameter, None if invalid."""
    if raw is None:
        return None
    try:
        value = int(raw.strip())
    except ValueError:
        return None
    return value if value > 0 else None


def parse_telemetry_headers(headers: Mapping[str, str]) -> dict[str, Any]:
    """Extract the device fields a panel reports in its request headers.

    Only headers that are present and parse cleanly are returned, so the
    result can be applied as a partial update. Width and height must be
    positive integers; the battery voltage must be a number.
    """
    fields: dict[str, Any] = {}
    for header, field_name in TELEMETRY_HEADERS.items():
        value = headers.get(header)
        if value is not None and value.strip():
            fields[field_name] = value.strip()

    for header, field_name in (("Width", "width"), ("Height", "height")):
        size = parse_id(headers.get(header))
        if size is not None:
            fields[field_name] = size

    voltage = headers.get("Battery-Voltage")
    if voltage is not None:
        try:
            parsed = float(voltage.strip())
        except ValueError:
            parsed = math.nan
        if math.isfinite(parsed):
            fields["battery_voltage"] = parsed
        else:
            logger.debug("Ignoring unparseable Battery-Voltage %r", voltage)

    return fields


def register_device_routes(app: Any, store: Any, renderer: Any) -> None:
    """Register routes polled by the display panels.

    Args:
        app: aiohttp web application
        store: Device registry, template store and metric query store
        renderer: ScreenRenderer used for every request
    """
    from aiohttp import web

    # Lookup-or-create runs one request at a time
    registration_lock = asyncio.Lock()

    async def _register_or_update(
        token: str, telemetry: dict[str, Any]
    ) -> Optional[DeviceProfile]:
        async with registration_lock:
            device = await store.get_device_by_access_token(token)
            if device is None:
                fields = {"width": DEFAULT_PANEL_WIDTH, "height": DEFAULT_PANEL_HEIGHT}
                fields.update(telemetry)
                device = await store.create_device(
                    DeviceProfile(id=0, access_token=token, **fields)
                )
                logger.info(
                    "Registered device %d (%dx%d, fw %s)",
                    device.id,
                    device.width,
                    device.height,
                    device.fw_version or "unknown",
                )
                return device

        updated = device.model_copy(update={**telemetry, "last_seen_at": now_utc()})
        return await store.update_device(updated)

    async def display(request: Any) -> Any:
        """Register or refresh the polling panel and point it at its screen image.

        The panel identifies itself with the ``Access-Token`` header; its other
        headers (size, firmware, battery, signal) update the stored device.
        """
        token = request.headers.get(ACCESS_TOKEN_HEADER, "").strip()
        if not token:
            return web.json_response(
                {"error": f"Missing {ACCESS_TOKEN_HEADER} header"}, status=401
            )

        telemetry = parse_telemetry_headers(request.headers)
        device = await _register_or_update(token, telemetry)
        if device is None:
            return web.json_response({"error": "device was removed"}, status=404)

        timestamp = int(now_utc().timestamp())
        image_url = (
            f"{request.scheme}://{request.host}/render/screen.bmp"
            f"?device_id={device.id}&t={timestamp}"
        )
        logger.debug("Device %d polled; battery %s V", device.id, device.battery_voltage)
        return web.json_response(
            {
                "image_url": image_url,
                "filename": f"screen_{timestamp}.bmp",
                "refresh_rate": DEFAULT_REFRESH_RATE_SECONDS,
                "update_firmware": False,
                "maximum_compatibility": False,
            }
        )

    async def render_screen(request: Any) -> Any:
        """Render the active template for a device as a 1-bit BMP."""
        device_id = parse_id(request.query.get("device_id"))
        if device_id is None:
            return web.Response(status=400, text="missing or invalid device_id")

        device = await store.get_device(device_id)
        if device is None:
            return web.Response(status=404, text=f"device {device_id} not found")

        try:
            template = await store.get_default_template()
            queries = await store.get_metric_queries(template.id)
            bmp = await renderer.render(device, template.content, queries)
        except RenderError as e:
            logger.error("Render failed for device %d: %s", device_id, e)
            return web.Response(status=500, text=f"Rendering error: {e}")
        except Exception as e:
            logger.exception("Unexpected error rendering device %d", device_id)
            return web.Response(status=500, text=f"Internal error: {e}")

        return web.Response(
            body=bmp,
            content_type=BMP_CONTENT_TYPE,
            headers={"Cache-Control": "no-store"},
        )

    app.router.add_get("/api/display", display)
    app.router.add_get("/render/screen.bmp", render_screen)
