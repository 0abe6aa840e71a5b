"""Integration tests for the HTTP routes against an in-memory store."""

import base64
import struct
from datetime import datetime, timezone
from urllib.parse import urlsplit

import numpy as np
import pytest
from aiohttp.test_utils import AioHTTPTestCase

from inkscreen_lite.api.server import create_app
from inkscreen_lite.domain.context_builder import ContextBuilder
from inkscreen_lite.domain.exceptions import MetricQueryError
from inkscreen_lite.domain.models import DeviceProfile, MetricQuerySpec, MetricSample
from inkscreen_lite.domain.pipeline import ScreenRenderer
from inkscreen_lite.domain.rasterizer import RGBABuffer
from inkscreen_lite.domain.template_engine import JinjaTemplateExpander
from inkscreen_lite.stores.memory import MemoryStore

pytestmark = pytest.mark.integration

TEMPLATE = '<svg width="{{ device.width }}" height="{{ device.height }}">{{ time }}</svg>'

FIXED_NOW = datetime(2025, 1, 15, 23, 7, 0, tzinfo=timezone.utc)


class StaticMetricSource:
    def __init__(self, responses):
        self.responses = responses

    async def query(self, address, expression):
        result = self.responses.get(expression, [])
        if isinstance(result, Exception):
            raise result
        return list(result)


class DeviceSizedRasterizer:
    """Returns a white buffer whose size is read from the markup's width/height."""

    def rasterize(self, text):
        width = int(text.split('width="')[1].split('"')[0])
        height = int(text.split('height="')[1].split('"')[0])
        pixels = np.full((height, width, 4), 255, dtype=np.uint8)
        return RGBABuffer(width=width, height=height, pixels=pixels)


class RouteTestCase(AioHTTPTestCase):
    """Shared app setup: one 800x480 device and the simple template."""

    timezone_name = "UTC"

    async def get_application(self):
        self.store = MemoryStore(default_template=TEMPLATE)
        self.device = await self.store.create_device(
            DeviceProfile(id=0, width=800, height=480, access_token="tok", battery_voltage=3.7)
        )
        source = StaticMetricSource(
            {
                "up": [MetricSample(labels={"job": "node"}, value=1.0)],
                "broken": MetricQueryError("connection refused"),
            }
        )
        renderer = ScreenRenderer(
            ContextBuilder(source, self.timezone_name, clock=lambda: FIXED_NOW),
            JinjaTemplateExpander(),
            DeviceSizedRasterizer(),
        )
        return create_app(self.store, renderer)


class TestRenderScreenRoute(RouteTestCase):
    async def test_render_returns_bmp_for_known_device(self):
        resp = await self.client.request("GET", f"/render/screen.bmp?device_id={self.device.id}")

        assert resp.status == 200
        assert resp.content_type == "image/bmp"
        assert resp.headers["Cache-Control"] == "no-store"
        body = await resp.read()
        assert len(body) == 48062
        assert struct.unpack_from("<I", body, 2)[0] == len(body)

    async def test_render_when_device_id_missing_then_400(self):
        resp = await self.client.request("GET", "/render/screen.bmp")

        assert resp.status == 400
        assert "device_id" in await resp.text()

    async def test_render_when_device_id_not_numeric_then_400(self):
        resp = await self.client.request("GET", "/render/screen.bmp?device_id=abc")
        assert resp.status == 400

    async def test_render_when_device_unknown_then_404(self):
        resp = await self.client.request("GET", "/render/screen.bmp?device_id=999")
        assert resp.status == 404

    async def test_render_when_template_broken_then_500(self):
        template = await self.store.get_default_template()
        await self.store.update_template(template.id, "{% if %}")

        resp = await self.client.request("GET", f"/render/screen.bmp?device_id={self.device.id}")

        assert resp.status == 500
        assert (await resp.text()).startswith("Rendering error:")

    async def test_render_when_metric_query_fails_then_still_200(self):
        template = await self.store.get_default_template()
        await self.store.create_metric_query(
            template.id, MetricQuerySpec(name="bad", address="http://prom", query="broken")
        )

        resp = await self.client.request("GET", f"/render/screen.bmp?device_id={self.device.id}")

        assert resp.status == 200

    async def test_response_carries_request_id(self):
        resp = await self.client.request(
            "GET",
            f"/render/screen.bmp?device_id={self.device.id}",
            headers={"X-Request-ID": "panel-1"},
        )
        assert resp.headers["X-Request-ID"] == "panel-1"


class TestPanelDisplayRoute(RouteTestCase):
    PANEL_HEADERS = {
        "Access-Token": "new-panel",
        "ID": "AA:BB:CC:DD:EE:FF",
        "Model": "og",
        "Width": "400",
        "Height": "300",
        "FW-Version": "1.5.2",
        "Battery-Voltage": "4.2",
        "RSSI": "-61",
    }

    async def test_display_when_token_missing_then_401(self):
        resp = await self.client.request("GET", "/api/display")

        assert resp.status == 401
        assert (await resp.json())["error"] == "Missing Access-Token header"
        assert len(await self.store.list_devices()) == 1

    async def test_display_when_token_unknown_then_registers_device(self):
        resp = await self.client.request("GET", "/api/display", headers=self.PANEL_HEADERS)

        assert resp.status == 200
        data = await resp.json()
        assert "/render/screen.bmp?device_id=2&t=" in data["image_url"]
        assert data["filename"].startswith("screen_") and data["filename"].endswith(".bmp")
        assert data["refresh_rate"] == 60
        assert data["update_firmware"] is False

        resp = await self.client.request("GET", "/api/devices")
        devices = {d["id"]: d for d in (await resp.json())["devices"]}
        registered = devices[2]
        assert (registered["width"], registered["height"]) == (400, 300)
        assert registered["fw_version"] == "1.5.2"
        assert registered["mac_address"] == "AA:BB:CC:DD:EE:FF"
        assert registered["rssi"] == "-61"
        assert registered["percent_charged"] == 100
        assert "access_token" not in registered

    async def test_display_when_token_known_then_updates_existing_device(self):
        resp = await self.client.request(
            "GET",
            "/api/display",
            headers={"Access-Token": "tok", "Battery-Voltage": "3.3", "FW-Version": "2.0"},
        )

        assert resp.status == 200
        assert f"device_id={self.device.id}&" in (await resp.json())["image_url"]
        devices = await self.store.list_devices()
        assert len(devices) == 1
        assert devices[0].battery_voltage == pytest.approx(3.3)
        assert devices[0].fw_version == "2.0"
        assert (devices[0].width, devices[0].height) == (800, 480)

    async def test_display_image_url_serves_panel_sized_bmp(self):
        resp = await self.client.request("GET", "/api/display", headers=self.PANEL_HEADERS)
        image_url = urlsplit((await resp.json())["image_url"])

        resp = await self.client.request("GET", f"{image_url.path}?{image_url.query}")

        assert resp.status == 200
        body = await resp.read()
        assert body[:2] == b"BM"
        assert struct.unpack_from("<ii", body, 18) == (400, 300)

    async def test_display_without_size_headers_then_default_panel_size(self):
        resp = await self.client.request(
            "GET", "/api/display", headers={"Access-Token": "bare", "Battery-Voltage": "n/a"}
        )

        assert resp.status == 200
        device = await self.store.get_device_by_access_token("bare")
        assert (device.width, device.height) == (800, 480)
        assert device.battery_voltage is None

    async def test_display_repeated_polls_register_once(self):
        headers = {"Access-Token": "twice"}
        first = await (await self.client.request("GET", "/api/display", headers=headers)).json()
        second = await (await self.client.request("GET", "/api/display", headers=headers)).json()

        assert first["image_url"].split("&")[0] == second["image_url"].split("&")[0]
        assert len(await self.store.list_devices()) == 2


class TestPreviewRoutes(RouteTestCase):
    async def test_get_preview_returns_base64_image(self):
        resp = await self.client.request("GET", f"/api/preview?device_id={self.device.id}")

        assert resp.status == 200
        data = await resp.json()
        assert data["error"] is None
        assert base64.b64decode(data["image"])[:2] == b"BM"

    async def test_post_preview_renders_unsaved_content(self):
        resp = await self.client.request(
            "POST",
            "/api/preview",
            json={"device_id": self.device.id, "content": '<svg width="8" height="2"></svg>'},
        )

        data = await resp.json()
        assert len(base64.b64decode(data["image"])) == 62 + 2 * 4

    async def test_post_preview_when_template_invalid_then_error_not_image(self):
        resp = await self.client.request(
            "POST", "/api/preview", json={"device_id": self.device.id, "content": "{{ oops"}
        )

        assert resp.status == 200
        data = await resp.json()
        assert data["image"] is None
        assert data["error"].startswith("no preview available")

    async def test_post_preview_when_body_not_json_then_400(self):
        resp = await self.client.request("POST", "/api/preview", data=b"not json")
        assert resp.status == 400

    async def test_preview_when_device_unknown_then_404(self):
        resp = await self.client.request("GET", "/api/preview?device_id=42")
        assert resp.status == 404

    async def test_preview_when_template_unknown_then_404(self):
        resp = await self.client.request(
            "GET", f"/api/preview?device_id={self.device.id}&template_id=77"
        )
        assert resp.status == 404


class TestContextRoute(RouteTestCase):
    async def test_context_lists_flattened_variables(self):
        template = await self.store.get_default_template()
        await self.store.create_metric_query(
            template.id, MetricQuerySpec(name="up", address="http://prom", query="up")
        )
        await self.store.create_metric_query(
            template.id, MetricQuerySpec(name="bad", address="http://prom", query="broken")
        )

        resp = await self.client.request("GET", f"/api/context?device_id={self.device.id}")

        assert resp.status == 200
        rows = {row["path"]: row for row in await resp.json()}
        assert rows["time"]["value"] == "11:07 pm"
        assert rows["device.width"]["value"] == "800"
        assert rows["metrics.up[1].value"]["value"] == "1"
        assert rows["metrics.up[1].labels.job"]["value"] == "node"
        assert rows["metrics.bad"] == {
            "path": "metrics.bad",
            "value": "connection refused",
            "is_error": True,
        }


class TestContextRouteWithBadTimezone(RouteTestCase):
    timezone_name = "Mars/Olympus_Mons"

    async def test_context_when_timezone_invalid_then_500(self):
        resp = await self.client.request("GET", f"/api/context?device_id={self.device.id}")

        assert resp.status == 500
        assert "Mars/Olympus_Mons" in (await resp.json())["error"]

    async def test_render_when_timezone_invalid_then_500(self):
        resp = await self.client.request("GET", f"/render/screen.bmp?device_id={self.device.id}")
        assert resp.status == 500


class TestAdminResourceRoutes(RouteTestCase):
    async def test_health(self):
        resp = await self.client.request("GET", "/api/health")
        assert await resp.json() == {"status": "ok"}

    async def test_devices_hide_access_token(self):
        resp = await self.client.request("GET", "/api/devices")

        devices = (await resp.json())["devices"]
        assert len(devices) == 1
        assert devices[0]["width"] == 800
        assert "access_token" not in devices[0]
        assert devices[0]["percent_charged"] is not None

    async def test_template_get_and_put(self):
        resp = await self.client.request("GET", "/api/template")
        original = await resp.json()
        assert original["content"] == TEMPLATE

        resp = await self.client.request("PUT", "/api/template", json={"content": "<svg/>"})
        assert resp.status == 200
        assert (await resp.json())["content"] == "<svg/>"

        resp = await self.client.request("GET", "/api/template")
        assert (await resp.json())["content"] == "<svg/>"

    async def test_put_template_without_content_then_400(self):
        resp = await self.client.request("PUT", "/api/template", json={"text": "x"})
        assert resp.status == 400

    async def test_query_lifecycle(self):
        resp = await self.client.request(
            "POST",
            "/api/template/queries",
            json={"name": "load", "address": "http://prom:9090", "query": "node_load1"},
        )
        assert resp.status == 201
        created = await resp.json()
        assert created["id"] is not None

        resp = await self.client.request(
            "PUT",
            f"/api/template/queries/{created['id']}",
            json={"name": "load5", "address": "http://prom:9090", "query": "node_load5"},
        )
        assert (await resp.json())["name"] == "load5"

        resp = await self.client.request("GET", "/api/template/queries")
        queries = (await resp.json())["queries"]
        assert [q["name"] for q in queries] == ["load5"]

        resp = await self.client.request("DELETE", f"/api/template/queries/{created['id']}")
        assert resp.status == 204

        resp = await self.client.request("DELETE", f"/api/template/queries/{created['id']}")
        assert resp.status == 404

    async def test_create_query_with_blank_name_then_400(self):
        resp = await self.client.request(
            "POST",
            "/api/template/queries",
            json={"name": "  ", "address": "http://prom", "query": "up"},
        )

        assert resp.status == 400
        assert (await resp.json())["error"] == "invalid metric query"

    async def test_update_unknown_query_then_404(self):
        resp = await self.client.request(
            "PUT",
            "/api/template/queries/55",
            json={"name": "a", "address": "http://prom", "query": "up"},
        )
        assert resp.status == 404

    async def test_delete_device_then_404_on_second_delete(self):
        resp = await self.client.request("DELETE", f"/api/devices/{self.device.id}")
        assert resp.status == 204
        assert await self.store.list_devices() == []

        resp = await self.client.request("DELETE", f"/api/devices/{self.device.id}")
        assert resp.status == 404

    async def test_delete_device_with_invalid_id_then_400(self):
        resp = await self.client.request("DELETE", "/api/devices/abc")

        assert resp.status == 400
        assert len(await self.store.list_devices()) == 1

    async def test_deleted_device_reregisters_on_next_poll(self):
        await self.client.request("DELETE", f"/api/devices/{self.device.id}")

        resp = await self.client.request("GET", "/api/display", headers={"Access-Token": "tok"})

        assert resp.status == 200
        devices = await self.store.list_devices()
        assert len(devices) == 1
        assert devices[0].id != self.device.id

    async def test_create_query_with_duplicate_name_then_409(self):
        body = {"name": "load", "address": "http://prom", "query": "node_load1"}
        resp = await self.client.request("POST", "/api/template/queries", json=body)
        assert resp.status == 201

        resp = await self.client.request("POST", "/api/template/queries", json=body)

        assert resp.status == 409
        assert "load" in (await resp.json())["error"]

    async def test_rename_query_onto_existing_name_then_409(self):
        await self.client.request(
            "POST",
            "/api/template/queries",
            json={"name": "load", "address": "http://prom", "query": "node_load1"},
        )
        resp = await self.client.request(
            "POST",
            "/api/template/queries",
            json={"name": "cpu", "address": "http://prom", "query": "up"},
        )
        cpu = await resp.json()

        resp = await self.client.request(
            "PUT",
            f"/api/template/queries/{cpu['id']}",
            json={"name": "load", "address": "http://prom", "query": "up"},
        )

        assert resp.status == 409
        resp = await self.client.request("GET", "/api/template/queries")
        assert sorted(q["name"] for q in (await resp.json())["queries"]) == ["cpu", "load"]
