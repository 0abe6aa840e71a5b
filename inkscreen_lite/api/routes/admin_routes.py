"""Admin API routes: preview, context debugging, devices, template and queries."""

from __future__ import annotations

import logging
from typing import Any, Optional

from pydantic import ValidationError

from inkscreen_lite.domain.exceptions import DuplicateMetricNameError, RenderError
from inkscreen_lite.domain.models import MetricQuerySpec

from .device_routes import parse_id

logger = logging.getLogger(__name__)


def register_admin_routes(app: Any, store: Any, renderer: Any) -> None:
    """Register admin API routes.

    Args:
        app: aiohttp web application
        store: Device registry, template store and metric query store
        renderer: ScreenRenderer used for previews and context inspection
    """
    from aiohttp import web

    async def _read_json(request: Any) -> Optional[dict[str, Any]]:
        try:
            data = await request.json()
        except Exception:
            return None
        return data if isinstance(data, dict) else None

    async def _resolve_template(raw_id: Optional[str]) -> Any:
        """Return the requested template, the active one when no id is given, or None."""
        if raw_id is None:
            return await store.get_default_template()
        template_id = parse_id(raw_id)
        if template_id is None:
            return None
        return await store.get_template(template_id)

    async def _resolve_device(raw_id: Any) -> tuple[Any, Any]:
        """Return (device, error_response)."""
        device_id = parse_id(str(raw_id)) if raw_id is not None else None
        if device_id is None:
            return None, web.json_response({"error": "missing or invalid device_id"}, status=400)
        device = await store.get_device(device_id)
        if device is None:
            return None, web.json_response({"error": f"device {device_id} not found"}, status=404)
        return device, None

    async def health(_request: Any) -> Any:
        """Liveness check."""
        return web.json_response({"status": "ok"})

    async def list_devices(_request: Any) -> Any:
        devices = await store.list_devices()
        return web.json_response({"devices": [d.to_api_dict() for d in devices]})

    async def delete_device(request: Any) -> Any:
        device_id = parse_id(request.match_info.get("device_id"))
        if device_id is None:
            return web.json_response({"error": "invalid device id"}, status=400)
        if not await store.delete_device(device_id):
            return web.json_response({"error": f"device {device_id} not found"}, status=404)
        logger.info("Device %d deleted", device_id)
        return web.Response(status=204)

    async def get_preview(request: Any) -> Any:
        """Preview a stored template for a device."""
        device, error = await _resolve_device(request.query.get("device_id"))
        if error is not None:
            return error
        template = await _resolve_template(request.query.get("template_id"))
        if template is None:
            return web.json_response({"error": "template not found"}, status=404)

        queries = await store.get_metric_queries(template.id)
        result = await renderer.render_preview(device, template.content, queries)
        return web.json_response(result.to_dict())

    async def post_preview(request: Any) -> Any:
        """Preview unsaved template text for a device.

        Body: ``{"device_id": N, "content": "...", "template_id": M}``; the
        metric queries of ``template_id`` (default: active template) are used.
        """
        data = await _read_json(request)
        if data is None:
            return web.json_response({"error": "invalid json"}, status=400)
        content = data.get("content")
        if not isinstance(content, str):
            return web.json_response({"error": "missing content"}, status=400)

        device, error = await _resolve_device(data.get("device_id"))
        if error is not None:
            return error
        raw_template_id = data.get("template_id")
        template = await _resolve_template(
            str(raw_template_id) if raw_template_id is not None else None
        )
        if template is None:
            return web.json_response({"error": "template not found"}, status=404)

        queries = await store.get_metric_queries(template.id)
        result = await renderer.render_preview(device, content, queries)
        return web.json_response(result.to_dict())

    async def get_context(request: Any) -> Any:
        """Flattened render context for the template editor's variable list."""
        device, error = await _resolve_device(request.query.get("device_id"))
        if error is not None:
            return error
        template = await _resolve_template(request.query.get("template_id"))
        if template is None:
            return web.json_response({"error": "template not found"}, status=404)

        queries = await store.get_metric_queries(template.id)
        try:
            rows = await renderer.flatten_context(device, queries)
        except RenderError as e:
            logger.error("Context build failed for device %s: %s", device.id, e)
            return web.json_response({"error": str(e)}, status=500)
        return web.json_response([row.to_dict() for row in rows])

    async def get_template(request: Any) -> Any:
        template = await _resolve_template(request.query.get("template_id"))
        if template is None:
            return web.json_response({"error": "template not found"}, status=404)
        return web.json_response(template.model_dump(mode="json"))

    async def put_template(request: Any) -> Any:
        """Replace template content. Body: ``{"content": "...", "template_id": M}``."""
        data = await _read_json(request)
        if data is None:
            return web.json_response({"error": "invalid json"}, status=400)
        content = data.get("content")
        if not isinstance(content, str):
            return web.json_response({"error": "missing content"}, status=400)

        raw_template_id = data.get("template_id")
        template = await _resolve_template(
            str(raw_template_id) if raw_template_id is not None else None
        )
        if template is None:
            return web.json_response({"error": "template not found"}, status=404)

        updated = await store.update_template(template.id, content)
        if updated is None:
            return web.json_response({"error": "template not found"}, status=404)
        logger.info("Template %d updated (%d chars)", updated.id, len(content))
        return web.json_response(updated.model_dump(mode="json"))

    async def list_queries(request: Any) -> Any:
        template = await _resolve_template(request.query.get("template_id"))
        if template is None:
            return web.json_response({"error": "template not found"}, status=404)
        queries = await store.get_metric_queries(template.id)
        return web.json_response({"queries": [q.model_dump(mode="json") for q in queries]})

    def _parse_query_body(data: dict[str, Any]) -> tuple[Optional[MetricQuerySpec], Any]:
        try:
            spec = MetricQuerySpec(
                name=data.get("name", ""),
                address=data.get("address", ""),
                query=data.get("query", ""),
            )
        except ValidationError as e:
            return None, web.json_response(
                {"error": "invalid metric query", "details": e.errors(include_url=False)},
                status=400,
            )
        return spec, None

    async def create_query(request: Any) -> Any:
        """Attach a metric query to a template. Body: ``{name, address, query}``."""
        data = await _read_json(request)
        if data is None:
            return web.json_response({"error": "invalid json"}, status=400)
        spec, error = _parse_query_body(data)
        if error is not None:
            return error

        raw_template_id = data.get("template_id")
        template = await _resolve_template(
            str(raw_template_id) if raw_template_id is not None else None
        )
        if template is None:
            return web.json_response({"error": "template not found"}, status=404)

        try:
            created = await store.create_metric_query(template.id, spec)
        except DuplicateMetricNameError as e:
            return web.json_response({"error": str(e)}, status=409)
        logger.info("Metric query %r added to template %d", created.name, template.id)
        return web.json_response(created.model_dump(mode="json"), status=201)

    async def update_query(request: Any) -> Any:
        query_id = parse_id(request.match_info.get("query_id"))
        if query_id is None:
            return web.json_response({"error": "invalid query id"}, status=400)
        data = await _read_json(request)
        if data is None:
            return web.json_response({"error": "invalid json"}, status=400)
        spec, error = _parse_query_body(data)
        if error is not None:
            return error

        try:
            updated = await store.update_metric_query(query_id, spec)
        except DuplicateMetricNameError as e:
            return web.json_response({"error": str(e)}, status=409)
        if updated is None:
            return web.json_response({"error": f"query {query_id} not found"}, status=404)
        return web.json_response(updated.model_dump(mode="json"))

    async def delete_query(request: Any) -> Any:
        query_id = parse_id(request.match_info.get("query_id"))
        if query_id is None:
            return web.json_response({"error": "invalid query id"}, status=400)
        if not await store.delete_metric_query(query_id):
            return web.json_response({"error": f"query {query_id} not found"}, status=404)
        return web.Response(status=204)

    app.router.add_get("/api/health", health)
    app.router.add_get("/api/devices", list_devices)
    app.router.add_delete("/api/devices/{device_id}", delete_device)
    app.router.add_get("/api/preview", get_preview)
    app.router.add_post("/api/preview", post_preview)
    app.router.add_get("/api/context", get_context)
    app.router.add_get("/api/template", get_template)
    app.router.add_put("/api/template", put_template)
    app.router.add_get("/api/template/queries", list_queries)
    app.router.add_post("/api/template/queries", create_query)
    app.router.add_put("/api/template/queries/{query_id}", update_query)
    app.router.add_delete("/api/template/queries/{query_id}", delete_query)
