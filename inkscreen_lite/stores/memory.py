"""Dict-backed store for tests and database-less deployments."""

from __future__ import annotations

import asyncio
import logging
import secrets
from typing import Optional

from inkscreen_lite.core.timezone_utils import now_utc
from inkscreen_lite.domain.exceptions import DuplicateMetricNameError
from inkscreen_lite.domain.models import DeviceProfile, MetricQuerySpec, Template

from . import load_default_template_text

logger = logging.getLogger(__name__)


class MemoryStore:
    """In-process implementation of every store protocol.

    State lives for the lifetime of the object; ids are assigned sequentially
    starting at 1.
    """

    def __init__(self, default_template: Optional[str] = None):
        self._default_template_text = default_template
        self._devices: dict[int, DeviceProfile] = {}
        self._templates: dict[int, Template] = {}
        self._queries: dict[int, MetricQuerySpec] = {}
        self._next_device_id = 1
        self._next_template_id = 1
        self._next_query_id = 1
        self._lock = asyncio.Lock()

    # Devices

    async def get_device(self, device_id: int) -> Optional[DeviceProfile]:
        return self._devices.get(device_id)

    async def list_devices(self) -> list[DeviceProfile]:
        return [self._devices[k] for k in sorted(self._devices)]

    async def get_device_by_access_token(self, token: str) -> Optional[DeviceProfile]:
        for device in self._devices.values():
            if token and secrets.compare_digest(device.access_token, token):
                return device
        return None

    async def create_device(self, device: DeviceProfile) -> DeviceProfile:
        async with self._lock:
            device_id = self._next_device_id
            self._next_device_id += 1
            stored = device.model_copy(update={"id": device_id})
            self._devices[device_id] = stored
        logger.debug("Created device %d (%dx%d)", device_id, stored.width, stored.height)
        return stored

    async def update_device(self, device: DeviceProfile) -> Optional[DeviceProfile]:
        async with self._lock:
            if device.id not in self._devices:
                return None
            self._devices[device.id] = device
        return device

    async def delete_device(self, device_id: int) -> bool:
        return self._devices.pop(device_id, None) is not None

    # Templates

    async def get_template(self, template_id: int) -> Optional[Template]:
        return self._templates.get(template_id)

    async def get_default_template(self) -> Template:
        async with self._lock:
            if not self._templates:
                content = self._default_template_text
                if content is None:
                    content = load_default_template_text()
                template = Template(id=self._next_template_id, content=content)
                self._templates[template.id] = template
                self._next_template_id += 1
                logger.info("Seeded default template %d", template.id)
            return self._templates[min(self._templates)]

    async def update_template(self, template_id: int, content: str) -> Optional[Template]:
        existing = self._templates.get(template_id)
        if existing is None:
            return None
        updated = existing.model_copy(update={"content": content, "updated_at": now_utc()})
        self._templates[template_id] = updated
        return updated

    # Metric queries

    async def get_metric_queries(self, template_id: int) -> list[MetricQuerySpec]:
        return [
            self._queries[k]
            for k in sorted(self._queries)
            if self._queries[k].template_id == template_id
        ]

    async def create_metric_query(
        self, template_id: int, spec: MetricQuerySpec
    ) -> MetricQuerySpec:
        async with self._lock:
            self._check_unique_name(template_id, spec.name)
            query_id = self._next_query_id
            self._next_query_id += 1
            stored = spec.model_copy(update={"id": query_id, "template_id": template_id})
            self._queries[query_id] = stored
        return stored

    async def update_metric_query(
        self, query_id: int, spec: MetricQuerySpec
    ) -> Optional[MetricQuerySpec]:
        async with self._lock:
            existing = self._queries.get(query_id)
            if existing is None:
                return None
            self._check_unique_name(existing.template_id, spec.name, exclude_id=query_id)
            updated = spec.model_copy(
                update={"id": query_id, "template_id": existing.template_id}
            )
            self._queries[query_id] = updated
        return updated

    def _check_unique_name(
        self, template_id: int, name: str, exclude_id: Optional[int] = None
    ) -> None:
        for query_id, query in self._queries.items():
            if query_id != exclude_id and query.template_id == template_id and query.name == name:
                raise DuplicateMetricNameError(template_id, name)

    async def delete_metric_query(self, query_id: int) -> bool:
        return self._queries.pop(query_id, None) is not None

    async def close(self) -> None:
        pass
