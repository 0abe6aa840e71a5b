"""Collaborator interfaces for device, template and metric query persistence."""

from __future__ import annotations

from typing import Optional, Protocol

from inkscreen_lite.domain.models import DeviceProfile, MetricQuerySpec, Template


class DeviceRegistry(Protocol):
    async def get_device(self, device_id: int) -> Optional[DeviceProfile]: ...

    async def list_devices(self) -> list[DeviceProfile]: ...

    async def get_device_by_access_token(self, token: str) -> Optional[DeviceProfile]: ...

    async def create_device(self, device: DeviceProfile) -> DeviceProfile: ...

    async def update_device(self, device: DeviceProfile) -> Optional[DeviceProfile]:
        """Overwrite the stored fields of ``device.id``; None if it does not exist."""
        ...

    async def delete_device(self, device_id: int) -> bool: ...


class TemplateStore(Protocol):
    async def get_template(self, template_id: int) -> Optional[Template]: ...

    async def get_default_template(self) -> Template:
        """Return the active template, seeding it on first use."""
        ...

    async def update_template(self, template_id: int, content: str) -> Optional[Template]: ...


class MetricQueryStore(Protocol):
    async def get_metric_queries(self, template_id: int) -> list[MetricQuerySpec]: ...

    async def create_metric_query(
        self, template_id: int, spec: MetricQuerySpec
    ) -> MetricQuerySpec:
        """Raises DuplicateMetricNameError if the template already uses ``spec.name``."""
        ...

    async def update_metric_query(
        self, query_id: int, spec: MetricQuerySpec
    ) -> Optional[MetricQuerySpec]: ...

    async def delete_metric_query(self, query_id: int) -> bool: ...


class Store(DeviceRegistry, TemplateStore, MetricQueryStore, Protocol):
    """All three collaborators behind one backend."""

    async def close(self) -> None: ...
