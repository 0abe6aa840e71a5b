"""Data models for devices, templates and metric queries."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from inkscreen_lite.core.timezone_utils import now_utc as _now_utc


def percent_charged(battery_voltage: Optional[float]) -> Optional[float]:
    """Convert a reported battery voltage to a charge percentage.

    The linear estimate ``(v - 3.0) / 0.012`` is snapped to 100/95/90 near the
    top of the curve because the cells sit on a plateau there, and reads 0
    below 10%.

    Args:
        battery_voltage: Voltage reported by the panel, or None

    Returns:
        Percentage in [0, 100], or None when no voltage was reported
    """
    if battery_voltage is None:
        return None

    pct = (battery_voltage - 3.0) / 0.012
    if pct >= 88.0:
        return 100.0
    if pct >= 85.0:
        return 95.0
    if pct >= 83.0:
        return 90.0
    if pct >= 10.0:
        return pct
    return 0.0


class DeviceProfile(BaseModel):
    """A registered display panel.

    Only ``width``, ``height`` and ``fw_version`` are ever exposed to
    templates; the remaining fields are telemetry and credentials.
    """

    id: int
    width: int = Field(..., gt=0, description="Panel width in pixels")
    height: int = Field(..., gt=0, description="Panel height in pixels")
    fw_version: Optional[str] = None

    access_token: str = Field(default="", repr=False)
    mac_address: str = ""
    model: str = ""
    friendly_id: str = ""
    battery_voltage: Optional[float] = None
    rssi: Optional[str] = None
    last_seen_at: datetime = Field(default_factory=_now_utc)
    created_at: datetime = Field(default_factory=_now_utc)

    @property
    def percent_charged(self) -> Optional[float]:
        """Battery charge estimate, None when no voltage was reported."""
        return percent_charged(self.battery_voltage)

    def to_render_object(self) -> dict[str, Any]:
        """Return the device attributes visible to templates."""
        return {
            "width": self.width,
            "height": self.height,
            "fw_version": self.fw_version,
        }

    def to_api_dict(self) -> dict[str, Any]:
        """Serialize for the admin API, without the access token."""
        data = self.model_dump(mode="json", exclude={"access_token"})
        data["percent_charged"] = self.percent_charged
        return data


class Template(BaseModel):
    """A user-editable screen template."""

    id: int
    content: str
    created_at: datetime = Field(default_factory=_now_utc)
    updated_at: datetime = Field(default_factory=_now_utc)


class MetricQuerySpec(BaseModel):
    """A named metric query attached to a template."""

    name: str = Field(..., min_length=1, description="Key under ``metrics`` in the render context")
    address: str = Field(..., min_length=1, description="Base URL of the metric source")
    query: str = Field(..., min_length=1, description="Query expression sent to the source")

    id: Optional[int] = None
    template_id: Optional[int] = None

    model_config = ConfigDict(str_strip_whitespace=True)


class MetricSample(BaseModel):
    """One labelled value of a metric series."""

    labels: dict[str, str] = Field(default_factory=dict)
    value: float

    def to_render_object(self) -> dict[str, Any]:
        return {"labels": dict(self.labels), "value": self.value}
