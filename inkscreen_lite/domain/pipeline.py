"""Screen rendering pipeline.

Stages, in order::

    ContextBuilder     device + metric queries -> RenderContext
    TemplateExpander   template text + context -> SVG markup
    Rasterizer         SVG markup -> premultiplied RGBA buffer
    encode_monochrome  RGBA -> packed 1-bit rows
    serialize_bmp      packed rows -> BMP bytes

Every call builds its objects from scratch; nothing is cached between
renders. The CPU-bound stages run in a worker thread so the event loop keeps
serving other panels.

Usage:
    renderer = ScreenRenderer(ContextBuilder(source, "UTC"), JinjaTemplateExpander(),
                              CairoRasterizer())
    bmp = await renderer.render(device, template.content, queries)
"""

from __future__ import annotations

import asyncio
import base64
import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Optional

from .bitmap import serialize_bmp
from .context_builder import ContextBuilder, RenderContext
from .exceptions import RenderError, SerializationError
from .models import DeviceProfile, MetricQuerySpec
from .monochrome import encode_monochrome
from .rasterizer import Rasterizer
from .template_engine import TemplateExpander
from .values import FlatEntry

logger = logging.getLogger(__name__)

PREVIEW_UNAVAILABLE = "no preview available"


@dataclass(frozen=True)
class PreviewResult:
    """Outcome of an admin preview render: exactly one of image/error is set."""

    image: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.image is not None

    def to_dict(self) -> dict[str, Any]:
        return {"image": self.image, "error": self.error}


class ScreenRenderer:
    """Wires the pipeline stages together."""

    def __init__(
        self,
        context_builder: ContextBuilder,
        expander: TemplateExpander,
        rasterizer: Rasterizer,
    ):
        self.context_builder = context_builder
        self.expander = expander
        self.rasterizer = rasterizer

    async def build_context(
        self, device: DeviceProfile, queries: Sequence[MetricQuerySpec]
    ) -> RenderContext:
        return await self.context_builder.build(device, queries)

    def rasterize_to_bmp(self, markup: str) -> bytes:
        """Rasterize, threshold and serialize markup (synchronous, CPU-bound)."""
        buffer = self.rasterizer.rasterize(markup)
        packed = encode_monochrome(buffer)
        bmp = serialize_bmp(packed)
        if len(bmp) != int.from_bytes(bmp[2:6], "little"):
            raise SerializationError("BMP size field does not match buffer length")
        return bmp

    async def render(
        self,
        device: DeviceProfile,
        template_text: str,
        queries: Sequence[MetricQuerySpec],
    ) -> bytes:
        """Render a device screen to BMP bytes.

        Raises:
            RenderError: Any fatal pipeline failure (config, template, raster, serialization)
        """
        started = time.perf_counter()
        context = await self.build_context(device, queries)
        markup = self.expander.expand(template_text, context)
        bmp = await asyncio.to_thread(self.rasterize_to_bmp, markup)

        logger.debug(
            "Rendered device %s (%dx%d): %d bytes in %.1f ms",
            device.id,
            device.width,
            device.height,
            len(bmp),
            (time.perf_counter() - started) * 1000,
        )
        return bmp

    async def render_preview(
        self,
        device: DeviceProfile,
        template_text: str,
        queries: Sequence[MetricQuerySpec],
    ) -> PreviewResult:
        """Render for the admin preview, base64-encoding the BMP.

        A pipeline failure does not raise; it yields ``image=None`` and the
        error message.
        """
        try:
            bmp = await self.render(device, template_text, queries)
        except RenderError as e:
            logger.info("Preview for device %s failed: %s", device.id, e)
            return PreviewResult(error=f"{PREVIEW_UNAVAILABLE}: {e}")
        return PreviewResult(image=base64.b64encode(bmp).decode("ascii"))

    async def flatten_context(
        self, device: DeviceProfile, queries: Sequence[MetricQuerySpec]
    ) -> list[FlatEntry]:
        """Build the context and flatten it for the debug view.

        Raises:
            ConfigError: If the configured timezone is invalid
        """
        context = await self.build_context(device, queries)
        return context.flatten()
