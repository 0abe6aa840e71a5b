"""SVG rasterization into an RGBA pixel buffer at the document's intrinsic size."""

from __future__ import annotations

import io
import logging
import math
import re
import xml.etree.ElementTree as ET  # nosec B405 - only the root element is inspected
from dataclasses import dataclass
from typing import Optional, Protocol

import numpy as np
from PIL import Image

from .exceptions import RasterAllocError, RasterParseError

logger = logging.getLogger(__name__)

# Largest side accepted for a pixel buffer
MAX_DIMENSION = 16384

# CSS reference pixel density; makes unitless/px lengths map 1:1 to pixels
SVG_DPI = 96

_LENGTH_RE = re.compile(r"^\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)\s*(px)?\s*$")


@dataclass(frozen=True)
class RGBABuffer:
    """Premultiplied RGBA pixels, row-major, shape ``(height, width, 4)``."""

    width: int
    height: int
    pixels: np.ndarray


class Rasterizer(Protocol):
    """Renders vector markup into a pixel buffer."""

    def rasterize(self, text: str) -> RGBABuffer:
        """Render ``text`` at its intrinsic size.

        Raises:
            RasterParseError: If the markup cannot be parsed
            RasterAllocError: If the pixel buffer cannot be allocated
        """
        ...


def _parse_length(raw: Optional[str], attr: str) -> Optional[float]:
    if raw is None:
        return None
    match = _LENGTH_RE.match(raw)
    if not match:
        raise RasterParseError(f"Unsupported {attr} {raw!r}; expected a pixel length")
    return float(match.group(1))


def _parse_viewbox(raw: Optional[str]) -> Optional[tuple[float, float]]:
    if not raw:
        return None
    parts = raw.replace(",", " ").split()
    if len(parts) != 4:
        raise RasterParseError(f"Malformed viewBox {raw!r}")
    try:
        _, _, width, height = (float(p) for p in parts)
    except ValueError as e:
        raise RasterParseError(f"Malformed viewBox {raw!r}") from e
    return width, height


def intrinsic_size(text: str) -> tuple[int, int]:
    """Read the pixel size declared by an SVG document root.

    ``width``/``height`` must be unitless or ``px``; when either is absent the
    corresponding ``viewBox`` extent is used. Fractional sizes round up.

    Raises:
        RasterParseError: If the text is not an SVG document
        RasterAllocError: If the size is missing, non-positive or too large
    """
    try:
        root = ET.fromstring(text)  # nosec B314
    except ET.ParseError as e:
        raise RasterParseError(f"Failed to parse SVG: {e}") from e

    tag = root.tag.rsplit("}", 1)[-1]
    if tag != "svg":
        raise RasterParseError(f"Document root is <{tag}>, expected <svg>")

    width = _parse_length(root.get("width"), "width")
    height = _parse_length(root.get("height"), "height")
    if width is None or height is None:
        viewbox = _parse_viewbox(root.get("viewBox"))
        if viewbox is not None:
            width = viewbox[0] if width is None else width
            height = viewbox[1] if height is None else height

    if width is None or height is None:
        raise RasterAllocError("SVG root declares no width/height or viewBox")
    if not (math.isfinite(width) and math.isfinite(height)):
        raise RasterAllocError(f"Invalid SVG size {width}x{height}")

    w, h = math.ceil(width), math.ceil(height)
    if w <= 0 or h <= 0 or w > MAX_DIMENSION or h > MAX_DIMENSION:
        raise RasterAllocError(
            f"Cannot allocate {w}x{h} pixel buffer (each side must be 1..{MAX_DIMENSION})"
        )
    return w, h


def premultiply(pixels: np.ndarray) -> np.ndarray:
    """Convert straight-alpha RGBA to premultiplied RGBA (rounded)."""
    wide = pixels.astype(np.uint16)
    alpha = wide[..., 3:4]
    out = np.empty_like(pixels)
    out[..., :3] = ((wide[..., :3] * alpha + 127) // 255).astype(np.uint8)
    out[..., 3] = pixels[..., 3]
    return out


class CairoRasterizer:
    """Rasterizer backed by CairoSVG.

    Missing fonts fall back to Cairo's default face. Transparent regions
    stay transparent; after premultiplication they read as black.
    """

    def __init__(self, dpi: int = SVG_DPI):
        self.dpi = dpi

    def rasterize(self, text: str) -> RGBABuffer:
        width, height = intrinsic_size(text)

        # Imported lazily: requires the native cairo library
        import cairosvg

        try:
            png = cairosvg.svg2png(
                bytestring=text.encode("utf-8"),
                dpi=self.dpi,
                output_width=width,
                output_height=height,
            )
        except MemoryError as e:
            raise RasterAllocError(f"Cannot allocate {width}x{height} pixel buffer") from e
        except Exception as e:
            raise RasterParseError(f"Failed to render SVG: {e}") from e

        with Image.open(io.BytesIO(png)) as img:
            rgba = img.convert("RGBA")
            pixels = np.asarray(rgba, dtype=np.uint8)

        if pixels.shape[:2] != (height, width):
            logger.warning(
                "Rasterized size %dx%d differs from declared %dx%d",
                pixels.shape[1],
                pixels.shape[0],
                width,
                height,
            )
            width, height = pixels.shape[1], pixels.shape[0]

        logger.debug("Rasterized SVG at %dx%d", width, height)
        return RGBABuffer(width=width, height=height, pixels=premultiply(pixels))
