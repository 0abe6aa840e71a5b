"""Luminance thresholding and 1-bit packing of RGBA buffers."""

from dataclasses import dataclass

import numpy as np

from .rasterizer import RGBABuffer

# Pixels at or above this luminance are white
LUMINANCE_THRESHOLD = 127


@dataclass(frozen=True)
class PackedBitmap:
    """1-bit pixels, 8 per byte, MSB = leftmost pixel; 1 = white, 0 = black.

    Rows are ``row_bytes`` long and stored top-down with no padding beyond
    the last partial byte.
    """

    width: int
    height: int
    row_bytes: int
    data: bytes


def row_bytes_for(width: int) -> int:
    return (width + 7) // 8


def luminance(pixels: np.ndarray) -> np.ndarray:
    """Integer luminance ``floor(0.299R + 0.587G + 0.114B)`` of an RGBA array."""
    rgb = pixels[..., :3].astype(np.uint32)
    return (299 * rgb[..., 0] + 587 * rgb[..., 1] + 114 * rgb[..., 2]) // 1000


def encode_monochrome(buffer: RGBABuffer) -> PackedBitmap:
    """Threshold every pixel at luminance 127 and pack the result.

    No dithering: a pixel is white iff its luminance is >= 127.
    """
    bits = luminance(buffer.pixels) >= LUMINANCE_THRESHOLD
    packed = np.packbits(bits, axis=1, bitorder="big")
    return PackedBitmap(
        width=buffer.width,
        height=buffer.height,
        row_bytes=row_bytes_for(buffer.width),
        data=packed.tobytes(),
    )
