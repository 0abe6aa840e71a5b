"""1-bit BMP (BITMAPINFOHEADER) serialization for panel firmware.

Layout, little-endian throughout::

    0   BITMAPFILEHEADER  14 bytes  "BM", file size, 0, 0, pixel offset (62)
    14  BITMAPINFOHEADER  40 bytes  1 plane, 1 bpp, BI_RGB, 2 colors
    54  color table        8 bytes  index 0 black, index 1 white
    62  pixel rows                  bottom-up, each padded to 4 bytes
"""

import struct

from .exceptions import SerializationError
from .monochrome import PackedBitmap, row_bytes_for

FILE_HEADER_SIZE = 14
INFO_HEADER_SIZE = 40
COLOR_TABLE = bytes((0, 0, 0, 0, 255, 255, 255, 0))
PIXEL_DATA_OFFSET = FILE_HEADER_SIZE + INFO_HEADER_SIZE + len(COLOR_TABLE)


def row_size_for(width: int) -> int:
    """Stored row length: the 1-bit row rounded up to a multiple of 4 bytes."""
    return ((width + 31) // 32) * 4


def bmp_file_size(width: int, height: int) -> int:
    return PIXEL_DATA_OFFSET + row_size_for(width) * height


def serialize_bmp(bitmap: PackedBitmap) -> bytes:
    """Wrap packed 1-bit pixels in a BMP file.

    Raises:
        SerializationError: If the geometry is non-positive or the data length
            does not match ``row_bytes * height``
    """
    width, height, row_bytes = bitmap.width, bitmap.height, bitmap.row_bytes
    if width <= 0 or height <= 0:
        raise SerializationError(f"Invalid bitmap geometry {width}x{height}")
    if row_bytes != row_bytes_for(width):
        raise SerializationError(
            f"row_bytes {row_bytes} does not match width {width} (expected {row_bytes_for(width)})"
        )
    if len(bitmap.data) != row_bytes * height:
        raise SerializationError(
            f"Packed data is {len(bitmap.data)} bytes, expected {row_bytes * height}"
        )

    row_size = row_size_for(width)
    pixel_data_size = row_size * height
    file_size = PIXEL_DATA_OFFSET + pixel_data_size
    padding = b"\x00" * (row_size - row_bytes)

    out = bytearray()
    out += struct.pack("<2sIHHI", b"BM", file_size, 0, 0, PIXEL_DATA_OFFSET)
    out += struct.pack(
        "<IiiHHIIiiII",
        INFO_HEADER_SIZE,
        width,
        height,  # positive height: rows are stored bottom-up
        1,  # planes
        1,  # bits per pixel
        0,  # BI_RGB
        pixel_data_size,
        0,
        0,
        2,  # colors used
        2,  # important colors
    )
    out += COLOR_TABLE

    data = bitmap.data
    for y in range(height - 1, -1, -1):
        start = y * row_bytes
        out += data[start : start + row_bytes]
        out += padding

    if len(out) != file_size:
        raise SerializationError(f"Wrote {len(out)} bytes, header declares {file_size}")
    return bytes(out)
