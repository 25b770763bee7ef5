"""
Image buffer and persistence.

The buffer stores unclamped RGBA floats. Values are clamped to [0, 1]
and quantized to 8 bits only when the image is written, except for
Radiance `.hdr` files which keep the full range.
"""

from __future__ import annotations
from pathlib import Path
from typing import Union
import logging
import math

import numpy as np
from PIL import Image as PILImage

from .color import Color

logger = logging.getLogger(__name__)


class Image:
    """A fixed-size 2D grid of colors indexed by (column, row)."""

    def __init__(self, width: int, height: int):
        if width <= 0 or height <= 0:
            raise ValueError(f"Image size must be positive, got {width}x{height}")
        self.width = width
        self.height = height
        # Row-major so the array can go straight to Pillow
        self.data = np.zeros((height, width, 4), dtype=np.float64)

    def set_pixel(self, col: int, row: int, color: Color) -> None:
        self.data[row, col] = color.to_array()

    def get_pixel(self, col: int, row: int) -> Color:
        return Color.from_array(self.data[row, col].copy())

    def to_rgba8(self) -> np.ndarray:
        """Clamp to [0, 1] and convert to 8-bit RGBA.

        Returns:
            uint8 array of shape (height, width, 4)
        """
        return (np.clip(self.data, 0.0, 1.0) * 255).astype(np.uint8)

    def store(self, filename: Union[str, Path]) -> None:
        """Save the image; the extension picks the format.

        Failures (unwritable path, unknown format) propagate to the caller.
        """
        filename = str(filename)
        if filename.lower().endswith('.hdr'):
            self._save_radiance_hdr(filename)
        else:
            pixels = self.to_rgba8()
            if filename.lower().endswith(('.jpg', '.jpeg', '.bmp')):
                PILImage.fromarray(np.ascontiguousarray(pixels[:, :, :3])).save(filename)
            else:
                PILImage.fromarray(pixels).save(filename)
        logger.info("Stored %dx%d image to %s", self.width, self.height, filename)

    def _save_radiance_hdr(self, filename: str) -> None:
        """Save RGB in Radiance HDR format (flat RGBE scanlines)."""
        with open(filename, 'wb') as f:
            f.write(b'#?RADIANCE\n')
            f.write(b'FORMAT=32-bit_rle_rgbe\n')
            f.write(b'\n')
            f.write(f'-Y {self.height} +X {self.width}\n'.encode())

            for y in range(self.height):
                scanline = []
                for x in range(self.width):
                    r, g, b = np.clip(self.data[y, x, :3], 0.0, None)
                    scanline.extend(_float_to_rgbe(r, g, b))
                f.write(bytes(scanline))


def _float_to_rgbe(r: float, g: float, b: float) -> tuple[int, int, int, int]:
    """Convert RGB float to RGBE format."""
    v = max(r, g, b)
    if v < 1e-32:
        return (0, 0, 0, 0)

    m, e = math.frexp(v)
    v = m * 256.0 / v

    return (
        int(r * v),
        int(g * v),
        int(b * v),
        int(e + 128)
    )
