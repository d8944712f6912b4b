"""Monochrome relief filter for server-side captures.

Converts the composited terrain to luminance, darkens it and stretches
contrast around mid-gray, producing the high-contrast relief used for
engraving and printing. The constants are part of the product's visual
output and must not drift.

Example:
    >>> filtered = apply_relief_filter(raster)
    >>> filtered.mode
    'RGBA'
"""

from __future__ import annotations

import numpy as np
from PIL import Image

LUMA_RED = 0.299
LUMA_GREEN = 0.587
LUMA_BLUE = 0.114
BRIGHTNESS = 0.6
CONTRAST = 5.0
MIDPOINT = 128.0


def relief_value(red: int, green: int, blue: int) -> int:
    """Filtered channel value for a single pixel.

    Scalar form of apply_relief_filter(), kept as the reference the
    vectorised filter is checked against and for callers that need the
    relief shade of one known color.
    """
    gray = LUMA_RED * red + LUMA_GREEN * green + LUMA_BLUE * blue
    dark = gray * BRIGHTNESS
    final = min(255.0, max(0.0, (dark - MIDPOINT) * CONTRAST + MIDPOINT))
    return round(final)


def apply_relief_filter(image: Image.Image) -> Image.Image:
    """Apply grayscale, brightness and contrast to every pixel.

    Red, green and blue are replaced by the filtered luminance; alpha is
    left unchanged. The input image is not modified.

    Args:
        image: Raster to filter, any mode Pillow can convert to RGBA.

    Returns:
        New RGBA image of the same size.
    """
    pixels = np.asarray(image.convert("RGBA"), dtype=np.float64)
    gray = (
        LUMA_RED * pixels[..., 0]
        + LUMA_GREEN * pixels[..., 1]
        + LUMA_BLUE * pixels[..., 2]
    )
    dark = gray * BRIGHTNESS
    final = np.clip((dark - MIDPOINT) * CONTRAST + MIDPOINT, 0.0, 255.0)
    channel = np.rint(final).astype(np.uint8)

    out = np.empty(pixels.shape, dtype=np.uint8)
    out[..., 0] = channel
    out[..., 1] = channel
    out[..., 2] = channel
    out[..., 3] = pixels[..., 3].astype(np.uint8)
    return Image.fromarray(out)
