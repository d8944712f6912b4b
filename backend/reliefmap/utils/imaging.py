"""PNG encoding helpers for returning rasters over HTTP.

Example:
    >>> from reliefmap.utils import imaging
    >>> url = imaging.to_data_url(raster)
    >>> url.startswith("data:image/png;base64,")
    True
    >>> imaging.from_data_url(url).size == raster.size
    True
"""

from __future__ import annotations

import base64
import io

from PIL import Image

DATA_URL_PREFIX = "data:image/png;base64,"


def encode_png(image: Image.Image) -> bytes:
    """Serialize an image to PNG bytes."""
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


def to_data_url(image: Image.Image) -> str:
    """Embed an image as a base64 PNG data URL."""
    return DATA_URL_PREFIX + base64.b64encode(encode_png(image)).decode("ascii")


def from_data_url(data_url: str) -> Image.Image:
    """Decode a PNG data URL produced by to_data_url().

    Client-side counterpart of to_data_url(); the service itself only
    encodes. Used to read back captures returned by the API.

    Raises:
        ValueError: If the string is not a base64 PNG data URL.
    """
    if not data_url.startswith(DATA_URL_PREFIX):
        raise ValueError("Not a PNG data URL")
    payload = base64.b64decode(data_url[len(DATA_URL_PREFIX):], validate=True)
    image = Image.open(io.BytesIO(payload))
    image.load()
    return image
