"""Tests for PNG data URL helpers."""

from __future__ import annotations

import pytest
from PIL import Image

from reliefmap.utils import imaging


def test_data_url_round_trip() -> None:
    """Test that an encoded raster decodes to identical pixels."""
    raster = Image.new("RGBA", (12, 7), (10, 20, 30, 200))
    url = imaging.to_data_url(raster)
    assert url.startswith(imaging.DATA_URL_PREFIX)
    decoded = imaging.from_data_url(url)
    assert decoded.size == (12, 7)
    assert decoded.convert("RGBA").tobytes() == raster.tobytes()


def test_encode_png_signature() -> None:
    """Test that encoded bytes carry the PNG signature."""
    assert imaging.encode_png(Image.new("L", (1, 1))).startswith(b"\x89PNG\r\n\x1a\n")


def test_from_data_url_rejects_other_schemes() -> None:
    """Test that non-PNG data URLs are rejected."""
    with pytest.raises(ValueError):
        imaging.from_data_url("data:image/jpeg;base64,AAAA")
