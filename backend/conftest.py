"""Pytest configuration exposing the backend package and shared tile fixtures."""

from __future__ import annotations

import pathlib
import random
import sys
from typing import TYPE_CHECKING

import pytest
from PIL import Image

if TYPE_CHECKING:
    from collections.abc import Callable

BACKEND_ROOT = pathlib.Path(__file__).resolve().parent

if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))


@pytest.fixture
def solid_tile() -> Callable[[tuple[int, int, int]], Image.Image]:
    """Factory for opaque single-color 256x256 RGBA tiles."""

    def make(color: tuple[int, int, int]) -> Image.Image:
        return Image.new("RGBA", (256, 256), (*color, 255))

    return make


@pytest.fixture
def noise_tile() -> Callable[[int], Image.Image]:
    """Factory for opaque 256x256 RGBA tiles of seeded random pixels."""

    def make(seed: int) -> Image.Image:
        rng = random.Random(seed)
        data = bytes(rng.randrange(256) for _ in range(256 * 256 * 3))
        return Image.frombytes("RGB", (256, 256), data).convert("RGBA")

    return make
