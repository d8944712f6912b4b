"""Tests for tile placement and raster stitching.

Verifies that placements crop partially visible tiles in proportion,
that tiles aligned with the output reproduce pixel for pixel, and that
missing tiles leave the white background visible.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from reliefmap.geo import models as geo_models
from reliefmap.geo import tiles
from reliefmap.services import compositor

if TYPE_CHECKING:
    from collections.abc import Callable

    from PIL import Image

ZOOM = 10
ORIGIN = tiles.lon_lat_to_tile(-111.5, 40.5, ZOOM)


def _row(count: int) -> list[geo_models.TileCoordinate]:
    return [geo_models.TileCoordinate(ORIGIN.x + i, ORIGIN.y, ZOOM) for i in range(count)]


def _union(coords: list[geo_models.TileCoordinate]) -> geo_models.BoundingBox:
    first = tiles.tile_bounds(coords[0])
    last = tiles.tile_bounds(coords[-1])
    return geo_models.BoundingBox(first.min_lon, first.min_lat, last.max_lon, first.max_lat)


def _is_uniform(image: Image.Image, color: tuple[int, int, int, int]) -> bool:
    return image.getextrema() == tuple((channel, channel) for channel in color)


def test_new_raster_is_white() -> None:
    """Test that rasters start filled with the opaque white background."""
    raster = compositor.new_raster(32, 16)
    assert raster.size == (32, 16)
    assert raster.mode == "RGBA"
    assert _is_uniform(raster, compositor.BACKGROUND)


def test_plan_placement_full_tile() -> None:
    """Test that a tile matching the box fills the output and is not cropped."""
    request = geo_models.CompositionRequest(tiles.tile_bounds(ORIGIN), 256, 256, ZOOM)
    placement = compositor.plan_placement(request, ORIGIN)
    assert placement is not None
    for value, expected in (
        (placement.destination.x0, 0.0),
        (placement.destination.y0, 0.0),
        (placement.destination.x1, 256.0),
        (placement.destination.y1, 256.0),
        (placement.source.x0, 0.0),
        (placement.source.x1, 256.0),
    ):
        assert value == pytest.approx(expected, abs=1e-6)


def test_plan_placement_crops_partial_tile() -> None:
    """Test that a tile visible for a fraction f samples f x 256 pixels."""
    edges = tiles.tile_bounds(ORIGIN)
    tile_width = edges.lon_span
    bbox = geo_models.BoundingBox(
        edges.max_lon - 0.3 * tile_width,
        edges.min_lat,
        edges.max_lon + 0.3 * tile_width,
        edges.max_lat,
    )
    request = geo_models.CompositionRequest(bbox, 200, 100, ZOOM)
    placement = compositor.plan_placement(request, ORIGIN)
    assert placement is not None
    assert placement.source.x0 == pytest.approx(0.7 * 256)
    assert placement.source.width == pytest.approx(0.3 * 256)
    assert placement.source.height == pytest.approx(256)
    assert placement.destination.x0 == pytest.approx(0.0)
    assert placement.destination.x1 == pytest.approx(100.0)


def test_plan_placement_outside_output() -> None:
    """Test that tiles not intersecting the box are skipped."""
    request = geo_models.CompositionRequest(tiles.tile_bounds(ORIGIN), 256, 256, ZOOM)
    neighbour = geo_models.TileCoordinate(ORIGIN.x + 2, ORIGIN.y, ZOOM)
    assert compositor.plan_placement(request, neighbour) is None


def test_composite_reproduces_single_row(noise_tile: Callable[[int], Image.Image]) -> None:
    """Test that tiles aligned with the output are reproduced exactly."""
    coords = _row(3)
    images = {coord: noise_tile(seed) for seed, coord in enumerate(coords)}
    request = geo_models.CompositionRequest(_union(coords), 768, 256, ZOOM)

    shuffled = [geo_models.TileImage(c, images[c]) for c in reversed(coords)]
    raster = compositor.composite(request, shuffled)

    for index, coord in enumerate(coords):
        region = raster.crop((index * 256, 0, (index + 1) * 256, 256))
        assert region.tobytes() == images[coord].tobytes()


def test_composite_leaves_missing_tiles_white(
    solid_tile: Callable[[tuple[int, int, int]], Image.Image],
) -> None:
    """Test that a failed tile shows as background, not as a gap elsewhere."""
    coords = _row(3)
    request = geo_models.CompositionRequest(_union(coords), 768, 256, ZOOM)
    loaded = [
        geo_models.TileImage(coords[0], solid_tile((10, 120, 30))),
        geo_models.TileImage(coords[2], solid_tile((10, 120, 30))),
    ]
    raster = compositor.composite(request, loaded)

    assert _is_uniform(raster.crop((0, 0, 256, 256)), (10, 120, 30, 255))
    assert _is_uniform(raster.crop((256, 0, 512, 256)), compositor.BACKGROUND)
    assert _is_uniform(raster.crop((512, 0, 768, 256)), (10, 120, 30, 255))


def test_composite_partial_tile_fills_box(
    solid_tile: Callable[[tuple[int, int, int]], Image.Image],
) -> None:
    """Test that a box inside one tile is filled entirely from that tile."""
    edges = tiles.tile_bounds(ORIGIN)
    inner = geo_models.BoundingBox(
        edges.min_lon + edges.lon_span * 0.25,
        edges.min_lat + edges.lat_span * 0.25,
        edges.min_lon + edges.lon_span * 0.75,
        edges.min_lat + edges.lat_span * 0.75,
    )
    request = geo_models.CompositionRequest(inner, 100, 100, ZOOM)
    raster = compositor.composite(
        request, [geo_models.TileImage(ORIGIN, solid_tile((200, 50, 90)))]
    )
    assert raster.size == (100, 100)
    assert _is_uniform(raster, (200, 50, 90, 255))


def test_composite_scales_high_dpi_tiles(
    solid_tile: Callable[[tuple[int, int, int]], Image.Image],
) -> None:
    """Test that 512 pixel tiles are sampled in proportion."""
    large = solid_tile((70, 70, 200)).resize((512, 512))
    request = geo_models.CompositionRequest(tiles.tile_bounds(ORIGIN), 64, 64, ZOOM)
    raster = compositor.composite(request, [geo_models.TileImage(ORIGIN, large)])
    assert _is_uniform(raster, (70, 70, 200, 255))
