"""Stitch fetched tiles into one raster cropped to a bounding box.

The output raster maps the requested bounding box linearly onto
``width x height`` pixels (degrees to pixels on each axis). Every tile is
placed by projecting its geographic edges through that mapping, clipping
the resulting rectangle to the raster, and sampling only the matching
part of the tile so that partially visible tiles are cropped rather than
squashed.

Tiles never overlap, so they can be drawn in any order. The raster is
filled with white first; missing tiles show as blank background.

Example:
    >>> request = CompositionRequest(bbox, width=400, height=400, zoom=14)
    >>> raster = composite(request, [tile for tile in outcomes if tile.ok])
    >>> raster.size
    (400, 400)
"""

from __future__ import annotations

import dataclasses
from typing import TYPE_CHECKING

from PIL import Image

from reliefmap.geo import tiles

if TYPE_CHECKING:
    from collections.abc import Iterable

    from reliefmap.geo import models as geo_models

BACKGROUND = (255, 255, 255, 255)

# Source offsets closer than this to a whole pixel are snapped onto it.
_SNAP_TOLERANCE = 1e-6


@dataclasses.dataclass(frozen=True)
class PixelRect:
    """Axis-aligned rectangle in (possibly fractional) pixel units."""

    x0: float
    y0: float
    x1: float
    y1: float

    @property
    def width(self) -> float:
        return self.x1 - self.x0

    @property
    def height(self) -> float:
        return self.y1 - self.y0


@dataclasses.dataclass(frozen=True)
class TilePlacement:
    """Where a tile lands in the output and which part of it is sampled.

    Attributes:
        coord: Tile being placed.
        destination: Clipped rectangle in output pixels.
        source: Matching crop in the tile's own 256x256 pixel space.
    """

    coord: geo_models.TileCoordinate
    destination: PixelRect
    source: PixelRect


def plan_placement(
    request: geo_models.CompositionRequest,
    coord: geo_models.TileCoordinate,
) -> TilePlacement | None:
    """Compute the destination and source rectangles for one tile.

    The clipped-to-full ratio of the destination equals the cropped-to-full
    ratio of the source on each axis independently.

    Args:
        request: Compositing pass the tile belongs to.
        coord: Tile to place.

    Returns:
        TilePlacement, or None when the tile does not intersect the output.
    """
    bbox = request.bbox
    edges = tiles.tile_bounds(coord)
    scale_x = request.width / bbox.lon_span
    scale_y = request.height / bbox.lat_span

    full = PixelRect(
        x0=(edges.min_lon - bbox.min_lon) * scale_x,
        y0=(bbox.max_lat - edges.max_lat) * scale_y,
        x1=(edges.max_lon - bbox.min_lon) * scale_x,
        y1=(bbox.max_lat - edges.min_lat) * scale_y,
    )
    clipped = PixelRect(
        x0=max(full.x0, 0.0),
        y0=max(full.y0, 0.0),
        x1=min(full.x1, float(request.width)),
        y1=min(full.y1, float(request.height)),
    )
    if clipped.width <= 0 or clipped.height <= 0:
        return None

    size = tiles.TILE_SIZE
    source = PixelRect(
        x0=(clipped.x0 - full.x0) / full.width * size,
        y0=(clipped.y0 - full.y0) / full.height * size,
        x1=(clipped.x1 - full.x0) / full.width * size,
        y1=(clipped.y1 - full.y0) / full.height * size,
    )
    return TilePlacement(coord=coord, destination=clipped, source=source)


def new_raster(width: int, height: int) -> Image.Image:
    """Create an RGBA raster pre-filled with the background color."""
    return Image.new("RGBA", (width, height), BACKGROUND)


def _snap(value: float) -> float:
    nearest = round(value)
    return float(nearest) if abs(value - nearest) < _SNAP_TOLERANCE else value


def draw_tile(
    raster: Image.Image,
    tile: Image.Image,
    placement: TilePlacement,
) -> bool:
    """Draw the sampled part of ``tile`` into ``raster``.

    Tiles larger than 256 pixels (high-DPI services) are sampled in
    proportion. Returns False when the destination rounds to no pixels.
    """
    dest = placement.destination
    left, top = round(dest.x0), round(dest.y0)
    width = round(dest.x1) - left
    height = round(dest.y1) - top
    if width <= 0 or height <= 0:
        return False

    factor_x = tile.width / tiles.TILE_SIZE
    factor_y = tile.height / tiles.TILE_SIZE
    src = placement.source
    box = (
        _snap(src.x0 * factor_x),
        _snap(src.y0 * factor_y),
        _snap(src.x1 * factor_x),
        _snap(src.y1 * factor_y),
    )
    patch = tile.convert("RGBA").resize(
        (width, height), Image.Resampling.BILINEAR, box=box
    )
    raster.paste(patch, (left, top), patch)
    return True


def composite(
    request: geo_models.CompositionRequest,
    tile_images: Iterable[geo_models.TileImage],
) -> Image.Image:
    """Assemble tiles into a raster covering exactly ``request.bbox``.

    Args:
        request: Bounding box, output size and zoom of the pass.
        tile_images: Successfully fetched tiles, in any order.

    Returns:
        New RGBA image of ``request.width x request.height`` pixels.
    """
    raster = new_raster(request.width, request.height)
    for tile_image in tile_images:
        placement = plan_placement(request, tile_image.coord)
        if placement is not None:
            draw_tile(raster, tile_image.image, placement)
    return raster
