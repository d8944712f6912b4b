"""Web Mercator tile math.

Pure functions converting between geographic coordinates and XYZ tile
indices, plus the tile grid covering a bounding box. All tiles are
addressed in the standard EPSG:3857 slippy map scheme with the origin at
the north-west corner of the world.

Example:
    Locate the tile holding a point and read its edges back:
        >>> from reliefmap.geo import tiles
        >>> coord = tiles.lon_lat_to_tile(-111.5, 40.5, 14)
        >>> edges = tiles.tile_bounds(coord)
        >>> edges.contains(-111.5, 40.5)
        True
"""

from __future__ import annotations

import dataclasses
import math
from typing import TYPE_CHECKING

from reliefmap.geo import models as geo_models

if TYPE_CHECKING:
    from collections.abc import Iterator

TILE_SIZE = 256
MAX_LATITUDE = 85.0511287798066

# Fraction of a tile below which a box edge counts as lying on the boundary.
EDGE_TOLERANCE = 1e-6


def lon_lat_to_tile(lon: float, lat: float, z: int) -> geo_models.TileCoordinate:
    """Return the tile containing ``(lon, lat)`` at zoom ``z``.

    Latitude is clamped to the Mercator limit and the resulting indices to
    ``[0, 2**z - 1]`` so that points on the eastern or southern world edge
    map to the last tile rather than off the grid.
    """
    n = 2**z
    x, y = _tile_fraction(lon, lat, z)
    return geo_models.TileCoordinate(_clamp(math.floor(x), n), _clamp(math.floor(y), n), z)


def _tile_fraction(lon: float, lat: float, z: int) -> tuple[float, float]:
    """Fractional tile position of a point, Mercator-clamped in latitude."""
    n = 2**z
    lat = max(-MAX_LATITUDE, min(MAX_LATITUDE, lat))
    lat_rad = math.radians(lat)
    x = (lon + 180.0) / 360.0 * n
    y = (1.0 - math.asinh(math.tan(lat_rad)) / math.pi) / 2.0 * n
    return x, y


def _clamp(index: int, n: int) -> int:
    return max(0, min(n - 1, index))


def tile_to_lon_lat(x: float, y: float, z: int) -> geo_models.LonLat:
    """Return the north-west corner of tile ``(x, y)`` at zoom ``z``.

    Fractional and edge indices (``x == 2**z``) are accepted so callers can
    ask for the far edges of a tile with ``x + 1`` / ``y + 1``.
    """
    n = 2**z
    lon = x / n * 360.0 - 180.0
    lat = math.degrees(math.atan(math.sinh(math.pi * (1.0 - 2.0 * y / n))))
    return geo_models.LonLat(lon, lat)


def tile_bounds(coord: geo_models.TileCoordinate) -> geo_models.BoundingBox:
    """Geographic edges of a tile."""
    north_west = tile_to_lon_lat(coord.x, coord.y, coord.z)
    south_east = tile_to_lon_lat(coord.x + 1, coord.y + 1, coord.z)
    return geo_models.BoundingBox(
        min_lon=north_west.lon,
        min_lat=south_east.lat,
        max_lon=south_east.lon,
        max_lat=north_west.lat,
    )


@dataclasses.dataclass(frozen=True)
class TileGrid:
    """Inclusive range of tiles covering a bounding box at one zoom level."""

    zoom: int
    min_x: int
    min_y: int
    max_x: int
    max_y: int

    @property
    def columns(self) -> int:
        return self.max_x - self.min_x + 1

    @property
    def rows(self) -> int:
        return self.max_y - self.min_y + 1

    @property
    def count(self) -> int:
        return self.columns * self.rows

    def __iter__(self) -> Iterator[geo_models.TileCoordinate]:
        for y in range(self.min_y, self.max_y + 1):
            for x in range(self.min_x, self.max_x + 1):
                yield geo_models.TileCoordinate(x, y, self.zoom)


def tile_grid(bbox: geo_models.BoundingBox, z: int) -> TileGrid:
    """Compute the tiles needed to cover ``bbox`` at zoom ``z``.

    Edges are half-open: a box edge lying on a tile boundary (within
    EDGE_TOLERANCE of a tile) does not pull in the neighbouring tile, so
    the union of whole tiles maps back to exactly those tiles.
    """
    n = 2**z
    west, north = _tile_fraction(bbox.min_lon, bbox.max_lat, z)
    east, south = _tile_fraction(bbox.max_lon, bbox.min_lat, z)
    min_x = _clamp(math.floor(west + EDGE_TOLERANCE), n)
    min_y = _clamp(math.floor(north + EDGE_TOLERANCE), n)
    max_x = max(min_x, _clamp(math.ceil(east - EDGE_TOLERANCE) - 1, n))
    max_y = max(min_y, _clamp(math.ceil(south - EDGE_TOLERANCE) - 1, n))
    return TileGrid(zoom=z, min_x=min_x, min_y=min_y, max_x=max_x, max_y=max_y)
