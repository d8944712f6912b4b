"""Zoom level selection for arbitrary bounding boxes.

The zoom level is driven by the larger of the box's two spans through a
fixed table of descending thresholds: the smaller the area, the more
detail is requested. Two corrections follow. Outside the relief service's
primary coverage region the zoom is capped, since imagery there degrades
past that level. Then the tile grid is checked against a hard cap and the
zoom is lowered until the request volume fits.

Example:
    >>> from reliefmap.geo import models as geo_models, zoom
    >>> bbox = geo_models.BoundingBox.parse("-111.50000,40.50000,-111.49000,40.50700")
    >>> zoom.select_zoom(bbox)
    14
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from reliefmap.geo import models as geo_models
from reliefmap.geo import tiles

if TYPE_CHECKING:
    from reliefmap.geo.models import BoundingBox

MIN_ZOOM = 3
MAX_ZOOM = 19

# (minimum span in degrees, zoom), descending; spans below the last entry
# use MAX_ZOOM.
ZOOM_THRESHOLDS: tuple[tuple[float, int], ...] = (
    (8.0, 3),
    (4.0, 4),
    (2.0, 5),
    (1.0, 6),
    (0.7, 7),
    (0.4, 8),
    (0.2, 9),
    (0.1, 10),
    (0.05, 11),
    (0.025, 12),
    (0.015, 13),
    (0.006, 14),
    (0.0035, 15),
    (0.0015, 16),
    (0.0006, 17),
    (0.0002, 18),
)

# Contiguous United States, where the shaded relief service is complete.
PRIMARY_COVERAGE = geo_models.BoundingBox(
    min_lon=-125.0,
    min_lat=24.0,
    max_lon=-66.0,
    max_lat=50.0,
)
OUT_OF_COVERAGE_MAX_ZOOM = 14

HIGH_ZOOM = 16
HIGH_ZOOM_TILE_CAP = 16
TILE_CAP = 12


def zoom_for_span(max_span: float) -> int:
    """Map the larger span of a box to a zoom level via ZOOM_THRESHOLDS."""
    for threshold, zoom in ZOOM_THRESHOLDS:
        if max_span >= threshold:
            return zoom
    return MAX_ZOOM


def tile_cap(zoom: int) -> int:
    """Largest tile grid allowed at ``zoom``."""
    return HIGH_ZOOM_TILE_CAP if zoom >= HIGH_ZOOM else TILE_CAP


def in_primary_coverage(bbox: BoundingBox) -> bool:
    """Whether the box center falls inside the primary coverage region."""
    center = bbox.center
    return PRIMARY_COVERAGE.contains(center.lon, center.lat)


def fit_tile_cap(bbox: BoundingBox, zoom: int) -> int:
    """Lower ``zoom`` until the tile grid for ``bbox`` respects tile_cap.

    Zoom 0 is a single tile, so the loop always terminates with a grid
    under the cap.
    """
    while zoom > 0 and tiles.tile_grid(bbox, zoom).count > tile_cap(zoom):
        zoom -= 1
    return zoom


def select_zoom(bbox: BoundingBox) -> int:
    """Choose a zoom level balancing detail against request volume.

    Args:
        bbox: Area to be composited.

    Returns:
        Zoom level whose tile grid never exceeds tile_cap for that zoom.
    """
    zoom = zoom_for_span(bbox.max_span)
    zoom = max(MIN_ZOOM, min(MAX_ZOOM, zoom))
    if not in_primary_coverage(bbox):
        zoom = min(zoom, OUT_OF_COVERAGE_MAX_ZOOM)
    return fit_tile_cap(bbox, zoom)
