"""Geographic value types shared by the compositing pipeline.

This module defines the structured types that flow between the square
selector, the zoom selector, the tile fetcher and the compositor. Every
type validates its invariants at construction time so that a malformed
bounding box or tile address is rejected before any network activity.

Example:
    Parse the canonical bounding box string produced by the selector:
        >>> from reliefmap.geo.models import BoundingBox
        >>> bbox = BoundingBox.parse("-111.50000,40.50000,-111.49000,40.50700")
        >>> bbox.serialize()
        '-111.50000,40.50000,-111.49000,40.50700'

    Describe one compositing pass:
        >>> request = CompositionRequest(bbox, width=400, height=400, zoom=14)
"""

from __future__ import annotations

import dataclasses
import math
from typing import TYPE_CHECKING, Literal

if TYPE_CHECKING:
    from PIL import Image

FailureReason = Literal["timeout", "http_error", "network_error", "malformed"]


class BoundingBoxError(ValueError):
    """Raised when a bounding box is malformed or degenerate.

    Covers strings that do not hold exactly four finite numbers, values
    outside the valid longitude/latitude ranges, and boxes whose minimum
    edge is not strictly below the maximum edge.
    """


@dataclasses.dataclass(frozen=True)
class LonLat:
    """A geographic point in degrees."""

    lon: float
    lat: float


@dataclasses.dataclass(frozen=True)
class BoundingBox:
    """Rectangle in geographic coordinates (WGS84 degrees).

    Attributes:
        min_lon: Western edge.
        min_lat: Southern edge.
        max_lon: Eastern edge.
        max_lat: Northern edge.

    Raises:
        BoundingBoxError: If any value is non-finite or out of range, or if
            ``min_lon >= max_lon`` or ``min_lat >= max_lat``.
    """

    min_lon: float
    min_lat: float
    max_lon: float
    max_lat: float

    def __post_init__(self) -> None:
        values = (self.min_lon, self.min_lat, self.max_lon, self.max_lat)
        if not all(math.isfinite(v) for v in values):
            raise BoundingBoxError("Bounding box values must be finite numbers")
        if not (-180.0 <= self.min_lon <= 180.0 and -180.0 <= self.max_lon <= 180.0):
            raise BoundingBoxError("Longitude must be within [-180, 180]")
        if not (-90.0 <= self.min_lat <= 90.0 and -90.0 <= self.max_lat <= 90.0):
            raise BoundingBoxError("Latitude must be within [-90, 90]")
        if self.min_lon >= self.max_lon or self.min_lat >= self.max_lat:
            raise BoundingBoxError("Invalid bounding box coordinates")

    @classmethod
    def parse(cls, text: str) -> BoundingBox:
        """Parse a ``"minLon,minLat,maxLon,maxLat"`` string.

        Args:
            text: Comma separated bounding box string.

        Returns:
            Validated BoundingBox.

        Raises:
            BoundingBoxError: If the string does not hold exactly four finite
                numbers forming a valid box.
        """
        parts = text.split(",")
        if len(parts) != 4:
            raise BoundingBoxError(
                'Invalid bounding box format. Expected: "minLng,minLat,maxLng,maxLat"'
            )
        try:
            min_lon, min_lat, max_lon, max_lat = (float(p) for p in parts)
        except ValueError as exc:
            raise BoundingBoxError(
                'Invalid bounding box format. Expected: "minLng,minLat,maxLng,maxLat"'
            ) from exc
        return cls(min_lon, min_lat, max_lon, max_lat)

    def serialize(self) -> str:
        """Return the canonical string form, five decimals and no spaces."""
        return ",".join(
            f"{v:.5f}" for v in (self.min_lon, self.min_lat, self.max_lon, self.max_lat)
        )

    @property
    def lon_span(self) -> float:
        return self.max_lon - self.min_lon

    @property
    def lat_span(self) -> float:
        return self.max_lat - self.min_lat

    @property
    def max_span(self) -> float:
        return max(self.lon_span, self.lat_span)

    @property
    def center(self) -> LonLat:
        return LonLat(
            (self.min_lon + self.max_lon) / 2,
            (self.min_lat + self.max_lat) / 2,
        )

    def contains(self, lon: float, lat: float) -> bool:
        """Whether the point lies inside or on the edge of the box."""
        return (
            self.min_lon <= lon <= self.max_lon
            and self.min_lat <= lat <= self.max_lat
        )


@dataclasses.dataclass(frozen=True)
class TileCoordinate:
    """Address of a 256x256 tile in the XYZ (slippy map) scheme.

    Raises:
        ValueError: If ``z`` is negative or ``x``/``y`` fall outside
            ``[0, 2**z - 1]``.
    """

    x: int
    y: int
    z: int

    def __post_init__(self) -> None:
        if self.z < 0:
            raise ValueError(f"Zoom must be non-negative, got {self.z}")
        limit = 2**self.z
        if not (0 <= self.x < limit and 0 <= self.y < limit):
            raise ValueError(f"Tile {self.x}/{self.y} out of range for zoom {self.z}")


@dataclasses.dataclass(frozen=True)
class CompositionRequest:
    """Normalized instruction driving a single compositing pass."""

    bbox: BoundingBox
    width: int
    height: int
    zoom: int

    def __post_init__(self) -> None:
        if self.width <= 0 or self.height <= 0:
            raise ValueError("Output dimensions must be positive")
        if self.zoom < 0:
            raise ValueError("Zoom must be non-negative")

    def with_zoom(self, zoom: int) -> CompositionRequest:
        """Return a copy of this request targeting another zoom level."""
        return dataclasses.replace(self, zoom=zoom)


@dataclasses.dataclass(frozen=True)
class TileImage:
    """Successful tile fetch: the decoded image and where it belongs."""

    coord: TileCoordinate
    image: Image.Image
    ok: Literal[True] = True


@dataclasses.dataclass(frozen=True)
class TileFailure:
    """Failed tile fetch. Carries no image."""

    coord: TileCoordinate
    reason: FailureReason
    detail: str = ""
    ok: Literal[False] = False


TileFetchOutcome = TileImage | TileFailure
