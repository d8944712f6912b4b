"""Square bounding box selection on a web map.

The selector is a small state machine fed with pointer events in
geographic coordinates. Holding the modifier key while pressing starts a
new box; pressing on a corner handle of the current box resizes it with
the opposite corner pinned, and pressing inside it drags it. Releasing the pointer freezes the box,
emits its canonical ``"minLon,minLat,maxLon,maxLat"`` string and captures
a snapshot of the map view. Escape (cancel()) discards the box.

Boxes are kept visually square on a Mercator map: the longitude extent is
divided by ``cos(centerLat)`` so that both sides cover the same screen
distance. Away from the equator the true ground aspect ratio drifts
slightly from 1:1.

Example:
    >>> selector = SquareSelector()
    >>> selector.pointer_down(LatLng(40.0, -111.0), modifier=True)
    >>> bounds = selector.pointer_move(LatLng(40.01, -111.02))
    >>> selector.pointer_up(MapView(zoom=13, center=LatLng(40.0, -111.0)))
    '-111.02000,39.99734,-111.00000,40.01266'
"""

from __future__ import annotations

import dataclasses
import datetime
import enum
import logging
import math
from typing import TYPE_CHECKING

from reliefmap.geo import models as geo_models

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)


class InteractionMode(enum.StrEnum):
    IDLE = "idle"
    DRAWING = "drawing"
    DRAGGING = "dragging"
    RESIZING = "resizing"


class Handle(enum.StrEnum):
    """Corner handles, named by compass direction."""

    NW = "nw"
    NE = "ne"
    SW = "sw"
    SE = "se"
    BODY = "body"


@dataclasses.dataclass(frozen=True)
class LatLng:
    lat: float
    lng: float


@dataclasses.dataclass(frozen=True)
class MapView:
    """Map viewport state at the time a selection is finalized."""

    zoom: int
    center: LatLng


@dataclasses.dataclass(frozen=True)
class SelectionSnapshot:
    """View metadata captured with a finished selection.

    No pixels are stored; the metadata is enough to recompose the
    background later and to tell two captures of the same box apart.
    """

    zoom: int
    center: LatLng
    captured_at: datetime.datetime

    def descriptor(self) -> str:
        """Stable string folded into raster cache keys."""
        return (
            f"{self.zoom}@{self.center.lat:.6f},{self.center.lng:.6f}"
            f"#{self.captured_at.isoformat()}"
        )


@dataclasses.dataclass
class SquareSelection:
    anchor: LatLng
    bounds: geo_models.BoundingBox | None
    interaction_mode: InteractionMode


def square_bounds(a: LatLng, b: LatLng) -> geo_models.BoundingBox:
    """Visually square box centered between two points.

    Args:
        a: One corner of the drag.
        b: The opposite corner of the drag.

    Returns:
        Box whose latitude span equals its cos-corrected longitude span.
        The half side shrinks where the square would cross a pole or the
        antimeridian.

    Raises:
        BoundingBoxError: If both points coincide or no square fits
            around their midpoint.
    """
    center_lat = (a.lat + b.lat) / 2
    center_lng = (a.lng + b.lng) / 2
    cos_lat = math.cos(math.radians(center_lat))

    lat_diff = abs(a.lat - b.lat)
    lng_diff = abs(a.lng - b.lng) * cos_lat
    half = min(
        max(lat_diff, lng_diff) / 2,
        90.0 - abs(center_lat),
        (180.0 - abs(center_lng)) * cos_lat,
    )
    half_lng = half / cos_lat

    return geo_models.BoundingBox(
        min_lon=max(-180.0, center_lng - half_lng),
        min_lat=max(-90.0, center_lat - half),
        max_lon=min(180.0, center_lng + half_lng),
        max_lat=min(90.0, center_lat + half),
    )


def anchored_square(anchor: LatLng, pointer: LatLng) -> geo_models.BoundingBox:
    """Visually square box with one corner pinned at ``anchor``.

    The side is the larger of the two cos-corrected pointer offsets and the
    box grows from the anchor towards the pointer.

    Raises:
        BoundingBoxError: If the box would leave the world or collapse.
    """
    d_lat = pointer.lat - anchor.lat
    d_lng = pointer.lng - anchor.lng
    mid_cos = math.cos(math.radians((anchor.lat + pointer.lat) / 2))
    side = max(abs(d_lat), abs(d_lng) * mid_cos)

    far_lat = anchor.lat + math.copysign(side, d_lat)
    center_cos = math.cos(math.radians((anchor.lat + far_lat) / 2))
    far_lng = anchor.lng + math.copysign(side / center_cos, d_lng)

    return geo_models.BoundingBox(
        min_lon=min(anchor.lng, far_lng),
        min_lat=min(anchor.lat, far_lat),
        max_lon=max(anchor.lng, far_lng),
        max_lat=max(anchor.lat, far_lat),
    )


def _corner(bounds: geo_models.BoundingBox, handle: Handle) -> LatLng:
    match handle:
        case Handle.NW:
            return LatLng(bounds.max_lat, bounds.min_lon)
        case Handle.NE:
            return LatLng(bounds.max_lat, bounds.max_lon)
        case Handle.SW:
            return LatLng(bounds.min_lat, bounds.min_lon)
        case Handle.SE:
            return LatLng(bounds.min_lat, bounds.max_lon)
    raise ValueError(f"{handle} is not a corner")


_OPPOSITE = {
    Handle.NW: Handle.SE,
    Handle.NE: Handle.SW,
    Handle.SW: Handle.NE,
    Handle.SE: Handle.NW,
}


class SquareSelector:
    """Pointer-driven square selection state machine.

    Attributes:
        bbox_string: Canonical string of the last finalized box, "" if none.
        snapshot: View snapshot captured with the last finalized box.
    """

    def __init__(
        self,
        on_change: Callable[[str], None] | None = None,
        handle_tolerance: float = 0.1,
    ) -> None:
        self.on_change = on_change
        self.handle_tolerance = handle_tolerance
        self.selection: SquareSelection | None = None
        self.bbox_string = ""
        self.snapshot: SelectionSnapshot | None = None
        self._grab: LatLng | None = None
        self._original: geo_models.BoundingBox | None = None

    @property
    def mode(self) -> InteractionMode:
        if self.selection is None:
            return InteractionMode.IDLE
        return self.selection.interaction_mode

    @property
    def bounds(self) -> geo_models.BoundingBox | None:
        return self.selection.bounds if self.selection else None

    def hit_test(self, point: LatLng) -> Handle | None:
        """Which part of the current box lies under ``point``.

        Corners win over the body; the hit radius is ``handle_tolerance``
        times the box's latitude span.
        """
        bounds = self.bounds
        if bounds is None:
            return None
        threshold = bounds.lat_span * self.handle_tolerance
        for handle in (Handle.NW, Handle.NE, Handle.SW, Handle.SE):
            corner = _corner(bounds, handle)
            if (
                abs(point.lat - corner.lat) < threshold
                and abs(point.lng - corner.lng) < threshold
            ):
                return handle
        if bounds.contains(point.lng, point.lat):
            return Handle.BODY
        return None

    def pointer_down(self, point: LatLng, modifier: bool = False) -> None:
        """Start drawing (with modifier), resizing or dragging."""
        if self.mode is not InteractionMode.IDLE:
            return
        if modifier:
            self.selection = SquareSelection(point, None, InteractionMode.DRAWING)
            return

        handle = self.hit_test(point)
        if handle is None or self.selection is None:
            return
        bounds = self.selection.bounds
        self._original = bounds
        if handle is Handle.BODY:
            self._grab = point
            self.selection.interaction_mode = InteractionMode.DRAGGING
        else:
            self.selection.anchor = _corner(bounds, _OPPOSITE[handle])
            self.selection.interaction_mode = InteractionMode.RESIZING

    def pointer_move(self, point: LatLng) -> geo_models.BoundingBox | None:
        """Update the in-progress box; returns the current bounds."""
        selection = self.selection
        if selection is None:
            return None
        try:
            match selection.interaction_mode:
                case InteractionMode.DRAWING:
                    if point != selection.anchor:
                        selection.bounds = square_bounds(selection.anchor, point)
                case InteractionMode.RESIZING:
                    if point != selection.anchor:
                        selection.bounds = anchored_square(selection.anchor, point)
                case InteractionMode.DRAGGING:
                    selection.bounds = self._dragged(point)
                case InteractionMode.IDLE:
                    pass
        except geo_models.BoundingBoxError as exc:
            # The last valid box stays while the pointer is off the world.
            logger.debug("Ignoring pointer at %s: %s", point, exc)
        return selection.bounds

    def _dragged(self, point: LatLng) -> geo_models.BoundingBox | None:
        """Original box moved by the pointer offset, stopped at the world edges."""
        original = self._original
        grab = self._grab
        if original is None or grab is None:
            return self.bounds
        d_lat = point.lat - grab.lat
        d_lng = point.lng - grab.lng
        d_lat = max(-90.0 - original.min_lat, min(90.0 - original.max_lat, d_lat))
        d_lng = max(-180.0 - original.min_lon, min(180.0 - original.max_lon, d_lng))
        return geo_models.BoundingBox(
            min_lon=original.min_lon + d_lng,
            min_lat=original.min_lat + d_lat,
            max_lon=original.max_lon + d_lng,
            max_lat=original.max_lat + d_lat,
        )

    def pointer_up(self, view: MapView | None = None) -> str | None:
        """Freeze the box, emit its string and capture a view snapshot.

        Args:
            view: Map viewport at release; defaults to the box center with
                zoom 0 when the host does not provide one.

        Returns:
            Canonical bounding box string, or None if nothing was finalized.
        """
        selection = self.selection
        if selection is None or selection.interaction_mode is InteractionMode.IDLE:
            return None
        selection.interaction_mode = InteractionMode.IDLE
        self._grab = None
        self._original = None

        bounds = selection.bounds
        if bounds is None:
            self.selection = None
            return None

        if view is None:
            center = bounds.center
            view = MapView(zoom=0, center=LatLng(center.lat, center.lon))
        self.snapshot = SelectionSnapshot(
            zoom=view.zoom,
            center=view.center,
            captured_at=datetime.datetime.now(tz=datetime.UTC),
        )
        self.bbox_string = bounds.serialize()
        logger.debug("Selection finalized: %s", self.bbox_string)
        if self.on_change is not None:
            self.on_change(self.bbox_string)
        return self.bbox_string

    def cancel(self) -> bool:
        """Discard an in-progress box and clear the output string.

        Returns:
            True if an active interaction was cancelled.
        """
        if self.mode is InteractionMode.IDLE:
            return False
        self.selection = None
        self.bbox_string = ""
        self.snapshot = None
        self._grab = None
        self._original = None
        if self.on_change is not None:
            self.on_change("")
        return True
