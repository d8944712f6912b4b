"""Tests for the square bounding box selector.

Drives the selector with synthetic pointer events and checks the
visual-square property, the interaction state machine, and the canonical
string and snapshot emitted on release.
"""

from __future__ import annotations

import math
import re

import pytest

from reliefmap.geo import models as geo_models
from reliefmap.selection import square

CANONICAL = re.compile(r"^-?\d+\.\d{5},-?\d+\.\d{5},-?\d+\.\d{5},-?\d+\.\d{5}$")


def _squareness(bounds: geo_models.BoundingBox) -> float:
    cos_lat = math.cos(math.radians(bounds.center.lat))
    return abs(bounds.lat_span - bounds.lon_span * cos_lat)


def _drawn(
    start: square.LatLng = square.LatLng(40.0, -111.0),
    end: square.LatLng = square.LatLng(40.01, -111.02),
) -> tuple[square.SquareSelector, list[str]]:
    emitted: list[str] = []
    selector = square.SquareSelector(on_change=emitted.append)
    selector.pointer_down(start, modifier=True)
    selector.pointer_move(end)
    selector.pointer_up(square.MapView(zoom=13, center=start))
    return selector, emitted


@pytest.mark.parametrize(
    ("a", "b"),
    [
        (square.LatLng(40.0, -111.0), square.LatLng(40.01, -111.02)),
        (square.LatLng(40.01, -111.02), square.LatLng(40.0, -111.0)),
        (square.LatLng(-33.9, 18.4), square.LatLng(-34.2, 18.9)),
        (square.LatLng(64.1, -21.9), square.LatLng(64.2, -21.7)),
        (square.LatLng(0.5, 10.0), square.LatLng(-0.5, 10.001)),
    ],
)
def test_square_bounds_is_visually_square(a: square.LatLng, b: square.LatLng) -> None:
    """Test the cos-corrected spans are equal for any drag direction."""
    bounds = square.square_bounds(a, b)
    assert _squareness(bounds) < 1e-9
    assert bounds.center.lat == pytest.approx((a.lat + b.lat) / 2)
    assert bounds.center.lon == pytest.approx((a.lng + b.lng) / 2)


def test_square_bounds_is_symmetric() -> None:
    """Test that swapping the drag endpoints gives the same box."""
    a = square.LatLng(40.0, -111.0)
    b = square.LatLng(40.01, -111.02)
    first = square.square_bounds(a, b)
    second = square.square_bounds(b, a)
    assert first.serialize() == second.serialize()


def test_draw_emits_canonical_string() -> None:
    """Test a modifier drag produces a square box and emits its string."""
    selector, emitted = _drawn()

    assert selector.mode is square.InteractionMode.IDLE
    assert emitted == [selector.bbox_string]
    assert CANONICAL.match(selector.bbox_string)

    parsed = geo_models.BoundingBox.parse(selector.bbox_string)
    assert parsed.min_lon == pytest.approx(-111.02, abs=1e-5)
    assert parsed.max_lon == pytest.approx(-111.0, abs=1e-5)
    assert parsed.min_lat == pytest.approx(39.99734, abs=1e-5)
    assert parsed.max_lat == pytest.approx(40.01266, abs=1e-5)

    bounds = selector.bounds
    assert bounds is not None
    assert _squareness(bounds) < 1e-9


def test_release_captures_snapshot() -> None:
    """Test that the map view is recorded with the finished selection."""
    selector, _ = _drawn()
    snapshot = selector.snapshot
    assert snapshot is not None
    assert snapshot.zoom == 13
    assert snapshot.center == square.LatLng(40.0, -111.0)
    assert snapshot.captured_at.tzinfo is not None
    assert "13@" in snapshot.descriptor()


def test_release_without_view_uses_box_center() -> None:
    """Test the default snapshot when the host gives no map view."""
    selector = square.SquareSelector()
    selector.pointer_down(square.LatLng(40.0, -111.0), modifier=True)
    selector.pointer_move(square.LatLng(40.01, -111.02))
    selector.pointer_up()
    assert selector.snapshot is not None
    assert selector.snapshot.zoom == 0
    assert selector.snapshot.center.lat == pytest.approx(40.005)


def test_drawing_mode_during_drag() -> None:
    """Test that the selector reports drawing until release."""
    selector = square.SquareSelector()
    selector.pointer_down(square.LatLng(40.0, -111.0), modifier=True)
    assert selector.mode is square.InteractionMode.DRAWING
    assert selector.bounds is None
    bounds = selector.pointer_move(square.LatLng(40.02, -111.03))
    assert bounds is not None
    assert selector.mode is square.InteractionMode.DRAWING
    assert selector.bbox_string == ""


def test_press_without_modifier_does_nothing() -> None:
    """Test that plain presses with no box leave the selector idle."""
    selector = square.SquareSelector()
    selector.pointer_down(square.LatLng(40.0, -111.0))
    assert selector.mode is square.InteractionMode.IDLE
    assert selector.selection is None
    assert selector.pointer_up() is None


def test_click_without_move_emits_nothing() -> None:
    """Test that a modifier click without dragging creates no box."""
    emitted: list[str] = []
    selector = square.SquareSelector(on_change=emitted.append)
    point = square.LatLng(40.0, -111.0)
    selector.pointer_down(point, modifier=True)
    selector.pointer_move(point)
    assert selector.pointer_up() is None
    assert selector.selection is None
    assert emitted == []


def test_cancel_discards_drawing() -> None:
    """Test that Escape during a draw clears the box and the output."""
    selector, emitted = _drawn()
    selector.pointer_down(square.LatLng(41.0, -112.0), modifier=True)
    selector.pointer_move(square.LatLng(41.05, -112.05))

    assert selector.cancel()
    assert selector.selection is None
    assert selector.bounds is None
    assert selector.bbox_string == ""
    assert selector.snapshot is None
    assert emitted[-1] == ""


def test_cancel_when_idle_is_noop() -> None:
    """Test that cancelling with no active interaction keeps the box."""
    selector, emitted = _drawn()
    before = selector.bbox_string
    assert not selector.cancel()
    assert selector.bbox_string == before
    assert len(emitted) == 1


def test_hit_test_regions() -> None:
    """Test corner handles win over the body, outside is a miss."""
    selector, _ = _drawn()
    bounds = selector.bounds
    assert bounds is not None
    center = bounds.center

    assert selector.hit_test(square.LatLng(bounds.max_lat, bounds.min_lon)) is square.Handle.NW
    assert selector.hit_test(square.LatLng(bounds.max_lat, bounds.max_lon)) is square.Handle.NE
    assert selector.hit_test(square.LatLng(bounds.min_lat, bounds.min_lon)) is square.Handle.SW
    assert selector.hit_test(square.LatLng(bounds.min_lat, bounds.max_lon)) is square.Handle.SE
    assert selector.hit_test(square.LatLng(center.lat, center.lon)) is square.Handle.BODY
    assert selector.hit_test(square.LatLng(bounds.max_lat + 1.0, center.lon)) is None


def test_drag_translates_box() -> None:
    """Test that pressing inside the box moves it without resizing."""
    selector, emitted = _drawn()
    original = selector.bounds
    assert original is not None
    center = original.center

    selector.pointer_down(square.LatLng(center.lat, center.lon))
    assert selector.mode is square.InteractionMode.DRAGGING
    moved = selector.pointer_move(square.LatLng(center.lat + 0.2, center.lon + 0.1))
    assert moved is not None
    assert moved.min_lat == pytest.approx(original.min_lat + 0.2)
    assert moved.min_lon == pytest.approx(original.min_lon + 0.1)
    assert moved.lat_span == pytest.approx(original.lat_span)
    assert moved.lon_span == pytest.approx(original.lon_span)

    result = selector.pointer_up()
    assert result == moved.serialize()
    assert emitted[-1] == result
    assert selector.mode is square.InteractionMode.IDLE


def test_resize_from_corner_keeps_opposite_corner_fixed() -> None:
    """Test that dragging a corner re-squares with the opposite corner pinned."""
    selector, _ = _drawn()
    bounds = selector.bounds
    assert bounds is not None
    south_west = square.LatLng(bounds.min_lat, bounds.min_lon)

    selector.pointer_down(square.LatLng(bounds.max_lat, bounds.max_lon))
    assert selector.mode is square.InteractionMode.RESIZING
    assert selector.selection is not None
    assert selector.selection.anchor == south_west

    pointer = square.LatLng(bounds.max_lat + 0.03, bounds.max_lon + 0.01)
    resized = selector.pointer_move(pointer)
    assert resized is not None
    assert resized == square.anchored_square(south_west, pointer)
    assert (resized.min_lat, resized.min_lon) == (bounds.min_lat, bounds.min_lon)
    assert resized.max_lat == pytest.approx(pointer.lat)
    assert _squareness(resized) < 1e-9

    assert selector.pointer_up() == resized.serialize()


@pytest.mark.parametrize(
    ("dlat", "dlng"),
    [(0.05, 0.01), (-0.05, -0.2), (0.01, -0.3), (-0.2, 0.02)],
)
def test_anchored_square_pins_anchor(dlat: float, dlng: float) -> None:
    """Test the anchor stays a corner and the box grows toward the pointer."""
    anchor = square.LatLng(40.0, -111.0)
    pointer = square.LatLng(anchor.lat + dlat, anchor.lng + dlng)
    bounds = square.anchored_square(anchor, pointer)

    pinned_lat = bounds.min_lat if dlat > 0 else bounds.max_lat
    pinned_lng = bounds.min_lon if dlng > 0 else bounds.max_lon
    assert (pinned_lat, pinned_lng) == (anchor.lat, anchor.lng)
    assert _squareness(bounds) < 1e-9


def test_resize_past_pole_keeps_last_box() -> None:
    """Test that a resize that would leave the world is ignored."""
    selector, _ = _drawn()
    bounds = selector.bounds
    assert bounds is not None

    selector.pointer_down(square.LatLng(bounds.max_lat, bounds.max_lon))
    assert selector.pointer_move(square.LatLng(95.0, bounds.max_lon)) == bounds
    assert selector.mode is square.InteractionMode.RESIZING
    assert selector.pointer_up() == bounds.serialize()


def test_draw_across_antimeridian_stays_in_world() -> None:
    """Test that drawing at the date line shrinks the square instead of failing."""
    selector = square.SquareSelector()
    selector.pointer_down(square.LatLng(0.0, 179.9), modifier=True)
    bounds = selector.pointer_move(square.LatLng(2.0, 179.95))

    assert bounds is not None
    assert bounds.max_lon <= 180.0
    assert bounds.center.lat == pytest.approx(1.0)
    assert _squareness(bounds) < 1e-9
    assert selector.mode is square.InteractionMode.DRAWING
    assert CANONICAL.match(selector.pointer_up() or "")


def test_draw_off_the_world_keeps_last_box() -> None:
    """Test that a pointer beyond the antimeridian does not break drawing."""
    selector = square.SquareSelector()
    selector.pointer_down(square.LatLng(10.0, 179.0), modifier=True)
    first = selector.pointer_move(square.LatLng(10.5, 179.5))
    assert first is not None

    assert selector.pointer_move(square.LatLng(11.0, 181.5)) == first
    assert selector.mode is square.InteractionMode.DRAWING
    assert selector.pointer_up() == first.serialize()


def test_drag_stops_at_pole() -> None:
    """Test that dragging a box north stops at latitude 90."""
    selector = square.SquareSelector()
    selector.pointer_down(square.LatLng(88.0, 10.0), modifier=True)
    selector.pointer_move(square.LatLng(89.0, 10.5))
    selector.pointer_up()
    original = selector.bounds
    assert original is not None
    center = original.center

    selector.pointer_down(square.LatLng(center.lat, center.lon))
    assert selector.mode is square.InteractionMode.DRAGGING
    moved = selector.pointer_move(square.LatLng(center.lat + 2.0, center.lon))

    assert moved is not None
    assert moved.max_lat == 90.0
    assert moved.lat_span == pytest.approx(original.lat_span)
    assert selector.mode is square.InteractionMode.DRAGGING
    assert selector.pointer_up() == moved.serialize()


def test_new_draw_replaces_existing_box() -> None:
    """Test that a modifier press starts over, clearing the current box."""
    selector, emitted = _drawn()
    selector.pointer_down(square.LatLng(35.0, -100.0), modifier=True)
    assert selector.bounds is None
    selector.pointer_move(square.LatLng(35.1, -100.1))
    selector.pointer_up()
    assert len(emitted) == 2
    assert emitted[0] != emitted[1]
