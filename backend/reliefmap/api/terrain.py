"""Terrain capture endpoint for the server composition path.

This module exposes the request/response surface of the compositing
engine. A client posts a canonical bounding box string and optional
output size and zoom; the service composites the relief tiles covering
the box, applies the monochrome relief filter and returns the image as
an embedded PNG together with the bounds, zoom and tile counts.

Malformed boxes, out-of-range sizes and requests over the tile cap are
rejected with 400 before any tile is fetched. Upstream outages are not
errors at this level: the response is still 200, carrying a plain
background image and an ``error`` message.

Example:
    Capture the terrain for a selected box:
        >>> response = client.post(
        ...     "/api/terrain-capture",
        ...     json={"boundingBox": "-111.5,40.5,-111.49,40.507"},
        ... )
        >>> body = response.json()
        >>> body["zoom"], body["error"]
        (14, None)
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any

from typing_extensions import TypedDict

import fastapi
import pydantic

from reliefmap.core import config
from reliefmap.geo import models as geo_models
from reliefmap.services import compositing, tile_fetcher
from reliefmap.utils import imaging

router = fastapi.APIRouter(prefix="/api/terrain-capture", tags=["terrain"])


class TerrainCaptureRequest(pydantic.BaseModel):
    bounding_box: str | None = pydantic.Field(default=None, alias="boundingBox")
    width: int | None = None
    height: int | None = None
    zoom: int | None = None

    model_config = pydantic.ConfigDict(populate_by_name=True)


class Bounds(TypedDict):
    minLng: float
    minLat: float
    maxLng: float
    maxLat: float


class Dimensions(TypedDict):
    width: int
    height: int


class TerrainCaptureResponse(TypedDict):
    success: bool
    bounds: Bounds
    terrainImage: str
    dimensions: Dimensions
    zoom: int
    requestedZoom: int
    tileCount: int
    tilesLoaded: int
    warning: str | None
    error: str | None


async def _get_service(
    settings: config.Settings = fastapi.Depends(config.get_settings),  # noqa: B008
) -> AsyncIterator[compositing.CompositingService]:
    """Resolve the compositing service with an HTTP client for the request.

    Args:
        settings: Application settings (injected via FastAPI Depends).

    Yields:
        CompositingService bound to a client closed after the response.
    """
    async with tile_fetcher.create_client(settings) as client:
        yield compositing.create_compositing_service(settings, client)


def _bad_request(detail: str) -> fastapi.HTTPException:
    return fastapi.HTTPException(status_code=400, detail=detail)


def _validate_size(value: int | None, default: int, limit: int, name: str) -> int:
    """Apply the default output size and enforce ``1..limit``."""
    if value is None:
        return default
    if not 1 <= value <= limit:
        raise _bad_request(f"{name} must be between 1 and {limit}")
    return value


@router.post("")
async def capture_terrain(
    body: TerrainCaptureRequest,
    settings: config.Settings = fastapi.Depends(config.get_settings),  # noqa: B008
    service: compositing.CompositingService = fastapi.Depends(_get_service),  # noqa: B008
) -> TerrainCaptureResponse:
    """Composite, filter and return the relief image for a bounding box.

    Args:
        body: Bounding box string with optional width, height and zoom.
        settings: Application settings (injected via FastAPI Depends).
        service: Compositing service (injected via FastAPI Depends).

    Returns:
        Embedded PNG plus bounds, dimensions, zoom and tile counts. The
        ``zoom`` is the level actually drawn, which differs from
        ``requestedZoom`` when the fallback attempt was used.

    Raises:
        HTTPException: 400 if the bounding box is missing or invalid, the
            size or zoom is out of range, or the tile cap is exceeded.
    """
    if not body.bounding_box:
        raise _bad_request("Missing required parameter: boundingBox")

    try:
        bbox = geo_models.BoundingBox.parse(body.bounding_box)
    except geo_models.BoundingBoxError as exc:
        raise _bad_request(str(exc)) from exc

    width = _validate_size(
        body.width, settings.default_output_size, settings.max_output_size, "width"
    )
    height = _validate_size(
        body.height, settings.default_output_size, settings.max_output_size, "height"
    )

    try:
        result = await service.capture(bbox, width, height, body.zoom)
    except ValueError as exc:
        raise _bad_request(str(exc)) from exc

    return TerrainCaptureResponse(
        success=result.ok,
        bounds=Bounds(
            minLng=bbox.min_lon,
            minLat=bbox.min_lat,
            maxLng=bbox.max_lon,
            maxLat=bbox.max_lat,
        ),
        terrainImage=imaging.to_data_url(result.image),
        dimensions=Dimensions(width=width, height=height),
        zoom=result.zoom,
        requestedZoom=result.requested_zoom,
        tileCount=result.tiles_requested,
        tilesLoaded=result.tiles_loaded,
        warning=result.warning,
        error=result.error,
    )


@router.get("")
async def describe_terrain_capture() -> dict[str, Any]:
    """Describe how to call the capture endpoint."""
    return {
        "message": "Terrain Capture API",
        "usage": (
            'POST with { boundingBox: "minLng,minLat,maxLng,maxLat", '
            "width?, height?, zoom? }"
        ),
        "example": {
            "boundingBox": "-111.5,40.5,-111.4,40.6",
            "width": 400,
            "height": 400,
        },
    }
