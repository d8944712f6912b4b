"""Compositing passes: fetch, stitch, fall back and report.

A pass turns a CompositionRequest into a raster. Every tile of the grid
is submitted to the throttled queue at once and the pass waits for all of
them before compositing. Failed tiles are simply left out and show as
background. When not a single tile loads, the same attempt is repeated
once at a lower zoom with a shorter timeout. If that also yields nothing
the pass still returns a plain background raster, with ``error`` set so
the caller can offer a retry.

Validation is the only hard failure: a malformed box or a grid above the
tile cap is rejected by plan() before any request is issued.

Example:
    Server-side capture with the relief filter applied:
        >>> service = create_compositing_service(settings, client)
        >>> result = await service.capture(bbox, width=400, height=400)
        >>> result.tiles_loaded, result.zoom, result.error
        (4, 14, None)
"""

from __future__ import annotations

import asyncio
import dataclasses
import functools
import logging
from typing import TYPE_CHECKING

from reliefmap.geo import models as geo_models
from reliefmap.geo import tiles, zoom
from reliefmap.services import compositor, fetch_queue, post_filter, tile_fetcher

if TYPE_CHECKING:
    import httpx
    from PIL import Image

    from reliefmap.core import config

logger = logging.getLogger(__name__)

FALLBACK_MIN_ZOOM = 5
FALLBACK_ZOOM_STEP = 2
DEGRADED_ABOVE_ZOOM = 8

NO_TILES_MESSAGE = "Terrain data unavailable: no relief tiles could be loaded"


class TileLimitExceededError(ValueError):
    """Raised when a request needs more tiles than the configured cap."""


@dataclasses.dataclass(frozen=True)
class CompositionResult:
    """Outcome of a compositing pass.

    Attributes:
        request: The request as drawn; its zoom is the fallback zoom when
            the fallback attempt produced the image.
        requested_zoom: Zoom of the first attempt.
        image: Composited RGBA raster, always ``width x height``.
        tiles_requested: Tiles in the grid that produced ``image``.
        tiles_loaded: Tiles successfully drawn into ``image``.
        fallback_used: Whether the reduced-zoom attempt ran.
        warning: Coverage warning when most tiles failed at high zoom.
        error: Set when no tile loaded on either attempt.
    """

    request: geo_models.CompositionRequest
    requested_zoom: int
    image: Image.Image
    tiles_requested: int
    tiles_loaded: int
    fallback_used: bool = False
    warning: str | None = None
    error: str | None = None

    @property
    def zoom(self) -> int:
        return self.request.zoom

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclasses.dataclass(frozen=True)
class _Attempt:
    request: geo_models.CompositionRequest
    image: Image.Image
    requested: int
    loaded: int


def fallback_zoom(zoom_level: int) -> int:
    """Zoom used for the retry after a pass loaded no tiles.

    Never higher than the failed zoom, so the retry cannot grow the grid.
    """
    return min(zoom_level, max(FALLBACK_MIN_ZOOM, zoom_level - FALLBACK_ZOOM_STEP))


class CompositingService:
    """Runs compositing passes against a tile fetcher through a shared queue."""

    def __init__(
        self,
        fetcher: tile_fetcher.TileFetcherProtocol,
        queue: fetch_queue.ThrottledFetchQueue,
        *,
        primary_timeout: float = 5.0,
        fallback_timeout: float = 3.0,
        max_tiles: int = 64,
    ) -> None:
        self.fetcher = fetcher
        self.queue = queue
        self.primary_timeout = primary_timeout
        self.fallback_timeout = fallback_timeout
        self.max_tiles = max_tiles

    def plan(
        self,
        bbox: geo_models.BoundingBox,
        width: int,
        height: int,
        zoom_level: int | None = None,
    ) -> geo_models.CompositionRequest:
        """Validate inputs and build the request for a pass.

        Args:
            bbox: Area to composite.
            width: Output width in pixels.
            height: Output height in pixels.
            zoom_level: Explicit zoom; chosen by the zoom selector when None.

        Returns:
            CompositionRequest ready for compose().

        Raises:
            ValueError: If the zoom or output size is out of range.
            TileLimitExceededError: If the grid exceeds ``max_tiles``.
        """
        if zoom_level is None:
            zoom_level = zoom.select_zoom(bbox)
        elif not 0 <= zoom_level <= zoom.MAX_ZOOM:
            raise ValueError(f"Zoom must be between 0 and {zoom.MAX_ZOOM}")

        request = geo_models.CompositionRequest(bbox, width, height, zoom_level)
        count = tiles.tile_grid(bbox, zoom_level).count
        if count > self.max_tiles:
            raise TileLimitExceededError(
                f"Bounding box requires {count} tiles at zoom {zoom_level}; "
                f"the limit is {self.max_tiles}"
            )
        return request

    async def compose(
        self,
        request: geo_models.CompositionRequest,
    ) -> CompositionResult:
        """Run a pass, falling back to a lower zoom if nothing loads.

        Never raises for tile failures; see CompositionResult for how
        partial and empty passes are reported.
        """
        attempt = await self._attempt(request, self.primary_timeout)
        fallback_used = False

        if attempt.loaded == 0:
            retry_zoom = fallback_zoom(request.zoom)
            logger.warning(
                "No tiles loaded for %s at zoom %d, retrying at zoom %d",
                request.bbox.serialize(),
                request.zoom,
                retry_zoom,
            )
            attempt = await self._attempt(
                request.with_zoom(retry_zoom), self.fallback_timeout
            )
            fallback_used = True

        warning = None
        error = None
        if attempt.loaded == 0:
            error = NO_TILES_MESSAGE
            logger.error(
                "Upstream unavailable for %s after fallback", request.bbox.serialize()
            )
        elif (
            attempt.request.zoom > DEGRADED_ABOVE_ZOOM
            and (attempt.requested - attempt.loaded) * 2 > attempt.requested
        ):
            warning = (
                f"Terrain coverage degraded: only {attempt.loaded} of "
                f"{attempt.requested} tiles loaded at zoom {attempt.request.zoom}"
            )
            logger.warning(warning)

        logger.info(
            "Composited %s at zoom %d: %d/%d tiles",
            request.bbox.serialize(),
            attempt.request.zoom,
            attempt.loaded,
            attempt.requested,
        )
        return CompositionResult(
            request=attempt.request,
            requested_zoom=request.zoom,
            image=attempt.image,
            tiles_requested=attempt.requested,
            tiles_loaded=attempt.loaded,
            fallback_used=fallback_used,
            warning=warning,
            error=error,
        )

    async def capture(
        self,
        bbox: geo_models.BoundingBox,
        width: int,
        height: int,
        zoom_level: int | None = None,
    ) -> CompositionResult:
        """Server-side capture: plan, compose and apply the relief filter.

        The filter is skipped when no tile loaded so that the unavailable
        state stays a plain background raster.

        Raises:
            BoundingBoxError, ValueError, TileLimitExceededError: From plan().
        """
        request = self.plan(bbox, width, height, zoom_level)
        result = await self.compose(request)
        if result.tiles_loaded == 0:
            return result
        return dataclasses.replace(
            result, image=post_filter.apply_relief_filter(result.image)
        )

    async def _attempt(
        self,
        request: geo_models.CompositionRequest,
        timeout: float,
    ) -> _Attempt:
        grid = tiles.tile_grid(request.bbox, request.zoom)
        outcomes = await asyncio.gather(
            *(
                self.queue.enqueue(functools.partial(self.fetcher.fetch, coord, timeout))
                for coord in grid
            )
        )
        loaded = [outcome for outcome in outcomes if outcome.ok]
        image = compositor.composite(request, loaded)
        return _Attempt(request, image, grid.count, len(loaded))


@functools.lru_cache
def get_fetch_queue(
    max_concurrent: int,
    spacing: float,
) -> fetch_queue.ThrottledFetchQueue:
    """Process-wide queue shared by every pass with the same limits."""
    return fetch_queue.ThrottledFetchQueue(max_concurrent, spacing)


def create_compositing_service(
    settings: config.Settings,
    client: httpx.AsyncClient,
) -> CompositingService:
    """Wire a CompositingService from settings and an open HTTP client.

    Args:
        settings: Application settings.
        client: HTTP client used for tile requests; owned by the caller.

    Returns:
        CompositingService using the process-wide fetch queue.
    """
    fetcher = tile_fetcher.TileFetcher(client, str(settings.tile_service_url))
    queue = get_fetch_queue(
        settings.max_concurrent_fetches, settings.fetch_spacing_seconds
    )
    return CompositingService(
        fetcher,
        queue,
        primary_timeout=settings.primary_timeout_seconds,
        fallback_timeout=settings.fallback_timeout_seconds,
        max_tiles=settings.max_request_tiles,
    )
