"""Client-side terrain rendering with a cached background.

TerrainRenderer drives the interactive preview: it composites the
unfiltered terrain for the selected box once, keeps it in the raster
cache, and redraws route overlays on top of a copy of that background
without refetching tiles. It exposes ``is_rendering``, ``error``,
``warning`` and ``ready`` so a caller can show progress or a retry
button, and retry() re-runs the last request.

Each pass takes a generation number. If the selection changes while a
pass is in flight, the older pass finishes without touching the cache
or the renderer state.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from PIL import ImageDraw

from reliefmap.cache import raster_cache

if TYPE_CHECKING:
    from collections.abc import Sequence

    from PIL import Image

    from reliefmap.geo import models as geo_models
    from reliefmap.selection import square
    from reliefmap.services import compositing

logger = logging.getLogger(__name__)

DEFAULT_ROUTE_COLOR = "#2563eb"


class TerrainRenderer:
    """Renders and caches terrain backgrounds for a fixed output size."""

    def __init__(
        self,
        service: compositing.CompositingService,
        cache: raster_cache.RasterCacheProtocol,
        width: int = 400,
        height: int = 400,
    ) -> None:
        self.service = service
        self.cache = cache
        self.width = width
        self.height = height
        self.is_rendering = False
        self.error: str | None = None
        self.warning: str | None = None
        self._generation = 0
        self._current: tuple[geo_models.BoundingBox, square.SelectionSnapshot | None] | None = None

    @property
    def ready(self) -> bool:
        """Whether the background for the current selection is cached."""
        if self._current is None:
            return False
        entry = self.cache.get(raster_cache.cache_key(*self._current))
        return entry is not None and entry.ready

    async def render(
        self,
        bbox: geo_models.BoundingBox,
        snapshot: square.SelectionSnapshot | None = None,
    ) -> Image.Image | None:
        """Return the terrain background for ``bbox``.

        Reuses the cached raster when ready; otherwise runs a compositing
        pass. A pass that loads no tiles still returns its plain raster,
        with ``error`` set and the cache entry left not ready.

        Returns:
            A copy of the background, or None if a newer render superseded
            this one while it was running.

        Raises:
            BoundingBoxError, ValueError, TileLimitExceededError: When the
                request fails validation; ``error`` is set as well.
        """
        self._current = (bbox, snapshot)
        self._generation += 1
        generation = self._generation
        key = raster_cache.cache_key(bbox, snapshot)
        entry = self.cache.get(key)
        if entry is not None and entry.ready and entry.image is not None:
            self.is_rendering = False
            self.error = None
            self.warning = entry.warning
            return entry.image.copy()

        cache_generation = self.cache.begin(key)
        self.is_rendering = True
        self.error = None
        self.warning = None
        try:
            request = self.service.plan(bbox, self.width, self.height)
            result = await self.service.compose(request)
        except ValueError as exc:
            if generation == self._generation:
                self.error = str(exc)
                self.is_rendering = False
            self.cache.fail(key, cache_generation, str(exc))
            raise

        if generation != self._generation:
            logger.debug("Dropping stale render of %s", bbox.serialize())
            return None

        self.is_rendering = False
        self.warning = result.warning
        if result.error is not None:
            self.error = result.error
            self.cache.fail(key, cache_generation, result.error)
        else:
            self.cache.complete(key, cache_generation, result.image, result.warning)
        return result.image.copy()

    async def retry(self) -> Image.Image | None:
        """Re-run the last render, bypassing the cache."""
        if self._current is None:
            return None
        bbox, snapshot = self._current
        self.cache.invalidate(raster_cache.cache_key(bbox, snapshot))
        return await self.render(bbox, snapshot)

    async def render_preview(
        self,
        bbox: geo_models.BoundingBox,
        route: Sequence[tuple[float, float]],
        snapshot: square.SelectionSnapshot | None = None,
        color: str = DEFAULT_ROUTE_COLOR,
        line_width: int = 4,
    ) -> Image.Image | None:
        """Draw a route over the terrain background.

        Args:
            bbox: Selected area.
            route: Route points as ``(lat, lon)`` pairs.
            snapshot: Snapshot captured with the selection.
            color: Route color accepted by Pillow.
            line_width: Stroke width in pixels.

        Returns:
            New image with the route drawn, or None if superseded.
        """
        background = await self.render(bbox, snapshot)
        if background is None:
            return None
        points = [self.project(bbox, lat, lon) for lat, lon in route]
        if len(points) >= 2:
            draw = ImageDraw.Draw(background)
            draw.line(points, fill=color, width=line_width, joint="curve")
        return background

    def project(
        self,
        bbox: geo_models.BoundingBox,
        lat: float,
        lon: float,
    ) -> tuple[float, float]:
        """Map a coordinate to output pixels with the compositor's mapping."""
        x = (lon - bbox.min_lon) / bbox.lon_span * self.width
        y = (bbox.max_lat - lat) / bbox.lat_span * self.height
        return x, y
