"""Single-tile download from the relief tile service.

The fetcher issues one HTTP GET per tile with a per-request timeout and
normalizes every failure mode into a TileFailure value: timeouts, network
errors, non-200 responses, empty bodies, undecodable payloads and images
that decode to zero pixels. It never raises and never retries; the retry
policy belongs to the compositing service.

Example:
    >>> async with httpx.AsyncClient() as client:
    ...     fetcher = TileFetcher(client, "https://tiles.example.com/relief")
    ...     outcome = await fetcher.fetch(TileCoordinate(3, 5, 4), timeout=5.0)
    ...     if outcome.ok:
    ...         outcome.image.size
"""

from __future__ import annotations

import io
import logging
from typing import TYPE_CHECKING, Protocol

import httpx
from PIL import Image

from reliefmap.geo import models as geo_models

if TYPE_CHECKING:
    from reliefmap.core import config

logger = logging.getLogger(__name__)


def build_tile_url(base: str, coord: geo_models.TileCoordinate) -> str:
    """Construct a tile URL in the service's ``{z}/{y}/{x}`` order."""
    return f"{base.rstrip('/')}/{coord.z}/{coord.y}/{coord.x}"


class TileFetcherProtocol(Protocol):
    """Anything that can turn a tile address into a fetch outcome."""

    async def fetch(
        self,
        coord: geo_models.TileCoordinate,
        timeout: float,
    ) -> geo_models.TileFetchOutcome: ...


class TileFetcher(TileFetcherProtocol):
    """httpx-backed tile fetcher decoding responses with Pillow."""

    def __init__(self, client: httpx.AsyncClient, base_url: str) -> None:
        self.client = client
        self.base_url = base_url

    async def fetch(
        self,
        coord: geo_models.TileCoordinate,
        timeout: float,
    ) -> geo_models.TileFetchOutcome:
        """Download and decode one tile.

        Args:
            coord: Tile to request.
            timeout: Seconds allowed for the whole request.

        Returns:
            TileImage with an RGBA image, or TileFailure describing why the
            tile is unusable.
        """
        url = build_tile_url(self.base_url, coord)
        try:
            response = await self.client.get(url, timeout=timeout)
        except httpx.TimeoutException as exc:
            return self._failure(coord, "timeout", str(exc) or "timed out")
        except (httpx.HTTPError, httpx.InvalidURL, RuntimeError) as exc:
            # RuntimeError is what httpx raises once the client is closed.
            return self._failure(coord, "network_error", str(exc))

        if response.status_code != 200:
            return self._failure(coord, "http_error", f"HTTP {response.status_code}")
        if not response.content:
            return self._failure(coord, "malformed", "empty body")

        try:
            image = Image.open(io.BytesIO(response.content))
            image.load()
        except (OSError, SyntaxError, ValueError, Image.DecompressionBombError) as exc:
            return self._failure(coord, "malformed", str(exc))

        if image.width == 0 or image.height == 0:
            return self._failure(coord, "malformed", "zero-sized image")

        return geo_models.TileImage(coord, image.convert("RGBA"))

    @staticmethod
    def _failure(
        coord: geo_models.TileCoordinate,
        reason: geo_models.FailureReason,
        detail: str,
    ) -> geo_models.TileFailure:
        logger.debug(
            "Tile %d/%d/%d failed (%s): %s", coord.z, coord.x, coord.y, reason, detail
        )
        return geo_models.TileFailure(coord, reason, detail)


def create_client(settings: config.Settings) -> httpx.AsyncClient:
    """Build the shared HTTP client used for tile requests.

    Args:
        settings: Application settings supplying the User-Agent and the
            connection pool size.

    Returns:
        Unopened httpx.AsyncClient; callers own its lifecycle.
    """
    return httpx.AsyncClient(
        headers={"User-Agent": settings.user_agent},
        limits=httpx.Limits(max_connections=settings.max_concurrent_fetches),
        follow_redirects=True,
    )
