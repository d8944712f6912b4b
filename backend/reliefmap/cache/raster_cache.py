"""Raster cache for composited terrain backgrounds.

Keeps the last composited background for each (bounding box, snapshot)
key so that redraws which only change an overlay reuse the raster
instead of refetching tiles. An entry goes through begin() (invalidated,
not ready), then complete() (ready, image stored) or fail() (not ready,
error recorded). Each begin() hands out a new generation number, and a
completion carrying an older generation is ignored, so a slow stale pass
can never overwrite a newer one.
"""

from __future__ import annotations

import collections
import dataclasses
import hashlib
import itertools
import logging
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from PIL import Image

    from reliefmap.core import config
    from reliefmap.geo import models as geo_models
    from reliefmap.selection import square

logger = logging.getLogger(__name__)


def cache_key(
    bbox: geo_models.BoundingBox,
    snapshot: square.SelectionSnapshot | None = None,
) -> str:
    """Hash a bounding box and optional snapshot descriptor into a key."""
    descriptor = snapshot.descriptor() if snapshot is not None else ""
    payload = f"{bbox.serialize()}|{descriptor}".encode()
    return hashlib.sha256(payload).hexdigest()[:32]


@dataclasses.dataclass
class RasterCacheEntry:
    """Cached background for one key.

    Attributes:
        key: Cache key from cache_key().
        generation: Generation of the pass allowed to fill this entry.
        image: Last completed raster; None until a pass succeeds.
        ready: Whether ``image`` is current for ``key``.
        error: Message recorded by a failed pass.
        warning: Degraded coverage warning of the pass that produced ``image``.
    """

    key: str
    generation: int
    image: Image.Image | None = None
    ready: bool = False
    error: str | None = None
    warning: str | None = None


class RasterCacheProtocol(Protocol):
    """Protocol interface for storing composited backgrounds."""

    def get(self, key: str) -> RasterCacheEntry | None: ...

    def begin(self, key: str) -> int: ...

    def complete(
        self,
        key: str,
        generation: int,
        image: Image.Image,
        warning: str | None = None,
    ) -> bool: ...

    def fail(self, key: str, generation: int, error: str) -> bool: ...

    def invalidate(self, key: str | None = None) -> None: ...


class InMemoryRasterCache(RasterCacheProtocol):
    """Bounded in-process cache, least recently used keys evicted first."""

    def __init__(self, max_entries: int = 8) -> None:
        """Initialize an empty cache holding at most ``max_entries`` keys."""
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.max_entries = max_entries
        self._entries: collections.OrderedDict[str, RasterCacheEntry] = (
            collections.OrderedDict()
        )
        self._generations = itertools.count(1)

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> RasterCacheEntry | None:
        """Return the entry for ``key``, marking it recently used."""
        entry = self._entries.get(key)
        if entry is not None:
            self._entries.move_to_end(key)
        return entry

    def begin(self, key: str) -> int:
        """Invalidate ``key`` ahead of a new pass.

        The previous image is kept on the entry but the entry is no longer
        ready, so it is never served while the pass runs.

        Returns:
            Generation number the pass must present on completion.
        """
        generation = next(self._generations)
        entry = self._entries.get(key)
        if entry is None:
            entry = RasterCacheEntry(key=key, generation=generation)
            self._entries[key] = entry
            self._evict()
        else:
            entry.generation = generation
            entry.ready = False
            entry.error = None
            entry.warning = None
            self._entries.move_to_end(key)
        return generation

    def complete(
        self,
        key: str,
        generation: int,
        image: Image.Image,
        warning: str | None = None,
    ) -> bool:
        """Store the raster of a finished pass along with its warning.

        Returns:
            False when the pass is stale (or its key was evicted) and the
            image was discarded.
        """
        entry = self._entries.get(key)
        if entry is None or entry.generation != generation:
            logger.debug("Discarding stale raster for %s (generation %d)", key, generation)
            return False
        entry.image = image
        entry.ready = True
        entry.error = None
        entry.warning = warning
        return True

    def fail(self, key: str, generation: int, error: str) -> bool:
        """Record a failed pass; the entry stays not ready."""
        entry = self._entries.get(key)
        if entry is None or entry.generation != generation:
            return False
        entry.image = None
        entry.ready = False
        entry.error = error
        entry.warning = None
        return True

    def invalidate(self, key: str | None = None) -> None:
        """Drop one key, or every key when ``key`` is None."""
        if key is None:
            self._entries.clear()
        else:
            self._entries.pop(key, None)

    def _evict(self) -> None:
        while len(self._entries) > self.max_entries:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug("Evicted raster cache entry %s", evicted)


def get_raster_cache(settings: config.Settings) -> RasterCacheProtocol:
    """Factory function to create a raster cache.

    Args:
        settings: Application settings supplying the entry limit.

    Returns:
        InMemoryRasterCache sized from ``settings.raster_cache_entries``.
    """
    return InMemoryRasterCache(settings.raster_cache_entries)
