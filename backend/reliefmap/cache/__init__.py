"""Raster cache interface and implementations.

Re-exports nothing; import reliefmap.cache.raster_cache for
RasterCacheProtocol, InMemoryRasterCache and the cache_key helper.

Example:
    >>> from reliefmap.cache import raster_cache
    >>> cache = raster_cache.InMemoryRasterCache(max_entries=4)
    >>> generation = cache.begin(raster_cache.cache_key(bbox))
"""
