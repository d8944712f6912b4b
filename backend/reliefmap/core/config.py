"""Application settings and configuration management.

This module provides Pydantic-based settings management that loads
configuration from environment variables or a .env file. Settings include
the upstream relief tile service, fetch queue throttling, per-attempt
timeouts, output size limits, the server-side tile cap and CORS origins.

Example:
    Settings can be accessed via the cached get_settings() function:
        >>> from reliefmap.core.config import get_settings
        >>> settings = get_settings()
        >>> print(settings.tile_service_url)

    Environment variables can override defaults:
        >>> TILE_SERVICE_URL=https://tiles.example.com/relief
        >>> MAX_CONCURRENT_FETCHES=4
        >>> PRIMARY_TIMEOUT_SECONDS=8
"""

import functools

import pydantic
import pydantic_settings

DEFAULT_TILE_SERVICE_URL = (
    "https://basemap.nationalmap.gov/arcgis/rest/services/"
    "USGSShadedReliefOnly/MapServer/tile"
)


class Settings(pydantic_settings.BaseSettings):
    """Runtime configuration pulled from environment variables or defaults.

    All settings can be overridden via environment variables or .env file.

    Attributes:
        tile_service_url: Base URL of the relief tile service. Tiles are
            requested as ``{tile_service_url}/{z}/{y}/{x}``.
        user_agent: User-Agent header sent with tile requests.
        allow_origins: List of allowed CORS origins (["*"] allows all).
        max_concurrent_fetches: Tile requests allowed in flight at once.
        fetch_spacing_seconds: Delay inserted before launching a queued
            fetch while others are still running.
        primary_timeout_seconds: Per-tile timeout on the first attempt.
        fallback_timeout_seconds: Per-tile timeout on the reduced-zoom retry.
        default_output_size: Width/height used when a request omits them.
        max_output_size: Largest accepted output width or height.
        max_request_tiles: Hard cap on tiles for one server request.
        raster_cache_entries: Keys retained by the in-memory raster cache.
        log_level: Root logging level name.

    Example:
        Create settings with custom values:
            >>> settings = Settings(
            ...     tile_service_url="http://localhost:8080/relief",
            ...     max_concurrent_fetches=2,
            ... )
    """

    tile_service_url: pydantic.AnyHttpUrl | str = DEFAULT_TILE_SERVICE_URL
    user_agent: str = "reliefmap/0.1 (terrain compositor)"
    allow_origins: list[str] = ["*"]
    max_concurrent_fetches: int = pydantic.Field(default=6, ge=1)
    fetch_spacing_seconds: float = pydantic.Field(default=0.1, ge=0)
    primary_timeout_seconds: float = pydantic.Field(default=5.0, gt=0)
    fallback_timeout_seconds: float = pydantic.Field(default=3.0, gt=0)
    default_output_size: int = pydantic.Field(default=400, ge=1)
    max_output_size: int = pydantic.Field(default=2048, ge=1)
    max_request_tiles: int = pydantic.Field(default=64, ge=1)
    raster_cache_entries: int = pydantic.Field(default=8, ge=1)
    log_level: str = "INFO"

    model_config = pydantic_settings.SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )


@functools.lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Settings are loaded from environment variables or .env file and cached
    for the lifetime of the application. Subsequent calls return the same
    cached instance.

    Returns:
        Settings instance with all configuration values populated.

    Example:
        The settings are cached, so multiple calls return the same instance:
            >>> settings1 = get_settings()
            >>> settings2 = get_settings()
            >>> assert settings1 is settings2  # Same instance
    """
    return Settings()
