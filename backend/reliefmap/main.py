"""FastAPI application entrypoint and configuration.

This module provides the main FastAPI application factory that configures
logging, sets up CORS middleware, includes the terrain capture router, and
exposes a health check endpoint for monitoring.

Example:
    The application can be run with uvicorn:
        $ uvicorn reliefmap.main:app --reload

    Or imported and used programmatically:
        >>> from reliefmap.main import app
        >>> # Use app in ASGI server
"""

import fastapi
from fastapi.middleware import cors

from reliefmap.api import terrain
from reliefmap.core import config, logging_setup


def create_app() -> fastapi.FastAPI:
    """Create and configure the FastAPI application.

    Configures logging from settings, sets up CORS middleware, includes the
    terrain capture router, and adds a health check endpoint.

    Returns:
        Configured FastAPI application instance ready for ASGI server.
    """
    settings = config.get_settings()
    logging_setup.setup_logging(settings.log_level)
    app = fastapi.FastAPI(title="Relief Map Compositor", version="0.1.0")

    app.include_router(terrain.router)

    app.add_middleware(
        cors.CORSMiddleware,  # type: ignore[arg-type]
        allow_origins=settings.allow_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    async def health() -> dict[str, str]:  # type: ignore[misc]
        """Health check endpoint for monitoring and load balancers.

        Returns:
            Dictionary with status "ok" if the service is running.
        """
        return {"status": "ok"}

    return app


app = create_app()
