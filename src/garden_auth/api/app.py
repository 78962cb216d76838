"""FastAPI application factory.

Creates and configures the FastAPI application with all routes and the
authentication core.

## Usage

```python
from garden_auth.api import create_app

app = create_app()

# Run with uvicorn
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
```

## Configuration

The app is configured via environment variables. See `garden_auth.config`
for available settings.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import httpx
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from garden_auth.auth.maintenance import start_session_sweeper
from garden_auth.auth.services import AuthServices
from garden_auth.auth.session import Clock
from garden_auth.config import get_settings
from garden_auth.database.connection import Database
from garden_auth.errors import StorageError
from garden_auth.logging import setup_logging

logger = logging.getLogger(__name__)


def service_unavailable_response() -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Service temporarily unavailable"},
    )


async def storage_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Storage faults fail the request without exposing internals."""
    logger.error(f"Storage failure on {request.method} {request.url.path}: {exc}")
    return service_unavailable_response()


def create_app(
    oauth_transport: httpx.AsyncBaseTransport | None = None,
    clock: Clock | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        oauth_transport: Optional httpx transport for provider calls (tests)
        clock: Optional clock for the session store (tests)

    Returns:
        Configured FastAPI application
    """
    settings = get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan manager.

        Handles startup and shutdown tasks:
        - Open the database and build the authentication core
        - Start the expired session sweeper
        - Clean up on shutdown
        """
        setup_logging(settings.debug)
        logger.info(f"Starting {settings.app_name} v{settings.app_version}")

        report = settings.validate_oauth_config()
        for error in report.errors:
            logger.error(f"Configuration: {error}")
        for warning in report.warnings:
            logger.warning(f"Configuration: {warning}")

        database = Database.from_settings(settings)
        if not settings.is_production:
            await database.create_tables()

        services = AuthServices.build(
            settings, database, transport=oauth_transport, clock=clock
        )
        app.state.auth = services
        sweeper = start_session_sweeper(
            services.sessions, settings.session_sweep_interval_seconds
        )

        yield

        # Shutdown
        logger.info("Shutting down")
        sweeper.cancel()
        try:
            await sweeper
        except asyncio.CancelledError:
            pass
        await database.close()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Session and authentication core",
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=lifespan,
    )

    app.add_exception_handler(StorageError, storage_error_handler)

    # Include routers
    from garden_auth.api.routes import auth, users

    app.include_router(auth.router, prefix="/auth", tags=["Authentication"])
    app.include_router(users.router, prefix="/api/users", tags=["Users"])

    # Health check endpoint
    @app.get("/health", tags=["Health"])
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy", "version": settings.app_version}

    return app
