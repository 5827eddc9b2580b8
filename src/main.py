"""
FastAPI application entry point.

This module creates and configures the FastAPI application.
Using an application factory pattern (create_app function) because:
- Easier to test with different configurations
- Explicit about initialization order

For local development:
    uvicorn src.main:app --reload

For production:
    gunicorn src.main:app -w 4 -k uvicorn.workers.UvicornWorker
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import __version__
from .api.dependencies import create_services, verify_api_key
from .api.errors import register_exception_handlers
from .api.routes import audit, files, health
from .config.settings import Settings, get_settings

# Configure logging
logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=logging.INFO,
)

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Application factory.

    Tests pass their own Settings (mock bucket, temp audit dir); the
    module-level app uses the environment.
    """
    settings = settings or get_settings()
    logging.getLogger().setLevel(settings.log_level.upper())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Build the bucket client, audit channels, gate and store on startup;
        close them on shutdown.
        """
        logger.info(
            "ExamHub Storage API starting",
            extra={
                "version": settings.api_version,
                "mock_mode": {
                    "gcs": settings.gcs_mock_mode,
                    "snowflake": settings.snowflake_mock_mode,
                }
            }
        )

        missing_fields = settings.validate_required_fields()
        if missing_fields:
            # Logged, not fatal: /health/ready reports it to the orchestrator
            logger.error(
                "Missing required configuration",
                extra={"missing_fields": missing_fields}
            )

        services = create_services(settings)
        app.state.services = services

        yield

        logger.info("ExamHub Storage API shutting down")
        services.close()

    app = FastAPI(
        title=settings.api_title,
        version=__version__,
        description="""
        File storage and access control for the ExamHub exam platform.

        ## Authentication

        All `/api/v1` endpoints require an API key in the `X-API-Key` header.
        The upstream auth layer identifies the user with `X-User-Id` and
        `X-User-Role`.

        ## Files

        - `POST /api/v1/files/{folder}`: upload (admins)
        - `GET /api/v1/files/{folder}/{filename}`: stream inline
        - `DELETE /api/v1/files/{folder}/{filename}`: delete (admins)
        - `GET .../signed-url` and `GET .../public-url`: links

        ## Audit

        - `GET /api/v1/audit`: persisted audit records (master admins)
        """,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    # Include routers
    app.include_router(
        health.router,
        prefix="/health",
        tags=["Health"],
    )

    app.include_router(
        files.router,
        prefix="/api/v1/files",
        tags=["Files"],
        dependencies=[Depends(verify_api_key)],
    )

    app.include_router(
        audit.router,
        prefix="/api/v1/audit",
        tags=["Audit"],
        dependencies=[Depends(verify_api_key)],
    )

    # Root endpoint
    @app.get("/", include_in_schema=False)
    async def root():
        return {
            "message": "ExamHub Storage API",
            "version": __version__,
            "docs": "/docs",
            "health": "/health",
        }

    logger.info(
        "FastAPI application created",
        extra={
            "title": settings.api_title,
            "version": __version__,
        }
    )

    return app


# Create the application instance
# This is what uvicorn/gunicorn will import
app = create_app()


# For debugging/development
if __name__ == "__main__":
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "src.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level=settings.log_level.lower(),
    )
