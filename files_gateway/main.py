"""
FastAPI application entry point.

This module creates and configures the FastAPI application.
Using an application factory (create_app) so tests can build an app with
their own settings and an in-memory storage client.

For local development:
    uvicorn files_gateway.main:app --reload

For production:
    files-gateway
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api.dependencies import build_storage_client
from .api.errors import register_exception_handlers
from .api.middleware import UploadSizeLimitMiddleware
from .api.routes import files, health
from .config.settings import Settings, get_settings
from .infrastructure.storage.client import StorageClient

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        format=LOG_FORMAT,
        level=getattr(logging, level),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Startup validates configuration and builds the shared storage client,
    unless the app was created with one.
    """
    settings: Settings = app.state.settings

    logger.info(
        "Files gateway starting",
        extra={
            "version": settings.api_version,
            "bucket": settings.s3_bucket or None,
            "region": settings.aws_region,
            "prefix": settings.s3_prefix,
            "max_upload_bytes": settings.max_upload_bytes,
            "mock_mode": settings.s3_mock_mode,
        }
    )

    missing_fields = settings.validate_required_fields()
    if missing_fields:
        # Keep serving /healthz; storage endpoints answer with a config error.
        logger.error(
            "Missing required configuration",
            extra={"missing_fields": missing_fields}
        )

    if app.state.storage_client is None:
        app.state.storage_client = build_storage_client(settings)

    yield

    logger.info("Files gateway shutting down")


def create_app(
    settings: Optional[Settings] = None,
    storage_client: Optional[StorageClient] = None,
) -> FastAPI:
    """
    Application factory.

    Args:
        settings: Configuration to run with. Read from the environment when omitted.
        storage_client: Storage backend to use. Built from settings on startup when omitted.
    """
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        description="""
        Minimal HTTP gateway in front of an S3 bucket.

        - `GET /healthz`: liveness and configured bucket
        - `GET /list` (or `/files`): list stored files
        - `POST /upload`: upload one file (multipart field `file`, optional `key`)
        - `GET /download?key=...`: stream a file back as an attachment
        """,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.storage_client = storage_client

    app.add_middleware(
        UploadSizeLimitMiddleware,
        max_file_bytes=settings.max_upload_bytes,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    app.include_router(health.router, tags=["Health"])
    app.include_router(files.router, tags=["Files"])

    logger.info(
        "FastAPI application created",
        extra={
            "title": settings.api_title,
            "version": settings.api_version,
        }
    )

    return app


configure_logging(get_settings().log_level)

# This is what uvicorn imports
app = create_app()


def run() -> None:
    """Start the server on the configured port."""
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "files_gateway.main:app",
        host="0.0.0.0",
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
