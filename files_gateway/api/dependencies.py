"""
FastAPI dependency injection.

Routes receive settings and the storage client through dependencies instead
of building them, so tests can hand the app an in-memory storage client and
custom settings.

Both live on app.state: the application factory stores the settings it
was built with, and the lifespan (or the first request) stores the shared
storage client.
"""

import logging
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from ..config.settings import Settings, get_settings
from ..infrastructure.storage.client import StorageClient, StorageConfig, create_storage_client
from .errors import BUCKET_NOT_CONFIGURED

logger = logging.getLogger(__name__)


def get_app_settings(request: Request) -> Settings:
    """Settings the running application was created with."""
    settings = getattr(request.app.state, "settings", None)
    return settings if settings is not None else get_settings()


def build_storage_client(settings: Settings) -> StorageClient:
    """Create the storage client described by settings."""
    if settings.s3_mock_mode:
        return create_storage_client(mock_mode=True)

    config = StorageConfig(
        bucket_name=settings.s3_bucket,
        region=settings.aws_region,
        endpoint_url=settings.s3_endpoint_url,
    )
    return create_storage_client(config=config)


def get_storage_client(
    request: Request,
    settings: Annotated[Settings, Depends(get_app_settings)],
) -> StorageClient:
    """
    Provide the shared storage client.

    One client serves every request. In mock mode this is what makes
    uploaded objects visible to later downloads.
    """
    client = getattr(request.app.state, "storage_client", None)
    if client is None:
        client = build_storage_client(settings)
        request.app.state.storage_client = client
        logger.info("Created shared storage client", extra={"mock_mode": settings.s3_mock_mode})
    return client


def require_bucket(
    settings: Annotated[Settings, Depends(get_app_settings)],
) -> str:
    """Fail with a configuration error when no bucket is set."""
    if not settings.bucket_configured:
        logger.error("Request rejected: S3_BUCKET is not configured")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=BUCKET_NOT_CONFIGURED,
        )
    return settings.s3_bucket


# ---------------------------------------------------------------------------
# Convenience Type Aliases
# ---------------------------------------------------------------------------

SettingsDep = Annotated[Settings, Depends(get_app_settings)]
StorageClientDep = Annotated[StorageClient, Depends(get_storage_client)]
BucketDep = Annotated[str, Depends(require_bucket)]
