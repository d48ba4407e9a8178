"""
Health check endpoint.

Used for liveness checks by load balancers and orchestrators. It never
touches the storage backend and never fails: a missing bucket shows up as
``bucket: null`` instead of an error.
"""

from typing import Optional

from fastapi import APIRouter, status
from pydantic import BaseModel

from ..dependencies import SettingsDep

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response."""
    ok: bool = True
    bucket: Optional[str] = None
    region: str


@router.get(
    "/healthz",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    summary="Liveness check",
    description="Returns 200 while the process is running. Reports the configured bucket and region.",
)
async def health_check(settings: SettingsDep) -> HealthResponse:
    return HealthResponse(
        ok=True,
        bucket=settings.s3_bucket or None,
        region=settings.aws_region,
    )
