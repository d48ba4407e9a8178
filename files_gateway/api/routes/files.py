"""
File listing, upload and download endpoints.

Each endpoint is a thin translation of one storage call:
- GET /list (alias /files): one bounded listing under the configured prefix
- POST /upload: buffer the multipart file, then a single put
- GET /download: open the object and stream it back chunk by chunk

Storage failures surface as ``{"ok": false, "error": <backend message>}``.
Listing and upload failures are always 500; download failures keep the
status the backend reported (404 for a missing key).
"""

import logging
from typing import Annotated, Optional

from fastapi import APIRouter, File, Form, HTTPException, Query, UploadFile, status
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, ConfigDict, Field
from starlette.background import BackgroundTask

from ...core.keys import (
    clamp_limit,
    content_disposition,
    format_timestamp,
    normalize_download_key,
    resolve_upload_key,
)
from ...core.models import DEFAULT_CONTENT_TYPE
from ...infrastructure.storage.client import StorageError
from ..dependencies import BucketDep, SettingsDep, StorageClientDep
from ..errors import ErrorResponse
from ..middleware import UploadTooLarge

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Request/Response Models
# ---------------------------------------------------------------------------

class FileEntry(BaseModel):
    """One object in a listing."""
    model_config = ConfigDict(populate_by_name=True)

    key: str
    size: int
    last_modified: Optional[str] = Field(
        default=None,
        alias="lastModified",
        description="ISO-8601 timestamp, or null when the backend did not report one",
    )


class ListFilesResponse(BaseModel):
    files: list[FileEntry]


class UploadedFile(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    key: str = Field(description="Key the object was stored under")
    size: int = Field(description="Size in bytes")
    content_type: str = Field(alias="contentType")


class UploadResponse(BaseModel):
    ok: bool = True
    file: UploadedFile


ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Missing or invalid input"},
    500: {"model": ErrorResponse, "description": "Bucket not configured or storage failure"},
}


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.get(
    "/list",
    response_model=ListFilesResponse,
    summary="List files",
    description="List up to `limit` objects under the configured prefix (default 50, at most 200).",
    responses=ERROR_RESPONSES,
)
@router.get(
    "/files",
    response_model=ListFilesResponse,
    summary="List files",
    include_in_schema=False,
)
async def list_files(
    bucket: BucketDep,
    settings: SettingsDep,
    storage: StorageClientDep,
    limit: Annotated[Optional[str], Query(description="Maximum number of files, clamped to [0, 200]")] = None,
) -> ListFilesResponse:
    max_keys = clamp_limit(limit)

    try:
        objects = await storage.list_objects(prefix=settings.s3_prefix, limit=max_keys)
    except StorageError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=e.message or "Failed to list files",
        )

    return ListFilesResponse(
        files=[
            FileEntry(
                key=item.key,
                size=item.size,
                last_modified=format_timestamp(item.last_modified) if item.last_modified else None,
            )
            for item in objects
        ]
    )


@router.post(
    "/upload",
    response_model=UploadResponse,
    status_code=status.HTTP_200_OK,
    summary="Upload a file",
    description="Store one multipart file. Uses `key` when given, otherwise a timestamped key.",
    responses={
        **ERROR_RESPONSES,
        413: {"model": ErrorResponse, "description": "File exceeds the configured maximum size"},
    },
)
async def upload_file(
    bucket: BucketDep,
    settings: SettingsDep,
    storage: StorageClientDep,
    file: Annotated[Optional[UploadFile], File(description="File to store")] = None,
    key: Annotated[Optional[str], Form(description="Explicit storage key (optional)")] = None,
) -> UploadResponse:
    """
    Upload a file to the bucket.

    The whole file is buffered before the put. Oversized bodies are cut
    off by the size limit middleware while they are still arriving.
    """
    if file is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="File is required",
        )

    max_bytes = settings.max_upload_bytes
    if file.size is not None and file.size > max_bytes:
        raise UploadTooLarge(max_bytes)

    data = await file.read()
    if len(data) > max_bytes:
        raise UploadTooLarge(max_bytes)

    object_key = resolve_upload_key(key, file.filename, prefix=settings.s3_prefix)
    content_type = file.content_type or DEFAULT_CONTENT_TYPE

    try:
        await storage.put_object(object_key, data, content_type)
    except StorageError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=e.message or "Failed to upload",
        )

    logger.info(
        "File uploaded",
        extra={
            "key": object_key,
            "size_bytes": len(data),
            "content_type": content_type,
        }
    )

    return UploadResponse(
        ok=True,
        file=UploadedFile(key=object_key, size=len(data), content_type=content_type),
    )


@router.get(
    "/download",
    response_class=StreamingResponse,
    summary="Download a file",
    description="Stream an object back as an attachment.",
    responses={
        200: {"content": {"application/octet-stream": {}}, "description": "Object bytes"},
        **ERROR_RESPONSES,
        404: {"model": ErrorResponse, "description": "No object with this key"},
    },
)
async def download_file(
    bucket: BucketDep,
    storage: StorageClientDep,
    key: Annotated[Optional[str], Query(description="Key of the object (URL-encoded)")] = None,
) -> StreamingResponse:
    """
    Stream an object to the caller.

    Errors raised before the first byte are JSON responses. Once streaming
    has started, a backend failure aborts the response instead.
    """
    object_key = normalize_download_key(key)
    if not object_key:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="key query param is required",
        )

    try:
        stream = await storage.get_object(object_key)
    except StorageError as e:
        raise HTTPException(
            status_code=e.status_code or status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=e.message or "Failed to download",
        )

    headers = {
        "Content-Type": stream.media_type,
        "Content-Disposition": content_disposition(object_key),
    }
    if stream.content_length is not None:
        headers["Content-Length"] = str(stream.content_length)

    logger.info(
        "Streaming download",
        extra={"key": object_key, "content_length": stream.content_length}
    )

    return StreamingResponse(
        stream.body,
        headers=headers,
        background=BackgroundTask(stream.close),
    )
