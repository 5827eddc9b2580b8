"""
File storage endpoints.

Thin wiring over ObjectStore: admins upload and delete, any authenticated
client can stream a file or ask for a public or signed link.

Folders are limited to the Folder enumeration, so a typo in the path is a
422 from FastAPI rather than a new namespace in the bucket.
"""

import logging
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from ...core.storage import Folder
from ..dependencies import (
    ObjectStoreDep,
    SettingsDep,
    require_roles,
    upload_via_request,
)

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Response Models
# ---------------------------------------------------------------------------

class FileUploadResponse(BaseModel):
    """Response after an upload request."""
    url: Optional[str] = Field(None, description="Public URL, null when no file was attached")
    folder: Folder = Field(description="Destination folder")
    message: str = Field(description="Status message")


class FileDeleteResponse(BaseModel):
    filename: str
    folder: Folder
    message: str


class FileUrlResponse(BaseModel):
    """A link to a stored file."""
    url: Optional[str] = Field(None, description="Public or signed URL")
    filename: str
    folder: Folder
    expires_in_hours: Optional[float] = Field(None, description="Set for signed URLs only")


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post(
    "/{folder}",
    response_model=FileUploadResponse,
    status_code=status.HTTP_200_OK,
    summary="Upload a file",
    description="Admin only. Stores the multipart `file` part and returns its public URL.",
    dependencies=[Depends(require_roles())],
)
async def upload_file(
    folder: Folder,
    url: Annotated[Optional[str], Depends(upload_via_request())],
) -> FileUploadResponse:
    if url is None:
        logger.info("Upload request without a file", extra={"folder": folder.value})
        return FileUploadResponse(url=None, folder=folder, message="No file attached")

    return FileUploadResponse(url=url, folder=folder, message="File uploaded successfully")


@router.get(
    "/{folder}/{filename}",
    summary="Stream a file",
    description="Streams the stored object inline with its stored content type.",
    response_class=StreamingResponse,
)
async def stream_file(
    folder: Folder,
    filename: str,
    store: ObjectStoreDep,
) -> StreamingResponse:
    stream = await store.open_stream(filename, folder)
    return StreamingResponse(stream, headers=stream.headers)


@router.delete(
    "/{folder}/{filename}",
    response_model=FileDeleteResponse,
    summary="Delete a file",
    description="Admin only. Fails with 404 if the file does not exist.",
    dependencies=[Depends(require_roles())],
)
async def delete_file(
    folder: Folder,
    filename: str,
    store: ObjectStoreDep,
) -> FileDeleteResponse:
    await store.delete(filename, folder)
    return FileDeleteResponse(filename=filename, folder=folder, message="File deleted successfully")


@router.get(
    "/{folder}/{filename}/signed-url",
    response_model=FileUrlResponse,
    summary="Get a temporary signed URL",
)
async def get_signed_url(
    folder: Folder,
    filename: str,
    store: ObjectStoreDep,
    settings: SettingsDep,
    expires_in_hours: Annotated[Optional[float], Query(gt=0, le=168)] = None,
) -> FileUrlResponse:
    hours = expires_in_hours or settings.signed_url_default_hours
    url = await store.signed_url(filename, folder, hours)
    return FileUrlResponse(url=url, filename=filename, folder=folder, expires_in_hours=hours)


@router.get(
    "/{folder}/{filename}/public-url",
    response_model=FileUrlResponse,
    summary="Get the permanent public URL",
    description="Computed locally, no bucket call. Does not check that the file exists.",
)
async def get_public_url(
    folder: Folder,
    filename: str,
    store: ObjectStoreDep,
) -> FileUrlResponse:
    url = store.get_public_url(filename, folder)
    return FileUrlResponse(url=url, filename=filename, folder=folder)
