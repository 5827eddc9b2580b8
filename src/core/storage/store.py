"""
Object store for exam papers, certificates, reports and other files.

ObjectStore sits between request handlers and the bucket. It owns:
- key naming and content type inference for uploads
- parameter and existence checks before destructive or streaming calls
- the storage audit trail: each operation writes exactly one record
- failure classification (ErrorKind) for the API layer to map

Nothing is retried. Every failure is audited and raised as StorageError.
An audit write that fails while a failure is being reported is logged and
the original error still wins; one that fails on a success path turns the
call into an INTERNAL_FAULT, so no outcome is returned unrecorded.

The bucket itself is behind the BucketClient protocol, so tests and local
development use the in-memory client from src.infrastructure.storage.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import AsyncIterator, Optional, Protocol

from ..audit import AuditLog, AuditWriteError
from ..errors import ErrorKind, StorageError
from .models import (
    FolderLike,
    ObjectMetadata,
    build_object_key,
    content_disposition,
    folder_name,
    infer_content_type,
    object_path,
    sanitize_filename,
)

logger = logging.getLogger(__name__)

DEFAULT_PUBLIC_HOST = "storage.googleapis.com"
DEFAULT_CHUNK_SIZE = 64 * 1024


class BucketClient(Protocol):
    """
    Protocol for the remote bucket.

    Every method that talks to the provider is a coroutine, so a slow
    bucket never blocks the event loop.
    """

    @property
    def bucket_name(self) -> Optional[str]: ...

    async def exists(self, key: str) -> bool: ...

    async def put_object(self, key: str, data: bytes, content_type: str) -> None: ...

    async def make_public(self, key: str) -> None: ...

    async def get_metadata(self, key: str) -> Optional[ObjectMetadata]: ...

    async def delete_object(self, key: str) -> None: ...

    def iter_object(self, key: str, chunk_size: int) -> AsyncIterator[bytes]: ...

    async def generate_signed_url(self, key: str, expires_at: datetime) -> Optional[str]: ...

    def close(self) -> None: ...


class ResponseSink(Protocol):
    """Where streamed objects go: headers first, then bytes."""

    def set_header(self, name: str, value: str) -> None: ...

    async def write(self, chunk: bytes) -> None: ...


@dataclass
class ObjectStream:
    """
    A validated object ready to stream.

    Headers are final before the first chunk is read. Iterating pulls
    bytes from the bucket; errors mid-stream propagate to the consumer.
    """
    filename: str
    folder: str
    content_type: str
    headers: dict[str, str]
    _chunks: AsyncIterator[bytes] = field(repr=False)

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self._chunks


class ObjectStore:
    """
    Binary object operations against one bucket.

    The bucket client is created once at startup and shared by all
    requests; ObjectStore itself holds no per-request state.
    """

    def __init__(
        self,
        client: BucketClient,
        audit: AuditLog,
        public_host: str = DEFAULT_PUBLIC_HOST,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        self._client = client
        self._audit = audit
        self._public_host = public_host
        self._chunk_size = chunk_size

    @property
    def bucket_name(self) -> Optional[str]:
        return self._client.bucket_name

    def public_url_for_key(self, key: str) -> str:
        return f"https://{self._public_host}/{self.bucket_name}/{key}"

    # -----------------------------------------------------------------------
    # Audit helpers
    # -----------------------------------------------------------------------

    def _record_failure(self, emit, event: str, **fields) -> None:
        """Audit a failure that is about to be raised. Never masks it."""
        try:
            emit(event, **fields)
        except AuditWriteError as e:
            logger.error(
                "Could not record storage failure",
                extra={"audit_event": event, "error": str(e)}
            )

    def _record_outcome(self, emit, event: str, **fields) -> None:
        """Audit an outcome about to be returned; a failed write is a fault."""
        try:
            emit(event, **fields)
        except AuditWriteError as e:
            raise StorageError(
                ErrorKind.INTERNAL_FAULT,
                "Storage audit record could not be written",
                details=str(e),
            ) from e

    # -----------------------------------------------------------------------
    # Upload
    # -----------------------------------------------------------------------

    async def upload(self, data: bytes, original_filename: str, folder: FolderLike) -> str:
        """
        Store a new object and make it publicly readable.

        Every upload gets a fresh key, nothing is overwritten. If the
        success record cannot be written the object is removed again.

        Returns:
            Public URL: https://<host>/<bucket>/<folder>/<millis>-<sanitized name>

        Raises:
            StorageError: PRECONDITION_MISSING, TRANSPORT_FAILURE or INTERNAL_FAULT
        """
        folder_value = folder_name(folder)

        try:
            if not self.bucket_name or not original_filename or not folder_value:
                raise StorageError(
                    ErrorKind.PRECONDITION_MISSING,
                    "Missing bucket, filename or folder for upload",
                )

            sanitized = sanitize_filename(original_filename)
            content_type = infer_content_type(original_filename)
            key = build_object_key(folder_value, sanitized)

            await self._client.put_object(key, data, content_type)
            # Object may exist if this fails; the URL is never returned then
            await self._client.make_public(key)

        except Exception as e:
            self._record_failure(
                self._audit.error,
                "File upload failed",
                operation="upload",
                filename=original_filename,
                folder=folder_value,
                error=str(e),
            )
            if isinstance(e, StorageError):
                raise
            raise StorageError(ErrorKind.TRANSPORT_FAILURE, "File upload failed", details=str(e)) from e

        try:
            self._record_outcome(
                self._audit.info,
                "File uploaded successfully",
                operation="upload",
                filename=sanitized,
                folder=folder_value,
                details={"destination": key, "size": len(data), "content_type": content_type},
            )
        except StorageError:
            await self._discard(key)
            raise

        return self.public_url_for_key(key)

    async def _discard(self, key: str) -> None:
        """Remove an object that was stored but could not be recorded."""
        try:
            await self._client.delete_object(key)
        except Exception as e:
            logger.error(
                "Could not remove unrecorded upload",
                extra={"key": key, "error": str(e)}
            )

    # -----------------------------------------------------------------------
    # Public URL
    # -----------------------------------------------------------------------

    def get_public_url(self, filename: Optional[str], folder: Optional[FolderLike]) -> Optional[str]:
        """
        Public URL of an existing object, computed locally.

        Missing parameters give None and a warning, not an error.

        Raises:
            StorageError: INTERNAL_FAULT when the audit record cannot be written
        """
        folder_value = folder_name(folder)

        if not self.bucket_name or not filename or not folder_value:
            self._record_outcome(
                self._audit.warning,
                "Missing parameters for getPublicUrl",
                operation="get_public_url",
                filename=filename,
                folder=folder_value,
                details={
                    "bucket": bool(self.bucket_name),
                    "filename": bool(filename),
                    "folder": bool(folder_value),
                },
            )
            return None

        url = self.public_url_for_key(object_path(folder_value, filename))
        self._record_outcome(
            self._audit.info,
            "Public URL resolved",
            operation="get_public_url",
            filename=filename,
            folder=folder_value,
        )
        return url

    # -----------------------------------------------------------------------
    # Delete
    # -----------------------------------------------------------------------

    async def delete(self, filename: Optional[str], folder: Optional[FolderLike]) -> bool:
        """
        Delete an existing object.

        Unlike get_public_url, missing parameters are a failure here.

        Raises:
            StorageError: PRECONDITION_MISSING, NOT_FOUND, TRANSPORT_FAILURE
            or INTERNAL_FAULT
        """
        folder_value = folder_name(folder)

        if not self.bucket_name or not filename or not folder_value:
            self._record_failure(
                self._audit.warning,
                "Missing parameters for deleteFile",
                operation="delete",
                filename=filename,
                folder=folder_value,
                details={
                    "bucket": bool(self.bucket_name),
                    "filename": bool(filename),
                    "folder": bool(folder_value),
                },
            )
            raise StorageError(ErrorKind.PRECONDITION_MISSING, "Missing parameters for deleteFile")

        key = object_path(folder_value, filename)

        try:
            exists = await self._client.exists(key)
            if exists:
                await self._client.delete_object(key)
        except Exception as e:
            self._record_failure(
                self._audit.error,
                "File deletion failed",
                operation="delete",
                filename=filename,
                folder=folder_value,
                error=str(e),
            )
            if isinstance(e, StorageError):
                raise
            raise StorageError(ErrorKind.TRANSPORT_FAILURE, "File deletion failed", details=str(e)) from e

        if not exists:
            self._record_failure(
                self._audit.warning,
                "File not found",
                operation="delete",
                filename=filename,
                folder=folder_value,
            )
            raise StorageError(ErrorKind.NOT_FOUND, "File not found")

        self._record_outcome(
            self._audit.info,
            "File deleted successfully",
            operation="delete",
            filename=filename,
            folder=folder_value,
        )
        return True

    # -----------------------------------------------------------------------
    # Streaming
    # -----------------------------------------------------------------------

    async def open_stream(self, filename: Optional[str], folder: Optional[FolderLike]) -> ObjectStream:
        """
        Check an object and prepare it for streaming.

        Bucket, names, existence and content type metadata are checked in
        that order; each has its own failure and none reads any bytes.

        Raises:
            StorageError: PRECONDITION_MISSING, NOT_FOUND, TRANSPORT_FAILURE
            or INTERNAL_FAULT
        """
        folder_value = folder_name(folder)

        try:
            if not self.bucket_name:
                raise StorageError(ErrorKind.PRECONDITION_MISSING, "Missing bucket")

            if not filename or not folder_value:
                raise StorageError(ErrorKind.PRECONDITION_MISSING, "Missing filename or folder")

            key = object_path(folder_value, filename)

            if not await self._client.exists(key):
                raise StorageError(ErrorKind.NOT_FOUND, "File not found")

            metadata = await self._client.get_metadata(key)
            if metadata is None or not metadata.content_type:
                raise StorageError(ErrorKind.PRECONDITION_MISSING, "Missing file metadata")

            headers = {
                "Content-Type": metadata.content_type,
                "Content-Disposition": content_disposition(filename),
            }

        except Exception as e:
            self._record_failure(
                self._audit.error,
                "File streaming failed",
                operation="stream",
                filename=filename,
                folder=folder_value,
                error=str(e),
            )
            if isinstance(e, StorageError):
                raise
            raise StorageError(ErrorKind.TRANSPORT_FAILURE, "File streaming failed", details=str(e)) from e

        self._record_outcome(
            self._audit.info,
            "File streaming started",
            operation="stream",
            filename=filename,
            folder=folder_value,
            details={"content_type": metadata.content_type},
        )

        return ObjectStream(
            filename=filename,
            folder=folder_value,
            content_type=metadata.content_type,
            headers=headers,
            _chunks=self._client.iter_object(key, self._chunk_size),
        )

    async def stream_to(
        self,
        sink: ResponseSink,
        filename: Optional[str],
        folder: Optional[FolderLike],
    ) -> None:
        """Write headers then all bytes of an object to `sink`."""
        stream = await self.open_stream(filename, folder)
        logger.debug(
            "Streaming object to sink",
            extra={"filename": filename, "folder": stream.folder}
        )

        for name, value in stream.headers.items():
            sink.set_header(name, value)

        async for chunk in stream:
            await sink.write(chunk)

    # -----------------------------------------------------------------------
    # Signed URLs
    # -----------------------------------------------------------------------

    async def signed_url(
        self,
        filename: Optional[str],
        folder: Optional[FolderLike],
        expires_in_hours: float = 1,
    ) -> str:
        """
        Time-limited read URL for an object.

        Raises:
            StorageError: PRECONDITION_MISSING, TRANSPORT_FAILURE when the
            provider call fails or returns an empty URL, INTERNAL_FAULT when
            the audit record cannot be written
        """
        folder_value = folder_name(folder)

        try:
            if not self.bucket_name:
                raise StorageError(ErrorKind.PRECONDITION_MISSING, "Bucket is not configured")

            if not filename or not folder_value:
                raise StorageError(ErrorKind.PRECONDITION_MISSING, "Missing filename or folder")

            if expires_in_hours <= 0:
                raise StorageError(
                    ErrorKind.PRECONDITION_MISSING,
                    "Expiry must be a positive number of hours",
                )

            expires_at = datetime.now(timezone.utc) + timedelta(hours=expires_in_hours)
            url = await self._client.generate_signed_url(
                object_path(folder_value, filename),
                expires_at,
            )

            if not url:
                raise StorageError(ErrorKind.TRANSPORT_FAILURE, "Signed URL is empty")

        except Exception as e:
            self._record_failure(
                self._audit.error,
                "Signed URL generation failed",
                operation="signed_url",
                filename=filename,
                folder=folder_value,
                error=str(e),
            )
            if isinstance(e, StorageError):
                raise
            raise StorageError(ErrorKind.TRANSPORT_FAILURE, "Signed URL generation failed", details=str(e)) from e

        self._record_outcome(
            self._audit.info,
            "Signed URL generated",
            operation="signed_url",
            filename=filename,
            folder=folder_value,
            details={"expires_in_hours": expires_in_hours, "expires_at": expires_at.isoformat()},
        )
        return url
