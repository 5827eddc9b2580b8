"""
Bucket clients for exam platform file storage.

Talks to Google Cloud Storage through its S3-compatible XML API with HMAC
interoperability keys. Using boto3 against GCS instead of a GCS-only SDK
means the same client also works against S3 or MinIO for local setups.

Public URLs keep the GCS shape regardless:
    https://storage.googleapis.com/<bucket>/<folder>/<millis>-<filename>

Mock mode keeps objects in memory, enabling API testing without
provisioning a bucket.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import AsyncIterator, Optional

from ...core.storage.models import ObjectMetadata
from ...core.storage.store import BucketClient

logger = logging.getLogger(__name__)

# Error codes the XML API uses for a missing object on HEAD/GET
_NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}


@dataclass
class StorageConfig:
    """Configuration for the GCS (S3-interoperable) bucket."""
    access_key_id: str
    secret_access_key: str
    bucket_name: str
    endpoint_url: str = "https://storage.googleapis.com"
    region: str = "auto"


class GCSBucketClient:
    """
    Google Cloud Storage bucket client over the S3 interoperability API.

    boto3 is synchronous, so every provider call is pushed to a worker
    thread with asyncio.to_thread. The underlying boto3 client is safe to
    share between threads, which lets one instance serve all requests.
    """

    def __init__(self, config: StorageConfig) -> None:
        try:
            import boto3
            from botocore.config import Config
            from botocore.exceptions import ClientError
        except ImportError:
            raise ImportError(
                "boto3 is required for bucket storage. Install with: pip install boto3"
            )

        self._config = config
        self._client_error = ClientError

        # v4 signatures for signed URLs, path style for the GCS XML endpoint
        boto_config = Config(
            signature_version='s3v4',
            s3={'addressing_style': 'path'},
        )

        self._s3_client = boto3.client(
            's3',
            endpoint_url=config.endpoint_url,
            aws_access_key_id=config.access_key_id,
            aws_secret_access_key=config.secret_access_key,
            region_name=config.region,
            config=boto_config,
        )

        logger.info(
            "Initialized GCS bucket client",
            extra={
                "bucket": config.bucket_name,
                "endpoint": config.endpoint_url,
            }
        )

    @property
    def bucket_name(self) -> Optional[str]:
        return self._config.bucket_name or None

    async def exists(self, key: str) -> bool:
        try:
            await asyncio.to_thread(
                self._s3_client.head_object,
                Bucket=self._config.bucket_name,
                Key=key,
            )
        except self._client_error as e:
            if self._error_code(e) in _NOT_FOUND_CODES:
                return False
            raise
        return True

    async def put_object(self, key: str, data: bytes, content_type: str) -> None:
        await asyncio.to_thread(
            self._s3_client.put_object,
            Bucket=self._config.bucket_name,
            Key=key,
            Body=data,
            ContentType=content_type,
        )

        logger.debug(
            "Wrote object",
            extra={"key": key, "size_bytes": len(data), "content_type": content_type}
        )

    async def make_public(self, key: str) -> None:
        """Grant allUsers read on one object (fine-grained ACL buckets)."""
        await asyncio.to_thread(
            self._s3_client.put_object_acl,
            Bucket=self._config.bucket_name,
            Key=key,
            ACL='public-read',
        )

    async def get_metadata(self, key: str) -> Optional[ObjectMetadata]:
        try:
            response = await asyncio.to_thread(
                self._s3_client.head_object,
                Bucket=self._config.bucket_name,
                Key=key,
            )
        except self._client_error as e:
            if self._error_code(e) in _NOT_FOUND_CODES:
                return None
            raise

        return ObjectMetadata(
            key=key,
            content_type=response.get('ContentType'),
            size=response.get('ContentLength'),
        )

    async def delete_object(self, key: str) -> None:
        await asyncio.to_thread(
            self._s3_client.delete_object,
            Bucket=self._config.bucket_name,
            Key=key,
        )

    async def iter_object(self, key: str, chunk_size: int) -> AsyncIterator[bytes]:
        """
        Yield an object's bytes chunk by chunk.

        The GET is only issued when iteration starts, so headers can be
        sent before any bytes are pulled from the bucket.
        """
        response = await asyncio.to_thread(
            self._s3_client.get_object,
            Bucket=self._config.bucket_name,
            Key=key,
        )
        body = response['Body']
        try:
            while True:
                chunk = await asyncio.to_thread(body.read, chunk_size)
                if not chunk:
                    break
                yield chunk
        finally:
            body.close()

    async def generate_signed_url(self, key: str, expires_at: datetime) -> Optional[str]:
        """
        Read-only V4 signed URL valid until `expires_at`.

        The XML API takes a relative lifetime, so the instant is converted
        to seconds from now.
        """
        expires_in = int((expires_at - datetime.now(timezone.utc)).total_seconds())

        return await asyncio.to_thread(
            self._s3_client.generate_presigned_url,
            'get_object',
            Params={
                'Bucket': self._config.bucket_name,
                'Key': key,
            },
            ExpiresIn=max(expires_in, 1),
        )

    def close(self) -> None:
        self._s3_client.close()
        logger.info("Closed GCS bucket client")

    @staticmethod
    def _error_code(error) -> str:
        return str(error.response.get('Error', {}).get('Code', ''))


# ---------------------------------------------------------------------------
# Mock Storage for Local Development
# ---------------------------------------------------------------------------

@dataclass
class _MockObject:
    data: bytes
    content_type: str
    public: bool = False


class MockBucketClient:
    """
    In-memory bucket for local development and tests.

    Objects live in a dict keyed by object key. Signed "URLs" are mock
    URIs that carry the expiry so tests can inspect them.

    Not suitable for production.
    """

    def __init__(self, bucket_name: Optional[str] = "mock-bucket") -> None:
        self._bucket_name = bucket_name
        self.objects: dict[str, _MockObject] = {}
        self.deleted_keys: list[str] = []
        logger.info("Initialized mock bucket client (in-memory)")

    @property
    def bucket_name(self) -> Optional[str]:
        return self._bucket_name

    async def exists(self, key: str) -> bool:
        return key in self.objects

    async def put_object(self, key: str, data: bytes, content_type: str) -> None:
        self.objects[key] = _MockObject(data=bytes(data), content_type=content_type)

        logger.debug(
            "Stored object in mock bucket",
            extra={"key": key, "size_bytes": len(data)}
        )

    async def make_public(self, key: str) -> None:
        if key not in self.objects:
            raise KeyError(f"No such object: {key}")
        self.objects[key].public = True

    async def get_metadata(self, key: str) -> Optional[ObjectMetadata]:
        stored = self.objects.get(key)
        if stored is None:
            return None
        return ObjectMetadata(key=key, content_type=stored.content_type, size=len(stored.data))

    async def delete_object(self, key: str) -> None:
        if key not in self.objects:
            raise KeyError(f"No such object: {key}")
        del self.objects[key]
        self.deleted_keys.append(key)

    async def iter_object(self, key: str, chunk_size: int) -> AsyncIterator[bytes]:
        data = self.objects[key].data
        for start in range(0, len(data), chunk_size):
            yield data[start:start + chunk_size]

    async def generate_signed_url(self, key: str, expires_at: datetime) -> Optional[str]:
        return f"mock://storage/{self._bucket_name}/{key}?expires={int(expires_at.timestamp())}"

    def close(self) -> None:
        logger.debug("Closed mock bucket client")


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------

def create_bucket_client(
    config: Optional[StorageConfig] = None,
    mock_mode: bool = False,
) -> BucketClient:
    """
    Create bucket client based on configuration.

    Args:
        config: Storage configuration (required if not mock_mode)
        mock_mode: If True, return in-memory client

    Returns:
        BucketClient implementation (GCS or Mock)
    """
    if mock_mode:
        bucket_name = config.bucket_name if config else "mock-bucket"
        return MockBucketClient(bucket_name=bucket_name)

    if config is None:
        raise ValueError("config is required when not in mock mode")

    return GCSBucketClient(config)
