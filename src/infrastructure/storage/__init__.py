"""
Bucket clients for file storage.

GCS via its S3-compatible API, plus an in-memory mock for local
development without credentials.
"""

from .client import (
    GCSBucketClient,
    MockBucketClient,
    StorageConfig,
    create_bucket_client,
)

__all__ = [
    "GCSBucketClient",
    "MockBucketClient",
    "StorageConfig",
    "create_bucket_client",
]
