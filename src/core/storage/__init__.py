"""
Object storage for exam papers, study materials, certificates and reports.
"""

from .models import (
    Folder,
    ObjectMetadata,
    build_object_key,
    content_disposition,
    infer_content_type,
    sanitize_filename,
)
from .store import BucketClient, ObjectStore, ObjectStream, ResponseSink

__all__ = [
    "BucketClient",
    "Folder",
    "ObjectMetadata",
    "ObjectStore",
    "ObjectStream",
    "ResponseSink",
    "build_object_key",
    "content_disposition",
    "infer_content_type",
    "sanitize_filename",
]
