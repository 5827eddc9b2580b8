"""
Stored object naming and metadata.

Keys are `<folder>/<epoch millis>-<sanitized filename>`. The timestamp
prefix keeps uploads of the same file distinct without any coordination;
two uploads of the same name in the same millisecond would collide, which
we accept.
"""

import re
import time
import unicodedata
from dataclasses import dataclass
from enum import Enum
from pathlib import PurePosixPath
from typing import Optional, Union
from urllib.parse import quote


class Folder(str, Enum):
    """Logical partitions of the bucket namespace."""
    STUDY_MATERIALS = "study-materials"
    EXAM_PAPERS = "exam-papers"
    CERTIFICATES = "certificates"
    REPORTS = "reports"
    USER_UPLOADS = "user-uploads"
    VIDEOS = "videos"


FolderLike = Union[Folder, str]

PDF_CONTENT_TYPE = "application/pdf"
DEFAULT_CONTENT_TYPE = "application/octet-stream"

_WHITESPACE = re.compile(r"\s+")


def folder_name(folder: Optional[FolderLike]) -> Optional[str]:
    """Folder enum or plain string to its path segment."""
    if isinstance(folder, Folder):
        return folder.value
    return folder or None


def sanitize_filename(filename: str) -> str:
    """Replace each run of whitespace with a single hyphen."""
    return _WHITESPACE.sub("-", filename)


def infer_content_type(filename: str) -> str:
    """PDFs are served as PDFs, everything else as opaque bytes."""
    if PurePosixPath(filename).suffix.lower() == ".pdf":
        return PDF_CONTENT_TYPE
    return DEFAULT_CONTENT_TYPE


def _header_safe(value: str) -> str:
    """Escape quotes and backslashes, drop control characters."""
    cleaned = "".join("_" if ord(ch) < 32 or ord(ch) == 127 else ch for ch in value)
    return cleaned.replace("\\", "\\\\").replace('"', '\\"')


def content_disposition(filename: str, disposition: str = "inline") -> str:
    """
    Content-Disposition value for serving `filename`.

    Names that fit in latin-1 keep the plain `filename="..."` form. Anything
    else gets an ASCII fallback plus an RFC 6266 `filename*` parameter
    carrying the UTF-8 name, since header values go out as latin-1.
    """
    safe = _header_safe(filename)
    try:
        safe.encode("latin-1")
    except UnicodeEncodeError:
        ascii_name = unicodedata.normalize("NFKD", filename).encode("ascii", "ignore").decode("ascii")
        fallback = _header_safe(ascii_name).strip() or "download"
        return f"{disposition}; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename, safe='')}"
    return f'{disposition}; filename="{safe}"'


def current_millis() -> int:
    return time.time_ns() // 1_000_000


def build_object_key(folder: str, filename: str, timestamp_ms: Optional[int] = None) -> str:
    """Key for a new upload. `filename` must already be sanitized."""
    if timestamp_ms is None:
        timestamp_ms = current_millis()
    return f"{folder}/{timestamp_ms}-{filename}"


def object_path(folder: str, filename: str) -> str:
    """Key of an existing object, addressed by folder and stored filename."""
    return f"{folder}/{filename}"


@dataclass(frozen=True)
class ObjectMetadata:
    """What the bucket reports about an object."""
    key: str
    content_type: Optional[str]
    size: Optional[int] = None

