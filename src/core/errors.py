"""
Error kinds shared by the access gate and the object store.

Both components classify every failure into one of a small set of kinds
and raise it. They never pick HTTP status codes; the API layer maps kinds
to wire responses (see src/api/errors.py).
"""

from enum import Enum
from typing import Any, Optional


class ErrorKind(Enum):
    """What went wrong, independent of transport."""
    UNAUTHENTICATED = "unauthenticated"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    PRECONDITION_MISSING = "precondition_missing"
    TRANSPORT_FAILURE = "transport_failure"
    INTERNAL_FAULT = "internal_fault"


class PlatformError(Exception):
    """
    Base error for the platform core.

    Callers inspect `kind` rather than the message text.
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        details: Optional[Any] = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.details = details

    def __repr__(self) -> str:
        return f"{type(self).__name__}(kind={self.kind.value!r}, message={self.message!r})"


class AccessError(PlatformError):
    """Raised by the access gate."""
    pass


class StorageError(PlatformError):
    """Raised when object storage operations fail."""
    pass
