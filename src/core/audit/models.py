"""
Audit record value type.

An audit record answers "who did what, when, and whether it worked" for a
single gate decision or storage operation. Records are values: frozen,
timestamped at creation and never edited afterwards.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4


class AuditLevel(Enum):
    """Severity of an audit record, mirrors logging levels."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class AuditRecord:
    """
    One access decision or storage outcome.

    Only the fields relevant to the event are filled in; the rest stay None.
    `details` holds event-specific extras (required roles, byte size, ...).
    """
    channel: str
    event: str
    level: AuditLevel
    success: bool
    id: UUID = field(default_factory=uuid4)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    # who
    principal_id: Optional[str] = None
    principal_role: Optional[str] = None
    source_address: Optional[str] = None

    # what
    operation: Optional[str] = None
    path: Optional[str] = None
    method: Optional[str] = None
    folder: Optional[str] = None
    filename: Optional[str] = None

    error: Optional[str] = None
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Flatten to a JSON-friendly dict, dropping empty fields."""
        data: dict[str, Any] = {
            "id": str(self.id),
            "timestamp": self.timestamp.isoformat(),
            "channel": self.channel,
            "event": self.event,
            "level": self.level.value,
            "success": self.success,
        }
        for name in (
            "principal_id", "principal_role", "source_address", "operation",
            "path", "method", "folder", "filename", "error",
        ):
            value = getattr(self, name)
            if value is not None:
                data[name] = value
        if self.details:
            data["details"] = dict(self.details)
        return data
