"""
Audit trail for access decisions and storage operations.
"""

from .log import AuditLog, AuditSink, AuditWriteError, MemoryAuditSink
from .models import AuditLevel, AuditRecord

__all__ = [
    "AuditLevel",
    "AuditLog",
    "AuditRecord",
    "AuditSink",
    "AuditWriteError",
    "MemoryAuditSink",
]
