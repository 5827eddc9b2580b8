"""
Append-only audit log.

An AuditLog is a named channel ("security", "storage") that builds an
AuditRecord and hands it to every configured sink. Sinks are where records
end up: a JSON lines file, the audit_logs table, or a list in memory.

A record is offered to every sink even if an earlier one fails; any failure
is then raised as AuditWriteError carrying the record. Whoever calls
`record` decides what a failed audit write means for them (the access gate
denies the request, the object store reports a fault).
"""

import logging
from typing import Any, Optional, Protocol, Sequence

from .models import AuditLevel, AuditRecord

logger = logging.getLogger(__name__)


class AuditWriteError(Exception):
    """
    One or more sinks refused a record.

    `record` is the record that was offered. Sinks other than the failing
    ones may already hold it.
    """

    def __init__(self, record: AuditRecord, errors: Sequence[Exception]) -> None:
        super().__init__("; ".join(str(e) for e in errors))
        self.record = record
        self.errors = list(errors)


class AuditSink(Protocol):
    """Destination for audit records."""

    def emit(self, record: AuditRecord) -> None:
        """Persist one record. Raise on failure."""
        ...

    def close(self) -> None:
        """Release any held resources."""
        ...


class MemoryAuditSink:
    """
    Keeps records in a list.

    Used in mock mode and by tests to assert on exactly what was audited.
    """

    def __init__(self) -> None:
        self.records: list[AuditRecord] = []

    def emit(self, record: AuditRecord) -> None:
        self.records.append(record)

    def close(self) -> None:
        pass

    def clear(self) -> None:
        self.records.clear()


class AuditLog:
    """
    One audit channel with its sinks.

    Usage:
        audit = AuditLog("storage", [FileAuditSink(path)])
        audit.info("File uploaded successfully", folder="reports", filename="a.pdf")
    """

    def __init__(self, channel: str, sinks: Sequence[AuditSink]) -> None:
        self._channel = channel
        self._sinks = list(sinks)

    @property
    def channel(self) -> str:
        return self._channel

    def record(
        self,
        event: str,
        level: AuditLevel,
        success: bool,
        *,
        details: Optional[dict[str, Any]] = None,
        **fields: Any,
    ) -> AuditRecord:
        """
        Build a record and emit it to every sink.

        Raises:
            AuditWriteError: at least one sink failed; chained from the first error
        """
        audit_record = AuditRecord(
            channel=self._channel,
            event=event,
            level=level,
            success=success,
            details=details or {},
            **fields,
        )
        errors: list[Exception] = []
        for sink in self._sinks:
            try:
                sink.emit(audit_record)
            except Exception as e:
                logger.error(
                    "Audit sink rejected record",
                    extra={"channel": self._channel, "audit_event": event, "error": str(e)}
                )
                errors.append(e)

        if errors:
            raise AuditWriteError(audit_record, errors) from errors[0]
        return audit_record

    def info(self, event: str, **fields: Any) -> AuditRecord:
        return self.record(event, AuditLevel.INFO, True, **fields)

    def warning(self, event: str, success: bool = False, **fields: Any) -> AuditRecord:
        return self.record(event, AuditLevel.WARNING, success, **fields)

    def error(self, event: str, **fields: Any) -> AuditRecord:
        return self.record(event, AuditLevel.ERROR, False, **fields)

    def close(self) -> None:
        """Close all sinks. Keeps going if one of them fails to close."""
        for sink in self._sinks:
            try:
                sink.close()
            except Exception as e:
                logger.warning(
                    "Error closing audit sink",
                    extra={"channel": self._channel, "error": str(e)}
                )
