"""
Audit sinks: where audit records are written.

- FileAuditSink: append-only JSON lines file, one object per record.
  Built on a dedicated logging.Logger so file handling, locking and
  rotation stay with the logging module.
- RepositoryAuditSink: inserts each record into the Snowflake
  audit_logs table.
"""

import json
import logging
from contextlib import AbstractContextManager
from pathlib import Path
from typing import Callable

from ...core.audit.models import AuditLevel, AuditRecord
from ..snowflake.repositories.audit_logs import AuditLogRepository, SnowflakeConnection

logger = logging.getLogger(__name__)

_LOG_LEVELS = {
    AuditLevel.INFO: logging.INFO,
    AuditLevel.WARNING: logging.WARNING,
    AuditLevel.ERROR: logging.ERROR,
}


class AuditJsonFormatter(logging.Formatter):
    """Render the AuditRecord attached to a log record as one JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        audit_record: AuditRecord = record.audit_record  # type: ignore[attr-defined]
        return json.dumps(audit_record.to_dict(), default=str)


class _RaisingFileHandler(logging.FileHandler):
    """FileHandler that lets write errors reach the caller."""

    def handleError(self, record: logging.LogRecord) -> None:
        # called from inside FileHandler.emit's except block
        raise


class FileAuditSink:
    """
    Append audit records to a JSON lines file.

    Each sink owns a private logger with a single file handler, so audit
    lines never leak into the application log and vice versa.
    """

    def __init__(self, path: Path) -> None:
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)

        # Unregistered logger: not reachable through logging.getLogger
        self._logger = logging.Logger(f"audit.{self._path.stem}", logging.INFO)

        self._handler = _RaisingFileHandler(self._path, encoding="utf-8")
        self._handler.setFormatter(AuditJsonFormatter())
        self._logger.addHandler(self._handler)

        logger.info("Opened audit log file", extra={"path": str(self._path)})

    @property
    def path(self) -> Path:
        return self._path

    def emit(self, record: AuditRecord) -> None:
        self._logger.log(
            _LOG_LEVELS[record.level],
            record.event,
            extra={"audit_record": record},
        )

    def close(self) -> None:
        self._logger.removeHandler(self._handler)
        self._handler.close()


ConnectionFactory = Callable[[], AbstractContextManager[SnowflakeConnection]]


class RepositoryAuditSink:
    """
    Persist audit records to the audit_logs table.

    Takes a connection factory rather than a connection so each write
    gets a fresh (or the shared mock) connection, the same way request
    handlers get theirs.
    """

    def __init__(self, connection_factory: ConnectionFactory) -> None:
        self._connection_factory = connection_factory

    def emit(self, record: AuditRecord) -> None:
        with self._connection_factory() as conn:
            AuditLogRepository(conn).log(record)

    def close(self) -> None:
        pass
