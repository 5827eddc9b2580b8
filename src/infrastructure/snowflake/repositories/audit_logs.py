"""
Snowflake repository for the audit trail.

Audit records are append-only: the repository inserts and lists, it never
updates or deletes. The application layer hands it AuditRecord values and
gets rows back as plain dicts for display.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Optional, Protocol

from src.core.audit.models import AuditRecord


logger = logging.getLogger(__name__)


class SnowflakeConnection(Protocol):
    """
    Protocol for Snowflake connections.

    Using a protocol means tests can provide a mock without
    importing the actual snowflake-connector-python.
    """

    def cursor(self): ...
    def commit(self) -> None: ...


@dataclass
class SnowflakeConfig:
    """Configuration for Snowflake connection."""
    account: str
    user: str
    password: Optional[str] = None
    private_key_path: Optional[str] = None
    private_key_base64: Optional[str] = None
    database: str = "EXAMHUB"
    schema: str = "PLATFORM"
    warehouse: str = "COMPUTE_WH"
    role: Optional[str] = None


AUDIT_LOG_COLUMNS = (
    "audit_id",
    "channel",
    "event",
    "level",
    "success",
    "user_id",
    "user_role",
    "action",
    "resource_type",
    "resource_id",
    "details",
    "ip_address",
    "created_at",
)

CREATE_AUDIT_LOGS_TABLE = """
    CREATE TABLE IF NOT EXISTS audit_logs (
        audit_id VARCHAR(36) PRIMARY KEY,
        channel VARCHAR(32) NOT NULL,
        event VARCHAR(255) NOT NULL,
        level VARCHAR(16) NOT NULL,
        success BOOLEAN NOT NULL,
        user_id VARCHAR(64),
        user_role VARCHAR(64),
        action VARCHAR(255) NOT NULL,
        resource_type VARCHAR(64) NOT NULL,
        resource_id VARCHAR(1024),
        details VARIANT,
        ip_address VARCHAR(64),
        created_at TIMESTAMP_TZ NOT NULL
    )
"""


def record_to_row(record: AuditRecord) -> tuple:
    """
    Flatten an AuditRecord into the audit_logs column order.

    action is the storage operation or, for gate decisions, the HTTP
    method and path. resource_type/resource_id say what was touched.
    """
    if record.operation:
        action = record.operation
        resource_type = "file"
        resource_id = f"{record.folder}/{record.filename}" if record.folder else record.filename
    else:
        action = " ".join(part for part in (record.method, record.path) if part) or record.event
        resource_type = "route"
        resource_id = record.path

    details: dict[str, Any] = dict(record.details)
    if record.error:
        details["error"] = record.error

    return (
        str(record.id),
        record.channel,
        record.event,
        record.level.value,
        record.success,
        record.principal_id,
        record.principal_role,
        action,
        resource_type,
        resource_id,
        json.dumps(details),
        record.source_address,
        record.timestamp,
    )


class AuditLogRepository:
    """
    Repository for audit log persistence.

    - log: append one record
    - list: newest records first, optionally filtered
    """

    def __init__(self, connection: SnowflakeConnection) -> None:
        self._conn = connection

    def log(self, record: AuditRecord) -> None:
        cursor = self._conn.cursor()

        try:
            placeholders = ", ".join(["%s"] * len(AUDIT_LOG_COLUMNS))
            cursor.execute(
                f"INSERT INTO audit_logs ({', '.join(AUDIT_LOG_COLUMNS)}) VALUES ({placeholders})",
                record_to_row(record),
            )
            self._conn.commit()

        except Exception as e:
            logger.error(
                "Failed to write audit log",
                extra={"audit_id": str(record.id), "error": str(e)}
            )
            raise
        finally:
            cursor.close()

    def list(
        self,
        user_id: Optional[str] = None,
        action: Optional[str] = None,
        resource_type: Optional[str] = None,
        resource_id: Optional[str] = None,
        limit: int = 100,
    ) -> list[dict[str, Any]]:
        """
        List audit rows, most recent first.

        Raises:
            ValueError: if limit is not a positive integer
        """
        if limit < 1:
            raise ValueError("Limit must be a positive integer")

        query = f"SELECT {', '.join(AUDIT_LOG_COLUMNS)} FROM audit_logs WHERE 1=1"
        params: list[Any] = []

        for column, value in (
            ("user_id", user_id),
            ("action", action),
            ("resource_type", resource_type),
            ("resource_id", resource_id),
        ):
            if value:
                query += f" AND {column} = %s"
                params.append(value)

        query += " ORDER BY created_at DESC LIMIT %s"
        params.append(limit)

        cursor = self._conn.cursor()

        try:
            cursor.execute(query, tuple(params))
            rows = cursor.fetchall()
        finally:
            cursor.close()

        return [self._row_to_dict(row) for row in rows]

    @staticmethod
    def _row_to_dict(row: tuple) -> dict[str, Any]:
        data = dict(zip(AUDIT_LOG_COLUMNS, row))
        details = data.get("details")
        if isinstance(details, str):
            data["details"] = json.loads(details)
        created_at = data.get("created_at")
        if hasattr(created_at, "isoformat"):
            data["created_at"] = created_at.isoformat()
        return data
