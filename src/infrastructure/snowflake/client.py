"""
Snowflake database connection management.

Provides connection factory and context manager for Snowflake operations.
Includes mock mode with in-memory storage for local development.

Most code never touches this module directly - it goes through
AuditLogRepository, which handles the translation between audit records
and database rows.
"""

import base64
import logging
import re
from contextlib import contextmanager
from typing import Generator, Optional

from .repositories.audit_logs import AUDIT_LOG_COLUMNS, SnowflakeConfig, SnowflakeConnection

logger = logging.getLogger(__name__)


class SnowflakeConnectionError(Exception):
    """Raised when Snowflake connection fails."""
    pass


def _load_private_key(key_pem: bytes) -> bytes:
    """
    Convert a PEM private key to the DER bytes snowflake-connector expects.
    """
    from cryptography.hazmat.backends import default_backend
    from cryptography.hazmat.primitives import serialization

    private_key = serialization.load_pem_private_key(
        key_pem,
        password=None,  # No password on the key
        backend=default_backend()
    )

    return private_key.private_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption()
    )


def _read_private_key(config: SnowflakeConfig) -> Optional[bytes]:
    """Key from file path first, then from the base64 setting."""
    if config.private_key_path:
        with open(config.private_key_path, 'rb') as key_file:
            return _load_private_key(key_file.read())
    if config.private_key_base64:
        return _load_private_key(base64.b64decode(config.private_key_base64))
    return None


@contextmanager
def get_snowflake_connection(config: SnowflakeConfig) -> Generator[SnowflakeConnection, None, None]:
    """
    Provide Snowflake connection with automatic cleanup.

    Supports both password and key-pair authentication:
    - If a private key (path or base64) is set, uses key-pair auth
    - Otherwise, uses password auth

    Usage:
        with get_snowflake_connection(config) as conn:
            cursor = conn.cursor()
            # do work
            conn.commit()
    """
    try:
        import snowflake.connector
    except ImportError:
        raise ImportError(
            "snowflake-connector-python is required. "
            "Install with: pip install snowflake-connector-python"
        )

    connect_params = {
        'account': config.account,
        'user': config.user,
        'database': config.database,
        'schema': config.schema,
        'warehouse': config.warehouse,
        'role': config.role,
    }

    private_key = _read_private_key(config)
    if private_key:
        logger.info("Using key-pair authentication for Snowflake")
        connect_params['private_key'] = private_key
    elif config.password:
        logger.info("Using password authentication for Snowflake")
        connect_params['password'] = config.password
    else:
        raise SnowflakeConnectionError(
            "Either password or a private key must be provided"
        )

    try:
        conn = snowflake.connector.connect(**connect_params)
    except snowflake.connector.errors.DatabaseError as e:
        logger.error(
            "Snowflake connection failed",
            extra={"error": str(e), "account": config.account}
        )
        raise SnowflakeConnectionError(f"Database connection failed: {e}")

    logger.debug(
        "Established Snowflake connection",
        extra={
            "account": config.account,
            "database": config.database,
            "schema": config.schema,
        }
    )

    try:
        yield conn
    finally:
        try:
            conn.close()
            logger.debug("Closed Snowflake connection")
        except Exception as e:
            logger.warning(
                "Error closing Snowflake connection",
                extra={"error": str(e)}
            )


# ---------------------------------------------------------------------------
# Mock Connection for Local Development
# ---------------------------------------------------------------------------

_FILTER_COLUMN = re.compile(r"AND\s+(\w+)\s*=\s*%s", re.IGNORECASE)


class MockSnowflakeCursor:
    """
    Mock Snowflake cursor for testing.

    Implements just enough of the cursor interface to support
    AuditLogRepository without a real database: CREATE TABLE is a no-op,
    INSERT appends a row, SELECT applies the equality filters and limit.
    """

    def __init__(self, storage: dict) -> None:
        self._storage = storage
        self._results: list = []
        self._rowcount: int = 0

    def execute(self, query: str, params: Optional[tuple] = None) -> 'MockSnowflakeCursor':
        logger.debug(
            "Mock cursor execute",
            extra={"query": query[:100], "params": params}
        )

        query_upper = query.upper().strip()

        if 'INSERT INTO AUDIT_LOGS' in query_upper:
            self._storage['audit_logs'].append(tuple(params or ()))
            self._rowcount = 1

        elif query_upper.startswith('SELECT') and 'FROM AUDIT_LOGS' in query_upper:
            self._handle_select(query, params or ())

        return self

    def _handle_select(self, query: str, params: tuple) -> None:
        """Filter stored rows by the `AND column = %s` clauses, newest first."""
        columns = _FILTER_COLUMN.findall(query)
        filters = dict(zip(columns, params))
        limit = params[len(columns)] if len(params) > len(columns) else None

        created_at = AUDIT_LOG_COLUMNS.index('created_at')
        rows = [
            row for row in self._storage['audit_logs']
            if all(row[AUDIT_LOG_COLUMNS.index(col)] == value for col, value in filters.items())
        ]
        rows.sort(key=lambda row: row[created_at], reverse=True)

        self._results = rows[:limit] if limit is not None else rows
        self._rowcount = len(self._results)

    def fetchone(self):
        if not self._results:
            return None
        return self._results[0]

    def fetchall(self) -> list:
        return self._results

    def close(self) -> None:
        pass

    @property
    def rowcount(self) -> int:
        return self._rowcount


class MockSnowflakeConnection:
    """
    Mock Snowflake connection for local development.

    Stores data in memory using a simple dictionary structure.
    Not suitable for production, but fine for local development,
    unit tests and CI.
    """

    def __init__(self) -> None:
        # In-memory storage: {table_name: [row_tuple, ...]}
        self._storage: dict[str, list[tuple]] = {
            'audit_logs': [],
        }

        logger.info("Initialized mock Snowflake connection (in-memory)")

    def cursor(self) -> MockSnowflakeCursor:
        return MockSnowflakeCursor(self._storage)

    def commit(self) -> None:
        logger.debug("Mock connection commit")

    def rollback(self) -> None:
        logger.debug("Mock connection rollback")

    def close(self) -> None:
        logger.debug("Mock connection close")


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------

@contextmanager
def create_snowflake_connection(
    config: Optional[SnowflakeConfig] = None,
    mock_connection: Optional[MockSnowflakeConnection] = None,
) -> Generator[SnowflakeConnection, None, None]:
    """
    Yield a real or mock Snowflake connection.

    Args:
        config: Snowflake configuration (required without a mock connection)
        mock_connection: Shared in-memory connection, used as-is when given
    """
    if mock_connection is not None:
        yield mock_connection
        return

    if config is None:
        raise ValueError("config is required when not in mock mode")

    with get_snowflake_connection(config) as conn:
        yield conn
