"""
Audit record destinations (JSON lines files, Snowflake table).
"""

from .sinks import FileAuditSink, RepositoryAuditSink

__all__ = ["FileAuditSink", "RepositoryAuditSink"]
