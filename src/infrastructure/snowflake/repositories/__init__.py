"""
Repository pattern implementations for Snowflake.

Repositories translate between domain models and database representations.
"""

from .audit_logs import AuditLogRepository

__all__ = ["AuditLogRepository"]
