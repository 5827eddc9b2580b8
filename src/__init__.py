"""
ExamHub Storage - file storage and access control for the exam platform.

This package contains the complete application:
- core: Framework-agnostic access gate, object store and audit log
- infrastructure: Bucket client, Snowflake persistence, audit sinks
- api: FastAPI routes and dependencies
- config: Application configuration
"""

__version__ = "0.1.0"
