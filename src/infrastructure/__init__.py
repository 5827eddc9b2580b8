"""
Infrastructure layer - external service integrations.

Each subdirectory wraps an external dependency:
- storage: Object storage (GCS through its S3-compatible API)
- snowflake: Audit record persistence
- audit: Audit sinks (JSON-lines files, Snowflake)

These wrappers translate between external formats and our domain models.
"""
