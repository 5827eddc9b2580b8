"""
Application configuration using Pydantic settings.

Configuration is loaded from environment variables with sensible defaults.
Using Pydantic's BaseSettings means we get:
- Type validation at startup (fail fast if config is wrong)
- Documentation of what's required vs optional
- Easy testing with different configurations

Mock modes enable local development without a bucket or a database.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

PDF = "application/pdf"
CSV = "text/csv"
XLS = "application/vnd.ms-excel"
XLSX = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be overridden via environment variables.
    For lists (like api_keys), use comma-separated values in env.
    """

    # API Configuration
    api_title: str = "ExamHub Storage API"
    api_version: str = "v1"
    api_keys: str = Field(
        default="dev-key-1,dev-key-2",
        description="Comma-separated API keys. Using a list enables key rotation without downtime."
    )

    # GCS Storage Configuration (S3-compatible XML API with HMAC keys)
    gcs_bucket_name: str = Field(
        default="examhub-files",
        description="Bucket holding study materials, exam papers, certificates and reports"
    )
    gcs_access_key_id: str = Field(
        default="",
        description="HMAC access key for the GCS interoperability API"
    )
    gcs_secret_access_key: str = Field(
        default="",
        description="HMAC secret for the GCS interoperability API"
    )
    gcs_endpoint_url: str = Field(
        default="https://storage.googleapis.com",
        description="XML API endpoint. Point at MinIO or S3 for local setups."
    )
    gcs_region: str = Field(
        default="auto",
        description="Region passed to the signer"
    )
    gcs_mock_mode: bool = Field(
        default=False,
        description="Use in-memory bucket instead of GCS. Enables local dev without object storage."
    )
    public_url_host: str = Field(
        default="storage.googleapis.com",
        description="Host used in permanent public URLs: https://<host>/<bucket>/<key>"
    )
    signed_url_default_hours: float = Field(
        default=1,
        description="Lifetime of signed URLs when the caller does not ask for one"
    )
    stream_chunk_size: int = Field(
        default=64 * 1024,
        description="Bytes read from the bucket per chunk when streaming files"
    )

    # Uploads
    max_upload_size_mb: int = Field(
        default=15,
        description="Maximum upload size in MB for any folder. Larger files are rejected before touching the bucket."
    )
    upload_size_limits_mb: dict[str, float] = Field(
        default_factory=lambda: {"user-uploads": 5, "reports": 15},
        description="Per-folder upload limits in MB. Capped by max_upload_size_mb."
    )
    upload_allowed_types: dict[str, list[str]] = Field(
        default_factory=lambda: {
            "user-uploads": [CSV, XLS, XLSX],
            "reports": [PDF, CSV, XLS, XLSX],
        },
        description="Declared MIME types accepted per folder. Folders not listed accept any type."
    )

    # Audit
    audit_log_dir: str = Field(
        default="logs",
        description="Directory for the append-only audit files"
    )
    security_log_filename: str = Field(
        default="security.log",
        description="Access decisions (grant, forbidden, unauthenticated)"
    )
    storage_log_filename: str = Field(
        default="storage-operations.log",
        description="Upload, delete, stream and signed URL outcomes"
    )
    audit_persist_enabled: bool = Field(
        default=False,
        description="Also write audit records to the Snowflake audit_logs table"
    )

    # Snowflake Configuration
    snowflake_account: str = Field(
        default="",
        description="Snowflake account identifier"
    )
    snowflake_user: str = Field(
        default="",
        description="Snowflake service account username"
    )
    snowflake_password: str = Field(
        default="",
        description="Snowflake service account password"
    )
    snowflake_private_key_path: Optional[str] = Field(
        default=None,
        description="Path to RSA private key file for key-pair authentication"
    )
    snowflake_private_key_base64: Optional[str] = Field(
        default=None,
        description="Base64-encoded private key (for deployment, alternative to file path)"
    )
    snowflake_database: str = Field(
        default="EXAMHUB",
        description="Snowflake database name"
    )
    snowflake_schema: str = Field(
        default="PLATFORM",
        description="Snowflake schema name"
    )
    snowflake_warehouse: str = Field(
        default="COMPUTE_WH",
        description="Snowflake warehouse for query execution"
    )
    snowflake_role: Optional[str] = Field(
        default=None,
        description="Snowflake role to use (optional)"
    )
    snowflake_mock_mode: bool = Field(
        default=False,
        description="Use in-memory mock instead of real Snowflake connection. Enables local dev without DB."
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    # CORS
    cors_origins: str = Field(
        default="http://localhost:3000",
        description="Comma-separated list of allowed CORS origins. Use * for development only."
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @property
    def api_keys_list(self) -> list[str]:
        """Parse comma-separated API keys into a list."""
        return [key.strip() for key in self.api_keys.split(",") if key.strip()]

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse comma-separated CORS origins into a list."""
        if self.cors_origins == "*":
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    def max_upload_size_bytes_for(self, folder: str) -> int:
        """Effective limit for one folder: its own limit, never above the global one."""
        limit_mb = self.upload_size_limits_mb.get(folder, self.max_upload_size_mb)
        return int(min(limit_mb, self.max_upload_size_mb) * 1024 * 1024)

    def allowed_upload_types(self, folder: str) -> Optional[list[str]]:
        """Accepted MIME types for a folder, None when any type is accepted."""
        return self.upload_allowed_types.get(folder)

    @property
    def security_log_path(self) -> Path:
        return Path(self.audit_log_dir) / self.security_log_filename

    @property
    def storage_log_path(self) -> Path:
        return Path(self.audit_log_dir) / self.storage_log_filename

    def validate_required_fields(self) -> list[str]:
        """
        Validate that required fields are set based on mock mode settings.

        Returns list of missing required fields.
        This is separate from Pydantic validation because requirements
        depend on whether we're in mock mode.
        """
        missing = []

        if not self.gcs_bucket_name:
            missing.append("GCS_BUCKET_NAME")

        # HMAC keys only required if not in mock mode
        if not self.gcs_mock_mode:
            if not self.gcs_access_key_id:
                missing.append("GCS_ACCESS_KEY_ID")
            if not self.gcs_secret_access_key:
                missing.append("GCS_SECRET_ACCESS_KEY")

        # Snowflake only required when audit rows are persisted for real
        if self.audit_persist_enabled and not self.snowflake_mock_mode:
            if not self.snowflake_account:
                missing.append("SNOWFLAKE_ACCOUNT")
            if not self.snowflake_user:
                missing.append("SNOWFLAKE_USER")
            has_key = self.snowflake_private_key_path or self.snowflake_private_key_base64
            if not self.snowflake_password and not has_key:
                missing.append("SNOWFLAKE_PASSWORD or SNOWFLAKE_PRIVATE_KEY_PATH")

        return missing


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Using lru_cache means we only load settings once per process.
    For tests, call get_settings.cache_clear() to reset.
    """
    return Settings()
