"""
Shared fixtures.

Everything runs against the in-memory bucket, the in-memory Snowflake
connection and temp-dir audit files. No cloud credentials needed.
"""

import pytest
from fastapi.testclient import TestClient

from src.config.settings import Settings
from src.core.access import AccessGate
from src.core.audit import AuditLog, MemoryAuditSink
from src.core.storage import ObjectStore
from src.infrastructure.storage import MockBucketClient
from src.main import create_app

API_KEY = "test-key"


class FailingAuditSink:
    """Sink whose writes always fail, like a full disk."""

    def __init__(self) -> None:
        self.attempts = 0

    def emit(self, record) -> None:
        self.attempts += 1
        raise OSError("No space left on device")

    def close(self) -> None:
        pass


@pytest.fixture
def failing_sink() -> FailingAuditSink:
    return FailingAuditSink()


@pytest.fixture
def security_sink() -> MemoryAuditSink:
    return MemoryAuditSink()


@pytest.fixture
def storage_sink() -> MemoryAuditSink:
    return MemoryAuditSink()


@pytest.fixture
def gate(security_sink) -> AccessGate:
    return AccessGate(AuditLog("security", [security_sink]))


@pytest.fixture
def bucket() -> MockBucketClient:
    return MockBucketClient(bucket_name="exam-bucket")


@pytest.fixture
def store(bucket, storage_sink) -> ObjectStore:
    return ObjectStore(bucket, AuditLog("storage", [storage_sink]), chunk_size=4)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        api_keys=API_KEY,
        gcs_bucket_name="exam-bucket",
        gcs_mock_mode=True,
        snowflake_mock_mode=True,
        audit_persist_enabled=True,
        audit_log_dir=str(tmp_path / "logs"),
        max_upload_size_mb=1,
    )


@pytest.fixture
def client(settings):
    """TestClient with the lifespan running, so app.state.services exists."""
    app = create_app(settings)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def auth_headers():
    """Build request headers for a user forwarded by the auth layer."""

    def _headers(user_id: str = "u-1", role: str = "admin") -> dict[str, str]:
        return {"X-API-Key": API_KEY, "X-User-Id": user_id, "X-User-Role": role}

    return _headers
