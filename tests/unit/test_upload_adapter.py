"""
Unit tests for the upload adapter and the per-folder upload rules.

The adapter is called directly with a bare Starlette request, so the
tests can see whether the body was ever read.
"""

import pytest
from fastapi import UploadFile
from starlette.datastructures import Headers
from starlette.requests import Request

from src.api.dependencies import create_services, upload_via_request
from src.api.errors import ApiError


class UnreadableFile:
    """File object that counts reads and refuses them."""

    def __init__(self) -> None:
        self.reads = 0

    def read(self, size: int = -1) -> bytes:
        self.reads += 1
        raise AssertionError("upload body was read")

    def seek(self, offset: int, whence: int = 0) -> int:
        return 0

    def close(self) -> None:
        pass


def _request(folder: str) -> Request:
    return Request({
        "type": "http",
        "method": "POST",
        "path": f"/api/v1/files/{folder}",
        "path_params": {"folder": folder},
        "query_string": b"",
        "headers": [],
    })


def _upload_file(body, size: int, filename: str, content_type: str) -> UploadFile:
    return UploadFile(
        file=body,
        size=size,
        filename=filename,
        headers=Headers({"content-type": content_type}),
    )


@pytest.fixture
def services(settings):
    services = create_services(settings)
    yield services
    services.close()


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

class TestUploadRules:
    """Per-folder limits and types from settings."""

    def test_folder_limit_is_capped_by_global_limit(self, settings):
        assert settings.max_upload_size_bytes_for("reports") == 1024 * 1024

    def test_folder_limit_below_global(self, settings):
        roomy = settings.model_copy(update={"max_upload_size_mb": 15})
        assert roomy.max_upload_size_bytes_for("user-uploads") == 5 * 1024 * 1024
        assert roomy.max_upload_size_bytes_for("reports") == 15 * 1024 * 1024

    def test_unlisted_folder_uses_global_limit(self, settings):
        assert settings.max_upload_size_bytes_for("videos") == 1024 * 1024

    def test_allowed_types(self, settings):
        assert "application/pdf" in settings.allowed_upload_types("reports")
        assert "application/pdf" not in settings.allowed_upload_types("user-uploads")
        assert "text/csv" in settings.allowed_upload_types("user-uploads")
        assert settings.allowed_upload_types("videos") is None


# ---------------------------------------------------------------------------
# Adapter
# ---------------------------------------------------------------------------

class TestUploadAdapter:
    """Rejections happen before the body is read or the bucket is touched."""

    async def test_declared_oversize_is_rejected_unread(self, services):
        body = UnreadableFile()
        upload = upload_via_request()

        with pytest.raises(ApiError) as exc_info:
            await upload(_request("reports"), services, _upload_file(body, 20 * 1024 * 1024, "big.pdf", "application/pdf"))

        assert exc_info.value.status_code == 413
        assert exc_info.value.code == "FILE_TOO_LARGE"
        assert body.reads == 0
        assert services.bucket_client.objects == {}

    async def test_wrong_type_is_rejected_unread(self, services):
        body = UnreadableFile()
        upload = upload_via_request()

        with pytest.raises(ApiError) as exc_info:
            await upload(_request("user-uploads"), services, _upload_file(body, 10, "paper.pdf", "application/pdf"))

        assert exc_info.value.status_code == 400
        assert exc_info.value.code == "INVALID_FILE_TYPE"
        assert body.reads == 0
        assert services.bucket_client.objects == {}

    async def test_no_file_is_a_no_op(self, services):
        upload = upload_via_request()
        assert await upload(_request("reports"), services, None) is None
