"""
API tests for the file, audit and health endpoints.

The app runs with its real lifespan against the in-memory bucket and
Snowflake connection; audit files go to a temp directory.
"""

import json
from urllib.parse import quote

import pytest
from fastapi.testclient import TestClient

from src.api.dependencies import PlatformServices
from src.main import create_app


def _services(client) -> PlatformServices:
    return client.app.state.services


def _upload(
    client,
    headers,
    folder="reports",
    filename="my report.pdf",
    data=b"%PDF-1.7 test",
    content_type="application/pdf",
):
    return client.post(
        f"/api/v1/files/{folder}",
        headers=headers,
        files={"file": (filename, data, content_type)},
    )


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------

class TestHealth:

    def test_liveness(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["details"]["mock_mode"]["gcs"] is True

    def test_readiness_in_mock_mode(self, client):
        response = client.get("/health/ready")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ready"
        assert {check["name"] for check in body["checks"]} == {"configuration", "bucket"}

    def test_readiness_reports_unreachable_bucket(self, client, monkeypatch):
        async def unreachable(key):
            raise ConnectionError("bucket unreachable")

        monkeypatch.setattr(_services(client).bucket_client, "exists", unreachable)

        response = client.get("/health/ready")

        assert response.status_code == 503
        assert response.json()["status"] == "not_ready"


# ---------------------------------------------------------------------------
# Authentication boundary
# ---------------------------------------------------------------------------

class TestAccess:
    """Gate outcomes as seen over HTTP."""

    def test_api_key_required(self, client):
        response = client.get("/api/v1/files/reports/a.pdf/public-url")
        assert response.status_code == 403

    def test_no_principal_is_auth_required(self, client):
        response = _upload(client, {"X-API-Key": "test-key"})

        assert response.status_code == 401
        assert response.json() == {
            "status": "error",
            "message": "Authentication required",
            "code": "AUTH_REQUIRED",
        }

    def test_student_is_forbidden_and_nothing_is_stored(self, client, auth_headers):
        response = _upload(client, auth_headers(user_id="2", role="student"))

        assert response.status_code == 403
        body = response.json()
        assert body["code"] == "FORBIDDEN"
        assert body["details"].startswith("Required role: ")
        assert _services(client).bucket_client.objects == {}

    def test_decisions_are_written_to_security_log(self, client, auth_headers, settings):
        _upload(client, {"X-API-Key": "test-key"})
        _upload(client, auth_headers(role="student"))
        _upload(client, auth_headers(role="exam_admin"))

        lines = settings.security_log_path.read_text(encoding="utf-8").splitlines()
        events = [json.loads(line)["event"] for line in lines]
        assert events == [
            "Unauthorized access attempt",
            "Forbidden access attempt",
            "Admin access granted",
        ]

    def test_audit_failure_denies_request(self, client, auth_headers, failing_sink):
        _services(client).security_audit._sinks.append(failing_sink)

        response = _upload(client, auth_headers(role="admin"))

        assert response.status_code == 500
        assert response.json()["code"] == "INTERNAL_SERVER_ERROR"
        assert _services(client).bucket_client.objects == {}


# ---------------------------------------------------------------------------
# Files
# ---------------------------------------------------------------------------

class TestFiles:

    def test_upload_then_stream(self, client, auth_headers):
        upload = _upload(client, auth_headers())

        assert upload.status_code == 200
        url = upload.json()["url"]
        assert url.startswith("https://storage.googleapis.com/exam-bucket/reports/")
        assert url.endswith("-my-report.pdf")

        stored_name = url.rsplit("/", 1)[1]
        stream = client.get(f"/api/v1/files/reports/{stored_name}", headers=auth_headers(role="student"))

        assert stream.status_code == 200
        assert stream.content == b"%PDF-1.7 test"
        assert stream.headers["content-type"] == "application/pdf"
        assert stream.headers["content-disposition"] == f'inline; filename="{stored_name}"'

    def test_upload_without_file_is_a_no_op(self, client, auth_headers):
        response = client.post("/api/v1/files/reports", headers=auth_headers())

        assert response.status_code == 200
        assert response.json()["url"] is None
        assert _services(client).bucket_client.objects == {}

    def test_upload_too_large(self, client, auth_headers):
        response = _upload(client, auth_headers(), data=b"x" * (1024 * 1024 + 1))

        assert response.status_code == 413
        assert response.json()["code"] == "FILE_TOO_LARGE"

    def test_upload_failure_is_storage_error(self, client, auth_headers, monkeypatch):
        async def refuse(key, data, content_type):
            raise ConnectionError("bucket unavailable")

        monkeypatch.setattr(_services(client).bucket_client, "put_object", refuse)

        response = _upload(client, auth_headers())

        assert response.status_code == 500
        body = response.json()
        assert body["code"] == "STORAGE_ERROR"
        assert body["message"] == "File upload failed"
        assert "bucket unavailable" in body["details"]

    def test_unrecorded_upload_is_storage_error(self, client, auth_headers, failing_sink):
        _services(client).storage_audit._sinks.append(failing_sink)

        response = _upload(client, auth_headers())

        assert response.status_code == 500
        assert response.json()["code"] == "STORAGE_ERROR"
        assert _services(client).bucket_client.objects == {}

    def test_non_latin_filename_streams(self, client, auth_headers):
        upload = _upload(client, auth_headers(), filename="报告 final.pdf")
        stored_name = upload.json()["url"].rsplit("/", 1)[1]

        stream = client.get(f"/api/v1/files/reports/{stored_name}", headers=auth_headers())

        assert stream.status_code == 200
        assert stream.content == b"%PDF-1.7 test"
        disposition = stream.headers["content-disposition"]
        assert disposition.startswith('inline; filename="')
        assert f"filename*=UTF-8''{quote(stored_name, safe='')}" in disposition

    def test_folder_rejects_unlisted_type(self, client, auth_headers):
        response = _upload(client, auth_headers(), folder="user-uploads")

        assert response.status_code == 400
        body = response.json()
        assert body["code"] == "INVALID_FILE_TYPE"
        assert "text/csv" in body["details"]
        assert _services(client).bucket_client.objects == {}

    def test_folder_accepts_listed_type(self, client, auth_headers):
        response = _upload(
            client,
            auth_headers(),
            folder="user-uploads",
            filename="marks.csv",
            data=b"id,mark\n1,72\n",
            content_type="text/csv",
        )

        assert response.status_code == 200
        assert "/user-uploads/" in response.json()["url"]

    def test_folder_without_type_rules_accepts_anything(self, client, auth_headers):
        response = _upload(client, auth_headers(), folder="videos", filename="clip.mp4", content_type="video/mp4")
        assert response.status_code == 200

    def test_folder_size_limit(self, settings, auth_headers):
        tight = settings.model_copy(
            update={"max_upload_size_mb": 15, "upload_size_limits_mb": {"user-uploads": 0.001}}
        )

        with TestClient(create_app(tight)) as client:
            response = _upload(
                client,
                auth_headers(),
                folder="user-uploads",
                filename="marks.csv",
                data=b"x" * 2000,
                content_type="text/csv",
            )

            assert response.status_code == 413
            assert response.json()["code"] == "FILE_TOO_LARGE"
            assert _services(client).bucket_client.objects == {}

    def test_unknown_folder_is_rejected(self, client, auth_headers):
        response = client.get("/api/v1/files/secrets/a.pdf/public-url", headers=auth_headers())
        assert response.status_code == 422

    def test_stream_missing_file(self, client, auth_headers):
        response = client.get("/api/v1/files/reports/ghost.pdf", headers=auth_headers())

        assert response.status_code == 404
        assert response.json()["code"] == "FILE_NOT_FOUND"

    def test_delete(self, client, auth_headers):
        stored_name = _upload(client, auth_headers()).json()["url"].rsplit("/", 1)[1]

        response = client.delete(f"/api/v1/files/reports/{stored_name}", headers=auth_headers())

        assert response.status_code == 200
        assert _services(client).bucket_client.deleted_keys == [f"reports/{stored_name}"]

    def test_delete_missing_file(self, client, auth_headers):
        response = client.delete("/api/v1/files/reports/ghost.pdf", headers=auth_headers())

        assert response.status_code == 404
        assert response.json()["code"] == "FILE_NOT_FOUND"
        assert _services(client).bucket_client.deleted_keys == []

    def test_delete_requires_admin(self, client, auth_headers):
        response = client.delete("/api/v1/files/reports/a.pdf", headers=auth_headers(role="student"))
        assert response.status_code == 403

    def test_signed_url_uses_default_lifetime(self, client, auth_headers):
        response = client.get("/api/v1/files/reports/x.pdf/signed-url", headers=auth_headers())

        assert response.status_code == 200
        body = response.json()
        assert body["expires_in_hours"] == 1
        assert body["url"].startswith("mock://storage/exam-bucket/reports/x.pdf")

    def test_signed_url_custom_lifetime(self, client, auth_headers):
        response = client.get(
            "/api/v1/files/reports/x.pdf/signed-url",
            params={"expires_in_hours": 2},
            headers=auth_headers(),
        )
        assert response.json()["expires_in_hours"] == 2

    @pytest.mark.parametrize("hours", [0, -1, 500])
    def test_signed_url_lifetime_bounds(self, client, auth_headers, hours):
        response = client.get(
            "/api/v1/files/reports/x.pdf/signed-url",
            params={"expires_in_hours": hours},
            headers=auth_headers(),
        )
        assert response.status_code == 422

    def test_public_url(self, client, auth_headers):
        response = client.get("/api/v1/files/exam-papers/paper.pdf/public-url", headers=auth_headers())

        assert response.status_code == 200
        assert response.json()["url"] == "https://storage.googleapis.com/exam-bucket/exam-papers/paper.pdf"

    def test_storage_operations_are_logged(self, client, auth_headers, settings):
        _upload(client, auth_headers())
        client.delete("/api/v1/files/reports/ghost.pdf", headers=auth_headers())

        lines = settings.storage_log_path.read_text(encoding="utf-8").splitlines()
        events = [json.loads(line)["event"] for line in lines]
        assert events == ["File uploaded successfully", "File not found"]


# ---------------------------------------------------------------------------
# Audit trail
# ---------------------------------------------------------------------------

class TestAuditEndpoint:

    def test_master_admin_only(self, client, auth_headers):
        response = client.get("/api/v1/audit", headers=auth_headers(role="admin"))

        assert response.status_code == 403
        assert response.json()["details"] == "Required role: master_admin or superadmin"

    def test_lists_persisted_records(self, client, auth_headers):
        _upload(client, auth_headers(user_id="u-42", role="exam_admin"))

        response = client.get(
            "/api/v1/audit",
            params={"user_id": "u-42"},
            headers=auth_headers(user_id="root", role="master_admin"),
        )

        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 1
        entry = body["entries"][0]
        assert entry["event"] == "Admin access granted"
        assert entry["action"] == "POST /api/v1/files/reports"

    def test_limit_bounds(self, client, auth_headers):
        response = client.get(
            "/api/v1/audit",
            params={"limit": 0},
            headers=auth_headers(role="superadmin"),
        )
        assert response.status_code == 422
