"""
HTTP tests for the gateway endpoints.

Each test builds an app around MockStorageClient (see conftest.py) and
talks to it through FastAPI's TestClient.
"""

import re

import pytest
from fastapi.testclient import TestClient

from files_gateway.core.models import ObjectStream
from files_gateway.infrastructure.storage.client import StorageError

GENERATED_KEY = re.compile(r"^uploads/\d{4}-\d{2}-\d{2}T\d{2}-\d{2}-\d{2}-\d{3}Z-(?P<name>.+)$")
ISO_MILLIS = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z$")


class UnreachableStorageClient:
    """Fails like a connection error: no HTTP status from the backend."""

    async def get_object(self, key):
        raise StorageError("Could not connect")


class BrokenStreamStorageClient:
    """Opens the object fine, then the body fails after the first chunk."""

    async def get_object(self, key):
        def body():
            yield b"abc"
            raise StorageError("Connection reset by peer")

        return ObjectStream(key=key, body=body(), content_type="text/plain")


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------

class TestHealth:

    def test_reports_bucket_and_region(self, client):
        response = client.get("/healthz")

        assert response.status_code == 200
        assert response.json() == {"ok": True, "bucket": "test-bucket", "region": "us-west-1"}

    def test_missing_bucket_is_null_not_an_error(self, unconfigured_client):
        response = unconfigured_client.get("/healthz")

        assert response.status_code == 200
        assert response.json()["bucket"] is None


# ---------------------------------------------------------------------------
# Listing
# ---------------------------------------------------------------------------

class TestList:

    def test_empty_bucket(self, client):
        response = client.get("/list")

        assert response.status_code == 200
        assert response.json() == {"files": []}

    def test_lists_objects_under_prefix(self, client, storage, put):
        put(storage, "uploads/a.txt", b"abc")
        put(storage, "elsewhere/b.txt", b"abc")

        files = client.get("/list").json()["files"]

        assert [f["key"] for f in files] == ["uploads/a.txt"]
        assert files[0]["size"] == 3
        assert ISO_MILLIS.match(files[0]["lastModified"])

    def test_files_alias(self, client, storage, put):
        put(storage, "uploads/a.txt")

        response = client.get("/files")

        assert response.status_code == 200
        assert [f["key"] for f in response.json()["files"]] == ["uploads/a.txt"]

    def test_default_limit_is_fifty(self, client, storage, put):
        for i in range(60):
            put(storage, f"uploads/{i:03d}")

        assert len(client.get("/list").json()["files"]) == 50

    def test_limit_is_capped_at_two_hundred(self, client, storage, put):
        for i in range(250):
            put(storage, f"uploads/{i:03d}")

        assert len(client.get("/list", params={"limit": 500}).json()["files"]) == 200

    def test_explicit_limit(self, client, storage, put):
        for i in range(5):
            put(storage, f"uploads/{i}")

        assert len(client.get("/list", params={"limit": 3}).json()["files"]) == 3

    @pytest.mark.parametrize("limit", ["0", "-10"])
    def test_zero_or_negative_limit_lists_nothing(self, client, storage, put, limit):
        put(storage, "uploads/a")

        response = client.get("/list", params={"limit": limit})

        assert response.status_code == 200
        assert response.json() == {"files": []}

    def test_non_numeric_limit_uses_default(self, client, storage, put):
        put(storage, "uploads/a")

        response = client.get("/list", params={"limit": "many"})

        assert response.status_code == 200
        assert len(response.json()["files"]) == 1

    def test_missing_bucket_is_config_error(self, unconfigured_client):
        response = unconfigured_client.get("/list")

        assert response.status_code == 500
        assert response.json() == {"ok": False, "error": "S3_BUCKET is not configured"}

    def test_backend_failure_is_500_with_message(self, failing_client):
        response = failing_client.get("/list")

        assert response.status_code == 500
        assert response.json() == {"ok": False, "error": "Access Denied"}


# ---------------------------------------------------------------------------
# Upload
# ---------------------------------------------------------------------------

class TestUpload:

    def test_upload_generates_timestamped_key(self, client, storage):
        response = client.post(
            "/upload",
            files={"file": ("my report!.pdf", b"%PDF-1.7", "application/pdf")},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["ok"] is True
        assert body["file"]["size"] == 8
        assert body["file"]["contentType"] == "application/pdf"
        match = GENERATED_KEY.match(body["file"]["key"])
        assert match and match.group("name") == "my_report_.pdf"

    def test_explicit_key_is_trimmed_and_not_prefixed(self, client):
        response = client.post(
            "/upload",
            files={"file": ("a.txt", b"hello", "text/plain")},
            data={"key": "  shared/notes.txt  "},
        )

        assert response.status_code == 200
        assert response.json()["file"]["key"] == "shared/notes.txt"

    def test_blank_explicit_key_is_ignored(self, client):
        response = client.post(
            "/upload",
            files={"file": ("a.txt", b"hello", "text/plain")},
            data={"key": "   "},
        )

        assert GENERATED_KEY.match(response.json()["file"]["key"])

    def test_unknown_content_type_defaults_to_octet_stream(self, client):
        response = client.post("/upload", files={"file": ("blob.bin", b"\x00\x01")})

        assert response.json()["file"]["contentType"] == "application/octet-stream"

    def test_uploaded_file_is_listed(self, client):
        key = client.post("/upload", files={"file": ("a.txt", b"hello", "text/plain")}).json()["file"]["key"]

        files = client.get("/list").json()["files"]

        assert [(f["key"], f["size"]) for f in files] == [(key, 5)]

    def test_missing_file_is_400(self, client):
        response = client.post("/upload", data={"key": "x.txt"})

        assert response.status_code == 400
        assert response.json() == {"ok": False, "error": "File is required"}

    def test_empty_request_is_400(self, client):
        response = client.post("/upload")

        assert response.status_code == 400
        assert response.json()["ok"] is False

    def test_oversized_upload_is_rejected_by_content_length(self, client, storage):
        data = b"x" * (1024 * 1024 + 100 * 1024)

        response = client.post("/upload", files={"file": ("big.bin", data)})

        assert response.status_code == 413
        assert response.json() == {"ok": False, "error": "File too large. Maximum size: 1MB"}
        assert storage._objects == {}

    def test_file_just_over_cap_is_rejected(self, client, storage):
        """Within the multipart allowance, so the route's exact check rejects it."""
        data = b"x" * (1024 * 1024 + 10)

        response = client.post("/upload", files={"file": ("big.bin", data)})

        assert response.status_code == 413
        assert response.json()["error"] == "File too large. Maximum size: 1MB"
        assert storage._objects == {}

    def test_file_at_cap_is_accepted(self, client):
        data = b"x" * (1024 * 1024)

        response = client.post("/upload", files={"file": ("exact.bin", data)})

        assert response.status_code == 200
        assert response.json()["file"]["size"] == 1024 * 1024

    def test_missing_bucket_is_config_error(self, unconfigured_client):
        response = unconfigured_client.post("/upload", files={"file": ("a.txt", b"x")})

        assert response.status_code == 500
        assert response.json() == {"ok": False, "error": "S3_BUCKET is not configured"}

    def test_backend_failure_is_500_with_message(self, failing_client):
        response = failing_client.post("/upload", files={"file": ("a.txt", b"x")})

        assert response.status_code == 500
        assert response.json() == {"ok": False, "error": "Access Denied"}


# ---------------------------------------------------------------------------
# Download
# ---------------------------------------------------------------------------

class TestDownload:

    def test_round_trip_preserves_bytes_and_content_type(self, client):
        payload = bytes(range(256)) * 512
        key = client.post(
            "/upload",
            files={"file": ("data.csv", payload, "text/csv")},
        ).json()["file"]["key"]

        response = client.get("/download", params={"key": key})

        assert response.status_code == 200
        assert response.content == payload
        assert response.headers["content-type"] == "text/csv"
        assert response.headers["content-length"] == str(len(payload))
        assert response.headers["content-disposition"] == f'attachment; filename="{key.rsplit("/", 1)[-1]}"'

    def test_explicit_key_round_trip(self, client):
        client.post(
            "/upload",
            files={"file": ("ignored.txt", b"hello", "text/plain")},
            data={"key": "docs/readme.txt"},
        )

        response = client.get("/download", params={"key": "docs/readme.txt"})

        assert response.content == b"hello"
        assert response.headers["content-type"] == "text/plain"
        assert response.headers["content-disposition"] == 'attachment; filename="readme.txt"'

    def test_percent_encoded_key_is_decoded(self, client, storage, put):
        put(storage, "folder/a b.txt", b"spaced", "text/plain")

        response = client.get("/download", params={"key": "folder%2Fa%20b.txt"})

        assert response.status_code == 200
        assert response.content == b"spaced"

    def test_key_is_trimmed(self, client, storage, put):
        put(storage, "a.txt", b"abc")

        response = client.get("/download", params={"key": "  a.txt "})

        assert response.content == b"abc"

    @pytest.mark.parametrize("params", [{}, {"key": ""}, {"key": "   "}])
    def test_missing_key_is_400(self, client, params):
        response = client.get("/download", params=params)

        assert response.status_code == 400
        assert response.json() == {"ok": False, "error": "key query param is required"}

    def test_unknown_key_passes_not_found_through(self, client):
        response = client.get("/download", params={"key": "nope.txt"})

        assert response.status_code == 404
        assert response.json() == {"ok": False, "error": "The specified key does not exist."}

    def test_backend_status_is_passed_through(self, failing_client):
        response = failing_client.get("/download", params={"key": "a.txt"})

        assert response.status_code == 403
        assert response.json() == {"ok": False, "error": "Access Denied"}

    def test_backend_failure_without_status_is_500(self, make_app):
        client = TestClient(make_app(storage_client=UnreachableStorageClient()))

        response = client.get("/download", params={"key": "a.txt"})

        assert response.status_code == 500
        assert response.json() == {"ok": False, "error": "Could not connect"}

    def test_key_with_newline_gets_a_valid_header(self, client, storage, put):
        put(storage, "dir/a\nb.txt", b"multi", "text/plain")

        response = client.get("/download", params={"key": "dir%2Fa%0Ab.txt"})

        assert response.status_code == 200
        assert response.content == b"multi"
        assert response.headers["content-disposition"] == 'attachment; filename="a_b.txt"'

    def test_failure_mid_stream_truncates_instead_of_json(self, make_app):
        """Once bytes are sent the status stays 200 and the body is cut short."""
        storage = BrokenStreamStorageClient()
        client = TestClient(make_app(storage_client=storage), raise_server_exceptions=False)

        response = client.get("/download", params={"key": "a.txt"})

        assert response.status_code == 200
        assert response.headers["content-type"] == "text/plain"
        assert response.content == b"abc"

    def test_failure_mid_stream_propagates_the_storage_error(self, make_app):
        client = TestClient(make_app(storage_client=BrokenStreamStorageClient()))

        with pytest.raises(Exception) as exc_info:
            client.get("/download", params={"key": "a.txt"})

        assert "Connection reset by peer" in repr(exc_info.value)

    def test_missing_bucket_is_config_error(self, unconfigured_client):
        response = unconfigured_client.get("/download", params={"key": "a.txt"})

        assert response.status_code == 500
        assert response.json() == {"ok": False, "error": "S3_BUCKET is not configured"}


# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------

class TestApplication:

    def test_unknown_route_uses_error_envelope(self, client):
        response = client.get("/nope")

        assert response.status_code == 404
        assert response.json() == {"ok": False, "error": "Not Found"}

    def test_cors_allows_any_origin_by_default(self, client):
        response = client.get("/healthz", headers={"Origin": "https://app.example"})

        assert response.headers["access-control-allow-origin"] == "*"

    def test_lifespan_builds_mock_client_in_mock_mode(self, make_app):
        app = make_app(s3_mock_mode=True)

        with TestClient(app) as test_client:
            key = test_client.post(
                "/upload",
                files={"file": ("a.txt", b"hello", "text/plain")},
            ).json()["file"]["key"]

            assert test_client.get("/download", params={"key": key}).content == b"hello"
