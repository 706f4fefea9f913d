"""
Tests for the error taxonomy and startup logging
"""
import logging

import pytest
from fastapi import status
from fastapi.testclient import TestClient

from core.config import get_settings
from core.errors import (
    DuplicateFingerprint,
    ErrorKind,
    IndexUnavailable,
    NotFound,
    PayloadTooLarge,
    ServiceError,
    StoreUnavailable,
)
from core.lifespan import _log_setting
from main import app


class TestServiceErrors:
    """Kinds, statuses and messages of service errors"""

    @pytest.mark.parametrize(
        "error, kind, status_code",
        [
            (PayloadTooLarge(), ErrorKind.PAYLOAD_TOO_LARGE, status.HTTP_400_BAD_REQUEST),
            (StoreUnavailable(), ErrorKind.STORE_UNAVAILABLE, status.HTTP_500_INTERNAL_SERVER_ERROR),
            (IndexUnavailable(), ErrorKind.INDEX_UNAVAILABLE, status.HTTP_500_INTERNAL_SERVER_ERROR),
            (DuplicateFingerprint(), ErrorKind.DUPLICATE_FINGERPRINT, status.HTTP_409_CONFLICT),
            (NotFound(), ErrorKind.NOT_FOUND, status.HTTP_404_NOT_FOUND),
        ],
    )
    def test_kind_and_status(self, error: ServiceError, kind: ErrorKind, status_code: int):
        assert error.kind == kind
        assert error.status_code == status_code

    def test_detail_is_separate_from_public_message(self):
        error = StoreUnavailable(detail="S3 error AccessDenied: Access Denied")

        assert error.public_message == "Internal Server Error"
        assert error.detail == "S3 error AccessDenied: Access Denied"
        assert str(error) == error.detail

    def test_public_message_override(self):
        error = NotFound(public_message="Gone")
        assert error.public_message == "Gone"
        assert NotFound().public_message == "File not found"


class TestErrorLogging:
    """Operator diagnostics depend on the runtime posture"""

    def test_detail_logged_outside_production(self, client, mock_s3_client, caplog, monkeypatch):
        monkeypatch.setenv("ENVIRONMENT", "development")
        get_settings.cache_clear()
        mock_s3_client.simulate_error("AccessDenied")

        with caplog.at_level(logging.INFO):
            response = client.post("/files/upload", files={"file": ("a.txt", b"abc", "text/plain")})

        get_settings.cache_clear()
        assert response.status_code == 500
        assert "S3 error AccessDenied" in caplog.text

    def test_detail_hidden_in_production(self, client, mock_s3_client, caplog, monkeypatch):
        monkeypatch.setenv("ENVIRONMENT", "production")
        get_settings.cache_clear()
        mock_s3_client.simulate_error("AccessDenied")

        with caplog.at_level(logging.INFO):
            response = client.post("/files/upload", files={"file": ("a.txt", b"abc", "text/plain")})

        get_settings.cache_clear()
        assert response.status_code == 500
        assert "store_unavailable" in caplog.text
        assert "S3 error AccessDenied" not in caplog.text

    @pytest.mark.parametrize("environment, detail_logged", [("development", True), ("production", False)])
    def test_unexpected_error_logging(
        self, client, mock_s3_client, caplog, monkeypatch, environment, detail_logged
    ):
        monkeypatch.setenv("ENVIRONMENT", environment)
        get_settings.cache_clear()

        def crash(bucket, key):
            raise RuntimeError("socket pool exhausted")

        mock_s3_client.before_upload = crash
        raising_client = TestClient(app, raise_server_exceptions=False)

        with caplog.at_level(logging.INFO):
            response = raising_client.post(
                "/files/upload", files={"file": ("a.txt", b"abc", "text/plain")}
            )

        get_settings.cache_clear()
        assert response.json() == {"status": 500, "error": "Internal Server Error"}
        assert "RuntimeError" in caplog.text
        assert ("socket pool exhausted" in caplog.text) is detail_logged


class TestSettingsLogging:
    """Startup logging masks secrets"""

    def test_masks_secrets(self, caplog):
        with caplog.at_level(logging.INFO):
            _log_setting("AWS_SECRET_ACCESS_KEY", "abc123")
            _log_setting("SQLALCHEMY_DATABASE_URI", "postgresql://svc:hunter2@db/files")
            _log_setting("S3_BUCKET", "uploads")

        assert "abc123" not in caplog.text
        assert "hunter2" not in caplog.text
        assert "postgresql://svc:*****@db/files" in caplog.text
        assert "S3_BUCKET: uploads" in caplog.text
