"""
HTTP tests for GET /health and request logging.
"""
import json
import logging

from fastapi.testclient import TestClient

from contact_converter.config import Settings
from contact_converter.logging_config import JSONFormatter, mask_phone, user_id_var
from contact_converter.main import create_app
from contact_converter.middleware.logging_middleware import _redact


class TestHealth:
    """Test the health endpoint."""

    def test_healthy(self, client):
        body = client.get("/health").json()
        assert body["status"] == "healthy"
        assert body["store"] == {"backend": "memory", "redis_configured": False}
        assert body["output_format"] == "csv"
        assert body["template_enabled"] is False

    def test_degraded_when_redis_lost(self, make_context):
        ctx = make_context(Settings(redis_url="redis://cache:6379/0"))
        body = TestClient(create_app(context=ctx)).get("/health").json()
        assert body["status"] == "degraded"


class TestSettings:
    """Test Settings validation."""

    def test_ttl_clamped(self):
        assert Settings(file_ttl_seconds=60).file_ttl_seconds == 900
        assert Settings(file_ttl_seconds=99999).file_ttl_seconds == 7200

    def test_base_url_trailing_slash(self):
        assert Settings(public_base_url="https://x.example/").public_base_url == "https://x.example"

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("OUTPUT_FORMAT", "CSV")
        monkeypatch.setenv("ALLOWED_NUMBERS", "+2348000000001, +2348000000002")
        monkeypatch.setenv("CSV_BOM", "false")
        settings = Settings.from_env()
        assert settings.output_format == "csv"
        assert settings.allowed_numbers == ["+2348000000001", "+2348000000002"]
        assert settings.csv_bom is False


class TestLogging:
    """Test log formatting and redaction."""

    def test_mask_phone(self):
        assert mask_phone("whatsapp:+2348000000001") == "***0001"
        assert mask_phone("") == ""

    def test_sender_masked_in_json(self):
        token = user_id_var.set("+2348123456789")
        try:
            record = logging.LogRecord("test", logging.INFO, "", 0, "hello", None, None)
            data = json.loads(JSONFormatter().format(record))
        finally:
            user_id_var.reset(token)
        assert data["user"] == "***6789"
        assert "8123456789" not in json.dumps(data)

    def test_download_paths_redacted(self):
        assert _redact("/download/3f1c0c1e-0000-4000-8000-000000000000") == "/download/<id>"
        assert _redact("/files/abc.xlsx") == "/files/<id>"
        assert _redact("/webhook") == "/webhook"
