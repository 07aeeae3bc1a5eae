"""
HTTP tests for the download endpoints.
"""
import asyncio
import uuid

import pytest
from fastapi.testclient import TestClient

from contact_converter.config import Settings
from contact_converter.main import create_app
from contact_converter.models import Contact

OWNER = "+2348000000001"
CONTACTS = [Contact(name="John Doe", mobile="+2348123456789")]
UTF8_BOM = b"\xef\xbb\xbf"


def stored(ctx, **kwargs):
    return asyncio.run(ctx.artifacts.create(OWNER, CONTACTS, **kwargs))


class TestDownload:
    """Test GET /download/{id}."""

    def test_unknown_id(self, client):
        response = client.get(f"/download/{uuid.uuid4()}")
        assert response.status_code == 404
        assert "File not found" in response.text
        assert response.headers["content-type"].startswith("text/html")

    def test_malformed_id(self, client):
        assert client.get("/download/not-a-uuid").status_code == 404

    def test_csv_download(self, client, ctx):
        artifact_id, artifact = stored(ctx)
        response = client.get(f"/download/{artifact_id}")
        assert response.status_code == 200
        assert response.content == b"name,mobile,email,passes\nJohn Doe,+2348123456789,,1"
        assert response.headers["content-type"].startswith("text/csv")
        assert f'filename="{artifact.filename}"' in response.headers["content-disposition"]
        assert "no-store" in response.headers["cache-control"]

    def test_suffix_accepted(self, client, ctx):
        artifact_id, _ = stored(ctx)
        assert client.get(f"/download/{artifact_id}.csv").status_code == 200

    def test_expired(self, client, ctx, clock):
        artifact_id, _ = stored(ctx)
        clock.advance(ctx.settings.file_ttl_seconds + 1)
        assert client.get(f"/download/{artifact_id}").status_code == 404

    def test_repeat_downloads_allowed(self, client, ctx):
        artifact_id, _ = stored(ctx)
        assert client.get(f"/download/{artifact_id}").status_code == 200
        assert client.get(f"/download/{artifact_id}").status_code == 200


class TestPasswordProtection:
    """Test password-protected downloads."""

    def test_password_page(self, client, ctx):
        artifact_id, _ = stored(ctx, with_password=True)
        response = client.get(f"/download/{artifact_id}")
        assert response.status_code == 200
        assert "Enter the password" in response.text
        assert "name,mobile" not in response.text

    def test_wrong_password(self, client, ctx):
        artifact_id, _ = stored(ctx, with_password=True)
        response = client.get(f"/download/{artifact_id}", params={"p": "000000x"})
        assert "That password is incorrect." in response.text

    def test_right_password(self, client, ctx):
        artifact_id, artifact = stored(ctx, with_password=True)
        response = client.get(f"/download/{artifact_id}", params={"p": artifact.password})
        assert response.content.startswith(b"name,mobile")


class TestMediaFile:
    """Test GET/HEAD /files/{id}."""

    @pytest.fixture
    def xlsx_ctx(self, make_context):
        return make_context(Settings(output_format="xlsx"))

    def test_get_xlsx(self, xlsx_ctx):
        artifact_id, artifact = stored(xlsx_ctx)
        response = TestClient(create_app(context=xlsx_ctx)).get(f"/files/{artifact_id}.xlsx")
        assert response.status_code == 200
        assert response.content == artifact.content
        assert "spreadsheetml" in response.headers["content-type"]

    def test_head_has_length_without_body(self, xlsx_ctx):
        artifact_id, artifact = stored(xlsx_ctx)
        response = TestClient(create_app(context=xlsx_ctx)).head(f"/files/{artifact_id}.xlsx")
        assert response.status_code == 200
        assert response.content == b""
        assert response.headers["content-length"] == str(len(artifact.content))

    def test_unknown_media_file(self, client):
        assert client.head(f"/files/{uuid.uuid4()}.xlsx").status_code == 404


class TestCsvBom:
    """Test the UTF-8 byte-order mark on CSV downloads."""

    def test_bom_present_once(self, make_context):
        ctx = make_context(Settings(output_format="csv", csv_bom=True))
        artifact_id, _ = stored(ctx)
        response = TestClient(create_app(context=ctx)).get(f"/download/{artifact_id}")
        assert response.content.startswith(UTF8_BOM + b"name,")

    def test_bom_added_to_stored_csv_without_one(self, make_context):
        plain = make_context(Settings(output_format="csv", csv_bom=False))
        artifact_id, _ = stored(plain)
        with_bom = make_context(Settings(output_format="csv", csv_bom=True))
        response = TestClient(create_app(context=with_bom)).get(f"/download/{artifact_id}")
        assert response.content.startswith(UTF8_BOM + b"name,")
