"""HTTP tests for the Chaski gateway.

GitHub and the token document are served by the in-memory fake from
conftest, so the full request path runs without network access.
"""

from __future__ import annotations

import logging
import re
from contextlib import ExitStack
from dataclasses import replace
from datetime import datetime
from pathlib import Path

import httpx
import pytest
from fastapi.testclient import TestClient

from chaski.app import create_app, lifespan
from chaski.credentials import Credential
from chaski.errors import CredentialLoadError

from conftest import OWNER, REPO, TOKEN

NOTES = b"line of notes\n" * 150  # ~2 KB


def _files(data: bytes = NOTES, filename: str = "notes.txt", content_type: str = "text/plain"):
    return {"document": (filename, data, content_type)}


@pytest.fixture
def make_client(config, transport):
    with ExitStack() as stack:

        def _make(cfg=None, credential=Credential(TOKEN)) -> TestClient:
            app = create_app(cfg or config, credential=credential, transport=transport)
            return stack.enter_context(TestClient(app))

        yield _make


@pytest.fixture
def client(make_client) -> TestClient:
    return make_client()


def _staged_files(config) -> list:
    staging = Path(config.staging_dir)
    return list(staging.iterdir()) if staging.exists() else []


class TestHealth:
    def test_health(self, client):
        r = client.get("/health")
        assert r.status_code == 200
        body = r.json()
        assert body["status"] == "OK"
        assert re.fullmatch(r"\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z", body["timestamp"])
        parsed = datetime.fromisoformat(body["timestamp"].replace("Z", "+00:00"))
        assert parsed.tzinfo is not None


class TestUpload:
    def test_new_file(self, client, config, fake_github):
        r = client.post("/upload", files=_files())
        assert r.status_code == 200
        assert r.json() == {
            "success": True,
            "message": "File uploaded successfully!",
            "fileUrl": f"https://github.test/{OWNER}/{REPO}/blob/main/music/notes.txt",
        }
        assert fake_github.objects["music/notes.txt"][1] == NOTES
        assert "sha" not in fake_github.put_bodies()[0]
        assert _staged_files(config) == []

    def test_reupload_overwrites(self, client, config, fake_github):
        original_sha = fake_github.store("music/notes.txt", b"original")

        r = client.post("/upload", files=_files(b"revised notes"))
        assert r.status_code == 200
        assert r.json()["success"] is True
        assert fake_github.objects["music/notes.txt"][1] == b"revised notes"
        assert fake_github.put_bodies()[0]["sha"] == original_sha
        assert _staged_files(config) == []

    def test_too_large(self, client, config, fake_github):
        r = client.post("/upload", files=_files(b"\0" * (11 * 1024 * 1024)))
        assert r.status_code == 400
        body = r.json()
        assert body["success"] is False
        assert "10 MB" in body["message"]
        assert fake_github.api_requests() == []
        assert _staged_files(config) == []

    def test_oversize_refused_before_form_is_parsed(self, client, config, monkeypatch):
        checked = []
        monkeypatch.setattr("chaski.uploader.validate_upload", lambda *a: checked.append(a))
        r = client.post("/upload", files=_files(b"\0" * (24 * 1024 * 1024)))
        assert r.status_code == 400
        assert r.json() == {"success": False, "message": "File too large. Maximum size is 10 MB."}
        assert checked == []
        assert not Path(config.staging_dir).exists()

    def test_disallowed_type(self, client, fake_github):
        r = client.post("/upload", files=_files(b"PK\x03\x04", "notes.zip", "application/zip"))
        assert r.status_code == 400
        assert r.json() == {
            "success": False,
            "message": "Invalid file type. Only documents and images are allowed.",
        }
        assert fake_github.api_requests() == []

    def test_no_document(self, client):
        r = client.post("/upload", files={"other": ("notes.txt", b"x", "text/plain")})
        assert r.status_code == 400
        assert r.json() == {"success": False, "message": "No file uploaded."}

    def test_image_upload(self, client, fake_github):
        png = b"\x89PNG\r\n\x1a\n" + b"\0" * 64
        r = client.post("/upload", files=_files(png, "cover.png", "image/png"))
        assert r.status_code == 200
        assert fake_github.objects["music/cover.png"][1] == png


class TestUploadFailures:
    def test_missing_repo_config(self, make_client, config, fake_github):
        client = make_client(replace(config, repo_name=""))
        r = client.post("/upload", files=_files())
        assert r.status_code == 500
        assert r.json() == {
            "success": False,
            "message": "GitHub configuration missing. Please check your environment variables.",
        }
        assert fake_github.api_requests() == []
        assert _staged_files(config) == []

    def test_bad_token(self, make_client, config):
        client = make_client(credential=Credential("not-the-token"))
        r = client.post("/upload", files=_files())
        assert r.status_code == 500
        assert r.json()["message"] == "GitHub authentication failed. Please check your token."
        assert _staged_files(config) == []

    def test_unknown_repository(self, make_client, config):
        client = make_client(replace(config, repo_name="nope"))
        r = client.post("/upload", files=_files())
        assert r.status_code == 500
        assert r.json()["message"] == (
            "GitHub repository not found. Please check your repository name."
        )

    def test_conflict(self, client, config, fake_github):
        fake_github.before_put = lambda path: fake_github.store(path, b"other writer")
        r = client.post("/upload", files=_files())
        assert r.status_code == 500
        assert r.json() == {
            "success": False,
            "message": "File already exists and could not be overwritten.",
        }
        assert fake_github.objects["music/notes.txt"][1] == b"other writer"
        assert _staged_files(config) == []

    def test_other_remote_error(self, client, fake_github):
        fake_github.fail["PUT"] = [422]
        r = client.post("/upload", files=_files())
        assert r.status_code == 500
        assert r.json() == {"success": False, "message": "Upload failed."}

    def test_staged_copy_unreadable(self, client, config, fake_github, monkeypatch):
        def unreadable(self):
            raise OSError("I/O error")

        monkeypatch.setattr(Path, "read_bytes", unreadable)
        r = client.post("/upload", files=_files())
        assert r.status_code == 500
        assert r.json() == {"success": False, "message": "Upload failed."}
        assert fake_github.api_requests() == []
        assert _staged_files(config) == []

    def test_staged_copy_not_removable(self, client, monkeypatch):
        def stuck(self, missing_ok=False):
            raise PermissionError("read-only file system")

        monkeypatch.setattr(Path, "unlink", stuck)
        r = client.post("/upload", files=_files())
        assert r.status_code == 500
        assert r.json() == {"success": False, "message": "Upload failed."}


class TestStartup:
    def test_credential_fetched_when_not_given(self, make_client, fake_github):
        client = make_client(credential=None)
        r = client.post("/upload", files=_files())
        assert r.status_code == 200
        assert fake_github.requests[0].url.host == "tokens.test"
        assert client.app.state.credential.token == TOKEN

    @pytest.mark.anyio
    async def test_unreachable_token_source_aborts_startup(self, config):
        def handler(request):
            raise httpx.ConnectError("no route to host", request=request)

        app = create_app(config, transport=httpx.MockTransport(handler))
        with pytest.raises(CredentialLoadError):
            async with lifespan(app):
                pytest.fail("server must not become ready")
        assert not hasattr(app.state, "uploader")


class TestStaticAndCors:
    def test_static_files(self, make_client, config, tmp_path):
        site = tmp_path / "site"
        site.mkdir()
        (site / "index.html").write_text("<h1>upload form</h1>")
        client = make_client(replace(config, static_dir=str(site)))

        r = client.get("/")
        assert r.status_code == 200
        assert "upload form" in r.text
        assert client.get("/health").json()["status"] == "OK"

    def test_cors_preflight(self, client):
        r = client.options(
            "/upload",
            headers={
                "Origin": "https://example.test",
                "Access-Control-Request-Method": "POST",
            },
        )
        assert r.status_code == 200
        assert r.headers["access-control-allow-origin"] in ("*", "https://example.test")


class TestLogging:
    def test_audit_line_and_no_token(self, client, caplog):
        caplog.set_level(logging.DEBUG)
        client.post("/upload", files=_files())
        audit = [r.getMessage() for r in caplog.records if r.name == "chaski.audit"]
        assert any(line.startswith("POST /upload 200") for line in audit)
        assert TOKEN not in caplog.text

    def test_audit_line_records_outcome(self, client, caplog):
        caplog.set_level(logging.INFO, logger="chaski.audit")
        client.post("/upload", files=_files(b"PK\x03\x04", "notes.zip", "application/zip"))
        client.post("/upload", files=_files())
        audit = [r.getMessage() for r in caplog.records if r.name == "chaski.audit"]
        assert "outcome='Invalid file type. Only documents and images are allowed.'" in audit[0]
        assert audit[0].startswith("POST /upload 400")
        assert audit[1].endswith(
            f"outcome='https://github.test/{OWNER}/{REPO}/blob/main/music/notes.txt'"
        )
