"""Shared fixtures: an in-memory GitHub served through httpx.MockTransport."""

from __future__ import annotations

import base64
import hashlib
import json
from urllib.parse import unquote

import httpx
import pytest

from chaski.config import ChaskiConfig
from chaski.credentials import Credential
from chaski.decoder import scramble

TOKEN = "ghp_exampleToken123"
SEED = 42
TOKEN_URL = "https://tokens.test/bin.json"
API = "https://api.github.test"
OWNER = "octo"
REPO = "files"


class FakeGitHub:
    """Token document plus a Contents API for one repository.

    ``fail`` queues status codes per HTTP method, served before anything
    else. ``before_put`` runs once, just before the next PUT is applied,
    to simulate another writer slipping in between probe and write.
    """

    def __init__(self, token: str = TOKEN, seed: int = SEED) -> None:
        self.token = token
        self.token_document: object = {"enctest": scramble(token, seed)}
        self.objects: dict[str, tuple[str, bytes]] = {}
        self.requests: list[httpx.Request] = []
        self.fail: dict[str, list[int]] = {}
        self.before_put = None

    # ── helpers for tests ─────────────────────────────────────

    def store(self, path: str, content: bytes) -> str:
        sha = hashlib.sha1(b"blob %d\0" % len(content) + content).hexdigest()
        self.objects[path] = (sha, content)
        return sha

    def api_requests(self, method: str | None = None) -> list[httpx.Request]:
        return [
            r
            for r in self.requests
            if r.url.host == "api.github.test" and (method is None or r.method == method)
        ]

    def put_bodies(self) -> list[dict]:
        return [json.loads(r.content) for r in self.api_requests("PUT")]

    # ── transport ─────────────────────────────────────────────

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.host == "tokens.test":
            if isinstance(self.token_document, str):
                return httpx.Response(200, text=self.token_document)
            return httpx.Response(200, json=self.token_document)

        queued = self.fail.get(request.method)
        if queued:
            return httpx.Response(queued.pop(0), json={"message": "injected failure"})

        if request.headers.get("Authorization") != f"token {self.token}":
            return httpx.Response(401, json={"message": "Bad credentials"})

        prefix = f"/repos/{OWNER}/{REPO}/contents/"
        raw_path = unquote(request.url.raw_path.decode("ascii").split("?")[0])
        if not raw_path.startswith(prefix):
            return httpx.Response(404, json={"message": "Not Found"})
        path = raw_path[len(prefix):]

        if request.method == "GET":
            if path not in self.objects:
                return httpx.Response(404, json={"message": "Not Found"})
            sha, _ = self.objects[path]
            return httpx.Response(200, json={"path": path, "sha": sha, "type": "file"})

        if request.method == "PUT":
            body = json.loads(request.content)
            if self.before_put is not None:
                hook, self.before_put = self.before_put, None
                hook(path)
            current = self.objects.get(path)
            expected = current[0] if current else None
            if body.get("sha") != expected:
                return httpx.Response(409, json={"message": f"{path} does not match"})
            sha = self.store(path, base64.b64decode(body["content"]))
            return httpx.Response(
                200 if current else 201,
                json={
                    "content": {
                        "path": path,
                        "sha": sha,
                        "html_url": f"https://github.test/{OWNER}/{REPO}/blob/{body['branch']}/{path}",
                    },
                    "commit": {"message": body["message"]},
                },
            )

        return httpx.Response(405)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def fake_github() -> FakeGitHub:
    return FakeGitHub()


@pytest.fixture
def transport(fake_github) -> httpx.MockTransport:
    return httpx.MockTransport(fake_github.handler)


@pytest.fixture
def config(tmp_path) -> ChaskiConfig:
    return ChaskiConfig(
        repo_owner=OWNER,
        repo_name=REPO,
        api_base=API,
        token_url=TOKEN_URL,
        shuffle_seed=SEED,
        staging_dir=str(tmp_path / "uploads"),
    )


@pytest.fixture
def credential() -> Credential:
    return Credential(TOKEN)
