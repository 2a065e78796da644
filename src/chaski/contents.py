"""GitHub Contents API client with probe-then-write upserts.

An upsert reads the current blob sha at the path (404 means "create"),
then PUTs the new content carrying that sha. GitHub rejects the write with
409 when the sha is stale, which is the only guard against lost updates
between processes. Within one process, uploads to the same path are
serialized by a per-path lock.
"""

from __future__ import annotations

import asyncio
import base64
import logging
from collections import Counter
from collections.abc import Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator
from urllib.parse import quote

import httpx

from chaski.credentials import Credential
from chaski.errors import (
    RemoteAuthError,
    RemoteConflict,
    RemoteError,
    RemoteRepoNotFound,
    RemoteUnavailable,
)
from chaski.models import UploadResult

logger = logging.getLogger(__name__)

SUCCESS_MESSAGE = "File uploaded successfully!"

_STATUS_ERRORS: dict[int, type[RemoteError]] = {
    401: RemoteAuthError,
    404: RemoteRepoNotFound,
    409: RemoteConflict,
    502: RemoteUnavailable,
    503: RemoteUnavailable,
    504: RemoteUnavailable,
}


def _error_for(response: httpx.Response) -> RemoteError:
    logger.warning(
        "GitHub returned %d for %s %s: %s",
        response.status_code,
        response.request.method,
        response.request.url.path,
        response.text[:200] if response.text else "no body",
    )
    cls = _STATUS_ERRORS.get(response.status_code, RemoteError)
    return cls(status=response.status_code)


def _json_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError as exc:
        logger.warning(
            "GitHub sent a non-JSON %d body for %s %s",
            response.status_code,
            response.request.method,
            response.request.url.path,
        )
        raise RemoteError(status=response.status_code) from exc


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retries. Zero everywhere means a single attempt."""

    conflict_retries: int = 0
    transient_retries: int = 0
    backoff_base: float = 0.5

    def delay(self, attempt: int) -> float:
        return self.backoff_base * (2**attempt)


class PathLocks:
    """One asyncio.Lock per remote path, dropped once nobody needs it."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: Counter[str] = Counter()

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, path: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(path, asyncio.Lock())
        self._users[path] += 1
        try:
            async with lock:
                yield
        finally:
            self._users[path] -= 1
            if not self._users[path]:
                del self._users[path]
                del self._locks[path]


class ContentsClient:
    """Authenticated access to one repository's Contents API."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        credential: Credential,
        *,
        api_base: str,
        owner: str,
        repo: str,
        retry: RetryPolicy | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._client = client
        self._credential = credential
        self._api_base = api_base.rstrip("/")
        self.owner = owner
        self.repo = repo
        self.retry = retry or RetryPolicy()
        self._sleep = sleep
        self.locks = PathLocks()

    @property
    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": self._credential.authorization,
            "Accept": "application/vnd.github+json",
        }

    def contents_url(self, path: str) -> str:
        # The whole path is one encoded component, slashes included.
        return (
            f"{self._api_base}/repos/{self.owner}/{self.repo}"
            f"/contents/{quote(path, safe='')}"
        )

    async def get_sha(self, path: str, branch: str) -> str | None:
        """Current blob sha at path, or None if nothing is there."""
        try:
            response = await self._client.get(
                self.contents_url(path),
                params={"ref": branch},
                headers=self._headers,
            )
        except httpx.TransportError as exc:
            raise RemoteUnavailable(status=None) from exc
        if response.status_code == 404:
            return None
        if response.is_error:
            raise _error_for(response)
        data = _json_body(response)
        # A directory comes back as a list; there is no blob sha to guard with.
        return data.get("sha") if isinstance(data, dict) else None

    async def put(
        self,
        path: str,
        content_b64: str,
        message: str,
        branch: str,
        sha: str | None = None,
    ) -> dict:
        """Create (sha=None) or overwrite (sha=current) the object at path."""
        body: dict[str, str] = {"message": message, "content": content_b64, "branch": branch}
        if sha is not None:
            body["sha"] = sha
        try:
            response = await self._client.put(
                self.contents_url(path),
                json=body,
                headers=self._headers,
            )
        except httpx.TransportError as exc:
            raise RemoteUnavailable(status=None) from exc
        if response.is_error:
            raise _error_for(response)
        data = _json_body(response)
        if not isinstance(data, dict):
            raise RemoteError(status=response.status_code)
        return data

    async def _with_backoff(self, call: Callable[..., Awaitable[Any]], *args: Any) -> Any:
        attempt = 0
        while True:
            try:
                return await call(*args)
            except RemoteUnavailable:
                if attempt >= self.retry.transient_retries:
                    raise
                delay = self.retry.delay(attempt)
                logger.warning("GitHub unavailable, retry %d in %.2fs", attempt + 1, delay)
                await self._sleep(delay)
                attempt += 1

    async def upsert(
        self,
        path: str,
        payload: bytes,
        message: str,
        branch: str,
    ) -> UploadResult:
        """Write payload to path, overwriting whatever is there.

        Remote failures come back as an unsuccessful UploadResult with the
        message for the uploader; they are not raised.
        """
        content = base64.b64encode(payload).decode("ascii")
        conflicts = 0
        try:
            async with self.locks.hold(path):
                while True:
                    sha = await self._with_backoff(self.get_sha, path, branch)
                    logger.info(
                        "%s %s on %s", "Updating" if sha else "Creating", path, branch
                    )
                    try:
                        data = await self._with_backoff(
                            self.put, path, content, message, branch, sha
                        )
                        break
                    except RemoteConflict:
                        if conflicts >= self.retry.conflict_retries:
                            raise
                        conflicts += 1
                        logger.warning("Conflict writing %s, re-probing (%d)", path, conflicts)
        except RemoteError as exc:
            logger.error("Upload of %s failed: %s", path, exc.message)
            return UploadResult(success=False, message=exc.message)

        content_info = data.get("content")
        file_url = content_info.get("html_url") if isinstance(content_info, dict) else None
        return UploadResult(success=True, message=SUCCESS_MESSAGE, file_url=file_url)
