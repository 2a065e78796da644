"""Request-size ceiling for upload routes.

Oversize uploads are refused before the multipart form is parsed. A
declared ``Content-Length`` over the ceiling is answered without reading
the body at all. A body without a declared length is counted as it
streams in and cut off as soon as it passes the ceiling.

The ceiling applies to the file part; the whole request may exceed it by
``FORM_OVERHEAD`` bytes of multipart framing and small fields. The exact
per-file check happens again while the file is staged.
"""

from __future__ import annotations

import logging

from starlette.datastructures import Headers
from starlette.responses import JSONResponse
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from chaski.errors import FileTooLargeError

logger = logging.getLogger(__name__)

FORM_OVERHEAD = 64 * 1024


class UploadCeilingMiddleware:
    """Pure ASGI middleware, so the body can be cut off mid-stream."""

    def __init__(
        self,
        app: ASGIApp,
        *,
        max_bytes: int,
        paths: tuple[str, ...] = ("/upload",),
        overhead: int = FORM_OVERHEAD,
    ) -> None:
        self.app = app
        self.max_bytes = max_bytes
        self.paths = paths
        self.limit = max_bytes + overhead

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or scope["path"] not in self.paths:
            await self.app(scope, receive, send)
            return

        declared = Headers(scope=scope).get("content-length")
        if declared is not None and declared.isdigit() and int(declared) > self.limit:
            logger.info("Refused %s: declared %s bytes", scope["path"], declared)
            await self._refuse(scope, receive, send)
            return

        received = 0
        exceeded = False
        started = False

        async def capped_receive() -> Message:
            nonlocal received, exceeded
            message = await receive()
            if message["type"] == "http.request":
                received += len(message.get("body", b""))
                if received > self.limit:
                    exceeded = True
                    raise FileTooLargeError(self.max_bytes)
            return message

        async def guarded_send(message: Message) -> None:
            nonlocal started
            # Once the body is cut off, the app's own error response is dropped.
            if exceeded and not started:
                return
            if message["type"] == "http.response.start":
                started = True
            await send(message)

        try:
            await self.app(scope, capped_receive, guarded_send)
        except FileTooLargeError:
            if not exceeded:
                raise

        if exceeded and not started:
            logger.info("Refused %s: body passed %d bytes", scope["path"], self.limit)
            await self._refuse(scope, receive, send)

    async def _refuse(self, scope: Scope, receive: Receive, send: Send) -> None:
        error = FileTooLargeError(self.max_bytes)
        scope.setdefault("state", {})["outcome"] = error.message
        response = JSONResponse(
            status_code=error.status_code,
            content={"success": False, "message": error.message},
        )
        await response(scope, receive, send)
