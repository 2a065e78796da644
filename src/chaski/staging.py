"""Ingress checks and local staging of uploaded files.

An upload is copied into the staging directory for the duration of one
request only. The staged copy is removed on every exit path.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator
from uuid import uuid4

from fastapi import UploadFile

from chaski.errors import (
    FileTooLargeError,
    InvalidFileTypeError,
    LocalIOError,
    MissingFileError,
)

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024

ALLOWED_CONTENT_TYPES = frozenset(
    {
        "application/pdf",
        "application/msword",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "text/plain",
        "application/vnd.ms-excel",
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        "text/csv",
        "image/jpeg",
        "image/png",
        "image/gif",
        "image/x-icon",
        "image/vnd.microsoft.icon",
        "image/svg+xml",
        "image/heic",
        "image/heif",
    }
)


def validate_upload(document: UploadFile | None, max_bytes: int) -> UploadFile:
    """Reject missing, disallowed or declared-oversize uploads."""
    if document is None or not document.filename:
        raise MissingFileError()
    if document.content_type not in ALLOWED_CONTENT_TYPES:
        logger.info("Rejected %s: content type %s", document.filename, document.content_type)
        raise InvalidFileTypeError()
    if document.size is not None and document.size > max_bytes:
        raise FileTooLargeError(max_bytes)
    return document


async def _copy(document: UploadFile, target: Path, max_bytes: int) -> int:
    total = 0
    fh = await asyncio.to_thread(target.open, "wb")
    try:
        while chunk := await document.read(CHUNK_SIZE):
            total += len(chunk)
            if total > max_bytes:
                raise FileTooLargeError(max_bytes)
            await asyncio.to_thread(fh.write, chunk)
    finally:
        await asyncio.to_thread(fh.close)
    return total


async def _discard(target: Path) -> None:
    try:
        await asyncio.to_thread(target.unlink, missing_ok=True)
    except OSError as exc:
        logger.error("Could not remove staged file %s: %s", target, exc)
        raise LocalIOError() from exc


@asynccontextmanager
async def stage_upload(
    document: UploadFile,
    staging_dir: str | Path,
    max_bytes: int,
) -> AsyncIterator[Path]:
    """Copy the upload to a uniquely named staging file and yield its path."""
    directory = Path(staging_dir)
    target = directory / uuid4().hex
    try:
        try:
            await asyncio.to_thread(directory.mkdir, parents=True, exist_ok=True)
            size = await _copy(document, target, max_bytes)
        except OSError as exc:
            logger.error("Could not stage %s: %s", document.filename, exc)
            raise LocalIOError() from exc
        logger.debug("Staged %s (%d bytes) at %s", document.filename, size, target)
        yield target
    finally:
        await _discard(target)


async def read_staged(path: Path) -> bytes:
    try:
        return await asyncio.to_thread(path.read_bytes)
    except OSError as exc:
        raise LocalIOError() from exc
