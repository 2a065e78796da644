"""Upload service: one uploaded document in, one commit out."""

from __future__ import annotations

import logging

from fastapi import UploadFile

from chaski.config import ChaskiConfig
from chaski.contents import ContentsClient
from chaski.errors import ConfigError
from chaski.models import UploadResult
from chaski.staging import read_staged, stage_upload, validate_upload

logger = logging.getLogger(__name__)


def remote_path(prefix: str, filename: str) -> str:
    """Repository path for an upload.

    The client-supplied filename is used verbatim, so two uploads with the
    same name land on the same path and the later one wins.
    """
    prefix = prefix.strip("/")
    return f"{prefix}/{filename}" if prefix else filename


class Uploader:
    def __init__(self, config: ChaskiConfig, contents: ContentsClient) -> None:
        self.config = config
        self.contents = contents

    async def handle(self, document: UploadFile | None) -> UploadResult:
        """Validate, stage and commit one document.

        Validation and configuration problems raise; remote failures come
        back as an unsuccessful result. The staged copy is gone either way.
        """
        document = validate_upload(document, self.config.max_upload_bytes)
        filename = document.filename
        async with stage_upload(
            document, self.config.staging_dir, self.config.max_upload_bytes
        ) as staged:
            if not self.config.repo_configured:
                raise ConfigError()
            payload = await read_staged(staged)
            path = remote_path(self.config.upload_prefix, filename)
            logger.info("Uploading %s (%d bytes) to %s", filename, len(payload), path)
            return await self.contents.upsert(
                path,
                payload,
                f"Upload {filename}",
                self.config.branch,
            )
