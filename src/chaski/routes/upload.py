"""Upload endpoint: multipart field ``document`` committed to GitHub.

200 on success, 400 for rejected uploads, 500 for configuration and
remote failures. Every response body is ``{success, message, fileUrl?}``.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, File, Request, UploadFile
from fastapi.responses import JSONResponse

from chaski.deps import get_uploader
from chaski.errors import ChaskiError
from chaski.models import UploadResult
from chaski.uploader import Uploader

logger = logging.getLogger(__name__)

router = APIRouter(tags=["upload"])


@router.post("/upload")
async def upload(
    request: Request,
    document: UploadFile | None = File(None),
    uploader: Uploader = Depends(get_uploader),
):
    try:
        result = await uploader.handle(document)
    except ChaskiError:
        raise
    except Exception:
        logger.exception("Unexpected upload failure")
        result = UploadResult(success=False, message="Upload failed.")
    request.state.outcome = result.file_url if result.success else result.message
    return JSONResponse(
        status_code=200 if result.success else 500,
        content=result.to_response(),
    )
