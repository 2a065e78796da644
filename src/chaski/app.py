"""Chaski: FastAPI upload gateway.

The messenger between a browser form and a GitHub repository.
Uploaded files are committed through the Contents API with a token that
is fetched and unscrambled once, at startup.
"""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from pathlib import Path

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from chaski.config import ChaskiConfig, load_config
from chaski.contents import ContentsClient, RetryPolicy
from chaski.credentials import Credential, fetch_credential
from chaski.errors import ChaskiError
from chaski.limits import UploadCeilingMiddleware
from chaski.routes import meta, upload
from chaski.uploader import Uploader

logger = logging.getLogger("chaski")
audit_logger = logging.getLogger("chaski.audit")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup: open the GitHub client, load the token. Shutdown: close the client."""
    config: ChaskiConfig = app.state.config
    client = httpx.AsyncClient(
        timeout=config.http_timeout,
        transport=app.state.transport,
    )
    try:
        credential: Credential | None = app.state.credential
        if credential is None:
            # Raising here aborts server startup: no token, no upload endpoint.
            credential = await fetch_credential(config, client)
            app.state.credential = credential

        if not config.repo_configured:
            logger.warning("GITHUB_USER/GITHUB_REPO not set; uploads will fail")
        contents = ContentsClient(
            client,
            credential,
            api_base=config.api_base,
            owner=config.repo_owner,
            repo=config.repo_name,
            retry=RetryPolicy(
                conflict_retries=config.conflict_retries,
                transient_retries=config.transient_retries,
                backoff_base=config.backoff_base,
            ),
        )
        app.state.uploader = Uploader(config, contents)
        logger.info(
            "Chaski ready: uploads go to %s/%s@%s under %s/",
            config.repo_owner or "?",
            config.repo_name or "?",
            config.branch,
            config.upload_prefix,
        )
        yield
    finally:
        await client.aclose()
        logger.info("Chaski shut down")


def create_app(
    config: ChaskiConfig | None = None,
    credential: Credential | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    """Application factory.

    Without a credential the lifespan fetches one. ``transport`` replaces
    the network for the outbound httpx client.
    """
    if config is None:
        config = load_config()

    app = FastAPI(
        title="Chaski",
        description="Upload gateway that commits uploaded files to a GitHub repository",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.credential = credential
    app.state.transport = transport

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(config.cors_origins),
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(UploadCeilingMiddleware, max_bytes=config.max_upload_bytes)

    # ── Exception handlers ────────────────────────────────────

    @app.exception_handler(ChaskiError)
    async def chaski_handler(request: Request, exc: ChaskiError):
        logger.warning("%s %s: %s", request.method, request.url.path, exc.message)
        request.state.outcome = exc.message
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "message": exc.message},
        )

    # ── Audit middleware ──────────────────────────────────────

    @app.middleware("http")
    async def audit_log(request: Request, call_next):
        start = time.monotonic()
        response = await call_next(request)
        elapsed_ms = (time.monotonic() - start) * 1000
        client = request.client.host if request.client else "-"
        outcome = getattr(request.state, "outcome", None)
        audit_logger.info(
            "%s %s %d %.1fms client=%s%s",
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
            client,
            f" outcome={outcome!r}" if outcome else "",
        )
        return response

    # ── Routers ───────────────────────────────────────────────

    app.include_router(meta.router)
    app.include_router(upload.router)

    # Static files last, so they never shadow the API routes.
    if config.static_dir:
        static_dir = Path(config.static_dir)
        if static_dir.is_dir():
            app.mount("/", StaticFiles(directory=static_dir, html=True), name="static")
        else:
            logger.warning("Static directory %s not found; not serving files", static_dir)

    return app
