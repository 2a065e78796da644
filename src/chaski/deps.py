"""FastAPI dependencies for Chaski routes."""

from __future__ import annotations

from fastapi import Request

from chaski.uploader import Uploader


def get_uploader(request: Request) -> Uploader:
    """Get the upload service built at startup."""
    return request.app.state.uploader
