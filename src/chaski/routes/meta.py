"""Meta endpoints: liveness."""

from __future__ import annotations

from fastapi import APIRouter

from chaski.models import HealthStatus

router = APIRouter(tags=["meta"])


@router.get("/health")
def health() -> HealthStatus:
    return HealthStatus()
