"""Response models for the Chaski HTTP surface."""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field


class UploadResult(BaseModel):
    """Outcome of one upload. Exactly one of success/failure."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    success: bool
    message: str
    file_url: str | None = Field(default=None, alias="fileUrl")

    def to_response(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


def _utc_now() -> str:
    # ISO-8601 UTC with millisecond precision and a Z suffix.
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class HealthStatus(BaseModel):
    status: str = "OK"
    timestamp: str = Field(default_factory=_utc_now)
