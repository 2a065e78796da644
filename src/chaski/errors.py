"""Error taxonomy for Chaski.

Every per-request error carries the message shown to the uploader and the
HTTP status the gateway answers with. Handlers in chaski.app turn them into
``{"success": false, "message": ...}`` responses.
"""

from __future__ import annotations


class ChaskiError(Exception):
    """Base class for all Chaski errors."""

    status_code = 500
    default_message = "Upload failed."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


# ── Ingress validation ────────────────────────────────────────


class UploadValidationError(ChaskiError):
    status_code = 400
    default_message = "Invalid upload."


class MissingFileError(UploadValidationError):
    default_message = "No file uploaded."


class InvalidFileTypeError(UploadValidationError):
    default_message = "Invalid file type. Only documents and images are allowed."


class FileTooLargeError(UploadValidationError):
    default_message = "File too large."

    def __init__(self, max_bytes: int) -> None:
        self.max_bytes = max_bytes
        super().__init__(f"File too large. Maximum size is {max_bytes / (1024 * 1024):g} MB.")


# ── Configuration and startup ─────────────────────────────────


class ConfigError(ChaskiError):
    default_message = "GitHub configuration missing. Please check your environment variables."


class CredentialLoadError(ChaskiError):
    """The scrambled token could not be fetched or decoded."""

    default_message = "Failed to fetch or decode GitHub token."


class LocalIOError(ChaskiError):
    """Staging the upload on local disk failed."""


# ── Remote content store ──────────────────────────────────────


class RemoteError(ChaskiError):
    """GitHub answered with an error status, or could not be reached."""

    def __init__(self, message: str | None = None, *, status: int | None = None) -> None:
        self.status = status
        super().__init__(message)


class RemoteAuthError(RemoteError):
    default_message = "GitHub authentication failed. Please check your token."


class RemoteRepoNotFound(RemoteError):
    default_message = "GitHub repository not found. Please check your repository name."


class RemoteConflict(RemoteError):
    default_message = "File already exists and could not be overwritten."


class RemoteUnavailable(RemoteError):
    """Transport failure or gateway error. Retryable."""
