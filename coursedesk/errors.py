"""Exception hierarchy shared by the storage and viewer layers."""

from __future__ import annotations

from typing import Literal, Optional


ValidationReason = Literal[
    "unsupported_extension",
    "mime_mismatch",
    "too_large",
    "missing_file",
]


class CourseDeskError(Exception):
    """Base class for application errors."""


class ValidationError(CourseDeskError):
    """Raised when an upload is rejected; the message is shown to the admin verbatim."""

    def __init__(self, reason: ValidationReason, message: str) -> None:
        super().__init__(message)
        self.reason: ValidationReason = reason
        self.message = message


class NotFoundError(CourseDeskError):
    """Raised when a lesson, file or viewer session does not exist."""


class ProviderRenderError(CourseDeskError):
    """An online document viewer failed to render the file."""

    def __init__(self, provider: str, detail: Optional[str] = None) -> None:
        message = f"{provider} could not render the document"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.provider = provider
        self.detail = detail


class StorageIOError(CourseDeskError):
    """Raised when the filesystem refuses a write or a delete."""


__all__ = [
    "CourseDeskError",
    "NotFoundError",
    "ProviderRenderError",
    "StorageIOError",
    "ValidationError",
    "ValidationReason",
]
