"""Error taxonomy shared by the upload pipeline and the HTTP layer."""

from __future__ import annotations

from typing import Optional

from fastapi import status


class ReelhouseError(Exception):
    """Base class for failures reported to API callers."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "internal_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidRequestError(ReelhouseError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "invalid_request"


class NotFoundError(ReelhouseError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"


class ForbiddenError(ReelhouseError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "forbidden"


class ProcessingError(ReelhouseError):
    """An external media tool failed. ``stderr`` holds its diagnostic output."""

    code = "processing_failed"

    def __init__(self, message: str, *, stderr: Optional[str] = None) -> None:
        super().__init__(message)
        self.stderr = stderr or ""


class StorageError(ReelhouseError):
    code = "storage_failed"


__all__ = [
    "ReelhouseError",
    "InvalidRequestError",
    "NotFoundError",
    "ForbiddenError",
    "ProcessingError",
    "StorageError",
]
