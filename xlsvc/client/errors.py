"""Transport error taxonomy shared by submission and polling."""

from __future__ import annotations

from typing import Optional

from xlsvc.models.jobs import UNKNOWN_ERROR


class ApiError(Exception):
    """Base class for a failed request to the processing service."""

    kind = "api"

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message or UNKNOWN_ERROR
        super().__init__(self.message)


class ServerError(ApiError):
    """The server responded, but with an error status or an unusable body."""

    kind = "server"

    def __init__(
        self,
        status_code: int,
        message: Optional[str] = None,
        details: Optional[str] = None,
        traceback: Optional[str] = None,
        server_message: Optional[str] = None,
    ) -> None:
        self.status_code = status_code
        self.details = details
        self.traceback = traceback
        self.server_message = server_message
        super().__init__(message or server_message)

    def __str__(self) -> str:
        text = f"HTTP {self.status_code}: {self.message}"
        if self.details:
            text += f" ({self.details})"
        return text


class NetworkError(ApiError):
    """The request was sent but no response arrived."""

    kind = "network"


class RequestError(ApiError):
    """The request could not be constructed or sent."""

    kind = "request"


# Errors raised on the submit path; same classes, named for the caller
SubmissionError = ApiError


def get_api_error_message(error: BaseException, fallback: str) -> str:
    """Return the server-supplied `error` text, or `fallback` when absent."""
    return getattr(error, "server_message", None) or fallback
