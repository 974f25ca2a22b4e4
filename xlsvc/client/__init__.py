"""HTTP client for the processing service."""

from xlsvc.client.api import ApiClient
from xlsvc.client.errors import (
    ApiError,
    NetworkError,
    RequestError,
    ServerError,
    SubmissionError,
    get_api_error_message,
)
from xlsvc.client.submitter import JobSubmitter

__all__ = [
    "ApiClient",
    "JobSubmitter",
    # Errors
    "ApiError",
    "ServerError",
    "NetworkError",
    "RequestError",
    "SubmissionError",
    "get_api_error_message",
]
