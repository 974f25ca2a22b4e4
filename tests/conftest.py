"""Shared fixtures for the xlsvc test suite.

Coroutines are driven with asyncio.run() from plain test functions; time is
simulated with ManualScheduler and HTTP with httpx.MockTransport.
"""

import os
import sys
from typing import Callable, Optional

import httpx
import pytest

# Project root = parent directory of this tests/ folder
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from xlsvc.client.api import ApiClient  # noqa: E402
from xlsvc.config.settings import TimeoutConfig  # noqa: E402
from xlsvc.models.jobs import StatusResponse, SubmitResponse  # noqa: E402
from xlsvc.runner.scheduler import ManualScheduler  # noqa: E402

API_BASE = "http://testserver/api"

COMPLETED = {
    "status": "completed",
    "download_file_id": 20,
    "download_filename": "processed.xlsx",
    "report_file_id": 21,
    "report_filename": "report.xlsx",
}
PROCESSING = {"status": "processing"}
PENDING = {"status": "pending"}


class ScriptedClient:
    """
    Stand-in for ApiClient that replays scripted responses.

    `statuses` items are status payload dicts or exceptions to raise; the
    last item repeats once the script runs out.
    """

    def __init__(
        self,
        statuses=None,
        submit=None,
        on_submit: Optional[Callable[[], None]] = None,
        on_status: Optional[Callable[[], None]] = None,
    ) -> None:
        self.statuses = list(statuses or [COMPLETED])
        self.submit_result = submit or {"job_id": "job-123", "estimated_time": "2-3 minutes"}
        self.on_submit = on_submit
        self.on_status = on_status
        self.timeouts = TimeoutConfig()
        self.status_calls: list[str] = []
        self.submit_calls: list[tuple] = []

    async def submit_job(self, file_id, filter_rules, timeout=None):
        self.submit_calls.append((file_id, list(filter_rules), timeout))
        if self.on_submit is not None:
            self.on_submit()
        if isinstance(self.submit_result, Exception):
            raise self.submit_result
        return SubmitResponse.from_dict(self.submit_result)

    async def get_job_status(self, job_id):
        self.status_calls.append(job_id)
        if self.on_status is not None:
            self.on_status()
        item = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
        if isinstance(item, Exception):
            raise item
        return StatusResponse.from_dict(item)


def mock_client(handler, token: Optional[str] = "test-token") -> ApiClient:
    """ApiClient whose requests are answered by `handler(request)`."""
    return ApiClient(API_BASE, token=token, transport=httpx.MockTransport(handler))


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()
