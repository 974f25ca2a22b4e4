"""One-shot job submission."""

from __future__ import annotations

from typing import Any, Optional

from xlsvc.client.api import ApiClient
from xlsvc.client.errors import ApiError
from xlsvc.models.jobs import SubmitResponse
from xlsvc.models.rules import FilterRuleSet
from xlsvc.utils.logging import get_logger

logger = get_logger("client.submitter")

DEFAULT_SUBMIT_TIMEOUT = 10.0


class JobSubmitter:
    """
    Issues the request that starts a remote processing job.

    The request timeout is kept short and independent of the polling
    horizon. Failures propagate as ServerError, NetworkError or
    RequestError; the submitter holds no job state.
    """

    def __init__(
        self,
        client: ApiClient,
        timeout: Optional[float] = None,
    ) -> None:
        self.client = client
        self.timeout = timeout or client.timeouts.submit_request or DEFAULT_SUBMIT_TIMEOUT

    async def submit(self, file_id: Any, filter_rules: FilterRuleSet) -> SubmitResponse:
        """
        Start a job for `file_id` with `filter_rules`.

        Returns:
            SubmitResponse with job_id and estimated_time

        Raises:
            ServerError: The server rejected the request
            NetworkError: No response arrived
            RequestError: The request could not be sent
        """
        logger.info(
            "job_submit_started",
            file_id=file_id,
            rules=len(filter_rules),
            timeout=self.timeout,
        )

        try:
            response = await self.client.submit_job(
                file_id, filter_rules, timeout=self.timeout
            )
        except ApiError as e:
            logger.warning(
                "job_submit_failed",
                file_id=file_id,
                error_kind=e.kind,
                error=str(e),
            )
            raise

        logger.info(
            "job_submitted",
            file_id=file_id,
            job_id=response.job_id,
            estimated_time=response.estimated_time,
        )
        return response
