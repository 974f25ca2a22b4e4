"""Async HTTP client for the processing service API."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Optional

import httpx

from xlsvc.client.errors import NetworkError, RequestError, ServerError
from xlsvc.config.settings import ClientConfig, TimeoutConfig
from xlsvc.models.jobs import (
    ProcessingHistoryRecord,
    StatusResponse,
    SubmitResponse,
)
from xlsvc.models.rules import FilterRuleSet, rules_to_wire
from xlsvc.utils.logging import get_logger

logger = get_logger("client.api")


class ApiClient:
    """
    Thin async wrapper over the service's REST endpoints.

    Every transport failure is translated into ServerError, NetworkError
    or RequestError so callers never see raw httpx exceptions.
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeouts: Optional[TimeoutConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Initialize the client.

        Args:
            base_url: API base URL, e.g. https://host/api
            token: Bearer token sent on every request
            timeouts: Per-endpoint timeouts
            transport: Optional transport (tests pass httpx.MockTransport)
        """
        self.base_url = base_url.rstrip("/")
        self.timeouts = timeouts or TimeoutConfig()

        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            transport=transport,
        )

    @classmethod
    def from_config(
        cls,
        config: ClientConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "ApiClient":
        """Create a client from a ClientConfig."""
        return cls(
            base_url=config.api.base_url,
            token=config.api.token,
            timeouts=config.timeouts,
            transport=transport,
        )

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying connection pool."""
        await self._client.aclose()

    async def _send(
        self,
        method: str,
        path: str,
        timeout: float,
        json: Any = None,
    ) -> httpx.Response:
        """Send a request, translating transport failures."""
        try:
            request = self._client.build_request(
                method, path, json=json, timeout=timeout
            )
        except (httpx.InvalidURL, TypeError, ValueError) as e:
            raise RequestError(f"Could not build request: {e}") from e

        try:
            response = await self._client.send(request)
        except httpx.UnsupportedProtocol as e:
            raise RequestError(f"Could not send request: {e}") from e
        except httpx.TimeoutException as e:
            raise NetworkError(f"Request timed out after {timeout}s") from e
        except httpx.RequestError as e:
            raise NetworkError(f"No response from server: {e}") from e

        if response.is_error:
            raise _server_error(response)

        return response

    async def _request_json(
        self,
        method: str,
        path: str,
        timeout: float,
        json: Any = None,
    ) -> dict:
        response = await self._send(method, path, timeout, json=json)
        try:
            data = response.json()
        except ValueError as e:
            raise ServerError(
                response.status_code,
                message="Malformed response: body is not JSON",
            ) from e

        if not isinstance(data, dict):
            raise ServerError(
                response.status_code,
                message="Malformed response: expected a JSON object",
            )
        return data

    async def submit_job(
        self,
        file_id: Any,
        filter_rules: FilterRuleSet,
        timeout: Optional[float] = None,
    ) -> SubmitResponse:
        """
        Start a remote processing job.

        Args:
            file_id: File to process
            filter_rules: Rules to apply
            timeout: Override for the submit timeout

        Returns:
            SubmitResponse with the job id
        """
        response = await self._send(
            "POST",
            f"/process-automated/{file_id}",
            timeout or self.timeouts.submit_request,
            json={"filter_rules": rules_to_wire(filter_rules)},
        )

        try:
            return SubmitResponse.from_dict(response.json())
        except (ValueError, KeyError, TypeError) as e:
            raise ServerError(
                response.status_code,
                message="Malformed response: missing job_id",
            ) from e

    async def get_job_status(self, job_id: str) -> StatusResponse:
        """Fetch the current status of a job."""
        data = await self._request_json(
            "GET", f"/job-status/{job_id}", self.timeouts.status_request
        )
        try:
            return StatusResponse.from_dict(data)
        except (KeyError, ValueError, TypeError) as e:
            raise ServerError(
                200,
                message=f"Malformed status response: {data.get('status')!r}",
            ) from e

    async def get_history(self, file_id: Any) -> list[ProcessingHistoryRecord]:
        """Fetch the processing history of a file."""
        data = await self._request_json(
            "GET", f"/files/{file_id}/history", self.timeouts.history_request
        )
        items = data.get("history") or []
        if not isinstance(items, list):
            raise ServerError(
                200,
                message="Malformed history response: history is not a list",
            )

        records = []
        for item in items:
            if not isinstance(item, dict):
                logger.warning(
                    "history_record_skipped",
                    file_id=file_id,
                    error=f"Record is not an object: {item!r}",
                )
                continue
            try:
                records.append(ProcessingHistoryRecord.from_dict(item))
            except (ValueError, TypeError, AttributeError) as e:
                logger.warning(
                    "history_record_skipped",
                    file_id=file_id,
                    job_id=item.get("job_id"),
                    error=str(e),
                )
        return records

    async def get_generated_files(self, file_id: Any) -> dict:
        """Fetch artifacts generated for a file, grouped by kind."""
        data = await self._request_json(
            "GET", f"/files/{file_id}/generated", self.timeouts.history_request
        )
        return {
            kind: data.get(kind) or []
            for kind in ("macros", "instructions", "reports", "processed")
        }

    async def download(self, file_id: Any, destination: Path) -> Path:
        """
        Download a file to disk.

        Args:
            file_id: File to download
            destination: Target path

        Returns:
            Path written
        """
        destination = Path(destination)
        response = await self._send(
            "GET", f"/download/{file_id}", self.timeouts.download_request
        )
        destination.parent.mkdir(parents=True, exist_ok=True)
        destination.write_bytes(response.content)

        logger.info(
            "file_downloaded",
            file_id=file_id,
            path=str(destination),
            size=len(response.content),
        )
        return destination


def _server_error(response: httpx.Response) -> ServerError:
    """Build a ServerError from an error response body."""
    payload: dict = {}
    try:
        body = response.json()
        if isinstance(body, dict):
            payload = body
    except ValueError:
        pass

    return ServerError(
        response.status_code,
        message=payload.get("error") or response.reason_phrase or None,
        details=payload.get("details"),
        traceback=payload.get("traceback"),
        server_message=payload.get("error"),
    )
