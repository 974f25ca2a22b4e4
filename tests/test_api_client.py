import asyncio
import json

import httpx
import pytest

from conftest import mock_client
from xlsvc.client.errors import (
    ApiError,
    NetworkError,
    RequestError,
    ServerError,
    get_api_error_message,
)
from xlsvc.client.submitter import JobSubmitter
from xlsvc.models.jobs import JobStatus
from xlsvc.models.rules import FilterRule

RULES = [FilterRule("F", "0")]


def call(client, coro_fn):
    async def scenario():
        async with client:
            return await coro_fn(client)

    return asyncio.run(scenario())


def test_submit_job_posts_rules_with_token():
    seen = {}

    def handler(request):
        seen["method"] = request.method
        seen["path"] = request.url.path
        seen["auth"] = request.headers.get("Authorization")
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={"job_id": "job-123", "status": "processing", "estimated_time": "2-3 minutes"},
        )

    response = call(mock_client(handler), lambda c: c.submit_job(1, RULES))

    assert response.job_id == "job-123"
    assert response.estimated_time == "2-3 minutes"
    assert seen == {
        "method": "POST",
        "path": "/api/process-automated/1",
        "auth": "Bearer test-token",
        "body": {"filter_rules": [{"column": "F", "value": "0"}]},
    }


def test_submit_job_without_token_sends_no_auth_header():
    seen = {}

    def handler(request):
        seen["auth"] = request.headers.get("Authorization")
        return httpx.Response(200, json={"job_id": 5})

    response = call(mock_client(handler, token=None), lambda c: c.submit_job(1, RULES))

    assert seen["auth"] is None
    assert response.job_id == "5"


def test_server_error_carries_payload():
    def handler(request):
        return httpx.Response(
            500,
            json={"error": "Server error", "details": "dispatch failed", "traceback": "Traceback..."},
        )

    with pytest.raises(ServerError) as excinfo:
        call(mock_client(handler), lambda c: c.submit_job(1, RULES))

    error = excinfo.value
    assert error.status_code == 500
    assert error.message == "Server error"
    assert error.details == "dispatch failed"
    assert error.traceback == "Traceback..."
    assert get_api_error_message(error, "fallback") == "Server error"


def test_server_error_without_body_uses_reason_phrase():
    def handler(request):
        return httpx.Response(503, text="<html>down</html>")

    with pytest.raises(ServerError) as excinfo:
        call(mock_client(handler), lambda c: c.get_job_status("job-1"))

    assert excinfo.value.message == "Service Unavailable"
    assert excinfo.value.server_message is None
    assert get_api_error_message(excinfo.value, "Failed to check status") == "Failed to check status"


def test_submit_without_job_id_is_server_error():
    def handler(request):
        return httpx.Response(200, json={"status": "processing"})

    with pytest.raises(ServerError, match="missing job_id"):
        call(mock_client(handler), lambda c: c.submit_job(1, RULES))


@pytest.mark.parametrize(
    "exc",
    [
        httpx.ConnectError("connection refused"),
        httpx.ReadTimeout("timed out"),
        httpx.RemoteProtocolError("server disconnected"),
    ],
)
def test_transport_failures_are_network_errors(exc):
    def handler(request):
        raise exc

    with pytest.raises(NetworkError):
        call(mock_client(handler), lambda c: c.get_job_status("job-1"))


def test_unsupported_protocol_is_request_error():
    def handler(request):
        raise httpx.UnsupportedProtocol("Request URL has an unsupported protocol 'ftp://'")

    with pytest.raises(RequestError):
        call(mock_client(handler), lambda c: c.submit_job(1, RULES))


def test_unserializable_payload_is_request_error():
    def handler(request):
        return httpx.Response(200, json={"job_id": "never"})

    rules = [FilterRule("F", object())]
    with pytest.raises(RequestError):
        call(mock_client(handler), lambda c: c.submit_job(1, rules))


def test_get_job_status_completed():
    def handler(request):
        assert request.url.path == "/api/job-status/job-123"
        return httpx.Response(
            200,
            json={
                "status": "completed",
                "download_file_id": 20,
                "download_filename": "processed.xlsx",
                "report_file_id": 21,
                "report_filename": "report.xlsx",
            },
        )

    response = call(mock_client(handler), lambda c: c.get_job_status("job-123"))

    assert response.status == JobStatus.COMPLETED
    assert response.result_artifacts.download_file_id == 20
    assert response.result_artifacts.report_filename == "report.xlsx"


def test_get_job_status_unknown_status_is_malformed():
    def handler(request):
        return httpx.Response(200, json={"status": "exploded"})

    with pytest.raises(ServerError, match="Malformed status"):
        call(mock_client(handler), lambda c: c.get_job_status("job-1"))


def test_get_job_status_non_json_is_malformed():
    def handler(request):
        return httpx.Response(200, text="ok")

    with pytest.raises(ServerError, match="not JSON"):
        call(mock_client(handler), lambda c: c.get_job_status("job-1"))


def test_get_history_parses_records():
    def handler(request):
        assert request.url.path == "/api/files/3/history"
        return httpx.Response(
            200,
            json={
                "history": [
                    {
                        "job_id": 1,
                        "processed_at": "2024-01-15T10:30:00Z",
                        "status": "completed",
                        "deleted_rows": 5,
                        "filter_rules": [{"column": "F", "value": "0"}],
                        "processed_filename": "clean.xlsx",
                        "result_file_id": 9,
                    },
                    {"job_id": 2, "status": "failed", "filter_rules": None},
                    {"job_id": 3, "status": "mystery"},
                ]
            },
        )

    records = call(mock_client(handler), lambda c: c.get_history(3))

    assert [record.job_id for record in records] == ["1", "2"]
    assert records[0].status == JobStatus.COMPLETED
    assert records[0].deleted_row_count == 5
    assert records[0].completed_at == "2024-01-15T10:30:00Z"
    assert records[0].filter_rules == [FilterRule("F", "0")]
    assert records[1].filter_rules == []


def test_get_history_skips_records_in_wrong_shape():
    def handler(request):
        return httpx.Response(
            200,
            json={
                "history": [
                    "not-a-record",
                    {"job_id": 1, "status": "completed", "filter_rules": ["F=0"]},
                    {"job_id": 2, "status": "completed", "filter_rules": {"column": "F"}},
                    {"job_id": 3, "status": "completed", "filter_rules": 5},
                    {"job_id": 4, "status": "completed", "filter_rules": [{"column": "F", "value": "0"}]},
                ]
            },
        )

    records = call(mock_client(handler), lambda c: c.get_history(3))

    assert [record.job_id for record in records] == ["4"]


def test_get_history_non_list_is_malformed():
    def handler(request):
        return httpx.Response(200, json={"history": {"job_id": 1}})

    with pytest.raises(ServerError, match="not a list"):
        call(mock_client(handler), lambda c: c.get_history(3))


def test_get_generated_files_fills_missing_groups():
    def handler(request):
        return httpx.Response(200, json={"macros": [{"id": 1}], "reports": None})

    groups = call(mock_client(handler), lambda c: c.get_generated_files(3))

    assert groups == {"macros": [{"id": 1}], "instructions": [], "reports": [], "processed": []}


def test_download_writes_file(tmp_path):
    def handler(request):
        assert request.url.path == "/api/download/20"
        return httpx.Response(200, content=b"PK\x03\x04xlsx-bytes")

    target = tmp_path / "out" / "processed.xlsx"
    path = call(mock_client(handler), lambda c: c.download(20, target))

    assert path == target
    assert target.read_bytes() == b"PK\x03\x04xlsx-bytes"


def test_submitter_uses_short_timeout_and_reraises():
    seen = {}

    def handler(request):
        seen["timeout"] = request.extensions["timeout"]
        return httpx.Response(400, json={"error": "No file"})

    client = mock_client(handler)
    submitter = JobSubmitter(client, timeout=7.5)

    with pytest.raises(ApiError) as excinfo:
        call(client, lambda c: submitter.submit(1, RULES))

    assert isinstance(excinfo.value, ServerError)
    assert excinfo.value.message == "No file"
    assert seen["timeout"]["read"] == 7.5
