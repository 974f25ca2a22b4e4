import pytest

from xlsvc.models.jobs import (
    JobStatus,
    ProcessingHistoryRecord,
    ProcessingJob,
    StatusResponse,
    SubmitResponse,
)
from xlsvc.models.rules import DEFAULT_FILTER_RULES, FilterRule, rules_from_wire, rules_to_wire


def test_parse_rule_upper_cases_column():
    assert FilterRule.parse("f=0") == FilterRule("F", "0")
    assert FilterRule.parse(" aa = N/A ") == FilterRule("AA", "N/A")
    assert FilterRule.parse("G=") == FilterRule("G", "")


@pytest.mark.parametrize("text", ["F", "=0", "  =x", ""])
def test_parse_rule_rejects_bad_text(text):
    with pytest.raises(ValueError):
        FilterRule.parse(text)


def test_rule_display():
    assert str(FilterRule("F", "0")) == "F = '0'"


def test_default_rules():
    assert [rule.column for rule in DEFAULT_FILTER_RULES] == ["F", "G", "H", "I"]
    assert {rule.value for rule in DEFAULT_FILTER_RULES} == {"0"}


def test_rules_wire_format():
    wire = rules_to_wire(DEFAULT_FILTER_RULES[:2])

    assert wire == [{"column": "F", "value": "0"}, {"column": "G", "value": "0"}]
    assert rules_from_wire(None) == []
    assert rules_from_wire([{"column": "H", "value": 0}]) == [FilterRule("H", "0")]


def test_job_status_terminal():
    assert JobStatus.COMPLETED.is_terminal()
    assert JobStatus.FAILED.is_terminal()
    assert not JobStatus.PENDING.is_terminal()
    assert not JobStatus.PROCESSING.is_terminal()


def test_submit_response_requires_job_id():
    assert SubmitResponse.from_dict({"job_id": 42}).job_id == "42"
    with pytest.raises(KeyError):
        SubmitResponse.from_dict({"status": "processing"})


def test_status_response_artifacts_only_when_completed():
    processing = StatusResponse.from_dict({"status": "processing", "download_file_id": 1})
    completed = StatusResponse.from_dict({"status": "completed", "download_file_id": 1})

    assert processing.result_artifacts is None
    assert completed.result_artifacts.download_file_id == 1
    assert completed.result_artifacts.report_file_id is None


def test_status_response_empty_error_is_none():
    assert StatusResponse.from_dict({"status": "failed", "error": ""}).error is None
    with pytest.raises(ValueError):
        StatusResponse.from_dict({"status": "queued"})


def test_history_record_from_wire():
    record = ProcessingHistoryRecord.from_dict({
        "job_id": 7,
        "status": "completed",
        "deleted_rows": 12,
        "processed_at": "2024-03-01T09:00:00Z",
        "filter_rules": [{"column": "F", "value": "0"}],
    })

    assert record.job_id == "7"
    assert record.deleted_row_count == 12
    assert record.to_dict()["deleted_rows"] == 12
    assert record.to_dict()["processed_at"] == "2024-03-01T09:00:00Z"


def test_processing_job_to_dict():
    job = ProcessingJob(job_id="j1", file_id=3, filter_rules=[FilterRule("F", "0")])

    data = job.to_dict()

    assert data["status"] == "pending"
    assert data["filter_rules"] == [{"column": "F", "value": "0"}]
    assert data["result_artifacts"] is None


@pytest.mark.parametrize("wire", [["F=0"], {"column": "F", "value": "0"}, "F=0", [None]])
def test_rules_from_wire_rejects_wrong_shape(wire):
    with pytest.raises(ValueError):
        rules_from_wire(wire)
