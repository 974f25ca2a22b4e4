"""Data models for processing jobs and their history."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from xlsvc.models.rules import FilterRuleSet, rules_from_wire, rules_to_wire

UNKNOWN_ERROR = "Unknown error"


class JobStatus(Enum):
    """Server-side status of a processing job."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    def is_terminal(self) -> bool:
        """Check if this is a terminal status."""
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


@dataclass
class ResultArtifacts:
    """Downloadable outputs of a completed job."""

    download_file_id: Optional[Any] = None
    download_filename: Optional[str] = None
    report_file_id: Optional[Any] = None
    report_filename: Optional[str] = None

    def to_dict(self) -> dict:
        """Convert to wire format."""
        return {
            "download_file_id": self.download_file_id,
            "download_filename": self.download_filename,
            "report_file_id": self.report_file_id,
            "report_filename": self.report_filename,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ResultArtifacts":
        """Create from wire format."""
        return cls(
            download_file_id=data.get("download_file_id"),
            download_filename=data.get("download_filename"),
            report_file_id=data.get("report_file_id"),
            report_filename=data.get("report_filename"),
        )


@dataclass
class SubmitResponse:
    """Response to a job submission."""

    job_id: str
    estimated_time: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "SubmitResponse":
        """Create from wire format. Raises KeyError without a job_id."""
        return cls(
            job_id=str(data["job_id"]),
            estimated_time=data.get("estimated_time"),
        )


@dataclass
class StatusResponse:
    """One well-formed job status response."""

    status: JobStatus
    result_artifacts: Optional[ResultArtifacts] = None
    error: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "StatusResponse":
        """
        Create from wire format.

        Raises:
            KeyError: If the status field is missing
            ValueError: If the status is not a known value
        """
        status = JobStatus(data["status"])
        artifacts = None
        if status == JobStatus.COMPLETED:
            artifacts = ResultArtifacts.from_dict(data)
        return cls(
            status=status,
            result_artifacts=artifacts,
            error=data.get("error") or None,
        )


@dataclass
class ProcessingJob:
    """
    A job tracked by the client from submission to a terminal status.

    Attributes:
        job_id: Opaque server-assigned identifier
        file_id: File the job runs against
        filter_rules: Rules sent with the submission
        status: Last known server status
        result_artifacts: Outputs once completed
        error: Failure description once failed
        estimated_time: Server's estimate returned at submission
    """

    job_id: str
    file_id: Any
    filter_rules: FilterRuleSet = field(default_factory=list)
    status: JobStatus = JobStatus.PENDING
    result_artifacts: Optional[ResultArtifacts] = None
    error: Optional[str] = None
    estimated_time: Optional[str] = None

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "job_id": self.job_id,
            "file_id": self.file_id,
            "filter_rules": rules_to_wire(self.filter_rules),
            "status": self.status.value,
            "result_artifacts": (
                self.result_artifacts.to_dict() if self.result_artifacts else None
            ),
            "error": self.error,
            "estimated_time": self.estimated_time,
        }


@dataclass
class ProcessingHistoryRecord:
    """A past job as reported by the history endpoint (read-only)."""

    job_id: str
    status: JobStatus
    filter_rules: FilterRuleSet = field(default_factory=list)
    deleted_row_count: Optional[int] = None
    completed_at: Optional[str] = None
    processed_filename: Optional[str] = None
    result_file_id: Optional[Any] = None

    def to_dict(self) -> dict:
        """Convert to wire format."""
        return {
            "job_id": self.job_id,
            "status": self.status.value,
            "filter_rules": rules_to_wire(self.filter_rules),
            "deleted_rows": self.deleted_row_count,
            "processed_at": self.completed_at,
            "processed_filename": self.processed_filename,
            "result_file_id": self.result_file_id,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ProcessingHistoryRecord":
        """Create from wire format."""
        return cls(
            job_id=str(data.get("job_id", "")),
            status=JobStatus(data.get("status", "pending")),
            filter_rules=rules_from_wire(data.get("filter_rules")),
            deleted_row_count=data.get("deleted_rows"),
            completed_at=data.get("processed_at"),
            processed_filename=data.get("processed_filename"),
            result_file_id=data.get("result_file_id"),
        )
