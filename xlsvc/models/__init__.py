"""Data models for xlsvc."""

from xlsvc.models.jobs import (
    UNKNOWN_ERROR,
    JobStatus,
    ProcessingHistoryRecord,
    ProcessingJob,
    ResultArtifacts,
    StatusResponse,
    SubmitResponse,
)
from xlsvc.models.rules import (
    DEFAULT_FILTER_RULES,
    FilterRule,
    FilterRuleSet,
    rules_from_wire,
    rules_to_wire,
)

__all__ = [
    # Rule models
    "FilterRule",
    "FilterRuleSet",
    "DEFAULT_FILTER_RULES",
    "rules_from_wire",
    "rules_to_wire",
    # Job models
    "JobStatus",
    "ResultArtifacts",
    "SubmitResponse",
    "StatusResponse",
    "ProcessingJob",
    "ProcessingHistoryRecord",
    "UNKNOWN_ERROR",
]
