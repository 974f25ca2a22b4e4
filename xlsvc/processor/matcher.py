"""Filter rule set comparison against prior job results."""

from __future__ import annotations

from collections import Counter
from typing import Iterable, Optional, Sequence

from xlsvc.models.jobs import JobStatus, ProcessingHistoryRecord
from xlsvc.models.rules import FilterRule


def matches(a: Sequence[FilterRule], b: Sequence[FilterRule]) -> bool:
    """
    Compare two rule sets, ignoring order.

    Equal iff both have the same length and every rule in one pairs off with
    a rule of the same (column, value) in the other. Duplicates are counted,
    not collapsed, and a subset never matches.
    """
    if len(a) != len(b):
        return False
    return Counter(a) == Counter(b)


def find_matching_completed_job(
    candidate: Sequence[FilterRule],
    history: Iterable[ProcessingHistoryRecord],
) -> Optional[ProcessingHistoryRecord]:
    """Return the first completed record whose rules match `candidate`."""
    for record in history:
        if record.status == JobStatus.COMPLETED and matches(
            candidate, record.filter_rules
        ):
            return record
    return None


def exists_matching_completed_job(
    candidate: Sequence[FilterRule],
    history: Iterable[ProcessingHistoryRecord],
) -> bool:
    """True if a completed job already ran with the same rules."""
    return find_matching_completed_job(candidate, history) is not None
