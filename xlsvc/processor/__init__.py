"""FSM-based job processing.

A job moves through explicit states:

    IDLE -> SUBMITTING -> PROCESSING -> COMPLETED
                 |             |
                 +-------------+-----> FAILED

COMPLETED and FAILED are terminal until a fresh submission. While
PROCESSING, a JobStatusPoller checks the server on a scheduler-driven
timer, backing off on request errors and giving up after repeated
failures or an exhausted attempt budget.
"""

from xlsvc.processor.log import ProcessingLog
from xlsvc.processor.machine import ProcessingStateMachine
from xlsvc.processor.matcher import (
    exists_matching_completed_job,
    find_matching_completed_job,
    matches,
)
from xlsvc.processor.poller import JobStatusPoller, backoff_delay
from xlsvc.processor.states import (
    TRANSITIONS,
    ConnectionLost,
    JobCompleted,
    JobFailed,
    JobState,
    JobTimedOut,
    PollAborted,
    PollEvent,
    PollingError,
    PollRetry,
    PollState,
    StillProcessing,
    TransitionError,
)

__all__ = [
    # States
    "JobState",
    "TRANSITIONS",
    "TransitionError",
    "PollState",
    "PollingError",
    # Events
    "PollEvent",
    "StillProcessing",
    "PollRetry",
    "JobCompleted",
    "JobFailed",
    "JobTimedOut",
    "ConnectionLost",
    "PollAborted",
    # Components
    "matches",
    "exists_matching_completed_job",
    "find_matching_completed_job",
    "JobStatusPoller",
    "backoff_delay",
    "ProcessingStateMachine",
    "ProcessingLog",
]
