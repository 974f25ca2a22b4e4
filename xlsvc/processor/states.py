"""FSM state, poll state and poller event definitions."""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum, auto
from typing import Optional, Union

from xlsvc.client.errors import ApiError
from xlsvc.models.jobs import ResultArtifacts


class JobState(Enum):
    """Client-side lifecycle of a processing job."""

    IDLE = auto()
    SUBMITTING = auto()
    PROCESSING = auto()

    # Terminal states
    COMPLETED = auto()
    FAILED = auto()

    def is_terminal(self) -> bool:
        """Check if this is a terminal state."""
        return self in (JobState.COMPLETED, JobState.FAILED)

    def is_busy(self) -> bool:
        """Check if a job is in flight (submit must be disabled)."""
        return self in (JobState.SUBMITTING, JobState.PROCESSING)


# Valid state transitions. Any non-idle state returns to IDLE when a
# different file is selected.
TRANSITIONS: dict[JobState, set[JobState]] = {
    JobState.IDLE: {JobState.SUBMITTING},
    JobState.SUBMITTING: {JobState.PROCESSING, JobState.FAILED, JobState.IDLE},
    JobState.PROCESSING: {JobState.COMPLETED, JobState.FAILED, JobState.IDLE},
    # A fresh submission restarts from a terminal state
    JobState.COMPLETED: {JobState.SUBMITTING, JobState.IDLE},
    JobState.FAILED: {JobState.SUBMITTING, JobState.IDLE},
}


class TransitionError(Exception):
    """Invalid state transition."""

    def __init__(self, from_state: JobState, to_state: JobState) -> None:
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            f"Invalid transition: {from_state.name} -> {to_state.name}"
        )


@dataclass(frozen=True)
class PollState:
    """
    Counters for one polling run, replaced (never mutated) on every tick.

    Attributes:
        job_id: Job being polled
        attempt_count: Well-formed non-terminal responses seen so far
        consecutive_error_count: Failed ticks since the last good response
        max_attempts: Attempt budget before timing out
        interval: Seconds between ticks while the job is running
        max_interval: Upper bound on the backoff delay
        backoff_factor: Growth factor of the delay per consecutive error
        started_at: Scheduler time at which polling started
    """

    job_id: str
    attempt_count: int = 0
    consecutive_error_count: int = 0
    max_attempts: int = 60
    interval: float = 5.0
    max_interval: float = 30.0
    backoff_factor: float = 1.5
    started_at: float = 0.0

    def record_response(self) -> "PollState":
        """State after a well-formed, still-running status response."""
        return replace(
            self,
            attempt_count=min(self.attempt_count + 1, self.max_attempts),
            consecutive_error_count=0,
        )

    def record_error(self) -> "PollState":
        """State after a failed tick."""
        return replace(self, consecutive_error_count=self.consecutive_error_count + 1)

    @property
    def attempts_exhausted(self) -> bool:
        return self.attempt_count >= self.max_attempts

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "job_id": self.job_id,
            "attempt_count": self.attempt_count,
            "consecutive_error_count": self.consecutive_error_count,
            "max_attempts": self.max_attempts,
            "interval": self.interval,
            "max_interval": self.max_interval,
            "backoff_factor": self.backoff_factor,
        }


class PollingError(Exception):
    """A single failed poll tick; recoverable until errors pile up."""

    def __init__(self, cause: ApiError, state: PollState) -> None:
        self.cause = cause
        self.state = state
        super().__init__(
            f"Poll for job {state.job_id} failed "
            f"({state.consecutive_error_count} consecutive): {cause}"
        )


# Events emitted by the poller, one per tick


@dataclass(frozen=True)
class StillProcessing:
    """Job still pending/processing; next tick scheduled."""

    state: PollState
    elapsed: float = 0.0
    heartbeat: bool = False


@dataclass(frozen=True)
class PollRetry:
    """Tick failed; retrying after `delay` seconds."""

    state: PollState
    error: PollingError
    delay: float


@dataclass(frozen=True)
class JobCompleted:
    state: PollState
    artifacts: ResultArtifacts


@dataclass(frozen=True)
class JobFailed:
    state: PollState
    error: Optional[str] = None


@dataclass(frozen=True)
class JobTimedOut:
    """Attempt budget spent. `lost_connection` when the last ticks were failing."""

    state: PollState
    lost_connection: bool = False


@dataclass(frozen=True)
class ConnectionLost:
    state: PollState
    error: Optional[PollingError] = None


@dataclass(frozen=True)
class PollAborted:
    """A tick failed with an unexpected, non-transport error."""

    state: PollState
    error: str


PollEvent = Union[
    StillProcessing,
    PollRetry,
    JobCompleted,
    JobFailed,
    JobTimedOut,
    ConnectionLost,
    PollAborted,
]

TERMINAL_EVENTS = (JobCompleted, JobFailed, JobTimedOut, ConnectionLost, PollAborted)
