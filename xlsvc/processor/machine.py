"""FSM driving one processing job from submission to a terminal state."""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Iterable, Optional, Sequence

from xlsvc.client.api import ApiClient
from xlsvc.client.errors import (
    ApiError,
    NetworkError,
    RequestError,
    ServerError,
    get_api_error_message,
)
from xlsvc.client.submitter import JobSubmitter
from xlsvc.config.settings import PollingConfig
from xlsvc.models.jobs import (
    UNKNOWN_ERROR,
    JobStatus,
    ProcessingHistoryRecord,
    ProcessingJob,
)
from xlsvc.models.rules import FilterRule
from xlsvc.processor.log import ProcessingLog
from xlsvc.processor.matcher import exists_matching_completed_job
from xlsvc.processor.poller import EventHandler, JobStatusPoller
from xlsvc.processor.states import (
    TRANSITIONS,
    ConnectionLost,
    JobCompleted,
    JobFailed,
    JobState,
    JobTimedOut,
    PollAborted,
    PollEvent,
    PollRetry,
    PollState,
    StillProcessing,
    TransitionError,
)
from xlsvc.runner.scheduler import Scheduler
from xlsvc.utils.logging import clear_job_context, get_logger, set_job_context

logger = get_logger("processor.machine")

# Log lines other tools match on; keep the text stable
MSG_SUBMIT_START = "Starting automated processing via GitHub Actions..."
MSG_SUBMIT_OK = "✅ Processing job started on GitHub Actions"
MSG_SUBMIT_FAILED = "❌ Failed to start processing"
MSG_NO_FILE = "❌ ValidationError: No file selected"
MSG_HEARTBEAT = "🔄 Still processing... {min} min {sec} sec"
MSG_COMPLETED = "✅ Processing completed on GitHub Actions"
MSG_FAILED = "❌ Processing failed on GitHub Actions"
MSG_LOST_CONNECTION = "❌ Lost connection to processing server"
MSG_TIMEOUT = "⏰ Processing timeout - job may still be running"
MSG_TIMEOUT_LOST_CONNECTION = "⏰ Processing timeout - lost connection to processing server"
MSG_CANCELLED = "⏹️ Processing cancelled"
MSG_POLL_ABORTED = "❌ Status polling stopped unexpectedly"
MSG_FILE_CHANGED = "⏹️ Processing stopped: a different file was selected"

PollerFactory = Callable[[EventHandler], JobStatusPoller]
Listener = Callable[["ProcessingStateMachine"], None]


class ProcessingStateMachine:
    """
    Finite State Machine for one selected file's processing job.

    IDLE -> SUBMITTING -> PROCESSING -> COMPLETED | FAILED

    Owns the ProcessingJob and the current PollState, drives the poller and
    narrates every transition into the ProcessingLog. Terminal outcomes
    never raise; they end in FAILED with a descriptive log entry.
    """

    def __init__(
        self,
        client: ApiClient,
        scheduler: Scheduler,
        config: Optional[PollingConfig] = None,
        submitter: Optional[JobSubmitter] = None,
        log: Optional[ProcessingLog] = None,
        poller_factory: Optional[PollerFactory] = None,
    ) -> None:
        """
        Initialize the state machine.

        Args:
            client: API client shared by submitter and poller
            scheduler: Clock and timer source for polling
            config: Polling settings
            submitter: Job submitter (defaults to one on `client`)
            log: Processing log to narrate into
            poller_factory: Builds a poller for an event handler
        """
        self.client = client
        self.scheduler = scheduler
        self.config = config or PollingConfig()
        self.submitter = submitter or JobSubmitter(client)
        self.log = log or ProcessingLog()
        self._poller_factory = poller_factory or self._default_poller

        self.state = JobState.IDLE
        self.selected_file_id: Optional[Any] = None
        self.job: Optional[ProcessingJob] = None
        self.poll_state: Optional[PollState] = None
        self.error: Optional[str] = None

        self._poller: Optional[JobStatusPoller] = None
        # Bumped whenever the current job is abandoned; stale callbacks compare against it
        self._generation = 0
        self._settled: Optional[asyncio.Event] = None
        self._listeners: list[Listener] = []

    def _default_poller(self, on_event: EventHandler) -> JobStatusPoller:
        return JobStatusPoller(self.client, self.scheduler, on_event, self.config)

    def add_listener(self, listener: Listener) -> None:
        """Call `listener(machine)` after every state change."""
        self._listeners.append(listener)

    # -- file selection -------------------------------------------------

    def select_file(self, file_id: Any) -> None:
        """
        Select the file subsequent submissions run against.

        Switching to a different file cancels any live poller and discards
        the current job before anything new can start, then returns to IDLE.
        """
        if file_id == self.selected_file_id:
            return

        previous = self.selected_file_id
        was_busy = self.state.is_busy()
        self._abandon_job()
        self.selected_file_id = file_id
        self.error = None

        if self.state != JobState.IDLE:
            if was_busy:
                self.log.append(MSG_FILE_CHANGED)
            self.log.append(f"📄 Switched to file {file_id}")
            self._transition(JobState.IDLE, reason="file_changed")

        logger.info("file_selected", file_id=file_id, previous_file_id=previous)

    def can_submit(
        self,
        filter_rules: Sequence[FilterRule],
        history: Optional[Iterable[ProcessingHistoryRecord]] = None,
    ) -> bool:
        """Whether the submit action should be offered."""
        if self.selected_file_id is None or self.state.is_busy():
            return False
        if history is not None and exists_matching_completed_job(filter_rules, history):
            return False
        return True

    # -- submission -----------------------------------------------------

    async def submit(self, filter_rules: Sequence[FilterRule]) -> JobState:
        """
        Start a new job for the selected file.

        Returns:
            State after the submission resolved (PROCESSING or FAILED), or the
            unchanged state when no file is selected

        Raises:
            TransitionError: If a job is already submitting or processing
        """
        if self.selected_file_id is None:
            self.log.append(MSG_NO_FILE)
            logger.warning("submit_refused", reason="no_file_selected")
            return self.state

        if not self.can_transition_to(JobState.SUBMITTING):
            raise TransitionError(self.state, JobState.SUBMITTING)

        self._abandon_job()
        self.log.reset()
        self.error = None
        self._settled = asyncio.Event()

        generation = self._generation
        file_id = self.selected_file_id
        rules = list(filter_rules)
        set_job_context(file_id=file_id)

        self.log.append(MSG_SUBMIT_START)
        self._transition(JobState.SUBMITTING)

        try:
            response = await self.submitter.submit(file_id, rules)
        except ApiError as e:
            if generation != self._generation:
                logger.info("submission_discarded", file_id=file_id)
                return self.state
            self._fail_submission(e)
            return self.state

        if generation != self._generation:
            logger.info("submission_discarded", file_id=file_id, job_id=response.job_id)
            return self.state

        self.job = ProcessingJob(
            job_id=response.job_id,
            file_id=file_id,
            filter_rules=rules,
            status=JobStatus.PENDING,
            estimated_time=response.estimated_time,
        )
        set_job_context(job_id=response.job_id, file_id=file_id)

        self.log.append(MSG_SUBMIT_OK)
        self.log.append(f"Job ID: {response.job_id}")
        self.log.append(f"Estimated time: {response.estimated_time or 'unknown'}")
        self._transition(JobState.PROCESSING)

        self._poller = self._poller_factory(
            lambda event: self._on_poll_event(generation, event)
        )
        self.poll_state = self._poller.start(response.job_id)
        return self.state

    def _fail_submission(self, error: ApiError) -> None:
        self.error = get_api_error_message(error, "Failed to start processing")
        lines = [MSG_SUBMIT_FAILED]

        if isinstance(error, ServerError):
            lines.append(f"Server error ({error.status_code}): {error.message}")
            if error.details:
                lines.append(f"Details: {error.details}")
            if error.traceback:
                logger.debug("server_traceback", traceback=error.traceback)
        elif isinstance(error, NetworkError):
            lines.append("Network error: no response from server")
            lines.append(f"Error: {error.message}")
        elif isinstance(error, RequestError):
            lines.append(f"Request error: {error.message}")
        else:
            lines.append(f"Error: {error.message}")

        self.log.extend(lines)
        self._transition(JobState.FAILED, error_kind=error.kind)
        self._finish()

    # -- polling --------------------------------------------------------

    def _on_poll_event(self, generation: int, event: PollEvent) -> None:
        if generation != self._generation or self.job is None:
            return

        if isinstance(event, StillProcessing):
            self.poll_state = event.state
            self.job.status = JobStatus.PROCESSING
            if event.heartbeat:
                minutes, seconds = divmod(int(event.elapsed), 60)
                self.log.append(MSG_HEARTBEAT.format(min=minutes, sec=seconds))

        elif isinstance(event, PollRetry):
            self.poll_state = event.state
            self.log.append(
                f"⚠️ Status check failed ({event.error.cause.message}), "
                f"retrying in {event.delay:g}s"
            )

        else:
            # Terminal: settle waiters even if a listener raises
            try:
                self._on_terminal_event(event)
            finally:
                self._finish()

    def _on_terminal_event(self, event: PollEvent) -> None:
        if isinstance(event, JobCompleted):
            self.job.status = JobStatus.COMPLETED
            self.job.result_artifacts = event.artifacts
            lines = [MSG_COMPLETED]
            if event.artifacts.download_filename:
                lines.append(f"Processed file: {event.artifacts.download_filename}")
            if event.artifacts.report_filename:
                lines.append(f"Report: {event.artifacts.report_filename}")
            self.log.extend(lines)
            self._transition(JobState.COMPLETED)

        elif isinstance(event, JobFailed):
            self._fail_job(
                event.error or UNKNOWN_ERROR,
                [MSG_FAILED, f"Error: {event.error or UNKNOWN_ERROR}"],
                reason="server_failure",
            )

        elif isinstance(event, JobTimedOut):
            if event.lost_connection:
                self._fail_job(
                    "Processing timeout - lost connection to processing server",
                    [MSG_TIMEOUT_LOST_CONNECTION],
                    reason="timeout_lost_connection",
                )
            else:
                self._fail_job(
                    "Processing timeout - job may still be running",
                    [MSG_TIMEOUT],
                    reason="timeout",
                )

        elif isinstance(event, ConnectionLost):
            cause = event.error.cause.message if event.error else UNKNOWN_ERROR
            self._fail_job(
                "Lost connection to processing server",
                [MSG_LOST_CONNECTION, f"Error: {cause}"],
                reason="lost_connection",
            )

        elif isinstance(event, PollAborted):
            self._fail_job(
                "Status polling stopped unexpectedly",
                [MSG_POLL_ABORTED, f"Error: {event.error or UNKNOWN_ERROR}"],
                reason="poll_aborted",
            )

    def _fail_job(self, message: str, lines: list[str], reason: str) -> None:
        self.job.status = JobStatus.FAILED
        self.job.error = message
        self.error = message
        self.log.extend(lines)
        self._transition(JobState.FAILED, reason=reason)

    # -- control --------------------------------------------------------

    def cancel(self) -> None:
        """Stop tracking the current job. The server-side job is not aborted."""
        if not self.state.is_busy():
            return
        self._abandon_job()
        self.error = "Processing cancelled"
        self.log.append(MSG_CANCELLED)
        self._transition(JobState.FAILED, reason="cancelled")
        self._finish()

    async def wait(self) -> JobState:
        """Wait until the current job reaches a terminal state (or is abandoned)."""
        if self._settled is not None:
            await self._settled.wait()
        return self.state

    def can_transition_to(self, new_state: JobState) -> bool:
        """Check if transition to new_state is valid."""
        return new_state in TRANSITIONS.get(self.state, set())

    def _transition(self, new_state: JobState, **context: Any) -> None:
        if not self.can_transition_to(new_state):
            raise TransitionError(self.state, new_state)

        old_state = self.state
        logger.info(
            "state_transition",
            from_state=old_state.name,
            to_state=new_state.name,
            **context,
        )
        self._set_state(new_state)

    def _set_state(self, new_state: JobState) -> None:
        self.state = new_state
        for listener in self._listeners:
            try:
                listener(self)
            except Exception as e:
                logger.warning(
                    "state_listener_failed",
                    state=new_state.name,
                    error=str(e),
                    error_type=type(e).__name__,
                )

    def _abandon_job(self) -> None:
        """Cancel the poller and drop job/poll state; stale callbacks become no-ops."""
        self._generation += 1
        if self._poller is not None:
            self._poller.cancel()
            self._poller = None
        self.job = None
        self.poll_state = None
        if self._settled is not None:
            self._settled.set()
        clear_job_context()

    def _finish(self) -> None:
        self._poller = None
        self.poll_state = None
        if self._settled is not None:
            self._settled.set()
        clear_job_context()

    def to_dict(self) -> dict:
        """Snapshot for display and JSON output."""
        return {
            "state": self.state.name,
            "file_id": self.selected_file_id,
            "job": self.job.to_dict() if self.job else None,
            "poll_state": self.poll_state.to_dict() if self.poll_state else None,
            "error": self.error,
            "log": self.log.lines,
        }
