"""Timer-driven job status polling with bounded retries and backoff."""

from __future__ import annotations

from typing import Callable, Optional

from xlsvc.client.api import ApiClient
from xlsvc.client.errors import ApiError
from xlsvc.config.settings import PollingConfig
from xlsvc.models.jobs import JobStatus, ResultArtifacts, StatusResponse
from xlsvc.processor.states import (
    TERMINAL_EVENTS,
    ConnectionLost,
    JobCompleted,
    JobFailed,
    JobTimedOut,
    PollAborted,
    PollEvent,
    PollingError,
    PollRetry,
    PollState,
    StillProcessing,
)
from xlsvc.runner.scheduler import Scheduler, Timer
from xlsvc.utils.logging import get_logger

logger = get_logger("processor.poller")

EventHandler = Callable[[PollEvent], None]


def backoff_delay(
    consecutive_errors: int,
    interval: float = 5.0,
    factor: float = 1.5,
    max_interval: float = 30.0,
) -> float:
    """
    Delay before retrying after `consecutive_errors` failed ticks.

    interval * factor ** (n - 1), capped at max_interval.
    """
    exponent = max(consecutive_errors - 1, 0)
    return min(interval * factor ** exponent, max_interval)


class JobStatusPoller:
    """
    Polls one job until it completes, fails, times out or loses connection.

    Ticks are strictly sequential: the next tick is scheduled only once the
    current one has resolved. Each tick receives the PollState produced by
    the previous one and reports the new state in the event it emits, so
    the poller itself holds no counters.

    Cancellation is cooperative. It is checked before a tick runs and again
    after its request returns; after cancel() no request is started and no
    event is emitted.
    """

    def __init__(
        self,
        client: ApiClient,
        scheduler: Scheduler,
        on_event: EventHandler,
        config: Optional[PollingConfig] = None,
    ) -> None:
        """
        Initialize the poller.

        Args:
            client: API client used for status requests
            scheduler: Clock and timer source
            on_event: Called with one event per resolved tick
            config: Polling intervals and limits
        """
        self.client = client
        self.scheduler = scheduler
        self.on_event = on_event
        self.config = config or PollingConfig()

        self._timer: Optional[Timer] = None
        self._started = False
        self._cancelled = False
        self._finished = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def active(self) -> bool:
        """True between start() and a terminal event or cancel()."""
        return self._started and not (self._cancelled or self._finished)

    def start(self, job_id: str) -> PollState:
        """
        Begin polling `job_id`. The first tick runs without delay.

        Returns:
            The initial PollState

        Raises:
            RuntimeError: If this poller was already started
        """
        if self._started:
            raise RuntimeError("Poller already started; create a new one per job")
        self._started = True

        state = PollState(
            job_id=job_id,
            max_attempts=self.config.max_attempts,
            interval=self.config.interval,
            max_interval=self.config.max_interval,
            backoff_factor=self.config.backoff_factor,
            started_at=self.scheduler.now(),
        )
        logger.info("polling_started", **state.to_dict())
        self._schedule(state, 0.0)
        return state

    def cancel(self) -> None:
        """Stop polling. A request already in flight has its result discarded."""
        if self._cancelled:
            return
        self._cancelled = True
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        logger.info("polling_cancelled")

    def _schedule(self, state: PollState, delay: float) -> None:
        self._timer = self.scheduler.call_later(delay, lambda: self._tick(state))

    async def _tick(self, state: PollState) -> None:
        if self._cancelled or self._finished:
            return
        self._timer = None

        try:
            try:
                response = await self.client.get_job_status(state.job_id)
            except ApiError as e:
                if self._cancelled:
                    return
                self._handle_error(state, e)
                return

            if self._cancelled:
                return
            self._handle_response(state, response)

        except Exception as e:
            logger.error(
                "poll_tick_failed",
                job_id=state.job_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            if self._cancelled or self._finished:
                raise
            self._emit(PollAborted(state=state, error=f"{type(e).__name__}: {e}"))

    def _handle_response(self, state: PollState, response: StatusResponse) -> None:
        logger.debug(
            "poll_tick",
            job_id=state.job_id,
            status=response.status.value,
            attempt=state.attempt_count + 1,
        )

        if response.status == JobStatus.COMPLETED:
            self._emit(JobCompleted(
                state=state,
                artifacts=response.result_artifacts or ResultArtifacts(),
            ))
            return

        if response.status == JobStatus.FAILED:
            self._emit(JobFailed(state=state, error=response.error))
            return

        state = state.record_response()
        if state.attempts_exhausted:
            self._emit(JobTimedOut(state=state, lost_connection=False))
            return

        heartbeat = state.attempt_count % self.config.heartbeat_every == 0
        self._emit(StillProcessing(
            state=state,
            elapsed=self.scheduler.now() - state.started_at,
            heartbeat=heartbeat,
        ))
        if not self._cancelled:
            self._schedule(state, state.interval)

    def _handle_error(self, state: PollState, cause: ApiError) -> None:
        state = state.record_error()
        error = PollingError(cause, state)
        logger.warning(
            "poll_error",
            job_id=state.job_id,
            error_kind=cause.kind,
            error=str(cause),
            consecutive_errors=state.consecutive_error_count,
        )

        if state.consecutive_error_count >= self.config.max_consecutive_errors:
            self._emit(ConnectionLost(state=state, error=error))
            return

        if state.attempt_count < state.max_attempts:
            delay = backoff_delay(
                state.consecutive_error_count,
                state.interval,
                state.backoff_factor,
                state.max_interval,
            )
            self._emit(PollRetry(state=state, error=error, delay=delay))
            if not self._cancelled:
                self._schedule(state, delay)
            return

        self._emit(JobTimedOut(state=state, lost_connection=True))

    def _emit(self, event: PollEvent) -> None:
        if self._cancelled:
            return
        if isinstance(event, TERMINAL_EVENTS):
            self._finished = True
            logger.info(
                "polling_finished",
                job_id=event.state.job_id,
                outcome=type(event).__name__,
                attempts=event.state.attempt_count,
            )
        self.on_event(event)
