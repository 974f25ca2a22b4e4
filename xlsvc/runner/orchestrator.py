"""End-to-end job run: redundancy check, submission, polling."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional, Sequence

import httpx

from xlsvc.client.api import ApiClient
from xlsvc.client.errors import ApiError
from xlsvc.config.settings import ClientConfig
from xlsvc.models.jobs import ProcessingHistoryRecord
from xlsvc.models.rules import FilterRule
from xlsvc.processor.machine import ProcessingStateMachine
from xlsvc.processor.matcher import find_matching_completed_job
from xlsvc.processor.states import JobState
from xlsvc.runner.scheduler import AsyncioScheduler, Scheduler
from xlsvc.utils.logging import get_logger

logger = get_logger("runner.orchestrator")


@dataclass
class JobOutcome:
    """Result of run_job()."""

    state: JobState
    redundant_with: Optional[ProcessingHistoryRecord] = None
    machine: Optional[ProcessingStateMachine] = None
    log: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.state == JobState.COMPLETED

    @property
    def submitted(self) -> bool:
        """Whether the server accepted the job (polling started)."""
        return self.machine is not None and self.machine.job is not None

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON output."""
        data = self.machine.to_dict() if self.machine else {"state": self.state.name}
        data["state"] = self.state.name
        data["log"] = self.log
        if self.redundant_with is not None:
            data["redundant_with"] = self.redundant_with.to_dict()
        return data


async def run_job(
    config: ClientConfig,
    file_id: Any,
    filter_rules: Sequence[FilterRule],
    force: bool = False,
    scheduler: Optional[Scheduler] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> JobOutcome:
    """
    Run one job for `file_id` to a terminal state.

    Unless `force` is set, the file's history is checked first and the run
    is skipped when a completed job already used the same rules. A history
    request failure does not block the run.

    Args:
        config: Client configuration
        file_id: File to process
        filter_rules: Rules to apply
        force: Submit even if an identical completed job exists
        scheduler: Timer source (defaults to the running event loop)
        transport: Optional httpx transport

    Returns:
        JobOutcome
    """
    scheduler = scheduler or AsyncioScheduler()
    rules = list(filter_rules)

    async with ApiClient.from_config(config, transport=transport) as client:
        if not force:
            try:
                history = await client.get_history(file_id)
            except ApiError as e:
                logger.warning("history_unavailable", file_id=file_id, error=str(e))
                history = []

            previous = find_matching_completed_job(rules, history)
            if previous is not None:
                logger.info(
                    "job_redundant",
                    file_id=file_id,
                    previous_job_id=previous.job_id,
                )
                return JobOutcome(state=JobState.IDLE, redundant_with=previous)

        machine = ProcessingStateMachine(client, scheduler, config.polling)
        machine.select_file(file_id)

        await machine.submit(rules)
        await machine.wait()

        if isinstance(scheduler, AsyncioScheduler):
            await scheduler.drain()

        logger.info(
            "job_finished",
            file_id=file_id,
            state=machine.state.name,
            error=machine.error,
        )
        return JobOutcome(state=machine.state, machine=machine, log=machine.log.lines)
