"""Scheduling and end-to-end job execution.

The orchestrator is imported from xlsvc.runner.orchestrator; it depends on
the processor package, which itself schedules through this package.
"""

from xlsvc.runner.scheduler import (
    AsyncioScheduler,
    ManualScheduler,
    Scheduler,
    Timer,
)

__all__ = [
    "Scheduler",
    "Timer",
    "AsyncioScheduler",
    "ManualScheduler",
]
