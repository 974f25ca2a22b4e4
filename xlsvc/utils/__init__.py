"""Utility modules for xlsvc."""

from xlsvc.utils.logging import (
    clear_job_context,
    configure_logging,
    get_logger,
    set_job_context,
)
from xlsvc.utils.result import ConfigError, Err, ExitCode, Ok, Result

__all__ = [
    # Logging
    "configure_logging",
    "get_logger",
    "set_job_context",
    "clear_job_context",
    # Result
    "Ok",
    "Err",
    "Result",
    "ConfigError",
    "ExitCode",
]
