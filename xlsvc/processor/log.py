"""Append-only processing narrative shown to the user."""

from __future__ import annotations

from typing import Callable, Iterable, Iterator

from xlsvc.utils.logging import get_logger

logger = get_logger("processor.log")

LogListener = Callable[[str], None]


class ProcessingLog:
    """
    Ordered, append-only sequence of human-readable status lines.

    Lines are never reordered or removed; reset() clears the log and is
    only called when a new job is submitted.
    """

    def __init__(self) -> None:
        self._lines: list[str] = []
        self._listeners: list[LogListener] = []

    def append(self, line: str) -> None:
        self._lines.append(line)
        for listener in self._listeners:
            try:
                listener(line)
            except Exception as e:
                logger.warning(
                    "log_listener_failed",
                    error=str(e),
                    error_type=type(e).__name__,
                )

    def extend(self, lines: Iterable[str]) -> None:
        for line in lines:
            self.append(line)

    def reset(self) -> None:
        self._lines = []

    def subscribe(self, listener: LogListener) -> None:
        """Call `listener(line)` for every line appended from now on."""
        self._listeners.append(listener)

    @property
    def lines(self) -> list[str]:
        """Copy of the current lines."""
        return list(self._lines)

    def __len__(self) -> int:
        return len(self._lines)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._lines))

    def __repr__(self) -> str:
        return f"ProcessingLog({len(self._lines)} lines)"
