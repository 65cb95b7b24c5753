"""Status channel: structured events the core reports to the front end.

The core only emits events; turning them into text is left to the
receiver, with format_status() giving the standard wording.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, Union


@dataclass(frozen=True)
class CompileFailed:
    """A formula did not compile; the previous formula is still active."""

    message: str


@dataclass(frozen=True)
class FatalAborted:
    """The render stopped because the formula misbehaved at pixel (x, y)."""

    message: str
    x: int
    y: int


@dataclass(frozen=True)
class AnomalyThresholdExceeded:
    """A column ran into too many consecutive NaN pixels.

    ``max_anomalies`` is the running maximum across all columns so far.
    ``halted`` is True when this was the second such column in a row and
    the whole render stopped.
    """

    column: int
    max_anomalies: int
    halted: bool


@dataclass(frozen=True)
class RenderCompleted:
    """Every column was scanned."""

    columns: int
    max_anomalies: int


StatusEvent = Union[CompileFailed, FatalAborted, AnomalyThresholdExceeded, RenderCompleted]


class StatusChannel(Protocol):
    """Write-only receiver for status events."""

    def emit(self, event: StatusEvent) -> None:
        ...


def format_status(event: StatusEvent) -> str:
    """Standard human-readable text for a status event."""
    if isinstance(event, CompileFailed):
        return event.message
    if isinstance(event, FatalAborted):
        return f"{event.message} (at pixel {event.x}, {event.y}). Render aborted."
    if isinstance(event, AnomalyThresholdExceeded):
        if event.halted:
            return "Too many NaNs. Halting."
        return f"Max NaNs found in 1 column is {event.max_anomalies}"
    if isinstance(event, RenderCompleted):
        if event.max_anomalies:
            return f"Done. Max NaNs found in 1 column is {event.max_anomalies}"
        return "Done"
    raise TypeError(f"Unknown status event: {event!r}")
