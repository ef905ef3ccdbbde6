"""
Structured progress events emitted by the scan orchestrator.

The orchestrator never prints; it hands events to an injected reporter.
`ConsoleReporter` is what the CLI uses, `RecordingReporter` keeps events in
memory for inspection.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import timedelta
from typing import List, Protocol, Union

from sender_scan.logging import logger


@dataclass(frozen=True)
class ScanStarted:
    total_message_count: int
    start_id: int
    previously_processed: int


@dataclass(frozen=True)
class BatchStarted:
    start_id: int
    end_id: int
    total_message_count: int


@dataclass(frozen=True)
class BatchProgress:
    """Emitted after a batch has been persisted."""
    start_id: int
    end_id: int
    total_message_count: int
    senders_in_batch: int
    new_senders: int
    elapsed: timedelta
    estimated_remaining: timedelta

    @property
    def percent_complete(self) -> float:
        if not self.total_message_count:
            return 100.0
        return self.end_id / self.total_message_count * 100


@dataclass(frozen=True)
class BatchFailed:
    start_id: int
    end_id: int
    error: str


@dataclass(frozen=True)
class ScanFinished:
    message: str


ScanEvent = Union[ScanStarted, BatchStarted, BatchProgress, BatchFailed, ScanFinished]


class ProgressReporter(Protocol):
    def report(self, event: ScanEvent) -> None: ...


def _round(td: timedelta) -> timedelta:
    return timedelta(seconds=round(td.total_seconds()))


class ConsoleReporter:
    """Logs every event and, when `show_progress` is set, echoes it to stdout."""

    def __init__(self, show_progress: bool = True) -> None:
        self.show_progress = show_progress

    def _emit(self, line: str) -> None:
        logger.info(line)
        if self.show_progress:
            print(line)

    def report(self, event: ScanEvent) -> None:
        if isinstance(event, ScanStarted):
            self._emit(f"Total messages: {event.total_message_count}")
            self._emit(f"Starting processing... (from ID: {event.start_id})")
            self._emit(f"Previously processed messages: {event.previously_processed}")
        elif isinstance(event, BatchStarted):
            self._emit(
                f"Processing batch: {event.start_id}-{event.end_id} "
                f"({event.end_id}/{event.total_message_count})"
            )
        elif isinstance(event, BatchProgress):
            if event.new_senders:
                self._emit(f"New senders saved: {event.new_senders}")
            self._emit(
                f"Progress: {event.percent_complete:.2f}% - "
                f"Elapsed: {_round(event.elapsed)} - "
                f"Estimated remaining: {_round(event.estimated_remaining)}"
            )
        elif isinstance(event, BatchFailed):
            logger.warning(f"Batch {event.start_id}-{event.end_id} failed: {event.error}")
            if self.show_progress:
                print(f"Batch {event.start_id}-{event.end_id} failed, will be retried on the next run")
        elif isinstance(event, ScanFinished):
            self._emit(event.message)


class RecordingReporter:
    """Keeps every event in order."""

    def __init__(self) -> None:
        self.events: List[ScanEvent] = []

    def report(self, event: ScanEvent) -> None:
        self.events.append(event)

    def of_type(self, kind: type) -> list:
        return [e for e in self.events if isinstance(e, kind)]
