# src/sender_scan/pipeline/scan.py
"""
Resumable batch scan:
- Load the checkpoint
- Connect, log in, select the mailbox read-only
- Walk the mailbox in fixed-width batches starting after the checkpoint
- Store senders not seen before and advance the checkpoint after every batch
- Report progress through an injected reporter
"""

from __future__ import annotations
import time
from datetime import timedelta
from typing import Callable, Iterable, Optional, Protocol, Set, Tuple

from sender_scan.errors import FetchError, ScanError, StorageError
from sender_scan.imap.fetcher import BatchFetcher
from sender_scan.logging import logger
from sender_scan.models import ScanCheckpoint, ScanResult, ScanState, SenderIdentity
from sender_scan.pipeline.reporting import (
    BatchFailed,
    BatchProgress,
    BatchStarted,
    ProgressReporter,
    ScanFinished,
    ScanStarted,
)
from sender_scan.storage.base import CheckpointStore, SenderRepository

#: Pause between batches so the server is not hammered.
DEFAULT_PAUSE_SECONDS = 0.1


class MailboxSessionLike(Protocol):
    @property
    def connected(self) -> bool: ...
    def connect(self) -> None: ...
    def login(self) -> None: ...
    def select(self, mailbox: str = "INBOX", readonly: bool = True) -> int: ...
    def fetch_headers(self, start_id: int, end_id: int) -> Iterable[Tuple[int, bytes]]: ...
    def logout(self) -> None: ...


class SenderFetcher(Protocol):
    def fetch(self, start_id: int, end_id: int) -> Set[SenderIdentity]: ...


class _NullReporter:
    def report(self, event) -> None:
        pass


class ScanOrchestrator:
    """
    Drives one scan run through INIT -> CONNECTING -> AUTHENTICATING ->
    SELECTING_MAILBOX -> SCANNING -> COMPLETE, or FAILED from any of them.

    Batches are processed strictly one after another. `last_processed_id`
    only ever covers a contiguous prefix of messages whose batches were
    fetched and stored successfully; once a batch of this run has failed,
    later batches still store their senders but no longer move the
    checkpoint, so the next run starts again at the failed batch.
    """

    def __init__(
        self,
        session: MailboxSessionLike,
        checkpoints: CheckpointStore,
        senders: SenderRepository,
        batch_size: int = 500,
        *,
        mailbox: str = "INBOX",
        reporter: Optional[ProgressReporter] = None,
        pause_seconds: float = DEFAULT_PAUSE_SECONDS,
        fetcher: Optional[SenderFetcher] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if batch_size < 1:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        self.session = session
        self.checkpoints = checkpoints
        self.senders = senders
        self.batch_size = batch_size
        self.mailbox = mailbox
        self.reporter = reporter or _NullReporter()
        self.pause_seconds = pause_seconds
        self.fetcher = fetcher
        self._clock = clock
        self._sleep = sleep
        self.state = ScanState.INIT
        self.history = [ScanState.INIT]

    def _transition(self, state: ScanState) -> None:
        logger.debug(f"Scan state: {self.state.value} -> {state.value}")
        self.state = state
        self.history.append(state)

    def run(self) -> ScanResult:
        """
        Execute the scan. Errors are returned in `ScanResult.error`, never raised.
        """
        logger.info("Email scanning started...")
        result = ScanResult(state=self.state)

        try:
            checkpoint = self.checkpoints.load()

            self._transition(ScanState.CONNECTING)
            self.session.connect()

            self._transition(ScanState.AUTHENTICATING)
            self.session.login()

            self._transition(ScanState.SELECTING_MAILBOX)
            total = self.session.select(self.mailbox, readonly=True)

            self._transition(ScanState.SCANNING)
            self._scan(checkpoint, total, result)

            self._transition(ScanState.COMPLETE)
        except ScanError as e:
            logger.error(f"Scan failed in state {self.state.value}: {e}")
            result.error = e
            self._transition(ScanState.FAILED)
        finally:
            if self.session.connected:
                self.session.logout()

        result.state = self.state
        try:
            result.total_senders_found = self.senders.count()
        except StorageError as e:
            logger.error(f"Failed to count senders: {e}")
            if result.error is None:
                result.error = e
        return result

    def _scan(self, checkpoint: ScanCheckpoint, total: int, result: ScanResult) -> None:
        started = self._clock()
        logger.info(f"Total messages: {total}")

        checkpoint.total_message_count = total
        self.checkpoints.save(checkpoint)

        if total == 0:
            self.reporter.report(ScanFinished("No messages found"))
            return

        start_id = checkpoint.last_processed_id + 1
        if start_id > total:
            self.reporter.report(ScanFinished("All messages already processed"))
            return

        self.reporter.report(ScanStarted(
            total_message_count=total,
            start_id=start_id,
            previously_processed=checkpoint.processed_count,
        ))

        fetcher = self.fetcher or BatchFetcher(self.session)
        advancing = True

        for current_id in range(start_id, total + 1, self.batch_size):
            end_id = min(current_id + self.batch_size - 1, total)
            self.reporter.report(BatchStarted(current_id, end_id, total))

            try:
                batch = fetcher.fetch(current_id, end_id)
            except FetchError as e:
                logger.error(f"Batch processing error: {e}")
                result.batches_failed += 1
                if advancing:
                    # Everything before this batch is accounted for.
                    checkpoint.last_processed_id = current_id - 1
                advancing = False
                self.checkpoints.save(checkpoint)
                self.reporter.report(BatchFailed(current_id, end_id, str(e)))
                continue

            logger.info(f"Found {len(batch)} unique senders in batch")
            fresh = [s for s in batch if not self.senders.exists(s.email_address)]
            logger.info(f"New senders count: {len(fresh)}")
            inserted = self.senders.insert_if_absent(fresh)
            result.new_senders += inserted
            result.batches_processed += 1

            if advancing:
                checkpoint.last_processed_id = end_id
                checkpoint.processed_count = end_id
            self.checkpoints.save(checkpoint)

            elapsed = self._clock() - started
            remaining = elapsed * (total - end_id) / (end_id - start_id + 1)
            self.reporter.report(BatchProgress(
                start_id=current_id,
                end_id=end_id,
                total_message_count=total,
                senders_in_batch=len(batch),
                new_senders=inserted,
                elapsed=timedelta(seconds=elapsed),
                estimated_remaining=timedelta(seconds=remaining),
            ))

            if self.pause_seconds > 0:
                self._sleep(self.pause_seconds)

        self.reporter.report(ScanFinished("Scanning completed!"))


def run_scan(
    session: MailboxSessionLike,
    checkpoints: CheckpointStore,
    senders: SenderRepository,
    batch_size: int = 500,
    **kwargs,
) -> ScanResult:
    """Run one scan with a fresh orchestrator. See `ScanOrchestrator`."""
    return ScanOrchestrator(session, checkpoints, senders, batch_size, **kwargs).run()
