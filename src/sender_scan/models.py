"""
Data types shared by the fetcher, storage backends and the scan pipeline.
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Optional


@dataclass(frozen=True)
class SenderIdentity:
    """A sender as extracted from one "From" header. Keyed by email address."""
    display_name: str = ""
    email_address: str = ""

    @property
    def is_empty(self) -> bool:
        return not self.email_address


#: Returned by the resolver when a header carries no usable sender.
EMPTY_IDENTITY = SenderIdentity()


@dataclass
class ScanCheckpoint:
    """
    Durable scan position for one mailbox.

    Only `last_processed_id` drives resumption; `processed_count` is for
    reporting and `total_message_count` is refreshed at the start of each run.
    """
    last_processed_id: int = 0
    total_message_count: int = 0
    processed_count: int = 0


class ScanState(str, Enum):
    INIT = "INIT"
    CONNECTING = "CONNECTING"
    AUTHENTICATING = "AUTHENTICATING"
    SELECTING_MAILBOX = "SELECTING_MAILBOX"
    SCANNING = "SCANNING"
    COMPLETE = "COMPLETE"
    FAILED = "FAILED"


@dataclass
class ScanResult:
    """Outcome of one scan run."""
    state: ScanState
    total_senders_found: int = 0
    new_senders: int = 0
    batches_processed: int = 0
    batches_failed: int = 0
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.state == ScanState.COMPLETE
