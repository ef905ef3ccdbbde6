"""
Scan statistics: sender totals, checkpoint position and recent senders.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import List, Optional

from sender_scan.logging import logger
from sender_scan.models import ScanCheckpoint, SenderIdentity
from sender_scan.storage.base import CheckpointStore, SenderRepository


@dataclass
class ScanStats:
    total_senders: int
    checkpoint: ScanCheckpoint
    recent_senders: List[SenderIdentity] = field(default_factory=list)

    @property
    def completion_rate(self) -> Optional[float]:
        """Percentage of messages processed, or None for an empty mailbox."""
        if not self.checkpoint.total_message_count:
            return None
        return self.checkpoint.processed_count / self.checkpoint.total_message_count * 100


def collect_stats(
    checkpoints: CheckpointStore,
    senders: SenderRepository,
    recent_limit: int = 10,
) -> ScanStats:
    """
    Gather statistics from storage.

    Raises:
        StorageError: If either store cannot be read
    """
    stats = ScanStats(
        total_senders=senders.count(),
        checkpoint=checkpoints.load(),
        recent_senders=senders.recent(recent_limit),
    )
    logger.info(f"Total unique senders: {stats.total_senders}")
    logger.info(
        f"Processed messages: {stats.checkpoint.processed_count}/{stats.checkpoint.total_message_count}"
    )
    return stats


def format_stats(stats: ScanStats, username: str) -> str:
    """Render statistics the way the CLI prints them."""
    lines = [
        f"=== STATISTICS ({username}) ===",
        f"Total unique senders: {stats.total_senders}",
        f"Processed messages: {stats.checkpoint.processed_count}/{stats.checkpoint.total_message_count}",
    ]
    rate = stats.completion_rate
    if rate is not None:
        lines.append(f"Completion rate: {rate:.2f}%")

    lines.append("")
    lines.append("Recently added senders:")
    for sender in stats.recent_senders:
        lines.append(f"  - {sender.display_name} <{sender.email_address}>")
    return "\n".join(lines)
