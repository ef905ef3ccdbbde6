from dataclasses import replace
from typing import Dict, Iterable, List, Optional, Protocol

from sender_scan.errors import StorageError
from sender_scan.models import ScanCheckpoint, SenderIdentity


# -----------------------------
# Storage interfaces
# -----------------------------
class CheckpointStore(Protocol):
    """Singleton scan position for one account."""
    def initialize(self) -> None: ...
    def load(self) -> ScanCheckpoint: ...
    def save(self, checkpoint: ScanCheckpoint) -> None: ...


class SenderRepository(Protocol):
    """Append-only set of senders keyed by email address."""
    def exists(self, email_address: str) -> bool: ...
    def insert_if_absent(self, identities: Iterable[SenderIdentity]) -> int: ...
    def count(self) -> int: ...
    def recent(self, limit: int = 10) -> List[SenderIdentity]: ...


# -----------------------------
# In-memory backends (tests, dry runs)
# -----------------------------
class InMemoryCheckpointStore:
    """Checkpoint kept in process memory; `load` fails until `initialize`."""
    def __init__(self, checkpoint: Optional[ScanCheckpoint] = None) -> None:
        self._checkpoint = replace(checkpoint) if checkpoint else None
        self.saves: List[ScanCheckpoint] = []

    def initialize(self) -> None:
        if self._checkpoint is None:
            self._checkpoint = ScanCheckpoint()

    def load(self) -> ScanCheckpoint:
        if self._checkpoint is None:
            raise StorageError("scan checkpoint has not been initialized")
        return replace(self._checkpoint)

    def save(self, checkpoint: ScanCheckpoint) -> None:
        self._checkpoint = replace(checkpoint)
        self.saves.append(replace(checkpoint))


class InMemorySenderRepository:
    """Dict-backed sender set; insertion order doubles as creation order."""
    def __init__(self) -> None:
        self._data: Dict[str, SenderIdentity] = {}

    def exists(self, email_address: str) -> bool:
        return email_address in self._data

    def insert_if_absent(self, identities: Iterable[SenderIdentity]) -> int:
        inserted = 0
        for identity in identities:
            if identity.email_address not in self._data:
                self._data[identity.email_address] = identity
                inserted += 1
        return inserted

    def count(self) -> int:
        return len(self._data)

    def recent(self, limit: int = 10) -> List[SenderIdentity]:
        return list(reversed(list(self._data.values())))[:limit]
