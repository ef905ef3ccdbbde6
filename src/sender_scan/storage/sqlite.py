"""
SQLite storage for the scan checkpoint and the sender set.

One database file per account. The `scan_progress` table holds exactly one
row (id = 1); `senders.email` carries the uniqueness guarantee.
"""

from __future__ import annotations
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Iterable, List

from sender_scan.errors import StorageError
from sender_scan.logging import logger
from sender_scan.models import ScanCheckpoint, SenderIdentity

_SCHEMA = """
CREATE TABLE IF NOT EXISTS senders (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    display_name TEXT,
    email TEXT UNIQUE,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS scan_progress (
    id INTEGER PRIMARY KEY CHECK (id = 1),
    last_processed_id INTEGER DEFAULT 0,
    total_message_count INTEGER DEFAULT 0,
    processed_count INTEGER DEFAULT 0,
    last_scan_timestamp DATETIME DEFAULT CURRENT_TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_senders_created_at ON senders(created_at);
"""


def open_database(db_path: str | Path) -> sqlite3.Connection:
    """
    Open (creating parent directories if needed) the account database.

    Raises:
        StorageError: If the file cannot be opened
    """
    path = Path(db_path)
    try:
        if str(path) != ":memory:":
            path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(path))
    except (OSError, sqlite3.Error) as e:
        logger.error(f"Failed to open database {path}: {e}")
        raise StorageError(f"failed to open database {path}: {e}") from e
    conn.row_factory = sqlite3.Row
    return conn


@contextmanager
def _safe_commit(conn: sqlite3.Connection) -> Generator[None, None, None]:
    """Commit on success, rollback on error."""
    try:
        yield
        conn.commit()
    except Exception:
        conn.rollback()
        raise


class SqliteCheckpointStore:
    """Checkpoint row `scan_progress.id = 1`."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def initialize(self) -> None:
        """Create both tables and the zeroed checkpoint row if missing."""
        try:
            with _safe_commit(self._conn):
                self._conn.executescript(_SCHEMA)
                self._conn.execute("INSERT OR IGNORE INTO scan_progress (id) VALUES (1)")
        except sqlite3.Error as e:
            logger.error(f"Failed to initialize database: {e}")
            raise StorageError(f"failed to initialize database: {e}") from e
        logger.debug("Database schema ready")

    def load(self) -> ScanCheckpoint:
        try:
            row = self._conn.execute(
                """
                SELECT last_processed_id, total_message_count, processed_count
                FROM scan_progress WHERE id = 1
                """
            ).fetchone()
        except sqlite3.Error as e:
            logger.error(f"Failed to load progress: {e}")
            raise StorageError(f"failed to load progress: {e}") from e

        if row is None:
            raise StorageError("scan progress row is missing; storage was not initialized")

        return ScanCheckpoint(
            last_processed_id=row["last_processed_id"],
            total_message_count=row["total_message_count"],
            processed_count=row["processed_count"],
        )

    def save(self, checkpoint: ScanCheckpoint) -> None:
        try:
            with _safe_commit(self._conn):
                cur = self._conn.execute(
                    """
                    UPDATE scan_progress
                    SET last_processed_id = ?, total_message_count = ?, processed_count = ?,
                        last_scan_timestamp = CURRENT_TIMESTAMP
                    WHERE id = 1
                    """,
                    (
                        checkpoint.last_processed_id,
                        checkpoint.total_message_count,
                        checkpoint.processed_count,
                    ),
                )
                if cur.rowcount != 1:
                    raise StorageError("scan progress row is missing; storage was not initialized")
        except sqlite3.Error as e:
            logger.error(f"Progress save error: {e}")
            raise StorageError(f"failed to save progress: {e}") from e


class SqliteSenderRepository:
    """Rows of `senders`; duplicates are rejected by the UNIQUE constraint."""

    def __init__(self, conn: sqlite3.Connection, verbose: bool = False) -> None:
        self._conn = conn
        self.verbose = verbose

    def exists(self, email_address: str) -> bool:
        try:
            row = self._conn.execute(
                "SELECT 1 FROM senders WHERE email = ? LIMIT 1", (email_address,)
            ).fetchone()
        except sqlite3.Error as e:
            logger.error(f"Sender lookup failed ({email_address}): {e}")
            raise StorageError(f"sender lookup failed: {e}") from e
        return row is not None

    def insert_if_absent(self, identities: Iterable[SenderIdentity]) -> int:
        """
        Insert every identity whose address is not stored yet, in one transaction.

        Returns:
            Number of rows actually inserted

        Raises:
            StorageError: If the transaction fails; nothing is inserted then
        """
        batch = list(identities)
        if not batch:
            return 0

        logger.debug(f"Starting batch save: {len(batch)} senders")
        saved = 0
        try:
            with _safe_commit(self._conn):
                for sender in batch:
                    cur = self._conn.execute(
                        "INSERT OR IGNORE INTO senders (display_name, email) VALUES (?, ?)",
                        (sender.display_name, sender.email_address),
                    )
                    if cur.rowcount > 0:
                        saved += 1
                        if self.verbose:
                            logger.info(f"New sender saved: {sender.display_name} <{sender.email_address}>")
        except sqlite3.Error as e:
            logger.error(f"Batch save error: {e}")
            raise StorageError(f"failed to save senders: {e}") from e

        logger.info(f"Batch save completed: {saved}/{len(batch)} new records")
        return saved

    def count(self) -> int:
        try:
            return self._conn.execute("SELECT COUNT(*) FROM senders").fetchone()[0]
        except sqlite3.Error as e:
            raise StorageError(f"failed to count senders: {e}") from e

    def recent(self, limit: int = 10) -> List[SenderIdentity]:
        try:
            rows = self._conn.execute(
                "SELECT display_name, email FROM senders ORDER BY created_at DESC, id DESC LIMIT ?",
                (limit,),
            ).fetchall()
        except sqlite3.Error as e:
            raise StorageError(f"failed to query recent senders: {e}") from e
        return [SenderIdentity(display_name=r["display_name"] or "", email_address=r["email"]) for r in rows]
