"""
Redis-based storage for the scan checkpoint and the sender set.

Layout under a per-account key prefix:
  <prefix>:scan_progress          hash with the checkpoint fields
  <prefix>:senders                hash email -> display name
  <prefix>:senders:created        sorted set email -> insertion time
"""

from __future__ import annotations
import time
from typing import Iterable, List, Optional

import redis

from sender_scan.errors import StorageError
from sender_scan.logging import logger
from sender_scan.models import ScanCheckpoint, SenderIdentity

_CHECKPOINT_FIELDS = ("last_processed_id", "total_message_count", "processed_count")


def connect_redis(
    host: str = "localhost",
    port: int = 6379,
    db: int = 0,
) -> redis.Redis:
    """
    Open and verify a Redis connection.

    Raises:
        redis.ConnectionError: If connection to Redis fails
    """
    try:
        client = redis.Redis(
            host=host,
            port=port,
            db=db,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
        )
        # Test connection
        client.ping()
        logger.info(f"Connected to Redis at {host}:{port}/{db}")
        return client
    except redis.ConnectionError as e:
        logger.error(f"Failed to connect to Redis: {e}")
        raise


class RedisCheckpointStore:
    """Checkpoint kept in a single Redis hash."""

    def __init__(self, client: redis.Redis, prefix: str = "sender_scan") -> None:
        self.client = client
        self.key = f"{prefix}:scan_progress"

    def initialize(self) -> None:
        """Create the zeroed checkpoint hash unless it already exists."""
        try:
            pipe = self.client.pipeline(transaction=True)
            for field in _CHECKPOINT_FIELDS:
                pipe.hsetnx(self.key, field, 0)
            pipe.hsetnx(self.key, "last_scan_timestamp", int(time.time()))
            pipe.execute()
        except redis.RedisError as e:
            logger.error(f"Redis initialize error for key '{self.key}': {e}")
            raise StorageError(f"failed to initialize checkpoint: {e}") from e

    def load(self) -> ScanCheckpoint:
        try:
            data = self.client.hgetall(self.key)
        except redis.RedisError as e:
            logger.error(f"Redis HGETALL error for key '{self.key}': {e}")
            raise StorageError(f"failed to load progress: {e}") from e

        if not data:
            raise StorageError(f"checkpoint '{self.key}' is missing; storage was not initialized")

        try:
            return ScanCheckpoint(**{f: int(data.get(f, 0)) for f in _CHECKPOINT_FIELDS})
        except (TypeError, ValueError) as e:
            raise StorageError(f"corrupt checkpoint '{self.key}': {data!r}") from e

    def save(self, checkpoint: ScanCheckpoint) -> None:
        # HSET with a mapping is a single atomic command.
        try:
            self.client.hset(
                self.key,
                mapping={
                    "last_processed_id": checkpoint.last_processed_id,
                    "total_message_count": checkpoint.total_message_count,
                    "processed_count": checkpoint.processed_count,
                    "last_scan_timestamp": int(time.time()),
                },
            )
            logger.debug(f"Set Redis checkpoint '{self.key}' = {checkpoint}")
        except redis.RedisError as e:
            logger.error(f"Redis HSET error for key '{self.key}': {e}")
            raise StorageError(f"failed to save progress: {e}") from e


class RedisSenderRepository:
    """Sender set backed by a hash; HSETNX enforces one entry per address."""

    def __init__(
        self,
        client: redis.Redis,
        prefix: str = "sender_scan",
        verbose: bool = False,
    ) -> None:
        self.client = client
        self.key = f"{prefix}:senders"
        self.created_key = f"{prefix}:senders:created"
        self.verbose = verbose

    def exists(self, email_address: str) -> bool:
        try:
            return bool(self.client.hexists(self.key, email_address))
        except redis.RedisError as e:
            logger.error(f"Redis HEXISTS error for '{email_address}': {e}")
            raise StorageError(f"sender lookup failed: {e}") from e

    def insert_if_absent(self, identities: Iterable[SenderIdentity]) -> int:
        """Insert absent senders inside one MULTI/EXEC block; return the number added."""
        batch = list(identities)
        if not batch:
            return 0

        now = time.time()
        try:
            pipe = self.client.pipeline(transaction=True)
            for sender in batch:
                pipe.hsetnx(self.key, sender.email_address, sender.display_name)
                pipe.zadd(self.created_key, {sender.email_address: now}, nx=True)
            results = pipe.execute()
        except redis.RedisError as e:
            logger.error(f"Redis batch save error: {e}")
            raise StorageError(f"failed to save senders: {e}") from e

        saved = 0
        for sender, added in zip(batch, results[0::2]):
            if added:
                saved += 1
                if self.verbose:
                    logger.info(f"New sender saved: {sender.display_name} <{sender.email_address}>")

        logger.info(f"Batch save completed: {saved}/{len(batch)} new records")
        return saved

    def count(self) -> int:
        try:
            return int(self.client.hlen(self.key))
        except redis.RedisError as e:
            raise StorageError(f"failed to count senders: {e}") from e

    def recent(self, limit: int = 10) -> List[SenderIdentity]:
        try:
            emails: List[str] = self.client.zrevrange(self.created_key, 0, limit - 1)
            if not emails:
                return []
            names: List[Optional[str]] = self.client.hmget(self.key, emails)
        except redis.RedisError as e:
            raise StorageError(f"failed to query recent senders: {e}") from e
        return [SenderIdentity(display_name=n or "", email_address=e) for e, n in zip(emails, names)]
