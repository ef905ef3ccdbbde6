"""
Unit tests for the Redis checkpoint store and sender repository.
"""

import pytest
import redis
from unittest.mock import MagicMock
from sender_scan.errors import StorageError
from sender_scan.models import ScanCheckpoint, SenderIdentity
from sender_scan.storage.redis_kv import RedisCheckpointStore, RedisSenderRepository


@pytest.fixture
def client():
    """Mock Redis client with a mock transactional pipeline."""
    mock = MagicMock(spec=redis.Redis)
    mock.pipeline.return_value = MagicMock()
    return mock


class TestRedisCheckpointStore:
    """Test cases for RedisCheckpointStore."""

    def test_load(self, client):
        """Test decoding the checkpoint hash."""
        client.hgetall.return_value = {
            "last_processed_id": "500",
            "total_message_count": "1247",
            "processed_count": "500",
            "last_scan_timestamp": "1700000000",
        }
        store = RedisCheckpointStore(client, prefix="acct")

        assert store.load() == ScanCheckpoint(500, 1247, 500)
        client.hgetall.assert_called_once_with("acct:scan_progress")

    def test_load_missing_checkpoint(self, client):
        """Test that an absent hash is a storage error."""
        client.hgetall.return_value = {}
        with pytest.raises(StorageError):
            RedisCheckpointStore(client).load()

    def test_load_corrupt_checkpoint(self, client):
        """Test that non-numeric fields are a storage error."""
        client.hgetall.return_value = {"last_processed_id": "abc"}
        with pytest.raises(StorageError):
            RedisCheckpointStore(client).load()

    def test_save_writes_all_fields_at_once(self, client):
        """Test that save issues a single HSET with every field."""
        store = RedisCheckpointStore(client, prefix="acct")
        store.save(ScanCheckpoint(1000, 1247, 1000))

        client.hset.assert_called_once()
        args, kwargs = client.hset.call_args
        assert args == ("acct:scan_progress",)
        assert kwargs["mapping"]["last_processed_id"] == 1000
        assert kwargs["mapping"]["total_message_count"] == 1247
        assert kwargs["mapping"]["processed_count"] == 1000

    def test_initialize_uses_hsetnx(self, client):
        """Test that initialization never overwrites existing progress."""
        pipe = client.pipeline.return_value
        RedisCheckpointStore(client, prefix="acct").initialize()

        client.pipeline.assert_called_once_with(transaction=True)
        fields = [c.args[1] for c in pipe.hsetnx.call_args_list]
        assert set(fields) >= {"last_processed_id", "total_message_count", "processed_count"}
        pipe.execute.assert_called_once()

    def test_errors_become_storage_errors(self, client):
        """Test that Redis failures surface as StorageError."""
        client.hgetall.side_effect = redis.ConnectionError("down")
        client.hset.side_effect = redis.ConnectionError("down")
        store = RedisCheckpointStore(client)

        with pytest.raises(StorageError):
            store.load()
        with pytest.raises(StorageError):
            store.save(ScanCheckpoint())


class TestRedisSenderRepository:
    """Test cases for RedisSenderRepository."""

    def test_exists(self, client):
        """Test point lookup."""
        client.hexists.return_value = 1
        repo = RedisSenderRepository(client, prefix="acct")

        assert repo.exists("john@example.com") is True
        client.hexists.assert_called_once_with("acct:senders", "john@example.com")

    def test_exists_does_not_swallow_errors(self, client):
        """Test that a lookup failure raises instead of returning False."""
        client.hexists.side_effect = redis.TimeoutError("slow")
        with pytest.raises(StorageError):
            RedisSenderRepository(client).exists("john@example.com")

    def test_insert_counts_only_new(self, client):
        """Test that HSETNX results decide the inserted count."""
        pipe = client.pipeline.return_value
        # hsetnx, zadd per sender: first new, second already present
        pipe.execute.return_value = [1, 1, 0, 0]
        repo = RedisSenderRepository(client, prefix="acct")

        inserted = repo.insert_if_absent([
            SenderIdentity("John", "john@example.com"),
            SenderIdentity("Jane", "jane@example.com"),
        ])

        assert inserted == 1
        client.pipeline.assert_called_once_with(transaction=True)
        assert pipe.hsetnx.call_count == 2
        pipe.hsetnx.assert_any_call("acct:senders", "john@example.com", "John")

    def test_empty_insert_is_noop(self, client):
        """Test that an empty batch does not touch Redis."""
        assert RedisSenderRepository(client).insert_if_absent([]) == 0
        client.pipeline.assert_not_called()

    def test_insert_failure(self, client):
        """Test that a failed transaction raises StorageError."""
        client.pipeline.return_value.execute.side_effect = redis.ResponseError("EXECABORT")
        with pytest.raises(StorageError):
            RedisSenderRepository(client).insert_if_absent([SenderIdentity("A", "a@example.com")])

    def test_count_and_recent(self, client):
        """Test statistics helpers."""
        client.hlen.return_value = 2
        client.zrevrange.return_value = ["jane@example.com", "john@example.com"]
        client.hmget.return_value = ["Jane", "John"]
        repo = RedisSenderRepository(client, prefix="acct")

        assert repo.count() == 2
        assert repo.recent(2) == [
            SenderIdentity("Jane", "jane@example.com"),
            SenderIdentity("John", "john@example.com"),
        ]
        client.zrevrange.assert_called_once_with("acct:senders:created", 0, 1)
