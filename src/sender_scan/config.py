"""
Configuration management with validation and storage backend selection.
"""

from __future__ import annotations
import os
from datetime import date
from pathlib import Path
from typing import Any, Mapping, Optional, Tuple, TypedDict

from dotenv import load_dotenv

from sender_scan.imap.client import parse_server_address
from sender_scan.logging import logger
from sender_scan.storage.base import CheckpointStore, SenderRepository

DEFAULT_SERVER = "imap.gmail.com:993"
DEFAULT_BATCH_SIZE = 500
MIN_BATCH_SIZE = 100
MAX_BATCH_SIZE = 2000


class Config(TypedDict):
    """Typed configuration dictionary."""
    IMAP_SERVER: str
    IMAP_USER: str
    IMAP_PASSWORD: str
    IMAP_MAILBOX: str
    BATCH_SIZE: int
    PAUSE_SECONDS: float
    USER_DIR: str
    DB_PATH: str
    LOG_FILE: str
    STATUS_FILE: str
    SHOW_PROGRESS: bool
    VERBOSE: bool
    LOG_LEVEL: str
    USE_REDIS: bool
    REDIS_HOST: str
    REDIS_PORT: int
    REDIS_DB: int
    REDIS_PREFIX: str


def _truthy(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("true", "1", "yes")


def safe_username(username: str) -> str:
    """Turn an email login into a folder name: john.doe@gmail.com -> john_doe_at_gmail_com."""
    safe = username.replace("@", "_at_")
    safe = safe.replace(".", "_")
    safe = safe.replace("+", "_plus_")
    return safe


def user_directory(username: str, users_dir: str | Path = "./users") -> Path:
    """Per-account folder holding the database, logs and status file."""
    return Path(users_dir) / safe_username(username)


def normalize_batch_size(batch_size: int) -> int:
    """Batch sizes outside 100-2000 fall back to the default of 500."""
    if batch_size < MIN_BATCH_SIZE or batch_size > MAX_BATCH_SIZE:
        logger.warning(
            f"Batch size {batch_size} outside {MIN_BATCH_SIZE}-{MAX_BATCH_SIZE}, "
            f"using {DEFAULT_BATCH_SIZE}"
        )
        return DEFAULT_BATCH_SIZE
    return batch_size


def _load_env(
    overrides: Optional[Mapping[str, Any]] = None,
    require_credentials: bool = True,
) -> Config:
    """
    Load environment variables, apply overrides and return validated configuration.

    Overrides use the same names as the environment variables and win when
    not None (the CLI passes its arguments this way).

    Required vars:
      - IMAP_USER
      - IMAP_PASSWORD (unless require_credentials is False)

    Optional vars with defaults:
      - IMAP_SERVER (default: "imap.gmail.com:993")
      - IMAP_MAILBOX (default: "INBOX")
      - SCAN_BATCH_SIZE (default: 500, valid 100-2000)
      - SCAN_PAUSE_SECONDS (default: 0.1)
      - USERS_DIR (default: "./users")
      - DB_PATH / LOG_FILE / STATUS_FILE (default: derived from USERS_DIR and IMAP_USER)
      - SHOW_PROGRESS (default: "true")
      - VERBOSE (default: "false")
      - LOG_LEVEL (default: "INFO", "DEBUG" when VERBOSE)
      - USE_REDIS (default: "false"), REDIS_HOST, REDIS_PORT, REDIS_DB, REDIS_PREFIX
    """
    load_dotenv()
    overrides = {k: v for k, v in (overrides or {}).items() if v is not None}

    def _get(name: str, default: str = "") -> Any:
        if name in overrides:
            return overrides[name]
        value = os.getenv(name)
        return value.strip() if value is not None else default

    username = str(_get("IMAP_USER")).strip()
    password = str(_get("IMAP_PASSWORD"))

    if not username:
        raise ValueError("IMAP_USER environment variable (or --user) is required")
    if require_credentials and not password:
        raise ValueError("IMAP_PASSWORD environment variable (or --password) is required")

    try:
        batch_size = int(_get("SCAN_BATCH_SIZE", str(DEFAULT_BATCH_SIZE)))
    except ValueError:
        raise ValueError(f"SCAN_BATCH_SIZE must be an integer, got {_get('SCAN_BATCH_SIZE')!r}")
    batch_size = normalize_batch_size(batch_size)

    pause_seconds = float(_get("SCAN_PAUSE_SECONDS", "0.1"))
    if pause_seconds < 0:
        raise ValueError(f"SCAN_PAUSE_SECONDS must not be negative, got {pause_seconds}")

    server = str(_get("IMAP_SERVER", DEFAULT_SERVER)).strip()
    parse_server_address(server)

    redis_port = int(_get("REDIS_PORT", "6379"))
    if not (1 <= redis_port <= 65535):
        raise ValueError(
            f"REDIS_PORT must be between 1 and 65535, got {redis_port}"
        )

    user_dir = user_directory(username, _get("USERS_DIR", "./users"))
    verbose = _truthy(_get("VERBOSE", "false"))
    log_level = str(_get("LOG_LEVEL", "DEBUG" if verbose else "INFO")).upper()

    cfg: Config = {
        "IMAP_SERVER": server,
        "IMAP_USER": username,
        "IMAP_PASSWORD": password,
        "IMAP_MAILBOX": str(_get("IMAP_MAILBOX", "INBOX")),
        "BATCH_SIZE": batch_size,
        "PAUSE_SECONDS": pause_seconds,
        "USER_DIR": str(user_dir),
        "DB_PATH": str(_get("DB_PATH") or user_dir / "database.db"),
        "LOG_FILE": str(_get("LOG_FILE") or user_dir / f"log_{date.today():%Y-%m-%d}.txt"),
        "STATUS_FILE": str(_get("STATUS_FILE") or user_dir / "status.txt"),
        "SHOW_PROGRESS": _truthy(_get("SHOW_PROGRESS", "true")),
        "VERBOSE": verbose,
        "LOG_LEVEL": log_level,
        "USE_REDIS": _truthy(_get("USE_REDIS", "false")),
        "REDIS_HOST": str(_get("REDIS_HOST", "localhost")),
        "REDIS_PORT": redis_port,
        "REDIS_DB": int(_get("REDIS_DB", "0")),
        "REDIS_PREFIX": str(_get("REDIS_PREFIX") or f"sender_scan:{safe_username(username)}"),
    }

    logger.debug(f"Configuration loaded: USER={username}, USE_REDIS={cfg['USE_REDIS']}, BATCH_SIZE={batch_size}")
    return cfg


def _init_storage(cfg: Config) -> Tuple[CheckpointStore, SenderRepository]:
    """
    Initialize the storage backend, falling back to SQLite when Redis is unavailable.

    The returned checkpoint store is already initialized (zeroed row present).

    Raises:
        StorageError: If the chosen backend cannot be initialized
    """
    if cfg["USE_REDIS"]:
        import redis
        from sender_scan.storage.redis_kv import (
            RedisCheckpointStore,
            RedisSenderRepository,
            connect_redis,
        )
        try:
            client = connect_redis(
                host=cfg["REDIS_HOST"],
                port=cfg["REDIS_PORT"],
                db=cfg["REDIS_DB"],
            )
        except redis.RedisError as e:
            logger.warning(f"Failed to connect to Redis: {e}. Falling back to SQLite storage.")
        else:
            checkpoints = RedisCheckpointStore(client, prefix=cfg["REDIS_PREFIX"])
            checkpoints.initialize()
            logger.info(f"Using Redis storage at {cfg['REDIS_HOST']}:{cfg['REDIS_PORT']}")
            return checkpoints, RedisSenderRepository(
                client, prefix=cfg["REDIS_PREFIX"], verbose=cfg["VERBOSE"]
            )

    from sender_scan.storage.sqlite import (
        SqliteCheckpointStore,
        SqliteSenderRepository,
        open_database,
    )
    conn = open_database(cfg["DB_PATH"])
    checkpoints = SqliteCheckpointStore(conn)
    checkpoints.initialize()
    logger.info(f"Database initialized: {cfg['DB_PATH']}")
    return checkpoints, SqliteSenderRepository(conn, verbose=cfg["VERBOSE"])
