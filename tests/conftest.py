"""
Pytest configuration and shared fixtures.
"""

import pytest
import sys
from pathlib import Path

# Add src to path for imports
PROJ_ROOT = Path(__file__).resolve().parent.parent
SRC_DIR = PROJ_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))
if str(PROJ_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJ_ROOT))

from sender_scan.storage.base import InMemoryCheckpointStore, InMemorySenderRepository
from sender_scan.storage.sqlite import SqliteCheckpointStore, SqliteSenderRepository, open_database


@pytest.fixture
def sample_from_headers():
    """Realistic From header values, including unusable ones."""
    return [
        "John Doe <john.doe@example.com>",
        "JOHN.DOE@EXAMPLE.COM",
        "mary_ann-smith@example.org",
        '"Support Team" <support@shop.example>',
        "=?utf-8?q?J=C3=B6rg_M=C3=BCller?= <joerg@example.de>",
        "Not An Address",
        "",
    ]


@pytest.fixture
def memory_storage():
    """Initialized in-memory checkpoint store and sender repository."""
    checkpoints = InMemoryCheckpointStore()
    checkpoints.initialize()
    return checkpoints, InMemorySenderRepository()


@pytest.fixture
def sqlite_storage(tmp_path):
    """Initialized SQLite stores sharing one database file."""
    conn = open_database(tmp_path / "database.db")
    checkpoints = SqliteCheckpointStore(conn)
    checkpoints.initialize()
    yield checkpoints, SqliteSenderRepository(conn), conn
    conn.close()
