"""
CLI runs with a fake IMAP session and a temporary users folder.
"""

import pytest
from unittest.mock import patch
from sender_scan import cli
from tests.mocks.imap_mock import FakeMailboxSession, numbered_headers

_ENV = (
    "IMAP_USER", "IMAP_PASSWORD", "IMAP_SERVER", "IMAP_MAILBOX", "SCAN_BATCH_SIZE",
    "SCAN_PAUSE_SECONDS", "USERS_DIR", "DB_PATH", "LOG_FILE", "STATUS_FILE",
    "SHOW_PROGRESS", "VERBOSE", "LOG_LEVEL", "USE_REDIS",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in _ENV:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("SCAN_PAUSE_SECONDS", "0")


def _run(argv):
    with pytest.raises(SystemExit) as exc:
        cli.main(argv)
    return exc.value.code


class TestScanCommand:
    """Test cases for `sender-scan scan`."""

    def test_scan_writes_status(self, tmp_path, capsys):
        fake = FakeMailboxSession(numbered_headers(250, 20))
        with patch("sender_scan.cli.MailboxSession", return_value=fake):
            code = _run([
                "scan", "--user", "john@gmail.com", "--password", "secret",
                "--users-dir", str(tmp_path), "--no-progress",
            ])

        assert code == 0
        user_dir = tmp_path / "john_at_gmail_com"
        assert (user_dir / "database.db").exists()
        status = (user_dir / "status.txt").read_text(encoding="utf-8")
        assert "STATUS: SUCCESS" in status
        assert "Found 20 unique senders." in status
        assert "Total unique senders: 20" in capsys.readouterr().out

    def test_scan_login_failure(self, tmp_path, capsys):
        fake = FakeMailboxSession(numbered_headers(10, 2), login_error=True)
        with patch("sender_scan.cli.MailboxSession", return_value=fake):
            code = _run([
                "scan", "--user", "john@gmail.com", "--password", "wrong",
                "--users-dir", str(tmp_path),
            ])

        assert code == 1
        status = (tmp_path / "john_at_gmail_com" / "status.txt").read_text(encoding="utf-8")
        assert "STATUS: ERROR" in status
        assert "Script can resume" in capsys.readouterr().out

    def test_scan_rejects_bad_server_port(self, tmp_path, capsys):
        """Test that a malformed --server exits cleanly before the scan starts."""
        status_file = tmp_path / "status.txt"
        code = _run([
            "scan", "--user", "john@gmail.com", "--password", "secret",
            "--server", "imap.x.com:abc", "--status", str(status_file),
            "--users-dir", str(tmp_path),
        ])

        assert code == 1
        assert "[ERROR] Invalid IMAP server address" in capsys.readouterr().err
        assert not status_file.exists()

    def test_session_error_marks_status_failed(self, tmp_path):
        """Test that a session that cannot be built leaves the status at ERROR."""
        status_file = tmp_path / "status.txt"
        with patch("sender_scan.cli.MailboxSession", side_effect=ValueError("bad address")):
            code = _run([
                "scan", "--user", "john@gmail.com", "--password", "secret",
                "--status", str(status_file), "--users-dir", str(tmp_path),
            ])

        assert code == 1
        status = status_file.read_text(encoding="utf-8")
        assert "STATUS: ERROR" in status
        assert "bad address" in status

    def test_scan_requires_password(self, tmp_path):
        assert _run(["scan", "--user", "john@gmail.com", "--users-dir", str(tmp_path)]) == 1


class TestStatsCommand:
    """Test cases for `sender-scan stats`."""

    def test_stats_after_scan(self, tmp_path, capsys):
        fake = FakeMailboxSession(numbered_headers(120, 7))
        with patch("sender_scan.cli.MailboxSession", return_value=fake):
            _run(["scan", "--user", "a@b.com", "--password", "x",
                  "--users-dir", str(tmp_path), "--no-progress"])
        capsys.readouterr()

        code = _run(["stats", "--user", "a@b.com", "--users-dir", str(tmp_path)])

        out = capsys.readouterr().out
        assert code == 0
        assert "=== STATISTICS (a@b.com) ===" in out
        assert "Processed messages: 120/120" in out
        assert "Completion rate: 100.00%" in out


def test_no_command_prints_help(capsys):
    assert _run([]) == 1
    assert "usage:" in capsys.readouterr().out
