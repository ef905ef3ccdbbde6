"""
Unit tests for logging setup.
"""

from loguru import logger
from sender_scan.logging import setup_logging


class TestSetupLogging:
    """Test cases for setup_logging."""

    def test_file_sink_tags_account(self, tmp_path):
        """Test that file records carry the account and respect the level."""
        log_file = tmp_path / "users" / "john_at_gmail_com" / "log_2024-01-01.txt"
        setup_logging(log_level="INFO", log_file=log_file, account="john@gmail.com")

        logger.info("Email scanning started...")
        logger.debug("Sender parsed: hidden")
        logger.remove()

        content = log_file.read_text(encoding="utf-8")
        assert "john@gmail.com" in content
        assert "Email scanning started..." in content
        assert "hidden" not in content

    def test_console_only(self, capsys):
        setup_logging(log_level="INFO")
        logger.warning("console warning")
        logger.remove()

        captured = capsys.readouterr()
        assert "console warning" in captured.err
        assert captured.out == ""
