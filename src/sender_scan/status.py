"""
Status file written next to the account database.

External tools poll this file to see whether a scan is running, finished or
failed.
"""

from __future__ import annotations
from datetime import datetime
from pathlib import Path

from sender_scan.logging import logger

STATUS_RUNNING = "RUNNING"
STATUS_SUCCESS = "SUCCESS"
STATUS_ERROR = "ERROR"


def write_status(status_path: str | Path, status: str, message: str) -> bool:
    """
    Overwrite the status file. Failures are logged and reported as False.
    """
    timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
    content = f"STATUS: {status}\nTIME: {timestamp}\nMESSAGE: {message}\n"
    try:
        Path(status_path).write_text(content, encoding="utf-8")
    except OSError as e:
        logger.error(f"Failed to write status file: {e}")
        return False
    return True
