"""
Logging for the sender scanner, built on loguru.

Console records go to stderr so they never interleave with the progress
lines a scan prints to stdout. Every record carries the account it belongs
to, which keeps per-user log files readable when several accounts share a
host.
"""

from __future__ import annotations
import sys
from pathlib import Path
from loguru import logger

_CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<magenta>{extra[account]}</magenta> | <cyan>{name}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)
_FILE_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {extra[account]} | "
    "{name}:{function}:{line} - {message}"
)

# Records logged before setup_logging() still need the field.
logger.configure(extra={"account": "-"})


def setup_logging(
    log_level: str = "INFO",
    log_file: str | Path | None = None,
    *,
    account: str | None = None,
    rotation: str = "10 MB",
    retention: str = "30 days",
    console_level: str | None = None,
) -> None:
    """
    Replace loguru's default handler with the scanner's sinks.

    Args:
        log_level: Level for the file sink (DEBUG when --verbose)
        log_file: Per-account log file; None logs to the console only
        account: Login shown in every record
        rotation: Size at which the file is rotated
        retention: How long rotated files are kept
        console_level: Console level; defaults to WARNING when a file is
            configured, otherwise log_level
    """
    logger.remove()
    logger.configure(extra={"account": account or "-"})

    if console_level is None:
        console_level = "WARNING" if log_file else log_level

    logger.add(sys.stderr, format=_CONSOLE_FORMAT, level=console_level, colorize=True)

    if not log_file:
        return

    log_path = Path(log_file)
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_path,
            format=_FILE_FORMAT,
            level=log_level,
            rotation=rotation,
            retention=retention,
            encoding="utf-8",
            catch=True,
        )
    except OSError as e:
        print(f"[WARN] Cannot write log file {log_path}: {e}", file=sys.stderr)
        print("[WARN] Continuing with console logging only", file=sys.stderr)


__all__ = ["logger", "setup_logging"]
