"""
Command-line interface for the sender scanner.
"""

from __future__ import annotations
import sys
import argparse
from pathlib import Path
from typing import Any, Dict

from sender_scan.config import Config, _init_storage, _load_env, DEFAULT_SERVER
from sender_scan.errors import ScanError, StorageError
from sender_scan.imap.client import MailboxSession
from sender_scan.logging import logger, setup_logging
from sender_scan.pipeline.reporting import ConsoleReporter
from sender_scan.pipeline.scan import run_scan
from sender_scan.pipeline.stats import collect_stats, format_stats
from sender_scan.status import STATUS_ERROR, STATUS_RUNNING, STATUS_SUCCESS, write_status


def _overrides(args: argparse.Namespace) -> Dict[str, Any]:
    """Map CLI arguments onto configuration variable names."""
    return {
        "IMAP_USER": args.user,
        "IMAP_PASSWORD": getattr(args, "password", None),
        "IMAP_SERVER": args.server,
        "IMAP_MAILBOX": getattr(args, "mailbox", None),
        "SCAN_BATCH_SIZE": getattr(args, "batch", None),
        "DB_PATH": args.db,
        "LOG_FILE": args.log,
        "STATUS_FILE": getattr(args, "status", None),
        "USERS_DIR": args.users_dir,
        "SHOW_PROGRESS": False if getattr(args, "no_progress", False) else None,
        "VERBOSE": True if args.verbose else None,
    }


def _prepare(args: argparse.Namespace, require_credentials: bool = True) -> Config:
    cfg = _load_env(_overrides(args), require_credentials=require_credentials)
    Path(cfg["USER_DIR"]).mkdir(parents=True, exist_ok=True)
    setup_logging(log_level=cfg["LOG_LEVEL"], log_file=cfg["LOG_FILE"], account=cfg["IMAP_USER"])
    return cfg


def _session(cfg: Config) -> MailboxSession:
    return MailboxSession(cfg["IMAP_SERVER"], cfg["IMAP_USER"], cfg["IMAP_PASSWORD"])


def cmd_scan(args: argparse.Namespace) -> int:
    """Scan the mailbox, resuming from the stored checkpoint."""
    try:
        cfg = _prepare(args)
    except ValueError as e:
        print(f"[ERROR] {e}", file=sys.stderr)
        return 1

    logger.info("=== NEW SCAN STARTED ===")
    logger.info(f"User: {cfg['IMAP_USER']}")
    logger.info(f"Server: {cfg['IMAP_SERVER']}")
    logger.info(f"Database: {cfg['DB_PATH']}")
    logger.info(f"Batch size: {cfg['BATCH_SIZE']}")

    write_status(cfg["STATUS_FILE"], STATUS_RUNNING, "Email scanning started")

    print("=== EMAIL SENDER SCANNER ===")
    print(f"User: {cfg['IMAP_USER']}")
    print(f"Server: {cfg['IMAP_SERVER']}")
    print(f"Database: {cfg['DB_PATH']}")
    print(f"Log file: {cfg['LOG_FILE']}")
    print(f"Status file: {cfg['STATUS_FILE']}")
    print(f"Batch size: {cfg['BATCH_SIZE']}")

    try:
        checkpoints, senders = _init_storage(cfg)
        print()
        print(format_stats(collect_stats(checkpoints, senders), cfg["IMAP_USER"]))
    except StorageError as e:
        message = f"Database error: {e}"
        logger.error(f"Failed to initialize database: {e}")
        print(f"[ERROR] {message}")
        write_status(cfg["STATUS_FILE"], STATUS_ERROR, message)
        return 1

    try:
        session = _session(cfg)
    except ValueError as e:
        logger.error(f"Invalid server address: {e}")
        print(f"[ERROR] {e}")
        write_status(cfg["STATUS_FILE"], STATUS_ERROR, f"Configuration error: {e}")
        return 1

    print("\n[INFO] Email scanning started...")
    print(f"[INFO] Detailed logs: {cfg['LOG_FILE']}")

    result = run_scan(
        session,
        checkpoints,
        senders,
        cfg["BATCH_SIZE"],
        mailbox=cfg["IMAP_MAILBOX"],
        reporter=ConsoleReporter(show_progress=cfg["SHOW_PROGRESS"]),
        pause_seconds=cfg["PAUSE_SECONDS"],
    )

    if result.error is not None:
        message = f"Scanning error: {result.error}"
        logger.error(f"Email scanning error: {result.error}")
        print(f"[ERROR] {message}")
        print("[INFO] Script can resume from where it left off. Run again.")
        write_status(cfg["STATUS_FILE"], STATUS_ERROR, message)
        return 1

    try:
        print()
        print(format_stats(collect_stats(checkpoints, senders), cfg["IMAP_USER"]))
    except StorageError as e:
        logger.error(f"Failed to read statistics: {e}")

    if result.batches_failed:
        logger.warning(f"{result.batches_failed} batch(es) failed and will be retried on the next run")

    success = f"Scanning completed successfully. Found {result.total_senders_found} unique senders."
    logger.info("=== SCANNING COMPLETED ===")
    print("[OK] Scanning completed successfully")
    write_status(cfg["STATUS_FILE"], STATUS_SUCCESS, success)
    return 0


def cmd_stats(args: argparse.Namespace) -> int:
    """Print statistics from the account database without connecting."""
    try:
        cfg = _prepare(args, require_credentials=False)
        checkpoints, senders = _init_storage(cfg)
        print(format_stats(collect_stats(checkpoints, senders), cfg["IMAP_USER"]))
    except (ValueError, StorageError) as e:
        print(f"[ERROR] {e}", file=sys.stderr)
        return 1
    return 0


def cmd_test_connection(args: argparse.Namespace) -> int:
    """Connect, log in and list folders."""
    try:
        cfg = _prepare(args)
    except ValueError as e:
        print(f"[ERROR] {e}", file=sys.stderr)
        return 1

    print(f"Testing IMAP connection to {cfg['IMAP_SERVER']} as {cfg['IMAP_USER']}...")
    try:
        with _session(cfg) as session:
            print("[OK] Connected and logged in")
            print("Folders:")
            for name in session.list_mailboxes():
                print(f"  - {name}")
    except ScanError as e:
        logger.error(f"Connection test failed: {e}")
        print(f"[ERROR] {e}")
        return 1

    print("[OK] Connection test passed. You can run the scan now.")
    return 0


def _common_arguments() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--user", help="Email username (env: IMAP_USER)")
    common.add_argument("--server", help=f"IMAP server address (default: {DEFAULT_SERVER})")
    common.add_argument("--db", help="Database file path (default: ./users/{username}/database.db)")
    common.add_argument("--log", help="Log file path (default: ./users/{username}/log_{date}.txt)")
    common.add_argument("--users-dir", dest="users_dir", help="Root folder for per-user data (default: ./users)")
    common.add_argument("--verbose", action="store_true", help="Enable verbose logging")
    return common


def build_parser() -> argparse.ArgumentParser:
    common = _common_arguments()
    parser = argparse.ArgumentParser(
        prog="sender-scan",
        description="Email Sender Scanner - collect every distinct sender of a mailbox",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s scan --user john@gmail.com --password abcdefghijklmnop
  %(prog)s scan --user john@outlook.com --password mypass --server outlook.office365.com:993
  %(prog)s scan --user john@gmail.com --password mypass --batch 100 --verbose
  %(prog)s stats --user john@gmail.com
  %(prog)s test-connection --user john@gmail.com --password mypass

Folder structure:
  ./users/john_at_gmail_com/{database.db, log_YYYY-MM-DD.txt, status.txt}
        """
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    scan_parser = subparsers.add_parser("scan", parents=[common], help="Scan the mailbox (resumable)")
    scan_parser.add_argument("--password", "--pass", dest="password", help="Email password (env: IMAP_PASSWORD)")
    scan_parser.add_argument("--mailbox", help="Mailbox to scan (default: INBOX)")
    scan_parser.add_argument("--status", help="Status file path (default: ./users/{username}/status.txt)")
    scan_parser.add_argument("--batch", type=int, help="Batch size 100-2000 (default: 500)")
    scan_parser.add_argument("--no-progress", action="store_true", dest="no_progress",
                             help="Do not print progress information")
    scan_parser.set_defaults(func=cmd_scan)

    stats_parser = subparsers.add_parser("stats", parents=[common], help="Show stored statistics")
    stats_parser.set_defaults(func=cmd_stats)

    test_parser = subparsers.add_parser("test-connection", parents=[common], help="Check IMAP login")
    test_parser.add_argument("--password", "--pass", dest="password", help="Email password (env: IMAP_PASSWORD)")
    test_parser.set_defaults(func=cmd_test_connection)

    return parser


def main(argv: list[str] | None = None) -> None:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    sys.exit(args.func(args))


if __name__ == "__main__":
    main()
