"""
Module entry point for running the scanner as a Python module.

Usage:
    python -m sender_scan scan --user <email> --password <password>
    python -m sender_scan stats --user <email>
    python -m sender_scan test-connection --user <email> --password <password>
"""

from sender_scan.cli import main

if __name__ == "__main__":
    main()
