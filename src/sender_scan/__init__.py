"""
Resumable IMAP sender scanner.

Scans a mailbox in checkpointed batches and stores every distinct sender
address it finds.
"""

__version__ = "1.0.0"
