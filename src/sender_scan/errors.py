"""
Exception hierarchy for the scan engine.

Connection, authentication and mailbox selection failures end a run.
Fetch failures are recovered per batch. Storage failures abort the run but
leave the last persisted checkpoint as the resume point.
"""


class ScanError(Exception):
    """Base class for every error the scan engine reports."""
    pass


class MailboxConnectionError(ScanError):
    """Raised when the IMAP server cannot be reached."""
    pass


class AuthenticationError(ScanError):
    """Raised when the server rejects the login."""
    pass


class MailboxSelectError(ScanError):
    """Raised when the mailbox cannot be opened."""
    pass


class FetchError(ScanError):
    """Raised when a whole message range could not be retrieved."""
    pass


class StorageError(ScanError):
    """Raised on checkpoint or sender repository I/O failure."""
    pass
