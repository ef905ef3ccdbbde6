"""
IMAP transport: a read-only session over TLS built on `imaplib`.
"""

from __future__ import annotations
import imaplib
import re
import ssl
from typing import Iterator, List, Optional, Tuple

from sender_scan.errors import (
    AuthenticationError,
    FetchError,
    MailboxConnectionError,
    MailboxSelectError,
)
from sender_scan.logging import logger


DEFAULT_PORT = 993


def parse_server_address(server: str) -> Tuple[str, int]:
    """
    Split "host" or "host:port" into its parts; the port defaults to 993.

    Raises:
        ValueError: If the host is empty or the port is not 1-65535
    """
    address = (server or "").strip()
    host, sep, port_text = address.rpartition(":")
    if not sep:
        host, port_text = address, ""

    if not host:
        raise ValueError(f"Invalid IMAP server address: {server!r}")
    if not port_text:
        return host, DEFAULT_PORT
    try:
        port = int(port_text)
    except ValueError:
        raise ValueError(f"Invalid IMAP server address: {server!r}")
    if not (1 <= port <= 65535):
        raise ValueError(f"Invalid IMAP server port: {server!r}")
    return host, port


class MailboxSession:
    """
    Read-only IMAP session over TLS.

    Wraps `imaplib.IMAP4_SSL` with the handful of operations the scanner
    needs and translates protocol failures into the scan error hierarchy.
    Messages are addressed by sequence number and fetched with BODY.PEEK so
    their \\Seen flag is never touched.
    """

    #: Only the From header is requested; bodies are never downloaded.
    FETCH_ITEMS = "(BODY.PEEK[HEADER.FIELDS (FROM)])"

    _FETCH_SEQ = re.compile(rb"^(\d+)\s")
    _LIST_NAME = re.compile(r'\((?P<flags>[^)]*)\) (?P<delim>"[^"]*"|NIL) (?P<name>.+)$')

    def __init__(
        self,
        server: str,
        username: str,
        password: str,
        timeout: Optional[float] = 60.0,
    ) -> None:
        """
        Args:
            server: "host" or "host:port" (port defaults to 993)
            username: IMAP login
            password: IMAP password (an app password for Gmail)
            timeout: Socket timeout in seconds
        """
        self.host, self.port = parse_server_address(server)
        self.username = username
        self.password = password
        self.timeout = timeout
        self._conn: Optional[imaplib.IMAP4_SSL] = None

    @property
    def connected(self) -> bool:
        return self._conn is not None

    def _require_conn(self) -> imaplib.IMAP4_SSL:
        if self._conn is None:
            raise MailboxConnectionError("IMAP session is not connected")
        return self._conn

    def connect(self) -> None:
        """Open the TLS connection."""
        logger.info(f"Connecting to IMAP server: {self.host}:{self.port}")
        try:
            self._conn = imaplib.IMAP4_SSL(
                self.host,
                self.port,
                ssl_context=ssl.create_default_context(),
                timeout=self.timeout,
            )
        except (OSError, imaplib.IMAP4.error) as e:
            logger.error(f"IMAP connection failed: {e}")
            raise MailboxConnectionError(f"IMAP connection failed: {e}") from e

    def login(self) -> None:
        """Authenticate with the configured credentials."""
        conn = self._require_conn()
        logger.info(f"User login: {self.username}")
        try:
            conn.login(self.username, self.password)
        except imaplib.IMAP4.error as e:
            logger.error(f"Login failed: {e}")
            raise AuthenticationError(f"login failed: {e}") from e
        except OSError as e:
            logger.error(f"Login failed: {e}")
            raise MailboxConnectionError(f"connection lost during login: {e}") from e

    def select(self, mailbox: str = "INBOX", readonly: bool = True) -> int:
        """
        Open a mailbox and return its message count.

        Raises:
            MailboxSelectError: If the server refuses the mailbox
        """
        conn = self._require_conn()
        logger.info(f"Selecting {mailbox} (readonly={readonly})...")
        try:
            typ, data = conn.select(mailbox, readonly=readonly)
        except (imaplib.IMAP4.error, OSError) as e:
            logger.error(f"Failed to select {mailbox}: {e}")
            raise MailboxSelectError(f"failed to select {mailbox}: {e}") from e

        if typ != "OK":
            detail = data[0].decode(errors="replace") if data and data[0] else typ
            logger.error(f"Failed to select {mailbox}: {detail}")
            raise MailboxSelectError(f"failed to select {mailbox}: {detail}")

        try:
            return int(data[0])
        except (TypeError, ValueError, IndexError) as e:
            raise MailboxSelectError(f"unexpected SELECT response for {mailbox}: {data!r}") from e

    def fetch_headers(self, start_id: int, end_id: int) -> Iterator[Tuple[int, bytes]]:
        """
        Fetch the From header of every message in `start_id:end_id`.

        Yields:
            (sequence number, raw header bytes) per message

        Raises:
            FetchError: If the server rejects the range or the connection drops
        """
        conn = self._require_conn()
        try:
            typ, data = conn.fetch(f"{start_id}:{end_id}", self.FETCH_ITEMS)
        except (imaplib.IMAP4.error, OSError) as e:
            raise FetchError(f"fetch {start_id}:{end_id} failed: {e}") from e

        if typ != "OK":
            raise FetchError(f"fetch {start_id}:{end_id} failed: {data!r}")

        for item in data or []:
            # Literal responses arrive as (envelope, payload); bare b")" closes them.
            if not isinstance(item, tuple) or len(item) < 2:
                continue
            envelope, payload = item[0], item[1]
            m = self._FETCH_SEQ.match(envelope or b"")
            seq_num = int(m.group(1)) if m else 0
            yield seq_num, payload or b""

    def list_mailboxes(self) -> List[str]:
        """Return the names of all folders visible to the account."""
        conn = self._require_conn()
        try:
            typ, data = conn.list()
        except (imaplib.IMAP4.error, OSError) as e:
            raise MailboxSelectError(f"failed to list mailboxes: {e}") from e
        if typ != "OK":
            raise MailboxSelectError(f"failed to list mailboxes: {data!r}")

        names: List[str] = []
        for raw in data or []:
            if not raw:
                continue
            line = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else str(raw)
            m = self._LIST_NAME.match(line)
            names.append(m.group("name").strip('"') if m else line)
        return names

    def logout(self) -> None:
        """Close the session; errors on the way out are only logged."""
        if self._conn is None:
            return
        try:
            self._conn.logout()
        except (imaplib.IMAP4.error, OSError) as e:
            logger.warning(f"IMAP logout failed: {e}")
        finally:
            self._conn = None
            logger.debug("IMAP session closed")

    def __enter__(self) -> "MailboxSession":
        self.connect()
        self.login()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.logout()
