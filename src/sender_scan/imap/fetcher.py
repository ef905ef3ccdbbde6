"""
Batch fetcher: streams one message range from the session and reduces it to
a set of distinct senders.

The session is drained by a single worker thread into a bounded queue while
the calling thread parses headers as they arrive. The worker's future
carries the protocol-level outcome of the fetch.
"""

from __future__ import annotations
import queue
import re
from concurrent.futures import ThreadPoolExecutor
from email import policy
from email.errors import MessageError
from email.parser import BytesHeaderParser
from typing import Dict, Iterable, Protocol, Set, Tuple

from sender_scan.errors import FetchError
from sender_scan.logging import logger
from sender_scan.models import SenderIdentity
from sender_scan.utils.senders import parse_sender


class HeaderSource(Protocol):
    """Anything that can stream (seq_num, raw header bytes) for a range."""
    def fetch_headers(self, start_id: int, end_id: int) -> Iterable[Tuple[int, bytes]]: ...


# Marks the end of the stream in the queue.
_DONE = object()

# Line breaks that fold a header value onto continuation lines.
_FOLDING = re.compile(r"\r?\n(?=[ \t])")


class BatchFetcher:
    """
    Fetch sender identities for an inclusive range of message sequence numbers.

    At most one identity per distinct address is returned for a batch.
    Messages without a usable From header are skipped silently.
    """

    def __init__(self, session: HeaderSource, buffer_size: int = 50) -> None:
        """
        Args:
            session: Connected, authenticated session with a selected mailbox
            buffer_size: Capacity of the queue between producer and consumer
        """
        self.session = session
        self.buffer_size = buffer_size
        self._parser = BytesHeaderParser(policy=policy.default)

    def _produce(self, start_id: int, end_id: int, buffer: "queue.Queue[object]") -> int:
        """Push every raw message of the range into `buffer`; return how many."""
        delivered = 0
        try:
            for item in self.session.fetch_headers(start_id, end_id):
                buffer.put(item)
                delivered += 1
        finally:
            buffer.put(_DONE)
        return delivered

    def _resolve(self, seq_num: int, raw: bytes) -> SenderIdentity | None:
        # Raw value: the header policy would quietly close an unclosed "<".
        try:
            headers = self._parser.parsebytes(raw)
            from_header = next(
                (value for name, value in headers.raw_items() if name.lower() == "from"),
                None,
            )
            if from_header:
                from_header = _FOLDING.sub("", from_header)
                # 8-bit header bytes arrive surrogate-escaped; read them as UTF-8.
                from_header = from_header.encode("utf-8", "surrogateescape").decode("utf-8", "replace")
        except MessageError as e:
            logger.debug(f"Message {seq_num}: Parse failed: {e}")
            return None
        except Exception as e:
            logger.debug(f"Message {seq_num}: Unexpected parse error: {e}")
            return None

        if not from_header:
            logger.debug(f"Message {seq_num}: No From header")
            return None

        sender = parse_sender(str(from_header))
        if sender.is_empty:
            logger.debug(f"Message {seq_num}: Email parsing failed")
            return None
        return sender

    def fetch(self, start_id: int, end_id: int) -> Set[SenderIdentity]:
        """
        Collect the distinct senders of messages `start_id..end_id`.

        Blocks until the whole range has been delivered.

        Raises:
            FetchError: If the range could not be retrieved
        """
        logger.info(f"Processing batch: ID {start_id}-{end_id}")
        buffer: "queue.Queue[object]" = queue.Queue(maxsize=self.buffer_size)
        senders: Dict[str, SenderIdentity] = {}
        received = 0

        with ThreadPoolExecutor(max_workers=1, thread_name_prefix="imap-fetch") as pool:
            done = pool.submit(self._produce, start_id, end_id, buffer)

            while True:
                item = buffer.get()
                if item is _DONE:
                    break
                received += 1
                seq_num, raw = item  # type: ignore[misc]
                sender = self._resolve(seq_num, raw)
                if sender is not None and sender.email_address not in senders:
                    senders[sender.email_address] = sender

            try:
                done.result()
            except FetchError as e:
                logger.error(f"Batch fetch error: {e}")
                raise
            except Exception as e:
                logger.error(f"Batch fetch error: {e}")
                raise FetchError(f"fetch {start_id}:{end_id} failed: {e}") from e

        logger.info(
            f"Batch completed: {received} messages processed, "
            f"{len(senders)} unique senders found"
        )
        return set(senders.values())
