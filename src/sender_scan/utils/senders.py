# src/sender_scan/utils/senders.py
"""
Sender identity resolution for raw "From" header values.

A header yields exactly one (display name, address) pair or the empty
identity. Nothing here raises: any parse problem degrades to
`EMPTY_IDENTITY` and the caller skips the message.
"""

from __future__ import annotations
import re
from email.header import decode_header, make_header
from email.utils import getaddresses

from sender_scan.logging import logger
from sender_scan.models import SenderIdentity, EMPTY_IDENTITY

__all__ = ["parse_sender", "extract_name_from_email"]

# Runs of separators that split a mailbox local part into name fragments.
_NAME_SEPARATORS = re.compile(r"[._-]+")

# One local part and one domain, no whitespace or extra "@".
_ADDR_SPEC = re.compile(r"^[^@\s<>(),;:\"]+@[^@\s<>(),;:\"]+$")


def _capitalize(fragment: str) -> str:
    """
    Lowercase a fragment and upper-case each letter that starts a word.

    Letters, digits and "_" continue a word; ASCII punctuation and whitespace
    end it. "john2doe" -> "John2doe", "o'brien" -> "O'Brien".
    """
    chars = []
    word_start = True
    for ch in fragment.lower():
        chars.append(ch.upper() if word_start else ch)
        word_start = ch.isspace() or (ch.isascii() and not (ch.isalnum() or ch == "_"))
    return "".join(chars)


def extract_name_from_email(email_addr: str) -> str:
    """
    Derive a readable name from the local part of an address.

    "john.doe_smith@x.com" -> "John Doe Smith", "@x.com" -> "".
    """
    local_part = (email_addr or "").split("@", 1)[0]
    fragments = [p for p in _NAME_SEPARATORS.split(local_part) if p]
    return " ".join(_capitalize(p) for p in fragments)


def _decode_words(value: str) -> str:
    """Decode RFC 2047 encoded words; return the input unchanged on failure."""
    try:
        return str(make_header(decode_header(value)))
    except (ValueError, LookupError, UnicodeError, TypeError):
        return value


def _angle_brackets_balanced(value: str) -> bool:
    """True when every "<" outside a quoted string is closed by a ">"."""
    depth = 0
    quoted = escaped = False
    for ch in value:
        if escaped:
            escaped = False
        elif ch == "\\":
            escaped = True
        elif ch == '"':
            quoted = not quoted
        elif quoted:
            continue
        elif ch == "<":
            depth += 1
        elif ch == ">":
            depth -= 1
            if depth < 0:
                return False
    return depth == 0


def parse_sender(from_header: str) -> SenderIdentity:
    """
    Parse a single "From" header value into a SenderIdentity.

    - The address is lowercased and must be a plain `local@domain`
    - A present display name is trimmed and kept verbatim
    - A missing display name is derived from the local part
    - Headers listing several addresses, or none, yield EMPTY_IDENTITY
    - An unclosed "<" yields EMPTY_IDENTITY
    """
    if not from_header or not from_header.strip():
        return EMPTY_IDENTITY

    if not _angle_brackets_balanced(from_header):
        logger.debug(f"Failed to parse address {from_header!r}: unbalanced angle brackets")
        return EMPTY_IDENTITY

    try:
        pairs = [(n, a) for n, a in getaddresses([from_header]) if n or a]
    except Exception as e:
        logger.debug(f"Failed to parse address {from_header!r}: {e}")
        return EMPTY_IDENTITY

    if len(pairs) != 1:
        logger.debug(f"Failed to parse address {from_header!r}: expected one address, got {len(pairs)}")
        return EMPTY_IDENTITY

    name, addr = pairs[0]
    if not _ADDR_SPEC.match(addr):
        logger.debug(f"Failed to parse address {from_header!r}: invalid addr-spec {addr!r}")
        return EMPTY_IDENTITY

    email_addr = addr.lower()
    full_name = _decode_words(name).strip() if name else ""
    if not full_name:
        full_name = extract_name_from_email(email_addr)

    logger.debug(f"Sender parsed: {full_name} <{email_addr}>")
    return SenderIdentity(display_name=full_name, email_address=email_addr)
