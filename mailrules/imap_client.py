"""IMAP helper – fetch new messages from a folder and apply queued operations."""

import email
import email.header
import email.utils
import imaplib
import logging
import re
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from imapclient import imap_utf7

logger = logging.getLogger(__name__)

SEEN_FLAG = r"(\Seen)"
DELETED_FLAG = r"(\Deleted)"

_FLAGS_RE = re.compile(rb"FLAGS \(([^)]*)\)")


class ImapError(RuntimeError):
    """The server rejected a command."""


# Everything that means "the server or the connection failed"
IMAP_ERRORS = (imaplib.IMAP4.error, OSError, ImapError)


@dataclass
class MailMessage:
    uid: int
    senders: List[tuple] = field(default_factory=list)  # (personal, address) pairs
    subject: Optional[str] = None
    message_id: str = ""
    seen: bool = False
    internal_date: Optional[datetime] = None


def decode_header_value(raw: str) -> str:
    """Decode an RFC‑2047 encoded header into a plain string."""
    if not raw:
        return ""
    parts = email.header.decode_header(raw)
    decoded = []
    for data, charset in parts:
        if isinstance(data, bytes):
            decoded.append(data.decode(charset or "utf-8", errors="replace"))
        else:
            decoded.append(data)
    return "".join(decoded)


def parse_senders(raw_from: str) -> List[tuple]:
    """Split a From header into (personal, address) pairs; personal is None when absent."""
    senders = []
    for personal, address in email.utils.getaddresses([raw_from]):
        if not address:
            continue
        personal = decode_header_value(personal)
        senders.append((personal or None, address))
    return senders


def quote_mailbox(name: str) -> bytes:
    """Encode a mailbox name as a quoted IMAP modified UTF-7 string."""
    encoded = imap_utf7.encode(name)
    return b'"' + encoded.replace(b"\\", b"\\\\").replace(b'"', b'\\"') + b'"'


def _check(result, what: str):
    status, data = result
    if status != "OK":
        raise ImapError(f"{what} failed: {data!r}")
    return data


def connect(account):
    """Open an IMAP connection for *account* and log in."""
    ssl_mode = account.ssl_mode or "ssl"
    if ssl_mode == "ssl":
        conn = imaplib.IMAP4_SSL(account.imap_host, account.imap_port)
    elif ssl_mode == "starttls":
        conn = imaplib.IMAP4(account.imap_host, account.imap_port)
        conn.starttls()
    else:  # "none"
        conn = imaplib.IMAP4(account.imap_host, account.imap_port)
    conn.login(account.imap_user, account.imap_password)
    return conn


@contextmanager
def session(account):
    conn = connect(account)
    try:
        yield conn
    finally:
        try:
            conn.logout()
        except IMAP_ERRORS as exc:
            logger.debug("Logout from %s failed: %s", account.imap_host, exc)


def select_mailbox(conn, mailbox: str, readonly: bool = False):
    status, data = conn.select(quote_mailbox(mailbox), readonly=readonly)
    if status != "OK":
        raise ImapError(f"Cannot select mailbox {mailbox}: {data!r}")
    return data


def highest_uid(conn, mailbox: str) -> int:
    """UID of the newest message in *mailbox*, 0 when it is empty."""
    select_mailbox(conn, mailbox, readonly=True)
    data = _check(conn.uid("search", None, "ALL"), "UID SEARCH")
    uids = [int(uid) for uid in (data[0] or b"").split()]
    return max(uids, default=0)


def _parse_fetch(uid: int, msg_data) -> Optional[MailMessage]:
    metadata = b""
    raw_header = None
    for part in msg_data:
        if isinstance(part, tuple) and len(part) >= 2:
            metadata += part[0]
            raw_header = part[1]
        elif isinstance(part, bytes):
            metadata += part

    if not raw_header:
        logger.warning("UID %d: header data not found in response", uid)
        return None

    msg = email.message_from_bytes(raw_header)

    flags = _FLAGS_RE.search(metadata)
    seen = bool(flags) and b"\\Seen" in flags.group(1).split()

    internal_date = None
    date_tuple = imaplib.Internaldate2tuple(metadata)
    if date_tuple is not None:
        internal_date = datetime.fromtimestamp(time.mktime(date_tuple), timezone.utc)

    raw_subject = msg.get("Subject")
    return MailMessage(
        uid=uid,
        senders=parse_senders(msg.get("From", "")),
        subject=decode_header_value(raw_subject) if raw_subject is not None else None,
        message_id=msg.get("Message-ID", "").strip(),
        seen=seen,
        internal_date=internal_date,
    )


def fetch_new_messages(conn, mailbox: str, last_uid: int) -> List[MailMessage]:
    """
    Fetch the headers of messages in *mailbox* with a UID above *last_uid*.

    Returns messages sorted by UID.
    """
    select_mailbox(conn, mailbox, readonly=True)

    # "n:*" always includes the newest message, even below n
    data = _check(conn.uid("search", None, f"UID {last_uid + 1}:*"), "UID SEARCH")
    uids = sorted(int(uid) for uid in (data[0] or b"").split() if int(uid) > last_uid)

    messages = []
    for uid in uids:
        status, msg_data = conn.uid("fetch", str(uid), "(UID FLAGS INTERNALDATE RFC822.HEADER)")
        if status != "OK" or not msg_data or not msg_data[0]:
            logger.warning("UID %d: fetch failed or empty response", uid)
            continue
        message = _parse_fetch(uid, msg_data)
        if message is not None:
            messages.append(message)

    logger.info("Found %d new message(s) in %s after UID %d", len(messages), mailbox, last_uid)
    return messages


def set_seen(conn, mailbox: str, uid: int, seen: bool) -> None:
    select_mailbox(conn, mailbox)
    command = "+FLAGS.SILENT" if seen else "-FLAGS.SILENT"
    _check(conn.uid("STORE", str(uid), command, SEEN_FLAG), "UID STORE")


def move_message(conn, mailbox: str, uid: int, target: str) -> None:
    """Move a message, using UID MOVE when the server supports it."""
    select_mailbox(conn, mailbox)
    quoted = quote_mailbox(target)
    if "MOVE" in conn.capabilities and "MOVE" in imaplib.Commands:
        _check(conn.uid("MOVE", str(uid), quoted), "UID MOVE")
        return
    _check(conn.uid("COPY", str(uid), quoted), "UID COPY")
    _check(conn.uid("STORE", str(uid), "+FLAGS.SILENT", DELETED_FLAG), "UID STORE")
    _check(conn.expunge(), "EXPUNGE")
