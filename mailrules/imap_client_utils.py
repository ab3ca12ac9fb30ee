"""IMAP utility: fetch available mailbox names (folders) for an account."""

import logging
import re

from imapclient import imap_utf7

from mailrules.imap_client import IMAP_ERRORS, session

logger = logging.getLogger(__name__)

# (\HasNoChildren) "/" "INBOX/Invoices"
_LIST_RE = re.compile(rb'\((?P<flags>[^)]*)\) (?P<delimiter>"[^"]*"|NIL) (?P<name>.+)')


def parse_list_response(line: bytes):
    """Return the decoded mailbox name of one LIST response line, or None."""
    match = _LIST_RE.match(line)
    if not match:
        return None
    if b"\\Noselect" in match.group("flags").split():
        return None
    name = match.group("name").strip()
    if name.startswith(b'"') and name.endswith(b'"'):
        name = name[1:-1].replace(b'\\"', b'"').replace(b"\\\\", b"\\")
    return imap_utf7.decode(name)


def list_mailboxes(account):
    """
    Fetch selectable mailbox names for *account*.

    Returns an empty list when the server cannot be reached.
    """
    try:
        with session(account) as conn:
            status, mailboxes = conn.list()
    except IMAP_ERRORS:
        logger.exception(
            "IMAP list failed for %s@%s:%s", account.imap_user, account.imap_host, account.imap_port
        )
        return []
    if status != "OK":
        return []

    result = []
    for line in mailboxes:
        if isinstance(line, tuple):
            # Literal mailbox name: (b'(\\HasNoChildren) "/" {5}', b'Inbox')
            line = line[0].rsplit(b" ", 1)[0] + b' "' + line[1] + b'"'
        if not line:
            continue
        name = parse_list_response(line)
        if name is not None:
            result.append(name)
    return result
