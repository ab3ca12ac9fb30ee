from unittest.mock import Mock, call

import pytest

from mailrules.imap_client import (
    ImapError,
    _parse_fetch,
    fetch_new_messages,
    move_message,
    parse_senders,
    quote_mailbox,
    set_seen,
)
from mailrules.imap_client_utils import parse_list_response

HEADER = (
    b"From: =?utf-8?q?J=C3=BCrgen?= <juergen@example.de>, bob@example.org\r\n"
    b"Subject: =?utf-8?q?Rechnung_f=C3=BCr_M=C3=A4rz?=\r\n"
    b"Message-ID: <abc@example.de>\r\n"
    b"\r\n"
)


def fetch_response(uid, flags=b"\\Seen"):
    return [
        (
            b"1 (UID %d FLAGS (%s) INTERNALDATE \"17-Jul-1996 02:44:25 -0700\" RFC822.HEADER {%d}"
            % (uid, flags, len(HEADER)),
            HEADER,
        ),
        b")",
    ]


def test_parse_senders():
    assert parse_senders('"Doe, Jane" <jane@example.com>, nobody') == [("Doe, Jane", "jane@example.com"),
                                                                      (None, "nobody")]
    assert parse_senders("") == []


def test_quote_mailbox():
    assert quote_mailbox("INBOX") == b'"INBOX"'
    assert quote_mailbox("Entwürfe") == b'"Entw&APw-rfe"'
    assert quote_mailbox('a"b') == b'"a\\"b"'


def test_parse_fetch():
    message = _parse_fetch(5, fetch_response(5))

    assert message.uid == 5
    assert message.senders == [("Jürgen", "juergen@example.de"), (None, "bob@example.org")]
    assert message.subject == "Rechnung für März"
    assert message.message_id == "<abc@example.de>"
    assert message.seen is True
    assert message.internal_date.year == 1996


def test_parse_fetch_unseen_without_header():
    assert _parse_fetch(5, fetch_response(5, flags=b"")).seen is False
    assert _parse_fetch(5, [b"1 (UID 5 FLAGS ())"]) is None


def test_fetch_new_messages_skips_old_uids():
    conn = Mock()
    conn.select.return_value = ("OK", [b"3"])

    def uid(command, *args):
        if command == "search":
            # The server answers "UID 11:*" with the newest message even when it is older
            return "OK", [b"10"] if args[1] == "UID 11:*" else [b""]
        return "OK", fetch_response(int(args[0]))

    conn.uid.side_effect = uid

    assert fetch_new_messages(conn, "INBOX", 10) == []

    conn.uid.side_effect = lambda command, *args: (
        ("OK", [b"12 11"]) if command == "search" else ("OK", fetch_response(int(args[0])))
    )
    assert [m.uid for m in fetch_new_messages(conn, "INBOX", 10)] == [11, 12]


def test_select_failure_raises():
    conn = Mock()
    conn.select.return_value = ("NO", [b"no such mailbox"])

    with pytest.raises(ImapError):
        fetch_new_messages(conn, "Gone", 0)


def test_set_seen():
    conn = Mock()
    conn.select.return_value = ("OK", [b"1"])
    conn.uid.return_value = ("OK", [None])

    set_seen(conn, "INBOX", 4, False)

    conn.uid.assert_called_once_with("STORE", "4", "-FLAGS.SILENT", r"(\Seen)")


def test_move_uses_move_capability():
    conn = Mock(capabilities=("IMAP4REV1", "MOVE"))
    conn.select.return_value = ("OK", [b"1"])
    conn.uid.return_value = ("OK", [None])

    move_message(conn, "INBOX", 4, "Archive")

    conn.uid.assert_called_once_with("MOVE", "4", b'"Archive"')


def test_move_falls_back_to_copy_and_expunge():
    conn = Mock(capabilities=("IMAP4REV1",))
    conn.select.return_value = ("OK", [b"1"])
    conn.uid.return_value = ("OK", [None])
    conn.expunge.return_value = ("OK", [None])

    move_message(conn, "INBOX", 4, "Archive")

    assert conn.uid.call_args_list == [
        call("COPY", "4", b'"Archive"'),
        call("STORE", "4", "+FLAGS.SILENT", r"(\Deleted)"),
    ]
    conn.expunge.assert_called_once_with()


def test_move_copy_failure_keeps_message():
    conn = Mock(capabilities=())
    conn.select.return_value = ("OK", [b"1"])
    conn.uid.return_value = ("NO", [b"quota"])

    with pytest.raises(ImapError):
        move_message(conn, "INBOX", 4, "Archive")
    conn.expunge.assert_not_called()


@pytest.mark.parametrize("line, expected", [
    (b'(\\HasNoChildren) "/" "INBOX/Invoices"', "INBOX/Invoices"),
    (b'(\\HasNoChildren) "." Archive', "Archive"),
    (b'(\\HasChildren) "/" "Entw&APw-rfe"', "Entwürfe"),
    (b'(\\Noselect \\HasChildren) "/" "[Gmail]"', None),
    (b"garbage", None),
])
def test_parse_list_response(line, expected):
    assert parse_list_response(line) == expected
