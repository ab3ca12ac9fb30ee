"""
Folder synchronization – store new messages and run the folder's rules on each.

Used by both the worker daemon and the "synchronize now" API route.
"""

import logging

from mailrules import imap_client
from mailrules.engine import filter_message
from mailrules.extensions import db
from mailrules.models import FailureLog, Message
from mailrules.operation_queue import DatabaseOperationQueue

logger = logging.getLogger(__name__)


def synchronize_folder(folder, diagnostics=None) -> int:
    """
    Fetch new mail for *folder* and filter it through the folder's rules.

    Returns the number of messages stored. IMAP failures are recorded in the
    failure log and leave the folder cursor unchanged.
    """
    account = folder.account
    logger.info("Checking %s/%s (%s@%s)", account.name, folder.name, account.imap_user, account.imap_host)

    try:
        with imap_client.session(account) as conn:
            if folder.last_uid is None:
                # First run: start after the newest message, don't filter existing mail
                folder.last_uid = imap_client.highest_uid(conn, folder.name)
                db.session.commit()
                logger.info("Initialized cursor of %s to UID %d", folder.name, folder.last_uid)
                return 0
            fetched = imap_client.fetch_new_messages(conn, folder.name, folder.last_uid)
    except imap_client.IMAP_ERRORS as exc:
        logger.error("IMAP error for %s/%s: %s", account.name, folder.name, exc)
        db.session.add(FailureLog(
            account_id=account.id,
            folder_name=folder.name,
            error_message=f"IMAP error: {exc}",
        ))
        db.session.commit()
        return 0

    queue = DatabaseOperationQueue()
    stored = 0
    for mail in fetched:
        existing = Message.query.filter_by(folder_id=folder.id, uid=mail.uid).first()
        if existing is not None:
            logger.debug("  UID %d already stored, skipping", mail.uid)
            continue

        message = Message(
            folder=folder,
            uid=mail.uid,
            message_id=mail.message_id or None,
            subject=mail.subject,
            seen=mail.seen,
            received_at=mail.internal_date,
        )
        message.senders = mail.senders
        db.session.add(message)
        db.session.flush()

        result = filter_message(message, queue, diagnostics)
        logger.info("  New mail uid=%d subject=%s -> %s", mail.uid, mail.subject, result.outcome.value)
        stored += 1

    if fetched:
        folder.last_uid = max(folder.last_uid, max(mail.uid for mail in fetched))
    db.session.commit()
    return stored


def synchronize_account(account, diagnostics=None) -> int:
    total = 0
    for folder in account.folders:
        if folder.synchronize:
            total += synchronize_folder(folder, diagnostics)
    return total
