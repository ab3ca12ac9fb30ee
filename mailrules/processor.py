"""
Operation processor – delivers queued operations to the IMAP server.

Delivery is at least once: an operation is deleted only after the server
accepted it. Failed operations stay queued until they reach
``MAX_OPERATION_ATTEMPTS``.
"""

import logging

from flask import current_app

from mailrules import imap_client, store
from mailrules.extensions import db
from mailrules.models import FailureLog, Folder
from mailrules.operation_queue import MOVE, SEEN

logger = logging.getLogger(__name__)

class UndeliverableOperation(Exception):
    """The operation can never succeed and is dropped."""


def _move_target(operation):
    folder = operation.message.folder
    target_id = operation.arguments[0]
    target = db.session.get(Folder, target_id)
    if target is None or target.account_id != folder.account_id:
        raise UndeliverableOperation(f"target folder {target_id} does not exist")
    return target


def _later_operations(operation):
    """Operations queued for the same message after *operation*, in queue order."""
    return sorted(
        (op for op in operation.message.operations if op.id > operation.id),
        key=lambda op: op.id,
    )


def _deliver(conn, operation) -> bool:
    """Apply *operation* on the server. Returns True when the message was moved away."""
    message = operation.message
    folder = message.folder
    args = operation.arguments

    if operation.name == SEEN:
        imap_client.set_seen(conn, folder.name, message.uid, bool(args[0]))
        return False

    if operation.name == MOVE:
        target = _move_target(operation)
        imap_client.move_message(conn, folder.name, message.uid, target.name)
        return True

    raise UndeliverableOperation(f"unknown operation '{operation.name}'")


def _record_failure(account, operation, error: str) -> None:
    db.session.add(FailureLog(
        account_id=account.id,
        folder_name=operation.message.folder.name,
        operation_name=operation.name,
        message_uid=operation.message.uid,
        error_message=error,
    ))


def process_operations(account, limit=None) -> int:
    """
    Deliver pending operations of *account* in queue order.

    Operations of one message are delivered in the order they were queued:
    after a failure the message's remaining operations wait for the next
    pass. Seen changes queued after a move are applied before it, since
    flags travel with the message; any other operation queued after a move
    is dropped and recorded in the failure log.

    Returns the number of delivered operations.
    """
    operations = store.pending_operations(account.id, limit)
    if not operations:
        return 0

    max_attempts = current_app.config.get("MAX_OPERATION_ATTEMPTS", 5)
    delivered = 0
    # Messages whose remaining operations are not delivered in this pass
    skipped = set()

    try:
        with imap_client.session(account) as conn:
            # Snapshot ids: operations of a moved message are deleted with it
            for operation, message_id in [(op, op.message_id) for op in operations]:
                if message_id in skipped:
                    continue
                later = []
                try:
                    if operation.name == MOVE:
                        _move_target(operation)
                        later = _later_operations(operation)
                        for follower in later:
                            if follower.name == SEEN:
                                _deliver(conn, follower)
                    was_moved = _deliver(conn, operation)
                except UndeliverableOperation as exc:
                    logger.warning("Dropping operation %s: %s", operation.id, exc)
                    _record_failure(account, operation, f"Dropped: {exc}")
                    db.session.delete(operation)
                    db.session.commit()
                    continue
                except imap_client.IMAP_ERRORS as exc:
                    skipped.add(message_id)
                    operation.attempts += 1
                    operation.error = str(exc)
                    _record_failure(account, operation, f"IMAP error: {exc}")
                    if operation.attempts >= max_attempts:
                        logger.error("Giving up on operation %s after %d attempts: %s",
                                     operation.id, operation.attempts, exc)
                        db.session.delete(operation)
                    else:
                        logger.warning("Operation %s failed (attempt %d): %s",
                                       operation.id, operation.attempts, exc)
                    db.session.commit()
                    continue

                if was_moved:
                    skipped.add(message_id)
                    for follower in later:
                        if follower.name == SEEN:
                            delivered += 1
                            continue
                        logger.warning("Dropping operation %s: message %s was moved",
                                       follower.id, message_id)
                        _record_failure(account, follower, "Dropped: message was moved before this operation")
                    # The message now lives in the target folder and is fetched from there
                    db.session.delete(operation.message)
                else:
                    db.session.delete(operation)
                db.session.commit()
                delivered += 1
    except imap_client.IMAP_ERRORS as exc:
        logger.error("IMAP connection for %s failed: %s", account.name, exc)
        db.session.add(FailureLog(account_id=account.id, error_message=f"IMAP error: {exc}"))
        db.session.commit()

    if delivered:
        logger.info("Delivered %d operation(s) for %s", delivered, account.name)
    return delivered
