"""Operation queue – durable, ordered record of remote mail-store side effects.

Rule actions never talk to the IMAP server. They append an operation here and
ask for the queue to be processed; the worker delivers the operations later
(see :mod:`mailrules.processor`).
"""

import json
import logging

from mailrules.extensions import db
from mailrules.models import Operation, WorkerTrigger

logger = logging.getLogger(__name__)

SEEN = "seen"
MOVE = "move"


class OperationQueue:
    """Interface consumed by the action dispatcher."""

    def enqueue(self, message, kind: str, *args) -> None:
        raise NotImplementedError

    def request_processing(self) -> None:
        raise NotImplementedError


class DatabaseOperationQueue(OperationQueue):
    """
    Queue backed by the ``operations`` table.

    Nothing is committed here: operations join the caller's transaction so the
    local message change and the queued operation are stored together.
    """

    def __init__(self, session=None):
        self.session = session or db.session
        self._accounts = set()

    def enqueue(self, message, kind: str, *args) -> None:
        operation = Operation(
            message_id=message.id,
            name=kind,
            args=json.dumps(list(args)),
        )
        self.session.add(operation)
        self._accounts.add(message.folder.account_id)
        logger.debug("Queued %s%s for message %s", kind, list(args), message.id)

    def request_processing(self) -> None:
        for account_id in sorted(self._accounts):
            pending = (
                self.session.query(WorkerTrigger)
                .filter_by(account_id=account_id)
                .first()
            )
            if pending is None:
                self.session.add(WorkerTrigger(account_id=account_id))
        self._accounts.clear()
