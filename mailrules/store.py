"""Queries the rule engine and the operation processor read through."""

from mailrules.extensions import db
from mailrules.models import Folder, Message, Operation, Rule


def enabled_rules(folder_id):
    """Enabled rules of a folder in evaluation order (ties broken by id)."""
    return (
        Rule.query.filter_by(folder_id=folder_id, enabled=True)
        .order_by(Rule.order, Rule.id)
        .all()
    )


def get_message(message_id):
    return db.session.get(Message, message_id)


def set_seen(message, seen: bool) -> None:
    message.seen = seen


def pending_operations(account_id=None, limit=None):
    query = Operation.query.order_by(Operation.id)
    if account_id is not None:
        query = (
            query.join(Message, Operation.message_id == Message.id)
            .join(Folder, Message.folder_id == Folder.id)
            .filter(Folder.account_id == account_id)
        )
    if limit:
        query = query.limit(limit)
    return query.all()
