"""Action dispatcher – executes a matched rule's action against a message.

Execution is split in two steps: the local effect on the in-memory message
(:func:`apply_local`) and the durable intent sent to the operation queue
(:func:`intents`).
"""

from dataclasses import dataclass

from mailrules import store
from mailrules.actions import Move, SetSeen, UnknownAction, parse_action
from mailrules.diagnostics import (
    ACTION_INVALID,
    ACTION_UNKNOWN,
    DiagnosticEvent,
    default_diagnostics,
)
from mailrules.errors import RuleParseError
from mailrules.operation_queue import MOVE, SEEN


@dataclass(frozen=True)
class OperationIntent:
    kind: str
    args: tuple = ()


def apply_local(action, message) -> None:
    if isinstance(action, SetSeen):
        store.set_seen(message, action.seen)


def intents(action, message) -> list:
    if isinstance(action, SetSeen):
        return [OperationIntent(SEEN, (action.seen,))]
    if isinstance(action, Move):
        # False: not a duplicate-detection move
        return [OperationIntent(MOVE, (action.target, False))]
    return []


def execute(rule, message, queue, diagnostics=None) -> None:
    """
    Execute *rule*'s action on *message*.

    A malformed action document is reported to *diagnostics* and leaves the
    message untouched. Errors raised by *queue* propagate.
    """
    if diagnostics is None:
        diagnostics = default_diagnostics()
    try:
        action = parse_action(rule.action)
    except RuleParseError as exc:
        diagnostics.emit(DiagnosticEvent(ACTION_INVALID, rule.id, message.id, exc.reason))
        return

    if isinstance(action, UnknownAction):
        diagnostics.emit(DiagnosticEvent(ACTION_UNKNOWN, rule.id, message.id, f"type={action.type}"))
        return

    apply_local(action, message)

    pending = intents(action, message)
    for intent in pending:
        queue.enqueue(message, intent.kind, *intent.args)
    if pending:
        queue.request_processing()
