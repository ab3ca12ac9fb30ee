"""
Rule evaluation pass – runs a folder's rules against one message.

Rules are evaluated in ascending ``order``. Every matching rule's action is
executed; a matching rule with ``stop`` set ends the pass.
"""

import enum
import logging
import threading
from dataclasses import dataclass, field

from mailrules import store
from mailrules.diagnostics import default_diagnostics
from mailrules.dispatcher import execute
from mailrules.matcher import matches
from mailrules.operation_queue import DatabaseOperationQueue

logger = logging.getLogger(__name__)

# Striped locks: a message is never evaluated by two threads at once
_LOCK_STRIPES = 64
_locks = [threading.Lock() for _ in range(_LOCK_STRIPES)]


def _lock_for(message):
    key = message.id if message.id is not None else id(message)
    return _locks[hash(key) % _LOCK_STRIPES]


class Outcome(enum.Enum):
    NO_MATCH = "no_match"
    STOPPED = "stopped"
    EXHAUSTED = "exhausted"


@dataclass
class EvaluationResult:
    outcome: Outcome
    matched: list = field(default_factory=list)  # ids of the rules whose action ran


def run_rules(rules, message, queue, diagnostics=None) -> EvaluationResult:
    """Evaluate *rules* against *message*, executing the action of each match."""
    if diagnostics is None:
        diagnostics = default_diagnostics()

    # sorted() is stable, so rules sharing an order keep their given sequence
    ordered = sorted(rules, key=lambda rule: rule.order)
    matched = []

    with _lock_for(message):
        for rule in ordered:
            if not rule.enabled:
                continue
            if not matches(rule, message, diagnostics):
                continue

            logger.info("Rule '%s' matched message %s", rule.name, message.id)
            execute(rule, message, queue, diagnostics)
            matched.append(rule.id)

            if rule.stop:
                return EvaluationResult(Outcome.STOPPED, matched)

    if not matched:
        return EvaluationResult(Outcome.NO_MATCH, matched)
    return EvaluationResult(Outcome.EXHAUSTED, matched)


def filter_message(message, queue=None, diagnostics=None) -> EvaluationResult:
    """
    Run the enabled rules of *message*'s folder against it.

    Changes are left in the session; the caller commits them together with
    whatever else belongs to the same transaction.
    """
    if queue is None:
        queue = DatabaseOperationQueue()
    rules = store.enabled_rules(message.folder_id)
    return run_rules(rules, message, queue, diagnostics)
