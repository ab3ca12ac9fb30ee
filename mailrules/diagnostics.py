"""Diagnostic events emitted while evaluating rules.

The matcher and dispatcher never log directly; they report what went wrong to
an observer passed in by the caller. ``LoggingDiagnostics`` is the default.
"""

import logging
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)

CONDITION_INVALID = "condition_invalid"
ACTION_INVALID = "action_invalid"
ACTION_UNKNOWN = "action_unknown"
NO_MATCHERS = "no_matchers"

_WARNING_KINDS = {CONDITION_INVALID, ACTION_INVALID}


@dataclass(frozen=True)
class DiagnosticEvent:
    kind: str
    rule_id: Optional[int]
    message_id: Optional[int]
    detail: str = ""


class Diagnostics:
    """Observer for diagnostic events."""

    def emit(self, event: DiagnosticEvent) -> None:
        raise NotImplementedError


class LoggingDiagnostics(Diagnostics):
    """Forward events to the ``logging`` module."""

    def emit(self, event: DiagnosticEvent) -> None:
        level = logging.WARNING if event.kind in _WARNING_KINDS else logging.DEBUG
        logger.log(
            level,
            "Rule %s message %s: %s %s",
            event.rule_id,
            event.message_id,
            event.kind,
            event.detail,
        )


class CollectingDiagnostics(Diagnostics):
    """Keep every event in memory."""

    def __init__(self):
        self.events = []

    def emit(self, event: DiagnosticEvent) -> None:
        self.events.append(event)

    def kinds(self):
        return [event.kind for event in self.events]


def default_diagnostics() -> Diagnostics:
    return LoggingDiagnostics()
