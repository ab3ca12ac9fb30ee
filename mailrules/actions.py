"""Action documents: the single side effect a matching rule performs."""

import json
from dataclasses import dataclass

from mailrules.errors import RuleParseError

TYPE_SEEN = 1
TYPE_UNSEEN = 2
TYPE_MOVE = 3


@dataclass(frozen=True)
class SetSeen:
    seen: bool


@dataclass(frozen=True)
class Move:
    target: int


@dataclass(frozen=True)
class UnknownAction:
    """A type code this version does not know; executing it does nothing."""

    type: int


def _require_int(document: dict, key: str) -> int:
    if key not in document:
        raise RuleParseError("action", f"'{key}' is required")
    value = document[key]
    if isinstance(value, bool) or not isinstance(value, int):
        raise RuleParseError("action", f"'{key}' must be an integer")
    return value


def parse_action(text):
    """Parse a JSON action document into ``SetSeen``, ``Move`` or ``UnknownAction``."""
    try:
        document = json.loads(text)
    except (TypeError, ValueError) as exc:
        raise RuleParseError("action", f"invalid JSON: {exc}") from exc
    if not isinstance(document, dict):
        raise RuleParseError("action", "document must be an object")

    action_type = _require_int(document, "type")
    if action_type == TYPE_SEEN:
        return SetSeen(seen=True)
    elif action_type == TYPE_UNSEEN:
        return SetSeen(seen=False)
    elif action_type == TYPE_MOVE:
        return Move(target=_require_int(document, "target"))
    return UnknownAction(type=action_type)
