"""Rule matching engine – evaluates a rule's condition document against a message.

A condition document is a JSON object whose recognized keys are matchers::

    {"sender": {"value": "...", "regex": false},
     "subject": {"value": "...", "regex": true}}

All matchers present must be satisfied (AND logic). A document with no
recognized matcher never matches.
"""

import json
import re
from dataclasses import dataclass, field
from typing import Optional

from mailrules.diagnostics import (
    CONDITION_INVALID,
    NO_MATCHERS,
    DiagnosticEvent,
    default_diagnostics,
)
from mailrules.errors import RuleParseError

# Document key -> matcher class, evaluated in registration order
MATCHERS = {}


def register_matcher(cls):
    """Class decorator registering a matcher under its document key."""
    MATCHERS[cls.key] = cls
    return cls


def text_matches(needle: Optional[str], haystack: Optional[str], regex: bool, pattern=None) -> bool:
    """Literal (case-sensitive contains) or regular expression (full match) test."""
    if needle is None or haystack is None:
        return False
    if regex:
        if pattern is None:
            pattern = re.compile(needle)
        return pattern.fullmatch(haystack) is not None
    return needle in haystack


def format_address(personal: Optional[str], address: Optional[str]) -> str:
    if personal:
        return f"{personal} <{address}>"
    return f"<{address}>"


def _parse_flag(key: str, raw) -> bool:
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, str) and raw.lower() in ("true", "false"):
        return raw.lower() == "true"
    raise RuleParseError("condition", f"'{key}.regex' must be a boolean")


@dataclass(frozen=True)
class TextMatcher:
    """Matches one message field against a literal or a regular expression."""

    key = ""

    value: str
    regex: bool
    pattern: Optional[re.Pattern] = field(default=None, compare=False, repr=False)

    @classmethod
    def parse(cls, raw: dict):
        if "value" not in raw or not isinstance(raw["value"], str):
            raise RuleParseError("condition", f"'{cls.key}.value' must be a string")
        if "regex" not in raw:
            raise RuleParseError("condition", f"'{cls.key}.regex' is required")
        value = raw["value"]
        regex = _parse_flag(cls.key, raw["regex"])

        pattern = None
        if regex:
            try:
                pattern = re.compile(value)
            except re.error as exc:
                raise RuleParseError("condition", f"'{cls.key}' pattern {value!r}: {exc}") from exc
        return cls(value=value, regex=regex, pattern=pattern)

    def test(self, haystack: Optional[str]) -> bool:
        return text_matches(self.value, haystack, self.regex, self.pattern)

    def satisfied_by(self, message) -> bool:
        raise NotImplementedError


@register_matcher
@dataclass(frozen=True)
class SenderMatcher(TextMatcher):
    key = "sender"

    def satisfied_by(self, message) -> bool:
        for personal, address in message.senders or ():
            if self.test(format_address(personal, address)):
                return True
        return False


@register_matcher
@dataclass(frozen=True)
class SubjectMatcher(TextMatcher):
    key = "subject"

    def satisfied_by(self, message) -> bool:
        return self.test(message.subject)


@dataclass(frozen=True)
class Condition:
    matchers: tuple = ()

    def satisfied_by(self, message) -> bool:
        # Safeguard: a rule must declare at least one matcher to ever fire
        if not self.matchers:
            return False
        return all(matcher.satisfied_by(message) for matcher in self.matchers)


@dataclass(frozen=True)
class MatchResult:
    matched: bool
    error: Optional[RuleParseError] = None


def parse_condition(text) -> Condition:
    """Parse a JSON condition document into a :class:`Condition`."""
    try:
        document = json.loads(text)
    except (TypeError, ValueError) as exc:
        raise RuleParseError("condition", f"invalid JSON: {exc}") from exc
    if not isinstance(document, dict):
        raise RuleParseError("condition", "document must be an object")

    matchers = []
    for key, matcher_cls in MATCHERS.items():
        raw = document.get(key)
        if isinstance(raw, dict):
            matchers.append(matcher_cls.parse(raw))
    return Condition(matchers=tuple(matchers))


def evaluate(rule, message, diagnostics=None) -> MatchResult:
    """Evaluate *rule*'s condition against *message* without raising."""
    if diagnostics is None:
        diagnostics = default_diagnostics()
    try:
        condition = parse_condition(rule.condition)
    except RuleParseError as exc:
        diagnostics.emit(DiagnosticEvent(CONDITION_INVALID, rule.id, message.id, exc.reason))
        return MatchResult(matched=False, error=exc)

    if not condition.matchers:
        diagnostics.emit(DiagnosticEvent(NO_MATCHERS, rule.id, message.id))
        return MatchResult(matched=False)

    return MatchResult(matched=condition.satisfied_by(message))


def matches(rule, message, diagnostics=None) -> bool:
    return evaluate(rule, message, diagnostics).matched
