import pytest

from mailrules.actions import Move, SetSeen, UnknownAction, parse_action
from mailrules.errors import RuleParseError


def test_seen_and_unseen():
    assert parse_action('{"type": 1}') == SetSeen(seen=True)
    assert parse_action('{"type": 2}') == SetSeen(seen=False)


def test_move_carries_target():
    assert parse_action('{"type": 3, "target": 7}') == Move(target=7)


def test_unknown_type_is_kept_not_rejected():
    assert parse_action('{"type": 42, "whatever": true}') == UnknownAction(type=42)


@pytest.mark.parametrize("text", [
    "",
    "{",
    '"text"',
    "{}",
    '{"type": "1"}',
    '{"type": true}',
    '{"type": 3}',
    '{"type": 3, "target": "7"}',
    '{"type": 3, "target": null}',
])
def test_malformed_documents(text):
    with pytest.raises(RuleParseError) as excinfo:
        parse_action(text)
    assert excinfo.value.document == "action"
