from unittest.mock import Mock

import pytest

from conftest import FakeMessage, make_rule
from mailrules.actions import Move, SetSeen, UnknownAction
from mailrules.diagnostics import ACTION_INVALID, ACTION_UNKNOWN, CollectingDiagnostics
from mailrules.dispatcher import OperationIntent, apply_local, execute, intents

CONDITION = {"subject": {"value": "", "regex": False}}


@pytest.fixture
def queue():
    return Mock()


@pytest.fixture
def message():
    return FakeMessage(id=5, subject="Hello", seen=False)


def test_mark_seen(queue, message):
    execute(make_rule(CONDITION, {"type": 1}), message, queue)

    assert message.seen is True
    queue.enqueue.assert_called_once_with(message, "seen", True)
    queue.request_processing.assert_called_once_with()


def test_mark_unseen(queue):
    message = FakeMessage(seen=True)
    execute(make_rule(CONDITION, {"type": 2}), message, queue)

    assert message.seen is False
    queue.enqueue.assert_called_once_with(message, "seen", False)
    queue.request_processing.assert_called_once_with()


def test_move_queues_target_without_touching_seen(queue, message):
    execute(make_rule(CONDITION, {"type": 3, "target": 7}), message, queue)

    queue.enqueue.assert_called_once_with(message, "move", 7, False)
    queue.request_processing.assert_called_once_with()
    assert message.seen is False


@pytest.mark.parametrize("action", [
    '{"type": 3}',
    "not json",
    '{"target": 7}',
])
def test_malformed_action_does_nothing(queue, message, action):
    diagnostics = CollectingDiagnostics()

    execute(make_rule(CONDITION, action), message, queue, diagnostics)

    assert message.seen is False
    queue.enqueue.assert_not_called()
    queue.request_processing.assert_not_called()
    assert diagnostics.kinds() == [ACTION_INVALID]


def test_unknown_action_type_is_ignored(queue, message):
    diagnostics = CollectingDiagnostics()

    execute(make_rule(CONDITION, {"type": 99}), message, queue, diagnostics)

    assert message.seen is False
    queue.enqueue.assert_not_called()
    assert diagnostics.kinds() == [ACTION_UNKNOWN]


def test_queue_failures_propagate(queue, message):
    queue.enqueue.side_effect = RuntimeError("disk full")

    with pytest.raises(RuntimeError):
        execute(make_rule(CONDITION, {"type": 3, "target": 1}), message, queue)


class TestSteps:
    def test_local_effect(self, message):
        apply_local(SetSeen(seen=True), message)
        assert message.seen is True

        apply_local(Move(target=2), message)
        apply_local(UnknownAction(type=9), message)
        assert message.seen is True

    def test_intents(self, message):
        assert intents(SetSeen(seen=False), message) == [OperationIntent("seen", (False,))]
        assert intents(Move(target=2), message) == [OperationIntent("move", (2, False))]
        assert intents(UnknownAction(type=9), message) == []

    def test_intents_do_not_mutate(self, message):
        intents(SetSeen(seen=True), message)
        assert message.seen is False
