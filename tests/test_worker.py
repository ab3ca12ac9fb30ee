from unittest.mock import Mock

import worker
from mailrules.models import WorkerTrigger


def test_triggers_deliver_operations_once(db, account, monkeypatch):
    process = Mock(return_value=1)
    monkeypatch.setattr(worker, "process_operations", process)
    db.session.add_all([WorkerTrigger(account_id=account.id), WorkerTrigger(account_id=account.id)])
    db.session.commit()

    worker.process_triggers()

    process.assert_called_once_with(account)
    assert WorkerTrigger.query.count() == 0


def test_trigger_for_disabled_account_is_discarded(db, account, monkeypatch):
    process = Mock()
    monkeypatch.setattr(worker, "process_operations", process)
    account.enabled = False
    db.session.add(WorkerTrigger(account_id=account.id))
    db.session.commit()

    worker.process_triggers()

    process.assert_not_called()
    assert WorkerTrigger.query.count() == 0


def test_cycle_continues_after_a_failing_account(db, account, monkeypatch):
    monkeypatch.setattr(worker, "synchronize_account", Mock(side_effect=RuntimeError("boom")))
    process = Mock()
    monkeypatch.setattr(worker, "process_operations", process)

    worker.run_cycle()

    process.assert_not_called()
