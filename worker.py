"""
Mail Rules Worker Daemon
────────────────────────
Periodically synchronizes the enabled folders of every enabled account, runs
each folder's rules on the new messages, and delivers the operations the rules
queued (mark seen/unseen, move). Controlled via the worker_state table
(pause / resume / interval); rule actions wake it early through worker_triggers.
"""

import logging
import os
import sys
import time

# Ensure the project root is importable
sys.path.insert(0, os.path.abspath(os.path.dirname(__file__)))

from mailrules import create_app  # noqa: E402
from mailrules.extensions import db  # noqa: E402
from mailrules.models import Account, WorkerTrigger  # noqa: E402
from mailrules.processor import process_operations  # noqa: E402
from mailrules.routes.maintenance import delete_old_logs, get_worker_state  # noqa: E402
from mailrules.synchronize import synchronize_account  # noqa: E402

logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO"),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger("worker")


def cleanup_old_logs():
    deleted = delete_old_logs()
    if deleted:
        db.session.commit()
        logger.info("Cleaned up %d old failure log(s)", deleted)


def process_triggers():
    """Deliver queued operations for accounts whose rules requested it."""
    triggers = WorkerTrigger.query.all()
    if not triggers:
        return
    account_ids = {trigger.account_id for trigger in triggers}
    for trigger in triggers:
        db.session.delete(trigger)
    db.session.commit()

    logger.info("Processing operations for %d triggered account(s)", len(account_ids))
    for account_id in sorted(account_ids):
        account = db.session.get(Account, account_id)
        if account is None or not account.enabled:
            continue
        name = account.name
        try:
            process_operations(account)
        except Exception:
            db.session.rollback()
            logger.exception("Error processing operations for %s", name)


def run_cycle():
    cleanup_old_logs()
    process_triggers()

    for account in Account.query.filter_by(enabled=True).all():
        name = account.name
        try:
            synchronize_account(account)
            process_operations(account)
        except Exception:
            db.session.rollback()
            logger.exception("Unhandled error processing %s", name)


def wait(interval):
    """Sleep *interval* seconds, delivering requested operations meanwhile."""
    deadline = time.monotonic() + interval
    while time.monotonic() < deadline:
        time.sleep(1)
        process_triggers()


def run():
    """Main daemon loop."""
    app = create_app()

    with app.app_context():
        logger.info("Worker started – default interval %ds", app.config["POLL_INTERVAL"])

        while True:
            state = get_worker_state()
            db.session.commit()
            interval = state.poll_interval or app.config["POLL_INTERVAL"]

            if not state.is_running:
                logger.debug("Worker paused – sleeping %ds", interval)
                time.sleep(interval)
                db.session.expire_all()
                continue

            run_cycle()

            logger.debug("Cycle complete – sleeping %ds", interval)
            wait(interval)


if __name__ == "__main__":
    run()
