from datetime import datetime, timedelta, timezone

from flask import Blueprint, current_app, jsonify, request

from mailrules.extensions import db
from mailrules.models import FailureLog, Operation, WorkerState

maintenance_bp = Blueprint("maintenance", __name__, url_prefix="/maintenance")

LOG_RETENTION_DAYS = 30
MIN_POLL_INTERVAL = 10


def get_worker_state():
    """Return the singleton worker state row, creating it on first use."""
    state = db.session.get(WorkerState, 1)
    if state is None:
        state = WorkerState(id=1, is_running=True, poll_interval=current_app.config["POLL_INTERVAL"])
        db.session.add(state)
        db.session.flush()
    return state


def delete_old_logs() -> int:
    """Delete failure logs older than the retention period."""
    cutoff = datetime.now(timezone.utc) - timedelta(days=LOG_RETENTION_DAYS)
    return FailureLog.query.filter(FailureLog.created_at < cutoff).delete()


@maintenance_bp.route("/worker/toggle", methods=["POST"])
def toggle_worker():
    state = get_worker_state()
    state.is_running = not state.is_running
    db.session.commit()
    return jsonify({"is_running": state.is_running})


@maintenance_bp.route("/worker/interval", methods=["POST"])
def set_interval():
    payload = request.get_json(silent=True) or {}
    try:
        interval = int(payload.get("poll_interval", 60))
    except (TypeError, ValueError):
        return jsonify({"error": "poll_interval must be an integer"}), 400
    interval = max(interval, MIN_POLL_INTERVAL)

    state = get_worker_state()
    state.poll_interval = interval
    db.session.commit()
    return jsonify({"poll_interval": interval})


@maintenance_bp.route("/logs")
def logs():
    entries = FailureLog.query.order_by(FailureLog.created_at.desc()).limit(100).all()
    return jsonify([entry.to_dict() for entry in entries])


@maintenance_bp.route("/logs/clear", methods=["POST"])
def clear_logs():
    deleted = FailureLog.query.delete()
    db.session.commit()
    return jsonify({"deleted": deleted})


@maintenance_bp.route("/logs/cleanup", methods=["POST"])
def cleanup_old_logs():
    deleted = delete_old_logs()
    db.session.commit()
    return jsonify({"deleted": deleted})


# ── JSON API for status checks ───────────────────────────────────
@maintenance_bp.route("/api/status")
def api_status():
    state = db.session.get(WorkerState, 1)
    return jsonify(
        {
            "is_running": state.is_running if state else False,
            "poll_interval": state.poll_interval if state else current_app.config["POLL_INTERVAL"],
            "pending_operations": Operation.query.count(),
        }
    )
