from flask import Blueprint, jsonify, request

from mailrules.extensions import db
from mailrules.imap_client_utils import list_mailboxes
from mailrules.models import Account, Folder
from mailrules.synchronize import synchronize_account

accounts_bp = Blueprint("accounts", __name__, url_prefix="/accounts")

SSL_MODES = ("ssl", "starttls", "none")


def _error(message, status=400):
    return jsonify({"error": message}), status


def _apply_account_fields(account, payload, creating):
    for key in ("name", "imap_host", "imap_user"):
        if key in payload:
            setattr(account, key, payload[key])
        elif creating:
            raise ValueError(f"{key} is required")
    # Keep the stored password when an update leaves it blank
    if payload.get("imap_password"):
        account.imap_password = payload["imap_password"]
    elif creating:
        raise ValueError("imap_password is required")
    if "imap_port" in payload:
        account.imap_port = int(payload["imap_port"])
    if "ssl_mode" in payload:
        if payload["ssl_mode"] not in SSL_MODES:
            raise ValueError(f"ssl_mode must be one of {', '.join(SSL_MODES)}")
        account.ssl_mode = payload["ssl_mode"]
    if "enabled" in payload:
        account.enabled = bool(payload["enabled"])


@accounts_bp.route("/")
def index():
    accounts = Account.query.order_by(Account.name).all()
    return jsonify([account.to_dict() for account in accounts])


@accounts_bp.route("/", methods=["POST"])
def create():
    payload = request.get_json(silent=True) or {}
    account = Account()
    try:
        _apply_account_fields(account, payload, creating=True)
    except ValueError as exc:
        return _error(str(exc))
    db.session.add(account)
    db.session.commit()
    return jsonify(account.to_dict()), 201


@accounts_bp.route("/<int:account_id>", methods=["PUT"])
def edit(account_id):
    account = db.get_or_404(Account, account_id)
    try:
        _apply_account_fields(account, request.get_json(silent=True) or {}, creating=False)
    except ValueError as exc:
        db.session.rollback()
        return _error(str(exc))
    db.session.commit()
    return jsonify(account.to_dict())


@accounts_bp.route("/<int:account_id>", methods=["DELETE"])
def delete(account_id):
    account = db.get_or_404(Account, account_id)
    db.session.delete(account)
    db.session.commit()
    return jsonify({"status": "ok"})


@accounts_bp.route("/<int:account_id>/mailboxes")
def mailboxes(account_id):
    account = db.get_or_404(Account, account_id)
    return jsonify({"mailboxes": list_mailboxes(account)})


@accounts_bp.route("/<int:account_id>/sync", methods=["POST"])
def sync_now(account_id):
    account = db.get_or_404(Account, account_id)
    count = synchronize_account(account)
    return jsonify({"stored": count})


# ── Folders ──────────────────────────────────────────────────────
@accounts_bp.route("/<int:account_id>/folders")
def folders(account_id):
    account = db.get_or_404(Account, account_id)
    return jsonify([folder.to_dict() for folder in sorted(account.folders, key=lambda f: f.name)])


@accounts_bp.route("/<int:account_id>/folders", methods=["POST"])
def create_folder(account_id):
    account = db.get_or_404(Account, account_id)
    payload = request.get_json(silent=True) or {}
    name = payload.get("name")
    if not isinstance(name, str) or not name:
        return _error("name is required")
    if Folder.query.filter_by(account_id=account.id, name=name).first():
        return _error("folder already exists", 409)
    folder = Folder(account=account, name=name, synchronize=bool(payload.get("synchronize", True)))
    db.session.add(folder)
    db.session.commit()
    return jsonify(folder.to_dict()), 201


@accounts_bp.route("/folders/<int:folder_id>", methods=["PUT"])
def edit_folder(folder_id):
    folder = db.get_or_404(Folder, folder_id)
    payload = request.get_json(silent=True) or {}
    if "synchronize" in payload:
        folder.synchronize = bool(payload["synchronize"])
    db.session.commit()
    return jsonify(folder.to_dict())


@accounts_bp.route("/folders/<int:folder_id>", methods=["DELETE"])
def delete_folder(folder_id):
    """Delete a folder together with its rules and messages."""
    folder = db.get_or_404(Folder, folder_id)
    db.session.delete(folder)
    db.session.commit()
    return jsonify({"status": "ok"})
