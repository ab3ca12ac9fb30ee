import json

from flask import Blueprint, jsonify, request

from mailrules.actions import parse_action
from mailrules.diagnostics import CollectingDiagnostics
from mailrules.extensions import db
from mailrules.matcher import evaluate, parse_condition
from mailrules.models import Folder, Message, Rule

rules_bp = Blueprint("rules", __name__, url_prefix="/rules")


def _error(message, status=400):
    return jsonify({"error": message}), status


def _document(value):
    """Rule documents may be posted as JSON objects or as JSON text."""
    if isinstance(value, str):
        return value
    return json.dumps(value)


def _rule_values(payload, rule=None):
    """Validate a create/update payload; missing keys keep *rule*'s values."""
    if not isinstance(payload, dict):
        raise ValueError("invalid payload")

    def pick(key, default):
        return payload[key] if key in payload else default

    values = {
        "name": pick("name", rule.name if rule else None),
        "order": pick("order", rule.order if rule else None),
        "enabled": pick("enabled", rule.enabled if rule else True),
        "stop": pick("stop", rule.stop if rule else False),
        "condition": _document(payload["condition"]) if "condition" in payload else (rule.condition if rule else None),
        "action": _document(payload["action"]) if "action" in payload else (rule.action if rule else None),
    }

    if not isinstance(values["name"], str) or not values["name"].strip():
        raise ValueError("name is required")
    if values["order"] is not None and (isinstance(values["order"], bool) or not isinstance(values["order"], int)):
        raise ValueError("order must be an integer")
    for key in ("enabled", "stop"):
        if not isinstance(values[key], bool):
            raise ValueError(f"{key} must be a boolean")
    if values["condition"] is None or values["action"] is None:
        raise ValueError("condition and action are required")

    # Reject documents the engine could never run (RuleParseError is a ValueError)
    parse_condition(values["condition"])
    parse_action(values["action"])
    return values


@rules_bp.route("/folders/<int:folder_id>")
def index(folder_id):
    db.get_or_404(Folder, folder_id)
    rules = Rule.query.filter_by(folder_id=folder_id).order_by(Rule.order, Rule.id).all()
    return jsonify([rule.to_dict() for rule in rules])


@rules_bp.route("/folders/<int:folder_id>", methods=["POST"])
def create(folder_id):
    folder = db.get_or_404(Folder, folder_id)
    try:
        values = _rule_values(request.get_json(silent=True))
    except ValueError as exc:
        return _error(str(exc))

    if values["order"] is None:
        max_order = (
            db.session.query(db.func.max(Rule.order))
            .filter(Rule.folder_id == folder.id)
            .scalar()
        )
        values["order"] = 0 if max_order is None else max_order + 1

    rule = Rule(folder_id=folder.id, **values)
    db.session.add(rule)
    db.session.commit()
    return jsonify(rule.to_dict()), 201


@rules_bp.route("/<int:rule_id>")
def show(rule_id):
    rule = db.get_or_404(Rule, rule_id)
    return jsonify(rule.to_dict())


@rules_bp.route("/<int:rule_id>", methods=["PUT"])
def update(rule_id):
    rule = db.get_or_404(Rule, rule_id)
    try:
        values = _rule_values(request.get_json(silent=True), rule)
    except ValueError as exc:
        return _error(str(exc))

    candidate = Rule(folder_id=rule.folder_id, **values)
    if rule.same_content(candidate):
        return jsonify({**rule.to_dict(), "changed": False})

    for key, value in values.items():
        setattr(rule, key, value)
    db.session.commit()
    return jsonify({**rule.to_dict(), "changed": True})


@rules_bp.route("/<int:rule_id>", methods=["DELETE"])
def delete(rule_id):
    rule = db.get_or_404(Rule, rule_id)
    db.session.delete(rule)
    db.session.commit()
    return jsonify({"status": "ok"})


@rules_bp.route("/<int:rule_id>/toggle", methods=["POST"])
def toggle(rule_id):
    rule = db.get_or_404(Rule, rule_id)
    rule.enabled = not rule.enabled
    db.session.commit()
    return jsonify(rule.to_dict())


@rules_bp.route("/folders/<int:folder_id>/reorder", methods=["POST"])
def reorder(folder_id):
    """Accept JSON array of rule IDs in desired order."""
    db.get_or_404(Folder, folder_id)
    order = request.get_json(silent=True)
    if not order or not isinstance(order, list):
        return _error("invalid payload")

    for position, rule_id in enumerate(order):
        Rule.query.filter_by(id=rule_id, folder_id=folder_id).update({"order": position})
    db.session.commit()
    return jsonify({"status": "ok"})


@rules_bp.route("/<int:rule_id>/check", methods=["POST"])
def check(rule_id):
    """Dry run: would the rule match a stored message? Nothing is executed."""
    rule = db.get_or_404(Rule, rule_id)
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return _error("invalid payload")
    message_id = payload.get("message_id")
    if isinstance(message_id, bool) or not isinstance(message_id, int):
        return _error("message_id must be an integer")
    message = db.session.get(Message, message_id)
    if message is None:
        return _error("message not found", 404)

    diagnostics = CollectingDiagnostics()
    result = evaluate(rule, message, diagnostics)
    return jsonify({
        "matched": result.matched,
        "error": result.error.reason if result.error else None,
        "diagnostics": diagnostics.kinds(),
    })
