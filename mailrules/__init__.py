from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from mailrules.config import Config
from mailrules.extensions import db, migrate


def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)

    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can detect them
    from mailrules import models  # noqa: F401

    # Register blueprints
    from mailrules.routes.accounts import accounts_bp
    from mailrules.routes.rules import rules_bp
    from mailrules.routes.maintenance import maintenance_bp

    app.register_blueprint(accounts_bp)
    app.register_blueprint(rules_bp)
    app.register_blueprint(maintenance_bp)

    @app.errorhandler(HTTPException)
    def http_error(exc):
        return jsonify({"error": exc.description}), exc.code

    @app.route("/")
    def index():
        return jsonify({"service": "mailrules"})

    return app
