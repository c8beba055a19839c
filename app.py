"""Flask application factory for the preset camera backend."""

from __future__ import annotations

from flask import Flask

from config import Config
from services.database import init_db
from services.selection_history import SelectionHistory, SqlHistoryStore


def create_app(config_class: type[Config] = Config) -> Flask:
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_class)

    # Ensure storage directories exist
    config_class.ensure_directories()

    # Initialise database
    init_db(app.config["DATABASE_URL"])

    # One history cache per process; writes go through to the database.
    app.extensions["selection_history"] = SelectionHistory(SqlHistoryStore())

    from blueprints.api import api_bp

    app.register_blueprint(api_bp)

    return app
