# backend/wifipos/__init__.py
from flask import Flask

from .config import Config
from .extensions import db, migrate


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    # Overrides must land before the extensions read the config (tests use in-memory SQLite)
    if config_overrides:
        app.config.update(config_overrides)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # One device session registry per process
    from .devices.session import EXTENSION_KEY, DeviceSessionManager
    app.extensions[EXTENSION_KEY] = DeviceSessionManager()

    # Register blueprints
    from .routes.system import system_bp
    from .routes.tokens import tokens_bp
    from .routes.client_sync import client_sync_bp
    from .routes.ledger import ledger_bp
    from .routes.devices import devices_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(tokens_bp)
    app.register_blueprint(client_sync_bp)
    app.register_blueprint(ledger_bp)
    app.register_blueprint(devices_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
