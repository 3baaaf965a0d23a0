# backend/orderpay/__init__.py
from flask import Flask, request

from .config import Config
from .extensions import db, migrate


# Endpoints called from the consumer site's browser
CONSUMER_PATH_PREFIXES = ("/api/profile", "/api/prepaid/")


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.orders import orders_bp
    from .routes.payments import payments_bp
    from .routes.admin import admin_bp
    from .routes.profile import profile_bp
    from .routes.prepaid import prepaid_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(profile_bp)
    app.register_blueprint(prepaid_bp)

    @app.after_request
    def add_cors_headers(response):
        if not request.path.startswith(CONSUMER_PATH_PREFIXES):
            return response

        origin = request.headers.get("Origin")
        allowed_origins = app.config.get("CONSUMER_CORS_ORIGINS") or []
        if origin and ("*" in allowed_origins or origin in allowed_origins):
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
