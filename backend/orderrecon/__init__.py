# backend/orderrecon/__init__.py
from flask import Flask, request

from .config import Config
from .extensions import db, migrate, remote_services



def create_app(config_overrides: dict | None = None, services: dict | None = None) -> Flask:
    """
    Build the reconciliation service.

    config_overrides: applied on top of Config (tests use an in-memory DB).
    services: optional {"orders", "inventory", "receivables"} client objects
    that replace the HTTP clients.
    """
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    remote_services.init_app(app, **(services or {}))

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.orders import orders_bp
    from .routes.ledgers import stock_bp, customers_bp
    from .routes.reconciliation import reconciliation_bp

    app.register_blueprint(orders_bp)
    app.register_blueprint(stock_bp)
    app.register_blueprint(customers_bp)
    app.register_blueprint(reconciliation_bp)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if origin and origin in app.config["CORS_ALLOWED_ORIGINS"]:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
