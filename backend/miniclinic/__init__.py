# backend/miniclinic/__init__.py
from flask import Flask

from .config import Config
from .extensions import cache, db, migrate


def create_app(test_config: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)

    app.logger.setLevel(app.config["LOG_LEVEL"])

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    cache.init_app(app, config={
        "CACHE_TYPE": app.config["CACHE_TYPE"],
        "CACHE_DEFAULT_TIMEOUT": app.config["CACHE_DEFAULT_TTL"],
    })

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.products import products_bp
    from .routes.inventory import inventory_bp
    from .routes.sales import sales_bp
    from .routes.patients import patients_bp
    from .routes.payment_plans import payment_plans_bp
    from .routes.payments import payments_bp
    from .routes.audit_logs import audit_logs_bp
    from .routes.settings import settings_bp
    from .routes.admin import admin_bp
    from .routes.appointments import appointments_bp
    from .routes.expenses import expenses_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(sales_bp)
    app.register_blueprint(patients_bp)
    app.register_blueprint(payment_plans_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(audit_logs_bp)
    app.register_blueprint(settings_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(appointments_bp)
    app.register_blueprint(expenses_bp)

    from .errors import register_error_handlers
    register_error_handlers(app)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
