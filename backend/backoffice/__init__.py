# backend/backoffice/__init__.py
from flask import Flask

from .config import Config
from .extensions import db, migrate
from .time_utils import SystemClock


def create_app(config_overrides: dict | None = None) -> Flask:
    """
    Build the back office app.

    config_overrides is applied before the extensions are initialized, so
    it may change SQLALCHEMY_DATABASE_URI. Tests also use it to install a
    clock, certifier or permission checker:

        create_app({"CLOCK": FixedClock(...), "CERTIFIER": FakeCertifier()})
    """
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Collaborators read by the services through app.extensions
    from .services.certifier import certifier_from_config
    from .services.permission_service import ConfigPermissionChecker

    app.extensions["clock"] = app.config.get("CLOCK") or SystemClock()
    app.extensions["certifier"] = app.config.get("CERTIFIER") or certifier_from_config(app.config)
    app.extensions["permission_checker"] = (
        app.config.get("PERMISSION_CHECKER") or ConfigPermissionChecker(app.config.get("CAPABILITIES"))
    )

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.products import products_bp
    from .routes.inventory import inventory_bp
    from .routes.sales import sales_bp
    from .routes.cash_boxes import cash_boxes_bp
    from .routes.fiscal import fiscal_bp
    from .routes.annulments import annulments_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(sales_bp)
    app.register_blueprint(cash_boxes_bp)
    app.register_blueprint(fiscal_bp)
    app.register_blueprint(annulments_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
