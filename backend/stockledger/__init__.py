# backend/stockledger/__init__.py
from flask import Flask
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException

from .config import Config
from .errors import LedgerError, UninitializedError
from .extensions import db, migrate


def _sqlite_engine_options(app: Flask) -> None:
    options = dict(app.config.get("SQLALCHEMY_ENGINE_OPTIONS") or {})
    connect_args = dict(options.get("connect_args") or {})
    # Lock wait ceiling; past it SQLite raises "database is locked" -> TRANSIENT_BUSY
    connect_args.setdefault("timeout", app.config["SQLITE_BUSY_TIMEOUT_SECONDS"])
    options["connect_args"] = connect_args
    app.config["SQLALCHEMY_ENGINE_OPTIONS"] = options


def _init_stores(app: Flask) -> None:
    """Create missing tables on every bind; any failure is fatal."""
    with app.app_context():
        try:
            db.create_all()
        except SQLAlchemyError as exc:
            app.logger.critical("Store initialization failed: %s", exc)
            raise UninitializedError(f"stores could not be initialized: {exc}") from exc


def create_app(overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)

    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

    all_sqlite = str(app.config["SQLALCHEMY_DATABASE_URI"]).startswith("sqlite") and all(
        str(uri).startswith("sqlite") for uri in (app.config.get("SQLALCHEMY_BINDS") or {}).values()
    )
    if all_sqlite:
        _sqlite_engine_options(app)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.stock import stock_bp
    from .routes.purchases import purchases_bp
    from .routes.sales import sales_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(stock_bp)
    app.register_blueprint(purchases_bp)
    app.register_blueprint(sales_bp)

    @app.errorhandler(LedgerError)
    def handle_ledger_error(e: LedgerError):
        return e.to_dict(), e.status_code

    @app.errorhandler(Exception)
    def handle_unexpected_error(e: Exception):
        if isinstance(e, HTTPException):
            return e
        app.logger.exception("Unhandled error")
        return {"error": "Internal server error", "code": "INTERNAL_ERROR"}, 500

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    if app.config.get("LEDGER_AUTO_CREATE_SCHEMA", True):
        _init_stores(app)

    return app
